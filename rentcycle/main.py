import asyncio
import logging
import sys

from rentcycle.config import config
from rentcycle.cron import scheduler_loop, daily_arrears_job
from rentcycle.database.core import engine, init_db


async def main(run_once: bool = False):
    # Configure logging
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        stream=sys.stdout,
    )

    url = config.DATABASE_URL
    logging.info(f"Database: {url.split('@')[1] if '@' in url else url}")

    await init_db()

    try:
        if run_once:
            await daily_arrears_job()
        else:
            logging.info("Starting rent cycle scheduler...")
            await scheduler_loop()
    finally:
        await engine.dispose()


if __name__ == "__main__":
    try:
        asyncio.run(main(run_once="--once" in sys.argv))
    except (KeyboardInterrupt, SystemExit):
        logging.info("Scheduler stopped.")
