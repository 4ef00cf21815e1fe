from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession, AsyncEngine
from sqlalchemy.orm import DeclarativeBase
from rentcycle.config import config

engine = create_async_engine(config.DATABASE_URL, echo=False)

if engine.dialect.name == "sqlite":
    # SQLite ships with foreign keys off, per connection
    @event.listens_for(engine.sync_engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

AsyncSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)

class Base(DeclarativeBase):
    pass

async def init_db(bind: AsyncEngine = None):
    """Create missing tables. Existing tables are left as they are."""
    import rentcycle.database.models  # noqa: F401  registers the tables

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
