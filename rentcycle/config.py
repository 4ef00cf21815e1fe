import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    # Database Configuration
    DB_USER = os.getenv("DB_USER", "postgres")
    DB_PASS = os.getenv("DB_PASS", "postgres")
    DB_HOST = os.getenv("DB_HOST")
    DB_PORT = os.getenv("DB_PORT", "5432")
    DB_NAME = os.getenv("DB_NAME", "rentcycle")

    @property
    def DATABASE_URL(self):
        # Prefer DATABASE_URL env var if set
        url = os.getenv("DATABASE_URL")
        if url:
            return url

        # PostgreSQL only when a host is configured, local SQLite otherwise
        if self.DB_HOST:
            return f"postgresql+asyncpg://{self.DB_USER}:{self.DB_PASS}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        return "sqlite+aiosqlite:///./rentcycle.db"

    # Rent cycle defaults
    DEFAULT_DUE_DAY = int(os.getenv("DEFAULT_DUE_DAY", "5"))
    ARREARS_PERIOD_LIMIT = int(os.getenv("ARREARS_PERIOD_LIMIT", "600"))
    DUE_SOON_DAYS = int(os.getenv("DUE_SOON_DAYS", "7"))
    EXPIRY_WARNING_DAYS = int(os.getenv("EXPIRY_WARNING_DAYS", "30"))

    # How many times a stale save is reloaded and retried before giving up
    SAVE_RETRY_LIMIT = int(os.getenv("SAVE_RETRY_LIMIT", "1"))

    # Daily job
    JOB_HOUR = int(os.getenv("JOB_HOUR", "9"))

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

config = Config()
