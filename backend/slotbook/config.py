from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database configuration
    DATABASE_URL: str = ""
    SQLITE_URL: str = "sqlite+aiosqlite:///./slotbook.db"
    SQLITE_BUSY_TIMEOUT: float = 15.0

    # Slot generation
    SLOT_HORIZON_DAYS: int = 90
    DEFAULT_EXAMINATION_MINUTES: int = 30

    # Patient-facing listing window
    AVAILABLE_SLOTS_DAYS: int = 30

    # Schedule deletion retries on storage failure
    LIFECYCLE_MAX_ATTEMPTS: int = 3

    # Application
    SEED_DEMO_DATA: bool = True
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    class Config:
        env_file = ".env"


def get_settings() -> Settings:
    return Settings()
