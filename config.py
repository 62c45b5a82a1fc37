import os
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
    DATABASE_NAME: str = os.getenv("DATABASE_NAME", "glow_beauty")

    # Comma separated; these accounts get role="admin" when they sign up
    ADMIN_EMAILS: str = ""
    SESSION_TTL_HOURS: int = 24
    RESET_TOKEN_TTL_MINUTES: int = 30

    UPLOAD_DIR: str = "uploads"
    MAX_UPLOAD_BYTES: int = 4 * 1024 * 1024

    LOW_STOCK_THRESHOLD: int = 5
    LOG_LEVEL: str = "INFO"
    PORT: int = 8000

    @property
    def admin_emails(self) -> List[str]:
        return [e.strip().lower() for e in self.ADMIN_EMAILS.split(",") if e.strip()]


settings = Settings()
