"""Application settings, read from the environment (and a .env file if present)."""
import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


class Settings(BaseModel):
    database_path: str = Field(default="tasks.db", description="Path to the sqlite database file")
    log_level: str = Field(default="INFO", description="Root logging level")
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:5173"])

    @classmethod
    def from_env(cls) -> "Settings":
        values = {}
        if os.getenv("TASKS_DATABASE_PATH"):
            values["database_path"] = os.getenv("TASKS_DATABASE_PATH")
        if os.getenv("TASKS_LOG_LEVEL"):
            values["log_level"] = os.getenv("TASKS_LOG_LEVEL").upper()
        if os.getenv("TASKS_CORS_ORIGINS"):
            values["cors_origins"] = [
                origin.strip() for origin in os.getenv("TASKS_CORS_ORIGINS").split(",") if origin.strip()
            ]
        return cls(**values)


def get_settings() -> Settings:
    return Settings.from_env()
