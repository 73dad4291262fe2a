from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./lifesprint.db"
    remote_base_url: str = "http://localhost:8000/api"
    remote_api_token: str = ""
    remote_timeout_seconds: float = 10.0
    sync_interval_minutes: int = 5
    max_retries: int = 3  # drain passes before an operation is dead-lettered
    direct_write_attempts: int = 3
    backoff_base_seconds: float = 1.0
    user_id: str = ""  # default user for `python -m lifesprint`

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
