"""
Runtime settings for the sports camp API.
Values come from the environment or a local .env file.
"""
from functools import lru_cache
from pathlib import Path

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DB_PATH = Path(__file__).parent / "sportscamp.db"


class Settings(BaseSettings):
    access_token_secret: SecretStr = SecretStr("change-me")
    payment_secret_key: SecretStr = SecretStr("")
    db_path: Path = DEFAULT_DB_PATH
    host: str = "127.0.0.1"
    port: int = 5000
    log_level: str = "INFO"
    token_expire_hours: int = 2
    payment_currency: str = "usd"
    popular_classes_limit: int = 6

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
