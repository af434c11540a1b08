from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = "sqlite+aiosqlite:///./card_exchange.db"
    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 1440
    LOG_LEVEL: str = "INFO"

    # Coin economy
    DEFAULT_COIN_BALANCE: int = 100
    DAILY_LOGIN_REWARD: int = 5

    # Exchange lifecycle
    EXCHANGE_EXPIRATION_HOURS: int = 72
    REAPER_INTERVAL_SECONDS: int = 300
    REAPER_ENABLED: bool = True

    @field_validator('DATABASE_URL', mode='before')
    @classmethod
    def convert_database_url(cls, v):
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    @field_validator('EXCHANGE_EXPIRATION_HOURS', 'REAPER_INTERVAL_SECONDS')
    @classmethod
    def must_be_positive(cls, v):
        if v <= 0:
            raise ValueError("must be positive")
        return v

settings = Settings()
