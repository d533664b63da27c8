from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional

class Settings(BaseSettings):
    POSTGRES_HOST: str = "postgres"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "fulfillment"
    POSTGRES_USER: str = "fulfillment"
    POSTGRES_PASSWORD: str = "fulfillment"
    # Overrides the Postgres parts when set (e.g. sqlite:// for tests)
    DATABASE_URL: Optional[str] = None

    JWT_SECRET: str = "change-me"
    JWT_ALG: str = "HS256"

    # "direct" or "vendor_fulfillment_center"
    FULFILLMENT_MODE: str = "direct"
    DEFAULT_CURRENCY: str = "AED"

    CARRIER_ACCOUNT_COUNTRY: str = "AE"
    CARRIER_BASE_URL: Optional[str] = None
    CARRIER_API_KEY: Optional[str] = None
    CARRIER_NAME: str = "FedEx"
    CARRIER_TIMEOUT_SECONDS: float = 10.0

    NOTIFICATIONS_BASE_URL: Optional[str] = None
    INVOICE_REFETCH_DELAY_SECONDS: float = 2.0

    LOG_LEVEL: str = "INFO"
    RUN_MIGRATIONS: bool = False

    class Config:
        env_file = ".env"

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

@lru_cache
def get_settings() -> Settings:
    return Settings()
