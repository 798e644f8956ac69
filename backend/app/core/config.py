"""Application configuration"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # API
    API_V1_PREFIX: str = "/api"
    PROJECT_NAME: str = "Proposal Billing Engine API"
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "postgresql://localhost:5432/billing"

    # Pricing
    # Currency code recorded on new proposals when the caller omits one.
    DEFAULT_CURRENCY: str = "EUR"
    # "net_of_item_discounts" sums amount minus per-item discount,
    # "gross_item_amounts" sums raw item amounts.
    SUBTOTAL_POLICY: str = "net_of_item_discounts"

    # Numbering
    NUMBER_GENERATION_MAX_ATTEMPTS: int = 3

    # Invoices
    INVOICE_DUE_DAYS: int = 30

    # Finder fee sweep
    FINDER_FEE_SWEEP_ENABLED: bool = False
    FINDER_FEE_SWEEP_INTERVAL_SECONDS: int = 300

    # CORS
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    @property
    def async_database_url(self) -> str:
        """Get async database URL"""
        return self.DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://")


settings = Settings()
