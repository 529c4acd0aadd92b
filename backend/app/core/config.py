from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # MongoDB Configuration
    MONGODB_URI: str = "mongodb://localhost:27017/?replicaSet=rs0"
    MONGODB_DB_NAME: str = "cacao_db"

    # JWT Configuration (tokens are issued by the identity service)
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"

    # Pricing
    TAX_RATE: float = 0.08
    SHIPPING_FLAT_RATE: float = 0.0  # Free standard shipping

    # Guest sessions
    GUEST_COOKIE_NAME: str = "guest_id"
    GUEST_HEADER_NAME: str = "X-Guest-Id"
    GUEST_COOKIE_MAX_AGE_DAYS: int = 30

    # Transactions
    TRANSACTION_MAX_ATTEMPTS: int = 3

    # Application Settings
    BACKEND_CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8000"]
    API_V1_PREFIX: str = "/api"
    PROJECT_NAME: str = "Cacao Storefront"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )


# Global settings instance
settings = Settings()
