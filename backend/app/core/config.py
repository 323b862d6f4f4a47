from typing import List, Literal
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # MongoDB Configuration
    MONGODB_URI: str = "mongodb://localhost:27017"
    MONGODB_DB_NAME: str = "nexusgear_db"

    # Cart Configuration
    GUEST_CART_KEY: str = "nexusgear_guest_cart"
    # How guest lines are written over an existing account line at sign-in
    CART_MERGE_POLICY: Literal["overwrite", "sum"] = "overwrite"
    # Open device sessions; idle or least recently used ones are disposed
    CART_SESSION_LIMIT: int = 10000
    CART_SESSION_IDLE_SECONDS: float = 1800

    # Application Settings
    BACKEND_CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8080"]
    API_V1_PREFIX: str = "/api"
    PROJECT_NAME: str = "NexusGear"
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )


# Global settings instance
settings = Settings()
