"""Configuration management for House Ledger."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Razorpay API
    razorpay_key_id: str = ""
    razorpay_key_secret: str  # Also the HMAC key for payment signatures

    # Money settings
    currency: str = "INR"

    # Payment settings
    max_rejected_payment_attempts: int | None = Field(default=3, ge=1)

    # Listing settings
    recent_expense_limit: int = 10

    # Database path
    database_path: Path = Path.home() / ".house_ledger" / "house_ledger.db"

    def __init__(self, **kwargs):
        """Initialize settings and create database directory if needed."""
        super().__init__(**kwargs)
        self.database_path.parent.mkdir(parents=True, exist_ok=True)


def load_settings() -> Settings:
    """Load application settings from environment variables."""
    try:
        return Settings()
    except Exception as e:
        raise ValueError(
            f"Failed to load settings. Make sure you have created a .env file "
            f"with all required variables. See .env.example for reference.\n"
            f"Error: {e}"
        ) from e
