"""Application configuration."""
import os
from dotenv import load_dotenv

load_dotenv()

WEEK_START_CHOICES = ("sunday", "monday")


class Settings:
    """Application settings loaded from environment variables."""

    # App settings
    DEBUG: bool = os.getenv("DEBUG", "false").lower() == "true"

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT: str = os.getenv("LOG_FORMAT", "json")  # json | console

    # Storage (empty keeps calendars in memory only)
    DATA_DIR: str = os.getenv("DATA_DIR", "")

    # Layout
    MONTH_ROW_BUDGET: int = int(os.getenv("MONTH_ROW_BUDGET", "3"))
    WEEK_ROW_BUDGET: int = int(os.getenv("WEEK_ROW_BUDGET", "10"))
    WEEK_STARTS_ON: str = os.getenv("WEEK_STARTS_ON", "sunday").lower()
    UPCOMING_LIMIT: int = int(os.getenv("UPCOMING_LIMIT", "10"))

    # CORS
    CORS_ORIGINS: list = [
        origin.strip()
        for origin in os.getenv("CORS_ORIGINS", "*").split(",")
        if origin.strip()
    ]

    def validate(self) -> None:
        """Reject settings the app cannot serve with."""
        if self.WEEK_STARTS_ON not in WEEK_START_CHOICES:
            raise ValueError(
                f"WEEK_STARTS_ON must be one of {', '.join(WEEK_START_CHOICES)}, "
                f"got {self.WEEK_STARTS_ON!r}"
            )


settings = Settings()
