import os
import logging
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
from pydantic import BaseModel, Field
from dotenv import load_dotenv

load_dotenv()

class Config(BaseModel):
    app_name: str = "HR Leave Ledger"
    environment: str = os.getenv("APP_ENV", "development")
    version: str = "1.0.0"

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./leave.db")
    sql_echo: bool = os.getenv("SQL_ECHO", "false").lower() == "true"

    # All leave timestamps are produced in this civil zone, never UTC or host-local.
    timezone: str = Field(default=os.getenv("LEAVE_TIMEZONE", "Asia/Manila"))

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()

settings = Config()

# --- Startup Validation ---
_logger = logging.getLogger(__name__)
try:
    ZoneInfo(settings.timezone)
except (ZoneInfoNotFoundError, ValueError):
    if settings.environment != "development":
        raise RuntimeError(
            f"FATAL: LEAVE_TIMEZONE '{settings.timezone}' is not a known IANA zone. "
            f"Set it to a valid zone name such as 'Asia/Manila'."
        )
    _logger.warning(f"Unknown LEAVE_TIMEZONE '{settings.timezone}', falling back to Asia/Manila.")
    settings.timezone = "Asia/Manila"
