# barbershop/config.py

import os
import warnings
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./barber.db")
SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() == "true"

SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "change-me-later"
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "30"))

# Scheduling rules
DEFAULT_SLOT_MINUTES = int(os.getenv("DEFAULT_SLOT_MINUTES", "60"))
CANCELLATION_LEAD_MINUTES = int(os.getenv("CANCELLATION_LEAD_MINUTES", "60"))
MODIFICATION_LEAD_MINUTES = int(os.getenv("MODIFICATION_LEAD_MINUTES", "120"))
# Extra attempts after losing an insert race on the unique index
BOOKING_CONFLICT_RETRIES = int(os.getenv("BOOKING_CONFLICT_RETRIES", "1"))

REMINDER_LEAD_HOURS = int(os.getenv("REMINDER_LEAD_HOURS", "24"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Optional first admin account, created at startup when both are set
BOOTSTRAP_ADMIN_EMAIL = os.getenv("BOOTSTRAP_ADMIN_EMAIL")
BOOTSTRAP_ADMIN_PASSWORD = os.getenv("BOOTSTRAP_ADMIN_PASSWORD")
