import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./facility.db")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Comma separated list of frontend origins allowed by CORS
ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("ALLOWED_ORIGINS", "http://localhost:5173").split(",")
    if origin.strip()
]

# Scheduling engine
# Upper bound for a single "upcoming visits" projection. The projector scans
# day by day, so this keeps one request from walking several years.
SCHEDULE_MAX_HORIZON_DAYS = int(os.getenv("SCHEDULE_MAX_HORIZON_DAYS", "366"))

# Time used when a visit is created without one (HH:MM)
DEFAULT_VISIT_TIME = os.getenv("DEFAULT_VISIT_TIME", "08:00")

# Label shown for an occurrence whose record has no notes
DEFAULT_VISIT_LABEL = os.getenv("DEFAULT_VISIT_LABEL", "Technical visit")
