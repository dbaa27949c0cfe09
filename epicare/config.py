import os

from dotenv import load_dotenv

load_dotenv()

# Remote CDS evaluation backend
CDS_API_URL = os.getenv("CDS_API_URL", "")
CDS_AUTH_TOKEN = os.getenv("CDS_AUTH_TOKEN", "")
CDS_CLIENT_VERSION = os.getenv("CDS_CLIENT_VERSION", "1.2.0")
CDS_TIMEOUT_SECONDS = float(os.getenv("CDS_TIMEOUT_SECONDS", "15"))
CDS_RETRY_ATTEMPTS = int(os.getenv("CDS_RETRY_ATTEMPTS", "3"))
CDS_RETRY_DELAY_SECONDS = float(os.getenv("CDS_RETRY_DELAY_SECONDS", "2"))
CDS_CACHE_TTL_SECONDS = int(os.getenv("CDS_CACHE_TTL_SECONDS", "300"))

# Demo/Debug mode (explicit)
DUMMY_MODE = os.getenv("DUMMY_MODE", "false").lower() in ("1", "true", "yes", "on")

# Follow-up session behaviour
DEBOUNCE_SECONDS = float(os.getenv("DEBOUNCE_SECONDS", "1.0"))
AUTO_APPLY_ROLES = {
    role.strip()
    for role in os.getenv("AUTO_APPLY_ROLES", "phc_admin,master_admin").split(",")
    if role.strip()
}

# Render plan limits
MAX_RECOMMENDATIONS = int(os.getenv("MAX_RECOMMENDATIONS", "4"))
MAX_COUNSELING_ICONS = int(os.getenv("MAX_COUNSELING_ICONS", "10"))
STALE_WEIGHT_DAYS = int(os.getenv("STALE_WEIGHT_DAYS", "183"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
