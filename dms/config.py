# dms/config.py
import os

def _bool(env_name: str, default: bool = False) -> bool:
    return os.getenv(env_name, str(default)).strip().lower() in {"1", "true", "yes", "on"}

def _int(env_name: str, default: int) -> int:
    try:
        return int(os.getenv(env_name, default))
    except (TypeError, ValueError):
        return default

def _float(env_name: str, default: float) -> float:
    try:
        return float(os.getenv(env_name, default))
    except (TypeError, ValueError):
        return default

# --- Database ---------------------------------------------------------------
raw_db_url = os.getenv("DATABASE_URL", "sqlite:///dms.db")
# Fly.io / Heroku style fix
if raw_db_url.startswith("postgres://"):
    raw_db_url = raw_db_url.replace("postgres://", "postgresql://", 1)

SQLALCHEMY_DATABASE_URI = raw_db_url

# --- App / Security ---------------------------------------------------------
SECRET_KEY = os.getenv("SECRET_KEY", "autolab-dms-dev-only-secret")

# Bearer token lifetime
TOKEN_EXPIRY_HOURS = _int("TOKEN_EXPIRY_HOURS", 24)
RESET_TOKEN_EXPIRY_MINUTES = _int("RESET_TOKEN_EXPIRY_MINUTES", 30)

# Max upload size (bytes) for invoice documents and CSV imports
MAX_CONTENT_LENGTH = _int("MAX_CONTENT_LENGTH", 20 * 1024 * 1024)  # 20 MB default

# Frontend URL used for password reset links
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")


# --- Error Reporting ---------------------------------------------------------
SENTRY_DSN = os.getenv("SENTRY_DSN", "")

# --- Logging -----------------------------------------------------------------
# Options: "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Log slow queries (milliseconds threshold)
SLOW_QUERY_THRESHOLD_MS = _int("SLOW_QUERY_THRESHOLD_MS", 200)


# --- Storage Backend ---------------------------------------------------------
# Options: "local" or "s3" (AWS S3 and S3-compatible providers)
STORAGE_VENDOR = os.getenv("STORAGE_VENDOR", "local").lower()

# Local disk (used if STORAGE_VENDOR=local)
STORAGE_ROOT = os.getenv("STORAGE_ROOT", "./storage")

# S3-compatible settings (used if STORAGE_VENDOR=s3)
S3_ENDPOINT_URL = os.getenv("S3_ENDPOINT_URL", "")
S3_REGION = os.getenv("S3_REGION", "")
S3_ACCESS_KEY_ID = os.getenv("S3_ACCESS_KEY_ID", "")
S3_SECRET_ACCESS_KEY = os.getenv("S3_SECRET_ACCESS_KEY", "")
S3_BUCKET = os.getenv("S3_BUCKET", "")
S3_FORCE_PATH_STYLE = _bool("S3_FORCE_PATH_STYLE", True)


# --- Background jobs / Backups ----------------------------------------------
# Redis connection for RQ (job queue)
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

BACKUP_S3_ENDPOINT_URL = os.getenv("BACKUP_S3_ENDPOINT_URL", "")
BACKUP_S3_REGION = os.getenv("BACKUP_S3_REGION", "eu-west-2")
BACKUP_S3_ACCESS_KEY_ID = os.getenv("BACKUP_S3_ACCESS_KEY_ID", "")
BACKUP_S3_SECRET_ACCESS_KEY = os.getenv("BACKUP_S3_SECRET_ACCESS_KEY", "")
BACKUP_S3_BUCKET = os.getenv("BACKUP_S3_BUCKET", "autolab-dms-backups")
BACKUP_RETENTION_DAYS = _int("BACKUP_RETENTION_DAYS", 30)

# Backup job timeouts (configurable for large DBs)
BACKUP_JOB_TIMEOUT_MINUTES = _int("BACKUP_JOB_TIMEOUT_MINUTES", 60)

# Read/dismissed notifications older than this are purged by the maintenance job
NOTIFICATION_RETENTION_DAYS = _int("NOTIFICATION_RETENTION_DAYS", 90)


# --- Dealership ----------------------------------------------------------------
# Dealer finance (DF) facility limit shown on the dashboard
DF_FACILITY_BUDGET = _float("DF_FACILITY_BUDGET", 3000000.0)
# Per-department split of the facility, ALS carries no allocation
DF_DEPARTMENT_BUDGETS = {
    "AL": _float("DF_BUDGET_AL", 2700000.0),
    "MSR": _float("DF_BUDGET_MSR", 300000.0),
    "ALS": _float("DF_BUDGET_ALS", 0.0),
}

# Monthly targets used by the business intelligence reports
MONTHLY_REVENUE_TARGET = _float("MONTHLY_REVENUE_TARGET", 2000000.0)
MONTHLY_UNITS_TARGET = _int("MONTHLY_UNITS_TARGET", 100)
MONTHLY_PROFIT_TARGET = _float("MONTHLY_PROFIT_TARGET", 500000.0)


# --- CORS --------------------------------------------------------------------
#   CORS_ALLOWED_ORIGINS="http://localhost:5173,https://dms.example.com"
CORS_ALLOWED_ORIGINS = [
    o.strip() for o in os.getenv(
        "CORS_ALLOWED_ORIGINS", "http://localhost:5173,http://localhost:5000"
    ).split(",") if o.strip()
]
