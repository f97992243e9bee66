import os
import logging
from pathlib import Path
from dotenv import load_dotenv

log = logging.getLogger(__name__)

# --- Load .env from project root (../.env relative to this file) ---
PROJECT_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=PROJECT_ROOT / ".env")

# ---------------------------
# Logging
# ---------------------------
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
if LOG_LEVEL not in {"DEBUG", "INFO", "WARNING", "ERROR"}:
    log.warning(f"Unknown LOG_LEVEL={LOG_LEVEL!r}; using INFO")
    LOG_LEVEL = "INFO"

# ---------------------------
# Converted file storage
# ---------------------------
TMP_DIR = Path(os.getenv("TMP_DIR", PROJECT_ROOT / "tmp"))
FILE_TTL_SECS = int(os.getenv("FILE_TTL_SECS", "3600"))

# ---------------------------
# Job history persistence (empty REDIS_URL -> in-process memory)
# ---------------------------
REDIS_URL = os.getenv("REDIS_URL", "").strip()
JOB_STORE_PREFIX = os.getenv("JOB_STORE_PREFIX", "converter:jobs:")
JOB_TTL_SECONDS = int(os.getenv("JOB_TTL_SECONDS", "86400"))  # 24h default

# ---------------------------
# Progress simulator
# ---------------------------
SIMULATOR_TICK_SECS = float(os.getenv("SIMULATOR_TICK_SECS", "0.5"))
SIMULATOR_MAX_STEP = float(os.getenv("SIMULATOR_MAX_STEP", "10"))

# ---------------------------
# Mock conversion delays
# ---------------------------
VIDEO_INFO_DELAY_SECS = float(os.getenv("VIDEO_INFO_DELAY_SECS", "0.8"))
LOOKUP_DELAY_SECS = float(os.getenv("LOOKUP_DELAY_SECS", "1.0"))
CONVERT_DELAY_SECS = float(os.getenv("CONVERT_DELAY_SECS", "2.0"))

# ---------------------------
# CORS
# ---------------------------
ALLOWED_ORIGINS = [
    o.strip()
    for o in os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
    if o.strip()
]


# ---------------------------
# S3 / Presign helpers
# ---------------------------
def get_region() -> str:
    # support both AWS_REGION and legacy AWS_DEFAULT_REGION
    return os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION", "us-east-1")


def get_bucket() -> str:
    # prefer AWS_S3_BUCKET, fall back to S3_BUCKET
    return os.getenv("AWS_S3_BUCKET") or os.getenv("S3_BUCKET") or ""


USE_PRESIGNED_URLS = os.getenv("USE_PRESIGNED_URLS", "true").lower() == "true"
PRESIGNED_URL_EXPIRES_SECS = int(os.getenv("PRESIGNED_URL_EXPIRES_SECS", "3600"))


def create_s3_client():
    # Lazy import so module import stays fast
    import boto3

    return boto3.client("s3", region_name=get_region())
