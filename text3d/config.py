"""
Service configuration, read from the environment (and an optional .env file).
"""
import os

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# ============================================================================
# Server
# ============================================================================

PORT = int(os.getenv("PORT", "3000"))
HOST = os.getenv("HOST", "0.0.0.0")
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL") or f"http://localhost:{PORT}"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# ============================================================================
# Generation
# ============================================================================

DEFAULT_FONT_URL = "https://github.com/google/fonts/raw/main/ofl/roboto/Roboto%5Bwdth,wght%5D.ttf"
FONT_URL = os.getenv("FONT_URL", DEFAULT_FONT_URL)
FONT_FETCH_TIMEOUT = float(os.getenv("FONT_FETCH_TIMEOUT", "10"))
GENERATION_TIMEOUT = float(os.getenv("GENERATION_TIMEOUT", "60"))

# ============================================================================
# Storage
# ============================================================================

STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "local").lower()  # local | gcs
ARTIFACT_DIR = os.getenv("ARTIFACT_DIR", "temp")
STATIC_PREFIX = "/temp"

GCS_BUCKET = os.getenv("GCS_BUCKET")
GCS_PREFIX = os.getenv("GCS_PREFIX", "text3d/")
GCS_PROJECT = os.getenv("GCS_PROJECT")
