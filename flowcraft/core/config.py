"""
Application configuration - loads from environment variables.
Single source of truth for all settings.
"""
import os
from typing import Optional
from urllib.parse import quote_plus
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables FIRST
BASE_DIR = Path(__file__).resolve().parent.parent.parent
env_path = BASE_DIR / '.env'
load_dotenv(dotenv_path=env_path)

# ────────────────────────────────────────────
# Meta Graph API (WhatsApp Flows)
# ────────────────────────────────────────────
TOKEN: str = os.getenv("WHATSAPP_TOKEN", "")
BUSINESS_ACCOUNT_ID: str = os.getenv("WHATSAPP_BUSINESS_ACCOUNT_ID", "")
APP_ID: Optional[str] = os.getenv("FB_APP_ID") or os.getenv("META_APP_ID")

GRAPH_API_VERSION: str = os.getenv("GRAPH_API_VERSION", "v24.0")
GRAPH_API_TIMEOUT: float = float(os.getenv("GRAPH_API_TIMEOUT", "30"))

FLOW_ENDPOINT_URI: Optional[str] = os.getenv("FLOW_ENDPOINT_URI") or None
FLOW_WEBHOOK_SECRET: str = os.getenv("FLOW_WEBHOOK_SECRET", "")

# ────────────────────────────────────────────
# Flow compilation / listing
# ────────────────────────────────────────────
FLOW_JSON_VERSION: str = os.getenv("FLOW_JSON_VERSION", "7.3")
DEFAULT_FLOW_LIST_LIMIT: int = int(os.getenv("DEFAULT_FLOW_LIST_LIMIT", "20"))
MAX_FLOW_LIST_LIMIT: int = int(os.getenv("MAX_FLOW_LIST_LIMIT", "100"))

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
LOG_TO_FILES: bool = os.getenv("LOG_TO_FILES", "true").lower() in ("1", "true", "yes")

# ────────────────────────────────────────────
# Tenant / Multi-tenant
# ────────────────────────────────────────────
DEFAULT_TENANT_ID: str = os.getenv("TENANT_ID") or os.getenv("DEFAULT_TENANT_ID") or "default"

# ────────────────────────────────────────────
# Database Configuration
# ────────────────────────────────────────────
DB_USER = os.getenv("DB_USER", "postgres")
DB_PASSWORD = os.getenv("DB_PASSWORD", "")
DB_HOST = os.getenv("DB_HOST", "localhost")
DB_PORT = os.getenv("DB_PORT", "5432")
DB_NAME = os.getenv("DB_NAME", "flowcraft_db")
DATABASE_URL = os.getenv("DATABASE_URL")

# Build DATABASE_URL
if not DATABASE_URL:
    encoded_password = quote_plus(DB_PASSWORD)
    DATABASE_URL = f"postgresql://{DB_USER}:{encoded_password}@{DB_HOST}:{DB_PORT}/{DB_NAME}"


# ────────────────────────────────────────────
# Settings Class
# ────────────────────────────────────────────
class Settings:
    DATABASE_URL: str = DATABASE_URL
    TOKEN: str = TOKEN
    BUSINESS_ACCOUNT_ID: str = BUSINESS_ACCOUNT_ID
    APP_ID: Optional[str] = APP_ID
    GRAPH_API_VERSION: str = GRAPH_API_VERSION
    GRAPH_API_TIMEOUT: float = GRAPH_API_TIMEOUT
    FLOW_ENDPOINT_URI: Optional[str] = FLOW_ENDPOINT_URI
    FLOW_WEBHOOK_SECRET: str = FLOW_WEBHOOK_SECRET
    FLOW_JSON_VERSION: str = FLOW_JSON_VERSION
    LOG_LEVEL: str = LOG_LEVEL
    LOG_TO_FILES: bool = LOG_TO_FILES

settings = Settings()
