"""
FastAPI application for the WhatsApp Flow builder.

Stores versioned flow screen graphs, compiles them to WhatsApp flow JSON,
mirrors them to Meta and records submissions and status changes.
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from flowcraft.core.config import BUSINESS_ACCOUNT_ID, LOG_LEVEL, LOG_TO_FILES, TOKEN
from flowcraft.core.exceptions import setup_exception_handlers
from flowcraft.core.logging_config import setup_logging
from flowcraft.db.session import init_db, test_db_connection
from flowcraft.api.v1.router import api_router
from flowcraft.services import get_meta_client, set_meta_flow_client
from flowcraft.services.meta_flow_client import get_meta_flow_client

setup_logging("flowcraft", LOG_LEVEL, log_to_files=LOG_TO_FILES)
log = logging.getLogger("flowcraft")

# Initialize database
try:
    init_db()
    if test_db_connection():
        log.info("✅ Database initialized")
except Exception as e:
    log.error(f"❌ Database error: {e}")

set_meta_flow_client(get_meta_flow_client())

# FastAPI app
app = FastAPI(
    title="Flowcraft - WhatsApp Flow Builder",
    description="Versioned WhatsApp Flow definitions, compilation and status tracking",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$",
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Tenant-Id", "X-Business-Account-Id", "X-App-Id"],
    max_age=86400,
)

setup_exception_handlers(app)

app.include_router(api_router, prefix="/api")


@app.get("/healthz", tags=["System"])
def health():
    """Health check endpoint"""
    db_ok = test_db_connection()

    return {
        "status": "ok" if db_ok else "degraded",
        "database_ok": db_ok,
        "token_ok": bool(TOKEN),
        "business_account_ok": bool(BUSINESS_ACCOUNT_ID),
        "meta_sync_enabled": get_meta_client() is not None,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8100)
