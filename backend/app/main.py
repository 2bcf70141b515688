"""
Mailbox Mirror Backend API
FastAPI application that mirrors a user's Gmail inbox into Supabase.
"""

import logging
import os
from typing import List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from app.routers import emails
from app.db import supabase_admin
from app.services.email_store import EMAILS_TABLE

# Configure logging to output to console
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)


def get_local_ip() -> Optional[str]:
    """Return the host's LAN address from HOST_IP, or None when unset."""
    return os.getenv("HOST_IP", "").strip() or None


app = FastAPI(
    title="Mailbox Mirror API",
    description="Mirrors Gmail messages into Supabase and serves the decoded records",
    version="0.1.0",
)


def get_cors_origins() -> List[str]:
    """
    Build the list of allowed CORS origins.

    Always includes the local dev servers (ports 3000 and 5173) and their
    LAN-IP equivalents when HOST_IP is set. Additional origins
    come from the comma-separated CORS_ORIGINS environment variable.

    Duplicates are removed while preserving order.
    """
    ports = ("3000", "5173")
    always_included = [f"http://localhost:{port}" for port in ports]

    local_ip = get_local_ip()
    if local_ip:
        always_included.extend(f"http://{local_ip}:{port}" for port in ports)

    extra_origins: List[str] = []
    cors_env = os.getenv("CORS_ORIGINS", "").strip()
    if cors_env:
        extra_origins = [o.strip() for o in cors_env.split(",") if o.strip()]

    seen: set = set()
    origins: List[str] = []
    for origin in always_included + extra_origins:
        if origin not in seen:
            seen.add(origin)
            origins.append(origin)

    return origins


app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(emails.router, prefix="/api/emails", tags=["emails"])


@app.on_event("startup")
async def log_startup_urls() -> None:
    """Log the URLs the API is reachable at (port from HOST_PORT, default 8000)."""
    host_port = os.getenv("HOST_PORT", "8000")
    local_ip = get_local_ip()
    network_line = (
        f"  Network: http://{local_ip}:{host_port}"
        if local_ip
        else "  Network: (unavailable)"
    )
    logger.info(
        "Mailbox Mirror API running at:\n"
        "  Local:   http://localhost:%s\n"
        "%s",
        host_port,
        network_line,
    )


@app.get("/")
async def root():
    return {"message": "Mailbox Mirror API", "version": "0.1.0"}


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/health/db")
async def health_db():
    """
    Test the Supabase database connection.

    Reads one row id from the emails table. Returns 503 on failure.
    """
    if supabase_admin is None:
        raise HTTPException(
            status_code=503,
            detail="Database client unavailable: SUPABASE_SERVICE_KEY is not configured",
        )

    try:
        supabase_admin.table(EMAILS_TABLE).select("id").limit(1).execute()
        return {"status": "ok", "database": "reachable"}
    except Exception as exc:
        logger.error(f"Database health check failed: {exc}")
        raise HTTPException(
            status_code=503,
            detail=f"Database connection failed: {str(exc)}",
        )
