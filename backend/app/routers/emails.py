"""
Mirrored email API endpoints.

Endpoints:
  POST /sync         — mirror the newest Gmail messages (auth: JWT + X-Provider-Token)
  GET  /             — list the user's mirrored emails, newest first (auth: JWT)
  GET  /count        — number of mirrored emails for the user (auth: JWT)
  GET  /{email_id}   — one mirrored email (auth: JWT)
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.auth import get_current_user, get_provider_token
from app.db import supabase_admin
from app.models.email import EmailCount, EmailRecord, ProviderSession, SyncResult
from app.services.email_store import EmailStore, EmailStoreError
from app.services.email_sync import (
    NoProviderTokenError,
    NoSessionError,
    RemoteListError,
    StaticSessionProvider,
    sync_mailbox,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def get_email_store() -> EmailStore:
    """Build an EmailStore over the admin client; 503 when it is not configured."""
    if supabase_admin is None:
        raise HTTPException(
            status_code=503,
            detail="Database client unavailable: SUPABASE_SERVICE_KEY is not configured",
        )
    return EmailStore(supabase_admin)


@router.post(
    "/sync",
    response_model=SyncResult,
    responses={
        200: {
            "description": "Sync finished; per-message failures are counted, not raised",
            "content": {
                "application/json": {
                    "example": {
                        "imported_count": 12,
                        "skipped_count": 38,
                        "failed_count": 0,
                        "cancelled": False,
                    }
                }
            },
        },
        401: {"description": "Missing/invalid auth token or missing/rejected Google token"},
        502: {"description": "Gmail refused the message listing"},
    },
)
async def sync_emails(
    user_id: str = Depends(get_current_user),
    provider_token: Optional[str] = Depends(get_provider_token),
    store: EmailStore = Depends(get_email_store),
) -> SyncResult:
    """
    Mirror the user's most recent Gmail messages into the emails table.

    Messages already mirrored are skipped without being fetched, so calling
    this repeatedly only imports what is new.
    """
    session = ProviderSession(user_id=user_id, provider_token=provider_token)

    try:
        return await sync_mailbox(StaticSessionProvider(session), store=store)
    except (NoSessionError, NoProviderTokenError) as e:
        raise HTTPException(status_code=401, detail=str(e))
    except RemoteListError as e:
        if e.status_code == 401:
            # Google token expired or revoked: the user has to sign in again.
            raise HTTPException(status_code=401, detail="Google access token rejected")
        raise HTTPException(status_code=502, detail=str(e))


@router.get("/", response_model=List[EmailRecord])
async def list_emails(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user_id: str = Depends(get_current_user),
    store: EmailStore = Depends(get_email_store),
) -> List[EmailRecord]:
    """List the user's mirrored emails, newest first."""
    try:
        rows = store.list_for_user(user_id, limit=limit, offset=offset)
    except EmailStoreError as e:
        logger.error(f"Listing emails failed for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to load emails")
    return [EmailRecord(**row) for row in rows]


@router.get("/count", response_model=EmailCount)
async def count_emails(
    user_id: str = Depends(get_current_user),
    store: EmailStore = Depends(get_email_store),
) -> EmailCount:
    try:
        return EmailCount(count=store.count_for_user(user_id))
    except EmailStoreError as e:
        logger.error(f"Counting emails failed for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to count emails")


@router.get("/{email_id}", response_model=EmailRecord)
async def get_email(
    email_id: str,
    user_id: str = Depends(get_current_user),
    store: EmailStore = Depends(get_email_store),
) -> EmailRecord:
    """Return one mirrored email owned by the user."""
    try:
        row = store.get_for_user(user_id, email_id)
    except EmailStoreError as e:
        logger.error(f"Fetching email {email_id} failed: {e}")
        raise HTTPException(status_code=500, detail="Failed to load email")

    if row is None:
        raise HTTPException(status_code=404, detail="Email not found")
    return EmailRecord(**row)
