"""
Mailbox sync orchestrator.

Mirrors the most recent Gmail messages of one user into the emails table:

  session -> list ids -> for each id: exists? -> fetch -> headers + bodies -> upsert

Failure policy
--------------
Fatal (raised to the caller, nothing imported):
  NoSessionError        no active session
  NoProviderTokenError  session has no Google bearer token
  RemoteListError       the listing call failed (carries the HTTP status)

Per message (counted as failed, logged, batch continues):
  detail fetch failure, malformed message resource, storage errors.

Per body part (logged by the MIME decoder, slot left empty):
  undecodable base64url payload.

Already-mirrored messages are counted as skipped and never fetched.

Concurrency
-----------
With concurrency=1 (the default) candidates are processed one at a time in
listing order. With concurrency > 1 a bounded pool of asyncio workers pulls
ids from the listing in order; a given id's existence check and write always
run inside the same worker. Counters are only touched on the event loop.

Environment variables
---------------------
SYNC_MAX_RESULTS   Number of most-recent messages considered per sync (default: 50).
SYNC_CONCURRENCY   Worker count, clamped to 1..8 (default: 1).
"""

import asyncio
import logging
import os
from typing import Iterator, Optional, Protocol

from pydantic import ValidationError

from app.models.email import MessageEnvelope, MirroredEmail, ProviderSession, SyncResult
from app.services.email_store import EmailStore, EmailStoreError
from app.services.gmail_client import GmailAPIError, GmailClient
from app.services.header_parser import get_header, internal_date_to_iso, parse_from_header
from app.services.mime_decoder import extract_bodies

logger = logging.getLogger(__name__)

SYNC_MAX_RESULTS = int(os.getenv("SYNC_MAX_RESULTS", "50"))
SYNC_CONCURRENCY = int(os.getenv("SYNC_CONCURRENCY", "1"))
MAX_CONCURRENCY = 8

DEFAULT_SUBJECT = "(No subject)"

_IMPORTED = "imported"
_SKIPPED = "skipped"
_FAILED = "failed"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class SyncError(Exception):
    """Base class for errors that abort a whole sync."""


class NoSessionError(SyncError):
    def __init__(self) -> None:
        super().__init__("No active session found")


class NoProviderTokenError(SyncError):
    def __init__(self) -> None:
        super().__init__("No Google access token found for the session")


class RemoteListError(SyncError):
    def __init__(self, status_code: Optional[int]) -> None:
        self.status_code = status_code
        super().__init__(f"Gmail API error while listing messages: {status_code}")


# ---------------------------------------------------------------------------
# Session providers
# ---------------------------------------------------------------------------

class SessionProvider(Protocol):
    async def get_current_session(self) -> Optional[ProviderSession]:
        ...


class StaticSessionProvider:
    """Session provider for a session that is already known (e.g. from a request)."""

    def __init__(self, session: Optional[ProviderSession]) -> None:
        self._session = session

    async def get_current_session(self) -> Optional[ProviderSession]:
        return self._session


# ---------------------------------------------------------------------------
# Record assembly
# ---------------------------------------------------------------------------

def build_mirrored_email(user_id: str, envelope: MessageEnvelope) -> MirroredEmail:
    """Turn a fetched message envelope into the row written to the emails table."""
    subject = get_header(envelope.headers, "subject") or DEFAULT_SUBJECT
    sender = parse_from_header(get_header(envelope.headers, "from"))
    body_text, body_html = extract_bodies(envelope.body)

    return MirroredEmail(
        user_id=user_id,
        message_id=envelope.id,
        from_name=sender.name,
        from_email=sender.address,
        to_email=get_header(envelope.headers, "to"),
        subject=subject,
        body_text=body_text,
        body_html=body_html,
        snippet=envelope.snippet,
        received_at=internal_date_to_iso(envelope.internal_date),
    )


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class EmailSyncService:
    """
    Syncs one user's mailbox.

    Collaborators are injected: a session provider, a Gmail client and an
    email store. Holds no state between sync() calls.
    """

    def __init__(
        self,
        session_provider: SessionProvider,
        gmail: GmailClient,
        store: EmailStore,
        max_results: int = SYNC_MAX_RESULTS,
        concurrency: int = SYNC_CONCURRENCY,
    ) -> None:
        self.session_provider = session_provider
        self.gmail = gmail
        self.store = store
        self.max_results = max_results
        self.concurrency = max(1, min(concurrency, MAX_CONCURRENCY))

    async def sync(self, cancel_event: Optional[asyncio.Event] = None) -> SyncResult:
        """
        Run one sync.

        Args:
            cancel_event: when set, no further candidate is started and the
                partial result is returned with cancelled=True.

        Returns:
            SyncResult with imported / skipped / failed counts.

        Raises:
            NoSessionError, NoProviderTokenError, RemoteListError
        """
        session = await self._acquire_session()
        token = session.provider_token or ""

        logger.info(
            f"Starting mailbox sync for user {session.user_id} "
            f"(max_results={self.max_results}, concurrency={self.concurrency})"
        )

        try:
            listed = await self.gmail.list_message_ids(token, self.max_results)
        except GmailAPIError as e:
            logger.error(f"Listing messages failed for user {session.user_id}: {e}")
            raise RemoteListError(e.status_code) from e

        # Gmail never repeats an id in one listing, but the pool relies on it.
        candidates = list(dict.fromkeys(listed))
        pending = iter(candidates)
        result = SyncResult()

        await asyncio.gather(
            *(
                self._worker(session, token, pending, result, cancel_event)
                for _ in range(self.concurrency)
            )
        )

        processed = result.imported_count + result.skipped_count + result.failed_count
        result.cancelled = processed < len(candidates)

        logger.info(
            f"Mailbox sync for user {session.user_id} finished: "
            f"{result.imported_count} imported, {result.skipped_count} skipped, "
            f"{result.failed_count} failed"
            + (" (cancelled)" if result.cancelled else "")
        )
        return result

    async def _acquire_session(self) -> ProviderSession:
        session = await self.session_provider.get_current_session()
        if session is None:
            raise NoSessionError()
        if not session.provider_token:
            raise NoProviderTokenError()
        return session

    async def _worker(
        self,
        session: ProviderSession,
        token: str,
        pending: Iterator[str],
        result: SyncResult,
        cancel_event: Optional[asyncio.Event],
    ) -> None:
        while True:
            if cancel_event is not None and cancel_event.is_set():
                return
            message_id = next(pending, None)
            if message_id is None:
                return

            outcome = await self._process_message(session, token, message_id)
            if outcome == _IMPORTED:
                result.imported_count += 1
            elif outcome == _SKIPPED:
                result.skipped_count += 1
            else:
                result.failed_count += 1

    async def _process_message(
        self, session: ProviderSession, token: str, message_id: str
    ) -> str:
        user_id = session.user_id

        try:
            if await asyncio.to_thread(self.store.exists, user_id, message_id):
                logger.debug(f"Email {message_id} already mirrored, skipping")
                return _SKIPPED
        except EmailStoreError as e:
            logger.error(f"Existence check failed for email {message_id}: {e}")
            return _FAILED

        try:
            raw = await self.gmail.get_message(token, message_id)
        except GmailAPIError as e:
            logger.warning(f"Could not fetch email {message_id}: {e.status_code} ({e})")
            return _FAILED

        try:
            envelope = MessageEnvelope.from_gmail(raw)
            record = build_mirrored_email(user_id, envelope)
        except (KeyError, TypeError, AttributeError, ValidationError, RecursionError) as e:
            logger.warning(f"Malformed message resource for email {message_id}: {e}")
            return _FAILED

        try:
            await asyncio.to_thread(self.store.upsert, record)
        except EmailStoreError as e:
            logger.error(f"Failed to save email {message_id}: {e}")
            return _FAILED

        return _IMPORTED


async def sync_mailbox(
    session_provider: SessionProvider,
    store: Optional[EmailStore] = None,
    max_results: int = SYNC_MAX_RESULTS,
    concurrency: int = SYNC_CONCURRENCY,
    cancel_event: Optional[asyncio.Event] = None,
) -> SyncResult:
    """Run a sync with a fresh Gmail client and the default email store."""
    async with GmailClient() as gmail:
        service = EmailSyncService(
            session_provider,
            gmail,
            store or EmailStore(),
            max_results=max_results,
            concurrency=concurrency,
        )
        return await service.sync(cancel_event)
