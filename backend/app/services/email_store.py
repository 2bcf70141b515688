"""
Supabase persistence for mirrored emails.

All queries are scoped by user_id. The table has a unique constraint on
(user_id, message_id); writes upsert on that pair so a retried sync never
creates a duplicate row.
"""

import logging
import os
from typing import Any, Optional

from app.models.email import MirroredEmail

logger = logging.getLogger(__name__)

EMAILS_TABLE = os.getenv("EMAILS_TABLE", "emails")


class EmailStoreError(Exception):
    """A query or write against the emails table failed."""


class EmailStore:
    """
    Thin wrapper over the Supabase admin client for the emails table.

    The client is injected so tests (and alternative deployments) can pass a
    fake; when omitted, the shared admin client from app.db is used.
    """

    def __init__(self, client: Any = None, table: str = EMAILS_TABLE) -> None:
        if client is None:
            from app.db import supabase_admin
            client = supabase_admin
        if client is None:
            raise ValueError("SUPABASE_SERVICE_KEY is required for email storage")
        self._client = client
        self.table = table

    def exists(self, user_id: str, message_id: str) -> bool:
        """Return True if (user_id, message_id) is already mirrored."""
        try:
            result = (
                self._client.table(self.table)
                .select("id")
                .eq("user_id", user_id)
                .eq("message_id", message_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise EmailStoreError(f"Failed to look up email {message_id}: {e}") from e
        return bool(result.data)

    def upsert(self, record: MirroredEmail) -> dict:
        """
        Insert or update a mirrored email keyed on (user_id, message_id).

        Returns:
            The stored row.

        Raises:
            EmailStoreError: if the write fails or returns no row.
        """
        try:
            result = (
                self._client.table(self.table)
                .upsert(record.model_dump(), on_conflict="user_id,message_id")
                .execute()
            )
        except Exception as e:
            raise EmailStoreError(
                f"Failed to save email {record.message_id}: {e}"
            ) from e

        if not result.data:
            raise EmailStoreError(f"No row returned when saving email {record.message_id}")
        return result.data[0]

    # ------------------------------------------------------------------
    # Read side (inbox list / detail / profile count)
    # ------------------------------------------------------------------

    def list_for_user(self, user_id: str, limit: int = 50, offset: int = 0) -> list[dict]:
        """Return the user's emails, newest first."""
        try:
            result = (
                self._client.table(self.table)
                .select("*")
                .eq("user_id", user_id)
                .order("received_at", desc=True)
                .range(offset, offset + limit - 1)
                .execute()
            )
        except Exception as e:
            raise EmailStoreError(f"Failed to list emails: {e}") from e
        return result.data or []

    def get_for_user(self, user_id: str, email_id: str) -> Optional[dict]:
        try:
            result = (
                self._client.table(self.table)
                .select("*")
                .eq("id", email_id)
                .eq("user_id", user_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise EmailStoreError(f"Failed to fetch email {email_id}: {e}") from e
        return result.data[0] if result.data else None

    def count_for_user(self, user_id: str) -> int:
        try:
            result = (
                self._client.table(self.table)
                .select("id", count="exact")
                .eq("user_id", user_id)
                .execute()
            )
        except Exception as e:
            raise EmailStoreError(f"Failed to count emails: {e}") from e
        return result.count or 0
