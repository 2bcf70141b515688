"""
Gmail REST API client.

Only the two read calls the mirror needs: list message ids (paginated) and
fetch one message in ``format=full``. The caller supplies the user's OAuth
bearer token on every call; the client holds no credentials.

Environment variables
---------------------
GMAIL_API_BASE          Base URL for the user's mailbox
                        (default: https://gmail.googleapis.com/gmail/v1/users/me).
GMAIL_TIMEOUT_SECONDS   Per-request timeout in seconds (default: 30).
"""

import logging
import os
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)

GMAIL_API_BASE = os.getenv(
    "GMAIL_API_BASE", "https://gmail.googleapis.com/gmail/v1/users/me"
)
GMAIL_TIMEOUT_SECONDS = float(os.getenv("GMAIL_TIMEOUT_SECONDS", "30"))

# Gmail rejects maxResults above 500 on messages.list.
_MAX_PAGE_SIZE = 500


class GmailAPIError(Exception):
    """
    A Gmail call did not succeed.

    status_code is the HTTP status for non-2xx responses, or None when the
    request never got a response (timeout, connection failure).
    """

    def __init__(self, status_code: Optional[int], message: str = "") -> None:
        self.status_code = status_code
        super().__init__(message or f"Gmail API error: {status_code}")


class GmailClient:
    """
    Async Gmail client built on httpx.

    Usage:
        async with GmailClient() as gmail:
            ids = await gmail.list_message_ids(token, max_results=50)
            message = await gmail.get_message(token, ids[0])
    """

    def __init__(
        self,
        base_url: str = GMAIL_API_BASE,
        timeout: float = GMAIL_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def __aenter__(self) -> "GmailClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # HTTP helper
    # ------------------------------------------------------------------

    async def _get(
        self,
        path: str,
        token: str,
        params: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            response = await self._client.get(
                url,
                params=params,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.TimeoutException as e:
            raise GmailAPIError(None, f"Gmail request timed out: {url}") from e
        except httpx.HTTPError as e:
            raise GmailAPIError(None, f"Gmail request failed: {e}") from e

        if not response.is_success:
            raise GmailAPIError(
                response.status_code,
                f"Gmail API error: {response.status_code} for {path}",
            )

        try:
            data = response.json()
        except ValueError as e:
            raise GmailAPIError(
                response.status_code, f"Gmail returned invalid JSON for {path}"
            ) from e

        if not isinstance(data, dict):
            raise GmailAPIError(
                response.status_code, f"Gmail returned a non-object body for {path}"
            )
        return data

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def list_message_ids(self, token: str, max_results: int = 50) -> list[str]:
        """
        Return up to ``max_results`` message ids, newest first.

        Follows nextPageToken until the cap is reached or Gmail has no more
        pages. Order is exactly Gmail's listing order.

        Raises:
            GmailAPIError: on any non-2xx page, transport failure or malformed
                listing body. Entries without a string id are skipped.
        """
        ids: list[str] = []
        page_token: Optional[str] = None

        while len(ids) < max_results:
            params: dict[str, Any] = {
                "maxResults": min(max_results - len(ids), _MAX_PAGE_SIZE)
            }
            if page_token:
                params["pageToken"] = page_token

            data = await self._get("messages", token, params=params)
            messages = data.get("messages") or []
            if not isinstance(messages, list):
                raise GmailAPIError(None, "Gmail returned a malformed message listing")
            ids.extend(
                m["id"] for m in messages
                if isinstance(m, dict) and isinstance(m.get("id"), str) and m["id"]
            )

            page_token = data.get("nextPageToken")
            if not page_token:
                break

        return ids[:max_results]

    async def get_message(self, token: str, message_id: str) -> dict[str, Any]:
        """
        Fetch a full message resource (headers, MIME tree, snippet, internalDate).

        Raises:
            GmailAPIError: on non-2xx or transport failure.
        """
        return await self._get(
            f"messages/{message_id}", token, params={"format": "full"}
        )
