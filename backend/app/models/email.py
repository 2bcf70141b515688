"""
Pydantic models for mailbox mirroring.

Models:
  BodyPart        — one node of a message's MIME tree, decoded from Gmail JSON
  MessageHeader   — a single (name, value) header pair
  MessageEnvelope — the subset of a Gmail message resource the sync consumes
  ProviderSession — the acting user plus their Google bearer token
  MirroredEmail   — the record written to the emails table
  EmailRecord     — a row read back from the emails table
  SyncResult      — counters returned by a sync run
"""

from typing import Any, Optional
from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Remote message envelope (Gmail wire shape -> domain types)
# ---------------------------------------------------------------------------

class BodyPart(BaseModel):
    """
    A node in a message's MIME tree.

    payload is the raw URL-safe base64 text exactly as Gmail sends it; the
    MIME decoder is responsible for turning it into text.
    """

    mime_type: str = ""
    payload: Optional[str] = None
    children: list["BodyPart"] = Field(default_factory=list)

    @classmethod
    def from_gmail(cls, raw: dict[str, Any]) -> "BodyPart":
        """
        Build a BodyPart tree from a Gmail ``payload`` / ``parts[]`` entry.

        Gmail uses ``mimeType``, ``body.data`` and ``parts``. Any of them may be
        missing; an empty ``body.data`` is treated as no payload.

        Built with an explicit stack so nesting depth is bounded by memory,
        not by the interpreter's recursion limit.
        """
        root = cls._node(raw)
        stack = [(root, raw)]
        while stack:
            node, source = stack.pop()
            for child_raw in source.get("parts") or []:
                child = cls._node(child_raw)
                node.children.append(child)
                stack.append((child, child_raw))
        return root

    @classmethod
    def _node(cls, raw: dict[str, Any]) -> "BodyPart":
        body = raw.get("body") or {}
        return cls(mime_type=raw.get("mimeType") or "", payload=body.get("data") or None)


class MessageHeader(BaseModel):
    name: str
    value: str = ""


class MessageEnvelope(BaseModel):
    """The parts of a Gmail message resource (format=full) used by the sync."""

    id: str
    snippet: str = ""
    internal_date: Optional[str] = None
    headers: list[MessageHeader] = Field(default_factory=list)
    body: BodyPart = Field(default_factory=BodyPart)

    @classmethod
    def from_gmail(cls, raw: dict[str, Any]) -> "MessageEnvelope":
        payload = raw.get("payload") or {}
        internal_date = raw.get("internalDate")
        return cls(
            id=raw["id"],
            snippet=raw.get("snippet") or "",
            internal_date=str(internal_date) if internal_date is not None else None,
            headers=[
                MessageHeader(name=h.get("name", ""), value=h.get("value") or "")
                for h in payload.get("headers") or []
            ],
            body=BodyPart.from_gmail(payload),
        )


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

class ProviderSession(BaseModel):
    """An authenticated user and the OAuth token issued by their mail provider."""

    user_id: str
    provider_token: Optional[str] = None


# ---------------------------------------------------------------------------
# Mirrored records
# ---------------------------------------------------------------------------

class MirroredEmail(BaseModel):
    """
    A decoded message ready to be written to the emails table.

    (user_id, message_id) is unique; the sync never writes the same pair twice.
    """

    user_id: str
    message_id: str
    from_name: str = ""
    from_email: str
    to_email: str = ""
    subject: str
    body_text: str = ""
    body_html: str = ""
    snippet: str = ""
    received_at: str


class EmailRecord(MirroredEmail):
    """Full emails row from the database."""
    model_config = {"from_attributes": True}

    id: str
    created_at: Optional[str] = None


class EmailCount(BaseModel):
    count: int


class SyncResult(BaseModel):
    """Outcome of a single sync run."""

    imported_count: int = 0
    skipped_count: int = 0
    failed_count: int = 0
    # Set when the run was stopped before every candidate was processed.
    cancelled: bool = False
