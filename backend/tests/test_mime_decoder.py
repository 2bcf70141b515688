"""
Unit tests for the MIME body decoder.
Tests base64url decoding, tree traversal order, first-wins and per-part failures.
"""

import base64

import pytest

from app.models.email import BodyPart
from app.services.mime_decoder import DecodeError, decode_base64url, extract_bodies


def _b64url(text: str) -> str:
    """Encode text the way Gmail does: URL-safe alphabet, no padding."""
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode().rstrip("=")


def _part(mime_type: str, text: str | None = None, children: list | None = None) -> dict:
    """Build a raw Gmail part dict."""
    raw: dict = {"mimeType": mime_type, "body": {"size": 0}}
    if text is not None:
        raw["body"] = {"data": _b64url(text), "size": len(text)}
    if children is not None:
        raw["parts"] = children
    return raw


class TestDecodeBase64Url:
    """Test the URL-safe base64 decoder."""

    def test_decodes_padded_payload(self):
        assert decode_base64url("SGVsbG8=") == "Hello"

    def test_decodes_unpadded_payload(self):
        """Gmail omits padding; it must be restored."""
        assert decode_base64url("SGVsbG8") == "Hello"

    def test_decodes_url_safe_alphabet(self):
        """'-' and '_' stand in for '+' and '/'."""
        # "?>?" encodes to "Pz4/" in the standard alphabet
        assert decode_base64url("Pz4_") == "?>?"

    def test_decodes_utf8(self):
        assert decode_base64url(_b64url("Hei på deg, blåbær")) == "Hei på deg, blåbær"

    def test_empty_string_decodes_to_empty(self):
        assert decode_base64url("") == ""

    def test_invalid_characters_raise_decode_error(self):
        with pytest.raises(DecodeError):
            decode_base64url("SGVs*bG8=")

    def test_impossible_length_raises_decode_error(self):
        """A single leftover character can never be valid base64."""
        with pytest.raises(DecodeError):
            decode_base64url("SGVsb")

    def test_invalid_utf8_is_replaced_not_raised(self):
        encoded = base64.urlsafe_b64encode(b"caf\xe9").decode()
        assert decode_base64url(encoded) == "caf\ufffd"


class TestExtractBodies:
    """Test traversal of the BodyPart tree."""

    def test_single_part_plain_text_root(self):
        root = BodyPart.from_gmail({"mimeType": "text/plain", "body": {"data": "SGVsbG8="}})

        assert extract_bodies(root) == ("Hello", "")

    def test_single_part_html_root(self):
        root = BodyPart.from_gmail(_part("text/html", "<p>Hi</p>"))

        assert extract_bodies(root) == ("", "<p>Hi</p>")

    def test_nested_multipart_alternative(self):
        root = BodyPart.from_gmail({
            "mimeType": "multipart/mixed",
            "parts": [
                {
                    "mimeType": "multipart/alternative",
                    "parts": [
                        {"mimeType": "text/plain", "body": {"data": "QQ=="}},
                        {"mimeType": "text/html", "body": {"data": "PGI+QjwvYj4="}},
                    ],
                }
            ],
        })

        assert extract_bodies(root) == ("A", "<b>B</b>")

    def test_first_plain_text_sibling_wins(self):
        root = BodyPart.from_gmail(_part("multipart/mixed", children=[
            _part("text/plain", "first"),
            _part("text/plain", "second"),
        ]))

        plain, html = extract_bodies(root)

        assert plain == "first"
        assert html == ""

    def test_earlier_nested_part_beats_later_sibling(self):
        """Depth-first pre-order: a deeper part that comes first in the document wins."""
        root = BodyPart.from_gmail(_part("multipart/mixed", children=[
            _part("multipart/alternative", children=[
                _part("text/html", "<p>deep</p>"),
            ]),
            _part("text/html", "<p>shallow</p>"),
        ]))

        assert extract_bodies(root) == ("", "<p>deep</p>")

    def test_broken_html_part_does_not_hide_plain_text(self):
        root = BodyPart.from_gmail({
            "mimeType": "multipart/alternative",
            "parts": [
                {"mimeType": "text/html", "body": {"data": "!!!not base64!!!"}},
                {"mimeType": "text/plain", "body": {"data": _b64url("fallback")}},
            ],
        })

        assert extract_bodies(root) == ("fallback", "")

    def test_broken_part_leaves_slot_open_for_later_part(self):
        root = BodyPart.from_gmail({
            "mimeType": "multipart/mixed",
            "parts": [
                {"mimeType": "text/plain", "body": {"data": "***"}},
                {"mimeType": "text/plain", "body": {"data": _b64url("second")}},
            ],
        })

        assert extract_bodies(root) == ("second", "")

    def test_unknown_mime_types_are_ignored(self):
        root = BodyPart.from_gmail(_part("multipart/mixed", children=[
            _part("application/pdf", "%PDF-1.4"),
            _part("image/png", "png bytes"),
            _part("text/plain", "body"),
        ]))

        assert extract_bodies(root) == ("body", "")

    def test_empty_children_yield_no_bodies(self):
        root = BodyPart(mime_type="multipart/mixed", children=[])

        assert extract_bodies(root) == ("", "")

    def test_text_part_without_payload_is_skipped(self):
        """An attachment-style text/plain part (no inline data) contributes nothing."""
        root = BodyPart.from_gmail(_part("multipart/mixed", children=[
            {"mimeType": "text/plain", "body": {"attachmentId": "att-1", "size": 120}},
            _part("text/plain", "inline"),
        ]))

        assert extract_bodies(root) == ("inline", "")

    def test_root_with_unknown_type_and_payload_yields_nothing(self):
        root = BodyPart.from_gmail(_part("application/json", '{"a": 1}'))

        assert extract_bodies(root) == ("", "")

    def test_deeply_nested_tree_is_walked_without_recursion_limit(self):
        raw = _part("text/html", "<p>bottom</p>")
        for _ in range(5000):
            raw = _part("multipart/mixed", children=[raw])
        raw["parts"].append(_part("text/plain", "after"))

        root = BodyPart.from_gmail(raw)

        assert root.children[0].mime_type == "multipart/mixed"
        assert extract_bodies(root) == ("after", "<p>bottom</p>")

    def test_from_gmail_keeps_children_in_document_order(self):
        root = BodyPart.from_gmail(_part("multipart/mixed", children=[
            _part("text/plain", "one"),
            _part("multipart/alternative", children=[_part("text/html", "<p>two</p>")]),
            _part("image/png", "three"),
        ]))

        assert [c.mime_type for c in root.children] == [
            "text/plain", "multipart/alternative", "image/png",
        ]
        assert root.children[1].children[0].mime_type == "text/html"
