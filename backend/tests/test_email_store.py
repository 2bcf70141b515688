"""
Unit tests for the Supabase-backed email store.
The Supabase client is a MagicMock; no real DB calls.
"""

import os
import pytest
from unittest.mock import MagicMock, Mock, patch

# Mock environment variables before importing app modules
os.environ.setdefault('SUPABASE_URL', 'https://test.supabase.co')
os.environ.setdefault('SUPABASE_KEY', 'test-anon.key.sig')
os.environ.setdefault('SUPABASE_SERVICE_KEY', 'test-service.key.sig')

from app.models.email import MirroredEmail
from app.services.email_store import EmailStore, EmailStoreError


def _record(**overrides) -> MirroredEmail:
    data = {
        "user_id": "user-123",
        "message_id": "msg-1",
        "from_name": "Jane Doe",
        "from_email": "jane@example.com",
        "to_email": "me@example.com",
        "subject": "Hello",
        "body_text": "Hi",
        "body_html": "<p>Hi</p>",
        "snippet": "Hi",
        "received_at": "2023-11-14T22:13:20+00:00",
    }
    data.update(overrides)
    return MirroredEmail(**data)


@pytest.fixture()
def client():
    return MagicMock()


class TestConstruction:

    def test_missing_admin_client_raises(self):
        with patch("app.db.supabase_admin", None):
            with pytest.raises(ValueError) as exc_info:
                EmailStore()

        assert "SUPABASE_SERVICE_KEY" in str(exc_info.value)


class TestExists:
    """Test the (user_id, message_id) existence check."""

    def test_returns_true_when_row_found(self, client):
        query = client.table.return_value.select.return_value.eq.return_value.eq.return_value
        query.limit.return_value.execute.return_value = Mock(data=[{"id": "row-1"}])

        assert EmailStore(client).exists("user-123", "msg-1") is True

        client.table.assert_called_once_with("emails")
        client.table.return_value.select.assert_called_once_with("id")
        client.table.return_value.select.return_value.eq.assert_called_once_with("user_id", "user-123")
        client.table.return_value.select.return_value.eq.return_value.eq.assert_called_once_with(
            "message_id", "msg-1"
        )

    def test_returns_false_when_no_row(self, client):
        query = client.table.return_value.select.return_value.eq.return_value.eq.return_value
        query.limit.return_value.execute.return_value = Mock(data=[])

        assert EmailStore(client).exists("user-123", "msg-1") is False

    def test_query_failure_raises_store_error(self, client):
        query = client.table.return_value.select.return_value.eq.return_value.eq.return_value
        query.limit.return_value.execute.side_effect = Exception("connection reset")

        with pytest.raises(EmailStoreError) as exc_info:
            EmailStore(client).exists("user-123", "msg-1")

        assert "connection reset" in str(exc_info.value)


class TestUpsert:
    """Test writes keyed on (user_id, message_id)."""

    def test_upserts_on_user_and_message_id(self, client):
        stored = {"id": "row-1", **_record().model_dump()}
        client.table.return_value.upsert.return_value.execute.return_value = Mock(data=[stored])

        result = EmailStore(client).upsert(_record())

        assert result == stored
        args, kwargs = client.table.return_value.upsert.call_args
        assert args[0]["message_id"] == "msg-1"
        assert args[0]["user_id"] == "user-123"
        assert kwargs["on_conflict"] == "user_id,message_id"

    def test_write_failure_raises_store_error(self, client):
        client.table.return_value.upsert.return_value.execute.side_effect = Exception("RLS violation")

        with pytest.raises(EmailStoreError) as exc_info:
            EmailStore(client).upsert(_record())

        assert "msg-1" in str(exc_info.value)

    def test_empty_response_raises_store_error(self, client):
        client.table.return_value.upsert.return_value.execute.return_value = Mock(data=[])

        with pytest.raises(EmailStoreError):
            EmailStore(client).upsert(_record())

    def test_custom_table_name(self, client):
        client.table.return_value.upsert.return_value.execute.return_value = Mock(data=[{"id": "x"}])

        EmailStore(client, table="mirrored_emails").upsert(_record())

        client.table.assert_called_once_with("mirrored_emails")


class TestReadSide:
    """Test list / get / count queries."""

    def test_list_orders_newest_first_with_range(self, client):
        chain = client.table.return_value.select.return_value.eq.return_value.order.return_value
        chain.range.return_value.execute.return_value = Mock(data=[{"id": "a"}, {"id": "b"}])

        rows = EmailStore(client).list_for_user("user-123", limit=10, offset=20)

        assert rows == [{"id": "a"}, {"id": "b"}]
        client.table.return_value.select.return_value.eq.return_value.order.assert_called_once_with(
            "received_at", desc=True
        )
        chain.range.assert_called_once_with(20, 29)

    def test_get_returns_none_when_missing(self, client):
        chain = client.table.return_value.select.return_value.eq.return_value.eq.return_value
        chain.limit.return_value.execute.return_value = Mock(data=[])

        assert EmailStore(client).get_for_user("user-123", "row-9") is None

    def test_get_returns_row(self, client):
        chain = client.table.return_value.select.return_value.eq.return_value.eq.return_value
        chain.limit.return_value.execute.return_value = Mock(data=[{"id": "row-1"}])

        assert EmailStore(client).get_for_user("user-123", "row-1") == {"id": "row-1"}

    def test_count_uses_exact_count(self, client):
        client.table.return_value.select.return_value.eq.return_value.execute.return_value = Mock(
            data=[], count=7
        )

        assert EmailStore(client).count_for_user("user-123") == 7
        client.table.return_value.select.assert_called_once_with("id", count="exact")
