"""
Unit tests for the Firestore access used by the beat projection.
"""

from unittest.mock import MagicMock, patch

import pytest

from beatwatch.db import firestore


@pytest.fixture(autouse=True)
def reset_state():
    firestore.reset_firestore_state()
    yield
    firestore.reset_firestore_state()


@pytest.fixture
def enabled_config(tmp_path):
    credentials = tmp_path / "gcp-credentials.json"
    credentials.write_text("{}")
    with patch("beatwatch.db.firestore.config") as mock_config:
        mock_config.ENABLE_FIRESTORE = True
        mock_config.GCP_CREDENTIALS_PATH = str(credentials)
        mock_config.GCP_PROJECT_ID = "beatwatch-test"
        mock_config.get_firestore_database.return_value = "beatwatch-dev"
        yield mock_config


def _readable_client():
    client = MagicMock()
    client.collection.return_value.limit.return_value.stream.return_value = iter([])
    return client


class TestCheckBeatsReadable:
    """Reading one beat document within the timeout."""

    def test_reads_beats_collection(self):
        client = _readable_client()

        assert firestore.check_beats_readable(client, timeout=1.0) is True
        client.collection.assert_called_once_with("beats")
        client.collection.return_value.limit.assert_called_once_with(1)

    def test_read_error(self):
        client = MagicMock()
        client.collection.return_value.limit.return_value.stream.side_effect = RuntimeError("permission denied")

        assert firestore.check_beats_readable(client, timeout=1.0) is False


class TestGetFirestoreClient:
    """Client creation degrades to None instead of failing."""

    @patch("beatwatch.db.firestore.config")
    def test_disabled(self, mock_config):
        mock_config.ENABLE_FIRESTORE = False

        assert firestore.get_firestore_client() is None
        assert firestore.firestore_available() is False

    @patch("beatwatch.db.firestore.config")
    def test_missing_credentials(self, mock_config, tmp_path):
        mock_config.ENABLE_FIRESTORE = True
        mock_config.GCP_CREDENTIALS_PATH = str(tmp_path / "missing.json")

        assert firestore.get_firestore_client() is None
        assert firestore.firestore_available() is False

    def test_connects_once_with_service_account(self, enabled_config):
        client = _readable_client()
        with patch("google.cloud.firestore.Client") as mock_client_cls:
            mock_client_cls.from_service_account_json.return_value = client

            assert firestore.get_firestore_client() is client
            assert firestore.get_firestore_client() is client
            assert firestore.firestore_available() is True

        mock_client_cls.from_service_account_json.assert_called_once_with(
            enabled_config.GCP_CREDENTIALS_PATH,
            project="beatwatch-test",
            database="beatwatch-dev",
        )

    def test_unreadable_beats_is_not_retried(self, enabled_config):
        client = MagicMock()
        client.collection.return_value.limit.return_value.stream.side_effect = RuntimeError("denied")
        with patch("google.cloud.firestore.Client") as mock_client_cls:
            mock_client_cls.from_service_account_json.return_value = client

            assert firestore.get_firestore_client() is None
            assert firestore.get_firestore_client() is None

        assert mock_client_cls.from_service_account_json.call_count == 1

    def test_reset_allows_reconnect(self, enabled_config):
        with patch("google.cloud.firestore.Client") as mock_client_cls:
            mock_client_cls.from_service_account_json.side_effect = [RuntimeError("offline"), _readable_client()]

            assert firestore.get_firestore_client() is None
            firestore.reset_firestore_state()
            assert firestore.get_firestore_client() is not None
