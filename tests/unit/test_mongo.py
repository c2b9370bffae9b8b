"""
Unit tests for the MongoDB client lifecycle.

Tests cover:
  - Successful connection and ping
  - Authentication options
  - Retry with backoff on connection failure
  - Authentication failure handling
"""

from unittest.mock import MagicMock, patch

import pytest
from pymongo.errors import ConnectionFailure, OperationFailure

from crawl_sink.core.exceptions import ConfigUnset, StoreUnavailable
from crawl_sink.domain.models import MongoParameters
from crawl_sink.infrastructure.db.mongo import close_mongo, connect_to_mongo


class TestConnectToMongo:
    """Tests for connect_to_mongo()."""

    @patch("crawl_sink.infrastructure.db.mongo.MongoClient")
    def test_successful_connect(self, mock_client_cls, parameters):
        """Should build the client for host:port and ping it."""
        client = connect_to_mongo(parameters)

        assert client is mock_client_cls.return_value
        args, kwargs = mock_client_cls.call_args
        assert args == ("localhost", 27017)
        assert kwargs["serverSelectionTimeoutMS"] == 5000
        assert "username" not in kwargs
        client.admin.command.assert_called_once_with("ping")

    @patch("crawl_sink.infrastructure.db.mongo.MongoClient")
    def test_passes_credentials_when_user_set(self, mock_client_cls, parameters):
        """Should authenticate against the target database."""
        params = parameters.with_options(user="writer", password="s3cret")

        connect_to_mongo(params)

        kwargs = mock_client_cls.call_args.kwargs
        assert kwargs["username"] == "writer"
        assert kwargs["password"] == "s3cret"
        assert kwargs["authSource"] == "crawl"

    @patch("crawl_sink.infrastructure.db.mongo.time.sleep")
    @patch("crawl_sink.infrastructure.db.mongo.MongoClient")
    def test_retries_with_backoff(self, mock_client_cls, mock_sleep, parameters):
        """Should retry connection failures with doubling delays."""
        mock_client_cls.return_value.admin.command.side_effect = [
            ConnectionFailure("down"),
            ConnectionFailure("still down"),
            {"ok": 1},
        ]

        client = connect_to_mongo(parameters, max_retries=3, base_delay=0.5)

        assert client is mock_client_cls.return_value
        assert [c.args[0] for c in mock_sleep.call_args_list] == [0.5, 1.0]

    @patch("crawl_sink.infrastructure.db.mongo.time.sleep")
    @patch("crawl_sink.infrastructure.db.mongo.MongoClient")
    def test_exhausted_retries_raise_store_unavailable(
        self, mock_client_cls, mock_sleep, parameters
    ):
        """Should give up after max_retries and close each client."""
        mock_client_cls.return_value.admin.command.side_effect = ConnectionFailure("down")

        with pytest.raises(StoreUnavailable) as exc_info:
            connect_to_mongo(parameters, max_retries=2, base_delay=0.1)

        assert "after 2 attempts" in exc_info.value.reason
        assert mock_client_cls.call_count == 2
        assert mock_client_cls.return_value.close.call_count == 2

    @patch("crawl_sink.infrastructure.db.mongo.MongoClient")
    def test_auth_failure_closes_client(self, mock_client_cls, parameters, caplog):
        """Should log at critical, close and not retry on auth failure."""
        mock_client_cls.return_value.admin.command.side_effect = OperationFailure(
            "Authentication failed."
        )
        params = parameters.with_options(user="writer", password="wrong")

        with pytest.raises(StoreUnavailable) as exc_info:
            connect_to_mongo(params, max_retries=3)

        assert exc_info.value.reason == "authentication failed"
        assert mock_client_cls.call_count == 1
        mock_client_cls.return_value.close.assert_called_once()
        assert any(r.levelname == "CRITICAL" for r in caplog.records)

    def test_unset_host_raises_config_unset(self):
        """Should refuse to connect without a host."""
        with pytest.raises(ConfigUnset):
            connect_to_mongo(MongoParameters(database="crawl", collection="pages"))


class TestCloseMongo:
    """Tests for close_mongo()."""

    def test_none_is_ignored(self):
        close_mongo(None)

    def test_close_failure_is_logged(self, caplog):
        client = MagicMock()
        client.close.side_effect = RuntimeError("boom")

        close_mongo(client)

        assert "Exception in closing MongoDB client" in caplog.text
