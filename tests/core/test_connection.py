from unittest.mock import patch

import pytest
from pymongo.errors import ConfigurationError, ServerSelectionTimeoutError

from gsmt.core.connection import SourceConnection, SourceConnectionError


@pytest.fixture
def mock_client():
    with patch("gsmt.core.connection.MongoClient") as mock:
        yield mock


def test_open_uses_uri_database(mock_client):
    connection = SourceConnection("mongodb://localhost/app").open()

    client = mock_client.return_value
    client.admin.command.assert_called_once_with("ping")
    assert connection.db is client.get_default_database.return_value
    assert connection.is_open


def test_open_uses_explicit_database(mock_client):
    connection = SourceConnection("mongodb://localhost/app", db_name="other").open()

    client = mock_client.return_value
    client.__getitem__.assert_called_once_with("other")
    assert connection.db is client.__getitem__.return_value


def test_open_unreachable_server(mock_client):
    mock_client.return_value.admin.command.side_effect = ServerSelectionTimeoutError("timeout")
    connection = SourceConnection("mongodb://nowhere/app")

    with pytest.raises(SourceConnectionError, match="timeout"):
        connection.open()
    assert not connection.is_open
    mock_client.return_value.close.assert_called_once()


def test_open_without_database_name(mock_client):
    client = mock_client.return_value
    client.get_default_database.side_effect = ConfigurationError("No default database")

    with pytest.raises(SourceConnectionError):
        SourceConnection("mongodb://localhost").open()
    client.close.assert_called_once()


def test_db_requires_open_connection():
    with pytest.raises(SourceConnectionError):
        SourceConnection("mongodb://localhost/app").db


def test_context_manager_closes(mock_client):
    with SourceConnection("mongodb://localhost/app") as connection:
        assert connection.is_open

    mock_client.return_value.close.assert_called_once()
    assert not connection.is_open
    connection.close()
    mock_client.return_value.close.assert_called_once()


def test_context_manager_closes_on_error(mock_client):
    with pytest.raises(RuntimeError):
        with SourceConnection("mongodb://localhost/app"):
            raise RuntimeError("boom")

    mock_client.return_value.close.assert_called_once()
