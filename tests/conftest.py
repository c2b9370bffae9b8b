"""
Shared test fixtures for the crawl sink test suite.

Provides:
  - A populated MongoParameters bundle
  - Mock MongoDB client/collection fixtures
  - A patched writer connection so no live database is needed
  - A factory for in-memory crawl records
"""

from unittest.mock import MagicMock, patch

import pytest

from crawl_sink.domain.models import MongoParameters
from crawl_sink.domain.recording import CrawlRecord, MemoryRecorder

HTML_RESPONSE = (
    b"HTTP/1.1 200 OK\r\nContent-Type: text/html\r\n\r\n"
    b"<!DOCTYPE html><html><body><p>hi</p></body></html>"
)
GET_REQUEST = b"GET / HTTP/1.1\r\nHost: example.com\r\n\r\n"


@pytest.fixture
def parameters() -> MongoParameters:
    """Parameters pointing at a (mocked) local MongoDB."""
    return MongoParameters(host="localhost", database="crawl", collection="pages")


@pytest.fixture
def mock_collection():
    """A MagicMock standing in for a pymongo Collection."""
    collection = MagicMock()
    collection.insert_one = MagicMock(return_value=MagicMock(inserted_id="oid"))
    return collection


@pytest.fixture
def mock_client(mock_collection):
    """A MagicMock MongoClient whose client[db][coll] is ``mock_collection``."""
    client = MagicMock()
    client.__getitem__.return_value.__getitem__.return_value = mock_collection
    return client


@pytest.fixture
def patched_connect(mock_client):
    """Patch the writer's connection so every writer gets ``mock_client``."""
    with patch(
        "crawl_sink.infrastructure.db.writer.connect_to_mongo",
        return_value=mock_client,
    ) as mock_connect:
        yield mock_connect


@pytest.fixture
def make_record():
    """Build a CrawlRecord with an in-memory recorder."""

    def _make(
        url: str = "http://example.com/",
        response: bytes = HTML_RESPONSE,
        request: bytes = GET_REQUEST,
        charset: str = "utf-8",
        **fields,
    ) -> CrawlRecord:
        recorder = MemoryRecorder(request=request, response=response, charset=charset)
        return CrawlRecord(url=url, recorder=recorder, **fields)

    return _make


@pytest.fixture
def inserted_documents(mock_collection):
    """Return the documents passed to insert_one, in call order."""

    def _documents() -> list[dict]:
        return [call.args[0] for call in mock_collection.insert_one.call_args_list]

    return _documents
