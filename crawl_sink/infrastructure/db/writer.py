"""
MongoDB writer: one pooled sink owning one client.

A writer turns a crawled URI plus its request/response captures into a
single document and inserts it. The pool guarantees a writer is used by
one thread at a time, so nothing in here locks.
"""

from contextlib import ExitStack
from typing import Any, Optional

import bson
from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from crawl_sink.core.exceptions import (
    StoreUnavailable,
    StoreWriteError,
    StreamIOError,
    TimestampParseError,
)
from crawl_sink.core.logging import get_logger
from crawl_sink.domain.document_shaper import (
    body_offset,
    decode_bytes,
    format_fetch_time,
    split_headers,
)
from crawl_sink.domain.models import CrawledUri, MongoParameters, RecordedStream, ReplayStream
from crawl_sink.domain.serializer import apply_transform
from crawl_sink.infrastructure.db.mongo import close_mongo, connect_to_mongo

logger = get_logger(__name__)

HTTP_NOT_FOUND = 404
HTTP_GONE = 410
MISSING_PAGE_STATUSES = frozenset({HTTP_NOT_FOUND, HTTP_GONE})


class MongoWriter:
    """Writes crawled URIs to the configured MongoDB collection."""

    def __init__(
        self,
        parameters: MongoParameters,
        serial: int,
        connect_retries: int = 3,
        connect_base_delay: float = 0.5,
        server_selection_timeout_ms: int = 5000,
    ) -> None:
        self.parameters = parameters
        self.serial = serial
        self.position = 0
        self._closed = False
        self._client: Optional[MongoClient] = None

        # ConfigUnset is a setup bug and propagates; store trouble only degrades.
        try:
            self._client = connect_to_mongo(
                parameters,
                max_retries=connect_retries,
                base_delay=connect_base_delay,
                server_selection_timeout_ms=server_selection_timeout_ms,
            )
        except StoreUnavailable as exc:
            logger.error(
                "Writer #%d has no MongoDB connection: %s", serial, exc.message
            )

    def __repr__(self) -> str:
        return f"MongoWriter(serial={self.serial}, position={self.position})"

    @property
    def available(self) -> bool:
        return self._client is not None and not self._closed

    def collection(self, url: str = "<none>") -> Collection:
        """
        Return the target collection handle.

        Raises:
            StoreUnavailable: If the writer is degraded or closed.
        """
        if not self.available:
            raise StoreUnavailable(
                url, f"writer #{self.serial} has no MongoDB connection"
            )
        database = self._client[self.parameters.require("database")]
        return database[self.parameters.require("collection")]

    def write(
        self,
        uri: CrawledUri,
        ip: str,
        request_stream: RecordedStream,
        response_stream: RecordedStream,
    ) -> bool:
        """
        Write the crawled output to the configured MongoDB collection.

        Args:
            uri: The crawled document.
            ip: IP of the remote machine.
            request_stream: Capture of the request that was sent.
            response_stream: Capture of the response that came back.

        Returns:
            True if a document was inserted, False if the URI was skipped
            (missing page or oversize payload).

        Raises:
            StoreUnavailable: If the writer has no connection.
            StreamIOError: If a replay stream could not be read.
            StoreWriteError: If the insert failed.
        """
        params = self.parameters
        url = str(uri.url)

        if params.remove_missing_pages and uri.fetch_status in MISSING_PAGE_STATUSES:
            return False

        collection = self.collection(url)
        document: dict[str, Any] = {
            params.url_column: url,
            params.ip_column: ip,
        }

        # Is the url part of the seed urls (the initial urls used to start the crawl)
        if uri.is_seed:
            document[params.is_seed_column] = True

        path_from_seed = (uri.path_from_seed or "").strip()
        if path_from_seed:
            document[params.path_from_seed_column] = path_from_seed

        via = str(uri.via).strip() if uri.via is not None else ""
        if via:
            document[params.via_column] = via

        processed_at = self._processed_at(uri)
        if processed_at:
            document[params.processed_at_column] = processed_at

        charset = uri.recorder.charset
        if request_stream.size > 0:
            request = self._read_fully(request_stream, url)
            document[params.request_column] = decode_bytes(request, charset)

        with ExitStack() as streams:
            captured = self._read_fully(response_stream, url)
            response = decode_bytes(captured, charset)

            # Successive replays start at zero; reposition one for content consumers.
            replay = self._open(response_stream, url)
            streams.callback(self._close_stream, replay)
            try:
                replay.seek_to_body_start()
            except OSError as exc:
                raise StreamIOError(url, f"seek to body start failed: {exc}") from exc

            headers = None
            if params.separate_headers:
                headers, response = split_headers(response)
                if headers is not None:
                    document[params.headers_column] = headers

            if not self._within_size_cap(url, response):
                return False

            if params.byte_transform is None:
                document[params.content_column] = response
            else:
                start = body_offset(captured, len(headers or ""), charset)
                document[params.content_column] = self.serialize(captured[start:])

        self._insert(collection, url, document)
        return True

    def serialize(self, data: bytes) -> bytes:
        """Apply the configured byte transform, if any."""
        return apply_transform(self.parameters.byte_transform, data)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        close_mongo(self._client)
        self._client = None
        logger.info("Writer #%d closed (position=%d)", self.serial, self.position)

    # ── internals ────────────────────────────────────────────

    def _processed_at(self, uri: CrawledUri) -> Optional[str]:
        time_zone = self.parameters.time_zone
        if time_zone is None:
            return None
        try:
            return format_fetch_time(uri.fetch_begin_time, time_zone)
        except TimestampParseError as exc:
            logger.warning("Omitting processed-at for %s: %s", uri.url, exc.message)
            return None

    def _within_size_cap(self, url: str, payload: str) -> bool:
        max_size = self.parameters.max_content_size_bytes
        if max_size > 0 and len(payload) > max_size:
            logger.warning(
                "Skipping write of '%s' because it exceeded the defined max size of %d (%d)",
                url,
                max_size,
                len(payload),
            )
            return False
        return True

    def _open(self, recorded: RecordedStream, url: str) -> ReplayStream:
        try:
            return recorded.replay()
        except OSError as exc:
            raise StreamIOError(url, f"could not open replay stream: {exc}") from exc

    def _read_fully(self, recorded: RecordedStream, url: str) -> bytes:
        stream = self._open(recorded, url)
        try:
            return stream.read_all()
        except OSError as exc:
            raise StreamIOError(url, f"reading replay stream failed: {exc}") from exc
        finally:
            self._close_stream(stream)

    def _close_stream(self, stream: ReplayStream) -> None:
        try:
            stream.close()
        except Exception as exc:
            logger.warning("Exception in closing %r: %s", stream, exc)

    def _insert(self, collection: Collection, url: str, document: dict) -> None:
        try:
            collection.insert_one(document)
        except PyMongoError as exc:
            raise StoreWriteError(url, str(exc)) from exc
        self.position += len(bson.encode(document))
        logger.debug("Writer #%d inserted %s", self.serial, url)
