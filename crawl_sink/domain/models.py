"""
Domain models: the parameter bundle and the host-facing contracts.

``MongoParameters`` is the immutable configuration every writer reads.
The protocols describe what the crawler host hands to the sink: a
crawled URI, its recorder and the replay streams over the captured
bytes. They have no framework dependencies and are used across all
layers.
"""

from typing import Any, Optional, Protocol

from pydantic import BaseModel, Field, SecretStr, model_validator

from crawl_sink.core.exceptions import ConfigUnset
from crawl_sink.domain.serializer import ByteTransform

DEFAULT_MONGODB_PORT = 27017
# The maximum size of a document in MongoDB is 16M
DEFAULT_MAX_CONTENT_SIZE_IN_BYTES = 16 * 1024 * 1024
BULK_DOC_NUMBER = 100
DEFAULT_DEGRADED_COOLDOWN_MS = 30000

CONTENT_PREFIX = "content"
CURI_PREFIX = "curi"

# column field -> leaf name, grouped by the prefix they hang off
CONTENT_COLUMNS = {
    "headers_column": "headers",
    "content_column": "raw_data",
}
CURI_COLUMNS = {
    "ip_column": "ip",
    "path_from_seed_column": "path-from-seed",
    "is_seed_column": "is-seed",
    "via_column": "via",
    "url_column": "url",
    "request_column": "request",
    "processed_at_column": "processed_at",
}

REQUIRED_FIELDS = ("host", "database", "collection")


class MongoParameters(BaseModel):
    """
    Parameter bundle shared by every writer in a pool.

    Frozen once built: use ``with_options`` to derive a changed copy.
    Column names default to ``"<prefix>:<leaf>"`` using the prefixes
    given at construction; an explicit column name always wins, and
    deriving a copy with a new prefix keeps the already resolved names.
    """

    host: str = Field(default="", description="MongoDB host")
    port: int = Field(
        default=DEFAULT_MONGODB_PORT, ge=1, le=65535, description="MongoDB port"
    )
    database: str = Field(default="", description="Target database")
    collection: str = Field(default="", description="Target collection")
    user: str = Field(default="", description="Username, empty disables auth")
    password: SecretStr = Field(default=SecretStr(""), description="Password")

    content_prefix: str = CONTENT_PREFIX
    curi_prefix: str = CURI_PREFIX
    headers_column: str = ""
    content_column: str = ""
    ip_column: str = ""
    path_from_seed_column: str = ""
    is_seed_column: str = ""
    via_column: str = ""
    url_column: str = ""
    request_column: str = ""
    processed_at_column: str = ""

    remove_missing_pages: bool = True
    separate_headers: bool = True
    # Writing is meant to continue when an error occurs; nothing reads this yet.
    continue_on_error: bool = True
    max_content_size_bytes: int = DEFAULT_MAX_CONTENT_SIZE_IN_BYTES
    # Batching hint only, documents are inserted one per write.
    bulk_doc_number: int = Field(default=BULK_DOC_NUMBER, ge=1)
    time_zone: Optional[str] = None
    byte_transform: Optional[ByteTransform] = None

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    @model_validator(mode="before")
    @classmethod
    def _derive_column_names(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        content_prefix = data.get("content_prefix") or CONTENT_PREFIX
        curi_prefix = data.get("curi_prefix") or CURI_PREFIX
        for field, leaf in CONTENT_COLUMNS.items():
            if not data.get(field):
                data[field] = f"{content_prefix}:{leaf}"
        for field, leaf in CURI_COLUMNS.items():
            if not data.get(field):
                data[field] = f"{curi_prefix}:{leaf}"
        return data

    def require(self, name: str) -> str:
        """
        Read one of ``host``, ``database`` or ``collection``.

        Raises:
            ConfigUnset: If the value was never set.
        """
        if name not in REQUIRED_FIELDS:
            raise ValueError(f"'{name}' is not a required parameter")
        value = getattr(self, name)
        if not value:
            raise ConfigUnset(name)
        return value

    def with_options(self, **changes: Any) -> "MongoParameters":
        """Return a validated copy with ``changes`` applied."""
        current = {name: getattr(self, name) for name in type(self).model_fields}
        current.update(changes)
        return type(self)(**current)

    def column_names(self) -> set[str]:
        """All document keys these parameters can produce."""
        return {
            getattr(self, field)
            for field in (*CONTENT_COLUMNS, *CURI_COLUMNS)
        }


class CheckpointState(BaseModel):
    """
    Processor state as persisted in a crawl checkpoint.

    Every field is optional so that older checkpoints, which predate
    some of them, still restore. Unknown keys written by the host are
    ignored.
    """

    urls_written: Optional[int] = Field(default=None, alias="urlsWritten")
    total_bytes_written: Optional[int] = Field(
        default=None, alias="totalBytesWritten"
    )
    serial_number: Optional[int] = Field(default=None, alias="serialNumber")
    stats: Optional[dict[str, dict[str, int]]] = None

    model_config = {"populate_by_name": True, "extra": "ignore"}


# ── Host contracts ───────────────────────────────────────────


class ReplayStream(Protocol):
    """Single-shot readable view over recorded bytes."""

    def read_all(self) -> bytes:
        ...

    def seek_to_body_start(self) -> None:
        ...

    def close(self) -> None:
        ...


class RecordedStream(Protocol):
    """One captured byte sequence; every ``replay()`` starts at zero."""

    size: int

    def replay(self) -> ReplayStream:
        ...


class Recorder(Protocol):
    """Request and response captures for one fetch."""

    charset: str
    recorded_output: RecordedStream
    recorded_input: RecordedStream


class CrawledUri(Protocol):
    """A fetched resource as supplied by the crawler host."""

    url: str
    fetch_status: int
    is_seed: bool
    path_from_seed: Optional[str]
    via: Optional[str]
    fetch_begin_time: int
    content_size: int
    server_ip: Optional[str]
    recorder: Recorder
    annotations: list[str]
    non_fatal_failures: list[Exception]


class HostHooks(Protocol):
    """Callbacks into the crawler's own writer-processor checks."""

    def should_process(self, uri: CrawledUri) -> bool:
        ...

    def should_write(self, uri: CrawledUri) -> bool:
        ...

    def copy_forward_write_tag_if_dupe(self, uri: CrawledUri) -> None:
        ...

    def host_address(self, uri: CrawledUri) -> str:
        ...


class DefaultHostHooks:
    """Hooks for hosts with no checks of their own."""

    def should_process(self, uri: CrawledUri) -> bool:
        return True

    def should_write(self, uri: CrawledUri) -> bool:
        return True

    def copy_forward_write_tag_if_dupe(self, uri: CrawledUri) -> None:
        return None

    def host_address(self, uri: CrawledUri) -> str:
        return uri.server_ip or ""
