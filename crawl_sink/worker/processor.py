"""
Crawler-facing processor that writes each crawled URI to MongoDB.

The crawler calls ``process`` for every URI from many worker threads.
The processor decides whether the URI is written, borrows a writer from
the pool, drives it and hands it back, keeping running totals that
survive checkpoints.

Failures are classified so the crawl never halts on one record:
  - WriteFailure / OSError → attached to the URI, logged, PROCEED
  - WriteInterrupted       → host cancellation, silently PROCEED
  - ConfigUnset            → propagates, the sink is misconfigured
"""

import json
from enum import Enum
from typing import Any, Mapping, Optional
from urllib.parse import urlsplit

from crawl_sink.core.exceptions import WriteFailure, WriteInterrupted
from crawl_sink.core.logging import get_logger
from crawl_sink.domain.models import (
    DEFAULT_DEGRADED_COOLDOWN_MS,
    CheckpointState,
    CrawledUri,
    DefaultHostHooks,
    HostHooks,
    MongoParameters,
)
from crawl_sink.infrastructure.db.pool import MongoWriterPool, SerialCounter
from crawl_sink.worker.stats import AtomicCounter, StatsRegistry

logger = get_logger(__name__)

ANNOTATION_UNWRITTEN = "unwritten"
TOTALS_BUCKET = "totals"


class ProcessResult(Enum):
    PROCEED = "proceed"


class MongoWriterProcessor:
    """Per-URI entry point that feeds a pool of MongoDB writers."""

    def __init__(
        self,
        parameters: MongoParameters,
        hooks: Optional[HostHooks] = None,
        pool_max_active: int = 1,
        max_wait_for_idle_ms: int = 300000,
        max_file_size_bytes: Optional[int] = None,
        connect_retries: int = 3,
        connect_base_delay: float = 0.5,
        server_selection_timeout_ms: int = 5000,
        degraded_cooldown_ms: int = DEFAULT_DEGRADED_COOLDOWN_MS,
    ) -> None:
        self.parameters = parameters
        self.hooks = hooks if hooks is not None else DefaultHostHooks()
        self.pool_max_active = pool_max_active
        self.max_wait_for_idle_ms = max_wait_for_idle_ms
        self._max_file_size_bytes = max_file_size_bytes
        self._connect_retries = connect_retries
        self._connect_base_delay = connect_base_delay
        self._server_selection_timeout_ms = server_selection_timeout_ms
        self.degraded_cooldown_ms = degraded_cooldown_ms

        self.serial = SerialCounter()
        self.urls_written = AtomicCounter()
        self.total_bytes_written = AtomicCounter()
        self.stats = StatsRegistry()
        self.pool: Optional[MongoWriterPool] = None

    @property
    def max_file_size_bytes(self) -> int:
        if self._max_file_size_bytes is not None:
            return self._max_file_size_bytes
        return self.parameters.max_content_size_bytes

    # ── lifecycle ────────────────────────────────────────────

    def setup_pool(self, serial: SerialCounter) -> None:
        self.pool = MongoWriterPool(
            serial,
            self.parameters,
            self.pool_max_active,
            self.max_wait_for_idle_ms,
            connect_retries=self._connect_retries,
            connect_base_delay=self._connect_base_delay,
            server_selection_timeout_ms=self._server_selection_timeout_ms,
            degraded_cooldown_ms=self.degraded_cooldown_ms,
        )
        logger.info(
            "Writer pool ready (max_active=%d, max_wait_for_idle_ms=%d)",
            self.pool_max_active,
            self.max_wait_for_idle_ms,
        )

    def start(self) -> None:
        if self.pool is None:
            self.setup_pool(self.serial)

    def close(self) -> None:
        if self.pool is not None:
            self.pool.close()
            self.pool = None

    def get_pool(self) -> MongoWriterPool:
        if self.pool is None:
            raise RuntimeError(
                "Writer pool is not set up. Ensure start() was called "
                "before processing URIs."
            )
        return self.pool

    # ── per-URI processing ───────────────────────────────────

    def should_process(self, uri: CrawledUri) -> bool:
        # The host's checks come first; only continue if they pass.
        if not self.hooks.should_process(uri):
            return False

        # If failure, or we haven't fetched the resource yet, return
        if uri.fetch_status <= 0:
            return False

        # content_size is > 0 whenever any material, even bare headers, was recorded
        if uri.content_size <= 0:
            return False
        return True

    def should_write(self, uri: CrawledUri) -> bool:
        """
        Whether the given URI should be written to MongoDB.

        Annotates the URI with a reason for a size rejection.
        """
        if not self.hooks.should_write(uri):
            return False

        limit = self.max_file_size_bytes
        if uri.content_size > limit:
            uri.annotations.append(f"{ANNOTATION_UNWRITTEN}:size")
            logger.warning(
                "Content size for %s is too large (%d) - maximum content size is: %d",
                uri.url,
                uri.content_size,
                limit,
            )
            return False
        return True

    def process(self, uri: CrawledUri) -> ProcessResult:
        if not self.should_process(uri):
            logger.debug("Not processing %s", uri.url)
            return ProcessResult.PROCEED
        return self.inner_process_result(uri)

    def inner_process_result(self, uri: CrawledUri) -> ProcessResult:
        try:
            if self.should_write(uri):
                return self.write(uri)
            self.hooks.copy_forward_write_tag_if_dupe(uri)
        except (WriteFailure, OSError) as exc:
            uri.non_fatal_failures.append(exc)
            logger.error("Failed write of %s: %s", uri.url, exc)
        except WriteInterrupted:
            pass
        return ProcessResult.PROCEED

    def write(self, uri: CrawledUri) -> ProcessResult:
        recorder = uri.recorder
        with self.get_pool().borrowed() as writer:
            position = writer.position
            written = False
            try:
                written = writer.write(
                    uri,
                    self.hooks.host_address(uri),
                    recorder.recorded_output,
                    recorder.recorded_input,
                )
            finally:
                size_on_disk = writer.position - position
                self.total_bytes_written.add(size_on_disk)

        if written:
            self.urls_written.add(1)
            self._record_stats(uri, size_on_disk)
        return ProcessResult.PROCEED

    def _record_stats(self, uri: CrawledUri, size_on_disk: int) -> None:
        scheme = urlsplit(str(uri.url)).scheme or "unknown"
        for bucket in (scheme, TOTALS_BUCKET):
            self.stats.increment(bucket, "numRecords")
            self.stats.increment(bucket, "contentBytes", uri.content_size)
            self.stats.increment(bucket, "sizeOnDisk", size_on_disk)

    # ── statistics & checkpoints ─────────────────────────────

    def add_stats(self, substats: Mapping[str, Mapping[str, int]]) -> None:
        self.stats.add_stats(substats)

    def to_checkpoint(self) -> dict[str, Any]:
        state = CheckpointState(
            urls_written=self.urls_written.get(),
            total_bytes_written=self.total_bytes_written.get(),
            serial_number=self.serial.value,
            stats=self.stats.snapshot(),
        )
        return state.model_dump(by_alias=True)

    def to_checkpoint_json(self) -> str:
        return json.dumps(self.to_checkpoint())

    def from_checkpoint(self, data: Mapping[str, Any]) -> None:
        # Conditionals below are for backward compatibility with old checkpoints
        state = CheckpointState.model_validate(data)
        if state.urls_written is not None:
            self.urls_written.set(state.urls_written)
        if state.total_bytes_written is not None:
            self.total_bytes_written.set(state.total_bytes_written)
        if state.serial_number is not None:
            self.serial.advance_to(state.serial_number)
        if state.stats:
            self.add_stats(state.stats)
        logger.info(
            "Restored checkpoint (urls_written=%d, buckets=%d)",
            self.urls_written.get(),
            len(state.stats or {}),
        )

    def from_checkpoint_json(self, text: str) -> None:
        self.from_checkpoint(json.loads(text))
