"""
Custom application exceptions.

Centralised exception definitions for the crawl sink. The split between
fatal and per-URI failures mirrors how the processor treats them:

  - ConfigUnset            → developer bug, propagates to the host
  - WriteFailure subtypes  → attached to the URI, crawl continues
  - WriteInterrupted       → host cancellation, swallowed silently
  - TimestampParseError    → recovered inside the writer
"""


class CrawlSinkError(Exception):
    """Base exception for the crawl sink."""

    def __init__(self, message: str = "An unexpected error occurred"):
        self.message = message
        super().__init__(self.message)


class ConfigUnset(CrawlSinkError):
    """Raised when a required parameter is read before it was set."""

    def __init__(self, field: str):
        self.field = field
        super().__init__(
            f"A {field} was never set for these parameters. "
            "Define one before trying to access it."
        )


class WriteFailure(CrawlSinkError):
    """
    Non-fatal failure while writing a single URI.

    The processor attaches these to the URI's non-fatal failure list
    and carries on with the crawl.
    """

    def __init__(self, url: str, reason: str = "Unknown error"):
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to write '{url}': {reason}")


class StoreUnavailable(WriteFailure):
    """The MongoDB client could not connect or authenticate."""
    pass


class StoreWriteError(WriteFailure):
    """The single-document insert was rejected by the driver."""
    pass


class StreamIOError(WriteFailure):
    """Reading a request or response replay stream failed."""
    pass


class PoolExhausted(WriteFailure):
    """No writer became idle within the pool's wait budget."""

    def __init__(self, max_active: int, waited_ms: int):
        self.max_active = max_active
        self.waited_ms = waited_ms
        super().__init__(
            "<pool>",
            f"no idle writer after {waited_ms}ms (max_active={max_active})",
        )


class WriteInterrupted(CrawlSinkError):
    """The write was cancelled, e.g. the pool closed while waiting."""
    pass


class TimestampParseError(CrawlSinkError):
    """The fetch timestamp could not be converted to the configured zone."""

    def __init__(self, value: str, reason: str = "Unknown error"):
        self.value = value
        self.reason = reason
        super().__init__(f"Could not convert timestamp '{value}': {reason}")
