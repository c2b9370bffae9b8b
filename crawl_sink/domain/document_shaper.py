"""
Pure helpers for shaping a crawl document.

Kept free of I/O so the writer only orchestrates streams and the
driver, while the string handling here can be tested directly.
"""

import codecs
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from crawl_sink.core.exceptions import TimestampParseError
from crawl_sink.core.logging import get_logger

logger = get_logger(__name__)

# Searched in this order; the first marker present wins.
CONTENT_MARKERS = ("<!DOCTYPE", "<!doctype", "<html", "<HTML")

FOURTEEN_DIGIT_FORMAT = "%Y%m%d%H%M%S"
PROCESSED_AT_FORMAT = "%Y-%m-%d %H:%M:%S"

FALLBACK_CHARSET = "iso-8859-1"


def content_index(content: Optional[str]) -> int:
    """
    Index of the start of the HTML contents, right after the headers.

    Uses a simple approach of looking for the ``<!DOCTYPE>`` or
    ``<html>`` tags.

    Returns:
        The index of the start of the contents, or -1 if not found.
    """
    if content is None:
        return -1
    for marker in CONTENT_MARKERS:
        index = content.find(marker)
        if index != -1:
            return index
    return -1


def split_headers(content: str) -> tuple[Optional[str], str]:
    """
    Split a decoded response into ``(headers, payload)``.

    ``headers`` is None when no marker was found, in which case the
    payload is the whole response.
    """
    index = content_index(content)
    if index == -1:
        return None, content
    return content[:index], content[index:]


def fourteen_digit_date(epoch_millis: int) -> str:
    """Render epoch millis as a UTC ``yyyyMMddHHmmss`` string."""
    moment = datetime.fromtimestamp(epoch_millis / 1000, tz=timezone.utc)
    return moment.strftime(FOURTEEN_DIGIT_FORMAT)


def format_fetch_time(epoch_millis: int, time_zone: str) -> str:
    """
    Convert a fetch time to ``yyyy-MM-dd HH:mm:ss`` in ``time_zone``.

    Raises:
        TimestampParseError: If the time or the zone can't be handled.
    """
    try:
        fetch_time = fourteen_digit_date(epoch_millis)
    except (OverflowError, OSError, ValueError, TypeError) as exc:
        raise TimestampParseError(str(epoch_millis), str(exc)) from exc

    try:
        zone = ZoneInfo(time_zone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise TimestampParseError(fetch_time, f"unknown time zone '{time_zone}'") from exc

    try:
        parsed = datetime.strptime(fetch_time, FOURTEEN_DIGIT_FORMAT)
    except ValueError as exc:
        raise TimestampParseError(fetch_time, str(exc)) from exc

    local = parsed.replace(tzinfo=timezone.utc).astimezone(zone)
    return local.strftime(PROCESSED_AT_FORMAT)


def resolve_charset(charset: Optional[str]) -> str:
    """
    Canonical codec name for ``charset``.

    An unknown charset falls back to ISO-8859-1, which maps every byte.
    """
    name = charset or FALLBACK_CHARSET
    try:
        return codecs.lookup(name).name
    except LookupError:
        logger.warning("Unknown charset '%s', decoding as %s", charset, FALLBACK_CHARSET)
        return FALLBACK_CHARSET


def decode_bytes(data: bytes, charset: Optional[str]) -> str:
    """Decode captured bytes with the recorder's charset, replacing malformed sequences."""
    return data.decode(resolve_charset(charset), errors="replace")


def body_offset(data: bytes, char_index: int, charset: Optional[str]) -> int:
    """
    Byte offset in ``data`` where character ``char_index`` of its decoded text starts.

    Lets a split found on the decoded text be applied to the captured
    bytes, so the payload keeps its exact bytes whatever the charset,
    byte order mark or malformed sequences in the headers.
    """
    if char_index <= 0:
        return 0
    codec = resolve_charset(charset)
    decoder = codecs.getincrementaldecoder(codec)

    def decoded(end: int) -> str:
        return decoder(errors="replace").decode(data[:end], final=end == len(data))

    # smallest prefix that decodes to at least char_index characters
    low, high = 0, len(data)
    while low < high:
        middle = (low + high) // 2
        if len(decoded(middle)) < char_index:
            low = middle + 1
        else:
            high = middle

    # The last byte may complete a pending replacement and the first body
    # characters together; step back over the body part.
    overflow = decoded(low)[char_index:]
    if overflow:
        encoder = codecs.getincrementalencoder(codec)(errors="replace")
        encoder.encode("")
        low -= len(encoder.encode(overflow))
    return low
