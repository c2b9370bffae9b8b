"""
In-memory recordings of a fetch.

Concrete implementations of the host contracts in ``models`` for
crawlers that keep captures in memory, and for tests. Each replay is a
fresh single-shot stream starting at offset zero; reading a consumed or
closed stream raises ``OSError`` just like a real capture file would.
"""

from dataclasses import dataclass, field
from typing import Optional

HEADER_TERMINATOR = b"\r\n\r\n"


class BytesReplayStream:
    """Single-shot replay over a byte buffer."""

    def __init__(self, data: bytes, body_start: int = 0) -> None:
        self._data = data
        self._body_start = body_start
        self._offset = 0
        self._consumed = False
        self.closed = False

    def read_all(self) -> bytes:
        if self.closed:
            raise OSError("read from a closed replay stream")
        if self._consumed:
            raise OSError("replay stream already consumed, request a fresh one")
        self._consumed = True
        return self._data[self._offset:]

    def seek_to_body_start(self) -> None:
        if self.closed:
            raise OSError("seek on a closed replay stream")
        self._offset = self._body_start

    @property
    def offset(self) -> int:
        return self._offset

    def close(self) -> None:
        self.closed = True


class BytesRecordedStream:
    """A captured byte sequence that hands out fresh replays."""

    def __init__(self, data: bytes, body_start: int = 0) -> None:
        self._data = data
        self._body_start = body_start
        self.replays: list[BytesReplayStream] = []

    @property
    def size(self) -> int:
        return len(self._data)

    def replay(self) -> BytesReplayStream:
        stream = BytesReplayStream(self._data, self._body_start)
        self.replays.append(stream)
        return stream


def find_body_start(response: bytes) -> int:
    """Offset just past the first blank line, or 0 when there is none."""
    index = response.find(HEADER_TERMINATOR)
    if index == -1:
        return 0
    return index + len(HEADER_TERMINATOR)


class MemoryRecorder:
    """Request/response captures for one fetch, held in memory."""

    def __init__(
        self,
        request: bytes = b"",
        response: bytes = b"",
        charset: str = "utf-8",
        response_body_start: Optional[int] = None,
    ) -> None:
        if response_body_start is None:
            response_body_start = find_body_start(response)
        self.charset = charset
        self.recorded_output = BytesRecordedStream(request)
        self.recorded_input = BytesRecordedStream(response, response_body_start)


@dataclass
class CrawlRecord:
    """A crawled URI with its recorder and host-side annotations."""

    url: str
    recorder: MemoryRecorder
    fetch_status: int = 200
    is_seed: bool = False
    path_from_seed: Optional[str] = None
    via: Optional[str] = None
    fetch_begin_time: int = 0
    content_size: Optional[int] = None
    server_ip: Optional[str] = None
    annotations: list[str] = field(default_factory=list)
    non_fatal_failures: list[Exception] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.content_size is None:
            self.content_size = self.recorder.recorded_input.size

    def __str__(self) -> str:
        return self.url
