"""
Pluggable payload transforms.

A transform maps the raw payload bytes to the bytes that get persisted.
It is applied exactly once, to the payload only; headers and metadata
fields are never transformed.
"""

from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class ByteTransform(Protocol):
    """Deterministic, side-effect free ``bytes -> bytes`` mapping."""

    def transform(self, data: bytes) -> bytes:
        ...


class IdentityTransform:
    """Returns the payload unchanged."""

    def transform(self, data: bytes) -> bytes:
        return data


def apply_transform(transform: Optional[ByteTransform], data: bytes) -> bytes:
    """Run ``data`` through ``transform``, or hand it back when unset."""
    if transform is None:
        return data
    return transform.transform(data)
