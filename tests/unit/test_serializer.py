"""
Unit tests for payload byte transforms.
"""

import zlib

from crawl_sink.domain.serializer import ByteTransform, IdentityTransform, apply_transform


class ZlibTransform:
    def transform(self, data: bytes) -> bytes:
        return zlib.compress(data)


class TestByteTransform:
    """Tests for the transform protocol and helpers."""

    def test_identity_returns_input(self):
        data = b"\x00payload\xff"

        assert IdentityTransform().transform(data) == data

    def test_apply_without_transform_is_verbatim(self):
        assert apply_transform(None, b"raw") == b"raw"

    def test_apply_delegates_to_transform(self):
        result = apply_transform(ZlibTransform(), b"raw" * 10)

        assert zlib.decompress(result) == b"raw" * 10

    def test_protocol_is_structural(self):
        assert isinstance(ZlibTransform(), ByteTransform)
        assert isinstance(IdentityTransform(), ByteTransform)
        assert not isinstance(object(), ByteTransform)
