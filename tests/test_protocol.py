"""Tests for the frame codec."""

from __future__ import annotations

import struct

import pytest

from presence_ipc.errors import IpcFrameError, IpcProtocolError
from presence_ipc.protocol import (
    HEADER_SIZE,
    MAX_PAYLOAD_SIZE,
    Frame,
    FrameType,
    build_handshake,
    decode_frame,
    decode_header,
    encode_frame,
)


class TestFrameType:
    """Tests for FrameType codes."""

    def test_host_assigned_codes(self):
        """Test codes match the host's fixed assignment."""
        assert FrameType.HANDSHAKE == 0
        assert FrameType.MESSAGE == 1
        assert FrameType.CLOSE == 2
        assert FrameType.PING == 3
        assert FrameType.PONG == 4


class TestEncodeFrame:
    """Tests for encode_frame()."""

    def test_header_layout(self):
        """Test header is little-endian type then length."""
        data = encode_frame(FrameType.MESSAGE, {"a": 1})

        assert data[:HEADER_SIZE] == struct.pack("<II", 1, 7)
        assert data[HEADER_SIZE:] == b'{"a":1}'

    def test_length_counts_utf8_bytes(self):
        """Test length field is the byte length, not the character count."""
        data = encode_frame(FrameType.MESSAGE, {"s": "héllo ✓"})
        _, length = struct.unpack_from("<II", data)

        assert length == len(data) - HEADER_SIZE
        assert length > len('{"s":"héllo ✓"}')

    def test_unserializable_payload_raises(self):
        """Test payloads that are not JSON raise IpcFrameError."""
        with pytest.raises(IpcFrameError, match="not JSON serializable"):
            encode_frame(FrameType.MESSAGE, {"value": object()})

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_float_raises(self, value):
        """Test NaN and infinities are rejected since they are not valid JSON."""
        with pytest.raises(IpcFrameError, match="not JSON serializable"):
            encode_frame(FrameType.MESSAGE, {"start": value})


class TestDecodeFrame:
    """Tests for decode_frame()."""

    @pytest.mark.parametrize(
        ("frame_type", "payload"),
        [
            (FrameType.HANDSHAKE, {"v": 1, "client_id": "123"}),
            (FrameType.MESSAGE, {"cmd": "SET_ACTIVITY", "args": {"pid": 1}}),
            (FrameType.CLOSE, {"code": 1000, "message": "bye"}),
            (FrameType.PING, [1, "two", None, True]),
        ],
    )
    def test_round_trip(self, frame_type, payload):
        """Test decode(encode(t, p)) returns the original frame."""
        assert decode_frame(encode_frame(frame_type, payload)) == Frame(
            frame_type, payload
        )

    def test_short_header_raises(self):
        """Test fewer than 8 bytes is a frame error."""
        with pytest.raises(IpcFrameError, match="requires 8 bytes"):
            decode_frame(b"\x01\x00\x00\x00")

    def test_truncated_payload_raises(self):
        """Test fewer payload bytes than declared is a frame error."""
        data = encode_frame(FrameType.MESSAGE, {"cmd": "DISPATCH"})

        with pytest.raises(IpcFrameError, match="Truncated frame"):
            decode_frame(data[:-3])

    def test_invalid_json_raises(self):
        """Test a body that is not JSON is a frame error."""
        with pytest.raises(IpcFrameError, match="not valid JSON"):
            decode_frame(struct.pack("<II", 1, 3) + b"{{{")

    def test_invalid_utf8_raises(self):
        """Test a body that is not UTF-8 is a frame error."""
        with pytest.raises(IpcFrameError):
            decode_frame(struct.pack("<II", 1, 2) + b"\xff\xfe")

    def test_frame_error_is_protocol_error(self):
        """Test codec failures belong to the protocol error family."""
        with pytest.raises(IpcProtocolError):
            decode_frame(b"")

    def test_trailing_bytes_ignored(self):
        """Test only the declared payload length is consumed."""
        data = encode_frame(FrameType.PONG, {"n": 1}) + b"extra"

        assert decode_frame(data) == Frame(FrameType.PONG, {"n": 1})


class TestDecodeHeader:
    """Tests for decode_header()."""

    def test_decodes_type_and_length(self):
        """Test header fields are returned."""
        assert decode_header(struct.pack("<II", 2, 42)) == (FrameType.CLOSE, 42)

    def test_unknown_type_raises(self):
        """Test an unassigned type code is rejected."""
        with pytest.raises(IpcFrameError, match="Unknown frame type code 9"):
            decode_header(struct.pack("<II", 9, 0))

    def test_oversized_length_raises(self):
        """Test lengths past the maximum are rejected before reading."""
        with pytest.raises(IpcFrameError, match="exceeds maximum"):
            decode_header(struct.pack("<II", 1, MAX_PAYLOAD_SIZE + 1))


class TestBuildHandshake:
    """Tests for build_handshake()."""

    def test_default_version(self):
        """Test the handshake carries version 1 and a string client id."""
        assert build_handshake(123456789012345678) == {
            "v": 1,
            "client_id": "123456789012345678",
        }

    def test_custom_version(self):
        """Test the protocol version can be overridden."""
        assert build_handshake(42, version=2)["v"] == 2
