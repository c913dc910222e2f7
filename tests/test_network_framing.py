"""Tests for network/_framing.py: recv_exactly(), frame helpers and MAX_MESSAGE_SIZE."""

import socket
import threading
import pytest

from corpusview.network._framing import MAX_MESSAGE_SIZE, recv_exactly, recv_frame, send_frame


@pytest.fixture()
def socketpair():
    """Yield a connected AF_UNIX socketpair and close both ends after the test."""
    a, b = socket.socketpair(socket.AF_UNIX, socket.SOCK_STREAM)
    yield a, b
    a.close()
    b.close()


class TestRecvExactly:
    def test_reads_exact_bytes(self, socketpair):
        reader, writer = socketpair
        writer.sendall(b"hello")
        assert recv_exactly(reader, 5) == b"hello"

    def test_accumulates_across_multiple_sends(self, socketpair):
        reader, writer = socketpair
        payload = b"abcdefghij"
        # Send one byte at a time from a thread
        def _send():
            for byte in payload:
                writer.sendall(bytes([byte]))
        t = threading.Thread(target=_send)
        t.start()
        result = recv_exactly(reader, len(payload))
        t.join(timeout=2)
        assert result == payload

    def test_returns_none_on_eof(self, socketpair):
        reader, writer = socketpair
        writer.close()
        assert recv_exactly(reader, 4) is None

    def test_returns_none_on_clean_timeout(self, socketpair):
        reader, writer = socketpair
        reader.settimeout(0.05)
        assert recv_exactly(reader, 4) is None

    def test_raises_on_partial_read_timeout(self, socketpair):
        reader, writer = socketpair
        reader.settimeout(0.05)
        writer.sendall(b"\x00\x00")  # 2 of 4 bytes
        with pytest.raises(ConnectionError, match="Timeout after reading 2/4 bytes"):
            recv_exactly(reader, 4)


class TestFrames:
    def test_frame_round_trip(self, socketpair):
        reader, writer = socketpair
        send_frame(writer, b'{"command": "ping"}')
        assert recv_frame(reader) == b'{"command": "ping"}'

    def test_length_prefix_is_big_endian(self, socketpair):
        reader, writer = socketpair
        send_frame(writer, b"x" * 258)
        assert recv_exactly(reader, 4) == b"\x00\x00\x01\x02"

    def test_large_payload(self, socketpair):
        reader, writer = socketpair
        payload = b"\xAB" * 200_000
        t = threading.Thread(target=send_frame, args=(writer, payload))
        t.start()
        result = recv_frame(reader)
        t.join(timeout=5)
        assert result == payload

    def test_eof_between_frames_returns_none(self, socketpair):
        reader, writer = socketpair
        writer.close()
        assert recv_frame(reader) is None

    def test_truncated_body_raises(self, socketpair):
        reader, writer = socketpair
        writer.sendall((10).to_bytes(4, "big") + b"abc")
        writer.close()
        with pytest.raises(ConnectionError):
            recv_frame(reader)

    def test_oversized_length_is_rejected(self, socketpair):
        reader, writer = socketpair
        writer.sendall((MAX_MESSAGE_SIZE + 1).to_bytes(4, "big"))
        with pytest.raises(ConnectionError, match="too large"):
            recv_frame(reader)

    def test_oversized_payload_is_not_sent(self, socketpair):
        _reader, writer = socketpair
        with pytest.raises(ConnectionError):
            send_frame(writer, b"\x00" * (MAX_MESSAGE_SIZE + 1))


class TestMaxMessageSize:
    def test_value(self):
        assert MAX_MESSAGE_SIZE == 10 * 1024 * 1024
