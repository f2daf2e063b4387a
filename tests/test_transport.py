"""Tests for the real-time UDP frame transport."""

import pytest

from glow_protocol import RtProtocolVersion, TransportError
from glow_transport import FrameTransport

from conftest import FakeSocket

TOKEN = bytes(range(8))


class TestFrameTransport:

    def test_single_chunk(self, fake_socket):
        transport = FrameTransport("192.168.1.45")
        written = transport.send_frame(bytes(30), TOKEN, 10)
        assert written == 42
        assert fake_socket.sent == [b"\x03" + TOKEN + b"\x00\x00\x00" + bytes(30)]

    def test_chunks_in_order(self, fake_socket):
        transport = FrameTransport("192.168.1.45")
        frame = bytes(i % 256 for i in range(2000))
        transport.send_frame(frame, TOKEN, 667)
        assert [p[11] for p in fake_socket.sent] == [0, 1, 2]
        assert b"".join(p[12:] for p in fake_socket.sent) == frame

    def test_v1(self, fake_socket):
        transport = FrameTransport("192.168.1.45", version=RtProtocolVersion.V1)
        transport.send_frame(bytes(6), TOKEN, 2)
        assert fake_socket.sent == [b"\x01" + TOKEN + b"\x02" + bytes(6)]

    def test_socket_reused(self, monkeypatch):
        created = []

        def create(self):
            created.append(FakeSocket())
            return created[-1]

        monkeypatch.setattr(FrameTransport, '_create_socket', create)
        transport = FrameTransport("192.168.1.45")
        for _ in range(5):
            transport.send_frame(bytes(3), TOKEN, 1)
        assert len(created) == 1
        assert len(created[0].sent) == 5

    def test_send_failure_stops_frame(self, monkeypatch):
        sock = FakeSocket(fail_on=1)
        monkeypatch.setattr(FrameTransport, '_create_socket', lambda self: sock)
        transport = FrameTransport("192.168.1.45")

        with pytest.raises(TransportError):
            transport.send_frame(bytes(2700), TOKEN, 900)
        assert len(sock.sent) == 1

        # Next frame goes out normally
        transport.send_frame(bytes(3), TOKEN, 1)
        assert len(sock.sent) == 2

    def test_open_failure(self, monkeypatch):
        def refuse(self):
            raise OSError("Cannot assign requested address")

        monkeypatch.setattr(FrameTransport, '_create_socket', refuse)
        with pytest.raises(TransportError):
            FrameTransport("192.168.1.45").send_frame(bytes(3), TOKEN, 1)

    def test_context_manager_closes(self, fake_socket):
        with FrameTransport("192.168.1.45") as transport:
            assert transport.sock is fake_socket
        assert fake_socket.closed
        assert transport.sock is None
