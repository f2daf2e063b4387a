#!/usr/bin/env python3
"""
Glow Real-Time Frame Transport

Sends real-time frames to a device over UDP using one socket for the
lifetime of the session.
"""

import logging
import socket
import threading
from typing import Optional

from glow_protocol import (
    RT_PORT,
    RtProtocolVersion,
    TransportError,
    encode_rt_frame,
)

logger = logging.getLogger(__name__)


class FrameTransport:
    """UDP sender for real-time frames."""

    def __init__(self, host: str, port: int = RT_PORT,
                 version: RtProtocolVersion = RtProtocolVersion.V3):
        self.host = host
        self.port = port
        self.version = RtProtocolVersion(version)
        self.sock: Optional[socket.socket] = None
        self._send_lock = threading.Lock()

    def _create_socket(self) -> socket.socket:
        """Create a UDP socket connected to the device's real-time port."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.bind(('', 0))
        sock.connect((self.host, self.port))
        return sock

    def open(self):
        if self.sock is not None:
            return
        try:
            self.sock = self._create_socket()
        except OSError as e:
            raise TransportError(f"Cannot open real-time socket to {self.host}:{self.port}: {e}") from e
        logger.debug(f"Opened real-time socket to {self.host}:{self.port}")

    def close(self):
        if self.sock is not None:
            self.sock.close()
            self.sock = None

    def __enter__(self) -> 'FrameTransport':
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def send_frame(self, frame: bytes, token: bytes, led_count: int) -> int:
        """
        Send one frame, splitting it into chunks when the version requires.

        Args:
            frame: Flattened LED channel bytes
            token: Raw session token bytes
            led_count: Number of LEDs in the frame

        Returns:
            Total bytes written across all datagrams

        Raises:
            TransportError: on the first failed datagram; later chunks are not sent
        """
        packets = encode_rt_frame(self.version, token, frame, led_count)

        with self._send_lock:
            self.open()
            written = 0
            for index, packet in enumerate(packets):
                try:
                    written += self.sock.send(packet)
                except OSError as e:
                    raise TransportError(
                        f"Send of chunk {index}/{len(packets)} to {self.host} failed: {e}"
                    ) from e
            return written
