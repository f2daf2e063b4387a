#!/usr/bin/env python3
"""
Glow LED String Protocol Library

Shared protocol implementation for networked LED string devices.
Provides constants, data structures, the error taxonomy and the pure
encoders used for real-time frame streaming and movie uploads.

Real-time frames travel over UDP port 7777, device control over the
HTTP+JSON API under /xled/v1.
"""

import base64
import ipaddress
import math
import re
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Iterable, Optional


# =============================================================================
# Protocol Constants
# =============================================================================

DISCOVERY_PORT = 5555
RT_PORT = 7777
BROADCAST_ADDRESS = "255.255.255.255"

DISCOVER_MESSAGE = b"\x01discover"

# Largest payload slice carried by one v3 real-time datagram
RT_CHUNK_SIZE = 900

HEADER_AUTH_TOKEN = "X-Auth-Token"
HTTP_TIMEOUT = 10.0


# =============================================================================
# HTTP Endpoints
# =============================================================================

ENDPOINT_LOGIN = "/xled/v1/login"
ENDPOINT_VERIFY = "/xled/v1/verify"
ENDPOINT_GESTALT = "/xled/v1/gestalt"
ENDPOINT_MODE = "/xled/v1/led/mode"
ENDPOINT_TIMER = "/xled/v1/timer"
ENDPOINT_PLAYLIST = "/xled/v1/playlist"
ENDPOINT_LAYOUT = "/xled/v1/led/layout/full"
ENDPOINT_MOVIES = "/xled/v1/led/movies"
ENDPOINT_MOVIE_FULL = "/xled/v1/led/movie/full"


def device_url(host: str, endpoint: str) -> str:
    """Build the full HTTP URL for an API endpoint on a device."""
    return f"http://{host}{endpoint}"


# =============================================================================
# Response Codes
# =============================================================================

RESPONSE_OK = 1000

# Numeric codes found in the "code" field of API responses
RESPONSE_CODES = {
    1000: "Ok",
    1001: "Error",
    1101: "Invalid argument value",
    1102: "Error",
    1103: "Error - value too long or missing required object key",
    1104: "Error - malformed JSON on input",
    1105: "Invalid argument key",
    1107: "Ok?",
    1108: "Ok?",
    1205: "Error with firmware upgrade - SHA1SUM does not match",
}

# Emitted by some firmware flows with undocumented meaning
AMBIGUOUS_RESPONSE_CODES = frozenset({1107, 1108})


def describe_response_code(code: int) -> str:
    """Human readable name for a device response code."""
    return RESPONSE_CODES.get(code, f"Unknown({code})")


def is_success_code(code: Optional[int]) -> bool:
    """Only 1000 counts as success; 1107/1108 are reported, not trusted."""
    return code == RESPONSE_OK


# =============================================================================
# Errors
# =============================================================================

class GlowError(Exception):
    """Base class for all device communication errors."""


class TransportError(GlowError):
    """Socket or connection level failure (bind, connect, send, receive)."""


class ProtocolError(GlowError):
    """Device answered with a non-2xx status, bad JSON or a failure code."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class AuthenticationError(ProtocolError):
    """The challenge-response handshake did not complete."""


class ValidationError(GlowError, ValueError):
    """Invalid configuration or input, raised before touching the network."""


# =============================================================================
# Enums
# =============================================================================

class DeviceMode(Enum):
    """LED operating modes accepted by the mode endpoint."""
    MOVIE = "movie"
    PLAYLIST = "playlist"
    REAL_TIME = "rt"
    DEMO = "demo"
    EFFECT = "effect"
    COLOR = "color"
    OFF = "off"


class LedProfile(Enum):
    """Colour channel layout of each LED."""
    RGB = "RGB"
    RGBW = "RGBW"

    @property
    def bytes_per_led(self) -> int:
        return len(self.value)


class RtProtocolVersion(IntEnum):
    """Real-time frame wire versions."""
    V1 = 1
    V2 = 2
    V3 = 3


# =============================================================================
# Named Colors
# =============================================================================

NAMED_COLORS = {
    'red': (255, 0, 0),
    'green': (0, 255, 0),
    'blue': (0, 0, 255),
    'yellow': (255, 255, 0),
    'orange': (255, 165, 0),
    'purple': (128, 0, 128),
    'cyan': (0, 255, 255),
    'magenta': (255, 0, 255),
    'lime': (50, 205, 50),
    'pink': (255, 192, 203),
    'teal': (0, 128, 128),
    'lavender': (230, 230, 250),
    'brown': (165, 42, 42),
    'beige': (245, 245, 220),
    'maroon': (128, 0, 0),
    'mint': (189, 252, 201),
    'white': (255, 255, 255),
    'black': (0, 0, 0),
}


def parse_color(color_str: str) -> tuple[int, int, int]:
    """
    Parse color string to an (r, g, b) byte triple.

    Supports:
    - Named colors: red, green, blue, mint, etc.
    - Hex: #FF0000 or FF0000
    - RGB: rgb(255, 0, 0)
    """
    color_str = color_str.strip().lower()

    if color_str in NAMED_COLORS:
        return NAMED_COLORS[color_str]

    hex_match = re.match(r'^#?([0-9a-f]{6})$', color_str)
    if hex_match:
        value = hex_match.group(1)
        return (int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16))

    rgb_match = re.match(r'^rgb\s*\(\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)\s*\)$', color_str)
    if rgb_match:
        r, g, b = map(int, rgb_match.groups())
        if max(r, g, b) > 255:
            raise ValidationError(f"RGB component out of range: {color_str}")
        return (r, g, b)

    raise ValidationError(f"Unknown color format: {color_str}")


# =============================================================================
# Data Classes
# =============================================================================

@dataclass(frozen=True, order=True)
class DeviceIdentifier:
    """
    Identity of a device found on the network.

    The session token is a volatile credential and takes no part in
    equality, ordering or hashing.
    """
    ip_address: ipaddress.IPv4Address
    device_id: str
    mac_address: str
    device_name: str
    led_count: int
    token: Optional[str] = field(default=None, compare=False, hash=False)

    def __str__(self) -> str:
        return f"{self.device_name} ({self.ip_address}) - {self.led_count} LEDs"

    def to_dict(self) -> dict:
        return {
            'ip_address': str(self.ip_address),
            'device_id': self.device_id,
            'mac_address': self.mac_address,
            'device_name': self.device_name,
            'led_count': self.led_count,
        }


@dataclass
class DeviceInfo:
    """Device self-description returned by the gestalt endpoint."""
    product_name: str = ""
    hardware_version: str = ""
    bytes_per_led: int = 3
    hw_id: str = ""
    flash_size: int = 0
    led_type: int = 0
    product_code: str = ""
    fw_family: str = ""
    device_name: str = ""
    mac: str = ""
    uuid: str = ""
    max_supported_led: int = 0
    number_of_led: int = 0
    led_profile: LedProfile = LedProfile.RGB
    frame_rate: float = 0.0
    movie_capacity: int = 0
    max_movies: int = 0
    wire_type: int = 0
    copyright: str = ""
    code: int = RESPONSE_OK
    # Volatile readings, not part of identity
    uptime_ms: int = field(default=0, compare=False)
    measured_frame_rate: float = field(default=0.0, compare=False)
    power: Optional[float] = field(default=None, compare=False)

    @classmethod
    def from_json(cls, data: dict) -> 'DeviceInfo':
        """Build from a decoded gestalt response; unknown keys are ignored."""
        try:
            profile = LedProfile(data.get('led_profile', 'RGB'))
        except ValueError as e:
            raise ProtocolError(f"Unsupported LED profile: {data.get('led_profile')}") from e
        try:
            return cls(
                product_name=data.get('product_name', ''),
                hardware_version=str(data.get('hardware_version', '')),
                bytes_per_led=int(data.get('bytes_per_led', profile.bytes_per_led)),
                hw_id=data.get('hw_id', ''),
                flash_size=int(data.get('flash_size', 0)),
                led_type=int(data.get('led_type', 0)),
                product_code=data.get('product_code', ''),
                fw_family=data.get('fw_family', ''),
                device_name=data.get('device_name', ''),
                mac=data.get('mac', ''),
                uuid=data.get('uuid', ''),
                max_supported_led=int(data.get('max_supported_led', 0)),
                number_of_led=int(data['number_of_led']),
                led_profile=profile,
                frame_rate=float(data.get('frame_rate', 0.0)),
                movie_capacity=int(data.get('movie_capacity', 0)),
                max_movies=int(data.get('max_movies', 0)),
                wire_type=int(data.get('wire_type', 0)),
                copyright=data.get('copyright', ''),
                code=int(data.get('code', RESPONSE_OK)),
                uptime_ms=int(data.get('uptime', 0)),
                measured_frame_rate=float(data.get('measured_frame_rate', 0.0)),
                power=data.get('power'),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ProtocolError(f"Malformed gestalt response: {e}") from e


@dataclass(frozen=True)
class DiscoveryResponse:
    """A decoded discovery reply."""
    ip_address: ipaddress.IPv4Address
    device_id: str


@dataclass
class TimerSettings:
    """Daily on/off schedule, in seconds after midnight (-1 = disabled)."""
    time_now: int
    time_on: int
    time_off: int

    @staticmethod
    def format_time(seconds: int) -> str:
        if seconds < 0:
            return "disabled"
        return f"{seconds // 3600:02d}:{seconds % 3600 // 60:02d}:{seconds % 60:02d}"


@dataclass
class PlaylistEntry:
    """One movie in the device playlist."""
    id: int
    unique_id: str = ""
    name: str = ""
    duration: int = 0
    handle: int = 0


@dataclass
class LedLayout:
    """Physical position of each LED, as reported by the device."""
    source: str
    synthesized: bool
    uuid: str
    coordinates: list[tuple[float, float, float]]

    @classmethod
    def from_json(cls, data: dict) -> 'LedLayout':
        try:
            return cls(
                source=data.get('source', ''),
                synthesized=bool(data.get('synthesized', False)),
                uuid=data.get('uuid', ''),
                coordinates=[
                    (float(c['x']), float(c['y']), float(c.get('z', 0.0)))
                    for c in data['coordinates']
                ],
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ProtocolError(f"Malformed layout response: {e}") from e


# =============================================================================
# Packet Parsing Functions
# =============================================================================

def decode_discovery_response(data: bytes) -> Optional[DiscoveryResponse]:
    """
    Decode a discovery reply.

    Layout: 4 bytes IP (reversed), b"OK", ASCII device id, zero terminator.

    Returns:
        The decoded response, or None when the packet is not a valid reply
    """
    if len(data) < 8 or data[-1] != 0 or data[4:6] != b"OK":
        return None

    ip = ipaddress.IPv4Address(bytes(reversed(data[0:4])))
    raw_id = data[6:-1].split(b"\x00", 1)[0]
    try:
        device_id = raw_id.decode('ascii')
    except UnicodeDecodeError:
        return None

    return DiscoveryResponse(ip_address=ip, device_id=device_id)


# =============================================================================
# Frame Encoding Functions
# =============================================================================

def flatten_rgb(frame: Iterable[tuple[int, int, int]]) -> bytes:
    """Flatten per-LED (r, g, b) triples into a contiguous byte buffer."""
    try:
        return bytes(channel for pixel in frame for channel in pixel)
    except ValueError as e:
        raise ValidationError(f"Frame channel out of range: {e}") from e


def decode_token(token: str) -> bytes:
    """Raw bytes of a base64 session token."""
    try:
        return base64.b64decode(token, validate=True)
    except ValueError as e:
        raise ProtocolError(f"Session token is not valid base64: {e}") from e


def encode_rt_frame(version: int, token: bytes, frame: bytes, led_count: int) -> list[bytes]:
    """
    Encode a real-time frame into the datagrams for a wire version.

    Args:
        version: Real-time protocol version (1, 2 or 3)
        token: Raw session token bytes
        frame: Flattened LED channel bytes
        led_count: Number of LEDs on the device (only carried by v1)

    Returns:
        Datagrams in send order
    """
    version = RtProtocolVersion(version)

    if version == RtProtocolVersion.V1:
        if not 0 <= led_count <= 0xFF:
            raise ValidationError(f"v1 frames carry at most 255 LEDs, got {led_count}")
        return [b"\x01" + token + bytes([led_count]) + frame]

    if version == RtProtocolVersion.V2:
        return [b"\x02" + token + b"\x00" + frame]

    num_chunks = math.ceil(len(frame) / RT_CHUNK_SIZE)
    if num_chunks > 0x100:
        raise ValidationError(f"Frame needs {num_chunks} chunks, v3 allows 256")

    header = b"\x03" + token + b"\x00\x00"
    return [
        header + bytes([index]) + frame[index * RT_CHUNK_SIZE:(index + 1) * RT_CHUNK_SIZE]
        for index in range(num_chunks)
    ]


def to_movie(frames: Iterable[Iterable[tuple[int, int, int]]], profile: LedProfile) -> bytes:
    """
    Build a movie upload body from a sequence of frames.

    RGBW devices store the shared white component separately:
    w = min(r, g, b) followed by the channels with w removed.
    """
    body = bytearray()
    for frame in frames:
        for r, g, b in frame:
            if profile == LedProfile.RGBW:
                w = min(r, g, b)
                body.extend((r - w, g - w, b - w, w))
            else:
                body.extend((r, g, b))
    return bytes(body)
