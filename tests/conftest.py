"""
Shared test fixtures for the glow test suite.

Provides an in-memory HTTP session that answers like a device and a fake
UDP socket that records what would have gone on the wire.
"""

import base64
import random
from urllib.parse import urlparse

import pytest

from glow_transport import FrameTransport


TOKEN_BYTES = bytes(range(8))
TOKEN = base64.b64encode(TOKEN_BYTES).decode('ascii')
DEVICE_MAC = "98:f4:ab:01:02:03"
LED_COUNT = 10


def make_gestalt(**overrides):
    gestalt = {
        'product_name': 'Twinkly',
        'hardware_version': '100',
        'bytes_per_led': 3,
        'hw_id': '0001a2b3',
        'flash_size': 64,
        'led_type': 14,
        'product_code': 'TWS250STP-B',
        'fw_family': 'F',
        'device_name': 'Tree',
        'uptime': '60000',
        'mac': DEVICE_MAC,
        'uuid': '00000000-0000-0000-0000-000000000000',
        'max_supported_led': 510,
        'number_of_led': LED_COUNT,
        'led_profile': 'RGB',
        'frame_rate': 23.77,
        'measured_frame_rate': 23.5,
        'movie_capacity': 5397,
        'max_movies': 55,
        'wire_type': 1,
        'copyright': '',
        'code': 1000,
    }
    gestalt.update(overrides)
    return gestalt


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, payload=None, status_code=200):
        self.payload = payload
        self.status_code = status_code

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    def json(self):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


class FakeSession:
    """
    Routes requests by (method, path) to canned responses.

    A route value may be a FakeResponse, a dict (wrapped in a 200 response),
    an exception instance (raised) or a callable taking the call record.
    """

    def __init__(self, gestalt=None):
        self.calls = []
        self.mode = 'movie'
        self.routes = {
            ('POST', '/xled/v1/login'): {
                'authentication_token': TOKEN,
                'authentication_token_expires_in': 14400,
                'challenge-response': '',
                'code': 1000,
            },
            ('POST', '/xled/v1/verify'): {'code': 1000},
            ('GET', '/xled/v1/gestalt'): gestalt or make_gestalt(),
            ('GET', '/xled/v1/led/mode'): lambda call: {'mode': self.mode, 'code': 1000},
            ('POST', '/xled/v1/led/mode'): self._set_mode,
            ('GET', '/xled/v1/timer'): {'time_now': 37230, 'time_on': 64800, 'time_off': -1, 'code': 1000},
            ('POST', '/xled/v1/timer'): {'code': 1000},
            ('GET', '/xled/v1/playlist'): {
                'entries': [
                    {'id': 0, 'unique_id': 'a1', 'name': 'Sparkles', 'duration': 30, 'handle': 1},
                    {'id': 1, 'unique_id': 'b2', 'name': 'Snow', 'duration': 45, 'handle': 2},
                ],
                'unique_id': 'p1',
                'name': 'Main',
                'code': 1000,
            },
            ('GET', '/xled/v1/led/layout/full'): {
                'source': '3d',
                'synthesized': False,
                'uuid': 'layout-1',
                'coordinates': [{'x': 0.0, 'y': 0.0, 'z': i / (LED_COUNT - 1)} for i in range(LED_COUNT)],
                'code': 1000,
            },
            ('GET', '/xled/v1/led/movies'): {'movies': [], 'available_frames': 100, 'max_capacity': 992, 'code': 1000},
            ('DELETE', '/xled/v1/led/movies'): {'code': 1000},
            ('POST', '/xled/v1/led/movie/full'): {'id': 3, 'code': 1000},
        }

    def _set_mode(self, call):
        self.mode = call['json']['mode']
        return {'code': 1000}

    def calls_to(self, method, path):
        return [c for c in self.calls if c['method'] == method and c['path'] == path]

    def request(self, method, url, timeout=None, **kwargs):
        call = dict(kwargs, method=method, url=url, path=urlparse(url).path, timeout=timeout)
        self.calls.append(call)
        route = self.routes.get((method, call['path']))
        if route is None:
            return FakeResponse({'code': 1102}, status_code=404)
        if callable(route):
            route = route(call)
        if isinstance(route, Exception):
            raise route
        if isinstance(route, FakeResponse):
            return route
        return FakeResponse(route)

    def get(self, url, **kwargs):
        return self.request('GET', url, **kwargs)

    def post(self, url, **kwargs):
        return self.request('POST', url, **kwargs)

    def delete(self, url, **kwargs):
        return self.request('DELETE', url, **kwargs)


@pytest.fixture
def session():
    return FakeSession()


# ---------------------------------------------------------------------------
# UDP
# ---------------------------------------------------------------------------

class FakeSocket:
    """Records datagrams; can be told to fail on a given send."""

    def __init__(self, fail_on=None):
        self.sent = []
        self.fail_on = fail_on
        self.closed = False

    def send(self, data):
        if self.fail_on is not None and len(self.sent) == self.fail_on:
            self.fail_on = None
            raise OSError("Network is unreachable")
        self.sent.append(bytes(data))
        return len(data)

    def close(self):
        self.closed = True


@pytest.fixture
def fake_socket(monkeypatch):
    """Every FrameTransport gets this socket instead of a real one."""
    sock = FakeSocket()
    monkeypatch.setattr(FrameTransport, '_create_socket', lambda self: sock)
    return sock


@pytest.fixture
def rng():
    return random.Random(1234)
