#!/usr/bin/env python3
"""
Glow Authentication

MAC-keyed challenge-response handshake that yields the bearer token
required by the HTTP API and the real-time UDP stream.

Handshake:
    1. POST a random 32-byte challenge to /xled/v1/login
    2. Encrypt the challenge with RC4 keyed by (shared secret XOR MAC)
    3. SHA-1 the ciphertext and POST the hex digest to /xled/v1/verify
"""

import base64
import hashlib
import logging
import secrets
import threading
from typing import Optional

import requests

from glow_protocol import (
    ENDPOINT_GESTALT,
    ENDPOINT_LOGIN,
    ENDPOINT_VERIFY,
    HEADER_AUTH_TOKEN,
    HTTP_TIMEOUT,
    AMBIGUOUS_RESPONSE_CODES,
    AuthenticationError,
    ProtocolError,
    TransportError,
    describe_response_code,
    device_url,
    is_success_code,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

SHARED_KEY_CHALLENGE = b"evenmoresecret!!"
CHALLENGE_LENGTH = 32


# =============================================================================
# Crypto
# =============================================================================

class Rc4:
    """RC4 stream cipher."""

    def __init__(self, key: bytes):
        if not key:
            raise ValueError("RC4 key must not be empty")

        s = list(range(256))
        j = 0
        for i in range(256):
            j = (j + s[i] + key[i % len(key)]) % 256
            s[i], s[j] = s[j], s[i]

        self._s = s
        self._i = 0
        self._j = 0

    def process(self, data: bytes) -> bytes:
        """Encrypt or decrypt data, advancing the keystream."""
        s = self._s
        i, j = self._i, self._j
        out = bytearray(len(data))
        for n, byte in enumerate(data):
            i = (i + 1) % 256
            j = (j + s[i]) % 256
            s[i], s[j] = s[j], s[i]
            out[n] = byte ^ s[(s[i] + s[j]) % 256]
        self._i, self._j = i, j
        return bytes(out)


def mac_to_bytes(mac: str) -> bytes:
    """
    Parse a colon separated MAC address.

    Raises:
        ValueError: if the address is not six hex octets
    """
    parts = mac.strip().split(':')
    if len(parts) != 6 or not all(len(p) == 2 for p in parts):
        raise ValueError(f"Invalid MAC address: {mac!r}")
    return bytes(int(p, 16) for p in parts)


def derive_key(secret: bytes, mac: str) -> bytes:
    """XOR the shared secret with the MAC bytes, repeating the MAC as needed."""
    mac_bytes = mac_to_bytes(mac)
    return bytes(b ^ mac_bytes[i % len(mac_bytes)] for i, b in enumerate(secret))


def make_challenge_response(challenge: bytes, mac: str) -> str:
    """Hex SHA-1 of the challenge encrypted under the MAC-derived key."""
    key = derive_key(SHARED_KEY_CHALLENGE, mac)
    encrypted = Rc4(key).process(challenge)
    return hashlib.sha1(encrypted).hexdigest()


def generate_challenge() -> bytes:
    """Random challenge for a login request."""
    return secrets.token_bytes(CHALLENGE_LENGTH)


# =============================================================================
# HTTP Helpers
# =============================================================================

def request_json(session: requests.Session, method: str, url: str,
                 timeout: float = HTTP_TIMEOUT, **kwargs) -> dict:
    """
    Issue an HTTP request and decode the JSON body.

    Raises:
        TransportError: connection failure or timeout
        ProtocolError: non-2xx status or undecodable body
    """
    try:
        response = session.request(method, url, timeout=timeout, **kwargs)
    except requests.RequestException as e:
        raise TransportError(f"{method} {url} failed: {e}") from e

    if not response.ok:
        raise ProtocolError(f"{method} {url} returned HTTP {response.status_code}")

    try:
        data = response.json()
    except ValueError as e:
        raise ProtocolError(f"{method} {url} returned malformed JSON") from e

    if not isinstance(data, dict):
        raise ProtocolError(f"{method} {url} returned unexpected JSON: {data!r}")
    return data


def fetch_gestalt(session: requests.Session, host: str, token: Optional[str] = None,
                  timeout: float = HTTP_TIMEOUT) -> dict:
    """Fetch the device self-description; works with or without a token."""
    headers = {HEADER_AUTH_TOKEN: token} if token else None
    return request_json(session, 'GET', device_url(host, ENDPOINT_GESTALT),
                        timeout=timeout, headers=headers)


# =============================================================================
# Auth Session
# =============================================================================

class AuthSession:
    """
    Holds the bearer token for one device.

    The token is only ever replaced as a whole and all access goes through
    a lock, so a reauthentication never races a reader.
    """

    def __init__(self, host: str, mac: str, session: Optional[requests.Session] = None,
                 timeout: float = HTTP_TIMEOUT):
        # Fail early on a malformed MAC rather than mid-handshake
        mac_to_bytes(mac)
        self.host = host
        self.mac = mac
        self.session = session or requests.Session()
        self.timeout = timeout
        self._token: Optional[str] = None
        self._lock = threading.Lock()

    @property
    def token(self) -> Optional[str]:
        with self._lock:
            return self._token

    @property
    def is_authenticated(self) -> bool:
        return self.token is not None

    def login(self) -> str:
        """
        Run the handshake and store the resulting token.

        Returns:
            The new token

        Raises:
            AuthenticationError: the device rejected or garbled the handshake
            TransportError: the device could not be reached
        """
        token = self._handshake()
        with self._lock:
            self._token = token
        return token

    def use_token(self, token: str):
        """Adopt a token obtained elsewhere, e.g. during discovery."""
        with self._lock:
            self._token = token

    def reauthenticate(self) -> bool:
        """Replace the token with a fresh one. Returns False on failure."""
        try:
            self.login()
        except (AuthenticationError, TransportError) as e:
            logger.error(f"Reauthentication with {self.host} failed: {e}")
            return False
        logger.info(f"Reauthenticated with {self.host}")
        return True

    def _post(self, endpoint: str, payload: dict, token: Optional[str] = None) -> dict:
        headers = {HEADER_AUTH_TOKEN: token} if token else None
        try:
            return request_json(self.session, 'POST', device_url(self.host, endpoint),
                                timeout=self.timeout, json=payload, headers=headers)
        except ProtocolError as e:
            raise AuthenticationError(str(e), code=e.code) from e

    def _handshake(self) -> str:
        challenge = generate_challenge()
        logger.debug(f"Sending login challenge to {self.host}")

        login = self._post(ENDPOINT_LOGIN, {'challenge': base64.b64encode(challenge).decode('ascii')})
        token = login.get('authentication_token')
        if not token:
            raise AuthenticationError(f"Login response from {self.host} has no authentication_token")

        response = make_challenge_response(challenge, self.mac)
        expected = login.get('challenge-response')
        if expected and expected != response:
            logger.debug(f"Device {self.host} expects challenge-response {expected}, computed {response}")

        verify = self._post(ENDPOINT_VERIFY, {'challenge-response': response}, token=token)
        code = verify.get('code')
        if not is_success_code(code):
            if code in AMBIGUOUS_RESPONSE_CODES:
                logger.warning(f"Device {self.host} answered verify with ambiguous code {code}")
            raise AuthenticationError(
                f"Verify rejected by {self.host}: {code} ({describe_response_code(code)})",
                code=code,
            )

        logger.debug(f"Authenticated with {self.host}")
        return token
