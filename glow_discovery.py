#!/usr/bin/env python3
"""
Glow Device Scanner

Finds LED string devices on the local network. Sends a discovery UDP
broadcast to port 5555, decodes the replies, then queries and
authenticates each new device to learn its name, MAC and LED count.
"""

import argparse
import json
import logging
import socket
import time
from dataclasses import dataclass, field
from typing import Iterable, Optional

import requests
import yaml

from glow_auth import AuthSession, fetch_gestalt
from glow_protocol import (
    BROADCAST_ADDRESS,
    DISCOVER_MESSAGE,
    DISCOVERY_PORT,
    HTTP_TIMEOUT,
    DeviceIdentifier,
    DeviceInfo,
    DiscoveryResponse,
    GlowError,
    TransportError,
    decode_discovery_response,
)

logger = logging.getLogger(__name__)


@dataclass
class DiscoveryResult:
    """Outcome of one scan."""
    devices: set[DeviceIdentifier] = field(default_factory=set)
    rediscovered: set[DeviceIdentifier] = field(default_factory=set)


def identify_device(response: DiscoveryResponse, session: requests.Session,
                    timeout: float = HTTP_TIMEOUT) -> DeviceIdentifier:
    """
    Turn a discovery reply into a full identity.

    Reads the MAC and name from the public gestalt endpoint, authenticates,
    then reads the LED count with the new token.

    Raises:
        GlowError: if any step fails
        ValueError: if the device reports a malformed MAC
    """
    host = str(response.ip_address)
    gestalt = fetch_gestalt(session, host, timeout=timeout)
    mac = gestalt.get('mac', '')
    device_name = gestalt.get('device_name', '')
    logger.info(f"Device {response.device_id} at {host}: MAC {mac}, name {device_name!r}")

    auth = AuthSession(host, mac, session=session, timeout=timeout)
    token = auth.login()
    info = DeviceInfo.from_json(fetch_gestalt(session, host, token=token, timeout=timeout))

    return DeviceIdentifier(
        ip_address=response.ip_address,
        device_id=response.device_id,
        mac_address=mac,
        device_name=device_name,
        led_count=info.number_of_led,
        token=token,
    )


def find_devices(
    timeout: float = 5.0,
    existing: Optional[Iterable[DeviceIdentifier]] = None,
    broadcast_address: str = BROADCAST_ADDRESS,
    port: int = DISCOVERY_PORT,
    session: Optional[requests.Session] = None,
) -> DiscoveryResult:
    """
    Scan the network for devices.

    Args:
        timeout: Total scan duration in seconds, fixed when the scan starts
        existing: Devices already known; matching replies are reported as
            rediscovered and not re-authenticated
        broadcast_address: Where to send the discovery message
        port: Discovery UDP port
        session: HTTP session used for device queries

    Returns:
        New devices and rediscovered known devices
    """
    session = session or requests.Session()
    known = {(d.device_id, d.ip_address): d for d in (existing or ())}
    result = DiscoveryResult()
    seen: set[tuple[str, object]] = set()

    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

    try:
        try:
            sock.bind(('', 0))
            sock.sendto(DISCOVER_MESSAGE, (broadcast_address, port))
        except OSError as e:
            raise TransportError(f"Cannot send discovery broadcast: {e}") from e
        logger.info(f"Sent discovery broadcast to {broadcast_address}:{port}")

        end_time = time.monotonic() + timeout
        while True:
            remaining = end_time - time.monotonic()
            if remaining <= 0:
                break
            try:
                sock.settimeout(remaining)
                data, addr = sock.recvfrom(1024)
            except socket.timeout:
                logger.info("Discovery time complete")
                break
            except OSError as e:
                logger.error(f"Failed to receive discovery response: {e}")
                break

            response = decode_discovery_response(data)
            if response is None:
                logger.debug(f"Ignoring invalid discovery packet from {addr[0]}")
                continue

            key = (response.device_id, response.ip_address)
            if key in seen:
                continue
            seen.add(key)

            if key in known:
                logger.info(f"Rediscovered {response.device_id} at {response.ip_address}")
                result.rediscovered.add(known[key])
                continue

            try:
                device = identify_device(response, session, timeout=HTTP_TIMEOUT)
            except (GlowError, ValueError) as e:
                logger.error(f"Dropping device {response.device_id} at {response.ip_address}: {e}")
                continue

            logger.info(f"Found: {device}")
            result.devices.add(device)
    finally:
        sock.close()

    return result


# =============================================================================
# Output
# =============================================================================

TABLE_COLUMNS = (
    ('IP Address', lambda d: str(d.ip_address)),
    ('Device ID', lambda d: d.device_id),
    ('MAC Address', lambda d: d.mac_address),
    ('Device Name', lambda d: d.device_name),
    ('LED Count', lambda d: str(d.led_count)),
)


def format_devices_table(devices: Iterable[DeviceIdentifier]) -> str:
    """Aligned plain text table, one row per device."""
    rows = [[getter(d) for _, getter in TABLE_COLUMNS] for d in sorted(devices)]
    widths = [
        max([len(title)] + [len(row[i]) for row in rows])
        for i, (title, _) in enumerate(TABLE_COLUMNS)
    ]

    def line(values):
        return " | ".join(v.ljust(w) for v, w in zip(values, widths)).rstrip()

    out = [line([title for title, _ in TABLE_COLUMNS])]
    out.append("-+-".join("-" * w for w in widths))
    out.extend(line(row) for row in rows)
    return "\n".join(out)


def pretty_print_devices(devices: Iterable[DeviceIdentifier]):
    print(format_devices_table(devices))


def format_devices(devices: Iterable[DeviceIdentifier], output: str = 'plaintext') -> str:
    """Render devices as plaintext, json or yaml."""
    records = [d.to_dict() for d in sorted(devices)]
    if output == 'json':
        return json.dumps(records, indent=2)
    if output == 'yaml':
        return yaml.safe_dump(records, sort_keys=False)
    return format_devices_table(devices)


def main():
    parser = argparse.ArgumentParser(
        description='Scan local network for LED string devices.',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                          # Scan for 5 seconds
  %(prog)s -t 10                    # Scan with 10 second timeout
  %(prog)s -o json                  # JSON output
  %(prog)s -v                       # Verbose output
        """
    )

    parser.add_argument(
        '-t', '--timeout',
        type=float,
        default=5.0,
        help='Seconds to wait for responses (default: 5.0)'
    )

    parser.add_argument(
        '-b', '--broadcast',
        default=BROADCAST_ADDRESS,
        help=f'Broadcast address (default: {BROADCAST_ADDRESS})'
    )

    parser.add_argument(
        '-o', '--output',
        choices=['plaintext', 'json', 'yaml'],
        default='plaintext',
        help='Output format (default: plaintext)'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable verbose output'
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    if args.output == 'plaintext':
        print(f"Scanning for devices for {args.timeout} seconds...")
        print()

    result = find_devices(timeout=args.timeout, broadcast_address=args.broadcast)

    if args.output != 'plaintext':
        print(format_devices(result.devices, args.output))
    elif result.devices:
        print(f"Found {len(result.devices)} device(s):")
        pretty_print_devices(result.devices)
    else:
        print("No devices found.")
        print()
        print("Troubleshooting tips:")
        print("  - Make sure the devices are powered on and joined to your network")
        print("  - Try increasing the timeout (-t)")
        print(f"  - Check that UDP port {DISCOVERY_PORT} is not blocked by firewall")


if __name__ == '__main__':
    main()
