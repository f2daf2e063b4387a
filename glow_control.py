#!/usr/bin/env python3
"""
Glow Device Controller

Controls networked LED string devices: authenticates against a device,
drives its HTTP API (mode, timer, playlist, layout, movies) and streams
real-time frames for effects over UDP.
"""

import argparse
import json
import logging
import random
import sys
import time
from datetime import datetime
from enum import Enum
from typing import Iterator, Optional, Sequence, TextIO

import numpy as np
import requests

from glow_auth import AuthSession, fetch_gestalt, request_json
from glow_color import (
    COLOR_STYLE_NAMES,
    LIGHTNESS_POLICY_NAMES,
    RGB,
    ColorModel,
    make_alternating_color_pattern,
    make_color_spectrum_pattern,
    make_random_blend_color_pattern,
    make_random_colors_pattern,
    make_random_hsl_pattern,
    make_random_lightness_pattern,
    make_random_select_color_pattern,
    sprinkle_pattern,
)
from glow_discovery import find_devices, format_devices
from glow_effects import (
    ColorMeander,
    FrameSource,
    GlowConfig,
    GlowEngine,
    MeanderStyle,
    meander_frames,
    solid_frames,
    spectrum_frames,
)
from glow_movie import Movie
from glow_protocol import (
    ENDPOINT_LAYOUT,
    ENDPOINT_MODE,
    ENDPOINT_MOVIE_FULL,
    ENDPOINT_MOVIES,
    ENDPOINT_PLAYLIST,
    ENDPOINT_TIMER,
    HEADER_AUTH_TOKEN,
    HTTP_TIMEOUT,
    NAMED_COLORS,
    DeviceIdentifier,
    DeviceInfo,
    DeviceMode,
    GlowError,
    LedLayout,
    LedProfile,
    PlaylistEntry,
    ProtocolError,
    RtProtocolVersion,
    TimerSettings,
    TransportError,
    ValidationError,
    decode_token,
    describe_response_code,
    device_url,
    flatten_rgb,
    is_success_code,
    parse_color,
    to_movie,
)
from glow_transport import FrameTransport

logger = logging.getLogger(__name__)


# =============================================================================
# Input Streams
# =============================================================================

class StreamFormat(Enum):
    """Record formats accepted on a real-time input stream."""
    HEX = "hex"      # one RRGGBB record per line
    JSON = "json"    # one [r, g, b] array per line


class StreamErrorMode(Enum):
    """What to do with a malformed record."""
    IGNORE = "ignore"
    WARN = "warn"
    FAIL = "fail"


def parse_stream_record(line: str, fmt: StreamFormat) -> RGB:
    """
    Parse one LED record.

    Raises:
        ValidationError: if the record is malformed
    """
    text = line.strip()
    if fmt == StreamFormat.HEX:
        value = text.lstrip('#')
        try:
            channels = bytes.fromhex(value)
        except ValueError as e:
            raise ValidationError(f"Expected RRGGBB, got {text!r}") from e
        if len(value) != 6 or len(channels) != 3:
            raise ValidationError(f"Expected RRGGBB, got {text!r}")
        return tuple(channels)

    try:
        record = json.loads(text)
    except ValueError as e:
        raise ValidationError(f"Invalid JSON record {text!r}") from e
    if (not isinstance(record, list) or len(record) != 3
            or not all(isinstance(c, int) and 0 <= c <= 255 for c in record)):
        raise ValidationError(f"Expected [r, g, b] with values 0-255, got {text!r}")
    return tuple(record)


def read_stream_frames(stream: TextIO, fmt: StreamFormat, error_mode: StreamErrorMode,
                       leds_per_frame: int) -> Iterator[list[RGB]]:
    """Group stream records into frames of leds_per_frame LEDs."""
    if leds_per_frame < 1:
        raise ValidationError(f"leds_per_frame must be positive, got {leds_per_frame}")

    frame: list[RGB] = []
    for line_number, line in enumerate(stream, start=1):
        if not line.strip():
            continue
        try:
            frame.append(parse_stream_record(line, fmt))
        except ValidationError as e:
            if error_mode == StreamErrorMode.FAIL:
                raise ValidationError(f"Line {line_number}: {e}") from e
            if error_mode == StreamErrorMode.WARN:
                logger.warning(f"Skipping line {line_number}: {e}")
            continue

        if len(frame) == leds_per_frame:
            yield frame
            frame = []

    if frame:
        logger.debug(f"Discarding incomplete trailing frame of {len(frame)} LEDs")


# =============================================================================
# Static Patterns
# =============================================================================

class PatternType(Enum):
    """Static patterns that can be shown on the whole string."""
    ALTERNATING = "alternating"
    SPECTRUM = "spectrum"
    RANDOM_SELECT = "random-select"
    RANDOM_BLEND = "random-blend"
    RANDOM_COLORS = "random-colors"
    RANDOM_LIGHTNESS = "random-lightness"
    RANDOM_HSL = "random-hsl"
    SPRINKLE = "sprinkle"


def build_pattern(pattern: PatternType, led_count: int, model: ColorModel,
                  colors: Sequence[RGB] = (), hue: float = 0.0, lightness: float = 0.0,
                  freq: Optional[float] = None,
                  rng: Optional[random.Random] = None) -> list[RGB]:
    """
    Render a static pattern.

    Args:
        pattern: Which pattern to build
        led_count: Number of LEDs
        model: Colour model for the HSL based patterns
        colors: Palette for alternating, random-select, random-blend and
            sprinkle (background first, sprinkled colours after)
        hue: Hue for random-lightness
        lightness: Lightness for spectrum and random-colors
        freq: Mean number of sprinkled LEDs, a tenth of the string by default
        rng: Random source

    Raises:
        ValidationError: palette too small for the pattern
    """
    pattern = PatternType(pattern)
    if pattern == PatternType.ALTERNATING:
        return make_alternating_color_pattern(led_count, colors)
    if pattern == PatternType.SPECTRUM:
        return make_color_spectrum_pattern(led_count, 0, lightness, model)
    if pattern == PatternType.RANDOM_SELECT:
        return make_random_select_color_pattern(led_count, colors, rng=rng)
    if pattern == PatternType.RANDOM_BLEND:
        if len(colors) < 2:
            raise ValidationError("random-blend needs two colors")
        return make_random_blend_color_pattern(led_count, colors[0], colors[1], rng=rng)
    if pattern == PatternType.RANDOM_COLORS:
        return make_random_colors_pattern(led_count, lightness, model, rng=rng)
    if pattern == PatternType.RANDOM_LIGHTNESS:
        return make_random_lightness_pattern(led_count, hue, model, rng=rng)
    if pattern == PatternType.SPRINKLE:
        if len(colors) < 2:
            raise ValidationError("sprinkle needs a background and at least one sprinkle color")
        if freq is None:
            freq = led_count / 10
        seed = rng.getrandbits(64) if rng is not None else None
        background = [colors[0]] * led_count
        return sprinkle_pattern(background, colors[1:], freq, np.random.default_rng(seed))
    return make_random_hsl_pattern(led_count, model, rng=rng)


def parse_time_of_day(value: str) -> int:
    """Parse HH:MM[:SS] into seconds after midnight."""
    for fmt in ("%H:%M:%S", "%H:%M"):
        try:
            parsed = datetime.strptime(value.strip(), fmt)
        except ValueError:
            continue
        return parsed.hour * 3600 + parsed.minute * 60 + parsed.second
    raise ValidationError(f"Invalid time {value!r}, expected HH:MM or HH:MM:SS")


# =============================================================================
# Controller
# =============================================================================

class GlowController:
    """
    Session with one device.

    Owns the auth token, the HTTP session and the single UDP socket used for
    real-time frames. Frames are sent one at a time; a new frame goes out
    only after the previous send has returned.
    """

    def __init__(self, host: str, mac: str, session: Optional[requests.Session] = None,
                 rt_version: RtProtocolVersion = RtProtocolVersion.V3,
                 timeout: float = HTTP_TIMEOUT, model: Optional[ColorModel] = None):
        self.host = host
        self.mac = mac
        self.timeout = timeout
        self.session = session or requests.Session()
        self.auth = AuthSession(host, mac, session=self.session, timeout=timeout)
        self.transport = FrameTransport(host, version=rt_version)
        self.model = model or ColorModel()
        self.device_info: Optional[DeviceInfo] = None

    @classmethod
    def from_device(cls, device: DeviceIdentifier, **kwargs) -> 'GlowController':
        """Controller for a discovered device, reusing its token if it has one."""
        controller = cls(str(device.ip_address), device.mac_address, **kwargs)
        if device.token:
            controller.auth.use_token(device.token)
        return controller

    def connect(self) -> DeviceInfo:
        """
        Authenticate (unless a token is already held) and load device info.

        Raises:
            AuthenticationError: handshake failed
            ProtocolError: device info could not be read
            TransportError: device unreachable
        """
        if not self.auth.is_authenticated:
            self.auth.login()
        self.device_info = DeviceInfo.from_json(
            fetch_gestalt(self.session, self.host, token=self.auth.token, timeout=self.timeout)
        )
        logger.info(f"Connected to {self.device_info.device_name or self.host}: "
                    f"{self.device_info.number_of_led} LEDs ({self.device_info.led_profile.value})")
        return self.device_info

    def close(self):
        self.transport.close()

    def __enter__(self) -> 'GlowController':
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    @property
    def token(self) -> Optional[str]:
        return self.auth.token

    @property
    def led_count(self) -> int:
        return self._require_info().number_of_led

    def reauthenticate(self) -> bool:
        """Fetch a fresh token. Returns False if the handshake failed."""
        return self.auth.reauthenticate()

    def _require_info(self) -> DeviceInfo:
        if self.device_info is None:
            raise GlowError(f"Not connected to {self.host}")
        return self.device_info

    # -------------------------------------------------------------------------
    # HTTP API
    # -------------------------------------------------------------------------

    def _headers(self) -> dict:
        token = self.auth.token
        if token is None:
            raise GlowError(f"Not authenticated with {self.host}")
        return {HEADER_AUTH_TOKEN: token}

    def _request(self, method: str, endpoint: str, **kwargs) -> dict:
        """Authenticated JSON request; a failure code in the body raises ProtocolError."""
        data = request_json(self.session, method, device_url(self.host, endpoint),
                            timeout=self.timeout, headers=self._headers(), **kwargs)
        code = data.get('code')
        if code is not None and not is_success_code(code):
            raise ProtocolError(
                f"{method} {endpoint} failed: {code} ({describe_response_code(code)})", code=code
            )
        return data

    def get_mode(self) -> DeviceMode:
        data = self._request('GET', ENDPOINT_MODE)
        try:
            return DeviceMode(data.get('mode'))
        except ValueError as e:
            raise ProtocolError(f"Unknown device mode: {data.get('mode')!r}") from e

    def set_mode(self, mode: DeviceMode):
        self._request('POST', ENDPOINT_MODE, json={'mode': DeviceMode(mode).value})
        logger.debug(f"Set {self.host} to mode {DeviceMode(mode).value}")

    def turn_on(self):
        """Switch to movie mode unless the device is already on."""
        if self.get_mode() == DeviceMode.OFF:
            self.set_mode(DeviceMode.MOVIE)

    def turn_off(self):
        self.set_mode(DeviceMode.OFF)

    def get_timer(self) -> TimerSettings:
        data = self._request('GET', ENDPOINT_TIMER)
        try:
            return TimerSettings(
                time_now=int(data['time_now']),
                time_on=int(data['time_on']),
                time_off=int(data['time_off']),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ProtocolError(f"Malformed timer response: {e}") from e

    def set_formatted_timer(self, time_on: str, time_off: str):
        """Set the daily schedule from HH:MM or HH:MM:SS strings."""
        payload = {
            'time_on': parse_time_of_day(time_on),
            'time_off': parse_time_of_day(time_off),
        }
        self._request('POST', ENDPOINT_TIMER, json=payload)

    def get_playlist(self) -> list[PlaylistEntry]:
        data = self._request('GET', ENDPOINT_PLAYLIST)
        try:
            return [
                PlaylistEntry(
                    id=int(entry['id']),
                    unique_id=entry.get('unique_id', ''),
                    name=entry.get('name', ''),
                    duration=int(entry.get('duration', 0)),
                    handle=int(entry.get('handle', 0)),
                )
                for entry in data.get('entries', [])
            ]
        except (KeyError, TypeError, ValueError) as e:
            raise ProtocolError(f"Malformed playlist response: {e}") from e

    def fetch_layout(self) -> LedLayout:
        return LedLayout.from_json(self._request('GET', ENDPOINT_LAYOUT))

    def get_device_capacity(self) -> int:
        """Number of movie frames that still fit on the device."""
        data = self._request('GET', ENDPOINT_MOVIES)
        try:
            return int(data['available_frames'])
        except (KeyError, TypeError, ValueError) as e:
            raise ProtocolError("Movies response has no available_frames") from e

    def clear_movies(self):
        url = device_url(self.host, ENDPOINT_MOVIES)
        try:
            response = self.session.delete(url, headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportError(f"DELETE {url} failed: {e}") from e
        if not response.ok:
            raise ProtocolError(f"Failed to clear movies: HTTP {response.status_code}")

    def upload_movie(self, movie: Movie, force: bool = False) -> int:
        """
        Upload a movie.

        Args:
            movie: Frames to upload
            force: Clear existing movies first instead of failing when full

        Returns:
            The movie id assigned by the device
        """
        profile = self._require_info().led_profile
        if force:
            self.clear_movies()
        elif len(movie.frames) > self.get_device_capacity():
            raise ValidationError("Not enough capacity for the movie")

        headers = dict(self._headers(), **{'Content-Type': 'application/octet-stream'})
        data = request_json(self.session, 'POST', device_url(self.host, ENDPOINT_MOVIE_FULL),
                            timeout=self.timeout, headers=headers,
                            data=movie.to_bytes(profile))
        try:
            return int(data['id'])
        except (KeyError, TypeError, ValueError) as e:
            raise ProtocolError("Upload response has no movie id") from e

    # -------------------------------------------------------------------------
    # Real-time frames
    # -------------------------------------------------------------------------

    def frame_bytes(self, frame: Sequence[RGB]) -> bytes:
        """Wire bytes of a frame in the device's channel layout."""
        if self._require_info().led_profile == LedProfile.RGBW:
            return to_movie([frame], LedProfile.RGBW)
        return flatten_rgb(frame)

    def send_frame(self, frame: Sequence[RGB]) -> int:
        """
        Send one real-time frame.

        Returns:
            Bytes written to the socket

        Raises:
            ValidationError: the frame length differs from the LED count
            TransportError: the send failed; the next frame may still succeed
        """
        if len(frame) != self.led_count:
            raise ValidationError(f"Frame has {len(frame)} LEDs, device has {self.led_count}")
        token = self.auth.token
        if token is None:
            raise GlowError(f"Not authenticated with {self.host}")
        return self.transport.send_frame(self.frame_bytes(frame), decode_token(token), self.led_count)

    def run_frames(self, source: FrameSource, frame_rate: float, stop_event=None,
                   max_frames: Optional[int] = None, duration: Optional[float] = None) -> int:
        """
        Stream frames from a source at a fixed rate.

        Each tick computes a frame, sends it, then sleeps for what is left of
        the tick. A failed send drops that frame only.

        Args:
            source: Called with the current monotonic time, returns a frame
            frame_rate: Frames per second
            stop_event: Optional threading.Event that ends the loop when set
            max_frames: Stop after this many frames
            duration: Stop after this many seconds

        Returns:
            Number of frames produced
        """
        if frame_rate <= 0:
            raise ValidationError(f"frame_rate must be positive, got {frame_rate}")
        period = 1.0 / frame_rate
        deadline = time.monotonic() + duration if duration is not None else None
        count = 0

        while stop_event is None or not stop_event.is_set():
            started = time.monotonic()
            if deadline is not None and started >= deadline:
                break

            frame = source(started)
            try:
                self.send_frame(frame)
            except TransportError as e:
                logger.warning(f"Dropped frame {count}: {e}")
            count += 1
            if max_frames is not None and count >= max_frames:
                break

            remaining = period - (time.monotonic() - started)
            if remaining > 0:
                if stop_event is not None:
                    stop_event.wait(remaining)
                else:
                    time.sleep(remaining)

        return count

    # -------------------------------------------------------------------------
    # Effects
    # -------------------------------------------------------------------------

    def show_solid_color(self, rgb: RGB, **loop) -> int:
        """Hold every LED at one colour, resending every 100 ms."""
        source = solid_frames(self.led_count, rgb)
        self.set_mode(DeviceMode.REAL_TIME)
        return self.run_frames(source, 10.0, **loop)

    def show_pattern(self, frame: Sequence[RGB], **loop) -> int:
        """Hold a fixed frame, resending every 100 ms."""
        if len(frame) != self.led_count:
            raise ValidationError(f"Pattern has {len(frame)} LEDs, device has {self.led_count}")
        frame = list(frame)
        self.set_mode(DeviceMode.REAL_TIME)
        return self.run_frames(lambda now: frame, 10.0, **loop)

    def shine_leds(self, colors: Sequence[RGB], config: GlowConfig,
                   rng: Optional[random.Random] = None, **loop) -> int:
        """Random LEDs glow up in palette colours and fade out again."""
        engine = GlowEngine(self.led_count, colors, config, rng=rng)
        self.set_mode(DeviceMode.REAL_TIME)
        return self.run_frames(engine, config.frame_rate, **loop)

    def meander(self, style: MeanderStyle = MeanderStyle.SURFACE, speed: float = 0.02,
                noise: float = 0.1, complement: bool = False, frame_rate: float = 20.0,
                rng: Optional[random.Random] = None, **loop) -> int:
        """Whole string slowly drifting through colours."""
        walker = ColorMeander(style, speed=speed, noise=noise, rng=rng)
        source = meander_frames(walker, self.led_count, self.model, complement=complement)
        self.set_mode(DeviceMode.REAL_TIME)
        return self.run_frames(source, frame_rate, **loop)

    def show_real_time_test(self, step: float = 0.02, frame_rate: float = 20.0, **loop) -> int:
        """Rainbow rolling along the vertical axis of the LED layout."""
        self.set_mode(DeviceMode.REAL_TIME)
        layout = self.fetch_layout()
        return self.run_frames(spectrum_frames(layout.coordinates, step), frame_rate, **loop)

    def show_real_time_stdin_stream(self, stream: TextIO, fmt: StreamFormat,
                                    error_mode: StreamErrorMode, leds_per_frame: int,
                                    min_frame_duration: float = 0.0) -> int:
        """
        Stream frames read from a text stream.

        Returns:
            Number of frames sent

        Raises:
            ValidationError: malformed record with error_mode FAIL, or
                leds_per_frame differs from the LED count
        """
        if leds_per_frame != self.led_count:
            raise ValidationError(
                f"Stream frames have {leds_per_frame} LEDs, device has {self.led_count}")
        self.set_mode(DeviceMode.REAL_TIME)
        count = 0
        for frame in read_stream_frames(stream, fmt, error_mode, leds_per_frame):
            started = time.monotonic()
            try:
                self.send_frame(frame)
            except TransportError as e:
                logger.warning(f"Dropped frame {count}: {e}")
            count += 1
            remaining = min_frame_duration - (time.monotonic() - started)
            if remaining > 0:
                time.sleep(remaining)
        return count


# =============================================================================
# CLI Interface
# =============================================================================

def parse_color_list(value: str) -> list[RGB]:
    """Comma separated colours, duplicates removed."""
    colors = [parse_color(part) for part in value.split(',') if part.strip()]
    return list(dict.fromkeys(colors))


def loop_options(args) -> dict:
    return {'duration': args.duration} if args.duration else {}


def cmd_discover(args, controller: Optional[GlowController]):
    """Handle discover command."""
    result = find_devices(timeout=args.timeout)
    if args.output == 'plaintext' and not result.devices:
        print("No devices found. If devices are missing, try increasing the timeout (-t).")
        return
    print(format_devices(result.devices, args.output))


def cmd_get_mode(args, controller: GlowController):
    print(f"Current mode: {controller.get_mode().value}")


def cmd_set_mode(args, controller: GlowController):
    controller.set_mode(DeviceMode(args.mode))
    print(f"Device mode set to {args.mode}")


def cmd_on(args, controller: GlowController):
    controller.turn_on()
    print(f"Turned ON: {controller.host}")


def cmd_off(args, controller: GlowController):
    controller.turn_off()
    print(f"Turned OFF: {controller.host}")


def cmd_get_timer(args, controller: GlowController):
    timer = controller.get_timer()
    print("Current timer settings:")
    print(f"  Time now:         {TimerSettings.format_time(timer.time_now)}")
    print(f"  Time to turn on:  {TimerSettings.format_time(timer.time_on)}")
    print(f"  Time to turn off: {TimerSettings.format_time(timer.time_off)}")


def cmd_set_timer(args, controller: GlowController):
    controller.set_formatted_timer(args.time_on, args.time_off)
    print(f"Timer set: on at {args.time_on}, off at {args.time_off}")


def cmd_get_playlist(args, controller: GlowController):
    entries = controller.get_playlist()
    if not entries:
        print("Playlist is empty.")
        return
    print("Current playlist:")
    for entry in entries:
        print(f"  ID: {entry.id}, Name: {entry.name}, Duration: {entry.duration}s")


def cmd_fetch_layout(args, controller: GlowController):
    layout = controller.fetch_layout()
    if args.json:
        print(json.dumps({
            'source': layout.source,
            'synthesized': layout.synthesized,
            'uuid': layout.uuid,
            'coordinates': [list(c) for c in layout.coordinates],
        }, indent=2))
        return
    print(f"Layout source: {layout.source} (synthesized: {layout.synthesized})")
    for index, (x, y, z) in enumerate(layout.coordinates):
        print(f"  [{index:4d}] x={x:+.3f} y={y:+.3f} z={z:+.3f}")


def cmd_clear_movies(args, controller: GlowController):
    controller.clear_movies()
    print("All movies have been cleared from the device.")


def cmd_get_capacity(args, controller: GlowController):
    print(f"Device capacity for movies: {controller.get_device_capacity()} frames")


def cmd_upload_movie(args, controller: GlowController):
    movie = Movie.load(args.file)
    if movie.num_leds != controller.led_count:
        print(f"Movie has {movie.num_leds} LEDs, device has {controller.led_count}",
              file=sys.stderr)
        sys.exit(1)
    movie_id = controller.upload_movie(movie, force=args.force)
    print(f"Uploaded movie {args.file} as id {movie_id}")


def cmd_print_config(args, controller: GlowController):
    info = controller.device_info
    print("=" * 60)
    print(f"  Device: {info.device_name or '(no name)'}")
    print("=" * 60)
    print(f"  Product:      {info.product_name} ({info.product_code})")
    print(f"  Hardware:     {info.hardware_version}")
    print(f"  Firmware:     {info.fw_family}")
    print(f"  MAC:          {info.mac}")
    print(f"  UUID:         {info.uuid}")
    print()
    print(f"  LEDs:         {info.number_of_led} ({info.led_profile.value}, max {info.max_supported_led})")
    print(f"  Frame rate:   {info.frame_rate} (measured {info.measured_frame_rate})")
    print(f"  Movies:       {info.max_movies} max, capacity {info.movie_capacity} frames")
    print(f"  Uptime:       {info.uptime_ms / 1000:.0f}s")


def cmd_real_time_test(args, controller: GlowController):
    print("Showing real-time test pattern, Ctrl+C to stop.")
    controller.show_real_time_test(step=args.step, frame_rate=args.frame_rate,
                                   **loop_options(args))


def cmd_show_color(args, controller: GlowController):
    rgb = parse_color(args.color)
    print(f"Displaying color {rgb}, Ctrl+C to stop.")
    controller.show_solid_color(rgb, **loop_options(args))


def cmd_shine(args, controller: GlowController):
    config = GlowConfig(
        time_between_glow_start=args.time_between_glow_start,
        time_to_max_glow=args.time_to_max_glow,
        time_to_fade=args.time_to_fade,
        frame_rate=args.frame_rate,
        num_start_simultaneous=args.num_start_simultaneous,
    )
    print("Shine effect started, Ctrl+C to stop.")
    controller.shine_leds(parse_color_list(args.colors), config, **loop_options(args))


def cmd_show_pattern(args, controller: GlowController):
    frame = build_pattern(
        PatternType(args.pattern),
        controller.led_count,
        controller.model,
        colors=parse_color_list(args.colors),
        hue=args.hue,
        lightness=args.lightness,
        freq=args.freq,
    )
    print(f"Showing {args.pattern} pattern, Ctrl+C to stop.")
    controller.show_pattern(frame, **loop_options(args))


def cmd_meander(args, controller: GlowController):
    print("Meander effect started, Ctrl+C to stop.")
    controller.meander(
        style=MeanderStyle(args.style),
        speed=args.speed,
        noise=args.noise,
        complement=args.complement,
        frame_rate=args.frame_rate,
        **loop_options(args),
    )


def cmd_rt_stdin(args, controller: GlowController):
    count = controller.show_real_time_stdin_stream(
        sys.stdin,
        StreamFormat(args.format),
        StreamErrorMode(args.error_mode),
        args.leds_per_frame,
        args.min_frame_duration,
    )
    print(f"Streamed {count} frame(s).", file=sys.stderr)


def main():
    parser = argparse.ArgumentParser(
        description='Glow Device Controller - Discover and control LED string devices.',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Commands:
  discover             Find devices on the network
  get-mode / set-mode  Read or change the LED mode
  on / off             Power the LEDs on or off
  get-timer / set-timer  Read or change the daily on/off schedule
  get-playlist         List playlist entries
  fetch-layout         Show LED coordinates
  get-capacity         Remaining movie capacity
  clear-movies         Delete all movies
  upload-movie FILE    Upload a movie file
  print-config         Show device information
  real-time-test       Rolling rainbow along the layout
  show-color COLOR     Solid colour
  show-pattern NAME    Static pattern (alternating, spectrum, random-*, sprinkle)
  shine                Random glowing LEDs
  meander              Slowly drifting colour
  rt-stdin             Stream frames from stdin

Color formats:
  Named:   {', '.join(sorted(NAMED_COLORS))}
  Hex:     #FF0000 or FF0000
  RGB:     rgb(255, 0, 0)

Examples:
  glow_control.py discover -o json
  glow_control.py --ip 192.168.1.50 --mac 12:34:56:78:9a:bc show-color red
  glow_control.py --ip 192.168.1.50 --mac 12:34:56:78:9a:bc shine --colors red,mint,#FFAA00
  generate_frames | glow_control.py --ip 192.168.1.50 --mac 12:34:56:78:9a:bc rt-stdin --leds-per-frame 250
        """
    )

    # Global options
    parser.add_argument('--ip', help='Device IP address')
    parser.add_argument('--mac', help='Device MAC address (xx:xx:xx:xx:xx:xx)')
    parser.add_argument('--rt-version', type=int, choices=[1, 2, 3], default=3,
                        help='Real-time protocol version (default: 3)')
    parser.add_argument('--http-timeout', type=float, default=HTTP_TIMEOUT,
                        help=f'HTTP request timeout in seconds (default: {HTTP_TIMEOUT})')
    parser.add_argument('--color-style',
                        choices=sorted(COLOR_STYLE_NAMES) + sorted(LIGHTNESS_POLICY_NAMES),
                        help='Hue ramp or lightness policy for HSL colours')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Verbose output')

    subparsers = parser.add_subparsers(dest='command', help='Command')

    discover_parser = subparsers.add_parser('discover', help='Discover devices')
    discover_parser.add_argument('-t', '--timeout', type=float, default=5.0,
                                 help='Scan duration in seconds (default: 5.0)')
    discover_parser.add_argument('-o', '--output', choices=['plaintext', 'json', 'yaml'],
                                 default='plaintext', help='Output format (default: plaintext)')

    subparsers.add_parser('get-mode', help='Show current LED mode')
    set_mode_parser = subparsers.add_parser('set-mode', help='Set LED mode')
    set_mode_parser.add_argument('mode', choices=[m.value for m in DeviceMode])

    subparsers.add_parser('on', help='Turn LEDs on')
    subparsers.add_parser('off', help='Turn LEDs off')

    subparsers.add_parser('get-timer', help='Show timer')
    timer_parser = subparsers.add_parser('set-timer', help='Set timer')
    timer_parser.add_argument('time_on', help='Switch-on time (HH:MM or HH:MM:SS)')
    timer_parser.add_argument('time_off', help='Switch-off time (HH:MM or HH:MM:SS)')

    subparsers.add_parser('get-playlist', help='Show playlist')
    layout_parser = subparsers.add_parser('fetch-layout', help='Show LED layout')
    layout_parser.add_argument('--json', action='store_true', help='JSON output')
    subparsers.add_parser('get-capacity', help='Show remaining movie capacity')
    subparsers.add_parser('clear-movies', help='Delete all movies')

    upload_parser = subparsers.add_parser('upload-movie', help='Upload a movie file')
    upload_parser.add_argument('file', help='Movie file')
    upload_parser.add_argument('--force', action='store_true',
                               help='Clear existing movies before uploading')

    subparsers.add_parser('print-config', help='Show device information')

    # Real-time effects
    def add_loop_args(sub):
        sub.add_argument('-d', '--duration', type=float, default=0,
                         help='Stop after this many seconds (default: run until Ctrl+C)')

    test_parser = subparsers.add_parser('real-time-test', help='Rolling rainbow test pattern')
    test_parser.add_argument('--step', type=float, default=0.02,
                             help='Rainbow shift per frame (default: 0.02)')
    test_parser.add_argument('--frame-rate', type=float, default=20.0,
                             help='Frames per second (default: 20)')
    add_loop_args(test_parser)

    color_parser = subparsers.add_parser('show-color', help='Show a solid colour')
    color_parser.add_argument('color', help='Color (name, hex, rgb())')
    add_loop_args(color_parser)

    pattern_parser = subparsers.add_parser('show-pattern', help='Show a static pattern')
    pattern_parser.add_argument('pattern', choices=[p.value for p in PatternType])
    pattern_parser.add_argument('--colors', default='red,green,blue',
                                help='Comma separated palette (default: red,green,blue)')
    pattern_parser.add_argument('--hue', type=float, default=0.0,
                                help='Hue 0-1 for random-lightness (default: 0)')
    pattern_parser.add_argument('--lightness', type=float, default=0.0,
                                help='Lightness -1 to 1 for spectrum and random-colors (default: 0)')
    pattern_parser.add_argument('--freq', type=float, default=None,
                                help='Mean number of sprinkled LEDs (default: a tenth of the string)')
    add_loop_args(pattern_parser)

    shine_parser = subparsers.add_parser('shine', help='Random glowing LEDs')
    shine_parser.add_argument('--colors', default='red,green,blue',
                              help='Comma separated palette (default: red,green,blue)')
    shine_parser.add_argument('--num-start-simultaneous', type=int, default=1,
                              help='LEDs started per batch (default: 1)')
    shine_parser.add_argument('--time-between-glow-start', type=float, default=0.1,
                              help='Seconds between batches (default: 0.1)')
    shine_parser.add_argument('--time-to-max-glow', type=float, default=1.0,
                              help='Rise time in seconds (default: 1.0)')
    shine_parser.add_argument('--time-to-fade', type=float, default=2.0,
                              help='Fade time in seconds (default: 2.0)')
    shine_parser.add_argument('--frame-rate', type=float, default=20.0,
                              help='Frames per second (default: 20)')
    add_loop_args(shine_parser)

    meander_parser = subparsers.add_parser('meander', help='Slowly drifting colour')
    meander_parser.add_argument('--style', choices=[s.value for s in MeanderStyle],
                                default=MeanderStyle.SURFACE.value,
                                help='Shape of the colour walk (default: surface)')
    meander_parser.add_argument('--speed', type=float, default=0.02,
                                help='Step length per frame (default: 0.02)')
    meander_parser.add_argument('--noise', type=float, default=0.1,
                                help='Direction noise per frame (default: 0.1)')
    meander_parser.add_argument('--complement', action='store_true',
                                help='Alternate LEDs with the complementary colour')
    meander_parser.add_argument('--frame-rate', type=float, default=20.0,
                                help='Frames per second (default: 20)')
    add_loop_args(meander_parser)

    stdin_parser = subparsers.add_parser('rt-stdin', help='Stream frames from stdin')
    stdin_parser.add_argument('--format', choices=[f.value for f in StreamFormat],
                              default=StreamFormat.HEX.value,
                              help='Record format, one LED per line (default: hex)')
    stdin_parser.add_argument('--error-mode', choices=[m.value for m in StreamErrorMode],
                              default=StreamErrorMode.WARN.value,
                              help='Handling of malformed records (default: warn)')
    stdin_parser.add_argument('--leds-per-frame', type=int, required=True,
                              help='LEDs to read before sending a frame')
    stdin_parser.add_argument('--min-frame-duration', type=float, default=0.0,
                              help='Minimum seconds between frames (default: 0)')

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(0)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    commands = {
        'discover': cmd_discover,
        'get-mode': cmd_get_mode,
        'set-mode': cmd_set_mode,
        'on': cmd_on,
        'off': cmd_off,
        'get-timer': cmd_get_timer,
        'set-timer': cmd_set_timer,
        'get-playlist': cmd_get_playlist,
        'fetch-layout': cmd_fetch_layout,
        'get-capacity': cmd_get_capacity,
        'clear-movies': cmd_clear_movies,
        'upload-movie': cmd_upload_movie,
        'print-config': cmd_print_config,
        'real-time-test': cmd_real_time_test,
        'show-color': cmd_show_color,
        'show-pattern': cmd_show_pattern,
        'shine': cmd_shine,
        'meander': cmd_meander,
        'rt-stdin': cmd_rt_stdin,
    }
    cmd_func = commands[args.command]

    if args.command == 'discover':
        try:
            cmd_func(args, None)
        except GlowError as e:
            print(f"Discovery failed: {e}", file=sys.stderr)
            sys.exit(1)
        return

    if not args.ip or not args.mac:
        print(f"--ip and --mac are required for {args.command}", file=sys.stderr)
        sys.exit(1)

    try:
        controller = GlowController(
            args.ip, args.mac,
            rt_version=RtProtocolVersion(args.rt_version),
            timeout=args.http_timeout,
            model=ColorModel.from_style(args.color_style) if args.color_style else None,
        )
    except ValueError as e:
        print(f"Invalid device address: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        controller.connect()
        cmd_func(args, controller)
    except KeyboardInterrupt:
        print("\nStopped.")
    except (GlowError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        controller.close()


if __name__ == '__main__':
    main()
