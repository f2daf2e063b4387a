#!/usr/bin/env python3
"""
Glow Effects Library

Real-time lighting effects for LED strings. Each effect is a frame source:
a callable taking the current time in seconds and returning one colour per
LED. Frame sources are streamed to a device by GlowController.run_frames,
either in the foreground or on a background thread via EffectRunner.
"""

import colorsys
import logging
import math
import random
import threading
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, Optional, Sequence

from glow_color import RGB, ColorModel, to_byte
from glow_protocol import ValidationError

logger = logging.getLogger(__name__)

FrameSource = Callable[[float], list[RGB]]


# =============================================================================
# Effect Types
# =============================================================================

class EffectType(Enum):
    """Available real-time effects."""
    SOLID = auto()
    SHINE = auto()
    MEANDER = auto()
    SPECTRUM = auto()


# =============================================================================
# Glow
# =============================================================================

@dataclass
class GlowConfig:
    """Timing for the shine effect. All durations are in seconds."""
    time_between_glow_start: float = 0.1
    time_to_max_glow: float = 1.0
    time_to_fade: float = 2.0
    frame_rate: float = 20.0
    num_start_simultaneous: int = 1

    @property
    def cycle_duration(self) -> float:
        return self.time_to_max_glow + self.time_to_fade


class GlowEngine:
    """
    Per-LED rise-then-fade animation.

    Every LED runs its own glow cycle: brightness ramps from 0 to 1 over
    time_to_max_glow, then back to 0 over time_to_fade. New cycles are
    started in batches on idle LEDs with a colour picked from the palette.
    """

    def __init__(self, led_count: int, colors: Sequence[RGB], config: GlowConfig,
                 rng: Optional[random.Random] = None):
        if not colors:
            raise ValidationError("colors must not be empty")
        if not 1 <= config.num_start_simultaneous <= led_count:
            raise ValidationError(
                f"num_start_simultaneous must be between 1 and {led_count}, "
                f"got {config.num_start_simultaneous}"
            )
        if config.frame_rate <= 0:
            raise ValidationError(f"frame_rate must be positive, got {config.frame_rate}")

        self.led_count = led_count
        self.colors = list(colors)
        self.config = config
        self.rng = rng or random.Random()

        # All LEDs start fully faded and are eligible immediately
        self._start_times = [-math.inf] * led_count
        self._led_colors: list[RGB] = [(0, 0, 0)] * led_count
        self._last_batch = -math.inf

    @property
    def start_times(self) -> tuple[float, ...]:
        return tuple(self._start_times)

    @property
    def led_colors(self) -> tuple[RGB, ...]:
        return tuple(self._led_colors)

    def brightness(self, index: int, now: float) -> float:
        """Brightness of one LED in 0..1 at the given time."""
        elapsed = now - self._start_times[index]
        rise = self.config.time_to_max_glow
        fade = self.config.time_to_fade
        if elapsed < rise:
            return elapsed / rise
        if elapsed < rise + fade:
            return 1.0 - (elapsed - rise) / fade
        return 0.0

    def start_batch(self, now: float) -> list[int]:
        """Start new cycles on idle LEDs if the batch interval has passed."""
        if now - self._last_batch < self.config.time_between_glow_start:
            return []

        idle = [
            i for i in range(self.led_count)
            if now - self._start_times[i] >= self.config.cycle_duration
        ]
        self.rng.shuffle(idle)
        started = idle[:self.config.num_start_simultaneous]
        for i in started:
            self._start_times[i] = now
            self._led_colors[i] = self.rng.choice(self.colors)

        self._last_batch = now
        return started

    def tick(self, now: float) -> list[RGB]:
        """Advance the animation and return the frame for this instant."""
        self.start_batch(now)
        frame = []
        for i, (r, g, b) in enumerate(self._led_colors):
            level = self.brightness(i, now)
            frame.append((to_byte(r * level), to_byte(g * level), to_byte(b * level)))
        return frame

    __call__ = tick


# =============================================================================
# Color Meander
# =============================================================================

class MeanderStyle(Enum):
    """Shape the meandering colour point is confined to."""
    SPHERE = "sphere"
    CYLINDER = "cylinder"
    SURFACE = "surface"


def _normalize(vec: tuple[float, float, float]) -> tuple[float, float, float]:
    nrm = math.sqrt(vec[0] ** 2 + vec[1] ** 2 + vec[2] ** 2)
    if nrm == 0.0:
        return (0.0, 0.0, 0.0)
    return (vec[0] / nrm, vec[1] / nrm, vec[2] / nrm)


class ColorMeander:
    """
    Slowly drifting ambient colour.

    A point wanders through a colour solid (x, y span hue and saturation,
    z is lightness), moving step_length per step in a direction that picks
    up uniform noise every step.
    """

    def __init__(self, style: MeanderStyle = MeanderStyle.SURFACE, speed: float = 0.02,
                 noise: float = 0.1, start: tuple[float, float, float] = (0.0, 0.0, 0.0),
                 rng: Optional[random.Random] = None):
        self.style = MeanderStyle(style)
        self.step_length = speed
        self.noise_level = noise
        self.rng = rng or random.Random()
        self.position = tuple(float(c) for c in start)
        self.direction = _normalize((
            self.rng.uniform(-0.5, 0.5),
            self.rng.uniform(-0.5, 0.5),
            self.rng.uniform(-0.5, 0.5) - start[2],
        ))

    def _noise(self) -> float:
        if self.noise_level == 0:
            return 0.0
        return self.rng.uniform(-self.noise_level, self.noise_level)

    def step(self):
        """Move the point one step and perturb its direction."""
        x, y, z = self.position
        dx, dy, dz = self.direction
        nx = x + dx * self.step_length
        ny = y + dy * self.step_length
        nz = z + dz * self.step_length

        if self.style == MeanderStyle.CYLINDER:
            nz = min(1.0, max(-1.0, nz))
            radius = math.hypot(nx, ny)
            if radius > 1.0:
                nx, ny = nx / radius, ny / radius
                dx, dy, dz = _normalize((nx - x, ny - y, nz - z))
        elif self.style == MeanderStyle.SURFACE:
            radius = math.sqrt(nx * nx + ny * ny + nz * nz)
            if radius > 0.0:
                nx, ny, nz = nx / radius, ny / radius, nz / radius
                dx, dy, dz = _normalize((nx - x, ny - y, nz - z))
        else:
            radius = math.sqrt(nx * nx + ny * ny + nz * nz)
            if radius > 1.0:
                scale = radius * radius
                nx, ny, nz = nx / scale, ny / scale, nz / scale
                dx, dy, dz = _normalize((nx - x, ny - y, nz - z))

        dx += self._noise()
        dy += self._noise()
        dz += self._noise()

        if self.style == MeanderStyle.CYLINDER and abs(nz + dz) > 1.0:
            # Bend the direction so the next step ends on the cap
            sgn = 1.0 if nz + dz > 0 else -1.0
            dz = sgn - nz
            delta = math.sqrt(max(0.0, 1.0 - dz * dz))
            planar = math.hypot(dx, dy)
            if planar > 0.0:
                dx, dy = dx * delta / planar, dy * delta / planar

        new_dir = _normalize((dx, dy, dz))
        if new_dir != (0.0, 0.0, 0.0):
            self.direction = new_dir
        self.position = (nx, ny, nz)

    def xyz_to_hsl(self, x: float, y: float, z: float) -> tuple[float, float, float]:
        h = math.atan2(y, x) / (2 * math.pi) + 0.5
        if self.style == MeanderStyle.CYLINDER:
            return h, min(1.0, math.hypot(x, y)), z

        z = min(1.0, max(-1.0, z))
        l = math.asin(z) * 2 / math.pi
        r0 = math.sqrt(1.0 - z * z)
        s = min(1.0, math.hypot(x, y) / r0) if r0 > 0.0 else 0.0
        return h, s, l

    @property
    def hsl(self) -> tuple[float, float, float]:
        return self.xyz_to_hsl(*self.position)

    def get(self, model: ColorModel) -> RGB:
        """Current colour."""
        return model.hsl_color(*self.hsl)

    def get_complement(self, model: ColorModel) -> RGB:
        """Colour on the opposite side of the hue circle, same lightness."""
        x, y, z = self.position
        return model.hsl_color(*self.xyz_to_hsl(-x, -y, z))


def meander_frames(meander: ColorMeander, led_count: int, model: ColorModel,
                   complement: bool = False) -> FrameSource:
    """Frame source that steps the meander once per frame."""
    def source(now: float) -> list[RGB]:
        meander.step()
        color = meander.get(model)
        if not complement:
            return [color] * led_count
        other = meander.get_complement(model)
        return [color if i % 2 == 0 else other for i in range(led_count)]
    return source


# =============================================================================
# Static Frames
# =============================================================================

def solid_frames(led_count: int, rgb: RGB) -> FrameSource:
    frame = [tuple(rgb)] * led_count
    return lambda now: frame


def axis_gradient_frame(coordinates: Sequence[tuple[float, float, float]],
                        offset: float, axis: int = 2) -> list[RGB]:
    """
    Rainbow laid out along one axis of the LED layout.

    Args:
        coordinates: (x, y, z) position of each LED
        offset: Rotation of the rainbow in 0..1
        axis: 0, 1 or 2 for x, y or z

    Returns:
        One fully saturated colour per LED
    """
    if not 0.0 <= offset < 1.0:
        raise ValidationError(f"Offset must be in [0, 1), got {offset}")
    if not coordinates:
        return []

    values = [c[axis] for c in coordinates]
    low, high = min(values), max(values)
    span = high - low

    frame = []
    for value in values:
        hue = ((value - low + span * offset) % span) / span if span > 0 else offset
        r, g, b = colorsys.hls_to_rgb(hue, 0.5, 1.0)
        frame.append((to_byte(r * 255), to_byte(g * 255), to_byte(b * 255)))
    return frame


def spectrum_frames(coordinates: Sequence[tuple[float, float, float]],
                    step: float = 0.02, axis: int = 2) -> FrameSource:
    """Axis gradient that rotates by step on every frame."""
    state = {'offset': 0.0}

    def source(now: float) -> list[RGB]:
        frame = axis_gradient_frame(coordinates, state['offset'], axis)
        state['offset'] = (state['offset'] + step) % 1.0
        return frame
    return source


# =============================================================================
# Effect Runner
# =============================================================================

class EffectRunner:
    """
    Runs one frame source on a controller in a background thread.

    Starting a new effect stops the previous one first.
    """

    def __init__(self):
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def is_running(self) -> bool:
        with self._lock:
            return self._thread is not None and self._thread.is_alive()

    def stop(self, timeout: float = 1.0):
        """
        Stop the running effect and wait until its thread has exited.

        A thread still busy after each timeout is logged and waited on again,
        so two effects never stream to the same controller at once.
        """
        self._stop.set()
        with self._lock:
            thread = self._thread
        if thread is None or thread is threading.current_thread():
            return
        thread.join(timeout)
        while thread.is_alive():
            logger.warning(f"Effect thread still running after {timeout}s, waiting for it to exit")
            thread.join(timeout)

    def run_effect(self, controller, source: FrameSource, frame_rate: float,
                   on_complete: Optional[Callable] = None):
        """
        Stream a frame source to a controller until stopped.

        Args:
            controller: A connected GlowController
            source: Frame source to stream
            frame_rate: Frames per second
            on_complete: Optional callback when the effect ends
        """
        self.stop()
        self._stop = threading.Event()
        stop_event = self._stop

        def run():
            try:
                controller.run_frames(source, frame_rate, stop_event=stop_event)
            except Exception as e:
                logger.error(f"Effect on {controller.host} stopped: {e}")
            finally:
                if on_complete:
                    on_complete()

        thread = threading.Thread(target=run, daemon=True)
        with self._lock:
            self._thread = thread
        thread.start()


def list_effects() -> list[str]:
    """Get list of available effect names."""
    return [effect.name.lower() for effect in EffectType]
