#!/usr/bin/env python3
"""
Glow Color Model

Device-accurate colour conversion for LED strings: per-channel balance,
gamma, perceptual brightness weights and an HSL mapping whose hue ramp and
lightness policy compensate for unequal channel strength.

Also provides the frame pattern helpers built on top of the model.
"""

import math
import random
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

import numpy as np

from glow_protocol import ValidationError


RGB = tuple[int, int, int]


# =============================================================================
# Enums
# =============================================================================

class ColorStyle(Enum):
    """Hue ramp anchors; the name is the number of distinct colour stops."""
    COL3 = (0.0, 1 / 6, 2 / 6, 3 / 6, 4 / 6, 5 / 6, 1.0)
    COL4 = (0.0, 1 / 8, 1 / 4, 2 / 4, 3 / 4, 7 / 8, 1.0)
    COL6 = (0.0, 1 / 12, 1 / 6, 1 / 3, 2 / 3, 3 / 4, 1.0)
    COL8 = (0.0, 1 / 8, 2 / 8, 3 / 8, 5 / 8, 6 / 8, 1.0)
    COL10 = (0.0, 2 / 10, 3 / 10, 4 / 10, 7 / 10, 8 / 10, 1.0)

    @property
    def hue_ramp(self) -> tuple[float, ...]:
        return self.value


class LightnessPolicy(Enum):
    """How lightness is split between hue and grey."""
    LINEAR = "linear"
    EQUILIGHT = "equilight"


COLOR_STYLE_NAMES = {
    '3col': ColorStyle.COL3,
    '4col': ColorStyle.COL4,
    '6col': ColorStyle.COL6,
    '8col': ColorStyle.COL8,
    '10col': ColorStyle.COL10,
}

LIGHTNESS_POLICY_NAMES = {
    'linear': LightnessPolicy.LINEAR,
    'equilight': LightnessPolicy.EQUILIGHT,
}


# =============================================================================
# Transfer Functions
# =============================================================================

def srgb_encode(x: float) -> float:
    """Linear light to sRGB encoded value."""
    if x > 0.0031308:
        return x ** (1 / 2.4) * 1.055 - 0.055
    return x * 12.92


def srgb_decode(x: float) -> float:
    """sRGB encoded value to linear light."""
    if x > 0.04045:
        return ((x + 0.055) / 1.055) ** 2.4
    return x / 12.92


def to_byte(value: float) -> int:
    """Round half away from zero and clamp to 0..255."""
    return int(min(255.0, max(0.0, math.floor(value + 0.5))))


# =============================================================================
# Color Model
# =============================================================================

@dataclass(frozen=True)
class ColorModel:
    """
    Colour parameters of a device.

    Defaults are calibrated for the common RGB strings: green is the
    strongest channel and blue the weakest.
    """
    gamma: float = 1.0
    brightness: tuple[float, float, float] = (0.35, 0.50, 0.15)
    balance: tuple[float, float, float] = (0.9, 1.0, 0.6)
    style: ColorStyle = ColorStyle.COL8
    policy: LightnessPolicy = LightnessPolicy.EQUILIGHT

    @classmethod
    def from_style(cls, name: str, **kwargs) -> 'ColorModel':
        """
        Create a model from a style keyword.

        Accepts a ramp name (3col, 4col, 6col, 8col, 10col) or a lightness
        policy name (linear, equilight).
        """
        key = name.strip().lower()
        if key in COLOR_STYLE_NAMES:
            kwargs['style'] = COLOR_STYLE_NAMES[key]
        elif key in LIGHTNESS_POLICY_NAMES:
            kwargs['policy'] = LIGHTNESS_POLICY_NAMES[key]
        else:
            raise ValidationError(f"Unknown color style: {name}")
        return cls(**kwargs)

    # -------------------------------------------------------------------------
    # Gamma
    # -------------------------------------------------------------------------

    def color_gamma(self, x: float) -> float:
        if self.gamma == 1.0:
            return x
        return x ** self.gamma

    def inv_color_gamma(self, x: float) -> float:
        if self.gamma == 1.0:
            return x
        return x ** (1.0 / self.gamma)

    def color_brightness(self, r: float, g: float, b: float) -> float:
        """Perceived brightness of a normalized colour."""
        return r * self.brightness[0] + g * self.brightness[1] + b * self.brightness[2]

    # -------------------------------------------------------------------------
    # RGB conversions
    # -------------------------------------------------------------------------

    def rgb_color(self, r: float, g: float, b: float) -> RGB:
        """
        Convert a normalized (0..1) colour into device channel bytes.

        Args:
            r, g, b: Channel intensities in 0..1

        Returns:
            Balance and gamma corrected (r, g, b) bytes
        """
        return tuple(
            to_byte(255.0 * bal * self.color_gamma(max(0.0, c)))
            for c, bal in zip((r, g, b), self.balance)
        )

    def image_to_led_rgb(self, r: int, g: int, b: int) -> RGB:
        """Convert an 8-bit sRGB image colour into device channel bytes."""
        return tuple(
            to_byte(255.0 * bal * self.color_gamma(srgb_decode(c / 255.0)))
            for c, bal in zip((r, g, b), self.balance)
        )

    def led_to_image_rgb(self, r: int, g: int, b: int) -> RGB:
        """Convert device channel bytes back into an 8-bit sRGB image colour."""
        return tuple(
            to_byte(255.0 * srgb_encode(self.inv_color_gamma(min(1.0, c / (bal * 255.0)))))
            for c, bal in zip((r, g, b), self.balance)
        )

    # -------------------------------------------------------------------------
    # HSL
    # -------------------------------------------------------------------------

    def _hue_vector(self, h: float) -> tuple[float, float, float]:
        """Unit-normalized channel vector for a hue in 0..1."""
        ramp = self.style.hue_ramp
        ir, ig, ib = (1.0 / bal for bal in self.balance)
        irg, irb, igb = min(ir, ig), min(ir, ib), min(ig, ib)
        anchors = (
            (0.0, 0.0, ib),
            (0.0, igb / 2, igb / 2),
            (0.0, ig, 0.0),
            (irg / 2, irg / 2, 0.0),
            (ir, 0.0, 0.0),
            (irb / 2, 0.0, irb / 2),
            (0.0, 0.0, ib),
        )

        i = 0
        while h > ramp[i + 1]:
            i += 1
        p = (h - ramp[i]) / (ramp[i + 1] - ramp[i])
        r, g, b = (
            lo + p * (hi - lo)
            for lo, hi in zip(anchors[i], anchors[i + 1])
        )

        nrm = max(r / ir, g / ig, b / ib)
        return r / nrm, g / nrm, b / nrm

    def hsl_color(self, h: float, s: float, l: float) -> RGB:
        """
        Convert hue/saturation/lightness into device channel bytes.

        Args:
            h: Hue in 0..1 (values outside wrap around)
            s: Saturation in 0..1
            l: Lightness in -1..1; -1 is black, 0 the pure hue, 1 white

        Returns:
            (r, g, b) bytes
        """
        if not 0.0 <= h <= 1.0:
            h = h % 1.0
        r, g, b = self._hue_vector(h)
        ll = (l + 1.0) / 2

        if self.policy == LightnessPolicy.LINEAR:
            if ll < 0.5:
                t1, t2 = l + 1.0, 0.0
            else:
                t1, t2 = 1.0 - l, l
        else:
            br = self.color_brightness(r, g, b)
            e = max(r, g, b)
            p = 1.0
            if br < 1.0:
                p = min(p, (1.0 - ll / e) / (1.0 - br))
            if self.brightness[1] < 1.0:
                p = min(p, (1.0 - ll * self.balance[1]) / (1.0 - self.brightness[1]))
            t1 = ll * p / ((br - e) * p + e)
            t2 = max(0.0, ll - t1 * br)

        t1 = s * t1
        t2 = s * t2 + ll * (1.0 - s)
        return self.rgb_color(r * t1 + t2, g * t1 + t2, b * t1 + t2)


# =============================================================================
# Pattern Helpers
# =============================================================================

def dim_color(rgb: RGB, prop: float) -> RGB:
    """Scale a colour by prop, clamped to byte range."""
    return tuple(int(min(255.0, max(0.0, c * prop))) for c in rgb)


def blend_colors(rgb1: RGB, rgb2: RGB, prop: float) -> RGB:
    """Linear blend: prop=0 gives rgb1, prop=1 gives rgb2."""
    return tuple(
        int(min(255.0, max(0.0, c1 * (1.0 - prop) + c2 * prop)))
        for c1, c2 in zip(rgb1, rgb2)
    )


def random_color(rng: Optional[random.Random] = None) -> RGB:
    rng = rng or random.Random()
    return (rng.randint(0, 255), rng.randint(0, 255), rng.randint(0, 255))


def random_discrete(probs: Sequence[float], rng: Optional[random.Random] = None) -> int:
    """
    Pick an index according to a probability table.

    Raises:
        ValidationError: if the probabilities do not sum to 1
    """
    if abs(sum(probs) - 1.0) > 1e-5:
        raise ValidationError("Probabilities do not sum up to 1.0")
    rng = rng or random.Random()
    return rng.choices(range(len(probs)), weights=probs)[0]


def random_poisson(lam: float, rng: Optional[np.random.Generator] = None) -> int:
    """
    Draw a Poisson distributed count with mean lam.

    Raises:
        ValidationError: if lam is negative
    """
    if lam < 0:
        raise ValidationError(f"Poisson mean must not be negative, got {lam}")
    rng = rng or np.random.default_rng()
    return int(rng.poisson(lam))


def sprinkle_pattern(pattern: Sequence[RGB], colors: Sequence[RGB], freq: float,
                     rng: Optional[np.random.Generator] = None) -> list[RGB]:
    """
    Overwrite a random number of LEDs with palette colours.

    The number of LEDs touched is Poisson distributed with mean freq and
    capped at the pattern length; each picked LED gets a random palette
    colour. The input pattern is left unchanged.

    Raises:
        ValidationError: if the palette is empty or freq is negative
    """
    if not colors:
        raise ValidationError("Color list is empty")
    rng = rng or np.random.default_rng()
    result = list(pattern)
    count = min(random_poisson(freq, rng), len(result))
    for index in rng.choice(len(result), size=count, replace=False):
        result[int(index)] = colors[int(rng.integers(len(colors)))]
    return result


def make_alternating_color_pattern(leds: int, colors: Sequence[RGB]) -> list[RGB]:
    if not colors:
        raise ValidationError("Color list is empty")
    return [colors[i % len(colors)] for i in range(leds)]


def make_color_spectrum_pattern(leds: int, offset: int, lightness: float,
                                model: ColorModel) -> list[RGB]:
    """Full hue circle spread across the string, rotated by offset LEDs."""
    return [
        model.hsl_color(((i + offset) % leds) / leds, 1.0, lightness)
        for i in range(leds)
    ]


def make_random_select_color_pattern(leds: int, colors: Sequence[RGB],
                                     probs: Optional[Sequence[float]] = None,
                                     rng: Optional[random.Random] = None) -> list[RGB]:
    if not colors:
        raise ValidationError("Color list is empty")
    rng = rng or random.Random()
    if probs is None:
        return [rng.choice(colors) for _ in range(leds)]
    if len(probs) != len(colors):
        raise ValidationError("Need one probability per color")
    return [colors[random_discrete(probs, rng)] for _ in range(leds)]


def make_random_blend_color_pattern(leds: int, rgb1: RGB, rgb2: RGB,
                                    rng: Optional[random.Random] = None) -> list[RGB]:
    rng = rng or random.Random()
    return [blend_colors(rgb1, rgb2, rng.random()) for _ in range(leds)]


def make_random_colors_pattern(leds: int, lightness: float, model: ColorModel,
                               rng: Optional[random.Random] = None) -> list[RGB]:
    rng = rng or random.Random()
    return [model.hsl_color(rng.random(), 1.0, lightness) for _ in range(leds)]


def make_random_lightness_pattern(leds: int, hue: float, model: ColorModel,
                                  rng: Optional[random.Random] = None) -> list[RGB]:
    rng = rng or random.Random()
    return [model.hsl_color(hue, 1.0, rng.uniform(-1.0, 1.0)) for _ in range(leds)]


def make_random_hsl_pattern(leds: int, model: ColorModel,
                            hue: tuple[float, float] = (0.0, 1.0),
                            sat: tuple[float, float] = (0.0, 1.0),
                            light: tuple[float, float] = (0.0, 1.0),
                            rng: Optional[random.Random] = None) -> list[RGB]:
    """Each LED gets an HSL colour drawn uniformly from the given ranges."""
    rng = rng or random.Random()
    return [
        model.hsl_color(rng.uniform(*hue), rng.uniform(*sat), rng.uniform(*light))
        for _ in range(leds)
    ]
