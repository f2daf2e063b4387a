"""Tests for the device colour model and pattern helpers."""

import random

import numpy as np
import pytest

from glow_color import (
    ColorModel,
    ColorStyle,
    LightnessPolicy,
    blend_colors,
    dim_color,
    make_alternating_color_pattern,
    make_color_spectrum_pattern,
    make_random_blend_color_pattern,
    make_random_colors_pattern,
    make_random_hsl_pattern,
    make_random_lightness_pattern,
    make_random_select_color_pattern,
    sprinkle_pattern,
    random_discrete,
    random_poisson,
    srgb_decode,
    srgb_encode,
    to_byte,
)
from glow_protocol import ValidationError

HUES = [i / 12 for i in range(13)]
MODELS = [
    ColorModel(),
    ColorModel(policy=LightnessPolicy.LINEAR),
    ColorModel(style=ColorStyle.COL3, gamma=2.2),
    ColorModel(style=ColorStyle.COL10, balance=(1.0, 1.0, 1.0)),
]


class TestTransferFunctions:

    @pytest.mark.parametrize("value", [0.0, 0.001, 0.04, 0.2, 0.5, 1.0])
    def test_srgb_inverse(self, value):
        assert srgb_decode(srgb_encode(value)) == pytest.approx(value, abs=1e-9)

    @pytest.mark.parametrize("value,expected", [
        (114.75, 115),
        (127.5, 128),
        (76.5, 77),
        (-3.0, 0),
        (300.0, 255),
        (0.49, 0),
    ])
    def test_to_byte_rounds_half_up(self, value, expected):
        assert to_byte(value) == expected

    def test_gamma_identity(self):
        model = ColorModel()
        assert model.color_gamma(0.3) == 0.3
        assert model.inv_color_gamma(0.3) == 0.3

    def test_gamma_inverse(self):
        model = ColorModel(gamma=2.2)
        assert model.inv_color_gamma(model.color_gamma(0.3)) == pytest.approx(0.3)


class TestRgbConversion:

    def test_mid_grey_on_default_device(self):
        assert ColorModel().rgb_color(0.5, 0.5, 0.5) == (115, 128, 77)

    def test_full_white_on_default_device(self):
        assert ColorModel().rgb_color(1.0, 1.0, 1.0) == (230, 255, 153)

    def test_negative_channels_clamp(self):
        assert ColorModel().rgb_color(-0.5, 0.0, 2.0) == (0, 0, 255)

    def test_image_white(self):
        model = ColorModel()
        assert model.image_to_led_rgb(255, 255, 255) == (230, 255, 153)
        assert model.led_to_image_rgb(230, 255, 153) == (255, 255, 255)

    def test_image_black(self):
        assert ColorModel().image_to_led_rgb(0, 0, 0) == (0, 0, 0)


class TestHslColor:

    @pytest.mark.parametrize("model", MODELS)
    @pytest.mark.parametrize("lightness", [-1.0, -0.5, 0.0, 0.5, 1.0])
    def test_grey_is_hue_independent(self, model, lightness):
        colors = {model.hsl_color(h, 0.0, lightness) for h in HUES}
        assert len(colors) == 1

    def test_grey_values(self):
        model = ColorModel()
        assert model.hsl_color(0.3, 0.0, 0.0) == (115, 128, 77)
        assert model.hsl_color(0.7, 0.0, 1.0) == (230, 255, 153)

    @pytest.mark.parametrize("model", MODELS)
    @pytest.mark.parametrize("saturation", [0.0, 0.5, 1.0])
    def test_minus_one_is_black(self, model, saturation):
        for h in HUES:
            assert model.hsl_color(h, saturation, -1.0) == (0, 0, 0)

    @pytest.mark.parametrize("h", [-0.75, 1.25])
    def test_hue_wraps(self, h):
        model = ColorModel()
        assert model.hsl_color(h, 1.0, 0.0) == model.hsl_color(0.25, 1.0, 0.0)

    def test_hue_anchors(self):
        model = ColorModel()
        r, g, b = model.hsl_color(0.0, 1.0, 0.0)
        assert b > r and b > g
        r, g, b = model.hsl_color(0.25, 1.0, 0.0)
        assert g > r and g > b
        r, g, b = model.hsl_color(5 / 8, 1.0, 0.0)
        assert r > g and r > b

    @pytest.mark.parametrize("model", MODELS)
    def test_channels_in_byte_range(self, model):
        for h in HUES:
            for s in (0.0, 0.5, 1.0):
                for l in (-1.0, -0.3, 0.0, 0.6, 1.0):
                    assert all(0 <= c <= 255 for c in model.hsl_color(h, s, l))

    def test_lightness_increases_output(self):
        model = ColorModel()
        dark = sum(model.hsl_color(0.25, 1.0, -0.5))
        light = sum(model.hsl_color(0.25, 1.0, 0.5))
        assert dark < light


class TestFromStyle:

    @pytest.mark.parametrize("name,style", [
        ("3col", ColorStyle.COL3),
        ("4col", ColorStyle.COL4),
        ("6col", ColorStyle.COL6),
        ("8COL", ColorStyle.COL8),
        ("10col", ColorStyle.COL10),
    ])
    def test_ramp_names(self, name, style):
        assert ColorModel.from_style(name).style == style

    def test_policy_names(self):
        assert ColorModel.from_style("linear").policy == LightnessPolicy.LINEAR
        assert ColorModel.from_style("equilight", gamma=2.0).gamma == 2.0

    def test_unknown(self):
        with pytest.raises(ValidationError):
            ColorModel.from_style("sepia")

    @pytest.mark.parametrize("style", list(ColorStyle))
    def test_ramps_span_unit_interval(self, style):
        ramp = style.hue_ramp
        assert len(ramp) == 7
        assert ramp[0] == 0.0 and ramp[-1] == 1.0
        assert list(ramp) == sorted(ramp)


class TestPatterns:

    def test_dim_and_blend(self):
        assert dim_color((200, 100, 50), 0.5) == (100, 50, 25)
        assert dim_color((200, 100, 50), 2.0) == (255, 200, 100)
        assert blend_colors((0, 0, 0), (200, 100, 50), 0.5) == (100, 50, 25)
        assert blend_colors((10, 20, 30), (200, 100, 50), 0.0) == (10, 20, 30)

    def test_alternating(self):
        pattern = make_alternating_color_pattern(5, [(1, 1, 1), (2, 2, 2)])
        assert pattern == [(1, 1, 1), (2, 2, 2), (1, 1, 1), (2, 2, 2), (1, 1, 1)]

    def test_alternating_empty_palette(self):
        with pytest.raises(ValidationError):
            make_alternating_color_pattern(5, [])

    def test_spectrum_rotates(self):
        model = ColorModel()
        base = make_color_spectrum_pattern(8, 0, 0.0, model)
        shifted = make_color_spectrum_pattern(8, 1, 0.0, model)
        assert len(base) == 8
        assert shifted[:-1] == base[1:]

    def test_random_select(self, rng):
        palette = [(1, 0, 0), (0, 1, 0)]
        pattern = make_random_select_color_pattern(50, palette, rng=rng)
        assert set(pattern) <= set(palette)

    def test_random_select_weighted(self, rng):
        palette = [(1, 0, 0), (0, 1, 0)]
        pattern = make_random_select_color_pattern(50, palette, probs=[1.0, 0.0], rng=rng)
        assert pattern == [(1, 0, 0)] * 50

    def test_random_select_weight_count(self, rng):
        with pytest.raises(ValidationError):
            make_random_select_color_pattern(5, [(1, 0, 0)], probs=[0.5, 0.5], rng=rng)

    def test_random_discrete_needs_unit_sum(self, rng):
        with pytest.raises(ValidationError):
            random_discrete([0.5, 0.4], rng)
        assert random_discrete([0.0, 0.0, 1.0], rng) == 2

    def test_random_patterns_are_seeded(self):
        model = ColorModel()
        first = make_random_hsl_pattern(20, model, rng=random.Random(7))
        second = make_random_hsl_pattern(20, model, rng=random.Random(7))
        assert first == second

    def test_random_pattern_lengths(self, rng):
        model = ColorModel()
        assert len(make_random_blend_color_pattern(12, (0, 0, 0), (255, 255, 255), rng=rng)) == 12
        assert len(make_random_colors_pattern(12, 0.0, model, rng=rng)) == 12
        assert len(make_random_lightness_pattern(12, 0.5, model, rng=rng)) == 12

    def test_random_blend_stays_between(self, rng):
        for r, g, b in make_random_blend_color_pattern(30, (0, 100, 200), (100, 100, 0), rng=rng):
            assert 0 <= r <= 100
            assert 99 <= g <= 100
            assert 0 <= b <= 200


class TestSprinkle:

    def test_seeded_sprinkle(self):
        base = [(0, 0, 0)] * 50
        palette = [(255, 0, 0), (0, 0, 255)]
        first = sprinkle_pattern(base, palette, 10.0, np.random.default_rng(42))
        second = sprinkle_pattern(base, palette, 10.0, np.random.default_rng(42))
        assert first == second
        assert len(first) == 50
        assert base == [(0, 0, 0)] * 50
        assert all(rgb in palette or rgb == (0, 0, 0) for rgb in first)
        assert any(rgb != (0, 0, 0) for rgb in first)

    def test_count_capped_at_length(self):
        pattern = sprinkle_pattern([(0, 0, 0)] * 4, [(1, 2, 3)], 1000.0, np.random.default_rng(1))
        assert pattern == [(1, 2, 3)] * 4

    def test_zero_frequency_keeps_pattern(self):
        base = [(9, 9, 9)] * 8
        assert sprinkle_pattern(base, [(1, 2, 3)], 0.0, np.random.default_rng(1)) == base

    def test_empty_palette(self):
        with pytest.raises(ValidationError):
            sprinkle_pattern([(0, 0, 0)] * 5, [], 2.0, np.random.default_rng(1))

    def test_poisson(self):
        rng = np.random.default_rng(3)
        assert random_poisson(0.0, rng) == 0
        samples = [random_poisson(5.0, rng) for _ in range(500)]
        assert all(isinstance(n, int) and n >= 0 for n in samples)
        assert 4.0 < sum(samples) / len(samples) < 6.0

    def test_poisson_negative_mean(self):
        with pytest.raises(ValidationError):
            random_poisson(-1.0)
