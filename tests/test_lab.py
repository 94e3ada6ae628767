"""
Unit tests for CIE LAB conversion utilities.
"""
import numpy as np
import pytest

from blueprint_engine.services.colors.lab import (
    LabColor,
    delta_e76,
    hex_to_rgb,
    lab_array_to_rgb,
    lab_to_rgb,
    normalize_rgb,
    rgb_array_to_lab,
    rgb_to_hex,
    rgb_to_lab,
    srgb_to_linear,
)


class TestRgbToLab:
    """Test forward conversion against reference values"""

    def test_white_is_l100(self):
        lab = rgb_to_lab((255, 255, 255))
        assert lab.l == pytest.approx(100.0, abs=0.01)
        assert lab.a == pytest.approx(0.0, abs=0.01)
        assert lab.b == pytest.approx(0.0, abs=0.01)

    def test_black_is_origin(self):
        lab = rgb_to_lab((0, 0, 0))
        assert lab.as_tuple() == pytest.approx((0.0, 0.0, 0.0), abs=1e-9)

    def test_pure_red(self):
        lab = rgb_to_lab((255, 0, 0))
        assert lab.l == pytest.approx(53.24, abs=0.05)
        assert lab.a == pytest.approx(80.09, abs=0.05)
        assert lab.b == pytest.approx(67.20, abs=0.05)

    def test_out_of_range_input_is_clamped(self):
        assert rgb_to_lab((300, -20, 0)) == rgb_to_lab((255, 0, 0))

    def test_array_matches_scalar(self):
        colors = np.array([[12, 34, 56], [200, 100, 50], [255, 255, 0]], dtype=np.float64)
        lab = rgb_array_to_lab(colors)
        for row, color in zip(lab, colors):
            assert tuple(row) == pytest.approx(rgb_to_lab(color).as_tuple(), abs=1e-9)

    def test_linearization_threshold(self):
        assert srgb_to_linear(0.04045) == pytest.approx(0.04045 / 12.92)
        assert srgb_to_linear(1.0) == pytest.approx(1.0)


class TestLabToRgb:
    """Test the inverse path"""

    @pytest.mark.parametrize("rgb", [
        (0, 0, 0), (255, 255, 255), (255, 0, 0), (0, 255, 0), (0, 0, 255),
        (227, 29, 66), (31, 78, 121), (128, 128, 128),
    ])
    def test_round_trip(self, rgb):
        assert lab_to_rgb(rgb_to_lab(rgb)) == rgb

    def test_round_trip_whole_cube(self):
        g, b = np.meshgrid(np.arange(256), np.arange(256), indexing="ij")
        plane = np.stack([np.zeros(g.size), g.ravel(), b.ravel()], axis=1)
        # One red plane at a time keeps memory bounded
        for red in range(256):
            plane[:, 0] = red
            back = lab_array_to_rgb(rgb_array_to_lab(plane))
            mismatches = int(np.count_nonzero(np.any(back != plane, axis=1)))
            assert mismatches == 0, f"{mismatches} colors drift at red={red}"

    def test_accepts_tuple(self):
        assert lab_to_rgb((0.0, 0.0, 0.0)) == (0, 0, 0)

    def test_out_of_gamut_is_clamped(self):
        rgb = lab_array_to_rgb(np.array([[100.0, 120.0, -120.0]]))[0]
        assert rgb.min() >= 0
        assert rgb.max() <= 255


class TestDeltaE:
    def test_identical_colors(self):
        lab = rgb_to_lab((10, 20, 30))
        assert delta_e76(lab, lab) == 0.0

    def test_symmetric(self):
        a = rgb_to_lab((255, 0, 0))
        b = rgb_to_lab((0, 0, 255))
        assert delta_e76(a, b) == pytest.approx(delta_e76(b, a))

    def test_mixed_argument_types(self):
        assert delta_e76(LabColor(50.0, 0.0, 0.0), (53.0, 4.0, 0.0)) == pytest.approx(5.0)


class TestHexHelpers:
    def test_hex_to_rgb_with_and_without_hash(self):
        assert hex_to_rgb("#E31D42") == (227, 29, 66)
        assert hex_to_rgb("e31d42") == (227, 29, 66)

    @pytest.mark.parametrize("bad", ["#E31D4", "#GGGGGG", "E31D42FF", "", "#12 456"])
    def test_hex_to_rgb_rejects_bad_input(self, bad):
        with pytest.raises(ValueError):
            hex_to_rgb(bad)

    def test_rgb_to_hex_uppercase_and_clamped(self):
        assert rgb_to_hex((227, 29, 66)) == "#E31D42"
        assert rgb_to_hex((300, -5, 12.6)) == "#FF000D"

    def test_normalize_rgb_rounds_half_up(self):
        assert normalize_rgb((0.5, 1.49, 254.5)) == (1, 1, 255)
