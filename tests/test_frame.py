"""Tests for frame synthesis and intensity quantization.

Covers the flat RGB buffer layout, the clamp/wrap overflow policies, row
range rendering into an existing frame, and seeded reproducibility.
"""

from __future__ import annotations

from dataclasses import replace

import numpy as np
import pytest

from tracer_core.constants import RenderConfig, apply_overrides
from tracer_core.frame import quantize_intensity, synthesize, synthesize_rows


def _uniform_single_ray(config: RenderConfig, overflow: str = "clamp") -> RenderConfig:
    """One fixed ray per pixel at angle 0 (no randomness)."""
    cfg = apply_overrides(config, num_samples=1, strategy="uniform")
    return replace(cfg, frame=replace(cfg.frame, intensity_overflow=overflow))


class TestQuantize:
    """Test suite for radiance → 8-bit intensity."""

    def test_truncates(self) -> None:
        assert quantize_intensity(0.5, True) == 127
        assert quantize_intensity(0.0, True) == 0
        assert quantize_intensity(1.0, True) == 255

    def test_clamp_saturates(self) -> None:
        """Radiance 2.0 scales to 510 and saturates at 255."""
        assert quantize_intensity(2.0, True) == 255
        assert quantize_intensity(1.5, True) == 255

    def test_wrap_keeps_low_byte(self) -> None:
        assert quantize_intensity(2.0, False) == 510 % 256
        assert quantize_intensity(1.0, False) == 255


class TestSynthesize:
    """Test suite for whole-frame synthesis."""

    def test_buffer_layout(self, small_config: RenderConfig) -> None:
        buf = synthesize(8, 6, small_config, seed=1)
        assert buf.dtype == np.uint8
        assert buf.shape == (8 * 6 * 3,)

        pixels = buf.reshape(-1, 3)
        assert np.all(pixels[:, 0] == pixels[:, 1]), "R and G must match"
        assert np.all(pixels[:, 1] == pixels[:, 2]), "G and B must match"

    def test_light_center_pixel_single_ray(self, small_config: RenderConfig) -> None:
        """4x4, N=1, angle 0: pixel (2, 2) sits at the light center → 255."""
        cfg = _uniform_single_ray(small_config)
        buf = synthesize(4, 4, cfg)
        offset = (2 * 4 + 2) * 3
        assert list(buf[offset:offset + 3]) == [255, 255, 255]

    def test_light_center_pixel_wraps(self, small_config: RenderConfig) -> None:
        cfg = _uniform_single_ray(small_config, overflow="wrap")
        buf = synthesize(4, 4, cfg)
        offset = (2 * 4 + 2) * 3
        assert buf[offset] == 254

    def test_corner_pixel_single_ray_is_dark(self, small_config: RenderConfig) -> None:
        """Pixel (0, 0) looking along +x passes 0.5 below the light."""
        buf = synthesize(4, 4, _uniform_single_ray(small_config))
        assert buf[0] == 0

    def test_same_seed_is_byte_identical(self, small_config: RenderConfig) -> None:
        a = synthesize(4, 4, small_config, seed=2024)
        b = synthesize(4, 4, small_config, seed=2024)
        np.testing.assert_array_equal(a, b)

    def test_seed_from_config(self, small_config: RenderConfig) -> None:
        a = synthesize(4, 4, small_config)
        b = synthesize(4, 4, small_config, seed=small_config.sampler.seed)
        np.testing.assert_array_equal(a, b)

    def test_brightest_near_light(self, small_config: RenderConfig) -> None:
        cfg = apply_overrides(small_config, num_samples=32)
        img = synthesize(16, 16, cfg, seed=5).reshape(16, 16, 3)[:, :, 0]
        assert img[8, 8] == 255
        assert img[8, 8] > img[0, 0]
        assert img[8, 8] > img[15, 15]

    def test_rejects_empty_frame(self, small_config: RenderConfig) -> None:
        with pytest.raises(ValueError):
            synthesize(0, 4, small_config)


class TestSynthesizeRows:
    """Test suite for rendering a row range into an existing frame."""

    def test_only_requested_rows_are_written(self, small_config: RenderConfig) -> None:
        frame = np.full((6, 8, 3), 7, dtype=np.uint8)
        synthesize_rows(frame, 2, 4, small_config, seed=11)

        assert np.all(frame[:2] == 7), "Rows above the range must be untouched"
        assert np.all(frame[4:] == 7), "Rows below the range must be untouched"

        full = synthesize(8, 6, small_config, seed=11).reshape(6, 8, 3)
        np.testing.assert_array_equal(frame[2:4], full[2:4])

    def test_row_split_matches_full_frame(self, small_config: RenderConfig) -> None:
        """Rendering in pieces gives the same bytes as one pass."""
        frame = np.zeros((6, 8, 3), dtype=np.uint8)
        for start, end in [(0, 1), (1, 4), (4, 6)]:
            synthesize_rows(frame, start, end, small_config, seed=3)
        full = synthesize(8, 6, small_config, seed=3).reshape(6, 8, 3)
        np.testing.assert_array_equal(frame, full)

    def test_empty_range_is_noop(self, small_config: RenderConfig) -> None:
        frame = np.zeros((6, 8, 3), dtype=np.uint8)
        synthesize_rows(frame, 3, 3, small_config, seed=3)
        assert not frame.any()

    def test_out_of_range(self, small_config: RenderConfig) -> None:
        frame = np.zeros((6, 8, 3), dtype=np.uint8)
        with pytest.raises(ValueError, match="outside"):
            synthesize_rows(frame, 4, 7, small_config, seed=0)

    def test_wrong_layout(self, small_config: RenderConfig) -> None:
        with pytest.raises(ValueError, match="uint8"):
            synthesize_rows(np.zeros((6, 8), dtype=np.uint8), 0, 1, small_config, seed=0)
        with pytest.raises(ValueError, match="uint8"):
            synthesize_rows(np.zeros((6, 8, 3), dtype=np.float64), 0, 1, small_config, seed=0)
