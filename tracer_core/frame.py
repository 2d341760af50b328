"""Frame synthesis: pixel grid → sampler → 8-bit grayscale RGB buffer.

Pixel (x, y) of a width × height image is sampled at the normalized scene
point (x / width, y / height). The mean radiance is scaled by 255,
truncated to an integer and stored three times (R = G = B) at byte offset
(y * width + x) * 3 of a flat, row-major buffer with no padding.

Radiance reaches 2.0 at and near the light, i.e. 510 after scaling. The
``frame.intensity_overflow`` setting decides what happens above 255:
'clamp' saturates, 'wrap' keeps the low byte as an unchecked byte store
would.
"""

from __future__ import annotations

import logging
import time

import numpy as np
from numba import njit

from tracer_core.constants import RenderConfig
from tracer_core.distance_field import Disc
from tracer_core.sampler import (
    generate_sample_angles,
    resolve_seed,
    row_generator,
    sample_point,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Kernels
# ---------------------------------------------------------------------------


@njit(cache=True, fastmath=False)
def quantize_intensity(radiance: float, clamp: bool) -> int:
    """Scale radiance to an 8-bit intensity (truncating, then clamp or wrap)."""
    value = int(radiance * 255.0)
    if value < 0:
        return 0
    if clamp:
        if value > 255:
            return 255
        return value
    return value & 0xFF


@njit(cache=True, fastmath=False)
def shade_row(
    row_out: np.ndarray,
    y: int,
    width: int,
    height: int,
    angles: np.ndarray,
    cx: float,
    cy: float,
    radius: float,
    emission: float,
    max_steps: int,
    max_distance: float,
    epsilon: float,
    clamp: bool,
) -> None:
    """Shade one image row in place.

    Parameters
    ----------
    row_out : np.ndarray
        Destination row. Shape: (width, 3), dtype uint8.
    y : int
        Row index.
    width, height : int
        Image size.
    angles : np.ndarray
        Ray angles per pixel. Shape: (width, N).
    cx, cy, radius, emission : float
        Light disc.
    max_steps, max_distance, epsilon
        March limits.
    clamp : bool
        True to saturate at 255, False to wrap.
    """
    sy = y / height
    for x in range(width):
        radiance = sample_point(
            x / width, sy, angles[x],
            cx, cy, radius, emission,
            max_steps, max_distance, epsilon,
        )
        value = quantize_intensity(radiance, clamp)
        row_out[x, 0] = value
        row_out[x, 1] = value
        row_out[x, 2] = value


# ---------------------------------------------------------------------------
# Python API
# ---------------------------------------------------------------------------


def synthesize_rows(
    frame: np.ndarray,
    row_start: int,
    row_end: int,
    config: RenderConfig,
    seed: int,
) -> None:
    """Render rows [row_start, row_end) of ``frame`` in place.

    Only the requested rows are written, which is what lets several
    processes fill disjoint bands of one shared buffer.

    Parameters
    ----------
    frame : np.ndarray
        Whole-image view. Shape: (height, width, 3), dtype uint8.
    row_start, row_end : int
        Half-open row range to render.
    config : RenderConfig
        Render configuration.
    seed : int
        Resolved root seed (see ``sampler.resolve_seed``).

    Raises
    ------
    ValueError
        If the frame has the wrong layout or the row range is out of bounds.
    """
    if frame.ndim != 3 or frame.shape[2] != 3 or frame.dtype != np.uint8:
        raise ValueError(
            f"frame must be a (height, width, 3) uint8 array, got "
            f"shape={frame.shape}, dtype={frame.dtype}"
        )
    height, width = frame.shape[0], frame.shape[1]
    if not (0 <= row_start <= row_end <= height):
        raise ValueError(f"Row range [{row_start}, {row_end}) outside [0, {height})")

    disc = Disc.from_config(config.light)
    march_cfg = config.march
    sampler_cfg = config.sampler
    clamp = config.frame.intensity_overflow == "clamp"

    for y in range(row_start, row_end):
        rng = None if sampler_cfg.strategy == "uniform" else row_generator(seed, y)
        angles = generate_sample_angles(
            rng, width, sampler_cfg.num_samples, sampler_cfg.strategy
        )
        shade_row(
            frame[y], y, width, height, angles,
            disc.center_x, disc.center_y, disc.radius, disc.emission,
            march_cfg.max_steps, march_cfg.max_distance, march_cfg.epsilon,
            clamp,
        )


def synthesize(
    width: int,
    height: int,
    config: RenderConfig,
    seed: int | None = None,
) -> np.ndarray:
    """Render a whole frame sequentially.

    Parameters
    ----------
    width, height : int
        Image size in pixels.
    config : RenderConfig
        Render configuration. Its frame size is ignored in favour of the
        explicit arguments.
    seed : int, optional
        Resolved root seed. Default: ``config.sampler.seed`` (OS entropy
        when that is None).

    Returns
    -------
    buffer : np.ndarray
        Flat RGB buffer. Shape: (width * height * 3,), dtype uint8.
    """
    if width < 1 or height < 1:
        raise ValueError(f"Frame size must be positive, got {width}x{height}")
    if seed is None:
        seed = resolve_seed(config.sampler.seed)

    logger.info(
        "Synthesizing %dx%d frame (N=%d, strategy=%s, seed=%d)...",
        width, height, config.sampler.num_samples, config.sampler.strategy, seed,
    )
    t0 = time.perf_counter()

    buffer = np.zeros(width * height * 3, dtype=np.uint8)
    synthesize_rows(buffer.reshape(height, width, 3), 0, height, config, seed)

    logger.info("Frame synthesized in %.2f s", time.perf_counter() - t0)
    return buffer
