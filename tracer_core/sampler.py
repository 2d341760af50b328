"""Per-pixel Monte Carlo sampling of incoming light.

Each pixel fires N rays around the full circle of directions and averages
the radiance the marcher returns. Three angle patterns are supported:

    jittered:  a_i = 2π (i + ξ_i) / N,  ξ_i ~ U[0, 1)   (stratified jitter)
    uniform:   a_i = 2π i / N                           (fixed, no randomness)
    random:    a_i = 2π u_i,            u_i ~ U[0, 1)   (unstratified)

Jittered sampling splits the circle into N equal strata and samples each
once at a random offset, which removes the banding of the uniform pattern
without the clumping of pure random angles.

Random numbers come from explicit ``numpy.random.Generator`` instances,
never from process-global state. Row ``y`` of an image always uses the
generator ``default_rng(SeedSequence(seed, spawn_key=(y,)))``, so a frame
is reproducible from its seed no matter how its rows are split across
worker processes.
"""

from __future__ import annotations

import logging
import math

import numpy as np
from numba import njit

from tracer_core.constants import MarchConfig, SamplerConfig
from tracer_core.distance_field import Disc
from tracer_core.raymarcher import march_ray

logger = logging.getLogger(__name__)

TWO_PI: float = 2.0 * math.pi


# ---------------------------------------------------------------------------
# Random sources
# ---------------------------------------------------------------------------


def resolve_seed(seed: int | None) -> int:
    """Return ``seed``, or fresh OS entropy when it is None.

    The resolved value is what every worker of one render shares, so rows
    stay independent streams of a single root even without a fixed seed.
    """
    if seed is not None:
        return int(seed)
    entropy = int(np.random.SeedSequence().entropy)
    logger.info("No seed configured; drew root entropy %d", entropy)
    return entropy


def row_generator(seed: int, row: int) -> np.random.Generator:
    """Independent generator for image row ``row`` under root ``seed``."""
    return np.random.default_rng(np.random.SeedSequence(seed, spawn_key=(row,)))


def generate_sample_angles(
    rng: np.random.Generator | None,
    num_points: int,
    num_samples: int,
    strategy: str = "jittered",
) -> np.ndarray:
    """Generate the ray angles for a batch of sample points.

    Parameters
    ----------
    rng : np.random.Generator or None
        Jitter source. May be None only for the 'uniform' strategy.
    num_points : int
        Number of points (pixels) to generate angles for.
    num_samples : int
        Rays per point (N).
    strategy : str
        'jittered', 'uniform' or 'random'.

    Returns
    -------
    angles : np.ndarray
        Ray angles in radians. Shape: (num_points, num_samples), dtype float64.

    Raises
    ------
    ValueError
        If the strategy is unknown or needs an rng that was not given.
    """
    if num_samples < 1:
        raise ValueError(f"num_samples must be >= 1, got {num_samples}")

    strata = np.arange(num_samples, dtype=np.float64)

    if strategy == "uniform":
        angles = TWO_PI * strata / num_samples
        return np.broadcast_to(angles, (num_points, num_samples)).copy()

    if rng is None:
        raise ValueError(f"Sampling strategy {strategy!r} requires a random generator")

    if strategy == "jittered":
        xi = rng.random((num_points, num_samples))
        return TWO_PI * (strata + xi) / num_samples
    if strategy == "random":
        return TWO_PI * rng.random((num_points, num_samples))

    raise ValueError(f"Unknown sampling strategy {strategy!r}")


# ---------------------------------------------------------------------------
# Kernel
# ---------------------------------------------------------------------------


@njit(cache=True, fastmath=False)
def sample_point(
    x: float,
    y: float,
    angles: np.ndarray,
    cx: float,
    cy: float,
    radius: float,
    emission: float,
    max_steps: int,
    max_distance: float,
    epsilon: float,
) -> float:
    """Mean radiance received at (x, y) over the rays given by ``angles``.

    Parameters
    ----------
    x, y : float
        Sample point.
    angles : np.ndarray
        Ray angles in radians. Shape: (N,).
    cx, cy, radius, emission : float
        Light disc.
    max_steps, max_distance, epsilon
        March limits.

    Returns
    -------
    float
        Average radiance in [0, emission].
    """
    n = angles.shape[0]
    total = 0.0
    for i in range(n):
        a = angles[i]
        total += march_ray(
            x, y, math.cos(a), math.sin(a),
            cx, cy, radius, emission,
            max_steps, max_distance, epsilon,
        )
    return total / n


def sample(
    point: tuple[float, float],
    disc: Disc,
    march_config: MarchConfig,
    sampler_config: SamplerConfig,
    rng: np.random.Generator | None = None,
) -> float:
    """Average radiance arriving at ``point`` from all directions.

    Parameters
    ----------
    point : tuple[float, float]
        Scene-space point (x, y).
    disc : Disc
        The light disc.
    march_config : MarchConfig
        March limits.
    sampler_config : SamplerConfig
        Sample count and strategy. When ``rng`` is None a generator is
        seeded from ``sampler_config.seed``.
    rng : np.random.Generator, optional
        Jitter source for this call. Without one, every call draws the
        same jitter sequence, so samples at different points are fully
        correlated. Pass a shared generator (or ``row_generator``) when
        sampling many points.

    Returns
    -------
    float
        Mean radiance in [0, disc.emission].
    """
    if rng is None and sampler_config.strategy != "uniform":
        rng = np.random.default_rng(sampler_config.seed)

    angles = generate_sample_angles(
        rng, 1, sampler_config.num_samples, sampler_config.strategy
    )
    return float(
        sample_point(
            float(point[0]),
            float(point[1]),
            angles[0],
            disc.center_x,
            disc.center_y,
            disc.radius,
            disc.emission,
            march_config.max_steps,
            march_config.max_distance,
            march_config.epsilon,
        )
    )
