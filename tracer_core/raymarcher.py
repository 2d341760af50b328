"""Sphere-tracing ray marcher against the disc distance field.

Design Notes
------------
- The step along the ray is the SDF value itself, never a fixed increment:
  the field is a lower bound on the free distance in every direction, so a
  step of that size cannot tunnel through the disc.
- A ray stops with a hit once the field drops below ``epsilon`` (on or
  inside the disc) and returns the disc emission. It stops with a miss
  after ``max_steps`` iterations or once it has travelled ``max_distance``.
- Radiance is binary per ray: ``emission`` (hit) or 0.0 (miss).
"""

from __future__ import annotations

from numba import njit

from tracer_core.constants import MarchConfig
from tracer_core.distance_field import Disc, circle_sdf


@njit(cache=True, fastmath=False)
def march_ray(
    ox: float,
    oy: float,
    dx: float,
    dy: float,
    cx: float,
    cy: float,
    radius: float,
    emission: float,
    max_steps: int,
    max_distance: float,
    epsilon: float,
) -> float:
    """March one ray and return the radiance it receives.

    Parameters
    ----------
    ox, oy : float
        Ray origin.
    dx, dy : float
        Unit ray direction.
    cx, cy, radius : float
        Light disc.
    emission : float
        Radiance returned on a hit.
    max_steps : int
        Iteration limit.
    max_distance : float
        Escape distance.
    epsilon : float
        Surface threshold.

    Returns
    -------
    float
        ``emission`` if the ray reaches the disc, else 0.0.
    """
    t = 0.0
    i = 0
    while i < max_steps and t < max_distance:
        sd = circle_sdf(ox + dx * t, oy + dy * t, cx, cy, radius)
        if sd < epsilon:
            return emission
        t += sd
        i += 1
    return 0.0


def march(
    origin: tuple[float, float],
    direction: tuple[float, float],
    disc: Disc,
    march_config: MarchConfig,
) -> float:
    """Radiance received at ``origin`` from ``direction``.

    Parameters
    ----------
    origin : tuple[float, float]
        Ray origin (x, y).
    direction : tuple[float, float]
        Unit direction (dx, dy).
    disc : Disc
        The light disc.
    march_config : MarchConfig
        Step, distance and epsilon limits.

    Returns
    -------
    float
        ``disc.emission`` on a hit, 0.0 on a miss.
    """
    return float(
        march_ray(
            float(origin[0]),
            float(origin[1]),
            float(direction[0]),
            float(direction[1]),
            disc.center_x,
            disc.center_y,
            disc.radius,
            disc.emission,
            march_config.max_steps,
            march_config.max_distance,
            march_config.epsilon,
        )
    )
