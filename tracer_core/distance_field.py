"""Signed distance field of the disc light source.

The scene holds a single disc, so the field is the distance to its center
minus its radius: negative inside, zero on the rim, positive outside. The
kernel is compiled with Numba ``@njit(cache=True)`` so the marcher can call
it from its inner loop.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from numba import njit

from tracer_core.constants import LightConfig


@dataclass(frozen=True)
class Disc:
    """Immutable disc light: center, radius and emitted radiance."""

    center_x: float
    center_y: float
    radius: float
    emission: float = 2.0

    @classmethod
    def from_config(cls, light: LightConfig) -> "Disc":
        """Build the disc from the ``scene.light`` configuration block."""
        return cls(
            center_x=light.center_x,
            center_y=light.center_y,
            radius=light.radius,
            emission=light.emission,
        )


@njit(cache=True, fastmath=False)
def circle_sdf(x: float, y: float, cx: float, cy: float, r: float) -> float:
    """Signed distance from (x, y) to the circle of radius r centered at (cx, cy)."""
    ux = x - cx
    uy = y - cy
    return math.sqrt(ux * ux + uy * uy) - r


def distance(point: tuple[float, float], disc: Disc) -> float:
    """Signed distance from ``point`` to ``disc``.

    Parameters
    ----------
    point : tuple[float, float]
        Scene-space point (x, y).
    disc : Disc
        The light disc.

    Returns
    -------
    float
        ``|point - center| - radius``.
    """
    x, y = point
    return float(circle_sdf(float(x), float(y), disc.center_x, disc.center_y, disc.radius))
