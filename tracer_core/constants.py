"""Render parameters and configuration loader.

All tunables (light disc, march limits, sample count, worker count, ...) are
loaded from YAML configuration files. The kernels never hardcode them; they
receive the values through the typed, validated dataclasses defined here.
"""

from __future__ import annotations

import hashlib
import logging
import platform
import sys
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import numpy as np
import yaml

logger = logging.getLogger(__name__)

SAMPLING_STRATEGIES: tuple[str, ...] = ("jittered", "uniform", "random")
OVERFLOW_POLICIES: tuple[str, ...] = ("clamp", "wrap")
START_METHODS: tuple[str, ...] = ("fork", "spawn", "forkserver")

# ---------------------------------------------------------------------------
# Configuration Data Classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LightConfig:
    """The single disc-shaped light source.

    Attributes
    ----------
    center_x, center_y : float
        Disc center in normalized scene coordinates.
    radius : float
        Disc radius in scene units.
    emission : float
        Radiance carried by a ray that reaches the disc.
    """

    center_x: float
    center_y: float
    radius: float
    emission: float


@dataclass(frozen=True)
class MarchConfig:
    """Sphere-tracing limits.

    Attributes
    ----------
    max_steps : int
        Maximum number of march iterations per ray.
    max_distance : float
        Rays that travel this far without a hit escape to the background.
    epsilon : float
        Distance below which a sample point counts as on the light surface.
    """

    max_steps: int
    max_distance: float
    epsilon: float


@dataclass(frozen=True)
class SamplerConfig:
    """Per-pixel Monte Carlo sampling.

    Attributes
    ----------
    num_samples : int
        Rays fired per pixel (N).
    strategy : str
        'jittered' (stratified jitter), 'uniform' (fixed angles) or
        'random' (unstratified).
    seed : int or None
        Root seed for every row generator. None draws fresh OS entropy.
    """

    num_samples: int
    strategy: str
    seed: int | None


@dataclass(frozen=True)
class FrameConfig:
    """Output frame geometry and quantization.

    Attributes
    ----------
    width, height : int
        Image size in pixels.
    intensity_overflow : str
        'clamp' saturates radiance * 255 at 255, 'wrap' keeps the low
        8 bits like an unchecked byte store.
    """

    width: int
    height: int
    intensity_overflow: str


@dataclass(frozen=True)
class ParallelConfig:
    """Row-band worker pool settings.

    Attributes
    ----------
    worker_count : int
        Number of worker processes (one row band each).
    start_method : str or None
        multiprocessing start method; None uses the platform default.
    worker_timeout_s : float or None
        Join deadline for the whole pool. None waits indefinitely.
    """

    worker_count: int
    start_method: str | None
    worker_timeout_s: float | None


@dataclass(frozen=True)
class OutputConfig:
    """Where the encoded image is written."""

    path: str


@dataclass(frozen=True)
class RenderPolicy:
    """A documented behavioral choice of the renderer.

    Attributes
    ----------
    name : str
        Short name of the policy.
    value : str
        Active setting.
    rationale : str
        What the setting means for the produced image.
    """

    name: str
    value: str
    rationale: str


@dataclass
class RenderConfig:
    """Top-level render configuration loaded from YAML.

    Attributes
    ----------
    light : LightConfig
        Light disc parameters.
    march : MarchConfig
        Sphere-tracing limits.
    sampler : SamplerConfig
        Per-pixel sampling settings.
    frame : FrameConfig
        Image size and quantization.
    parallel : ParallelConfig
        Worker pool settings.
    output : OutputConfig
        Output location.
    policies : list[RenderPolicy]
        Registry of documented render policies.
    """

    light: LightConfig
    march: MarchConfig
    sampler: SamplerConfig
    frame: FrameConfig
    parallel: ParallelConfig
    output: OutputConfig
    policies: list[RenderPolicy] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Configuration Loader
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path) -> RenderConfig:
    """Load and validate a render configuration from a YAML file.

    Parameters
    ----------
    config_path : str or Path
        Path to the YAML configuration file.

    Returns
    -------
    RenderConfig
        Fully populated, typed configuration object.

    Raises
    ------
    FileNotFoundError
        If the configuration file does not exist.
    ValueError
        If required configuration keys are missing or values are invalid.
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        raw: dict[str, Any] = yaml.safe_load(f)

    logger.info("Loading configuration from: %s", config_path)

    try:
        config = _parse_config(raw)
    except (KeyError, TypeError) as exc:
        raise ValueError(f"Malformed configuration {config_path}: {exc!r}") from exc

    _validate_config(config)
    logger.info(
        "Configuration loaded successfully. %d policies registered.",
        len(config.policies),
    )

    return config


def _parse_config(raw: dict[str, Any]) -> RenderConfig:
    """Build the typed configuration tree from the raw YAML mapping."""
    # --- Light disc ---
    lt = raw["scene"]["light"]
    cx, cy = lt["center"]
    light = LightConfig(
        center_x=float(cx),
        center_y=float(cy),
        radius=float(lt["radius"]),
        emission=float(lt["emission"]),
    )

    # --- Tracer ---
    tr = raw["tracer"]
    mc = tr["march"]
    march = MarchConfig(
        max_steps=int(mc["max_steps"]),
        max_distance=float(mc["max_distance"]),
        epsilon=float(mc["epsilon"]),
    )

    sc = tr["sampler"]
    sampler = SamplerConfig(
        num_samples=int(sc["num_samples"]),
        strategy=str(sc["strategy"]),
        seed=None if sc.get("seed") is None else int(sc["seed"]),
    )

    # --- Frame ---
    fr = raw["frame"]
    frame = FrameConfig(
        width=int(fr["width"]),
        height=int(fr["height"]),
        intensity_overflow=str(fr["intensity_overflow"]),
    )

    # --- Worker pool ---
    par = raw["parallel"]
    timeout = par.get("worker_timeout_s")
    parallel = ParallelConfig(
        worker_count=int(par["worker_count"]),
        start_method=None if par.get("start_method") is None else str(par["start_method"]),
        worker_timeout_s=None if timeout is None else float(timeout),
    )

    output = OutputConfig(path=str(raw["output"]["path"]))

    return RenderConfig(
        light=light,
        march=march,
        sampler=sampler,
        frame=frame,
        parallel=parallel,
        output=output,
        policies=_build_policy_registry(sampler, frame, parallel),
    )


def apply_overrides(
    config: RenderConfig,
    width: int | None = None,
    height: int | None = None,
    worker_count: int | None = None,
    num_samples: int | None = None,
    strategy: str | None = None,
    seed: int | None = None,
    output_path: str | None = None,
) -> RenderConfig:
    """Return a copy of ``config`` with command-line overrides applied.

    Arguments left as None keep the configured value. The result is
    validated again and carries a rebuilt policy registry.
    """
    frame = replace(
        config.frame,
        width=config.frame.width if width is None else int(width),
        height=config.frame.height if height is None else int(height),
    )
    sampler = replace(
        config.sampler,
        num_samples=config.sampler.num_samples if num_samples is None else int(num_samples),
        strategy=config.sampler.strategy if strategy is None else str(strategy),
        seed=config.sampler.seed if seed is None else int(seed),
    )
    parallel = replace(
        config.parallel,
        worker_count=(
            config.parallel.worker_count if worker_count is None else int(worker_count)
        ),
    )
    output = config.output if output_path is None else OutputConfig(path=str(output_path))

    updated = RenderConfig(
        light=config.light,
        march=config.march,
        sampler=sampler,
        frame=frame,
        parallel=parallel,
        output=output,
        policies=_build_policy_registry(sampler, frame, parallel),
    )
    _validate_config(updated)
    return updated


def _build_policy_registry(
    sampler: SamplerConfig,
    frame: FrameConfig,
    parallel: ParallelConfig,
) -> list[RenderPolicy]:
    """Build the documented render policy registry.

    Parameters
    ----------
    sampler : SamplerConfig
        Loaded sampler settings.
    frame : FrameConfig
        Loaded frame settings.
    parallel : ParallelConfig
        Loaded worker pool settings.

    Returns
    -------
    list[RenderPolicy]
        All documented policies.
    """
    return [
        RenderPolicy(
            "Intensity Overflow",
            frame.intensity_overflow,
            "radiance 2.0 maps to 510; clamp saturates at 255, wrap keeps the low byte",
        ),
        RenderPolicy(
            "Partition Remainder",
            "last worker",
            "rows past worker_count * (height // worker_count) go to the last band",
        ),
        RenderPolicy(
            "Seed Policy",
            "per-row SeedSequence" if sampler.seed is not None else "per-row, OS entropy",
            "row y draws from SeedSequence(seed, spawn_key=(y,)); output is "
            "independent of the worker count",
        ),
        RenderPolicy(
            "Sampling Strategy",
            sampler.strategy,
            f"{sampler.num_samples} rays per pixel",
        ),
        RenderPolicy(
            "Worker Failure",
            "fail render",
            "any worker that does not exit cleanly aborts the render; no image is written",
        ),
        RenderPolicy(
            "Worker Timeout",
            "none" if parallel.worker_timeout_s is None else f"{parallel.worker_timeout_s} s",
            "workers still running at the deadline are terminated and reported",
        ),
    ]


def _validate_config(config: RenderConfig) -> None:
    """Validate constraints on configuration values.

    Parameters
    ----------
    config : RenderConfig
        Configuration to validate.

    Raises
    ------
    ValueError
        If any value is invalid.
    """
    if config.light.radius <= 0:
        raise ValueError(f"Light radius must be positive, got {config.light.radius}")
    if config.light.emission < 0:
        raise ValueError("Light emission cannot be negative.")
    if config.march.max_steps < 1:
        raise ValueError(f"max_steps must be >= 1, got {config.march.max_steps}")
    if config.march.max_distance <= 0:
        raise ValueError("max_distance must be positive.")
    if config.march.epsilon <= 0:
        raise ValueError("March epsilon must be positive.")
    if config.sampler.num_samples < 1:
        raise ValueError(f"num_samples must be >= 1, got {config.sampler.num_samples}")
    if config.sampler.strategy not in SAMPLING_STRATEGIES:
        raise ValueError(
            f"Unknown sampling strategy {config.sampler.strategy!r}; "
            f"expected one of {SAMPLING_STRATEGIES}"
        )
    if config.frame.width < 1 or config.frame.height < 1:
        raise ValueError(
            f"Frame size must be positive, got {config.frame.width}x{config.frame.height}"
        )
    if config.frame.intensity_overflow not in OVERFLOW_POLICIES:
        raise ValueError(
            f"Unknown intensity_overflow {config.frame.intensity_overflow!r}; "
            f"expected one of {OVERFLOW_POLICIES}"
        )
    if config.parallel.worker_count < 1:
        raise ValueError(f"worker_count must be >= 1, got {config.parallel.worker_count}")
    if (
        config.parallel.start_method is not None
        and config.parallel.start_method not in START_METHODS
    ):
        raise ValueError(f"Unknown start_method {config.parallel.start_method!r}")
    if config.parallel.worker_timeout_s is not None and config.parallel.worker_timeout_s <= 0:
        raise ValueError("worker_timeout_s must be positive (or null for no deadline).")

    logger.debug("Configuration validation passed.")


def log_policies(config: RenderConfig) -> None:
    """Log all documented render policies to the logger.

    Parameters
    ----------
    config : RenderConfig
        Configuration with populated policy registry.
    """
    logger.info("=" * 70)
    logger.info("RENDER POLICY REGISTRY")
    logger.info("=" * 70)
    for i, p in enumerate(config.policies, 1):
        logger.info("  [%02d] %-20s = %-22s | %s", i, p.name, p.value, p.rationale)
    logger.info("=" * 70)


def log_platform_info() -> None:
    """Log platform and library version information for reproducibility."""
    import numba

    logger.info("=" * 70)
    logger.info("PLATFORM INFORMATION (for reproducibility)")
    logger.info("=" * 70)
    logger.info("  Python:    %s", sys.version)
    logger.info("  Platform:  %s", platform.platform())
    logger.info("  Processor: %s", platform.processor())
    logger.info("  NumPy:     %s", np.__version__)
    logger.info("  Numba:     %s", numba.__version__)
    logger.info("=" * 70)


def hash_array(arr: np.ndarray) -> str:
    """Compute SHA-256 hash of a NumPy array for reproducibility verification.

    Parameters
    ----------
    arr : np.ndarray
        Array to hash.

    Returns
    -------
    str
        Hex digest of the SHA-256 hash.
    """
    return hashlib.sha256(arr.tobytes()).hexdigest()
