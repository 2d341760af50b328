"""Pytest configuration and shared fixtures for the disc-light tracer tests."""

from __future__ import annotations

import logging
import multiprocessing as mp
import sys
from dataclasses import replace
from pathlib import Path

import pytest


# Add project root to path so imports work
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from tracer_core.constants import RenderConfig, apply_overrides, load_config  # noqa: E402

DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config" / "default_config.yaml"


def pytest_configure(config: pytest.Config) -> None:
    """Configure logging for tests."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s [%(levelname)s] %(message)s",
    )


@pytest.fixture
def config_path() -> Path:
    """Path to the shipped default configuration."""
    return DEFAULT_CONFIG_PATH


@pytest.fixture
def base_config() -> RenderConfig:
    """The default configuration, unmodified (512x512, N=64, 4 workers)."""
    return load_config(DEFAULT_CONFIG_PATH)


@pytest.fixture
def small_config(base_config: RenderConfig) -> RenderConfig:
    """A tiny, fast, seeded configuration: 8x6 frame, 8 rays per pixel."""
    return apply_overrides(base_config, width=8, height=6, num_samples=8, seed=1234)


@pytest.fixture
def fork_config(small_config: RenderConfig) -> RenderConfig:
    """``small_config`` with workers started by fork (targets need not pickle)."""
    if "fork" not in mp.get_all_start_methods():
        pytest.skip("fork start method not available on this platform")
    return replace(small_config, parallel=replace(small_config.parallel, start_method="fork"))
