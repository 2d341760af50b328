"""Smoke tests for the command-line entry point."""

from __future__ import annotations

from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np
import pytest

import main
from rendering import scheduler
from rendering.scheduler import RenderError, RowBand, WorkerOutcome


def _args(config_path: Path, *extra: str) -> list[str]:
    return ["--config", str(config_path), "--width", "8", "--height", "8",
            "--samples", "4", "--seed", "3", *extra]


def test_sequential_render_writes_png(tmp_path: Path, config_path: Path) -> None:
    out = tmp_path / "frame.png"
    code = main.main(_args(config_path, "--sequential", "--output", str(out), "--save-data"))
    assert code == 0
    assert out.exists()
    assert (tmp_path / "frame_buffer.npy").exists()
    assert (tmp_path / "metadata.json").exists()


def test_encode_only(tmp_path: Path, config_path: Path) -> None:
    main.main(_args(config_path, "--sequential", "--output", str(tmp_path / "a.png"), "--save-data"))
    again = tmp_path / "b.png"
    code = main.main(_args(
        config_path, "--encode-only", "--data-dir", str(tmp_path), "--output", str(again),
    ))
    assert code == 0
    np.testing.assert_array_equal(plt.imread(again), plt.imread(tmp_path / "a.png"))


def test_failed_render_writes_nothing(
    tmp_path: Path, config_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    def _fail(self, width=None, height=None):
        raise RenderError([WorkerOutcome(RowBand(0, 0, 8), 1, "crashed")])

    monkeypatch.setattr(scheduler.ParallelRenderer, "render", _fail)
    out = tmp_path / "never.png"
    assert main.main(_args(config_path, "--output", str(out))) == 1
    assert not out.exists()


def test_allocation_failure_writes_nothing(
    tmp_path: Path, config_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    def _no_memory(*args, **kwargs):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(scheduler.shared_memory, "SharedMemory", _no_memory)
    out = tmp_path / "never.png"
    assert main.main(_args(config_path, "--output", str(out))) == 1
    assert not out.exists()
