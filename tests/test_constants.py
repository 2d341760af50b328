"""Tests for configuration loading, validation and overrides."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest
import yaml

from tracer_core.constants import (
    RenderConfig,
    apply_overrides,
    hash_array,
    load_config,
    log_policies,
)


def _write_variant(tmp_path: Path, config_path: Path, section: list[str], value) -> Path:
    """Copy the default config with one nested key replaced."""
    with open(config_path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)
    node = raw
    for key in section[:-1]:
        node = node[key]
    node[section[-1]] = value
    out = tmp_path / "variant.yaml"
    with open(out, "w", encoding="utf-8") as f:
        yaml.safe_dump(raw, f)
    return out


class TestLoadConfig:
    """Test suite for the YAML loader."""

    def test_reference_defaults(self, base_config: RenderConfig) -> None:
        assert base_config.sampler.num_samples == 64
        assert base_config.sampler.strategy == "jittered"
        assert base_config.march.max_steps == 10
        assert base_config.march.max_distance == 2.0
        assert base_config.march.epsilon == pytest.approx(1e-6)
        assert base_config.parallel.worker_count == 4
        assert base_config.parallel.start_method is None
        assert base_config.parallel.worker_timeout_s is None
        assert (base_config.frame.width, base_config.frame.height) == (512, 512)
        assert base_config.frame.intensity_overflow == "clamp"
        assert base_config.light.center_x == 0.5
        assert base_config.light.radius == 0.1

    def test_policy_registry(self, base_config: RenderConfig) -> None:
        names = [p.name for p in base_config.policies]
        assert "Intensity Overflow" in names
        assert "Partition Remainder" in names
        assert "Seed Policy" in names
        log_policies(base_config)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "absent.yaml")

    def test_null_seed(self, tmp_path: Path, config_path: Path) -> None:
        cfg = load_config(_write_variant(tmp_path, config_path, ["tracer", "sampler", "seed"], None))
        assert cfg.sampler.seed is None

    @pytest.mark.parametrize(
        "section, value",
        [
            (["tracer", "sampler", "strategy"], "sobol"),
            (["tracer", "sampler", "num_samples"], 0),
            (["tracer", "march", "epsilon"], 0.0),
            (["tracer", "march", "max_steps"], 0),
            (["scene", "light", "radius"], -0.1),
            (["frame", "intensity_overflow"], "saturate"),
            (["frame", "width"], 0),
            (["parallel", "worker_count"], 0),
            (["parallel", "start_method"], "thread"),
            (["parallel", "worker_timeout_s"], -1.0),
            (["parallel", "worker_timeout_s"], 0),
        ],
    )
    def test_invalid_values(
        self, tmp_path: Path, config_path: Path, section: list[str], value
    ) -> None:
        with pytest.raises(ValueError):
            load_config(_write_variant(tmp_path, config_path, section, value))

    def test_missing_key(self, tmp_path: Path) -> None:
        bad = tmp_path / "bad.yaml"
        bad.write_text("scene:\n  light:\n    radius: 0.1\n", encoding="utf-8")
        with pytest.raises(ValueError, match="Malformed"):
            load_config(bad)


class TestOverrides:
    """Test suite for command-line overrides."""

    def test_overrides_applied(self, base_config: RenderConfig) -> None:
        cfg = apply_overrides(
            base_config, width=64, height=32, worker_count=2,
            num_samples=4, strategy="uniform", seed=9, output_path="x.png",
        )
        assert (cfg.frame.width, cfg.frame.height) == (64, 32)
        assert cfg.parallel.worker_count == 2
        assert cfg.sampler.num_samples == 4
        assert cfg.sampler.strategy == "uniform"
        assert cfg.sampler.seed == 9
        assert cfg.output.path == "x.png"
        assert cfg.light == base_config.light

    def test_none_keeps_values(self, base_config: RenderConfig) -> None:
        cfg = apply_overrides(base_config)
        assert cfg.frame == base_config.frame
        assert cfg.sampler == base_config.sampler
        assert cfg.parallel == base_config.parallel

    def test_invalid_override(self, base_config: RenderConfig) -> None:
        with pytest.raises(ValueError):
            apply_overrides(base_config, worker_count=0)


def test_hash_array() -> None:
    a = np.arange(12, dtype=np.uint8)
    assert hash_array(a) == hash_array(a.copy())
    assert hash_array(a) != hash_array(a[::-1].copy())
