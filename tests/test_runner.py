"""Experiment batches: artifacts on disk and the env-driven entry point."""

import json

import pytest

from trust_sim.config.settings import (
    AppSettings,
    ConfigurationError,
    DetectorSettings,
    EngineSettings,
    ExperimentSettings,
    NetworkSettings,
)
from trust_sim.experiments import run_experiments
from trust_sim.experiments.runner import ExperimentRunner, build_specs


def _settings(tmp_path):
    return AppSettings(
        engine=EngineSettings(),
        network=NetworkSettings(),
        detector=DetectorSettings(),
        experiments=ExperimentSettings(presets=("gentle-start", "naive-cartel"), seeds=(1,)),
        output_dir=tmp_path,
    )


class TestHelpers:
    def test_build_specs_is_cartesian(self):
        specs = build_specs(["a", "b"], [1, 2, 3])
        assert len(specs) == 6
        assert (specs[0].preset, specs[0].seed) == ("a", 1)


class TestExperimentRunner:
    def test_run_many_writes_artifacts(self, tmp_path):
        runner = ExperimentRunner(_settings(tmp_path))
        rows = runner.run_many(build_specs(["gentle-start", "naive-cartel"], [1]))
        assert [r["kind"] for r in rows] == ["engine", "network"]
        assert (tmp_path / "metrics.csv").exists()

        engine_dir = tmp_path / rows[0]["run_id"]
        assert {p.name for p in engine_dir.iterdir()} == {
            "lives.json",
            "insights.json",
            "moments.json",
            "metrics.json",
        }
        lives = json.loads((engine_dir / "lives.json").read_text(encoding="utf-8"))
        assert len(lives["lives"]) == 3

        network_dir = tmp_path / rows[1]["run_id"]
        snapshots = json.loads((network_dir / "snapshots.json").read_text(encoding="utf-8"))
        assert len(snapshots) == 40
        moments = json.loads((network_dir / "moments.json").read_text(encoding="utf-8"))
        assert rows[1]["moments"] == len(moments)

    def test_env_configured_settings(self, tmp_path):
        settings = _settings(tmp_path)
        settings = AppSettings(
            engine=EngineSettings(num_lives=2, ticks_per_life=5),
            network=NetworkSettings(ticks=6),
            detector=settings.detector,
            experiments=settings.experiments,
            output_dir=tmp_path,
        )
        runner = ExperimentRunner(settings)
        engine_row = runner.run_one("engine", 1)
        network_row = runner.run_one("network", 1)
        assert engine_row["lives"] == 2
        assert engine_row["total_ticks"] <= 10
        assert network_row["ticks"] == 6

    def test_unknown_preset(self, tmp_path):
        runner = ExperimentRunner(_settings(tmp_path))
        with pytest.raises(KeyError):
            runner.run_one("no-such-preset", 1)


class TestEntryPoint:
    def test_main_runs_env_plan(self, monkeypatch, tmp_path):
        monkeypatch.setenv("OUTPUT_DIR", str(tmp_path))
        monkeypatch.setenv("EXPERIMENT_PRESETS", "no-karma")
        monkeypatch.setenv("EXPERIMENT_SEEDS", "3,4")
        run_experiments.main()
        run_dirs = [p for p in tmp_path.iterdir() if p.is_dir()]
        assert len(run_dirs) == 2
        assert all(p.name.endswith(("_no-karma_seed3", "_no-karma_seed4")) for p in run_dirs)

    def test_malformed_env_is_logged_and_reraised(self, monkeypatch, tmp_path, caplog):
        monkeypatch.setenv("OUTPUT_DIR", str(tmp_path))
        monkeypatch.setenv("SOPHISTICATION", "bogus")
        with pytest.raises(ConfigurationError):
            run_experiments.main()
        assert any("SOPHISTICATION" in r.getMessage() for r in caplog.records)
        assert not any(p.is_dir() for p in tmp_path.iterdir())
