from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Iterable

from trust_sim.config.presets import resolve_preset
from trust_sim.config.settings import AppSettings, EngineSettings, NetworkSettings
from trust_sim.metrics.engine import MetricsEngine
from trust_sim.metrics.moments import HistorySource, MomentDetector
from trust_sim.world.network import CollusionNetwork
from trust_sim.world.simulator import LifeSimulator

ENV_ENGINE_PRESET = "engine"
ENV_NETWORK_PRESET = "network"


@dataclass
class ExperimentSpec:
    preset: str
    seed: int


class ExperimentRunner:
    def __init__(self, settings: AppSettings) -> None:
        self.logger = logging.getLogger("trust_sim.runner")
        self.settings = settings
        self.metrics_engine = MetricsEngine()
        self.detector = MomentDetector(settings.detector)

    def run_many(self, specs: Iterable[ExperimentSpec]) -> list[dict]:
        rows: list[dict] = []
        specs_list = list(specs)
        self.logger.info("Starting batch execution: run_count=%d", len(specs_list))
        batch_start = time.perf_counter()
        for idx, spec in enumerate(specs_list, start=1):
            self.logger.info(
                "Run queued: index=%d/%d preset=%s seed=%d",
                idx,
                len(specs_list),
                spec.preset,
                spec.seed,
            )
            row = self.run_one(spec.preset, spec.seed)
            rows.append(row)
        metrics_path = self.metrics_engine.write_metrics_csv(
            self.settings.output_dir, rows, filename="metrics.csv"
        )
        self.logger.info(
            "Batch completed in %.2fs. Aggregate metrics at %s",
            time.perf_counter() - batch_start,
            metrics_path,
        )
        return rows

    def run_one(self, preset: str, seed: int) -> dict:
        """Run one preset with one seed; unknown presets raise KeyError."""
        cfg = self._resolve(preset)
        run_id = self._run_id(preset, seed)
        run_start = time.perf_counter()
        self.logger.info("Starting run: %s", run_id)

        artifacts: dict[str, Any] = {}
        if isinstance(cfg, EngineSettings):
            result = LifeSimulator(cfg, seed=seed).run()
            source = HistorySource(source_id=run_id, label=cfg.agent_name, lives=result.lives)
            run_metrics = self.metrics_engine.summarize_lives(result)
            artifacts["lives.json"] = result.to_dict()
            artifacts["insights.json"] = self.metrics_engine.insights(result)
            kind = "engine"
        elif isinstance(cfg, NetworkSettings):
            snapshots = CollusionNetwork(cfg, seed=seed).run()
            source = HistorySource(
                source_id=run_id,
                label=f"{cfg.sophistication.value} cartel",
                snapshots=snapshots,
            )
            run_metrics = self.metrics_engine.summarize_network(snapshots)
            artifacts["snapshots.json"] = [s.to_dict() for s in snapshots]
            kind = "network"
        else:
            raise TypeError(f"Unsupported preset settings for {preset!r}: {type(cfg).__name__}")

        self.logger.info("Simulation completed for run: %s", run_id)
        moments = self.detector.detect(source)
        run_metrics["moments"] = len(moments)
        artifacts["moments.json"] = [m.to_dict() for m in moments]
        artifacts["metrics.json"] = run_metrics
        self.logger.info("Metrics computed for run: %s -> %s", run_id, run_metrics)
        self._write_run_artifacts(run_id, artifacts)
        self.logger.info(
            "Completed run: %s in %.2fs", run_id, time.perf_counter() - run_start
        )
        return {"run_id": run_id, "preset": preset, "kind": kind, "seed": seed, **run_metrics}

    def _resolve(self, preset: str) -> EngineSettings | NetworkSettings:
        # "engine" and "network" run the environment-configured settings.
        if preset == ENV_ENGINE_PRESET:
            return self.settings.engine
        if preset == ENV_NETWORK_PRESET:
            return self.settings.network
        return resolve_preset(preset)

    def _write_run_artifacts(self, run_id: str, artifacts: dict[str, Any]) -> Path:
        run_dir = self.settings.output_dir / run_id
        run_dir.mkdir(parents=True, exist_ok=True)
        for filename, payload in artifacts.items():
            (run_dir / filename).write_text(
                json.dumps(payload, indent=2, ensure_ascii=True), encoding="utf-8"
            )
        return run_dir

    def _run_id(self, preset: str, seed: int) -> str:
        ts = datetime.now(UTC).strftime("%Y%m%dT%H%M%SZ")
        return f"{ts}_{preset}_seed{seed}"


def build_specs(presets: list[str], seeds: list[int]) -> list[ExperimentSpec]:
    specs: list[ExperimentSpec] = []
    for preset in presets:
        for seed in seeds:
            specs.append(ExperimentSpec(preset=preset, seed=seed))
    return specs
