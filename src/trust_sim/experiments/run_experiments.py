from __future__ import annotations

import logging
import os

from trust_sim.config.settings import AppSettings, ConfigurationError
from trust_sim.experiments.runner import ExperimentRunner, build_specs


def main() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    logger = logging.getLogger("trust_sim.entrypoint")

    try:
        settings = AppSettings.from_env()
    except ConfigurationError as exc:
        logger.error("Invalid configuration: %s", exc)
        raise
    settings.output_dir.mkdir(parents=True, exist_ok=True)

    presets = list(settings.experiments.presets)
    seeds = list(settings.experiments.seeds)
    logger.info(
        "Loaded experiment plan: presets=%s seeds=%s total_runs=%d",
        presets,
        seeds,
        len(presets) * len(seeds),
    )

    runner = ExperimentRunner(settings)
    runner.run_many(build_specs(presets, seeds))


if __name__ == "__main__":
    main()
