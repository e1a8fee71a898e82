from __future__ import annotations

import logging
import random
from statistics import mean
from typing import Iterator

from trust_sim.config.settings import EngineSettings
from trust_sim.engine.tick_engine import TickEngine
from trust_sim.trust.system import TrustSystem
from trust_sim.utils.types import (
    AgentState,
    LifeRecord,
    RandomSource,
    SimulationResult,
    TerminationReason,
    TickRecord,
)


class LifeSimulator:
    """Runs one agent through successive lives with karma carried across rebirths.

    Pass either a seed (each run starts from a fresh random.Random(seed)) or an
    rng object exposing random(); an injected rng is consumed as-is.
    """

    def __init__(
        self,
        cfg: EngineSettings,
        seed: int | None = None,
        rng: RandomSource | None = None,
    ) -> None:
        self.logger = logging.getLogger("trust_sim.world")
        self.cfg = cfg
        self.seed = seed
        self._rng = rng
        self.trust_system = TrustSystem(cfg)
        self.lives: list[LifeRecord] = []

    def _fresh_rng(self) -> RandomSource:
        if self._rng is not None:
            return self._rng
        return random.Random(self.seed)

    def iter_ticks(self) -> Iterator[TickRecord]:
        """Yield every tick as it resolves; closed lives accumulate in self.lives.

        Stopping iteration early leaves self.lives holding only finished lives.
        """
        cfg = self.cfg
        engine = TickEngine(cfg, self._fresh_rng(), trust_system=self.trust_system)
        self.lives = []
        global_tick = 0
        self.logger.info(
            "Simulation start: agent=%s lives=%d ticks_per_life=%d seed=%s",
            cfg.agent_name,
            cfg.num_lives,
            cfg.ticks_per_life,
            self.seed,
        )

        for life_number in range(1, cfg.num_lives + 1):
            previous = self.lives[-1] if self.lives else None
            if previous is None:
                start_trust = cfg.initial_trust
                start_atp = cfg.initial_atp
            else:
                start_trust = self.trust_system.rebirth_trust(previous.end_trust)
                start_atp = self.trust_system.rebirth_energy(previous.end_trust)
                self.logger.info(
                    "Rebirth: life=%d prev_final_trust=%.4f start_trust=%.4f start_atp=%.1f ep=%.3f",
                    life_number,
                    previous.end_trust,
                    start_trust,
                    start_atp,
                    self.trust_system.ep_level(life_number),
                )

            state = AgentState(
                agent_id=cfg.agent_name,
                energy=start_atp,
                trust=start_trust,
                life_number=life_number,
                ep_level=self.trust_system.ep_level(life_number),
            )
            trust_history = [start_trust]
            atp_history = [start_atp]
            coherence_history: list[float] = []
            ticks: list[TickRecord] = []
            termination = TerminationReason.COMPLETED

            for life_tick in range(cfg.ticks_per_life):
                outcome = engine.step(state, global_tick + life_tick, life_tick, trust_history)
                ticks.append(outcome.record)
                coherence_history.append(outcome.record.coherence)
                trust_history.append(outcome.record.trust)
                atp_history.append(outcome.record.atp)
                yield outcome.record
                if outcome.termination is not None:
                    termination = outcome.termination
                    break

            life = LifeRecord(
                life_number=life_number,
                start_tick=global_tick,
                end_tick=global_tick + len(ticks) - 1,
                start_trust=start_trust,
                end_trust=state.trust,
                start_atp=start_atp,
                end_atp=state.energy,
                peak_trust=max(trust_history),
                min_trust=min(trust_history),
                termination_reason=termination,
                trust_history=tuple(trust_history),
                atp_history=tuple(atp_history),
                ticks=tuple(ticks),
                karma_earned=self.trust_system.karma_earned(start_trust, state.trust),
                coherence_history=tuple(coherence_history),
                ep_level=state.ep_level,
            )
            self.lives.append(life)
            global_tick += len(ticks)
            self.logger.info(
                "Life %d ended: reason=%s ticks=%d final_trust=%.4f final_atp=%.1f",
                life_number,
                termination.value,
                life.tick_count,
                life.end_trust,
                life.end_atp,
            )

    def run(self) -> SimulationResult:
        for _ in self.iter_ticks():
            pass
        lives = tuple(self.lives)
        result = SimulationResult(
            agent_name=self.cfg.agent_name,
            seed=self.seed,
            lives=lives,
            total_ticks=sum(life.tick_count for life in lives),
            final_trust=lives[-1].end_trust,
            trust_growth=lives[-1].end_trust - lives[0].start_trust,
            mean_trust=mean(life.end_trust for life in lives),
        )
        self.logger.info(
            "Simulation done: lives=%d total_ticks=%d final_trust=%.4f growth=%+.4f",
            len(lives),
            result.total_ticks,
            result.final_trust,
            result.trust_growth,
        )
        return result
