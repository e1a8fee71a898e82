"""Single-agent tick resolution.

One call to TickEngine.step() fully resolves one tick:

  SELECT: the action policy picks contribute, venture or conserve from
          energy, trust, experience and risk appetite.
  DRAW: success probability is computed from trust, experience and risk,
        then a single uniform draw decides the outcome.
  APPLY: energy and trust are updated, trust deltas scaled by the
         coherence of the recent trust history (trust clamped, energy floored).
  CHECK: exhaustion, sustained low trust, or the life tick cap ends
         the life.

All randomness comes from the injected rng, four draws per tick in a fixed
order, so a seed fully determines a run.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from trust_sim.agents.policy import ActionPolicy
from trust_sim.config.settings import EngineSettings
from trust_sim.trust.system import TrustSystem
from trust_sim.utils.types import AgentState, RandomSource, TerminationReason, TickRecord

logger = logging.getLogger("trust_sim.engine")


@dataclass
class TickOutcome:
    record: TickRecord
    termination: TerminationReason | None = None


class TickEngine:
    def __init__(
        self,
        cfg: EngineSettings,
        rng: RandomSource,
        trust_system: TrustSystem | None = None,
        policy: ActionPolicy | None = None,
    ) -> None:
        self.cfg = cfg
        self.rng = rng
        self.trust_system = trust_system or TrustSystem(cfg)
        self.policy = policy or ActionPolicy(cfg, rng)

    def step(
        self,
        state: AgentState,
        tick: int,
        life_tick: int,
        trust_history: Sequence[float] = (),
    ) -> TickOutcome:
        if not state.alive:
            raise RuntimeError(f"agent {state.agent_id} is dead; life {state.life_number} is closed")

        action = self.policy.select(state)
        p = self.trust_system.success_probability(state, action, self.rng.random())
        success = self.rng.random() < p
        coherence = self.trust_system.coherence(trust_history)
        self.trust_system.apply_outcome(state, action, success, coherence)

        termination: TerminationReason | None = None
        if state.energy <= 0.0:
            termination = TerminationReason.ATP_EXHAUSTION
        elif self.trust_system.update_low_trust(state):
            termination = TerminationReason.TRUST_LOST
        elif life_tick + 1 >= self.cfg.ticks_per_life:
            termination = TerminationReason.COMPLETED

        if termination is not None and termination != TerminationReason.COMPLETED:
            state.alive = False

        record = TickRecord(
            tick=tick,
            life_tick=life_tick,
            life_number=state.life_number,
            action=action.kind,
            success=success,
            success_probability=p,
            atp=state.energy,
            trust=state.trust,
            alive=state.alive,
            coherence=coherence,
        )
        logger.debug(
            "tick=%d life=%d action=%s success=%s p=%.3f atp=%.2f trust=%.4f",
            tick,
            state.life_number,
            action.kind.value,
            success,
            p,
            state.energy,
            state.trust,
        )
        return TickOutcome(record=record, termination=termination)
