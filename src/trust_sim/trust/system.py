from __future__ import annotations

import logging
import statistics
from typing import Sequence

from trust_sim.config.settings import EngineSettings
from trust_sim.utils.types import ActionSpec, AgentState

NEUTRAL_COHERENCE = 0.5


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


class TrustSystem:
    """Trust arithmetic shared by the tick engine and the rebirth logic."""

    def __init__(self, cfg: EngineSettings) -> None:
        self.cfg = cfg
        self.logger = logging.getLogger("trust_sim.trust")

    def success_probability(self, state: AgentState, action: ActionSpec, noise_draw: float) -> float:
        """Probability that `action` succeeds for `state`.

        `noise_draw` is a uniform sample in [0, 1); it is mapped onto
        [-noise, +noise]. Experience from earlier lives adds directly. The
        result is clamped into the configured floor/ceiling so trust can tilt
        but never decide the outcome.
        """
        cfg = self.cfg
        p = (
            cfg.success_rate
            + cfg.trust_influence * (state.trust - 0.5)
            + state.ep_level
            - cfg.risk_success_penalty * cfg.risk_appetite
            - action.success_penalty
            + (noise_draw - 0.5) * 2.0 * cfg.noise
        )
        return clamp(p, cfg.success_floor, cfg.success_ceiling)

    def coherence(self, trust_history: Sequence[float]) -> float:
        """Steadiness of the recent trust trajectory in [0, 1].

        Short histories are neutral. Otherwise one minus ten times the
        population standard deviation of the last `coherence_window` values.
        """
        if len(trust_history) < 3:
            return NEUTRAL_COHERENCE
        window = list(trust_history)[-self.cfg.coherence_window:]
        return clamp(1.0 - statistics.pstdev(window) * 10.0)

    def apply_outcome(
        self,
        state: AgentState,
        action: ActionSpec,
        success: bool,
        coherence: float = 0.0,
    ) -> None:
        weight = coherence * self.cfg.coherence_weight
        if success:
            state.energy = state.energy + action.energy_gain - action.energy_cost
            state.trust = clamp(state.trust + action.trust_gain * (1.0 + weight))
        else:
            state.energy = state.energy - action.energy_cost
            state.trust = clamp(state.trust - action.trust_loss * (1.0 - 0.5 * weight))
        state.energy = max(0.0, state.energy)

    def update_low_trust(self, state: AgentState) -> bool:
        """Track sustained low trust. Returns True once the grace period is exhausted."""
        if state.trust < self.cfg.trust_death_threshold:
            state.low_trust_ticks += 1
        else:
            state.low_trust_ticks = 0
        return state.low_trust_ticks >= self.cfg.trust_death_grace_ticks

    # ---- Karma ----

    def rebirth_trust(self, previous_final_trust: float) -> float:
        """Starting trust for a new life.

        Blends the fresh baseline toward the previous life's final trust by
        karma_strength, then compresses into the karma band so no life starts
        with a runaway advantage or a permanent handicap. The baseline sits
        inside the band, so the start never lands on the opposite side of the
        baseline from the previous final trust.
        """
        cfg = self.cfg
        blended = cfg.initial_trust + cfg.karma_strength * (previous_final_trust - cfg.initial_trust)
        if cfg.karma_compression:
            compressed = clamp(blended, cfg.karma_band_low, cfg.karma_band_high)
        else:
            compressed = clamp(blended)
        self.logger.debug(
            "Rebirth trust: prev_final=%.4f blended=%.4f start=%.4f",
            previous_final_trust,
            blended,
            compressed,
        )
        return compressed

    def rebirth_energy(self, previous_final_trust: float) -> float:
        bonus = self.cfg.karma_atp_bonus * max(0.0, previous_final_trust - self.cfg.initial_trust)
        return self.cfg.initial_atp + bonus

    def ep_level(self, life_number: int) -> float:
        """Experience carried into `life_number`; the first life starts with none."""
        if not self.cfg.ep_enabled:
            return 0.0
        return (life_number - 1) * self.cfg.ep_learning_rate

    def karma_earned(self, start_trust: float, end_trust: float) -> float:
        return (end_trust - start_trust) * self.cfg.karma_strength
