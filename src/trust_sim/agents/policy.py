from __future__ import annotations

import logging

from trust_sim.config.settings import EngineSettings
from trust_sim.utils.types import ActionKind, ActionSpec, AgentState, RandomSource


class ActionPolicy:
    def __init__(self, cfg: EngineSettings, rng: RandomSource) -> None:
        self.logger = logging.getLogger("trust_sim.policy")
        self.cfg = cfg
        self.rng = rng
        self.contribute = ActionSpec(
            kind=ActionKind.CONTRIBUTE,
            label="Contributing to society",
            energy_cost=cfg.action_cost,
            energy_gain=cfg.action_reward,
            trust_gain=cfg.trust_gain_rate,
            trust_loss=cfg.trust_loss_rate,
        )
        self.venture = ActionSpec(
            kind=ActionKind.VENTURE,
            label="Taking a high-risk venture",
            energy_cost=cfg.action_cost * cfg.venture_cost_multiplier,
            energy_gain=cfg.action_reward * cfg.venture_reward_multiplier,
            trust_gain=cfg.trust_gain_rate * cfg.venture_trust_multiplier,
            trust_loss=cfg.trust_loss_rate * cfg.venture_trust_multiplier,
            success_penalty=cfg.venture_success_penalty,
        )
        self.conserve = ActionSpec(
            kind=ActionKind.CONSERVE,
            label="Conserving resources",
            energy_cost=cfg.conserve_cost,
            energy_gain=0.0,
            trust_gain=cfg.conserve_trust_gain,
            trust_loss=cfg.trust_loss_rate,
        )

    def venture_probability(self, state: AgentState) -> float:
        # Low-trust agents with an appetite for risk gamble more.
        return self.cfg.risk_appetite * (0.5 + 0.5 * (1.0 - state.trust))

    def conserve_probability(self, state: AgentState) -> float:
        """Chance of resting when energy runs low; experienced agents rest more readily."""
        if state.energy >= self.cfg.action_cost * self.cfg.conserve_atp_multiplier:
            return 0.0
        smartness = 0.5 + state.ep_level * 2.0
        return min(1.0, 0.3 + smartness * 0.3)

    def select(self, state: AgentState) -> ActionSpec:
        # Always consume two draws so the random stream does not depend on energy.
        conserve_draw = self.rng.random()
        venture_draw = self.rng.random()
        if conserve_draw < self.conserve_probability(state):
            self.logger.debug(
                "conserving agent=%s energy=%.2f", state.agent_id, state.energy
            )
            return self.conserve
        if venture_draw < self.venture_probability(state):
            if state.energy >= self.venture.energy_cost:
                return self.venture
            self.logger.debug(
                "venture unaffordable agent=%s energy=%.2f cost=%.2f",
                state.agent_id,
                state.energy,
                self.venture.energy_cost,
            )
        return self.contribute
