"""Named scenario presets.

Tables are read-only mappings of frozen settings objects. Callers pick one
and pass it explicitly to a simulator; nothing here is mutated at runtime.
"""
from __future__ import annotations

from types import MappingProxyType
from typing import Mapping

from trust_sim.config.settings import EngineSettings, NetworkSettings
from trust_sim.utils.types import Sophistication

ENGINE_PRESETS: Mapping[str, EngineSettings] = MappingProxyType({
    "gentle-start": EngineSettings(
        agent_name="Newcomer",
        num_lives=3,
        ticks_per_life=40,
        initial_atp=150.0,
        initial_trust=0.3,
        success_rate=0.8,
        trust_gain_rate=0.025,
        trust_loss_rate=0.035,
        karma_strength=0.6,
        noise=0.05,
        conserve_atp_multiplier=3.0,
    ),
    "harsh-world": EngineSettings(
        agent_name="Survivor",
        num_lives=5,
        ticks_per_life=30,
        initial_atp=60.0,
        initial_trust=0.3,
        success_rate=0.6,
        action_cost=4.0,
        action_reward=6.0,
        trust_gain_rate=0.015,
        trust_loss_rate=0.04,
        karma_strength=0.3,
        noise=0.2,
        risk_appetite=0.3,
        conserve_atp_multiplier=3.0,
    ),
    "risk-taker": EngineSettings(
        agent_name="Gambler",
        num_lives=4,
        ticks_per_life=30,
        initial_atp=100.0,
        initial_trust=0.35,
        risk_appetite=0.9,
        karma_strength=0.5,
        karma_atp_bonus=40.0,
    ),
    "no-karma": EngineSettings(
        agent_name="Amnesiac",
        num_lives=3,
        ticks_per_life=50,
        initial_atp=100.0,
        initial_trust=0.3,
        karma_strength=0.0,
    ),
    "quick-learner": EngineSettings(
        agent_name="Apprentice",
        num_lives=5,
        ticks_per_life=30,
        initial_atp=80.0,
        initial_trust=0.3,
        success_rate=0.65,
        trust_loss_rate=0.035,
        ep_learning_rate=0.08,
        coherence_weight=0.3,
        conserve_atp_multiplier=2.0,
    ),
})

NETWORK_PRESETS: Mapping[str, NetworkSettings] = MappingProxyType({
    "naive-cartel": NetworkSettings(
        network_size=16,
        cartel_size=4,
        sophistication=Sophistication.NAIVE,
        diversity_threshold=0.5,
        challenge_rate=0.1,
    ),
    "moderate-cartel": NetworkSettings(
        network_size=20,
        cartel_size=5,
        sophistication=Sophistication.MODERATE,
        diversity_threshold=0.5,
        challenge_rate=0.1,
    ),
    "advanced-cartel": NetworkSettings(
        network_size=24,
        cartel_size=6,
        sophistication=Sophistication.ADVANCED,
        diversity_threshold=0.5,
        challenge_rate=0.1,
    ),
    "weak-defenses": NetworkSettings(
        network_size=20,
        cartel_size=5,
        sophistication=Sophistication.MODERATE,
        diversity_threshold=0.3,
        challenge_rate=0.05,
    ),
})


def resolve_preset(name: str) -> EngineSettings | NetworkSettings:
    if name in ENGINE_PRESETS:
        return ENGINE_PRESETS[name]
    if name in NETWORK_PRESETS:
        return NETWORK_PRESETS[name]
    known = sorted([*ENGINE_PRESETS, *NETWORK_PRESETS])
    raise KeyError(f"Unknown preset {name!r}; known presets: {', '.join(known)}")
