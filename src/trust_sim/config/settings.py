from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from trust_sim.utils.types import Sophistication

# Phase boundary for coherent agency; crossing it from below is an emergence.
TRUST_EMERGENCE_THRESHOLD = 0.5
TRUST_COLLAPSE_FRACTION = 0.20
TRUST_SURGE_FRACTION = 0.15
KARMA_BAND_LOW = 0.3
KARMA_BAND_HIGH = 0.6
SUCCESS_FLOOR = 0.6
SUCCESS_CEILING = 0.9


class ConfigurationError(ValueError):
    """Raised when a settings object is constructed with out-of-range values."""


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise ConfigurationError(message)


def _unit(name: str, value: float) -> None:
    _require(0.0 <= value <= 1.0, f"{name} must be within [0, 1], got {value}")


def _non_negative(name: str, value: float) -> None:
    _require(value >= 0.0, f"{name} must be non-negative, got {value}")


@dataclass(frozen=True)
class EngineSettings:
    """Single-agent, multi-life engine parameters."""

    agent_name: str = "Agent-1"
    num_lives: int = 3
    ticks_per_life: int = 50
    initial_atp: float = 100.0
    initial_trust: float = 0.3

    # Action economics
    action_cost: float = 3.0
    """ATP spent by a standard contribution."""
    action_reward: float = 5.0
    """ATP earned by a successful contribution."""
    venture_cost_multiplier: float = 2.0
    venture_reward_multiplier: float = 2.5
    venture_trust_multiplier: float = 1.5
    venture_success_penalty: float = 0.1
    """Success probability subtracted for a high-risk venture."""

    # Trust dynamics
    trust_gain_rate: float = 0.02
    trust_loss_rate: float = 0.03
    """Must exceed trust_gain_rate: trust is harder to build than to lose."""
    trust_death_threshold: float = 0.1
    trust_death_grace_ticks: int = 3
    """Consecutive ticks below the threshold before the agent dies of trust loss."""

    # Success draw
    success_rate: float = 0.75
    trust_influence: float = 0.3
    risk_appetite: float = 0.0
    risk_success_penalty: float = 0.15
    noise: float = 0.1
    success_floor: float = SUCCESS_FLOOR
    success_ceiling: float = SUCCESS_CEILING

    # Karma / rebirth
    karma_strength: float = 0.5
    karma_compression: bool = True
    karma_band_low: float = KARMA_BAND_LOW
    karma_band_high: float = KARMA_BAND_HIGH
    karma_atp_bonus: float = 0.0
    """ATP added on rebirth per unit of trust the previous life ended above baseline."""

    # Experience and coherence
    ep_enabled: bool = True
    ep_learning_rate: float = 0.05
    """Success probability gained per rebirth; life N starts with (N - 1) * rate."""
    coherence_weight: float = 0.2
    """Scales trust gains up and losses down for agents with a steady trust trajectory."""
    coherence_window: int = 10

    # Conserve action
    conserve_atp_multiplier: float = 0.0
    """Agents below action_cost * multiplier may rest instead of acting; 0 disables."""
    conserve_cost: float = 1.0
    conserve_trust_gain: float = 0.001

    def __post_init__(self) -> None:
        _require(self.num_lives >= 1, f"num_lives must be >= 1, got {self.num_lives}")
        _require(
            self.ticks_per_life >= 1,
            f"ticks_per_life must be >= 1, got {self.ticks_per_life}",
        )
        _require(self.initial_atp > 0.0, f"initial_atp must be positive, got {self.initial_atp}")
        _unit("initial_trust", self.initial_trust)
        for name in (
            "action_cost",
            "action_reward",
            "venture_cost_multiplier",
            "venture_reward_multiplier",
            "venture_trust_multiplier",
            "karma_atp_bonus",
            "trust_influence",
            "risk_success_penalty",
            "conserve_atp_multiplier",
            "conserve_cost",
        ):
            _non_negative(name, getattr(self, name))
        for name in (
            "trust_gain_rate",
            "trust_loss_rate",
            "trust_death_threshold",
            "success_rate",
            "risk_appetite",
            "noise",
            "success_floor",
            "success_ceiling",
            "venture_success_penalty",
            "karma_strength",
            "karma_band_low",
            "karma_band_high",
            "ep_learning_rate",
            "coherence_weight",
            "conserve_trust_gain",
        ):
            _unit(name, getattr(self, name))
        # Compared at full coherence, where gains are boosted most and losses softened most.
        effective_loss = self.trust_loss_rate * (1.0 - 0.5 * self.coherence_weight)
        effective_gain = self.trust_gain_rate * (1.0 + self.coherence_weight)
        _require(
            effective_loss > effective_gain,
            "trust_loss_rate must exceed trust_gain_rate at full coherence "
            f"(got loss={self.trust_loss_rate}, gain={self.trust_gain_rate}, "
            f"coherence_weight={self.coherence_weight})",
        )
        _require(
            self.conserve_trust_gain <= self.trust_gain_rate,
            "conserve_trust_gain must not exceed trust_gain_rate",
        )
        _require(self.coherence_window >= 3, "coherence_window must be >= 3")
        _require(
            self.success_floor <= self.success_ceiling,
            "success_floor must not exceed success_ceiling",
        )
        _require(
            self.karma_band_low <= self.karma_band_high,
            "karma_band_low must not exceed karma_band_high",
        )
        _require(
            not self.karma_compression
            or self.karma_band_low <= self.initial_trust <= self.karma_band_high,
            f"initial_trust {self.initial_trust} must lie within the karma band "
            f"[{self.karma_band_low}, {self.karma_band_high}] when karma_compression is on",
        )
        _require(
            self.trust_death_grace_ticks >= 1,
            f"trust_death_grace_ticks must be >= 1, got {self.trust_death_grace_ticks}",
        )


@dataclass(frozen=True)
class NetworkSettings:
    """Collusion network parameters and detection constants."""

    network_size: int = 16
    cartel_size: int = 4
    sophistication: Sophistication = Sophistication.NAIVE
    diversity_threshold: float = 0.5
    challenge_rate: float = 0.1
    ticks: int = 40
    initial_atp: float = 100.0

    # Detection warm-ups and cadence
    warmup_ticks: int = 5
    challenge_warmup_ticks: int = 3
    inflation_warmup_ticks: int = 8
    clustering_start_tick: int = 10
    clustering_interval: int = 5
    velocity_interval: int = 4
    velocity_window: int = 20
    """Trust above velocity_trust before this tick is suspicious."""
    velocity_trust: float = 0.7

    diversity_sensitivity: float = 1.5
    diversity_high_gap: float = 0.2
    """Gap below the diversity threshold at which a flag becomes high severity."""
    reflag_probability: float = 0.3
    inflation_ratio: float = 1.3
    challenge_penalty: float = 50.0

    # Coalition detection
    coalition_window: int = 5
    coalition_min_mutual: int = 2
    coalition_min_size: int = 3

    def __post_init__(self) -> None:
        _require(self.network_size >= 4, f"network_size must be >= 4, got {self.network_size}")
        _require(self.cartel_size >= 2, f"cartel_size must be >= 2, got {self.cartel_size}")
        _require(
            self.network_size - self.cartel_size >= 2,
            "network must contain at least two legitimate agents",
        )
        _require(
            isinstance(self.sophistication, Sophistication),
            f"sophistication must be a Sophistication, got {self.sophistication!r}",
        )
        _require(self.ticks >= 1, f"ticks must be >= 1, got {self.ticks}")
        _require(self.initial_atp > 0.0, f"initial_atp must be positive, got {self.initial_atp}")
        for name in (
            "diversity_threshold",
            "challenge_rate",
            "velocity_trust",
            "diversity_high_gap",
            "reflag_probability",
        ):
            _unit(name, getattr(self, name))
        for name in (
            "warmup_ticks",
            "challenge_warmup_ticks",
            "inflation_warmup_ticks",
            "clustering_start_tick",
            "velocity_window",
            "diversity_sensitivity",
            "challenge_penalty",
        ):
            _non_negative(name, getattr(self, name))
        for name in ("clustering_interval", "velocity_interval", "coalition_window"):
            _require(getattr(self, name) >= 1, f"{name} must be >= 1")
        _require(self.inflation_ratio >= 1.0, "inflation_ratio must be >= 1")
        _require(self.coalition_min_mutual >= 1, "coalition_min_mutual must be >= 1")
        _require(self.coalition_min_size >= 2, "coalition_min_size must be >= 2")


@dataclass(frozen=True)
class DetectorSettings:
    """Moment detection thresholds."""

    emergence_threshold: float = TRUST_EMERGENCE_THRESHOLD
    collapse_fraction: float = TRUST_COLLAPSE_FRACTION
    surge_fraction: float = TRUST_SURGE_FRACTION
    karma_epsilon: float = 0.001
    maturation_delta: float = 0.05
    consistency_delta: float = 0.02
    atp_reference: float = 100.0
    crisis_fraction: float = 0.2
    windfall_fraction: float = 0.25
    network_trust_delta: float = 0.1
    network_trust_critical: float = 0.15

    def __post_init__(self) -> None:
        for name in (
            "emergence_threshold",
            "collapse_fraction",
            "surge_fraction",
            "karma_epsilon",
            "maturation_delta",
            "consistency_delta",
            "crisis_fraction",
            "windfall_fraction",
            "network_trust_delta",
            "network_trust_critical",
        ):
            _unit(name, getattr(self, name))
        _require(self.atp_reference > 0.0, "atp_reference must be positive")


@dataclass(frozen=True)
class ExperimentSettings:
    presets: tuple[str, ...] = ("gentle-start", "harsh-world", "naive-cartel", "advanced-cartel")
    seeds: tuple[int, ...] = (11, 42, 97)


@dataclass(frozen=True)
class AppSettings:
    engine: EngineSettings
    network: NetworkSettings
    detector: DetectorSettings
    experiments: ExperimentSettings
    output_dir: Path

    @staticmethod
    def from_env() -> "AppSettings":
        """Build settings from environment variables.

        Malformed values (a non-numeric NUM_LIVES, an unknown SOPHISTICATION)
        surface as ConfigurationError naming the variable, like range errors do.
        """
        return AppSettings(
            engine=EngineSettings(
                agent_name=os.getenv("AGENT_NAME", "Agent-1"),
                num_lives=_env_int("NUM_LIVES", 3),
                ticks_per_life=_env_int("TICKS_PER_LIFE", 50),
                initial_atp=_env_float("INITIAL_ATP", 100.0),
                initial_trust=_env_float("INITIAL_TRUST", 0.3),
                action_cost=_env_float("ACTION_COST", 3.0),
                action_reward=_env_float("ACTION_REWARD", 5.0),
                trust_gain_rate=_env_float("TRUST_GAIN_RATE", 0.02),
                trust_loss_rate=_env_float("TRUST_LOSS_RATE", 0.03),
                trust_death_threshold=_env_float("TRUST_DEATH_THRESHOLD", 0.1),
                success_rate=_env_float("SUCCESS_RATE", 0.75),
                risk_appetite=_env_float("RISK_APPETITE", 0.0),
                noise=_env_float("NOISE", 0.1),
                karma_strength=_env_float("KARMA_STRENGTH", 0.5),
                karma_atp_bonus=_env_float("KARMA_ATP_BONUS", 0.0),
                ep_enabled=_env_bool("EP_ENABLED", True),
                ep_learning_rate=_env_float("EP_LEARNING_RATE", 0.05),
                coherence_weight=_env_float("COHERENCE_WEIGHT", 0.2),
                conserve_atp_multiplier=_env_float("CONSERVE_ATP_MULTIPLIER", 0.0),
            ),
            network=NetworkSettings(
                network_size=_env_int("NETWORK_SIZE", 16),
                cartel_size=_env_int("CARTEL_SIZE", 4),
                sophistication=_env_sophistication("SOPHISTICATION", Sophistication.NAIVE),
                diversity_threshold=_env_float("DIVERSITY_THRESHOLD", 0.5),
                challenge_rate=_env_float("CHALLENGE_RATE", 0.1),
                ticks=_env_int("NETWORK_TICKS", 40),
            ),
            detector=DetectorSettings(
                atp_reference=_env_float("ATP_REFERENCE", 100.0),
            ),
            experiments=ExperimentSettings(
                presets=tuple(
                    p.strip()
                    for p in os.getenv(
                        "EXPERIMENT_PRESETS",
                        "gentle-start,harsh-world,naive-cartel,advanced-cartel",
                    ).split(",")
                    if p.strip()
                ),
                seeds=_env_seeds("EXPERIMENT_SEEDS", "11,42,97"),
            ),
            output_dir=Path(os.getenv("OUTPUT_DIR", "outputs")),
        )


def parse_seed_list(raw: str) -> list[int]:
    """Parse a comma-separated seed list, ignoring blanks. Raises ValueError on non-integers."""
    out: list[int] = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        out.append(int(part))
    return out


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {raw!r}")


def _env_sophistication(name: str, default: Sophistication) -> Sophistication:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return Sophistication(raw.strip().lower())
    except ValueError as exc:
        choices = ", ".join(s.value for s in Sophistication)
        raise ConfigurationError(f"{name} must be one of {choices}, got {raw!r}") from exc


def _env_seeds(name: str, default: str) -> tuple[int, ...]:
    raw = os.getenv(name, default)
    try:
        return tuple(parse_seed_list(raw))
    except ValueError as exc:
        raise ConfigurationError(
            f"{name} must be comma-separated integers, got {raw!r}"
        ) from exc
