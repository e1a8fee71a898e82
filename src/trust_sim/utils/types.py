from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Protocol


class TerminationReason(str, Enum):
    ATP_EXHAUSTION = "atp_exhaustion"
    TRUST_LOST = "trust_lost"
    COMPLETED = "completed"


class ActionKind(str, Enum):
    CONTRIBUTE = "contribute"
    VENTURE = "venture"
    CONSERVE = "conserve"


class Sophistication(str, Enum):
    NAIVE = "naive"
    MODERATE = "moderate"
    ADVANCED = "advanced"


class DetectionType(str, Enum):
    DIVERSITY = "diversity"
    CHALLENGE = "challenge"
    CLUSTERING = "clustering"
    VELOCITY = "velocity"


class DetectionSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class MomentCategory(str, Enum):
    TRUST = "trust"
    ATP = "atp"
    KARMA = "karma"
    LEARNING = "learning"
    CRISIS = "crisis"
    EMERGENCE = "emergence"


class MomentSeverity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"


class RandomSource(Protocol):
    """Anything with a uniform [0, 1) draw; random.Random and test stubs both qualify."""

    def random(self) -> float: ...


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


# ---------------------------------------------------------------------------
# Single-agent engine records
# ---------------------------------------------------------------------------

@dataclass
class AgentState:
    agent_id: str
    energy: float
    trust: float
    life_number: int = 1
    alive: bool = True
    low_trust_ticks: int = 0
    """Consecutive ticks spent below the trust death threshold."""
    ep_level: float = 0.0
    """Experience carried over from earlier lives; raises success probability."""

    def survival_signature(self) -> dict[str, float]:
        """Snapshot of survival-critical state for logging."""
        return {
            "energy": round(self.energy, 3),
            "trust": round(self.trust, 4),
            "life_number": self.life_number,
            "low_trust_ticks": self.low_trust_ticks,
            "ep_level": round(self.ep_level, 4),
        }


@dataclass(frozen=True)
class ActionSpec:
    kind: ActionKind
    label: str
    energy_cost: float
    energy_gain: float
    trust_gain: float
    trust_loss: float
    success_penalty: float = 0.0


@dataclass(frozen=True)
class TickRecord:
    tick: int
    life_tick: int
    life_number: int
    action: ActionKind
    success: bool
    success_probability: float
    atp: float
    trust: float
    alive: bool
    coherence: float = 0.5

    def to_dict(self) -> dict[str, Any]:
        return _plain(asdict(self))


@dataclass(frozen=True)
class LifeRecord:
    life_number: int
    start_tick: int
    end_tick: int
    start_trust: float
    end_trust: float
    start_atp: float
    end_atp: float
    peak_trust: float
    min_trust: float
    termination_reason: TerminationReason
    trust_history: tuple[float, ...]
    atp_history: tuple[float, ...]
    ticks: tuple[TickRecord, ...]
    karma_earned: float
    coherence_history: tuple[float, ...] = ()
    ep_level: float = 0.0

    @property
    def tick_count(self) -> int:
        return len(self.ticks)

    def to_dict(self) -> dict[str, Any]:
        out = _plain(asdict(self))
        out["tick_count"] = self.tick_count
        return out


@dataclass(frozen=True)
class SimulationResult:
    agent_name: str
    seed: int | None
    lives: tuple[LifeRecord, ...]
    total_ticks: int
    final_trust: float
    trust_growth: float
    mean_trust: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "agent_name": self.agent_name,
            "seed": self.seed,
            "total_ticks": self.total_ticks,
            "final_trust": self.final_trust,
            "trust_growth": self.trust_growth,
            "mean_trust": self.mean_trust,
            "lives": [life.to_dict() for life in self.lives],
        }


# ---------------------------------------------------------------------------
# Network (collusion) records
# ---------------------------------------------------------------------------

@dataclass
class NetworkAgent:
    agent_id: str
    name: str
    is_cartel: bool
    trust: float
    atp: float
    diversity_score: float = 1.0
    validations_sent: int = 0
    validations_received: int = 0
    internal_ratio: float = 0.0
    flagged: bool = False
    flag_reason: str = ""

    def view(self) -> "NetworkAgentView":
        return NetworkAgentView(
            agent_id=self.agent_id,
            name=self.name,
            is_cartel=self.is_cartel,
            trust=self.trust,
            atp=self.atp,
            diversity_score=self.diversity_score,
            validations_sent=self.validations_sent,
            validations_received=self.validations_received,
            internal_ratio=self.internal_ratio,
            flagged=self.flagged,
            flag_reason=self.flag_reason,
        )


@dataclass(frozen=True)
class NetworkAgentView:
    agent_id: str
    name: str
    is_cartel: bool
    trust: float
    atp: float
    diversity_score: float
    validations_sent: int
    validations_received: int
    internal_ratio: float
    flagged: bool
    flag_reason: str


@dataclass(frozen=True)
class ValidationEdge:
    from_agent: str
    to_agent: str
    outcome_sign: int
    magnitude: float
    colluding: bool = False


@dataclass(frozen=True)
class Detection:
    tick: int
    agent_id: str
    type: DetectionType
    description: str
    severity: DetectionSeverity


@dataclass(frozen=True)
class Coalition:
    coalition_id: str
    members: tuple[str, ...]
    mutual_validations: int


@dataclass(frozen=True)
class NetworkSnapshot:
    tick: int
    agents: tuple[NetworkAgentView, ...]
    edges: tuple[ValidationEdge, ...]
    detections: tuple[Detection, ...]
    coalitions: tuple[Coalition, ...]
    cartel_mean_atp: float
    legit_mean_atp: float
    cartel_mean_trust: float
    legit_mean_trust: float
    avg_trust: float
    validation_density: float
    diversity_alert: bool
    inflation_alert: bool

    def to_dict(self) -> dict[str, Any]:
        return _plain(asdict(self))


# ---------------------------------------------------------------------------
# Moments
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Moment:
    id: str
    title: str
    narrative: str
    significance: str
    category: MomentCategory
    severity: MomentSeverity
    tick: int
    life_number: int
    source_id: str
    source_label: str
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return _plain(asdict(self))
