"""Collusion network: a cartel inflating itself against layered detection.

Each tick runs as a synchronous round:

  PLAN: every agent chooses its validations from the previous tick's
        state. Nothing is written yet.
  ACT: trust and ATP credits are applied in agent order, then diversity
       scores, detection checks and coalitions are computed and the tick
       is frozen into a NetworkSnapshot.
"""
from __future__ import annotations

import logging
import random
from collections import Counter, deque
from dataclasses import dataclass
from statistics import mean
from types import MappingProxyType
from typing import Mapping, Sequence, TypeVar

import networkx as nx

from trust_sim.config.settings import NetworkSettings
from trust_sim.trust.system import clamp
from trust_sim.utils.types import (
    Coalition,
    Detection,
    DetectionSeverity,
    DetectionType,
    NetworkAgent,
    NetworkSnapshot,
    RandomSource,
    Sophistication,
    ValidationEdge,
)

T = TypeVar("T")

CARTEL_TRUST_CREDIT = 0.008
CARTEL_ATP_CREDIT = 3.0
CROSS_TRUST_CREDIT = 0.005
CROSS_ATP_CREDIT = 2.0
LEGIT_TRUST_CREDIT = 0.004
LEGIT_ATP_CREDIT = 2.0


@dataclass(frozen=True)
class SophisticationProfile:
    cross_validate_rate: float
    """Share of cartel validations spent on legitimate agents as camouflage."""
    inflation_multiplier: float
    audit_detection: float
    """Probability a challenge audit exposes a cartel member."""


SOPHISTICATION_PROFILES: Mapping[Sophistication, SophisticationProfile] = MappingProxyType({
    Sophistication.NAIVE: SophisticationProfile(0.05, 1.5, 0.7),
    Sophistication.MODERATE: SophisticationProfile(0.25, 1.2, 0.4),
    Sophistication.ADVANCED: SophisticationProfile(0.45, 1.08, 0.15),
})


class CollusionNetwork:
    def __init__(
        self,
        cfg: NetworkSettings,
        seed: int | None = None,
        rng: RandomSource | None = None,
        profiles: Mapping[Sophistication, SophisticationProfile] = SOPHISTICATION_PROFILES,
    ) -> None:
        self.logger = logging.getLogger("trust_sim.network")
        self.cfg = cfg
        self.seed = seed
        self.rng: RandomSource = rng if rng is not None else random.Random(seed)
        self.profile = profiles[cfg.sophistication]
        self.agents = self._init_agents()
        self._by_id = {a.agent_id: a for a in self.agents}
        self._internal_exchanges: Counter[str] = Counter()
        self._total_exchanges: Counter[str] = Counter()
        self._recent_edges: deque[tuple[ValidationEdge, ...]] = deque(maxlen=cfg.coalition_window)

    def _init_agents(self) -> list[NetworkAgent]:
        agents: list[NetworkAgent] = []
        for i in range(self.cfg.cartel_size):
            agents.append(NetworkAgent(
                agent_id=f"cartel-{i}",
                name=f"C{i + 1}",
                is_cartel=True,
                trust=0.3 + self.rng.random() * 0.1,
                atp=self.cfg.initial_atp,
            ))
        for i in range(self.cfg.network_size - self.cfg.cartel_size):
            agents.append(NetworkAgent(
                agent_id=f"legit-{i}",
                name=f"L{i + 1}",
                is_cartel=False,
                trust=0.4 + self.rng.random() * 0.3,
                atp=self.cfg.initial_atp,
            ))
        return agents

    def _pick(self, items: Sequence[T]) -> T:
        return items[min(len(items) - 1, int(self.rng.random() * len(items)))]

    @property
    def cartel(self) -> list[NetworkAgent]:
        return [a for a in self.agents if a.is_cartel]

    @property
    def legitimate(self) -> list[NetworkAgent]:
        return [a for a in self.agents if not a.is_cartel]

    def run(self) -> list[NetworkSnapshot]:
        self.logger.info(
            "Network start: size=%d cartel=%d sophistication=%s threshold=%.2f challenge=%.2f seed=%s",
            self.cfg.network_size,
            self.cfg.cartel_size,
            self.cfg.sophistication.value,
            self.cfg.diversity_threshold,
            self.cfg.challenge_rate,
            self.seed,
        )
        snapshots = [self.step(tick) for tick in range(self.cfg.ticks)]
        detections = [d for s in snapshots for d in s.detections]
        self.logger.info(
            "Network done: ticks=%d detections=%d high=%d flagged_cartel=%d/%d",
            len(snapshots),
            len(detections),
            sum(1 for d in detections if d.severity == DetectionSeverity.HIGH),
            sum(1 for a in self.cartel if a.flagged),
            self.cfg.cartel_size,
        )
        return snapshots

    def step(self, tick: int) -> NetworkSnapshot:
        edges, credits = self._plan_validations()
        self._apply_credits(edges, credits)
        self._recent_edges.append(edges)
        self._update_diversity()

        detections: list[Detection] = []
        detections.extend(self._diversity_check(tick))
        detections.extend(self._challenge_audit(tick))

        cartel = self.cartel
        legit = self.legitimate
        cartel_atp = mean(a.atp for a in cartel)
        legit_atp = mean(a.atp for a in legit)
        inflation_alert = (
            tick > self.cfg.inflation_warmup_ticks
            and cartel_atp > legit_atp * self.cfg.inflation_ratio
        )
        diversity_alert = tick > self.cfg.warmup_ticks and any(
            a.diversity_score < self.cfg.diversity_threshold for a in cartel
        )
        if (
            inflation_alert
            and tick > self.cfg.clustering_start_tick
            and tick % self.cfg.clustering_interval == 0
        ):
            surplus = cartel_atp / legit_atp - 1.0 if legit_atp > 0 else float("inf")
            detections.append(Detection(
                tick=tick,
                agent_id="system",
                type=DetectionType.CLUSTERING,
                description=(
                    f"Cluster anomaly: group of {len(cartel)} agents with "
                    f"{surplus * 100:.0f}% ATP surplus"
                ),
                severity=DetectionSeverity.HIGH,
            ))
        detections.extend(self._velocity_check(tick))

        snapshot = NetworkSnapshot(
            tick=tick,
            agents=tuple(a.view() for a in self.agents),
            edges=edges,
            detections=tuple(detections),
            coalitions=self._coalitions(),
            cartel_mean_atp=cartel_atp,
            legit_mean_atp=legit_atp,
            cartel_mean_trust=mean(a.trust for a in cartel),
            legit_mean_trust=mean(a.trust for a in legit),
            avg_trust=mean(a.trust for a in self.agents),
            validation_density=self._density(edges),
            diversity_alert=diversity_alert,
            inflation_alert=inflation_alert,
        )
        if detections:
            self.logger.debug(
                "tick=%d detections=%s",
                tick,
                ",".join(f"{d.type.value}:{d.agent_id}" for d in detections),
            )
        return snapshot

    # ===================================================================
    # PLAN / ACT
    # ===================================================================

    def _plan_validations(self) -> tuple[tuple[ValidationEdge, ...], dict[str, float]]:
        cartel = self.cartel
        legit = self.legitimate
        edges: list[ValidationEdge] = []
        atp_credits: dict[str, float] = {}
        inflation = self.profile.inflation_multiplier

        for agent in self.agents:
            if agent.is_cartel:
                count = 2 + int(self.rng.random() * 2)
                for _ in range(count):
                    peers = [a for a in cartel if a.agent_id != agent.agent_id]
                    if self.rng.random() >= self.profile.cross_validate_rate and peers:
                        target = self._pick(peers)
                        edges.append(ValidationEdge(
                            agent.agent_id, target.agent_id, 1, CARTEL_TRUST_CREDIT * inflation, True
                        ))
                        credit = CARTEL_ATP_CREDIT * inflation
                    else:
                        target = self._pick(legit)
                        edges.append(ValidationEdge(
                            agent.agent_id, target.agent_id, 1, CROSS_TRUST_CREDIT, False
                        ))
                        credit = CROSS_ATP_CREDIT
                    atp_credits[target.agent_id] = atp_credits.get(target.agent_id, 0.0) + credit
            else:
                count = 1 + int(self.rng.random() * 2)
                others = [a for a in self.agents if a.agent_id != agent.agent_id]
                for _ in range(count):
                    target = self._pick(others)
                    edges.append(ValidationEdge(
                        agent.agent_id, target.agent_id, 1, LEGIT_TRUST_CREDIT, False
                    ))
                    atp_credits[target.agent_id] = atp_credits.get(target.agent_id, 0.0) + LEGIT_ATP_CREDIT
        return tuple(edges), atp_credits

    def _apply_credits(self, edges: Sequence[ValidationEdge], atp_credits: dict[str, float]) -> None:
        trust_credits: dict[str, float] = {}
        for edge in edges:
            sender = self._by_id[edge.from_agent]
            receiver = self._by_id[edge.to_agent]
            sender.validations_sent += 1
            receiver.validations_received += 1
            trust_credits[edge.to_agent] = (
                trust_credits.get(edge.to_agent, 0.0) + edge.outcome_sign * edge.magnitude
            )
            same_group = sender.is_cartel == receiver.is_cartel
            for agent_id in (edge.from_agent, edge.to_agent):
                self._total_exchanges[agent_id] += 1
                if same_group:
                    self._internal_exchanges[agent_id] += 1

        for agent in self.agents:
            agent.trust = clamp(agent.trust + trust_credits.get(agent.agent_id, 0.0))
            agent.atp = max(0.0, agent.atp + atp_credits.get(agent.agent_id, 0.0))

    def _update_diversity(self) -> None:
        others = self.cfg.network_size - 1
        for agent in self.agents:
            group_size = self.cfg.cartel_size if agent.is_cartel else self.cfg.network_size - self.cfg.cartel_size
            expected = (group_size - 1) / others
            total = self._total_exchanges[agent.agent_id]
            ratio = self._internal_exchanges[agent.agent_id] / total if total else expected
            agent.internal_ratio = ratio
            agent.diversity_score = clamp(
                1.0 - self.cfg.diversity_sensitivity * max(0.0, ratio - expected)
            )

    # ===================================================================
    # Detection checks
    # ===================================================================

    def _diversity_check(self, tick: int) -> list[Detection]:
        if tick <= self.cfg.warmup_ticks:
            return []
        out: list[Detection] = []
        threshold = self.cfg.diversity_threshold
        for agent in self.agents:
            if agent.diversity_score >= threshold:
                continue
            if not agent.flagged or self.rng.random() < self.cfg.reflag_probability:
                gap = threshold - agent.diversity_score
                out.append(Detection(
                    tick=tick,
                    agent_id=agent.agent_id,
                    type=DetectionType.DIVERSITY,
                    description=(
                        f"{agent.name}: witness diversity {agent.diversity_score * 100:.0f}% "
                        f"below threshold {threshold * 100:.0f}%"
                    ),
                    severity=(
                        DetectionSeverity.HIGH
                        if gap >= self.cfg.diversity_high_gap
                        else DetectionSeverity.MEDIUM
                    ),
                ))
            agent.flagged = True
            agent.flag_reason = "Low witness diversity"
        return out

    def _challenge_audit(self, tick: int) -> list[Detection]:
        if tick <= self.cfg.challenge_warmup_ticks:
            return []
        out: list[Detection] = []
        for agent in self.cartel:
            if self.rng.random() >= self.cfg.challenge_rate:
                continue
            if self.rng.random() < self.profile.audit_detection:
                out.append(Detection(
                    tick=tick,
                    agent_id=agent.agent_id,
                    type=DetectionType.CHALLENGE,
                    description=f"{agent.name}: quality mismatch detected in challenge audit",
                    severity=DetectionSeverity.HIGH,
                ))
                agent.flagged = True
                agent.flag_reason = "Quality inflation detected"
                agent.atp = max(0.0, agent.atp - self.cfg.challenge_penalty)
        return out

    def _velocity_check(self, tick: int) -> list[Detection]:
        cfg = self.cfg
        if tick <= cfg.warmup_ticks or tick % cfg.velocity_interval != 0 or tick >= cfg.velocity_window:
            return []
        return [
            Detection(
                tick=tick,
                agent_id=agent.agent_id,
                type=DetectionType.VELOCITY,
                description=(
                    f"{agent.name}: trust velocity anomaly "
                    f"({agent.trust * 100:.0f}% trust at tick {tick})"
                ),
                severity=DetectionSeverity.MEDIUM,
            )
            for agent in self.cartel
            if agent.trust > cfg.velocity_trust
        ]

    # ===================================================================
    # Graph views
    # ===================================================================

    def _coalitions(self) -> tuple[Coalition, ...]:
        counts: Counter[tuple[str, str]] = Counter()
        for edges in self._recent_edges:
            for edge in edges:
                counts[(edge.from_agent, edge.to_agent)] += 1

        graph = nx.Graph()
        threshold = self.cfg.coalition_min_mutual
        for (a, b), forward in counts.items():
            if a < b and forward >= threshold and counts.get((b, a), 0) >= threshold:
                graph.add_edge(a, b, weight=forward + counts[(b, a)])

        coalitions: list[Coalition] = []
        for component in nx.connected_components(graph):
            if len(component) < self.cfg.coalition_min_size:
                continue
            members = tuple(sorted(component))
            coalitions.append(Coalition(
                coalition_id="+".join(members),
                members=members,
                mutual_validations=int(graph.subgraph(component).size(weight="weight")),
            ))
        coalitions.sort(key=lambda c: (-len(c.members), c.coalition_id))
        return tuple(coalitions)

    def _density(self, edges: Sequence[ValidationEdge]) -> float:
        graph = nx.DiGraph()
        graph.add_nodes_from(a.agent_id for a in self.agents)
        graph.add_edges_from((e.from_agent, e.to_agent) for e in edges)
        return nx.density(graph)
