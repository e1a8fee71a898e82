"""Moment detection over finished (or partial) simulation histories.

A moment is a significant, human-narratable event: a trust collapse, a
karmic rebirth, a coalition appearing. Detection is a pure function of the
history: ids are derived from (source, category, rule, life, tick index), so
running the detector twice yields the same list in the same order.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Sequence

from trust_sim.config.settings import DetectorSettings
from trust_sim.utils.types import (
    Moment,
    MomentCategory,
    MomentSeverity,
    TerminationReason,
)

logger = logging.getLogger("trust_sim.moments")

CATEGORY_PRIORITY: Mapping[MomentCategory, int] = MappingProxyType({
    MomentCategory.EMERGENCE: 6,
    MomentCategory.KARMA: 5,
    MomentCategory.LEARNING: 4,
    MomentCategory.CRISIS: 3,
    MomentCategory.TRUST: 2,
    MomentCategory.ATP: 1,
})

SEVERITY_RANK: Mapping[MomentSeverity, int] = MappingProxyType({
    MomentSeverity.CRITICAL: 3,
    MomentSeverity.HIGH: 2,
    MomentSeverity.MEDIUM: 1,
})

_DEATH_REASONS = {TerminationReason.ATP_EXHAUSTION.value, TerminationReason.TRUST_LOST.value}


@dataclass(frozen=True)
class HistorySource:
    source_id: str
    label: str = ""
    lives: Sequence[Any] = ()
    snapshots: Sequence[Any] = ()


@dataclass(frozen=True)
class _LifeView:
    life_number: int
    start_tick: int
    end_tick: int
    trust: tuple[float, ...]
    atp: tuple[float, ...]
    termination: str | None


@dataclass(frozen=True)
class _EpochView:
    tick: int
    avg_trust: float | None
    coalitions: tuple[tuple[str, ...], ...]


@dataclass
class MomentStats:
    total: int
    by_category: dict[MomentCategory, int]
    by_severity: dict[MomentSeverity, int]
    by_source: dict[str, int] = field(default_factory=dict)
    most_interesting: Moment | None = None


# ---------------------------------------------------------------------------
# Ranking and queries
# ---------------------------------------------------------------------------

def _rank_key(moment: Moment) -> tuple:
    return (
        -CATEGORY_PRIORITY[moment.category],
        -SEVERITY_RANK[moment.severity],
        -moment.tick,
        moment.id,
    )


def rank_moments(moments: Iterable[Moment]) -> list[Moment]:
    return sorted(moments, key=_rank_key)


def moment_stats(moments: Sequence[Moment]) -> MomentStats:
    by_category = {c: 0 for c in MomentCategory}
    by_severity = {s: 0 for s in MomentSeverity}
    by_source: dict[str, int] = {}
    for m in moments:
        by_category[m.category] += 1
        by_severity[m.severity] += 1
        by_source[m.source_id] = by_source.get(m.source_id, 0) + 1
    ranked = rank_moments(moments)
    return MomentStats(
        total=len(moments),
        by_category=by_category,
        by_severity=by_severity,
        by_source=by_source,
        most_interesting=ranked[0] if ranked else None,
    )


def filter_by_category(moments: Iterable[Moment], category: MomentCategory) -> list[Moment]:
    return [m for m in moments if m.category == category]


def filter_by_source(moments: Iterable[Moment], source_id: str) -> list[Moment]:
    return [m for m in moments if m.source_id == source_id]


def most_interesting_by_category(moments: Iterable[Moment]) -> dict[MomentCategory, Moment | None]:
    out: dict[MomentCategory, Moment | None] = {c: None for c in MomentCategory}
    for m in rank_moments(moments):
        if out[m.category] is None:
            out[m.category] = m
    return out


# ---------------------------------------------------------------------------
# Input coercion
# ---------------------------------------------------------------------------

def _get(raw: Any, *names: str, default: Any = None) -> Any:
    for name in names:
        if isinstance(raw, Mapping):
            if name in raw:
                return raw[name]
        elif hasattr(raw, name):
            return getattr(raw, name)
    return default


def _coerce_life(raw: Any, index: int, default_start: int) -> _LifeView | None:
    try:
        trust = tuple(float(v) for v in _get(raw, "trust_history", "t3_history", default=()))
        atp = tuple(float(v) for v in _get(raw, "atp_history", default=()))
        if not trust:
            logger.warning("Skipping life %d: empty trust history", index + 1)
            return None
        start_tick = int(_get(raw, "start_tick", default=default_start))
        end_tick = int(_get(raw, "end_tick", default=start_tick + max(0, len(trust) - 2)))
        life_number = int(_get(raw, "life_number", default=index + 1))
        termination = _get(raw, "termination_reason")
        if isinstance(termination, TerminationReason):
            termination = termination.value
        elif termination is not None:
            termination = str(termination)
    except (TypeError, ValueError, AttributeError, KeyError) as exc:
        logger.warning("Skipping malformed life %d: %s", index + 1, exc)
        return None
    return _LifeView(life_number, start_tick, end_tick, trust, atp, termination)


def _coerce_epoch(raw: Any, index: int) -> _EpochView | None:
    try:
        tick = int(_get(raw, "tick", "epoch", default=index))
        avg = _get(raw, "avg_trust")
        avg_trust = float(avg) if avg is not None else None
        coalitions = []
        for c in _get(raw, "coalitions", default=()) or ():
            members = _get(c, "members", default=c)
            coalitions.append(tuple(sorted(str(m) for m in members)))
    except (TypeError, ValueError, AttributeError, KeyError) as exc:
        logger.warning("Skipping malformed snapshot %d: %s", index, exc)
        return None
    return _EpochView(tick, avg_trust, tuple(coalitions))


# ---------------------------------------------------------------------------
# Detector
# ---------------------------------------------------------------------------

class MomentDetector:
    def __init__(self, cfg: DetectorSettings | None = None) -> None:
        self.cfg = cfg or DetectorSettings()

    def detect(self, source: HistorySource) -> list[Moment]:
        moments: list[Moment] = []
        moments.extend(self.detect_lives(source))
        moments.extend(self.detect_network(source))
        return rank_moments(self._dedupe(moments))

    def detect_all(self, sources: Iterable[HistorySource]) -> list[Moment]:
        moments: list[Moment] = []
        for source in sources:
            moments.extend(self.detect(source))
        ranked = rank_moments(self._dedupe(moments))
        logger.info("Detected %d moments across sources", len(ranked))
        return ranked

    @staticmethod
    def _dedupe(moments: Iterable[Moment]) -> list[Moment]:
        seen: dict[str, Moment] = {}
        for m in moments:
            seen.setdefault(m.id, m)
        return list(seen.values())

    def _moment(
        self,
        source: HistorySource,
        rule: str,
        category: MomentCategory,
        severity: MomentSeverity,
        life_number: int,
        index: int,
        tick: int,
        title: str,
        narrative: str,
        significance: str,
        data: dict[str, Any],
    ) -> Moment:
        return Moment(
            id=f"{source.source_id}:{category.value}:{rule}:{life_number}:{index}",
            title=title,
            narrative=narrative,
            significance=significance,
            category=category,
            severity=severity,
            tick=tick,
            life_number=life_number,
            source_id=source.source_id,
            source_label=source.label or source.source_id,
            data=data,
        )

    # ---- Lives ----

    def detect_lives(self, source: HistorySource) -> list[Moment]:
        lives = source.lives or ()
        if not isinstance(lives, Sequence):
            logger.warning("Source %s: lives is not a sequence, ignoring", source.source_id)
            return []
        moments: list[Moment] = []
        previous: _LifeView | None = None
        next_start = 0
        for index, raw in enumerate(lives):
            life = _coerce_life(raw, index, next_start)
            if life is None:
                continue
            next_start = life.end_tick + 1
            moments.extend(self._life_moments(source, life, previous))
            previous = life
        return moments

    def _life_moments(
        self, source: HistorySource, life: _LifeView, previous: _LifeView | None
    ) -> list[Moment]:
        cfg = self.cfg
        n = life.life_number
        out: list[Moment] = []

        if previous is not None:
            prev_final = previous.trust[-1]
            start = life.trust[0]
            karma = start - prev_final
            if abs(karma) > cfg.karma_epsilon:
                stronger = karma > 0
                out.append(self._moment(
                    source, "rebirth", MomentCategory.KARMA, MomentSeverity.CRITICAL, n, 0, life.start_tick,
                    title=(
                        f"Karma Rewards: Life {n} Begins Stronger"
                        if stronger
                        else f"Karma Consequences: Life {n} Starts Diminished"
                    ),
                    narrative=(
                        f"Life {n - 1} ended at trust {prev_final:.3f}; life {n} starts at {start:.3f}, "
                        f"a {karma * 100:+.1f} point karmic shift. "
                        + ("Earlier good conduct carries forward." if stronger
                           else "Earlier conduct still costs something.")
                    ),
                    significance="Trust is not reset on rebirth: karma carries forward.",
                    data={"prev_final_trust": prev_final, "new_initial_trust": start, "karma_effect": karma},
                ))

        for j in range(1, len(life.trust)):
            prev, curr = life.trust[j - 1], life.trust[j]
            tick = life.start_tick + j - 1
            change = curr - prev
            pct = abs(change / prev) if prev > 0 else 0.0
            if change < 0 and pct >= cfg.collapse_fraction:
                out.append(self._moment(
                    source, "collapse", MomentCategory.TRUST, MomentSeverity.CRITICAL, n, j, tick,
                    title=f"Trust Collapse: {pct * 100:.0f}% Drop in Life {n}",
                    narrative=(
                        f"Trust falls from {prev:.3f} to {curr:.3f} in a single tick. "
                        "Recovering will take sustained, consistent contribution."
                    ),
                    significance="Trust is asymmetric: slow to build, quick to lose.",
                    data={"prev_trust": prev, "new_trust": curr, "percent_change": pct},
                ))
            elif change > 0 and pct >= cfg.surge_fraction:
                out.append(self._moment(
                    source, "surge", MomentCategory.TRUST, MomentSeverity.HIGH, n, j, tick,
                    title=f"Trust Surge: +{pct * 100:.0f}% in Life {n}",
                    narrative=f"Trust jumps from {prev:.3f} to {curr:.3f} as contributions are recognized.",
                    significance="Coherent positive behaviour compounds.",
                    data={"prev_trust": prev, "new_trust": curr, "percent_change": pct},
                ))
            if prev < cfg.emergence_threshold <= curr:
                out.append(self._moment(
                    source, "threshold", MomentCategory.EMERGENCE, MomentSeverity.CRITICAL, n, j, tick,
                    title=f"Trust Threshold Crossed in Life {n}",
                    narrative=(
                        f"Trust reaches {curr:.3f}, crossing {cfg.emergence_threshold:.2f}. "
                        "Below it behaviour reads as noise; above it, as intent."
                    ),
                    significance="The threshold marks a phase change from reactive to intentional agency.",
                    data={"prev_trust": prev, "new_trust": curr, "threshold": cfg.emergence_threshold},
                ))

        crisis_level = cfg.crisis_fraction * cfg.atp_reference
        windfall_level = cfg.windfall_fraction * cfg.atp_reference
        crisis_seen = windfall_seen = False
        for j in range(1, len(life.atp)):
            prev, curr = life.atp[j - 1], life.atp[j]
            tick = life.start_tick + j - 1
            if not crisis_seen and prev > crisis_level >= curr:
                crisis_seen = True
                out.append(self._moment(
                    source, "atp-crisis", MomentCategory.CRISIS, MomentSeverity.HIGH, n, j, tick,
                    title=f"ATP Crisis: Only {round(curr)} Attention Remaining",
                    narrative=(
                        f"The attention budget drops to {round(curr)} ATP. "
                        "Without valuable contribution the agent will die of exhaustion."
                    ),
                    significance="Participation costs energy, and energy has to be earned.",
                    data={"current_atp": curr, "previous_atp": prev},
                ))
            if not windfall_seen and curr - prev >= windfall_level:
                windfall_seen = True
                out.append(self._moment(
                    source, "windfall", MomentCategory.ATP, MomentSeverity.MEDIUM, n, j, tick,
                    title=f"ATP Windfall: +{round(curr - prev)} in One Tick",
                    narrative=f"ATP rises from {round(prev)} to {round(curr)} after a single action.",
                    significance="Large rewards usually mean large risks were taken.",
                    data={"current_atp": curr, "previous_atp": prev},
                ))

        last = len(life.trust) - 1
        if previous is not None:
            prev_final = previous.trust[-1]
            final = life.trust[-1]
            if final - prev_final > cfg.maturation_delta:
                out.append(self._moment(
                    source, "maturation", MomentCategory.LEARNING, MomentSeverity.HIGH, n, last, life.end_tick,
                    title="Maturation: Trust Improves Across Lives",
                    narrative=(
                        f"Life {n} ends at trust {final:.3f}, up from {prev_final:.3f} "
                        f"at the end of life {n - 1}."
                    ),
                    significance="The agent is learning what works and carrying it forward.",
                    data={"prev_final_trust": prev_final, "final_trust": final, "improvement": final - prev_final},
                ))
            elif abs(final - prev_final) < cfg.consistency_delta:
                out.append(self._moment(
                    source, "consistency", MomentCategory.LEARNING, MomentSeverity.MEDIUM, n, last, life.end_tick,
                    title="Consistent Performance Across Lives",
                    narrative=f"Final trust holds steady: {prev_final:.3f} then {final:.3f}.",
                    significance="A stable strategy: reliability, not luck.",
                    data={"prev_final_trust": prev_final, "final_trust": final},
                ))

        exhausted = bool(life.atp) and life.atp[-1] <= 0.0
        if life.termination in _DEATH_REASONS or (life.termination is None and exhausted):
            by_trust = life.termination == TerminationReason.TRUST_LOST.value
            final = life.trust[-1]
            out.append(self._moment(
                source, "death", MomentCategory.CRISIS, MomentSeverity.CRITICAL, n, last, life.end_tick,
                title=(
                    f"Death by Trust Loss: Life {n} Ends"
                    if by_trust
                    else f"Death by Exhaustion: Life {n} Ends"
                ),
                narrative=(
                    f"Life {n} ends with trust {final:.3f}. "
                    + ("Society stopped trusting the agent long enough to end its life."
                       if by_trust
                       else "ATP reached zero: the agent could no longer act.")
                    + " Its final trust seeds the next rebirth."
                ),
                significance="Death supplies the stakes that make trust meaningful.",
                data={
                    "final_trust": final,
                    "termination_reason": life.termination or TerminationReason.ATP_EXHAUSTION.value,
                },
            ))
        return out

    # ---- Network ----

    def detect_network(self, source: HistorySource) -> list[Moment]:
        snapshots = source.snapshots or ()
        if not isinstance(snapshots, Sequence):
            logger.warning("Source %s: snapshots is not a sequence, ignoring", source.source_id)
            return []
        cfg = self.cfg
        out: list[Moment] = []
        seen: set[tuple[str, ...]] = set()
        previous: _EpochView | None = None
        for index, raw in enumerate(snapshots):
            epoch = _coerce_epoch(raw, index)
            if epoch is None:
                continue
            for members in epoch.coalitions:
                if members in seen:
                    continue
                seen.add(members)
                out.append(self._moment(
                    source, f"coalition-{'+'.join(members)}", MomentCategory.EMERGENCE,
                    MomentSeverity.CRITICAL, 1, epoch.tick, epoch.tick,
                    title=f"Coalition Emerges: {len(members)} Agents Unite",
                    narrative=(
                        f"{', '.join(members)} begin validating one another repeatedly. "
                        "Structure appears without any central authority."
                    ),
                    significance="Coalitions self-organise from validation patterns, for better or worse.",
                    data={"members": list(members), "tick": epoch.tick},
                ))
            if (
                previous is not None
                and previous.avg_trust is not None
                and epoch.avg_trust is not None
            ):
                change = epoch.avg_trust - previous.avg_trust
                if abs(change) > cfg.network_trust_delta:
                    rising = change > 0
                    out.append(self._moment(
                        source, "network-shift", MomentCategory.TRUST,
                        MomentSeverity.CRITICAL if abs(change) > cfg.network_trust_critical else MomentSeverity.HIGH,
                        1, epoch.tick, epoch.tick,
                        title=(
                            f"Network Trust {'Surge' if rising else 'Decline'} at Tick {epoch.tick}"
                        ),
                        narrative=(
                            f"Average network trust moves from {previous.avg_trust:.3f} "
                            f"to {epoch.avg_trust:.3f}."
                        ),
                        significance="Network-wide swings reveal dynamics no single agent shows.",
                        data={
                            "prev_avg_trust": previous.avg_trust,
                            "curr_avg_trust": epoch.avg_trust,
                            "change": change,
                        },
                    ))
            previous = epoch
        return out
