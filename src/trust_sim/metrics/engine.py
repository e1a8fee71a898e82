from __future__ import annotations

import csv
from collections import Counter
from pathlib import Path
from statistics import mean
from typing import Any, Sequence

from trust_sim.utils.types import (
    ActionKind,
    DetectionSeverity,
    DetectionType,
    NetworkSnapshot,
    SimulationResult,
    TerminationReason,
)


class MetricsEngine:
    def summarize_lives(self, result: SimulationResult) -> dict[str, float]:
        lives = result.lives
        if not lives:
            return {}
        reasons = Counter(life.termination_reason for life in lives)
        return {
            "lives": len(lives),
            "total_ticks": result.total_ticks,
            "final_trust": round(result.final_trust, 6),
            "trust_growth": round(result.trust_growth, 6),
            "mean_trust": round(result.mean_trust, 6),
            "mean_life_length": round(mean(life.tick_count for life in lives), 6),
            "deaths_by_exhaustion": reasons[TerminationReason.ATP_EXHAUSTION],
            "deaths_by_trust_loss": reasons[TerminationReason.TRUST_LOST],
            "lives_completed": reasons[TerminationReason.COMPLETED],
            "mean_karma": round(mean(life.karma_earned for life in lives), 6),
            "peak_trust": round(max(life.peak_trust for life in lives), 6),
            "final_ep_level": round(lives[-1].ep_level, 6),
            "mean_coherence": round(
                mean(c for life in lives for c in life.coherence_history), 6
            ),
            "conserve_ticks": sum(
                1 for life in lives for t in life.ticks if t.action == ActionKind.CONSERVE
            ),
        }

    def summarize_network(self, snapshots: Sequence[NetworkSnapshot]) -> dict[str, float]:
        if not snapshots:
            return {}
        detections = [d for snap in snapshots for d in snap.detections]
        by_type = Counter(d.type for d in detections)
        final = snapshots[-1]
        cartel_ids = {a.agent_id for a in final.agents if a.is_cartel}
        flagged_cartel = {d.agent_id for d in detections if d.agent_id in cartel_ids}
        false_positives = {
            d.agent_id
            for d in detections
            if d.agent_id not in cartel_ids and d.type != DetectionType.CLUSTERING
        }
        first_diversity = next(
            (d.tick for d in detections if d.type == DetectionType.DIVERSITY), -1
        )
        row: dict[str, float] = {
            "ticks": len(snapshots),
            "detections": len(detections),
            "high_severity_detections": sum(
                1 for d in detections if d.severity == DetectionSeverity.HIGH
            ),
            "first_diversity_tick": first_diversity,
            "cartel_flagged_fraction": round(len(flagged_cartel) / max(1, len(cartel_ids)), 6),
            "legit_false_positives": len(false_positives),
            "final_atp_ratio": round(self._atp_ratio(final), 6),
            "final_avg_trust": round(final.avg_trust, 6),
            "mean_validation_density": round(mean(s.validation_density for s in snapshots), 6),
            "coalition_ticks": sum(1 for s in snapshots if s.coalitions),
            "evaded": int(not flagged_cartel),
        }
        for kind in DetectionType:
            row[f"{kind.value}_detections"] = by_type[kind]
        return row

    def insights(self, result: SimulationResult) -> list[str]:
        """Plain-language observations about a finished multi-life run."""
        lives = result.lives
        if not lives:
            return []
        out: list[str] = []
        if result.trust_growth > 0.05:
            out.append(
                f"Trust grew by {result.trust_growth:.3f} across {len(lives)} lives: "
                "karma carried good conduct forward."
            )
        elif result.trust_growth < -0.05:
            out.append(
                f"Trust fell by {-result.trust_growth:.3f} across {len(lives)} lives."
            )
        else:
            out.append("Trust stayed roughly level from first birth to last death.")

        exhausted = [life for life in lives if life.termination_reason == TerminationReason.ATP_EXHAUSTION]
        trust_lost = [life for life in lives if life.termination_reason == TerminationReason.TRUST_LOST]
        if exhausted:
            out.append(f"{len(exhausted)} of {len(lives)} lives ended in ATP exhaustion.")
        if trust_lost:
            out.append(f"{len(trust_lost)} of {len(lives)} lives ended because trust was lost.")
        if not exhausted and not trust_lost:
            out.append("Every life ran to completion.")

        if len(lives) > 1:
            deltas = [b.end_trust - a.end_trust for a, b in zip(lives, lives[1:])]
            if all(d > 0 for d in deltas):
                out.append("Each life ended with more trust than the one before.")
        if lives[-1].ep_level > 0:
            out.append(
                f"Experience from {len(lives) - 1} earlier lives added "
                f"{lives[-1].ep_level:.2f} to the final life's success probability."
            )
        best = max(lives, key=lambda life: life.peak_trust)
        out.append(f"Peak trust {best.peak_trust:.3f} was reached in life {best.life_number}.")
        return out

    def write_metrics_csv(
        self,
        output_dir: Path,
        rows: list[dict[str, Any]],
        filename: str = "metrics.csv",
    ) -> Path:
        output_dir.mkdir(parents=True, exist_ok=True)
        path = output_dir / filename
        if not rows:
            return path
        # Engine and network rows carry different columns.
        keys: list[str] = []
        for row in rows:
            for key in row:
                if key not in keys:
                    keys.append(key)
        with path.open("w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=keys)
            writer.writeheader()
            writer.writerows(rows)
        return path

    @staticmethod
    def _atp_ratio(snapshot: NetworkSnapshot) -> float:
        if snapshot.legit_mean_atp <= 0:
            return 0.0
        return snapshot.cartel_mean_atp / snapshot.legit_mean_atp
