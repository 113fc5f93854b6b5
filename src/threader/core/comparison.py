"""Trend comparison between a fresh report and the previous snapshot."""

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from .clustering import jaccard, tokenize
from .constants import ComparisonConstants
from .models import (
    Category,
    ChangeItem,
    ChangeType,
    Comparison,
    FocusArea,
    SentimentTrend,
    Snapshot,
    SnapshotFocusArea,
    SynthesisReport,
    Trend,
    TrendData,
    VolumeTrend,
)

logger = logging.getLogger(__name__)


def _title_key(title: str) -> str:
    return " ".join((title or "").lower().split())


class Comparer:
    """Diff a report against the most recent prior snapshot.

    Impact-score delta is the canonical metric; the frequency delta decides
    only when the impact delta is within ``noise_threshold``. For praise a
    rising metric is an improvement, for every other category it is a
    regression. ``trend`` always reports the raw direction of that metric.
    """

    def __init__(
        self,
        noise_threshold: float = ComparisonConstants.NOISE_THRESHOLD,
        frequency_noise: int = ComparisonConstants.FREQUENCY_NOISE,
        fuzzy_threshold: float = ComparisonConstants.FUZZY_MATCH_THRESHOLD,
        sentiment_noise: int = ComparisonConstants.SENTIMENT_NOISE,
        volume_noise_ratio: float = ComparisonConstants.VOLUME_NOISE_RATIO,
    ):
        self.noise_threshold = noise_threshold
        self.frequency_noise = frequency_noise
        self.fuzzy_threshold = fuzzy_threshold
        self.sentiment_noise = sentiment_noise
        self.volume_noise_ratio = volume_noise_ratio

    # -- matching -----------------------------------------------------------

    def match(self, current: List[FocusArea],
              prior: List[SnapshotFocusArea]) -> Dict[int, int]:
        """Map current index -> prior index. Each prior area is used once."""
        matches: Dict[int, int] = {}
        used = set()

        for ci, fa in enumerate(current):
            for pi, old in enumerate(prior):
                if pi in used or old.category != fa.category:
                    continue
                if _title_key(old.title) == _title_key(fa.title):
                    matches[ci] = pi
                    used.add(pi)
                    break

        for ci, fa in enumerate(current):
            if ci in matches:
                continue
            tokens = tokenize(fa.title)
            best, best_score = None, 0.0
            for pi, old in enumerate(prior):
                if pi in used or old.category != fa.category:
                    continue
                score = jaccard(tokens, tokenize(old.title))
                if score >= self.fuzzy_threshold and score > best_score:
                    best, best_score = pi, score
            if best is not None:
                matches[ci] = best
                used.add(best)
        return matches

    # -- classification -----------------------------------------------------

    def classify(self, fa: FocusArea, old: SnapshotFocusArea) -> Tuple[ChangeType, Trend, float]:
        impact_delta = round(fa.impact_score - old.impact_score, 1)
        freq_delta = fa.frequency - old.frequency
        if abs(impact_delta) > self.noise_threshold:
            delta = impact_delta
        elif abs(freq_delta) > self.frequency_noise:
            delta = float(freq_delta)
        else:
            return ChangeType.STABLE, Trend.STABLE, impact_delta

        rising = delta > 0
        higher_is_better = fa.category == Category.PRAISE
        change = ChangeType.IMPROVED if rising == higher_is_better else ChangeType.WORSENED
        return change, Trend.UP if rising else Trend.DOWN, delta

    # -- entry point --------------------------------------------------------

    def compare(self, report: SynthesisReport, previous: Optional[Snapshot] = None,
                compared_at: Optional[str] = None) -> SynthesisReport:
        compared_at = compared_at or datetime.now(timezone.utc).isoformat()
        if previous is None:
            return self._first_run(report, compared_at)

        changes = {ct: [] for ct in ChangeType}
        matches = self.match(report.focus_areas, previous.focus_areas)
        updated = []
        for ci, fa in enumerate(report.focus_areas):
            if ci not in matches:
                changes[ChangeType.NEW].append(ChangeItem(
                    title=fa.title,
                    category=fa.category,
                    change_type=ChangeType.NEW,
                    insight=f"New this run with {fa.frequency} mention{'s' if fa.frequency != 1 else ''} at impact {fa.impact_score:.1f}.",
                    frequency_delta=fa.frequency,
                    impact_delta=fa.impact_score,
                ))
                updated.append(replace(fa, trend=Trend.NEW, trend_delta=0.0))
                continue

            old = previous.focus_areas[matches[ci]]
            change, trend, delta = self.classify(fa, old)
            changes[change].append(ChangeItem(
                title=fa.title,
                category=fa.category,
                change_type=change,
                insight=(
                    f"{change.value.capitalize()}: impact {old.impact_score:.1f} -> {fa.impact_score:.1f}, "
                    f"mentions {old.frequency} -> {fa.frequency}."
                ),
                frequency_delta=fa.frequency - old.frequency,
                impact_delta=round(fa.impact_score - old.impact_score, 1),
            ))
            updated.append(replace(fa, trend=trend, trend_delta=delta))

        matched_prior = set(matches.values())
        for pi, old in enumerate(previous.focus_areas):
            if pi in matched_prior:
                continue
            changes[ChangeType.RESOLVED].append(ChangeItem(
                title=old.title,
                category=old.category,
                change_type=ChangeType.RESOLVED,
                insight=f"No longer mentioned; previously {old.frequency} mention{'s' if old.frequency != 1 else ''} at impact {old.impact_score:.1f}.",
                frequency_delta=-old.frequency,
                impact_delta=-old.impact_score,
            ))

        trends = self._trends(report, previous, changes)
        comparison = Comparison(
            is_first_run=False,
            changes=changes,
            trends=trends,
            summary=self._summary(previous, changes, trends),
            compared_at=compared_at,
            previous_snapshot_date=previous.created_at,
        )
        counts = ", ".join(f"{len(changes[ct])} {ct.value}" for ct in ChangeType)
        logger.info(f"Compared against snapshot {previous.id}: {counts}")
        return replace(report, focus_areas=updated, comparison=comparison)

    def _first_run(self, report: SynthesisReport, compared_at: str) -> SynthesisReport:
        updated = [replace(fa, trend=Trend.NEW, trend_delta=0.0) for fa in report.focus_areas]
        changes = {ct: [] for ct in ChangeType}
        changes[ChangeType.NEW] = [
            ChangeItem(
                title=fa.title,
                category=fa.category,
                change_type=ChangeType.NEW,
                insight="Baseline run; no earlier snapshot to compare against.",
                frequency_delta=fa.frequency,
                impact_delta=fa.impact_score,
            )
            for fa in updated
        ]
        comparison = Comparison(
            is_first_run=True,
            changes=changes,
            trends=None,
            summary=(
                f"First analysis for {report.company_name}; {len(updated)} focus "
                f"area{'s' if len(updated) != 1 else ''} form the baseline."
            ),
            compared_at=compared_at,
        )
        logger.info(f"No prior snapshot for '{report.company_name}', treating run as baseline")
        return replace(report, focus_areas=updated, comparison=comparison)

    def _trends(self, report: SynthesisReport, previous: Snapshot,
                changes: Dict[ChangeType, List[ChangeItem]]) -> TrendData:
        cur_s, prev_s = report.sentiment, previous.sentiment
        s_delta = cur_s.positive - prev_s.positive
        if s_delta > self.sentiment_noise:
            s_dir = "improving"
        elif s_delta < -self.sentiment_noise:
            s_dir = "declining"
        else:
            s_dir = "stable"

        cur_v, prev_v = report.metadata.total_analyzed, previous.metadata.total_analyzed
        v_delta = cur_v - prev_v
        if abs(v_delta) <= self.volume_noise_ratio * max(prev_v, 1):
            v_dir = "stable"
        else:
            v_dir = "up" if v_delta > 0 else "down"

        n = {ct: len(items) for ct, items in changes.items()}
        new_praise = sum(1 for c in changes[ChangeType.NEW] if c.category == Category.PRAISE)
        good = n[ChangeType.IMPROVED] + n[ChangeType.RESOLVED] + new_praise
        bad = n[ChangeType.WORSENED] + n[ChangeType.NEW] - new_praise
        tracked = max(1, good + bad + n[ChangeType.STABLE])
        health = 50 + 40 * (good - bad) / tracked + max(-10, min(10, s_delta))

        prior_count = len(previous.focus_areas)
        current_count = len(report.focus_areas)
        return TrendData(
            sentiment=SentimentTrend(
                current=cur_s,
                previous=prev_s,
                delta=s_delta,
                direction=s_dir,
                mood_change=cur_s.mood != prev_s.mood,
            ),
            volume=VolumeTrend(current=cur_v, previous=prev_v, delta=v_delta, direction=v_dir),
            resolution_rate=round(n[ChangeType.RESOLVED] / prior_count, 2) if prior_count else 0.0,
            new_issue_rate=round(n[ChangeType.NEW] / current_count, 2) if current_count else 0.0,
            overall_health=int(round(max(0, min(100, health)))),
        )

    def _summary(self, previous: Snapshot, changes: Dict[ChangeType, List[ChangeItem]],
                 trends: TrendData) -> str:
        since = previous.created_at or "the previous run"
        parts = [f"{len(changes[ct])} {ct.value}" for ct in
                 (ChangeType.NEW, ChangeType.WORSENED, ChangeType.IMPROVED, ChangeType.RESOLVED)]
        return (
            f"Since {since}: {', '.join(parts)}. Sentiment is {trends.sentiment.direction} "
            f"({trends.sentiment.delta:+d} pts positive); overall health {trends.overall_health}/100."
        )
