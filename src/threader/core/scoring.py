"""Scoring and prioritization for feedback and focus areas."""

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Union

import yaml

from .constants import ScoringConstants
from .errors import ConfigurationError
from .models import (
    Category,
    Effort,
    ImpactData,
    Quadrant,
    SentimentBreakdown,
    Stakes,
    StakesType,
)

logger = logging.getLogger(__name__)

SEVERITY_ORDER = ["Low", "Medium", "High", "Critical"]
SENTIMENT_LABELS = ("positive", "neutral", "negative")


def _clamp(x: float, lo: float = ScoringConstants.MIN_SCORE, hi: float = ScoringConstants.MAX_SCORE) -> float:
    """Clamp value to range [lo, hi]."""
    try:
        return max(lo, min(hi, float(x)))
    except (TypeError, ValueError):
        return lo


def compute_impact_score(reach: float, sentiment: float, velocity: float) -> float:
    """0.4*reach + 0.3*sentiment + 0.3*velocity, one decimal, clamped to [0, 10]."""
    raw = (
        float(reach) * ScoringConstants.REACH_WEIGHT
        + float(sentiment) * ScoringConstants.SENTIMENT_WEIGHT
        + float(velocity) * ScoringConstants.VELOCITY_WEIGHT
    )
    return round(_clamp(raw), 1)


def build_impact_data(reach: float, sentiment: float, velocity: float, rationale: str = "") -> ImpactData:
    reach, sentiment, velocity = _clamp(reach), _clamp(sentiment), _clamp(velocity)
    return ImpactData(
        reach=round(reach, 1),
        sentiment=round(sentiment, 1),
        velocity=round(velocity, 1),
        score=compute_impact_score(reach, sentiment, velocity),
        rationale=rationale,
    )


def aggregate_impact(impacts: Sequence[ImpactData]) -> ImpactData:
    """Mean of member sub-scores, re-scored with the fixed formula."""
    if not impacts:
        return build_impact_data(0.0, 0.0, 0.0, "No scored feedback")
    n = len(impacts)
    reach = sum(i.reach for i in impacts) / n
    sentiment = sum(i.sentiment for i in impacts) / n
    velocity = sum(i.velocity for i in impacts) / n
    rationale = (
        f"Reach {reach:.1f}/10 x{ScoringConstants.REACH_WEIGHT}, "
        f"sentiment intensity {sentiment:.1f}/10 x{ScoringConstants.SENTIMENT_WEIGHT}, "
        f"velocity {velocity:.1f}/10 x{ScoringConstants.VELOCITY_WEIGHT} across {n} mention{'s' if n != 1 else ''}"
    )
    return build_impact_data(reach, sentiment, velocity, rationale)


def severity_label(score: float) -> str:
    """Band an impact score. Monotonic and total over [0, 10]."""
    s = _clamp(score)
    for floor, label in ScoringConstants.SEVERITY_BANDS:
        if s >= floor:
            return label
    return ScoringConstants.SEVERITY_FLOOR


def severity_rank(label: str) -> int:
    return SEVERITY_ORDER.index(label)


def _segments_phrase(segments: Sequence[str]) -> str:
    segs = [s for s in segments if s]
    if not segs:
        return "users"
    if len(segs) == 1:
        return f"{segs[0]} users"
    return f"{', '.join(segs[:-1])} and {segs[-1]} users"


def assess_stakes(
    category: Category,
    impact_score: float,
    frequency: int,
    segments: Sequence[str] = (),
    risk_threshold: float = ScoringConstants.RISK_THRESHOLD,
) -> Stakes:
    """Risk / upside / neutral framing with a message grounded in the cluster."""
    mentions = f"{frequency} mention{'s' if frequency != 1 else ''}"
    who = _segments_phrase(segments)
    if category in (Category.BUG, Category.USABILITY_FRICTION) and impact_score > risk_threshold:
        kind = "bug" if category == Category.BUG else "friction point"
        return Stakes(
            StakesType.RISK,
            f"Churn risk: {mentions} from {who} describe this {kind} at impact {impact_score:.1f}/10.",
        )
    if category == Category.PRAISE:
        return Stakes(
            StakesType.UPSIDE,
            f"Amplify: {mentions} from {who} praise this; worth featuring in messaging.",
        )
    return Stakes(
        StakesType.NEUTRAL,
        f"Monitor: {mentions} from {who} at impact {impact_score:.1f}/10.",
    )


class EffortPolicy:
    """Effort estimate per category. Defaults are overridable, never inline."""

    DEFAULTS: Dict[Category, Effort] = {
        Category.BUG: Effort.QUICK_WIN,
        Category.USABILITY_FRICTION: Effort.MEDIUM,
        Category.FEATURE_REQUEST: Effort.LARGE,
        Category.PRAISE: Effort.QUICK_WIN,
    }

    def __init__(self, overrides: Optional[Mapping[Union[Category, str], Union[Effort, str]]] = None,
                 prefer_record_hint: bool = True):
        self.mapping: Dict[Category, Effort] = dict(self.DEFAULTS)
        for category, effort in (overrides or {}).items():
            self.mapping[_parse_category(category)] = _parse_effort(effort)
        self.prefer_record_hint = prefer_record_hint

    @classmethod
    def from_yaml(cls, path: str) -> "EffortPolicy":
        """Load overrides from a YAML mapping of category -> effort."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot read effort policy {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Effort policy {path} must be a mapping")
        overrides = data.get("effort", data)
        logger.info(f"Loaded effort policy overrides from {path}: {overrides}")
        return cls(overrides)

    def effort_for(self, category: Category, hints: Iterable[Optional[Effort]] = ()) -> Effort:
        """Category default, unless the classifier supplied a consistent hint."""
        if self.prefer_record_hint:
            votes: Dict[Effort, int] = {}
            for hint in hints:
                if hint is not None:
                    votes[hint] = votes.get(hint, 0) + 1
            if votes:
                return max(votes.items(), key=lambda kv: (kv[1], -list(Effort).index(kv[0])))[0]
        return self.mapping[category]


def _parse_category(value: Union[Category, str]) -> Category:
    if isinstance(value, Category):
        return value
    try:
        return Category(str(value).strip().lower())
    except ValueError as e:
        raise ConfigurationError(f"Unknown category in effort policy: {value}") from e


def _parse_effort(value: Union[Effort, str]) -> Effort:
    if isinstance(value, Effort):
        return value
    text = str(value).strip().lower().replace("_", " ")
    for effort in Effort:
        if effort.value.lower() == text or effort.name.lower().replace("_", " ") == text:
            return effort
    raise ConfigurationError(f"Unknown effort estimate: {value}")


def assign_quadrant(
    impact_score: float,
    effort: Effort,
    high_impact_threshold: float = ScoringConstants.HIGH_IMPACT_THRESHOLD,
) -> Quadrant:
    high_impact = impact_score >= high_impact_threshold
    low_effort = effort == Effort.QUICK_WIN
    if high_impact and low_effort:
        return Quadrant.QUICK_WINS
    if high_impact:
        return Quadrant.STRATEGIC_INVESTMENTS
    if low_effort:
        return Quadrant.FILL_INS
    return Quadrant.RECONSIDER


def mood_for(negative_pct: float) -> str:
    for ceiling, mood in ScoringConstants.MOOD_BANDS:
        if negative_pct < ceiling:
            return mood
    return ScoringConstants.MOOD_FLOOR


def sentiment_breakdown(labels: Iterable[Optional[str]]) -> SentimentBreakdown:
    """Percent positive/neutral/negative summing to exactly 100.

    Unknown labels count as neutral. The rounding correction goes to the
    largest bucket.
    """
    counts = {label: 0 for label in SENTIMENT_LABELS}
    for label in labels:
        key = (label or "neutral").lower()
        counts[key if key in counts else "neutral"] += 1
    total = sum(counts.values())
    if total == 0:
        return SentimentBreakdown(0, 100, 0, mood_for(0), "No feedback was analyzed in this window.")

    pct = {k: int(round(v * 100.0 / total)) for k, v in counts.items()}
    diff = 100 - sum(pct.values())
    if diff:
        largest = max(SENTIMENT_LABELS, key=lambda k: counts[k])
        pct[largest] += diff

    mood = mood_for(pct["negative"])
    explanation = (
        f"{pct['negative']}% of {total} analyzed posts are negative and "
        f"{pct['positive']}% positive."
    )
    return SentimentBreakdown(pct["positive"], pct["neutral"], pct["negative"], mood, explanation)
