"""Data models for Threader."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .constants import ClassifierConstants, ScoringConstants


class Relevance(Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


class Category(Enum):
    FEATURE_REQUEST = "feature_request"
    USABILITY_FRICTION = "usability_friction"
    BUG = "bug"
    PRAISE = "praise"


class Trend(Enum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"
    NEW = "new"


class ChangeType(Enum):
    NEW = "new"
    IMPROVED = "improved"
    WORSENED = "worsened"
    STABLE = "stable"
    RESOLVED = "resolved"


class StakesType(Enum):
    RISK = "risk"
    UPSIDE = "upside"
    NEUTRAL = "neutral"


class Effort(Enum):
    QUICK_WIN = "Quick Win"
    MEDIUM = "Medium"
    LARGE = "Large"


class Quadrant(Enum):
    QUICK_WINS = "Quick Wins"
    STRATEGIC_INVESTMENTS = "Strategic Investments"
    FILL_INS = "Fill-ins"
    RECONSIDER = "Reconsider"


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RawItem:
    """One upstream post as fetched from a listing page."""
    id: str
    subreddit: str
    title: Optional[str]
    body: str
    author: str
    upvotes: int
    comment_count: int
    created_utc: Optional[float]
    permalink: str
    url: str
    upvote_ratio: Optional[float] = None
    flair: Optional[str] = None

    @property
    def text(self) -> str:
        return f"{self.title or ''} {self.body or ''}".strip()

    def is_within(self, cutoff_utc: float) -> bool:
        return self.created_utc is not None and self.created_utc >= cutoff_utc


@dataclass(frozen=True)
class Comment:
    """Top-level comment attached to a post."""
    id: str
    body: str
    author: str
    upvotes: int
    created_utc: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "body": self.body,
            "author": self.author,
            "upvotes": self.upvotes,
            "createdUtc": self.created_utc,
        }


@dataclass(frozen=True)
class SourceCandidate:
    """A community worth searching for a company."""
    name: str
    relevance: Relevance = Relevance.PRIMARY

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "relevance": self.relevance.value}


@dataclass
class DiscoveryResult:
    """Output of source discovery."""
    sources: List[SourceCandidate]
    search_terms: List[str]
    strategy: str = "heuristic"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subreddits": [s.to_dict() for s in self.sources],
            "searchTerms": list(self.search_terms),
            "strategy": self.strategy,
        }


@dataclass
class SourceResult:
    """Per-source outcome of a collection run."""
    items: List[RawItem] = field(default_factory=list)
    total: int = 0
    relevant: int = 0
    relevance: Relevance = Relevance.PRIMARY
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "total": self.total,
            "relevant": self.relevant,
            "relevance": self.relevance.value,
        }
        if self.error:
            data["error"] = self.error
        return data


# ---------------------------------------------------------------------------
# Normalized feedback
# ---------------------------------------------------------------------------

@dataclass
class Analysis:
    """Classification slot, empty until the classifier fills it."""
    category: Optional[Category] = None
    sentiment: Optional[str] = None  # positive / neutral / negative
    segment: Optional[str] = None
    impact_type: Optional[str] = None
    urgency: Optional[str] = None
    root_cause: Optional[str] = None
    key_quote: Optional[str] = None
    effort: Optional[Effort] = None
    confidence: float = 0.0
    is_noise: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.value if self.category else None,
            "sentiment": self.sentiment,
            "userSegment": self.segment,
            "impactType": self.impact_type,
            "urgency": self.urgency,
            "rootCause": self.root_cause,
            "keyQuote": self.key_quote,
            "effort": self.effort.value if self.effort else None,
            "confidence": self.confidence,
            "isNoise": self.is_noise,
        }


@dataclass(frozen=True)
class ImpactData:
    """Weighted impact sub-scores and the derived 0-10 score."""
    reach: float
    sentiment: float
    velocity: float
    score: float
    rationale: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "maxScore": ScoringConstants.MAX_SCORE,
            "breakdown": {
                "reach": {"value": self.reach, "weight": ScoringConstants.REACH_WEIGHT},
                "sentiment": {"value": self.sentiment, "weight": ScoringConstants.SENTIMENT_WEIGHT},
                "velocity": {"value": self.velocity, "weight": ScoringConstants.VELOCITY_WEIGHT},
            },
            "rationale": self.rationale,
        }


@dataclass
class FeedbackRecord:
    """Normalized feedback item, unique per (source, source_id)."""
    source: str
    source_id: str
    subreddit: str
    title: Optional[str]
    body: str
    author: str
    upvotes: int
    comment_count: int
    created_utc: Optional[float]
    created_at: Optional[str]
    source_url: str
    company_name: str
    scraped_at: str
    upvote_ratio: Optional[float] = None
    flair: Optional[str] = None
    relevance: Relevance = Relevance.PRIMARY
    analysis: Analysis = field(default_factory=Analysis)
    impact_data: Optional[ImpactData] = None
    comments: List[Comment] = field(default_factory=list)

    @property
    def key(self) -> Tuple[str, str]:
        return (self.source, self.source_id)

    @property
    def text(self) -> str:
        return f"{self.title or ''} {self.body or ''}".strip()

    @property
    def discussion_text(self) -> str:
        """Post text followed by its top comments, when they were fetched."""
        bodies = [
            c.body.strip()[:ClassifierConstants.MAX_COMMENT_TEXT]
            for c in self.comments[:ClassifierConstants.MAX_COMMENTS_FOR_CLASSIFICATION]
            if c.body.strip()
        ]
        return " ".join([self.text] + bodies).strip()

    @property
    def is_classified(self) -> bool:
        return self.analysis.category is not None and self.impact_data is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "sourceId": self.source_id,
            "sourceUrl": self.source_url,
            "subreddit": self.subreddit,
            "title": self.title,
            "body": self.body,
            "author": self.author,
            "upvotes": self.upvotes,
            "commentCount": self.comment_count,
            "upvoteRatio": self.upvote_ratio,
            "flair": self.flair,
            "createdAt": self.created_at,
            "scrapedAt": self.scraped_at,
            "companyName": self.company_name,
            "relevance": self.relevance.value,
            "analysis": self.analysis.to_dict(),
            "impactData": self.impact_data.to_dict() if self.impact_data else None,
            "comments": [c.to_dict() for c in self.comments],
        }


# ---------------------------------------------------------------------------
# Synthesis
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Stakes:
    type: StakesType
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "message": self.message}


@dataclass
class FocusArea:
    """A cluster of feedback records sharing one theme."""
    id: str
    title: str
    category: Category
    impact_score: float
    frequency: int
    severity_label: str
    top_quote: str
    stakes: Stakes
    affected_segments: List[str] = field(default_factory=list)
    root_cause: Optional[str] = None
    score_rationale: str = ""
    trend: Trend = Trend.NEW
    trend_delta: float = 0.0
    source_url: Optional[str] = None
    subreddit: Optional[str] = None
    member_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "title": self.title,
            "category": self.category.value,
            "impactScore": self.impact_score,
            "frequency": self.frequency,
            "trend": self.trend.value,
            "trendDelta": self.trend_delta,
            "severityLabel": self.severity_label,
            "topQuote": self.top_quote,
            "stakes": self.stakes.to_dict(),
            "scoreRationale": self.score_rationale,
            "affectedSegments": list(self.affected_segments),
            "memberIds": list(self.member_ids),
        }
        if self.root_cause:
            data["rootCause"] = self.root_cause
        if self.source_url:
            data["sourceUrl"] = self.source_url
        if self.subreddit:
            data["subreddit"] = self.subreddit
        return data


@dataclass
class BrandLove:
    feature: str
    quote: str
    shareability: float

    def to_dict(self) -> Dict[str, Any]:
        return {"feature": self.feature, "quote": self.quote, "shareability": self.shareability}


@dataclass
class BrandStrengths:
    overall_score: float = 0.0
    top_loves: List[BrandLove] = field(default_factory=list)
    brand_personality: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overallScore": self.overall_score,
            "topLoves": [l.to_dict() for l in self.top_loves],
            "brandPersonality": list(self.brand_personality),
        }


@dataclass
class SuggestedOKR:
    theme: str
    objective: str
    key_results: List[str]
    timeframe: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "theme": self.theme,
            "objective": self.objective,
            "keyResults": list(self.key_results),
            "timeframe": self.timeframe,
        }


@dataclass
class Summaries:
    tldr: str = ""
    highlights: List[str] = field(default_factory=list)
    executive_brief: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"tldr": self.tldr, "highlights": list(self.highlights), "executiveBrief": self.executive_brief}


@dataclass
class SentimentBreakdown:
    """Percentages that always sum to 100."""
    positive: int
    neutral: int
    negative: int
    mood: str
    mood_explanation: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "positive": self.positive,
            "neutral": self.neutral,
            "negative": self.negative,
            "mood": self.mood,
            "moodExplanation": self.mood_explanation,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SentimentBreakdown":
        return cls(
            positive=int(data.get("positive", 0)),
            neutral=int(data.get("neutral", 0)),
            negative=int(data.get("negative", 0)),
            mood=data.get("mood", "Stable"),
            mood_explanation=data.get("moodExplanation", ""),
        )


@dataclass
class PriorityMatrixItem:
    title: str
    category: Category
    impact_score: float
    effort_estimate: Effort
    quadrant: Quadrant
    frequency: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "category": self.category.value,
            "impactScore": self.impact_score,
            "effortEstimate": self.effort_estimate.value,
            "quadrant": self.quadrant.value,
            "frequency": self.frequency,
        }


@dataclass
class ExpectationGap:
    expectation: str
    reality: str
    gap_severity: str
    suggested_fix: str
    focus_area_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "expectation": self.expectation,
            "reality": self.reality,
            "gapSeverity": self.gap_severity,
            "suggestedFix": self.suggested_fix,
            "focusAreaId": self.focus_area_id,
        }


@dataclass
class AnalysisMetadata:
    total_analyzed: int = 0
    high_signal_count: int = 0
    noise_filtered: int = 0
    failed_sources: int = 0
    classification_failures: int = 0
    data_sources: List[str] = field(default_factory=list)
    analysis_date: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalAnalyzed": self.total_analyzed,
            "highSignalCount": self.high_signal_count,
            "noiseFiltered": self.noise_filtered,
            "failedSources": self.failed_sources,
            "classificationFailures": self.classification_failures,
            "dataSources": list(self.data_sources),
            "analysisDate": self.analysis_date,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalysisMetadata":
        return cls(
            total_analyzed=int(data.get("totalAnalyzed", 0)),
            high_signal_count=int(data.get("highSignalCount", 0)),
            noise_filtered=int(data.get("noiseFiltered", 0)),
            failed_sources=int(data.get("failedSources", 0)),
            classification_failures=int(data.get("classificationFailures", 0)),
            data_sources=list(data.get("dataSources", [])),
            analysis_date=data.get("analysisDate", ""),
        )


# ---------------------------------------------------------------------------
# Comparison
# ---------------------------------------------------------------------------

@dataclass
class ChangeItem:
    title: str
    category: Category
    change_type: ChangeType
    insight: str
    frequency_delta: Optional[int] = None
    impact_delta: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "title": self.title,
            "category": self.category.value,
            "changeType": self.change_type.value,
            "insight": self.insight,
        }
        if self.frequency_delta is not None:
            data["frequencyDelta"] = self.frequency_delta
        if self.impact_delta is not None:
            data["impactDelta"] = self.impact_delta
        return data


@dataclass
class SentimentTrend:
    current: SentimentBreakdown
    previous: SentimentBreakdown
    delta: int
    direction: str  # improving / declining / stable
    mood_change: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current": self.current.to_dict(),
            "previous": self.previous.to_dict(),
            "delta": self.delta,
            "direction": self.direction,
            "moodChange": self.mood_change,
        }


@dataclass
class VolumeTrend:
    current: int
    previous: int
    delta: int
    direction: str  # up / down / stable

    def to_dict(self) -> Dict[str, Any]:
        return {"current": self.current, "previous": self.previous, "delta": self.delta, "direction": self.direction}


@dataclass
class TrendData:
    sentiment: SentimentTrend
    volume: VolumeTrend
    resolution_rate: float
    new_issue_rate: float
    overall_health: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sentiment": self.sentiment.to_dict(),
            "volume": self.volume.to_dict(),
            "resolutionRate": self.resolution_rate,
            "newIssueRate": self.new_issue_rate,
            "overallHealth": self.overall_health,
        }


@dataclass
class Comparison:
    """Delta between a report and the prior snapshot."""
    is_first_run: bool
    changes: Dict[ChangeType, List[ChangeItem]] = field(
        default_factory=lambda: {ct: [] for ct in ChangeType}
    )
    trends: Optional[TrendData] = None
    summary: str = ""
    compared_at: Optional[str] = None
    previous_snapshot_date: Optional[str] = None

    def changes_of(self, change_type: ChangeType) -> List[ChangeItem]:
        return self.changes.get(change_type, [])

    def to_dict(self) -> Dict[str, Any]:
        keys = {
            ChangeType.NEW: "newIssues",
            ChangeType.IMPROVED: "improvedIssues",
            ChangeType.WORSENED: "worsenedIssues",
            ChangeType.RESOLVED: "resolvedIssues",
            ChangeType.STABLE: "stableIssues",
        }
        data = {
            "isFirstRun": self.is_first_run,
            "changes": {keys[ct]: [c.to_dict() for c in self.changes_of(ct)] for ct in ChangeType},
            "trends": self.trends.to_dict() if self.trends else None,
            "summary": self.summary,
        }
        if self.compared_at:
            data["comparedAt"] = self.compared_at
        if self.previous_snapshot_date:
            data["previousSnapshotDate"] = self.previous_snapshot_date
        return data


# ---------------------------------------------------------------------------
# Report and snapshot
# ---------------------------------------------------------------------------

@dataclass
class SynthesisReport:
    """The single output artifact of a run."""
    company_name: str
    summaries: Summaries
    sentiment: SentimentBreakdown
    focus_areas: List[FocusArea]
    brand_strengths: BrandStrengths
    suggested_okrs: List[SuggestedOKR]
    priority_matrix: List[PriorityMatrixItem]
    expectation_gaps: List[ExpectationGap]
    metadata: AnalysisMetadata
    comparison: Optional[Comparison] = None
    raw_scores: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "companyName": self.company_name,
            "summaries": self.summaries.to_dict(),
            "sentiment": self.sentiment.to_dict(),
            "focusAreas": [fa.to_dict() for fa in self.focus_areas],
            "brandStrengths": self.brand_strengths.to_dict(),
            "suggestedOKRs": [o.to_dict() for o in self.suggested_okrs],
            "priorityMatrix": [p.to_dict() for p in self.priority_matrix],
            "expectationGaps": [g.to_dict() for g in self.expectation_gaps],
            "metadata": self.metadata.to_dict(),
            "comparison": self.comparison.to_dict() if self.comparison else None,
            "rawScores": list(self.raw_scores),
        }


@dataclass(frozen=True)
class SnapshotFocusArea:
    title: str
    category: Category
    frequency: int
    impact_score: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "category": self.category.value,
            "frequency": self.frequency,
            "impactScore": self.impact_score,
        }


@dataclass
class Snapshot:
    """Minimal projection of a prior report, kept for trend comparison."""
    id: str
    company_name: str
    created_at: str
    focus_areas: List[SnapshotFocusArea]
    sentiment: SentimentBreakdown
    metadata: AnalysisMetadata

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "companyName": self.company_name,
            "createdAt": self.created_at,
            "focusAreas": [fa.to_dict() for fa in self.focus_areas],
            "sentiment": self.sentiment.to_dict(),
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Snapshot":
        areas = []
        for fa in data.get("focusAreas", []) or []:
            try:
                category = Category(fa.get("category"))
            except ValueError:
                continue
            areas.append(SnapshotFocusArea(
                title=fa.get("title", ""),
                category=category,
                frequency=int(fa.get("frequency", 0)),
                impact_score=float(fa.get("impactScore", 0.0)),
            ))
        return cls(
            id=str(data.get("id", "")),
            company_name=data.get("companyName", ""),
            created_at=data.get("createdAt", ""),
            focus_areas=areas,
            sentiment=SentimentBreakdown.from_dict(data.get("sentiment") or {}),
            metadata=AnalysisMetadata.from_dict(data.get("metadata") or {}),
        )
