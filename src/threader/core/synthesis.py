"""Synthesis of classified feedback into a report of focus areas."""

import hashlib
import logging
import math
import re
from collections import Counter
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .clustering import TOKEN_RE, CategoryTitleGrouping, GroupingStrategy
from .constants import ScoringConstants, SynthesisConstants
from .models import (
    AnalysisMetadata,
    BrandLove,
    BrandStrengths,
    Category,
    ExpectationGap,
    FeedbackRecord,
    FocusArea,
    PriorityMatrixItem,
    SentimentBreakdown,
    SuggestedOKR,
    Summaries,
    SynthesisReport,
)
from .scoring import (
    EffortPolicy,
    aggregate_impact,
    assess_stakes,
    assign_quadrant,
    sentiment_breakdown,
    severity_label,
)

logger = logging.getLogger(__name__)

PERSONALITY_TRAITS = {
    "Reliable": ["reliable", "stable", "never crash", "rock solid", "just works", "dependable"],
    "Intuitive": ["easy", "intuitive", "simple", "clean", "straightforward"],
    "Fast": ["fast", "quick", "snappy", "speed", "instant"],
    "Powerful": ["powerful", "flexible", "customiz", "versatile", "capable"],
    "Delightful": ["love", "beautiful", "delight", "amazing", "awesome", "gorgeous"],
    "Supportive": ["support", "helpful", "responsive", "community"],
    "Good Value": ["price", "affordable", "free tier", "worth it", "value"],
}

GAP_RE = re.compile(
    r"\b(?:expected|thought|assumed|was told|supposed to|should(?: have)?|promised)\b"
    r"(?P<expectation>[^.!?\n]{3,120}?)"
    r"[\s,;]*\b(?:but|instead|however|yet)\b"
    r"(?P<reality>[^.!?\n]{3,160})",
    re.IGNORECASE,
)

SUGGESTED_FIXES = {
    Category.BUG: "Reproduce the failure from the quoted reports and ship a fix with a regression test.",
    Category.USABILITY_FRICTION: "Align the flow with what users expect, or explain the behavior in-product where it happens.",
    Category.FEATURE_REQUEST: "Clarify the roadmap publicly and consider a lightweight version of the request.",
    Category.PRAISE: "Keep the behavior users rely on and reference it in messaging.",
}

OKR_THEMES = {
    Category.BUG: "Reliability",
    Category.USABILITY_FRICTION: "User Experience",
    Category.FEATURE_REQUEST: "Product Growth",
}

GAP_SEVERITY = {"Critical": "High", "High": "High", "Medium": "Medium", "Low": "Low"}


def _truncate(text: str, limit: int) -> str:
    text = re.sub(r"\s+", " ", text or "").strip()
    if len(text) <= limit:
        return text
    return text[: limit - 3].rstrip() + "..."


def _area_id(category: Category, members: Sequence[FeedbackRecord]) -> str:
    keys = sorted(f"{r.source}:{r.source_id}" for r in members)
    digest = hashlib.sha1(f"{category.value}|{'|'.join(keys)}".encode("utf-8")).hexdigest()
    return f"fa-{digest[:10]}"


def _representative(members: Sequence[FeedbackRecord]) -> FeedbackRecord:
    """Highest-impact member, most upvoted on ties, first seen after that."""
    best = members[0]
    for r in members[1:]:
        if (r.impact_data.score, r.upvotes) > (best.impact_data.score, best.upvotes):
            best = r
    return best


def _most_common(values: Iterable[Optional[str]], limit: int) -> List[str]:
    counts = Counter(v.strip() for v in values if v and v.strip())
    return [v for v, _ in counts.most_common(limit)]


def shareability(members: Sequence[FeedbackRecord]) -> float:
    """1-10 estimate of how shareable praise is, from engagement and repetition."""
    if not members:
        return 0.0
    engagement = sum(min(10.0, math.log2(1 + r.upvotes + 2 * r.comment_count)) for r in members) / len(members)
    repetition = min(2.0, 0.5 * (len(members) - 1))
    return round(max(1.0, min(10.0, engagement + repetition)), 1)


def _quarter(analysis_date: str) -> int:
    try:
        month = datetime.fromisoformat(analysis_date).month
    except (TypeError, ValueError):
        month = datetime.now(timezone.utc).month
    return (month - 1) // 3 + 1


class Synthesizer:
    """Cluster classified feedback into focus areas and build the run report.

    The grouping strategy and the effort policy are injectable; with the same
    inputs and ``analysis_date`` the output is identical across calls.
    """

    def __init__(
        self,
        grouping: Optional[GroupingStrategy] = None,
        effort_policy: Optional[EffortPolicy] = None,
        risk_threshold: float = ScoringConstants.RISK_THRESHOLD,
        high_impact_threshold: float = ScoringConstants.HIGH_IMPACT_THRESHOLD,
        max_brand_loves: int = SynthesisConstants.MAX_BRAND_LOVES,
    ):
        self.grouping = grouping
        self.effort_policy = effort_policy or EffortPolicy()
        self.risk_threshold = risk_threshold
        self.high_impact_threshold = high_impact_threshold
        self.max_brand_loves = max_brand_loves

    def synthesize(
        self,
        records: Sequence[FeedbackRecord],
        company_name: str,
        *,
        data_sources: Optional[Iterable[str]] = None,
        noise_filtered: int = 0,
        failed_sources: int = 0,
        classification_failures: int = 0,
        analysis_date: Optional[str] = None,
    ) -> SynthesisReport:
        analysis_date = analysis_date or datetime.now(timezone.utc).isoformat()

        usable, noise, unclassified = [], 0, 0
        for r in records:
            if not r.is_classified:
                unclassified += 1
            elif r.analysis.is_noise:
                noise += 1
            else:
                usable.append(r)
        if unclassified:
            logger.warning(f"Excluding {unclassified} unclassified records from clustering")

        grouping = self.grouping or CategoryTitleGrouping(ignore_terms=TOKEN_RE.findall(company_name.lower()))
        clusters = grouping.group(list(usable))
        logger.info(f"Clustered {len(usable)} records into {len(clusters)} focus areas for '{company_name}'")

        built = [self._build_focus_area(c) for c in clusters]
        built.sort(key=lambda pair: (-pair[0].impact_score, -pair[0].frequency, pair[0].title.lower(), pair[0].id))
        focus_areas = [fa for fa, _ in built]
        members_by_id = {fa.id: members for fa, members in built}

        sentiment = sentiment_breakdown(r.analysis.sentiment for r in usable)
        sources = sorted(set(data_sources)) if data_sources is not None else sorted(
            {f"r/{r.subreddit}" for r in usable if r.subreddit}
        )
        metadata = AnalysisMetadata(
            total_analyzed=len(usable),
            high_signal_count=sum(fa.frequency for fa in focus_areas if fa.impact_score >= self.high_impact_threshold),
            noise_filtered=noise_filtered + noise,
            failed_sources=failed_sources,
            classification_failures=classification_failures + unclassified,
            data_sources=sources,
            analysis_date=analysis_date,
        )

        return SynthesisReport(
            company_name=company_name,
            summaries=self._summaries(company_name, focus_areas, sentiment, metadata),
            sentiment=sentiment,
            focus_areas=focus_areas,
            brand_strengths=self._brand_strengths(focus_areas, members_by_id),
            suggested_okrs=self._suggested_okrs(focus_areas, analysis_date),
            priority_matrix=self._priority_matrix(focus_areas, members_by_id),
            expectation_gaps=self._expectation_gaps(focus_areas, members_by_id),
            metadata=metadata,
            raw_scores=[{"id": r.source_id, "impactData": r.impact_data.to_dict()} for r in usable],
        )

    # -- focus areas --------------------------------------------------------

    def _build_focus_area(self, members: List[FeedbackRecord]) -> Tuple[FocusArea, List[FeedbackRecord]]:
        category = members[0].analysis.category
        rep = _representative(members)
        impact = aggregate_impact([r.impact_data for r in members])
        root_causes = _most_common((r.analysis.root_cause for r in members), 1)
        root_cause = root_causes[0] if root_causes else None
        segments = _most_common((r.analysis.segment for r in members), SynthesisConstants.MAX_SEGMENTS)

        if root_cause and len(members) > 1:
            title = root_cause[0].upper() + root_cause[1:]
        else:
            title = rep.title or rep.body or root_cause or "Untitled feedback"
        quote = rep.analysis.key_quote or rep.body or rep.title or ""

        area = FocusArea(
            id=_area_id(category, members),
            title=_truncate(title, SynthesisConstants.MAX_TITLE_LENGTH),
            category=category,
            impact_score=impact.score,
            frequency=len(members),
            severity_label=severity_label(impact.score),
            top_quote=_truncate(quote, SynthesisConstants.MAX_QUOTE_LENGTH),
            stakes=assess_stakes(category, impact.score, len(members), segments, self.risk_threshold),
            affected_segments=segments,
            root_cause=root_cause,
            score_rationale=impact.rationale,
            source_url=rep.source_url or None,
            subreddit=f"r/{rep.subreddit}" if rep.subreddit else None,
            member_ids=[r.source_id for r in members],
        )
        return area, members

    def _priority_matrix(self, focus_areas: List[FocusArea],
                         members_by_id: Dict[str, List[FeedbackRecord]]) -> List[PriorityMatrixItem]:
        items = []
        for fa in focus_areas:
            hints = [r.analysis.effort for r in members_by_id[fa.id]]
            effort = self.effort_policy.effort_for(fa.category, hints)
            items.append(PriorityMatrixItem(
                title=fa.title,
                category=fa.category,
                impact_score=fa.impact_score,
                effort_estimate=effort,
                quadrant=assign_quadrant(fa.impact_score, effort, self.high_impact_threshold),
                frequency=fa.frequency,
            ))
        return items

    # -- brand strengths ----------------------------------------------------

    def _brand_strengths(self, focus_areas: List[FocusArea],
                         members_by_id: Dict[str, List[FeedbackRecord]]) -> BrandStrengths:
        praise = [fa for fa in focus_areas if fa.category == Category.PRAISE]
        if not praise:
            return BrandStrengths()

        scored = [(shareability(members_by_id[fa.id]), fa) for fa in praise]
        scored.sort(key=lambda pair: (-pair[0], -pair[1].frequency, pair[1].title.lower()))
        loves = [BrandLove(feature=fa.title, quote=fa.top_quote, shareability=score)
                 for score, fa in scored[: self.max_brand_loves]]

        text = " ".join(r.discussion_text.lower() for fa in praise for r in members_by_id[fa.id])
        hits = {trait: sum(text.count(k) for k in keys) for trait, keys in PERSONALITY_TRAITS.items()}
        order = list(PERSONALITY_TRAITS)
        personality = [t for t in sorted(hits, key=lambda t: (-hits[t], order.index(t))) if hits[t] > 0]

        overall = round(sum(fa.impact_score for fa in praise) / len(praise), 1)
        return BrandStrengths(
            overall_score=overall,
            top_loves=loves,
            brand_personality=personality[: SynthesisConstants.MAX_PERSONALITY_TRAITS],
        )

    # -- expectation gaps ---------------------------------------------------

    def _expectation_gaps(self, focus_areas: List[FocusArea],
                          members_by_id: Dict[str, List[FeedbackRecord]]) -> List[ExpectationGap]:
        gaps = []
        for fa in focus_areas:
            if fa.category == Category.PRAISE:
                continue
            for r in members_by_id[fa.id]:
                m = GAP_RE.search(r.discussion_text)
                if not m:
                    continue
                gaps.append(ExpectationGap(
                    expectation=_truncate(m.group("expectation").strip(" ,;:"), 120),
                    reality=_truncate(m.group("reality").strip(" ,;:"), 160),
                    gap_severity=GAP_SEVERITY[fa.severity_label],
                    suggested_fix=SUGGESTED_FIXES[fa.category],
                    focus_area_id=fa.id,
                ))
                break
        return gaps

    # -- summaries and OKRs -------------------------------------------------

    def _summaries(self, company_name: str, focus_areas: List[FocusArea],
                   sentiment: SentimentBreakdown, metadata: AnalysisMetadata) -> Summaries:
        if not focus_areas:
            return Summaries(
                tldr=f"No actionable feedback about {company_name} in this window.",
                highlights=[],
                executive_brief=f"{metadata.total_analyzed} posts were analyzed; none formed a focus area.",
            )

        issues = [fa for fa in focus_areas if fa.category != Category.PRAISE]
        praise = [fa for fa in focus_areas if fa.category == Category.PRAISE]
        lead = issues[0] if issues else focus_areas[0]
        tldr = (
            f"{company_name}: {len(focus_areas)} focus areas from {metadata.total_analyzed} posts. "
            f"Top item: {lead.title} ({lead.severity_label}, impact {lead.impact_score:.1f}/10). "
            f"Mood: {sentiment.mood}."
        )

        highlights = [
            f"{fa.title}: {fa.frequency} mention{'s' if fa.frequency != 1 else ''}, {fa.severity_label.lower()} impact"
            for fa in issues[: SynthesisConstants.MAX_HIGHLIGHTS - (1 if praise else 0)]
        ]
        if praise:
            highlights.append(f"Users love: {praise[0].title}")

        critical = [fa for fa in issues if fa.severity_label in ("Critical", "High")]
        brief = (
            f"Across {metadata.total_analyzed} posts from {len(metadata.data_sources)} communities, "
            f"sentiment is {sentiment.positive}% positive, {sentiment.neutral}% neutral and "
            f"{sentiment.negative}% negative ({sentiment.mood}). "
        )
        if critical:
            brief += (
                f"{len(critical)} high-severity area{'s' if len(critical) != 1 else ''} need attention, "
                f"led by \"{critical[0].title}\" with {critical[0].frequency} mentions. "
            )
        else:
            brief += "No high-severity areas were found. "
        if praise:
            brief += f"The strongest positive theme is \"{praise[0].title}\"."
        return Summaries(tldr=tldr, highlights=highlights, executive_brief=brief.strip())

    def _suggested_okrs(self, focus_areas: List[FocusArea], analysis_date: str) -> List[SuggestedOKR]:
        quarter = _quarter(analysis_date)
        okrs = []
        for fa in focus_areas:
            if fa.category == Category.PRAISE:
                continue
            target_freq = fa.frequency // 2
            target_impact = max(0.0, round(fa.impact_score - 2.0, 1))
            who = ", ".join(fa.affected_segments) if fa.affected_segments else "affected users"
            urgent = fa.severity_label in ("Critical", "High")
            okrs.append(SuggestedOKR(
                theme=OKR_THEMES[fa.category],
                objective=f"Address \"{fa.title}\" for {who}",
                key_results=[
                    f"Reduce mentions from {fa.frequency} to {target_freq} or fewer per run",
                    f"Bring impact score from {fa.impact_score:.1f} to {target_impact:.1f} or lower",
                    f"Close the loop publicly in {fa.subreddit or 'the affected communities'}",
                ],
                timeframe=f"Q{quarter}" if urgent else f"H{1 if quarter <= 2 else 2}",
            ))
            if len(okrs) >= SynthesisConstants.MAX_OKRS:
                break
        return okrs
