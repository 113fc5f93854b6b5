"""Classification of normalized feedback into categories and impact sub-scores."""

import logging
import math
import re
import time
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from vaderSentiment.vaderSentiment import SentimentIntensityAnalyzer

from ..core.constants import ClassifierConstants
from ..core.errors import ClassificationFailure
from ..core.models import Analysis, Category, Effort, FeedbackRecord
from ..core.scoring import build_impact_data

logger = logging.getLogger(__name__)

SENTIMENTS = ("positive", "neutral", "negative")
NOISE_LABELS = ("noise", "off_topic", "off-topic", "irrelevant", "spam")

# Ordered: earlier categories win ties
CATEGORY_TERMS: List[Tuple[Category, Tuple[str, ...]]] = [
    (Category.BUG, (
        "bug", "crash", "crashes", "crashing", "broken", "error", "not working", "doesn't work",
        "does not work", "glitch", "freezes", "frozen", "fails", "failed", "data loss", "lost my",
    )),
    (Category.USABILITY_FRICTION, (
        "confusing", "hard to", "can't find", "cannot find", "annoying", "clunky", "slow",
        "too many clicks", "frustrating", "unintuitive", "learning curve", "takes forever",
    )),
    (Category.FEATURE_REQUEST, (
        "feature request", "please add", "wish", "would love", "would be nice", "should add",
        "support for", "any plans", "roadmap", "missing", "integration with",
    )),
    (Category.PRAISE, (
        "love", "amazing", "awesome", "great", "best", "thank you", "thanks", "game changer",
        "impressed", "recommend",
    )),
]

NOISE_RE = re.compile(r"\b(giveaway|promo code|referral (code|link)|discount code|meme|shitpost)\b", re.I)
CHURN_RE = re.compile(r"\b(cancel(l?ed|ling)?|unsubscrib\w*|refund|leaving|switch(ed|ing)? (to|from))\b", re.I)
COMPETITOR_RE = re.compile(r"\b(alternative|competitor|instead of|better than)\b", re.I)
WORKAROUND_RE = re.compile(r"\b(workaround|work around|for now i)\b", re.I)
SENTENCE_RE = re.compile(r"(?<=[.!?])\s+")


def _effort_or_none(value: Any) -> Optional[Effort]:
    if value is None:
        return None
    text = str(value).strip().lower().replace("_", " ")
    for effort in Effort:
        if effort.value.lower() == text:
            return effort
    return None


def _score(entry: Dict[str, Any], *names: str) -> float:
    for name in names:
        if name in entry and entry[name] is not None:
            try:
                value = float(entry[name])
            except (TypeError, ValueError):
                raise ValueError(f"'{name}' is not a number: {entry[name]!r}")
            if math.isnan(value):
                raise ValueError(f"'{name}' is NaN")
            return value
    raise ValueError(f"missing '{names[0]}'")


def _optional_text(entry: Dict[str, Any], name: str) -> Optional[str]:
    value = entry.get(name)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _record_text(record: FeedbackRecord) -> str:
    text = record.text
    if len(text) > ClassifierConstants.MAX_TEXT_FOR_CLASSIFICATION:
        text = text[:ClassifierConstants.MAX_TEXT_FOR_CLASSIFICATION] + "..."
    comments = [
        c.body.strip()[:ClassifierConstants.MAX_COMMENT_TEXT]
        for c in record.comments[:ClassifierConstants.MAX_COMMENTS_FOR_CLASSIFICATION]
        if c.body.strip()
    ]
    if comments:
        text += " Top comments: " + " | ".join(comments)
    return text.replace("\n", " ")


@dataclass
class ClassificationBatch:
    """Outcome of classifying a set of records."""
    classified: List[FeedbackRecord] = field(default_factory=list)
    failed: List[ClassificationFailure] = field(default_factory=list)

    @property
    def signal(self) -> List[FeedbackRecord]:
        return [r for r in self.classified if not r.analysis.is_noise]

    @property
    def noise_count(self) -> int:
        return sum(1 for r in self.classified if r.analysis.is_noise)


class Classifier:
    """Base classifier. Subclasses fill ``analysis`` and ``impact_data``."""

    name = "base"

    def classify(self, records: Sequence[FeedbackRecord]) -> ClassificationBatch:
        raise NotImplementedError


def apply_classification(record: FeedbackRecord, entry: Any) -> FeedbackRecord:
    """Return a copy of ``record`` carrying the classification in ``entry``.

    Raises ClassificationFailure when the entry is malformed.
    """
    if not isinstance(entry, dict):
        raise ClassificationFailure(record.key, "classification is not an object")

    label = str(entry.get("category") or "").strip().lower()
    if label in NOISE_LABELS:
        return replace(record, analysis=Analysis(is_noise=True, confidence=1.0), impact_data=None)
    try:
        category = Category(label)
    except ValueError:
        raise ClassificationFailure(record.key, f"unknown category {entry.get('category')!r}")

    try:
        reach = _score(entry, "reach")
        intensity = _score(entry, "sentimentIntensity", "sentiment_score")
        velocity = _score(entry, "velocity")
    except ValueError as e:
        raise ClassificationFailure(record.key, str(e))

    sentiment = str(entry.get("sentiment") or "neutral").strip().lower()
    if sentiment not in SENTIMENTS:
        sentiment = "neutral"
    try:
        confidence = max(0.0, min(1.0, float(entry.get("confidence", 0.5))))
    except (TypeError, ValueError):
        confidence = 0.5

    analysis = Analysis(
        category=category,
        sentiment=sentiment,
        segment=_optional_text(entry, "segment"),
        impact_type=_optional_text(entry, "impactType"),
        urgency=_optional_text(entry, "urgency"),
        root_cause=_optional_text(entry, "rootCause"),
        key_quote=_optional_text(entry, "keyQuote"),
        effort=_effort_or_none(entry.get("effort")),
        confidence=confidence,
    )
    rationale = _optional_text(entry, "rationale") or (
        f"Reach {reach:.0f}, sentiment {intensity:.0f}, velocity {velocity:.0f} (model estimate)"
    )
    return replace(record, analysis=analysis,
                   impact_data=build_impact_data(reach, intensity, velocity, rationale))


class LLMClassifier(Classifier):
    """Batches records to the text-generation service and validates its answers."""

    name = "llm"

    def __init__(self, llm, batch_size: int = ClassifierConstants.LLM_BATCH_SIZE):
        self.llm = llm
        self.batch_size = max(1, batch_size)

    @staticmethod
    def _entries(payload: Any) -> Dict[str, Any]:
        if isinstance(payload, dict):
            payload = payload.get("results") or payload.get("items") or payload.get("posts")
        if not isinstance(payload, list):
            raise ValueError("classification payload is not a list")
        return {str(e.get("id")): e for e in payload if isinstance(e, dict) and e.get("id") is not None}

    def classify(self, records: Sequence[FeedbackRecord]) -> ClassificationBatch:
        batch = ClassificationBatch()
        records = list(records)
        if not records:
            return batch

        company = records[0].company_name
        for start in range(0, len(records), self.batch_size):
            chunk = records[start:start + self.batch_size]
            posts = [{"id": r.source_id, "text": _record_text(r)} for r in chunk]
            try:
                entries = self._entries(self.llm.classify_batch(company, posts))
            except Exception as e:
                logger.warning(f"Classification batch {start // self.batch_size + 1} failed: {e}")
                batch.failed.extend(ClassificationFailure(r.key, f"batch failed: {e}") for r in chunk)
                continue

            for record in chunk:
                entry = entries.get(record.source_id)
                if entry is None:
                    batch.failed.append(ClassificationFailure(record.key, "missing from model response"))
                    continue
                try:
                    batch.classified.append(apply_classification(record, entry))
                except ClassificationFailure as e:
                    logger.warning(f"Dropping record {e}")
                    batch.failed.append(e)

            logger.info(
                f"Classified batch {start // self.batch_size + 1}: "
                f"{len(batch.classified)} done, {len(batch.failed)} failed so far"
            )
        return batch


class KeywordClassifier(Classifier):
    """Deterministic offline classifier.

    Category from keyword tables, tone from VADER, reach from engagement,
    velocity from engagement per hour since posting.
    """

    name = "keyword"

    def __init__(self, clock: Callable[[], float] = time.time):
        self.analyzer = SentimentIntensityAnalyzer()
        self.clock = clock

    @staticmethod
    def _match_category(text: str) -> Tuple[Optional[Category], Optional[str]]:
        best, best_hits, best_term = None, 0, None
        for category, terms in CATEGORY_TERMS:
            hits = [t for t in terms if re.search(rf"\b{re.escape(t)}\b", text)]
            if len(hits) > best_hits:
                best, best_hits, best_term = category, len(hits), hits[0]
        return best, best_term

    @staticmethod
    def _key_quote(raw_text: str, term: Optional[str]) -> Optional[str]:
        sentences = [s.strip() for s in SENTENCE_RE.split(raw_text) if s.strip()]
        if not sentences:
            return None
        if term:
            for s in sentences:
                if term in s.lower():
                    return s
        return sentences[0]

    @staticmethod
    def _urgency(text: str, category: Category) -> Optional[str]:
        if COMPETITOR_RE.search(text):
            return "Competitor Mentioned"
        if CHURN_RE.search(text):
            return "Churn Risk"
        if WORKAROUND_RE.search(text):
            return "Workaround Found"
        if category == Category.FEATURE_REQUEST:
            return "Feature Wish"
        return None

    def classify_one(self, record: FeedbackRecord) -> FeedbackRecord:
        raw_text = record.text
        if len(raw_text) < 10 or NOISE_RE.search(raw_text):
            return replace(record, analysis=Analysis(is_noise=True, confidence=1.0), impact_data=None)

        # comments, when fetched, count towards category and tone
        discussion = record.discussion_text
        text = discussion.lower()
        compound = self.analyzer.polarity_scores(discussion)["compound"]
        if compound >= 0.05:
            sentiment = "positive"
        elif compound <= -0.05:
            sentiment = "negative"
        else:
            sentiment = "neutral"

        category, term = self._match_category(text)
        if category is None:
            if sentiment == "neutral":
                return replace(record, analysis=Analysis(is_noise=True, confidence=0.5), impact_data=None)
            category = Category.PRAISE if sentiment == "positive" else Category.USABILITY_FRICTION

        engagement = record.upvotes + 2 * record.comment_count
        reach = math.log2(1 + engagement) * 1.25
        if record.created_utc is not None:
            age_hours = max(1.0, (self.clock() - record.created_utc) / 3600.0)
        else:
            age_hours = 24.0
        velocity = math.log2(1 + (record.upvotes + record.comment_count) / age_hours) * 2.5
        intensity = abs(compound) * 10

        analysis = Analysis(
            category=category,
            sentiment=sentiment,
            urgency=self._urgency(text, category),
            # keyword hits are not root causes
            root_cause=None,
            key_quote=self._key_quote(raw_text, term),
            confidence=0.5,
        )
        rationale = (
            f"{record.upvotes} upvotes, {record.comment_count} comments in ~{age_hours:.0f}h; "
            f"{sentiment} tone ({compound:+.2f})"
        )
        return replace(record, analysis=analysis,
                       impact_data=build_impact_data(reach, intensity, velocity, rationale))

    def classify(self, records: Sequence[FeedbackRecord]) -> ClassificationBatch:
        batch = ClassificationBatch()
        for record in records:
            batch.classified.append(self.classify_one(record))
        logger.info(
            f"Keyword classifier: {len(batch.signal)} signal, {batch.noise_count} noise "
            f"of {len(batch.classified)} records"
        )
        return batch


def create_classifier(settings, llm=None) -> Classifier:
    """LLM classifier when enabled and available, keyword classifier otherwise."""
    if getattr(settings, "use_llm_classifier", False) and llm is not None and getattr(llm, "available", False):
        return LLMClassifier(llm)
    logger.info("Using offline keyword classifier")
    return KeywordClassifier()
