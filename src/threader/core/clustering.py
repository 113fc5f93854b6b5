"""Grouping strategies that turn classified records into focus-area clusters."""

import re
from typing import Callable, Dict, Hashable, Iterable, List, Optional, Set

from .constants import SynthesisConstants
from .models import FeedbackRecord

TOKEN_RE = re.compile(r"[a-z0-9]+")

STOPWORDS = {
    "the", "and", "for", "with", "that", "this", "you", "your", "are", "was", "but",
    "not", "have", "has", "had", "all", "any", "can", "just", "from", "they", "them",
    "there", "what", "when", "why", "how", "who", "does", "did", "out", "get", "got",
    "its", "now", "anyone", "else", "still", "really", "about", "into", "been",
    "would", "could", "should", "like", "than", "then", "too", "very", "will", "more",
}


def tokenize(text: str, ignore: Iterable[str] = ()) -> Set[str]:
    """Lowercase content tokens of three or more characters."""
    skip = STOPWORDS | {t.lower() for t in ignore}
    return {t for t in TOKEN_RE.findall((text or "").lower()) if len(t) >= 3 and t not in skip}


def jaccard(a: Set[str], b: Set[str]) -> float:
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def record_signature(record: FeedbackRecord) -> str:
    """Title plus root cause, falling back to the start of the body."""
    base = record.title or (record.body or "")[:SynthesisConstants.MAX_TITLE_LENGTH]
    if record.analysis.root_cause:
        base = f"{base} {record.analysis.root_cause}"
    return base


def normalized_title(record: FeedbackRecord) -> str:
    return " ".join(TOKEN_RE.findall((record.title or record.body or "").lower()))


class GroupingStrategy:
    """Partition records into clusters. Every record lands in exactly one."""

    def group(self, records: List[FeedbackRecord]) -> List[List[FeedbackRecord]]:
        raise NotImplementedError


class ExactKeyGrouping(GroupingStrategy):
    """Group records that share a key; clusters keep first-seen order."""

    def __init__(self, key_fn: Optional[Callable[[FeedbackRecord], Hashable]] = None):
        self.key_fn = key_fn or (lambda r: (r.analysis.category, normalized_title(r)))

    def group(self, records: List[FeedbackRecord]) -> List[List[FeedbackRecord]]:
        clusters: Dict[Hashable, List[FeedbackRecord]] = {}
        for record in records:
            clusters.setdefault(self.key_fn(record), []).append(record)
        return list(clusters.values())


class CategoryTitleGrouping(GroupingStrategy):
    """Greedy single-pass clustering within a category.

    A record joins the first cluster of its category whose seed shares the
    same root cause or whose token overlap reaches ``threshold``; otherwise it
    seeds a new cluster. Input order decides seeds, so results are stable.
    """

    def __init__(self, threshold: float = SynthesisConstants.TITLE_SIMILARITY_THRESHOLD,
                 ignore_terms: Iterable[str] = ()):
        self.threshold = threshold
        self.ignore_terms = list(ignore_terms)

    def similarity(self, a: FeedbackRecord, b: FeedbackRecord) -> float:
        if a.analysis.category != b.analysis.category:
            return 0.0
        ra = (a.analysis.root_cause or "").strip().lower()
        rb = (b.analysis.root_cause or "").strip().lower()
        if ra and ra == rb:
            return 1.0
        return jaccard(tokenize(record_signature(a), self.ignore_terms),
                       tokenize(record_signature(b), self.ignore_terms))

    def group(self, records: List[FeedbackRecord]) -> List[List[FeedbackRecord]]:
        clusters: List[List[FeedbackRecord]] = []
        for record in records:
            for cluster in clusters:
                if self.similarity(cluster[0], record) >= self.threshold:
                    cluster.append(record)
                    break
            else:
                clusters.append([record])
        return clusters
