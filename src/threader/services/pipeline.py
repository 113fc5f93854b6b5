"""End-to-end analysis run: discover, collect, classify, synthesize, compare, save."""

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from ..core.comparison import Comparer
from ..core.constants import CollectorConstants
from ..core.errors import ConcurrentRunError, NoFeedbackCollected, NoSourcesFound
from ..core.models import DiscoveryResult, FeedbackRecord, Relevance, SourceResult, SynthesisReport
from ..core.normalizer import dedupe_records, normalize
from ..core.scoring import EffortPolicy
from ..core.synthesis import Synthesizer
from .classifier import ClassificationBatch, Classifier, create_classifier
from .discovery import SourceDiscoverer
from .llm import LLMServiceFactory
from .reddit_client import RedditClient, RedditCollector
from .storage import DEFAULT_TENANT, JsonFileSnapshotStore, SnapshotStore, company_key

logger = logging.getLogger(__name__)

SEARCH_SOURCE = "all"


@dataclass
class ScrapeResult:
    discovery: DiscoveryResult
    source_results: Dict[str, SourceResult]
    records: List[FeedbackRecord]
    duplicates_dropped: int = 0


@dataclass
class RunResult:
    report_id: str
    report: SynthesisReport
    source_results: Dict[str, SourceResult] = field(default_factory=dict)
    discovery: Optional[DiscoveryResult] = None


class AnalysisPipeline:
    """Coordinates one bounded analysis run per call.

    Collaborators default from ``settings`` and can all be injected.
    A second concurrent run for the same company in this process is
    rejected with ConcurrentRunError.
    """

    _locks: Dict[str, threading.Lock] = {}
    _locks_guard = threading.Lock()

    def __init__(
        self,
        settings,
        llm=None,
        client: Optional[RedditClient] = None,
        store: Optional[SnapshotStore] = None,
        collector: Optional[RedditCollector] = None,
        discoverer: Optional[SourceDiscoverer] = None,
        classifier: Optional[Classifier] = None,
        synthesizer: Optional[Synthesizer] = None,
        comparer: Optional[Comparer] = None,
    ):
        self.settings = settings
        self.llm = llm if llm is not None else LLMServiceFactory.create(settings)
        self.client = client or RedditClient(settings)
        self.collector = collector or RedditCollector(self.client, settings)
        self.store = store or JsonFileSnapshotStore(settings.snapshot_dir)
        self.discoverer = discoverer or SourceDiscoverer(self.llm, use_llm=settings.use_llm_discovery)
        self.classifier = classifier or create_classifier(settings, self.llm)
        if synthesizer is None:
            policy = EffortPolicy.from_yaml(settings.effort_policy_file) if settings.effort_policy_file else None
            synthesizer = Synthesizer(effort_policy=policy)
        self.synthesizer = synthesizer
        self.comparer = comparer or Comparer()

    @classmethod
    def _lock_for(cls, company_name: str) -> threading.Lock:
        with cls._locks_guard:
            return cls._locks.setdefault(company_key(company_name), threading.Lock())

    # -- stages -------------------------------------------------------------

    def discover(self, company_name: str, context: str = "") -> DiscoveryResult:
        return self.discoverer.discover(company_name, context)

    def collect(self, discovery: DiscoveryResult) -> Dict[str, SourceResult]:
        window = timedelta(hours=self.settings.time_window_hours)
        if discovery.sources:
            return self.collector.collect_many(
                discovery.sources,
                discovery.search_terms,
                window,
                self.settings.max_items_per_source,
                max_workers=self.settings.max_workers,
            )

        if not discovery.search_terms:
            raise NoSourcesFound("Discovery produced neither communities nor search terms")
        query = discovery.search_terms[0]
        logger.info(f"No communities found; searching all of Reddit for '{query}'")
        try:
            items = self.collector.search(query, window, CollectorConstants.FALLBACK_SEARCH_MAX_ITEMS)
        except Exception as e:
            logger.error(f"Site-wide search failed: {e}")
            return {SEARCH_SOURCE: SourceResult(relevance=Relevance.SECONDARY, error=str(e))}
        return {SEARCH_SOURCE: SourceResult(items=items, total=len(items), relevant=len(items),
                                            relevance=Relevance.SECONDARY)}

    def attach_comments(self, records: List[FeedbackRecord]) -> None:
        """Top comments for the most upvoted records, in place."""
        top = sorted(records, key=lambda r: -r.upvotes)[:CollectorConstants.MAX_POSTS_WITH_COMMENTS]
        for record in top:
            if record.comment_count and record.source_url:
                record.comments = self.client.fetch_comments(record.source_url)
        logger.info(f"Fetched comments for {len(top)} posts")

    def scrape(self, company_name: str, context: str = "") -> ScrapeResult:
        """Discovery, collection and normalization without classification."""
        discovery = self.discover(company_name, context)
        source_results = self.collect(discovery)

        scraped_at = datetime.now(timezone.utc).isoformat()
        normalized = [
            normalize(item, company_name, scraped_at, result.relevance)
            for result in source_results.values()
            for item in result.items
        ]
        records, dropped = dedupe_records(normalized)
        if dropped:
            logger.info(f"Dropped {dropped} duplicate posts")

        failed = [name for name, r in source_results.items() if r.failed]
        logger.info(
            f"Collected {len(records)} posts from {len(source_results) - len(failed)}/{len(source_results)} sources"
        )
        if not records:
            raise NoFeedbackCollected(
                f"No feedback collected for '{company_name}' "
                f"({len(failed)} of {len(source_results)} sources failed)"
            )
        if self.settings.include_comments:
            self.attach_comments(records)
        return ScrapeResult(discovery, source_results, records, dropped)

    def run(self, company_name: str, context: str = "", is_public: bool = False,
            tenant_id: str = DEFAULT_TENANT) -> RunResult:
        self.settings.validate_for_run()
        lock = self._lock_for(company_name)
        if not lock.acquire(blocking=False):
            raise ConcurrentRunError(f"An analysis for '{company_name}' is already running")
        try:
            return self._run(company_name, context, is_public, tenant_id)
        finally:
            lock.release()

    def _run(self, company_name: str, context: str, is_public: bool, tenant_id: str) -> RunResult:
        started = time.time()
        logger.info(f"Starting analysis for '{company_name}'")
        scraped = self.scrape(company_name, context)

        batch: ClassificationBatch = self.classifier.classify(scraped.records)
        logger.info(
            f"Classification: {len(batch.signal)} signal, {batch.noise_count} noise, {len(batch.failed)} failed"
        )

        ok_sources = [name for name, r in scraped.source_results.items() if not r.failed]
        report = self.synthesizer.synthesize(
            batch.signal,
            company_name,
            data_sources=[f"r/{name}" for name in ok_sources],
            noise_filtered=batch.noise_count,
            failed_sources=len(scraped.source_results) - len(ok_sources),
            classification_failures=len(batch.failed),
        )

        previous = self.store.latest_snapshot(company_name, tenant_id)
        report = self.comparer.compare(report, previous)
        report_id = self.store.save_report(company_name, report, is_public=is_public, tenant_id=tenant_id)

        logger.info(
            f"Analysis for '{company_name}' finished in {time.time() - started:.1f}s: "
            f"{len(report.focus_areas)} focus areas, report {report_id}"
        )
        return RunResult(report_id, report, scraped.source_results, scraped.discovery)
