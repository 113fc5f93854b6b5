"""Reddit data collection service."""

import logging
import random
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

import requests

from ..core.constants import CollectorConstants, RetryConstants
from ..core.errors import (
    Blocked,
    RateLimited,
    RequestFailure,
    SourceCollectionFailure,
    ThreaderError,
    TransientNetwork,
)
from ..core.models import Comment, RawItem, Relevance, SourceCandidate, SourceResult
from ..core.normalizer import comment_from_listing, filter_relevant, raw_item_from_listing
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

BROWSER_HEADERS = {
    "Accept": "application/json,text/html;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "Connection": "keep-alive",
}


def classify_status(status_code: int, url: str = "") -> Optional[RequestFailure]:
    """Map an HTTP status to a failure, or None when the response is usable."""
    if status_code == 429:
        return RateLimited(f"Rate limited by Reddit ({url})", status_code)
    if status_code == 403:
        return Blocked(f"Blocked by Reddit ({url})", status_code)
    if status_code >= 500:
        return TransientNetwork(f"Reddit server error {status_code} ({url})", status_code)
    if status_code >= 400:
        return RequestFailure(f"Reddit API error {status_code} ({url})", status_code)
    return None


# Reddit search "t" values and the longest window each covers, in hours
SEARCH_TIME_FILTERS = (("hour", 1), ("day", 24), ("week", 24 * 7), ("month", 24 * 31), ("year", 24 * 366))


def search_time_filter(time_window: timedelta) -> str:
    """Narrowest search time filter that still covers ``time_window``."""
    hours = time_window.total_seconds() / 3600.0
    for name, limit in SEARCH_TIME_FILTERS:
        if hours <= limit:
            return name
    return "all"


@dataclass
class ListingPage:
    """One page of a listing with its opaque continuation cursor."""
    items: List[RawItem]
    after: Optional[str] = None

    @property
    def newest_utc(self) -> Optional[float]:
        stamps = [i.created_utc for i in self.items if i.created_utc is not None]
        return max(stamps) if stamps else None


class RedditClient:
    """Thin client over Reddit's public JSON endpoints.

    Each call is one logical request executed under the retry policy.
    """

    def __init__(self, settings=None, session: Optional[requests.Session] = None,
                 retry_policy: Optional[RetryPolicy] = None):
        self.base_url = getattr(settings, "reddit_base_url", CollectorConstants.BASE_URL).rstrip("/")
        self.timeout = getattr(settings, "request_timeout", RetryConstants.REQUEST_TIMEOUT)
        self.session = session or requests.Session()
        self.session.headers.update({
            "User-Agent": getattr(settings, "reddit_user_agent", CollectorConstants.USER_AGENT),
            **BROWSER_HEADERS,
        })
        if retry_policy is not None:
            self.retry_policy = retry_policy
        elif settings is not None:
            self.retry_policy = RetryPolicy.from_settings(settings)
        else:
            self.retry_policy = RetryPolicy.default()

    def _get_json_once(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise TransientNetwork(f"Request to {url} failed: {e}") from e

        failure = classify_status(response.status_code, url)
        if failure is not None:
            raise failure
        try:
            return response.json()
        except ValueError as e:
            raise TransientNetwork(f"Unreadable JSON from {url}: {e}", response.status_code) from e

    def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{path}"
        return self.retry_policy.call(self._get_json_once, url, params)

    @staticmethod
    def _parse_listing(payload: Any, default_subreddit: str = "") -> ListingPage:
        if not isinstance(payload, dict):
            raise TransientNetwork("Unexpected listing payload")
        data = payload.get("data") or {}
        if not isinstance(data, dict):
            raise TransientNetwork("Listing payload has no data object")
        children = data.get("children") or []
        if not isinstance(children, list):
            raise TransientNetwork("Listing children is not a list")
        items = [
            raw_item_from_listing(child["data"], default_subreddit)
            for child in children
            if isinstance(child, dict) and child.get("kind", "t3") == "t3" and isinstance(child.get("data"), dict)
        ]
        after = data.get("after")
        return ListingPage(items=[i for i in items if i.id], after=after if isinstance(after, str) and after else None)

    def fetch_listing_page(self, subreddit: str, after: Optional[str] = None, sort: str = "new",
                           limit: int = CollectorConstants.PAGE_SIZE) -> ListingPage:
        params = {"limit": limit, "t": "day"}
        if after:
            params["after"] = after
        payload = self.get_json(f"/r/{subreddit}/{sort}.json", params)
        return self._parse_listing(payload, subreddit)

    def fetch_search_page(self, query: str, after: Optional[str] = None,
                          subreddits: Sequence[str] = (), time_filter: str = "day",
                          limit: int = CollectorConstants.PAGE_SIZE) -> ListingPage:
        params = {
            "q": query,
            "sort": "new",
            "t": time_filter,
            "limit": limit,
            "restrict_sr": "1" if subreddits else "0",
        }
        if after:
            params["after"] = after
        path = f"/r/{'+'.join(subreddits)}/search.json" if subreddits else "/search.json"
        return self._parse_listing(self.get_json(path, params))

    def fetch_comments(self, permalink: str,
                       limit: int = CollectorConstants.MAX_COMMENTS_PER_POST) -> List[Comment]:
        """Top-level comments for a post. Failures are logged and yield []."""
        path = permalink.replace("https://www.reddit.com", "").replace("https://reddit.com", "").rstrip("/")
        try:
            payload = self.get_json(f"{path}.json")
        except ThreaderError as e:
            logger.warning(f"Could not fetch comments for {permalink}: {e}")
            return []
        if not isinstance(payload, list) or len(payload) < 2 or not isinstance(payload[1], dict):
            return []
        data = payload[1].get("data")
        children = data.get("children") if isinstance(data, dict) else None
        if not isinstance(children, list):
            return []
        return [
            comment_from_listing(child["data"])
            for child in children
            if isinstance(child, dict) and child.get("kind") == "t1" and isinstance(child.get("data"), dict)
        ][:limit]


class RedditCollector:
    """Paginated, rate-limited collection over a trailing time window."""

    def __init__(self, client: RedditClient, settings=None,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.time,
                 jitter: Callable[[], float] = random.random):
        self.client = client
        self.delay = getattr(settings, "request_delay", CollectorConstants.REQUEST_DELAY)
        self.jitter_max = getattr(settings, "request_jitter", CollectorConstants.REQUEST_JITTER)
        self.sleep = sleep
        self.clock = clock
        self.jitter = jitter

    def _pause(self) -> None:
        self.sleep(self.delay + self.jitter_max * self.jitter())

    def _paginate(self, fetch_page: Callable[[Optional[str]], ListingPage], label: str,
                  time_window: timedelta, max_items: int) -> List[RawItem]:
        cutoff = self.clock() - time_window.total_seconds()
        items: List[RawItem] = []
        after: Optional[str] = None
        page_no = 0

        while len(items) < max_items:
            page_no += 1
            try:
                page = fetch_page(after)
            except RequestFailure as e:
                raise SourceCollectionFailure(label, str(e), e) from e

            if not page.items:
                break
            for item in page.items:
                if item.is_within(cutoff):
                    items.append(item)
                    if len(items) >= max_items:
                        break
            logger.info(f"r/{label} page {page_no}: {len(page.items)} posts, {len(items)} kept so far")

            newest = page.newest_utc
            if newest is None or newest < cutoff:
                break
            after = page.after
            if not after or len(items) >= max_items:
                break
            self._pause()

        return items[:max_items]

    def collect(self, source: str, time_window: timedelta, max_items: int) -> List[RawItem]:
        """At most ``max_items`` posts from ``source`` created inside ``time_window``."""
        return self._paginate(
            lambda after: self.client.fetch_listing_page(source, after=after),
            source, time_window, max_items,
        )

    def search(self, query: str, time_window: timedelta,
               max_items: int = CollectorConstants.FALLBACK_SEARCH_MAX_ITEMS) -> List[RawItem]:
        """Site-wide search, used when discovery finds no communities."""
        return self._paginate(
            lambda after: self.client.fetch_search_page(query, after=after,
                                                        time_filter=search_time_filter(time_window)),
            "all", time_window, max_items,
        )

    def collect_source(self, candidate: SourceCandidate, search_terms: Iterable[str],
                       time_window: timedelta, max_items: int) -> SourceResult:
        """Collect one source; failures are captured in the result, not raised."""
        try:
            posts = self.collect(candidate.name, time_window, max_items)
        except SourceCollectionFailure as e:
            logger.error(f"Error scraping r/{candidate.name}: {e}")
            return SourceResult(relevance=candidate.relevance, error=str(e))

        kept = posts
        if candidate.relevance == Relevance.SECONDARY:
            kept = filter_relevant(posts, search_terms)
            logger.info(f"r/{candidate.name}: {len(posts)} posts, {len(kept)} mention the company")
        else:
            logger.info(f"r/{candidate.name}: {len(posts)} recent posts")
        return SourceResult(items=kept, total=len(posts), relevant=len(kept), relevance=candidate.relevance)

    def _collect_then_pause(self, candidate, search_terms, time_window, max_items) -> SourceResult:
        """One source, isolated: any unexpected error becomes a failed result."""
        try:
            return self.collect_source(candidate, search_terms, time_window, max_items)
        except Exception as e:
            logger.error(f"r/{candidate.name}: collection crashed: {e}")
            return SourceResult(relevance=candidate.relevance, error=f"r/{candidate.name}: {e}")
        finally:
            self._pause()

    def collect_many(self, candidates: Sequence[SourceCandidate], search_terms: Sequence[str],
                     time_window: timedelta, max_items: int,
                     max_workers: int = 1) -> Dict[str, SourceResult]:
        """Collect every candidate, isolating failures per source.

        Each source is handled by a single worker, so requests within a
        source stay sequential; ``max_workers`` bounds cross-source overlap.
        """
        results: Dict[str, SourceResult] = {}
        if not candidates:
            return results

        workers = max(1, min(max_workers, len(candidates)))
        if workers == 1:
            for candidate in candidates:
                results[candidate.name] = self._collect_then_pause(candidate, search_terms, time_window, max_items)
            return results

        logger.info(f"Collecting {len(candidates)} sources with {workers} workers")
        with ThreadPoolExecutor(max_workers=workers) as executor:
            future_to_source = {
                executor.submit(self._collect_then_pause, c, search_terms, time_window, max_items): c
                for c in candidates
            }
            for future in as_completed(future_to_source):
                candidate = future_to_source[future]
                results[candidate.name] = future.result()

        return {c.name: results[c.name] for c in candidates}
