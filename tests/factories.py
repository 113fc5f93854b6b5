"""Builders and fakes shared by the test modules."""

from typing import Any, Dict, List, Optional

from threader.core.config import Settings
from threader.core.models import Analysis, Category, Effort, FeedbackRecord, RawItem, Relevance
from threader.core.scoring import build_impact_data

NOW = 1_700_000_000.0


def make_settings(**overrides) -> Settings:
    """Settings that never touch the network, the LLM or the wall clock."""
    values = dict(
        openai_api_key="",
        OPENAI_API_KEY="",
        use_llm_discovery=False,
        use_llm_classifier=False,
        request_delay=0.0,
        request_jitter=0.0,
        max_workers=1,
        effort_policy_file="",
    )
    values.update(overrides)
    return Settings(**values)


def make_raw_item(id: str, title: str = "A post", body: str = "", subreddit: str = "notion",
                  created_utc: Optional[float] = NOW, upvotes: int = 1, comments: int = 0) -> RawItem:
    return RawItem(
        id=id,
        subreddit=subreddit,
        title=title,
        body=body,
        author="someone",
        upvotes=upvotes,
        comment_count=comments,
        created_utc=created_utc,
        permalink=f"/r/{subreddit}/comments/{id}/post/",
        url=f"https://reddit.com/r/{subreddit}/comments/{id}/post/",
    )


def make_record(source_id: str, title: str, category: Category = Category.BUG,
                reach: float = 5.0, sentiment: float = 5.0, velocity: float = 5.0,
                body: str = "", root_cause: Optional[str] = None, sentiment_label: str = "negative",
                upvotes: int = 10, comments: int = 2, segment: Optional[str] = None,
                effort: Optional[Effort] = None, is_noise: bool = False,
                subreddit: str = "notion") -> FeedbackRecord:
    """A classified record."""
    return FeedbackRecord(
        source="reddit",
        source_id=source_id,
        subreddit=subreddit,
        title=title,
        body=body,
        author="someone",
        upvotes=upvotes,
        comment_count=comments,
        created_utc=NOW,
        created_at="2023-11-14T22:13:20+00:00",
        source_url=f"https://reddit.com/r/{subreddit}/comments/{source_id}/",
        company_name="Notion",
        scraped_at="2023-11-14T23:00:00+00:00",
        relevance=Relevance.PRIMARY,
        analysis=Analysis(
            category=category,
            sentiment=sentiment_label,
            segment=segment,
            root_cause=root_cause,
            effort=effort,
            confidence=0.9,
            is_noise=is_noise,
        ),
        impact_data=build_impact_data(reach, sentiment, velocity),
    )


def listing(posts: List[Dict[str, Any]], after: Optional[str] = None) -> Dict[str, Any]:
    return {"kind": "Listing", "data": {"children": [{"kind": "t3", "data": p} for p in posts], "after": after}}


def post(id: str, created_utc: float = NOW, title: str = "Post", selftext: str = "",
         subreddit: str = "notion", score: int = 1, num_comments: int = 0) -> Dict[str, Any]:
    return {
        "id": id,
        "title": title,
        "selftext": selftext,
        "author": "someone",
        "score": score,
        "num_comments": num_comments,
        "created_utc": created_utc,
        "subreddit": subreddit,
        "permalink": f"/r/{subreddit}/comments/{id}/post/",
    }


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeSession:
    """Stand-in for requests.Session.

    ``routes`` maps a URL path to a list of responses served in order; the
    last response repeats once the list is exhausted.
    """

    def __init__(self, routes: Optional[Dict[str, List[FakeResponse]]] = None):
        self.headers: Dict[str, str] = {}
        self.routes = routes or {}
        self.calls: List[Dict[str, Any]] = []

    def get(self, url, params=None, timeout=None):
        path = url.split("reddit.com", 1)[-1]
        self.calls.append({"path": path, "params": dict(params or {})})
        responses = self.routes.get(path)
        if not responses:
            return FakeResponse(404, {})
        if len(responses) > 1:
            return responses.pop(0)
        return responses[0]


class FakeLLM:
    """Text-generation stand-in returning canned payloads."""

    available = True

    def __init__(self, discovery: Any = None, classifications: Any = None, discovery_error: Exception = None):
        self.discovery = discovery
        self.classifications = classifications
        self.discovery_error = discovery_error
        self.classify_calls: List[List[Dict[str, str]]] = []

    def discover_communities(self, company_name, context="", max_sources=6):
        if self.discovery_error is not None:
            raise self.discovery_error
        return self.discovery

    def classify_batch(self, company_name, posts):
        self.classify_calls.append(posts)
        if callable(self.classifications):
            return self.classifications(posts)
        return self.classifications


ANALYSIS_DATE = "2024-05-01T00:00:00+00:00"


def sample_records() -> List[FeedbackRecord]:
    """Two related bug reports, a feature request, praise and one noise post."""
    return [
        make_record("1", "Sync fails on mobile", root_cause="mobile sync failure",
                    reach=8, sentiment=6, velocity=4, segment="Pro"),
        make_record("2", "Mobile sync keeps failing", root_cause="mobile sync failure",
                    reach=8, sentiment=8, velocity=8, segment="Pro", upvotes=50),
        make_record("3", "Please add offline mode", category=Category.FEATURE_REQUEST,
                    root_cause="offline mode", sentiment_label="neutral",
                    body="I expected offline mode to be included but it still requires internet."),
        make_record("4", "Love the new database views", category=Category.PRAISE,
                    sentiment_label="positive", body="I love how fast and easy it is"),
        make_record("5", "Check out my meme", category=Category.PRAISE, is_noise=True),
    ]
