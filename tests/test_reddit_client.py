"""Tests for the Reddit client and the rate-limited collector."""

from datetime import timedelta

import pytest

from threader.core.errors import Blocked, RateLimited, RequestFailure, TransientNetwork
from threader.core.models import Relevance, SourceCandidate
from threader.services.reddit_client import RedditClient, RedditCollector, classify_status, search_time_filter
from threader.services.retry import RetryPolicy

from factories import NOW, FakeResponse, FakeSession, listing, post

DAY = timedelta(hours=24)


class TestClassifyStatus:
    """Test HTTP status classification."""

    def test_statuses(self):
        """Test status code classification."""
        assert classify_status(200) is None
        assert isinstance(classify_status(429), RateLimited)
        assert isinstance(classify_status(403), Blocked)
        assert isinstance(classify_status(502), TransientNetwork)
        failure = classify_status(404)
        assert type(failure) is RequestFailure
        assert failure.status_code == 404


class TestSearchTimeFilter:
    """Test mapping a collection window onto a search time filter."""

    def test_narrowest_covering_filter(self):
        """Test that each window picks the smallest filter that covers it."""
        assert search_time_filter(timedelta(minutes=30)) == "hour"
        assert search_time_filter(timedelta(hours=24)) == "day"
        assert search_time_filter(timedelta(hours=72)) == "week"
        assert search_time_filter(timedelta(days=30)) == "month"
        assert search_time_filter(timedelta(days=90)) == "year"
        assert search_time_filter(timedelta(days=400)) == "all"


class TestRedditClient:
    """Test request handling against a fake session."""

    def setup_method(self):
        self.sleeps = []
        self.policy = RetryPolicy.default(sleep=self.sleeps.append)

    def client(self, routes):
        self.session = FakeSession(routes)
        return RedditClient(session=self.session, retry_policy=self.policy)

    def test_sets_user_agent(self):
        """Test that a user agent header is set."""
        client = self.client({})
        assert "User-Agent" in client.session.headers

    def test_rate_limited_twice_then_succeeds(self):
        """Test recovery after two rate-limit responses."""
        client = self.client({"/r/notion/new.json": [
            FakeResponse(429, {}),
            FakeResponse(429, {}),
            FakeResponse(200, listing([post("a"), post("b")])),
        ]})
        page = client.fetch_listing_page("notion")
        assert [i.id for i in page.items] == ["a", "b"]
        assert self.sleeps == [30, 30]
        assert len(self.session.calls) == 3

    def test_blocked_until_exhausted(self):
        """Test that blocked requests raise once retries run out."""
        client = self.client({"/r/notion/new.json": [FakeResponse(403, {})]})
        with pytest.raises(Blocked):
            client.fetch_listing_page("notion")
        assert self.sleeps == [10, 10]

    def test_unreadable_json_is_transient(self):
        """Test that unreadable JSON is a transient failure."""
        client = self.client({"/r/notion/new.json": [FakeResponse(200, ValueError("not json"))]})
        with pytest.raises(TransientNetwork):
            client.fetch_listing_page("notion")
        assert self.sleeps == [5, 5]

    def test_malformed_listing_is_transient(self):
        """Test that a listing without a data object raises a request failure."""
        client = self.client({"/r/notion/new.json": [FakeResponse(200, {"data": "oops"})]})
        with pytest.raises(TransientNetwork):
            client.fetch_listing_page("notion")

    def test_malformed_children_are_skipped(self):
        """Test that children without a data object are ignored."""
        payload = {"data": {"children": [{"kind": "t3", "data": None}, "junk", {"kind": "t3", "data": post("a")}],
                            "after": 7}}
        client = self.client({"/r/notion/new.json": [FakeResponse(200, payload)]})
        page = client.fetch_listing_page("notion")
        assert [i.id for i in page.items] == ["a"]
        assert page.after is None

    def test_listing_params(self):
        """Test listing request parameters."""
        client = self.client({"/r/notion/new.json": [FakeResponse(200, listing([], after=None))]})
        client.fetch_listing_page("notion", after="t3_zz")
        assert self.session.calls[0]["params"]["after"] == "t3_zz"
        assert self.session.calls[0]["params"]["limit"] == 25

    def test_search_page(self):
        """Test a site-wide search page."""
        client = self.client({"/search.json": [FakeResponse(200, listing([post("s1")]))]})
        page = client.fetch_search_page("Notion")
        assert [i.id for i in page.items] == ["s1"]
        assert self.session.calls[0]["params"]["q"] == "Notion"
        assert self.session.calls[0]["params"]["restrict_sr"] == "0"

    def test_fetch_comments(self):
        """Test parsing top-level comments."""
        comments = {"kind": "Listing", "data": {"children": [
            {"kind": "t1", "data": {"id": "c1", "body": "Same here", "author": "x", "score": 4}},
            {"kind": "more", "data": {"id": "m"}},
            {"kind": "t1", "data": {"id": "c2", "body": "Fixed for me", "score": 1}},
        ]}}
        client = self.client({"/r/notion/comments/abc/post.json": [
            FakeResponse(200, [listing([post("abc")]), comments]),
        ]})
        result = client.fetch_comments("https://reddit.com/r/notion/comments/abc/post/")
        assert [c.id for c in result] == ["c1", "c2"]
        assert result[1].author == "[deleted]"

    def test_fetch_comments_malformed_yields_empty(self):
        """Test that an unexpected comment payload yields no comments."""
        client = self.client({"/r/notion/comments/abc/post.json": [
            FakeResponse(200, [listing([post("abc")]), {"data": "oops"}]),
        ]})
        assert client.fetch_comments("https://reddit.com/r/notion/comments/abc/post/") == []

    def test_fetch_comments_failure_yields_empty(self):
        """Test that a failed comment fetch yields no comments."""
        client = self.client({})
        assert client.fetch_comments("https://reddit.com/r/notion/comments/abc/post/") == []


class TestRedditCollector:
    """Test windowing, bounds, pagination and failure isolation."""

    def setup_method(self):
        self.sleeps = []
        self.policy = RetryPolicy.default(sleep=self.sleeps.append)

    def collector(self, routes):
        self.session = FakeSession(routes)
        client = RedditClient(session=self.session, retry_policy=self.policy)
        return RedditCollector(client, sleep=self.sleeps.append, clock=lambda: NOW, jitter=lambda: 0.5)

    def test_respects_max_items(self):
        """Test the per-source item cap."""
        collector = self.collector({"/r/notion/new.json": [
            FakeResponse(200, listing([post(f"a{i}") for i in range(5)], after="t3_a4")),
            FakeResponse(200, listing([post(f"b{i}") for i in range(5)], after="t3_b4")),
            FakeResponse(200, listing([post(f"c{i}") for i in range(5)], after=None)),
        ]})
        items = collector.collect("notion", DAY, 7)
        assert len(items) == 7
        assert [i.id for i in items[-2:]] == ["b0", "b1"]
        assert len(self.session.calls) == 2

    def test_excludes_items_outside_window(self):
        """Test that posts outside the window are excluded."""
        collector = self.collector({"/r/notion/new.json": [
            FakeResponse(200, listing([post("new", NOW - 60), post("old", NOW - 2 * 86400)], after="t3_old")),
            FakeResponse(200, listing([post("older", NOW - 3 * 86400)], after="t3_older")),
        ]})
        items = collector.collect("notion", DAY, 100)
        assert [i.id for i in items] == ["new"]
        assert len(self.session.calls) == 2

    def test_stops_when_page_is_entirely_old(self):
        """Test that paging stops on an entirely old page."""
        collector = self.collector({"/r/notion/new.json": [
            FakeResponse(200, listing([post("old", NOW - 2 * 86400)], after="t3_next")),
        ]})
        assert collector.collect("notion", DAY, 100) == []
        assert len(self.session.calls) == 1

    def test_stops_without_cursor(self):
        """Test that paging stops without a cursor."""
        collector = self.collector({"/r/notion/new.json": [
            FakeResponse(200, listing([post("a"), post("b")], after=None)),
        ]})
        assert len(collector.collect("notion", DAY, 100)) == 2
        assert len(self.session.calls) == 1

    def test_pauses_between_pages(self):
        """Test the pause between pages."""
        collector = self.collector({"/r/notion/new.json": [
            FakeResponse(200, listing([post("a")], after="t3_a")),
            FakeResponse(200, listing([post("b")], after=None)),
        ]})
        collector.collect("notion", DAY, 100)
        assert self.sleeps == [2.5]

    def test_secondary_source_keeps_only_mentions(self):
        """Test that secondary sources keep only mentions."""
        posts = [post(f"p{i}", title=f"Daily thread {i}") for i in range(7)]
        posts += [
            post("m1", title="Notion keeps crashing"),
            post("m2", selftext="anyone else on notion?"),
            post("m3", title="Moved from NOTION to Obsidian"),
        ]
        collector = self.collector({"/r/productivity/new.json": [FakeResponse(200, listing(posts))]})
        result = collector.collect_source(
            SourceCandidate("productivity", Relevance.SECONDARY), ["Notion"], DAY, 100)
        assert result.total == 10
        assert result.relevant == 3
        assert [i.id for i in result.items] == ["m1", "m2", "m3"]
        assert result.error is None

    def test_primary_source_keeps_everything(self):
        """Test that primary sources keep every post."""
        collector = self.collector({"/r/Notion/new.json": [
            FakeResponse(200, listing([post("a", title="Unrelated"), post("b")])),
        ]})
        result = collector.collect_source(SourceCandidate("Notion"), ["Notion"], DAY, 100)
        assert result.relevant == 2

    def test_failing_source_does_not_abort_others(self):
        """Test that a blocked source does not abort the others."""
        collector = self.collector({
            "/r/Notion/new.json": [FakeResponse(200, listing([post("a")]))],
            "/r/blocked/new.json": [FakeResponse(403, {})],
        })
        results = collector.collect_many(
            [SourceCandidate("Notion"), SourceCandidate("blocked", Relevance.SECONDARY)],
            ["Notion"], DAY, 100)
        assert list(results) == ["Notion", "blocked"]
        assert results["Notion"].relevant == 1
        assert results["blocked"].failed
        assert "r/blocked" in results["blocked"].error

    def test_collect_many_with_workers(self):
        """Test concurrent collection keeps source order."""
        collector = self.collector({
            "/r/one/new.json": [FakeResponse(200, listing([post("a")]))],
            "/r/two/new.json": [FakeResponse(200, listing([post("b"), post("c")]))],
        })
        results = collector.collect_many([SourceCandidate("one"), SourceCandidate("two")],
                                         ["x"], DAY, 100, max_workers=2)
        assert list(results) == ["one", "two"]
        assert (results["one"].total, results["two"].total) == (1, 2)

    def test_site_wide_search(self):
        """Test site-wide search collection."""
        collector = self.collector({"/search.json": [FakeResponse(200, listing([post("s1"), post("s2")]))]})
        assert [i.id for i in collector.search("Notion", DAY, 50)] == ["s1", "s2"]

    def test_search_window_sets_time_filter(self):
        """Test that the search time filter follows the collection window."""
        collector = self.collector({"/search.json": [FakeResponse(200, listing([post("s1")]))]})
        collector.search("Notion", timedelta(hours=72), 50)
        assert self.session.calls[0]["params"]["t"] == "week"

    def test_malformed_page_fails_only_its_source(self):
        """Test that a malformed listing fails its source and the next source is still collected."""
        collector = self.collector({
            "/r/bad/new.json": [FakeResponse(200, {"data": "oops"})],
            "/r/good/new.json": [FakeResponse(200, listing([post("g1"), post("g2")]))],
        })
        results = collector.collect_many([SourceCandidate("bad"), SourceCandidate("good")],
                                         ["Notion"], DAY, 100, max_workers=1)
        assert list(results) == ["bad", "good"]
        assert results["bad"].failed
        assert "r/bad" in results["bad"].error
        assert results["good"].relevant == 2
        assert not results["good"].failed

    def test_unexpected_error_is_isolated(self):
        """Test that an unexpected exception in one source does not stop the run."""
        collector = self.collector({"/r/good/new.json": [FakeResponse(200, listing([post("g1")]))]})
        original = collector.collect

        def collect(source, time_window, max_items):
            if source == "bad":
                raise KeyError("boom")
            return original(source, time_window, max_items)

        collector.collect = collect
        results = collector.collect_many([SourceCandidate("bad"), SourceCandidate("good")],
                                         ["Notion"], DAY, 100)
        assert results["bad"].failed
        assert results["good"].relevant == 1
