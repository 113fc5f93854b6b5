"""Tests for the classification adapters."""

from dataclasses import replace
from unittest.mock import Mock

from threader.core.models import Category, Comment, Effort
from threader.core.normalizer import normalize
from threader.core.synthesis import Synthesizer
from threader.services.classifier import (
    KeywordClassifier,
    LLMClassifier,
    apply_classification,
    create_classifier,
)
from threader.services.llm import FallbackLLMService

from factories import ANALYSIS_DATE, NOW, FakeLLM, make_raw_item, make_settings


def unclassified(id, title, body="", upvotes=1, comments=0):
    return normalize(make_raw_item(id, title=title, body=body, upvotes=upvotes, comments=comments), "Notion")


def entry(id, category="bug", **extra):
    data = {
        "id": id,
        "category": category,
        "sentiment": "negative",
        "segment": "Pro",
        "rootCause": "sync failure",
        "keyQuote": "Sync broke",
        "effort": "Quick Win",
        "reach": 8,
        "sentimentIntensity": 6,
        "velocity": 4,
        "confidence": 0.8,
    }
    data.update(extra)
    return data


class TestApplyClassification:
    """Test validation of a single model entry."""

    def setup_method(self):
        self.record = unclassified("a", "Sync broke")

    def test_valid_entry(self):
        """Test that a well-formed entry becomes an analysis with an impact score."""
        result = apply_classification(self.record, entry("a", sentiment="Negative"))
        assert result.analysis.category == Category.BUG
        assert result.analysis.sentiment == "negative"
        assert result.analysis.effort == Effort.QUICK_WIN
        assert result.analysis.root_cause == "sync failure"
        assert result.impact_data.score == 6.2
        assert result.is_classified
        assert not self.record.is_classified

    def test_unknown_effort_and_sentiment_are_tolerated(self):
        """Test that unknown effort and sentiment values fall back to defaults."""
        result = apply_classification(self.record, entry("a", effort="Huge", sentiment="mixed"))
        assert result.analysis.effort is None
        assert result.analysis.sentiment == "neutral"

    def test_noise(self):
        """Test that a noise label marks the record as noise without impact data."""
        result = apply_classification(self.record, entry("a", category="noise"))
        assert result.analysis.is_noise
        assert result.impact_data is None


class TestLLMClassifier:
    """Test batching and failure isolation."""

    def test_classifies_and_isolates_failures(self):
        """Test that bad entries fail individually without dropping the batch."""
        records = [unclassified("a", "Sync broke"), unclassified("b", "Weird"),
                   unclassified("c", "Meme"), unclassified("d", "Bad scores"),
                   unclassified("e", "Missing")]
        llm = FakeLLM(classifications=[
            entry("a"),
            entry("b", category="complaint"),
            entry("c", category="noise"),
            entry("d", reach="lots"),
        ])
        batch = LLMClassifier(llm).classify(records)
        assert [r.source_id for r in batch.signal] == ["a"]
        assert batch.noise_count == 1
        assert sorted(f.record_key[1] for f in batch.failed) == ["b", "d", "e"]

    def test_batches_requests(self):
        """Test that records are sent in fixed-size batches."""
        records = [unclassified(f"r{i}", f"Post {i}") for i in range(25)]
        llm = FakeLLM(classifications=lambda posts: [entry(p["id"]) for p in posts])
        batch = LLMClassifier(llm, batch_size=10).classify(records)
        assert [len(call) for call in llm.classify_calls] == [10, 10, 5]
        assert len(batch.classified) == 25
        assert not batch.failed

    def test_truncates_long_text(self):
        """Test that long post text is truncated before sending."""
        llm = FakeLLM(classifications=lambda posts: [entry(p["id"]) for p in posts])
        LLMClassifier(llm).classify([unclassified("a", "Long", body="x" * 5000)])
        assert len(llm.classify_calls[0][0]["text"]) < 700

    def test_sends_top_comments(self):
        """Test that fetched comments travel with the post text."""
        llm = FakeLLM(classifications=lambda posts: [entry(p["id"]) for p in posts])
        record = replace(unclassified("a", "Exporting pages to PDF"),
                         comments=[Comment("c1", "It crashes for me too\nevery time", "x", 3)])
        LLMClassifier(llm).classify([record])
        text = llm.classify_calls[0][0]["text"]
        assert text.startswith("Exporting pages to PDF")
        assert "Top comments: It crashes for me too every time" in text

    def test_accepts_wrapped_results(self):
        """Test that results wrapped in an object are accepted."""
        llm = FakeLLM(classifications={"results": [entry("a")]})
        batch = LLMClassifier(llm).classify([unclassified("a", "Sync broke")])
        assert len(batch.signal) == 1

    def test_failed_batch_marks_records_failed(self):
        """Test that a failed request marks every record in the batch as failed."""
        llm = Mock()
        llm.classify_batch.side_effect = ValueError("Could not parse JSON")
        batch = LLMClassifier(llm).classify([unclassified("a", "x"), unclassified("b", "y")])
        assert batch.classified == []
        assert len(batch.failed) == 2

    def test_empty_input(self):
        """Test that no request is made for empty input."""
        llm = Mock()
        assert LLMClassifier(llm).classify([]).classified == []
        llm.classify_batch.assert_not_called()


class TestKeywordClassifier:
    """Test the offline classifier."""

    def setup_method(self):
        self.classifier = KeywordClassifier(clock=lambda: NOW)

    def classify(self, title, body="", **kw):
        return self.classifier.classify_one(unclassified("x", title, body, **kw))

    def test_bug(self):
        """Test bug classification with negative tone."""
        record = self.classify("App keeps crashing", "I lost my notes, this is terrible.", upvotes=40, comments=12)
        assert record.analysis.category == Category.BUG
        assert record.analysis.sentiment == "negative"
        assert record.impact_data.reach > 0
        assert 0 <= record.impact_data.score <= 10

    def test_praise(self):
        """Test praise classification with positive tone."""
        record = self.classify("I love the new editor", "It is amazing and so fast.")
        assert record.analysis.category == Category.PRAISE
        assert record.analysis.sentiment == "positive"

    def test_feature_request(self):
        """Test feature request classification and its urgency."""
        record = self.classify("Please add dark mode", "I wish the mobile app had it.")
        assert record.analysis.category == Category.FEATURE_REQUEST
        assert record.analysis.urgency == "Feature Wish"

    def test_churn_urgency(self):
        """Test that cancellation language is flagged as churn risk."""
        record = self.classify("Cancelling my plan", "The sync is broken every day and support ignores me.")
        assert record.analysis.category == Category.BUG
        assert record.analysis.urgency == "Churn Risk"

    def test_spam_is_noise(self):
        """Test that promotional posts are noise."""
        assert self.classify("Giveaway: promo code inside").analysis.is_noise

    def test_neutral_without_signal_is_noise(self):
        """Test that neutral posts without category terms are noise."""
        assert self.classify("Which template do you use for meeting agendas").analysis.is_noise

    def test_comments_inform_category(self):
        """Test that comment text can turn a neutral post into a bug report."""
        record = unclassified("x", "Exporting pages to PDF")
        assert self.classifier.classify_one(record).analysis.is_noise

        discussed = replace(record, comments=[Comment("c1", "It crashes for me too, totally broken", "x", 3)])
        result = self.classifier.classify_one(discussed)
        assert not result.analysis.is_noise
        assert result.analysis.category == Category.BUG
        assert result.analysis.sentiment == "negative"

    def test_spam_comments_do_not_rescue_noise(self):
        """Test that the noise check looks at the post alone."""
        record = replace(unclassified("x", "Giveaway: promo code inside"),
                         comments=[Comment("c1", "The app is broken", "x", 1)])
        assert self.classifier.classify_one(record).analysis.is_noise

    def test_unrelated_crashes_stay_separate(self):
        """Test that a shared keyword alone does not merge two reports."""
        records = [unclassified("a", "App crash when exporting PDF"),
                   unclassified("b", "Android calendar widget crash")]
        batch = self.classifier.classify(records)
        assert [r.analysis.category for r in batch.signal] == [Category.BUG, Category.BUG]
        assert all(r.analysis.root_cause is None for r in batch.signal)

        report = Synthesizer().synthesize(batch.signal, "Notion", analysis_date=ANALYSIS_DATE)
        assert len(report.focus_areas) == 2
        assert sorted(fa.title for fa in report.focus_areas) == [
            "Android calendar widget crash", "App crash when exporting PDF"]

    def test_engagement_raises_reach(self):
        """Test that engagement raises reach and velocity."""
        quiet = self.classify("App keeps crashing", upvotes=0, comments=0)
        loud = self.classify("App keeps crashing", upvotes=500, comments=120)
        assert loud.impact_data.reach > quiet.impact_data.reach
        assert loud.impact_data.velocity > quiet.impact_data.velocity

    def test_deterministic(self):
        """Test that repeated classification gives identical output."""
        records = [unclassified("a", "App keeps crashing"), unclassified("b", "I love it, amazing")]
        first = self.classifier.classify(records)
        second = self.classifier.classify(records)
        assert [r.to_dict() for r in first.classified] == [r.to_dict() for r in second.classified]


class TestCreateClassifier:
    """Test classifier selection."""

    def test_llm_when_enabled_and_available(self):
        """Test LLM classifier selection."""
        settings = make_settings(use_llm_classifier=True, openai_api_key="sk-test")
        assert isinstance(create_classifier(settings, FakeLLM()), LLMClassifier)

    def test_keyword_when_llm_unavailable(self):
        """Test keyword fallback when the LLM service is unavailable."""
        settings = make_settings(use_llm_classifier=True)
        assert isinstance(create_classifier(settings, FallbackLLMService()), KeywordClassifier)

    def test_keyword_when_disabled(self):
        """Test keyword classifier when the LLM classifier is disabled."""
        assert isinstance(create_classifier(make_settings(), FakeLLM()), KeywordClassifier)
