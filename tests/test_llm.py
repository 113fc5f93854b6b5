"""Tests for the OpenAI service wrapper."""

from unittest.mock import Mock

import openai
import pytest

from threader.services.llm import FallbackLLMService, LLMServiceFactory, OpenAIService, safe_json_loads

from factories import make_settings


class FakeCache:
    def __init__(self):
        self.data = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value, expire=None):
        self.data[key] = value


def completion(content):
    return Mock(choices=[Mock(message=Mock(content=content))])


class TestSafeJsonLoads:
    """Test tolerant JSON parsing."""

    def test_plain_and_fenced(self):
        """Test plain and fenced JSON."""
        assert safe_json_loads('{"a": 1}') == {"a": 1}
        assert safe_json_loads('```json\n[{"id": "x"}]\n```') == [{"id": "x"}]

    def test_prose_and_trailing_commas(self):
        """Test JSON surrounded by prose with trailing commas."""
        assert safe_json_loads('Here you go: {"subreddits": ["Notion",],} Enjoy') == {"subreddits": ["Notion"]}

    def test_garbage_raises(self):
        """Test that unparseable text raises."""
        with pytest.raises(ValueError):
            safe_json_loads("no json here")
        with pytest.raises(ValueError):
            safe_json_loads("   ")


class TestOpenAIService:
    """Test requests, caching and errors with a mocked client."""

    def setup_method(self):
        self.client = Mock()
        self.cache = FakeCache()
        settings = make_settings(openai_api_key="sk-test", max_retries=1)
        self.service = OpenAIService(settings, client=self.client, cache=self.cache)

    def test_discover_communities(self):
        """Test the discovery prompt and parsed result."""
        self.client.chat.completions.create.return_value = completion(
            '```json\n{"subreddits": [{"name": "Notion", "relevance": "primary"}], "searchTerms": ["Notion"]}\n```')
        result = self.service.discover_communities("Notion", "note taking app", max_sources=4)
        assert result["subreddits"][0]["name"] == "Notion"
        prompt = self.client.chat.completions.create.call_args.kwargs["messages"][1]["content"]
        assert "Company: Notion" in prompt
        assert "at most 4 subreddits" in prompt

    def test_classify_batch_sends_ids(self):
        """Test that classification prompts carry post ids."""
        self.client.chat.completions.create.return_value = completion('[{"id": "a", "category": "bug"}]')
        result = self.service.classify_batch("Notion", [{"id": "a", "text": "Sync broke"}])
        assert result == [{"id": "a", "category": "bug"}]
        kwargs = self.client.chat.completions.create.call_args.kwargs
        assert "[a] Sync broke" in kwargs["messages"][1]["content"]
        assert "Notion" in kwargs["messages"][0]["content"]

    def test_responses_are_cached(self):
        """Test response caching."""
        self.client.chat.completions.create.return_value = completion("hello")
        assert self.service.chat("sys", "user") == "hello"
        assert self.service.chat("sys", "user") == "hello"
        assert self.client.chat.completions.create.call_count == 1

    def test_errors_propagate(self):
        """Test that client errors propagate."""
        self.client.chat.completions.create.side_effect = openai.OpenAIError("boom")
        with pytest.raises(openai.OpenAIError):
            self.service.chat("sys", "user")


class TestFactory:
    """Test service selection."""

    def test_fallback_without_key(self):
        """Test the fallback service when no key is set."""
        service = LLMServiceFactory.create(make_settings())
        assert isinstance(service, FallbackLLMService)
        assert not service.available
        assert service.chat("s", "u") == ""
        assert service.classify_batch("Notion", []) is None
