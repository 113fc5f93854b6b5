"""Services for Threader."""

from .llm import LLMServiceFactory, OpenAIService, FallbackLLMService
from .reddit_client import RedditClient, RedditCollector
from .retry import RetryPolicy, RetryRule
from .discovery import SourceDiscoverer, heuristic_discovery
from .classifier import ClassificationBatch, KeywordClassifier, LLMClassifier, create_classifier
from .storage import JsonFileSnapshotStore, SnapshotStore

__all__ = [
    "LLMServiceFactory",
    "OpenAIService",
    "FallbackLLMService",
    "RedditClient",
    "RedditCollector",
    "RetryPolicy",
    "RetryRule",
    "SourceDiscoverer",
    "heuristic_discovery",
    "ClassificationBatch",
    "KeywordClassifier",
    "LLMClassifier",
    "create_classifier",
    "JsonFileSnapshotStore",
    "SnapshotStore",
]
