"""Exception types raised by the Threader pipeline."""

from typing import Optional


class ThreaderError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(ThreaderError):
    """Settings are missing or invalid for the requested run. Fatal."""


class NoFeedbackCollected(ThreaderError):
    """Every source came back empty or failed. Fatal."""


class ConcurrentRunError(ThreaderError):
    """A run for the same company is already in progress in this process."""


class DiscoveryFailure(ThreaderError):
    """LLM-assisted discovery failed; callers fall back to the heuristic."""


class NoSourcesFound(ThreaderError):
    """Discovery produced no communities; callers fall back to site-wide search."""


class RequestFailure(ThreaderError):
    """A single upstream request failed in a way the retry policy can classify."""

    kind = "transient"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimited(RequestFailure):
    """Upstream answered 429 Too Many Requests."""

    kind = "rate_limited"


class Blocked(RequestFailure):
    """Upstream answered 403 Forbidden."""

    kind = "blocked"


class TransientNetwork(RequestFailure):
    """Connection error, timeout, 5xx or an unreadable body."""

    kind = "transient"


class SourceCollectionFailure(ThreaderError):
    """Collection for one source gave up; other sources continue."""

    def __init__(self, source: str, message: str, cause: Optional[Exception] = None):
        super().__init__(f"r/{source}: {message}")
        self.source = source
        self.cause = cause


class ClassificationFailure(ThreaderError):
    """A record could not be classified and is excluded from clustering."""

    def __init__(self, record_key, message: str):
        super().__init__(f"{record_key}: {message}")
        self.record_key = record_key


class StorageError(ThreaderError):
    """The snapshot store could not read or write a report."""
