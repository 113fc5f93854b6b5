"""Retry policy for upstream requests, keyed on failure classification."""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Type, TypeVar

from tenacity import RetryCallState, Retrying, retry_if_exception_type
from tenacity.stop import stop_base
from tenacity.wait import wait_base

from ..core.constants import RetryConstants
from ..core.errors import Blocked, RateLimited, RequestFailure, TransientNetwork

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryRule:
    """Fixed cool-down and attempt bound for one failure class."""
    delay: float
    max_attempts: int


class _stop_by_rule(stop_base):
    def __init__(self, policy: "RetryPolicy"):
        self.policy = policy

    def __call__(self, retry_state: RetryCallState) -> bool:
        rule = self.policy.rule_for(retry_state.outcome.exception())
        return rule is None or retry_state.attempt_number >= rule.max_attempts


class _wait_by_rule(wait_base):
    def __init__(self, policy: "RetryPolicy"):
        self.policy = policy

    def __call__(self, retry_state: RetryCallState) -> float:
        rule = self.policy.rule_for(retry_state.outcome.exception())
        return rule.delay if rule else 0.0


class RetryPolicy:
    """Bounded retries where the classification picks the delay and the bound.

    ``sleep`` is injectable so tests never wait on the wall clock.
    """

    def __init__(self, rules: Dict[Type[RequestFailure], RetryRule],
                 sleep: Callable[[float], None] = time.sleep):
        self.rules = dict(rules)
        self.sleep = sleep

    @classmethod
    def default(cls, sleep: Callable[[float], None] = time.sleep) -> "RetryPolicy":
        return cls({
            RateLimited: RetryRule(RetryConstants.RATE_LIMIT_COOLDOWN, RetryConstants.MAX_ATTEMPTS),
            Blocked: RetryRule(RetryConstants.BLOCKED_COOLDOWN, RetryConstants.MAX_ATTEMPTS),
            TransientNetwork: RetryRule(RetryConstants.TRANSIENT_BACKOFF, RetryConstants.MAX_ATTEMPTS),
        }, sleep=sleep)

    @classmethod
    def from_settings(cls, settings, sleep: Callable[[float], None] = time.sleep) -> "RetryPolicy":
        return cls({
            RateLimited: RetryRule(settings.rate_limit_cooldown, settings.max_retries),
            Blocked: RetryRule(settings.blocked_cooldown, settings.max_retries),
            TransientNetwork: RetryRule(settings.transient_backoff, settings.max_retries),
        }, sleep=sleep)

    def rule_for(self, exc: Optional[BaseException]) -> Optional[RetryRule]:
        if exc is None:
            return None
        for klass in type(exc).__mro__:
            if klass in self.rules:
                return self.rules[klass]
        return None

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception()
        rule = self.rule_for(exc)
        logger.warning(
            f"{type(exc).__name__}: {exc}. Waiting {rule.delay:.0f}s before retry "
            f"{retry_state.attempt_number}/{rule.max_attempts - 1}"
        )

    def call(self, fn: Callable[..., T], *args, **kwargs) -> T:
        """Run ``fn`` under the policy. Re-raises the last failure on exhaustion."""
        retrying = Retrying(
            retry=retry_if_exception_type(RequestFailure),
            stop=_stop_by_rule(self),
            wait=_wait_by_rule(self),
            sleep=self.sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )
        return retrying(fn, *args, **kwargs)
