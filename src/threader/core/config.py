"""Configuration management for Threader."""

from pydantic_settings import BaseSettings
from pydantic import Field

from .constants import CollectorConstants, RetryConstants, FileConstants
from .errors import ConfigurationError


class Settings(BaseSettings):
    """Application settings."""

    # OpenAI API
    openai_api_key: str = Field("", description="OpenAI API key")
    OPENAI_API_KEY: str = Field("", description="OpenAI API key (alternative naming)")
    openai_model: str = Field("gpt-4o-mini", description="Chat model for discovery and classification")

    @property
    def effective_openai_key(self) -> str:
        """Get the effective OpenAI API key from either field."""
        return self.openai_api_key or self.OPENAI_API_KEY

    # Reddit public JSON API
    reddit_user_agent: str = Field(CollectorConstants.USER_AGENT, description="User agent for Reddit requests")
    reddit_base_url: str = Field(CollectorConstants.BASE_URL, description="Reddit base URL")

    # Logging
    log_level: str = Field("INFO", description="Logging level")

    # Collection settings
    time_window_hours: float = Field(CollectorConstants.DEFAULT_TIME_WINDOW_HOURS, description="Trailing window per run")
    max_items_per_source: int = Field(CollectorConstants.DEFAULT_MAX_ITEMS, description="Posts collected per source")
    max_workers: int = Field(4, description="Sources collected concurrently")
    include_comments: bool = Field(False, description="Fetch top comments for the first posts")

    # Rate limiting and retries
    request_delay: float = Field(CollectorConstants.REQUEST_DELAY, description="Seconds between requests")
    request_jitter: float = Field(CollectorConstants.REQUEST_JITTER, description="Max random seconds added to the delay")
    rate_limit_cooldown: float = Field(RetryConstants.RATE_LIMIT_COOLDOWN, description="Seconds to wait after HTTP 429")
    blocked_cooldown: float = Field(RetryConstants.BLOCKED_COOLDOWN, description="Seconds to wait after HTTP 403")
    transient_backoff: float = Field(RetryConstants.TRANSIENT_BACKOFF, description="Seconds to wait after network errors")
    max_retries: int = Field(RetryConstants.MAX_ATTEMPTS, description="Maximum attempts per request")
    request_timeout: float = Field(RetryConstants.REQUEST_TIMEOUT, description="HTTP timeout in seconds")

    # Stages
    use_llm_discovery: bool = Field(True, description="Ask the LLM which communities to search")
    use_llm_classifier: bool = Field(True, description="Classify feedback with the LLM")
    effort_policy_file: str = Field("", description="YAML file overriding effort per category")

    # Storage
    cache_dir: str = Field(FileConstants.CACHE_DIR, description="LLM response cache directory")
    snapshot_dir: str = Field(FileConstants.SNAPSHOT_DIR, description="Directory for persisted reports")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    def validate_for_run(self) -> None:
        """Fail fast on settings that would break a run.

        The LLM credential is required only when the classifier, which cannot
        degrade, is asked to use it.
        """
        if self.use_llm_classifier and not self.effective_openai_key:
            raise ConfigurationError(
                "use_llm_classifier is enabled but no OpenAI API key is configured; "
                "set OPENAI_API_KEY or USE_LLM_CLASSIFIER=false"
            )
        if self.time_window_hours <= 0:
            raise ConfigurationError("time_window_hours must be positive")
        if self.max_items_per_source <= 0:
            raise ConfigurationError("max_items_per_source must be positive")
        if self.max_workers < 1:
            raise ConfigurationError("max_workers must be at least 1")
        if self.max_retries < 1:
            raise ConfigurationError("max_retries must be at least 1")
        if min(self.request_delay, self.request_jitter, self.rate_limit_cooldown,
               self.blocked_cooldown, self.transient_backoff) < 0:
            raise ConfigurationError("delays must not be negative")
