"""Constants and configuration values for Threader."""

# Collection Constants
class CollectorConstants:
    """Constants related to Reddit collection and rate limiting."""

    # API Rate Limiting (unauthenticated JSON API allows ~60 requests/minute)
    REQUEST_DELAY = 2.0  # seconds between page fetches and between sources
    REQUEST_JITTER = 1.0  # max random seconds added to REQUEST_DELAY
    PAGE_SIZE = 25  # posts per listing page
    DEFAULT_TIME_WINDOW_HOURS = 24  # trailing window for a run
    DEFAULT_MAX_ITEMS = 100  # posts per source
    FALLBACK_SEARCH_MAX_ITEMS = 50  # posts for the site-wide fallback search
    MAX_COMMENTS_PER_POST = 10  # top-level comments kept per post
    MAX_POSTS_WITH_COMMENTS = 5  # posts that get their comments fetched

    USER_AGENT = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    BASE_URL = "https://www.reddit.com"


# Retry Constants
class RetryConstants:
    """Cool-downs per failure classification."""

    RATE_LIMIT_COOLDOWN = 30.0  # seconds after HTTP 429
    BLOCKED_COOLDOWN = 10.0  # seconds after HTTP 403
    TRANSIENT_BACKOFF = 5.0  # seconds after network errors and 5xx
    MAX_ATTEMPTS = 3  # attempts per request, first try included
    REQUEST_TIMEOUT = 30  # seconds per HTTP request


# Discovery Constants
class DiscoveryConstants:
    """Constants for source discovery."""

    MAX_SOURCES = 6  # communities per run
    MAX_SEARCH_TERMS = 5  # search terms per run
    DISCOVERY_TEMPERATURE = 0.2
    DISCOVERY_MAX_TOKENS = 500


# Scoring Constants
class ScoringConstants:
    """Weights, bands and thresholds for impact scoring."""

    REACH_WEIGHT = 0.4
    SENTIMENT_WEIGHT = 0.3
    VELOCITY_WEIGHT = 0.3
    MIN_SCORE = 0.0
    MAX_SCORE = 10.0

    # Severity bands, checked top-down
    SEVERITY_BANDS = (
        (8.0, "Critical"),
        (6.0, "High"),
        (4.0, "Medium"),
    )
    SEVERITY_FLOOR = "Low"

    RISK_THRESHOLD = 6.0  # bug/usability areas above this are flagged as risks
    HIGH_IMPACT_THRESHOLD = 6.0  # matrix split between high and low impact

    # Mood bands on negative share (percent), checked top-down
    MOOD_BANDS = (
        (15, "Thriving"),
        (30, "Stable"),
        (50, "Concerning"),
    )
    MOOD_FLOOR = "Critical"


# Synthesis Constants
class SynthesisConstants:
    """Limits for report generation."""

    TITLE_SIMILARITY_THRESHOLD = 0.34  # Jaccard overlap for clustering
    MAX_TITLE_LENGTH = 80  # chars for focus area titles
    MAX_QUOTE_LENGTH = 200  # chars for quote display
    MAX_BRAND_LOVES = 3
    MAX_PERSONALITY_TRAITS = 4
    MAX_HIGHLIGHTS = 3
    MAX_OKRS = 3
    MAX_SEGMENTS = 3


# Comparison Constants
class ComparisonConstants:
    """Thresholds for snapshot comparison."""

    NOISE_THRESHOLD = 0.5  # impact delta treated as unchanged
    FREQUENCY_NOISE = 1  # frequency delta treated as unchanged
    FUZZY_MATCH_THRESHOLD = 0.5  # title token overlap for fuzzy matches
    SENTIMENT_NOISE = 5  # positive-share points treated as unchanged
    VOLUME_NOISE_RATIO = 0.1  # relative volume change treated as unchanged


# Classification Constants
class ClassifierConstants:
    """Constants for the classification adapter."""

    LLM_BATCH_SIZE = 10  # records per prompt
    LLM_MAX_TOKENS = 1800
    LLM_TEMPERATURE = 0.2
    MAX_TEXT_FOR_CLASSIFICATION = 600  # chars of title+body sent per record
    MAX_COMMENTS_FOR_CLASSIFICATION = 3  # top comments added to each record's text
    MAX_COMMENT_TEXT = 200  # chars kept per comment


# Cache Constants
class CacheConstants:
    """Constants for caching behavior."""

    CACHE_TTL_HOURS = 24  # cache time-to-live in hours
    CACHE_KEY_LENGTH = 8  # length of cache key for logging


# File and Path Constants
class FileConstants:
    """Constants for file operations."""

    CACHE_DIR = "cache/llm_cache"  # cache directory
    SNAPSHOT_DIR = "snapshots"  # persisted reports
    LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
