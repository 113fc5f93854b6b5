"""LLM service for OpenAI integration."""

import hashlib
import json
import logging
import re
from textwrap import dedent
from typing import Any, Dict, List, Optional

import openai
from diskcache import Cache
from tenacity import Retrying, stop_after_attempt, wait_exponential

from ..core.constants import CacheConstants, ClassifierConstants, DiscoveryConstants, RetryConstants

logger = logging.getLogger(__name__)

# Bump to invalidate cached responses when prompts change
PROMPT_VERSION = "v1.2"

DISCOVERY_PROMPT = dedent("""
You pick Reddit communities where people discuss a company's product.
Return ONLY JSON (no prose).

Rules:
- "primary" communities are dedicated to the company or its product (e.g. r/Notion for Notion).
  Every post there is assumed to be about the company.
- "secondary" communities are broader (e.g. r/productivity) where only some posts mention it.
- Prefer active communities with 5K+ members. Never include "all" or "popular".
- Never include "r/" prefixes.
- "searchTerms" are 1-5 short strings people use to refer to the company
  (official name, product names, common abbreviations).

JSON schema:
{ "subreddits": [{"name": str, "relevance": "primary" | "secondary"}],
  "searchTerms": [str] }

Return at most {max_sources} subreddits, primary ones first.
""").strip()

CLASSIFY_PROMPT = dedent("""
You classify public Reddit posts about {company} as product feedback.
Return ONLY a JSON array, one object per input post, in any order.

For each post decide:
- "id": the post id you were given
- "category": one of "bug", "usability_friction", "feature_request", "praise", "noise"
  ("noise" = not about {company}, spam, memes, or unrelated questions)
- "sentiment": "positive", "neutral" or "negative"
- "segment": best guess of the user segment (e.g. "Free", "Pro", "Enterprise", "Student"), or null
- "impactType": one of "Revenue", "Retention", "Acquisition", "Activation", "Referral", or null
- "urgency": one of "Churn Risk", "Workaround Found", "Tolerated", "Feature Wish", "Competitor Mentioned", or null
- "rootCause": 2-6 word theme shared by similar posts (e.g. "slow sync on mobile"), or null
- "keyQuote": a verbatim sentence from the post, or null
- "effort": "Quick Win", "Medium" or "Large" to address it, or null
- "reach": 0-10, how many users this plausibly affects
- "sentimentIntensity": 0-10, strength of feeling (10 = furious or ecstatic)
- "velocity": 0-10, how fast the discussion is gathering engagement
- "confidence": 0-1

Text after "Top comments:" is replies to the post; use it as context when judging the post.

Output strict JSON only. No comments, no trailing commas.
""").strip()


def _strip_code_fences(s: str) -> str:
    s = s.strip()
    return re.sub(r"^```(?:json)?|```$", "", s, flags=re.IGNORECASE | re.MULTILINE).strip()


def safe_json_loads(s: str) -> Any:
    """Parse JSON from an LLM response, tolerating fences and surrounding prose."""
    if not s or not s.strip():
        raise ValueError("Empty LLM response")
    cleaned = _strip_code_fences(s)
    try:
        return json.loads(cleaned)
    except ValueError:
        pass

    cleaned = re.sub(r",\s*([}\]])", r"\1", cleaned)  # trailing commas
    for pattern in (r"\{.*\}", r"\[.*\]"):
        m = re.search(pattern, cleaned, re.S)
        if m:
            try:
                return json.loads(m.group(0))
            except ValueError:
                continue
    raise ValueError(f"Could not parse JSON from: {s[:200]}...")


class LLMServiceFactory:
    """Factory for creating LLM services."""

    @staticmethod
    def create(settings):
        """Create appropriate LLM service."""
        if settings.effective_openai_key:
            return OpenAIService(settings)
        else:
            return FallbackLLMService()


class OpenAIService:
    """OpenAI-based LLM service."""

    available = True

    def __init__(self, settings, client=None, cache=None):
        self.client = client or openai.OpenAI(api_key=settings.effective_openai_key)
        self.model = settings.openai_model or "gpt-4o-mini"
        self.max_retries = settings.max_retries
        self.timeout = settings.request_timeout
        self.cache = cache if cache is not None else Cache(settings.cache_dir)
        logger.info(f"OpenAI service initialized with caching ({self.model})")

    def _complete(self, system: str, user: str, temperature: float, max_tokens: int) -> str:
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            max_tokens=max_tokens,
            temperature=temperature,
            timeout=self.timeout,
        )
        return (response.choices[0].message.content or "").strip()

    def chat(self, system: str, user: str, temperature: float = 0.3, max_tokens: int = 800) -> str:
        """Generic chat method for LLM interactions with caching."""
        cache_key = hashlib.md5(
            f"{self.model}|{system}|{user}|{temperature}|{max_tokens}|{PROMPT_VERSION}".encode()
        ).hexdigest()

        cached_response = self.cache.get(cache_key)
        if cached_response:
            logger.debug(f"Cache hit for LLM request: {cache_key[:CacheConstants.CACHE_KEY_LENGTH]}...")
            return cached_response

        retrying = Retrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=1, max=RetryConstants.TRANSIENT_BACKOFF * 4),
            reraise=True,
        )
        try:
            result = retrying(self._complete, system, user, temperature, max_tokens)
        except openai.OpenAIError as e:
            logger.error(f"Chat failed after {self.max_retries} attempts: {e}")
            raise

        if result:
            self.cache.set(cache_key, result, expire=3600 * CacheConstants.CACHE_TTL_HOURS)
            logger.debug(f"Cached LLM response: {cache_key[:CacheConstants.CACHE_KEY_LENGTH]}...")
        return result

    def discover_communities(self, company_name: str, context: str = "",
                             max_sources: int = DiscoveryConstants.MAX_SOURCES) -> Any:
        """Ask for candidate communities. Returns parsed, unvalidated JSON."""
        system = "You output strict JSON to plan Reddit research."
        user = f"Company: {company_name}\n"
        if context:
            user += f"Context: {context}\n"
        user += "\n" + DISCOVERY_PROMPT.replace("{max_sources}", str(max_sources))
        resp = self.chat(system, user,
                         temperature=DiscoveryConstants.DISCOVERY_TEMPERATURE,
                         max_tokens=DiscoveryConstants.DISCOVERY_MAX_TOKENS)
        return safe_json_loads(resp)

    def classify_batch(self, company_name: str, posts: List[Dict[str, str]]) -> Any:
        """Classify a batch of ``{"id", "text"}`` posts. Returns parsed, unvalidated JSON."""
        lines = [f"[{p['id']}] {p['text']}" for p in posts]
        system = CLASSIFY_PROMPT.replace("{company}", company_name)
        user = "Posts:\n\n" + "\n\n".join(lines)
        resp = self.chat(system, user,
                         temperature=ClassifierConstants.LLM_TEMPERATURE,
                         max_tokens=ClassifierConstants.LLM_MAX_TOKENS)
        return safe_json_loads(resp)


class FallbackLLMService:
    """Stand-in used when no API key is configured; every call yields nothing."""

    available = False

    def __init__(self):
        logger.info("Using fallback LLM service")

    def chat(self, system: str, user: str, temperature: float = 0.3, max_tokens: int = 800) -> str:
        """Fallback chat method - returns empty string."""
        logger.warning("Fallback LLM service chat called - no actual LLM available")
        return ""

    def discover_communities(self, company_name: str, context: str = "",
                             max_sources: int = DiscoveryConstants.MAX_SOURCES) -> Optional[Dict]:
        return None

    def classify_batch(self, company_name: str, posts: List[Dict[str, str]]) -> Optional[List]:
        return None
