"""Source discovery: which communities are worth searching for a company."""

import logging
import re
from typing import Any, Iterable, List, Optional

from ..core.constants import DiscoveryConstants
from ..core.errors import DiscoveryFailure
from ..core.models import DiscoveryResult, Relevance, SourceCandidate

logger = logging.getLogger(__name__)

SUBREDDIT_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_]{1,20}$")
EXCLUDED_SUBREDDITS = {"all", "popular", "random", "askreddit"}

# (keyword hints, secondary communities)
SECONDARY_HINTS = [
    (("app", "saas", "software", "productivity", "notes", "workspace", "docs", "task"),
     ["productivity", "SaaS"]),
    (("game", "gaming", "studio", "console"), ["gaming", "pcgaming"]),
    (("coffee", "food", "restaurant", "cafe", "delivery"), ["food", "Coffee"]),
    (("bank", "finance", "fintech", "pay", "card", "invest"), ["personalfinance", "fintech"]),
    (("phone", "laptop", "device", "hardware", "headphone"), ["gadgets", "technology"]),
    (("ai", "llm", "chatbot", "model"), ["artificial", "ChatGPT"]),
]
DEFAULT_SECONDARY = ["technology", "software"]


def _clean_name(name: str) -> str:
    name = (name or "").strip()
    name = re.sub(r"^/?r/", "", name, flags=re.IGNORECASE)
    return name.strip("/ ")


def _dedupe_candidates(candidates: Iterable[SourceCandidate]) -> List[SourceCandidate]:
    seen, out = set(), []
    for c in candidates:
        key = c.name.lower()
        if key in seen:
            continue
        seen.add(key)
        out.append(c)
    return out


def _dedupe_terms(terms: Iterable[str]) -> List[str]:
    seen, out = set(), []
    for t in terms:
        t = (t or "").strip()
        if t and t.lower() not in seen:
            seen.add(t.lower())
            out.append(t)
    return out


def default_search_terms(company_name: str) -> List[str]:
    compact = re.sub(r"\s+", "", company_name or "")
    return _dedupe_terms([company_name, compact])


def heuristic_discovery(company_name: str, context: str = "",
                        max_sources: int = DiscoveryConstants.MAX_SOURCES) -> DiscoveryResult:
    """Deterministic discovery with no network calls."""
    slug = re.sub(r"[^A-Za-z0-9_]", "", company_name or "")
    candidates = []
    if SUBREDDIT_RE.match(slug):
        candidates.append(SourceCandidate(slug, Relevance.PRIMARY))

    hint_text = f"{company_name} {context}".lower()
    hint_words = set(re.findall(r"[a-z0-9]+", hint_text))
    secondary = []
    for keywords, subs in SECONDARY_HINTS:
        if hint_words & set(keywords):
            secondary.extend(subs)
    for name in secondary or DEFAULT_SECONDARY:
        candidates.append(SourceCandidate(name, Relevance.SECONDARY))

    return DiscoveryResult(
        sources=_dedupe_candidates(candidates)[:max_sources],
        search_terms=default_search_terms(company_name)[:DiscoveryConstants.MAX_SEARCH_TERMS],
        strategy="heuristic",
    )


def parse_llm_discovery(payload: Any, company_name: str,
                        max_sources: int = DiscoveryConstants.MAX_SOURCES) -> DiscoveryResult:
    """Validate an LLM discovery payload.

    Raises DiscoveryFailure unless at least one usable community remains
    after cleaning and de-duplication.
    """
    if not isinstance(payload, dict):
        raise DiscoveryFailure(f"Discovery payload is not an object: {type(payload).__name__}")
    raw = payload.get("subreddits")
    if not isinstance(raw, list):
        raise DiscoveryFailure("Discovery payload has no 'subreddits' list")

    candidates = []
    for entry in raw:
        if isinstance(entry, str):
            name, relevance = entry, "secondary"
        elif isinstance(entry, dict):
            name, relevance = entry.get("name", ""), entry.get("relevance", "secondary")
        else:
            continue
        name = _clean_name(name if isinstance(name, str) else "")
        if not SUBREDDIT_RE.match(name) or name.lower() in EXCLUDED_SUBREDDITS:
            continue
        rel = Relevance.PRIMARY if str(relevance).strip().lower() == "primary" else Relevance.SECONDARY
        candidates.append(SourceCandidate(name, rel))

    candidates = _dedupe_candidates(candidates)
    if not candidates:
        raise DiscoveryFailure("Discovery returned no usable communities")
    candidates.sort(key=lambda c: 0 if c.relevance == Relevance.PRIMARY else 1)

    terms = payload.get("searchTerms") or []
    terms = [t for t in terms if isinstance(t, str)] if isinstance(terms, list) else []
    terms = _dedupe_terms(default_search_terms(company_name)[:1] + terms)

    return DiscoveryResult(
        sources=candidates[:max_sources],
        search_terms=terms[:DiscoveryConstants.MAX_SEARCH_TERMS],
        strategy="llm",
    )


class SourceDiscoverer:
    """LLM-assisted discovery that degrades to the heuristic on any failure."""

    def __init__(self, llm=None, use_llm: bool = True,
                 max_sources: int = DiscoveryConstants.MAX_SOURCES):
        self.llm = llm
        self.use_llm = use_llm
        self.max_sources = max_sources

    def discover(self, company_name: str, context: str = "") -> DiscoveryResult:
        if self.use_llm and self.llm is not None and getattr(self.llm, "available", False):
            try:
                payload = self.llm.discover_communities(company_name, context, self.max_sources)
                result = parse_llm_discovery(payload, company_name, self.max_sources)
                logger.info(
                    f"LLM discovery for '{company_name}': "
                    f"{', '.join(f'r/{s.name} [{s.relevance.value}]' for s in result.sources)}"
                )
                return result
            except DiscoveryFailure as e:
                logger.warning(f"LLM discovery unusable, falling back to heuristic: {e}")
            except Exception as e:
                logger.warning(f"LLM discovery failed, falling back to heuristic: {e}")

        result = heuristic_discovery(company_name, context, self.max_sources)
        logger.info(f"Heuristic discovery for '{company_name}': {[s.name for s in result.sources]}")
        return result
