"""Conversion of upstream listing items into feedback records."""

import hashlib
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .models import Comment, FeedbackRecord, RawItem, Relevance

DELETED_AUTHOR = "[deleted]"
SOURCE_NAME = "reddit"

URL_RE = re.compile(r"https?://\S+")
CODEBLOCK_RE = re.compile(r"```[\s\S]*?```", re.MULTILINE)


def _norm_text(t: str) -> str:
    t = URL_RE.sub("", t or "")
    t = CODEBLOCK_RE.sub("", t)
    t = re.sub(r"\s+", " ", t.lower()).strip()
    return t


def _text_hash(t: str) -> str:
    return hashlib.sha1(_norm_text(t).encode("utf-8")).hexdigest()


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _as_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _iso_from_utc(created_utc: Optional[float]) -> Optional[str]:
    if created_utc is None:
        return None
    return datetime.fromtimestamp(created_utc, tz=timezone.utc).isoformat()


def raw_item_from_listing(data: Dict[str, Any], default_subreddit: str = "") -> RawItem:
    """Build a RawItem from the ``data`` object of a listing child.

    Every optional field gets an explicit default so downstream code never
    touches the raw payload.
    """
    permalink = _as_text(data.get("permalink"))
    url = _as_text(data.get("url"))
    if not url and permalink:
        url = f"https://reddit.com{permalink}"
    title = _as_text(data.get("title")) or None
    body = _as_text(data.get("selftext")) or _as_text(data.get("body"))
    return RawItem(
        id=str(data.get("id") or ""),
        subreddit=_as_text(data.get("subreddit")) or default_subreddit,
        title=title,
        body=body,
        author=_as_text(data.get("author")) or DELETED_AUTHOR,
        upvotes=_as_int(data.get("score")) or _as_int(data.get("ups")),
        comment_count=_as_int(data.get("num_comments")),
        created_utc=_as_float(data.get("created_utc")),
        permalink=permalink,
        url=url,
        upvote_ratio=_as_float(data.get("upvote_ratio")),
        flair=_as_text(data.get("link_flair_text")) or None,
    )


def comment_from_listing(data: Dict[str, Any]) -> Comment:
    return Comment(
        id=str(data.get("id") or ""),
        body=_as_text(data.get("body")),
        author=_as_text(data.get("author")) or DELETED_AUTHOR,
        upvotes=_as_int(data.get("score")),
        created_utc=_as_float(data.get("created_utc")),
    )


def normalize(
    item: RawItem,
    company_name: str,
    scraped_at: Optional[str] = None,
    relevance: Relevance = Relevance.PRIMARY,
) -> FeedbackRecord:
    """Normalize a RawItem for the classifier. Pure and total."""
    if scraped_at is None:
        scraped_at = datetime.now(timezone.utc).isoformat()
    source_url = item.url or (f"https://reddit.com{item.permalink}" if item.permalink else "")
    return FeedbackRecord(
        source=SOURCE_NAME,
        source_id=item.id,
        subreddit=item.subreddit,
        title=item.title,
        body=item.body or "",
        author=item.author or DELETED_AUTHOR,
        upvotes=max(0, item.upvotes),
        comment_count=max(0, item.comment_count),
        created_utc=item.created_utc,
        created_at=_iso_from_utc(item.created_utc),
        source_url=source_url,
        company_name=company_name,
        scraped_at=scraped_at,
        upvote_ratio=item.upvote_ratio,
        flair=item.flair,
        relevance=relevance,
    )


def is_relevant(item: RawItem, search_terms: Iterable[str]) -> bool:
    """Case-insensitive substring match of any term in title + body."""
    content = item.text.lower()
    return any(term and term.lower() in content for term in search_terms)


def filter_relevant(items: Iterable[RawItem], search_terms: Iterable[str]) -> List[RawItem]:
    terms = [t for t in search_terms if t and t.strip()]
    return [item for item in items if is_relevant(item, terms)]


def dedupe_records(records: Iterable[FeedbackRecord]) -> Tuple[List[FeedbackRecord], int]:
    """Drop repeated (source, source_id) keys and copy-pasted text.

    Returns the kept records in input order and the number dropped.
    """
    seen_keys, seen_text, kept = set(), set(), []
    dropped = 0
    for record in records:
        if record.key in seen_keys:
            dropped += 1
            continue
        seen_keys.add(record.key)
        text = record.text
        if text:
            h = _text_hash(text)
            if h in seen_text:
                dropped += 1
                continue
            seen_text.add(h)
        kept.append(record)
    return kept, dropped
