"""Deterministic scoring of raw search hits into attributed sources.

Everything here is pure: identical raw input, purpose and ``now`` always
yield an identical ``Source``.
"""
from __future__ import annotations

import hashlib
import re
from datetime import date, datetime

from brainlift.models.research import RawSource, Source, SourceType

STOP_WORDS = frozenset(
    {
        "the", "and", "for", "with", "that", "this", "have", "will", "from",
        "they", "been", "their", "said", "each", "which", "what", "were",
        "more", "very", "know", "just", "first", "also", "after", "back",
        "other", "many", "than", "then", "them", "these", "some", "would",
        "make", "like", "into", "time", "has", "two", "way", "could", "call",
        "who", "its", "now", "find", "long", "down", "day", "did", "get",
        "come", "made", "may", "part", "her", "him",
    }
)

EVIDENCE_PHRASES = (
    "research shows",
    "study found",
    "according to",
    "data reveals",
    "evidence suggests",
    "experts believe",
    "findings indicate",
)

ACADEMIC_CREDIBILITY_PATTERNS = (".edu", "researchgate", "scholar.google")
INDUSTRY_CREDIBILITY_PATTERNS = ("mckinsey", "bcg", "hbr.org")

SOURCE_TYPE_PATTERNS: tuple[tuple[SourceType, tuple[str, ...]], ...] = (
    (SourceType.ACADEMIC, (".edu", ".ac.", "researchgate", "scholar.google", "arxiv", "pubmed")),
    (SourceType.INDUSTRY, ("mckinsey", "bcg", "deloitte", "pwc", "hbr.org")),
    (SourceType.NEWS, ("news", "reuters", "bloomberg", "wsj", "nytimes")),
    (SourceType.BLOG, ("blog", "medium.com", "substack.com")),
)

RECENT_YEARS = 3
LONG_CONTENT_CHARS = 1000
MAX_KEY_QUOTES = 3
SUMMARY_CHARS = 200


def _clamp_score(value: float) -> int:
    return int(min(10, max(1, round(value))))


def purpose_keywords(purpose: str) -> list[str]:
    """Lowercase words longer than three characters that are not stop words."""
    words = re.findall(r"[a-z0-9][a-z0-9'-]*", purpose.lower())
    keywords = [word for word in words if len(word) > 3 and word not in STOP_WORDS]
    return list(dict.fromkeys(keywords))


def classify_source_type(url: str) -> SourceType:
    lowered = url.lower()
    for source_type, patterns in SOURCE_TYPE_PATTERNS:
        if any(pattern in lowered for pattern in patterns):
            return source_type
    return SourceType.OTHER


def _parse_date(value: str | None) -> date | None:
    if not value:
        return None
    text = value.strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    for fmt in ("%a, %d %b %Y %H:%M:%S %Z", "%Y/%m/%d", "%d %B %Y", "%B %d, %Y"):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def is_recent(published_date: str | None, now: datetime | None = None) -> bool:
    parsed = _parse_date(published_date)
    if parsed is None:
        return False
    today = (now or datetime.now()).date()
    try:
        cutoff = today.replace(year=today.year - RECENT_YEARS)
    except ValueError:
        # Feb 29 in a non-leap target year
        cutoff = today.replace(year=today.year - RECENT_YEARS, day=28)
    return parsed > cutoff


def credibility_score(raw: RawSource, now: datetime | None = None) -> int:
    url = raw.url.lower()
    score = 5.0
    if any(pattern in url for pattern in ACADEMIC_CREDIBILITY_PATTERNS):
        score += 3
    if any(pattern in url for pattern in INDUSTRY_CREDIBILITY_PATTERNS):
        score += 2
    if is_recent(raw.published_date, now):
        score += 1
    if len(raw.content or "") > LONG_CONTENT_CHARS:
        score += 1
    if raw.score > 0.8:
        score += 2
    elif raw.score > 0.6:
        score += 1
    return _clamp_score(score)


def relevance_score(raw: RawSource, purpose: str) -> int:
    keywords = purpose_keywords(purpose)
    title = (raw.title or "").lower()
    content = (raw.content or "").lower()

    title_matches = sum(1 for keyword in keywords if keyword in title)
    content_matches = sum(1 for keyword in keywords if keyword in content)

    score = 5.0 + title_matches * 2 + content_matches * 0.5 + raw.score * 3
    return _clamp_score(score)


def _sentences(content: str) -> list[str]:
    return [part.strip() for part in re.split(r"[.!?]+", content or "") if len(part.strip()) > 20]


def extract_key_quotes(content: str) -> list[str]:
    sentences = _sentences(content)
    quotes = [
        sentence
        for sentence in sentences
        if any(phrase in sentence.lower() for phrase in EVIDENCE_PHRASES)
    ]
    if quotes:
        return quotes[:MAX_KEY_QUOTES]
    return [s for s in sentences if 50 <= len(s) < 200][:MAX_KEY_QUOTES]


def summarize(raw: RawSource) -> str:
    content = " ".join((raw.content or "").split())
    if len(content) <= SUMMARY_CHARS:
        return content
    return content[:SUMMARY_CHARS] + "..."


def source_id(url: str) -> str:
    return "source_" + hashlib.sha1(url.encode("utf-8")).hexdigest()[:12]


def score_source(raw: RawSource, purpose: str, *, now: datetime | None = None) -> Source:
    return Source(
        id=source_id(raw.url),
        url=raw.url,
        title=raw.title,
        author=raw.author,
        publish_date=raw.published_date,
        source_type=classify_source_type(raw.url),
        credibility_score=credibility_score(raw, now),
        relevance_score=relevance_score(raw, purpose),
        key_quotes=tuple(extract_key_quotes(raw.content)),
        summary=summarize(raw),
    )


def mean_credibility(sources: list[Source]) -> float:
    if not sources:
        return 0.0
    return sum(source.credibility_score for source in sources) / len(sources)


def analysis_summary(sources: list[Source]) -> str:
    """One-line digest of the source mix behind a workflow result."""
    if not sources:
        return "No sources were found for this workflow."
    total = len(sources)
    avg_credibility = mean_credibility(sources)
    avg_relevance = sum(source.relevance_score for source in sources) / total
    distribution: dict[str, int] = {}
    for source in sources:
        distribution[source.source_type.value] = distribution.get(source.source_type.value, 0) + 1
    mix = ", ".join(f"{name}: {count}" for name, count in distribution.items())
    return (
        f"Analysis based on {total} sources with average credibility score of "
        f"{avg_credibility:.1f}/10 and relevance score of {avg_relevance:.1f}/10. "
        f"Source distribution: {mix}."
    )
