"""Redirect corrector — swaps provider proxy links for direct citation URLs."""

from __future__ import annotations

import logging
import re

from siftdesk.models.source import GroundingSource

logger = logging.getLogger(__name__)

REDIRECT_URL_PATTERNS: list[re.Pattern] = [
    re.compile(r"^https?://vertexaisearch\.cloud\.google\.com/grounding-api-redirect/", re.I),
]
MARKDOWN_LINK_RE = re.compile(r"(?<!!)\[([^\]]+)\]\(([^)\s]+)\)")
FUZZY_THRESHOLD = 0.7


def normalize_title(title: str) -> str:
    return title.replace("**", "").strip().lower()


def is_redirect_url(url: str) -> bool:
    return any(pattern.match(url) for pattern in REDIRECT_URL_PATTERNS)


def containment_score(a: str, b: str) -> float:
    """``len(shorter) / len(longer)`` when one contains the other, else 0."""
    shorter, longer = (a, b) if len(a) <= len(b) else (b, a)
    if not shorter or shorter not in longer:
        return 0.0
    return len(shorter) / len(longer)


def match_grounding_url(title: str, title_map: dict[str, str]) -> str | None:
    """Direct URL for a link title: exact normalized match, then best fuzzy match."""
    key = normalize_title(title)
    if key in title_map:
        return title_map[key]

    best_url: str | None = None
    best_score = 0.0
    for candidate, url in title_map.items():
        score = containment_score(key, candidate)
        if score > best_score:
            best_score, best_url = score, url
    if best_score > FUZZY_THRESHOLD:
        return best_url
    return None


def correct_redirect_links(text: str, grounding_sources: list[GroundingSource] | None) -> str:
    """Rewrite redirect links to the grounding source with the matching title.

    Links without a confident match are left as they are.
    """
    if not grounding_sources:
        return text

    title_map: dict[str, str] = {}
    for source in grounding_sources:
        if source.title and source.uri:
            title_map.setdefault(normalize_title(source.title), source.uri)
    if not title_map:
        return text

    corrected = 0

    def _replace(match: re.Match) -> str:
        nonlocal corrected
        title, url = match.group(1), match.group(2)
        if not is_redirect_url(url):
            return match.group(0)
        direct = match_grounding_url(title, title_map)
        if direct is None or direct == url:
            return match.group(0)
        corrected += 1
        return f"[{title}]({direct})"

    result = MARKDOWN_LINK_RE.sub(_replace, text)
    if corrected:
        logger.info("Corrected %d redirect link(s)", corrected)
    return result
