"""Appends display indices to links that point at assessed sources."""

from __future__ import annotations

import re

from siftdesk.models.source import SourceAssessment

LINK_RE = re.compile(r"(?<!!)\[([^\]]+)\]\(([^)]+?)\)")


def inject_source_indices(text: str, assessments: list[SourceAssessment]) -> str:
    """``[name](url)`` -> ``[name](url)[3]`` when url is assessment #3."""
    index_by_url = {a.url: a.index for a in assessments if a.url}
    if not index_by_url:
        return text

    def _annotate(match: re.Match) -> str:
        index = index_by_url.get(match.group(2).strip())
        return f"{match.group(0)}[{index}]" if index is not None else match.group(0)

    return LINK_RE.sub(_annotate, text)
