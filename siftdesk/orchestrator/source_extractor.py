"""Source extractor — reads the source reliability table out of a report."""

from __future__ import annotations

import logging
import re

from siftdesk.models.source import ExtractedSource
from siftdesk.orchestrator.report_parser import HEADING_RE, heading_title, is_source_section

logger = logging.getLogger(__name__)

LINK_RE = re.compile(r"\[(.*?)\]\((.*?)\)")
SEPARATOR_ROW_RE = re.compile(r"^\|[\s:\-|]+\|$")
MIN_CELLS = 4


def find_source_section(text: str) -> str | None:
    """Body of the first ``##``/``###`` section titled as the source table."""
    body: list[str] | None = None
    for line in text.replace("\r\n", "\n").split("\n"):
        match = HEADING_RE.match(line)
        if match:
            if body is not None:
                break
            if is_source_section(heading_title(match.group(2))):
                body = []
            continue
        if body is not None:
            body.append(line)
    return "\n".join(body) if body is not None else None


def split_row(row: str) -> list[str]:
    return [cell.strip() for cell in row.strip().split("|")[1:-1]]


def parse_row(row: str) -> ExtractedSource | None:
    cells = split_row(row)
    if len(cells) < MIN_CELLS:
        return None
    link = LINK_RE.search(cells[0])
    if not link:
        return None
    name = link.group(1).replace("**", "").strip()
    url = link.group(2).strip()
    if not name or not url:
        return None
    return ExtractedSource(
        name=name,
        url=url,
        assessment=cells[1],
        notes=cells[2],
        rating=cells[3],
    )


def extract_sources(text: str) -> list[ExtractedSource]:
    """Parse the source reliability table, in table order.

    Malformed rows are skipped; a report without the section yields ``[]``.
    """
    section = find_source_section(text)
    if section is None:
        return []

    rows = [
        line.strip()
        for line in section.split("\n")
        if line.strip().startswith("|") and line.strip().endswith("|")
    ]
    sources: list[ExtractedSource] = []
    skipped = 0
    # The first table row is the header.
    for row in rows[1:]:
        if SEPARATOR_ROW_RE.match(row):
            continue
        source = parse_row(row)
        if source is None:
            skipped += 1
            continue
        sources.append(source)

    if skipped:
        logger.warning("Skipped %d malformed source table row(s)", skipped)
    logger.debug("Extracted %d source assessment(s)", len(sources))
    return sources
