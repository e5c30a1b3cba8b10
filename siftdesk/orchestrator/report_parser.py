"""Report parser — splits a completed Full Check report into display sections.

Model output is inconsistent: headings may be numbered, emoji-prefixed, or
empty, and occasionally whole sections of unrelated code get injected. The
parser never raises on such input; it degrades to fewer sections.
"""

from __future__ import annotations

import logging
import re

from siftdesk.models.report import ParsedReportSection

logger = logging.getLogger(__name__)

PREAMBLE_TITLE = "Report Information"
MISC_TITLE = "Miscellaneous"
UNTITLED = "Untitled Section"
SOURCE_SECTION_MARKER = "assessment of source reliability"

HEADING_RE = re.compile(r"^\s{0,3}(#{2,3})(?!#)\s*(.*?)\s*$")
NUMBER_PREFIX_RE = re.compile(r"^\d+\.\s*")
PREAMBLE_FIRST_RE = re.compile(r"^\s*Generated\b", re.IGNORECASE)
PREAMBLE_SECOND_RE = re.compile(r"^\s*AI-Generated:", re.IGNORECASE)

# A heading with no usable title is named after its leading table header.
KNOWN_TABLE_TITLES: list[tuple[str, str]] = [
    ("| Statement | Plausibility | Path for Investigation |", "📌 Potential Leads"),
    ("| Statement | Status | Clarification & Correction | Confidence (1-5) |", "✅ Verified Facts"),
    ("| Statement | Issue | Correction | Correction Confidence (1-5) |", "⚠️ Errors and Corrections"),
    ("| Source | Usefulness Assessment | Notes | Rating (1-5) |", "🔴 Assessment of Source Reliability"),
]

# Boilerplate the model sometimes emits instead of report content.
INJECTED_CODE_PATTERNS: list[re.Pattern] = [
    re.compile(r"^\s*#include\s*<iostream>.*using\s*namespace\s*std;", re.I | re.S),
    re.compile(r"^\s*```(python)?\s*(from\s*flask\s*import|from\s*django\.|import\s*uvicorn)", re.I | re.S),
    re.compile(r"if\s*__name__\s*==\s*['\"]__main__['\"]:\s*app\.run\(", re.I | re.S),
    re.compile(r"^\s*<!DOCTYPE\s*html>.*<head>.*<title>", re.I | re.S),
    re.compile(r"^\s*```(javascript)?\s*const\s*express\s*=\s*require\('express'\);.*app\.listen\(", re.I | re.S),
    re.compile(r"^\|\s*Statement\s*\|\s*Plausibility\s*\|\s*Path\s*for\s*Investigation\s*return\s*render_template", re.I),
    re.compile(r"^\s*```(jsx|javascript)\s*import\s*React\s*from\s*['\"]react['\"];.*export\s*default", re.I | re.S),
]


def heading_title(raw: str) -> str:
    """Human title from the text after the ``##``: drops numbering and a trailing colon."""
    title = NUMBER_PREFIX_RE.sub("", raw.strip())
    return title.rstrip(":").strip()


def infer_title(content: str) -> str | None:
    head = content.lstrip()
    for marker, title in KNOWN_TABLE_TITLES:
        if head.startswith(marker):
            return title
    return None


def is_injected_code(content: str) -> bool:
    text = content.strip()
    for pattern in INJECTED_CODE_PATTERNS:
        if pattern.search(text):
            return True
    return False


def is_source_section(title: str) -> bool:
    return SOURCE_SECTION_MARKER in title.lower()


def _split_preamble(lines: list[str]) -> tuple[str | None, list[str]]:
    if len(lines) >= 2 and PREAMBLE_FIRST_RE.match(lines[0]) and PREAMBLE_SECOND_RE.match(lines[1]):
        return f"{lines[0].strip()}\n{lines[1].strip()}", lines[2:]
    return None, lines


def parse_report_sections(text: str) -> list[ParsedReportSection]:
    """Split a report into ordered sections.

    The source reliability section is recognised but left out; it is
    rendered from the reconciled assessment list instead.
    """
    lines = text.replace("\r\n", "\n").strip().split("\n")
    preamble, lines = _split_preamble(lines)

    # Each entry: [title, raw header line, content lines, level]
    drafts: list[list] = []
    leading: list[str] = []
    for line in lines:
        match = HEADING_RE.match(line)
        if match:
            drafts.append([heading_title(match.group(2)), line.strip(), [], len(match.group(1))])
        elif drafts:
            drafts[-1][2].append(line)
        else:
            leading.append(line)

    sections: list[ParsedReportSection] = []
    leading_text = "\n".join(leading).strip()
    if preamble is not None:
        content = f"{preamble}\n\n{leading_text}" if leading_text else preamble
        sections.append(ParsedReportSection(PREAMBLE_TITLE, PREAMBLE_TITLE, content, 0))
    elif leading_text:
        sections.append(ParsedReportSection(MISC_TITLE, MISC_TITLE, leading_text, 0))

    for title, raw_line, content_lines, level in drafts:
        content = "\n".join(content_lines).strip()
        if not any(ch.isalnum() for ch in title):
            title = infer_title(content) or title or UNTITLED
        sections.append(ParsedReportSection(title, raw_line, content, level))

    kept: list[ParsedReportSection] = []
    for section in sections:
        if is_injected_code(section.content):
            logger.warning("Dropping section %r: matches injected code pattern", section.title)
            continue
        if is_source_section(section.title):
            continue
        if not section.content.strip() and section.title != PREAMBLE_TITLE:
            continue
        kept.append(section)
    return kept
