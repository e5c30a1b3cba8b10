"""Report, section and cache-entry data models."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum

from siftdesk.models.source import GroundingSource


class ReportKind(Enum):
    FULL_CHECK = "Full Check"
    CONTEXT_REPORT = "Context Report"
    COMMUNITY_NOTE = "Community Note"


@dataclass(frozen=True)
class ParsedReportSection:
    """A titled slice of a completed report. Level 0 is the preamble."""

    title: str
    raw_header_line: str
    content: str
    heading_level: int

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "raw_header_line": self.raw_header_line,
            "content": self.content,
            "heading_level": self.heading_level,
        }


@dataclass
class CacheEntry:
    """A completed report stored under its request fingerprint."""

    text: str
    model_id: str
    report_kind: ReportKind
    grounding_sources: list[GroundingSource] | None = None
    cached_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "model_id": self.model_id,
            "report_kind": self.report_kind.value,
            "grounding_sources": (
                [s.to_dict() for s in self.grounding_sources]
                if self.grounding_sources is not None
                else None
            ),
            "cached_at": self.cached_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> CacheEntry:
        sources = data.get("grounding_sources")
        return cls(
            text=data["text"],
            model_id=data["model_id"],
            report_kind=ReportKind(data["report_kind"]),
            grounding_sources=(
                [GroundingSource.from_dict(s) for s in sources] if sources is not None else None
            ),
            cached_at=float(data["cached_at"]),
        )
