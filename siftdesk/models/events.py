"""Provider-agnostic stream events.

A backend yields any number of status/chunk/sources events followed by
exactly one terminal ``FinalEvent`` or ``ErrorEvent``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

from siftdesk.models.report import ReportKind
from siftdesk.models.source import GroundingSource


@dataclass(frozen=True)
class StatusEvent:
    message: str


@dataclass(frozen=True)
class ChunkEvent:
    text: str


@dataclass(frozen=True)
class SourcesEvent:
    sources: list[GroundingSource] = field(default_factory=list)


@dataclass(frozen=True)
class ErrorEvent:
    error: str


@dataclass(frozen=True)
class FinalEvent:
    full_text: str
    model_id: str
    grounding_sources: list[GroundingSource] | None = None
    is_initial_report: bool = False
    report_kind: ReportKind | None = None
    cache_key: str | None = None


StreamEvent = Union[StatusEvent, ChunkEvent, SourcesEvent, ErrorEvent, FinalEvent]
