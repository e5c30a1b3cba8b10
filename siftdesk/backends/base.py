"""Base protocol for all report-generation backends."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import AsyncIterator, Protocol, runtime_checkable

from siftdesk.models.events import StreamEvent
from siftdesk.models.query import UploadedFile
from siftdesk.models.report import ReportKind
from siftdesk.orchestrator.history import HistoryTurn

DEFAULT_SYSTEM_PROMPT = """\
You are a meticulous fact-checking and contextualization assistant following \
the SIFT method (Stop, Investigate the source, Find better coverage, Trace \
claims to their origin). Produce structured, well-cited answers. Render every \
table in plain Markdown. Do not produce program code unless the user asks \
about code.\
"""


@dataclass
class GenerationRequest:
    """Everything a backend needs for one streamed answer."""

    prompt: str
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    history: list[HistoryTurn] = field(default_factory=list)
    files: list[UploadedFile] = field(default_factory=list)
    params: dict = field(default_factory=dict)
    is_initial_report: bool = False
    report_kind: ReportKind | None = None


@runtime_checkable
class ReportBackend(Protocol):
    """Interface that all LLM backends must implement."""

    name: str
    model_id: str

    def stream(
        self, request: GenerationRequest, cancel_event: asyncio.Event | None = None
    ) -> AsyncIterator[StreamEvent]:
        """Yield stream events; the last one is a FinalEvent or ErrorEvent."""
        ...


def number_param(params: dict, key: str, default: float | None = None) -> float | None:
    """Numeric knob from a loosely typed parameter map."""
    value = params.get(key, default)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def strip_data_url(content: str) -> str:
    """Base64 payload without a ``data:<mime>;base64,`` prefix."""
    if content.startswith("data:") and "," in content:
        return content.split(",", 1)[1]
    return content
