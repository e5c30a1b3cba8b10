"""Test doubles shared by the session and API tests."""

from __future__ import annotations

import asyncio

import httpx

from siftdesk.models.events import ChunkEvent, FinalEvent, StatusEvent
from siftdesk.models.report import ReportKind
from siftdesk.orchestrator.link_validator import LinkValidator

REPORT = """Generated 2026-01-05 by SiftDesk
AI-Generated: verify important claims independently.

## Findings
The claim is supported by [Reuters](https://reuters.com/a) and disputed by [Blog](https://blog.example/post).

## 🔴 Assessment of Source Reliability
| Source | Usefulness Assessment | Notes | Rating (1-5) |
|---|---|---|---|
| [Blog](https://blog.example/post) | Opinion | Unsourced | 2 |
| [Reuters](https://reuters.com/a) | Wire service | Reliable | 4–5 |
"""


class FakeBackend:
    """Replays a fixed list of events. With ``hang`` it waits for cancellation at the end."""

    name = "Fake"

    def __init__(self, events: list, model_id: str = "fake-model", hang: bool = False) -> None:
        self.events = events
        self.model_id = model_id
        self.hang = hang
        self.requests: list = []
        self.waiting = asyncio.Event()

    async def stream(self, request, cancel_event=None):
        self.requests.append(request)
        for event in self.events:
            if isinstance(event, Exception):
                raise event
            yield event
            await asyncio.sleep(0)
        if self.hang and cancel_event is not None:
            self.waiting.set()
            await cancel_event.wait()


class BackendFactory:
    def __init__(self, *backends: FakeBackend) -> None:
        self.backends = list(backends)
        self.calls: list[tuple] = []

    def __call__(self, provider, model_id):
        self.calls.append((provider, model_id))
        return self.backends.pop(0)


def report_events(text: str = REPORT, kind: ReportKind = ReportKind.FULL_CHECK) -> list:
    full = "<think>checking sources</think>" + text
    cut = len(full) // 2
    return [
        StatusEvent("Researching..."),
        ChunkEvent(full[:10]),
        ChunkEvent(full[10:cut]),
        ChunkEvent(full[cut:]),
        FinalEvent(full_text=full, model_id="fake-model", is_initial_report=True, report_kind=kind),
    ]


def ok_validator() -> LinkValidator:
    return LinkValidator(timeout=1.0, transport=httpx.MockTransport(lambda r: httpx.Response(200)))
