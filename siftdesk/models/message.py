"""Conversation message data model."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from siftdesk.models.query import UploadedFile
from siftdesk.models.report import ReportKind
from siftdesk.models.source import GroundingSource


class Sender(Enum):
    USER = "user"
    ASSISTANT = "assistant"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Message:
    """One transcript entry.

    Assistant messages are created in the loading state and mutated only by
    the generation that owns them until a terminal event arrives.
    """

    sender: Sender
    text: str = ""
    reasoning: str = ""
    grounding_sources: list[GroundingSource] | None = None
    uploaded_files: list[UploadedFile] = field(default_factory=list)
    is_loading: bool = False
    is_error: bool = False
    is_cancelled: bool = False
    is_from_cache: bool = False
    is_initial_report: bool = False
    report_kind: ReportKind | None = None
    model_id: str | None = None
    timestamp: datetime = field(default_factory=_utcnow)
    id: str = field(default_factory=lambda: str(uuid4()))

    @property
    def is_terminal(self) -> bool:
        return not self.is_loading

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sender": self.sender.value,
            "text": self.text,
            "reasoning": self.reasoning,
            "grounding_sources": (
                [s.to_dict() for s in self.grounding_sources]
                if self.grounding_sources is not None
                else None
            ),
            "uploaded_files": [f.to_dict() for f in self.uploaded_files],
            "is_loading": self.is_loading,
            "is_error": self.is_error,
            "is_cancelled": self.is_cancelled,
            "is_from_cache": self.is_from_cache,
            "is_initial_report": self.is_initial_report,
            "report_kind": self.report_kind.value if self.report_kind else None,
            "model_id": self.model_id,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> Message:
        sources = data.get("grounding_sources")
        kind = data.get("report_kind")
        return cls(
            id=data["id"],
            sender=Sender(data["sender"]),
            text=data.get("text", ""),
            reasoning=data.get("reasoning", ""),
            grounding_sources=(
                [GroundingSource.from_dict(s) for s in sources] if sources is not None else None
            ),
            uploaded_files=[UploadedFile.from_dict(f) for f in data.get("uploaded_files", [])],
            is_loading=bool(data.get("is_loading", False)),
            is_error=bool(data.get("is_error", False)),
            is_cancelled=bool(data.get("is_cancelled", False)),
            is_from_cache=bool(data.get("is_from_cache", False)),
            is_initial_report=bool(data.get("is_initial_report", False)),
            report_kind=ReportKind(kind) if kind else None,
            model_id=data.get("model_id"),
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )
