"""Research query data models."""

from __future__ import annotations

from dataclasses import dataclass, field

from siftdesk.models.report import ReportKind


@dataclass
class UploadedFile:
    """A file attached to a query. ``content`` is base64 and never persisted."""

    name: str
    mime_type: str
    content: str = ""
    size: int = 0

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith("image/")

    def to_dict(self, include_content: bool = False) -> dict:
        data = {"name": self.name, "mime_type": self.mime_type, "size": self.size}
        if include_content:
            data["content"] = self.content
        return data

    @classmethod
    def from_dict(cls, data: dict) -> UploadedFile:
        return cls(
            name=data["name"],
            mime_type=data.get("mime_type", "application/octet-stream"),
            content=data.get("content", ""),
            size=int(data.get("size", 0)),
        )


@dataclass
class ResearchQuery:
    """The topic a session is started with, plus its attachments."""

    text: str
    context: str = ""
    files: list[UploadedFile] = field(default_factory=list)
    urls: list[str] = field(default_factory=list)
    report_kind: ReportKind = ReportKind.FULL_CHECK

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "context": self.context,
            "files": [f.to_dict() for f in self.files],
            "urls": list(self.urls),
            "report_kind": self.report_kind.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> ResearchQuery:
        return cls(
            text=data.get("text", ""),
            context=data.get("context", ""),
            files=[UploadedFile.from_dict(f) for f in data.get("files", [])],
            urls=list(data.get("urls", [])),
            report_kind=ReportKind(data.get("report_kind", ReportKind.FULL_CHECK.value)),
        )
