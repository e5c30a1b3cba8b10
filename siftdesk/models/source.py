"""Source data models — grounding citations and assessed sources."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class LinkStatus(Enum):
    UNCHECKED = "unchecked"
    CHECKING = "checking"
    VALID = "valid"
    INVALID = "invalid"
    ERROR_CHECKING = "error_checking"


@dataclass(frozen=True)
class GroundingSource:
    """A citation supplied by the provider alongside an answer."""

    title: str
    uri: str

    def to_dict(self) -> dict:
        return {"title": self.title, "uri": self.uri}

    @classmethod
    def from_dict(cls, data: dict) -> GroundingSource:
        return cls(title=data.get("title") or "", uri=data["uri"])


@dataclass
class ExtractedSource:
    """One row of the source reliability table, before reconciliation."""

    name: str
    url: str
    assessment: str
    notes: str
    rating: str


@dataclass
class SourceAssessment:
    """An assessed source in the running, ordered source list.

    ``url`` is the identity; ``index`` is only the current display position.
    """

    index: int
    name: str
    url: str
    assessment: str
    notes: str
    rating: str
    link_status: LinkStatus = LinkStatus.UNCHECKED

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "name": self.name,
            "url": self.url,
            "assessment": self.assessment,
            "notes": self.notes,
            "rating": self.rating,
            "link_status": self.link_status.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> SourceAssessment:
        return cls(
            index=int(data["index"]),
            name=data["name"],
            url=data["url"],
            assessment=data.get("assessment", ""),
            notes=data.get("notes", ""),
            rating=data.get("rating", ""),
            link_status=LinkStatus(data.get("link_status", LinkStatus.UNCHECKED.value)),
        )
