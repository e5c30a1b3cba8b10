"""Source reconciliation — folds newly extracted sources into the running list.

The list is keyed by exact URL string. Re-extraction refreshes the text
fields of a known source but never its link status; new URLs start out
unchecked. After every merge the list is re-sorted by rating and display
indices are renumbered 1..N.
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Iterable

from siftdesk.models.source import ExtractedSource, LinkStatus, SourceAssessment

logger = logging.getLogger(__name__)

RANGE_SPLIT_RE = re.compile(r"[-–—]")
LEADING_NUMBER_RE = re.compile(r"^\s*(\d+(?:\.\d*)?|\.\d+)")


def rating_value(rating: str) -> float:
    """Sort value of a rating string: the upper end of a range, 0 if unparseable.

    ``"4–5"`` -> 5.0, ``"3"`` -> 3.0, ``"n/a"`` -> 0.0
    """
    parts = RANGE_SPLIT_RE.split(rating or "")
    match = LEADING_NUMBER_RE.match(parts[-1])
    if not match:
        return 0.0
    try:
        return float(match.group(1))
    except ValueError:
        return 0.0


def reconcile(
    current: list[SourceAssessment], batch: Iterable[ExtractedSource]
) -> list[SourceAssessment]:
    """Pure merge/sort/reindex of ``batch`` into ``current``.

    Returns new objects; ``current`` is not modified. An empty batch
    returns a copy of ``current`` unchanged.
    """
    incoming = list(batch)
    if not incoming:
        return [replace(a) for a in current]

    merged: dict[str, SourceAssessment] = {a.url: replace(a) for a in current}
    for source in incoming:
        existing = merged.get(source.url)
        if existing is not None:
            existing.name = source.name
            existing.assessment = source.assessment
            existing.notes = source.notes
            existing.rating = source.rating
        else:
            merged[source.url] = SourceAssessment(
                index=0,
                name=source.name,
                url=source.url,
                assessment=source.assessment,
                notes=source.notes,
                rating=source.rating,
                link_status=LinkStatus.UNCHECKED,
            )

    # sorted() is stable: equal ratings keep their previous relative order.
    ordered = sorted(merged.values(), key=lambda a: rating_value(a.rating), reverse=True)
    for position, assessment in enumerate(ordered, 1):
        assessment.index = position
    return ordered


class SourceLedger:
    """Single owner of the assessment list.

    Only ``reconcile`` and the link-status methods write to it; every reader
    gets a snapshot of copies.
    """

    def __init__(self, assessments: list[SourceAssessment] | None = None) -> None:
        self._assessments: list[SourceAssessment] = [replace(a) for a in assessments or []]

    def __len__(self) -> int:
        return len(self._assessments)

    def snapshot(self) -> list[SourceAssessment]:
        return [replace(a) for a in self._assessments]

    def reconcile(self, batch: Iterable[ExtractedSource]) -> list[SourceAssessment]:
        incoming = list(batch)
        if not incoming:
            return self.snapshot()
        before = len(self._assessments)
        self._assessments = reconcile(self._assessments, incoming)
        logger.info(
            "Reconciled %d extracted source(s): %d -> %d assessments",
            len(incoming), before, len(self._assessments),
        )
        return self.snapshot()

    def unchecked_urls(self) -> list[str]:
        return [a.url for a in self._assessments if a.link_status is LinkStatus.UNCHECKED]

    def set_link_statuses(self, statuses: dict[str, LinkStatus]) -> list[SourceAssessment]:
        """Merge link results by URL; sources not in ``statuses`` are untouched."""
        for assessment in self._assessments:
            status = statuses.get(assessment.url)
            if status is not None:
                assessment.link_status = status
        return self.snapshot()

    def clear(self) -> None:
        self._assessments = []
