"""Markdown exporter — downloadable copies of a report, its sources and the session."""

from __future__ import annotations

from datetime import datetime, timezone

from siftdesk.models.message import Message, Sender
from siftdesk.models.query import ResearchQuery
from siftdesk.models.report import ReportKind
from siftdesk.models.source import GroundingSource, SourceAssessment

TIME_FORMAT = "%Y-%m-%d %H:%M:%S %Z"
SOURCE_COLUMNS = ("#", "Source", "Assessment", "Notes", "Rating", "Link Status")


def export_filename(kind: ReportKind, generated_at: datetime) -> str:
    return f"Report_{kind.value.replace(' ', '_')}_{generated_at.date().isoformat()}.md"


def _cell(value: str) -> str:
    """Flatten to one line and escape pipes so the table keeps its columns."""
    return " ".join(value.split()).replace("|", "\\|")


def _stamp(when: datetime) -> str:
    return when.strftime(TIME_FORMAT).strip()


class MarkdownExporter:
    """Wraps a report's original text in a metadata header."""

    def generate(self, message: Message) -> str:
        kind = message.report_kind or ReportKind.FULL_CHECK
        lines = [
            "# Report Export",
            "",
            f"**Generated:** {_stamp(message.timestamp)}",
            f"**Report Type:** {kind.value}",
            f"**Model Used:** {message.model_id or 'N/A'}",
        ]
        if message.is_from_cache:
            lines.append("**Note:** This report was loaded from local cache.")
        lines.append(self._render_grounding(message.grounding_sources))
        lines.extend(["---", "", message.text])
        return "\n".join(lines)

    def filename(self, message: Message) -> str:
        return export_filename(message.report_kind or ReportKind.FULL_CHECK, message.timestamp)

    def sources_table(self, assessments: list[SourceAssessment]) -> str:
        """The assessment list as a Markdown table, one row per source."""
        lines = [
            "# Source Assessments",
            "",
            "| " + " | ".join(SOURCE_COLUMNS) + " |",
            "|" + "---|" * len(SOURCE_COLUMNS),
        ]
        for a in assessments:
            name = _cell(a.name) or a.url
            source = f"[{name}]({a.url})" if a.url else name
            row = (
                str(a.index),
                source,
                _cell(a.assessment),
                _cell(a.notes),
                _cell(a.rating),
                a.link_status.value,
            )
            lines.append("| " + " | ".join(row) + " |")
        return "\n".join(lines) + "\n"

    def session_transcript(self, messages: list[Message], query: ResearchQuery | None = None) -> str:
        lines = ["# Session Export", ""]
        if query is not None:
            lines.append(f"**Topic:** {query.text.strip()}")
            lines.append(f"**Report Type:** {query.report_kind.value}")
            if query.urls:
                lines.append("**Reference URLs:** " + ", ".join(query.urls))
            lines.append("")
        for message in messages:
            if message.sender is Sender.USER:
                speaker = "User"
            else:
                speaker = f"Assistant ({message.model_id or 'N/A'})"
            lines.extend(["---", "", f"## {speaker} · {_stamp(message.timestamp)}", ""])
            if message.is_error:
                lines.append("**Status:** error")
            elif message.is_cancelled:
                lines.append("**Status:** cancelled")
            elif message.is_loading:
                lines.append("**Status:** in progress")
            if message.uploaded_files:
                lines.append("**Files:** " + ", ".join(f.name for f in message.uploaded_files))
            if message.grounding_sources:
                lines.append(self._render_grounding(message.grounding_sources))
            lines.extend(["", message.text, ""])
        return "\n".join(lines).rstrip("\n") + "\n"

    def sources_filename(self, generated_at: datetime | None = None) -> str:
        return f"Sources_{(generated_at or datetime.now(timezone.utc)).date().isoformat()}.md"

    def session_filename(self, generated_at: datetime | None = None) -> str:
        return f"Session_{(generated_at or datetime.now(timezone.utc)).date().isoformat()}.md"

    def _render_grounding(self, grounding: list[GroundingSource] | None) -> str:
        sources = [s for s in grounding or [] if s.uri]
        if not sources:
            return "**Grounding Sources:** N/A"
        entries = [f"  - [{s.title or s.uri}]({s.uri})" for s in sources]
        return "**Grounding Sources:**\n" + "\n".join(entries)
