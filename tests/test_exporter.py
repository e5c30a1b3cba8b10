from __future__ import annotations

from datetime import datetime, timezone

from siftdesk.models.message import Message, Sender
from siftdesk.models.report import ReportKind
from siftdesk.models.query import ResearchQuery, UploadedFile
from siftdesk.models.source import GroundingSource, LinkStatus, SourceAssessment
from siftdesk.orchestrator.exporter import MarkdownExporter, export_filename


def _report(**kwargs) -> Message:
    return Message(
        sender=Sender.ASSISTANT,
        text="## Findings\nAll checked.",
        is_initial_report=True,
        report_kind=ReportKind.FULL_CHECK,
        model_id="gemini-3-flash-preview",
        timestamp=datetime(2026, 3, 4, 12, 30, tzinfo=timezone.utc),
        **kwargs,
    )


def test_export_filename():
    when = datetime(2026, 3, 4, 23, 59, tzinfo=timezone.utc)
    assert export_filename(ReportKind.FULL_CHECK, when) == "Report_Full_Check_2026-03-04.md"
    assert export_filename(ReportKind.COMMUNITY_NOTE, when) == "Report_Community_Note_2026-03-04.md"


def test_header_then_original_text():
    output = MarkdownExporter().generate(_report())
    assert output.startswith("# Report Export\n")
    assert "**Report Type:** Full Check" in output
    assert "**Model Used:** gemini-3-flash-preview" in output
    assert "**Grounding Sources:** N/A" in output
    assert "local cache" not in output
    assert output.endswith("---\n\n## Findings\nAll checked.")


def test_cache_note_and_grounding_list():
    message = _report(
        is_from_cache=True,
        grounding_sources=[GroundingSource(title="NASA", uri="https://nasa.gov")],
    )
    output = MarkdownExporter().generate(message)
    assert "loaded from local cache" in output
    assert "  - [NASA](https://nasa.gov)" in output


def test_filename_for_message():
    assert MarkdownExporter().filename(_report()) == "Report_Full_Check_2026-03-04.md"


def test_sources_table_rows_and_escaping():
    assessments = [
        SourceAssessment(1, "Reuters", "https://reuters.com/a", "Wire report", "Primary", "5", LinkStatus.VALID),
        SourceAssessment(2, "A | B Blog", "https://blog.example/post", "Opinion", "cites\nnothing", "2"),
    ]
    output = MarkdownExporter().sources_table(assessments)
    lines = output.splitlines()

    assert lines[0] == "# Source Assessments"
    assert lines[2] == "| # | Source | Assessment | Notes | Rating | Link Status |"
    assert lines[3] == "|---|---|---|---|---|---|"
    assert lines[4] == "| 1 | [Reuters](https://reuters.com/a) | Wire report | Primary | 5 | valid |"
    assert lines[5] == (
        "| 2 | [A \\| B Blog](https://blog.example/post) | Opinion | cites nothing | 2 | unchecked |"
    )


def test_session_transcript_lists_every_message():
    query = ResearchQuery(text="Did the bridge open in 1932?", urls=["https://x.example"])
    user = Message(
        sender=Sender.USER,
        text="Did the bridge open in 1932?",
        uploaded_files=[UploadedFile(name="photo.png", mime_type="image/png")],
        timestamp=datetime(2026, 3, 4, 12, 29, tzinfo=timezone.utc),
    )
    follow_up = Message(
        sender=Sender.ASSISTANT,
        text="Partial answer",
        is_cancelled=True,
        timestamp=datetime(2026, 3, 4, 12, 31, tzinfo=timezone.utc),
    )
    output = MarkdownExporter().session_transcript([user, _report(), follow_up], query)

    assert output.startswith("# Session Export\n\n**Topic:** Did the bridge open in 1932?\n")
    assert "**Reference URLs:** https://x.example" in output
    assert "## User · 2026-03-04 12:29:00 UTC" in output
    assert "**Files:** photo.png" in output
    assert "## Assistant (gemini-3-flash-preview) · 2026-03-04 12:30:00 UTC" in output
    assert "## Assistant (N/A) · 2026-03-04 12:31:00 UTC\n\n**Status:** cancelled" in output
    assert output.index("All checked.") < output.index("Partial answer")
    assert output.endswith("Partial answer\n")


def test_sources_and_session_filenames():
    when = datetime(2026, 3, 4, 8, 0, tzinfo=timezone.utc)
    exporter = MarkdownExporter()
    assert exporter.sources_filename(when) == "Sources_2026-03-04.md"
    assert exporter.session_filename(when) == "Session_2026-03-04.md"
