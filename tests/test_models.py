from __future__ import annotations

import pytest

from siftdesk.models.catalog import Provider, default_model_for, default_params, find_model
from siftdesk.models.message import Message, Sender
from siftdesk.models.query import UploadedFile
from siftdesk.models.report import ReportKind
from siftdesk.models.source import GroundingSource, LinkStatus, SourceAssessment


def test_find_model_known_and_unknown():
    known = find_model(Provider.GOOGLE_GEMINI, "gemini-3-pro-preview")
    assert known.supports_search is True

    unknown = find_model(Provider.OPENROUTER, "someone/new-model")
    assert unknown.id == "someone/new-model"
    assert unknown.supports_vision is False
    assert "max_tokens" in unknown.default_params


def test_default_params_is_a_copy():
    params = default_params(Provider.OPENAI, "gpt-4.1")
    params["temperature"] = 2.0
    assert default_params(Provider.OPENAI, "gpt-4.1")["temperature"] == 0.7


def test_default_model_for_each_provider():
    for provider in Provider:
        assert find_model(provider, default_model_for(provider)).provider is provider


def test_message_serialization_keeps_flags_and_sources():
    message = Message(
        sender=Sender.ASSISTANT,
        text="report",
        grounding_sources=[GroundingSource("NASA", "https://nasa.gov")],
        uploaded_files=[UploadedFile(name="a.png", mime_type="image/png", content="AAAA", size=4)],
        is_initial_report=True,
        is_from_cache=True,
        report_kind=ReportKind.CONTEXT_REPORT,
    )
    data = message.to_dict()
    assert "content" not in data["uploaded_files"][0]

    restored = Message.from_dict(data)
    assert restored.id == message.id
    assert restored.timestamp == message.timestamp
    assert restored.report_kind is ReportKind.CONTEXT_REPORT
    assert restored.grounding_sources == message.grounding_sources
    assert restored.uploaded_files[0].content == ""
    assert restored.is_terminal is True


def test_assessment_from_dict_defaults():
    assessment = SourceAssessment.from_dict({"index": "2", "name": "A", "url": "https://a.example"})
    assert assessment.index == 2
    assert assessment.link_status is LinkStatus.UNCHECKED


def test_unknown_link_status_rejected():
    with pytest.raises(ValueError):
        SourceAssessment.from_dict({"index": 1, "name": "A", "url": "u", "link_status": "bogus"})
