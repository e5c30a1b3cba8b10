from __future__ import annotations

from siftdesk.models.source import SourceAssessment
from siftdesk.orchestrator.citations import inject_source_indices


def test_known_links_get_their_index():
    assessments = [
        SourceAssessment(1, "A", "https://a.example", "", "", "5"),
        SourceAssessment(2, "B", "https://b.example", "", "", "3"),
    ]
    text = "See [B](https://b.example) and [A](https://a.example) but not [C](https://c.example)."
    assert inject_source_indices(text, assessments) == (
        "See [B](https://b.example)[2] and [A](https://a.example)[1] but not [C](https://c.example)."
    )


def test_images_and_empty_assessments_untouched():
    text = "![chart](https://a.example)"
    assessments = [SourceAssessment(1, "A", "https://a.example", "", "", "5")]
    assert inject_source_indices(text, assessments) == text
    assert inject_source_indices("[A](https://a.example)", []) == "[A](https://a.example)"
