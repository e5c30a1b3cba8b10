from __future__ import annotations

import asyncio

import httpx
import pytest

from siftdesk.models.source import ExtractedSource, LinkStatus
from siftdesk.orchestrator.link_validator import LinkValidator, classify_status, is_checkable
from siftdesk.orchestrator.reconciler import SourceLedger


def _handler(request: httpx.Request) -> httpx.Response:
    host = request.url.host
    if host == "ok.example":
        return httpx.Response(200)
    if host == "moved.example":
        return httpx.Response(301, headers={"Location": "https://ok.example/"})
    if host == "gone.example":
        return httpx.Response(404)
    if host == "nohead.example":
        return httpx.Response(405 if request.method == "HEAD" else 200)
    if host == "down.example":
        raise httpx.ConnectError("connection refused", request=request)
    return httpx.Response(500)


def _validator() -> LinkValidator:
    return LinkValidator(timeout=1.0, transport=httpx.MockTransport(_handler))


@pytest.mark.parametrize(
    "url,expected",
    [
        ("https://ok.example/page", True),
        ("http://ok.example", True),
        ("ftp://files.example/x", False),
        ("not a url", False),
        ("https://", False),
        ("", False),
    ],
)
def test_is_checkable(url, expected):
    assert is_checkable(url) is expected


def test_classify_status():
    assert classify_status(204) is LinkStatus.VALID
    assert classify_status(302) is LinkStatus.VALID
    assert classify_status(404) is LinkStatus.INVALID
    assert classify_status(503) is LinkStatus.INVALID


@pytest.mark.asyncio
async def test_check_urls_classifies_each_independently():
    results = await _validator().check_urls(
        [
            "https://ok.example/a",
            "https://moved.example/b",
            "https://gone.example/c",
            "https://nohead.example/d",
            "https://down.example/e",
            "https://broken.example/f",
            "mailto:someone@example.com",
        ]
    )
    assert results == {
        "https://ok.example/a": LinkStatus.VALID,
        "https://moved.example/b": LinkStatus.VALID,
        "https://gone.example/c": LinkStatus.INVALID,
        "https://nohead.example/d": LinkStatus.VALID,
        "https://down.example/e": LinkStatus.ERROR_CHECKING,
        "https://broken.example/f": LinkStatus.INVALID,
        "mailto:someone@example.com": LinkStatus.INVALID,
    }


@pytest.mark.asyncio
async def test_invalid_syntax_never_hits_network():
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200)

    validator = LinkValidator(timeout=1.0, transport=httpx.MockTransport(handler))
    results = await validator.check_urls(["javascript:alert(1)"])
    assert results == {"javascript:alert(1)": LinkStatus.INVALID}
    assert calls == []


@pytest.mark.asyncio
async def test_validate_transitions_through_checking():
    ledger = SourceLedger()
    ledger.reconcile(
        [
            ExtractedSource("Ok", "https://ok.example/a", "a", "n", "5"),
            ExtractedSource("Gone", "https://gone.example/b", "a", "n", "4"),
            ExtractedSource("Other", "https://ok.example/untouched", "a", "n", "1"),
        ]
    )
    updates: list[list] = []

    result = await _validator().validate(
        ledger,
        ["https://ok.example/a", "https://gone.example/b"],
        on_update=updates.append,
    )

    # One checking update, then one per finished URL.
    assert len(updates) == 3
    assert updates[-1] == result
    assert [a.link_status for a in updates[0]] == [
        LinkStatus.CHECKING,
        LinkStatus.CHECKING,
        LinkStatus.UNCHECKED,
    ]
    assert [a.link_status for a in result] == [
        LinkStatus.VALID,
        LinkStatus.INVALID,
        LinkStatus.UNCHECKED,
    ]


@pytest.mark.asyncio
async def test_validate_with_no_urls_is_a_no_op():
    ledger = SourceLedger()
    updates: list = []
    assert await _validator().validate(ledger, [], on_update=updates.append) == []
    assert updates == []


@pytest.mark.asyncio
async def test_fast_link_is_merged_before_slow_one_finishes():
    gate = asyncio.Event()

    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "slow.example":
            await gate.wait()
        return httpx.Response(200)

    ledger = SourceLedger()
    ledger.reconcile(
        [
            ExtractedSource("Fast", "https://fast.example/", "a", "n", "5"),
            ExtractedSource("Slow", "https://slow.example/", "a", "n", "5"),
        ]
    )
    validator = LinkValidator(timeout=5.0, transport=httpx.MockTransport(handler))
    task = asyncio.create_task(
        validator.validate(ledger, ["https://fast.example/", "https://slow.example/"])
    )

    async def fast_is_valid() -> None:
        while ledger.snapshot()[0].link_status is not LinkStatus.VALID:
            await asyncio.sleep(0.01)

    await asyncio.wait_for(fast_is_valid(), 1.0)
    assert ledger.snapshot()[1].link_status is LinkStatus.CHECKING

    gate.set()
    result = await task
    assert [a.link_status for a in result] == [LinkStatus.VALID, LinkStatus.VALID]


@pytest.mark.asyncio
async def test_timeout_bounds_head_and_get_fallback_together():
    async def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "HEAD":
            return httpx.Response(405)
        await asyncio.sleep(5)
        return httpx.Response(200)

    validator = LinkValidator(timeout=0.05, transport=httpx.MockTransport(handler))
    results = await asyncio.wait_for(validator.check_urls(["https://stalls.example/"]), 1.0)
    assert results == {"https://stalls.example/": LinkStatus.ERROR_CHECKING}
