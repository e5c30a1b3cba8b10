"""Link validator — checks cited URLs concurrently and classifies them."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable
from urllib.parse import urlsplit

import httpx

from siftdesk.config import settings
from siftdesk.models.source import LinkStatus, SourceAssessment
from siftdesk.orchestrator.reconciler import SourceLedger

logger = logging.getLogger(__name__)

USER_AGENT = "siftdesk-link-check/0.1"
# Servers that refuse HEAD get one GET before we call the link broken.
HEAD_REJECTED = {405, 501}


def is_checkable(url: str) -> bool:
    """Syntactic pre-check: absolute http(s) URL with a host."""
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return False
    return parts.scheme in ("http", "https") and bool(parts.hostname)


def classify_status(status_code: int) -> LinkStatus:
    return LinkStatus.VALID if status_code < 400 else LinkStatus.INVALID


class LinkValidator:
    """Checks each URL independently; one failing check never affects another."""

    def __init__(
        self,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout = settings.link_check_timeout if timeout is None else timeout
        self._transport = transport

    async def check_urls(
        self,
        urls: list[str],
        on_result: Callable[[str, LinkStatus], None] | None = None,
    ) -> dict[str, LinkStatus]:
        """Check all URLs concurrently and return url -> final status.

        ``on_result`` is called for each URL as soon as its own check ends,
        so a slow host never holds back the others.
        """
        unique = list(dict.fromkeys(urls))
        results: dict[str, LinkStatus] = {}

        def record(url: str, status: LinkStatus) -> None:
            results[url] = status
            if on_result:
                on_result(url, status)

        to_check: list[str] = []
        for url in unique:
            if is_checkable(url):
                to_check.append(url)
            else:
                record(url, LinkStatus.INVALID)
        if not to_check:
            return results

        async with httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=False,
            headers={"User-Agent": USER_AGENT},
            transport=self._transport,
        ) as client:
            await asyncio.gather(
                *[self._check_one(client, url, record) for url in to_check],
                return_exceptions=True,
            )
        return results

    async def _check_one(
        self,
        client: httpx.AsyncClient,
        url: str,
        record: Callable[[str, LinkStatus], None],
    ) -> None:
        try:
            status = await asyncio.wait_for(self._request(client, url), self.timeout)
        except asyncio.TimeoutError:
            logger.info("Link check for %s timed out after %.1fs", url, self.timeout)
            status = LinkStatus.ERROR_CHECKING
        except Exception as exc:
            logger.warning("Link check for %s failed unexpectedly: %s", url, exc)
            status = LinkStatus.ERROR_CHECKING
        record(url, status)

    async def _request(self, client: httpx.AsyncClient, url: str) -> LinkStatus:
        try:
            response = await client.head(url)
            if response.status_code in HEAD_REJECTED:
                async with client.stream("GET", url) as streamed:
                    response = streamed
            status = classify_status(response.status_code)
            logger.debug("Link %s -> %d (%s)", url, response.status_code, status.value)
            return status
        except (httpx.HTTPError, ValueError) as exc:
            logger.info("Could not check %s: %s", url, exc)
            return LinkStatus.ERROR_CHECKING

    async def validate(
        self,
        ledger: SourceLedger,
        urls: list[str],
        on_update: Callable[[list[SourceAssessment]], None] | None = None,
    ) -> list[SourceAssessment]:
        """Move ``urls`` to checking, then merge each result into the ledger as it lands."""
        if not urls:
            return ledger.snapshot()

        checking = ledger.set_link_statuses({url: LinkStatus.CHECKING for url in urls})
        if on_update:
            on_update(checking)

        def merge(url: str, status: LinkStatus) -> None:
            updated = ledger.set_link_statuses({url: status})
            if on_update:
                on_update(updated)

        results = await self.check_urls(urls, on_result=merge)
        logger.info(
            "Checked %d link(s): %d valid, %d invalid, %d unknown",
            len(results),
            sum(1 for s in results.values() if s is LinkStatus.VALID),
            sum(1 for s in results.values() if s is LinkStatus.INVALID),
            sum(1 for s in results.values() if s is LinkStatus.ERROR_CHECKING),
        )
        return ledger.snapshot()
