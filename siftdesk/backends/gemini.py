"""Gemini streaming backend — generateContent over SSE with Google Search grounding."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import AsyncIterator

import httpx

from siftdesk.backends.base import GenerationRequest, number_param, strip_data_url
from siftdesk.models.catalog import ModelConfig
from siftdesk.models.events import (
    ChunkEvent,
    ErrorEvent,
    FinalEvent,
    SourcesEvent,
    StatusEvent,
    StreamEvent,
)
from siftdesk.models.source import GroundingSource

logger = logging.getLogger(__name__)

GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta/models"


class GeminiBackend:
    """Research backend using Google's Gemini API."""

    name: str = "Gemini"

    def __init__(
        self,
        model: ModelConfig,
        api_key: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.model = model
        self.model_id = model.id
        self.api_key = api_key
        self._transport = transport

    async def stream(
        self, request: GenerationRequest, cancel_event: asyncio.Event | None = None
    ) -> AsyncIterator[StreamEvent]:
        yield StatusEvent("Connecting to AI provider...")

        full_text = ""
        grounding: list[GroundingSource] = []
        seen_uris: set[str] = set()
        try:
            async with httpx.AsyncClient(timeout=300.0, transport=self._transport) as client:
                async with client.stream(
                    "POST",
                    f"{GEMINI_API_URL}/{self.model_id}:streamGenerateContent",
                    params={"alt": "sse"},
                    headers={
                        "Content-Type": "application/json",
                        "x-goog-api-key": self.api_key,
                    },
                    json=self._build_payload(request),
                ) as response:
                    if response.status_code >= 400:
                        body = (await response.aread()).decode("utf-8", "replace")
                        yield ErrorEvent(f"Gemini returned {response.status_code}: {body[:300]}")
                        return

                    async for line in response.aiter_lines():
                        if cancel_event is not None and cancel_event.is_set():
                            break
                        chunk = self._parse_sse_line(line)
                        if chunk is None:
                            continue

                        text = self._extract_text(chunk)
                        if text:
                            full_text += text
                            yield ChunkEvent(text)

                        new_sources = [
                            s for s in self._extract_grounding(chunk) if s.uri not in seen_uris
                        ]
                        if new_sources:
                            seen_uris.update(s.uri for s in new_sources)
                            grounding.extend(new_sources)
                            yield SourcesEvent(list(grounding))
        except httpx.HTTPError as exc:
            logger.error("Gemini stream failed: %s", exc)
            yield ErrorEvent(str(exc) or "An error occurred during generation.")
            return

        logger.info("Gemini stream finished (%d chars, %d sources)", len(full_text), len(grounding))
        yield FinalEvent(
            full_text=full_text,
            model_id=self.model_id,
            grounding_sources=grounding,
            is_initial_report=request.is_initial_report,
            report_kind=request.report_kind,
        )

    def _build_payload(self, request: GenerationRequest) -> dict:
        contents: list[dict] = [
            {"role": "user" if turn.role == "user" else "model", "parts": [{"text": turn.text}]}
            for turn in request.history
        ]
        parts: list[dict] = [
            {"inline_data": {"mime_type": f.mime_type, "data": strip_data_url(f.content)}}
            for f in request.files
            if f.content
        ]
        parts.append({"text": request.prompt})
        contents.append({"role": "user", "parts": parts})

        generation_config: dict = {}
        for key in ("temperature", "topP", "topK"):
            value = number_param(request.params, key)
            if value is not None:
                generation_config[key] = int(value) if key == "topK" else value
        if self.model.supports_thinking:
            budget = number_param(request.params, "thinkingBudget", 0)
            generation_config["thinkingConfig"] = {"thinkingBudget": int(budget or 0)}
            max_tokens = number_param(request.params, "maxOutputTokens")
            if max_tokens:
                generation_config["maxOutputTokens"] = int(max_tokens)

        payload: dict = {
            "contents": contents,
            "systemInstruction": {"parts": [{"text": request.system_prompt}]},
            "generationConfig": generation_config,
        }
        if self.model.supports_search:
            payload["tools"] = [{"google_search": {}}]
        return payload

    def _parse_sse_line(self, line: str) -> dict | None:
        line = line.strip()
        if not line.startswith("data:"):
            return None
        try:
            data = json.loads(line[len("data:"):].strip())
        except json.JSONDecodeError as exc:
            logger.warning("Gemini: skipping malformed stream chunk: %s", exc)
            return None
        return data if isinstance(data, dict) else None

    def _extract_text(self, chunk: dict) -> str:
        candidates = chunk.get("candidates") or []
        if not candidates:
            return ""
        parts = (candidates[0].get("content") or {}).get("parts") or []
        # Thought summaries are flagged separately and are not part of the answer.
        return "".join(p.get("text", "") for p in parts if not p.get("thought"))

    def _extract_grounding(self, chunk: dict) -> list[GroundingSource]:
        candidates = chunk.get("candidates") or []
        if not candidates:
            return []
        metadata = candidates[0].get("groundingMetadata") or {}
        sources: list[GroundingSource] = []
        for item in metadata.get("groundingChunks") or []:
            web = item.get("web") or {}
            if web.get("uri"):
                sources.append(GroundingSource(title=web.get("title") or "", uri=web["uri"]))
        return sources
