"""OpenAI-compatible streaming backend — OpenAI, OpenRouter and Mistral."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import AsyncIterator

import httpx

from siftdesk.backends.base import GenerationRequest, number_param, strip_data_url
from siftdesk.models.catalog import ModelConfig, Provider
from siftdesk.models.events import (
    ChunkEvent,
    ErrorEvent,
    FinalEvent,
    StatusEvent,
    StreamEvent,
)

logger = logging.getLogger(__name__)

BASE_URLS = {
    Provider.OPENAI: "https://api.openai.com/v1",
    Provider.OPENROUTER: "https://openrouter.ai/api/v1",
    Provider.MISTRAL: "https://api.mistral.ai/v1",
}

_DONE = object()


class OpenAICompatibleBackend:
    """Streams chat completions over server-sent events."""

    def __init__(
        self,
        model: ModelConfig,
        api_key: str,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.model = model
        self.model_id = model.id
        self.name = model.provider.value
        self.api_key = api_key
        self.base_url = base_url or BASE_URLS[model.provider]
        self._transport = transport

    async def stream(
        self, request: GenerationRequest, cancel_event: asyncio.Event | None = None
    ) -> AsyncIterator[StreamEvent]:
        yield StatusEvent("Connecting to AI provider...")

        payload = self._build_payload(request)
        full_text = ""
        try:
            async with httpx.AsyncClient(timeout=300.0, transport=self._transport) as client:
                async with client.stream(
                    "POST",
                    f"{self.base_url}/chat/completions",
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                ) as response:
                    if response.status_code >= 400:
                        body = (await response.aread()).decode("utf-8", "replace")
                        yield ErrorEvent(f"{self.name} returned {response.status_code}: {body[:300]}")
                        return

                    async for line in response.aiter_lines():
                        if cancel_event is not None and cancel_event.is_set():
                            break
                        text = self._parse_sse_line(line)
                        if text is None:
                            continue
                        if text is _DONE:
                            break
                        full_text += text
                        yield ChunkEvent(text)
        except httpx.HTTPError as exc:
            logger.error("%s stream failed: %s", self.name, exc)
            yield ErrorEvent(str(exc) or "An error occurred during generation.")
            return

        yield FinalEvent(
            full_text=full_text,
            model_id=self.model_id,
            is_initial_report=request.is_initial_report,
            report_kind=request.report_kind,
        )

    def _build_payload(self, request: GenerationRequest) -> dict:
        messages: list[dict] = [{"role": "system", "content": request.system_prompt}]
        for turn in request.history:
            messages.append({"role": turn.role, "content": turn.text})

        content: list[dict] = [{"type": "text", "text": request.prompt}]
        if self.model.supports_vision:
            for f in request.files:
                if f.is_image:
                    data_url = f"data:{f.mime_type};base64,{strip_data_url(f.content)}"
                    content.append({"type": "image_url", "image_url": {"url": data_url}})
        messages.append({"role": "user", "content": content})

        payload: dict = {"model": self.model_id, "messages": messages, "stream": True}
        temperature = number_param(request.params, "temperature")
        if temperature is not None:
            payload["temperature"] = temperature
        top_p = number_param(request.params, "topP")
        if top_p is not None:
            payload["top_p"] = top_p
        max_tokens = number_param(request.params, "max_tokens")
        if max_tokens is not None:
            payload["max_tokens"] = int(max_tokens)
        return payload

    def _parse_sse_line(self, line: str):
        """Text delta of one SSE line, ``_DONE``, or None for anything else."""
        line = line.strip()
        if not line.startswith("data:"):
            return None
        data = line[len("data:"):].strip()
        if data == "[DONE]":
            return _DONE
        try:
            choices = json.loads(data).get("choices") or []
            if not choices:
                return None
            return (choices[0].get("delta") or {}).get("content") or None
        except (json.JSONDecodeError, AttributeError) as exc:
            logger.warning("%s: skipping malformed stream chunk: %s", self.name, exc)
            return None
