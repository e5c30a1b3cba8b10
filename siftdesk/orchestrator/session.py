"""Conversation session — drives one generation at a time through the pipeline.

stream events -> think splitter -> render buffer -> live message
final text    -> redirect correction -> source extraction -> reconciliation
              -> link validation (background) and section parsing
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

import aiosqlite

from siftdesk.backends.base import DEFAULT_SYSTEM_PROMPT, GenerationRequest, ReportBackend
from siftdesk.backends.registry import build_backend
from siftdesk.config import Settings, settings
from siftdesk.db.cache import CacheableRequest, ReportCache, derive_cache_key
from siftdesk.db.database import Database
from siftdesk.models.catalog import Provider, default_params
from siftdesk.models.events import (
    ChunkEvent,
    ErrorEvent,
    FinalEvent,
    SourcesEvent,
    StatusEvent,
    StreamEvent,
)
from siftdesk.models.message import Message, Sender
from siftdesk.models.query import ResearchQuery
from siftdesk.models.report import CacheEntry, ParsedReportSection, ReportKind
from siftdesk.models.source import ExtractedSource, GroundingSource, LinkStatus, SourceAssessment
from siftdesk.orchestrator.autosave import AutoSaver
from siftdesk.orchestrator.broadcast import Broadcaster
from siftdesk.orchestrator.citations import inject_source_indices
from siftdesk.orchestrator.history import truncate_history
from siftdesk.orchestrator.link_validator import LinkValidator
from siftdesk.orchestrator.reconciler import SourceLedger
from siftdesk.orchestrator.redirects import correct_redirect_links
from siftdesk.orchestrator.render_buffer import RenderBuffer
from siftdesk.orchestrator.report_parser import parse_report_sections
from siftdesk.orchestrator.source_extractor import extract_sources
from siftdesk.orchestrator.think_splitter import ThinkBlockSplitter, split_think_blocks

logger = logging.getLogger(__name__)

CONNECTION_ERROR_TEXT = "An unexpected connection error occurred."
INCOMPLETE_STREAM_TEXT = "The response ended before it was complete."


class GenerationBusyError(RuntimeError):
    """A follow-up was sent while a generation is still streaming."""


def compose_initial_prompt(query: ResearchQuery) -> str:
    parts = [f"Report type: {query.report_kind.value}", f"Topic: {query.text.strip()}"]
    if query.context.strip():
        parts.append(f"Additional context:\n{query.context.strip()}")
    if query.urls:
        parts.append("Reference URLs:\n" + "\n".join(f"- {u}" for u in query.urls))
    return "\n\n".join(parts)


def compose_follow_up(text: str, command: str | None = None) -> str:
    return f"[COMMAND: {command}] {text}" if command else text


@dataclass
class _Run:
    """Per-generation streaming state."""

    message: Message
    buffer: RenderBuffer
    splitter: ThinkBlockSplitter = field(default_factory=ThinkBlockSplitter)
    cache_key: str | None = None
    terminal: bool = False


class ConversationSession:
    """Owns the transcript, the source ledger and the single live generation."""

    def __init__(
        self,
        db: Database | None = None,
        broadcaster: Broadcaster | None = None,
        backend_factory: Callable[[Provider, str], ReportBackend] = build_backend,
        validator: LinkValidator | None = None,
        config: Settings = settings,
    ) -> None:
        self.db = db
        self.cache = ReportCache(db) if db is not None else None
        self.broadcaster = broadcaster or Broadcaster()
        self.backend_factory = backend_factory
        self.validator = validator or LinkValidator(timeout=config.link_check_timeout)
        self.config = config

        self.messages: list[Message] = []
        self.ledger = SourceLedger()
        self.sections: list[ParsedReportSection] = []
        self.query: ResearchQuery | None = None
        self.provider = Provider(config.default_provider)
        self.model_id = config.default_model
        self.config_params: dict = default_params(self.provider, self.model_id)
        self.custom_system_prompt = config.system_prompt
        self.status_message: str | None = None
        self.save_status = "idle"
        self.last_saved_at: datetime | None = None

        self._generation: asyncio.Task | None = None
        self._cancel_event: asyncio.Event | None = None
        self._validations: set[asyncio.Task] = set()
        self.autosaver = AutoSaver(self.save, delay=config.autosave_delay)

    # -- Public API --

    @property
    def is_generating(self) -> bool:
        return self._generation is not None and not self._generation.done()

    def select_model(self, provider: Provider, model_id: str, params: dict | None = None) -> None:
        self.provider = provider
        self.model_id = model_id
        self.config_params = {**default_params(provider, model_id), **(params or {})}

    async def start(self, query: ResearchQuery) -> tuple[Message, Message]:
        """Begin a new session with an initial report, cancelling any live one."""
        await self.cancel_generation()
        self._cancel_validations()
        self.messages = []
        self.ledger.clear()
        self.sections = []
        self.query = query

        prompt = compose_initial_prompt(query)
        cache_key = None
        if self.config.cache_enabled and self.cache is not None:
            cache_key = derive_cache_key(
                CacheableRequest(
                    text=prompt,
                    report_kind=query.report_kind,
                    provider=self.provider.value,
                    model_id=self.model_id,
                    config_params=self.config_params,
                    files=query.files,
                    prompt_version=self.config.prompt_version,
                )
            )
        request = GenerationRequest(
            prompt=prompt,
            system_prompt=self.custom_system_prompt or DEFAULT_SYSTEM_PROMPT,
            files=list(query.files),
            params=dict(self.config_params),
            is_initial_report=True,
            report_kind=query.report_kind,
        )
        return self._begin(query.text, request, files=query.files, cache_key=cache_key)

    async def send(self, text: str, command: str | None = None) -> tuple[Message, Message]:
        """Send a follow-up in the current conversation."""
        if self.is_generating:
            raise GenerationBusyError("A response is still being generated")
        request = GenerationRequest(
            prompt=compose_follow_up(text, command),
            system_prompt=self.custom_system_prompt or DEFAULT_SYSTEM_PROMPT,
            history=truncate_history(self.messages, self.config.max_recent_turns),
            params=dict(self.config_params),
        )
        return self._begin(text, request)

    async def wait(self) -> None:
        """Wait for the live generation (if any) to finish."""
        if self._generation is not None:
            await asyncio.shield(self._generation)

    async def cancel_generation(self) -> None:
        """Signal cancellation and wait for the stream loop to wind down."""
        if not self.is_generating:
            return
        if self._cancel_event is not None:
            self._cancel_event.set()
        await self.wait()

    async def wait_for_validations(self) -> None:
        if self._validations:
            await asyncio.gather(*list(self._validations), return_exceptions=True)

    async def shutdown(self) -> None:
        """Stop the live generation and link checks, then write a final save."""
        await self.cancel_generation()
        pending = list(self._validations)
        self._cancel_validations()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        if self.db is not None:
            await self.autosaver.flush()

    async def reset(self) -> None:
        await self.cancel_generation()
        self._cancel_validations()
        self.autosaver.cancel()
        self.messages = []
        self.ledger.clear()
        self.sections = []
        self.query = None
        self._set_status(None)
        if self.db is not None:
            try:
                await self.db.clear_session()
            except aiosqlite.Error as exc:
                logger.error("Could not clear saved session: %s", exc)
        self._publish({"type": "reset"})

    def assessments(self) -> list[SourceAssessment]:
        return self.ledger.snapshot()

    def latest_report(self) -> Message | None:
        for message in reversed(self.messages):
            if message.is_initial_report and not message.is_error and not message.is_loading:
                return message
        return None

    def snapshot(self) -> dict:
        return {
            "messages": [m.to_dict() for m in self.messages],
            "assessments": [a.to_dict() for a in self.ledger.snapshot()],
            "sections": [s.to_dict() for s in self.sections],
            "status_message": self.status_message,
            "is_generating": self.is_generating,
            "save_status": self.save_status,
            "last_saved_at": self.last_saved_at.isoformat() if self.last_saved_at else None,
            "provider": self.provider.value,
            "model_id": self.model_id,
            "config_params": dict(self.config_params),
        }

    # -- Generation --

    def _begin(
        self,
        text: str,
        request: GenerationRequest,
        files: list | None = None,
        cache_key: str | None = None,
    ) -> tuple[Message, Message]:
        user_msg = Message(sender=Sender.USER, text=text, uploaded_files=list(files or []))
        ai_msg = Message(
            sender=Sender.ASSISTANT,
            is_loading=True,
            model_id=self.model_id,
            is_initial_report=request.is_initial_report,
            report_kind=request.report_kind,
        )
        self.messages.extend([user_msg, ai_msg])
        self._publish_message(user_msg)
        self._publish_message(ai_msg)

        self._cancel_event = asyncio.Event()
        self._generation = asyncio.create_task(
            self._run(ai_msg, request, self._cancel_event, cache_key)
        )
        return user_msg, ai_msg

    async def _run(
        self,
        message: Message,
        request: GenerationRequest,
        cancel_event: asyncio.Event,
        cache_key: str | None,
    ) -> None:
        run = _Run(
            message=message,
            buffer=RenderBuffer(
                lambda text: self._on_render(message, text),
                interval=self.config.render_interval,
            ),
            cache_key=cache_key,
        )
        self._set_status("Preparing analysis...")
        try:
            if cache_key and await self._serve_from_cache(run, cache_key):
                return
            try:
                backend = self.backend_factory(self.provider, self.model_id)
            except ValueError as exc:
                logger.warning("No backend for %s/%s: %s", self.provider.value, self.model_id, exc)
                message.text = str(exc)
                message.is_error = True
                return
            await self._consume(backend, request, cancel_event, run)
        except Exception:
            logger.exception("Generation failed for message %s", message.id)
            run.buffer.flush()
            message.text = CONNECTION_ERROR_TEXT
            message.is_error = True
        finally:
            if not run.terminal and not message.is_error:
                # Release anything held back as a possible partial marker.
                tail = run.splitter.flush()
                message.reasoning += tail.reasoning
                if tail.visible:
                    run.buffer.append(tail.visible)
            run.buffer.close()
            if not run.terminal and not message.is_error:
                if cancel_event.is_set():
                    message.is_cancelled = True
                    logger.info("Generation %s cancelled", message.id)
                else:
                    message.is_error = True
                    message.text = message.text or INCOMPLETE_STREAM_TEXT
            message.is_loading = False
            self._set_status(None)
            self._publish_message(message)
            if self.db is not None:
                self.autosaver.schedule()

    async def _consume(
        self,
        backend: ReportBackend,
        request: GenerationRequest,
        cancel_event: asyncio.Event,
        run: _Run,
    ) -> None:
        stream = backend.stream(request, cancel_event)
        try:
            async for event in stream:
                if cancel_event.is_set():
                    break
                await self._handle_event(run, event)
                if run.terminal:
                    break
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

    async def _handle_event(self, run: _Run, event: StreamEvent) -> None:
        message = run.message
        if isinstance(event, StatusEvent):
            self._set_status(event.message)
        elif isinstance(event, ChunkEvent):
            out = run.splitter.feed(event.text)
            if out.reasoning:
                message.reasoning += out.reasoning
            if out.visible:
                run.buffer.append(out.visible)
        elif isinstance(event, SourcesEvent):
            message.grounding_sources = list(event.sources)
            self._publish({"type": "sources", "message_id": message.id,
                           "sources": [s.to_dict() for s in event.sources]})
        elif isinstance(event, ErrorEvent):
            run.buffer.flush()
            logger.warning("Provider error for %s: %s", message.id, event.error)
            message.text = event.error
            message.is_error = True
            run.terminal = True
        elif isinstance(event, FinalEvent):
            tail = run.splitter.flush()
            message.reasoning += tail.reasoning
            if tail.visible:
                run.buffer.append(tail.visible)
            run.buffer.flush()
            split = split_think_blocks(event.full_text)
            if not message.reasoning:
                message.reasoning = split.reasoning
            await self._complete(
                message,
                split.visible,
                event.grounding_sources if event.grounding_sources is not None else message.grounding_sources,
                model_id=event.model_id,
                cache_key=event.cache_key or run.cache_key,
            )
            run.terminal = True
        else:
            raise TypeError(f"Unknown stream event: {event!r}")

    async def _serve_from_cache(self, run: _Run, cache_key: str) -> bool:
        entry = await self.cache.get(cache_key)
        if entry is None:
            return False
        logger.info("Serving report from cache (%s)", cache_key)
        run.message.is_from_cache = True
        run.message.report_kind = entry.report_kind
        await self._complete(
            run.message, entry.text, entry.grounding_sources, model_id=entry.model_id
        )
        run.terminal = True
        return True

    # -- Post-processing --

    async def _complete(
        self,
        message: Message,
        text: str,
        grounding: list[GroundingSource] | None,
        model_id: str | None = None,
        cache_key: str | None = None,
    ) -> None:
        text = self._stage("redirect correction", correct_redirect_links, text, grounding, default=text)
        message.text = text
        message.grounding_sources = grounding
        if model_id:
            message.model_id = model_id

        batch: list[ExtractedSource] = self._stage("source extraction", extract_sources, text, default=[])
        if batch:
            assessments = self._stage("reconciliation", self.ledger.reconcile, batch, default=None)
            if assessments is not None:
                self._publish_assessments(assessments)
                self._dispatch_validation(self.ledger.unchecked_urls())

        if message.is_initial_report and message.report_kind is ReportKind.FULL_CHECK:
            annotated = inject_source_indices(text, self.ledger.snapshot())
            self.sections = self._stage("section parsing", parse_report_sections, annotated, default=[])
            self._publish({"type": "sections", "sections": [s.to_dict() for s in self.sections]})

        if cache_key and self.cache is not None and message.is_initial_report and not message.is_from_cache:
            await self.cache.put(
                cache_key,
                CacheEntry(
                    text=text,
                    model_id=message.model_id or self.model_id,
                    report_kind=message.report_kind or ReportKind.FULL_CHECK,
                    grounding_sources=grounding,
                ),
            )

    def _stage(self, name: str, func, *args, default):
        """Run one post-processing step; a failure degrades to ``default``."""
        try:
            return func(*args)
        except Exception:
            logger.exception("Report %s failed; continuing without it", name)
            return default

    def _dispatch_validation(self, urls: list[str]) -> None:
        if not urls:
            return
        task = asyncio.create_task(
            self.validator.validate(self.ledger, urls, on_update=self._publish_assessments)
        )
        self._validations.add(task)
        task.add_done_callback(self._on_validation_done)

    def _on_validation_done(self, task: asyncio.Task) -> None:
        self._validations.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Link validation failed: %s", exc)
        elif self.db is not None:
            self.autosaver.schedule()

    def _cancel_validations(self) -> None:
        for task in list(self._validations):
            task.cancel()
        self._validations.clear()

    # -- Persistence --

    def to_state(self) -> dict:
        """Serializable session state; file contents are left out."""
        return {
            "messages": [m.to_dict() for m in self.messages],
            "query": self.query.to_dict() if self.query else None,
            "assessments": [a.to_dict() for a in self.ledger.snapshot()],
            "provider": self.provider.value,
            "model_id": self.model_id,
            "config_params": dict(self.config_params),
            "custom_system_prompt": self.custom_system_prompt,
        }

    def load_state(self, state: dict) -> None:
        messages = [Message.from_dict(m) for m in state.get("messages", [])]
        assessments = [SourceAssessment.from_dict(a) for a in state.get("assessments", [])]
        query = state.get("query")

        # A save taken mid-stream or mid-check is resumed as interrupted.
        for message in messages:
            if message.is_loading:
                message.is_loading = False
                message.is_cancelled = True
        for assessment in assessments:
            if assessment.link_status is LinkStatus.CHECKING:
                assessment.link_status = LinkStatus.UNCHECKED

        self.messages = messages
        self.ledger = SourceLedger(assessments)
        self.query = ResearchQuery.from_dict(query) if query else None
        self.provider = Provider(state.get("provider", self.provider.value))
        self.model_id = state.get("model_id", self.model_id)
        self.config_params = dict(state.get("config_params", self.config_params))
        self.custom_system_prompt = state.get("custom_system_prompt", self.custom_system_prompt)

        report = self.latest_report()
        if report is not None and report.report_kind is ReportKind.FULL_CHECK:
            annotated = inject_source_indices(report.text, self.ledger.snapshot())
            self.sections = self._stage("section parsing", parse_report_sections, annotated, default=[])
        else:
            self.sections = []

    async def save(self) -> bool:
        if self.db is None:
            return False
        self._set_save_status("saving")
        try:
            await self.db.save_session(self.to_state())
        except (aiosqlite.Error, TypeError, ValueError) as exc:
            logger.error("Failed to save session: %s", exc)
            self._set_save_status("error")
            return False
        self.last_saved_at = datetime.now(timezone.utc)
        self._set_save_status("saved")
        return True

    async def restore(self) -> bool:
        """Load the saved session. A corrupt save is cleared."""
        if self.db is None:
            return False
        try:
            state = await self.db.load_session()
        except aiosqlite.Error as exc:
            logger.error("Could not read saved session: %s", exc)
            return False
        if state is None:
            return False
        # Checks still running against the outgoing ledger must not publish.
        self._cancel_validations()
        self.autosaver.cancel()
        try:
            self.load_state(state)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            logger.error("Saved session is unusable, clearing it: %s", exc)
            await self.db.clear_session()
            return False
        logger.info(
            "Restored session: %d messages, %d assessments", len(self.messages), len(self.ledger)
        )
        self._dispatch_validation(self.ledger.unchecked_urls())
        return True

    # -- Notifications --

    def _on_render(self, message: Message, text: str) -> None:
        message.text = text
        self._publish_message(message)

    def _set_status(self, status: str | None) -> None:
        self.status_message = status
        self._publish({"type": "status", "message": status})

    def _set_save_status(self, status: str) -> None:
        self.save_status = status
        self._publish({"type": "save_status", "status": status})

    def _publish_message(self, message: Message) -> None:
        self._publish({"type": "message", "message": message.to_dict()})

    def _publish_assessments(self, assessments: list[SourceAssessment]) -> None:
        self._publish({"type": "assessments", "assessments": [a.to_dict() for a in assessments]})

    def _publish(self, payload: dict) -> None:
        self.broadcaster.publish(payload)
