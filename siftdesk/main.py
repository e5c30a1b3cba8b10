"""SiftDesk — FastAPI application entry point."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from siftdesk.backends.registry import available_providers
from siftdesk.config import settings
from siftdesk.db.database import Database
from siftdesk.models.catalog import MODELS, Provider, default_model_for
from siftdesk.models.query import ResearchQuery, UploadedFile
from siftdesk.models.report import ReportKind
from siftdesk.orchestrator.exporter import MarkdownExporter
from siftdesk.orchestrator.session import ConversationSession, GenerationBusyError
from siftdesk.services.logger import configure_logging

logger = logging.getLogger(__name__)

db = Database(settings.database_path)
session = ConversationSession(db=db)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    await db.connect()
    await session.restore()
    yield
    await session.shutdown()
    await db.close()


app = FastAPI(
    title="SiftDesk",
    description="Streaming fact-check reports with source reconciliation",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Request / Response models ---


class FilePayload(BaseModel):
    name: str
    mime_type: str = "application/octet-stream"
    content: str = ""  # base64, optionally as a data: URL


class StartRequest(BaseModel):
    topic: str
    context: str = ""
    urls: list[str] = Field(default_factory=list)
    files: list[FilePayload] = Field(default_factory=list)
    report_kind: ReportKind = ReportKind.FULL_CHECK
    provider: Provider | None = None
    model_id: str | None = None
    config_params: dict | None = None


class FollowUpRequest(BaseModel):
    text: str
    command: str | None = None


class MessageIdsResponse(BaseModel):
    user_message_id: str
    assistant_message_id: str


# --- Routes ---


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/api/models")
async def list_models():
    configured = set(available_providers())
    return [
        {
            "id": m.id,
            "name": m.name,
            "provider": m.provider.value,
            "available": m.provider in configured,
            "default_params": m.default_params,
            "supports_search": m.supports_search,
            "supports_vision": m.supports_vision,
            "supports_thinking": m.supports_thinking,
        }
        for m in MODELS
    ]


@app.get("/api/session")
async def get_session():
    return session.snapshot()


@app.post("/api/session/start", response_model=MessageIdsResponse)
async def start_session(req: StartRequest):
    """Start a new session and its initial report.

    Returns immediately; progress is pushed over /ws/session.
    """
    if not req.topic.strip():
        raise HTTPException(status_code=422, detail="Topic must not be empty")

    if req.provider is not None or req.model_id is not None or req.config_params is not None:
        provider = req.provider or session.provider
        if req.model_id:
            model_id = req.model_id
        elif provider is session.provider:
            model_id = session.model_id
        else:
            model_id = default_model_for(provider)
        session.select_model(provider, model_id, req.config_params)

    query = ResearchQuery(
        text=req.topic,
        context=req.context,
        urls=[u.strip() for u in req.urls if u.strip()],
        files=[
            UploadedFile(name=f.name, mime_type=f.mime_type, content=f.content, size=len(f.content))
            for f in req.files
        ],
        report_kind=req.report_kind,
    )
    user_msg, ai_msg = await session.start(query)
    return MessageIdsResponse(user_message_id=user_msg.id, assistant_message_id=ai_msg.id)


@app.post("/api/session/messages", response_model=MessageIdsResponse)
async def send_message(req: FollowUpRequest):
    if session.query is None:
        raise HTTPException(status_code=409, detail="Start a session before sending follow-ups")
    try:
        user_msg, ai_msg = await session.send(req.text, command=req.command)
    except GenerationBusyError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    return MessageIdsResponse(user_message_id=user_msg.id, assistant_message_id=ai_msg.id)


@app.post("/api/session/cancel")
async def cancel_generation():
    await session.cancel_generation()
    return {"status": "cancelled"}


@app.post("/api/session/reset")
async def reset_session():
    await session.reset()
    return {"status": "reset"}


@app.post("/api/session/save")
async def save_session():
    saved = await session.save()
    return {"status": session.save_status, "saved": saved}


@app.post("/api/session/restore")
async def restore_session():
    await session.cancel_generation()
    restored = await session.restore()
    if not restored:
        raise HTTPException(status_code=404, detail="No saved session")
    return session.snapshot()


@app.get("/api/session/export", response_class=PlainTextResponse)
async def export_report():
    report = session.latest_report()
    if report is None:
        raise HTTPException(status_code=404, detail="No completed report to export")
    exporter = MarkdownExporter()
    return _markdown_download(exporter.generate(report), exporter.filename(report))


@app.get("/api/session/export/sources", response_class=PlainTextResponse)
async def export_sources():
    assessments = session.assessments()
    if not assessments:
        raise HTTPException(status_code=404, detail="No sources to export")
    exporter = MarkdownExporter()
    return _markdown_download(exporter.sources_table(assessments), exporter.sources_filename())


@app.get("/api/session/export/session", response_class=PlainTextResponse)
async def export_session():
    if not session.messages:
        raise HTTPException(status_code=404, detail="No session to export")
    exporter = MarkdownExporter()
    return _markdown_download(
        exporter.session_transcript(session.messages, session.query),
        exporter.session_filename(),
    )


def _markdown_download(content: str, filename: str) -> PlainTextResponse:
    return PlainTextResponse(
        content,
        media_type="text/markdown; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# --- WebSocket ---


@app.websocket("/ws/session")
async def session_ws(websocket: WebSocket):
    """Push live session updates: messages, status, sources, assessments, sections."""
    await websocket.accept()
    queue = session.broadcaster.subscribe()
    await websocket.send_json({"type": "snapshot", "session": session.snapshot()})
    forwarder = asyncio.create_task(_forward_updates(websocket, queue))
    try:
        # The client may ping; reading also surfaces the disconnect.
        while True:
            data = await websocket.receive_text()
            await websocket.send_json({"type": "ack", "data": data})
    except WebSocketDisconnect:
        logger.debug("Session websocket disconnected")
    finally:
        forwarder.cancel()
        session.broadcaster.unsubscribe(queue)


async def _forward_updates(websocket: WebSocket, queue: asyncio.Queue) -> None:
    try:
        while True:
            update = await queue.get()
            await websocket.send_json(update)
    except (WebSocketDisconnect, RuntimeError) as exc:
        logger.debug("Stopped forwarding session updates: %s", exc)


def run() -> None:
    import uvicorn

    uvicorn.run("siftdesk.main:app", host=settings.host, port=settings.port)
