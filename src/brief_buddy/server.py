"""FastAPI service exposing Brief Buddy sessions over HTTP and SSE."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from contextlib import contextmanager, suppress
from typing import Any, AsyncIterator, Dict, Iterator, Optional, Sequence, Set

import uvicorn
from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from starlette.responses import StreamingResponse

from .assistant import GENERATION_ERROR_NOTICE, BriefAssistant
from .classification import BriefCategory
from .config import AppSettings
from .documents import BriefDocumentRenderer
from .finalize import BriefFinalizer, FinalizeError
from .maf_client import MAFChatClient
from .observability import initialize_tracing
from .seeding import SeedAnalyzer, guess_mime_type
from .sessions import Attachment, BriefSession, SessionRegistry
from .signals import FinalizeMetadata
from .storage import DriveStorage
from .transcript import Role

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 100 * 1024 * 1024


class StreamRequest(BaseModel):
    message: Optional[str] = None


class FinalizeRequest(BaseModel):
    category: Optional[str] = None
    client: Optional[str] = None

    def metadata(self) -> FinalizeMetadata:
        category = None
        if self.category and self.category.strip():
            category = BriefCategory.from_string(
                self.category, default=BriefCategory.PROJECT
            )
        client = self.client.strip() if self.client else None
        return FinalizeMetadata(category=category, client=client or None)


def build_assistant(settings: AppSettings) -> BriefAssistant:
    """Wire the model client and, when Drive is configured, the finalizer."""

    chat_client = MAFChatClient(settings.model)
    finalizer = None
    if settings.drive.configured:
        storage = DriveStorage.from_settings(settings.drive)
        finalizer = BriefFinalizer(
            chat_client,
            storage,
            settings.drive.root_folder_id or "",
            renderer=BriefDocumentRenderer(settings.docx_template),
        )
    else:
        logger.warning(
            "Google Drive is not configured; briefs will not be finalized."
        )
    return BriefAssistant(
        chat_client,
        finalizer=finalizer,
        max_turns=settings.max_turns,
    )


def create_app(
    settings: Optional[AppSettings] = None,
    *,
    assistant: Optional[BriefAssistant] = None,
    seed_analyzer: Optional[SeedAnalyzer] = None,
    registry: Optional[SessionRegistry] = None,
    allow_origins: Sequence[str] | None = None,
) -> FastAPI:
    """Create the FastAPI app; collaborators default to ``settings``."""

    if assistant is None:
        if settings is None:
            raise ValueError("Either settings or an assistant is required")
        assistant = build_assistant(settings)
    analyzer = seed_analyzer or SeedAnalyzer(assistant.chat_client)
    sessions = registry or SessionRegistry()
    busy: Set[str] = set()

    app = FastAPI(title="Brief Buddy")

    origins = list(allow_origins) if allow_origins else ["*"]
    allow_credentials = origins != ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def _session(session_id: str) -> BriefSession:
        try:
            return sessions.get(session_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc

    def _claim(session: BriefSession) -> None:
        if session.session_id in busy or session.gate.running:
            raise HTTPException(
                status_code=409,
                detail="Another request is still running for this session.",
            )
        busy.add(session.session_id)

    @contextmanager
    def _exclusive(session: BriefSession) -> Iterator[None]:
        _claim(session)
        try:
            yield
        finally:
            busy.discard(session.session_id)

    @app.post("/api/sessions")
    async def create_session() -> Dict[str, str]:
        session = sessions.create()
        logger.info("Created session %s", session.session_id)
        return {"session_id": session.session_id}

    @app.post("/api/sessions/{session_id}/stream")
    async def stream_reply(
        session_id: str,
        payload: Optional[StreamRequest] = None,
    ) -> StreamingResponse:
        session = _session(session_id)
        message = (payload.message if payload else None) or ""
        if not message.strip():
            awaiting_reply = session.turns and session.turns[-1].role is Role.USER
            if not session.is_welcome and not awaiting_reply:
                raise HTTPException(status_code=400, detail="Message is required.")

        _claim(session)
        queue: asyncio.Queue[Dict[str, Any]] = asyncio.Queue()
        done_token = object()

        async def producer() -> None:
            try:
                async for event in assistant.stream_reply(
                    session, message or None
                ):
                    await queue.put(event)
            except Exception:
                logger.exception("Streaming failed for session %s", session_id)
                await queue.put(
                    {"type": "error", "message": GENERATION_ERROR_NOTICE}
                )
                await queue.put({"type": "done"})
            finally:
                busy.discard(session.session_id)
                await queue.put({"type": done_token})

        reply_task = asyncio.create_task(producer())

        async def event_stream() -> AsyncIterator[bytes]:
            try:
                while True:
                    event = await queue.get()
                    if event.get("type") is done_token:
                        break
                    data = json.dumps(event, ensure_ascii=False)
                    yield f"data: {data}\n\n".encode("utf-8")
            finally:
                if not reply_task.done():
                    logger.info("Client left session %s mid-stream", session_id)
                    reply_task.cancel()
                with suppress(asyncio.CancelledError):
                    await reply_task

        headers = {"Cache-Control": "no-cache"}
        return StreamingResponse(
            event_stream(), media_type="text/event-stream", headers=headers
        )

    @app.post("/api/sessions/{session_id}/attachment")
    async def upload_attachment(
        session_id: str,
        file: UploadFile = File(...),
        message: Optional[str] = Form(None),
    ) -> Dict[str, Any]:
        session = _session(session_id)
        with _exclusive(session):
            data = await file.read()
            if not data:
                raise HTTPException(status_code=400, detail="Uploaded file is empty.")
            if len(data) > MAX_UPLOAD_BYTES:
                raise HTTPException(
                    status_code=413, detail="Uploaded file is too large."
                )
            filename = file.filename or "upload"
            attachment = Attachment(
                filename=filename,
                mime_type=guess_mime_type(filename, file.content_type or ""),
                data=data,
            )
            session.attach(attachment)
            logger.info(
                "Seeding session %s from %s (%d bytes)",
                session_id,
                filename,
                attachment.size,
            )
            pending = session.add_user_message(message or "")
            result = await analyzer.analyze(attachment)
            preview = session.ingest_seed(result.brief, pending=pending)
            return {
                "preview": preview,
                "seed": result.to_dict(),
                "progress": session.progress().to_dict(),
            }

    @app.post("/api/sessions/{session_id}/finalize")
    async def finalize(
        session_id: str,
        payload: Optional[FinalizeRequest] = None,
    ) -> Dict[str, Any]:
        session = _session(session_id)
        if not assistant.can_finalize:
            raise HTTPException(
                status_code=503, detail="Google Drive is not configured."
            )
        metadata = (payload or FinalizeRequest()).metadata()
        with _exclusive(session):
            try:
                result = await assistant.finalize_now(session, metadata)
            except FinalizeError as exc:
                logger.exception("Manual finalize failed for session %s", session_id)
                raise HTTPException(status_code=502, detail=str(exc)) from exc
        if result is None:
            existing = session.finalize_result
            return {
                "finalized": False,
                "result": existing.to_dict() if existing else None,
            }
        return {"finalized": True, "result": result.to_dict()}

    @app.get("/api/sessions/{session_id}/progress")
    async def progress(session_id: str) -> Dict[str, Any]:
        session = _session(session_id)
        return {
            **session.progress().to_dict(),
            "finalized": session.gate.fired,
            "seedUploaded": session.seed_uploaded,
        }

    @app.post("/api/sessions/{session_id}/reset")
    async def reset(session_id: str) -> Dict[str, str]:
        session = _session(session_id)
        with _exclusive(session):
            session.reset()
        return {"status": "reset"}

    @app.delete("/api/sessions/{session_id}")
    async def delete_session(session_id: str) -> Dict[str, str]:
        session = _session(session_id)
        with _exclusive(session):
            sessions.discard(session_id)
        return {"status": "deleted"}

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


def run_server(
    settings: AppSettings,
    *,
    host: str = "127.0.0.1",
    port: int = 8081,
    allow_origins: Sequence[str] | None = None,
    log_level: str = "info",
) -> None:
    """Start the FastAPI server."""

    initialize_tracing(settings.tracing)
    app = create_app(settings=settings, allow_origins=allow_origins)
    uvicorn.run(app, host=host, port=port, log_level=log_level)


def build_parser(prog: str = "python -m brief_buddy.server") -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=prog,
        description="Serve the Brief Buddy assistant as a FastAPI service.",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host interface for the server (default: 127.0.0.1).",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8081,
        help="Port for the server (default: 8081).",
    )
    parser.add_argument(
        "--allow-origin",
        action="append",
        dest="allow_origin",
        help="Optional CORS origin(s) to allow. Defaults to '*' if not provided.",
    )
    parser.add_argument(
        "--log-level",
        default="info",
        help="Logging level for uvicorn (default: info).",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> None:
    logging.basicConfig(level=logging.INFO)
    args = build_parser().parse_args(argv)
    try:
        settings = AppSettings.load()
    except RuntimeError as exc:
        logging.error("Failed to load AppSettings: %s", exc)
        raise SystemExit(1) from exc

    run_server(
        settings,
        host=args.host,
        port=args.port,
        allow_origins=args.allow_origin,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()
