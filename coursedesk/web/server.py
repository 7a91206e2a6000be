"""FastAPI application serving the course navigation, uploads and document viewer."""

from __future__ import annotations

import asyncio
import contextlib
import contextvars
import logging
import uuid
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Dict, Optional

from fastapi import FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi import status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse, RedirectResponse, Response
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel
from starlette.types import ASGIApp, Receive, Scope, Send

from .. import config as config_module
from ..config import AppConfig
from ..errors import NotFoundError, StorageIOError, ValidationError
from ..services.events import emit_db_event, emit_file_event, emit_structured_event
from ..services.navigation import build_navigation
from ..services.storage import CourseRepository, LessonRecord
from ..services.uploads import StorageGateway, StoredFile
from ..viewer.fallback import AsyncioScheduler, Scheduler, SlideViewerSession, ViewerSessionRegistry
from ..viewer.pages import build_viewer_page, render_empty_viewer, render_viewer_page
from ..viewer.policy import FileCategory, UPLOAD_CATEGORIES, describe_policy
from ..viewer.renderer import RendererKind, ViewRequest, build_public_url, select_renderer

_STATIC_ROOT = Path(__file__).parent / "static"
_DB_SLOW_WARNING_MS = 450.0
_FILE_SLOW_WARNING_MS = 300.0


_REQUEST_ID_VAR: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "coursedesk_request_id",
    default=None,
)
_ACTOR_VAR: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "coursedesk_actor",
    default=None,
)


def _new_correlation_id() -> str:
    return uuid.uuid4().hex


def _collect_correlation_context() -> Dict[str, str]:
    context: Dict[str, str] = {}
    request_id = _REQUEST_ID_VAR.get()
    if request_id:
        context["request_id"] = str(request_id)
    actor = _ACTOR_VAR.get()
    if actor:
        context["actor"] = str(actor)
    return context


class RequestContextMiddleware:
    """Assign a correlation identifier to each request and expose it via contextvars."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        request_id = _new_correlation_id()
        scope_state = scope.get("state")
        if scope_state is None:
            scope_state = {}
            scope["state"] = scope_state
        if isinstance(scope_state, dict):
            scope_state["request_id"] = request_id
        else:
            setattr(scope_state, "request_id", request_id)

        method = scope.get("method")
        actor = f"request:{method.upper()}" if isinstance(method, str) else "request"
        request_token = _REQUEST_ID_VAR.set(request_id)
        actor_token = _ACTOR_VAR.set(actor)
        try:
            await self.app(scope, receive, send)
        finally:
            _ACTOR_VAR.reset(actor_token)
            _REQUEST_ID_VAR.reset(request_token)


class ContextualLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that injects correlation context into records."""

    def process(self, msg: Any, kwargs: Dict[str, Any]) -> tuple[Any, Dict[str, Any]]:  # type: ignore[override]
        extra: Dict[str, Any] = dict(self.extra)
        provided = kwargs.get("extra")
        if isinstance(provided, dict):
            extra.update(provided)
        for key, value in _collect_correlation_context().items():
            extra.setdefault(key, value)
        kwargs["extra"] = extra
        return msg, kwargs


LOGGER = ContextualLoggerAdapter(logging.getLogger(__name__), {})
EVENT_LOGGER = ContextualLoggerAdapter(logging.getLogger("coursedesk.web.events"), {})


def _escalate(level: int, duration_ms: Optional[float], threshold: float) -> int:
    if duration_ms is not None and duration_ms >= threshold and level < logging.WARNING:
        return logging.WARNING
    return level


def _emit_debug_event(
    event_type: str,
    message: str,
    *,
    payload: Optional[Dict[str, Any]] = None,
    context: Optional[Dict[str, Any]] = None,
    duration_ms: Optional[float] = None,
    level: int = logging.INFO,
) -> None:
    emit_structured_event(
        event_type,
        message,
        payload=payload,
        context=context,
        correlation=_collect_correlation_context(),
        duration_ms=duration_ms,
        level=level,
        logger=EVENT_LOGGER,
    )


def _emit_db_event(
    action: str,
    *,
    payload: Optional[Dict[str, Any]] = None,
    context: Optional[Dict[str, Any]] = None,
    duration_ms: Optional[float] = None,
    level: int = logging.DEBUG,
) -> None:
    emit_db_event(
        action,
        payload=payload,
        context=context,
        correlation=_collect_correlation_context(),
        duration_ms=duration_ms,
        level=_escalate(level, duration_ms, _DB_SLOW_WARNING_MS),
        logger=EVENT_LOGGER,
    )


def _emit_file_event(
    operation: str,
    *,
    payload: Optional[Dict[str, Any]] = None,
    context: Optional[Dict[str, Any]] = None,
    duration_ms: Optional[float] = None,
    level: int = logging.INFO,
) -> None:
    emit_file_event(
        operation,
        payload=payload,
        context=context,
        correlation=_collect_correlation_context(),
        duration_ms=duration_ms,
        level=_escalate(level, duration_ms, _FILE_SLOW_WARNING_MS),
        logger=EVENT_LOGGER,
    )


def _log_event(message: str, **context: Any) -> None:
    _emit_debug_event("APP_EVENT", message, context=context)


def _serialize_lesson(lesson: LessonRecord) -> Dict[str, Any]:
    return {
        "id": lesson.id,
        "module_id": lesson.module_id,
        "title": lesson.title,
        "description": lesson.description,
        "position": lesson.position,
        "status": lesson.status,
        "slide_path": lesson.slide_path,
        "quiz_link": lesson.quiz_link,
    }


def _failure(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


def _parse_upload_category(value: Optional[str]) -> Optional[FileCategory]:
    normalized = (value or "").strip().lower()
    for category in UPLOAD_CATEGORIES:
        if category.value == normalized:
            return category
    return None


def _parse_optional_int(value: Optional[str]) -> Optional[int]:
    if value is None or not str(value).strip():
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


class SessionCreatePayload(BaseModel):
    file_path: str


class SessionSelectPayload(BaseModel):
    file_path: str


class ProbePayload(BaseModel):
    content: Optional[str] = None


class MessagePayload(BaseModel):
    message: Optional[str] = None


def create_app(
    repository: CourseRepository,
    *,
    config: AppConfig,
    gateway: Optional[StorageGateway] = None,
    viewer_scheduler: Optional[Scheduler] = None,
) -> FastAPI:
    """Return a configured FastAPI application."""

    sessions = ViewerSessionRegistry(
        viewer_scheduler or AsyncioScheduler(),
        timeout=config.viewer_timeout_seconds,
        message_window=config.message_window_seconds,
        retention=config.session_retention_seconds,
    )

    @contextlib.asynccontextmanager
    async def _lifespan(_app: FastAPI) -> AsyncIterator[None]:
        try:
            yield
        finally:
            sessions.close_all()

    app = FastAPI(
        title="Course Desk",
        description="Course files with protected in-browser viewing",
        lifespan=_lifespan,
    )

    def _event_emitter(event_type: str, message: str, **kwargs: Any) -> None:
        if event_type == "DB_QUERY":
            _emit_db_event(message, **kwargs)
        elif event_type == "FILE_OP":
            _emit_file_event(message, **kwargs)
        else:
            _emit_debug_event(event_type, message, **kwargs)

    if gateway is None:
        gateway = StorageGateway(config.uploads_root, max_bytes=config.max_upload_bytes)
    repository.configure_event_emitter(_event_emitter)
    gateway.configure_event_emitter(_event_emitter)

    app.state.repository = repository
    app.state.gateway = gateway
    app.state.viewer_sessions = sessions

    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.mount(
        "/static",
        StaticFiles(directory=_STATIC_ROOT, check_dir=False),
        name="assets",
    )

    def _require_uploads_root() -> Path:
        root_path = gateway.uploads_root
        if not config_module._ensure_writable_directory(root_path):
            LOGGER.error("Uploads directory '%s' is not writable.", root_path)
            raise HTTPException(
                status_code=503,
                detail=f"Uploads directory '{root_path}' is not writable.",
            )
        return root_path

    def _public_base(request: Request) -> str:
        return config.public_base_url or str(request.base_url).rstrip("/")

    def _require_session(token: str) -> SlideViewerSession:
        try:
            return sessions.get(token)
        except NotFoundError as error:
            raise HTTPException(status_code=404, detail="Viewer session not found") from error

    def _remove_stored_file(stored_path: Optional[str]) -> None:
        try:
            gateway.delete(stored_path)
        except StorageIOError as error:
            LOGGER.error("Error deleting file from filesystem: %s", error)

    async def _load_csv_text(file_path: str) -> Callable[[], str]:
        def _read() -> str:
            return gateway.resolve(file_path).read_text(encoding="utf-8")

        loop = asyncio.get_running_loop()
        try:
            text = await loop.run_in_executor(None, _read)
        except (OSError, ValueError) as error:
            failure = error

            def _reraise() -> str:
                raise failure

            return _reraise
        return lambda: text

    # ------------------------------------------------------------------
    # Pages and stored files
    # ------------------------------------------------------------------
    @app.get("/")
    async def index() -> RedirectResponse:
        return RedirectResponse(url="/viewer")

    @app.get("/uploads/{path:path}")
    async def serve_upload(path: str) -> FileResponse:
        try:
            target = gateway.resolve(path)
        except ValueError as error:
            raise HTTPException(status_code=404, detail="File not found") from error
        if not target.exists() or target.is_dir():
            raise HTTPException(status_code=404, detail="File not found")
        return FileResponse(target)

    @app.get("/viewer", response_class=HTMLResponse)
    async def viewer(
        request: Request,
        file: Optional[str] = Query(None),
        file_type: Optional[str] = Query(None, alias="type"),
        category: Optional[str] = Query(None),
        name: Optional[str] = Query(None),
    ) -> HTMLResponse:
        if not file:
            return HTMLResponse(render_empty_viewer())

        view_request = ViewRequest.build(
            file, extension=file_type, category=category, file_name=name
        )
        _log_event(
            "Rendering viewer",
            file=view_request.file_path,
            category=view_request.category,
            extension=view_request.extension,
        )

        session_token: Optional[str] = None
        if view_request.is_slide_deck:
            public_url = build_public_url(view_request.file_path, _public_base(request))
            session_token = sessions.open(public_url).token

        csv_loader: Optional[Callable[[], str]] = None
        if select_renderer(view_request.extension) is RendererKind.TABLE_VIEW:
            csv_loader = await _load_csv_text(view_request.file_path)

        page = build_viewer_page(
            view_request,
            public_base_url=_public_base(request),
            csv_loader=csv_loader,
            session_token=session_token,
        )
        return HTMLResponse(render_viewer_page(page))

    # ------------------------------------------------------------------
    # Navigation and policy
    # ------------------------------------------------------------------
    @app.get("/api/navigation")
    async def navigation() -> Dict[str, Any]:
        return {"success": True, "data": build_navigation(repository)}

    @app.get("/api/viewer/policy")
    async def viewer_policy(
        category: Optional[str] = Query(None),
        file_type: Optional[str] = Query(None, alias="type"),
    ) -> Dict[str, Any]:
        summary = describe_policy(category, file_type)
        summary["renderer"] = select_renderer(file_type).value
        return summary

    # ------------------------------------------------------------------
    # Lesson files
    # ------------------------------------------------------------------
    @app.get("/api/lessons/{lesson_id}/files/{category}")
    async def list_lesson_files(lesson_id: int, category: str):
        file_category = _parse_upload_category(category)
        if file_category is None:
            return _failure(400, "Invalid file type")
        if repository.get_lesson(lesson_id) is None:
            return _failure(404, "Lesson not found")
        records = repository.list_files(file_category, lesson_id)
        return {"success": True, "data": [record.to_dict() for record in records]}

    @app.post("/api/lessons/{lesson_id}/files/{category}")
    async def upload_lesson_file(
        lesson_id: int,
        category: str,
        file: Optional[UploadFile] = File(None),
        uploaded_by: Optional[str] = Form(None),
        student_id: Optional[str] = Form(None),
        due_date: Optional[str] = Form(None),
    ):
        file_category = _parse_upload_category(category)
        if file_category is None:
            return _failure(400, "Invalid file type")
        _log_event("Uploading file", lesson_id=lesson_id, category=file_category)
        if repository.get_lesson(lesson_id) is None:
            return _failure(404, "Lesson not found")
        if file is None or not file.filename:
            return _failure(400, "No file provided")

        _require_uploads_root()
        try:
            stored: StoredFile = await gateway.save_upload(
                file, category=file_category, lesson_id=lesson_id
            )
        except ValidationError as error:
            return _failure(400, error.message)
        except StorageIOError as error:
            LOGGER.error("Error uploading %s file: %s", file_category.value, error)
            return _failure(500, "Failed to upload file")
        finally:
            await file.close()

        try:
            record = repository.add_file(
                file_category,
                lesson_id,
                original_name=stored.original_name,
                stored_name=stored.stored_name,
                stored_path=stored.stored_path,
                extension=stored.extension,
                size_bytes=stored.size_bytes,
                mime_type=stored.mime_type,
                uploaded_by=_parse_optional_int(uploaded_by),
                student_id=_parse_optional_int(student_id),
                due_date=(due_date or "").strip() or None,
            )
        except Exception:
            LOGGER.exception("Failed to record upload %s", stored.stored_path)
            _remove_stored_file(stored.stored_path)
            return _failure(500, "Failed to upload file")

        _log_event("Uploaded file", lesson_id=lesson_id, file_id=record.id, path=record.stored_path)
        return JSONResponse(
            status_code=status.HTTP_201_CREATED,
            content={
                "success": True,
                "message": "File uploaded successfully",
                "data": record.to_dict(),
            },
        )

    @app.delete("/api/files/{file_id}")
    async def delete_file(file_id: int, file_type: Optional[str] = Query(None, alias="type")):
        file_category = _parse_upload_category(file_type)
        if file_category is None:
            return _failure(400, "Invalid file type")
        record = repository.get_file(file_category, file_id)
        if record is None:
            return _failure(404, "File not found")

        _remove_stored_file(record.stored_path)
        repository.remove_file(file_category, file_id)
        _log_event("Deleted file", file_id=file_id, category=file_category)
        return {"success": True, "message": "File deleted successfully"}

    # ------------------------------------------------------------------
    # Slide decks
    # ------------------------------------------------------------------
    @app.post("/api/lessons/{lesson_id}/slides")
    async def upload_slides(lesson_id: int, file: Optional[UploadFile] = File(None)):
        lesson = repository.get_lesson(lesson_id)
        if lesson is None:
            return _failure(404, "Lesson not found")
        if file is None or not file.filename:
            return _failure(400, "No file provided")

        _require_uploads_root()
        try:
            stored = await gateway.replace_slide_upload(
                file, lesson_id=lesson_id, previous_path=lesson.slide_path
            )
        except ValidationError as error:
            return _failure(400, error.message)
        except StorageIOError as error:
            LOGGER.error("Error uploading slide deck: %s", error)
            return _failure(500, "Failed to upload PPT file")
        finally:
            await file.close()

        repository.update_lesson_slide(lesson_id, stored.stored_path)
        updated = repository.get_lesson(lesson_id)
        if updated is None:
            return _failure(500, "Lesson update failed")
        _log_event("Replaced slide deck", lesson_id=lesson_id, path=stored.stored_path)
        return JSONResponse(
            status_code=status.HTTP_201_CREATED,
            content={
                "success": True,
                "message": "PPT file uploaded successfully",
                "data": {"lesson": _serialize_lesson(updated), "file": stored.to_dict()},
            },
        )

    @app.delete("/api/lessons/{lesson_id}/slides")
    async def delete_slides(lesson_id: int):
        lesson = repository.get_lesson(lesson_id)
        if lesson is None:
            return _failure(404, "Lesson not found")
        if not lesson.slide_path:
            return _failure(404, "No PPT file found for this lesson")

        _remove_stored_file(lesson.slide_path)
        repository.update_lesson_slide(lesson_id, None)
        _log_event("Removed slide deck", lesson_id=lesson_id)
        return {"success": True, "message": "PPT file deleted successfully"}

    # ------------------------------------------------------------------
    # Slide viewer sessions
    # ------------------------------------------------------------------
    @app.post("/api/viewer/sessions", status_code=status.HTTP_201_CREATED)
    async def open_viewer_session(payload: SessionCreatePayload, request: Request) -> Dict[str, Any]:
        view_request = ViewRequest.build(payload.file_path)
        if not view_request.is_slide_deck:
            raise HTTPException(status_code=400, detail="Viewer sessions are only used for slide decks")
        session = sessions.open(build_public_url(view_request.file_path, _public_base(request)))
        return {"session": session.snapshot()}

    @app.get("/api/viewer/sessions/{token}")
    async def get_viewer_session(token: str) -> Dict[str, Any]:
        return {"session": _require_session(token).snapshot()}

    @app.delete("/api/viewer/sessions/{token}", status_code=status.HTTP_204_NO_CONTENT)
    async def close_viewer_session(token: str) -> Response:
        if not sessions.close(token):
            raise HTTPException(status_code=404, detail="Viewer session not found")
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.post("/api/viewer/sessions/{token}/probe")
    async def report_viewer_probe(token: str, payload: ProbePayload) -> Dict[str, Any]:
        session = _require_session(token)
        session.report_probe(payload.content)
        return {"session": session.snapshot()}

    @app.post("/api/viewer/sessions/{token}/message")
    async def report_viewer_message(token: str, payload: MessagePayload) -> Dict[str, Any]:
        session = _require_session(token)
        failed = session.report_message(payload.message or "")
        return {"failed": failed, "session": session.snapshot()}

    @app.post("/api/viewer/sessions/{token}/select")
    async def select_viewer_file(
        token: str, payload: SessionSelectPayload, request: Request
    ) -> Dict[str, Any]:
        session = _require_session(token)
        view_request = ViewRequest.build(payload.file_path)
        if not view_request.is_slide_deck:
            raise HTTPException(status_code=400, detail="Viewer sessions are only used for slide decks")
        session.select(build_public_url(view_request.file_path, _public_base(request)))
        return {"session": session.snapshot()}

    return app


__all__ = ["ContextualLoggerAdapter", "RequestContextMiddleware", "create_app"]
