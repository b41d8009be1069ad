#!/usr/bin/env python3
import logging
from typing import Callable, List, Optional, TypeVar

from fastapi import Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse
from pydantic import BaseModel, ValidationError
from starlette.middleware.base import BaseHTTPMiddleware

from config import (ALLOWED_ORIGINS, DB_PATH, GZIP_MIN_SIZE, HTTP_INTERNAL_SERVER_ERROR,
                    HTTP_REQUEST_ENTITY_TOO_LARGE, MAX_REQUEST_SIZE_MB)
from database import SQLiteThreadStore
from exceptions import ErrorKind, Exceptions, Result, StorageUnavailable
from forum import ThreadService
from models import (ErrorResponse, HealthResponse, PublicThread, ReplyCreateBody, ReplyCreated,
                    ReplyDeleteBody, ReplyReportBody, ThreadCreateBody, ThreadCreated,
                    ThreadDeleteBody, ThreadReportBody)
from utils import timestamp

logger = logging.getLogger(__name__)

B = TypeVar("B", bound=BaseModel)

FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > MAX_REQUEST_SIZE_MB * 1024 * 1024:
            return JSONResponse(
                status_code=HTTP_REQUEST_ENTITY_TOO_LARGE,
                content=ErrorResponse(error="RequestTooLarge", message="Request entity too large").model_dump()
            )

        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "SAMEORIGIN"
        response.headers["X-DNS-Prefetch-Control"] = "off"
        response.headers["Referrer-Policy"] = "same-origin"
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'self';"
        return response


def is_form(request: Request) -> bool:
    return request.headers.get("content-type", "").startswith(FORM_CONTENT_TYPES)


def body_of(model: type[B]) -> Callable:
    """Dependency parsing a JSON or HTML-form request body into `model`."""
    async def parse(request: Request) -> B:
        try:
            data = dict(await request.form()) if is_form(request) else await request.json()
        except ValueError:
            raise RequestValidationError([{"loc": ("body",), "msg": "Malformed request body", "type": "body_invalid"}])
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise RequestValidationError(e.errors())
    return parse


def unwrap(result: Result):
    """Turn a failed service Result into the matching HTTP error."""
    if result.ok:
        return result.value
    error = result.error
    if error.kind is ErrorKind.VALIDATION:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, {"message": error.message, "details": error.details})
    if error.kind is ErrorKind.NOT_FOUND:
        raise HTTPException(status.HTTP_404_NOT_FOUND, error.message)
    if error.kind is ErrorKind.STORAGE_UNAVAILABLE:
        raise Exceptions.STORAGE_UNAVAILABLE
    raise HTTPException(status.HTTP_403_FORBIDDEN, error.message)


def moderation_response(result: Result) -> PlainTextResponse:
    # A wrong secret answers 200 with a plain message, as the board always has.
    if not result.ok and result.error.kind is ErrorKind.FORBIDDEN:
        return PlainTextResponse(result.error.message)
    return PlainTextResponse(unwrap(result))


def created_response(request: Request, response: Response, location: str):
    """Form posts are redirected to the new post; JSON clients get 201 plus Location."""
    if is_form(request):
        return RedirectResponse(location, status_code=status.HTTP_303_SEE_OTHER)
    response.headers["Location"] = location
    return None


def create_app(service: Optional[ThreadService] = None) -> FastAPI:
    service = service or ThreadService(SQLiteThreadStore(DB_PATH))

    app = FastAPI(title="Message Board API", description="Anonymous threaded message board", version="1.0.0")
    app.state.service = service

    app.add_middleware(GZipMiddleware, minimum_size=GZIP_MIN_SIZE)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type"]
    )

    @app.post("/api/threads/{board}", response_model=ThreadCreated, status_code=status.HTTP_201_CREATED)
    async def create_thread(board: str, request: Request, response: Response,
                            body: ThreadCreateBody = Depends(body_of(ThreadCreateBody))):
        created = unwrap(await service.create_thread(board, body.text, body.delete_password))
        return created_response(request, response, created.location) or created

    @app.post("/api/replies/{board}", response_model=ReplyCreated, status_code=status.HTTP_201_CREATED)
    async def create_reply(board: str, request: Request, response: Response,
                           body: ReplyCreateBody = Depends(body_of(ReplyCreateBody))):
        created = unwrap(await service.create_reply(body.thread_id, body.text, body.delete_password, board=board))
        return created_response(request, response, created.location) or created

    @app.get("/api/threads/{board}", response_model=List[PublicThread])
    async def list_threads(board: str):
        return unwrap(await service.list_board(board))

    @app.get("/api/replies/{board}", response_model=PublicThread)
    async def view_thread(board: str, thread_id: str):
        return unwrap(await service.view_thread(thread_id))

    @app.delete("/api/threads/{board}", response_class=PlainTextResponse)
    async def delete_thread(board: str, body: ThreadDeleteBody = Depends(body_of(ThreadDeleteBody))):
        return moderation_response(await service.delete_thread(body.thread_id, body.delete_password))

    @app.delete("/api/replies/{board}", response_class=PlainTextResponse)
    async def delete_reply(board: str, body: ReplyDeleteBody = Depends(body_of(ReplyDeleteBody))):
        return moderation_response(
            await service.delete_reply(body.thread_id, body.reply_id, body.delete_password)
        )

    @app.put("/api/threads/{board}", response_class=PlainTextResponse)
    async def report_thread(board: str, body: ThreadReportBody = Depends(body_of(ThreadReportBody))):
        return PlainTextResponse(unwrap(await service.report_thread(body.thread_id)))

    @app.put("/api/replies/{board}", response_class=PlainTextResponse)
    async def report_reply(board: str, body: ReplyReportBody = Depends(body_of(ReplyReportBody))):
        return PlainTextResponse(unwrap(await service.report_reply(body.thread_id, body.reply_id)))

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        storage = {"type": type(service.store).__name__, "available": True}
        try:
            storage["threads"] = await service.store.count_threads()
        except StorageUnavailable:
            storage["available"] = False
        return HealthResponse(
            status="healthy" if storage["available"] else "degraded",
            timestamp=timestamp(),
            storage=storage,
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        if isinstance(exc.detail, dict):
            content = ErrorResponse(error=exc.__class__.__name__, message=exc.detail["message"],
                                    details=exc.detail.get("details"))
        else:
            content = ErrorResponse(error=exc.__class__.__name__, message=str(exc.detail))
        return JSONResponse(status_code=exc.status_code, content=content.model_dump())

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        details = [{"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                   for err in exc.errors()]
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=ErrorResponse(error="ValidationError", message="Invalid or missing fields",
                                  details=details).model_dump()
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=HTTP_INTERNAL_SERVER_ERROR,
            content=ErrorResponse(error="InternalServerError", message="An unexpected error occurred").model_dump()
        )

    @app.on_event("startup")
    async def startup_event():
        await service.start()

    @app.on_event("shutdown")
    async def shutdown_event():
        await service.stop()

    return app


app = create_app()
