from contextlib import asynccontextmanager
from typing import Any

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from app.auth import SESSION_USER_KEY, AuthGate, verify_credentials
from app.config import Settings, get_settings
from app.errors import FileShareError, Unauthorized
from app.ingestion import UploadPipeline
from app.links import LinkIssuer
from app.listing import FileCatalog
from app.logger import configure_logging, logger
from app.mailer import ResendMailer
from app.models import (
    DeleteRequest,
    FileListResponse,
    LinkResponse,
    LoginRequest,
    MessageResponse,
    UploadResponse,
    Visibility,
)
from app.storage import ObjectStore, build_s3_client


def create_app(
    settings: Settings | None = None,
    *,
    public_store: ObjectStore | None = None,
    private_store: ObjectStore | None = None,
    mailer: ResendMailer | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    if public_store is None or private_store is None:
        client = build_s3_client(settings)
        public_store = public_store or ObjectStore(
            client, settings.public_bucket_name, public_base_url=settings.public_base_url
        )
        private_store = private_store or ObjectStore(client, settings.private_bucket_name)
    mailer = mailer or ResendMailer(
        settings.resend_api_key, settings.email_from, base_url=settings.resend_api_url
    )

    public_pipeline = UploadPipeline(
        public_store,
        Visibility.PUBLIC,
        max_file_size=settings.max_upload_size_bytes,
        rollback=settings.rollback_failed_uploads,
    )
    private_pipeline = UploadPipeline(
        private_store,
        Visibility.PRIVATE,
        max_file_size=settings.max_upload_size_bytes,
        rollback=settings.rollback_failed_uploads,
    )
    public_catalog = FileCatalog(public_store, Visibility.PUBLIC, page_size=settings.list_page_size)
    private_catalog = FileCatalog(private_store, Visibility.PRIVATE, page_size=settings.list_page_size)
    link_issuer = LinkIssuer(
        private_store,
        mailer,
        min_expiry=settings.min_expiry_seconds,
        max_expiry=settings.max_expiry_seconds,
        max_recipients=settings.max_recipients,
    )
    auth = AuthGate(settings)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        logger.info(
            f"{settings.app_name} starting ({settings.app_env}); buckets "
            f"{public_store.bucket_name} / {private_store.bucket_name}"
        )
        yield
        logger.info(f"{settings.app_name} stopped")

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret,
        https_only=settings.app_env != "dev",
        same_site="lax",
    )

    def error_response(status_code: int, message: str, code: str) -> JSONResponse:
        return JSONResponse(
            status_code=status_code,
            content={"error": {"code": code, "message": message}},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(_: Request, exc: RequestValidationError):
        missing_fields = [
            ".".join(str(item) for item in error["loc"] if item != "body")
            for error in exc.errors()
            if error.get("type") == "missing"
        ]
        if missing_fields:
            message = f"missing parameters: {', '.join(missing_fields)}"
        else:
            message = "invalid request parameters"
        return error_response(400, message, "bad_request")

    @app.exception_handler(HTTPException)
    async def http_exception_handler(_: Request, exc: HTTPException):
        message = str(exc.detail) if exc.detail else "request failed"
        code_map = {
            400: "bad_request",
            401: "unauthorized",
            404: "not_found",
            405: "method_not_allowed",
            413: "payload_too_large",
        }
        return error_response(exc.status_code, message, code_map.get(exc.status_code, "error"))

    @app.exception_handler(FileShareError)
    async def file_share_exception_handler(request: Request, exc: FileShareError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return error_response(exc.status_code, exc.message, exc.code)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception(f"{request.method} {request.url.path} raised {exc.__class__.__name__}")
        return error_response(500, "Internal server error", "error")

    @app.get("/")
    def root() -> dict:
        return {"status": "ok", "service": settings.app_name}

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok", "environment": settings.app_env}

    @app.post("/auth/login", response_model=MessageResponse)
    def login(payload: LoginRequest, request: Request):
        if not verify_credentials(settings, payload.username, payload.password):
            logger.warning(f"failed sign-in for {payload.username!r}")
            raise Unauthorized("Invalid credentials")
        request.session[SESSION_USER_KEY] = payload.username
        return MessageResponse(message="Signed in")

    @app.post("/auth/logout", response_model=MessageResponse)
    def logout(request: Request):
        request.session.clear()
        return MessageResponse(message="Signed out")

    @app.get("/files", response_model=FileListResponse, response_model_exclude_none=True)
    def list_public_files(
        cursor: str | None = Query(None),
        limit: int | None = Query(None, ge=1),
        _: str = Depends(auth),
    ):
        return public_catalog.list_files(cursor=cursor, limit=limit)

    @app.post("/files", response_model=UploadResponse, status_code=201)
    async def upload_public_files(request: Request, _: str = Depends(auth)):
        urls = await public_pipeline.ingest(request.headers.get("content-type", ""), request.stream())
        return UploadResponse(urls=urls)

    @app.delete("/files", response_model=MessageResponse)
    def delete_public_file(payload: DeleteRequest, _: str = Depends(auth)):
        public_catalog.delete_file(payload.key)
        return MessageResponse(message="File deleted successfully")

    @app.get("/files/private", response_model=FileListResponse, response_model_exclude_none=True)
    def list_private_files(
        cursor: str | None = Query(None),
        limit: int | None = Query(None, ge=1),
        _: str = Depends(auth),
    ):
        return private_catalog.list_files(cursor=cursor, limit=limit)

    @app.post("/files/private", response_model=MessageResponse, status_code=201)
    async def upload_private_files(request: Request, _: str = Depends(auth)):
        await private_pipeline.ingest(request.headers.get("content-type", ""), request.stream())
        return MessageResponse(message="Upload complete")

    @app.delete("/files/private", response_model=MessageResponse)
    def delete_private_file(payload: DeleteRequest, _: str = Depends(auth)):
        private_catalog.delete_file(payload.key)
        return MessageResponse(message="File deleted successfully")

    @app.post("/files/private/link", response_model=LinkResponse, response_model_exclude_none=True)
    async def create_private_link(payload: Any = Body(None), _: str = Depends(auth)):
        return await link_issuer.issue(payload)

    return app
