"""
FastAPI application and endpoints
"""
import asyncio
from functools import partial
from typing import List, Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from starlette.datastructures import UploadFile

from .config import Settings
from .converter import ImageConverter, build_converter
from .errors import ErrorCode, Failure
from .logger import logger, setup_logger
from .processing import ProcessingService, parse_references
from .rate_limit import RateLimiter, client_key
from .uploads import IncomingFile, UploadService

VERSION = "1.0.0"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Content-Security-Policy": "default-src 'self'",
    "X-XSS-Protection": "1; mode=block",
}


def failure_response(failure: Failure, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(status_code=failure.status_code, content=failure.to_dict(), headers=headers)


async def read_files(form, field: str) -> List[IncomingFile]:
    files = []
    for value in form.getlist(field):
        if not isinstance(value, UploadFile):
            continue
        files.append(IncomingFile(
            filename=value.filename or "",
            content_type=value.content_type or "",
            data=await value.read(),
        ))
    return files


async def run_blocking(func, *args):
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, partial(func, *args))


def create_router() -> APIRouter:
    router = APIRouter(prefix="/api", tags=["images"])

    @router.post("/upload")
    async def upload_endpoint(request: Request):
        service: UploadService = request.app.state.upload_service

        key = client_key(request)
        failure = service.admit(key)
        if failure:
            retry_after = service.rate_limiter.retry_after(key)
            return failure_response(failure, headers={"Retry-After": str(retry_after)})

        form = await request.form()
        # A "file" field holding plain text still counts as a (bad) part
        parts = await read_files(form, "file")
        if len(form.getlist("file")) != len(parts):
            return failure_response(Failure(ErrorCode.INVALID_FILE, "No file provided or invalid file format"))

        result = await run_blocking(service.store, parts)
        if isinstance(result, Failure):
            return failure_response(result)
        return result

    @router.options("/upload")
    async def upload_preflight():
        return Response(status_code=204, headers=CORS_HEADERS)

    @router.post("/process")
    async def process_endpoint(request: Request):
        service: ProcessingService = request.app.state.processing_service

        form = await request.form()
        uploads = await read_files(form, "images")
        references = parse_references([v for v in form.getlist("files") if isinstance(v, str)])
        raw_config = form.get("config") or form.get("options")
        if raw_config is not None and not isinstance(raw_config, str):
            return failure_response(Failure(ErrorCode.INVALID_CONFIG, "Config must be sent as a JSON string"))

        result = await run_blocking(service.run, uploads, references, raw_config)
        if isinstance(result, Failure):
            return failure_response(result)
        return result

    @router.post("/metadata")
    async def metadata_endpoint(request: Request):
        service: ProcessingService = request.app.state.processing_service

        form = await request.form()
        images = await read_files(form, "image")
        if not images:
            return failure_response(Failure(ErrorCode.INVALID_FILE, "No file provided"))

        result = await run_blocking(service.describe, images[0])
        if isinstance(result, Failure):
            return failure_response(result)
        return result

    return router


def create_app(
    settings: Optional[Settings] = None,
    converter: Optional[ImageConverter] = None,
    rate_limiter: Optional[RateLimiter] = None,
) -> FastAPI:
    settings = settings or Settings()
    setup_logger(settings.log_level)
    settings.ensure_directories()

    converter = converter or build_converter(settings)
    rate_limiter = rate_limiter or RateLimiter(
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )

    web_app = FastAPI(
        title="ImageMagick Processing API",
        version=VERSION,
        description="Upload images and convert them with ImageMagick",
    )
    web_app.state.settings = settings
    web_app.state.upload_service = UploadService(settings, rate_limiter)
    web_app.state.processing_service = ProcessingService(settings, converter)

    @web_app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        if request.url.path.startswith("/api/"):
            for key, value in {**CORS_HEADERS, **SECURITY_HEADERS}.items():
                response.headers[key] = value
        return response

    # Global exception handler to keep every failure in the JSON error shape
    @web_app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception(f"❌ Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Internal server error", "code": ErrorCode.UNKNOWN_ERROR.value},
            headers={**CORS_HEADERS, **SECURITY_HEADERS},
        )

    # Method not allowed handler (prevents GET to POST endpoints)
    @web_app.exception_handler(405)
    async def method_not_allowed_handler(request: Request, exc):
        return JSONResponse(
            status_code=405,
            content={
                "success": False,
                "error": "Method not allowed",
                "detail": f"Method {request.method} not allowed for {request.url.path}",
                "allowed_methods": ["POST", "OPTIONS"] if request.url.path == "/api/upload" else ["POST"],
            },
        )

    web_app.include_router(create_router())

    @web_app.get("/health")
    def health():
        """Health check endpoint"""
        return {"status": "healthy", "service": "imagemagick-api", "version": VERSION,
                "converter": converter.name}

    @web_app.get("/")
    def root():
        """Root endpoint with API info"""
        return {
            "message": "ImageMagick Processing API",
            "version": VERSION,
            "endpoints": {
                "POST /api/upload": "Upload one image (multipart field 'file')",
                "POST /api/process": "Convert images ('images' files or 'files' references, JSON 'config')",
                "POST /api/metadata": "Read width, height, format and size (multipart field 'image')",
                "GET /uploads/{name}": "Uploaded originals (kept 24 hours)",
                "GET /processed/{name}": "Processed outputs (kept 24 hours)",
                "GET /health": "Health check",
                "GET /docs": "API documentation",
            },
        }

    web_app.mount("/uploads", StaticFiles(directory=settings.upload_dir, check_dir=False), name="uploads")
    web_app.mount("/processed", StaticFiles(directory=settings.processed_dir, check_dir=False), name="processed")

    return web_app
