import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware

from filegate.config import Settings, load_settings
from filegate.errors import register_exception_handlers
from filegate.logging_config import setup_logging
from filegate.middleware import (
    FixedWindowRateLimiter,
    rate_limit_middleware,
    request_logging_middleware,
    request_timeout_middleware,
    security_headers_middleware,
)
from filegate.routers import files_router
from filegate.services.s3_storage import S3Storage, create_s3_client

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"
GZIP_MINIMUM_SIZE = 1024


@asynccontextmanager
async def _lifespan(app: FastAPI):
    storage: S3Storage = app.state.storage
    logger.info("Initializing storage bucket '%s'", storage.bucket)
    # A failure here aborts startup; never serve traffic without the bucket.
    storage.ensure_bucket()
    logger.info("Ready to accept file uploads")
    yield


def create_app(settings: Settings | None = None, storage: S3Storage | None = None) -> FastAPI:
    settings = settings or load_settings()
    if storage is None:
        storage = S3Storage(client=create_s3_client(settings), bucket=settings.bucket_name)

    app = FastAPI(
        title="Filegate API",
        description="File uploads to S3-compatible object storage with presigned access URLs",
        version=API_VERSION,
        docs_url="/api-docs",
        lifespan=_lifespan,
    )
    app.state.settings = settings
    app.state.storage = storage
    app.state.rate_limiter = FixedWindowRateLimiter(
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_ms / 1000,
    )

    register_exception_handlers(app)

    app.middleware("http")(request_logging_middleware)
    app.middleware("http")(request_timeout_middleware)
    app.middleware("http")(rate_limit_middleware)
    app.middleware("http")(security_headers_middleware)
    app.add_middleware(GZipMiddleware, minimum_size=GZIP_MINIMUM_SIZE)

    origins = list(settings.cors_origins)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials="*" not in origins,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
        expose_headers=["X-Total-Count", "X-File-Count"],
    )

    app.include_router(files_router)

    @app.get("/", tags=["service"])
    def root():
        return {
            "success": True,
            "message": "File Upload Service API",
            "version": API_VERSION,
            "documentation": "/api-docs",
            "endpoints": {
                "health": "GET /api/files/health",
                "uploadSingle": "POST /api/files/upload",
                "uploadMultiple": "POST /api/files/upload/multiple",
                "getUrl": "GET /api/files/url/{objectName}",
                "getInfo": "GET /api/files/info/{objectName}",
                "listFiles": "GET /api/files/list",
                "deleteFile": "DELETE /api/files/{objectName}",
            },
        }

    return app


def run() -> None:
    settings = load_settings()
    setup_logging(settings.log_level)
    logger.info("Environment: %s", settings.app_env)
    logger.info("Storage endpoint: %s, bucket: %s", settings.minio_endpoint_url, settings.bucket_name)
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)
