import logging

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse

from filegate.config import Settings
from filegate.dependencies import get_settings, get_storage, get_upload_service
from filegate.errors import error_body, utc_timestamp
from filegate.exceptions import bad_request
from filegate.routers.multipart import multiple_uploads, single_upload
from filegate.schemas.files import (
    AccessUrl,
    AccessUrlResponse,
    BatchUploadData,
    BatchUploadResponse,
    DeletedFile,
    DeleteResponse,
    ErrorResponse,
    FileInfo,
    FileInfoResponse,
    FileListData,
    FileListResponse,
    FileSummary,
    HealthData,
    HealthResponse,
    UploadedFile,
    UploadResponse,
)
from filegate.services.s3_storage import AccessGrant, S3Storage, StorageError
from filegate.services.uploads import UploadRequest, UploadResult, UploadService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/files", tags=["files"])

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}

# S3 caps presigned URL lifetime at seven days.
_MAX_URL_EXPIRY_SECONDS = 7 * 24 * 3600


def _to_uploaded_file(result: UploadResult) -> UploadedFile:
    stored = result.stored
    return UploadedFile(
        object_name=stored.key,
        original_name=stored.original_name or "",
        size=stored.size,
        mimetype=stored.content_type or "",
        upload_date=stored.upload_date or "",
        etag=stored.etag,
        access_url=result.grant.url,
        url_expires_at=result.grant.expires_at,
    )


def _to_access_url(grant: AccessGrant) -> AccessUrl:
    return AccessUrl(url=grant.url, expires_in=grant.expires_in, expires_at=grant.expires_at)


def _require_object_key(object_key: str) -> str:
    if not object_key.strip():
        raise bad_request("MISSING_FILENAME", "Filename is required")
    return object_key


@router.get("/health", response_model=HealthResponse, responses={503: {"model": ErrorResponse}})
def health_check(
    storage: S3Storage = Depends(get_storage),
):
    try:
        storage.bucket_exists()
    except StorageError as exc:
        logger.warning("Health check failed: %s", exc)
        body = error_body(code="SERVICE_UNHEALTHY", error="Service unhealthy")
        body["data"] = {"status": "unhealthy", "timestamp": utc_timestamp(), "storage": "disconnected"}
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=body)

    return HealthResponse(
        message="Service is healthy",
        data=HealthData(
            status="healthy",
            timestamp=utc_timestamp(),
            storage="connected",
            bucket=storage.bucket,
        ),
    )


@router.post(
    "/upload",
    response_model=UploadResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_ERROR_RESPONSES,
)
def upload_file(
    upload: UploadRequest | None = Depends(single_upload),
    service: UploadService = Depends(get_upload_service),
) -> UploadResponse:
    """Upload one file in the ``file`` form field.

    An optional ``path`` form field or query parameter is used as key prefix.
    """
    result = service.upload_one(upload)
    return UploadResponse(message="File uploaded successfully", data=_to_uploaded_file(result))


@router.post(
    "/upload/multiple",
    response_model=BatchUploadResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_ERROR_RESPONSES,
)
def upload_files(
    uploads: list[UploadRequest] = Depends(multiple_uploads),
    service: UploadService = Depends(get_upload_service),
) -> BatchUploadResponse:
    """Upload up to 10 files in repeated ``files`` form fields.

    Batches are not atomic. If one file fails the request fails, and files
    stored before the failure remain in the bucket.
    """
    batch = service.upload_many(uploads)
    return BatchUploadResponse(
        message=f"{batch.count} files uploaded successfully",
        data=BatchUploadData(files=[_to_uploaded_file(result) for result in batch.files], count=batch.count),
    )


@router.get("/url/{object_key:path}", response_model=AccessUrlResponse, responses=_ERROR_RESPONSES)
def get_file_url(
    object_key: str,
    expiry: int | None = Query(default=None, ge=1, le=_MAX_URL_EXPIRY_SECONDS),
    storage: S3Storage = Depends(get_storage),
    settings: Settings = Depends(get_settings),
) -> AccessUrlResponse:
    key = _require_object_key(object_key)
    grant = storage.presign_get(key, expiry or settings.presigned_url_expiry)
    return AccessUrlResponse(message="Presigned URL generated successfully", data=_to_access_url(grant))


@router.get("/info/{object_key:path}", response_model=FileInfoResponse, responses=_ERROR_RESPONSES)
def get_file_info(
    object_key: str,
    storage: S3Storage = Depends(get_storage),
) -> FileInfoResponse:
    key = _require_object_key(object_key)
    stored = storage.stat(key)
    return FileInfoResponse(
        message="File info retrieved successfully",
        data=FileInfo(
            name=stored.key,
            size=stored.size,
            last_modified=stored.last_modified,
            etag=stored.etag,
            content_type=stored.content_type,
            original_name=stored.original_name,
            upload_date=stored.upload_date,
        ),
    )


@router.get("/list", response_model=FileListResponse, responses=_ERROR_RESPONSES)
def list_files(
    prefix: str = Query(default=""),
    limit: int = Query(default=1000, ge=1),
    storage: S3Storage = Depends(get_storage),
) -> FileListResponse:
    objects = storage.list_objects(prefix=prefix, limit=limit)
    files = [
        FileSummary(name=item.key, size=item.size, last_modified=item.last_modified, etag=item.etag)
        for item in objects
    ]
    return FileListResponse(
        message="Files retrieved successfully",
        data=FileListData(files=files, count=len(files)),
    )


@router.delete("/{object_key:path}", response_model=DeleteResponse, responses=_ERROR_RESPONSES)
def delete_file(
    object_key: str,
    storage: S3Storage = Depends(get_storage),
) -> DeleteResponse:
    key = _require_object_key(object_key)
    storage.delete(key)
    logger.info("Deleted %s", key)
    return DeleteResponse(message="File deleted successfully", data=DeletedFile(object_name=key))
