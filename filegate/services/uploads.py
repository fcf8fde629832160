from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import UTC, datetime

from filegate.config import MAX_FILES_PER_REQUEST
from filegate.exceptions import bad_request
from filegate.services.naming import make_object_key
from filegate.services.s3_storage import AccessGrant, S3Storage, StoredObject

logger = logging.getLogger(__name__)


@dataclass
class UploadRequest:
    content: bytes | None
    content_type: str
    size: int
    filename: str
    path: str = ""


@dataclass
class UploadResult:
    stored: StoredObject
    grant: AccessGrant


@dataclass
class BatchUploadResult:
    files: list[UploadResult]
    count: int


class UploadService:
    """Stores uploaded files and hands back presigned access URLs.

    Batches are not atomic: when one item fails the call fails, but items
    already written stay in the bucket.
    """

    def __init__(self, *, storage: S3Storage, url_expiry: int) -> None:
        self.storage = storage
        self.url_expiry = url_expiry

    def upload_one(self, request: UploadRequest | None) -> UploadResult:
        if request is None or request.content is None:
            raise bad_request("NO_FILE", "No file provided")

        key = make_object_key(request.filename, request.path)
        stored = self.storage.put(
            key=key,
            data=request.content,
            size=request.size,
            content_type=request.content_type,
            original_name=request.filename,
            uploaded_at=datetime.now(UTC),
        )
        grant = self.storage.presign_get(key, self.url_expiry)
        logger.info("Uploaded %s (%d bytes) as %s", request.filename, request.size, key)
        return UploadResult(stored=stored, grant=grant)

    def upload_many(self, requests: list[UploadRequest]) -> BatchUploadResult:
        if not requests:
            raise bad_request("NO_FILES", "No files provided")

        workers = min(len(requests), MAX_FILES_PER_REQUEST)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="upload") as executor:
            futures = [executor.submit(self.upload_one, request) for request in requests]

        errors = [future.exception() for future in futures if future.exception() is not None]
        if errors:
            logger.warning(
                "Batch upload failed; %d of %d files succeeded",
                len(requests) - len(errors),
                len(requests),
            )
            raise errors[0]

        results = [future.result() for future in futures]
        return BatchUploadResult(files=results, count=len(results))
