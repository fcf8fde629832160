from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from urllib.parse import quote, unquote

import boto3
from botocore.client import BaseClient, Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from filegate.config import Settings

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}
_ACCESS_DENIED_CODES = {"403", "AccessDenied", "InvalidAccessKeyId", "SignatureDoesNotMatch"}
_UNREACHABLE_ERRORS = (EndpointConnectionError, ConnectTimeoutError, ConnectionClosedError, ReadTimeoutError)
_LIST_PAGE_SIZE = 1000


class StorageErrorKind(str, Enum):
    BACKEND_UNREACHABLE = "BACKEND_UNREACHABLE"
    NOT_FOUND = "NOT_FOUND"
    BUCKET_NOT_FOUND = "BUCKET_NOT_FOUND"
    ACCESS_DENIED = "ACCESS_DENIED"
    UNKNOWN = "UNKNOWN"


class StorageError(Exception):
    def __init__(self, kind: StorageErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message


@dataclass
class StoredObject:
    key: str
    size: int
    content_type: str | None
    original_name: str | None
    upload_date: str | None
    last_modified: datetime | None = None
    etag: str | None = None


@dataclass
class ObjectSummary:
    key: str
    size: int
    last_modified: datetime | None
    etag: str | None


@dataclass
class AccessGrant:
    url: str
    expires_in: int
    expires_at: datetime


def classify_error(exc: Exception) -> StorageErrorKind:
    if isinstance(exc, ClientError):
        code = str(exc.response.get("Error", {}).get("Code", ""))
        if code == "NoSuchBucket":
            return StorageErrorKind.BUCKET_NOT_FOUND
        if code in _NOT_FOUND_CODES:
            return StorageErrorKind.NOT_FOUND
        if code in _ACCESS_DENIED_CODES:
            return StorageErrorKind.ACCESS_DENIED
        return StorageErrorKind.UNKNOWN
    if isinstance(exc, _UNREACHABLE_ERRORS):
        return StorageErrorKind.BACKEND_UNREACHABLE
    return StorageErrorKind.UNKNOWN


def _to_storage_error(action: str, exc: Exception) -> StorageError:
    kind = classify_error(exc)
    logger.error("Storage %s failed (%s): %s", action, kind.value, exc)
    return StorageError(kind, f"{action} failed: {exc}")


def create_s3_client(settings: Settings) -> BaseClient:
    return boto3.client(
        "s3",
        region_name=settings.minio_region,
        aws_access_key_id=settings.minio_access_key,
        aws_secret_access_key=settings.minio_secret_key,
        endpoint_url=settings.minio_endpoint_url,
        config=Config(signature_version="s3v4", s3={"addressing_style": "path"}),
    )


class S3Storage:
    """Bucket-scoped wrapper over a boto3 S3 client.

    Every backend failure leaves this class as a ``StorageError`` whose kind is
    decided here, at the call that failed.
    """

    def __init__(self, *, client: BaseClient, bucket: str) -> None:
        self.client = client
        self.bucket = bucket

    def bucket_exists(self) -> bool:
        try:
            self.client.head_bucket(Bucket=self.bucket)
        except (ClientError, BotoCoreError) as exc:
            kind = classify_error(exc)
            if kind in (StorageErrorKind.NOT_FOUND, StorageErrorKind.BUCKET_NOT_FOUND):
                return False
            raise _to_storage_error("Bucket check", exc) from exc
        return True

    def ensure_bucket(self) -> None:
        if self.bucket_exists():
            logger.info("Bucket '%s' already exists", self.bucket)
            return
        try:
            self.client.create_bucket(Bucket=self.bucket)
        except (ClientError, BotoCoreError) as exc:
            raise _to_storage_error("Bucket creation", exc) from exc
        logger.info("Bucket '%s' created successfully", self.bucket)

    def put(
        self,
        *,
        key: str,
        data: bytes,
        size: int,
        content_type: str,
        original_name: str,
        uploaded_at: datetime,
    ) -> StoredObject:
        upload_date = uploaded_at.isoformat()
        try:
            response = self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentLength=size,
                ContentType=content_type,
                Metadata={
                    # S3 user metadata must be ASCII
                    "original-name": quote(original_name),
                    "upload-date": upload_date,
                },
            )
        except (ClientError, BotoCoreError) as exc:
            raise _to_storage_error("Upload", exc) from exc

        return StoredObject(
            key=key,
            size=size,
            content_type=content_type,
            original_name=original_name,
            upload_date=upload_date,
            etag=_strip_etag(response.get("ETag")),
        )

    def presign_get(self, key: str, expires_in: int) -> AccessGrant:
        try:
            url = self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_in,
                HttpMethod="GET",
            )
        except (ClientError, BotoCoreError) as exc:
            raise _to_storage_error("Presigned URL generation", exc) from exc
        return AccessGrant(
            url=url,
            expires_in=expires_in,
            expires_at=datetime.now(UTC) + timedelta(seconds=expires_in),
        )

    def delete(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise _to_storage_error("Delete", exc) from exc

    def list_objects(self, prefix: str = "", limit: int = 1000) -> list[ObjectSummary]:
        objects: list[ObjectSummary] = []
        params: dict = {"Bucket": self.bucket, "Prefix": prefix}
        while len(objects) < limit:
            params["MaxKeys"] = min(_LIST_PAGE_SIZE, limit - len(objects))
            try:
                page = self.client.list_objects_v2(**params)
            except (ClientError, BotoCoreError) as exc:
                raise _to_storage_error("List", exc) from exc

            for item in page.get("Contents", []):
                objects.append(
                    ObjectSummary(
                        key=item["Key"],
                        size=int(item.get("Size", 0)),
                        last_modified=item.get("LastModified"),
                        etag=_strip_etag(item.get("ETag")),
                    )
                )
            token = page.get("NextContinuationToken")
            if not page.get("IsTruncated") or not token:
                break
            params["ContinuationToken"] = token
        return objects[:limit]

    def stat(self, key: str) -> StoredObject:
        try:
            response = self.client.head_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as exc:
            raise _to_storage_error("File info", exc) from exc

        metadata = response.get("Metadata") or {}
        original_name = metadata.get("original-name")
        return StoredObject(
            key=key,
            size=int(response.get("ContentLength", 0)),
            content_type=response.get("ContentType"),
            original_name=unquote(original_name) if original_name is not None else None,
            upload_date=metadata.get("upload-date"),
            last_modified=response.get("LastModified"),
            etag=_strip_etag(response.get("ETag")),
        )


def _strip_etag(etag: str | None) -> str | None:
    if etag is None:
        return None
    return etag.strip('"')
