import hashlib
from datetime import UTC, datetime

import pytest
from botocore.exceptions import ClientError
from fastapi.testclient import TestClient

from filegate.config import Settings
from filegate.main import create_app
from filegate.services.s3_storage import S3Storage

BUCKET = "uploads"


def _client_error(code: str, operation: str, message: str = "") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message or code}}, operation)


class FakeS3Client:
    """In-memory stand-in for a boto3 S3 client."""

    def __init__(self) -> None:
        self.buckets: set[str] = set()
        self.objects: dict[str, dict] = {}
        self.calls: list[str] = []
        self._failures: dict[str, Exception] = {}

    def fail(self, operation: str, exc: Exception) -> None:
        self._failures[operation] = exc

    def _record(self, operation: str) -> None:
        self.calls.append(operation)
        if operation in self._failures:
            raise self._failures[operation]

    def _require_bucket(self, bucket: str, operation: str) -> None:
        if bucket not in self.buckets:
            raise _client_error("NoSuchBucket", operation)

    def head_bucket(self, *, Bucket: str) -> dict:
        self._record("head_bucket")
        if Bucket not in self.buckets:
            raise _client_error("404", "HeadBucket", "Not Found")
        return {}

    def create_bucket(self, *, Bucket: str) -> dict:
        self._record("create_bucket")
        self.buckets.add(Bucket)
        return {}

    def put_object(self, *, Bucket: str, Key: str, Body: bytes, ContentLength: int, ContentType: str, Metadata: dict):
        self._record("put_object")
        self._require_bucket(Bucket, "PutObject")
        etag = f'"{hashlib.md5(Body).hexdigest()}"'
        self.objects[Key] = {
            "Body": Body,
            "ContentLength": ContentLength,
            "ContentType": ContentType,
            "Metadata": dict(Metadata),
            "LastModified": datetime.now(UTC),
            "ETag": etag,
        }
        return {"ETag": etag}

    def generate_presigned_url(self, operation: str, *, Params: dict, ExpiresIn: int, HttpMethod: str) -> str:
        self._record("generate_presigned_url")
        return f"http://storage.local/{Params['Bucket']}/{Params['Key']}?X-Amz-Expires={ExpiresIn}"

    def delete_object(self, *, Bucket: str, Key: str) -> dict:
        self._record("delete_object")
        self._require_bucket(Bucket, "DeleteObject")
        self.objects.pop(Key, None)
        return {}

    def list_objects_v2(self, *, Bucket: str, Prefix: str, MaxKeys: int, ContinuationToken: str | None = None):
        self._record("list_objects_v2")
        self._require_bucket(Bucket, "ListObjectsV2")
        keys = sorted(key for key in self.objects if key.startswith(Prefix))
        start = int(ContinuationToken or 0)
        page = keys[start : start + MaxKeys]
        truncated = start + MaxKeys < len(keys)
        response = {
            "IsTruncated": truncated,
            "Contents": [
                {
                    "Key": key,
                    "Size": self.objects[key]["ContentLength"],
                    "LastModified": self.objects[key]["LastModified"],
                    "ETag": self.objects[key]["ETag"],
                }
                for key in page
            ],
        }
        if truncated:
            response["NextContinuationToken"] = str(start + MaxKeys)
        return response

    def head_object(self, *, Bucket: str, Key: str) -> dict:
        self._record("head_object")
        self._require_bucket(Bucket, "HeadObject")
        if Key not in self.objects:
            raise _client_error("404", "HeadObject", "Not Found")
        stored = self.objects[Key]
        return {
            "ContentLength": stored["ContentLength"],
            "ContentType": stored["ContentType"],
            "Metadata": stored["Metadata"],
            "LastModified": stored["LastModified"],
            "ETag": stored["ETag"],
        }


def make_settings(**overrides) -> Settings:
    values = dict(
        port=3000,
        app_env="test",
        log_level="INFO",
        minio_endpoint="localhost",
        minio_port=9000,
        minio_use_ssl=False,
        minio_access_key="minioadmin",
        minio_secret_key="minioadmin",
        minio_region="us-east-1",
        bucket_name=BUCKET,
        max_file_size="1KB",
        allowed_file_types=("video/*", "image/*", "application/pdf"),
        cors_origins=("http://localhost:3000",),
        rate_limit_window_ms=900_000,
        rate_limit_max_requests=1000,
        presigned_url_expiry=3600,
        request_timeout_seconds=30,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def fake_s3() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def storage(fake_s3: FakeS3Client) -> S3Storage:
    fake_s3.buckets.add(BUCKET)
    return S3Storage(client=fake_s3, bucket=BUCKET)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def client(fake_s3: FakeS3Client, settings: Settings):
    app = create_app(settings, storage=S3Storage(client=fake_s3, bucket=BUCKET))
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
