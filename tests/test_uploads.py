import re

import pytest
from botocore.exceptions import ClientError

from filegate.exceptions import ApiError
from filegate.services.s3_storage import StorageError, StorageErrorKind
from filegate.services.uploads import UploadRequest, UploadService


def _request(filename: str = "clip.mp4", content: bytes | None = b"hello", path: str = "") -> UploadRequest:
    return UploadRequest(
        content=content,
        content_type="video/mp4",
        size=len(content or b""),
        filename=filename,
        path=path,
    )


def test_upload_one_stores_object_and_returns_grant(storage, fake_s3):
    service = UploadService(storage=storage, url_expiry=600)

    result = service.upload_one(_request(path="media"))

    assert re.fullmatch(r"media/clip_\d+_[a-f0-9]{8}\.mp4", result.stored.key)
    assert fake_s3.objects[result.stored.key]["Body"] == b"hello"
    assert result.grant.expires_in == 600
    assert result.stored.key in result.grant.url


def test_upload_one_without_payload_never_calls_backend(storage, fake_s3):
    service = UploadService(storage=storage, url_expiry=600)

    with pytest.raises(ApiError) as exc_info:
        service.upload_one(_request(content=None))

    assert exc_info.value.code == "NO_FILE"
    assert fake_s3.calls == []


def test_presign_failure_keeps_stored_object(storage, fake_s3):
    fake_s3.fail("generate_presigned_url", ClientError({"Error": {"Code": "InternalError"}}, "Presign"))
    service = UploadService(storage=storage, url_expiry=600)

    with pytest.raises(StorageError) as exc_info:
        service.upload_one(_request())

    assert exc_info.value.kind is StorageErrorKind.UNKNOWN
    assert len(fake_s3.objects) == 1


def test_upload_many_requires_files(storage):
    service = UploadService(storage=storage, url_expiry=600)

    with pytest.raises(ApiError) as exc_info:
        service.upload_many([])

    assert exc_info.value.code == "NO_FILES"


def test_upload_many_returns_results_in_input_order(storage):
    service = UploadService(storage=storage, url_expiry=600)
    names = [f"file{index}.mp4" for index in range(10)]

    batch = service.upload_many([_request(filename=name) for name in names])

    assert batch.count == 10
    assert [result.stored.original_name for result in batch.files] == names


def test_upload_many_fails_whole_batch_without_rollback(storage, monkeypatch):
    service = UploadService(storage=storage, url_expiry=600)
    original_put = storage.put

    def flaky_put(**kwargs):
        if kwargs["original_name"] == "bad.mp4":
            raise StorageError(StorageErrorKind.ACCESS_DENIED, "Upload failed: AccessDenied")
        return original_put(**kwargs)

    monkeypatch.setattr(storage, "put", flaky_put)

    with pytest.raises(StorageError) as exc_info:
        service.upload_many([_request("good.mp4"), _request("bad.mp4"), _request("also-good.mp4")])

    assert exc_info.value.kind is StorageErrorKind.ACCESS_DENIED
    assert len(storage.client.objects) == 2
