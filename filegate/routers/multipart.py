"""Multipart decoding for the upload routes.

Limits are applied while the body streams in. A file part is checked for
its field name, the file count and its type as soon as its headers arrive,
and for its size as its bytes arrive, so a rejected part is never spooled
in full. A declared or actual body larger than the route's ceiling is
refused before it is fully read.
"""

import math
from collections.abc import AsyncIterator

from fastapi import Depends, Request
from starlette.datastructures import FormData, Headers, UploadFile
from starlette.formparsers import MultiPartException, MultiPartParser

from filegate.config import MAX_FILES_PER_REQUEST, Settings
from filegate.dependencies import get_settings
from filegate.exceptions import ApiError, bad_request
from filegate.services.naming import base_filename
from filegate.services.upload_policy import RejectReason, check_upload
from filegate.services.uploads import UploadRequest

SINGLE_FILE_FIELD = "file"
MULTIPLE_FILES_FIELD = "files"
PATH_FIELD = "path"

# Room for part headers, boundaries and plain form fields.
_FORM_OVERHEAD_BYTES = 1024 * 1024
_DEFAULT_CONTENT_TYPE = "application/octet-stream"


def _file_too_large(settings: Settings) -> ApiError:
    return bad_request("FILE_TOO_LARGE", "File too large", f"Maximum file size is {settings.max_file_size}")


def _too_many_files() -> ApiError:
    return bad_request("TOO_MANY_FILES", "Too many files", f"Maximum {MAX_FILES_PER_REQUEST} files per request")


def _unexpected_field() -> ApiError:
    return bad_request("UNEXPECTED_FIELD", "Unexpected field", "Unexpected file field")


def _is_named_file(upload: UploadFile) -> bool:
    # Browsers send an empty filename for an unset file input.
    return bool(base_filename(upload.filename or ""))


async def limited_stream(
    chunks: AsyncIterator[bytes], max_body_bytes: int, settings: Settings
) -> AsyncIterator[bytes]:
    received = 0
    async for chunk in chunks:
        received += len(chunk)
        if received > max_body_bytes:
            raise _file_too_large(settings)
        yield chunk


class UploadFormParser(MultiPartParser):
    """``MultiPartParser`` that enforces the upload limits part by part."""

    def __init__(
        self,
        headers: Headers,
        stream: AsyncIterator[bytes],
        *,
        settings: Settings,
        field: str,
        max_files: int,
    ) -> None:
        # File parts are counted here, not by Starlette.
        super().__init__(headers, stream, max_files=math.inf)
        self.settings = settings
        self.field = field
        self.file_limit = max_files
        self.file_count = 0
        self.spooled: list[UploadFile] = []
        self._part_bytes = 0

    def _enforce_policy(self, upload: UploadFile) -> None:
        content_type = upload.content_type or _DEFAULT_CONTENT_TYPE
        reason = check_upload(
            content_type,
            self._part_bytes,
            self.settings.allowed_file_types,
            self.settings.max_file_bytes,
        )
        if reason is RejectReason.TYPE_NOT_ALLOWED:
            raise bad_request(
                "INVALID_FILE_TYPE",
                "Invalid file type",
                f"File type {content_type} is not allowed. "
                f"Allowed types: {', '.join(self.settings.allowed_file_types)}",
            )
        if reason is RejectReason.SIZE_EXCEEDED:
            raise _file_too_large(self.settings)

    def on_headers_finished(self) -> None:
        super().on_headers_finished()
        self._part_bytes = 0
        upload = self._current_part.file
        if upload is None:
            return
        self.spooled.append(upload)
        if not _is_named_file(upload):
            return

        if self._current_part.field_name != self.field:
            raise _unexpected_field()
        self.file_count += 1
        if self.file_count > self.file_limit:
            if self.file_limit == 1:
                raise _unexpected_field()
            raise _too_many_files()
        self._enforce_policy(upload)

    def on_part_data(self, data: bytes, start: int, end: int) -> None:
        super().on_part_data(data, start, end)
        upload = self._current_part.file
        if upload is None:
            return
        self._part_bytes += end - start
        if self._part_bytes > self.settings.max_file_bytes:
            raise _file_too_large(self.settings)

    async def parse(self) -> FormData:
        try:
            return await super().parse()
        except BaseException:
            for upload in self.spooled:
                upload.file.close()
            raise


async def read_upload_form(
    request: Request,
    settings: Settings,
    *,
    field: str,
    max_files: int,
) -> list[UploadRequest]:
    """Decode the multipart body and return one ``UploadRequest`` per file part.

    Bodies that are not multipart decode to an empty list, and so do file
    parts whose filename has no last path component (``""``, ``clips/``).
    """
    if not request.headers.get("content-type", "").startswith("multipart/form-data"):
        return []

    max_body_bytes = max_files * settings.max_file_bytes + _FORM_OVERHEAD_BYTES
    declared_length = request.headers.get("content-length")
    if declared_length and declared_length.isdigit() and int(declared_length) > max_body_bytes:
        raise _file_too_large(settings)

    parser = UploadFormParser(
        request.headers,
        limited_stream(request.stream(), max_body_bytes, settings),
        settings=settings,
        field=field,
        max_files=max_files,
    )
    try:
        form = await parser.parse()
    except MultiPartException as exc:
        raise bad_request("UPLOAD_ERROR", "Upload error", exc.message) from exc

    try:
        path = form.get(PATH_FIELD)
        if not isinstance(path, str) or not path:
            path = request.query_params.get(PATH_FIELD, "")

        requests: list[UploadRequest] = []
        for _, upload in form.multi_items():
            if not isinstance(upload, UploadFile) or not _is_named_file(upload):
                continue
            content = await upload.read()
            requests.append(
                UploadRequest(
                    content=content,
                    content_type=upload.content_type or _DEFAULT_CONTENT_TYPE,
                    size=len(content),
                    filename=upload.filename,
                    path=path,
                )
            )
        return requests
    finally:
        await form.close()


async def single_upload(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> UploadRequest | None:
    requests = await read_upload_form(request, settings, field=SINGLE_FILE_FIELD, max_files=1)
    return requests[0] if requests else None


async def multiple_uploads(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> list[UploadRequest]:
    return await read_upload_form(
        request,
        settings,
        field=MULTIPLE_FILES_FIELD,
        max_files=MAX_FILES_PER_REQUEST,
    )
