from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UploadedFile(_CamelModel):
    object_name: str
    original_name: str
    size: int
    mimetype: str
    upload_date: str
    etag: str | None = None
    access_url: str
    url_expires_at: datetime


class BatchUploadData(_CamelModel):
    files: list[UploadedFile]
    count: int


class AccessUrl(_CamelModel):
    url: str
    expires_in: int
    expires_at: datetime


class FileInfo(_CamelModel):
    name: str
    size: int
    last_modified: datetime | None = None
    etag: str | None = None
    content_type: str | None = None
    original_name: str | None = None
    upload_date: str | None = None


class FileSummary(_CamelModel):
    name: str
    size: int
    last_modified: datetime | None = None
    etag: str | None = None


class FileListData(_CamelModel):
    files: list[FileSummary]
    count: int


class DeletedFile(_CamelModel):
    object_name: str


class HealthData(_CamelModel):
    status: str
    timestamp: str
    storage: str
    bucket: str | None = None


class UploadResponse(BaseModel):
    success: bool = True
    message: str
    data: UploadedFile


class BatchUploadResponse(BaseModel):
    success: bool = True
    message: str
    data: BatchUploadData


class AccessUrlResponse(BaseModel):
    success: bool = True
    message: str
    data: AccessUrl


class FileInfoResponse(BaseModel):
    success: bool = True
    message: str
    data: FileInfo


class FileListResponse(BaseModel):
    success: bool = True
    message: str
    data: FileListData


class DeleteResponse(BaseModel):
    success: bool = True
    message: str
    data: DeletedFile


class HealthResponse(BaseModel):
    success: bool = True
    message: str
    data: HealthData


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    code: str
    timestamp: str
    message: str | None = None
    path: str | None = None
    method: str | None = None
