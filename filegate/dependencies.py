from fastapi import Depends, Request

from filegate.config import Settings
from filegate.services.s3_storage import S3Storage
from filegate.services.uploads import UploadService


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_storage(request: Request) -> S3Storage:
    return request.app.state.storage


def get_upload_service(
    storage: S3Storage = Depends(get_storage),
    settings: Settings = Depends(get_settings),
) -> UploadService:
    return UploadService(storage=storage, url_expiry=settings.presigned_url_expiry)
