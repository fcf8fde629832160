from filegate.services.naming import make_object_key, split_extension
from filegate.services.s3_storage import (
    AccessGrant,
    ObjectSummary,
    S3Storage,
    StorageError,
    StorageErrorKind,
    StoredObject,
    create_s3_client,
)
from filegate.services.upload_policy import RejectReason, check_upload, is_type_allowed
from filegate.services.uploads import BatchUploadResult, UploadRequest, UploadResult, UploadService

__all__ = [
    "make_object_key",
    "split_extension",
    "AccessGrant",
    "ObjectSummary",
    "S3Storage",
    "StorageError",
    "StorageErrorKind",
    "StoredObject",
    "create_s3_client",
    "RejectReason",
    "check_upload",
    "is_type_allowed",
    "BatchUploadResult",
    "UploadRequest",
    "UploadResult",
    "UploadService",
]
