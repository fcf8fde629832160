from collections.abc import Iterable
from enum import Enum


class RejectReason(str, Enum):
    TYPE_NOT_ALLOWED = "TYPE_NOT_ALLOWED"
    SIZE_EXCEEDED = "SIZE_EXCEEDED"


def is_type_allowed(media_type: str, allowed_types: Iterable[str]) -> bool:
    for allowed in allowed_types:
        if allowed.endswith("/*"):
            if media_type.startswith(allowed[:-1]):
                return True
        elif media_type == allowed:
            return True
    return False


def check_upload(
    media_type: str,
    size: int,
    allowed_types: Iterable[str],
    max_bytes: int,
) -> RejectReason | None:
    """Return the reason a file must be rejected, or ``None`` when it is acceptable."""
    if not is_type_allowed(media_type, allowed_types):
        return RejectReason.TYPE_NOT_ALLOWED
    if size > max_bytes:
        return RejectReason.SIZE_EXCEEDED
    return None
