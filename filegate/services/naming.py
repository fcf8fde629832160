import re
import time
from uuid import uuid4

_PATH_SEPARATORS = re.compile(r"[\\/]")


def split_extension(filename: str) -> tuple[str, str]:
    """Split ``filename`` at its last dot.

    A leading dot alone (``.env``) is part of the base name, not an extension.
    """
    dot = filename.rfind(".")
    if dot <= 0:
        return filename, ""
    return filename[:dot], filename[dot:]


def base_filename(filename: str) -> str:
    """Return the last path component of a client-supplied filename."""
    return _PATH_SEPARATORS.split(filename)[-1] if filename else ""


def make_object_key(original_filename: str, destination_prefix: str = "") -> str:
    """Build a collision-resistant object key for an uploaded file.

    ``report.final.pdf`` becomes ``report.final_<epoch ms>_<8 hex>.pdf``; a
    non-empty prefix is joined in front with ``/``.
    """
    name = base_filename(original_filename)
    if not name:
        raise ValueError("original_filename must not be empty")

    base, ext = split_extension(name)
    timestamp = int(time.time() * 1000)
    suffix = uuid4().hex[:8]
    key = f"{base}_{timestamp}_{suffix}{ext}"
    if destination_prefix:
        return f"{destination_prefix}/{key}"
    return key
