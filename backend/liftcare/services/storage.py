from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath

from ..config import settings

logger = logging.getLogger(__name__)

FILES_MOUNT = "/files"


def _resolve(path: str) -> Path:
    relative = PurePosixPath(path)
    if relative.is_absolute() or ".." in relative.parts or not relative.parts:
        raise ValueError(f"Invalid storage path: {path!r}")
    return settings.storage_dir.joinpath(*relative.parts)


def get_file_url(path: str) -> str:
    return f"{settings.public_base_url.rstrip('/')}{FILES_MOUNT}/{PurePosixPath(path).as_posix()}"


def upload_file(content: bytes, path: str, content_type: str = "application/octet-stream") -> str:
    """Store ``content`` under ``path`` replacing any previous file and return its public URL."""
    target = _resolve(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp = target.with_name(f".{target.name}.tmp")
    tmp.write_bytes(content)
    tmp.replace(target)
    logger.debug("Stored %s (%s, %d bytes)", path, content_type, len(content))
    return get_file_url(path)


def delete_file(path: str) -> bool:
    target = _resolve(path)
    if not target.exists():
        return False
    target.unlink()
    return True


def path_from_url(url: str) -> str | None:
    prefix = f"{settings.public_base_url.rstrip('/')}{FILES_MOUNT}/"
    if not url.startswith(prefix):
        return None
    return url[len(prefix):] or None
