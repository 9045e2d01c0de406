"""On-disk storage of CSV uploads.

Uploads are kept for the lifetime of their import job: the engine reads the
stored file (never the request body) and ``DELETE /api/import/{id}``
removes it.  Layout::

    UPLOADS_DIR/imports/{year}/{month:02d}/{username}/{uuid}_{sanitized_name}

``csv_imports.filename`` holds the path relative to ``UPLOADS_DIR``.
"""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)

_IMPORTS_SUBDIR = "imports"
_FALLBACK_NAME = "upload.csv"


@dataclass(frozen=True)
class StoredUpload:
    path: Path
    relative_path: str


def sanitize_filename(filename: str) -> str:
    """Replace spaces with underscores and drop anything outside ``[\\w.-]``."""
    return re.sub(r"[^\w.\-]", "", filename.replace(" ", "_"))


def resolve_upload_path(relative_path: str, uploads_dir: Path) -> Path:
    return uploads_dir / relative_path


def save_upload(
    raw_bytes: bytes,
    filename: str | None,
    uploads_dir: Path,
    username: str = "anonymous",
) -> StoredUpload:
    """Persist an accepted upload under a unique, user-partitioned name.

    Args:
        raw_bytes: File contents, already size-checked.
        filename: Name supplied by the uploader; sanitized, never trusted.
        uploads_dir: Root upload directory (``Settings.UPLOADS_DIR``).
        username: Submitting user, used as a subfolder.
    """
    now = datetime.now()
    user_dir = sanitize_filename(username) or "anonymous"
    relative_dir = Path(_IMPORTS_SUBDIR, str(now.year), f"{now.month:02d}", user_dir)
    (uploads_dir / relative_dir).mkdir(parents=True, exist_ok=True)

    stored_name = f"{uuid.uuid4().hex}_{sanitize_filename(filename or '') or _FALLBACK_NAME}"
    relative_path = (relative_dir / stored_name).as_posix()
    path = resolve_upload_path(relative_path, uploads_dir)
    path.write_bytes(raw_bytes)
    logger.debug("Stored upload %s (%d bytes)", relative_path, len(raw_bytes))
    return StoredUpload(path=path, relative_path=relative_path)


def delete_upload(relative_path: str, uploads_dir: Path) -> bool:
    """Remove a stored upload; ``False`` when the file was already gone."""
    path = resolve_upload_path(relative_path, uploads_dir)
    try:
        path.unlink()
    except FileNotFoundError:
        logger.warning("delete_upload: %s already removed", path)
        return False
    return True
