# billscan/services/document_store.py
"""
Bill storage: random object names on local disk, served back as static files.
"""

import io
import logging
import uuid
from pathlib import Path
from typing import Optional

from PIL import Image, UnidentifiedImageError

from billscan.core.config import DOCUMENT_DIR, MAX_UPLOAD_MB, PUBLIC_BASE_URL
from billscan.services.errors import UploadFailure

logger = logging.getLogger("billscan.documents")

# Mounted by billscan.main at this URL prefix
STATIC_PREFIX = "/static/bills"

ALLOWED_EXTENSIONS = {"pdf", "png", "jpg", "jpeg", "gif", "webp"}
MAX_FILE_SIZE = MAX_UPLOAD_MB * 1024 * 1024


def document_dir() -> Path:
    d = Path(DOCUMENT_DIR)
    d.mkdir(parents=True, exist_ok=True)
    return d


def extension_of(filename: Optional[str]) -> str:
    if not filename or "." not in filename:
        return ""
    return filename.rsplit(".", 1)[1].lower()


def _validate(content: bytes, ext: str) -> None:
    if ext not in ALLOWED_EXTENSIONS:
        raise UploadFailure(f"Invalid file type. Allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}")
    if not content:
        raise UploadFailure("Empty file")
    if len(content) > MAX_FILE_SIZE:
        raise UploadFailure(f"File too large. Maximum size: {MAX_UPLOAD_MB}MB", status_code=413)

    if ext == "pdf":
        if not content.startswith(b"%PDF-"):
            raise UploadFailure("Invalid PDF file")
        return

    # Validate it's actually an image
    try:
        img = Image.open(io.BytesIO(content))
        img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError):
        raise UploadFailure("Invalid image file")


def public_url(name: str) -> str:
    return f"{PUBLIC_BASE_URL}{STATIC_PREFIX}/{name}"


def save(content: bytes, filename: Optional[str]) -> str:
    """Store the bill and return its public URL. Raises UploadFailure."""
    ext = extension_of(filename)
    _validate(content, ext)

    name = f"{uuid.uuid4().hex}.{ext}"
    path = document_dir() / name
    try:
        path.write_bytes(content)
    except OSError as e:
        logger.error("document write failed path=%s err=%r", path, e)
        raise UploadFailure("Could not store the document", status_code=502) from e

    url = public_url(name)
    logger.info("document stored name=%s bytes=%d", name, len(content))
    return url


def delete(url: str) -> bool:
    """Remove a stored document by its public URL (used when a submission is abandoned)."""
    prefix = public_url("")
    if not url.startswith(prefix):
        return False
    path = document_dir() / url[len(prefix):]
    if not path.exists():
        return False
    try:
        path.unlink()
    except OSError:
        logger.exception("document delete failed path=%s", path)
        return False
    return True
