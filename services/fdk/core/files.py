"""
Body materializer.

Normalizes File metadata and streams File contents to disk while computing the
SHA-256 digest and byte count in the same pass.
"""

import base64
import dataclasses
import hashlib
import logging
import mimetypes
import os
from datetime import datetime, timezone
from typing import BinaryIO, Callable, Optional, Tuple

from ..models.file import File
from .exceptions import FileMaterializeError

logger = logging.getLogger(__name__)

CONTENT_TYPE_OCTET_STREAM = "application/octet-stream"
COPY_CHUNK_SIZE = 64 * 1024

# Checked as substrings of the filename before the extension lookup.
_SPECIAL_CONTENT_TYPES = (
    (".jsonld", "application/ld+json"),
    (".json.gz", "application/json"),
    (".jsonnet", "application/jsonnet"),
    (".yaml", "text/yaml"),
    (".yml", "text/yaml"),
)

# content type -> extension used when a filename is synthesized.
_CONTENT_TYPE_EXTENSIONS = {
    "application/gzip": ".gz",
    "application/json": ".json",
    "application/jsonnet": ".jsonnet",
    "application/ld+json": ".jsonld",
    "application/pdf": ".pdf",
    "application/xml": ".xml",
    "application/zip": ".zip",
    "image/gif": ".gif",
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "text/csv": ".csv",
    "text/html": ".html",
    "text/plain": ".txt",
    "text/xml": ".xml",
    "text/yaml": ".yaml",
}

# filename suffix -> content-encoding token
_EXT_ENCODINGS = {
    "br": "br",
    "gz": "gzip",
    "zst": "zstd",
}

# content-encoding token -> filename suffix
_ENCODING_EXTS = {
    "br": "br",
    "brotli": "br",
    "gzip": "gz",
    "zstd": "zst",
}

# Only the interpreter's built-in table, never the host's mime.types files.
_mime = mimetypes.MimeTypes(filenames=())


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_file(f: File, clock: Callable[[], datetime] = _utc_now) -> File:
    """
    Fill in empty File metadata.

    content type from the filename, encoding from compression suffixes, and a
    filename of the form upload_<RFC3339 now><ext><encoding exts>.
    """
    content_type, encoding, filename = f.content_type, f.encoding, f.filename
    if not content_type:
        content_type = normalize_content_type(filename)
    if not encoding:
        encoding = normalize_encoding(filename)
    if not filename:
        filename = normalize_filename(content_type, encoding, clock())
    return dataclasses.replace(f, content_type=content_type, encoding=encoding, filename=filename)


def normalize_content_type(filename: str) -> str:
    for ext, ct in _SPECIAL_CONTENT_TYPES:
        if ext in filename:
            return ct

    ext = os.path.splitext(filename)[1].lower()
    if not ext:
        return CONTENT_TYPE_OCTET_STREAM
    ct = _mime.types_map[True].get(ext) or _mime.types_map[False].get(ext)
    return ct or CONTENT_TYPE_OCTET_STREAM


def normalize_encoding(filename: str) -> str:
    """
    Encoding tokens for the compression suffixes of a filename, left to right.

    "data.zst.gz" -> "zstd, gzip"
    """
    parts = os.path.basename(filename).split(".", 1)
    if len(parts) == 1:
        return ""
    found = [_EXT_ENCODINGS[p] for p in parts[1].split(".") if p in _EXT_ENCODINGS]
    return ", ".join(found)


def content_type_extension(content_type: str) -> str:
    """
    Extension for a content type. Table entries win; otherwise the alphabetically
    first extension the interpreter knows for the type.
    """
    base = content_type.split(";", 1)[0].strip().lower()
    if not base or base == CONTENT_TYPE_OCTET_STREAM:
        return ""
    if base in _CONTENT_TYPE_EXTENSIONS:
        return _CONTENT_TYPE_EXTENSIONS[base]
    exts = sorted(_mime.guess_all_extensions(base, strict=False))
    return exts[0] if exts else ""


def encoding_extension(encoding: str) -> str:
    exts = []
    for token in encoding.replace(" ", "").split(","):
        ext = _ENCODING_EXTS.get(token.lower())
        if ext:
            exts.append(ext)
    return "." + ".".join(exts) if exts else ""


def format_rfc3339(now: datetime) -> str:
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    out = now.replace(microsecond=0).isoformat()
    if out.endswith("+00:00"):
        out = out[: -len("+00:00")] + "Z"
    return out


def normalize_filename(content_type: str, encoding: str, now: datetime) -> str:
    return (
        "upload_"
        + format_rfc3339(now)
        + content_type_extension(content_type)
        + encoding_extension(encoding)
    )


def write_file(contents: BinaryIO, filename: str) -> Tuple[str, int]:
    """
    Stream contents to filename.

    Returns:
        (base64 SHA-256 of the written bytes, number of bytes written)

    Raises:
        FileMaterializeError: the destination cannot be opened, written or closed.
    """
    try:
        fd = os.open(filename, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        dest = os.fdopen(fd, "wb")
    except OSError as e:
        _close_source(contents)
        raise FileMaterializeError("failed to open file", e) from e

    digest, size = hashlib.sha256(), 0
    try:
        while True:
            chunk = contents.read(COPY_CHUNK_SIZE)
            if not chunk:
                break
            dest.write(chunk)
            digest.update(chunk)
            size += len(chunk)
    except Exception as e:
        _close_quietly(dest)
        _close_source(contents)
        raise FileMaterializeError("failed to write contents to file", e) from e

    _close_source(contents)

    try:
        dest.close()
    except OSError as e:
        raise FileMaterializeError("failed to close file", e) from e

    return base64.b64encode(digest.digest()).decode("ascii"), size


def _close_source(contents: Optional[BinaryIO]) -> None:
    if contents is None:
        return
    try:
        contents.close()
    except Exception as e:
        # The write is what matters; a failing source close is only reported.
        logger.error("failed to close file contents", extra={"error_detail": str(e)})


def _close_quietly(dest: BinaryIO) -> None:
    try:
        dest.close()
    except OSError as e:
        logger.warning("failed to close destination after write error: %s", e)
