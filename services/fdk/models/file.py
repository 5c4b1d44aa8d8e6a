"""
File response body models.
"""

from dataclasses import dataclass
from typing import BinaryIO, Optional

from pydantic import BaseModel, Field, field_serializer


@dataclass
class File:
    """
    A response body that the runner streams to disk.

    The runner normalizes the metadata, writes contents to filename, and replaces
    the body with FileMeta. Ownership of contents moves to the runner, which
    closes it.
    """

    content_type: str = ""
    encoding: str = ""
    filename: str = ""
    contents: Optional[BinaryIO] = None


class FileMeta(BaseModel):
    """Wire body replacing a File once its contents are written."""

    content_type: str
    encoding: str
    filename: str
    sha256_checksum: str = Field(..., description="base64 encoded SHA-256 of the written bytes")
    size: int

    @field_serializer("size")
    def _size_as_string(self, size: int) -> str:
        return str(size)
