"""
ComplexPayload model.
"""

import io
import logging
from dataclasses import dataclass, field
from typing import BinaryIO, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class ComplexPayload:
    """
    A multi-part submission: the raw non-file body plus named file streams.

    It stands in for the request body stream but cannot be read as one.
    """

    body: Optional[bytes] = None
    files: Dict[str, BinaryIO] = field(default_factory=dict)

    def read(self, size: int = -1) -> bytes:
        raise io.UnsupportedOperation(
            "read() not supported - treat ComplexPayload as a standard object"
        )

    def close(self) -> None:
        """Close every file stream. Failures are raised together."""
        errs = []
        for name, stream in self.files.items():
            close = getattr(stream, "close", None)
            if close is None:
                continue
            try:
                close()
            except Exception as e:
                errs.append(OSError(f"failed to close {name}: {e}"))
        if errs:
            raise ExceptionGroup("failed to close complex payload files", errs)
