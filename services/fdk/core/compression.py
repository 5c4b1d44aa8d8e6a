"""
Streaming gzip compression for File bodies.

A background thread compresses the source into an OS pipe while the consumer
reads compressed bytes from the other end. The pipe buffer bounds memory: the
producer blocks whenever the consumer stops draining.
"""

import dataclasses
import gzip
import io
import logging
import os
import shutil
import threading
from typing import BinaryIO, List, Optional

from ..models.file import File

logger = logging.getLogger(__name__)

_COPY_CHUNK_SIZE = 64 * 1024


def compress_gzip(f: File) -> File:
    """Add the gzip token to the encoding and compress contents on read."""
    encoding = f.encoding
    if not encoding:
        encoding = "gzip"
    elif "gzip" not in encoding:
        encoding += ", gzip"
    return dataclasses.replace(f, encoding=encoding, contents=GzipCompressor(f.contents))


class GzipCompressor(io.RawIOBase):
    """
    Readable stream of the gzip-compressed bytes of source.

    Compression starts on the first read; a File that is never read never
    starts a thread.
    """

    def __init__(self, source: BinaryIO):
        super().__init__()
        self._source = source
        read_fd, write_fd = os.pipe()
        self._reader = os.fdopen(read_fd, "rb", buffering=0)
        self._writer = os.fdopen(write_fd, "wb")
        self._gzip: Optional[gzip.GzipFile] = None

        self._lock = threading.Lock()
        self._started = False
        self._closing = False
        self._thread: Optional[threading.Thread] = None
        self._copy_err: Optional[BaseException] = None
        self._close_err: Optional[BaseException] = None

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        self._start()
        return self._reader.readinto(buffer)

    def _start(self) -> None:
        with self._lock:
            if self._started:
                return
            if self._closing:
                raise ValueError("read from closed compressor")
            self._started = True
            self._gzip = gzip.GzipFile(fileobj=self._writer, mode="wb")
            self._thread = threading.Thread(
                target=self._compress, daemon=True, name="gzip-compressor"
            )
        self._thread.start()

    def _compress(self) -> None:
        try:
            shutil.copyfileobj(self._source, self._gzip, _COPY_CHUNK_SIZE)
        except Exception as e:
            with self._lock:
                if not (self._closing and isinstance(e, BrokenPipeError)):
                    self._copy_err = e
        finally:
            errs = []
            for closer in (self._gzip.close, self._writer.close):
                try:
                    closer()
                except BrokenPipeError as e:
                    if not self._closing:
                        errs.append(e)
                except (OSError, ValueError) as e:
                    errs.append(e)
            with self._lock:
                if errs:
                    self._close_err = errs[0]

    def close(self) -> None:
        """
        Release the compressor, both pipe ends and the source.

        Every failure is collected and raised as one ExceptionGroup.
        """
        if self.closed:
            return
        with self._lock:
            self._closing = True
            started = self._started

        errs: List[BaseException] = []

        if started:
            # Closing the read end unblocks a producer stuck on a full pipe.
            _collect(errs, self._reader.close)
            self._thread.join()
        else:
            _collect(errs, self._writer.close)
            _collect(errs, self._reader.close)

        if self._source is not None:
            _collect(errs, self._source.close)

        with self._lock:
            errs = [e for e in (self._close_err, self._copy_err) if e is not None] + errs

        super().close()
        if errs:
            raise ExceptionGroup("failed to close gzip compressor", errs)


def _collect(errs: List[BaseException], closer) -> None:
    try:
        closer()
    except Exception as e:
        errs.append(e)
