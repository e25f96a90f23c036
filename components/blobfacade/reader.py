
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterator, Optional, Type

from .errors import BlobClosed, wrap_error
from .observability import EndFn, Tracer
from .ports import BlobDriver, DriverReader

log = logging.getLogger("blobfacade.reader")

DEFAULT_CHUNK = 64 * 1024


class Reader:
    """Reads one byte range of a blob. Close exactly once, even if nothing was read."""

    def __init__(self, driver: BlobDriver, stream: DriverReader, tracer: Tracer, end: EndFn):
        self._driver = driver
        self._stream = stream
        self._tracer = tracer
        self._end = end
        self._closed = False
        # attributes are captured at open time so no second round trip is needed
        self._attrs = stream.attributes

    @property
    def content_type(self) -> str:
        return self._attrs.content_type

    @property
    def mod_time(self) -> Optional[datetime]:
        return self._attrs.mod_time

    @property
    def size(self) -> int:
        """Size of the whole blob, not of the requested range."""
        return self._attrs.size

    @property
    def closed(self) -> bool:
        return self._closed

    def as_(self, cls: Type[Any]) -> Any:
        """Provider-native reader of type ``cls``, or None."""
        return self._stream.as_(cls)

    def read(self, size: int = -1) -> bytes:
        """Read up to ``size`` bytes, or everything left when ``size < 0``."""
        if size is None or size < 0:
            chunks = []
            while True:
                chunk = self._read_chunk(DEFAULT_CHUNK)
                if not chunk:
                    return b"".join(chunks)
                chunks.append(chunk)
        return self._read_chunk(size)

    def readinto(self, buffer) -> int:
        view = memoryview(buffer).cast("B")
        data = self._read_chunk(len(view))
        view[: len(data)] = data
        return len(data)

    def close(self) -> None:
        if self._closed:
            raise BlobClosed("blob reader is closed")
        self._closed = True
        err = None
        try:
            self._stream.close()
        except Exception as e:
            err = wrap_error(self._driver, e)
            raise err
        finally:
            self._end(err)

    def _read_chunk(self, size: int) -> bytes:
        if self._closed:
            raise BlobClosed("blob reader is closed")
        if size == 0:
            return b""
        try:
            data = self._stream.read(size)
        except Exception as e:
            raise wrap_error(self._driver, e)
        self._tracer.record_bytes_read(len(data))
        return data

    def __iter__(self) -> Iterator[bytes]:
        while True:
            chunk = self._read_chunk(DEFAULT_CHUNK)
            if not chunk:
                return
            yield chunk

    def __enter__(self) -> "Reader":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._closed:
            return
        if exc is None:
            self.close()
            return
        # the failure inside the block is what the caller sees
        try:
            self.close()
        except Exception:
            log.debug("blob.read close after failure also failed", exc_info=True)
