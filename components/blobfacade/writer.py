
"""
Blob writer session.

A writer created without a content type starts *pending*: bytes are
buffered until ``SNIFF_LEN`` of them have arrived (or ``close`` is called),
the content type is sniffed from the buffer, and only then is the driver
writer opened. From that point the session is *open* and bytes pass
straight through. The transition happens at most once.

When an expected MD5 is supplied, every byte written is hashed and checked
at close; on mismatch the session is cancelled and the driver writer is
closed without a successful commit.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from .cancel import CancelToken
from .contracts import DriverWriterOptions
from .errors import BlobCancelled, BlobClosed, BlobError, BlobIntegrityMismatch, wrap_error
from .observability import EndFn, Tracer
from .ports import BlobDriver, DriverWriter
from .sniff import SNIFF_LEN, detect_content_type

log = logging.getLogger("blobfacade.writer")


@dataclass
class _Pending:
    key: str
    opts: DriverWriterOptions
    buf: bytearray = field(default_factory=bytearray)


@dataclass
class _Open:
    stream: DriverWriter
    content_type: str


@dataclass
class _Failed:
    error: BlobError


@dataclass
class _Closed:
    content_type: Optional[str] = None


_State = Union[_Pending, _Open, _Failed, _Closed]


class Writer:
    """Writes bytes to one blob. Not safe for concurrent use; close exactly once."""

    def __init__(
        self,
        driver: BlobDriver,
        tracer: Tracer,
        end: EndFn,
        cancel: CancelToken,
        state: _State,
        content_md5: Optional[bytes] = None,
    ):
        self._driver = driver
        self._tracer = tracer
        self._end = end
        self._cancel = cancel
        self._state: _State = state
        self._content_md5 = content_md5 or None
        self._md5 = hashlib.md5() if self._content_md5 else None

    @classmethod
    def pending(cls, driver, tracer, end, cancel, key: str, opts: DriverWriterOptions,
                content_md5: Optional[bytes] = None) -> "Writer":
        return cls(driver, tracer, end, cancel, _Pending(key=key, opts=opts), content_md5)

    @classmethod
    def opened(cls, driver, tracer, end, cancel, stream: DriverWriter, content_type: str,
               content_md5: Optional[bytes] = None) -> "Writer":
        return cls(driver, tracer, end, cancel, _Open(stream=stream, content_type=content_type), content_md5)

    @property
    def content_type(self) -> Optional[str]:
        """Media type the provider stream was opened with; None while pending."""
        st = self._state
        if isinstance(st, (_Open, _Closed)):
            return st.content_type
        return None

    @property
    def closed(self) -> bool:
        return isinstance(self._state, _Closed)

    def as_(self, cls: type) -> Any:
        """Provider-native writer of type ``cls``; None until the provider stream is open."""
        st = self._state
        if isinstance(st, _Open):
            return st.stream.as_(cls)
        return None

    def write(self, data: bytes) -> int:
        """Write ``data``. Success here does not mean the blob is durable; ``close`` decides."""
        st = self._state
        if isinstance(st, _Closed):
            raise BlobClosed("blob writer is closed")
        if isinstance(st, _Failed):
            raise st.error
        data = bytes(data)
        if self._md5 is not None:
            self._md5.update(data)
        if isinstance(st, _Open):
            return self._forward(st, data)

        # Pending: sniff directly if the first chunk already fills the window.
        if not st.buf and len(data) >= SNIFF_LEN:
            self._open(st, data)
            return len(data)
        st.buf.extend(data)
        if len(st.buf) >= SNIFF_LEN:
            self._open(st, bytes(st.buf))
        return len(data)

    def close(self) -> None:
        """Finish the write. The blob is only written if this returns without error."""
        st = self._state
        if isinstance(st, _Closed):
            raise BlobClosed("blob writer is closed")
        err: Optional[BaseException] = None
        try:
            if self._md5 is not None:
                actual = self._md5.digest()
                if actual != self._content_md5:
                    self._abort(st)
                    log.warning("blob.write integrity mismatch expected=%s actual=%s",
                                self._content_md5.hex(), actual.hex())
                    raise BlobIntegrityMismatch(self._content_md5, actual)
            if isinstance(st, _Failed):
                raise st.error
            if isinstance(st, _Pending):
                st = self._open(st, bytes(st.buf))
            try:
                st.stream.close()
            except Exception as e:
                raise wrap_error(self._driver, e)
        except BaseException as e:
            err = e
            raise
        finally:
            self._cancel.cancel()
            self._state = _Closed(content_type=st.content_type if isinstance(st, _Open) else None)
            self._end(err)

    def abort(self, exc: Optional[BaseException] = None) -> None:
        """Cancel the session and release the driver writer without committing.

        ``exc`` is the failure that made the caller give up; it is what the
        session's span and metrics record.
        """
        st = self._state
        if isinstance(st, _Closed):
            return
        self._abort(st)
        self._state = _Closed()
        self._end(exc or BlobCancelled("blob write aborted"))

    # ---------- Internals ----------

    def _abort(self, st: _State) -> None:
        self._cancel.cancel()
        if isinstance(st, _Open):
            try:
                st.stream.close()
            except Exception:
                log.debug("blob.write close after cancel failed", exc_info=True)

    def _open(self, st: _Pending, data: bytes) -> _Open:
        ct = detect_content_type(data)
        log.debug("blob.write sniffed key=%s content_type=%s from %d bytes", st.key, ct, len(data))
        try:
            stream = self._driver.new_typed_writer(st.key, ct, st.opts, self._cancel)
        except Exception as e:
            err = wrap_error(self._driver, e)
            self._cancel.cancel()
            self._state = _Failed(err)
            raise err
        opened = _Open(stream=stream, content_type=ct)
        self._state = opened
        try:
            self._forward(opened, data)
        except BlobError as err:
            # the stream was opened here, so it is released here
            self._abort(opened)
            self._state = _Failed(err)
            raise
        return opened

    def _forward(self, st: _Open, data: bytes) -> int:
        try:
            n = st.stream.write(data)
        except Exception as e:
            raise wrap_error(self._driver, e)
        self._tracer.record_bytes_written(n)
        return n

    def __enter__(self) -> "Writer":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc is not None:
            self.abort(exc)
            return
        if not self.closed:
            self.close()
