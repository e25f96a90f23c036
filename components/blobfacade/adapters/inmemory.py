
from __future__ import annotations

import hashlib
import hmac
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from urllib.parse import SplitResult, parse_qs, quote, unquote, urlencode, urlsplit

from ..bucket import Bucket
from ..cancel import CancelToken
from ..contracts import (
    DriverAttributes, DriverListObject, DriverListOptions, DriverWriterOptions, ListPage, ReaderAttributes, native_as,
)
from ..errors import BlobValidation, ErrorCode
from ..ports import BlobDriver, DriverReader, DriverWriter
from ..urlmux import default_url_mux

SCHEME = "mem"
DEFAULT_PAGE_SIZE = 1000


class MemoryNotFound(KeyError):
    """Native not-found error of the in-memory provider."""


@dataclass(frozen=True)
class MemoryEntry:
    """What the in-memory provider stores per key; the native object behind Attributes.as_ and ListObject.as_."""

    data: bytes
    attrs: DriverAttributes


class _MemoryReader(DriverReader):
    def __init__(self, data: bytes, attrs: ReaderAttributes, cancel: CancelToken):
        self._data = data
        self._pos = 0
        self._attrs = attrs
        self._cancel = cancel
        self._closed = False

    @property
    def attributes(self) -> ReaderAttributes:
        return self._attrs

    def as_(self, cls: type) -> Any:
        return self if isinstance(self, cls) else None

    def read(self, size: int) -> bytes:
        if self._closed:
            raise ValueError("read on closed reader")
        self._cancel.raise_if_cancelled()
        chunk = self._data[self._pos : self._pos + size]
        self._pos += len(chunk)
        return chunk

    def close(self) -> None:
        self._closed = True


class _MemoryWriter(DriverWriter):
    def __init__(self, driver: "MemoryDriver", key: str, content_type: str,
                 opts: DriverWriterOptions, cancel: CancelToken):
        self._driver = driver
        self._key = key
        self._content_type = content_type
        self._opts = opts
        self._cancel = cancel
        self._buf = bytearray()
        self._closed = False
        self._before_write_called = False

    def as_(self, cls: type) -> Any:
        return self if isinstance(self, cls) else None

    def write(self, data: bytes) -> int:
        if self._closed:
            raise ValueError("write on closed writer")
        self._cancel.raise_if_cancelled()
        if not self._before_write_called:
            self._call_before_write()
        self._buf.extend(data)
        return len(data)

    def close(self) -> None:
        if self._closed:
            raise ValueError("writer already closed")
        self._closed = True
        # a cancelled session never replaces the stored blob
        self._cancel.raise_if_cancelled()
        if not self._before_write_called:
            self._call_before_write()
        data = bytes(self._buf)
        md5 = hashlib.md5(data).digest()
        if self._opts.content_md5 and self._opts.content_md5 != md5:
            raise ValueError("content md5 does not match")
        attrs = DriverAttributes(
            cache_control=self._opts.cache_control,
            content_disposition=self._opts.content_disposition,
            content_encoding=self._opts.content_encoding,
            content_language=self._opts.content_language,
            content_type=self._content_type,
            metadata=dict(self._opts.metadata),
            mod_time=datetime.now(timezone.utc),
            size=len(data),
            md5=md5,
        )
        self._driver._commit(self._key, MemoryEntry(data=data, attrs=attrs))

    def _call_before_write(self) -> None:
        self._before_write_called = True
        if self._opts.before_write is not None:
            self._opts.before_write(self)


class MemoryDriver(BlobDriver):
    """
    In-memory provider for tests and local development.
    Storage: { key: MemoryEntry }; writes become visible atomically on close.
    """

    name = "inmemory"

    def __init__(self, page_size: int = DEFAULT_PAGE_SIZE, signing_key: Optional[bytes] = None,
                 bucket_name: str = "") -> None:
        self._blobs: Dict[str, MemoryEntry] = {}
        self._lock = threading.RLock()
        self.page_size = page_size
        self.bucket_name = bucket_name
        self._signing_key = signing_key

    # -------- Driver methods --------

    def new_range_reader(self, key: str, offset: int, length: int, cancel: CancelToken) -> DriverReader:
        cancel.raise_if_cancelled()
        entry = self._get(key)
        data = entry.data[offset:] if length < 0 else entry.data[offset : offset + length]
        attrs = ReaderAttributes(
            content_type=entry.attrs.content_type, mod_time=entry.attrs.mod_time, size=entry.attrs.size
        )
        return _MemoryReader(data, attrs, cancel)

    def new_typed_writer(self, key: str, content_type: str, opts: DriverWriterOptions,
                         cancel: CancelToken) -> DriverWriter:
        cancel.raise_if_cancelled()
        if not key:
            raise ValueError("key must not be empty")
        return _MemoryWriter(self, key, content_type, opts, cancel)

    def attributes(self, key: str, cancel: CancelToken) -> DriverAttributes:
        cancel.raise_if_cancelled()
        entry = self._get(key)
        return entry.attrs.model_copy(deep=True, update={"as_func": native_as(entry)})

    def delete(self, key: str, cancel: CancelToken) -> None:
        cancel.raise_if_cancelled()
        with self._lock:
            if key not in self._blobs:
                raise MemoryNotFound(key)
            del self._blobs[key]

    def list_paged(self, opts: DriverListOptions, cancel: CancelToken) -> ListPage:
        cancel.raise_if_cancelled()
        if opts.before_list is not None:
            opts.before_list(opts)
        page_size = opts.page_size or self.page_size
        token = opts.page_token
        with self._lock:
            keys = sorted(self._blobs)
            objects = []
            last_dir = None
            for key in keys:
                if not key.startswith(opts.prefix):
                    continue
                if token and (key <= token or (opts.delimiter and token.endswith(opts.delimiter)
                                               and key.startswith(token))):
                    continue
                if opts.delimiter:
                    rest = key[len(opts.prefix):]
                    idx = rest.find(opts.delimiter)
                    if idx != -1:
                        d = opts.prefix + rest[: idx + len(opts.delimiter)]
                        if d == last_dir:
                            continue
                        last_dir = d
                        if len(objects) == page_size:
                            return ListPage(objects=objects, next_page_token=objects[-1].key)
                        objects.append(DriverListObject(key=d, is_dir=True))
                        continue
                if len(objects) == page_size:
                    return ListPage(objects=objects, next_page_token=objects[-1].key)
                entry = self._blobs[key]
                a = entry.attrs
                objects.append(DriverListObject(key=key, mod_time=a.mod_time, size=a.size, md5=a.md5,
                                                as_func=native_as(entry)))
        return ListPage(objects=objects)

    def signed_url(self, key: str, expiry: timedelta, cancel: CancelToken) -> str:
        if self._signing_key is None:
            raise NotImplementedError("in-memory bucket has no signing key")
        cancel.raise_if_cancelled()
        expires = int(time.time() + expiry.total_seconds())
        path = "/" + quote(key)
        sig = self._sign(path, expires)
        return f"{SCHEME}://{self.bucket_name}{path}?" + urlencode({"expires": expires, "signature": sig})

    def verify_signed_url(self, url: str) -> str:
        """Return the key a signed URL grants, or raise ValueError."""
        u = urlsplit(url)
        q = parse_qs(u.query)
        try:
            expires = int(q["expires"][0])
            sig = q["signature"][0]
        except (KeyError, ValueError, IndexError):
            raise ValueError("missing expires or signature")
        if self._signing_key is None or not hmac.compare_digest(sig, self._sign(u.path, expires)):
            raise ValueError("invalid signature")
        if expires < time.time():
            raise ValueError("signed URL expired")
        return unquote(u.path[1:])

    def error_code(self, exc: BaseException) -> ErrorCode:
        if isinstance(exc, MemoryNotFound):
            return ErrorCode.NOT_FOUND
        if isinstance(exc, NotImplementedError):
            return ErrorCode.UNIMPLEMENTED
        if isinstance(exc, ValueError):
            return ErrorCode.INVALID_ARGUMENT
        return ErrorCode.UNKNOWN

    def as_(self, cls: type) -> Any:
        return self if isinstance(self, cls) else None

    # -------- Internals --------

    def _get(self, key: str) -> MemoryEntry:
        with self._lock:
            entry = self._blobs.get(key)
        if entry is None:
            raise MemoryNotFound(key)
        return entry

    def _commit(self, key: str, entry: MemoryEntry) -> None:
        with self._lock:
            self._blobs[key] = entry

    def _sign(self, path: str, expires: int) -> str:
        msg = f"{path}?expires={expires}".encode("utf-8")
        return hmac.new(self._signing_key, msg, hashlib.sha256).hexdigest()


class MemoryURLOpener:
    """Opens ``mem://[name]?page_size=N&signing_key=K``; every open gets an empty bucket."""

    _PARAMS = {"page_size", "signing_key"}

    def open_bucket_url(self, url: SplitResult, cancel: Optional[CancelToken] = None) -> Bucket:
        q = parse_qs(url.query, keep_blank_values=True)
        unknown = set(q) - self._PARAMS
        if unknown:
            raise BlobValidation(f"open bucket {url.geturl()!r}: invalid query parameter {sorted(unknown)[0]!r}")
        page_size = DEFAULT_PAGE_SIZE
        if "page_size" in q:
            try:
                page_size = int(q["page_size"][0])
            except ValueError:
                raise BlobValidation(f"open bucket {url.geturl()!r}: page_size must be an integer")
            if page_size < 1:
                raise BlobValidation(f"open bucket {url.geturl()!r}: page_size must be positive")
        signing_key = q["signing_key"][0].encode("utf-8") if "signing_key" in q else None
        return Bucket(MemoryDriver(page_size=page_size, signing_key=signing_key, bucket_name=url.netloc))


def open_bucket(page_size: int = DEFAULT_PAGE_SIZE, signing_key: Optional[bytes] = None) -> Bucket:
    return Bucket(MemoryDriver(page_size=page_size, signing_key=signing_key))


default_url_mux().register(SCHEME, MemoryURLOpener())
