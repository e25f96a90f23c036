
from __future__ import annotations

from datetime import timedelta
from typing import Dict, Optional, Type, TypeVar

from .cancel import CancelToken
from .contracts import (
    Attributes, DriverListOptions, DriverWriterOptions, ListOptions, SignedURLOptions, WriterOptions,
)
from .errors import BlobValidation, error_as, wrap_error
from .listing import ListIterator
from .observability import Tracer, traced
from .ports import BlobDriver
from .reader import Reader
from .sniff import normalize_content_type
from .writer import Writer

E = TypeVar("E", bound=BaseException)
T = TypeVar("T")

DEFAULT_SIGNED_URL_EXPIRY = timedelta(hours=1)


def _lower_metadata(md: Dict[str, str]) -> Dict[str, str]:
    # Providers disagree on key case; keys are always lowercased on the way in and out.
    out: Dict[str, str] = {}
    for k, v in md.items():
        if not k:
            raise BlobValidation("metadata keys may not be empty strings")
        lk = k.lower()
        if lk in out:
            raise BlobValidation(f"duplicate case-insensitive metadata key {lk!r}")
        out[lk] = v
    return out


class Bucket:
    """Portable handle over one driver. Safe for concurrent use; sessions are not."""

    def __init__(self, driver: BlobDriver, tracer: Optional[Tracer] = None):
        self._driver = driver
        self._tracer = tracer or Tracer(getattr(driver, "name", type(driver).__name__))

    @property
    def provider(self) -> str:
        return self._tracer.provider

    # ---------- Reading ----------

    def read_all(self, key: str, cancel: Optional[CancelToken] = None) -> bytes:
        with self.new_reader(key, cancel=cancel) as r:
            return r.read()

    def new_reader(self, key: str, cancel: Optional[CancelToken] = None) -> Reader:
        return self.new_range_reader(key, 0, -1, cancel=cancel)

    def new_range_reader(self, key: str, offset: int, length: int, cancel: Optional[CancelToken] = None) -> Reader:
        """Read at most ``length`` bytes from ``offset``; negative ``length`` reads to the end."""
        if offset < 0:
            raise BlobValidation("new_range_reader: offset must be non-negative")
        end = self._tracer.start("NewRangeReader")
        try:
            stream = self._driver.new_range_reader(key, offset, length, cancel or CancelToken())
        except Exception as e:
            err = wrap_error(self._driver, e)
            end(err)
            raise err
        return Reader(self._driver, stream, self._tracer, end)

    # ---------- Writing ----------

    def write_all(self, key: str, data: bytes, opts: Optional[WriterOptions] = None,
                  cancel: Optional[CancelToken] = None) -> None:
        w = self.new_writer(key, opts, cancel=cancel)
        try:
            w.write(data)
        except BaseException as e:
            w.abort(e)
            raise
        w.close()

    def new_writer(self, key: str, opts: Optional[WriterOptions] = None,
                   cancel: Optional[CancelToken] = None) -> Writer:
        """Start a write session for ``key``.

        The blob is replaced only when ``close`` succeeds; until then any
        previous blob stays readable. Cancel ``cancel`` to abort the write.
        """
        opts = opts or WriterOptions()
        dopts = DriverWriterOptions(
            buffer_size=opts.buffer_size,
            cache_control=opts.cache_control,
            content_disposition=opts.content_disposition,
            content_encoding=opts.content_encoding,
            content_language=opts.content_language,
            content_md5=opts.content_md5,
            metadata=_lower_metadata(opts.metadata),
            before_write=opts.before_write,
        )
        content_type = normalize_content_type(opts.content_type) if opts.content_type else ""

        session = (cancel or CancelToken()).child()
        end = self._tracer.start("NewWriter")
        if not content_type:
            return Writer.pending(self._driver, self._tracer, end, session, key, dopts, opts.content_md5)
        try:
            stream = self._driver.new_typed_writer(key, content_type, dopts, session)
        except Exception as e:
            session.cancel()
            err = wrap_error(self._driver, e)
            end(err)
            raise err
        return Writer.opened(self._driver, self._tracer, end, session, stream, content_type, opts.content_md5)

    # ---------- Metadata / listing ----------

    @traced("Attributes")
    def attributes(self, key: str, cancel: Optional[CancelToken] = None) -> Attributes:
        try:
            a = self._driver.attributes(key, cancel or CancelToken())
        except Exception as e:
            raise wrap_error(self._driver, e)
        # unlike writer options, collisions here keep whichever value comes last
        md = {k.lower(): v for k, v in a.metadata.items()}
        attrs = Attributes(
            cache_control=a.cache_control,
            content_disposition=a.content_disposition,
            content_encoding=a.content_encoding,
            content_language=a.content_language,
            content_type=a.content_type or "application/octet-stream",
            metadata=md,
            mod_time=a.mod_time,
            size=a.size,
            md5=a.md5,
        )
        attrs._as_func = a.as_func
        return attrs

    def list(self, opts: Optional[ListOptions] = None, cancel: Optional[CancelToken] = None) -> ListIterator:
        """Iterate blobs in lexicographic key order.

        Listings may miss very recent writes on eventually consistent providers.
        """
        opts = opts or ListOptions()
        dopts = DriverListOptions(
            prefix=opts.prefix,
            delimiter=opts.delimiter,
            page_size=opts.page_size,
            before_list=opts.before_list,
        )
        return ListIterator(self._driver, dopts, cancel)

    @traced("Delete")
    def delete(self, key: str, cancel: Optional[CancelToken] = None) -> None:
        try:
            self._driver.delete(key, cancel or CancelToken())
        except Exception as e:
            raise wrap_error(self._driver, e)

    @traced("SignedURL")
    def signed_url(self, key: str, opts: Optional[SignedURLOptions] = None,
                   cancel: Optional[CancelToken] = None) -> str:
        """Return a URL granting GET access to ``key``; the key need not exist."""
        expiry = (opts or SignedURLOptions()).expiry
        if expiry < timedelta(0):
            raise BlobValidation("signed_url: expiry must be >= 0")
        if expiry == timedelta(0):
            expiry = DEFAULT_SIGNED_URL_EXPIRY
        try:
            return self._driver.signed_url(key, expiry, cancel or CancelToken())
        except Exception as e:
            raise wrap_error(self._driver, e)

    def as_(self, cls: Type[T]) -> Optional[T]:
        """Provider-native client of type ``cls`` behind this bucket, or None."""
        return self._driver.as_(cls)

    def error_as(self, err: BaseException, cls: Type[E]) -> Optional[E]:
        """Recover the provider-native exception of type ``cls`` behind ``err``."""
        return error_as(err, cls)
