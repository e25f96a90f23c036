
from __future__ import annotations

import logging
from typing import Iterator, Optional

from .cancel import CancelToken
from .contracts import DriverListObject, DriverListOptions, ListObject, ListPage
from .errors import wrap_error
from .ports import BlobDriver

log = logging.getLogger("blobfacade.listing")


class ListIterator(Iterator[ListObject]):
    """Single-pass cursor over a listing, fetching provider pages on demand.

    Pages are fetched only when the current one is exhausted and the
    provider handed back a continuation token. Not restartable; create a
    new iterator to list again.
    """

    def __init__(self, driver: BlobDriver, opts: DriverListOptions, cancel: Optional[CancelToken] = None):
        self._driver = driver
        self._opts = opts
        self._cancel = cancel or CancelToken()
        self._page: Optional[ListPage] = None
        self._next_idx = 0
        self._last_dir: Optional[str] = None

    def __iter__(self) -> "ListIterator":
        return self

    def __next__(self) -> ListObject:
        while True:
            if self._page is not None:
                if self._next_idx < len(self._page.objects):
                    dobj = self._page.objects[self._next_idx]
                    self._next_idx += 1
                    obj = self._to_object(dobj)
                    if obj is None:
                        continue
                    return obj
                if not self._page.next_page_token:
                    raise StopIteration
                self._opts = self._opts.model_copy(update={"page_token": self._page.next_page_token})
            self._fetch()

    def next_object(self) -> Optional[ListObject]:
        """Like ``next()`` but returns None at the end of the listing."""
        return next(self, None)

    def _fetch(self) -> None:
        log.debug("blob.list fetch prefix=%r delimiter=%r token=%r",
                  self._opts.prefix, self._opts.delimiter, self._opts.page_token)
        try:
            page = self._driver.list_paged(self._opts, self._cancel)
        except Exception as e:
            raise wrap_error(self._driver, e)
        self._page = page
        self._next_idx = 0

    def _to_object(self, dobj: DriverListObject) -> Optional[ListObject]:
        """Build the portable entry; None when it folds into the directory just returned."""
        delim = self._opts.delimiter
        key = dobj.key
        is_dir = dobj.is_dir
        if delim and not is_dir:
            rest = key[len(self._opts.prefix):] if key.startswith(self._opts.prefix) else key
            idx = rest.find(delim)
            if idx != -1:
                key = key[: len(key) - len(rest)] + rest[: idx + len(delim)]
                is_dir = True
        if is_dir:
            # keys sharing a directory prefix are contiguous in key order
            if key == self._last_dir:
                return None
            self._last_dir = key
            return ListObject(key=key, is_dir=True)
        obj = ListObject(key=key, mod_time=dobj.mod_time, size=dobj.size, md5=dobj.md5)
        obj._as_func = dobj.as_func
        return obj
