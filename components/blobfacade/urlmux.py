
"""
URL-based bucket opening.

A ``URLMux`` maps URL schemes to openers. Register openers once during
start-up, then open buckets from any number of threads; the mux itself
holds no provider state.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional
from urllib.parse import SplitResult, urlsplit

from .bucket import Bucket
from .cancel import CancelToken
from .errors import BlobValidation, DuplicateSchemeError
from .ports import BucketURLOpener

log = logging.getLogger("blobfacade.urlmux")


class URLMux:
    def __init__(self) -> None:
        self._schemes: Dict[str, BucketURLOpener] = {}

    @property
    def schemes(self) -> list:
        return sorted(self._schemes)

    def register(self, scheme: str, opener: BucketURLOpener) -> None:
        """Register ``opener`` for ``scheme``. A second registration is a configuration bug."""
        scheme = scheme.lower()
        if scheme in self._schemes:
            raise DuplicateSchemeError(scheme)
        self._schemes[scheme] = opener
        log.debug("blob.urlmux registered scheme=%s opener=%s", scheme, type(opener).__name__)

    def open_bucket(self, url: str, cancel: Optional[CancelToken] = None) -> Bucket:
        try:
            u = urlsplit(url)
        except ValueError as e:
            raise BlobValidation(f"open bucket: {e}") from e
        return self.open_bucket_url(u, cancel)

    def open_bucket_url(self, u: SplitResult, cancel: Optional[CancelToken] = None) -> Bucket:
        if not u.scheme:
            raise BlobValidation(f"open bucket {u.geturl()!r}: no scheme in URL")
        opener = self._schemes.get(u.scheme)
        if opener is None:
            raise BlobValidation(f"open bucket {u.geturl()!r}: no provider registered for {u.scheme}")
        return opener.open_bucket_url(u, cancel)


# Process-wide mux. Driver modules register on it at import; lookups only after that.
_default_mux = URLMux()


def default_url_mux() -> URLMux:
    return _default_mux


def open_bucket(url: str, cancel: Optional[CancelToken] = None) -> Bucket:
    """Open ``url`` through the default mux."""
    return _default_mux.open_bucket(url, cancel)
