
from __future__ import annotations
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Optional, Protocol
from urllib.parse import SplitResult

from .cancel import CancelToken
from .contracts import DriverAttributes, DriverListOptions, DriverWriterOptions, ListPage, ReaderAttributes
from .errors import ErrorCode

if TYPE_CHECKING:
    from .bucket import Bucket


class DriverReader(ABC):
    @abstractmethod
    def read(self, size: int) -> bytes:
        """Return up to ``size`` bytes; ``b""`` at the end of the range."""

    @abstractmethod
    def close(self) -> None: ...

    @property
    @abstractmethod
    def attributes(self) -> ReaderAttributes: ...

    def as_(self, cls: type) -> Any:
        """Provider-native object of type ``cls`` behind this stream, or None."""
        return None


class DriverWriter(ABC):
    @abstractmethod
    def write(self, data: bytes) -> int: ...

    @abstractmethod
    def close(self) -> None:
        """Commit the blob. Must not commit once the session's token is cancelled."""

    def as_(self, cls: type) -> Any:
        return None


class BlobDriver(ABC):
    """What a storage provider implements. The facade adds everything else."""

    #: provider name used to tag spans and metrics
    name: str = "unknown"

    @abstractmethod
    def new_range_reader(
        self, key: str, offset: int, length: int, cancel: CancelToken
    ) -> DriverReader:
        """Open ``length`` bytes at ``offset`` (``length < 0`` reads to the end)."""

    @abstractmethod
    def new_typed_writer(
        self, key: str, content_type: str, opts: DriverWriterOptions, cancel: CancelToken
    ) -> DriverWriter: ...

    @abstractmethod
    def attributes(self, key: str, cancel: CancelToken) -> DriverAttributes: ...

    @abstractmethod
    def delete(self, key: str, cancel: CancelToken) -> None: ...

    @abstractmethod
    def list_paged(self, opts: DriverListOptions, cancel: CancelToken) -> ListPage:
        """Return one page of entries in ascending key order."""

    @abstractmethod
    def signed_url(self, key: str, expiry: timedelta, cancel: CancelToken) -> str: ...

    @abstractmethod
    def error_code(self, exc: BaseException) -> ErrorCode:
        """Classify a provider-native exception."""

    def as_(self, cls: type) -> Any:
        """Provider-native client of type ``cls``, or None."""
        return None


class BucketURLOpener(Protocol):
    """Opens a bucket from a parsed URL. Must not mutate ``url``."""

    def open_bucket_url(self, url: SplitResult, cancel: Optional[CancelToken] = None) -> "Bucket": ...
