
from __future__ import annotations

import enum
from typing import Optional, Type, TypeVar

E = TypeVar("E", bound=BaseException)


class ErrorCode(str, enum.Enum):
    """Portable classification of a failure, independent of the provider."""

    OK = "ok"
    UNKNOWN = "unknown"
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    INVALID_ARGUMENT = "invalid_argument"
    INTERNAL = "internal"
    UNIMPLEMENTED = "unimplemented"
    FAILED_PRECONDITION = "failed_precondition"
    PERMISSION_DENIED = "permission_denied"
    RESOURCE_EXHAUSTED = "resource_exhausted"
    CANCELED = "canceled"
    DEADLINE_EXCEEDED = "deadline_exceeded"


class BlobError(Exception):
    """Base class for blob facade errors."""

    code: ErrorCode = ErrorCode.UNKNOWN

    def __init__(self, message: str, code: Optional[ErrorCode] = None):
        super().__init__(message)
        if code is not None:
            self.code = code


class BlobNotFound(BlobError):
    code = ErrorCode.NOT_FOUND


class BlobUnimplemented(BlobError):
    code = ErrorCode.UNIMPLEMENTED


class BlobValidation(BlobError):
    """Malformed caller input, rejected before the provider is contacted."""

    code = ErrorCode.INVALID_ARGUMENT


class BlobConflict(BlobError):
    code = ErrorCode.ALREADY_EXISTS


class BlobCancelled(BlobError):
    code = ErrorCode.CANCELED


class BlobClosed(BlobError):
    """A reader or writer was used after close."""

    code = ErrorCode.FAILED_PRECONDITION


class BlobUpstream(BlobError):
    """Opaque provider failure; the native error is kept as ``__cause__``."""


class BlobIntegrityMismatch(BlobError):
    code = ErrorCode.FAILED_PRECONDITION

    def __init__(self, expected: bytes, actual: bytes):
        super().__init__(
            "content MD5 mismatch: expected %s, wrote %s" % (expected.hex().upper(), actual.hex().upper())
        )
        self.expected = expected
        self.actual = actual


class BlobFatalError(BlobError):
    """Start-up misconfiguration; not meant to be handled at runtime."""

    code = ErrorCode.INTERNAL


class DuplicateSchemeError(BlobFatalError):
    def __init__(self, scheme: str):
        super().__init__(f"scheme {scheme!r} already registered on mux")
        self.scheme = scheme


_CLASS_BY_CODE = {
    ErrorCode.NOT_FOUND: BlobNotFound,
    ErrorCode.UNIMPLEMENTED: BlobUnimplemented,
    ErrorCode.ALREADY_EXISTS: BlobConflict,
    ErrorCode.FAILED_PRECONDITION: BlobConflict,
    ErrorCode.CANCELED: BlobCancelled,
    ErrorCode.DEADLINE_EXCEEDED: BlobCancelled,
}


def error_code(exc: Optional[BaseException]) -> ErrorCode:
    if exc is None:
        return ErrorCode.OK
    if isinstance(exc, BlobError):
        return exc.code
    return ErrorCode.UNKNOWN


def wrap_error(driver, exc: BaseException) -> BlobError:
    """Translate a provider-native exception into a BlobError.

    Facade errors pass through untouched. Anything else is classified with
    the driver's ``error_code`` and wrapped; the native exception becomes
    ``__cause__`` so ``error_as`` can reach it.
    """
    if isinstance(exc, BlobError):
        return exc
    try:
        code = driver.error_code(exc)
    except Exception:
        code = ErrorCode.UNKNOWN
    cls = _CLASS_BY_CODE.get(code, BlobUpstream)
    wrapped = cls(f"blob ({code.value}): {exc}", code=code)
    wrapped.__cause__ = exc
    return wrapped


def error_as(exc: Optional[BaseException], cls: Type[E]) -> Optional[E]:
    """Return the first exception of type ``cls`` in the cause chain of ``exc``."""
    seen = set()
    while exc is not None and id(exc) not in seen:
        if isinstance(exc, cls):
            return exc
        seen.add(id(exc))
        exc = exc.__cause__
    return None
