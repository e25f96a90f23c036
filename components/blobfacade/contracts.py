
from __future__ import annotations
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, conint, constr

# ---------- Unified Wire Format (UWF) ----------

class ErrorPayload(BaseModel):
    type: Literal["VALIDATION", "NOT_FOUND", "CONFLICT", "UPSTREAM", "UNIMPLEMENTED", "INTEGRITY", "CANCELLED", "INTERNAL"]
    code: constr(strip_whitespace=True, min_length=1)
    message: constr(strip_whitespace=True, min_length=1)
    details: Optional[Dict[str, Any]] = None

class MetaPayload(BaseModel):
    trace_id: Optional[str] = None
    request_id: Optional[str] = None
    duration_ms: Optional[int] = None
    adapter: Optional[str] = None

class UWFResponse(BaseModel):
    ok: bool
    result: Optional[Any] = None
    error: Optional[ErrorPayload] = None
    meta: MetaPayload = Field(default_factory=MetaPayload)

# ---------- Provider-native escape hatch ----------

AsFunc = Callable[[type], Any]


def native_as(*natives: Any) -> AsFunc:
    """Build an ``as_func`` that hands out the first native object of the requested type."""

    def as_func(cls: type) -> Any:
        for n in natives:
            if isinstance(n, cls):
                return n
        return None

    return as_func


class _NativeAccess(BaseModel):
    _as_func: Optional[AsFunc] = PrivateAttr(default=None)

    def as_(self, cls: type) -> Any:
        """Return the provider-native object of type ``cls`` behind this value, or None."""
        if self._as_func is None:
            return None
        return self._as_func(cls)

# ---------- Portable (caller-facing) models ----------

class Attributes(_NativeAccess):
    """Snapshot of a blob's metadata. ``content_type`` is never empty."""
    model_config = ConfigDict(frozen=True)

    cache_control: str = ""
    content_disposition: str = ""
    content_encoding: str = ""
    content_language: str = ""
    content_type: str
    # keys are lowercase; on case-insensitive collisions one value survives
    metadata: Dict[str, str] = Field(default_factory=dict)
    mod_time: Optional[datetime] = None
    size: int = 0
    md5: Optional[bytes] = None

class ListObject(_NativeAccess):
    """One listing entry. When ``is_dir`` is set only ``key`` is meaningful."""
    model_config = ConfigDict(frozen=True)

    key: str
    mod_time: Optional[datetime] = None
    size: int = 0
    md5: Optional[bytes] = None
    is_dir: bool = False

class WriterOptions(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    buffer_size: conint(ge=0) = 0
    cache_control: str = ""
    content_disposition: str = ""
    content_encoding: str = ""
    content_language: str = ""
    # empty means "sniff it from the first bytes written"
    content_type: str = ""
    content_md5: Optional[bytes] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    # called once with the driver's native writer before any data reaches it
    before_write: Optional[Callable[[Any], None]] = None

class ListOptions(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    prefix: str = ""
    # "" lists a flat namespace; "/" is what most provider UIs expect
    delimiter: str = ""
    page_size: conint(ge=0) = 0
    before_list: Optional[Callable[[Any], None]] = None

class SignedURLOptions(BaseModel):
    expiry: timedelta = timedelta(0)

# ---------- Driver-side models ----------

class ReaderAttributes(BaseModel):
    model_config = ConfigDict(frozen=True)

    content_type: str = ""
    mod_time: Optional[datetime] = None
    size: int = 0

class DriverAttributes(BaseModel):
    cache_control: str = ""
    content_disposition: str = ""
    content_encoding: str = ""
    content_language: str = ""
    content_type: str = ""
    metadata: Dict[str, str] = Field(default_factory=dict)
    mod_time: Optional[datetime] = None
    size: int = 0
    md5: Optional[bytes] = None
    # hands out provider-native objects behind Attributes.as_
    as_func: Optional[AsFunc] = Field(default=None, exclude=True)

class DriverWriterOptions(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    buffer_size: int = 0
    cache_control: str = ""
    content_disposition: str = ""
    content_encoding: str = ""
    content_language: str = ""
    content_md5: Optional[bytes] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    before_write: Optional[Callable[[Any], None]] = None

class DriverListOptions(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    prefix: str = ""
    delimiter: str = ""
    page_size: int = 0
    page_token: str = ""
    before_list: Optional[Callable[[Any], None]] = None

class DriverListObject(BaseModel):
    key: str
    mod_time: Optional[datetime] = None
    size: int = 0
    md5: Optional[bytes] = None
    is_dir: bool = False
    as_func: Optional[AsFunc] = Field(default=None, exclude=True)

class ListPage(BaseModel):
    objects: List[DriverListObject] = Field(default_factory=list)
    # empty means this is the last page
    next_page_token: str = ""

# ---------- Service requests / results ----------

class PutBlobRequest(BaseModel):
    key: constr(min_length=1)
    data: bytes = b""
    content_type: str = ""
    content_md5: Optional[bytes] = None
    cache_control: str = ""
    content_disposition: str = ""
    content_encoding: str = ""
    content_language: str = ""
    metadata: Dict[str, str] = Field(default_factory=dict)

class PutBlobResult(BaseModel):
    key: str
    size: int
    content_type: Optional[str] = None

class GetBlobRequest(BaseModel):
    key: constr(min_length=1)
    offset: int = 0
    length: int = -1  # negative reads to the end

class GetBlobResult(BaseModel):
    key: str
    content_type: str
    size: int
    mod_time: Optional[datetime] = None
    data: bytes

class HeadBlobResult(BaseModel):
    key: str
    content_type: str
    cache_control: str = ""
    content_disposition: str = ""
    content_encoding: str = ""
    content_language: str = ""
    metadata: Dict[str, str] = Field(default_factory=dict)
    mod_time: Optional[datetime] = None
    size: int = 0
    md5_hex: Optional[str] = None

class DeleteBlobResult(BaseModel):
    key: str
    deleted: bool

class ListBlobsRequest(BaseModel):
    prefix: str = ""
    delimiter: str = ""
    limit: conint(ge=1, le=1000) = 100

class BlobItem(BaseModel):
    key: str
    size: int = 0
    mod_time: Optional[datetime] = None
    md5_hex: Optional[str] = None
    is_dir: bool = False

class ListBlobsResult(BaseModel):
    items: List[BlobItem]
    truncated: bool = False

class SignedURLRequest(BaseModel):
    key: constr(min_length=1)
    expires_seconds: conint(ge=0, le=7*24*3600) = 0

class SignedURLResult(BaseModel):
    url: str
    expires_at_epoch_s: int
