
from __future__ import annotations
import logging
import time
import uuid
from datetime import timedelta
from typing import Optional

from .bucket import Bucket, DEFAULT_SIGNED_URL_EXPIRY
from .contracts import (
    UWFResponse, ErrorPayload, MetaPayload, PutBlobRequest, PutBlobResult, GetBlobRequest, GetBlobResult,
    HeadBlobResult, DeleteBlobResult, ListBlobsRequest, ListBlobsResult, BlobItem, ListOptions,
    SignedURLRequest, SignedURLResult, SignedURLOptions, WriterOptions,
)
from .errors import (
    BlobNotFound, BlobConflict, BlobValidation, BlobUpstream, BlobUnimplemented,
    BlobIntegrityMismatch, BlobCancelled, error_code,
)
from .observability import span

log = logging.getLogger("blobfacade.service")

def _uwf_ok(result, meta: MetaPayload) -> UWFResponse:
    return UWFResponse(ok=True, result=result, meta=meta)

def _uwf_err(e: Exception, meta: MetaPayload) -> UWFResponse:
    if isinstance(e, BlobValidation):
        t = "VALIDATION"
    elif isinstance(e, BlobNotFound):
        t = "NOT_FOUND"
    elif isinstance(e, BlobConflict):
        t = "CONFLICT"
    elif isinstance(e, BlobUnimplemented):
        t = "UNIMPLEMENTED"
    elif isinstance(e, BlobIntegrityMismatch):
        t = "INTEGRITY"
    elif isinstance(e, BlobCancelled):
        t = "CANCELLED"
    elif isinstance(e, BlobUpstream):
        t = "UPSTREAM"
    else:
        t = "INTERNAL"

    code = "BLOB_" + error_code(e).value.upper()
    err = ErrorPayload(type=t, code=code, message=str(e) or type(e).__name__)
    return UWFResponse(ok=False, error=err, meta=meta)

class BlobService:
    """Wraps a Bucket in UWF envelopes with timing, logging and a span per call."""

    def __init__(self, bucket: Bucket, adapter_name: Optional[str] = None):
        self.bucket = bucket
        self.adapter_name = adapter_name or bucket.provider

    def _meta(self) -> MetaPayload:
        return MetaPayload(request_id=str(uuid.uuid4()), adapter=self.adapter_name)

    def put(self, req: PutBlobRequest) -> UWFResponse:
        t0 = time.time()
        meta = self._meta()
        with span("blob.put", key=req.key, adapter=self.adapter_name):
            try:
                opts = WriterOptions(
                    content_type=req.content_type,
                    content_md5=req.content_md5,
                    cache_control=req.cache_control,
                    content_disposition=req.content_disposition,
                    content_encoding=req.content_encoding,
                    content_language=req.content_language,
                    metadata=req.metadata,
                )
                w = self.bucket.new_writer(req.key, opts)
                try:
                    w.write(req.data)
                except Exception:
                    w.abort()
                    raise
                w.close()
                res = PutBlobResult(key=req.key, size=len(req.data), content_type=w.content_type)
                meta.duration_ms = int((time.time() - t0) * 1000)
                log.info("blob.put ok key=%s size=%s content_type=%s adapter=%s dur_ms=%s",
                         req.key, res.size, res.content_type, self.adapter_name, meta.duration_ms)
                return _uwf_ok(res.model_dump(), meta)
            except Exception as e:
                meta.duration_ms = int((time.time() - t0) * 1000)
                log.exception("blob.put err key=%s adapter=%s dur_ms=%s", req.key, self.adapter_name, meta.duration_ms)
                return _uwf_err(e, meta)

    def get(self, req: GetBlobRequest) -> UWFResponse:
        t0 = time.time()
        meta = self._meta()
        with span("blob.get", key=req.key, offset=req.offset, length=req.length, adapter=self.adapter_name):
            try:
                with self.bucket.new_range_reader(req.key, req.offset, req.length) as r:
                    data = r.read()
                    res = GetBlobResult(key=req.key, content_type=r.content_type, size=r.size,
                                        mod_time=r.mod_time, data=data)
                meta.duration_ms = int((time.time() - t0) * 1000)
                log.info("blob.get ok key=%s bytes=%s adapter=%s dur_ms=%s",
                         req.key, len(data), self.adapter_name, meta.duration_ms)
                return _uwf_ok(res.model_dump(), meta)
            except Exception as e:
                meta.duration_ms = int((time.time() - t0) * 1000)
                log.exception("blob.get err key=%s adapter=%s", req.key, self.adapter_name)
                return _uwf_err(e, meta)

    def head(self, key: str) -> UWFResponse:
        t0 = time.time()
        meta = self._meta()
        with span("blob.head", key=key, adapter=self.adapter_name):
            try:
                attrs = self.bucket.attributes(key)
                meta.duration_ms = int((time.time() - t0) * 1000)
                log.info("blob.head ok key=%s size=%s", key, attrs.size)
                res = HeadBlobResult(
                    key=key,
                    md5_hex=attrs.md5.hex() if attrs.md5 else None,
                    **attrs.model_dump(exclude={"md5"}),
                )
                return _uwf_ok(res.model_dump(), meta)
            except Exception as e:
                meta.duration_ms = int((time.time() - t0) * 1000)
                log.exception("blob.head err key=%s", key)
                return _uwf_err(e, meta)

    def delete(self, key: str, missing_ok: bool = False) -> UWFResponse:
        t0 = time.time()
        meta = self._meta()
        with span("blob.delete", key=key, adapter=self.adapter_name):
            try:
                deleted = True
                try:
                    self.bucket.delete(key)
                except BlobNotFound:
                    if not missing_ok:
                        raise
                    deleted = False
                meta.duration_ms = int((time.time() - t0) * 1000)
                log.info("blob.delete ok key=%s deleted=%s", key, deleted)
                return _uwf_ok(DeleteBlobResult(key=key, deleted=deleted).model_dump(), meta)
            except Exception as e:
                meta.duration_ms = int((time.time() - t0) * 1000)
                log.exception("blob.delete err key=%s", key)
                return _uwf_err(e, meta)

    def list(self, req: ListBlobsRequest) -> UWFResponse:
        t0 = time.time()
        meta = self._meta()
        with span("blob.list", prefix=req.prefix, delimiter=req.delimiter, adapter=self.adapter_name):
            try:
                items = []
                truncated = False
                for obj in self.bucket.list(ListOptions(prefix=req.prefix, delimiter=req.delimiter)):
                    if len(items) == req.limit:
                        truncated = True
                        break
                    items.append(BlobItem(
                        key=obj.key, size=obj.size, mod_time=obj.mod_time,
                        md5_hex=obj.md5.hex() if obj.md5 else None, is_dir=obj.is_dir,
                    ))
                res = ListBlobsResult(items=items, truncated=truncated)
                meta.duration_ms = int((time.time() - t0) * 1000)
                log.info("blob.list ok prefix=%s count=%s truncated=%s", req.prefix, len(items), truncated)
                return _uwf_ok(res.model_dump(), meta)
            except Exception as e:
                meta.duration_ms = int((time.time() - t0) * 1000)
                log.exception("blob.list err prefix=%s", req.prefix)
                return _uwf_err(e, meta)

    def signed_url(self, req: SignedURLRequest) -> UWFResponse:
        t0 = time.time()
        meta = self._meta()
        with span("blob.signed_url", key=req.key, adapter=self.adapter_name):
            try:
                expiry = timedelta(seconds=req.expires_seconds)
                url = self.bucket.signed_url(req.key, SignedURLOptions(expiry=expiry))
                effective = (expiry or DEFAULT_SIGNED_URL_EXPIRY).total_seconds()
                res = SignedURLResult(url=url, expires_at_epoch_s=int(t0 + effective))
                meta.duration_ms = int((time.time() - t0) * 1000)
                log.info("blob.signed_url ok key=%s", req.key)
                return _uwf_ok(res.model_dump(), meta)
            except BlobUnimplemented as e:
                meta.duration_ms = int((time.time() - t0) * 1000)
                log.info("blob.signed_url unsupported adapter=%s", self.adapter_name)
                return _uwf_err(e, meta)
            except Exception as e:
                meta.duration_ms = int((time.time() - t0) * 1000)
                log.exception("blob.signed_url err key=%s", req.key)
                return _uwf_err(e, meta)
