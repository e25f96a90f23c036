
from __future__ import annotations
import base64
import binascii
import logging
from typing import Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .config import BlobSettings
from .contracts import GetBlobRequest, ListBlobsRequest, PutBlobRequest, SignedURLRequest, UWFResponse
from .service import BlobService
from .adapters.inmemory import open_bucket

log = logging.getLogger("blobfacade.routes")

_STATUS_BY_TYPE = {
    "VALIDATION": 400,
    "NOT_FOUND": 404,
    "CONFLICT": 409,
    "INTEGRITY": 422,
    "CANCELLED": 499,
    "INTERNAL": 500,
    "UNIMPLEMENTED": 501,
    "UPSTREAM": 502,
}


class PutBlobHttp(BaseModel):
    data_b64: str = ""
    content_type: str = ""
    content_md5_b64: Optional[str] = None
    cache_control: str = ""
    content_disposition: str = ""
    content_encoding: str = ""
    content_language: str = ""
    metadata: Dict[str, str] = Field(default_factory=dict)


def _decode_b64(value: str, field: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail=f"{field} is not valid base64")


def _reply(resp: UWFResponse) -> JSONResponse:
    status = 200 if resp.ok else _STATUS_BY_TYPE.get(resp.error.type, 500)
    return JSONResponse(status_code=status, content=resp.model_dump(mode="json"))


def _default_service() -> BlobService:
    # Simple DI: a private in-memory bucket per router
    return BlobService(open_bucket(), adapter_name="inmemory")


def get_router(service_factory=_default_service, settings: Optional[BlobSettings] = None) -> APIRouter:
    r = APIRouter(prefix="/blob", tags=["blob"])
    service = service_factory()
    cfg = settings or BlobSettings()

    @r.put("/objects/{key:path}")
    def put_object(key: str, payload: PutBlobHttp, svc: BlobService = Depends(lambda: service)):
        req = PutBlobRequest(
            key=key,
            data=_decode_b64(payload.data_b64, "data_b64"),
            content_type=payload.content_type,
            content_md5=_decode_b64(payload.content_md5_b64, "content_md5_b64") if payload.content_md5_b64 else None,
            cache_control=payload.cache_control,
            content_disposition=payload.content_disposition,
            content_encoding=payload.content_encoding,
            content_language=payload.content_language,
            metadata=payload.metadata,
        )
        return _reply(svc.put(req))

    @r.get("/objects/{key:path}")
    def get_object(
        key: str,
        offset: int = Query(0),
        length: int = Query(-1),
        svc: BlobService = Depends(lambda: service),
    ):
        resp = svc.get(GetBlobRequest(key=key, offset=offset, length=length))
        if not resp.ok:
            return _reply(resp)
        res = resp.result
        return Response(content=res["data"], media_type=res["content_type"],
                        headers={"x-blob-size": str(res["size"])})

    @r.delete("/objects/{key:path}")
    def delete_object(key: str, missing_ok: bool = Query(False), svc: BlobService = Depends(lambda: service)):
        return _reply(svc.delete(key, missing_ok=missing_ok))

    @r.get("/attributes/{key:path}")
    def get_attributes(key: str, svc: BlobService = Depends(lambda: service)):
        return _reply(svc.head(key))

    @r.get("/list")
    def list_objects(
        prefix: str = Query(""),
        delimiter: str = Query(""),
        limit: int = Query(100, ge=1),
        svc: BlobService = Depends(lambda: service),
    ):
        limit = min(limit, cfg.BLOB_LIST_LIMIT_MAX)
        return _reply(svc.list(ListBlobsRequest(prefix=prefix, delimiter=delimiter, limit=limit)))

    @r.get("/signed-url/{key:path}")
    def signed_url(
        key: str,
        expiry_s: Optional[int] = Query(None, ge=0, le=7 * 24 * 3600),
        svc: BlobService = Depends(lambda: service),
    ):
        expires = cfg.BLOB_SIGNED_URL_EXPIRY_S if expiry_s is None else expiry_s
        return _reply(svc.signed_url(SignedURLRequest(key=key, expires_seconds=expires)))

    @r.get("/health")
    def health():
        return {"ok": True, "adapter": service.adapter_name}

    return r
