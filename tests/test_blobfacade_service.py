import hashlib

from components.blobfacade.adapters.inmemory import open_bucket
from components.blobfacade.contracts import GetBlobRequest, ListBlobsRequest, PutBlobRequest, SignedURLRequest
from components.blobfacade.service import BlobService


def make_service(**kw) -> BlobService:
    return BlobService(open_bucket(**kw))


def test_put_get_head_delete_happy_path():
    svc = make_service()
    put = svc.put(PutBlobRequest(key="docs/a.txt", data=b"hello there", metadata={"Owner": "ana"}))
    assert put.ok, put.error
    assert put.result == {"key": "docs/a.txt", "size": 11, "content_type": "text/plain; charset=utf-8"}
    assert put.meta.adapter == "inmemory"
    assert put.meta.duration_ms is not None

    got = svc.get(GetBlobRequest(key="docs/a.txt", offset=6))
    assert got.ok
    assert got.result["data"] == b"there"
    assert got.result["size"] == 11

    head = svc.head("docs/a.txt")
    assert head.ok
    assert head.result["metadata"] == {"owner": "ana"}
    assert head.result["md5_hex"] == hashlib.md5(b"hello there").hexdigest()

    gone = svc.delete("docs/a.txt")
    assert gone.ok and gone.result["deleted"] is True
    assert svc.head("docs/a.txt").error.type == "NOT_FOUND"


def test_delete_missing_ok():
    svc = make_service()
    resp = svc.delete("nope", missing_ok=True)
    assert resp.ok and resp.result["deleted"] is False
    resp = svc.delete("nope")
    assert not resp.ok
    assert resp.error.type == "NOT_FOUND"
    assert resp.error.code == "BLOB_NOT_FOUND"


def test_put_validation_and_integrity_errors():
    svc = make_service()
    bad = svc.put(PutBlobRequest(key="k", data=b"x", metadata={"A": "1", "a": "2"}))
    assert bad.error.type == "VALIDATION"
    assert bad.error.code == "BLOB_INVALID_ARGUMENT"

    mismatch = svc.put(PutBlobRequest(key="k", data=b"x", content_md5=hashlib.md5(b"y").digest()))
    assert mismatch.error.type == "INTEGRITY"
    assert svc.get(GetBlobRequest(key="k")).error.type == "NOT_FOUND"


def test_list_limit_and_truncation():
    svc = make_service(page_size=2)
    for k in ["a/1", "a/2", "b", "c", "d"]:
        assert svc.put(PutBlobRequest(key=k, data=b"1")).ok
    resp = svc.list(ListBlobsRequest(limit=3))
    assert [i["key"] for i in resp.result["items"]] == ["a/1", "a/2", "b"]
    assert resp.result["truncated"] is True

    resp = svc.list(ListBlobsRequest(delimiter="/", limit=10))
    assert [(i["key"], i["is_dir"]) for i in resp.result["items"]] == [
        ("a/", True), ("b", False), ("c", False), ("d", False),
    ]
    assert resp.result["truncated"] is False


def test_signed_url_unimplemented_and_supported():
    resp = make_service().signed_url(SignedURLRequest(key="k"))
    assert resp.error.type == "UNIMPLEMENTED"

    resp = make_service(signing_key=b"secret").signed_url(SignedURLRequest(key="k", expires_seconds=60))
    assert resp.ok
    assert resp.result["url"].startswith("mem:///k?")
    assert resp.result["expires_at_epoch_s"] > 0
