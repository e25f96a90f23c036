import base64
import hashlib

from fastapi import FastAPI
from fastapi.testclient import TestClient

from components.blobfacade.adapters.inmemory import open_bucket
from components.blobfacade.config import BlobSettings
from components.blobfacade.routes import get_router
from components.blobfacade.service import BlobService


def make_app(signing_key=None, **settings) -> FastAPI:
    app = FastAPI()
    app.include_router(get_router(
        lambda: BlobService(open_bucket(signing_key=signing_key)),
        settings=BlobSettings(**settings),
    ))
    return app


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def test_routes_happy_path():
    client = TestClient(make_app())

    resp = client.put("/blob/objects/docs/readme.md", json={"data_b64": b64(b"# Title\n"), "metadata": {"X": "1"}})
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["ok"] is True
    assert body["result"]["content_type"] == "text/plain; charset=utf-8"

    resp = client.get("/blob/objects/docs/readme.md")
    assert resp.status_code == 200
    assert resp.content == b"# Title\n"
    assert resp.headers["content-type"].startswith("text/plain")
    assert resp.headers["x-blob-size"] == "8"

    resp = client.get("/blob/objects/docs/readme.md", params={"offset": 2, "length": 5})
    assert resp.content == b"Title"

    resp = client.get("/blob/attributes/docs/readme.md")
    assert resp.status_code == 200
    assert resp.json()["result"]["metadata"] == {"x": "1"}

    resp = client.get("/blob/list", params={"delimiter": "/"})
    assert resp.status_code == 200
    assert [i["key"] for i in resp.json()["result"]["items"]] == ["docs/"]

    resp = client.delete("/blob/objects/docs/readme.md")
    assert resp.status_code == 200
    assert client.get("/blob/objects/docs/readme.md").status_code == 404


def test_error_statuses():
    client = TestClient(make_app())
    assert client.get("/blob/attributes/missing").status_code == 404
    assert client.delete("/blob/objects/missing", params={"missing_ok": True}).status_code == 200
    assert client.put("/blob/objects/k", json={"data_b64": "***"}).status_code == 400

    resp = client.put("/blob/objects/k", json={"data_b64": b64(b"x"), "content_type": "bogus"})
    assert resp.status_code == 400
    assert resp.json()["error"]["type"] == "VALIDATION"

    resp = client.put("/blob/objects/k", json={
        "data_b64": b64(b"x"), "content_md5_b64": b64(hashlib.md5(b"y").digest()),
    })
    assert resp.status_code == 422
    assert resp.json()["error"]["type"] == "INTEGRITY"

    assert client.get("/blob/objects/k", params={"offset": -1}).status_code == 400
    assert client.get("/blob/signed-url/k").status_code == 501


def test_list_limit_capped_by_settings():
    client = TestClient(make_app(BLOB_LIST_LIMIT_MAX=2))
    for k in "abc":
        client.put(f"/blob/objects/{k}", json={"data_b64": b64(b"1")})
    body = client.get("/blob/list", params={"limit": 50}).json()
    assert [i["key"] for i in body["result"]["items"]] == ["a", "b"]
    assert body["result"]["truncated"] is True


def test_signed_url_and_health():
    client = TestClient(make_app(signing_key=b"s", BLOB_SIGNED_URL_EXPIRY_S=120))
    resp = client.get("/blob/signed-url/some/key")
    assert resp.status_code == 200
    assert resp.json()["result"]["url"].startswith("mem:///some/key?")
    assert client.get("/blob/health").json() == {"ok": True, "adapter": "inmemory"}
