"""HTTP boundary tests using FastAPI's TestClient."""

import hashlib
import json

import pytest
from fastapi.testclient import TestClient

from fragments_service import webapi
from fragments_service.fragments.errors import (
    ConversionError,
    NotFoundError,
    UnsupportedConversionError,
    UnsupportedFormatError,
    UnsupportedTypeError,
    ValidationError,
)

AUTH = {"Authorization": "Bearer user1"}


@pytest.fixture
def client():
    with TestClient(webapi.app) as c:
        yield c


def _post(client, body, content_type, headers=AUTH):
    return client.post("/v1/fragments", content=body, headers={**headers, "Content-Type": content_type})


def test_health(client) -> None:
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


@pytest.mark.parametrize("headers", [{}, {"Authorization": "Basic abc"}, {"Authorization": "Bearer"}])
def test_requests_without_bearer_token_are_unauthorized(client, headers) -> None:
    r = client.get("/v1/fragments", headers=headers)
    assert r.status_code == 401
    assert r.json()["detail"]["code"] == "unauthorized"


def test_create_fragment(client) -> None:
    r = _post(client, b"hello", "text/plain")
    assert r.status_code == 201
    fragment = r.json()["fragment"]
    assert r.json()["status"] == "ok"
    assert fragment["type"] == "text/plain"
    assert fragment["size"] == 5
    assert fragment["ownerId"] == hashlib.sha256(b"user1").hexdigest()
    assert r.headers["Location"] == f"http://testserver/v1/fragments/{fragment['id']}"


def test_location_uses_api_url(client, monkeypatch) -> None:
    monkeypatch.setattr(webapi, "API_URL", "https://fragments.example.com")
    r = _post(client, b"hello", "text/plain")
    assert r.headers["Location"].startswith("https://fragments.example.com/v1/fragments/")


@pytest.mark.parametrize("content_type", ["application/msword", "application/octet-stream"])
def test_create_with_unsupported_type_is_rejected(client, content_type) -> None:
    r = _post(client, b"data", content_type)
    assert r.status_code == 415
    assert client.get("/v1/fragments", headers=AUTH).json()["fragments"] == []


def test_create_without_content_type_is_rejected(client) -> None:
    r = client.post("/v1/fragments", content=b"data", headers=AUTH)
    assert r.status_code == 415


def test_create_rejects_oversized_body(client, monkeypatch) -> None:
    monkeypatch.setattr(webapi, "MAX_FRAGMENT_MB", 0)
    r = _post(client, b"too big", "text/plain")
    assert r.status_code == 413
    assert r.json()["detail"]["code"] == "payload_too_large"


def test_list_fragments(client) -> None:
    first = _post(client, b"a", "text/plain").json()["fragment"]
    second = _post(client, b"# b", "text/markdown").json()["fragment"]

    ids = client.get("/v1/fragments", headers=AUTH).json()["fragments"]
    assert ids == [first["id"], second["id"]]

    expanded = client.get("/v1/fragments?expand=1", headers=AUTH).json()["fragments"]
    assert [f["type"] for f in expanded] == ["text/plain", "text/markdown"]


def test_users_only_see_their_own_fragments(client) -> None:
    fragment = _post(client, b"mine", "text/plain").json()["fragment"]
    other = {"Authorization": "Bearer user2"}
    assert client.get("/v1/fragments", headers=other).json()["fragments"] == []
    assert client.get(f"/v1/fragments/{fragment['id']}", headers=other).status_code == 404


def test_get_fragment_data(client) -> None:
    fragment = _post(client, b"hello", "text/plain; charset=utf-8").json()["fragment"]
    r = client.get(f"/v1/fragments/{fragment['id']}", headers=AUTH)
    assert r.status_code == 200
    assert r.content == b"hello"
    assert r.headers["content-type"].startswith("text/plain")


def test_get_markdown_as_html_and_txt(client) -> None:
    fragment = _post(client, b"# Hi", "text/markdown").json()["fragment"]

    html = client.get(f"/v1/fragments/{fragment['id']}.html", headers=AUTH)
    assert html.status_code == 200
    assert html.headers["content-type"].startswith("text/html")
    assert "<h1>Hi</h1>" in html.text

    txt = client.get(f"/v1/fragments/{fragment['id']}.txt", headers=AUTH)
    assert txt.headers["content-type"].startswith("text/plain")
    assert txt.content == b"# Hi"


def test_get_json_as_yaml(client) -> None:
    fragment = _post(client, json.dumps({"a": 1}).encode(), "application/json").json()["fragment"]
    r = client.get(f"/v1/fragments/{fragment['id']}.yaml", headers=AUTH)
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("application/yaml")
    assert r.content == b"a: 1\n"


def test_get_png_as_jpeg(client, png_bytes) -> None:
    fragment = _post(client, png_bytes, "image/png").json()["fragment"]
    r = client.get(f"/v1/fragments/{fragment['id']}.jpg", headers=AUTH)
    assert r.status_code == 200
    assert r.headers["content-type"] == "image/jpeg"
    assert r.content.startswith(b"\xff\xd8")


def test_get_with_incompatible_extension_is_415(client) -> None:
    fragment = _post(client, b"plain", "text/plain").json()["fragment"]
    r = client.get(f"/v1/fragments/{fragment['id']}.html", headers=AUTH)
    assert r.status_code == 415
    assert r.json()["detail"]["code"] == "unsupported_format"


def test_malformed_json_conversion_is_422(client) -> None:
    fragment = _post(client, b"{not json", "application/json").json()["fragment"]
    r = client.get(f"/v1/fragments/{fragment['id']}.yaml", headers=AUTH)
    assert r.status_code == 422
    assert r.json()["detail"]["code"] == "conversion_error"


def test_get_missing_fragment_is_404(client) -> None:
    r = client.get("/v1/fragments/missing", headers=AUTH)
    assert r.status_code == 404
    assert r.json()["detail"] == {"code": "not_found", "message": "Fragment not found: ID missing"}


def test_fragment_info(client) -> None:
    fragment = _post(client, b"{}", "application/json").json()["fragment"]
    r = client.get(f"/v1/fragments/{fragment['id']}/info", headers=AUTH)
    assert r.status_code == 200
    assert r.json()["fragment"] == fragment
    assert r.json()["formats"] == ["application/json", "application/yaml", "text/csv", "text/plain"]


def test_update_fragment(client) -> None:
    fragment = _post(client, b"one", "text/plain").json()["fragment"]
    r = client.put(
        f"/v1/fragments/{fragment['id']}",
        content=b"three",
        headers={**AUTH, "Content-Type": "text/plain"},
    )
    assert r.status_code == 200
    updated = r.json()["fragment"]
    assert updated["size"] == 5
    assert updated["updated"] > fragment["updated"]
    assert client.get(f"/v1/fragments/{fragment['id']}", headers=AUTH).content == b"three"


def test_update_with_different_type_is_400(client) -> None:
    fragment = _post(client, b"one", "text/plain").json()["fragment"]
    r = client.put(
        f"/v1/fragments/{fragment['id']}",
        content=b"# two",
        headers={**AUTH, "Content-Type": "text/markdown"},
    )
    assert r.status_code == 400
    assert r.json()["detail"]["code"] == "validation_error"


def test_update_missing_fragment_is_404(client) -> None:
    r = client.put("/v1/fragments/missing", content=b"x", headers={**AUTH, "Content-Type": "text/plain"})
    assert r.status_code == 404


def test_delete_fragment(client) -> None:
    fragment = _post(client, b"bye", "text/plain").json()["fragment"]
    r = client.delete(f"/v1/fragments/{fragment['id']}", headers=AUTH)
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}
    assert client.get(f"/v1/fragments/{fragment['id']}", headers=AUTH).status_code == 404
    assert client.delete(f"/v1/fragments/{fragment['id']}", headers=AUTH).status_code == 404


def test_local_storage_backend(monkeypatch, tmp_path) -> None:
    monkeypatch.setattr(webapi, "STORAGE_BACKEND", "local")
    monkeypatch.setattr(webapi, "DATA_DIR", tmp_path)
    with TestClient(webapi.app) as c:
        fragment = _post(c, b"on disk", "text/plain").json()["fragment"]
    owner_dir = tmp_path / "owners" / fragment["ownerId"]
    assert (owner_dir / fragment["id"] / "data.bin").read_bytes() == b"on disk"


@pytest.mark.parametrize(
    "error, status",
    [
        (ValidationError("bad"), 400),
        (UnsupportedTypeError("application/msword"), 415),
        (NotFoundError("o", "f"), 404),
        (UnsupportedFormatError("text/plain", "html"), 415),
        (UnsupportedConversionError("text/plain", "html"), 415),
        (ConversionError("bad bytes"), 422),
    ],
)
def test_status_for(error, status) -> None:
    assert webapi.status_for(error) == status


def test_oversized_image_conversion_is_422(client, png_bytes, monkeypatch) -> None:
    from PIL import Image

    fragment = _post(client, png_bytes, "image/png").json()["fragment"]
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 10)
    r = client.get(f"/v1/fragments/{fragment['id']}.jpg", headers=AUTH)
    assert r.status_code == 422
    assert r.json()["detail"]["code"] == "conversion_error"
