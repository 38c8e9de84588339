"""
Tests for the Thumbnail Editor HTTP API.

The process-wide manager is swapped for one rooted in a temporary directory.
"""

from io import BytesIO

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from thumbnail_editor.main import app
from thumbnail_editor.services.thumbnails import get_thumbnail_manager


def _png_bytes(size=(800, 600), color=(20, 120, 220)) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def client(manager):
    app.dependency_overrides[get_thumbnail_manager] = lambda: manager
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def image_id(client):
    response = client.post("/api/v1/images", files={"image": ("banner.png", _png_bytes(), "image/png")})
    assert response.status_code == 201
    return response.json()["id"]


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
    assert client.get("/api/v1/health").json() == {"status": "ok", "api_version": "v1"}


def test_list_sizes(client):
    sizes = client.get("/api/v1/sizes").json()
    assert [size["name"] for size in sizes] == ["thumbnail", "medium", "wide"]
    assert sizes[0] == {"name": "thumbnail", "label": "Thumbnail", "width": 150, "height": 150, "crop": True}


def test_upload_rejects_non_images(client):
    response = client.post("/api/v1/images", files={"image": ("notes.txt", b"hello", "text/plain")})
    assert response.status_code == 422
    assert "File is not an image" in response.json()["detail"]


def test_list_thumbnails_generates_every_size(client, image_id):
    response = client.get(f"/api/v1/images/{image_id}/thumbnails")

    assert response.status_code == 200
    body = response.json()
    assert body["id"] == image_id
    assert [(t["size_name"], t["width"], t["height"]) for t in body["thumbnails"]] == [
        ("thumbnail", 150, 150),
        ("medium", 300, 225),
        ("wide", 400, 300),
    ]
    assert body["thumbnails"][0]["url"] == f"/uploads/{image_id}/banner-150x150.png"


def test_list_thumbnails_unknown_image(client):
    assert client.get("/api/v1/images/missing/thumbnails").status_code == 404


def test_resize_preview_and_commit(client, image_id):
    url = f"/api/v1/images/{image_id}/thumbnails/medium/resize"

    preview = client.post(url, json={"w": 400, "h": 400, "x": 0, "y": 0})
    assert preview.status_code == 200
    assert preview.json()["url"].startswith(f"/uploads/ptetmp/{image_id}/")

    committed = client.post(url, json={"w": 400, "h": 400, "x": 0, "y": 0, "save": True, "fit_color": "#ffffff"})
    assert committed.status_code == 200
    assert committed.json()["file"].startswith("banner-300x300-")

    listing = client.get(f"/api/v1/images/{image_id}/thumbnails").json()["thumbnails"]
    assert listing[1]["file"] == committed.json()["file"]


def test_resize_unknown_size(client, image_id):
    response = client.post(f"/api/v1/images/{image_id}/thumbnails/huge/resize", json={"w": 10, "h": 10})
    assert response.status_code == 404


def test_resize_rejects_empty_selection(client, image_id):
    response = client.post(f"/api/v1/images/{image_id}/thumbnails/medium/resize", json={"w": 0, "h": 10})
    assert response.status_code == 422


def test_resize_operation_failure_is_reported(client, image_id, manager):
    def break_destination(params):
        params.dst_h = 0
        return params

    manager.add_transform(break_destination)
    response = client.post(f"/api/v1/images/{image_id}/thumbnails/medium/resize", json={"w": 100, "h": 100})

    assert response.status_code == 500
    assert response.json()["detail"] == "Error cropping image: medium"
