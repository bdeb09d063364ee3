import io
import re

from PIL import Image

from juniorcars.models import ContentBlock, Page, db


def create_page(client, **payload):
    payload.setdefault("title", "Test Page")
    response = client.post("/api/cms/pages", json=payload)
    assert response.status_code == 201, response.get_json()
    return response.get_json()["data"]


def create_series(client, **payload):
    payload.setdefault("name", "Test Series")
    response = client.post("/api/cms/car-series", json=payload)
    assert response.status_code == 201, response.get_json()
    return response.get_json()["data"]


def png_bytes(width=4, height=3):
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), (200, 20, 20)).save(buffer, format="PNG")
    return buffer.getvalue()


def test_create_page_generates_slug_and_wraps_envelope(client):
    response = client.post("/api/cms/pages", json={"title": "Summer Road Trip!", "published": True})
    assert response.status_code == 201
    body = response.get_json()
    assert body["success"] is True
    assert body["message"] == "Page created successfully"
    assert body["data"]["slug"] == "summer-road-trip"
    assert body["data"]["published"] is True
    assert body["data"]["contentBlocks"] == []
    assert body["data"]["createdAt"].endswith("Z")


def test_duplicate_slug_on_create_gets_timestamp_suffix(client):
    first = create_page(client, title="Series API", slug="test-series-api")
    second = create_page(client, title="Series API again", slug="test-series-api")
    assert first["slug"] == "test-series-api"
    assert re.fullmatch(r"test-series-api-\d+", second["slug"])


def test_duplicate_car_series_slug_gets_timestamp_suffix(client):
    payload = {"name": "Test Series API", "slug": "test-series-api", "price": 35000}
    first = client.post("/api/cms/car-series", json=payload)
    second = client.post("/api/cms/car-series", json=payload)
    assert first.status_code == 201
    assert second.status_code == 201
    assert first.get_json()["data"]["slug"] == "test-series-api"
    assert re.fullmatch(r"test-series-api-\d{13,}", second.get_json()["data"]["slug"])


def test_suffixed_slug_stays_within_column_length(client):
    create_page(client, title="a" * 200)
    page = create_page(client, title="a" * 200)
    assert len(page["slug"]) <= 200
    assert re.fullmatch(r"a+-\d{13,}", page["slug"])

    response = client.put(f"/api/cms/pages/{page['id']}", json={"slug": page["slug"]})
    assert response.status_code == 200
    assert response.get_json()["data"]["slug"] == page["slug"]


def test_update_to_taken_slug_is_conflict(client):
    create_page(client, title="One", slug="one")
    other = create_page(client, title="Two", slug="two")

    response = client.put(f"/api/cms/pages/{other['id']}", json={"slug": "one", "title": "Changed"})
    assert response.status_code == 409
    assert response.get_json() == {"success": False, "error": "Slug already exists"}

    stored = client.get(f"/api/cms/pages/{other['id']}").get_json()["data"]
    assert stored["slug"] == "two"
    assert stored["title"] == "Two"


def test_partial_update_keeps_other_fields(client):
    page = create_page(
        client,
        title="Keep me",
        heroData={"title": "Hero", "image": "/images/hero.jpg"},
        seoData={"title": "SEO title"},
    )
    response = client.put(f"/api/cms/pages/{page['id']}", json={"published": True})
    assert response.status_code == 200
    data = response.get_json()["data"]
    assert data["published"] is True
    assert data["title"] == "Keep me"
    assert data["heroData"] == {"title": "Hero", "image": "/images/hero.jpg"}
    assert data["seoData"] == {"title": "SEO title"}


def test_validation_errors_list_every_field(client):
    response = client.post(
        "/api/cms/pages",
        json={"title": "", "slug": "Bad Slug", "heroData": {"image": "javascript:alert(1)"}},
    )
    assert response.status_code == 400
    body = response.get_json()
    assert body["success"] is False
    assert body["error"].startswith("Validation error:")
    fields = {item["field"] for item in body["details"]}
    assert {"title", "slug", "heroData.image"} <= fields


def test_invalid_json_and_invalid_id(client):
    response = client.post("/api/cms/pages", data="not json", content_type="application/json")
    assert response.status_code == 400
    assert response.get_json()["error"] == "Invalid JSON in request body"

    response = client.get("/api/cms/pages/abc")
    assert response.status_code == 400
    assert response.get_json()["error"] == "Invalid page ID"

    response = client.get("/api/cms/pages/999")
    assert response.status_code == 404
    assert response.get_json()["error"] == "Page not found"


def test_list_pages_paginates_and_filters(client):
    for index in range(25):
        create_page(client, title=f"Page {index:02d}", published=index % 2 == 0)

    response = client.get("/api/cms/pages?page=2&limit=10")
    assert response.status_code == 200
    body = response.get_json()
    assert len(body["data"]) == 10
    assert body["pagination"] == {"page": 2, "limit": 10, "total": 25, "totalPages": 3}

    published = client.get("/api/cms/pages?published=true&limit=100").get_json()
    assert published["pagination"]["total"] == 13
    assert all(item["published"] for item in published["data"])

    search = client.get("/api/cms/pages?search=page 07").get_json()
    assert [item["title"] for item in search["data"]] == ["Page 07"]

    ordered = client.get("/api/cms/pages?sortBy=title&sortOrder=asc&limit=3").get_json()
    assert [item["title"] for item in ordered["data"]] == ["Page 00", "Page 01", "Page 02"]


def test_list_rejects_unknown_query_params(client):
    response = client.get("/api/cms/pages?limit=500")
    assert response.status_code == 400
    response = client.get("/api/cms/pages?colour=red")
    assert response.status_code == 400


def test_delete_page_cascades_content_blocks(app, client):
    page = create_page(client, title="With blocks")
    for text in ("first", "second"):
        response = client.post(
            "/api/cms/content-blocks",
            json={"pageId": page["id"], "type": "text", "data": {"content": text}},
        )
        assert response.status_code == 201

    response = client.delete(f"/api/cms/pages/{page['id']}")
    assert response.status_code == 204
    assert response.get_data() == b""

    with app.app_context():
        assert db.session.get(Page, page["id"]) is None
        assert ContentBlock.query.count() == 0


def test_car_series_crud_and_specifications(client):
    series = create_series(
        client,
        name="Series 1",
        description="Classic elegance",
        price=85000,
        specifications={"engine": "2.0L", "topSpeed": "210 km/h", "features": ["Leather"]},
        published=True,
    )
    assert series["slug"] == "series-1"
    assert series["price"] == 85000
    assert series["specifications"] == {"engine": "2.0L", "topSpeed": "210 km/h", "features": ["Leather"]}

    response = client.put(f"/api/cms/car-series/{series['id']}", json={"price": 90000.5})
    assert response.status_code == 200
    assert response.get_json()["data"]["price"] == 90000.5

    response = client.post("/api/cms/car-series", json={"name": "Cheap", "price": 0})
    assert response.status_code == 400

    response = client.delete(f"/api/cms/car-series/{series['id']}")
    assert response.status_code == 204
    assert client.get(f"/api/cms/car-series/{series['id']}").status_code == 404


def test_content_blocks_validate_data_and_order(client):
    page = create_page(client, title="Blocks")

    response = client.post("/api/cms/content-blocks", json={"pageId": 999, "type": "text", "data": {"content": "x"}})
    assert response.status_code == 400
    assert response.get_json()["error"] == "Page not found"

    response = client.post("/api/cms/content-blocks", json={"pageId": page["id"], "type": "image", "data": {}})
    assert response.status_code == 400
    fields = {item["field"] for item in response.get_json()["details"]}
    assert "data.url" in fields

    response = client.post("/api/cms/content-blocks", json={"pageId": page["id"], "type": "video", "data": {}})
    assert response.status_code == 400

    first = client.post(
        "/api/cms/content-blocks",
        json={"pageId": page["id"], "type": "text", "data": {"content": "one"}},
    ).get_json()["data"]
    second = client.post(
        "/api/cms/content-blocks",
        json={"pageId": page["id"], "type": "html", "data": {"content": "<p>two</p>"}},
    ).get_json()["data"]
    assert second["orderIndex"] == first["orderIndex"] + 1

    response = client.put(
        "/api/cms/content-blocks/reorder",
        json={"blocks": [{"id": first["id"], "orderIndex": 5}, {"id": second["id"], "orderIndex": 1}]},
    )
    assert response.status_code == 200

    listed = client.get(f"/api/cms/content-blocks?pageId={page['id']}").get_json()["data"]
    assert [block["id"] for block in listed] == [second["id"], first["id"]]

    response = client.put("/api/cms/content-blocks/reorder", json={"blocks": [{"id": 999, "orderIndex": 1}]})
    assert response.status_code == 404


def test_media_upload_and_serve(client):
    data = png_bytes()
    response = client.post(
        "/api/cms/media/upload",
        data={"file": (io.BytesIO(data), "red car.png", "image/png"), "altText": "Red car"},
        content_type="multipart/form-data",
    )
    assert response.status_code == 201
    media = response.get_json()["data"]
    assert media["originalName"] == "red car.png"
    assert media["mimeType"] == "image/png"
    assert media["width"] == 4 and media["height"] == 3
    assert media["size"] == len(data)
    assert media["url"].startswith("data:image/png;base64,")
    assert media["filename"].startswith("cms_") and media["filename"].endswith(".png")

    served = client.get(f"/api/cms/media/serve/{media['id']}")
    assert served.status_code == 200
    assert served.mimetype == "image/png"
    assert served.get_data() == data
    assert "immutable" in served.headers["Cache-Control"]


def test_media_upload_rejects_mismatched_content(client):
    response = client.post(
        "/api/cms/media/upload",
        data={"file": (io.BytesIO(b"not an image"), "fake.png", "image/png")},
        content_type="multipart/form-data",
    )
    assert response.status_code == 400

    response = client.post(
        "/api/cms/media/upload",
        data={"file": (io.BytesIO(b"MZ..."), "tool.exe", "application/x-msdownload")},
        content_type="multipart/form-data",
    )
    assert response.status_code == 400
    assert response.get_json()["error"].startswith("File type not supported")

    config = client.get("/api/cms/media/upload").get_json()["data"]
    assert "image/png" in config["allowedTypes"]
    assert config["maxFileSize"] > 0


def test_media_records_filters_and_bulk_delete(client):
    image = client.post(
        "/api/cms/media",
        json={"filename": "photo.jpg", "originalName": "photo.jpg", "url": "/uploads/photo.jpg", "mimeType": "image/jpeg"},
    )
    assert image.status_code == 201
    document = client.post(
        "/api/cms/media",
        json={"filename": "brochure.pdf", "originalName": "brochure.pdf", "url": "https://cdn.example.com/b.pdf", "mimeType": "application/pdf"},
    )
    assert document.status_code == 201

    duplicate = client.post(
        "/api/cms/media",
        json={"filename": "photo.jpg", "originalName": "other.jpg", "url": "/uploads/other.jpg"},
    )
    assert duplicate.status_code == 409
    assert duplicate.get_json()["error"] == "Media file with this filename already exists"

    images = client.get("/api/cms/media?type=image").get_json()["data"]
    assert [item["filename"] for item in images] == ["photo.jpg"]
    documents = client.get("/api/cms/media?type=document").get_json()["data"]
    assert [item["filename"] for item in documents] == ["brochure.pdf"]

    served = client.get(f"/api/cms/media/serve/{image.get_json()['data']['id']}")
    assert served.status_code == 302
    assert served.headers["Location"].endswith("/uploads/photo.jpg")

    ids = [image.get_json()["data"]["id"], document.get_json()["data"]["id"]]
    response = client.delete("/api/cms/media", json={"ids": ids})
    assert response.status_code == 200
    assert response.get_json()["data"] == {"deletedCount": 2}


def test_api_responses_carry_cors_headers(client):
    response = client.get("/api/cms/pages")
    assert response.headers["Access-Control-Allow-Origin"] == "*"
    assert response.headers["X-Robots-Tag"] == "noindex, nofollow, noarchive"

    response = client.patch("/api/cms/pages")
    assert response.status_code == 405
    assert response.get_json()["success"] is False
    assert response.headers["Access-Control-Allow-Origin"] == "*"

    response = client.get("/api/cms/nothing-here")
    assert response.status_code == 404
    assert response.get_json() == {"success": False, "error": "Not found"}
    assert response.headers["Access-Control-Allow-Methods"] == "GET, POST, PUT, DELETE, OPTIONS"
