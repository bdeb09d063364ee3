import pytest
from flask import g

from juniorcars.cms_client import (
    FALLBACK_CONTENT,
    CmsClient,
    JsonTransport,
    car_series_list_to_overview,
    car_series_to_props,
    fallback_car_series_props,
    fallback_page_props,
    page_to_props,
)
from juniorcars.errors import CmsClientError
from juniorcars.headless_client import HeadlessCmsClient


def seed_records(client):
    client.post(
        "/api/cms/pages",
        json={
            "title": "About Us",
            "slug": "about",
            "published": True,
            "heroData": {"title": "About JuniorCars", "image": "/images/about.jpg"},
            "carouselData": {"title": "Gallery", "images": [{"url": "/images/g1.jpg", "alt": "First"}]},
        },
    )
    client.post(
        "/api/cms/car-series",
        json={"name": "356 Heritage", "slug": "356", "price": 125000, "published": True},
    )
    client.post("/api/cms/car-series", json={"name": "Hidden", "slug": "hidden"})


def test_cms_client_unwraps_envelope_in_process(app, client):
    seed_records(client)
    with app.test_request_context("/"):
        cms = CmsClient()
        pages = cms.get_pages(limit=5)
        assert [page["slug"] for page in pages] == ["about"]

        page = cms.get_page_by_slug("about")
        assert page["heroData"]["title"] == "About JuniorCars"
        assert cms.get_page_by_id(page["id"])["slug"] == "about"
        assert cms.get_page_by_slug("missing") is None

        series = cms.get_car_series_by_slug("356")
        assert series["price"] == 125000

        with pytest.raises(CmsClientError) as excinfo:
            cms.get_page_by_id(999)
        assert excinfo.value.status_code == 404
        assert excinfo.value.message == "Page not found"


def test_cms_client_reports_unreachable_server(app):
    with app.test_request_context("/"):
        cms = CmsClient(base_url="http://127.0.0.1:9", timeout=1)
        with pytest.raises(CmsClientError):
            cms.get_pages()
        # Slug lookups degrade to "not found" instead of raising.
        assert cms.get_page_by_slug("home") is None


def test_in_process_calls_carry_the_page_request_id(make_app):
    app = make_app()

    @app.get("/api/cms/request-id")
    def echo_request_id():
        return {"success": True, "data": g.request_id}

    with app.test_request_context("/"):
        g.request_id = "page-request-0001"
        status, body = JsonTransport().get("/api/cms/request-id")
    assert status == 200
    assert body["data"] == "page-request-0001"


def test_headless_client_flattens_entries(app, client):
    seed_records(client)
    with app.test_request_context("/"):
        headless = HeadlessCmsClient(base_url="")
        page = headless.get_page_by_slug("about")
        assert page["title"] == "About Us"
        assert page["published"] is True
        assert page["heroData"]["image"] == "/images/about.jpg"
        assert page["carouselData"]["images"] == [{"url": "/images/g1.jpg", "alt": "First", "caption": None}]

        series = headless.get_car_series(limit=10)
        assert [entry["slug"] for entry in series] == ["356"]

        assert headless.get_media_url("/uploads/a.jpg") == "/uploads/a.jpg"
        assert HeadlessCmsClient(base_url="https://cms.example.com/").get_media_url("/uploads/a.jpg") == (
            "https://cms.example.com/uploads/a.jpg"
        )


def test_props_mapping_uses_placeholders():
    page = {
        "id": 7,
        "title": "Home",
        "heroData": {"title": "Hi", "image": "/images/hero.jpg"},
        "carouselData": {"title": "Gallery", "images": [{"caption": "No url"}]},
        "seoData": {"title": "Home"},
    }
    props = page_to_props(page)
    assert props["hero_image_url"] == "/images/hero.jpg"
    assert props["carousel_images"][0]["src"] == "/images/placeholder-1.jpg"
    assert props["carousel_images"][0]["alt"] == "Home image 1"
    assert props["carousel_images"][0]["caption"] == "No url"

    series_props = car_series_to_props({"id": 1, "name": "Landrover", "slug": "landrover", "heroData": {}})
    assert series_props["hero_image_url"] == "/images/landrover-hero.jpg"
    assert series_props["seo"]["title"] == "Landrover - JuniorCars"

    overview = car_series_list_to_overview([
        {"name": "A", "slug": "a", "published": True},
        {"name": "B", "slug": "b", "published": False},
    ])
    assert [entry["slug"] for entry in overview] == ["a"]


def test_fallback_content():
    home = fallback_page_props("home")
    assert home["hero_title"] == FALLBACK_CONTENT["homepage"]["hero_title"]
    assert len(home["carousel_images"]) == 4

    unknown = fallback_page_props("nowhere")
    assert unknown["title"] == "JuniorCars"
    assert unknown["carousel_images"] == []

    assert fallback_car_series_props("300")["title"] == "300 Series"
    assert fallback_car_series_props("nope") is None
