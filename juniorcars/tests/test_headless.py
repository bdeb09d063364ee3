from juniorcars.headless import PAGE_FIND, setup_public_permissions
from juniorcars.models import API_ROLE_PUBLIC, ApiPermission, db


def test_pages_collection_shape_and_pagination(client):
    client.post(
        "/api/cms/pages",
        json={
            "title": "Home",
            "slug": "home",
            "published": True,
            "heroData": {"title": "Welcome", "image": "/images/hero.jpg", "ctaUrl": "/cars"},
            "seoData": {"title": "Home | JuniorCars", "description": "Classic cars", "keywords": "cars"},
        },
    )
    client.post("/api/cms/pages", json={"title": "Draft", "slug": "draft"})

    response = client.get("/api/headless/pages")
    assert response.status_code == 200
    body = response.get_json()
    assert body["meta"]["pagination"] == {"page": 1, "pageSize": 25, "pageCount": 1, "total": 1}

    entry = body["data"][0]
    attributes = entry["attributes"]
    assert attributes["slug"] == "home"
    assert attributes["publishedAt"]
    assert attributes["hero"]["title"] == "Welcome"
    assert attributes["hero"]["ctaLink"] == "/cars"
    assert attributes["hero"]["backgroundImage"]["data"]["attributes"]["url"] == "/images/hero.jpg"
    assert attributes["hero"]["backgroundVideo"] == {"data": None}
    assert attributes["seo"]["metaTitle"] == "Home | JuniorCars"
    assert attributes["carousel"] is None

    filtered = client.get("/api/headless/pages?filters[slug][$eq]=draft").get_json()
    assert filtered["data"] == []

    single = client.get(f"/api/headless/pages/{entry['id']}")
    assert single.status_code == 200
    assert single.get_json()["data"]["id"] == entry["id"]


def test_car_series_collection_sort_and_errors(client):
    for name, price in (("Series 1", 85000), ("356", 125000), ("300", 95000)):
        client.post("/api/cms/car-series", json={"name": name, "price": price, "published": True})

    response = client.get("/api/headless/car-series-collection?sort=price:desc&pagination[pageSize]=2")
    assert response.status_code == 200
    body = response.get_json()
    assert [entry["attributes"]["name"] for entry in body["data"]] == ["356", "300"]
    assert body["meta"]["pagination"]["pageCount"] == 2

    response = client.get("/api/headless/car-series-collection?sort=colour")
    assert response.status_code == 400
    error = response.get_json()
    assert error["data"] is None
    assert error["error"]["name"] == "ValidationError"

    response = client.get("/api/headless/car-series-collection/999")
    assert response.status_code == 404
    assert response.get_json()["error"]["status"] == 404

    response = client.get("/api/headless/pages?pagination[page]=0")
    assert response.status_code == 400


def test_navigation_single_type(client):
    cars = client.post("/api/cms/navigation", json={"label": "Cars", "url": "/cars"}).get_json()["data"]
    client.post("/api/cms/navigation", json={"label": "Series 1", "url": "/cars/series-1", "parentId": cars["id"]})

    body = client.get("/api/headless/navigation").get_json()
    attributes = body["data"]["attributes"]
    assert [item["label"] for item in attributes["mainMenu"]] == ["Cars"]
    assert [item["label"] for item in attributes["mainMenu"][0]["submenu"]] == ["Series 1"]
    assert "submenu" not in attributes["footerMenu"][0]
    platforms = [link["platform"] for link in attributes["socialLinks"]]
    assert platforms == ["instagram", "youtube", "tiktok"]


def test_public_role_needs_permission(app, client, auth_headers):
    with app.app_context():
        permission = ApiPermission.query.filter_by(role=API_ROLE_PUBLIC, action=PAGE_FIND).first()
        permission.enabled = False
        db.session.commit()

    response = client.get("/api/headless/pages")
    assert response.status_code == 403
    assert response.get_json()["error"]["name"] == "ForbiddenError"

    assert client.get("/api/headless/pages", headers=auth_headers).status_code == 200

    response = client.get("/api/headless/pages", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401


def test_setup_public_permissions_is_idempotent(app):
    with app.app_context():
        results = setup_public_permissions()
        assert results["created"] == []
        assert results["failed"] == []
        assert PAGE_FIND in results["updated"]
        assert ApiPermission.query.filter_by(role=API_ROLE_PUBLIC).count() == len(results["updated"])
