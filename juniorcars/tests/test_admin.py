import io

from PIL import Image

from juniorcars.models import CarSeries, ContentBlock, Media, NavigationItem, Page, db


def test_admin_requires_login(client):
    response = client.get("/admin/", follow_redirects=False)
    assert response.status_code in (302, 303)
    assert "/admin/login" in response.headers["Location"]

    login_page = client.get("/admin/login")
    assert login_page.status_code == 200
    assert login_page.headers.get("X-Robots-Tag") == "noindex, nofollow, noarchive"
    assert "style=" not in login_page.get_data(as_text=True)


def test_login_rejects_bad_password_and_missing_csrf(client, login):
    response = login(client, password="wrong-password")
    assert response.status_code == 401
    assert "Invalid email or password." in response.get_data(as_text=True)

    response = client.post(
        "/admin/login",
        data={"email": "admin@juniorcars.com", "password": "admin123"},
        follow_redirects=False,
    )
    assert response.status_code in (302, 303)
    assert client.get("/admin/", follow_redirects=False).status_code in (302, 303)


def test_dashboard_shows_counts(admin_client):
    response = admin_client.get("/admin/")
    assert response.status_code == 200
    html = response.get_data(as_text=True)
    assert "Dashboard" in html
    assert "Sign out" in html
    assert "Admin User (Admin)" in html


def test_logout_ends_session(admin_client, csrf_for):
    token = csrf_for(admin_client)
    response = admin_client.post("/admin/logout", data={"_csrf_token": token}, follow_redirects=False)
    assert response.status_code in (302, 303)
    assert admin_client.get("/admin/", follow_redirects=False).status_code in (302, 303)


def test_page_create_edit_publish_and_delete(app, admin_client, csrf_for):
    token = csrf_for(admin_client, "/admin/pages/new")
    response = admin_client.post(
        "/admin/pages/new",
        data={
            "_csrf_token": token,
            "title": "Spring Showcase",
            "hero_title": "Spring",
            "hero_image": "/images/spring.jpg",
            "body": "First paragraph.\n\nSecond paragraph.",
            "seo_title": "Spring Showcase | JuniorCars",
        },
        follow_redirects=False,
    )
    assert response.status_code in (302, 303)

    with app.app_context():
        page = Page.query.filter_by(slug="spring-showcase").first()
        assert page is not None
        assert page.published is False
        assert page.hero_data == {"title": "Spring", "image": "/images/spring.jpg"}
        assert page.content == {"body": "First paragraph.\n\nSecond paragraph."}
        assert page.seo_data == {"title": "Spring Showcase | JuniorCars"}
        page_id = page.id

    response = admin_client.post(
        f"/admin/pages/{page_id}/edit",
        data={
            "_csrf_token": token,
            "title": "Spring Showcase",
            "slug": "spring",
            "hero_title": "",
            "hero_image": "/images/spring.jpg",
            "published": "y",
        },
        follow_redirects=False,
    )
    assert response.status_code in (302, 303)

    response = admin_client.post(
        f"/admin/pages/{page_id}/blocks",
        data={"_csrf_token": token, "type": "text", "data_json": '{"content": "Block text"}'},
        follow_redirects=False,
    )
    assert response.status_code in (302, 303)

    with app.app_context():
        page = db.session.get(Page, page_id)
        assert page.slug == "spring"
        assert page.published is True
        assert page.hero_data == {"image": "/images/spring.jpg"}
        assert [block.data for block in page.content_blocks] == [{"content": "Block text"}]

    response = admin_client.post(f"/admin/pages/{page_id}/publish", data={"_csrf_token": token})
    assert response.status_code in (302, 303)
    with app.app_context():
        assert db.session.get(Page, page_id).published is False

    response = admin_client.post(f"/admin/pages/{page_id}/delete", data={"_csrf_token": token})
    assert response.status_code in (302, 303)
    with app.app_context():
        assert db.session.get(Page, page_id) is None
        assert ContentBlock.query.count() == 0


def test_page_form_reports_bad_block_json(admin_client, csrf_for, client):
    page = client.post("/api/cms/pages", json={"title": "Blocks"}).get_json()["data"]
    token = csrf_for(admin_client, f"/admin/pages/{page['id']}/edit")
    response = admin_client.post(
        f"/admin/pages/{page['id']}/blocks",
        data={"_csrf_token": token, "type": "text", "data_json": "{not json"},
        follow_redirects=True,
    )
    assert response.status_code == 200
    assert "Block data must be valid JSON." in response.get_data(as_text=True)


def test_post_without_csrf_is_rejected(app, admin_client):
    response = admin_client.post("/admin/pages/new", data={"title": "No token"}, follow_redirects=True)
    assert response.status_code == 200
    assert "Your form session expired. Please retry your action." in response.get_data(as_text=True)
    with app.app_context():
        assert Page.query.count() == 0


def test_car_series_form_builds_specifications(app, admin_client, csrf_for):
    token = csrf_for(admin_client, "/admin/car-series/new")
    response = admin_client.post(
        "/admin/car-series/new",
        data={
            "_csrf_token": token,
            "name": "300 Series",
            "slug": "300",
            "price": "95000",
            "engine": "3.0L Inline-6",
            "fuel_type": "Petrol",
            "top_speed": "250 km/h",
            "features": "Sport Suspension\n\nPremium Sound\n",
            "published": "y",
        },
        follow_redirects=False,
    )
    assert response.status_code in (302, 303)

    with app.app_context():
        series = CarSeries.query.filter_by(slug="300").first()
        assert series.price == 95000
        assert series.published is True
        assert series.specifications == {
            "engine": "3.0L Inline-6",
            "fuelType": "Petrol",
            "topSpeed": "250 km/h",
            "features": ["Sport Suspension", "Premium Sound"],
        }
        series_id = series.id

    edit_page = admin_client.get(f"/admin/car-series/{series_id}/edit")
    assert edit_page.status_code == 200
    assert "3.0L Inline-6" in edit_page.get_data(as_text=True)

    response = admin_client.post(f"/admin/car-series/{series_id}/delete", data={"_csrf_token": token})
    assert response.status_code in (302, 303)
    with app.app_context():
        assert CarSeries.query.count() == 0


def test_navigation_admin_create_move_and_guarded_delete(app, admin_client, csrf_for):
    token = csrf_for(admin_client, "/admin/navigation")
    for label in ("Cars", "About"):
        response = admin_client.post(
            "/admin/navigation",
            data={"_csrf_token": token, "label": label, "url": f"/{label.lower()}", "parent_id": "0", "target": "_self", "is_active": "y"},
            follow_redirects=False,
        )
        assert response.status_code in (302, 303)

    with app.app_context():
        cars = NavigationItem.query.filter_by(label="Cars").first()
        about = NavigationItem.query.filter_by(label="About").first()
        cars_id, about_id = cars.id, about.id

    response = admin_client.post(
        "/admin/navigation",
        data={"_csrf_token": token, "label": "Series 1", "url": "/cars/series-1", "parent_id": str(cars_id), "target": "_self", "is_active": "y"},
        follow_redirects=False,
    )
    assert response.status_code in (302, 303)

    admin_client.post(f"/admin/navigation/{about_id}/move/up", data={"_csrf_token": token})
    with app.app_context():
        roots = NavigationItem.query.filter(NavigationItem.parent_id.is_(None)).order_by(NavigationItem.order_index).all()
        assert [item.label for item in roots] == ["About", "Cars"]

    response = admin_client.post(f"/admin/navigation/{cars_id}/delete", data={"_csrf_token": token}, follow_redirects=True)
    assert "Cannot delete navigation item with children" in response.get_data(as_text=True)
    with app.app_context():
        assert db.session.get(NavigationItem, cars_id) is not None

    edit_page = admin_client.get(f"/admin/navigation/{cars_id}/edit")
    html = edit_page.get_data(as_text=True)
    # An item cannot be re-parented under itself or its descendants.
    assert f'<option value="{cars_id}"' not in html
    assert "Series 1</option>" not in html


def test_media_upload_alt_text_and_delete(app, admin_client, csrf_for):
    token = csrf_for(admin_client, "/admin/media")
    buffer = io.BytesIO()
    Image.new("RGB", (2, 2), (0, 0, 255)).save(buffer, format="PNG")
    buffer.seek(0)

    response = admin_client.post(
        "/admin/media/upload",
        data={"_csrf_token": token, "file": (buffer, "blue.png", "image/png"), "alt_text": "Blue square"},
        content_type="multipart/form-data",
        follow_redirects=True,
    )
    assert response.status_code == 200
    assert "File uploaded." in response.get_data(as_text=True)

    with app.app_context():
        media = Media.query.one()
        assert media.alt_text == "Blue square"
        media_id = media.id

    admin_client.post(f"/admin/media/{media_id}/edit", data={"_csrf_token": token, "alt_text": "Navy square"})
    with app.app_context():
        assert db.session.get(Media, media_id).alt_text == "Navy square"

    admin_client.post(f"/admin/media/{media_id}/delete", data={"_csrf_token": token})
    with app.app_context():
        assert Media.query.count() == 0


def test_seo_admin_bulk_generation(app, admin_client, csrf_for, client):
    client.post("/api/cms/pages", json={"title": "Needs SEO"})
    token = csrf_for(admin_client, "/admin/seo")
    assert "Needs SEO" in admin_client.get("/admin/seo").get_data(as_text=True)

    response = admin_client.post(
        "/admin/seo/bulk",
        data={"_csrf_token": token, "action": "generate_meta_titles"},
        follow_redirects=True,
    )
    assert "Updated 1 page(s)." in response.get_data(as_text=True)
    with app.app_context():
        assert Page.query.one().seo_data == {"title": "Needs SEO | JuniorCars"}


def test_unknown_admin_record_is_404(admin_client):
    assert admin_client.get("/admin/pages/999/edit").status_code == 404
