def create_item(client, **payload):
    response = client.post("/api/cms/navigation", json=payload)
    assert response.status_code == 201, response.get_json()
    return response.get_json()["data"]


def tree(client, active_only=False):
    path = "/api/cms/navigation/tree"
    if active_only:
        path += "?activeOnly=true"
    return client.get(path).get_json()["data"]


def test_create_assigns_next_order_index_per_level(client):
    cars = create_item(client, label="Cars", url="/cars")
    about = create_item(client, label="About", url="/about")
    series = create_item(client, label="Series 1", url="/cars/series-1", parentId=cars["id"])

    assert cars["orderIndex"] == 1
    assert about["orderIndex"] == 2
    assert series["orderIndex"] == 1
    assert series["parent"]["id"] == cars["id"]
    assert series["target"] == "_self"


def test_create_rejects_duplicate_label_and_missing_parent(client):
    create_item(client, label="Cars")

    response = client.post("/api/cms/navigation", json={"label": "Cars"})
    assert response.status_code == 409

    response = client.post("/api/cms/navigation", json={"label": "Orphan", "parentId": 999})
    assert response.status_code == 400
    assert response.get_json()["error"] == "Parent navigation item not found"

    response = client.post("/api/cms/navigation", json={"label": "Bad", "target": "_top"})
    assert response.status_code == 400


def test_tree_nests_children_and_hides_inactive_branches(client):
    cars = create_item(client, label="Cars", url="/cars", orderIndex=2)
    contact = create_item(client, label="Contact", url="/contact", orderIndex=1)
    create_item(client, label="356", url="/cars/356", parentId=cars["id"], orderIndex=2)
    create_item(client, label="300", url="/cars/300", parentId=cars["id"], orderIndex=1)
    hidden = create_item(client, label="Hidden", url="/hidden", isActive=False)
    create_item(client, label="Hidden child", url="/hidden/child", parentId=hidden["id"])

    full = tree(client)
    assert [node["label"] for node in full] == ["Contact", "Cars", "Hidden"]
    assert [node["label"] for node in full[1]["children"]] == ["300", "356"]

    public = tree(client, active_only=True)
    assert [node["label"] for node in public] == ["Contact", "Cars"]
    assert public[0]["id"] == contact["id"]
    assert public[0]["children"] == []


def test_update_rejects_self_parent_and_cycles(client):
    root = create_item(client, label="Root")
    child = create_item(client, label="Child", parentId=root["id"])
    grandchild = create_item(client, label="Grandchild", parentId=child["id"])

    response = client.put(f"/api/cms/navigation/{root['id']}", json={"parentId": root["id"]})
    assert response.status_code == 400
    assert response.get_json()["error"] == "Navigation item cannot be its own parent"

    response = client.put(f"/api/cms/navigation/{root['id']}", json={"parentId": grandchild["id"]})
    assert response.status_code == 400
    assert response.get_json()["error"] == "Circular reference detected in navigation hierarchy"

    response = client.put(f"/api/cms/navigation/{grandchild['id']}", json={"parentId": root["id"], "label": "Moved"})
    assert response.status_code == 200
    data = response.get_json()["data"]
    assert data["parentId"] == root["id"]
    assert data["label"] == "Moved"


def test_reorder_applies_batch_and_checks_final_shape(client):
    first = create_item(client, label="First")
    second = create_item(client, label="Second")
    third = create_item(client, label="Third")

    response = client.put(
        "/api/cms/navigation/reorder",
        json={"items": [
            {"id": third["id"], "orderIndex": 0},
            {"id": first["id"], "orderIndex": 1},
            {"id": second["id"], "orderIndex": 0, "parentId": first["id"]},
        ]},
    )
    assert response.status_code == 200
    result = response.get_json()["data"]
    assert [node["label"] for node in result] == ["Third", "First"]
    assert [node["label"] for node in result[1]["children"]] == ["Second"]

    response = client.put(
        "/api/cms/navigation/reorder",
        json={"items": [
            {"id": first["id"], "orderIndex": 0, "parentId": second["id"]},
        ]},
    )
    assert response.status_code == 400
    assert response.get_json()["error"] == "Circular reference detected in navigation hierarchy"

    response = client.put("/api/cms/navigation/reorder", json={"items": [{"id": 999, "orderIndex": 0}]})
    assert response.status_code == 400


def test_delete_refuses_items_with_children(client):
    parent = create_item(client, label="Parent")
    child = create_item(client, label="Child", parentId=parent["id"])

    response = client.delete(f"/api/cms/navigation/{parent['id']}")
    assert response.status_code == 400
    assert response.get_json()["error"].startswith("Cannot delete navigation item with children")

    assert client.delete(f"/api/cms/navigation/{child['id']}").status_code == 204
    assert client.delete(f"/api/cms/navigation/{parent['id']}").status_code == 204
    assert tree(client) == []


def test_list_defaults_to_order_index(client):
    create_item(client, label="B", orderIndex=2)
    create_item(client, label="A", orderIndex=1)
    create_item(client, label="C", orderIndex=3)

    body = client.get("/api/cms/navigation").get_json()
    assert [item["label"] for item in body["data"]] == ["A", "B", "C"]
    assert body["pagination"]["total"] == 3
