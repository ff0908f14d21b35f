from __future__ import annotations

from collections.abc import Callable

from fastapi.testclient import TestClient


def _create_dept(client: TestClient, headers: dict[str, str], name: str, parent_id: int, **extra: object) -> dict:
    response = client.post(
        "/system/dept",
        json={"dept_name": name, "parent_id": parent_id, **extra},
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


def _update_dept(client: TestClient, headers: dict[str, str], dept: dict, **changes: object):
    payload = {
        "dept_id": dept["dept_id"],
        "dept_name": dept["dept_name"],
        "parent_id": dept["parent_id"],
        "order_num": dept["order_num"],
        "status": dept["status"],
    }
    payload.update(changes)
    return client.put("/system/dept", json=payload, headers=headers)


def test_list_and_get_departments(client: TestClient, admin_headers: dict[str, str]) -> None:
    depts = client.get("/system/dept/list", headers=admin_headers).json()
    assert len(depts) == 10
    research = client.get("/system/dept/103", headers=admin_headers).json()
    assert research["ancestors"] == "0,100,101"


def test_create_dept_derives_ancestors(client: TestClient, admin_headers: dict[str, str]) -> None:
    created = _create_dept(client, admin_headers, "Security", 101)
    assert created["ancestors"] == "0,100,101"
    root = _create_dept(client, admin_headers, "Holding", 0)
    assert root["ancestors"] == "0"


def test_dept_name_is_unique_per_parent(client: TestClient, admin_headers: dict[str, str]) -> None:
    response = client.post("/system/dept", json={"dept_name": "Research", "parent_id": 101}, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "department name 'Research' already exists"
    _create_dept(client, admin_headers, "Research", 102)


def test_cannot_create_under_disabled_parent(client: TestClient, admin_headers: dict[str, str]) -> None:
    parent = _create_dept(client, admin_headers, "Dormant", 101, status="1")
    response = client.post(
        "/system/dept",
        json={"dept_name": "Child", "parent_id": parent["dept_id"]},
        headers=admin_headers,
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "parent department is disabled"


def test_move_rewrites_descendant_ancestors(client: TestClient, admin_headers: dict[str, str]) -> None:
    parent = _create_dept(client, admin_headers, "Platform", 101)
    child = _create_dept(client, admin_headers, "Infra", parent["dept_id"])

    response = _update_dept(client, admin_headers, parent, parent_id=102)
    assert response.status_code == 200
    assert response.json()["ancestors"] == "0,100,102"
    moved_child = client.get(f"/system/dept/{child['dept_id']}", headers=admin_headers).json()
    assert moved_child["ancestors"] == f"0,100,102,{parent['dept_id']}"


def test_invalid_parent_moves_are_rejected(client: TestClient, admin_headers: dict[str, str]) -> None:
    parent = _create_dept(client, admin_headers, "Platform", 101)
    child = _create_dept(client, admin_headers, "Infra", parent["dept_id"])

    itself = _update_dept(client, admin_headers, parent, parent_id=parent["dept_id"])
    assert itself.status_code == 400
    assert itself.json()["detail"] == "a department cannot be its own parent"

    below = _update_dept(client, admin_headers, parent, parent_id=child["dept_id"])
    assert below.status_code == 400
    assert below.json()["detail"] == "a department cannot move under its own descendant"


def test_disable_and_reenable_rules(client: TestClient, admin_headers: dict[str, str]) -> None:
    parent = _create_dept(client, admin_headers, "Platform", 101)
    child = _create_dept(client, admin_headers, "Infra", parent["dept_id"])

    blocked = _update_dept(client, admin_headers, parent, status="1")
    assert blocked.status_code == 400
    assert blocked.json()["detail"] == "department still has active sub-departments"

    assert _update_dept(client, admin_headers, child, status="1").status_code == 200
    assert _update_dept(client, admin_headers, parent, status="1").status_code == 200
    assert _update_dept(client, admin_headers, child, status="0").status_code == 200
    assert client.get(f"/system/dept/{parent['dept_id']}", headers=admin_headers).json()["status"] == "0"


def test_delete_rules(client: TestClient, admin_headers: dict[str, str]) -> None:
    with_children = client.delete("/system/dept/101", headers=admin_headers)
    assert with_children.status_code == 400
    assert with_children.json()["detail"] == "department has sub-departments and cannot be deleted"

    with_users = client.delete("/system/dept/105", headers=admin_headers)
    assert with_users.status_code == 400
    assert with_users.json()["detail"] == "department has users and cannot be deleted"

    assert client.delete("/system/dept/109", headers=admin_headers).status_code == 204
    assert client.get("/system/dept/109", headers=admin_headers).status_code == 404


def test_exclude_list_drops_subtree(client: TestClient, admin_headers: dict[str, str]) -> None:
    candidates = client.get("/system/dept/list/exclude/101", headers=admin_headers).json()
    assert {item["dept_id"] for item in candidates} == {100, 102, 108, 109}


def test_scoped_user_sees_custom_departments(
    client: TestClient,
    headers_for: Callable[..., dict[str, str]],
) -> None:
    ry_headers = headers_for("ry")
    depts = client.get("/system/dept/list", headers=ry_headers).json()
    assert {item["dept_id"] for item in depts} == {100, 101, 105}
    assert client.get("/system/dept/105", headers=ry_headers).status_code == 200
    assert client.get("/system/dept/102", headers=ry_headers).status_code == 403
