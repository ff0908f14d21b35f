from __future__ import annotations

from fastapi.testclient import TestClient


def test_list_and_option_select(client: TestClient, admin_headers: dict[str, str]) -> None:
    listed = client.get("/system/post/list", headers=admin_headers).json()
    assert listed["total"] == 4
    assert [item["post_code"] for item in listed["rows"]] == ["ceo", "se", "hr", "user"]

    by_code = client.get("/system/post/list", params={"post_code": "h"}, headers=admin_headers).json()
    assert [item["post_code"] for item in by_code["rows"]] == ["hr"]

    options = client.get("/system/post/optionselect", headers=admin_headers).json()
    assert len(options) == 4


def test_create_update_and_uniqueness(client: TestClient, admin_headers: dict[str, str]) -> None:
    created = client.post(
        "/system/post",
        json={"post_code": "cto", "post_name": "Technical Director", "post_sort": 5},
        headers=admin_headers,
    )
    assert created.status_code == 201
    post = created.json()

    same_code = client.post(
        "/system/post",
        json={"post_code": "cto", "post_name": "Other"},
        headers=admin_headers,
    )
    assert same_code.status_code == 400
    assert same_code.json()["detail"] == "post code 'cto' already exists"

    same_name = client.post(
        "/system/post",
        json={"post_code": "other", "post_name": "Chairman"},
        headers=admin_headers,
    )
    assert same_name.status_code == 400
    assert same_name.json()["detail"] == "post name 'Chairman' already exists"

    updated = client.put(
        "/system/post",
        json={"post_id": post["post_id"], "post_code": "cto", "post_name": "CTO", "status": "1"},
        headers=admin_headers,
    )
    assert updated.status_code == 200
    assert updated.json()["post_name"] == "CTO"
    options = client.get("/system/post/optionselect", headers=admin_headers).json()
    assert "cto" not in {item["post_code"] for item in options}


def test_delete_rules(client: TestClient, admin_headers: dict[str, str]) -> None:
    assigned = client.delete("/system/post/1,3", headers=admin_headers)
    assert assigned.status_code == 400
    assert assigned.json()["detail"] == "post 'Chairman' is assigned to users and cannot be deleted"
    assert client.get("/system/post/3", headers=admin_headers).status_code == 200

    assert client.delete("/system/post/3,4", headers=admin_headers).status_code == 204
    assert client.get("/system/post/3", headers=admin_headers).status_code == 404
    assert client.get("/system/post/list", headers=admin_headers).json()["total"] == 2
