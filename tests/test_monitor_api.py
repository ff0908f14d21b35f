from __future__ import annotations

import json
from collections.abc import Callable

from fastapi.testclient import TestClient

from app.api.deps import FORBIDDEN_MESSAGE, SESSION_EXPIRED_MESSAGE
from app.domain.models import BusinessType
from app.infra.audit import MASK


def _oper_logs(client: TestClient, headers: dict[str, str], **params: object) -> list[dict]:
    response = client.get("/monitor/operlog/list", params=params, headers=headers)
    assert response.status_code == 200
    return response.json()["rows"]


def _create_post(client: TestClient, headers: dict[str, str], code: str = "cto"):
    return client.post("/system/post", json={"post_code": code, "post_name": code.upper()}, headers=headers)


def test_online_sessions_listed_and_filtered(
    client: TestClient,
    admin_headers: dict[str, str],
    headers_for: Callable[..., dict[str, str]],
) -> None:
    headers_for("ry")
    online = client.get("/monitor/online/list", headers=admin_headers).json()
    assert online["total"] == 2
    assert {item["user_name"] for item in online["rows"]} == {"admin", "ry"}

    only_ry = client.get("/monitor/online/list", params={"user_name": "ry"}, headers=admin_headers).json()
    assert only_ry["total"] == 1
    assert only_ry["rows"][0]["ipaddr"] == "testclient"


def test_force_logout_ends_session(
    client: TestClient,
    admin_headers: dict[str, str],
    headers_for: Callable[..., dict[str, str]],
) -> None:
    ry_headers = headers_for("ry")
    rows = client.get("/monitor/online/list", params={"user_name": "ry"}, headers=admin_headers).json()["rows"]
    token_id = rows[0]["token_id"]

    assert client.delete(f"/monitor/online/{token_id}", headers=admin_headers).status_code == 204
    response = client.get("/getInfo", headers=ry_headers)
    assert response.status_code == 401
    assert response.json()["detail"] == SESSION_EXPIRED_MESSAGE
    assert client.delete(f"/monitor/online/{token_id}", headers=admin_headers).status_code == 404


def test_successful_write_is_audited(client: TestClient, admin_headers: dict[str, str]) -> None:
    assert _create_post(client, admin_headers).status_code == 201
    rows = _oper_logs(client, admin_headers, title="post")
    assert len(rows) == 1
    entry = rows[0]
    assert entry["business_type"] == BusinessType.INSERT
    assert entry["request_method"] == "POST"
    assert entry["oper_url"] == "/system/post"
    assert entry["oper_name"] == "admin"
    assert entry["dept_name"] == "Research"
    assert entry["method"] == "app.api.routers.post.create_post"
    assert entry["status"] == 0
    assert entry["error_msg"] is None


def test_failed_write_is_audited_with_error(client: TestClient, admin_headers: dict[str, str]) -> None:
    _create_post(client, admin_headers)
    assert _create_post(client, admin_headers).status_code == 400
    failed = _oper_logs(client, admin_headers, title="post", status=1)
    assert len(failed) == 1
    assert failed[0]["error_msg"] == "post code 'cto' already exists"


def test_denied_write_is_audited(
    client: TestClient,
    admin_headers: dict[str, str],
    headers_for: Callable[..., dict[str, str]],
) -> None:
    client.put(
        "/system/role",
        json={"role_id": 2, "role_name": "Common Role", "role_key": "common", "data_scope": "2", "menu_ids": [101]},
        headers=admin_headers,
    )
    ry_headers = headers_for("ry")
    assert _create_post(client, ry_headers).status_code == 403
    denied = _oper_logs(client, admin_headers, oper_name="ry")
    assert len(denied) == 1
    assert denied[0]["status"] == 1
    assert denied[0]["error_msg"] == FORBIDDEN_MESSAGE


def test_reads_and_login_are_not_audited(client: TestClient, admin_headers: dict[str, str]) -> None:
    client.get("/system/post/list", headers=admin_headers)
    client.get("/getInfo", headers=admin_headers)
    assert _oper_logs(client, admin_headers) == []


def test_sensitive_parameters_are_masked(
    client: TestClient,
    admin_headers: dict[str, str],
    headers_for: Callable[..., dict[str, str]],
) -> None:
    headers_for("ry")
    rows = client.get("/monitor/online/list", params={"user_name": "ry"}, headers=admin_headers).json()["rows"]
    client.delete(f"/monitor/online/{rows[0]['token_id']}", headers=admin_headers)
    entry = _oper_logs(client, admin_headers, business_type=int(BusinessType.FORCE))[0]
    assert json.loads(entry["oper_param"]) == {"token_id": MASK}
    assert rows[0]["token_id"] not in entry["oper_param"]


def test_delete_and_clean_oper_logs(client: TestClient, admin_headers: dict[str, str]) -> None:
    _create_post(client, admin_headers, "a1")
    _create_post(client, admin_headers, "a2")
    rows = _oper_logs(client, admin_headers, title="post")
    assert len(rows) == 2

    target = rows[0]["oper_id"]
    assert client.delete(f"/monitor/operlog/{target}", headers=admin_headers).status_code == 204
    remaining = _oper_logs(client, admin_headers, title="post")
    assert target not in {item["oper_id"] for item in remaining}

    assert client.delete("/monitor/operlog/clean", headers=admin_headers).status_code == 204
    after_clean = _oper_logs(client, admin_headers)
    assert [item["business_type"] for item in after_clean] == [BusinessType.CLEAN]
