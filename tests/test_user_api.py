from __future__ import annotations

from collections.abc import Callable

from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from app.api.deps import SESSION_EXPIRED_MESSAGE
from app.domain.models import DelFlag, User, UserRole

ADMIN_ROLE_GRANT_MESSAGE = "the super administrator role cannot be assigned"


def _user_payload(**overrides: object) -> dict[str, object]:
    payload: dict[str, object] = {
        "user_name": "zhangsan",
        "nick_name": "Zhang San",
        "password": "secret123",
        "dept_id": 105,
        "phonenumber": "13800000000",
        "email": "zhangsan@example.com",
        "role_ids": [2],
        "post_ids": [4],
    }
    payload.update(overrides)
    return payload


def _create_user(client: TestClient, headers: dict[str, str], **overrides: object) -> dict:
    response = client.post("/system/user", json=_user_payload(**overrides), headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def _login_status(client: TestClient, user_name: str, password: str) -> int:
    return client.post("/login", json={"user_name": user_name, "password": password}).status_code


def test_create_user_with_roles_and_posts(client: TestClient, admin_headers: dict[str, str]) -> None:
    created = _create_user(client, admin_headers)
    assert "password" not in created

    detail = client.get(f"/system/user/{created['user_id']}", headers=admin_headers).json()
    assert detail["user"]["user_name"] == "zhangsan"
    assert detail["role_ids"] == [2]
    assert detail["post_ids"] == [4]
    assert [item["role_key"] for item in detail["roles"]] == ["common"]
    assert _login_status(client, "zhangsan", "secret123") == 200


def test_user_uniqueness_checks(client: TestClient, admin_headers: dict[str, str]) -> None:
    _create_user(client, admin_headers)

    same_name = client.post("/system/user", json=_user_payload(phonenumber=None, email=None), headers=admin_headers)
    assert same_name.status_code == 400
    assert same_name.json()["detail"] == "user name 'zhangsan' already exists"

    same_phone = client.post(
        "/system/user",
        json=_user_payload(user_name="lisi", email=None),
        headers=admin_headers,
    )
    assert same_phone.status_code == 400
    assert same_phone.json()["detail"] == "phone number '13800000000' already exists"


def test_update_user_replaces_roles(client: TestClient, admin_headers: dict[str, str], seeded_engine: Engine) -> None:
    created = _create_user(client, admin_headers)
    response = client.put(
        "/system/user",
        json={
            "user_id": created["user_id"],
            "nick_name": "Zhang",
            "dept_id": 103,
            "role_ids": [],
            "post_ids": [1, 2],
        },
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.json()["nick_name"] == "Zhang"
    with Session(seeded_engine) as session:
        roles = session.exec(select(UserRole).where(UserRole.user_id == created["user_id"])).all()
    assert roles == []


def test_super_admin_user_is_protected(client: TestClient, admin_headers: dict[str, str]) -> None:
    response = client.put("/system/user", json={"user_id": 1, "nick_name": "x"}, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "operating on the super administrator user is not allowed"
    reset = client.put("/system/user/resetPwd", json={"user_id": 1, "password": "changed1"}, headers=admin_headers)
    assert reset.status_code == 400


def test_current_user_cannot_delete_itself(client: TestClient, admin_headers: dict[str, str]) -> None:
    response = client.delete("/system/user/1", headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == "the current user cannot be deleted"


def test_delete_user_is_soft(client: TestClient, admin_headers: dict[str, str], seeded_engine: Engine) -> None:
    created = _create_user(client, admin_headers)
    assert client.delete(f"/system/user/{created['user_id']}", headers=admin_headers).status_code == 204
    assert client.get(f"/system/user/{created['user_id']}", headers=admin_headers).status_code == 404
    with Session(seeded_engine) as session:
        user = session.get(User, created["user_id"])
        assert user is not None
        assert user.del_flag == DelFlag.DELETED
    assert _login_status(client, "zhangsan", "secret123") == 401


def test_reset_password_changes_credentials(client: TestClient, admin_headers: dict[str, str]) -> None:
    response = client.put("/system/user/resetPwd", json={"user_id": 2, "password": "newpass1"}, headers=admin_headers)
    assert response.status_code == 204
    assert _login_status(client, "ry", "admin123") == 401
    assert _login_status(client, "ry", "newpass1") == 200


def test_disabled_user_is_locked_out(client: TestClient, admin_headers: dict[str, str]) -> None:
    response = client.put("/system/user/changeStatus", json={"user_id": 2, "status": "1"}, headers=admin_headers)
    assert response.status_code == 204
    assert _login_status(client, "ry", "admin123") == 401


def test_user_list_filters(client: TestClient, admin_headers: dict[str, str]) -> None:
    everyone = client.get("/system/user/list", headers=admin_headers).json()
    assert everyone["total"] == 2

    subtree = client.get("/system/user/list", params={"dept_id": 101}, headers=admin_headers).json()
    assert {item["user_name"] for item in subtree["rows"]} == {"admin", "ry"}

    sibling = client.get("/system/user/list", params={"dept_id": 102}, headers=admin_headers).json()
    assert sibling["total"] == 0

    by_name = client.get("/system/user/list", params={"user_name": "r"}, headers=admin_headers).json()
    assert [item["user_name"] for item in by_name["rows"]] == ["ry"]


def test_scoped_user_sees_only_permitted_departments(
    client: TestClient,
    headers_for: Callable[..., dict[str, str]],
) -> None:
    ry_headers = headers_for("ry")
    listed = client.get("/system/user/list", headers=ry_headers).json()
    assert [item["user_name"] for item in listed["rows"]] == ["ry"]
    assert client.get("/system/user/2", headers=ry_headers).status_code == 200
    assert client.get("/system/user/1", headers=ry_headers).status_code == 403


def test_profile_read_and_update(
    client: TestClient,
    headers_for: Callable[..., dict[str, str]],
) -> None:
    ry_headers = headers_for("ry")
    profile = client.get("/system/user/profile", headers=ry_headers).json()
    assert profile["user_name"] == "ry"

    updated = client.put(
        "/system/user/profile",
        json={"nick_name": "Tester", "email": "tester@example.com", "phonenumber": "15666666666"},
        headers=ry_headers,
    )
    assert updated.status_code == 200
    assert updated.json()["nick_name"] == "Tester"
    info = client.get("/getInfo", headers=ry_headers).json()
    assert info["user"]["nick_name"] == "Tester"


def test_profile_password_change(client: TestClient, headers_for: Callable[..., dict[str, str]]) -> None:
    ry_headers = headers_for("ry")
    wrong = client.put(
        "/system/user/profile/updatePwd",
        json={"old_password": "nope", "new_password": "fresh123"},
        headers=ry_headers,
    )
    assert wrong.status_code == 400
    assert wrong.json()["detail"] == "old password is incorrect"

    same = client.put(
        "/system/user/profile/updatePwd",
        json={"old_password": "admin123", "new_password": "admin123"},
        headers=ry_headers,
    )
    assert same.status_code == 400

    ok = client.put(
        "/system/user/profile/updatePwd",
        json={"old_password": "admin123", "new_password": "fresh123"},
        headers=ry_headers,
    )
    assert ok.status_code == 204
    assert _login_status(client, "ry", "fresh123") == 200


def test_auth_role_hides_super_admin_role(
    client: TestClient,
    admin_headers: dict[str, str],
    headers_for: Callable[..., dict[str, str]],
) -> None:
    ry_headers = headers_for("ry")
    info = client.get("/system/user/authRole/2", headers=admin_headers).json()
    assert [(item["role_key"], item["flag"]) for item in info["roles"]] == [("common", True)]

    response = client.put("/system/user/authRole", json={"user_id": 2, "role_ids": []}, headers=admin_headers)
    assert response.status_code == 204
    assert client.get("/getInfo", headers=ry_headers).json()["roles"] == []


def test_dept_tree_for_user_editor(client: TestClient, admin_headers: dict[str, str]) -> None:
    tree = client.get("/system/user/deptTree", headers=admin_headers).json()
    assert [item["id"] for item in tree] == [100]
    assert [item["id"] for item in tree[0]["children"]] == [101, 102]


def test_deleted_user_loses_live_sessions(
    client: TestClient,
    admin_headers: dict[str, str],
    headers_for: Callable[..., dict[str, str]],
) -> None:
    ry_headers = headers_for("ry")
    assert client.get("/system/user/list", headers=ry_headers).status_code == 200

    assert client.delete("/system/user/2", headers=admin_headers).status_code == 204
    response = client.get("/system/user/list", headers=ry_headers)
    assert response.status_code == 401
    assert response.json()["detail"] == SESSION_EXPIRED_MESSAGE
    assert client.get("/getInfo", headers=admin_headers).status_code == 200


def test_disabling_user_ends_its_sessions(
    client: TestClient,
    admin_headers: dict[str, str],
    headers_for: Callable[..., dict[str, str]],
) -> None:
    ry_headers = headers_for("ry")
    response = client.put("/system/user/changeStatus", json={"user_id": 2, "status": "1"}, headers=admin_headers)
    assert response.status_code == 204
    assert client.get("/getInfo", headers=ry_headers).status_code == 401


def test_enabling_user_keeps_its_sessions(
    client: TestClient,
    admin_headers: dict[str, str],
    headers_for: Callable[..., dict[str, str]],
) -> None:
    ry_headers = headers_for("ry")
    response = client.put("/system/user/changeStatus", json={"user_id": 2, "status": "0"}, headers=admin_headers)
    assert response.status_code == 204
    assert client.get("/getInfo", headers=ry_headers).status_code == 200


def test_disabling_user_through_update_ends_its_sessions(
    client: TestClient,
    admin_headers: dict[str, str],
    headers_for: Callable[..., dict[str, str]],
) -> None:
    ry_headers = headers_for("ry")
    response = client.put(
        "/system/user",
        json={"user_id": 2, "nick_name": "RY", "dept_id": 105, "status": "1", "role_ids": [2]},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert client.get("/getInfo", headers=ry_headers).status_code == 401


def test_super_admin_role_cannot_be_granted(
    client: TestClient,
    admin_headers: dict[str, str],
    headers_for: Callable[..., dict[str, str]],
    seeded_engine: Engine,
) -> None:
    ry_headers = headers_for("ry")
    response = client.put("/system/user/authRole", json={"user_id": 2, "role_ids": [1, 2]}, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["detail"] == ADMIN_ROLE_GRANT_MESSAGE
    assert client.get("/getInfo", headers=ry_headers).json()["roles"] == ["common"]

    update = client.put(
        "/system/user",
        json={"user_id": 2, "nick_name": "RY", "dept_id": 105, "role_ids": [1]},
        headers=admin_headers,
    )
    assert update.status_code == 400
    assert update.json()["detail"] == ADMIN_ROLE_GRANT_MESSAGE

    create = client.post("/system/user", json=_user_payload(role_ids=[1]), headers=admin_headers)
    assert create.status_code == 400
    assert create.json()["detail"] == ADMIN_ROLE_GRANT_MESSAGE

    with Session(seeded_engine) as session:
        assert session.exec(select(User).where(User.user_name == "zhangsan")).first() is None
        links = session.exec(select(UserRole).where(UserRole.role_id == 1)).all()
    assert [(link.user_id, link.role_id) for link in links] == [(1, 1)]
