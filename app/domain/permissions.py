from __future__ import annotations

from collections.abc import Iterable

ALL_PERMISSION = "*:*:*"
SUPER_ADMIN_ROLE_KEY = "admin"
ADMIN_USER_ID = 1
ADMIN_ROLE_ID = 1
PERMISSION_DELIMITER = ","

PERM_USER_LIST = "system:user:list"
PERM_USER_QUERY = "system:user:query"
PERM_USER_ADD = "system:user:add"
PERM_USER_EDIT = "system:user:edit"
PERM_USER_REMOVE = "system:user:remove"
PERM_USER_RESET_PWD = "system:user:resetPwd"

PERM_ROLE_LIST = "system:role:list"
PERM_ROLE_QUERY = "system:role:query"
PERM_ROLE_ADD = "system:role:add"
PERM_ROLE_EDIT = "system:role:edit"
PERM_ROLE_REMOVE = "system:role:remove"
PERM_ROLE_EXPORT = "system:role:export"

PERM_MENU_LIST = "system:menu:list"
PERM_MENU_QUERY = "system:menu:query"
PERM_MENU_ADD = "system:menu:add"
PERM_MENU_EDIT = "system:menu:edit"
PERM_MENU_REMOVE = "system:menu:remove"

PERM_DEPT_LIST = "system:dept:list"
PERM_DEPT_QUERY = "system:dept:query"
PERM_DEPT_ADD = "system:dept:add"
PERM_DEPT_EDIT = "system:dept:edit"
PERM_DEPT_REMOVE = "system:dept:remove"

PERM_POST_LIST = "system:post:list"
PERM_POST_QUERY = "system:post:query"
PERM_POST_ADD = "system:post:add"
PERM_POST_EDIT = "system:post:edit"
PERM_POST_REMOVE = "system:post:remove"

PERM_ONLINE_LIST = "monitor:online:list"
PERM_ONLINE_FORCE_LOGOUT = "monitor:online:forceLogout"
PERM_OPERLOG_LIST = "monitor:operlog:list"
PERM_OPERLOG_REMOVE = "monitor:operlog:remove"


def is_admin(user_id: int | None) -> bool:
    return user_id is not None and user_id == ADMIN_USER_ID


def is_admin_role(role_id: int | None) -> bool:
    return role_id is not None and role_id == ADMIN_ROLE_ID


def split_permissions(raw: str | None) -> list[str]:
    """Split a menu ``perms`` column that may hold several comma separated entries."""
    if not raw:
        return []
    return [item.strip() for item in raw.split(PERMISSION_DELIMITER) if item.strip()]


def has_any_permission(permissions: Iterable[str], required: Iterable[str]) -> bool:
    granted = set(permissions)
    if ALL_PERMISSION in granted:
        return True
    return any(item.strip() in granted for item in required if item)


def has_any_role(role_keys: Iterable[str], required: Iterable[str]) -> bool:
    granted = set(role_keys)
    if SUPER_ADMIN_ROLE_KEY in granted:
        return True
    return any(item.strip() in granted for item in required if item)
