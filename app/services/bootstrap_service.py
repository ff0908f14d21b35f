from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import text
from sqlmodel import Session

from app.domain.models import (
    DataScope,
    Dept,
    Menu,
    MenuType,
    Post,
    Role,
    RoleDept,
    RoleMenu,
    User,
    UserPost,
    UserRole,
)
from app.domain.permissions import ADMIN_ROLE_ID, ADMIN_USER_ID, SUPER_ADMIN_ROLE_KEY
from app.infra.db import get_engine
from app.infra.security import hash_password

logger = logging.getLogger(__name__)

DEFAULT_PASSWORD = "admin123"
SEED_OPERATOR = "admin"

DEPTS: tuple[tuple[int, int, str, str, int], ...] = (
    (100, 0, "0", "RuoYi Tech", 0),
    (101, 100, "0,100", "Shenzhen HQ", 1),
    (102, 100, "0,100", "Changsha Branch", 2),
    (103, 101, "0,100,101", "Research", 1),
    (104, 101, "0,100,101", "Marketing", 2),
    (105, 101, "0,100,101", "Testing", 3),
    (106, 101, "0,100,101", "Finance", 4),
    (107, 101, "0,100,101", "Operations", 5),
    (108, 102, "0,100,102", "Marketing", 1),
    (109, 102, "0,100,102", "Finance", 2),
)

POSTS: tuple[tuple[int, str, str, int], ...] = (
    (1, "ceo", "Chairman", 1),
    (2, "se", "Project Manager", 2),
    (3, "hr", "Human Resources", 3),
    (4, "user", "Staff", 4),
)

# (menu_id, parent_id, name, order, path, component, type, perms, icon)
MENUS: tuple[tuple[int, int, str, int, str, str | None, str, str | None, str], ...] = (
    (1, 0, "System", 1, "system", None, MenuType.DIRECTORY, None, "system"),
    (2, 0, "Monitor", 2, "monitor", None, MenuType.DIRECTORY, None, "monitor"),
    (100, 1, "Users", 1, "user", "system/user/index", MenuType.MENU, "system:user:list", "user"),
    (101, 1, "Roles", 2, "role", "system/role/index", MenuType.MENU, "system:role:list", "peoples"),
    (102, 1, "Menus", 3, "menu", "system/menu/index", MenuType.MENU, "system:menu:list", "tree-table"),
    (103, 1, "Departments", 4, "dept", "system/dept/index", MenuType.MENU, "system:dept:list", "tree"),
    (104, 1, "Posts", 5, "post", "system/post/index", MenuType.MENU, "system:post:list", "post"),
    (109, 2, "Online Users", 1, "online", "monitor/online/index", MenuType.MENU, "monitor:online:list", "online"),
    (500, 2, "Operation Log", 2, "operlog", "monitor/operlog/index", MenuType.MENU, "monitor:operlog:list", "form"),
    (1000, 100, "User Query", 1, "", None, MenuType.BUTTON, "system:user:query", "#"),
    (1001, 100, "User Add", 2, "", None, MenuType.BUTTON, "system:user:add", "#"),
    (1002, 100, "User Edit", 3, "", None, MenuType.BUTTON, "system:user:edit", "#"),
    (1003, 100, "User Remove", 4, "", None, MenuType.BUTTON, "system:user:remove", "#"),
    (1004, 100, "Reset Password", 5, "", None, MenuType.BUTTON, "system:user:resetPwd", "#"),
    (1007, 101, "Role Query", 1, "", None, MenuType.BUTTON, "system:role:query", "#"),
    (1008, 101, "Role Add", 2, "", None, MenuType.BUTTON, "system:role:add", "#"),
    (1009, 101, "Role Edit", 3, "", None, MenuType.BUTTON, "system:role:edit", "#"),
    (1010, 101, "Role Remove", 4, "", None, MenuType.BUTTON, "system:role:remove", "#"),
    (1011, 101, "Role Export", 5, "", None, MenuType.BUTTON, "system:role:export", "#"),
    (1012, 102, "Menu Query", 1, "", None, MenuType.BUTTON, "system:menu:query", "#"),
    (1013, 102, "Menu Add", 2, "", None, MenuType.BUTTON, "system:menu:add", "#"),
    (1014, 102, "Menu Edit", 3, "", None, MenuType.BUTTON, "system:menu:edit", "#"),
    (1015, 102, "Menu Remove", 4, "", None, MenuType.BUTTON, "system:menu:remove", "#"),
    (1016, 103, "Dept Query", 1, "", None, MenuType.BUTTON, "system:dept:query", "#"),
    (1017, 103, "Dept Add", 2, "", None, MenuType.BUTTON, "system:dept:add", "#"),
    (1018, 103, "Dept Edit", 3, "", None, MenuType.BUTTON, "system:dept:edit", "#"),
    (1019, 103, "Dept Remove", 4, "", None, MenuType.BUTTON, "system:dept:remove", "#"),
    (1020, 104, "Post Query", 1, "", None, MenuType.BUTTON, "system:post:query", "#"),
    (1021, 104, "Post Add", 2, "", None, MenuType.BUTTON, "system:post:add", "#"),
    (1022, 104, "Post Edit", 3, "", None, MenuType.BUTTON, "system:post:edit", "#"),
    (1023, 104, "Post Remove", 4, "", None, MenuType.BUTTON, "system:post:remove", "#"),
    (1046, 109, "Online Query", 1, "", None, MenuType.BUTTON, "monitor:online:query", "#"),
    (1047, 109, "Force Logout", 2, "", None, MenuType.BUTTON, "monitor:online:forceLogout", "#"),
    (1040, 500, "Log Query", 1, "", None, MenuType.BUTTON, "monitor:operlog:query", "#"),
    (1041, 500, "Log Remove", 2, "", None, MenuType.BUTTON, "monitor:operlog:remove", "#"),
)

SEQUENCES: tuple[tuple[str, str], ...] = (
    ("sys_dept", "dept_id"),
    ("sys_user", "user_id"),
    ("sys_role", "role_id"),
    ("sys_menu", "menu_id"),
    ("sys_post", "post_id"),
)


class BootstrapService:
    """Seed the default department tree, roles, menus, posts and users."""

    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def seed_defaults(self) -> bool:
        with self._session() as session:
            return self.seed(session)

    def seed(self, session: Session) -> bool:
        if session.get(User, ADMIN_USER_ID) is not None:
            return False
        password = hash_password(DEFAULT_PASSWORD)
        rows: list[Any] = []
        rows.extend(
            Dept(
                dept_id=dept_id,
                parent_id=parent_id,
                ancestors=ancestors,
                dept_name=name,
                order_num=order_num,
                leader="ruoyi",
                create_by=SEED_OPERATOR,
            )
            for dept_id, parent_id, ancestors, name, order_num in DEPTS
        )
        rows.extend(
            Post(post_id=post_id, post_code=code, post_name=name, post_sort=sort, create_by=SEED_OPERATOR)
            for post_id, code, name, sort in POSTS
        )
        rows.extend(
            Menu(
                menu_id=menu_id,
                parent_id=parent_id,
                menu_name=name,
                order_num=order_num,
                path=path,
                component=component,
                menu_type=menu_type,
                perms=perms,
                icon=icon,
                create_by=SEED_OPERATOR,
            )
            for menu_id, parent_id, name, order_num, path, component, menu_type, perms, icon in MENUS
        )
        rows.extend(
            [
                Role(
                    role_id=ADMIN_ROLE_ID,
                    role_name="Super Administrator",
                    role_key=SUPER_ADMIN_ROLE_KEY,
                    role_sort=1,
                    data_scope=DataScope.ALL,
                    create_by=SEED_OPERATOR,
                    remark="super administrator",
                ),
                Role(
                    role_id=2,
                    role_name="Common Role",
                    role_key="common",
                    role_sort=2,
                    data_scope=DataScope.CUSTOM,
                    create_by=SEED_OPERATOR,
                    remark="common role",
                ),
                User(
                    user_id=ADMIN_USER_ID,
                    dept_id=103,
                    user_name="admin",
                    nick_name="RuoYi",
                    email="ry@163.com",
                    phonenumber="15888888888",
                    sex="1",
                    password=password,
                    create_by=SEED_OPERATOR,
                    remark="administrator",
                ),
                User(
                    user_id=2,
                    dept_id=105,
                    user_name="ry",
                    nick_name="RuoYi",
                    email="ry@qq.com",
                    phonenumber="15666666666",
                    sex="1",
                    password=password,
                    create_by=SEED_OPERATOR,
                    remark="tester",
                ),
                UserRole(user_id=ADMIN_USER_ID, role_id=ADMIN_ROLE_ID),
                UserRole(user_id=2, role_id=2),
                UserPost(user_id=ADMIN_USER_ID, post_id=1),
                UserPost(user_id=2, post_id=2),
                RoleDept(role_id=2, dept_id=100),
                RoleDept(role_id=2, dept_id=101),
                RoleDept(role_id=2, dept_id=105),
            ]
        )
        rows.extend(RoleMenu(role_id=2, menu_id=item[0]) for item in MENUS)
        session.add_all(rows)
        session.commit()
        self._sync_sequences(session)
        logger.info("seeded default departments, roles, menus, posts and users")
        return True

    def _sync_sequences(self, session: Session) -> None:
        """Move serial sequences past the explicitly seeded ids."""
        if session.get_bind().dialect.name != "postgresql":
            return
        for table, column in SEQUENCES:
            session.execute(
                text(
                    f"SELECT setval(pg_get_serial_sequence('{table}', '{column}'), "
                    f"(SELECT MAX({column}) FROM {table}))"
                )
            )
        session.commit()
