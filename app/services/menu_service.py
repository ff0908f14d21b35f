from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from sqlmodel import Session, col, select

from app.domain.models import (
    DelFlag,
    LoginUser,
    Menu,
    MenuCreate,
    MenuType,
    MenuUpdate,
    Role,
    RoleMenu,
    RoleMenuTreeRead,
    RouterMeta,
    RouterRead,
    Status,
    TreeNode,
    UserRole,
    now_utc,
)
from app.domain.permissions import is_admin
from app.infra.db import get_engine
from app.services.errors import ConflictError, NotFoundError
from app.services.permission_service import PermissionService

logger = logging.getLogger(__name__)

ROOT_PARENT_ID = 0
LAYOUT = "Layout"
PARENT_VIEW = "ParentView"


def build_menu_tree(menus: Iterable[Menu]) -> list[TreeNode]:
    items = sorted(menus, key=lambda item: (item.order_num, item.menu_id or 0))
    nodes = {
        item.menu_id: TreeNode(id=item.menu_id, label=item.menu_name)
        for item in items
        if item.menu_id is not None
    }
    roots: list[TreeNode] = []
    for item in items:
        if item.menu_id is None:
            continue
        parent = nodes.get(item.parent_id)
        (roots if parent is None else parent.children).append(nodes[item.menu_id])
    return roots


def _route_name(menu: Menu) -> str:
    if menu.route_name:
        return menu.route_name
    return menu.path[:1].upper() + menu.path[1:]


def build_routers(menus: Iterable[Menu], parent_id: int = ROOT_PARENT_ID) -> list[RouterRead]:
    """Render directory and page menus as front-end route definitions."""
    items = sorted(
        (item for item in menus if item.menu_type != MenuType.BUTTON),
        key=lambda item: (item.order_num, item.menu_id or 0),
    )
    by_parent: dict[int, list[Menu]] = {}
    for item in items:
        by_parent.setdefault(item.parent_id, []).append(item)

    def render(node_parent: int) -> list[RouterRead]:
        routers = []
        for menu in by_parent.get(node_parent, []):
            top = menu.parent_id == ROOT_PARENT_ID
            if menu.menu_type == MenuType.DIRECTORY:
                component = LAYOUT if top else PARENT_VIEW
            else:
                component = menu.component or PARENT_VIEW
            routers.append(
                RouterRead(
                    name=_route_name(menu),
                    path=f"/{menu.path}" if top and menu.is_frame == 1 else menu.path,
                    hidden=menu.visible == "1",
                    component=component,
                    meta=RouterMeta(title=menu.menu_name, icon=menu.icon, no_cache=menu.is_cache == 1),
                    children=render(menu.menu_id) if menu.menu_id is not None else [],
                )
            )
        return routers

    return render(parent_id)


class MenuService:
    def __init__(self, permission_service: PermissionService | None = None) -> None:
        self.permissions = permission_service or PermissionService()

    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def _get_menu(self, session: Session, menu_id: int) -> Menu:
        menu = session.get(Menu, menu_id)
        if menu is None:
            raise NotFoundError("menu not found")
        return menu

    def _check_name_unique(self, session: Session, menu_name: str, parent_id: int, menu_id: int | None) -> None:
        statement = select(Menu).where(Menu.menu_name == menu_name).where(Menu.parent_id == parent_id)
        existing = session.exec(statement).first()
        if existing is not None and existing.menu_id != menu_id:
            raise ConflictError(f"menu name '{menu_name}' already exists")

    def _check_frame_path(self, payload: MenuCreate) -> None:
        if payload.is_frame == 0 and not payload.path.startswith(("http://", "https://")):
            raise ConflictError("external link menus must start with http:// or https://")

    def _visible_statement(self, login_user: LoginUser) -> Any:
        statement = select(Menu)
        if is_admin(login_user.user_id):
            return statement
        return (
            statement.join(RoleMenu, col(RoleMenu.menu_id) == col(Menu.menu_id))
            .join(UserRole, col(UserRole.role_id) == col(RoleMenu.role_id))
            .join(Role, col(Role.role_id) == col(UserRole.role_id))
            .where(UserRole.user_id == login_user.user_id)
            .where(Role.status == Status.NORMAL)
            .where(Role.del_flag == DelFlag.PRESENT)
            .distinct()
        )

    def list_menus(
        self,
        login_user: LoginUser,
        *,
        menu_name: str | None = None,
        visible: str | None = None,
        status: str | None = None,
    ) -> list[Menu]:
        statement = self._visible_statement(login_user)
        if menu_name:
            statement = statement.where(col(Menu.menu_name).contains(menu_name))
        if visible:
            statement = statement.where(Menu.visible == visible)
        if status:
            statement = statement.where(Menu.status == status)
        statement = statement.order_by(col(Menu.parent_id), col(Menu.order_num), col(Menu.menu_id))
        with self._session() as session:
            return list(session.exec(statement).all())

    def tree_select(self, login_user: LoginUser) -> list[TreeNode]:
        return build_menu_tree(self.list_menus(login_user))

    def role_menu_tree(self, role_id: int, login_user: LoginUser) -> RoleMenuTreeRead:
        with self._session() as session:
            checked = sorted(session.exec(select(RoleMenu.menu_id).where(RoleMenu.role_id == role_id)).all())
        return RoleMenuTreeRead(checked_keys=checked, menus=self.tree_select(login_user))

    def get_routers(self, login_user: LoginUser) -> list[RouterRead]:
        menus = self.list_menus(login_user, status=Status.NORMAL)
        return build_routers(menus)

    def get_menu(self, menu_id: int) -> Menu:
        with self._session() as session:
            return self._get_menu(session, menu_id)

    def create_menu(self, payload: MenuCreate, *, operator: str) -> Menu:
        self._check_frame_path(payload)
        with self._session() as session:
            self._check_name_unique(session, payload.menu_name, payload.parent_id, None)
            menu = Menu(**payload.model_dump(), create_by=operator)
            session.add(menu)
            session.commit()
            session.refresh(menu)
            logger.info("menu %s (%s) created by %s", menu.menu_name, menu.menu_id, operator)
            return menu

    def update_menu(self, payload: MenuUpdate, *, operator: str) -> list[int]:
        """Update a menu; returns the ids of users whose roles include it."""
        self._check_frame_path(payload)
        if payload.parent_id == payload.menu_id:
            raise ConflictError("a menu cannot be its own parent")
        with self._session() as session:
            menu = self._get_menu(session, payload.menu_id)
            self._check_name_unique(session, payload.menu_name, payload.parent_id, payload.menu_id)
            for key, value in payload.model_dump(exclude={"menu_id"}).items():
                setattr(menu, key, value)
            menu.update_by = operator
            menu.update_time = now_utc()
            session.add(menu)
            session.commit()
            return self.permissions.find_user_ids_by_menu(session, payload.menu_id)

    def delete_menu(self, menu_id: int, *, operator: str) -> None:
        with self._session() as session:
            menu = self._get_menu(session, menu_id)
            if session.exec(select(Menu.menu_id).where(Menu.parent_id == menu_id)).first() is not None:
                raise ConflictError("menu has sub-menus and cannot be deleted")
            if session.exec(select(RoleMenu.role_id).where(RoleMenu.menu_id == menu_id)).first() is not None:
                raise ConflictError("menu is assigned to roles and cannot be deleted")
            session.delete(menu)
            session.commit()
        logger.info("menu %s deleted by %s", menu_id, operator)
