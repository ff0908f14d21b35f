from __future__ import annotations

from typing import Any

from sqlalchemy import literal, or_
from sqlalchemy.sql.elements import ColumnElement
from sqlmodel import Session, col, select

from app.domain.models import (
    DelFlag,
    Dept,
    Menu,
    Role,
    RoleMenu,
    RoleSnapshot,
    Status,
    User,
    UserProfile,
    UserRole,
)
from app.domain.permissions import (
    ALL_PERMISSION,
    SUPER_ADMIN_ROLE_KEY,
    is_admin,
    split_permissions,
)


def ancestors_contain(ancestors: Any, dept_id: int) -> ColumnElement[bool]:
    """Match rows whose comma separated ancestor path includes ``dept_id``."""
    wrapped = literal(",").concat(ancestors).concat(",")
    return wrapped.like(f"%,{int(dept_id)},%")


class PermissionService:
    """Read side of users, roles and menus used to build session records."""

    def find_user_by_name(self, session: Session, user_name: str) -> User | None:
        statement = select(User).where(User.user_name == user_name)
        return session.exec(statement).first()

    def find_user_by_id(self, session: Session, user_id: int) -> User | None:
        statement = (
            select(User)
            .where(User.user_id == user_id)
            .where(User.del_flag == DelFlag.PRESENT)
        )
        return session.exec(statement).first()

    def find_roles_by_user_id(self, session: Session, user_id: int) -> list[Role]:
        statement = (
            select(Role)
            .join(UserRole, col(UserRole.role_id) == col(Role.role_id))
            .where(UserRole.user_id == user_id)
            .where(Role.del_flag == DelFlag.PRESENT)
            .order_by(col(Role.role_sort))
        )
        return list(session.exec(statement).all())

    def find_permission_strings_by_user_id(self, session: Session, user_id: int) -> list[str]:
        statement = (
            select(Menu.perms)
            .join(RoleMenu, col(RoleMenu.menu_id) == col(Menu.menu_id))
            .join(UserRole, col(UserRole.role_id) == col(RoleMenu.role_id))
            .join(Role, col(Role.role_id) == col(UserRole.role_id))
            .where(UserRole.user_id == user_id)
            .where(Menu.status == Status.NORMAL)
            .where(Role.status == Status.NORMAL)
            .where(Role.del_flag == DelFlag.PRESENT)
            .where(col(Menu.perms).is_not(None))
            .where(Menu.perms != "")
            .distinct()
        )
        return [item for item in session.exec(statement).all() if item]

    def find_dept_descendant_ids(self, session: Session, dept_id: int) -> list[int]:
        statement = select(Dept.dept_id).where(
            or_(Dept.dept_id == dept_id, ancestors_contain(Dept.ancestors, dept_id))
        )
        return sorted(item for item in session.exec(statement).all() if item is not None)

    def find_user_ids_by_role(self, session: Session, role_id: int) -> list[int]:
        statement = select(UserRole.user_id).where(UserRole.role_id == role_id)
        return list(session.exec(statement).all())

    def find_user_ids_by_menu(self, session: Session, menu_id: int) -> list[int]:
        statement = (
            select(UserRole.user_id)
            .join(RoleMenu, col(RoleMenu.role_id) == col(UserRole.role_id))
            .where(RoleMenu.menu_id == menu_id)
            .distinct()
        )
        return list(session.exec(statement).all())

    def resolve_permissions(self, session: Session, user_id: int) -> set[str]:
        if is_admin(user_id):
            return {ALL_PERMISSION}
        permissions: set[str] = set()
        for raw in self.find_permission_strings_by_user_id(session, user_id):
            permissions.update(split_permissions(raw))
        return permissions

    def resolve_role_keys(self, session: Session, user_id: int) -> set[str]:
        if is_admin(user_id):
            return {SUPER_ADMIN_ROLE_KEY}
        keys: set[str] = set()
        for role in self.find_roles_by_user_id(session, user_id):
            if role.status != Status.NORMAL:
                continue
            keys.add(role.role_key)
        return keys

    def build_profile(self, session: Session, user: User) -> UserProfile:
        if user.user_id is None:
            raise ValueError("user must be persisted before building a profile")
        roles = [
            RoleSnapshot(
                role_id=role.role_id,
                role_key=role.role_key,
                role_name=role.role_name,
                data_scope=role.data_scope,
                status=role.status,
            )
            for role in self.find_roles_by_user_id(session, user.user_id)
            if role.role_id is not None
        ]
        dept = session.get(Dept, user.dept_id) if user.dept_id is not None else None
        return UserProfile(
            user_id=user.user_id,
            dept_id=user.dept_id,
            dept_name=dept.dept_name if dept is not None else None,
            user_name=user.user_name,
            nick_name=user.nick_name,
            email=user.email,
            phonenumber=user.phonenumber,
            sex=user.sex,
            avatar=user.avatar,
            roles=roles,
        )
