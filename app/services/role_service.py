from __future__ import annotations

import csv
import logging
from datetime import datetime
from io import StringIO
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from app.domain.models import (
    DelFlag,
    Role,
    RoleCreate,
    RoleDataScopeUpdate,
    RoleDept,
    RoleMenu,
    RoleOptionRead,
    RoleRead,
    RoleStatusUpdate,
    RoleUpdate,
    User,
    UserRole,
    now_utc,
)
from app.domain.permissions import is_admin_role
from app.infra.db import get_engine
from app.services.data_scope_service import DataScopeFilter
from app.services.errors import ConflictError, NotFoundError
from app.services.paging import PageQuery, paginate
from app.services.permission_service import PermissionService

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = ("role_id", "role_name", "role_key", "role_sort", "data_scope", "status", "create_time")


class RoleService:
    def __init__(self, permission_service: PermissionService | None = None) -> None:
        self.permissions = permission_service or PermissionService()

    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def _get_role(self, session: Session, role_id: int) -> Role:
        role = session.get(Role, role_id)
        if role is None or role.del_flag != DelFlag.PRESENT:
            raise NotFoundError("role not found")
        return role

    def _check_role_allowed(self, role_id: int | None) -> None:
        if is_admin_role(role_id):
            raise ConflictError("operating on the super administrator role is not allowed")

    def _check_unique(self, session: Session, role_name: str, role_key: str, role_id: int | None) -> None:
        alive = select(Role).where(Role.del_flag == DelFlag.PRESENT)
        by_name = session.exec(alive.where(Role.role_name == role_name)).first()
        if by_name is not None and by_name.role_id != role_id:
            raise ConflictError(f"role name '{role_name}' already exists")
        by_key = session.exec(alive.where(Role.role_key == role_key)).first()
        if by_key is not None and by_key.role_id != role_id:
            raise ConflictError(f"role key '{role_key}' already exists")

    def _clear_links(self, session: Session, role_id: int) -> None:
        for link in session.exec(select(RoleMenu).where(RoleMenu.role_id == role_id)).all():
            session.delete(link)
        for link in session.exec(select(RoleDept).where(RoleDept.role_id == role_id)).all():
            session.delete(link)
        session.flush()

    def _replace_menus(self, session: Session, role_id: int, menu_ids: list[int]) -> None:
        for link in session.exec(select(RoleMenu).where(RoleMenu.role_id == role_id)).all():
            session.delete(link)
        session.flush()
        for menu_id in sorted(set(menu_ids)):
            session.add(RoleMenu(role_id=role_id, menu_id=menu_id))

    def _replace_depts(self, session: Session, role_id: int, dept_ids: list[int]) -> None:
        for link in session.exec(select(RoleDept).where(RoleDept.role_id == role_id)).all():
            session.delete(link)
        session.flush()
        for dept_id in sorted(set(dept_ids)):
            session.add(RoleDept(role_id=role_id, dept_id=dept_id))

    def _user_ids(self, session: Session, role_id: int) -> list[int]:
        return self.permissions.find_user_ids_by_role(session, role_id)

    def list_roles(
        self,
        *,
        role_name: str | None = None,
        role_key: str | None = None,
        status: str | None = None,
        begin_time: datetime | None = None,
        end_time: datetime | None = None,
        page: PageQuery | None = None,
    ) -> tuple[list[Role], int]:
        statement = select(Role).where(Role.del_flag == DelFlag.PRESENT)
        if role_name:
            statement = statement.where(col(Role.role_name).contains(role_name))
        if role_key:
            statement = statement.where(col(Role.role_key).contains(role_key))
        if status:
            statement = statement.where(Role.status == status)
        if begin_time is not None:
            statement = statement.where(col(Role.create_time) >= begin_time)
        if end_time is not None:
            statement = statement.where(col(Role.create_time) <= end_time)
        statement = statement.order_by(col(Role.role_sort), col(Role.role_id))
        with self._session() as session:
            return paginate(session, statement, page)

    def export_roles(self, roles: list[Role]) -> str:
        output = StringIO()
        writer = csv.writer(output)
        writer.writerow(EXPORT_COLUMNS)
        for role in roles:
            row = RoleRead.model_validate(role).model_dump()
            writer.writerow([row[name] for name in EXPORT_COLUMNS])
        return output.getvalue()

    def list_options(self) -> list[Role]:
        roles, _ = self.list_roles()
        return roles

    def list_options_for_user(self, user_id: int) -> list[RoleOptionRead]:
        """All roles, flagged where ``user_id`` holds them."""
        with self._session() as session:
            held = set(session.exec(select(UserRole.role_id).where(UserRole.user_id == user_id)).all())
        return [
            RoleOptionRead.model_validate(role).model_copy(update={"flag": role.role_id in held})
            for role in self.list_options()
        ]

    def get_role(self, role_id: int) -> Role:
        with self._session() as session:
            return self._get_role(session, role_id)

    def create_role(self, payload: RoleCreate, *, operator: str) -> Role:
        with self._session() as session:
            self._check_unique(session, payload.role_name, payload.role_key, None)
            role = Role(
                **payload.model_dump(exclude={"menu_ids", "dept_ids"}),
                create_by=operator,
            )
            session.add(role)
            try:
                session.flush()
                if role.role_id is not None:
                    self._replace_menus(session, role.role_id, payload.menu_ids)
                    self._replace_depts(session, role.role_id, payload.dept_ids)
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError("role create conflict") from exc
            session.refresh(role)
            logger.info("role %s (%s) created by %s", role.role_key, role.role_id, operator)
            return role

    def update_role(self, payload: RoleUpdate, *, operator: str) -> list[int]:
        """Update a role and its menus; returns the ids of users holding it."""
        self._check_role_allowed(payload.role_id)
        with self._session() as session:
            role = self._get_role(session, payload.role_id)
            self._check_unique(session, payload.role_name, payload.role_key, payload.role_id)
            for key, value in payload.model_dump(exclude={"role_id", "menu_ids", "dept_ids"}).items():
                setattr(role, key, value)
            role.update_by = operator
            role.update_time = now_utc()
            session.add(role)
            self._replace_menus(session, payload.role_id, payload.menu_ids)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError("role update conflict") from exc
            return self._user_ids(session, payload.role_id)

    def change_status(self, payload: RoleStatusUpdate, *, operator: str) -> list[int]:
        self._check_role_allowed(payload.role_id)
        with self._session() as session:
            role = self._get_role(session, payload.role_id)
            role.status = payload.status
            role.update_by = operator
            role.update_time = now_utc()
            session.add(role)
            session.commit()
            return self._user_ids(session, payload.role_id)

    def update_data_scope(self, payload: RoleDataScopeUpdate, *, operator: str) -> list[int]:
        self._check_role_allowed(payload.role_id)
        with self._session() as session:
            role = self._get_role(session, payload.role_id)
            role.data_scope = payload.data_scope
            role.dept_check_strictly = payload.dept_check_strictly
            role.update_by = operator
            role.update_time = now_utc()
            session.add(role)
            self._replace_depts(session, payload.role_id, payload.dept_ids)
            session.commit()
            return self._user_ids(session, payload.role_id)

    def delete_roles(self, role_ids: list[int], *, operator: str) -> None:
        with self._session() as session:
            roles: list[Role] = []
            for role_id in role_ids:
                self._check_role_allowed(role_id)
                role = self._get_role(session, role_id)
                if self._user_ids(session, role_id):
                    raise ConflictError(f"role '{role.role_name}' is assigned to users and cannot be deleted")
                roles.append(role)
            for role in roles:
                if role.role_id is not None:
                    self._clear_links(session, role.role_id)
                role.del_flag = DelFlag.DELETED
                role.update_by = operator
                role.update_time = now_utc()
                session.add(role)
            session.commit()
        logger.info("roles %s deleted by %s", role_ids, operator)

    def role_dept_ids(self, role_id: int) -> list[int]:
        with self._session() as session:
            self._get_role(session, role_id)
            statement = select(RoleDept.dept_id).where(RoleDept.role_id == role_id)
            return sorted(session.exec(statement).all())

    def _auth_user_statement(
        self,
        role_id: int,
        allocated: bool,
        user_name: str | None,
        phonenumber: str | None,
        scope: DataScopeFilter,
    ) -> Any:
        holders = select(UserRole.user_id).where(UserRole.role_id == role_id)
        statement = select(User).where(User.del_flag == DelFlag.PRESENT)
        if allocated:
            statement = statement.where(col(User.user_id).in_(holders))
        else:
            statement = statement.where(col(User.user_id).not_in(holders))
        if user_name:
            statement = statement.where(col(User.user_name).contains(user_name))
        if phonenumber:
            statement = statement.where(col(User.phonenumber).contains(phonenumber))
        statement = scope.apply(statement, User.dept_id, User.user_id)
        return statement.order_by(col(User.user_id))

    def list_auth_users(
        self,
        role_id: int,
        *,
        allocated: bool,
        scope: DataScopeFilter,
        user_name: str | None = None,
        phonenumber: str | None = None,
        page: PageQuery | None = None,
    ) -> tuple[list[User], int]:
        statement = self._auth_user_statement(role_id, allocated, user_name, phonenumber, scope)
        with self._session() as session:
            return paginate(session, statement, page)

    def cancel_auth_users(self, role_id: int, user_ids: list[int]) -> list[int]:
        self._check_role_allowed(role_id)
        with self._session() as session:
            statement = (
                select(UserRole)
                .where(UserRole.role_id == role_id)
                .where(col(UserRole.user_id).in_(user_ids))
            )
            for link in session.exec(statement).all():
                session.delete(link)
            session.commit()
        return list(user_ids)

    def insert_auth_users(self, role_id: int, user_ids: list[int]) -> list[int]:
        self._check_role_allowed(role_id)
        with self._session() as session:
            self._get_role(session, role_id)
            existing = set(self._user_ids(session, role_id))
            for user_id in sorted(set(user_ids) - existing):
                session.add(UserRole(user_id=user_id, role_id=role_id))
            session.commit()
        return list(user_ids)
