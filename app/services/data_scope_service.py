from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from sqlalchemy import false, or_
from sqlalchemy.sql.elements import ColumnElement
from sqlmodel import Session, select

from app.domain.models import DataScope, Dept, LoginUser, RoleDept, RoleSnapshot, Status, User
from app.domain.permissions import is_admin
from app.infra.db import get_engine
from app.services.errors import PermissionDeniedError
from app.services.permission_service import ancestors_contain


@dataclass(frozen=True)
class ScopeCondition:
    mode: DataScope
    value: int


@dataclass(frozen=True)
class DataScopeFilter:
    conditions: tuple[ScopeCondition, ...] = ()

    def is_unrestricted(self) -> bool:
        return not self.conditions

    def predicate(
        self,
        dept_column: Any,
        user_column: Any | None = None,
    ) -> ColumnElement[bool] | None:
        """Render the OR of all conditions against the given column aliases.

        ``None`` means no restriction applies.
        """
        if self.is_unrestricted():
            return None
        clauses = [self._clause(item, dept_column, user_column) for item in self.conditions]
        return or_(*clauses)

    def apply(self, statement: Any, dept_column: Any, user_column: Any | None = None) -> Any:
        clause = self.predicate(dept_column, user_column)
        return statement if clause is None else statement.where(clause)

    def _clause(
        self,
        condition: ScopeCondition,
        dept_column: Any,
        user_column: Any | None,
    ) -> ColumnElement[bool]:
        if condition.mode == DataScope.CUSTOM:
            return dept_column.in_(
                select(RoleDept.dept_id).where(RoleDept.role_id == condition.value)
            )
        if condition.mode == DataScope.DEPT:
            return dept_column == condition.value
        if condition.mode == DataScope.DEPT_AND_CHILD:
            return dept_column.in_(
                select(Dept.dept_id).where(
                    or_(
                        Dept.dept_id == condition.value,
                        ancestors_contain(Dept.ancestors, condition.value),
                    )
                )
            )
        if user_column is None:
            return false()
        return user_column == condition.value


def build_data_scope(
    user_id: int,
    dept_id: int | None,
    roles: Iterable[RoleSnapshot],
) -> DataScopeFilter:
    """Combine the data scope policies of a user's roles.

    Any active role with the all-data policy wins outright. Other policies are
    deduplicated and OR-ed. Callers short-circuit the super administrator.
    """
    own_dept = dept_id or 0
    conditions: dict[ScopeCondition, None] = {}
    for role in roles:
        if role.status != Status.NORMAL:
            continue
        mode = DataScope(role.data_scope or DataScope.ALL)
        if mode == DataScope.ALL:
            return DataScopeFilter()
        if mode == DataScope.CUSTOM:
            condition = ScopeCondition(mode, role.role_id)
        elif mode == DataScope.SELF:
            condition = ScopeCondition(mode, user_id)
        else:
            condition = ScopeCondition(mode, own_dept)
        conditions.setdefault(condition, None)
    return DataScopeFilter(tuple(conditions))


class DataScopeService:
    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def resolve(self, login_user: LoginUser) -> DataScopeFilter:
        if is_admin(login_user.user_id):
            return DataScopeFilter()
        return build_data_scope(login_user.user_id, login_user.dept_id, login_user.user.roles)

    def ensure_user_visible(self, login_user: LoginUser, user_id: int) -> None:
        scope = self.resolve(login_user)
        if scope.is_unrestricted():
            return
        statement = scope.apply(
            select(User.user_id).where(User.user_id == user_id),
            User.dept_id,
            User.user_id,
        )
        with self._session() as session:
            visible = session.exec(statement).first()
        if visible is None:
            raise PermissionDeniedError("no permission to access user data")

    def ensure_dept_visible(self, login_user: LoginUser, dept_id: int) -> None:
        scope = self.resolve(login_user)
        if scope.is_unrestricted():
            return
        statement = scope.apply(
            select(Dept.dept_id).where(Dept.dept_id == dept_id),
            Dept.dept_id,
        )
        with self._session() as session:
            visible = session.exec(statement).first()
        if visible is None:
            raise PermissionDeniedError("no permission to access department data")
