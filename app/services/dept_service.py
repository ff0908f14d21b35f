from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlmodel import Session, col, select

from app.domain.models import (
    DelFlag,
    Dept,
    DeptCreate,
    DeptUpdate,
    RoleDeptTreeRead,
    Status,
    TreeNode,
    User,
    now_utc,
)
from app.infra.db import get_engine
from app.services.data_scope_service import DataScopeFilter
from app.services.errors import ConflictError, NotFoundError
from app.services.permission_service import ancestors_contain

logger = logging.getLogger(__name__)

ROOT_PARENT_ID = 0


def build_dept_tree(depts: Iterable[Dept]) -> list[TreeNode]:
    """Nest departments under their parents; orphans become roots."""
    items = sorted(depts, key=lambda item: (item.order_num, item.dept_id or 0))
    nodes = {
        item.dept_id: TreeNode(
            id=item.dept_id,
            label=item.dept_name,
            disabled=item.status == Status.DISABLED,
        )
        for item in items
        if item.dept_id is not None
    }
    roots: list[TreeNode] = []
    for item in items:
        if item.dept_id is None:
            continue
        parent = nodes.get(item.parent_id)
        if parent is None:
            roots.append(nodes[item.dept_id])
        else:
            parent.children.append(nodes[item.dept_id])
    return roots


class DeptService:
    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def _get_dept(self, session: Session, dept_id: int) -> Dept:
        dept = session.get(Dept, dept_id)
        if dept is None or dept.del_flag != DelFlag.PRESENT:
            raise NotFoundError("department not found")
        return dept

    def _check_name_unique(self, session: Session, dept_name: str, parent_id: int, dept_id: int | None) -> None:
        statement = (
            select(Dept)
            .where(Dept.del_flag == DelFlag.PRESENT)
            .where(Dept.parent_id == parent_id)
            .where(Dept.dept_name == dept_name)
        )
        existing = session.exec(statement).first()
        if existing is not None and existing.dept_id != dept_id:
            raise ConflictError(f"department name '{dept_name}' already exists")

    def _ancestors_for_parent(self, session: Session, parent_id: int) -> str:
        if parent_id == ROOT_PARENT_ID:
            return str(ROOT_PARENT_ID)
        parent = self._get_dept(session, parent_id)
        if parent.status != Status.NORMAL:
            raise ConflictError("parent department is disabled")
        return f"{parent.ancestors},{parent_id}"

    def _descendants(self, session: Session, dept_id: int) -> list[Dept]:
        statement = (
            select(Dept)
            .where(Dept.del_flag == DelFlag.PRESENT)
            .where(ancestors_contain(Dept.ancestors, dept_id))
        )
        return list(session.exec(statement).all())

    def list_depts(
        self,
        scope: DataScopeFilter,
        *,
        dept_name: str | None = None,
        status: str | None = None,
    ) -> list[Dept]:
        statement = select(Dept).where(Dept.del_flag == DelFlag.PRESENT)
        if dept_name:
            statement = statement.where(col(Dept.dept_name).contains(dept_name))
        if status:
            statement = statement.where(Dept.status == status)
        statement = scope.apply(statement, Dept.dept_id)
        statement = statement.order_by(col(Dept.parent_id), col(Dept.order_num), col(Dept.dept_id))
        with self._session() as session:
            return list(session.exec(statement).all())

    def list_excluding(self, dept_id: int, scope: DataScopeFilter) -> list[Dept]:
        """Candidate parents for ``dept_id``: everything but itself and its subtree."""
        return [
            item
            for item in self.list_depts(scope)
            if item.dept_id != dept_id and str(dept_id) not in item.ancestors.split(",")
        ]

    def dept_tree(self, scope: DataScopeFilter) -> list[TreeNode]:
        return build_dept_tree(self.list_depts(scope, status=Status.NORMAL))

    def role_dept_tree(self, checked: list[int], scope: DataScopeFilter) -> RoleDeptTreeRead:
        return RoleDeptTreeRead(checked_keys=checked, depts=build_dept_tree(self.list_depts(scope)))

    def get_dept(self, dept_id: int) -> Dept:
        with self._session() as session:
            return self._get_dept(session, dept_id)

    def create_dept(self, payload: DeptCreate, *, operator: str) -> Dept:
        with self._session() as session:
            self._check_name_unique(session, payload.dept_name, payload.parent_id, None)
            dept = Dept(
                **payload.model_dump(),
                ancestors=self._ancestors_for_parent(session, payload.parent_id),
                create_by=operator,
            )
            session.add(dept)
            session.commit()
            session.refresh(dept)
            logger.info("department %s (%s) created by %s", dept.dept_name, dept.dept_id, operator)
            return dept

    def update_dept(self, payload: DeptUpdate, *, operator: str) -> Dept:
        with self._session() as session:
            dept = self._get_dept(session, payload.dept_id)
            if payload.parent_id == payload.dept_id:
                raise ConflictError("a department cannot be its own parent")
            self._check_name_unique(session, payload.dept_name, payload.parent_id, payload.dept_id)
            children = self._descendants(session, payload.dept_id)
            if payload.parent_id in {item.dept_id for item in children}:
                raise ConflictError("a department cannot move under its own descendant")
            if payload.status == Status.DISABLED and any(
                item.status == Status.NORMAL for item in children
            ):
                raise ConflictError("department still has active sub-departments")

            if payload.parent_id != dept.parent_id:
                old_prefix = f"{dept.ancestors},{dept.dept_id}"
                dept.ancestors = self._ancestors_for_parent(session, payload.parent_id)
                new_prefix = f"{dept.ancestors},{dept.dept_id}"
                for child in children:
                    child.ancestors = new_prefix + child.ancestors[len(old_prefix):]
                    session.add(child)

            for key, value in payload.model_dump(exclude={"dept_id"}).items():
                setattr(dept, key, value)
            dept.update_by = operator
            dept.update_time = now_utc()
            session.add(dept)

            if dept.status == Status.NORMAL:
                self._enable_ancestors(session, dept)
            session.commit()
            session.refresh(dept)
            return dept

    def _enable_ancestors(self, session: Session, dept: Dept) -> None:
        ids = [int(item) for item in dept.ancestors.split(",") if item and item != str(ROOT_PARENT_ID)]
        if not ids:
            return
        for parent in session.exec(select(Dept).where(col(Dept.dept_id).in_(ids))).all():
            if parent.status != Status.NORMAL:
                parent.status = Status.NORMAL
                session.add(parent)

    def delete_dept(self, dept_id: int, *, operator: str) -> None:
        with self._session() as session:
            dept = self._get_dept(session, dept_id)
            child = session.exec(
                select(Dept.dept_id)
                .where(Dept.parent_id == dept_id)
                .where(Dept.del_flag == DelFlag.PRESENT)
            ).first()
            if child is not None:
                raise ConflictError("department has sub-departments and cannot be deleted")
            member = session.exec(
                select(User.user_id)
                .where(User.dept_id == dept_id)
                .where(User.del_flag == DelFlag.PRESENT)
            ).first()
            if member is not None:
                raise ConflictError("department has users and cannot be deleted")
            dept.del_flag = DelFlag.DELETED
            dept.update_by = operator
            dept.update_time = now_utc()
            session.add(dept)
            session.commit()
        logger.info("department %s deleted by %s", dept_id, operator)
