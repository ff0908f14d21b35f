from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from app.domain.models import (
    DelFlag,
    Dept,
    Post,
    PostRead,
    Role,
    RoleRead,
    Status,
    User,
    UserAuthRoleRead,
    UserCreate,
    UserDetailRead,
    UserPasswordUpdate,
    UserPost,
    UserProfileUpdate,
    UserRead,
    UserResetPassword,
    UserRole,
    UserStatusUpdate,
    UserUpdate,
    now_utc,
)
from app.domain.permissions import is_admin, is_admin_role
from app.infra.db import get_engine
from app.infra.security import hash_password, verify_password
from app.services.data_scope_service import DataScopeFilter
from app.services.errors import ConflictError, NotFoundError
from app.services.paging import PageQuery, paginate
from app.services.permission_service import ancestors_contain
from app.services.role_service import RoleService

logger = logging.getLogger(__name__)


class UserService:
    def __init__(self, role_service: RoleService | None = None) -> None:
        self.roles = role_service or RoleService()

    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def _get_user(self, session: Session, user_id: int) -> User:
        user = session.get(User, user_id)
        if user is None or user.del_flag != DelFlag.PRESENT:
            raise NotFoundError("user not found")
        return user

    def _check_user_allowed(self, user_id: int | None) -> None:
        if is_admin(user_id):
            raise ConflictError("operating on the super administrator user is not allowed")

    def _check_unique(
        self,
        session: Session,
        *,
        user_id: int | None,
        user_name: str | None = None,
        phonenumber: str | None = None,
        email: str | None = None,
    ) -> None:
        checks = (
            ("user name", User.user_name, user_name),
            ("phone number", User.phonenumber, phonenumber),
            ("email", User.email, email),
        )
        for label, column, value in checks:
            if not value:
                continue
            statement = select(User).where(column == value).where(User.del_flag == DelFlag.PRESENT)
            existing = session.exec(statement).first()
            if existing is not None and existing.user_id != user_id:
                raise ConflictError(f"{label} '{value}' already exists")

    def _check_assignable_roles(self, user_id: int | None, role_ids: list[int]) -> None:
        if is_admin(user_id):
            return
        if any(is_admin_role(role_id) for role_id in role_ids):
            raise ConflictError("the super administrator role cannot be assigned")

    def _replace_roles(self, session: Session, user_id: int, role_ids: list[int]) -> None:
        self._check_assignable_roles(user_id, role_ids)
        for link in session.exec(select(UserRole).where(UserRole.user_id == user_id)).all():
            session.delete(link)
        session.flush()
        for role_id in sorted(set(role_ids)):
            session.add(UserRole(user_id=user_id, role_id=role_id))

    def _replace_posts(self, session: Session, user_id: int, post_ids: list[int]) -> None:
        for link in session.exec(select(UserPost).where(UserPost.user_id == user_id)).all():
            session.delete(link)
        session.flush()
        for post_id in sorted(set(post_ids)):
            session.add(UserPost(user_id=user_id, post_id=post_id))

    def _touch(self, user: User, operator: str) -> None:
        user.update_by = operator
        user.update_time = now_utc()

    def list_users(
        self,
        scope: DataScopeFilter,
        *,
        user_name: str | None = None,
        phonenumber: str | None = None,
        status: str | None = None,
        dept_id: int | None = None,
        begin_time: datetime | None = None,
        end_time: datetime | None = None,
        page: PageQuery | None = None,
    ) -> tuple[list[User], int]:
        statement = select(User).where(User.del_flag == DelFlag.PRESENT)
        if user_name:
            statement = statement.where(col(User.user_name).contains(user_name))
        if phonenumber:
            statement = statement.where(col(User.phonenumber).contains(phonenumber))
        if status:
            statement = statement.where(User.status == status)
        if dept_id is not None:
            subtree = select(Dept.dept_id).where(
                or_(Dept.dept_id == dept_id, ancestors_contain(Dept.ancestors, dept_id))
            )
            statement = statement.where(col(User.dept_id).in_(subtree))
        if begin_time is not None:
            statement = statement.where(col(User.create_time) >= begin_time)
        if end_time is not None:
            statement = statement.where(col(User.create_time) <= end_time)
        statement = scope.apply(statement, User.dept_id, User.user_id)
        statement = statement.order_by(col(User.user_id))
        with self._session() as session:
            return paginate(session, statement, page)

    def get_user(self, user_id: int) -> User:
        with self._session() as session:
            return self._get_user(session, user_id)

    def _selectable_roles(self, for_user_id: int | None) -> list[Role]:
        roles = self.roles.list_options()
        if is_admin(for_user_id):
            return roles
        return [item for item in roles if not is_admin_role(item.role_id)]

    def get_user_detail(self, user_id: int | None = None) -> UserDetailRead:
        """Form data for the user editor; ``user_id=None`` is a blank form."""
        with self._session() as session:
            posts = list(session.exec(select(Post).where(Post.status == Status.NORMAL)).all())
            detail = UserDetailRead(
                roles=[RoleRead.model_validate(item) for item in self._selectable_roles(user_id)],
                posts=[PostRead.model_validate(item) for item in posts],
            )
            if user_id is None:
                return detail
            user = self._get_user(session, user_id)
            detail.user = UserRead.model_validate(user)
            detail.role_ids = sorted(session.exec(select(UserRole.role_id).where(UserRole.user_id == user_id)).all())
            detail.post_ids = sorted(session.exec(select(UserPost.post_id).where(UserPost.user_id == user_id)).all())
            return detail

    def create_user(self, payload: UserCreate, *, operator: str) -> User:
        self._check_assignable_roles(None, payload.role_ids)
        with self._session() as session:
            self._check_unique(
                session,
                user_id=None,
                user_name=payload.user_name,
                phonenumber=payload.phonenumber,
                email=payload.email,
            )
            user = User(
                **payload.model_dump(exclude={"password", "role_ids", "post_ids"}),
                password=hash_password(payload.password),
                create_by=operator,
            )
            session.add(user)
            try:
                session.flush()
                if user.user_id is not None:
                    self._replace_roles(session, user.user_id, payload.role_ids)
                    self._replace_posts(session, user.user_id, payload.post_ids)
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError("user create conflict") from exc
            session.refresh(user)
            logger.info("user %s (%s) created by %s", user.user_name, user.user_id, operator)
            return user

    def update_user(self, payload: UserUpdate, *, operator: str) -> User:
        self._check_user_allowed(payload.user_id)
        with self._session() as session:
            user = self._get_user(session, payload.user_id)
            self._check_unique(
                session,
                user_id=payload.user_id,
                phonenumber=payload.phonenumber,
                email=payload.email,
            )
            for key, value in payload.model_dump(exclude={"user_id", "role_ids", "post_ids"}).items():
                setattr(user, key, value)
            self._touch(user, operator)
            session.add(user)
            self._replace_roles(session, payload.user_id, payload.role_ids)
            self._replace_posts(session, payload.user_id, payload.post_ids)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError("user update conflict") from exc
            session.refresh(user)
            return user

    def delete_users(self, user_ids: list[int], *, operator: str, current_user_id: int) -> None:
        if current_user_id in user_ids:
            raise ConflictError("the current user cannot be deleted")
        with self._session() as session:
            users = []
            for user_id in user_ids:
                self._check_user_allowed(user_id)
                users.append(self._get_user(session, user_id))
            for user in users:
                if user.user_id is None:
                    continue
                self._replace_roles(session, user.user_id, [])
                self._replace_posts(session, user.user_id, [])
                user.del_flag = DelFlag.DELETED
                self._touch(user, operator)
                session.add(user)
            session.commit()
        logger.info("users %s deleted by %s", user_ids, operator)

    def reset_password(self, payload: UserResetPassword, *, operator: str) -> None:
        self._check_user_allowed(payload.user_id)
        with self._session() as session:
            user = self._get_user(session, payload.user_id)
            user.password = hash_password(payload.password)
            self._touch(user, operator)
            session.add(user)
            session.commit()
        logger.info("password of user %s reset by %s", payload.user_id, operator)

    def change_status(self, payload: UserStatusUpdate, *, operator: str) -> None:
        self._check_user_allowed(payload.user_id)
        with self._session() as session:
            user = self._get_user(session, payload.user_id)
            user.status = payload.status
            self._touch(user, operator)
            session.add(user)
            session.commit()

    def auth_role_info(self, user_id: int) -> UserAuthRoleRead:
        with self._session() as session:
            user = self._get_user(session, user_id)
        options = self.roles.list_options_for_user(user_id)
        if not is_admin(user_id):
            options = [item for item in options if not is_admin_role(item.role_id)]
        return UserAuthRoleRead(user=UserRead.model_validate(user), roles=options)

    def update_auth_role(self, user_id: int, role_ids: list[int]) -> None:
        self._check_user_allowed(user_id)
        with self._session() as session:
            self._get_user(session, user_id)
            self._replace_roles(session, user_id, role_ids)
            session.commit()

    def update_profile(self, user_id: int, payload: UserProfileUpdate) -> User:
        with self._session() as session:
            user = self._get_user(session, user_id)
            self._check_unique(
                session,
                user_id=user_id,
                phonenumber=payload.phonenumber,
                email=payload.email,
            )
            for key, value in payload.model_dump().items():
                setattr(user, key, value)
            self._touch(user, user.user_name)
            session.add(user)
            session.commit()
            session.refresh(user)
            return user

    def update_password(self, user_id: int, payload: UserPasswordUpdate) -> None:
        with self._session() as session:
            user = self._get_user(session, user_id)
            if not verify_password(payload.old_password, user.password):
                raise ConflictError("old password is incorrect")
            if verify_password(payload.new_password, user.password):
                raise ConflictError("new password must differ from the old password")
            user.password = hash_password(payload.new_password)
            self._touch(user, user.user_name)
            session.add(user)
            session.commit()
