from __future__ import annotations

import logging

from sqlmodel import Session

from app.domain.models import (
    DelFlag,
    LoginRequest,
    LoginUser,
    Status,
    TokenResponse,
    User,
    UserInfoResponse,
    now_utc,
)
from app.infra.auth import validate_token
from app.infra.db import get_engine
from app.infra.security import verify_password
from app.services.captcha_service import CaptchaService
from app.services.errors import NotFoundError
from app.services.permission_service import PermissionService
from app.services.token_service import TokenService

logger = logging.getLogger(__name__)

BAD_CREDENTIALS_MESSAGE = "incorrect user name or password"


class AuthError(Exception):
    pass


class UserNotFoundError(AuthError):
    pass


class UserDisabledError(AuthError):
    pass


class UserDeletedError(AuthError):
    pass


class BadCredentialError(AuthError):
    pass


class AuthService:
    def __init__(
        self,
        token_service: TokenService | None = None,
        permission_service: PermissionService | None = None,
        captcha_service: CaptchaService | None = None,
    ) -> None:
        self.tokens = token_service or TokenService()
        self.permissions = permission_service or PermissionService()
        self.captcha = captcha_service or CaptchaService()

    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def verify(self, session: Session, user_name: str, password: str) -> User:
        user = self.permissions.find_user_by_name(session, user_name)
        if user is None:
            raise UserNotFoundError(BAD_CREDENTIALS_MESSAGE)
        if user.del_flag == DelFlag.DELETED:
            raise UserDeletedError("account has been deleted")
        if user.status == Status.DISABLED:
            raise UserDisabledError("account has been disabled")
        if not verify_password(password, user.password):
            raise BadCredentialError(BAD_CREDENTIALS_MESSAGE)
        return user

    def build_login_user(self, session: Session, user: User) -> LoginUser:
        if user.user_id is None:
            raise NotFoundError("user not found")
        return LoginUser(
            user_id=user.user_id,
            dept_id=user.dept_id,
            user_name=user.user_name,
            permissions=sorted(self.permissions.resolve_permissions(session, user.user_id)),
            user=self.permissions.build_profile(session, user),
        )

    def login(
        self,
        payload: LoginRequest,
        *,
        ipaddr: str,
        browser: str,
        os_name: str,
    ) -> TokenResponse:
        self.captcha.verify(payload.uuid, payload.code)
        with self._session() as session:
            try:
                user = self.verify(session, payload.user_name, payload.password)
            except AuthError as exc:
                logger.info("login rejected for %s from %s: %s", payload.user_name, ipaddr, type(exc).__name__)
                raise
            login_user = self.build_login_user(session, user)
            user.login_ip = ipaddr
            user.login_date = now_utc()
            session.add(user)
            session.commit()

        login_user.ipaddr = ipaddr
        login_user.browser = browser
        login_user.os = os_name
        token = self.tokens.create_token(login_user)
        logger.info("user %s signed in from %s", login_user.user_name, ipaddr)
        return TokenResponse(
            token=token,
            expires_in=self.tokens.ttl_seconds,
            user=login_user.user,
        )

    def get_info(self, login_user: LoginUser) -> UserInfoResponse:
        with self._session() as session:
            roles = self.permissions.resolve_role_keys(session, login_user.user_id)
        return UserInfoResponse(
            user=login_user.user,
            roles=sorted(roles),
            permissions=sorted(login_user.permissions),
        )

    def logout(self, token: str) -> None:
        """End the session behind ``token``; a session that is already gone is fine."""
        session_id = validate_token(token)
        record = self.tokens.store.get(session_id)
        self.tokens.delete(session_id)
        if record is not None:
            logger.info("user %s signed out", record.user_name)

    def rebuild_login_user(self, record: LoginUser) -> LoginUser:
        """Re-derive permissions and profile for a live session record."""
        with self._session() as session:
            user = self.permissions.find_user_by_id(session, record.user_id)
            if user is None:
                raise NotFoundError("user not found")
            rebuilt = self.build_login_user(session, user)
        rebuilt.token = record.token
        rebuilt.ipaddr = record.ipaddr
        rebuilt.browser = record.browser
        rebuilt.os = record.os
        return rebuilt

    def revoke_user_sessions(self, user_ids: list[int]) -> None:
        """Sign out every live session of ``user_ids``."""
        try:
            count = self.tokens.delete_sessions_for_users(user_ids)
        except Exception:
            logger.exception("session revocation failed for users %s", user_ids)
            return
        logger.info("revoked %d session(s) of users %s", count, user_ids)

    def refresh_user_sessions(self, user_ids: list[int]) -> None:
        """Best-effort permission broadcast to live sessions of ``user_ids``."""
        try:
            count = self.tokens.refresh_sessions_for_users(user_ids, self.rebuild_login_user)
        except Exception:
            logger.exception("permission broadcast failed for users %s", user_ids)
            return
        logger.info("permission broadcast rewrote %d session(s)", count)
