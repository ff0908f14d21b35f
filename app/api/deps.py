from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Annotated

from fastapi import BackgroundTasks, Depends, HTTPException, Query, Request, status
from fastapi.security import OAuth2PasswordBearer

from app.domain.models import BusinessType, LoginUser
from app.domain.permissions import ALL_PERMISSION, has_any_permission, has_any_role
from app.infra.audit import set_audit_context
from app.infra.auth import TokenError
from app.services.auth_service import AuthService
from app.services.data_scope_service import DataScopeFilter, DataScopeService
from app.services.paging import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, PageQuery
from app.services.token_service import TokenService

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/login", auto_error=False)

INVALID_TOKEN_MESSAGE = "invalid token"
SESSION_EXPIRED_MESSAGE = "login session expired, please sign in again"
FORBIDDEN_MESSAGE = "insufficient permission"


@dataclass(frozen=True)
class OperationPolicy:
    """Static requirements of one operation.

    A caller passes when it holds at least one of ``permissions`` or ``roles``.
    """

    permissions: tuple[str, ...] = ()
    roles: tuple[str, ...] = ()
    log_title: str | None = None
    business_type: BusinessType = BusinessType.OTHER
    public: bool = False


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_token_service() -> TokenService:
    return TokenService()


def get_login_user(
    request: Request,
    background_tasks: BackgroundTasks,
    tokens: Annotated[TokenService, Depends(get_token_service)],
    token: str | None = Depends(oauth2_scheme),
) -> LoginUser:
    if not token:
        raise _unauthorized(INVALID_TOKEN_MESSAGE)
    try:
        login_user = tokens.get_login_user(token)
    except TokenError as exc:
        logger.info("rejected token on %s: %s", request.url.path, type(exc).__name__)
        raise _unauthorized(INVALID_TOKEN_MESSAGE) from exc
    if login_user is None:
        raise _unauthorized(SESSION_EXPIRED_MESSAGE)
    if tokens.needs_renewal(login_user):
        background_tasks.add_task(tokens.renew_quietly, login_user)
    request.state.login_user = login_user
    return login_user


def _is_authorized(login_user: LoginUser, policy: OperationPolicy) -> bool:
    if not policy.permissions and not policy.roles:
        return True
    if policy.permissions and has_any_permission(login_user.permissions, policy.permissions):
        return True
    if ALL_PERMISSION in login_user.permissions:
        return True
    return bool(policy.roles) and has_any_role(login_user.role_keys, policy.roles)


def guard(policy: OperationPolicy) -> Callable[..., LoginUser | None]:
    if policy.public:

        def _public(request: Request) -> None:
            if policy.log_title:
                set_audit_context(request, title=policy.log_title, business_type=policy.business_type)
            return None

        return _public

    def _checker(
        request: Request,
        login_user: Annotated[LoginUser, Depends(get_login_user)],
    ) -> LoginUser:
        if policy.log_title:
            set_audit_context(request, title=policy.log_title, business_type=policy.business_type)
        if not _is_authorized(login_user, policy):
            logger.info(
                "user %s denied %s %s",
                login_user.user_name,
                request.method,
                request.url.path,
            )
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=FORBIDDEN_MESSAGE)
        return login_user

    return _checker


def require_perm(*permissions: str) -> Callable[..., LoginUser | None]:
    return guard(OperationPolicy(permissions=permissions))


def require_role(*roles: str) -> Callable[..., LoginUser | None]:
    return guard(OperationPolicy(roles=roles))


def get_data_scope(login_user: Annotated[LoginUser, Depends(get_login_user)]) -> DataScopeFilter:
    return DataScopeService().resolve(login_user)


CurrentUser = Annotated[LoginUser, Depends(get_login_user)]
DataScopeDep = Annotated[DataScopeFilter, Depends(get_data_scope)]


def get_page(
    page_num: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = DEFAULT_PAGE_SIZE,
) -> PageQuery:
    return PageQuery(page_num=page_num, page_size=page_size)


def parse_ids(raw: str) -> list[int]:
    """Parse a comma separated id list from a path segment."""
    try:
        ids = [int(item) for item in raw.split(",") if item.strip()]
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid id list") from exc
    if not ids:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid id list")
    return ids


def get_auth_service() -> AuthService:
    return AuthService()


Page = Annotated[PageQuery, Depends(get_page)]
AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]
