from __future__ import annotations

import base64
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status

from app.api.deps import INVALID_TOKEN_MESSAGE, AuthServiceDep, CurrentUser, oauth2_scheme
from app.domain.models import (
    CaptchaResponse,
    LoginRequest,
    RouterRead,
    TokenResponse,
    UserInfoResponse,
)
from app.infra.auth import TokenError
from app.infra.request_meta import client_ip, parse_user_agent
from app.services.auth_service import AuthError
from app.services.captcha_service import CaptchaError, CaptchaService
from app.services.menu_service import MenuService

router = APIRouter()


def get_captcha_service() -> CaptchaService:
    return CaptchaService()


def get_menu_service() -> MenuService:
    return MenuService()


Service = AuthServiceDep


def _handle_error(exc: Exception) -> None:
    if isinstance(exc, CaptchaError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    if isinstance(exc, AuthError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
    raise exc


@router.get("/captchaImage", response_model=CaptchaResponse)
def captcha_image(
    captcha: Annotated[CaptchaService, Depends(get_captcha_service)],
) -> CaptchaResponse:
    if not captcha.enabled:
        return CaptchaResponse(captcha_enabled=False)
    uuid, code = captcha.create()
    image = base64.b64encode(captcha.render_svg(code).encode()).decode()
    return CaptchaResponse(captcha_enabled=True, uuid=uuid, img=f"data:image/svg+xml;base64,{image}")


@router.post("/login", response_model=TokenResponse)
def login(payload: LoginRequest, request: Request, service: Service) -> TokenResponse:
    browser, os_name = parse_user_agent(request.headers.get("user-agent"))
    try:
        return service.login(payload, ipaddr=client_ip(request), browser=browser, os_name=os_name)
    except (AuthError, CaptchaError) as exc:
        _handle_error(exc)
        raise


@router.get("/getInfo", response_model=UserInfoResponse)
def get_info(login_user: CurrentUser, service: Service) -> UserInfoResponse:
    return service.get_info(login_user)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(service: Service, token: Annotated[str | None, Depends(oauth2_scheme)]) -> None:
    if not token:
        return None
    try:
        service.logout(token)
    except TokenError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=INVALID_TOKEN_MESSAGE,
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
    return None


@router.get("/getRouters", response_model=list[RouterRead])
def get_routers(
    login_user: CurrentUser,
    menus: Annotated[MenuService, Depends(get_menu_service)],
) -> list[RouterRead]:
    return menus.get_routers(login_user)
