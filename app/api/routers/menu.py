from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status

from app.api.deps import AuthServiceDep, OperationPolicy, guard
from app.domain.models import (
    BusinessType,
    LoginUser,
    MenuCreate,
    MenuRead,
    MenuUpdate,
    RoleMenuTreeRead,
    TreeNode,
)
from app.domain.permissions import (
    PERM_MENU_ADD,
    PERM_MENU_EDIT,
    PERM_MENU_LIST,
    PERM_MENU_QUERY,
    PERM_MENU_REMOVE,
)
from app.services.errors import ConflictError, NotFoundError
from app.services.menu_service import MenuService

router = APIRouter()

LIST = OperationPolicy(permissions=(PERM_MENU_LIST,))
QUERY = OperationPolicy(permissions=(PERM_MENU_QUERY,))
ADD = OperationPolicy(permissions=(PERM_MENU_ADD,), log_title="menu", business_type=BusinessType.INSERT)
EDIT = OperationPolicy(permissions=(PERM_MENU_EDIT,), log_title="menu", business_type=BusinessType.UPDATE)
REMOVE = OperationPolicy(permissions=(PERM_MENU_REMOVE,), log_title="menu", business_type=BusinessType.DELETE)


def get_menu_service() -> MenuService:
    return MenuService()


Service = Annotated[MenuService, Depends(get_menu_service)]


def _handle_error(exc: Exception) -> None:
    if isinstance(exc, NotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, ConflictError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    raise exc


@router.get("/list", response_model=list[MenuRead])
def list_menus(
    login_user: Annotated[LoginUser, Depends(guard(LIST))],
    service: Service,
    menu_name: str | None = None,
    visible: str | None = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
) -> list[MenuRead]:
    menus = service.list_menus(login_user, menu_name=menu_name, visible=visible, status=status_filter)
    return [MenuRead.model_validate(item) for item in menus]


@router.get("/treeselect", response_model=list[TreeNode])
def tree_select(login_user: Annotated[LoginUser, Depends(guard(LIST))], service: Service) -> list[TreeNode]:
    return service.tree_select(login_user)


@router.get("/roleMenuTreeselect/{role_id}", response_model=RoleMenuTreeRead)
def role_menu_tree(
    role_id: int,
    login_user: Annotated[LoginUser, Depends(guard(LIST))],
    service: Service,
) -> RoleMenuTreeRead:
    return service.role_menu_tree(role_id, login_user)


@router.get("/{menu_id}", response_model=MenuRead)
def get_menu(menu_id: int, _: Annotated[LoginUser, Depends(guard(QUERY))], service: Service) -> MenuRead:
    try:
        return MenuRead.model_validate(service.get_menu(menu_id))
    except NotFoundError as exc:
        _handle_error(exc)
        raise


@router.post("", response_model=MenuRead, status_code=status.HTTP_201_CREATED)
def create_menu(
    payload: MenuCreate,
    login_user: Annotated[LoginUser, Depends(guard(ADD))],
    service: Service,
) -> MenuRead:
    try:
        return MenuRead.model_validate(service.create_menu(payload, operator=login_user.user_name))
    except (NotFoundError, ConflictError) as exc:
        _handle_error(exc)
        raise


@router.put("", status_code=status.HTTP_204_NO_CONTENT)
def update_menu(
    payload: MenuUpdate,
    login_user: Annotated[LoginUser, Depends(guard(EDIT))],
    service: Service,
    auth: AuthServiceDep,
    background_tasks: BackgroundTasks,
) -> None:
    try:
        user_ids = service.update_menu(payload, operator=login_user.user_name)
    except (NotFoundError, ConflictError) as exc:
        _handle_error(exc)
        raise
    background_tasks.add_task(auth.refresh_user_sessions, user_ids)


@router.delete("/{menu_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_menu(
    menu_id: int,
    login_user: Annotated[LoginUser, Depends(guard(REMOVE))],
    service: Service,
) -> None:
    try:
        service.delete_menu(menu_id, operator=login_user.user_name)
    except (NotFoundError, ConflictError) as exc:
        _handle_error(exc)
        raise
