from __future__ import annotations

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status

from app.api.deps import (
    AuthServiceDep,
    CurrentUser,
    DataScopeDep,
    OperationPolicy,
    Page,
    guard,
    parse_ids,
)
from app.domain.models import (
    BusinessType,
    LoginUser,
    PageResult,
    Status,
    TreeNode,
    UserAuthRole,
    UserAuthRoleRead,
    UserCreate,
    UserDetailRead,
    UserPasswordUpdate,
    UserProfileUpdate,
    UserRead,
    UserResetPassword,
    UserStatusUpdate,
    UserUpdate,
)
from app.domain.permissions import (
    PERM_USER_ADD,
    PERM_USER_EDIT,
    PERM_USER_LIST,
    PERM_USER_QUERY,
    PERM_USER_REMOVE,
    PERM_USER_RESET_PWD,
)
from app.services.data_scope_service import DataScopeService
from app.services.dept_service import DeptService
from app.services.errors import ConflictError, NotFoundError, PermissionDeniedError
from app.services.user_service import UserService

router = APIRouter()

LIST = OperationPolicy(permissions=(PERM_USER_LIST,))
QUERY = OperationPolicy(permissions=(PERM_USER_QUERY,))
ADD = OperationPolicy(permissions=(PERM_USER_ADD,), log_title="user", business_type=BusinessType.INSERT)
EDIT = OperationPolicy(permissions=(PERM_USER_EDIT,), log_title="user", business_type=BusinessType.UPDATE)
GRANT = OperationPolicy(permissions=(PERM_USER_EDIT,), log_title="user", business_type=BusinessType.GRANT)
RESET_PWD = OperationPolicy(
    permissions=(PERM_USER_RESET_PWD,),
    log_title="user",
    business_type=BusinessType.UPDATE,
)
REMOVE = OperationPolicy(permissions=(PERM_USER_REMOVE,), log_title="user", business_type=BusinessType.DELETE)
PROFILE = OperationPolicy(log_title="profile", business_type=BusinessType.UPDATE)


def get_user_service() -> UserService:
    return UserService()


def get_dept_service() -> DeptService:
    return DeptService()


def get_data_scope_service() -> DataScopeService:
    return DataScopeService()


Service = Annotated[UserService, Depends(get_user_service)]
Scopes = Annotated[DataScopeService, Depends(get_data_scope_service)]


def _handle_error(exc: Exception) -> None:
    if isinstance(exc, NotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, ConflictError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    if isinstance(exc, PermissionDeniedError):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    raise exc


@router.get("/list", response_model=PageResult)
def list_users(
    _: Annotated[LoginUser, Depends(guard(LIST))],
    scope: DataScopeDep,
    service: Service,
    page: Page,
    user_name: str | None = None,
    phonenumber: str | None = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    dept_id: int | None = None,
    begin_time: datetime | None = None,
    end_time: datetime | None = None,
) -> PageResult:
    rows, total = service.list_users(
        scope,
        user_name=user_name,
        phonenumber=phonenumber,
        status=status_filter,
        dept_id=dept_id,
        begin_time=begin_time,
        end_time=end_time,
        page=page,
    )
    return PageResult(total=total, rows=[UserRead.model_validate(item) for item in rows])


@router.get("/deptTree", response_model=list[TreeNode])
def dept_tree(
    _: Annotated[LoginUser, Depends(guard(LIST))],
    scope: DataScopeDep,
    depts: Annotated[DeptService, Depends(get_dept_service)],
) -> list[TreeNode]:
    return depts.dept_tree(scope)


@router.get("/profile", response_model=UserRead)
def get_profile(login_user: CurrentUser, service: Service) -> UserRead:
    try:
        return UserRead.model_validate(service.get_user(login_user.user_id))
    except NotFoundError as exc:
        _handle_error(exc)
        raise


@router.put("/profile", response_model=UserRead)
def update_profile(
    payload: UserProfileUpdate,
    login_user: Annotated[LoginUser, Depends(guard(PROFILE))],
    service: Service,
    auth: AuthServiceDep,
    background_tasks: BackgroundTasks,
) -> UserRead:
    try:
        user = service.update_profile(login_user.user_id, payload)
    except (NotFoundError, ConflictError) as exc:
        _handle_error(exc)
        raise
    background_tasks.add_task(auth.refresh_user_sessions, [login_user.user_id])
    return UserRead.model_validate(user)


@router.put("/profile/updatePwd", status_code=status.HTTP_204_NO_CONTENT)
def update_password(
    payload: UserPasswordUpdate,
    login_user: Annotated[LoginUser, Depends(guard(PROFILE))],
    service: Service,
) -> None:
    try:
        service.update_password(login_user.user_id, payload)
    except (NotFoundError, ConflictError) as exc:
        _handle_error(exc)
        raise


@router.get("/authRole/{user_id}", response_model=UserAuthRoleRead)
def get_auth_role(
    user_id: int,
    login_user: Annotated[LoginUser, Depends(guard(QUERY))],
    service: Service,
    scopes: Scopes,
) -> UserAuthRoleRead:
    try:
        scopes.ensure_user_visible(login_user, user_id)
        return service.auth_role_info(user_id)
    except (NotFoundError, PermissionDeniedError) as exc:
        _handle_error(exc)
        raise


@router.put("/authRole", status_code=status.HTTP_204_NO_CONTENT)
def update_auth_role(
    payload: UserAuthRole,
    login_user: Annotated[LoginUser, Depends(guard(GRANT))],
    service: Service,
    scopes: Scopes,
    auth: AuthServiceDep,
    background_tasks: BackgroundTasks,
) -> None:
    try:
        scopes.ensure_user_visible(login_user, payload.user_id)
        service.update_auth_role(payload.user_id, payload.role_ids)
    except (NotFoundError, ConflictError, PermissionDeniedError) as exc:
        _handle_error(exc)
        raise
    background_tasks.add_task(auth.refresh_user_sessions, [payload.user_id])


@router.put("/resetPwd", status_code=status.HTTP_204_NO_CONTENT)
def reset_password(
    payload: UserResetPassword,
    login_user: Annotated[LoginUser, Depends(guard(RESET_PWD))],
    service: Service,
    scopes: Scopes,
) -> None:
    try:
        scopes.ensure_user_visible(login_user, payload.user_id)
        service.reset_password(payload, operator=login_user.user_name)
    except (NotFoundError, ConflictError, PermissionDeniedError) as exc:
        _handle_error(exc)
        raise


@router.put("/changeStatus", status_code=status.HTTP_204_NO_CONTENT)
def change_status(
    payload: UserStatusUpdate,
    login_user: Annotated[LoginUser, Depends(guard(EDIT))],
    service: Service,
    scopes: Scopes,
    auth: AuthServiceDep,
    background_tasks: BackgroundTasks,
) -> None:
    try:
        scopes.ensure_user_visible(login_user, payload.user_id)
        service.change_status(payload, operator=login_user.user_name)
    except (NotFoundError, ConflictError, PermissionDeniedError) as exc:
        _handle_error(exc)
        raise
    if payload.status == Status.DISABLED:
        background_tasks.add_task(auth.revoke_user_sessions, [payload.user_id])


@router.get("/{user_id}", response_model=UserDetailRead)
def get_user(
    user_id: int,
    login_user: Annotated[LoginUser, Depends(guard(QUERY))],
    service: Service,
    scopes: Scopes,
) -> UserDetailRead:
    try:
        scopes.ensure_user_visible(login_user, user_id)
        return service.get_user_detail(user_id)
    except (NotFoundError, PermissionDeniedError) as exc:
        _handle_error(exc)
        raise


@router.post("", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreate,
    login_user: Annotated[LoginUser, Depends(guard(ADD))],
    service: Service,
    scopes: Scopes,
) -> UserRead:
    try:
        if payload.dept_id is not None:
            scopes.ensure_dept_visible(login_user, payload.dept_id)
        return UserRead.model_validate(service.create_user(payload, operator=login_user.user_name))
    except (NotFoundError, ConflictError, PermissionDeniedError) as exc:
        _handle_error(exc)
        raise


@router.put("", response_model=UserRead)
def update_user(
    payload: UserUpdate,
    login_user: Annotated[LoginUser, Depends(guard(EDIT))],
    service: Service,
    scopes: Scopes,
    auth: AuthServiceDep,
    background_tasks: BackgroundTasks,
) -> UserRead:
    try:
        scopes.ensure_user_visible(login_user, payload.user_id)
        user = service.update_user(payload, operator=login_user.user_name)
    except (NotFoundError, ConflictError, PermissionDeniedError) as exc:
        _handle_error(exc)
        raise
    if payload.status == Status.DISABLED:
        background_tasks.add_task(auth.revoke_user_sessions, [payload.user_id])
    else:
        background_tasks.add_task(auth.refresh_user_sessions, [payload.user_id])
    return UserRead.model_validate(user)


@router.delete("/{user_ids}", status_code=status.HTTP_204_NO_CONTENT)
def delete_users(
    user_ids: str,
    login_user: Annotated[LoginUser, Depends(guard(REMOVE))],
    service: Service,
    scopes: Scopes,
    auth: AuthServiceDep,
    background_tasks: BackgroundTasks,
) -> None:
    ids = parse_ids(user_ids)
    try:
        for user_id in ids:
            scopes.ensure_user_visible(login_user, user_id)
        service.delete_users(ids, operator=login_user.user_name, current_user_id=login_user.user_id)
    except (NotFoundError, ConflictError, PermissionDeniedError) as exc:
        _handle_error(exc)
        raise
    background_tasks.add_task(auth.revoke_user_sessions, ids)
