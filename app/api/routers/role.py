from __future__ import annotations

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Response, status

from app.api.deps import (
    AuthServiceDep,
    DataScopeDep,
    OperationPolicy,
    Page,
    guard,
    parse_ids,
)
from app.domain.models import (
    AuthUserBatch,
    AuthUserCancel,
    BusinessType,
    LoginUser,
    PageResult,
    RoleCreate,
    RoleDataScopeUpdate,
    RoleDeptTreeRead,
    RoleRead,
    RoleStatusUpdate,
    RoleUpdate,
    UserRead,
)
from app.domain.permissions import (
    PERM_ROLE_ADD,
    PERM_ROLE_EDIT,
    PERM_ROLE_EXPORT,
    PERM_ROLE_LIST,
    PERM_ROLE_QUERY,
    PERM_ROLE_REMOVE,
)
from app.services.dept_service import DeptService
from app.services.errors import ConflictError, NotFoundError, PermissionDeniedError
from app.services.role_service import RoleService

router = APIRouter()

LIST = OperationPolicy(permissions=(PERM_ROLE_LIST,))
QUERY = OperationPolicy(permissions=(PERM_ROLE_QUERY,))
EXPORT = OperationPolicy(permissions=(PERM_ROLE_EXPORT,), log_title="role", business_type=BusinessType.EXPORT)
ADD = OperationPolicy(permissions=(PERM_ROLE_ADD,), log_title="role", business_type=BusinessType.INSERT)
EDIT = OperationPolicy(permissions=(PERM_ROLE_EDIT,), log_title="role", business_type=BusinessType.UPDATE)
GRANT = OperationPolicy(permissions=(PERM_ROLE_EDIT,), log_title="role", business_type=BusinessType.GRANT)
REMOVE = OperationPolicy(permissions=(PERM_ROLE_REMOVE,), log_title="role", business_type=BusinessType.DELETE)


def get_role_service() -> RoleService:
    return RoleService()


def get_dept_service() -> DeptService:
    return DeptService()


Service = Annotated[RoleService, Depends(get_role_service)]


def _handle_error(exc: Exception) -> None:
    if isinstance(exc, NotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, ConflictError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    if isinstance(exc, PermissionDeniedError):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    raise exc


@router.get("/list", response_model=PageResult)
def list_roles(
    _: Annotated[LoginUser, Depends(guard(LIST))],
    service: Service,
    page: Page,
    role_name: str | None = None,
    role_key: str | None = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    begin_time: datetime | None = None,
    end_time: datetime | None = None,
) -> PageResult:
    rows, total = service.list_roles(
        role_name=role_name,
        role_key=role_key,
        status=status_filter,
        begin_time=begin_time,
        end_time=end_time,
        page=page,
    )
    return PageResult(total=total, rows=[RoleRead.model_validate(item) for item in rows])


@router.post("/export")
def export_roles(
    _: Annotated[LoginUser, Depends(guard(EXPORT))],
    service: Service,
    role_name: str | None = None,
    role_key: str | None = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
) -> Response:
    roles, _total = service.list_roles(role_name=role_name, role_key=role_key, status=status_filter)
    return Response(
        content=service.export_roles(roles),
        media_type="text/csv",
        headers={
            "Content-Disposition": "attachment; filename=roles.csv",
            "Access-Control-Expose-Headers": "Content-Disposition",
        },
    )


@router.get("/optionselect", response_model=list[RoleRead])
def option_select(_: Annotated[LoginUser, Depends(guard(QUERY))], service: Service) -> list[RoleRead]:
    return [RoleRead.model_validate(item) for item in service.list_options()]


@router.get("/authUser/allocatedList", response_model=PageResult)
def allocated_users(
    role_id: int,
    _: Annotated[LoginUser, Depends(guard(LIST))],
    scope: DataScopeDep,
    service: Service,
    page: Page,
    user_name: str | None = None,
    phonenumber: str | None = None,
) -> PageResult:
    rows, total = service.list_auth_users(
        role_id,
        allocated=True,
        scope=scope,
        user_name=user_name,
        phonenumber=phonenumber,
        page=page,
    )
    return PageResult(total=total, rows=[UserRead.model_validate(item) for item in rows])


@router.get("/authUser/unallocatedList", response_model=PageResult)
def unallocated_users(
    role_id: int,
    _: Annotated[LoginUser, Depends(guard(LIST))],
    scope: DataScopeDep,
    service: Service,
    page: Page,
    user_name: str | None = None,
    phonenumber: str | None = None,
) -> PageResult:
    rows, total = service.list_auth_users(
        role_id,
        allocated=False,
        scope=scope,
        user_name=user_name,
        phonenumber=phonenumber,
        page=page,
    )
    return PageResult(total=total, rows=[UserRead.model_validate(item) for item in rows])


@router.put("/authUser/cancel", status_code=status.HTTP_204_NO_CONTENT)
def cancel_auth_user(
    payload: AuthUserCancel,
    _: Annotated[LoginUser, Depends(guard(GRANT))],
    service: Service,
    auth: AuthServiceDep,
    background_tasks: BackgroundTasks,
) -> None:
    try:
        user_ids = service.cancel_auth_users(payload.role_id, [payload.user_id])
    except ConflictError as exc:
        _handle_error(exc)
        raise
    background_tasks.add_task(auth.refresh_user_sessions, user_ids)


@router.put("/authUser/cancelAll", status_code=status.HTTP_204_NO_CONTENT)
def cancel_auth_users(
    payload: AuthUserBatch,
    _: Annotated[LoginUser, Depends(guard(GRANT))],
    service: Service,
    auth: AuthServiceDep,
    background_tasks: BackgroundTasks,
) -> None:
    try:
        user_ids = service.cancel_auth_users(payload.role_id, payload.user_ids)
    except ConflictError as exc:
        _handle_error(exc)
        raise
    background_tasks.add_task(auth.refresh_user_sessions, user_ids)


@router.put("/authUser/selectAll", status_code=status.HTTP_204_NO_CONTENT)
def select_auth_users(
    payload: AuthUserBatch,
    _: Annotated[LoginUser, Depends(guard(GRANT))],
    service: Service,
    auth: AuthServiceDep,
    background_tasks: BackgroundTasks,
) -> None:
    try:
        user_ids = service.insert_auth_users(payload.role_id, payload.user_ids)
    except (NotFoundError, ConflictError) as exc:
        _handle_error(exc)
        raise
    background_tasks.add_task(auth.refresh_user_sessions, user_ids)


@router.get("/deptTree/{role_id}", response_model=RoleDeptTreeRead)
def role_dept_tree(
    role_id: int,
    _: Annotated[LoginUser, Depends(guard(QUERY))],
    scope: DataScopeDep,
    service: Service,
    depts: Annotated[DeptService, Depends(get_dept_service)],
) -> RoleDeptTreeRead:
    try:
        checked = service.role_dept_ids(role_id)
    except NotFoundError as exc:
        _handle_error(exc)
        raise
    return depts.role_dept_tree(checked, scope)


@router.get("/{role_id}", response_model=RoleRead)
def get_role(role_id: int, _: Annotated[LoginUser, Depends(guard(QUERY))], service: Service) -> RoleRead:
    try:
        return RoleRead.model_validate(service.get_role(role_id))
    except NotFoundError as exc:
        _handle_error(exc)
        raise


@router.post("", response_model=RoleRead, status_code=status.HTTP_201_CREATED)
def create_role(
    payload: RoleCreate,
    login_user: Annotated[LoginUser, Depends(guard(ADD))],
    service: Service,
) -> RoleRead:
    try:
        return RoleRead.model_validate(service.create_role(payload, operator=login_user.user_name))
    except (NotFoundError, ConflictError) as exc:
        _handle_error(exc)
        raise


@router.put("", status_code=status.HTTP_204_NO_CONTENT)
def update_role(
    payload: RoleUpdate,
    login_user: Annotated[LoginUser, Depends(guard(EDIT))],
    service: Service,
    auth: AuthServiceDep,
    background_tasks: BackgroundTasks,
) -> None:
    try:
        user_ids = service.update_role(payload, operator=login_user.user_name)
    except (NotFoundError, ConflictError) as exc:
        _handle_error(exc)
        raise
    background_tasks.add_task(auth.refresh_user_sessions, user_ids)


@router.put("/dataScope", status_code=status.HTTP_204_NO_CONTENT)
def update_data_scope(
    payload: RoleDataScopeUpdate,
    login_user: Annotated[LoginUser, Depends(guard(EDIT))],
    service: Service,
    auth: AuthServiceDep,
    background_tasks: BackgroundTasks,
) -> None:
    try:
        user_ids = service.update_data_scope(payload, operator=login_user.user_name)
    except (NotFoundError, ConflictError) as exc:
        _handle_error(exc)
        raise
    background_tasks.add_task(auth.refresh_user_sessions, user_ids)


@router.put("/changeStatus", status_code=status.HTTP_204_NO_CONTENT)
def change_status(
    payload: RoleStatusUpdate,
    login_user: Annotated[LoginUser, Depends(guard(EDIT))],
    service: Service,
    auth: AuthServiceDep,
    background_tasks: BackgroundTasks,
) -> None:
    try:
        user_ids = service.change_status(payload, operator=login_user.user_name)
    except (NotFoundError, ConflictError) as exc:
        _handle_error(exc)
        raise
    background_tasks.add_task(auth.refresh_user_sessions, user_ids)


@router.delete("/{role_ids}", status_code=status.HTTP_204_NO_CONTENT)
def delete_roles(
    role_ids: str,
    login_user: Annotated[LoginUser, Depends(guard(REMOVE))],
    service: Service,
) -> None:
    try:
        service.delete_roles(parse_ids(role_ids), operator=login_user.user_name)
    except (NotFoundError, ConflictError) as exc:
        _handle_error(exc)
        raise
