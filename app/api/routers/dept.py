from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api.deps import DataScopeDep, OperationPolicy, guard
from app.domain.models import BusinessType, DeptCreate, DeptRead, DeptUpdate, LoginUser
from app.domain.permissions import (
    PERM_DEPT_ADD,
    PERM_DEPT_EDIT,
    PERM_DEPT_LIST,
    PERM_DEPT_QUERY,
    PERM_DEPT_REMOVE,
)
from app.services.data_scope_service import DataScopeService
from app.services.dept_service import DeptService
from app.services.errors import ConflictError, NotFoundError, PermissionDeniedError

router = APIRouter()

LIST = OperationPolicy(permissions=(PERM_DEPT_LIST,))
QUERY = OperationPolicy(permissions=(PERM_DEPT_QUERY,))
ADD = OperationPolicy(permissions=(PERM_DEPT_ADD,), log_title="dept", business_type=BusinessType.INSERT)
EDIT = OperationPolicy(permissions=(PERM_DEPT_EDIT,), log_title="dept", business_type=BusinessType.UPDATE)
REMOVE = OperationPolicy(permissions=(PERM_DEPT_REMOVE,), log_title="dept", business_type=BusinessType.DELETE)


def get_dept_service() -> DeptService:
    return DeptService()


def get_data_scope_service() -> DataScopeService:
    return DataScopeService()


Service = Annotated[DeptService, Depends(get_dept_service)]
Scopes = Annotated[DataScopeService, Depends(get_data_scope_service)]


def _handle_error(exc: Exception) -> None:
    if isinstance(exc, NotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, ConflictError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    if isinstance(exc, PermissionDeniedError):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    raise exc


@router.get("/list", response_model=list[DeptRead])
def list_depts(
    _: Annotated[LoginUser, Depends(guard(LIST))],
    scope: DataScopeDep,
    service: Service,
    dept_name: str | None = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
) -> list[DeptRead]:
    depts = service.list_depts(scope, dept_name=dept_name, status=status_filter)
    return [DeptRead.model_validate(item) for item in depts]


@router.get("/list/exclude/{dept_id}", response_model=list[DeptRead])
def list_excluding(
    dept_id: int,
    _: Annotated[LoginUser, Depends(guard(LIST))],
    scope: DataScopeDep,
    service: Service,
) -> list[DeptRead]:
    return [DeptRead.model_validate(item) for item in service.list_excluding(dept_id, scope)]


@router.get("/{dept_id}", response_model=DeptRead)
def get_dept(
    dept_id: int,
    login_user: Annotated[LoginUser, Depends(guard(QUERY))],
    service: Service,
    scopes: Scopes,
) -> DeptRead:
    try:
        scopes.ensure_dept_visible(login_user, dept_id)
        return DeptRead.model_validate(service.get_dept(dept_id))
    except (NotFoundError, PermissionDeniedError) as exc:
        _handle_error(exc)
        raise


@router.post("", response_model=DeptRead, status_code=status.HTTP_201_CREATED)
def create_dept(
    payload: DeptCreate,
    login_user: Annotated[LoginUser, Depends(guard(ADD))],
    service: Service,
    scopes: Scopes,
) -> DeptRead:
    try:
        if payload.parent_id:
            scopes.ensure_dept_visible(login_user, payload.parent_id)
        return DeptRead.model_validate(service.create_dept(payload, operator=login_user.user_name))
    except (NotFoundError, ConflictError, PermissionDeniedError) as exc:
        _handle_error(exc)
        raise


@router.put("", response_model=DeptRead)
def update_dept(
    payload: DeptUpdate,
    login_user: Annotated[LoginUser, Depends(guard(EDIT))],
    service: Service,
    scopes: Scopes,
) -> DeptRead:
    try:
        scopes.ensure_dept_visible(login_user, payload.dept_id)
        return DeptRead.model_validate(service.update_dept(payload, operator=login_user.user_name))
    except (NotFoundError, ConflictError, PermissionDeniedError) as exc:
        _handle_error(exc)
        raise


@router.delete("/{dept_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_dept(
    dept_id: int,
    login_user: Annotated[LoginUser, Depends(guard(REMOVE))],
    service: Service,
    scopes: Scopes,
) -> None:
    try:
        scopes.ensure_dept_visible(login_user, dept_id)
        service.delete_dept(dept_id, operator=login_user.user_name)
    except (NotFoundError, ConflictError, PermissionDeniedError) as exc:
        _handle_error(exc)
        raise
