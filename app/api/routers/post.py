from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api.deps import OperationPolicy, Page, guard, parse_ids
from app.domain.models import BusinessType, LoginUser, PageResult, PostCreate, PostRead, PostUpdate, Status
from app.domain.permissions import (
    PERM_POST_ADD,
    PERM_POST_EDIT,
    PERM_POST_LIST,
    PERM_POST_QUERY,
    PERM_POST_REMOVE,
)
from app.services.errors import ConflictError, NotFoundError
from app.services.post_service import PostService

router = APIRouter()

LIST = OperationPolicy(permissions=(PERM_POST_LIST,))
QUERY = OperationPolicy(permissions=(PERM_POST_QUERY,))
ADD = OperationPolicy(permissions=(PERM_POST_ADD,), log_title="post", business_type=BusinessType.INSERT)
EDIT = OperationPolicy(permissions=(PERM_POST_EDIT,), log_title="post", business_type=BusinessType.UPDATE)
REMOVE = OperationPolicy(permissions=(PERM_POST_REMOVE,), log_title="post", business_type=BusinessType.DELETE)


def get_post_service() -> PostService:
    return PostService()


Service = Annotated[PostService, Depends(get_post_service)]


def _handle_error(exc: Exception) -> None:
    if isinstance(exc, NotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, ConflictError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    raise exc


@router.get("/list", response_model=PageResult)
def list_posts(
    _: Annotated[LoginUser, Depends(guard(LIST))],
    service: Service,
    page: Page,
    post_code: str | None = None,
    post_name: str | None = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
) -> PageResult:
    rows, total = service.list_posts(post_code=post_code, post_name=post_name, status=status_filter, page=page)
    return PageResult(total=total, rows=[PostRead.model_validate(item) for item in rows])


@router.get("/optionselect", response_model=list[PostRead])
def option_select(_: Annotated[LoginUser, Depends(guard(QUERY))], service: Service) -> list[PostRead]:
    rows, _total = service.list_posts(status=Status.NORMAL)
    return [PostRead.model_validate(item) for item in rows]


@router.get("/{post_id}", response_model=PostRead)
def get_post(post_id: int, _: Annotated[LoginUser, Depends(guard(QUERY))], service: Service) -> PostRead:
    try:
        return PostRead.model_validate(service.get_post(post_id))
    except NotFoundError as exc:
        _handle_error(exc)
        raise


@router.post("", response_model=PostRead, status_code=status.HTTP_201_CREATED)
def create_post(
    payload: PostCreate,
    login_user: Annotated[LoginUser, Depends(guard(ADD))],
    service: Service,
) -> PostRead:
    try:
        return PostRead.model_validate(service.create_post(payload, operator=login_user.user_name))
    except ConflictError as exc:
        _handle_error(exc)
        raise


@router.put("", response_model=PostRead)
def update_post(
    payload: PostUpdate,
    login_user: Annotated[LoginUser, Depends(guard(EDIT))],
    service: Service,
) -> PostRead:
    try:
        return PostRead.model_validate(service.update_post(payload, operator=login_user.user_name))
    except (NotFoundError, ConflictError) as exc:
        _handle_error(exc)
        raise


@router.delete("/{post_ids}", status_code=status.HTTP_204_NO_CONTENT)
def delete_posts(
    post_ids: str,
    login_user: Annotated[LoginUser, Depends(guard(REMOVE))],
    service: Service,
) -> None:
    try:
        service.delete_posts(parse_ids(post_ids), operator=login_user.user_name)
    except (NotFoundError, ConflictError) as exc:
        _handle_error(exc)
        raise
