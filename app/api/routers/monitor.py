from __future__ import annotations

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api.deps import OperationPolicy, Page, guard, parse_ids
from app.domain.models import BusinessType, LoginUser, OnlineSessionRead, OperLogRead, PageResult
from app.domain.permissions import (
    PERM_ONLINE_FORCE_LOGOUT,
    PERM_ONLINE_LIST,
    PERM_OPERLOG_LIST,
    PERM_OPERLOG_REMOVE,
)
from app.services.errors import NotFoundError
from app.services.monitor_service import MonitorService

online_router = APIRouter()
operlog_router = APIRouter()

ONLINE_LIST = OperationPolicy(permissions=(PERM_ONLINE_LIST,))
FORCE_LOGOUT = OperationPolicy(
    permissions=(PERM_ONLINE_FORCE_LOGOUT,),
    log_title="online user",
    business_type=BusinessType.FORCE,
)
OPERLOG_LIST = OperationPolicy(permissions=(PERM_OPERLOG_LIST,))
OPERLOG_REMOVE = OperationPolicy(
    permissions=(PERM_OPERLOG_REMOVE,),
    log_title="operation log",
    business_type=BusinessType.DELETE,
)
OPERLOG_CLEAN = OperationPolicy(
    permissions=(PERM_OPERLOG_REMOVE,),
    log_title="operation log",
    business_type=BusinessType.CLEAN,
)


def get_monitor_service() -> MonitorService:
    return MonitorService()


Service = Annotated[MonitorService, Depends(get_monitor_service)]


@online_router.get("/list", response_model=PageResult)
def list_online(
    _: Annotated[LoginUser, Depends(guard(ONLINE_LIST))],
    service: Service,
    user_name: str | None = None,
    ipaddr: str | None = None,
) -> PageResult:
    rows: list[OnlineSessionRead] = service.list_online(user_name=user_name, ipaddr=ipaddr)
    return PageResult(total=len(rows), rows=rows)


@online_router.delete("/{token_id}", status_code=status.HTTP_204_NO_CONTENT)
def force_logout(
    token_id: str,
    login_user: Annotated[LoginUser, Depends(guard(FORCE_LOGOUT))],
    service: Service,
) -> None:
    try:
        service.force_logout(token_id, operator=login_user.user_name)
    except NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


@operlog_router.get("/list", response_model=PageResult)
def list_oper_logs(
    _: Annotated[LoginUser, Depends(guard(OPERLOG_LIST))],
    service: Service,
    page: Page,
    title: str | None = None,
    oper_name: str | None = None,
    business_type: int | None = None,
    status_filter: Annotated[int | None, Query(alias="status")] = None,
    begin_time: datetime | None = None,
    end_time: datetime | None = None,
) -> PageResult:
    rows, total = service.list_oper_logs(
        title=title,
        oper_name=oper_name,
        business_type=business_type,
        status=status_filter,
        begin_time=begin_time,
        end_time=end_time,
        page=page,
    )
    return PageResult(total=total, rows=[OperLogRead.model_validate(item) for item in rows])


@operlog_router.delete("/clean", status_code=status.HTTP_204_NO_CONTENT)
def clean_oper_logs(
    login_user: Annotated[LoginUser, Depends(guard(OPERLOG_CLEAN))],
    service: Service,
) -> None:
    service.clean_oper_logs(operator=login_user.user_name)


@operlog_router.delete("/{oper_ids}", status_code=status.HTTP_204_NO_CONTENT)
def delete_oper_logs(
    oper_ids: str,
    _: Annotated[LoginUser, Depends(guard(OPERLOG_REMOVE))],
    service: Service,
) -> None:
    service.delete_oper_logs(parse_ids(oper_ids))
