from __future__ import annotations

import logging
from datetime import datetime

from sqlmodel import Session, col, select

from app.domain.models import OnlineSessionRead, OperLog
from app.infra.db import get_engine
from app.services.errors import NotFoundError
from app.services.paging import PageQuery, paginate
from app.services.token_service import TokenService

logger = logging.getLogger(__name__)


class MonitorService:
    """Online sessions and the operation log."""

    def __init__(self, token_service: TokenService | None = None) -> None:
        self.tokens = token_service or TokenService()

    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def list_online(
        self,
        *,
        user_name: str | None = None,
        ipaddr: str | None = None,
    ) -> list[OnlineSessionRead]:
        return [
            OnlineSessionRead(
                token_id=item.token,
                user_name=item.user_name,
                dept_id=item.dept_id,
                ipaddr=item.ipaddr,
                browser=item.browser,
                os=item.os,
                login_time=item.login_time,
            )
            for item in self.tokens.list_online(user_name=user_name, ipaddr=ipaddr)
        ]

    def force_logout(self, token_id: str, *, operator: str) -> None:
        if self.tokens.store.get(token_id) is None:
            raise NotFoundError("online session not found")
        self.tokens.delete(token_id)
        logger.info("session %s forced out by %s", token_id, operator)

    def list_oper_logs(
        self,
        *,
        title: str | None = None,
        oper_name: str | None = None,
        business_type: int | None = None,
        status: int | None = None,
        begin_time: datetime | None = None,
        end_time: datetime | None = None,
        page: PageQuery | None = None,
    ) -> tuple[list[OperLog], int]:
        statement = select(OperLog)
        if title:
            statement = statement.where(col(OperLog.title).contains(title))
        if oper_name:
            statement = statement.where(col(OperLog.oper_name).contains(oper_name))
        if business_type is not None:
            statement = statement.where(OperLog.business_type == business_type)
        if status is not None:
            statement = statement.where(OperLog.status == status)
        if begin_time is not None:
            statement = statement.where(col(OperLog.oper_time) >= begin_time)
        if end_time is not None:
            statement = statement.where(col(OperLog.oper_time) <= end_time)
        statement = statement.order_by(col(OperLog.oper_id).desc())
        with self._session() as session:
            return paginate(session, statement, page)

    def delete_oper_logs(self, oper_ids: list[int]) -> int:
        with self._session() as session:
            rows = session.exec(select(OperLog).where(col(OperLog.oper_id).in_(oper_ids))).all()
            for row in rows:
                session.delete(row)
            session.commit()
            return len(rows)

    def clean_oper_logs(self, *, operator: str) -> int:
        with self._session() as session:
            rows = session.exec(select(OperLog)).all()
            for row in rows:
                session.delete(row)
            session.commit()
        logger.info("operation log cleaned by %s (%d rows)", operator, len(rows))
        return len(rows)
