from __future__ import annotations

import json
import logging
import time
from typing import Any

from sqlmodel import Session
from starlette.background import BackgroundTask
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.domain.models import BusinessType, LoginUser, OperLog
from app.infra.db import get_engine
from app.infra.request_meta import client_ip

logger = logging.getLogger(__name__)

WRITE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}
UNAUDITED_PATHS = {"/healthz", "/readyz", "/login", "/logout", "/captchaImage"}
AUDIT_CONTEXT_STATE_KEY = "_audit_context"
MASKED_KEYWORDS = ("password", "secret", "token")
MASK = "******"
MAX_TEXT_LENGTH = 2000


def write_oper_log(entry: OperLog) -> None:
    with Session(get_engine()) as session:
        session.add(entry)
        session.commit()


def write_oper_log_quietly(entry: OperLog) -> None:
    try:
        write_oper_log(entry)
    except Exception:
        logger.exception("failed to write operation log for %s %s", entry.request_method, entry.oper_url)


def _mask(params: dict[str, Any]) -> dict[str, Any]:
    return {
        key: MASK if any(word in key.lower() for word in MASKED_KEYWORDS) else value
        for key, value in params.items()
    }


def _error_detail(body: bytes) -> str:
    try:
        payload = json.loads(body)
    except ValueError:
        return body.decode("utf-8", errors="replace")[:MAX_TEXT_LENGTH]
    detail = payload.get("detail", payload) if isinstance(payload, dict) else payload
    return (detail if isinstance(detail, str) else json.dumps(detail, default=str))[:MAX_TEXT_LENGTH]


def should_audit_request(method: str, path: str, context: dict[str, Any]) -> bool:
    if path in UNAUDITED_PATHS:
        return False
    return method in WRITE_METHODS or "title" in context


def set_audit_context(
    request: Request,
    *,
    title: str | None = None,
    business_type: BusinessType | None = None,
) -> None:
    context_raw = getattr(request.state, AUDIT_CONTEXT_STATE_KEY, {})
    context = dict(context_raw) if isinstance(context_raw, dict) else {}
    if title is not None:
        context["title"] = title
    if business_type is not None:
        context["business_type"] = int(business_type)
    setattr(request.state, AUDIT_CONTEXT_STATE_KEY, context)


class AuditMiddleware(BaseHTTPMiddleware):
    """Record audited operations to ``sys_oper_log`` after the response is sent."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        path = request.url.path
        method = request.method
        context_raw = getattr(request.state, AUDIT_CONTEXT_STATE_KEY, {})
        context = context_raw if isinstance(context_raw, dict) else {}
        if not should_audit_request(method, path, context):
            return response

        error_msg: str | None = None
        if response.status_code >= 400:
            body = b"".join([chunk async for chunk in response.body_iterator])  # type: ignore[attr-defined]
            error_msg = _error_detail(body)
            response = Response(
                content=body,
                status_code=response.status_code,
                headers=dict(response.headers),
                media_type=response.media_type,
            )

        login_user = getattr(request.state, "login_user", None)
        route = request.scope.get("route")
        endpoint = getattr(route, "endpoint", None)
        params = {**dict(request.query_params), **dict(request.path_params)}
        entry = OperLog(
            title=context.get("title", path),
            business_type=context.get("business_type", BusinessType.OTHER),
            method=f"{endpoint.__module__}.{endpoint.__name__}" if endpoint is not None else "",
            request_method=method,
            oper_name=login_user.user_name if isinstance(login_user, LoginUser) else "",
            dept_name=login_user.user.dept_name if isinstance(login_user, LoginUser) else None,
            oper_url=path,
            oper_ip=client_ip(request),
            oper_param=json.dumps(_mask(params), default=str, ensure_ascii=False)[:MAX_TEXT_LENGTH],
            status=0 if response.status_code < 400 else 1,
            error_msg=error_msg,
            cost_time=int((time.perf_counter() - started) * 1000),
        )
        response.background = BackgroundTask(write_oper_log_quietly, entry)
        return response
