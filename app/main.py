from __future__ import annotations

import logging
import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from sqlalchemy.exc import OperationalError

from app.api.routers import auth, dept, menu, monitor, post, role, user
from app.infra.audit import AuditMiddleware
from app.infra.db import check_db_ready
from app.infra.observability import setup_logging
from app.infra.redis_state import check_redis_ready, close_redis
from app.services.bootstrap_service import BootstrapService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    if os.getenv("SEED_DEFAULTS", "").lower() in {"1", "true", "yes"}:
        BootstrapService().seed_defaults()
    yield
    close_redis()


app = FastAPI(
    title="ruoyi-admin",
    description="Role based administration backend: users, roles, menus, departments and data scopes.",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(AuditMiddleware)

app.include_router(auth.router, tags=["auth"])
app.include_router(user.router, prefix="/system/user", tags=["user"])
app.include_router(role.router, prefix="/system/role", tags=["role"])
app.include_router(menu.router, prefix="/system/menu", tags=["menu"])
app.include_router(dept.router, prefix="/system/dept", tags=["dept"])
app.include_router(post.router, prefix="/system/post", tags=["post"])
app.include_router(monitor.online_router, prefix="/monitor/online", tags=["monitor"])
app.include_router(monitor.operlog_router, prefix="/monitor/operlog", tags=["monitor"])


@app.exception_handler(RedisError)
def handle_redis_error(_: Request, exc: RedisError) -> JSONResponse:
    logger.error("session store unavailable: %s", exc)
    return JSONResponse(status_code=503, content={"detail": "session store unavailable"})


@app.exception_handler(OperationalError)
def handle_db_error(_: Request, exc: OperationalError) -> JSONResponse:
    logger.error("database unavailable: %s", exc)
    return JSONResponse(status_code=503, content={"detail": "database unavailable"})


@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/readyz")
def readyz() -> dict[str, object]:
    db_ok = check_db_ready()
    redis_ok = check_redis_ready()
    checks = {
        "db": "ok" if db_ok else "fail",
        "redis": "ok" if redis_ok else "fail",
    }
    if not (db_ok and redis_ok):
        raise HTTPException(
            status_code=503,
            detail={"status": "not_ready", "checks": checks},
        )
    return {"status": "ready", "checks": checks}
