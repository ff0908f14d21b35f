from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable, Iterable
from uuid import uuid4

from app.domain.models import LoginUser
from app.infra.auth import create_access_token, validate_token
from app.infra.session_store import SessionStore

logger = logging.getLogger(__name__)

SESSION_EXPIRE_MIN = int(os.getenv("SESSION_EXPIRE_MIN", "30"))
SESSION_RENEW_RATIO = float(os.getenv("SESSION_RENEW_RATIO", "0.6667"))

MILLIS_MINUTE = 60 * 1000

SessionRebuilder = Callable[[LoginUser], LoginUser]


def _now_ms() -> int:
    return int(time.time() * 1000)


class TokenService:
    """Session lifecycle on top of the session store and the token codec."""

    def __init__(
        self,
        store: SessionStore | None = None,
        *,
        expire_minutes: int | None = None,
        renew_ratio: float | None = None,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self.store = store or SessionStore()
        self.expire_minutes = expire_minutes or SESSION_EXPIRE_MIN
        self.renew_ratio = SESSION_RENEW_RATIO if renew_ratio is None else renew_ratio
        self.clock = clock

    @property
    def ttl_seconds(self) -> int:
        return self.expire_minutes * 60

    def create_token(self, login_user: LoginUser) -> str:
        login_user.token = uuid4().hex
        self.refresh(login_user)
        return create_access_token(login_user.token)

    def get_login_user(self, token: str) -> LoginUser | None:
        """Validate ``token`` and load its session; token errors propagate."""
        session_id = validate_token(token)
        return self.store.get(session_id)

    def refresh(self, login_user: LoginUser, *, only_if_present: bool = False) -> bool:
        login_user.login_time = self.clock()
        login_user.expire_time = login_user.login_time + self.expire_minutes * MILLIS_MINUTE
        return self.store.put(
            login_user.token,
            login_user,
            self.ttl_seconds,
            only_if_present=only_if_present,
        )

    def needs_renewal(self, login_user: LoginUser) -> bool:
        remaining = login_user.expire_time - self.clock()
        return remaining <= self.expire_minutes * MILLIS_MINUTE * self.renew_ratio

    def renew_quietly(self, login_user: LoginUser) -> None:
        try:
            renewed = self.refresh(login_user, only_if_present=True)
        except Exception:
            logger.exception("sliding renewal failed for session %s", login_user.token)
            return
        if not renewed:
            logger.debug("session %s ended before renewal", login_user.token)
            return
        logger.debug("renewed session %s for %s", login_user.token, login_user.user_name)

    def delete(self, session_id: str) -> None:
        if session_id:
            self.store.delete(session_id)

    def list_online(
        self,
        *,
        user_name: str | None = None,
        ipaddr: str | None = None,
    ) -> list[LoginUser]:
        online: list[LoginUser] = []
        for session_id in self.store.scan():
            record = self.store.get(session_id)
            if record is None:
                continue
            if user_name and user_name not in record.user_name:
                continue
            if ipaddr and ipaddr not in record.ipaddr:
                continue
            online.append(record)
        return sorted(online, key=lambda item: item.login_time, reverse=True)

    def delete_sessions_for_users(self, user_ids: Iterable[int]) -> int:
        """Drop every live session of ``user_ids``; returns how many were removed."""
        targets = set(user_ids)
        if not targets:
            return 0
        removed = 0
        for session_id in self.store.scan():
            record = self.store.get(session_id)
            if record is None or record.user_id not in targets:
                continue
            self.store.delete(session_id)
            removed += 1
        return removed

    def refresh_sessions_for_users(
        self,
        user_ids: Iterable[int],
        rebuild: SessionRebuilder,
    ) -> int:
        """Rewrite every live session of ``user_ids`` with a rebuilt record.

        Returns the number of sessions rewritten. A failure on one session is
        logged and does not stop the walk.
        """
        targets = set(user_ids)
        if not targets:
            return 0
        rewritten = 0
        for session_id in self.store.scan():
            record = self.store.get(session_id)
            if record is None or record.user_id not in targets:
                continue
            try:
                rebuilt = rebuild(record)
                rebuilt.token = record.token
                if not self.refresh(rebuilt, only_if_present=True):
                    continue
            except Exception:
                logger.exception("failed to refresh permissions for session %s", session_id)
                continue
            rewritten += 1
        return rewritten
