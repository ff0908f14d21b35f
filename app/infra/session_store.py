from __future__ import annotations

import logging
from collections.abc import Callable

from pydantic import ValidationError
from redis import Redis
from redis.exceptions import TimeoutError as RedisTimeoutError

from app.domain.models import LoginUser
from app.infra import redis_state

logger = logging.getLogger(__name__)

LOGIN_TOKEN_KEY = "login_tokens:"


class SessionStore:
    """Session records in Redis, one JSON document per session id.

    Every write is a full-record ``SET ... EX`` so the value and its TTL land
    together; concurrent writers for the same id resolve last-writer-wins.
    """

    def __init__(
        self,
        redis_factory: Callable[[], Redis] | None = None,
        key_prefix: str = LOGIN_TOKEN_KEY,
    ) -> None:
        self._redis_factory = redis_factory
        self.key_prefix = key_prefix

    @property
    def redis(self) -> Redis:
        factory = self._redis_factory or redis_state.get_redis
        return factory()

    def key(self, session_id: str) -> str:
        return f"{self.key_prefix}{session_id}"

    def put(
        self,
        session_id: str,
        record: LoginUser,
        ttl_seconds: int,
        *,
        only_if_present: bool = False,
    ) -> bool:
        """Write ``record`` with a fresh TTL; returns False if ``only_if_present`` skipped it."""
        if ttl_seconds <= 0:
            raise ValueError("session ttl must be positive")
        written = self.redis.set(
            self.key(session_id),
            record.model_dump_json(),
            ex=ttl_seconds,
            xx=only_if_present,
        )
        return bool(written)

    def get(self, session_id: str) -> LoginUser | None:
        try:
            raw = self.redis.get(self.key(session_id))
        except RedisTimeoutError:
            logger.warning("session store timed out loading %s, treating as miss", session_id)
            return None
        if raw is None:
            return None
        try:
            return LoginUser.model_validate_json(raw)
        except ValidationError:
            logger.warning("dropping undecodable session record %s", session_id)
            return None

    def delete(self, session_id: str) -> None:
        self.redis.delete(self.key(session_id))

    def ttl(self, session_id: str) -> int:
        return int(self.redis.ttl(self.key(session_id)))

    def scan(self, prefix: str = "") -> list[str]:
        """Return the ids of live sessions whose id starts with ``prefix``."""
        pattern = f"{self.key_prefix}{prefix}*"
        offset = len(self.key_prefix)
        return [key[offset:] for key in self.redis.scan_iter(match=pattern, count=200)]
