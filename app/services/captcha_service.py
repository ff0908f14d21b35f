from __future__ import annotations

import os
import secrets
from collections.abc import Callable
from uuid import uuid4

from redis import Redis

from app.infra import redis_state

CAPTCHA_CODE_KEY = "captcha_codes:"
CAPTCHA_ENABLED = os.getenv("CAPTCHA_ENABLED", "false").lower() in {"1", "true", "yes"}
CAPTCHA_EXPIRE_SECONDS = int(os.getenv("CAPTCHA_EXPIRE_SECONDS", "120"))
CAPTCHA_LENGTH = 4


class CaptchaError(Exception):
    pass


class CaptchaService:
    def __init__(
        self,
        redis_factory: Callable[[], Redis] | None = None,
        *,
        enabled: bool | None = None,
    ) -> None:
        self._redis_factory = redis_factory
        self.enabled = CAPTCHA_ENABLED if enabled is None else enabled

    @property
    def redis(self) -> Redis:
        factory = self._redis_factory or redis_state.get_redis
        return factory()

    def _key(self, uuid: str) -> str:
        return f"{CAPTCHA_CODE_KEY}{uuid}"

    def generate_code(self, length: int = CAPTCHA_LENGTH) -> str:
        return "".join(secrets.choice("0123456789") for _ in range(length))

    def create(self) -> tuple[str, str]:
        uuid = uuid4().hex
        code = self.generate_code()
        self.redis.set(self._key(uuid), code.lower(), ex=CAPTCHA_EXPIRE_SECONDS)
        return uuid, code

    def verify(self, uuid: str | None, code: str | None) -> None:
        """Check a captcha answer; the stored code is consumed either way."""
        if not uuid or not code:
            if self.enabled:
                raise CaptchaError("captcha is required")
            return
        saved = self.redis.getdel(self._key(uuid))
        if saved is None:
            raise CaptchaError("captcha expired")
        if saved != code.strip().lower():
            raise CaptchaError("captcha mismatch")

    def render_svg(self, code: str) -> str:
        width, height, font_size = 100, 40, 24
        rng = secrets.SystemRandom()

        def color() -> str:
            return f"rgb({rng.randint(0, 199)},{rng.randint(0, 199)},{rng.randint(0, 199)})"

        lines = "".join(
            f'<line x1="{rng.uniform(0, width):.1f}" y1="{rng.uniform(0, height):.1f}" '
            f'x2="{rng.uniform(0, width):.1f}" y2="{rng.uniform(0, height):.1f}" '
            f'stroke="{color()}" stroke-width="1"/>'
            for _ in range(3)
        )
        char_width = width / max(len(code), 1)
        chars = []
        for index, char in enumerate(code):
            x = char_width * index + char_width / 2
            y = height / 2 + font_size / 3
            rotate = rng.uniform(-15, 15)
            chars.append(
                f'<text x="{x:.1f}" y="{y:.1f}" font-size="{font_size}" fill="{color()}" '
                f'transform="rotate({rotate:.1f} {x:.1f} {y:.1f})" text-anchor="middle">{char}</text>'
            )
        return (
            f'<svg xmlns="http://www.w3.org/2000/svg" width="{width}" height="{height}">'
            f'<rect width="100%" height="100%" fill="#f0f0f0"/>{lines}{"".join(chars)}</svg>'
        )
