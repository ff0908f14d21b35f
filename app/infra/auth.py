from __future__ import annotations

import os
from datetime import UTC, datetime, timedelta

import jwt
from pydantic import ValidationError

from app.domain.models import TokenClaims

JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret-change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MIN = int(os.getenv("JWT_EXPIRES_MIN", str(7 * 24 * 60)))


class TokenError(Exception):
    pass


class MalformedTokenError(TokenError):
    pass


class ExpiredTokenError(TokenError):
    pass


class BadSignatureError(TokenError):
    pass


class TokenConfigError(RuntimeError):
    pass


def _signing_secret() -> str:
    if not JWT_SECRET:
        raise TokenConfigError("JWT_SECRET is not configured")
    return JWT_SECRET


def create_access_token(session_id: str, *, expires_minutes: int | None = None) -> str:
    """Mint a token that carries nothing but the opaque session id."""
    now = datetime.now(UTC)
    expire_delta = timedelta(minutes=expires_minutes or JWT_EXPIRES_MIN)
    claims = TokenClaims(
        login_user_key=session_id,
        iat=int(now.timestamp()),
        exp=int((now + expire_delta).timestamp()),
    )
    return jwt.encode(claims.model_dump(), _signing_secret(), algorithm=JWT_ALGORITHM)


def _check_structure(token: str) -> None:
    """Parse header and claims on their own so a damaged signature is not reported as malformed."""
    segments = token.split(".")
    if len(segments) != 3:
        raise MalformedTokenError("token cannot be parsed")
    try:
        jwt.decode(f"{segments[0]}.{segments[1]}.", options={"verify_signature": False})
    except jwt.InvalidTokenError as exc:
        raise MalformedTokenError("token cannot be parsed") from exc


def decode_access_token(token: str) -> TokenClaims:
    secret = _signing_secret()
    _check_structure(token)
    try:
        decoded = jwt.decode(
            token,
            secret,
            algorithms=[JWT_ALGORITHM],
            options={"require": ["exp", "iat"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise ExpiredTokenError("token expired") from exc
    except jwt.DecodeError as exc:
        # header and claims already parsed, only the signature segment is left
        raise BadSignatureError("token signature mismatch") from exc
    except jwt.InvalidTokenError as exc:
        raise MalformedTokenError("token cannot be parsed") from exc
    if not isinstance(decoded, dict):
        raise MalformedTokenError("invalid token payload")
    try:
        return TokenClaims.model_validate(decoded)
    except ValidationError as exc:
        raise MalformedTokenError("unexpected token claims") from exc


def validate_token(token: str) -> str:
    return decode_access_token(token).login_user_key
