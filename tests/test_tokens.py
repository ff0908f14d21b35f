from __future__ import annotations

import time

import fakeredis
import jwt
import pytest

from app.domain.models import LoginUser, UserProfile
from app.infra import auth
from app.infra.auth import (
    BadSignatureError,
    ExpiredTokenError,
    MalformedTokenError,
    create_access_token,
    validate_token,
)
from app.infra.security import hash_password, verify_password
from app.infra.session_store import LOGIN_TOKEN_KEY, SessionStore
from app.services.token_service import MILLIS_MINUTE, TokenService


class FakeClock:
    def __init__(self, now_ms: int = 1_700_000_000_000) -> None:
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, minutes: float) -> None:
        self.now_ms += int(minutes * MILLIS_MINUTE)


def _login_user(user_id: int = 5, user_name: str = "tester") -> LoginUser:
    return LoginUser(
        user_id=user_id,
        dept_id=105,
        user_name=user_name,
        permissions=["system:user:list"],
        user=UserProfile(user_id=user_id, user_name=user_name),
    )


def test_token_round_trip_returns_session_id() -> None:
    token = create_access_token("abc123")
    assert validate_token(token) == "abc123"


def test_token_signed_with_other_secret_is_rejected() -> None:
    now = int(time.time())
    forged = jwt.encode(
        {"login_user_key": "abc123", "iat": now, "exp": now + 60},
        "another-secret",
        algorithm=auth.JWT_ALGORITHM,
    )
    with pytest.raises(BadSignatureError):
        validate_token(forged)


URLSAFE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_"


@pytest.mark.parametrize("index", [0, 10, -2, -1])
def test_token_with_altered_signature_byte_is_rejected(index: int) -> None:
    header, payload, signature = create_access_token("abc123").split(".")
    chars = list(signature)
    # flip the top bit of the sextet so the decoded signature bytes change
    chars[index] = URLSAFE_ALPHABET[(URLSAFE_ALPHABET.index(chars[index]) + 32) % 64]
    with pytest.raises(BadSignatureError):
        validate_token(f"{header}.{payload}.{''.join(chars)}")


@pytest.mark.parametrize("replacement", ["!", "==", ""])
def test_token_with_garbled_signature_tail_is_rejected(replacement: str) -> None:
    header, payload, signature = create_access_token("abc123").split(".")
    with pytest.raises(BadSignatureError):
        validate_token(f"{header}.{payload}.{signature[:-1]}{replacement}")


def test_expired_token_is_rejected() -> None:
    token = create_access_token("abc123", expires_minutes=-1)
    with pytest.raises(ExpiredTokenError):
        validate_token(token)


@pytest.mark.parametrize("raw", ["not-a-token", "a.b.c", ""])
def test_malformed_token_is_rejected(raw: str) -> None:
    with pytest.raises(MalformedTokenError):
        validate_token(raw)


def test_token_with_unexpected_claims_is_rejected() -> None:
    now = int(time.time())
    token = jwt.encode(
        {"login_user_key": "abc123", "iat": now, "exp": now + 60, "role": "admin"},
        auth.JWT_SECRET,
        algorithm=auth.JWT_ALGORITHM,
    )
    with pytest.raises(MalformedTokenError):
        validate_token(token)


def test_token_without_expiry_is_rejected() -> None:
    token = jwt.encode({"login_user_key": "abc123", "iat": int(time.time())}, auth.JWT_SECRET, algorithm="HS256")
    with pytest.raises(MalformedTokenError):
        validate_token(token)


def test_password_hash_verifies_only_original() -> None:
    hashed = hash_password("admin123")
    assert hashed != "admin123"
    assert verify_password("admin123", hashed)
    assert not verify_password("admin124", hashed)
    assert not verify_password("admin123", "not-a-hash")
    assert not verify_password("admin123", "")


def test_session_store_sets_ttl_and_round_trips() -> None:
    fake = fakeredis.FakeRedis(decode_responses=True)
    store = SessionStore(lambda: fake)
    record = _login_user()
    assert store.put("sid-1", record, 1800)
    assert 1790 <= store.ttl("sid-1") <= 1800
    loaded = store.get("sid-1")
    assert loaded is not None
    assert loaded.user_name == "tester"
    assert store.scan() == ["sid-1"]


def test_session_store_conditional_put_skips_missing_key() -> None:
    fake = fakeredis.FakeRedis(decode_responses=True)
    store = SessionStore(lambda: fake)
    assert store.put("sid-1", _login_user(), 60, only_if_present=True) is False
    assert store.get("sid-1") is None


def test_session_store_drops_undecodable_record() -> None:
    fake = fakeredis.FakeRedis(decode_responses=True)
    fake.set(f"{LOGIN_TOKEN_KEY}sid-1", "{broken")
    store = SessionStore(lambda: fake)
    assert store.get("sid-1") is None


def test_session_store_rejects_non_positive_ttl() -> None:
    store = SessionStore(lambda fake=fakeredis.FakeRedis(decode_responses=True): fake)
    with pytest.raises(ValueError):
        store.put("sid-1", _login_user(), 0)


def test_create_token_stamps_expiry_from_clock() -> None:
    clock = FakeClock()
    tokens = TokenService(SessionStore(lambda fake=fakeredis.FakeRedis(decode_responses=True): fake), clock=clock)
    record = _login_user()
    token = tokens.create_token(record)
    assert record.login_time == clock.now_ms
    assert record.expire_time == clock.now_ms + 30 * MILLIS_MINUTE
    loaded = tokens.get_login_user(token)
    assert loaded is not None
    assert loaded.token == record.token


def test_renewal_is_due_only_near_expiry() -> None:
    clock = FakeClock()
    tokens = TokenService(SessionStore(lambda fake=fakeredis.FakeRedis(decode_responses=True): fake), clock=clock)
    record = _login_user()
    tokens.create_token(record)
    clock.advance(5)
    assert not tokens.needs_renewal(record)
    clock.advance(6)
    assert tokens.needs_renewal(record)


def test_renewal_extends_expiry() -> None:
    clock = FakeClock()
    tokens = TokenService(SessionStore(lambda fake=fakeredis.FakeRedis(decode_responses=True): fake), clock=clock)
    record = _login_user()
    tokens.create_token(record)
    clock.advance(15)
    tokens.renew_quietly(record)
    loaded = tokens.store.get(record.token)
    assert loaded is not None
    assert loaded.expire_time == clock.now_ms + 30 * MILLIS_MINUTE


def test_renewal_does_not_resurrect_deleted_session() -> None:
    tokens = TokenService(SessionStore(lambda fake=fakeredis.FakeRedis(decode_responses=True): fake))
    record = _login_user()
    tokens.create_token(record)
    tokens.delete(record.token)
    tokens.renew_quietly(record)
    assert tokens.store.get(record.token) is None


def test_refresh_sessions_rewrites_only_target_users() -> None:
    tokens = TokenService(SessionStore(lambda fake=fakeredis.FakeRedis(decode_responses=True): fake))
    first = _login_user(user_id=5)
    second = _login_user(user_id=6, user_name="other")
    tokens.create_token(first)
    tokens.create_token(second)

    def rebuild(record: LoginUser) -> LoginUser:
        return record.model_copy(update={"permissions": ["system:role:list"]})

    assert tokens.refresh_sessions_for_users([5], rebuild) == 1
    reloaded_first = tokens.store.get(first.token)
    reloaded_second = tokens.store.get(second.token)
    assert reloaded_first is not None and reloaded_first.permissions == ["system:role:list"]
    assert reloaded_second is not None and reloaded_second.permissions == ["system:user:list"]


def test_refresh_sessions_survives_rebuild_failure() -> None:
    tokens = TokenService(SessionStore(lambda fake=fakeredis.FakeRedis(decode_responses=True): fake))
    record = _login_user()
    tokens.create_token(record)

    def rebuild(_: LoginUser) -> LoginUser:
        raise RuntimeError("database down")

    assert tokens.refresh_sessions_for_users([record.user_id], rebuild) == 0
    assert tokens.store.get(record.token) is not None


def test_delete_sessions_removes_only_target_users() -> None:
    tokens = TokenService(SessionStore(lambda fake=fakeredis.FakeRedis(decode_responses=True): fake))
    first = _login_user(user_id=5)
    again = _login_user(user_id=5)
    other = _login_user(user_id=6, user_name="other")
    for record in (first, again, other):
        tokens.create_token(record)

    assert tokens.delete_sessions_for_users([5]) == 2
    assert tokens.store.get(first.token) is None
    assert tokens.store.get(again.token) is None
    assert tokens.store.get(other.token) is not None
    assert tokens.delete_sessions_for_users([]) == 0
