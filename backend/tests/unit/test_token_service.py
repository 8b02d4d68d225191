"""
tests/unit/test_token_service.py — Unit tests for TokenService.

What this file proves:
  - issue() signs both kinds with their own secret and stores the refresh token
  - verify() maps every failure to the right TokenError code per token kind
  - rotate() consumes the presented refresh token exactly once
  - a rotation that loses the conditional UPDATE race is rejected as reuse
  - revoke() clears the stored token

No database: the session is a MagicMock. Users are SimpleNamespace rows.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock

import jwt
import pytest
from sqlalchemy.exc import OperationalError

from backend.app.errors import AppError, ErrorCode, TokenError
from backend.app.services.token_service import (
    ACCESS,
    REFRESH,
    TokenConfig,
    TokenService,
    subject_id,
)


ACCESS_SECRET = "unit-access-secret-0123456789abcdef"
REFRESH_SECRET = "unit-refresh-secret-0123456789abcdef"

CONFIG = TokenConfig(
    access_secret=ACCESS_SECRET,
    access_expiry=timedelta(minutes=15),
    refresh_secret=REFRESH_SECRET,
    refresh_expiry=timedelta(days=10),
)


def _user(**overrides):
    values = {
        "id": 7,
        "username": "alice",
        "email": "alice@example.com",
        "full_name": "Alice Liddell",
        "refresh_token": None,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def _session(rowcount: int = 1, user=None) -> MagicMock:
    session = MagicMock()
    session.execute.return_value = MagicMock(rowcount=rowcount)
    session.get.return_value = user
    return session


def _service(session=None, clock=None) -> TokenService:
    if clock is None:
        return TokenService(CONFIG, session or _session())
    return TokenService(CONFIG, session or _session(), clock=clock)


# ═══════════════════════════════════════════════════════════════════════════
# TokenConfig
# ═══════════════════════════════════════════════════════════════════════════

class TestTokenConfig:

    def test_from_mapping(self):
        config = TokenConfig.from_mapping({
            "ACCESS_TOKEN_SECRET": "a",
            "ACCESS_TOKEN_EXPIRY": timedelta(seconds=30),
            "REFRESH_TOKEN_SECRET": "r",
            "REFRESH_TOKEN_EXPIRY": timedelta(days=1),
        })
        assert config.secret_for(ACCESS) == "a"
        assert config.secret_for(REFRESH) == "r"
        assert config.algorithm == "HS256"

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            CONFIG.secret_for("session")


# ═══════════════════════════════════════════════════════════════════════════
# issue()
# ═══════════════════════════════════════════════════════════════════════════

class TestIssue:

    def test_access_token_carries_identity_claims(self):
        pair = _service().issue(_user())
        claims = jwt.decode(pair.access_token, ACCESS_SECRET, algorithms=["HS256"])
        assert claims["sub"] == "7"
        assert claims["email"] == "alice@example.com"
        assert claims["username"] == "alice"
        assert claims["fullName"] == "Alice Liddell"
        assert claims["type"] == ACCESS

    def test_refresh_token_carries_subject_only(self):
        pair = _service().issue(_user())
        claims = jwt.decode(pair.refresh_token, REFRESH_SECRET, algorithms=["HS256"])
        assert claims["sub"] == "7"
        assert claims["type"] == REFRESH
        assert "email" not in claims

    def test_kinds_use_distinct_secrets(self):
        pair = _service().issue(_user())
        with pytest.raises(jwt.InvalidSignatureError):
            jwt.decode(pair.access_token, REFRESH_SECRET, algorithms=["HS256"])
        with pytest.raises(jwt.InvalidSignatureError):
            jwt.decode(pair.refresh_token, ACCESS_SECRET, algorithms=["HS256"])

    def test_expiry_follows_config(self):
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        service = _service(clock=lambda: now)
        pair = service.issue(_user())
        access = jwt.decode(pair.access_token, ACCESS_SECRET, algorithms=["HS256"],
                            options={"verify_exp": False})
        refresh = jwt.decode(pair.refresh_token, REFRESH_SECRET, algorithms=["HS256"],
                             options={"verify_exp": False})
        assert access["exp"] == int((now + timedelta(minutes=15)).timestamp())
        assert refresh["exp"] == int((now + timedelta(days=10)).timestamp())

    def test_two_pairs_issued_at_the_same_instant_differ(self):
        now = datetime.now(timezone.utc)
        service = _service(clock=lambda: now)
        first = service.issue(_user())
        second = service.issue(_user())
        assert first.refresh_token != second.refresh_token
        assert first.access_token != second.access_token

    def test_stores_refresh_token_with_unconditional_update(self):
        session = _session()
        pair = _service(session).issue(_user())

        stmt = session.execute.call_args.args[0]
        compiled = stmt.compile()
        assert compiled.params["refresh_token"] == pair.refresh_token
        # Only the id is pinned; no refresh_token comparison in the WHERE clause.
        assert "refresh_token_1" not in compiled.params

    def test_zero_rows_updated_is_generation_failure(self):
        with pytest.raises(AppError) as exc_info:
            _service(_session(rowcount=0)).issue(_user())
        err = exc_info.value
        assert err.code == ErrorCode.TOKEN_GENERATION_FAILED
        assert err.http_status == 500
        assert not isinstance(err, TokenError)

    def test_database_error_is_generation_failure(self):
        session = _session()
        session.execute.side_effect = OperationalError("UPDATE users", {}, Exception("down"))
        with pytest.raises(AppError) as exc_info:
            _service(session).issue(_user())
        assert exc_info.value.code == ErrorCode.TOKEN_GENERATION_FAILED

    def test_unserialisable_claim_is_generation_failure(self):
        with pytest.raises(AppError) as exc_info:
            _service().issue(_user(email=object()))
        assert exc_info.value.code == ErrorCode.TOKEN_GENERATION_FAILED


# ═══════════════════════════════════════════════════════════════════════════
# verify()
# ═══════════════════════════════════════════════════════════════════════════

class TestVerify:

    def test_valid_access_token(self):
        service = _service()
        pair = service.issue(_user())
        assert service.verify(pair.access_token, ACCESS)["sub"] == "7"

    def test_valid_refresh_token(self):
        service = _service()
        pair = service.issue(_user())
        assert service.verify(pair.refresh_token, REFRESH)["sub"] == "7"

    def test_expired_access_token(self):
        past = datetime.now(timezone.utc) - timedelta(hours=1)
        pair = _service(clock=lambda: past).issue(_user())
        with pytest.raises(TokenError) as exc_info:
            _service().verify(pair.access_token, ACCESS)
        assert exc_info.value.code == ErrorCode.TOKEN_EXPIRED
        assert exc_info.value.http_status == 401

    def test_expired_refresh_token(self):
        past = datetime.now(timezone.utc) - timedelta(days=11)
        pair = _service(clock=lambda: past).issue(_user())
        with pytest.raises(TokenError) as exc_info:
            _service().verify(pair.refresh_token, REFRESH)
        assert exc_info.value.code == ErrorCode.REFRESH_TOKEN_INVALID

    def test_garbage_access_token(self):
        with pytest.raises(TokenError) as exc_info:
            _service().verify("not.a.jwt", ACCESS)
        assert exc_info.value.code == ErrorCode.TOKEN_INVALID

    def test_access_token_rejected_as_refresh(self):
        pair = _service().issue(_user())
        with pytest.raises(TokenError) as exc_info:
            _service().verify(pair.access_token, REFRESH)
        assert exc_info.value.code == ErrorCode.REFRESH_TOKEN_INVALID

    def test_type_claim_checked_even_with_matching_secret(self):
        token = jwt.encode(
            {"sub": "7", "type": REFRESH,
             "exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
            ACCESS_SECRET,
            algorithm="HS256",
        )
        with pytest.raises(TokenError) as exc_info:
            _service().verify(token, ACCESS)
        assert exc_info.value.code == ErrorCode.TOKEN_INVALID

    def test_missing_exp_rejected(self):
        token = jwt.encode({"sub": "7", "type": ACCESS}, ACCESS_SECRET, algorithm="HS256")
        with pytest.raises(TokenError) as exc_info:
            _service().verify(token, ACCESS)
        assert exc_info.value.code == ErrorCode.TOKEN_INVALID

    def test_non_numeric_subject_rejected(self):
        token = jwt.encode(
            {"sub": "alice", "type": ACCESS,
             "exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
            ACCESS_SECRET,
            algorithm="HS256",
        )
        with pytest.raises(TokenError) as exc_info:
            _service().verify(token, ACCESS)
        assert exc_info.value.code == ErrorCode.TOKEN_INVALID


# ═══════════════════════════════════════════════════════════════════════════
# rotate()
# ═══════════════════════════════════════════════════════════════════════════

class TestRotate:

    def test_rotation_returns_new_pair_and_pins_presented_token(self):
        old = _service().issue(_user()).refresh_token
        session = _session(user=_user(refresh_token=old))

        pair = _service(session).rotate(old)

        assert pair.refresh_token != old
        compiled = session.execute.call_args.args[0].compile()
        assert old in compiled.params.values()
        assert compiled.params["refresh_token"] == pair.refresh_token

    def test_missing_token(self):
        with pytest.raises(TokenError) as exc_info:
            _service().rotate(None)
        assert exc_info.value.code == ErrorCode.TOKEN_MISSING

    def test_unknown_user(self):
        token = _service().issue(_user()).refresh_token
        with pytest.raises(TokenError) as exc_info:
            _service(_session(user=None)).rotate(token)
        assert exc_info.value.code == ErrorCode.REFRESH_TOKEN_INVALID

    def test_token_not_matching_stored_value_is_reuse(self):
        token = _service().issue(_user()).refresh_token
        session = _session(user=_user(refresh_token="something-newer"))

        with pytest.raises(TokenError) as exc_info:
            _service(session).rotate(token)

        assert exc_info.value.code == ErrorCode.REFRESH_TOKEN_REUSED
        session.execute.assert_not_called()

    def test_revoked_session_is_reuse(self):
        token = _service().issue(_user()).refresh_token
        with pytest.raises(TokenError) as exc_info:
            _service(_session(user=_user(refresh_token=None))).rotate(token)
        assert exc_info.value.code == ErrorCode.REFRESH_TOKEN_REUSED

    def test_losing_the_update_race_is_reuse(self):
        token = _service().issue(_user()).refresh_token
        session = _session(rowcount=0, user=_user(refresh_token=token))

        with pytest.raises(TokenError) as exc_info:
            _service(session).rotate(token)

        assert exc_info.value.code == ErrorCode.REFRESH_TOKEN_REUSED


# ═══════════════════════════════════════════════════════════════════════════
# revoke() / subject_id()
# ═══════════════════════════════════════════════════════════════════════════

def test_revoke_clears_stored_token():
    session = _session()
    _service(session).revoke(7)

    compiled = session.execute.call_args.args[0].compile()
    assert compiled.params["refresh_token"] is None


@pytest.mark.parametrize("claims", [{}, {"sub": None}, {"sub": "x"}])
def test_subject_id_rejects_bad_sub(claims):
    with pytest.raises(TokenError) as exc_info:
        subject_id(claims, ErrorCode.REFRESH_TOKEN_INVALID)
    assert exc_info.value.code == ErrorCode.REFRESH_TOKEN_INVALID


def test_subject_id_parses_string_sub():
    assert subject_id({"sub": "42"}) == 42
