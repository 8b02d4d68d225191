"""
services/token_service.py — Access / refresh token lifecycle.

Responsibilities:
  - Issue a signed access + refresh token pair for a user
  - Verify a token of an expected kind (access or refresh)
  - Rotate a refresh token (one-time use: every rotation supersedes the old one)
  - Revoke the current refresh token on logout

Token design:
  - Access token: JWT, short TTL, claims sub/email/username/fullName.
    Stateless. Verified by signature + expiry only.
  - Refresh token: JWT, long TTL, claim sub only. Mirrored in
    users.refresh_token and honoured only while it equals that stored value.
  - Each kind has its own secret, so one can never be replayed as the other.
  - Both carry a random jti so two tokens issued in the same second differ.

Single active session per user: users.refresh_token holds exactly one value.
Issuing overwrites it, logout clears it. Concurrent rotations with the same
refresh token race on a conditional UPDATE; only one of them can match.

Layer rules:
  - No Flask imports. Configuration arrives as a TokenConfig; the session is
    passed in. Commits are the route's responsibility.
  - Every failure to accept a token is raised as TokenError (401).
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping

import jwt
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.app.errors import AppError, ErrorCode, TokenError
from backend.app.models.user import User


logger = logging.getLogger(__name__)

ACCESS = "access"
REFRESH = "refresh"


@dataclass(frozen=True)
class TokenConfig:
    access_secret: str
    access_expiry: timedelta
    refresh_secret: str
    refresh_expiry: timedelta
    algorithm: str = "HS256"

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> "TokenConfig":
        """Builds a TokenConfig from a Flask-style config mapping."""
        return cls(
            access_secret=config["ACCESS_TOKEN_SECRET"],
            access_expiry=config["ACCESS_TOKEN_EXPIRY"],
            refresh_secret=config["REFRESH_TOKEN_SECRET"],
            refresh_expiry=config["REFRESH_TOKEN_EXPIRY"],
            algorithm=config.get("JWT_ALGORITHM", "HS256"),
        )

    def secret_for(self, kind: str) -> str:
        if kind == ACCESS:
            return self.access_secret
        if kind == REFRESH:
            return self.refresh_secret
        raise ValueError(f"Unknown token kind: {kind!r}")


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str

    def to_dict(self) -> dict:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenService:

    def __init__(
            self,
            config: TokenConfig,
            session: Session,
            clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._config  = config
        self._session = session
        self._clock   = clock

    # ── Signing ────────────────────────────────────────────────────────────

    def _encode(self, claims: dict, kind: str, ttl: timedelta) -> str:
        now = self._clock()
        payload = {
            **claims,
            "type": kind,
            "iat": now,
            "exp": now + ttl,
            "jti": secrets.token_hex(8),
        }
        return jwt.encode(
            payload,
            self._config.secret_for(kind),
            algorithm=self._config.algorithm,
        )

    def create_access_token(self, user) -> str:
        """Access token from a snapshot of the user's public identity fields."""
        return self._encode(
            {
                "sub": str(user.id),
                "email": user.email,
                "username": user.username,
                "fullName": user.full_name,
            },
            ACCESS,
            self._config.access_expiry,
        )

    def create_refresh_token(self, user) -> str:
        return self._encode(
            {"sub": str(user.id)},
            REFRESH,
            self._config.refresh_expiry,
        )

    # ── Public operations ──────────────────────────────────────────────────

    def issue(self, user) -> TokenPair:
        """
        Signs a fresh token pair and stores the refresh token on the user row,
        superseding any previous refresh token.

        Raises:
          AppError(TOKEN_GENERATION_FAILED, 500) — signing failed or the user
          row could not be written.
        """
        return self._issue(user, presented_refresh_token=None)

    def verify(self, token: str, kind: str) -> dict:
        """
        Decodes `token` with the secret for `kind` and returns its claims.

        Raises TokenError:
          access:  TOKEN_EXPIRED, or TOKEN_INVALID for anything else
          refresh: REFRESH_TOKEN_INVALID for every failure
        """
        invalid_code = ErrorCode.TOKEN_INVALID if kind == ACCESS else ErrorCode.REFRESH_TOKEN_INVALID
        expired_code = ErrorCode.TOKEN_EXPIRED if kind == ACCESS else ErrorCode.REFRESH_TOKEN_INVALID

        try:
            claims = jwt.decode(
                token,
                self._config.secret_for(kind),
                algorithms=[self._config.algorithm],
                options={"require": ["exp", "sub"]},
            )
        except jwt.ExpiredSignatureError:
            raise TokenError(expired_code, f"The {kind} token has expired.")
        except jwt.InvalidTokenError:
            # Covers: bad signature, malformed token, missing claims.
            raise TokenError(invalid_code, f"The {kind} token is invalid or has been tampered with.")

        if claims.get("type") != kind:
            raise TokenError(invalid_code, f"Expected a {kind} token.")

        subject_id(claims, invalid_code)
        return claims

    def rotate(self, refresh_token: str | None) -> TokenPair:
        """
        Exchanges a refresh token for a new pair. The presented token is
        consumed: presenting it again fails with REFRESH_TOKEN_REUSED.

        Raises TokenError:
          TOKEN_MISSING         — no token supplied
          REFRESH_TOKEN_INVALID — bad signature, expired, or unknown user
          REFRESH_TOKEN_REUSED  — does not match the user's stored token
        """
        if not refresh_token:
            raise TokenError(ErrorCode.TOKEN_MISSING, "A refresh token is required.")

        claims = self.verify(refresh_token, REFRESH)
        user_id = subject_id(claims, ErrorCode.REFRESH_TOKEN_INVALID)

        user = self._session.get(User, user_id)
        if user is None:
            raise TokenError(
                ErrorCode.REFRESH_TOKEN_INVALID,
                "The refresh token does not belong to a known user.",
            )

        if user.refresh_token != refresh_token:
            logger.warning("Rejected stale refresh token for user_id=%s", user_id)
            raise TokenError(
                ErrorCode.REFRESH_TOKEN_REUSED,
                "The refresh token has expired or has already been used.",
            )

        return self._issue(user, presented_refresh_token=refresh_token)

    def revoke(self, user_id: int) -> None:
        """Clears the stored refresh token. Idempotent."""
        self._session.execute(
            update(User)
            .where(User.id == user_id)
            .values(refresh_token=None)
        )
        logger.info("Revoked refresh token for user_id=%s", user_id)

    # ── Internals ──────────────────────────────────────────────────────────

    def _issue(self, user, presented_refresh_token: str | None) -> TokenPair:
        try:
            pair = TokenPair(
                access_token=self.create_access_token(user),
                refresh_token=self.create_refresh_token(user),
            )
        except (jwt.PyJWTError, TypeError, ValueError) as exc:
            logger.error("Token signing failed for user_id=%s: %s", getattr(user, "id", None), exc)
            raise AppError(
                ErrorCode.TOKEN_GENERATION_FAILED,
                "Something went wrong while generating access and refresh tokens.",
                500,
            ) from exc

        # Single-column write. During rotation the WHERE clause also pins the
        # presented token, so a concurrent rotation that got there first makes
        # this match zero rows.
        stmt = update(User).where(User.id == user.id)
        if presented_refresh_token is not None:
            stmt = stmt.where(User.refresh_token == presented_refresh_token)
        stmt = stmt.values(refresh_token=pair.refresh_token)

        try:
            result = self._session.execute(stmt)
        except SQLAlchemyError as exc:
            logger.error("Persisting refresh token failed for user_id=%s: %s", user.id, exc)
            raise AppError(
                ErrorCode.TOKEN_GENERATION_FAILED,
                "Something went wrong while generating access and refresh tokens.",
                500,
            ) from exc

        if result.rowcount == 0:
            if presented_refresh_token is not None:
                logger.warning("Lost refresh-token rotation race for user_id=%s", user.id)
                raise TokenError(
                    ErrorCode.REFRESH_TOKEN_REUSED,
                    "The refresh token has expired or has already been used.",
                )
            raise AppError(
                ErrorCode.TOKEN_GENERATION_FAILED,
                "Something went wrong while generating access and refresh tokens.",
                500,
            )

        return pair


def subject_id(claims: dict, error_code: str = ErrorCode.TOKEN_INVALID) -> int:
    """Returns the `sub` claim as an int user id, or raises TokenError."""
    try:
        return int(claims["sub"])
    except (KeyError, TypeError, ValueError):
        raise TokenError(error_code, "The token's 'sub' claim is not a valid user ID.")
