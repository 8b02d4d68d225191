"""
errors.py — AppError base class and error code registry.

Every error returned by the VideoTube API must use a code defined here.
Do not raise strings or generic exceptions from service or route code.

Rules:
  - Error codes are a versioned contract. They do not change once published.
  - Error messages are human-readable prose. They may be improved at any time.
  - Never conflate 401 (unauthenticated) with 403 (unauthorized).
"""

from __future__ import annotations


class AppError(Exception):

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field  # which request field caused the error

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


class TokenError(AppError):
    """
    Raised by the token service when a token cannot be accepted.

    Always a 401. Kept as its own type so callers can tell a token outcome
    apart from any other AppError without inspecting the code string.
    """

    def __init__(self, code: str, message: str) -> None:
        super().__init__(code, message, 401)


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
#
# IMPORTANT: these are the string values sent in the API response.
# Do not rename them without a major version bump.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    WEAK_PASSWORD              = "WEAK_PASSWORD"
    INVALID_FILE               = "INVALID_FILE"
    SELF_SUBSCRIPTION          = "SELF_SUBSCRIPTION"
    ALREADY_SUBSCRIBED         = "ALREADY_SUBSCRIBED"
    NOT_SUBSCRIBED             = "NOT_SUBSCRIBED"

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    DUPLICATE_EMAIL            = "DUPLICATE_EMAIL"
    DUPLICATE_USERNAME         = "DUPLICATE_USERNAME"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    USER_NOT_FOUND             = "USER_NOT_FOUND"
    CHANNEL_NOT_FOUND          = "CHANNEL_NOT_FOUND"
    NOT_FOUND                  = "NOT_FOUND"

    # ── Auth Errors (401) ──────────────────────────────────────────────────
    INVALID_CREDENTIALS        = "INVALID_CREDENTIALS"
    TOKEN_MISSING              = "TOKEN_MISSING"
    TOKEN_INVALID              = "TOKEN_INVALID"
    TOKEN_EXPIRED              = "TOKEN_EXPIRED"
    REFRESH_TOKEN_INVALID      = "REFRESH_TOKEN_INVALID"
    REFRESH_TOKEN_REUSED       = "REFRESH_TOKEN_REUSED"   # stale or already rotated

    # ── System Errors (500) ────────────────────────────────────────────────
    INTERNAL_ERROR             = "INTERNAL_ERROR"
    TOKEN_GENERATION_FAILED    = "TOKEN_GENERATION_FAILED"
    MEDIA_UPLOAD_FAILED        = "MEDIA_UPLOAD_FAILED"
