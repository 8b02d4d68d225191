"""
services/subscription_service.py — Channel subscriptions and channel profiles.

Every user is also a channel. A subscription links a subscriber to a channel;
a user cannot subscribe to themselves or to the same channel twice.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.app.errors import AppError, ErrorCode
from backend.app.models.subscription import Subscription
from backend.app.models.user import User


# ── Private helpers ────────────────────────────────────────────────────────

def _get_channel_or_404(channel_id: int, session: Session) -> User:
    """Returns the channel's User row or raises CHANNEL_NOT_FOUND (404)."""
    channel = session.get(User, channel_id)
    if channel is None:
        raise AppError(
            ErrorCode.CHANNEL_NOT_FOUND,
            f"Channel {channel_id} does not exist.",
            404,
        )
    return channel


def _find_subscription(
        subscriber_id: int,
        channel_id: int,
        session: Session,
) -> Subscription | None:
    return session.execute(
        select(Subscription).where(
            Subscription.subscriber_id == subscriber_id,
            Subscription.channel_id == channel_id,
        )
    ).scalar_one_or_none()


def _count(session: Session, *criteria) -> int:
    return session.execute(
        select(func.count(Subscription.id)).where(*criteria)
    ).scalar_one()


def _already_subscribed() -> AppError:
    return AppError(
        ErrorCode.ALREADY_SUBSCRIBED,
        "Channel is already subscribed.",
        400,
    )


def _build_user_summary(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "full_name": user.full_name,
    }


# ── Public service functions ───────────────────────────────────────────────

def subscribe(subscriber_id: int, channel_id: int, session: Session) -> dict:
    """
    Subscribes `subscriber_id` to `channel_id`.

    Raises:
      AppError(CHANNEL_NOT_FOUND, 404)
      AppError(SELF_SUBSCRIPTION, 400)
      AppError(ALREADY_SUBSCRIBED, 400)

    Returns: {"id", "subscriber": {...}, "subscribed_to": {...}, "created_at"}
    """
    channel = _get_channel_or_404(channel_id, session)

    if subscriber_id == channel_id:
        raise AppError(
            ErrorCode.SELF_SUBSCRIPTION,
            "You cannot subscribe to your own channel.",
            400,
        )

    if _find_subscription(subscriber_id, channel_id, session) is not None:
        raise _already_subscribed()

    subscription = Subscription(subscriber_id=subscriber_id, channel_id=channel_id)
    session.add(subscription)
    try:
        session.flush()
    except IntegrityError as exc:
        # A concurrent request inserted the same pair first.
        session.rollback()
        raise _already_subscribed() from exc

    subscriber = session.get(User, subscriber_id)
    return {
        "id": subscription.id,
        "subscriber": _build_user_summary(subscriber),
        "subscribed_to": _build_user_summary(channel),
        "created_at": subscription.created_at.isoformat(),
    }


def unsubscribe(subscriber_id: int, channel_id: int, session: Session) -> None:
    """
    Removes the subscription.

    Raises:
      AppError(CHANNEL_NOT_FOUND, 404)
      AppError(NOT_SUBSCRIBED, 400)
    """
    _get_channel_or_404(channel_id, session)

    subscription = _find_subscription(subscriber_id, channel_id, session)
    if subscription is None:
        raise AppError(
            ErrorCode.NOT_SUBSCRIBED,
            "Subscribe to the channel first to unsubscribe from it.",
            400,
        )

    session.delete(subscription)
    session.flush()


def get_channel_profile(
        username: str,
        viewer_id: int | None,
        session: Session,
) -> dict:
    """
    Returns a channel's public profile with subscription statistics.

    is_subscribed tells whether `viewer_id` follows this channel.

    Raises:
      AppError(CHANNEL_NOT_FOUND, 404) — no user with that username
    """
    channel = session.execute(
        select(User).where(User.username == username.strip().lower())
    ).scalar_one_or_none()

    if channel is None:
        raise AppError(
            ErrorCode.CHANNEL_NOT_FOUND,
            f"Channel '{username}' does not exist.",
            404,
        )

    subscribers_count = _count(session, Subscription.channel_id == channel.id)
    subscribed_to_count = _count(session, Subscription.subscriber_id == channel.id)
    is_subscribed = (
        viewer_id is not None
        and _find_subscription(viewer_id, channel.id, session) is not None
    )

    return {
        "id": channel.id,
        "username": channel.username,
        "full_name": channel.full_name,
        "email": channel.email,
        "avatar": channel.avatar,
        "cover_image": channel.cover_image,
        "subscribers_count": subscribers_count,
        "subscribed_to_count": subscribed_to_count,
        "is_subscribed": is_subscribed,
    }
