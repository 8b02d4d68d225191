"""
routes/subscriptions.py — Channel subscription route handlers.

Layer rules:
  - Call ONE service, commit, return envelope.
  - No business logic. No DB queries.

Endpoints (url_prefix=/api/v1/subscriptions):
  POST   /subscribe/:channel_id     → 201
  POST   /unsubscribe/:channel_id   → 200
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify

from backend.app.extensions import db
from backend.app.middleware.auth_middleware import require_auth
from backend.app.services import subscription_service

subscriptions_bp = Blueprint("subscriptions", __name__)


@subscriptions_bp.route("/subscribe/<int:channel_id>", methods=["POST"])
@require_auth
def subscribe(channel_id: int):
    """POST /subscriptions/subscribe/:channel_id — Follow a channel."""
    result = subscription_service.subscribe(
        subscriber_id=g.user_id,
        channel_id=channel_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@subscriptions_bp.route("/unsubscribe/<int:channel_id>", methods=["POST"])
@require_auth
def unsubscribe(channel_id: int):
    """POST /subscriptions/unsubscribe/:channel_id — Stop following a channel."""
    subscription_service.unsubscribe(
        subscriber_id=g.user_id,
        channel_id=channel_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": {"message": "Unsubscribed successfully."}, "warnings": []}), 200
