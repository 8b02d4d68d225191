"""
routes/media.py — Serves stored profile images, and the health check.

Endpoints (url_prefix=/api/v1):
  GET /health              → 200
  GET /media/:filename     → 200 image bytes, 404 if unknown
"""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, send_from_directory

media_bp = Blueprint("media", __name__)


@media_bp.route("/health", methods=["GET"])
def health():
    return jsonify({"data": {"status": "ok"}, "warnings": []}), 200


@media_bp.route("/media/<path:filename>", methods=["GET"])
def serve_media(filename: str):
    # send_from_directory rejects paths that escape MEDIA_ROOT with a 404.
    return send_from_directory(current_app.config["MEDIA_ROOT"], filename)
