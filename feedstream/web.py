"""Flask application exposing the reader over JSON."""

from __future__ import annotations

import logging
from typing import Optional, Tuple

from flask import Flask, Response, abort, jsonify, request

from .engine import FeedEngine
from .errors import FeedAlreadyExistsError, FeedNotFoundError, StorageError, ValidationError

logger = logging.getLogger(__name__)

# Set by the authentication layer in front of this app
USER_HEADER = "X-User-Id"


def _current_user_id() -> int:
    raw = request.headers.get(USER_HEADER, "")
    try:
        user_id = int(raw)
    except ValueError:
        abort(401)
    if user_id <= 0:
        abort(401)
    return user_id


def _days_offset() -> int:
    try:
        days = int(request.args.get("days", 0))
    except ValueError:
        return 0
    return days if days >= 0 else 0


def create_app(engine: Optional[FeedEngine] = None) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    engine = engine or FeedEngine()
    app.config["FEED_ENGINE"] = engine

    @app.errorhandler(StorageError)
    def _storage_error(exc: StorageError) -> Tuple[Response, int]:
        logger.error("Storage error: %s", exc)
        return jsonify(error="Something went wrong, please try again later"), 500

    @app.errorhandler(FeedNotFoundError)
    def _not_found(exc: FeedNotFoundError) -> Tuple[Response, int]:
        return jsonify(error="Feed not found"), 404

    @app.errorhandler(FeedAlreadyExistsError)
    def _already_exists(exc: FeedAlreadyExistsError) -> Tuple[Response, int]:
        return jsonify(error="Feed already exists for this user"), 409

    @app.errorhandler(ValidationError)
    def _invalid(exc: ValidationError) -> Tuple[Response, int]:
        return jsonify(error=str(exc)), 400

    @app.route("/feeds")
    def view_feeds() -> Response:
        user_id = _current_user_id()
        page = engine.view(user_id, _days_offset())
        return jsonify(page.to_dict())

    @app.route("/feeds/refresh", methods=["POST"])
    def refresh_feeds() -> Response:
        user_id = _current_user_id()
        stats = engine.refresh_feeds(user_id)
        logger.info("Refreshed feeds for user %d: %d total, %d new",
                    user_id, stats.examined, stats.new_or_updated)
        return jsonify(examined=stats.examined, new_or_updated=stats.new_or_updated)

    @app.route("/feeds/sources", methods=["GET"])
    def list_sources() -> Response:
        feeds = engine.list_feeds(_current_user_id())
        return jsonify(feeds=[{"id": f.id, "name": f.name, "url": f.url} for f in feeds])

    @app.route("/feeds/sources", methods=["POST"])
    def add_source() -> Tuple[Response, int]:
        user_id = _current_user_id()
        data = request.get_json(silent=True) or {}
        feed = engine.add_feed(user_id, data.get("name", ""), data.get("url", ""))
        return jsonify(id=feed.id, name=feed.name, url=feed.url), 201

    @app.route("/feeds/sources/<int:feed_id>", methods=["PUT"])
    def update_source(feed_id: int) -> Response:
        user_id = _current_user_id()
        data = request.get_json(silent=True) or {}
        engine.update_feed(user_id, feed_id, data.get("name", ""), data.get("url", ""))
        return jsonify(id=feed_id, name=data.get("name"), url=data.get("url"))

    @app.route("/feeds/sources/<int:feed_id>", methods=["DELETE"])
    def delete_source(feed_id: int) -> Tuple[str, int]:
        engine.remove_feed(_current_user_id(), feed_id)
        return "", 204

    @app.route("/admin/maintenance/sweep", methods=["POST"])
    def admin_sweep() -> Response:
        """Run the retention sweep now, regardless of when it last ran."""
        deleted = engine.sweep_now()
        return jsonify(items_deleted=deleted or 0)

    @app.route("/healthz")
    def healthz() -> Response:
        """Health check endpoint. 503 if the last refresh could not read storage."""
        status = engine.last_refresh
        if status["last_error"]:
            return Response(
                f"Unhealthy: {status['last_error']}",
                status=503,
                mimetype="text/plain"
            )
        return Response("OK", status=200, mimetype="text/plain")

    return app
