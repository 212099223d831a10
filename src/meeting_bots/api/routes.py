"""
Flask routes for the bot lifecycle.

Provides:
- POST /api/sessions/<id>/bot - Attach a recording bot to a session
- GET /api/sessions/<id>/bot - Bot fields of a session
- POST /api/sessions/<id>/bot/stop - Stop the session's bot
- POST /api/usage/sync-bot-status - Reconcile one or all sessions
- POST /webhooks/recall/<id> - Per-session Recall.ai webhook
- POST /webhooks/recall/status - Global Recall.ai status webhook
- GET /health - Liveness
"""

import logging
from datetime import datetime, timezone

from flask import Blueprint, Flask, jsonify, request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from meeting_bots.config import BotServiceConfig
from meeting_bots.errors import UpstreamTransportError
from meeting_bots.models.session import Session
from meeting_bots.utils.url_validator import UrlValidator

from .auth import require_api_key, verify_webhook
from .services import EXTENSION_KEY, BotServices, build_services, get_services

logger = logging.getLogger(__name__)

WEBHOOK_RATE_LIMIT = "200 per minute"

limiter = Limiter(key_func=get_remote_address, strategy="fixed-window")

bots_bp = Blueprint("bots", __name__)


def _bot_fields(row: dict) -> dict:
    return Session.from_dict(row).bot_fields()


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@bots_bp.route("/health", methods=["GET"])
def health_check():
    """Health check endpoint (no auth required for load balancer)."""
    services = get_services()
    return jsonify({
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "storage": "firestore" if services.storage.db is not None else "local",
    })


# ---------------------------------------------------------------------------
# Session bots
# ---------------------------------------------------------------------------


@bots_bp.route("/api/sessions/<session_id>/bot", methods=["POST"])
@require_api_key
def enhance_session(session_id):
    """
    Attach a recording bot to a session.

    Request body:
    {
        "meeting_url": "https://meet.google.com/abc-defg-hij",
        "max_attempts": 3 (optional),
        "bot_name": "Meeting Assistant" (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    meeting_url = data.get("meeting_url")

    is_valid, error = UrlValidator.validate_meeting_url(meeting_url)
    if not is_valid:
        return jsonify({"error": error}), 400

    max_attempts = data.get("max_attempts")
    if max_attempts is not None and (
        isinstance(max_attempts, bool) or not isinstance(max_attempts, int) or max_attempts < 1
    ):
        return jsonify({"error": "max_attempts must be a positive integer"}), 400

    services = get_services()
    if services.storage.get_session(session_id) is None:
        return jsonify({"error": "Session not found"}), 404

    bot = services.run(services.manager.enhance_session(
        session_id,
        meeting_url,
        max_attempts=max_attempts,
        bot_name=data.get("bot_name"),
    ))

    session = services.storage.get_session(session_id) or {"id": session_id}
    if bot is not None:
        return jsonify({"bot": bot.to_dict(), "session": _bot_fields(session)}), 201

    return jsonify({
        "bot": None,
        "bot_error": session.get("bot_error"),
        "transcription_provider": session.get("transcription_provider"),
        "session": _bot_fields(session),
    }), 200


@bots_bp.route("/api/sessions/<session_id>/bot", methods=["GET"])
@require_api_key
def get_session_bot(session_id):
    """Get the persisted bot fields of a session."""
    session = get_services().storage.get_session(session_id)
    if session is None:
        return jsonify({"error": "Session not found"}), 404
    return jsonify(_bot_fields(session))


@bots_bp.route("/api/sessions/<session_id>/bot/stop", methods=["POST"])
@require_api_key
def stop_session_bot(session_id):
    """Stop the session's bot (user ended the session)."""
    services = get_services()
    try:
        stopped = services.run(services.manager.stop_session_bot(session_id))
    except UpstreamTransportError as e:
        logger.error("Failed to stop bot for session %s: %s", session_id, e)
        return jsonify({"error": e.message}), 502

    if not stopped:
        return jsonify({"error": "No bot found for this session"}), 404

    session = services.storage.get_session(session_id) or {"id": session_id}
    return jsonify({"status": "stopped", "session": _bot_fields(session)})


@bots_bp.route("/api/usage/sync-bot-status", methods=["POST"])
@require_api_key
def sync_bot_status():
    """
    Reconcile bot status and usage with Recall.ai.

    Request body:
    {
        "session_id": "..." (sync one session)
        or
        "sync_all": true (sync every session that needs it),
        "organization_id": "..." (optional scope for sync_all)
    }
    """
    data = request.get_json(silent=True) or {}
    session_id = data.get("session_id")
    services = get_services()

    if session_id:
        if services.storage.get_session(session_id) is None:
            return jsonify({"error": "Session not found"}), 404
        results = [services.run(services.sync_service.sync_one(session_id))]
    elif data.get("sync_all"):
        results = services.run(services.sync_service.sync_all(
            organization_id=data.get("organization_id"),
        ))
    else:
        return jsonify({"error": "Either session_id or sync_all must be provided"}), 400

    return jsonify({
        "updated": sum(1 for r in results if r.updated),
        "synced": len(results),
        "sessions": [r.to_dict() for r in results],
    })


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------


@bots_bp.route("/webhooks/recall/status", methods=["POST"])
@limiter.limit(WEBHOOK_RATE_LIMIT)
@verify_webhook
def recall_status_webhook():
    """Handle a Recall.ai bot status event routed by bot metadata."""
    data = request.get_json(silent=True)
    if not data:
        return jsonify({"error": "Invalid JSON payload"}), 400

    services = get_services()
    try:
        result = services.run(services.webhook_service.handle_status_event(data))
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        logger.exception("Error handling status webhook")
        return jsonify({"status": "error", "message": str(e)}), 500

    return jsonify(result), 200


@bots_bp.route("/webhooks/recall/<session_id>", methods=["POST"])
@limiter.limit(WEBHOOK_RATE_LIMIT)
@verify_webhook
def recall_session_webhook(session_id):
    """
    Handle a Recall.ai event for one session.

    Key events:
    - bot.*: bot status changed, reconcile the session
    - recording.*: recording state changed, reconcile the session
    - transcript.* / participant_events.*: acknowledged, not processed
    """
    data = request.get_json(silent=True)
    if not data:
        return jsonify({"error": "Invalid JSON payload"}), 400

    services = get_services()
    try:
        result = services.run(services.webhook_service.handle_session_event(session_id, data))
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception as e:
        logger.exception("Error handling webhook for session %s", session_id)
        return jsonify({"status": "error", "message": str(e)}), 500

    return jsonify(result), 200


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------


def create_app(
    config: BotServiceConfig | None = None,
    services: BotServices | None = None,
) -> Flask:
    """
    Create the Flask app.

    Args:
        config: Service configuration (defaults to environment)
        services: Prebuilt services (defaults to ones built from config)
    """
    config = config or (services.config if services else BotServiceConfig.from_env())
    services = services or build_services(config)

    app = Flask(__name__)
    app.config["RATELIMIT_STORAGE_URI"] = config.rate_limit_storage_uri
    app.extensions[EXTENSION_KEY] = services

    limiter.init_app(app)
    app.register_blueprint(bots_bp)

    if config.rate_limit_storage_uri == "memory://":
        logger.warning("Rate limiting uses in-memory storage; not shared across instances")

    return app
