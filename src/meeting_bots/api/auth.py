"""
Authentication for the bot API.

Supports:
- API Key - ``Authorization: Bearer <API_KEY>`` or ``X-API-Key`` header
- Webhook Signature - Svix signatures on Recall.ai webhooks
"""

import functools
import hmac
import logging

from flask import g, jsonify, request
from svix.webhooks import Webhook, WebhookVerificationError

from .services import get_services

logger = logging.getLogger(__name__)


def _request_api_key() -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return request.headers.get("X-API-Key")


def require_api_key(f):
    """
    Decorator to require the service API key on a route.

    Anonymous access is allowed when ``AUTH_ALLOW_ANONYMOUS`` is set.
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        config = get_services().config

        if config.allow_anonymous:
            g.user = "anonymous"
            return f(*args, **kwargs)

        token = _request_api_key()
        if token and config.api_key and hmac.compare_digest(token, config.api_key):
            g.user = "api_key"
            return f(*args, **kwargs)

        return jsonify({
            "error": "Authentication required",
            "message": "A valid API key is required to access this resource."
        }), 401

    return decorated


def verify_recall_webhook_signature(payload: bytes, headers, secret: str) -> bool:
    """
    Verify a Recall.ai webhook signature using Svix.

    Args:
        payload: Raw request body
        headers: Request headers (must include svix-id, svix-timestamp, svix-signature)
        secret: Svix signing secret

    Returns:
        bool: True if signature is valid
    """
    svix_id = headers.get("svix-id")
    svix_timestamp = headers.get("svix-timestamp")
    svix_signature = headers.get("svix-signature")

    if not all([svix_id, svix_timestamp, svix_signature]):
        logger.warning(
            "Missing Svix headers: id=%s, ts=%s, sig=%s",
            bool(svix_id), bool(svix_timestamp), bool(svix_signature),
        )
        return False

    try:
        Webhook(secret).verify(payload, {
            "svix-id": svix_id,
            "svix-timestamp": svix_timestamp,
            "svix-signature": svix_signature,
        })
    except WebhookVerificationError as e:
        logger.warning("Webhook signature verification failed: %s", e)
        return False

    return True


def verify_webhook(f):
    """
    Decorator to verify Recall.ai webhook signatures.

    Verification is required unless running with ``ENV=development`` and no
    secret configured.
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        config = get_services().config

        if not config.webhook_secret:
            if not config.development:
                logger.error("RECALL_WEBHOOK_SECRET not set - rejecting webhook")
                return jsonify({"error": "Webhook verification not configured"}), 500
            logger.warning("RECALL_WEBHOOK_SECRET not set - skipping verification (dev mode)")
            g.user = "webhook"
            return f(*args, **kwargs)

        if not verify_recall_webhook_signature(request.get_data(), request.headers, config.webhook_secret):
            return jsonify({"error": "Invalid webhook signature"}), 401

        g.user = "webhook"
        return f(*args, **kwargs)

    return decorated
