"""
Shared request helpers and error mapping for the API blueprints.

Caller identity arrives already authenticated in the X-User-Id header; the
engine trusts it and only records it on audit events.
"""

import uuid
import logging
from datetime import datetime, timezone
from functools import wraps

from flask import request, jsonify, g

from beatwatch.errors import BeatWatchError, BeatLockTimeout, ValidationError

logger = logging.getLogger("api")


# =============================================================================
# Caller identity
# =============================================================================

def get_current_user_id():
    """Get current user ID from request headers."""
    user_id = request.headers.get("X-User-Id")
    if user_id:
        try:
            return uuid.UUID(user_id)
        except ValueError:
            pass
    return None


def require_actor(f):
    """Decorator for mutating routes: requires a valid X-User-Id header."""
    @wraps(f)
    def decorated(*args, **kwargs):
        user_id = get_current_user_id()
        if user_id is None:
            return jsonify({"ok": False, "error": "Missing or invalid X-User-Id header"}), 401
        g.user_id = user_id
        return f(*args, **kwargs)
    return decorated


# =============================================================================
# Parsing
# =============================================================================

def parse_uuid(value, field: str = "id") -> uuid.UUID:
    """Parse a UUID from a path segment or payload value. Raises ValidationError."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError, AttributeError):
        raise ValidationError(f"{field} must be a valid UUID")


def parse_optional_uuid(value, field: str):
    if value is None or value == "":
        return None
    return parse_uuid(value, field)


def parse_timestamp(value, field: str = "timestamp") -> datetime:
    """
    Parse an ISO-8601 timestamp to naive UTC.

    Offset-aware values are converted; naive values are taken as UTC.
    """
    if not isinstance(value, str) or not value:
        raise ValidationError(f"{field} must be an ISO-8601 string")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 string")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def get_json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


# =============================================================================
# Error mapping
# =============================================================================

def register_error_handlers(app):
    """Map engine errors to JSON responses on the given Flask app."""

    @app.errorhandler(BeatWatchError)
    def handle_engine_error(error):
        if error.status_code >= 409:
            logger.info(f"{request.method} {request.path} rejected: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(BeatLockTimeout)
    def handle_lock_timeout(error):
        logger.warning(f"{request.method} {request.path}: {error}")
        body = {
            "ok": False,
            "error": str(error),
            "error_type": "BeatLockTimeout",
            "details": [],
        }
        return jsonify(body), error.status_code
