# Overview: Request and capability decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import permission_service
from .services.permission_service import PermissionDeniedError

ACTOR_HEADER = "X-Actor-Id"


def _actor_from_request() -> int | None:
    raw = (request.headers.get(ACTOR_HEADER) or "").strip()
    if not raw.isdigit():
        return None
    return int(raw)


def require_actor(f):
    """
    Require an acting user id.

    Authentication happens upstream; the gateway forwards the authenticated
    user id in the X-Actor-Id header. Sets g.actor_id.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor_id = _actor_from_request()
        if actor_id is None:
            return jsonify({"error": "Authentication required"}), 401
        g.actor_id = actor_id
        return f(*args, **kwargs)

    return decorated_function


def require_capability(capability: str):
    """
    Require a capability for the acting user.

    Must run after @require_actor. Returns 403 on denial.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not hasattr(g, "actor_id"):
                return jsonify({"error": "Authentication required"}), 401

            try:
                permission_service.require_capability(g.actor_id, capability)
            except PermissionDeniedError as e:
                return jsonify({
                    "error": "Permission denied",
                    "required_permission": capability,
                    "message": str(e)
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
