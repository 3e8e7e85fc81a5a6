# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app


ACTOR_HEADER = "X-Actor-Id"


def require_actor(action: str):
    """
    Require an identified actor and consult the host's authorizer.

    Authentication lives upstream of this service. The caller's identity
    arrives in the X-Actor-Id header; if AUTHORIZER is configured it is
    called as AUTHORIZER(actor_id, action, business_id) and must return True.

    Sets:
    - g.actor_id: the acting user/seller identifier

    Returns 401 without an actor and 403 when the authorizer refuses.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            actor_id = (request.headers.get(ACTOR_HEADER) or "").strip()
            if not actor_id:
                return jsonify({"error": "Authentication required"}), 401

            authorizer = current_app.config.get("AUTHORIZER")
            if authorizer is not None:
                business_id = _requested_business_id(kwargs)
                if not authorizer(actor_id, action, business_id):
                    current_app.logger.warning(
                        "Actor %s denied %s for business %s", actor_id, action, business_id
                    )
                    return jsonify({
                        "error": "Permission denied",
                        "required_permission": action,
                    }), 403

            g.actor_id = actor_id
            return f(*args, **kwargs)

        return decorated_function
    return decorator


def _requested_business_id(view_kwargs: dict):
    if "business_id" in view_kwargs:
        return view_kwargs["business_id"]
    raw = request.args.get("business_id")
    if raw is None and request.is_json:
        body = request.get_json(silent=True) or {}
        raw = body.get("business_id")
    try:
        return int(raw) if raw is not None else None
    except (TypeError, ValueError):
        return None
