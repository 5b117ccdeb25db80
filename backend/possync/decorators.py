# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

ACTOR_ID_HEADER = "X-POS-User-Id"
ACTOR_NAME_HEADER = "X-POS-User-Name"


def require_actor(f):
    """
    Require a register user identity on the request.

    Login and sessions live in the front-end; it forwards who is at the
    register in two headers. Sets the following Flask g attributes:
    - g.actor_id: the user id (cashier_id on orders)
    - g.actor_name: the display name (cashier_name, adjustment actor)

    Returns 401 if either header is missing or blank.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor_id = (request.headers.get(ACTOR_ID_HEADER) or "").strip()
        actor_name = (request.headers.get(ACTOR_NAME_HEADER) or "").strip()

        if not actor_id or not actor_name:
            return jsonify({"error": "User identity required"}), 401

        g.actor_id = actor_id
        g.actor_name = actor_name

        return f(*args, **kwargs)

    return decorated_function
