from functools import wraps
from flask import abort
from flask_jwt_extended import verify_jwt_in_request
from ndtravel.services.policy import current_actor, has_permissions, meets_level


def require_permissions(*names: str):
    """Caller must hold every named permission. Super Admin passes; customers never do."""
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            actor = current_actor()
            if actor.is_customer:
                abort(403, description='Back-office access is not available for customer accounts')
            if not has_permissions(actor, *names):
                abort(403, description='Missing permission')
            return fn(*args, **kwargs)
        return wrapper
    return outer


def require_level(required_level: int):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            if not meets_level(current_actor(), required_level):
                abort(403, description='Insufficient role level')
            return fn(*args, **kwargs)
        return wrapper
    return outer
