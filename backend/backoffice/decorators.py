# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .services import auth_service
from .services.governance_service import get_governance
from .validation import LastAdminGuard, NotFound, ValidationError


def _is_authenticated() -> bool:
    return hasattr(g, 'actor_email') and hasattr(g, 'actor_account')


def require_auth(f):
    """
    Require a signed bearer token naming an active account.

    Sets the following Flask g attributes:
    - g.actor_email: The email every mutation is attributed to
    - g.actor_account: The AccountRecord behind that email

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid or expired token
    - No account with that email, or the account is not active
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1]
        email = auth_service.resolve_actor(token)

        if not email:
            return jsonify({"error": "Invalid or expired token"}), 401

        account = get_governance().accounts.find_by_email(email)
        if account is None or account.status != "active":
            return jsonify({"error": "Account is not active"}), 401

        g.actor_email = account.email
        g.actor_account = account

        return f(*args, **kwargs)

    return decorated_function


def require_permission(module: str, action: str):
    """
    Require the actor's role to grant `action` on `module`.

    An actor whose role name resolves to no role (a stale row loaded from the
    store) is denied until the account is reassigned.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_auth was called first
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            role = get_governance().accounts.role_of(g.actor_account)
            if role is None or not role.permissions.is_granted(module, action):
                return jsonify({
                    "error": "Permission denied",
                    "required_permission": f"{module}.{action}",
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def governance_errors(f):
    """
    Map governance exceptions to JSON responses.

    - ValidationError  -> 400 {"errors": {field: message}}
    - NotFound         -> 404
    - LastAdminGuard   -> 409
    - anything else    -> logged, 500
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except ValidationError as e:
            return jsonify({"error": "Validation failed", "errors": e.errors}), 400
        except NotFound as e:
            return jsonify({"error": str(e)}), 404
        except LastAdminGuard as e:
            return jsonify({"error": str(e)}), 409
        except Exception:
            current_app.logger.exception("Unhandled error in %s", request.path)
            return jsonify({"error": "Internal server error"}), 500

    return decorated_function
