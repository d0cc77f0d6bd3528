# Overview: Request authentication and role-gate decorators for API routes.

from functools import wraps
from typing import Iterable

from flask import request, g, current_app

from .errors import Unauthenticated, Forbidden
from .services import session_service


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user')


def current_user():
    return g.current_user


def require_auth(f):
    """
    Require a valid bearer token and load the caller.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.session_context: The full SessionContext object

    SECURITY: Raises Unauthenticated (401) if:
    - No Authorization header, or not a Bearer credential
    - Invalid or expired token
    - Unknown user that cannot be provisioned
    - User account deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            raise Unauthenticated("Authentication required")

        token = auth_header.split(" ", 1)[1].strip()
        if not token:
            raise Unauthenticated("Authentication required")

        context = session_service.validate_session(token)
        if not context:
            raise Unauthenticated("Invalid or expired token")

        g.current_user = context.user
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_roles(roles: Iterable[str]):
    """
    Role gate: allow the request only if the caller's role is in `roles`.

    There is no role hierarchy; each route passes its exact accepted set
    (see roles.py). Stack under @require_auth.
    """
    accepted = frozenset(roles)

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_auth was called first
            if not _is_authenticated():
                raise Unauthenticated("Authentication required")

            user = g.current_user
            if user.role not in accepted:
                current_app.logger.info(
                    "Role gate denied %s %s for user %s (role=%s, accepted=%s)",
                    request.method,
                    request.path,
                    user.id,
                    user.role,
                    ",".join(sorted(accepted)),
                )
                raise Forbidden(
                    "Access denied",
                    details={"requiredRoles": sorted(accepted)},
                )

            return f(*args, **kwargs)

        # Read back by route listings; @wraps carries it up through @require_auth
        decorated_function.required_roles = accepted
        return decorated_function
    return decorator
