from dataclasses import dataclass
from functools import wraps
from typing import Optional

from flask import g, request

from .errors import AuthenticationError


@dataclass(frozen=True)
class SessionContext:
    """Identity of the caller for the duration of one request"""

    user_id: str
    realname: str


def current_session() -> Optional[SessionContext]:
    return g.get("session_context")


def current_user_id() -> Optional[str]:
    session = current_session()
    return session.user_id if session else None


def auth_required(server, optional: bool = False):
    """Decorator function to check if the request's auth token is valid.

    Args:
        server: The SkillScope server holding the user table
        optional: Let anonymous callers through without a session context

    Returns:
        The decorated function
    """

    def decorator(func):
        @wraps(func)
        def decorated_function(*args, **kwargs):
            """Resolve the bearer token to a SessionContext stored on flask.g.

            Raises:
                AuthenticationError: If the token is missing or unknown and auth is not optional.
            """

            if server is None:
                raise ValueError("Server instance is not initialized")

            # Get the authentication token from request header
            auth_token = request.headers.get("Authorization", "")

            # Remove any bearer token prefix if present
            if auth_token.lower().startswith("bearer "):
                auth_token = auth_token[7:]

            g.session_context = server.check_auth_token(auth_token) if auth_token else None
            # optional only admits callers without a token, never a wrong one
            if g.session_context is None and (auth_token or not optional):
                raise AuthenticationError()

            return func(*args, **kwargs)

        return decorated_function

    return decorator
