"""Error taxonomy shared by the relay, the store and the presentation layer.

Every error carries the HTTP status it maps to and a message that is safe to
show to the user. The Flask error handler turns them into ``{"error": ...}``.
"""


class SkillScopeError(Exception):
    """Base exception for all SkillScope errors."""

    status_code = 500
    default_message = "An internal server error occurred."

    def __init__(self, message: str = None, status_code: int = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self):
        return {"error": self.message}


class ValidationError(SkillScopeError):
    """Bad or missing client input, rejected before any network call."""

    status_code = 400
    default_message = "Invalid request."


class AuthenticationError(SkillScopeError):
    status_code = 401
    default_message = "user not found!"


class NotFoundError(SkillScopeError):
    status_code = 404
    default_message = "The requested resource was not found."


class RateLimitError(SkillScopeError):
    """Gateway returned 429; the user may retry later."""

    status_code = 429
    default_message = "Rate limit exceeded. Please try again in a moment."


class QuotaExhaustedError(SkillScopeError):
    """Gateway returned 402; needs intervention, not a retry."""

    status_code = 402
    default_message = "AI credits depleted. Please add more credits to continue."


class UpstreamError(SkillScopeError):
    """Any other gateway failure: non-2xx, network error, timeout."""

    status_code = 500
    default_message = "AI service request failed. Please try again."


class UpstreamShapeError(UpstreamError):
    """The structured call came back without usable arguments."""

    default_message = "Invalid response from AI service"


class MalformedGraphError(UpstreamShapeError):
    """Mind-map completion could not be parsed into a graph."""

    default_message = "AI service returned a malformed mind map"


class PersistenceError(SkillScopeError):
    status_code = 500
    default_message = "Failed to access the database."
