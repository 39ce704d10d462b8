"""
Error Taxonomy Module

Domain exceptions raised by the conversation and matching core. Each error
carries the HTTP-style status code and machine-readable code the routing
boundary uses when translating it into a response.

Example Usage:
    from unimatch.utils.errors import NotFoundError

    raise NotFoundError("Conversation")
    # NotFoundError: Conversation not found (status_code=404, code="NOT_FOUND")
"""


class UniMatchError(Exception):
    """Base class for all domain errors."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        """Serialize error for an API error body."""
        return {"code": self.code, "message": self.message}


class ValidationError(UniMatchError):
    """Malformed input shape (bad conversation id, empty message, ...)."""

    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(UniMatchError):
    """Referenced resource does not exist."""

    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, resource: str):
        super().__init__(f"{resource} not found")
        self.resource = resource


class ConfigurationError(UniMatchError):
    """Required external credential or setting is absent."""

    code = "CONFIGURATION_ERROR"


class MatchingError(UniMatchError):
    """Completion-service call failed after the client's retry budget."""

    code = "MATCHING_ERROR"


class SearchError(UniMatchError):
    """Search backend failed. Never surfaced past the web search service."""

    status_code = 502
    code = "SEARCH_ERROR"
