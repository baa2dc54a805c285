"""Error taxonomy shared by the scheduling services and the HTTP layer."""

from __future__ import annotations


class FlashdeckError(Exception):
    code = "error"
    status_code = 400
    default_message = "Request could not be processed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidRating(FlashdeckError):
    code = "invalid_rating"
    status_code = 400
    default_message = "Valid rating (1-4) is required"


class InvalidPriorState(FlashdeckError):
    code = "invalid_card_state"
    status_code = 422
    default_message = "Card scheduling state is inconsistent"


class ValidationError(FlashdeckError):
    code = "validation_error"
    status_code = 400
    default_message = "Invalid request"


class NotFound(FlashdeckError):
    code = "not_found"
    status_code = 404
    default_message = "Resource not found"


class Forbidden(FlashdeckError):
    # Rendered exactly like NotFound so callers cannot probe for other users' rows
    code = "not_found"
    status_code = 404
    default_message = "Resource not found"


class Conflict(FlashdeckError):
    code = "conflict"
    status_code = 409
    default_message = "Resource already exists"


class PersistenceFailure(FlashdeckError):
    code = "persistence_failure"
    status_code = 503
    default_message = "Storage is temporarily unavailable, please retry"
