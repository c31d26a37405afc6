"""
Typed errors raised by the rental engine.

Every public operation either returns its result or raises one of these.
Validation-type errors carry the offending field and its current value so a
caller can render a field-level message.
"""

from flask import jsonify


class RentalError(Exception):
    """Base class for every error the rental engine raises."""

    code = "rental_error"
    status_code = 400
    default_message = "Error: rental operation failed"

    def __init__(self, message: str = None, field: str = None, current=None) -> None:
        self.message = message or self.default_message
        self.field = field
        self.current = current
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict:
        body = {"error": self.code, "message": self.message}
        if self.field is not None:
            body["field"] = self.field
        if self.current is not None:
            body["current"] = str(self.current)
        return body


class NotFound(RentalError):
    """Raised when a rental, payment, extension or vehicle does not exist."""

    code = "not_found"
    status_code = 404
    default_message = "Error: record not found"


class InvalidTransition(RentalError):
    """Raised when a status change is not reachable from the current status."""

    code = "invalid_transition"
    status_code = 409
    default_message = "Error: rental status does not allow this operation"


class UnavailableResource(RentalError):
    """Raised when a vehicle is not free for the requested dates."""

    code = "unavailable"
    status_code = 409
    default_message = "Error: vehicle is not available for the requested dates"


class InvalidInterval(RentalError):
    """Raised when an end date does not come after the start date."""

    code = "invalid_interval"
    status_code = 422
    default_message = "Error: invalid date range"


class ValidationError(RentalError):
    """Raised when an input field fails validation."""

    code = "validation_failed"
    status_code = 422
    default_message = "Error: validation failed"


class InsufficientFunds(RentalError):
    """Raised when amount math would run on a negative base."""

    code = "insufficient_funds"
    status_code = 422
    default_message = "Error: amount cannot be negative"


class PersistenceFailure(RentalError):
    """Raised when the storage transaction failed and was rolled back."""

    code = "persistence_failure"
    status_code = 500
    default_message = "Error: the operation could not be saved"

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.default_message}


def register_error_handlers(app):
    @app.errorhandler(RentalError)
    def rental_error(e):
        if e.status_code >= 500:
            app.logger.error("Rental operation failed: %s", e)
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(400)
    def bad_request(e): return jsonify(error="bad_request"), 400

    @app.errorhandler(404)
    def not_found(e): return jsonify(error="not_found"), 404

    @app.errorhandler(405)
    def method_not_allowed(e): return jsonify(error="method_not_allowed"), 405

    @app.errorhandler(500)
    def server_error(e): return jsonify(error="server_error"), 500
