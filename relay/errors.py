class RelayError(Exception):
    """Relay-side failure rendered as {"error": message, "reason": reason}."""

    status_code = 500
    reason = "internal_error"

    def __init__(self, message: str, reason: str | None = None):
        super().__init__(message)
        self.message = message
        if reason is not None:
            self.reason = reason

class OwnershipDenied(RelayError):
    status_code = 403
    reason = "access_denied"

class ValidationFailed(RelayError):
    status_code = 400
    reason = "invalid_request"

class NotFound(RelayError):
    status_code = 404
    reason = "not_found"

class Conflict(RelayError):
    status_code = 409
    reason = "duplicate_id"
