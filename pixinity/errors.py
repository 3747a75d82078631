"""Domain errors raised by services and rendered as ``{"error": ...}`` bodies."""


class PixinityError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class AuthenticationRequired(PixinityError):
    status_code = 401
    default_message = "Authentication required"


class AuthorizationDenied(PixinityError):
    status_code = 403
    default_message = "Access denied"


class NotFound(PixinityError):
    status_code = 404
    default_message = "Not found"


class ValidationFailed(PixinityError):
    status_code = 400
    default_message = "Invalid request"


class Conflict(PixinityError):
    status_code = 409
    default_message = "Already exists"


class Expired(PixinityError):
    status_code = 410
    default_message = "Invitation code has expired"


class InvalidCode(PixinityError):
    status_code = 400
    default_message = "Invalid invitation code"


class InternalError(PixinityError):
    status_code = 500
