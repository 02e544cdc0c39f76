"""Error taxonomy for the booking client.

Every remote failure reaches the caller as one of these types. The HTTP
client maps status codes and the servers' ``error`` text onto them; the
components raise ``ValidationError`` themselves when a caller skips a
precondition.
"""

CONFLICT_MULTIPLE_LOGINS = "more than one user logged"

_AUTH_TEXTS = {"not authorized", "session not found", "client not found",
               "invalid credentials"}

# Server error text -> message shown to the user
_LOGIN_MESSAGES = {
    "client not found": "Customer not registered.",
    "invalid credentials": "Invalid credentials.",
    CONFLICT_MULTIPLE_LOGINS: "Another device is already signed in to this account.",
}


class BookingError(Exception):
    """Base class for every error surfaced by the booking core."""

    kind = "error"
    default_message = "Something went wrong, please try again."

    def __init__(self, message="", status=None):
        super().__init__(message or self.kind)
        self.message = message
        self.status = status

    @property
    def user_message(self):
        return _LOGIN_MESSAGES.get(self.message, self.default_message)


class TransportError(BookingError):
    kind = "transport"
    default_message = "Could not reach the server, please try again."


class AuthError(BookingError):
    kind = "auth"
    default_message = "Session expired, please log in again."


class ConflictError(BookingError):
    kind = "conflict"
    default_message = "This action conflicts with the current state, please refresh."


class NotFoundError(BookingError):
    kind = "not_found"
    default_message = "That item no longer exists."


class ValidationError(BookingError):
    kind = "validation"
    default_message = "Please complete the required fields."


class RequestCancelled(BookingError):
    kind = "cancelled"
    default_message = "Request cancelled."


def error_for_response(status, error_text=""):
    """Map an HTTP status plus the body's ``error`` text to a BookingError."""
    error_text = (error_text or "").strip()

    if error_text == CONFLICT_MULTIPLE_LOGINS:
        return ConflictError(error_text, status)
    if status in (401, 403):
        return AuthError(error_text, status)
    if status == 404:
        return NotFoundError(error_text, status)
    if status in (406, 409):
        return ConflictError(error_text, status)
    if status in (400, 422):
        return ValidationError(error_text, status)
    if status is not None and status >= 400:
        return TransportError(error_text or f"HTTP {status}", status)

    # 2xx with an error body
    if error_text in _AUTH_TEXTS:
        return AuthError(error_text, status)
    return ValidationError(error_text, status)


def user_message(exc):
    """Human-readable text for any exception reaching the UI."""
    if isinstance(exc, BookingError):
        return exc.user_message
    return BookingError.default_message
