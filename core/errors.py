"""
core/errors.py -- Typed error hierarchy for TaskTrack.

Every failure the core can report is a TrackerError subclass carrying a
machine-readable code and the HTTP status the API layer maps it to. Route
handlers never build error responses by hand: they let these propagate and
api/main.py renders the uniform {"error": {"code", "message"}} envelope.

Recoverable-by-caller errors (4xx) never crash the process. Only
StoreUnavailable (transient) and AllocationConflict (retries exhausted) are
server-side failures.

Layer rule: core/ is the kernel. No imports from api/, auth/, or tracker/.
"""

from __future__ import annotations


class TrackerError(Exception):
    """Base class for all domain and infrastructure errors."""

    code = "error"
    http_status = 500
    default_message = "An error occurred."
    # True when the caller may retry an idempotent operation after backoff.
    transient = False

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


class InvalidCredentials(TrackerError):
    code = "invalid_credentials"
    http_status = 401
    default_message = "Invalid email or password."


class EmailTaken(TrackerError):
    code = "email_taken"
    http_status = 409
    default_message = "Email already registered."


class PasswordTooLong(TrackerError):
    """bcrypt only accepts passwords up to 72 bytes once UTF-8 encoded."""

    code = "password_too_long"
    http_status = 422
    default_message = "Password must be at most 72 bytes when UTF-8 encoded."


class RegistrationClosed(TrackerError):
    code = "registration_closed"
    http_status = 403
    default_message = "Self-registration is disabled."


class Unauthenticated(TrackerError):
    code = "unauthenticated"
    http_status = 401
    default_message = "Authentication required."


# ---------------------------------------------------------------------------
# Credential verification
# ---------------------------------------------------------------------------


class CredentialError(TrackerError):
    """A bearer credential failed verification."""

    code = "invalid_token"
    http_status = 401
    default_message = "Invalid token."


class InvalidSignature(CredentialError):
    code = "invalid_signature"
    default_message = "Token signature is invalid."


class Expired(CredentialError):
    code = "expired"
    default_message = "Token has expired."


class WrongKind(CredentialError):
    code = "wrong_kind"
    default_message = "Token is not of the expected kind."


# ---------------------------------------------------------------------------
# Refresh token rotation
# ---------------------------------------------------------------------------


class RotationError(TrackerError):
    code = "rotation_failed"
    http_status = 401
    default_message = "Refresh token rejected."


class UnknownToken(RotationError):
    code = "unknown_token"
    default_message = "Refresh token is not recognised."


class AlreadyRevoked(RotationError):
    code = "already_revoked"
    default_message = "Refresh token has already been used or revoked."


class SubjectMismatch(RotationError):
    code = "subject_mismatch"
    default_message = "Refresh token does not belong to this subject."


# ---------------------------------------------------------------------------
# Authorization / resources
# ---------------------------------------------------------------------------


class Forbidden(TrackerError):
    code = "forbidden"
    http_status = 403
    default_message = "You do not have access to this resource."


class NotFound(TrackerError):
    code = "not_found"
    http_status = 404
    default_message = "Resource not found."


# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------


class AllocationConflict(TrackerError):
    """Sequence allocation still conflicted after every retry. Fatal, not a client error."""

    code = "allocation_conflict"
    http_status = 500
    default_message = "Could not allocate a sequence number."


class StoreUnavailable(TrackerError):
    """The record store timed out or could not be reached."""

    code = "store_unavailable"
    http_status = 503
    default_message = "The record store is temporarily unavailable."
    transient = True
