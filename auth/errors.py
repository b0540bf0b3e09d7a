"""
auth/errors.py -- Domain error taxonomy for the auth and account layers.

Every error carries a stable machine-readable code and the HTTP status the
API layer maps it to. Route handlers never build auth error bodies by hand;
they raise one of these and api/errors.py renders the envelope.

Two families:
  HerdCareError -- raised by the store, AuthService, request gate and access
      policy. Mapped 1:1 to HTTP status.
  TokenError -- raised by the token codec only. Internal: the gate and the
      service translate it into TokenExpired / InvalidToken so attackers
      cannot tell a bad signature from a malformed token.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations


class HerdCareError(Exception):
    """Base class for errors that map to an HTTP response."""

    status_code: int = 400
    code: str = "bad_request"
    default_message: str = "Bad request."

    def __init__(self, message: str | None = None, *, detail: str | None = None) -> None:
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)


class ValidationFailed(HerdCareError):
    status_code = 400
    code = "validation_failed"
    default_message = "Validation failed."


class DuplicateAccount(HerdCareError):
    status_code = 400
    code = "duplicate_account"
    default_message = "User with this email already exists."


class InvalidCredentials(HerdCareError):
    """Unknown email and wrong password share this error and message."""

    status_code = 401
    code = "invalid_credentials"
    default_message = "Invalid email or password."


class MissingCredential(HerdCareError):
    status_code = 401
    code = "missing_credential"
    default_message = "Access denied. No token provided."


class MissingToken(HerdCareError):
    status_code = 401
    code = "missing_token"
    default_message = "No refresh token provided."


class TokenExpired(HerdCareError):
    """Access token expired -- the client should call /auth/refresh."""

    status_code = 401
    code = "token_expired"
    default_message = "Token expired. Please refresh your session."


class InvalidToken(HerdCareError):
    """Bad signature, wrong type, malformed, or revoked. Deliberately undistinguished."""

    status_code = 401
    code = "invalid_token"
    default_message = "Invalid token."


class AccountNotFound(InvalidToken):
    """Token verified but its subject no longer exists. Always 401, never 404."""

    code = "account_not_found"
    default_message = "Invalid token. User not found."


class Unauthenticated(HerdCareError):
    status_code = 401
    code = "unauthenticated"
    default_message = "Authentication required."


class Forbidden(HerdCareError):
    status_code = 403
    code = "forbidden"
    default_message = "Access denied."


class NotFound(HerdCareError):
    """Admin lookup of a missing account. Never raised in token context."""

    status_code = 404
    code = "not_found"
    default_message = "User not found."


class StorageUnavailable(HerdCareError):
    """Persistence failed or timed out. Never surfaced as 401/403."""

    status_code = 500
    code = "storage_unavailable"
    default_message = "Storage is temporarily unavailable."


# ---------------------------------------------------------------------------
# Token codec errors
# ---------------------------------------------------------------------------


class TokenError(Exception):
    """Base class for token codec failures."""


class Malformed(TokenError):
    """The token does not parse as a signed token with a JSON object payload."""


class SignatureInvalid(TokenError):
    """The token was not signed with the expected secret, or was altered."""


class Expired(TokenError):
    """The signature is valid but the embedded expiry is in the past."""
