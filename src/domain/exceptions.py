"""
Domain exceptions - Semantic error types for the account lifecycle.

Services raise these; adapters translate database and mail-provider
errors into them before they reach the API layer.

Taxonomy (mapped to HTTP status codes by the API layer):
- ValidationError: bad input shape (400)
- Conflict: email already registered / already verified (400)
- NotFound: no pending registration, unknown or expired token (400/404)
- Unauthorized: bad credentials or session (401/403)
- UpstreamDeliveryFailure: mail dispatch failed on an explicit resend (500)
- InternalError: storage or unexpected failure (500)
"""


class RegistrationError(Exception):
    """Base class for account lifecycle domain errors."""

    pass


class ValidationError(RegistrationError):
    """Input violates a domain constraint (empty field, short password)."""

    pass


class Conflict(RegistrationError):
    """Requested transition clashes with existing state."""

    pass


class EmailAlreadyRegistered(Conflict):
    """A confirmed account already exists for this email."""

    pass


class AlreadyVerified(Conflict):
    """Resend requested for an email whose account is already confirmed."""

    pass


class NotFound(RegistrationError):
    """Referenced record does not exist (or is no longer live)."""

    pass


class InvalidOrExpiredLink(NotFound):
    """Token unknown, already purged, or past its expiry.

    Expiry and "never existed" are deliberately indistinguishable.
    """

    pass


class NoPendingRegistration(NotFound):
    """Neither an account nor a live pending registration exists for the email."""

    pass


class AccountNotFound(NotFound):
    """Account referenced by a session no longer exists."""

    pass


class Unauthorized(RegistrationError):
    """Caller could not be authenticated."""

    pass


class InvalidCredentials(Unauthorized):
    """Email/password combination rejected."""

    pass


class EmailNotVerified(Unauthorized):
    """Password matched but the email address has not been confirmed yet."""

    def __init__(self, email: str) -> None:
        super().__init__(email)
        self.email = email


class InvalidCredential(Unauthorized):
    """Session or external identity token is malformed, forged, or expired."""

    pass


class UpstreamDeliveryFailure(RegistrationError):
    """A third-party delivery collaborator failed."""

    pass


class MailDispatchFailed(UpstreamDeliveryFailure):
    """Verification mail could not be handed to the mail provider."""

    pass


class InternalError(RegistrationError):
    """Storage or other unexpected failure."""

    pass


# Port-level errors raised by adapters and folded into the taxonomy above.


class DeliveryError(Exception):
    """Raised by MailDispatcher adapters when a send attempt fails."""

    pass


class DuplicateAccount(Exception):
    """Raised by AccountRepository when the unique email constraint fires."""

    pass


class IdentityVerificationError(Exception):
    """Raised by ExternalIdentityVerifier when a token cannot be trusted."""

    pass
