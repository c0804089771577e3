"""
Domain layer - Pure business logic with zero web or database framework imports.

This package contains the account lifecycle of the marketplace backend:
pending registrations, email verification, and sign-in. It defines its own
port interfaces for infrastructure abstraction, so storage, mail delivery,
token signing, and identity providers are all injected.
"""

from .accounts import AccountService
from .exceptions import (
    AlreadyVerified,
    EmailAlreadyRegistered,
    EmailNotVerified,
    InvalidCredential,
    InvalidCredentials,
    InvalidOrExpiredLink,
    MailDispatchFailed,
    NoPendingRegistration,
    RegistrationError,
    ValidationError,
)
from .models import Account, AuthProvider, PendingRegistration, Role, VerificationOutcome
from .ports import (
    AccountRepository,
    ExternalIdentityVerifier,
    MailDispatcher,
    PendingRegistrationRepository,
    SessionIssuer,
)
from .registration import RegistrationService

__all__ = [
    "Account",
    "AccountRepository",
    "AccountService",
    "AlreadyVerified",
    "AuthProvider",
    "EmailAlreadyRegistered",
    "EmailNotVerified",
    "ExternalIdentityVerifier",
    "InvalidCredential",
    "InvalidCredentials",
    "InvalidOrExpiredLink",
    "MailDispatchFailed",
    "MailDispatcher",
    "NoPendingRegistration",
    "PendingRegistration",
    "PendingRegistrationRepository",
    "RegistrationError",
    "RegistrationService",
    "Role",
    "SessionIssuer",
    "ValidationError",
    "VerificationOutcome",
]
