"""
Domain entities and value objects.

Plain dataclasses shared between the domain services, the ports they
depend on, and the adapters that implement those ports.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID


class Role(str, Enum):
    """Account roles. Fixed at creation, never self-escalated."""

    CLIENT = "client"
    WORKER = "worker"
    ADMIN = "admin"


class AuthProvider(str, Enum):
    """
    How an account proves its identity.

    LOCAL accounts sign in with a password and must confirm their email.
    EXTERNAL accounts are asserted by a trusted identity provider and
    are treated as pre-verified.
    """

    LOCAL = "local"
    EXTERNAL = "external"


class VerificationOutcome(Enum):
    """
    Result of consuming a verification link.

    Both values are successes: ALREADY_VERIFIED covers duplicate clicks,
    mail-client link prefetchers, and the loser of a concurrent consume.
    """

    VERIFIED = "verified"
    ALREADY_VERIFIED = "already_verified"


@dataclass(frozen=True)
class PendingRegistration:
    """
    An unconfirmed signup awaiting proof of email ownership.

    Token material is intentionally absent: the store only matches on it.
    """

    email: str
    password_hash: str
    display_name: str
    phone: str | None
    expires_at: datetime
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        """True once expires_at has been reached, purged or not."""
        return self.expires_at <= now


@dataclass(frozen=True)
class Account:
    """A confirmed account."""

    id: UUID
    email: str
    display_name: str
    role: Role
    auth_provider: AuthProvider
    is_email_verified: bool
    password_hash: str | None = None
    avatar_url: str | None = None
    phone: str | None = None
    external_subject_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class SessionClaims:
    """Claim set bound into a session credential."""

    account_id: str
    email: str
    role: Role


@dataclass(frozen=True)
class ExternalIdentity:
    """Identity asserted by the external identity provider."""

    subject: str
    email: str | None
    display_name: str | None = None
    avatar_url: str | None = None


@dataclass(frozen=True)
class SignupAccepted:
    """Acknowledgement that signup was recorded and verification is required."""

    email: str
    requires_verification: bool = True


@dataclass(frozen=True)
class VerificationStatus:
    """Answer to a verification poll; token and account only when verified."""

    verified: bool
    token: str | None = None
    account: Account | None = None


@dataclass(frozen=True)
class AuthenticatedSession:
    """A freshly issued session credential and the account it belongs to."""

    token: str
    account: Account
