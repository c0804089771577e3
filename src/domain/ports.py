"""
What the services need from storage, mail, sessions and identity providers.

Adapters satisfy these Protocols by shape; none of them subclass.
"""

from collections.abc import Mapping
from datetime import datetime
from typing import Protocol
from uuid import UUID

from .models import (
    Account,
    AuthProvider,
    ExternalIdentity,
    PendingRegistration,
    Role,
    SessionClaims,
)


class PendingRegistrationRepository(Protocol):
    """
    Port interface for in-flight signups.

    Keyed by normalized email. Every mutating method must be a single
    atomic store operation so concurrent requests for the same email
    cannot lose updates.
    """

    def upsert(
        self,
        email: str,
        password_hash: str,
        display_name: str,
        phone: str | None,
        token_hash: str,
        expires_at: datetime,
    ) -> bool:
        """
        Create or wholesale-replace the pending registration for email.

        Repeated signups for the same email leave exactly one record,
        carrying the values of the most recent call. The account check is
        part of the same write: returns False, writing nothing, when an
        account already holds email.
        """
        ...

    def get_by_email(self, email: str) -> PendingRegistration | None:
        """Return the record for email, expired or not. Never exposes the token."""
        ...

    def find_by_token(self, token_hash: str) -> PendingRegistration | None:
        """Return the record whose token hash matches, expired or not."""
        ...

    def rotate_token(
        self, email: str, token_hash: str, expires_at: datetime, now: datetime
    ) -> bool:
        """
        Replace token and expiry in place.

        Only a live record (expires_at > now) is rotated.

        Returns:
            True if a live record was updated, False otherwise
        """
        ...

    def delete(self, email: str) -> bool:
        """Delete the record for email. Returns True if a row was removed."""
        ...

    def delete_expired(self, email: str, now: datetime) -> bool:
        """
        Delete the record for email only if it has expired.

        Leaves a record freshly re-created by a concurrent signup untouched.
        """
        ...

    def purge_expired(self, now: datetime) -> int:
        """Delete every record with expires_at <= now. Returns rows removed."""
        ...


class AccountRepository(Protocol):
    """Port interface for confirmed accounts, keyed by unique email."""

    def get_by_email(self, email: str) -> Account | None: ...

    def get_by_id(self, account_id: UUID) -> Account | None: ...

    def get_by_external_subject(self, subject: str) -> Account | None: ...

    def get_by_verification_token(self, token_hash: str) -> Account | None:
        """Return the account created by consuming this verification token."""
        ...

    def create(
        self,
        *,
        email: str,
        display_name: str,
        role: Role,
        auth_provider: AuthProvider,
        is_email_verified: bool,
        password_hash: str | None = None,
        phone: str | None = None,
        avatar_url: str | None = None,
        external_subject_id: str | None = None,
        verification_token_hash: str | None = None,
    ) -> Account:
        """
        Insert a new account.

        Raises:
            DuplicateAccount: If the email (or external subject) is taken
        """
        ...

    def link_external_identity(
        self, account_id: UUID, subject: str, avatar_url: str | None
    ) -> Account:
        """
        Attach an external subject to an existing account.

        Marks the email verified and fills avatar_url only when empty.
        """
        ...

    def update_profile(
        self, account_id: UUID, changes: Mapping[str, str | None]
    ) -> Account | None:
        """
        Set exactly the profile columns named in changes; None clears a column.

        An empty mapping returns the account unchanged. Returns None if the
        account is gone.
        """
        ...

    def set_password(self, account_id: UUID, password_hash: str) -> None: ...

    def set_reset_token(self, email: str, token_hash: str, expires_at: datetime) -> bool:
        """
        Store a password reset token for a password-bearing account.

        Returns:
            True if a matching account was updated
        """
        ...

    def consume_reset_token(self, token_hash: str, password_hash: str, now: datetime) -> bool:
        """
        Atomically swap in a new password for a live reset token.

        Clears the reset fields so the token cannot be reused.

        Returns:
            True if a live token matched
        """
        ...


class MailDispatcher(Protocol):
    """
    Port interface for transactional email delivery.

    Implementations raise DeliveryError on any failure (network, quota,
    credentials). They must never block longer than their configured timeout.
    """

    def send_verification_email(self, to: str, token: str) -> None: ...

    def send_password_reset_email(self, to: str, token: str) -> None: ...


class SessionIssuer(Protocol):
    """Port interface for signed session credentials."""

    def issue(self, account: Account) -> str:
        """Sign {account_id, email, role} with the configured validity window."""
        ...

    def verify(self, token: str) -> SessionClaims:
        """
        Verify a presented credential.

        Raises:
            InvalidCredential: Malformed, wrong signature, or expired
        """
        ...


class ExternalIdentityVerifier(Protocol):
    """Port interface for third-party identity assertions."""

    def verify(self, external_token: str) -> ExternalIdentity:
        """
        Verify an identity provider token.

        Raises:
            IdentityVerificationError: If the token cannot be trusted
        """
        ...
