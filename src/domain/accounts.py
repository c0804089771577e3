"""
Account domain service - Sign-in and account maintenance.

Covers everything that happens to a confirmed account: password login,
external identity sign-in, profile reads and updates, and password
change / reset. Signup and email verification live in registration.py.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from uuid import UUID

from .exceptions import (
    AccountNotFound,
    DeliveryError,
    DuplicateAccount,
    EmailNotVerified,
    IdentityVerificationError,
    InternalError,
    InvalidCredential,
    InvalidCredentials,
    InvalidOrExpiredLink,
    ValidationError,
)
from .models import Account, AuthenticatedSession, AuthProvider, Role
from .ports import (
    AccountRepository,
    ExternalIdentityVerifier,
    MailDispatcher,
    PendingRegistrationRepository,
    SessionIssuer,
)
from .registration import utcnow
from .security import (
    check_password_length,
    generate_token,
    hash_password,
    hash_token,
    normalize_email,
    verify_password,
)

logger = logging.getLogger(__name__)

PROFILE_FIELDS = frozenset({"display_name", "avatar_url", "phone"})


@dataclass
class AccountService:
    """Domain service for authenticated account operations."""

    account_repository: AccountRepository
    pending_repository: PendingRegistrationRepository
    session_issuer: SessionIssuer
    mail_dispatcher: MailDispatcher
    identity_verifier: ExternalIdentityVerifier | None = None
    password_reset_ttl: timedelta = timedelta(minutes=60)
    bcrypt_rounds: int = 10
    clock: Callable[[], datetime] = field(default=utcnow)

    def login(self, email: str, password: str) -> AuthenticatedSession:
        """
        Authenticate with email and password.

        bcrypt always runs, against a dummy hash when there is nothing on
        file, so timing does not reveal whether an email is known.

        Raises:
            ValidationError: If email or password is missing
            InvalidCredentials: Unknown email or wrong password
            EmailNotVerified: Correct password but email not confirmed yet
        """
        normalized_email = normalize_email(email or "")
        if not normalized_email or not password:
            raise ValidationError("Email and password are required")

        account = self.account_repository.get_by_email(normalized_email)

        if account is None:
            pending = self.pending_repository.get_by_email(normalized_email)
            pending_hash = None
            if pending is not None and not pending.is_expired(self.clock()):
                pending_hash = pending.password_hash
            if verify_password(password, pending_hash):
                raise EmailNotVerified(normalized_email)
            raise InvalidCredentials()

        if not verify_password(password, account.password_hash):
            raise InvalidCredentials()

        if account.auth_provider is AuthProvider.LOCAL and not account.is_email_verified:
            raise EmailNotVerified(normalized_email)

        return self._session_for(account)

    def external_sign_in(self, external_token: str) -> AuthenticatedSession:
        """
        Sign in (or sign up) with an external identity provider token.

        Repeat sign-ins are correlated by the provider's subject id, then
        by email. External accounts are trusted as pre-verified.

        Raises:
            ValidationError: If the token is empty or the identity has no email
            InvalidCredential: If the token cannot be verified
        """
        if self.identity_verifier is None:
            raise InvalidCredential("External sign-in is not configured")
        if not external_token:
            raise ValidationError("External token is required")

        try:
            identity = self.identity_verifier.verify(external_token)
        except IdentityVerificationError as e:
            logger.info("External identity rejected: %s", e)
            raise InvalidCredential("Invalid or expired external token") from e

        if not identity.email:
            raise ValidationError("External account must have an email")
        email = normalize_email(identity.email)

        account = self.account_repository.get_by_external_subject(identity.subject)
        if account is None:
            account = self.account_repository.get_by_email(email)

        if account is None:
            try:
                account = self.account_repository.create(
                    email=email,
                    display_name=identity.display_name or email.split("@")[0],
                    role=Role.CLIENT,
                    auth_provider=AuthProvider.EXTERNAL,
                    is_email_verified=True,
                    avatar_url=identity.avatar_url,
                    external_subject_id=identity.subject,
                )
                logger.info("Account created via external sign-in for %s", email)
            except DuplicateAccount:
                # Concurrent first sign-in (or local verification) won
                account = self.account_repository.get_by_email(email)
                if account is None:
                    raise InternalError("Account vanished after duplicate insert") from None

        if account.external_subject_id is None:
            account = self.account_repository.link_external_identity(
                account.id, identity.subject, identity.avatar_url
            )
            logger.info("External identity linked to %s", account.email)

        # The account supersedes any signup still waiting on its link
        self.pending_repository.delete(account.email)
        return self._session_for(account)

    def get_account(self, account_id: str | UUID) -> Account:
        account = self.account_repository.get_by_id(self._parse_id(account_id))
        if account is None:
            raise AccountNotFound(str(account_id))
        return account

    def update_profile(self, account_id: str | UUID, **changes: str | None) -> Account:
        """
        Update exactly the profile fields passed; passing None clears a field.

        display_name can be changed but never cleared.
        """
        unknown = set(changes) - PROFILE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown profile field: {', '.join(sorted(unknown))}")
        if "display_name" in changes:
            display_name = (changes["display_name"] or "").strip()
            if not display_name:
                raise ValidationError("Display name cannot be empty")
            changes["display_name"] = display_name

        account = self.account_repository.update_profile(self._parse_id(account_id), changes)
        if account is None:
            raise AccountNotFound(str(account_id))
        return account

    def change_password(
        self, account_id: str | UUID, current_password: str, new_password: str
    ) -> None:
        """
        Raises:
            ValidationError: If the new password is too short
            InvalidCredentials: If current_password does not match
        """
        check_password_length(new_password)
        account = self.get_account(account_id)

        if not verify_password(current_password or "", account.password_hash):
            raise InvalidCredentials()

        self.account_repository.set_password(
            account.id, hash_password(new_password, self.bcrypt_rounds)
        )
        logger.info("Password changed for %s", account.email)

    def request_password_reset(self, email: str) -> None:
        """
        Mail a reset link if a password-bearing account exists.

        Behaves identically whether or not the email is known.
        """
        normalized_email = normalize_email(email or "")
        if not normalized_email:
            raise ValidationError("Email is required")

        token = generate_token()
        stored = self.account_repository.set_reset_token(
            normalized_email, hash_token(token), self.clock() + self.password_reset_ttl
        )
        if not stored:
            return

        try:
            self.mail_dispatcher.send_password_reset_email(normalized_email, token)
        except DeliveryError as e:
            logger.warning("Password reset email to %s failed: %s", normalized_email, e)

    def reset_password(self, token: str, new_password: str) -> None:
        """
        Raises:
            ValidationError: If the new password is too short
            InvalidOrExpiredLink: If the reset token is unknown, used, or expired
        """
        check_password_length(new_password)
        if not token or not token.strip():
            raise InvalidOrExpiredLink()

        consumed = self.account_repository.consume_reset_token(
            hash_token(token.strip()),
            hash_password(new_password, self.bcrypt_rounds),
            self.clock(),
        )
        if not consumed:
            raise InvalidOrExpiredLink()

    def _session_for(self, account: Account) -> AuthenticatedSession:
        return AuthenticatedSession(token=self.session_issuer.issue(account), account=account)

    def _parse_id(self, account_id: str | UUID) -> UUID:
        if isinstance(account_id, UUID):
            return account_id
        try:
            return UUID(account_id)
        except (TypeError, ValueError):
            raise AccountNotFound(str(account_id)) from None
