"""
Registration domain service - Pending registration lifecycle.

This module contains the core business logic for local signups: a signup
is parked as a pending registration until the emailed link proves control
of the address, and only then becomes a confirmed account.

Lifecycle
=========

    (none) --begin_signup--> PENDING --consume_verification--> ACCOUNT
               ^                |  \
               |                |   `--resend_verification--> PENDING (new token, new expiry)
               `--begin_signup--'
                  (upsert)      `--expires_at reached--> (purged)

Invariants:
- At most one pending registration per normalized email.
- A pending registration and an account never both exist for the same
  email once an operation has completed; the account always wins.
- Expiry is checked on every read; the storage purge is only a cleanup.

Concurrency:
There is no in-process locking. begin_signup and resend_verification are
single atomic store operations. Two concurrent consume_verification calls
race on the accounts.email unique constraint; the loser receives
DuplicateAccount and reports ALREADY_VERIFIED.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from .exceptions import (
    AlreadyVerified,
    DeliveryError,
    DuplicateAccount,
    EmailAlreadyRegistered,
    InvalidOrExpiredLink,
    MailDispatchFailed,
    NoPendingRegistration,
    ValidationError,
)
from .models import (
    AuthProvider,
    Role,
    SignupAccepted,
    VerificationOutcome,
    VerificationStatus,
)
from .ports import AccountRepository, MailDispatcher, PendingRegistrationRepository, SessionIssuer
from .security import (
    check_password_length,
    generate_token,
    hash_password,
    hash_token,
    normalize_email,
)

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RegistrationService:
    """
    Domain service for the signup / email verification lifecycle.

    Orchestrates signup intake, token issuance, verification-link
    consumption, resend, and polling-based verification checks.
    """

    pending_repository: PendingRegistrationRepository
    account_repository: AccountRepository
    mail_dispatcher: MailDispatcher
    session_issuer: SessionIssuer
    verification_ttl: timedelta = timedelta(hours=24)
    bcrypt_rounds: int = 10
    clock: Callable[[], datetime] = field(default=utcnow)

    def begin_signup(
        self,
        email: str,
        password: str,
        display_name: str,
        phone: str | None = None,
    ) -> SignupAccepted:
        """
        Record a signup and email a verification link.

        Args:
            email: User's email address (will be normalized)
            password: Raw password, at least 6 characters (will be hashed)
            display_name: Non-empty display name
            phone: Optional phone number

        Returns:
            SignupAccepted carrying the normalized email

        Raises:
            ValidationError: If a field constraint is violated
            EmailAlreadyRegistered: If a confirmed account exists for the email
        """
        normalized_email = normalize_email(email or "")
        display_name = (display_name or "").strip()
        phone = (phone or "").strip() or None

        if not normalized_email:
            raise ValidationError("Email is required")
        if not display_name:
            raise ValidationError("Display name is required")
        check_password_length(password)

        if self.account_repository.get_by_email(normalized_email) is not None:
            raise EmailAlreadyRegistered(normalized_email)

        password_hash = hash_password(password, self.bcrypt_rounds)
        token = generate_token()

        # Replaces any abandoned earlier attempt wholesale
        written = self.pending_repository.upsert(
            normalized_email,
            password_hash,
            display_name,
            phone,
            hash_token(token),
            self.clock() + self.verification_ttl,
        )
        if not written:
            raise EmailAlreadyRegistered(normalized_email)

        # A verification committing while the upsert ran may have cleared the
        # pending rows before ours landed
        if self.account_repository.get_by_email(normalized_email) is not None:
            self.pending_repository.delete(normalized_email)
            raise EmailAlreadyRegistered(normalized_email)
        logger.info("Pending registration stored for %s", normalized_email)

        # The record is already persisted; a failed send is recoverable via resend
        self._dispatch_verification(normalized_email, token, surface_failure=False)
        return SignupAccepted(email=normalized_email)

    def consume_verification(self, token: str) -> VerificationOutcome:
        """
        Turn the pending registration matching token into a confirmed account.

        Account creation is made durable before the pending record is
        removed, so a crash in between leaves the operation retryable.

        Returns:
            VERIFIED on first consumption, ALREADY_VERIFIED on any repeat

        Raises:
            InvalidOrExpiredLink: If no live pending registration matches
        """
        if not token or not token.strip():
            raise InvalidOrExpiredLink()

        token_hash = hash_token(token.strip())
        pending = self.pending_repository.find_by_token(token_hash)

        if pending is None:
            # The link may have been consumed already (double click, prefetcher)
            if self.account_repository.get_by_verification_token(token_hash) is not None:
                return VerificationOutcome.ALREADY_VERIFIED
            raise InvalidOrExpiredLink()

        if pending.is_expired(self.clock()):
            self.pending_repository.delete_expired(pending.email, self.clock())
            raise InvalidOrExpiredLink()

        if self.account_repository.get_by_email(pending.email) is not None:
            self.pending_repository.delete(pending.email)
            return VerificationOutcome.ALREADY_VERIFIED

        try:
            self.account_repository.create(
                email=pending.email,
                display_name=pending.display_name,
                role=Role.CLIENT,
                auth_provider=AuthProvider.LOCAL,
                is_email_verified=True,
                password_hash=pending.password_hash,
                phone=pending.phone,
                verification_token_hash=token_hash,
            )
        except DuplicateAccount:
            logger.info("Concurrent verification for %s lost the race", pending.email)
            self.pending_repository.delete(pending.email)
            return VerificationOutcome.ALREADY_VERIFIED

        self.pending_repository.delete(pending.email)
        logger.info("Account confirmed for %s", pending.email)
        return VerificationOutcome.VERIFIED

    def resend_verification(self, email: str) -> str:
        """
        Rotate the token of a live pending registration and mail it again.

        Returns:
            Normalized email address

        Raises:
            AlreadyVerified: If an account already exists
            NoPendingRegistration: If there is nothing to resend; signup must restart
            MailDispatchFailed: If the mail provider rejected the send
        """
        normalized_email = normalize_email(email or "")
        if not normalized_email:
            raise ValidationError("Email is required")

        if self.account_repository.get_by_email(normalized_email) is not None:
            raise AlreadyVerified(normalized_email)

        token = generate_token()
        now = self.clock()
        rotated = self.pending_repository.rotate_token(
            normalized_email, hash_token(token), now + self.verification_ttl, now
        )
        if not rotated:
            raise NoPendingRegistration(normalized_email)

        # The user is actively waiting and has no other copy of the token
        self._dispatch_verification(normalized_email, token, surface_failure=True)
        return normalized_email

    def poll_verification_status(self, email: str) -> VerificationStatus:
        """
        Read-only check used by clients polling after signup.

        Never mutates state. Issues a session credential once the account
        is confirmed; since accounts are never deleted here, the answer is
        monotonic.
        """
        normalized_email = normalize_email(email or "")
        if not normalized_email:
            return VerificationStatus(verified=False)

        account = self.account_repository.get_by_email(normalized_email)
        if account is None or not account.is_email_verified:
            return VerificationStatus(verified=False)

        return VerificationStatus(
            verified=True,
            token=self.session_issuer.issue(account),
            account=account,
        )

    def _dispatch_verification(self, email: str, token: str, *, surface_failure: bool) -> None:
        """
        Hand the verification link to the mail dispatcher.

        Args:
            surface_failure: Raise MailDispatchFailed instead of logging and
                continuing when delivery fails
        """
        try:
            self.mail_dispatcher.send_verification_email(email, token)
        except DeliveryError as e:
            if surface_failure:
                logger.error("Verification email to %s failed: %s", email, e)
                raise MailDispatchFailed(email) from e
            logger.warning(
                "Verification email to %s failed, pending registration kept: %s", email, e
            )
