"""
Shared test fixtures and configuration.

This module provides pytest fixtures for:
- In-memory repositories mirroring the PostgreSQL adapters' semantics
- A recording (and optionally failing) mail dispatcher
- A controllable clock
- Domain services wired to the fakes
"""

import dataclasses
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from src.adapters.tokens import JwtSessionIssuer
from src.domain.accounts import AccountService
from src.domain.exceptions import DeliveryError, DuplicateAccount, IdentityVerificationError
from src.domain.models import Account, AuthProvider, ExternalIdentity, PendingRegistration
from src.domain.registration import RegistrationService

TEST_JWT_SECRET = "test-secret-key-with-enough-length-for-hs256"


class FrozenClock:
    """Clock returning a fixed instant until advanced."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


class InMemoryPendingRepository:
    """Dict-backed PendingRegistrationRepository keyed by email."""

    def __init__(self, accounts: "InMemoryAccountRepository | None" = None) -> None:
        self.records: dict[str, PendingRegistration] = {}
        self.token_hashes: dict[str, str] = {}  # email -> token hash
        self.accounts = accounts
        self.writes = 0

    def upsert(self, email, password_hash, display_name, phone, token_hash, expires_at) -> bool:
        if self.accounts is not None and self.accounts.get_by_email(email) is not None:
            return False
        self.writes += 1
        self.records[email] = PendingRegistration(
            email=email,
            password_hash=password_hash,
            display_name=display_name,
            phone=phone,
            expires_at=expires_at,
        )
        self.token_hashes[email] = token_hash
        return True

    def get_by_email(self, email):
        return self.records.get(email)

    def find_by_token(self, token_hash):
        for email, stored in self.token_hashes.items():
            if stored == token_hash:
                return self.records[email]
        return None

    def rotate_token(self, email, token_hash, expires_at, now) -> bool:
        record = self.records.get(email)
        if record is None or record.expires_at <= now:
            return False
        self.writes += 1
        self.records[email] = dataclasses.replace(record, expires_at=expires_at)
        self.token_hashes[email] = token_hash
        return True

    def delete(self, email) -> bool:
        if email not in self.records:
            return False
        self.writes += 1
        del self.records[email]
        del self.token_hashes[email]
        return True

    def delete_expired(self, email, now) -> bool:
        record = self.records.get(email)
        if record is None or record.expires_at > now:
            return False
        return self.delete(email)

    def purge_expired(self, now) -> int:
        expired = [e for e, r in self.records.items() if r.expires_at <= now]
        for email in expired:
            self.delete(email)
        return len(expired)


class InMemoryAccountRepository:
    """Dict-backed AccountRepository enforcing unique email and subject."""

    def __init__(self) -> None:
        self.accounts: dict[uuid.UUID, Account] = {}
        self.verification_tokens: dict[uuid.UUID, str] = {}
        self.reset_tokens: dict[uuid.UUID, tuple[str, datetime]] = {}
        self.writes = 0

    def get_by_email(self, email):
        return next((a for a in self.accounts.values() if a.email == email), None)

    def get_by_id(self, account_id):
        return self.accounts.get(account_id)

    def get_by_external_subject(self, subject):
        return next(
            (a for a in self.accounts.values() if a.external_subject_id == subject), None
        )

    def get_by_verification_token(self, token_hash):
        for account_id, stored in self.verification_tokens.items():
            if stored == token_hash:
                return self.accounts[account_id]
        return None

    def create(self, *, verification_token_hash=None, **fields) -> Account:
        if self.get_by_email(fields["email"]) is not None:
            raise DuplicateAccount(fields["email"])
        subject = fields.get("external_subject_id")
        if subject is not None and self.get_by_external_subject(subject) is not None:
            raise DuplicateAccount(subject)
        self.writes += 1
        account = Account(id=uuid.uuid4(), **fields)
        self.accounts[account.id] = account
        if verification_token_hash is not None:
            self.verification_tokens[account.id] = verification_token_hash
        return account

    def link_external_identity(self, account_id, subject, avatar_url):
        self.writes += 1
        account = self.accounts[account_id]
        updated = dataclasses.replace(
            account,
            external_subject_id=subject,
            auth_provider=AuthProvider.EXTERNAL,
            is_email_verified=True,
            avatar_url=account.avatar_url or avatar_url,
        )
        self.accounts[account_id] = updated
        return updated

    def update_profile(self, account_id, changes):
        account = self.accounts.get(account_id)
        if account is None:
            return None
        self.writes += 1
        updated = dataclasses.replace(account, **changes)
        self.accounts[account_id] = updated
        return updated

    def set_password(self, account_id, password_hash) -> None:
        self.writes += 1
        self.accounts[account_id] = dataclasses.replace(
            self.accounts[account_id], password_hash=password_hash
        )

    def set_reset_token(self, email, token_hash, expires_at) -> bool:
        account = self.get_by_email(email)
        if account is None or account.password_hash is None:
            return False
        self.writes += 1
        self.reset_tokens[account.id] = (token_hash, expires_at)
        return True

    def consume_reset_token(self, token_hash, password_hash, now) -> bool:
        for account_id, (stored, expires_at) in list(self.reset_tokens.items()):
            if stored == token_hash and expires_at > now:
                del self.reset_tokens[account_id]
                self.set_password(account_id, password_hash)
                return True
        return False


class RecordingMailDispatcher:
    """Records sends; raises DeliveryError while `fail` is True."""

    def __init__(self) -> None:
        self.verification_emails: list[tuple[str, str]] = []
        self.reset_emails: list[tuple[str, str]] = []
        self.fail = False

    def send_verification_email(self, to: str, token: str) -> None:
        if self.fail:
            raise DeliveryError("simulated provider outage")
        self.verification_emails.append((to, token))

    def send_password_reset_email(self, to: str, token: str) -> None:
        if self.fail:
            raise DeliveryError("simulated provider outage")
        self.reset_emails.append((to, token))

    @property
    def last_token(self) -> str:
        return self.verification_emails[-1][1]


class StubIdentityVerifier:
    """Maps known external tokens to identities; anything else is rejected."""

    def __init__(self) -> None:
        self.identities: dict[str, ExternalIdentity] = {}

    def verify(self, external_token: str) -> ExternalIdentity:
        try:
            return self.identities[external_token]
        except KeyError:
            raise IdentityVerificationError("unknown token") from None


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def pending_repository(account_repository) -> InMemoryPendingRepository:
    return InMemoryPendingRepository(account_repository)


@pytest.fixture
def account_repository() -> InMemoryAccountRepository:
    return InMemoryAccountRepository()


@pytest.fixture
def mailer() -> RecordingMailDispatcher:
    return RecordingMailDispatcher()


@pytest.fixture
def identity_verifier() -> StubIdentityVerifier:
    return StubIdentityVerifier()


@pytest.fixture
def session_issuer() -> JwtSessionIssuer:
    # Sessions are checked against wall-clock time by PyJWT
    return JwtSessionIssuer(secret_key=TEST_JWT_SECRET)


@pytest.fixture
def registration_service(
    pending_repository, account_repository, mailer, session_issuer, clock
) -> RegistrationService:
    return RegistrationService(
        pending_repository=pending_repository,
        account_repository=account_repository,
        mail_dispatcher=mailer,
        session_issuer=session_issuer,
        bcrypt_rounds=4,
        clock=clock,
    )


@pytest.fixture
def account_service(
    pending_repository, account_repository, mailer, session_issuer, identity_verifier, clock
) -> AccountService:
    return AccountService(
        account_repository=account_repository,
        pending_repository=pending_repository,
        session_issuer=session_issuer,
        mail_dispatcher=mailer,
        identity_verifier=identity_verifier,
        bcrypt_rounds=4,
        clock=clock,
    )
