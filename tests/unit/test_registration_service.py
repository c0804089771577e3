"""
Unit tests for RegistrationService domain logic.

Tests the pending registration lifecycle against in-memory ports to verify:
- Email normalization and input validation
- Verification token generation and hashing at rest
- Idempotent signup upsert
- Link consumption, double-submit protection and expiry
- Resend and polling semantics
- Mail failure handling (swallowed on signup, surfaced on resend)
"""

import hashlib
import re
from datetime import timedelta
from unittest.mock import Mock

import bcrypt
import pytest

from src.domain.exceptions import (
    AlreadyVerified,
    DuplicateAccount,
    EmailAlreadyRegistered,
    InvalidOrExpiredLink,
    MailDispatchFailed,
    NoPendingRegistration,
    ValidationError,
)
from src.domain.models import AuthProvider, Role, VerificationOutcome
from src.domain.registration import RegistrationService


def _sha256(value: str) -> str:
    return hashlib.sha256(value.encode()).hexdigest()


class TestEmailNormalization:
    """Tests for email normalization."""

    def test_normalize_email_strips_and_lowercases(
        self, registration_service, pending_repository
    ) -> None:
        """Email is stored trimmed and lowercased."""
        accepted = registration_service.begin_signup("  User@Example.COM  ", "secret1", "Ana")

        assert accepted.email == "user@example.com"
        assert "user@example.com" in pending_repository.records

    def test_mail_sent_to_normalized_email(self, registration_service, mailer) -> None:
        """Verification link is mailed to the normalized address."""
        registration_service.begin_signup("USER@EXAMPLE.COM", "secret1", "Ana")

        assert mailer.verification_emails[0][0] == "user@example.com"


class TestSignupValidation:
    """Tests for begin_signup input constraints."""

    def test_short_password_rejected(self, registration_service, pending_repository) -> None:
        """Password of 5 characters raises ValidationError and stores nothing."""
        with pytest.raises(ValidationError):
            registration_service.begin_signup("a@x.com", "abcde", "Ana")

        assert pending_repository.records == {}

    def test_three_char_password_rejected(self, registration_service, pending_repository) -> None:
        with pytest.raises(ValidationError):
            registration_service.begin_signup("a@x.com", "abc", "Ana")

        assert pending_repository.records == {}

    def test_password_exactly_6_chars_accepted(self, registration_service) -> None:
        accepted = registration_service.begin_signup("a@x.com", "abcdef", "Ana")
        assert accepted.email == "a@x.com"

    def test_empty_email_rejected(self, registration_service) -> None:
        with pytest.raises(ValidationError):
            registration_service.begin_signup("   ", "secret1", "Ana")

    def test_empty_display_name_rejected(self, registration_service) -> None:
        with pytest.raises(ValidationError):
            registration_service.begin_signup("a@x.com", "secret1", "  ")

    def test_existing_account_rejected(
        self, registration_service, account_repository, mailer
    ) -> None:
        """Signup for an email with a confirmed account raises EmailAlreadyRegistered."""
        account_repository.create(
            email="a@x.com",
            display_name="Ana",
            role=Role.CLIENT,
            auth_provider=AuthProvider.LOCAL,
            is_email_verified=True,
        )

        with pytest.raises(EmailAlreadyRegistered):
            registration_service.begin_signup("A@x.com", "secret1", "Ana")

        assert mailer.verification_emails == []


class TestVerificationTokenGeneration:
    """Tests for verification token generation."""

    def test_token_is_64_hex_chars(self, registration_service, mailer) -> None:
        """Token carries 256 bits of randomness, hex-encoded."""
        registration_service.begin_signup("a@x.com", "secret1", "Ana")

        assert re.fullmatch(r"[0-9a-f]{64}", mailer.last_token)

    def test_tokens_vary(self, registration_service, mailer) -> None:
        for i in range(5):
            registration_service.begin_signup(f"user{i}@x.com", "secret1", "Ana")

        tokens = {token for _, token in mailer.verification_emails}
        assert len(tokens) == 5

    def test_only_token_hash_is_stored(
        self, registration_service, pending_repository, mailer
    ) -> None:
        """The store holds SHA-256 of the token, never the raw value."""
        registration_service.begin_signup("a@x.com", "secret1", "Ana")

        stored = pending_repository.token_hashes["a@x.com"]
        assert stored != mailer.last_token
        assert stored == _sha256(mailer.last_token)

    def test_result_never_carries_token(self, registration_service, mailer) -> None:
        accepted = registration_service.begin_signup("a@x.com", "secret1", "Ana")

        assert mailer.last_token not in repr(accepted)
        assert accepted.requires_verification is True


class TestPasswordHashing:
    """Tests for password hashing."""

    def test_password_is_bcrypt_hashed(self, registration_service, pending_repository) -> None:
        registration_service.begin_signup("a@x.com", "secret1", "Ana")

        password_hash = pending_repository.records["a@x.com"].password_hash
        assert password_hash != "secret1"
        assert re.match(r"^\$2[aby]\$", password_hash)
        assert bcrypt.checkpw(b"secret1", password_hash.encode())


class TestSignupUpsert:
    """Repeated signups for one email leave exactly one pending registration."""

    def test_second_signup_supersedes_first(
        self, registration_service, pending_repository, mailer, clock
    ) -> None:
        registration_service.begin_signup("a@x.com", "secret1", "Ana", "111")
        first_token = mailer.last_token
        first_expiry = pending_repository.records["a@x.com"].expires_at

        clock.advance(timedelta(minutes=5))
        registration_service.begin_signup("a@x.com", "secret2", "Ana Maria", "222")

        assert len(pending_repository.records) == 1
        record = pending_repository.records["a@x.com"]
        assert record.display_name == "Ana Maria"
        assert record.phone == "222"
        assert record.expires_at == first_expiry + timedelta(minutes=5)
        assert pending_repository.token_hashes["a@x.com"] == _sha256(mailer.last_token)

        with pytest.raises(InvalidOrExpiredLink):
            registration_service.consume_verification(first_token)

    def test_expiry_is_24_hours_after_signup(
        self, registration_service, pending_repository, clock
    ) -> None:
        registration_service.begin_signup("a@x.com", "secret1", "Ana")

        assert pending_repository.records["a@x.com"].expires_at == clock.now + timedelta(hours=24)


class TestSignupRacingVerification:
    """A signup never leaves a pending registration next to a confirmed account."""

    def test_link_consumed_between_check_and_write(
        self, registration_service, pending_repository, account_repository, mailer, monkeypatch
    ) -> None:
        registration_service.begin_signup("a@x.com", "secret1", "Ana")
        first_token = mailer.last_token
        lookup = account_repository.get_by_email
        armed = [True]
        outcomes = []

        def lookup_then_click(email):
            found = lookup(email)
            if armed:
                armed.clear()
                outcomes.append(registration_service.consume_verification(first_token))
            return found

        monkeypatch.setattr(account_repository, "get_by_email", lookup_then_click)

        with pytest.raises(EmailAlreadyRegistered):
            registration_service.begin_signup("a@x.com", "other12", "Ana")

        assert outcomes == [VerificationOutcome.VERIFIED]
        assert lookup("a@x.com") is not None
        assert pending_repository.records == {}
        assert len(mailer.verification_emails) == 1

    def test_account_committed_during_write_removes_fresh_row(
        self, registration_service, pending_repository, account_repository, mailer, monkeypatch
    ) -> None:
        write = pending_repository.upsert

        def write_then_account_appears(email, *args):
            written = write(email, *args)
            account_repository.create(
                email=email,
                display_name="Ana",
                role=Role.CLIENT,
                auth_provider=AuthProvider.LOCAL,
                is_email_verified=True,
                password_hash="$2b$04$x",
            )
            return written

        monkeypatch.setattr(pending_repository, "upsert", write_then_account_appears)

        with pytest.raises(EmailAlreadyRegistered):
            registration_service.begin_signup("a@x.com", "secret1", "Ana")

        assert pending_repository.records == {}
        assert mailer.verification_emails == []


class TestSignupMailFailure:
    """Initial signup swallows mail failures."""

    def test_mail_failure_does_not_fail_signup(
        self, registration_service, pending_repository, mailer, caplog
    ) -> None:
        mailer.fail = True

        accepted = registration_service.begin_signup("a@x.com", "secret1", "Ana")

        assert accepted.email == "a@x.com"
        assert "a@x.com" in pending_repository.records
        assert "Verification email to a@x.com failed" in caplog.text

    def test_resend_recovers_after_failed_signup_mail(
        self, registration_service, mailer
    ) -> None:
        mailer.fail = True
        registration_service.begin_signup("a@x.com", "secret1", "Ana")

        mailer.fail = False
        registration_service.resend_verification("a@x.com")

        assert registration_service.consume_verification(mailer.last_token) is (
            VerificationOutcome.VERIFIED
        )


class TestConsumeVerification:
    """Tests for consume_verification."""

    def test_creates_verified_client_account(
        self, registration_service, pending_repository, account_repository, mailer
    ) -> None:
        registration_service.begin_signup("a@x.com", "secret1", "Ana", "+123")

        outcome = registration_service.consume_verification(mailer.last_token)

        assert outcome is VerificationOutcome.VERIFIED
        account = account_repository.get_by_email("a@x.com")
        assert account is not None
        assert account.is_email_verified is True
        assert account.role is Role.CLIENT
        assert account.auth_provider is AuthProvider.LOCAL
        assert account.display_name == "Ana"
        assert account.phone == "+123"
        assert bcrypt.checkpw(b"secret1", account.password_hash.encode())
        assert pending_repository.records == {}

    def test_unknown_token_is_invalid(self, registration_service) -> None:
        with pytest.raises(InvalidOrExpiredLink):
            registration_service.consume_verification("0" * 64)

    def test_empty_token_is_invalid(self, registration_service) -> None:
        with pytest.raises(InvalidOrExpiredLink):
            registration_service.consume_verification("   ")

    def test_second_consume_reports_already_verified_without_writes(
        self, registration_service, pending_repository, account_repository, mailer
    ) -> None:
        registration_service.begin_signup("a@x.com", "secret1", "Ana")
        token = mailer.last_token
        registration_service.consume_verification(token)
        account_writes = account_repository.writes
        pending_writes = pending_repository.writes

        outcome = registration_service.consume_verification(token)

        assert outcome is VerificationOutcome.ALREADY_VERIFIED
        assert len(account_repository.accounts) == 1
        assert account_repository.writes == account_writes
        assert pending_repository.writes == pending_writes

    def test_expired_record_is_unreachable_and_removed(
        self, registration_service, pending_repository, account_repository, mailer, clock
    ) -> None:
        """A record past expires_at is rejected even before the storage purge runs."""
        registration_service.begin_signup("a@x.com", "secret1", "Ana")
        clock.advance(timedelta(hours=24))

        with pytest.raises(InvalidOrExpiredLink):
            registration_service.consume_verification(mailer.last_token)

        assert account_repository.accounts == {}
        assert pending_repository.records == {}

    def test_expired_and_unknown_are_indistinguishable(
        self, registration_service, mailer, clock
    ) -> None:
        registration_service.begin_signup("a@x.com", "secret1", "Ana")
        clock.advance(timedelta(hours=25))

        with pytest.raises(InvalidOrExpiredLink) as expired:
            registration_service.consume_verification(mailer.last_token)
        with pytest.raises(InvalidOrExpiredLink) as unknown:
            registration_service.consume_verification("f" * 64)

        assert type(expired.value) is type(unknown.value)
        assert str(expired.value) == str(unknown.value)

    def test_existing_account_short_circuits_to_already_verified(
        self, registration_service, pending_repository, account_repository, mailer
    ) -> None:
        """Pending record left behind next to an account is cleaned up."""
        registration_service.begin_signup("a@x.com", "secret1", "Ana")
        account_repository.create(
            email="a@x.com",
            display_name="Ana",
            role=Role.CLIENT,
            auth_provider=AuthProvider.EXTERNAL,
            is_email_verified=True,
        )

        outcome = registration_service.consume_verification(mailer.last_token)

        assert outcome is VerificationOutcome.ALREADY_VERIFIED
        assert pending_repository.records == {}
        assert len(account_repository.accounts) == 1

    def test_lost_creation_race_folds_into_already_verified(self, mailer) -> None:
        """DuplicateAccount from the store becomes ALREADY_VERIFIED, not an error."""
        pending_repo = Mock()
        account_repo = Mock()
        pending = Mock(email="a@x.com", display_name="Ana", phone=None, password_hash="$2b$x")
        pending.is_expired.return_value = False
        pending_repo.find_by_token.return_value = pending
        account_repo.get_by_email.return_value = None
        account_repo.create.side_effect = DuplicateAccount("a@x.com")

        service = RegistrationService(
            pending_repository=pending_repo,
            account_repository=account_repo,
            mail_dispatcher=mailer,
            session_issuer=Mock(),
        )

        assert service.consume_verification("a" * 64) is VerificationOutcome.ALREADY_VERIFIED
        pending_repo.delete.assert_called_once_with("a@x.com")

    def test_account_created_before_pending_deleted(self, mailer) -> None:
        """Account creation is durable before the pending record goes away."""
        calls = Mock()
        pending = Mock(email="a@x.com", display_name="Ana", phone=None, password_hash="$2b$x")
        pending.is_expired.return_value = False
        calls.pending.find_by_token.return_value = pending
        calls.accounts.get_by_email.return_value = None

        service = RegistrationService(
            pending_repository=calls.pending,
            account_repository=calls.accounts,
            mail_dispatcher=mailer,
            session_issuer=Mock(),
        )
        service.consume_verification("a" * 64)

        names = [c[0] for c in calls.mock_calls]
        assert names.index("accounts.create") < names.index("pending.delete")


class TestResendVerification:
    """Tests for resend_verification."""

    def test_rotates_token_in_place(
        self, registration_service, pending_repository, mailer, clock
    ) -> None:
        registration_service.begin_signup("a@x.com", "secret1", "Ana")
        old_token = mailer.last_token

        clock.advance(timedelta(hours=1))
        registration_service.resend_verification("A@X.com")

        assert len(pending_repository.records) == 1
        assert mailer.last_token != old_token
        assert pending_repository.records["a@x.com"].expires_at == clock.now + timedelta(hours=24)
        with pytest.raises(InvalidOrExpiredLink):
            registration_service.consume_verification(old_token)
        assert registration_service.consume_verification(mailer.last_token) is (
            VerificationOutcome.VERIFIED
        )

    def test_no_pending_registration(self, registration_service) -> None:
        with pytest.raises(NoPendingRegistration):
            registration_service.resend_verification("nobody@x.com")

    def test_expired_pending_counts_as_absent(self, registration_service, clock) -> None:
        registration_service.begin_signup("a@x.com", "secret1", "Ana")
        clock.advance(timedelta(hours=24, seconds=1))

        with pytest.raises(NoPendingRegistration):
            registration_service.resend_verification("a@x.com")

    def test_already_verified(self, registration_service, mailer) -> None:
        registration_service.begin_signup("a@x.com", "secret1", "Ana")
        registration_service.consume_verification(mailer.last_token)

        with pytest.raises(AlreadyVerified):
            registration_service.resend_verification("a@x.com")

    def test_mail_failure_is_surfaced(
        self, registration_service, pending_repository, mailer
    ) -> None:
        registration_service.begin_signup("a@x.com", "secret1", "Ana")
        mailer.fail = True

        with pytest.raises(MailDispatchFailed):
            registration_service.resend_verification("a@x.com")

        # Persisted state is intact
        assert "a@x.com" in pending_repository.records


class TestPollVerificationStatus:
    """Tests for poll_verification_status."""

    def test_unverified_returns_false_without_writes(
        self, registration_service, pending_repository, account_repository
    ) -> None:
        registration_service.begin_signup("a@x.com", "secret1", "Ana")
        pending_writes = pending_repository.writes

        for _ in range(3):
            status = registration_service.poll_verification_status("a@x.com")
            assert status.verified is False
            assert status.token is None

        assert pending_repository.writes == pending_writes
        assert account_repository.writes == 0

    def test_unknown_email_returns_false(self, registration_service) -> None:
        assert registration_service.poll_verification_status("ghost@x.com").verified is False

    def test_verified_returns_usable_session(
        self, registration_service, session_issuer, mailer
    ) -> None:
        registration_service.begin_signup("a@x.com", "secret1", "Ana")
        registration_service.consume_verification(mailer.last_token)

        status = registration_service.poll_verification_status(" A@x.com ")

        assert status.verified is True
        assert status.account.email == "a@x.com"
        claims = session_issuer.verify(status.token)
        assert claims.email == "a@x.com"
        assert claims.role is Role.CLIENT
        assert claims.account_id == str(status.account.id)

    def test_verified_is_monotonic(self, registration_service, mailer, clock) -> None:
        registration_service.begin_signup("a@x.com", "secret1", "Ana")
        registration_service.consume_verification(mailer.last_token)

        clock.advance(timedelta(days=365))
        assert registration_service.poll_verification_status("a@x.com").verified is True
        assert registration_service.poll_verification_status("a@x.com").verified is True
