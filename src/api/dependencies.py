"""
Wiring for the routes: services, adapters and the Bearer session check.

Adapters that hold no per-request state are cached per process.
"""

from datetime import timedelta
from functools import lru_cache

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from psycopg_pool import ConnectionPool

from src.adapters.identity import FirebaseIdentityVerifier
from src.adapters.mail import BrevoMailDispatcher, ConsoleMailDispatcher
from src.adapters.repository.postgres import (
    PostgresAccountRepository,
    PostgresPendingRegistrationRepository,
)
from src.adapters.tokens import JwtSessionIssuer
from src.config.settings import get_settings
from src.domain.accounts import AccountService
from src.domain.exceptions import InvalidCredential
from src.domain.models import SessionClaims
from src.domain.ports import (
    AccountRepository,
    ExternalIdentityVerifier,
    MailDispatcher,
    PendingRegistrationRepository,
    SessionIssuer,
)
from src.domain.registration import RegistrationService


def get_pool(request: Request) -> ConnectionPool:
    """The pool opened by the lifespan."""
    return request.app.state.pool


def get_pending_repository(request: Request) -> PendingRegistrationRepository:
    return PostgresPendingRegistrationRepository(get_pool(request))


def get_account_repository(request: Request) -> AccountRepository:
    return PostgresAccountRepository(get_pool(request))


@lru_cache
def get_mail_dispatcher() -> MailDispatcher:
    """Build the configured mail dispatcher once (adapters are stateless)."""
    settings = get_settings()
    if settings.mail_backend == "brevo":
        return BrevoMailDispatcher(
            api_key=settings.brevo_api_key,
            sender_email=settings.mail_sender_email,
            sender_name=settings.mail_sender_name,
            public_base_url=settings.public_base_url,
            password_reset_url=settings.password_reset_url,
            api_url=settings.brevo_api_url,
            timeout=settings.mail_timeout_seconds,
            verification_ttl=timedelta(hours=settings.verification_ttl_hours),
            password_reset_ttl=timedelta(minutes=settings.password_reset_ttl_minutes),
        )
    return ConsoleMailDispatcher(
        public_base_url=settings.public_base_url,
        password_reset_url=settings.password_reset_url,
    )


@lru_cache
def get_session_issuer() -> SessionIssuer:
    settings = get_settings()
    return JwtSessionIssuer(
        secret_key=settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
        ttl=timedelta(days=settings.session_ttl_days),
    )


@lru_cache
def get_identity_verifier() -> ExternalIdentityVerifier:
    """Firebase verifier; PyJWKClient caches Google's signing keys across requests."""
    return FirebaseIdentityVerifier(project_id=get_settings().firebase_project_id)


def get_registration_service(
    pending_repository: PendingRegistrationRepository = Depends(get_pending_repository),
    account_repository: AccountRepository = Depends(get_account_repository),
    mail_dispatcher: MailDispatcher = Depends(get_mail_dispatcher),
    session_issuer: SessionIssuer = Depends(get_session_issuer),
) -> RegistrationService:
    settings = get_settings()
    return RegistrationService(
        pending_repository=pending_repository,
        account_repository=account_repository,
        mail_dispatcher=mail_dispatcher,
        session_issuer=session_issuer,
        verification_ttl=timedelta(hours=settings.verification_ttl_hours),
        bcrypt_rounds=settings.bcrypt_cost,
    )


def get_account_service(
    pending_repository: PendingRegistrationRepository = Depends(get_pending_repository),
    account_repository: AccountRepository = Depends(get_account_repository),
    mail_dispatcher: MailDispatcher = Depends(get_mail_dispatcher),
    session_issuer: SessionIssuer = Depends(get_session_issuer),
    identity_verifier: ExternalIdentityVerifier = Depends(get_identity_verifier),
) -> AccountService:
    settings = get_settings()
    return AccountService(
        account_repository=account_repository,
        pending_repository=pending_repository,
        session_issuer=session_issuer,
        mail_dispatcher=mail_dispatcher,
        identity_verifier=identity_verifier,
        password_reset_ttl=timedelta(minutes=settings.password_reset_ttl_minutes),
        bcrypt_rounds=settings.bcrypt_cost,
    )


# Bearer security scheme for OpenAPI documentation
http_bearer = HTTPBearer(auto_error=False)


def get_current_claims(
    credentials: HTTPAuthorizationCredentials | None = Depends(http_bearer),
    session_issuer: SessionIssuer = Depends(get_session_issuer),
) -> SessionClaims:
    """
    Verify the Bearer session credential on the request.

    Raises:
        InvalidCredential: Missing, malformed, forged, or expired token (401)
    """
    if credentials is None or not credentials.credentials:
        raise InvalidCredential("No token provided")
    return session_issuer.verify(credentials.credentials)
