"""
API v1 routes.

Defines the REST endpoints of the account service under /v1/auth.
Domain errors raised here are rendered by the handlers in src.api.errors,
except on the emailed-link route, which always answers with an HTML page.
"""

import logging

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import HTMLResponse

from src.api import pages
from src.api.dependencies import get_account_service, get_current_claims, get_registration_service
from src.api.models import (
    AuthResponse,
    ChangePasswordRequest,
    EmailNotVerifiedResponse,
    EmailRequest,
    ErrorResponse,
    ExternalSignInRequest,
    LoginRequest,
    MessageResponse,
    ProfileResponse,
    ResetPasswordRequest,
    SignupRequest,
    SignupResponse,
    UpdateProfileRequest,
    UserResponse,
    VerificationStatusResponse,
)
from src.domain.accounts import AccountService
from src.domain.exceptions import InvalidOrExpiredLink, RegistrationError
from src.domain.models import SessionClaims, VerificationOutcome
from src.domain.registration import RegistrationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["v1"])


@router.post(
    "/signup",
    response_model=SignupResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse, "description": "Validation error or email taken"}},
    summary="Sign up with email and password",
    description="Store a pending registration and email a verification link. "
    "No account or session exists until the link is followed.",
)
def signup(
    request_data: SignupRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> SignupResponse:
    """
    Begin signup.

    - **email**: Email address to register
    - **password**: Password (minimum 6 characters)
    - **displayName**: Name shown to other users
    - **phone**: Optional phone number
    """
    accepted = service.begin_signup(
        request_data.email,
        request_data.password,
        request_data.display_name,
        request_data.phone,
    )
    return SignupResponse(
        message="Verification email sent. Please check your inbox.",
        requires_verification=accepted.requires_verification,
        email=accepted.email,
    )


@router.get(
    "/verify-email/{token}",
    response_class=HTMLResponse,
    responses={400: {"description": "Invalid or expired link (HTML page)"}},
    summary="Confirm an email address from the emailed link",
)
def verify_email(
    token: str,
    service: RegistrationService = Depends(get_registration_service),
) -> HTMLResponse:
    try:
        outcome = service.consume_verification(token)
    except InvalidOrExpiredLink:
        return HTMLResponse(pages.invalid_link_page(), status_code=status.HTTP_400_BAD_REQUEST)
    except RegistrationError:
        logger.exception("Email verification failed")
        return HTMLResponse(
            pages.error_page(), status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    if outcome is VerificationOutcome.ALREADY_VERIFIED:
        return HTMLResponse(pages.already_verified_page())
    return HTMLResponse(pages.verified_page())


@router.post(
    "/resend-verification",
    response_model=MessageResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Already verified"},
        404: {"model": ErrorResponse, "description": "No pending registration"},
        500: {"model": ErrorResponse, "description": "Mail dispatch failed"},
    },
    summary="Resend the verification email",
)
def resend_verification(
    request_data: EmailRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> MessageResponse:
    service.resend_verification(request_data.email)
    return MessageResponse(
        message="If a registration is pending for this address, "
        "a new verification email has been sent."
    )


@router.get(
    "/check-verification",
    response_model=VerificationStatusResponse,
    response_model_exclude_none=True,
    summary="Poll whether an email has been verified",
)
def check_verification(
    email: str = Query(..., min_length=1),
    service: RegistrationService = Depends(get_registration_service),
) -> VerificationStatusResponse:
    result = service.poll_verification_status(email)
    if not result.verified:
        return VerificationStatusResponse(verified=False)
    return VerificationStatusResponse(
        verified=True,
        token=result.token,
        user=UserResponse.from_account(result.account),
    )


@router.post(
    "/login",
    response_model=AuthResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid email or password"},
        403: {"model": EmailNotVerifiedResponse, "description": "Email not verified"},
    },
    summary="Log in with email and password",
)
def login(
    request_data: LoginRequest,
    service: AccountService = Depends(get_account_service),
) -> AuthResponse:
    session = service.login(request_data.email, request_data.password)
    return AuthResponse(
        message="Login successful",
        user=UserResponse.from_account(session.account),
        token=session.token,
    )


@router.post(
    "/external-signin",
    response_model=AuthResponse,
    responses={401: {"model": ErrorResponse, "description": "Invalid external token"}},
    summary="Sign in with an external identity provider token",
)
def external_signin(
    request_data: ExternalSignInRequest,
    service: AccountService = Depends(get_account_service),
) -> AuthResponse:
    session = service.external_sign_in(request_data.external_token)
    return AuthResponse(
        message="External sign-in successful",
        user=UserResponse.from_account(session.account),
        token=session.token,
    )


@router.get("/me", response_model=ProfileResponse, summary="Get the current account")
def me(
    claims: SessionClaims = Depends(get_current_claims),
    service: AccountService = Depends(get_account_service),
) -> ProfileResponse:
    return ProfileResponse(user=UserResponse.from_account(service.get_account(claims.account_id)))


@router.put("/profile", response_model=ProfileResponse, summary="Update the current account")
def update_profile(
    request_data: UpdateProfileRequest,
    claims: SessionClaims = Depends(get_current_claims),
    service: AccountService = Depends(get_account_service),
) -> ProfileResponse:
    # Keys the client sent, null included; absent keys stay untouched
    changes = {name: getattr(request_data, name) for name in request_data.model_fields_set}
    account = service.update_profile(claims.account_id, **changes)
    return ProfileResponse(user=UserResponse.from_account(account))


@router.put("/change-password", response_model=MessageResponse, summary="Change password")
def change_password(
    request_data: ChangePasswordRequest,
    claims: SessionClaims = Depends(get_current_claims),
    service: AccountService = Depends(get_account_service),
) -> MessageResponse:
    service.change_password(
        claims.account_id, request_data.current_password, request_data.new_password
    )
    return MessageResponse(message="Password changed successfully")


@router.post(
    "/forgot-password",
    response_model=MessageResponse,
    summary="Request a password reset email",
)
def forgot_password(
    request_data: EmailRequest,
    service: AccountService = Depends(get_account_service),
) -> MessageResponse:
    service.request_password_reset(request_data.email)
    return MessageResponse(
        message="If an account exists for this address, a password reset email has been sent."
    )


@router.post(
    "/reset-password",
    response_model=MessageResponse,
    responses={400: {"model": ErrorResponse, "description": "Invalid or expired token"}},
    summary="Set a new password with a reset token",
)
def reset_password(
    request_data: ResetPasswordRequest,
    service: AccountService = Depends(get_account_service),
) -> MessageResponse:
    service.reset_password(request_data.token, request_data.new_password)
    return MessageResponse(message="Password has been reset. You can now log in.")
