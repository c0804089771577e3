"""
Firebase identity adapter - Implements ExternalIdentityVerifier protocol.

Verifies Firebase Authentication ID tokens the way the Admin SDK does:
RS256 signature against Google's published JWKS, audience equal to the
project id, issuer https://securetoken.google.com/<project id>, and a
non-empty subject.
"""

import logging

import jwt
from jwt import PyJWKClient

from src.domain.exceptions import IdentityVerificationError
from src.domain.models import ExternalIdentity

logger = logging.getLogger(__name__)

FIREBASE_JWKS_URL = (
    "https://www.googleapis.com/service_accounts/v1/jwk/securetoken@system.gserviceaccount.com"
)
FIREBASE_ISSUER_PREFIX = "https://securetoken.google.com/"


class FirebaseIdentityVerifier:
    """
    Implements ExternalIdentityVerifier protocol for Firebase ID tokens.

    Uses structural subtyping - no explicit inheritance from Protocol.
    Signing keys are fetched lazily and cached by PyJWKClient.
    """

    def __init__(
        self,
        project_id: str,
        jwks_client: PyJWKClient | None = None,
        leeway: int = 0,
    ) -> None:
        self._project_id = project_id
        self._jwks_client = jwks_client or PyJWKClient(FIREBASE_JWKS_URL, cache_keys=True)
        self._leeway = leeway

    def verify(self, external_token: str) -> ExternalIdentity:
        """
        Raises:
            IdentityVerificationError: Unconfigured, unreachable keys, or untrusted token
        """
        if not self._project_id:
            raise IdentityVerificationError("Firebase project id is not configured")

        try:
            signing_key = self._jwks_client.get_signing_key_from_jwt(external_token)
            claims = jwt.decode(
                external_token,
                signing_key.key,
                algorithms=["RS256"],
                audience=self._project_id,
                issuer=FIREBASE_ISSUER_PREFIX + self._project_id,
                leeway=self._leeway,
                options={"require": ["exp", "iat", "aud", "iss", "sub"]},
            )
        except jwt.PyJWTError as e:
            raise IdentityVerificationError(str(e)) from e

        subject = claims.get("sub")
        if not subject:
            raise IdentityVerificationError("Token has no subject")

        return ExternalIdentity(
            subject=subject,
            email=claims.get("email"),
            display_name=claims.get("name"),
            avatar_url=claims.get("picture"),
        )
