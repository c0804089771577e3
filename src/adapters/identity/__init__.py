"""Identity adapters - ExternalIdentityVerifier implementations."""

from .firebase import FirebaseIdentityVerifier

__all__ = ["FirebaseIdentityVerifier"]
