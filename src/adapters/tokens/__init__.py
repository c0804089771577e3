"""Token adapters - SessionIssuer implementations."""

from .session import JwtSessionIssuer

__all__ = ["JwtSessionIssuer"]
