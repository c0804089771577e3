"""Mail adapters - MailDispatcher implementations."""

from .brevo import BrevoMailDispatcher
from .console import ConsoleMailDispatcher

__all__ = ["BrevoMailDispatcher", "ConsoleMailDispatcher"]
