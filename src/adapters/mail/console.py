"""Development mail backend: writes the links to the log instead of sending mail."""

import logging

from .templates import reset_link, verification_link

logger = logging.getLogger(__name__)


class ConsoleMailDispatcher:
    """MailDispatcher that never fails; selected with MAIL_BACKEND=console."""

    def __init__(
        self,
        public_base_url: str = "http://localhost:8000",
        password_reset_url: str = "marketplace://reset-password",
    ) -> None:
        self._public_base_url = public_base_url
        self._password_reset_url = password_reset_url

    def send_verification_email(self, to: str, token: str) -> None:
        """
        Log the verification link at INFO level (simulates email delivery).

        Args:
            to: Recipient email address (normalized by domain layer)
            token: Raw verification token
        """
        logger.info(
            "[VERIFICATION] Email: %s Link: %s",
            to,
            verification_link(self._public_base_url, token),
        )

    def send_password_reset_email(self, to: str, token: str) -> None:
        logger.info(
            "[PASSWORD RESET] Email: %s Link: %s",
            to,
            reset_link(self._password_reset_url, token),
        )
