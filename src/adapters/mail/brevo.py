"""
Brevo mail adapter - Implements MailDispatcher protocol.

Sends transactional email through Brevo's HTTP API
(POST /v3/smtp/email) using httpx with a bounded timeout.
Every failure mode (unset credentials, transport error, timeout,
non-2xx response) is raised as the domain DeliveryError.
"""

import logging
from datetime import timedelta

import httpx

from src.domain.exceptions import DeliveryError

from .templates import password_reset_email, reset_link, verification_email, verification_link

logger = logging.getLogger(__name__)

BREVO_API_URL = "https://api.brevo.com/v3/smtp/email"


class BrevoMailDispatcher:
    """
    MailDispatcher backed by the Brevo transactional API.

    An httpx.Client may be injected (tests use httpx.MockTransport). The
    lifetimes only change the wording of the mails; expiry is enforced
    by the services.
    """

    def __init__(
        self,
        api_key: str,
        sender_email: str,
        sender_name: str,
        public_base_url: str,
        password_reset_url: str,
        api_url: str = BREVO_API_URL,
        timeout: float = 10.0,
        client: httpx.Client | None = None,
        verification_ttl: timedelta = timedelta(hours=24),
        password_reset_ttl: timedelta = timedelta(hours=1),
    ) -> None:
        self._api_key = api_key
        self._sender_email = sender_email
        self._sender_name = sender_name
        self._public_base_url = public_base_url
        self._password_reset_url = password_reset_url
        self._api_url = api_url
        self._timeout = timeout
        self._client = client
        self._verification_ttl = verification_ttl
        self._password_reset_ttl = password_reset_ttl

    def send_verification_email(self, to: str, token: str) -> None:
        subject, html = verification_email(
            self._sender_name,
            verification_link(self._public_base_url, token),
            self._verification_ttl,
        )
        self._send(to, subject, html)

    def send_password_reset_email(self, to: str, token: str) -> None:
        subject, html = password_reset_email(
            self._sender_name,
            reset_link(self._password_reset_url, token),
            self._password_reset_ttl,
        )
        self._send(to, subject, html)

    def _send(self, to: str, subject: str, html: str) -> None:
        if not self._api_key or not self._sender_email:
            raise DeliveryError("Brevo API key or sender email is not configured")

        payload = {
            "sender": {"name": self._sender_name, "email": self._sender_email},
            "to": [{"email": to}],
            "subject": subject,
            "htmlContent": html,
        }
        headers = {"api-key": self._api_key, "accept": "application/json"}

        try:
            if self._client is not None:
                response = self._client.post(
                    self._api_url, json=payload, headers=headers, timeout=self._timeout
                )
            else:
                with httpx.Client(timeout=self._timeout) as client:
                    response = client.post(self._api_url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise DeliveryError(f"Brevo request timed out after {self._timeout}s") from e
        except httpx.HTTPError as e:
            raise DeliveryError(f"Brevo request failed: {e}") from e

        if not 200 <= response.status_code < 300:
            raise DeliveryError(f"Brevo API error {response.status_code}: {response.text[:500]}")

        try:
            message_id = (response.json() or {}).get("messageId", "")
        except ValueError:
            message_id = ""
        logger.info("[Brevo] Email sent to %s, messageId=%s", to, message_id)
