"""SendGrid email transport.

Posts to the SendGrid v3 ``mail/send`` endpoint with ``httpx``.  The API
key and sender identity are injected by the caller (see
``itam_backup.config``) -- nothing is hardcoded here.

Usage:
    from itam_backup.delivery.mailer import SendGridMailer

    mailer = SendGridMailer(api_key, sender_email="backups@example.com")
    await mailer.send("admin@example.com", "Subject", "Body", "backup.zip", zip_bytes)
"""

import base64
from typing import Protocol

import httpx

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"


class Mailer(Protocol):
    """Anything that can send one email with one attachment."""

    async def send(
        self,
        to: str,
        subject: str,
        body: str,
        filename: str,
        attachment: bytes,
    ) -> None:
        ...


class SendGridMailer:
    """``Mailer`` backed by the SendGrid HTTP API.

    Args:
        api_key: SendGrid API key.
        sender_email: From address.
        sender_name: From display name.
        timeout: Request timeout in seconds.
        transport: Optional ``httpx`` transport (tests use ``MockTransport``).
    """

    def __init__(
        self,
        api_key: str,
        sender_email: str,
        sender_name: str = "IT Asset Management",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._sender_email = sender_email
        self._sender_name = sender_name
        self._timeout = timeout
        self._transport = transport

    def build_payload(
        self, to: str, subject: str, body: str, filename: str, attachment: bytes
    ) -> dict:
        return {
            "personalizations": [{"to": [{"email": to}], "subject": subject}],
            "from": {"email": self._sender_email, "name": self._sender_name},
            "content": [{"type": "text/plain", "value": body}],
            "attachments": [
                {
                    "content": base64.b64encode(attachment).decode("ascii"),
                    "filename": filename,
                    "type": "application/zip",
                    "disposition": "attachment",
                }
            ],
        }

    async def send(
        self,
        to: str,
        subject: str,
        body: str,
        filename: str,
        attachment: bytes,
    ) -> None:
        """Send one message.

        Raises:
            httpx.HTTPStatusError: If SendGrid rejects the request.
            httpx.TransportError: On network failure or timeout.
        """
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.post(
                SENDGRID_URL,
                headers={"Authorization": f"Bearer {self._api_key}"},
                json=self.build_payload(to, subject, body, filename, attachment),
            )
            response.raise_for_status()
