"""Signature notifications — SendGrid / Resend integration."""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx

logger = logging.getLogger(__name__)


@dataclass
class SignatureMessage:
    """Payload for one outbound notification."""
    to_email: str
    to_name: Optional[str]
    document_title: str
    sender_name: Optional[str] = None
    signing_url: Optional[str] = None
    message: Optional[str] = None
    reason: Optional[str] = None
    signer_name: Optional[str] = None
    expires_at: Optional[str] = None


@dataclass
class EmailContent:
    subject: str
    body: str


def build_signature_request(msg: SignatureMessage, default_sender: str = "Quill") -> EmailContent:
    """Subject and plain-text body of a signature request email."""
    subject = f"Please sign: {msg.document_title}"
    body = (
        f"Hi {msg.to_name or msg.to_email},\n\n"
        f"{msg.sender_name or default_sender} has requested your signature on "
        f"\"{msg.document_title}\".\n\n"
    )
    if msg.message:
        body += f"{msg.message}\n\n"
    body += f"Review and sign:\n\n  {msg.signing_url}\n\n"
    if msg.expires_at:
        body += f"This link expires on {msg.expires_at}.\n"
    return EmailContent(subject=subject, body=body)


class Notifier(Protocol):
    async def send_signature_request(self, msg: SignatureMessage) -> bool: ...

    async def send_signature_reminder(self, msg: SignatureMessage) -> bool: ...

    async def send_signature_completed(self, msg: SignatureMessage) -> bool: ...

    async def send_document_completed(self, msg: SignatureMessage) -> bool: ...

    async def send_signature_declined(self, msg: SignatureMessage) -> bool: ...


class EmailNotifier:
    """Sends signature workflow emails.

    Supports SendGrid and Resend. Falls back to logging if no provider is
    configured. Delivery failures are logged and reported as ``False``; they
    never raise into the caller.
    """

    def __init__(
        self,
        provider: str = "",
        api_key: str = "",
        from_email: str = "signatures@quill.local",
        from_name: str = "Quill",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.provider = provider.lower()  # "sendgrid" or "resend"
        self.api_key = api_key
        self.from_email = from_email
        self.from_name = from_name
        self._transport = transport

    def build_signature_request(self, msg: SignatureMessage) -> EmailContent:
        return build_signature_request(msg, default_sender=self.from_name)

    async def send_signature_request(self, msg: SignatureMessage) -> bool:
        content = self.build_signature_request(msg)
        return await self._deliver(msg.to_email, content.subject, content.body)

    async def send_signature_reminder(self, msg: SignatureMessage) -> bool:
        subject = f"Reminder: please sign {msg.document_title}"
        body = (
            f"Hi {msg.to_name or msg.to_email},\n\n"
            f"\"{msg.document_title}\" is still waiting for your signature.\n\n"
            f"  {msg.signing_url}\n"
        )
        return await self._deliver(msg.to_email, subject, body)

    async def send_signature_completed(self, msg: SignatureMessage) -> bool:
        subject = f"{msg.signer_name or 'A recipient'} signed {msg.document_title}"
        body = (
            f"{msg.signer_name or 'A recipient'} has signed \"{msg.document_title}\".\n"
        )
        return await self._deliver(msg.to_email, subject, body)

    async def send_document_completed(self, msg: SignatureMessage) -> bool:
        subject = f"Completed: {msg.document_title}"
        body = (
            f"Hi {msg.to_name or msg.to_email},\n\n"
            f"All parties have signed \"{msg.document_title}\".\n"
        )
        return await self._deliver(msg.to_email, subject, body)

    async def send_signature_declined(self, msg: SignatureMessage) -> bool:
        subject = f"Declined: {msg.document_title}"
        body = (
            f"{msg.signer_name or 'A recipient'} declined to sign "
            f"\"{msg.document_title}\".\n"
        )
        if msg.reason:
            body += f"\nReason: {msg.reason}\n"
        return await self._deliver(msg.to_email, subject, body)

    async def _deliver(self, to: str, subject: str, body: str) -> bool:
        if self.provider == "sendgrid":
            return await self._send_sendgrid(to, subject, body)
        elif self.provider == "resend":
            return await self._send_resend(to, subject, body)
        logger.info("No email provider configured; would send %r to %s", subject, to)
        return False

    async def _send_sendgrid(self, to: str, subject: str, body: str) -> bool:
        """Send via SendGrid v3 API."""
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                resp = await client.post(
                    "https://api.sendgrid.com/v3/mail/send",
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json={
                        "personalizations": [{"to": [{"email": to}]}],
                        "from": {"email": self.from_email, "name": self.from_name},
                        "subject": subject,
                        "content": [{"type": "text/plain", "value": body}],
                    },
                    timeout=30,
                )
                if resp.status_code in (200, 202):
                    logger.info("SendGrid email sent to %s", to)
                    return True
                logger.warning("SendGrid error: %s %s", resp.status_code, resp.text)
                return False
        except httpx.HTTPError:
            logger.exception("SendGrid send failed")
            return False

    async def _send_resend(self, to: str, subject: str, body: str) -> bool:
        """Send via Resend API."""
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                resp = await client.post(
                    "https://api.resend.com/emails",
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json={
                        "from": f"{self.from_name} <{self.from_email}>",
                        "to": [to],
                        "subject": subject,
                        "text": body,
                    },
                    timeout=30,
                )
                if resp.status_code in (200, 201):
                    logger.info("Resend email sent to %s", to)
                    return True
                logger.warning("Resend error: %s %s", resp.status_code, resp.text)
                return False
        except httpx.HTTPError:
            logger.exception("Resend send failed")
            return False
