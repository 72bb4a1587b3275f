"""Verification email delivery.

Two backends share one call signature:

- ``LogMailer`` writes the link to the log (development).
- ``ResendMailer`` posts the message to the Resend HTTP API.

Delivery failures raise ``EmailDeliveryError``; an issued token that never
reaches the user is a dead end the caller must report.
"""

import logging
from dataclasses import dataclass
from typing import Protocol
from urllib.parse import urlencode

import httpx

from app.core.config import Settings, get_settings
from app.core.errors import EmailDeliveryError
from app.db.models import MagicLinkIntent


logger = logging.getLogger("app.auth")

RESEND_API_URL = "https://api.resend.com/emails"


@dataclass(frozen=True)
class VerificationEmail:
    to_address: str
    subject: str
    text: str
    link: str


class Mailer(Protocol):
    async def send_verification_email(
        self,
        to_address: str,
        token: str,
        intent: MagicLinkIntent,
        display_name: str | None = None,
    ) -> None: ...


def build_verification_email(
    settings: Settings,
    to_address: str,
    token: str,
    intent: MagicLinkIntent,
    display_name: str | None = None,
) -> VerificationEmail:
    link = f"{settings.app_base_url.rstrip('/')}/auth/verify?{urlencode({'token': token})}"
    ttl = settings.magic_link_ttl_minutes

    if intent is MagicLinkIntent.REGISTER:
        subject = f"Welcome to {settings.app_name} - confirm your email"
        greeting = f"Hi {display_name}," if display_name else "Hi,"
        action = "Click the link below to confirm your email and finish creating your account:"
    else:
        subject = f"Your {settings.app_name} sign-in link"
        greeting = "Hi,"
        action = "Click the link below to sign in:"

    text = (
        f"{greeting}\n\n{action}\n\n{link}\n\n"
        f"This link expires in {ttl} minutes and can only be used once. "
        "If you didn't request it, you can safely ignore this email."
    )
    return VerificationEmail(to_address=to_address, subject=subject, text=text, link=link)


class LogMailer:
    def __init__(self, settings: Settings):
        self.settings = settings

    async def send_verification_email(
        self,
        to_address: str,
        token: str,
        intent: MagicLinkIntent,
        display_name: str | None = None,
    ) -> None:
        message = build_verification_email(self.settings, to_address, token, intent, display_name)
        logger.info("Magic link for %s (%s): %s", to_address, intent.value, message.link)


class ResendMailer:
    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None):
        self.settings = settings
        self.client = client

    async def _post(self, client: httpx.AsyncClient, message: VerificationEmail) -> httpx.Response:
        return await client.post(
            RESEND_API_URL,
            headers={"Authorization": f"Bearer {self.settings.resend_api_key}"},
            json={
                "from": self.settings.email_from,
                "to": message.to_address,
                "subject": message.subject,
                "text": message.text,
            },
            timeout=self.settings.email_timeout_seconds,
        )

    async def send_verification_email(
        self,
        to_address: str,
        token: str,
        intent: MagicLinkIntent,
        display_name: str | None = None,
    ) -> None:
        if not self.settings.resend_api_key:
            raise EmailDeliveryError("Email provider is not configured", code="email_not_configured")

        message = build_verification_email(self.settings, to_address, token, intent, display_name)
        try:
            if self.client is not None:
                resp = await self._post(self.client, message)
            else:
                async with httpx.AsyncClient() as client:
                    resp = await self._post(client, message)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "Resend rejected email to %s: status=%s", to_address, exc.response.status_code
            )
            raise EmailDeliveryError(
                "Could not send verification email",
                code="email_delivery_failed",
                details={"status": exc.response.status_code},
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("Resend unreachable for %s: %s", to_address, exc)
            raise EmailDeliveryError(
                "Could not send verification email",
                code="email_delivery_failed",
            ) from exc


def get_mailer() -> Mailer:
    settings = get_settings()
    if settings.email_backend == "resend":
        return ResendMailer(settings)
    if settings.email_backend == "log":
        return LogMailer(settings)
    raise ValueError(f"unknown email backend: {settings.email_backend}")
