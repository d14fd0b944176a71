"""Registration confirmation codes and the email that delivers them."""
from __future__ import annotations

import asyncio
import hmac
import logging
import secrets
from email.message import EmailMessage
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from aiosmtplib import SMTPException, send

from backend.app.auth.models import User
from backend.app.config import AuthConfirmationConfig, AuthSMTPConfig

LOGGER = logging.getLogger(__name__)

CONFIRMATION_CODE_LENGTH = 32


class EmailDeliveryError(RuntimeError):
    """Raised when the SMTP transport fails or times out."""


def generate_confirmation_code() -> str:
    """Return a 32 character lowercase hex code from a CSPRNG."""

    return secrets.token_hex(CONFIRMATION_CODE_LENGTH // 2)


def confirmation_matches(user: User, code: str) -> bool:
    """Return whether ``code`` may activate ``user``.

    Enabled accounts never match, which makes every code single-use.
    """

    if user.enabled or user.confirmation_code is None:
        return False
    return hmac.compare_digest(user.confirmation_code.encode("utf-8"), code.encode("utf-8"))


def redact_email(email: str) -> str:
    """Redact an email address for logging."""

    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


def build_confirmation_link(config: AuthConfirmationConfig, email: str, code: str) -> str:
    """Construct the absolute confirmation link using the configured base URL."""

    parsed = urlparse(config.link_base_url)
    query = dict(parse_qsl(parsed.query, keep_blank_values=True))
    query.update({"email": email, "code": code})
    encoded_query = urlencode(query)
    return urlunparse((parsed.scheme, parsed.netloc, parsed.path, parsed.params, encoded_query, parsed.fragment))


def build_confirmation_email(
    smtp_config: AuthSMTPConfig,
    recipient: str,
    first_name: str,
    last_name: str,
    code: str,
    confirmation_link: str,
) -> EmailMessage:
    """Render the confirmation email template."""

    message = EmailMessage()
    message["From"] = smtp_config.from_email
    message["To"] = recipient
    message["Subject"] = "Confirm your LibraryManager account"
    message.set_content(
        (
            f"Hello {first_name} {last_name},\n\n"
            "Thank you for registering with LibraryManager. "
            "Please confirm your email address by opening the link below.\n"
            f"Confirmation link: {confirmation_link}\n"
            f"Confirmation code: {code}\n\n"
            "If you did not sign up, please ignore this email."
        )
    )
    return message


class EmailDispatcher:
    """Send transactional authentication emails over SMTP."""

    def __init__(self, smtp_config: AuthSMTPConfig, confirmation_config: AuthConfirmationConfig) -> None:
        self._smtp_config = smtp_config
        self._confirmation_config = confirmation_config

    def resolve_recipient(self, registrant_email: str) -> str:
        """Return the address a confirmation email for ``registrant_email`` goes to."""

        return self._confirmation_config.recipient_override or registrant_email

    async def send_confirmation_email(
        self, recipient: str, first_name: str, last_name: str, code: str
    ) -> bool:
        """Deliver the confirmation email.

        Returns:
            bool: ``False`` when the server refused the recipient.

        Raises:
            EmailDeliveryError: On transport failures or when the send exceeds
                the configured timeout.
        """

        link = build_confirmation_link(self._confirmation_config, recipient, code)
        target = self.resolve_recipient(recipient)
        message = build_confirmation_email(
            self._smtp_config, target, first_name, last_name, code, link
        )
        timeout = self._smtp_config.timeout_seconds
        try:
            refused, _response = await asyncio.wait_for(
                send(
                    message,
                    hostname=self._smtp_config.host,
                    port=self._smtp_config.port,
                    username=self._smtp_config.username or None,
                    password=self._smtp_config.password or None,
                    start_tls=self._smtp_config.use_tls,
                    timeout=timeout,
                ),
                timeout=timeout,
            )
        except (SMTPException, OSError, asyncio.TimeoutError) as exc:
            LOGGER.warning("Failed to send confirmation email to %s", redact_email(target))
            raise EmailDeliveryError("Unable to send confirmation email") from exc
        if refused:
            LOGGER.warning("SMTP server refused confirmation email for %s", redact_email(target))
            return False
        LOGGER.info("Confirmation email sent to %s", redact_email(target))
        return True


__all__ = [
    "CONFIRMATION_CODE_LENGTH",
    "EmailDeliveryError",
    "EmailDispatcher",
    "build_confirmation_email",
    "build_confirmation_link",
    "confirmation_matches",
    "generate_confirmation_code",
    "redact_email",
]
