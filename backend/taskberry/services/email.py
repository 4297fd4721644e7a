"""Email notifier for account lifecycle messages.

Delivery is fire-and-forget from the caller's point of view: the user
management operations that send mail have already committed, so they catch
``EmailDeliveryError``, log it and carry on. Nothing is queued or retried.
"""

import asyncio
import smtplib
from datetime import datetime, timezone
from email.message import EmailMessage
from typing import Any, Protocol

import structlog

from taskberry.config import Settings, get_settings
from taskberry.models.user import User
from taskberry.services.email_templates import (
    APPROVAL,
    PASSWORD_RESET,
    REJECTION,
    render_template,
    role_display,
)

logger = structlog.get_logger()


class EmailDeliveryError(Exception):
    """The SMTP server refused or could not be reached."""


class Notifier(Protocol):
    async def send_approval_email(self, user: User, role: str, approver: User) -> bool: ...

    async def send_rejection_email(self, user: User, reason: str, admin_contact: str) -> bool: ...

    async def send_password_reset_email(self, email: str, token: str) -> bool: ...


class EmailNotifier:
    """Renders templates and delivers them over SMTP."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    async def send_approval_email(self, user: User, role: str, approver: User) -> bool:
        return await self._send_template(
            to=user.email,
            template=APPROVAL,
            variables={
                "name": user.name,
                "role_display": role_display(role),
                "approved_by": approver.name,
                "supervisor": user.supervisor.name if user.supervisor else None,
                "manager": user.manager.name if user.manager else None,
                "login_url": self.settings.frontend_url,
            },
        )

    async def send_rejection_email(self, user: User, reason: str, admin_contact: str) -> bool:
        return await self._send_template(
            to=user.email,
            template=REJECTION,
            variables={"name": user.name, "reason": reason, "admin_contact": admin_contact},
        )

    async def send_password_reset_email(self, email: str, token: str) -> bool:
        reset_url = f"{self.settings.frontend_url.rstrip('/')}/reset-password?token={token}"
        return await self._send_template(
            to=email,
            template=PASSWORD_RESET,
            variables={
                "reset_url": reset_url,
                "expires_minutes": self.settings.password_reset_expire_minutes,
            },
        )

    async def _send_template(self, to: str, template: dict[str, str], variables: dict[str, Any]) -> bool:
        rendered = render_template(
            template,
            {
                "app_name": self.settings.app_name,
                "year": datetime.now(timezone.utc).year,
                **variables,
            },
        )

        if not self.settings.smtp_configured:
            logger.warning("email_not_configured", to=to, subject=rendered["subject"])
            return False

        message = EmailMessage()
        message["Subject"] = rendered["subject"]
        message["From"] = f'"{self.settings.smtp_from_name}" <{self.settings.smtp_from}>'
        message["To"] = to
        message.set_content(rendered["text"])
        message.add_alternative(rendered["html"], subtype="html")

        try:
            await asyncio.to_thread(self._deliver, message)
        except (smtplib.SMTPException, OSError) as e:
            raise EmailDeliveryError(str(e)) from e

        logger.info("email_sent", to=to, subject=rendered["subject"])
        return True

    def _deliver(self, message: EmailMessage) -> None:
        settings = self.settings
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=settings.smtp_timeout) as smtp:
            if settings.smtp_use_tls:
                smtp.starttls()
            if settings.smtp_user:
                smtp.login(settings.smtp_user, settings.smtp_password.get_secret_value())
            smtp.send_message(message)


def get_notifier() -> Notifier:
    """Notifier dependency; overridden in tests."""
    return EmailNotifier()
