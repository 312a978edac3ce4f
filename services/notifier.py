"""Out-of-band notifications (verification and password-reset emails).

`Notifier.notify` returns immediately; delivery happens on a background task
and a delivery failure is only ever logged.
"""

import logfire

from fastapi.concurrency import run_in_threadpool

from pydantic import BaseModel

from typing import Protocol

from models.helpers import ContentType, EmailType
from services.email import EmailService
from services.template import TemplateService
from utils.background import spawn


class Notification(BaseModel):
    """A message for one identity."""

    kind: EmailType
    to: str
    name: str
    token: str


class Notifier(Protocol):
    def notify(self, notification: Notification) -> None: ...


class EmailNotifier:
    """Delivers notifications as HTML emails."""

    SUBJECTS = {
        EmailType.VERIFICATION: "Verify your ShopDev email address",
        EmailType.PASSWORD_RESET: "Reset your ShopDev password",
    }

    def __init__(self, email_service: EmailService, template_service: TemplateService, frontend_url: str):
        self.email_service = email_service
        self.template_service = template_service
        self.frontend_url = frontend_url.rstrip("/")

    def _render(self, notification: Notification) -> str:
        if notification.kind == EmailType.VERIFICATION:
            link = f"{self.frontend_url}/verify-email/{notification.token}"
            return self.template_service.render_verification_email(notification.name, link)
        link = f"{self.frontend_url}/reset-password/{notification.token}"
        return self.template_service.render_password_reset_email(notification.name, link)

    async def deliver(self, notification: Notification) -> None:
        with logfire.span(f"Sending {notification.kind.value} email to: {notification.to}"):
            content = self._render(notification)
            await run_in_threadpool(
                self.email_service.send_email,
                to=notification.to,
                subject=self.SUBJECTS[notification.kind],
                content=content,
                content_type=ContentType.HTML,
            )

    def notify(self, notification: Notification) -> None:
        spawn(self.deliver(notification), name=f"email:{notification.kind.value}")


class LoggingNotifier:
    """Stand-in used when no SMTP server is configured."""

    def notify(self, notification: Notification) -> None:
        logfire.info(
            f"No SMTP server configured, {notification.kind.value} email for {notification.to} not sent"
        )
