"""Contains all the code related to the emailing service"""

import smtplib

import logfire

from email.mime.text import MIMEText

from models.helpers import ContentType


class EmailService:
    """Sends single emails over SMTP with STARTTLS."""

    def __init__(
        self,
        smtp_server: str,
        smtp_port: int,
        username: str | None,
        password: str | None,
        from_email: str,
        timeout: float = 10.0,
    ):
        self.smtp_server = smtp_server
        self.smtp_port = smtp_port
        self.username = username
        self.password = password
        self.from_email = from_email
        self.timeout = timeout

    def send_email(
        self,
        to: str,
        subject: str,
        content: str,
        content_type: ContentType = ContentType.HTML,
    ) -> None:
        """Send an email. Blocking; call it from a worker thread.

        Args:
            to (str): Recipient email address
            subject (str): Subject of the email
            content (str): Content of the email
            content_type (ContentType, optional): ContentType of the email content. Defaults to ContentType.HTML.

        Raises:
            smtplib.SMTPException: When the SMTP server rejects the message.
            OSError: When the SMTP server cannot be reached.
        """
        msg = self._create_message(to, subject, content, content_type)

        with smtplib.SMTP(self.smtp_server, self.smtp_port, timeout=self.timeout) as server:
            server.starttls()
            if self.username and self.password:
                server.login(self.username, self.password)
            server.send_message(msg)

        logfire.info(f"Email sent successfully to {to}")

    def _create_message(
        self,
        to: str,
        subject: str,
        content: str,
        content_type: ContentType,
    ) -> MIMEText:
        mime_type = "plain" if content_type == ContentType.PLAIN else "html"
        msg = MIMEText(content, mime_type)
        msg["Subject"] = subject
        msg["From"] = self.from_email
        msg["To"] = to
        return msg
