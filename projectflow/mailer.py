"""
projectflow/mailer.py

Outbound email collaborator.

The workflow never talks to SMTP directly. It asks the mailer registered in
``app.extensions["mailer"]`` to send a message and treats any failure as a
notification failure (logged, never propagated to the business operation).

Backends (MAIL_BACKEND):
- "smtp": deliver through smtplib using MAIL_SERVER / MAIL_PORT / MAIL_USE_TLS.
- "console": log the message only (development and tests).
"""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from typing import Iterable, Optional

logger = logging.getLogger(__name__)


class MailDeliveryError(RuntimeError):
    """Raised when the configured backend could not deliver a message."""


class Mailer:
    """Flask extension wrapping the configured mail backend."""

    def __init__(self, app=None):
        self.config: dict = {}
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        self.config = {
            "backend": app.config.get("MAIL_BACKEND", "console"),
            "server": app.config.get("MAIL_SERVER", "localhost"),
            "port": app.config.get("MAIL_PORT", 587),
            "use_tls": app.config.get("MAIL_USE_TLS", True),
            "username": app.config.get("MAIL_USERNAME"),
            "password": app.config.get("MAIL_PASSWORD"),
            "sender": app.config.get("MAIL_DEFAULT_SENDER"),
            "timeout": app.config.get("MAIL_TIMEOUT", 10),
        }
        app.extensions["mailer"] = self

    def send(
        self,
        *,
        to: str,
        subject: str,
        html: Optional[str] = None,
        text: Optional[str] = None,
        bcc: Iterable[str] = (),
    ) -> None:
        """Send one message. Raises MailDeliveryError on failure."""
        bcc = [addr for addr in bcc if addr]

        if self.config.get("backend") != "smtp":
            logger.info("Mail (console backend) to=%s bcc=%s subject=%r", to, ",".join(bcc), subject)
            return

        message = EmailMessage()
        message["From"] = self.config["sender"]
        message["To"] = to
        message["Subject"] = subject
        message.set_content(text or "Please enable HTML to view this email content.")
        if html:
            message.add_alternative(html, subtype="html")

        try:
            with smtplib.SMTP(self.config["server"], self.config["port"], timeout=self.config["timeout"]) as smtp:
                if self.config["use_tls"]:
                    smtp.starttls()
                if self.config["username"]:
                    smtp.login(self.config["username"], self.config["password"] or "")
                smtp.send_message(message, to_addrs=[to, *bcc])
        except (smtplib.SMTPException, OSError) as exc:
            raise MailDeliveryError(str(exc)) from exc

        logger.info("Mail sent to=%s subject=%r", to, subject)
