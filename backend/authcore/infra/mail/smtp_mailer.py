from __future__ import annotations

import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from authcore.core.logger import redact_email
from authcore.services._shared.ports import Mailer

log = logging.getLogger(__name__)

_TEXT_TEMPLATE = """Hello {name},

Please confirm your email address by opening the link below:

{link}

This link expires in {expiry_hours} hours. If you did not create an account,
you can ignore this message.
"""

_HTML_TEMPLATE = """<!DOCTYPE html>
<html>
<body>
  <p>Hello {name},</p>
  <p>Please confirm your email address:</p>
  <p><a href="{link}">Verify email</a></p>
  <p>This link expires in {expiry_hours} hours.</p>
</body>
</html>
"""


@dataclass(slots=True)
class SMTPMailer(Mailer):
    """
    SMTP delivery for verification emails.

    When ``host`` is empty the message is logged instead of sent (development
    mode) and the send counts as successful. Every SMTP failure is logged and
    reported as ``False``.
    """

    host: str | None = None
    port: int = 587
    user: str | None = None
    password: str | None = None
    use_tls: bool = True
    from_email: str | None = None
    from_name: str = "authcore"
    timeout: float = 30.0

    @property
    def is_configured(self) -> bool:
        return bool(self.host and (self.from_email or self.user))

    def send_verification_email(
        self,
        *,
        to: str,
        token: str,
        url: str,
        name: str,
        expiry_hours: int,
    ) -> bool:
        link = f"{url}?token={token}"
        subject = "Verify your email address"
        text = _TEXT_TEMPLATE.format(name=name, link=link, expiry_hours=expiry_hours)
        html = _HTML_TEMPLATE.format(name=name, link=link, expiry_hours=expiry_hours)
        return self._send(to, subject, html, text)

    def _send(self, to: str, subject: str, html_body: str, text_body: str) -> bool:
        if not self.is_configured:
            log.info("Email dev mode: to=%s subject=%s", redact_email(to), subject)
            return True

        sender = self.from_email or self.user
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.from_name} <{sender}>"
        msg["To"] = to
        msg.attach(MIMEText(text_body, "plain"))
        msg.attach(MIMEText(html_body, "html"))

        context = ssl.create_default_context()
        try:
            if self.use_tls:
                with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                    server.starttls(context=context)
                    self._login(server)
                    server.sendmail(sender, to, msg.as_string())
            else:
                with smtplib.SMTP_SSL(
                    self.host, self.port, context=context, timeout=self.timeout
                ) as server:
                    self._login(server)
                    server.sendmail(sender, to, msg.as_string())
        except smtplib.SMTPAuthenticationError as exc:
            log.error("SMTP authentication failed for %s: %s", self.host, exc)
            return False
        except (smtplib.SMTPException, ssl.SSLError, OSError) as exc:
            log.error(
                "Sending email to %s failed: %s: %s",
                redact_email(to),
                type(exc).__name__,
                exc,
            )
            return False

        log.info("Email sent to %s", redact_email(to))
        return True

    def _login(self, server: smtplib.SMTP) -> None:
        if self.user and self.password:
            server.login(self.user, self.password)
