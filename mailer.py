# -*- coding: utf-8 -*-
# mailer.py: RenewGuard email delivery (SMTP / console)

import html
import logging
import re
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate, make_msgid

import config

logger = logging.getLogger(__name__)

LOCAL_HOSTS = ("localhost", "127.0.0.1", "::1")


class DeliveryError(Exception):
    """Message could not be handed to the mail server."""


def html_to_text(body: str) -> str:
    """Plain-text alternative for an HTML body."""
    text = re.sub(r"(?is)<(style|script)\b.*?</\1>", "", body)
    text = re.sub(r"(?i)<br\s*/?>", "\n", text)
    text = re.sub(r"(?i)</(p|div|h[1-6])>", "\n", text)
    text = re.sub(r"<[^>]+>", "", text)
    text = html.unescape(text)
    lines = [line.strip() for line in text.splitlines()]
    return "\n".join(line for line in lines if line)


class SmtpMailer:
    def __init__(
        self,
        host: str = config.SMTP_HOST,
        port: int = config.SMTP_PORT,
        username: str = config.SMTP_USERNAME,
        password: str = config.SMTP_PASSWORD,
        from_email: str = config.SMTP_FROM_EMAIL,
        from_name: str = config.SMTP_FROM_NAME,
        timeout: int = config.SMTP_TIMEOUT,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_email = from_email
        self.from_name = from_name
        self.timeout = timeout

    def build_message(self, to: str, subject: str, html_body: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["From"] = formataddr((self.from_name, self.from_email))
        msg["To"] = to
        msg["Subject"] = subject
        msg["Date"] = formatdate(localtime=True)
        msg["Message-ID"] = make_msgid(domain=self.host or None)
        msg["X-Mailer"] = "RenewGuard/1.0"
        msg.attach(MIMEText(html_to_text(html_body), "plain", "utf-8"))
        msg.attach(MIMEText(html_body, "html", "utf-8"))
        return msg

    def deliver(self, to: str, subject: str, html_body: str) -> None:
        if not self.host:
            raise DeliveryError("SMTP host is not configured")
        if not to:
            raise DeliveryError("no destination address")

        msg = self.build_message(to, subject, html_body)
        try:
            if self.port == 465:
                with smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout) as server:
                    self._login_and_send(server, msg)
            else:
                with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                    server.ehlo()
                    if server.has_extn("starttls"):
                        server.starttls()
                        server.ehlo()
                    elif self.username and self.host not in LOCAL_HOSTS:
                        # never send credentials in the clear
                        raise DeliveryError("server does not support STARTTLS")
                    self._login_and_send(server, msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"[MAIL] Failed to send to {to}: {e}")
            raise DeliveryError(str(e)) from e

        logger.info(f"[MAIL] Sent '{subject}' to {to}")

    def _login_and_send(self, server: smtplib.SMTP, msg: MIMEMultipart) -> None:
        if self.username:
            server.login(self.username, self.password)
        server.send_message(msg)


class ConsoleMailer:
    """Logs messages instead of sending them."""

    def deliver(self, to: str, subject: str, html_body: str) -> None:
        if not to:
            raise DeliveryError("no destination address")
        logger.info(f"[MAIL] (console) to={to} subject={subject}\n{html_to_text(html_body)}")


def get_mailer():
    if config.MAIL_BACKEND == "console":
        return ConsoleMailer()
    if not config.SMTP_HOST:
        logger.warning("[MAIL] SMTP_HOST is empty, every delivery will fail")
    return SmtpMailer()
