"""
SMTP email sender for alert notifications.

Handles:
  - SMTP connection with TLS
  - Plaintext alert messages to one or more recipients
  - Credential management (env vars > config file)

No external dependencies beyond Python stdlib (email, smtplib, ssl).
"""
import os
import ssl
import smtplib
import logging
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate

from alerts.errors import ConfigurationError, TransportFailure

logger = logging.getLogger("opsalert.notifications.email_sender")


class EmailSender:
    """
    SMTP email sender.

    Credential resolution order:
      1. Environment variables: OPSALERT_SMTP_USER, OPSALERT_SMTP_PASS
      2. Config file: config.email.smtp_username, config.email.smtp_password
    """

    def __init__(self, config: dict):
        email_config = config.get("email", {})
        self.smtp_host = email_config.get("smtp_host", "")
        self.smtp_port = int(email_config.get("smtp_port", 587))
        self.use_tls = email_config.get("use_tls", True)
        self.from_name = email_config.get("from_name", "Ops Alerts")
        self.timeout = email_config.get("timeout_seconds", 10)

        # Credential resolution: env vars take priority
        self.username = os.environ.get(
            "OPSALERT_SMTP_USER",
            email_config.get("smtp_username", ""),
        )
        self.password = os.environ.get(
            "OPSALERT_SMTP_PASS",
            email_config.get("smtp_password", ""),
        )

    def is_configured(self) -> bool:
        """SMTP host is required; credentials are optional for local relays."""
        return bool(self.smtp_host)

    def send_alert(self, recipients: list, from_address: str, subject: str, body: str) -> None:
        """Send a plaintext alert email. Raises TransportFailure on SMTP errors."""
        if not self.is_configured():
            raise ConfigurationError("SMTP host is not configured")
        if not recipients:
            raise ConfigurationError("Email channel has no recipients")

        msg = MIMEText(body, "plain", "utf-8")
        msg["From"] = formataddr((self.from_name, from_address))
        msg["To"] = ", ".join(recipients)
        msg["Subject"] = subject
        msg["Date"] = formatdate(localtime=True)

        self._send(msg, recipients)

    def test_connection(self) -> dict:
        """Test SMTP connectivity without sending an email."""
        try:
            with self._connect() as server:
                return {"status": "ok", "message": "SMTP connection successful",
                        "server_response": str(server.noop())}
        except smtplib.SMTPAuthenticationError as e:
            return {"status": "error", "message": f"Authentication failed: {e}"}
        except smtplib.SMTPConnectError as e:
            return {"status": "error", "message": f"Connection failed: {e}"}
        except (smtplib.SMTPException, OSError) as e:
            return {"status": "error", "message": str(e)}

    def _connect(self):
        server = smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout)
        server.ehlo()
        if self.use_tls:
            server.starttls(context=ssl.create_default_context())
            server.ehlo()
        if self.username and self.password:
            server.login(self.username, self.password)
        return server

    def _send(self, msg, recipients):
        """Internal: send a constructed MIME message via SMTP."""
        try:
            with self._connect() as server:
                server.send_message(msg, to_addrs=recipients)
            logger.info(f"Email sent to {msg['To']}: {msg['Subject']}")
        except smtplib.SMTPAuthenticationError as e:
            raise TransportFailure(f"SMTP authentication failed: {e}")
        except smtplib.SMTPRecipientsRefused as e:
            raise TransportFailure(f"Recipients refused: {list(e.recipients)}")
        except (smtplib.SMTPException, OSError) as e:
            raise TransportFailure(f"Email send failed: {e}")
