"""Tests for the SMTP email sender and the email transport."""
import os
import smtplib
import pytest
from unittest.mock import patch, MagicMock

from alerts.channels import EmailTransport, build_channel
from alerts.errors import ConfigurationError, TransportFailure
from alerts.templates import RenderedNotification
from notifications.email_sender import EmailSender


SMTP_CONFIG = {"email": {
    "smtp_host": "smtp.test.com",
    "smtp_port": 587,
    "use_tls": True,
    "smtp_username": "user",
    "smtp_password": "pass",
}}


def _mock_server(mock_smtp):
    server = MagicMock()
    server.__enter__.return_value = server
    mock_smtp.return_value = server
    return server


class TestEmailSender:
    def test_not_configured_without_host(self):
        sender = EmailSender({"email": {}})
        assert sender.is_configured() is False

    def test_configured_with_host(self):
        assert EmailSender(SMTP_CONFIG).is_configured() is True

    def test_env_vars_override_config(self):
        with patch.dict("os.environ", {
            "OPSALERT_SMTP_USER": "env_user",
            "OPSALERT_SMTP_PASS": "env_pass",
        }):
            sender = EmailSender(SMTP_CONFIG)
            assert sender.username == "env_user"
            assert sender.password == "env_pass"

    def test_config_used_without_env_vars(self):
        with patch.dict("os.environ", {}, clear=True):
            os.environ.pop("OPSALERT_SMTP_USER", None)
            os.environ.pop("OPSALERT_SMTP_PASS", None)
            sender = EmailSender(SMTP_CONFIG)
            assert sender.username == "user"
            assert sender.password == "pass"

    @patch("notifications.email_sender.smtplib.SMTP")
    def test_send_alert_success(self, mock_smtp):
        server = _mock_server(mock_smtp)
        sender = EmailSender(SMTP_CONFIG)
        sender.send_alert(["ops@test.com", "cto@test.com"], "alerts@test.com", "CRITICAL: cpu", "body")

        mock_smtp.assert_called_once_with("smtp.test.com", 587, timeout=10)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("user", "pass")
        msg = server.send_message.call_args[0][0]
        assert msg["Subject"] == "CRITICAL: cpu"
        assert msg["To"] == "ops@test.com, cto@test.com"
        assert "alerts@test.com" in msg["From"]

    @patch("notifications.email_sender.smtplib.SMTP")
    def test_no_login_without_credentials(self, mock_smtp):
        server = _mock_server(mock_smtp)
        with patch.dict("os.environ", {}, clear=True):
            sender = EmailSender({"email": {"smtp_host": "relay", "use_tls": False}})
            sender.send_alert(["ops@test.com"], "alerts@test.com", "s", "b")
        server.login.assert_not_called()
        server.starttls.assert_not_called()

    @patch("notifications.email_sender.smtplib.SMTP")
    def test_auth_failure_raises_transport_failure(self, mock_smtp):
        server = _mock_server(mock_smtp)
        server.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")
        with pytest.raises(TransportFailure, match="authentication"):
            EmailSender(SMTP_CONFIG).send_alert(["ops@test.com"], "a@test.com", "s", "b")

    @patch("notifications.email_sender.smtplib.SMTP")
    def test_connection_error_raises_transport_failure(self, mock_smtp):
        mock_smtp.side_effect = OSError("connection refused")
        with pytest.raises(TransportFailure, match="connection refused"):
            EmailSender(SMTP_CONFIG).send_alert(["ops@test.com"], "a@test.com", "s", "b")

    def test_send_without_recipients(self):
        with pytest.raises(ConfigurationError):
            EmailSender(SMTP_CONFIG).send_alert([], "a@test.com", "s", "b")

    @patch("notifications.email_sender.smtplib.SMTP")
    def test_test_connection(self, mock_smtp):
        server = _mock_server(mock_smtp)
        server.noop.return_value = (250, b"OK")
        result = EmailSender(SMTP_CONFIG).test_connection()
        assert result["status"] == "ok"

        mock_smtp.side_effect = OSError("no route")
        result = EmailSender(SMTP_CONFIG).test_connection()
        assert result["status"] == "error"


class TestEmailTransport:
    def test_sends_to_channel_recipients(self):
        sender = MagicMock()
        channel = build_channel({"id": "e", "type": "email", "config": {
            "recipients": "ops@test.com, cto@test.com", "from_address": "alerts@test.com"}})
        content = RenderedNotification(subject="subj", body="body")
        EmailTransport(sender).send(channel, content, alert=None)
        sender.send_alert.assert_called_once_with(
            ["ops@test.com", "cto@test.com"], "alerts@test.com", "subj", "body")

    def test_no_recipients_is_configuration_error(self):
        channel = build_channel({"id": "e", "type": "email", "config": {"from_address": "a@test.com"}})
        with pytest.raises(ConfigurationError):
            EmailTransport(MagicMock()).send(channel, RenderedNotification("s", "b"), alert=None)
