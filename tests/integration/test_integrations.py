"""
Configuration and External Integration Tests

The converter and mail server are replaced with mocks; only the calls the
adapter makes are checked.
"""

import smtplib
import subprocess
from unittest.mock import MagicMock, patch

import pytest

from mms_adapter import integrations
from mms_adapter.config import AdapterConfig
from mms_adapter.contracts import ServerError


class TestConfig:

    def test_from_env(self):
        config = AdapterConfig.from_env({
            "MMS_ADAPTER_USERS": "admin:secret, reader:pw",
            "MMS_ADAPTER_CORS_ORIGINS": "http://a.example,http://b.example",
            "MMS_ADAPTER_PDF_EXEC": "/opt/prince/bin/prince",
            "MMS_ADAPTER_SMTP_PORT": "2525",
        })

        assert config.users == {"admin": "secret", "reader": "pw"}
        assert config.cors_origins == ["http://a.example", "http://b.example"]
        assert config.pdf.exec == "/opt/prince/bin/prince"
        assert config.email.smtp_port == 2525
        assert config.email.smtp_host == "localhost"

    def test_defaults(self):
        config = AdapterConfig.from_env({})
        assert config.users == {}
        assert config.cors_origins == ["*"]
        assert config.pdf.exec == "prince"


class TestPdfConversion:

    def test_converter_command(self):
        config = AdapterConfig()
        with patch.object(integrations.subprocess, "run") as run:
            run.return_value = subprocess.CompletedProcess([], 0, stdout=b"", stderr=b"")
            integrations.convert_html_to_pdf(config, "/tmp/doc.html", "/tmp/doc.pdf")

        command = run.call_args.args[0]
        assert command == ["prince", "/tmp/doc.html", "-o", "/tmp/doc.pdf", "--insecure"]

    @pytest.mark.parametrize("failure", [
        FileNotFoundError("prince"),
        subprocess.CalledProcessError(1, "prince"),
    ])
    def test_failures_are_server_errors(self, failure):
        with patch.object(integrations.subprocess, "run", side_effect=failure):
            with pytest.raises(ServerError):
                integrations.convert_html_to_pdf(AdapterConfig(), "a.html", "a.pdf")


class TestEmail:

    def test_link_is_mailed(self):
        config = AdapterConfig()
        smtp = MagicMock()
        with patch.object(integrations.smtplib, "SMTP", return_value=smtp) as factory:
            integrations.email_blob_link(config, "user@example.com", "http://mms/blob/1")

        factory.assert_called_once_with("localhost", 25)
        session = smtp.__enter__.return_value
        sender, recipients, message = session.sendmail.call_args.args
        assert sender == config.email.sender
        assert recipients == ["user@example.com"]
        assert "Subject: HTML to .pdf generation completed." in message
        assert "http://mms/blob/1" in message

    def test_smtp_failure_is_server_error(self):
        with patch.object(integrations.smtplib, "SMTP", side_effect=smtplib.SMTPConnectError(421, "down")):
            with pytest.raises(ServerError):
                integrations.email_blob_link(AdapterConfig(), "user@example.com", "http://mms/blob/1")
