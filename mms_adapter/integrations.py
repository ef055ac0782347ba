"""
External side effects: HTML to PDF conversion and email notification.

Both are thin wrappers. Failures are logged and surfaced as ServerError so
the request handlers report them like any other backend failure.
"""

from __future__ import annotations
import logging
import smtplib
import subprocess
from email.mime.text import MIMEText

from .config import AdapterConfig
from .contracts.base import ServerError


logger = logging.getLogger(__name__)


PDF_EMAIL_SUBJECT = "HTML to .pdf generation completed."
PDF_EMAIL_BODY = (
    "HTML to .PDF generation succeeded.\n\n"
    "You can access the .PDF file at: {link}"
)


def convert_html_to_pdf(config: AdapterConfig, html_path: str, pdf_path: str):
    """Run the configured converter: `{exec} {html} -o {pdf} --insecure`."""
    command = [config.pdf.exec, html_path, "-o", pdf_path, "--insecure"]
    logger.info("Executing... %s", " ".join(command))
    try:
        result = subprocess.run(command, capture_output=True, check=True)
    except (OSError, subprocess.CalledProcessError) as e:
        logger.error("PDF conversion failed: %s", e)
        raise ServerError(f"PDF conversion failed: {e}") from e

    output = result.stdout.decode("utf-8", errors="replace").strip()
    if output:
        logger.info(output)


def email_blob_link(config: AdapterConfig, address: str, link: str):
    """Email `address` the link to a generated PDF."""
    message = MIMEText(PDF_EMAIL_BODY.format(link=link), "plain")
    message["Subject"] = PDF_EMAIL_SUBJECT
    message["From"] = config.email.sender
    message["To"] = address

    try:
        with smtplib.SMTP(config.email.smtp_host, config.email.smtp_port) as smtp:
            smtp.sendmail(config.email.sender, [address], message.as_string())
    except (OSError, smtplib.SMTPException) as e:
        logger.error("Cannot email %s via %s:%s: %s",
                     address, config.email.smtp_host, config.email.smtp_port, e)
        raise ServerError(f"Failed to email the PDF link: {e}") from e

    logger.info("Emailed user: %s.", address)
