"""
Adapter configuration.

All settings come from MMS_ADAPTER_* environment variables via
AdapterConfig.from_env(); tests build AdapterConfig directly.
"""

from __future__ import annotations
import os
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional


@dataclass
class PdfConfig:
    """HTML to PDF conversion."""
    exec: str = "prince"
    working_dir: str = field(default_factory=lambda: os.path.join(os.getcwd(), "data", "pdf"))


@dataclass
class EmailConfig:
    smtp_host: str = "localhost"
    smtp_port: int = 25
    sender: str = "mms-adapter@localhost"


@dataclass
class AdapterConfig:
    """Unified configuration for the adapter service."""
    users: Dict[str, str] = field(default_factory=dict)
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    public_url: str = "http://localhost:8000"
    pdf: PdfConfig = None
    email: EmailConfig = None

    def __post_init__(self):
        self.pdf = self.pdf or PdfConfig()
        self.email = self.email or EmailConfig()

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AdapterConfig":
        """
        Read configuration from the environment.

        MMS_ADAPTER_USERS        comma-separated name:password pairs
        MMS_ADAPTER_CORS_ORIGINS comma-separated origins ("*" reflects any)
        MMS_ADAPTER_PUBLIC_URL   base url used in emailed links
        MMS_ADAPTER_PDF_EXEC     HTML to PDF converter executable
        MMS_ADAPTER_PDF_DIR      scratch directory for conversions
        MMS_ADAPTER_SMTP_HOST / MMS_ADAPTER_SMTP_PORT / MMS_ADAPTER_SMTP_SENDER
        """
        env = os.environ if environ is None else environ

        users: Dict[str, str] = {}
        for pair in env.get("MMS_ADAPTER_USERS", "").split(","):
            name, sep, password = pair.strip().partition(":")
            if name and sep:
                users[name] = password

        origins = [o.strip() for o in env.get("MMS_ADAPTER_CORS_ORIGINS", "*").split(",") if o.strip()]

        pdf = PdfConfig()
        pdf.exec = env.get("MMS_ADAPTER_PDF_EXEC", pdf.exec)
        pdf.working_dir = env.get("MMS_ADAPTER_PDF_DIR", pdf.working_dir)

        email = EmailConfig(
            smtp_host=env.get("MMS_ADAPTER_SMTP_HOST", EmailConfig.smtp_host),
            smtp_port=int(env.get("MMS_ADAPTER_SMTP_PORT", EmailConfig.smtp_port)),
            sender=env.get("MMS_ADAPTER_SMTP_SENDER", EmailConfig.sender),
        )

        return cls(
            users=users,
            cors_origins=origins,
            public_url=env.get("MMS_ADAPTER_PUBLIC_URL", "http://localhost:8000"),
            pdf=pdf,
            email=email,
        )
