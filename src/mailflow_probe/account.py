"""Mailbox account and probe configuration module."""

import os
from dataclasses import dataclass, field
from typing import Optional

from .errors import ValidationError


def _check_port(name: str, port) -> None:
    if isinstance(port, bool) or not isinstance(port, int):
        raise ValidationError(f"{name} must be an integer: {port!r}")
    if not 1 <= port <= 65535:
        raise ValidationError(f"{name} out of range: {port}")


@dataclass
class MailboxAccount:
    """
    Mailbox taking part in a probe.

    A probe is sent from a source mailbox over SMTP and looked for in a
    target mailbox over IMAP, so an account only needs the server of the
    role it plays. The same account may play both roles when it probes
    itself.

    Attributes:
        address: Mailbox address (e.g., "probe@example.com")
        password: Account password or app-specific password; never shown
                  in repr()
        imap_host: IMAP server hostname, required to receive probes
        imap_port: IMAP server port (default: 993 for SSL)
        smtp_host: SMTP server hostname, required to send probes
        smtp_port: SMTP server port (default: 465 for SSL)
        imap_ssl: Use SSL for IMAP connection (default: True)
        smtp_ssl: Use SSL for SMTP, else STARTTLS (default: True)
        username: Login name when it differs from the address
    """

    address: str
    password: str = field(repr=False)
    imap_host: Optional[str] = None
    imap_port: int = 993
    smtp_host: Optional[str] = None
    smtp_port: int = 465
    imap_ssl: bool = True
    smtp_ssl: bool = True
    username: Optional[str] = None

    def __post_init__(self):
        local, _, domain = (self.address or "").rpartition("@")
        if not local or not domain or " " in self.address:
            raise ValidationError(f"Invalid mailbox address: {self.address!r}")

        if not self.password:
            raise ValidationError(f"[{self.address}] Password cannot be empty")

        if not self.can_send() and not self.can_receive():
            raise ValidationError(
                f"[{self.address}] Account needs an IMAP or SMTP host"
            )

        _check_port("imap_port", self.imap_port)
        _check_port("smtp_port", self.smtp_port)

    @property
    def domain(self) -> str:
        """Domain part of the address, used for generated Message-IDs."""
        return self.address.rpartition("@")[2]

    @property
    def login(self) -> str:
        return self.username or self.address

    def can_send(self) -> bool:
        """True if the account can act as a probe source (SMTP)."""
        return bool(self.smtp_host and self.smtp_host.strip())

    def can_receive(self) -> bool:
        """True if the account can act as a probe target (IMAP)."""
        return bool(self.imap_host and self.imap_host.strip())

    def require_sender(self) -> None:
        """
        Raises:
            ValidationError: If no SMTP host is configured
        """
        if not self.can_send():
            raise ValidationError(
                f"[{self.address}] Account has no SMTP host and cannot "
                f"send probes"
            )

    def require_receiver(self) -> None:
        """
        Raises:
            ValidationError: If no IMAP host is configured
        """
        if not self.can_receive():
            raise ValidationError(
                f"[{self.address}] Account has no IMAP host and cannot "
                f"receive probes"
            )


@dataclass
class ProbeSettings:
    """
    Polling configuration for one probe.

    Attributes:
        timeout: Seconds to keep polling for the probe (default: 300)
        interval: Seconds to sleep between attempts (default: 5)
        folder: Mailbox folder searched for the probe (default: INBOX)
    """

    timeout: float = 300.0
    interval: float = 5.0
    folder: str = "INBOX"

    def __post_init__(self):
        if self.timeout <= 0:
            raise ValidationError(f"timeout must be positive: {self.timeout}")

        if self.interval <= 0:
            raise ValidationError(
                f"interval must be positive: {self.interval}"
            )

        if not self.folder:
            raise ValidationError("folder cannot be empty")

    @classmethod
    def from_env(cls, prefix: str = "MAILFLOW_PROBE_") -> "ProbeSettings":
        """
        Build settings from ``<prefix>TIMEOUT``, ``<prefix>INTERVAL`` and
        ``<prefix>FOLDER``; unset variables keep their defaults.
        """
        values = {}
        for name in ("timeout", "interval"):
            raw = os.environ.get(f"{prefix}{name.upper()}")
            if raw is None or not raw.strip():
                continue
            try:
                values[name] = float(raw)
            except ValueError:
                raise ValidationError(
                    f"{prefix}{name.upper()} must be a number: {raw!r}"
                ) from None

        folder = os.environ.get(f"{prefix}FOLDER")
        if folder and folder.strip():
            values["folder"] = folder.strip()

        return cls(**values)
