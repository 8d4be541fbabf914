"""Probe sending over SMTP."""

import logging
import smtplib
import ssl
import uuid
from email.mime.text import MIMEText
from typing import Sequence

from ..account import MailboxAccount
from ..errors import TransportError
from ..record import Protocol

logger = logging.getLogger(__name__)


class SmtpSender:
    """
    Sender that delivers probe messages through an SMTP server.

    The probe is sent as a single plain text part so the envelope
    survives the trip unchanged.
    """

    protocol = Protocol.SMTP

    def __init__(self, account: MailboxAccount, timeout: float = 30.0):
        """
        Initialize the sender with an account.

        Args:
            account: MailboxAccount with SMTP configuration
            timeout: Socket timeout in seconds for the SMTP session

        Raises:
            ValidationError: If the account has no SMTP host
        """
        account.require_sender()

        self.account = account
        self.timeout = timeout
        logger.info(f"SmtpSender initialized for {account.address}")

    def send(self, recipients: Sequence[str], subject: str, body: str) -> bool:
        """
        Send one probe message.

        Args:
            recipients: Destination addresses
            subject: Subject line (the correlation token)
            body: Encoded probe envelope

        Returns:
            True if every recipient was accepted, False if some were refused

        Raises:
            TransportError: If the SMTP session fails
        """
        msg = MIMEText(body, "plain", "utf-8")
        msg["From"] = self.account.address
        msg["To"] = ", ".join(recipients)
        msg["Subject"] = subject
        msg["Message-ID"] = self._generate_message_id()

        try:
            refused = self._send_via_smtp(msg, list(recipients))
        except (smtplib.SMTPException, OSError) as e:
            logger.error(
                f"[{self.account.address}] SMTP send failed: {e}",
                exc_info=True
            )
            raise TransportError(f"SMTP send failed: {e}") from e

        if refused:
            logger.warning(
                f"[{self.account.address}] Recipients refused: "
                f"{sorted(refused)}"
            )
            return False
        return True

    def _generate_message_id(self) -> str:
        return f"<{uuid.uuid4()}>"

    def _send_via_smtp(self, msg: MIMEText, recipients: list[str]) -> dict:
        """
        Deliver a prepared message.

        Returns:
            Mapping of refused recipients, empty when all were accepted
        """
        logger.debug(
            f"Connecting to SMTP server: "
            f"{self.account.smtp_host}:{self.account.smtp_port}"
        )

        context = ssl.create_default_context()

        if self.account.smtp_ssl:
            server = smtplib.SMTP_SSL(
                self.account.smtp_host,
                self.account.smtp_port,
                timeout=self.timeout,
                context=context
            )
        else:
            server = smtplib.SMTP(
                self.account.smtp_host,
                self.account.smtp_port,
                timeout=self.timeout
            )
            server.starttls(context=context)

        try:
            server.login(self.account.login, self.account.password)
            return server.send_message(msg, to_addrs=recipients)
        finally:
            server.quit()
            logger.debug("SMTP connection closed")
