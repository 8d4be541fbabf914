"""Probe retrieval over IMAP."""

import imaplib
import logging
from typing import Optional

from imap_tools import AND, MailBox, MailBoxUnencrypted
from imap_tools.errors import ImapToolsError

from ..account import MailboxAccount, ProbeSettings
from ..capabilities import Candidate
from ..errors import TransportError
from ..headers import parse_hops
from ..latency import as_utc
from ..record import Protocol

logger = logging.getLogger(__name__)

_IMAP_ERRORS = (ImapToolsError, imaplib.IMAP4.error, OSError)


class ImapReceiver:
    """
    Receiver that searches an IMAP folder for probe messages.

    The connection is opened on first use and closed by close() or when
    leaving a ``with`` block:

        >>> with ImapReceiver(account) as receiver:
        ...     record = Poller().poll(receiver, token, 300, 5)

    from_settings() builds one for the folder named in ProbeSettings.
    """

    protocol = Protocol.IMAP

    def __init__(self, account: MailboxAccount, folder: str = "INBOX"):
        """
        Initialize the receiver.

        Args:
            account: MailboxAccount with an IMAP host
            folder: Folder to search (default: INBOX)

        Raises:
            ValidationError: If the account has no IMAP host
        """
        account.require_receiver()
        self.account = account
        self.folder = folder
        self._mailbox: Optional[MailBox] = None

    @classmethod
    def from_settings(
        cls,
        account: MailboxAccount,
        settings: ProbeSettings
    ) -> "ImapReceiver":
        """Create a receiver searching ``settings.folder``."""
        return cls(account, folder=settings.folder)

    def __enter__(self) -> "ImapReceiver":
        self.open()
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def open(self) -> None:
        """Connect and log in, unless already connected."""
        if self._mailbox is not None:
            return

        logger.debug(
            f"[{self.account.address}] Connecting to IMAP: "
            f"{self.account.imap_host}:{self.account.imap_port}"
        )
        mailbox_class = MailBox if self.account.imap_ssl else MailBoxUnencrypted
        try:
            self._mailbox = mailbox_class(
                self.account.imap_host,
                self.account.imap_port
            ).login(
                self.account.login,
                self.account.password,
                initial_folder=self.folder
            )
        except _IMAP_ERRORS as e:
            raise TransportError(f"IMAP login failed: {e}") from e

        logger.info(f"[{self.account.address}] IMAP connection established")

    def close(self) -> None:
        """Log out; errors while logging out are only logged."""
        if self._mailbox is None:
            return
        mailbox, self._mailbox = self._mailbox, None
        try:
            mailbox.logout()
        except _IMAP_ERRORS as e:
            logger.warning(f"[{self.account.address}] IMAP logout failed: {e}")

    def list_candidates(self, subject_filter: str) -> list[Candidate]:
        """
        Search the folder for messages whose subject contains the filter.

        Args:
            subject_filter: Text to search for (the correlation token)

        Returns:
            Candidate for every matching message

        Raises:
            TransportError: If the IMAP search or fetch fails
        """
        mailbox = self._require_mailbox()
        try:
            messages = list(mailbox.fetch(
                AND(subject=subject_filter),
                mark_seen=False
            ))
        except _IMAP_ERRORS as e:
            raise TransportError(f"IMAP fetch failed: {e}") from e

        return [self._convert_to_candidate(msg) for msg in messages]

    def consume(self, candidate: Candidate) -> None:
        """
        Delete a matched probe from the folder.

        Raises:
            TransportError: If the IMAP delete fails
        """
        mailbox = self._require_mailbox()
        try:
            mailbox.delete([candidate.handle])
        except _IMAP_ERRORS as e:
            raise TransportError(f"IMAP delete failed: {e}") from e
        logger.debug(f"[{self.account.address}] Deleted UID {candidate.handle}")

    def purge(self) -> int:
        """
        Delete every message in the folder.

        Useful to reset a dedicated probe mailbox so stale probes do not
        pile up.

        Returns:
            Number of messages deleted
        """
        mailbox = self._require_mailbox()
        try:
            uids = list(mailbox.uids())
            if uids:
                mailbox.delete(uids)
        except _IMAP_ERRORS as e:
            raise TransportError(f"IMAP purge failed: {e}") from e

        logger.info(
            f"[{self.account.address}] Purged {len(uids)} message(s) "
            f"from {self.folder}"
        )
        return len(uids)

    def _require_mailbox(self) -> MailBox:
        self.open()
        return self._mailbox

    def _convert_to_candidate(self, msg) -> Candidate:
        """
        Convert imap_tools MailMessage to Candidate.

        Args:
            msg: imap_tools MailMessage object

        Returns:
            Candidate instance
        """
        received = msg.headers.get("received", ())
        trace_headers = "\r\n".join(f"Received: {value}" for value in received)

        # The newest hop is the time the mailbox server accepted the probe
        received_at = None
        for hop in reversed(parse_hops(trace_headers)):
            if hop.received_at is not None:
                received_at = hop.received_at
                break
        if received_at is None and msg.date_str:
            received_at = as_utc(msg.date)

        return Candidate(
            subject=msg.subject or "",
            body=msg.text or msg.html or "",
            trace_headers=trace_headers,
            received_at=received_at,
            handle=msg.uid,
        )
