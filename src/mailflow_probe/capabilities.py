"""Sender and Receiver capabilities consumed by the probe core."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Protocol as TypingProtocol, Sequence

from .record import Protocol


@dataclass
class Candidate:
    """
    A message observed in the monitored mailbox.

    Attributes:
        subject: Subject line, searched for the correlation token
        body: Plain text body, expected to hold the probe envelope
        trace_headers: All Received headers joined newest first
        received_at: When the mailbox accepted the message, if known
        handle: Receiver specific reference used by consume()
    """

    subject: str
    body: str
    trace_headers: str = ""
    received_at: Optional[datetime] = None
    handle: Any = None

    def __repr__(self) -> str:
        return (
            f"Candidate(subject='{self.subject[:40]}', "
            f"received_at={self.received_at}, handle={self.handle!r})"
        )


class Sender(TypingProtocol):
    """Anything that can hand a probe message to a mail system."""

    protocol: Protocol

    def send(self, recipients: Sequence[str], subject: str, body: str) -> bool:
        """Send one message; return False when the server refused it."""
        ...


class Receiver(TypingProtocol):
    """Anything that can list and remove messages from a mailbox."""

    protocol: Protocol

    def list_candidates(self, subject_filter: str) -> Sequence[Candidate]:
        """Return messages whose subject may contain ``subject_filter``."""
        ...

    def consume(self, candidate: Candidate) -> None:
        """Delete a matched message from the mailbox."""
        ...
