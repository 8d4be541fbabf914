"""
mailflow-probe: Synthetic mail-flow monitoring.

This library measures how long mail takes to travel between two
mailboxes. A probe message tagged with a unique correlation token is
sent, the destination mailbox is polled until the probe shows up, and
the result is reported as a round-trip latency plus a hop-by-hop
breakdown taken from the message's Received headers.

Key Features:
    - Correlation token and send time carried in a JSON envelope
    - Bounded polling with injectable clock, sleep and cancellation
    - Best-effort Received header parsing into ordered transit hops
    - IMAP receiver and SMTP sender included; any object with the same
      methods can be used instead

Basic Usage:
    >>> from mailflow_probe import (
    ...     MailboxAccount,
    ...     ImapReceiver,
    ...     Poller,
    ...     SmtpSender,
    ...     send_probe
    ... )
    >>>
    >>> source = MailboxAccount(
    ...     address="probe-out@example.com",
    ...     password="password1",
    ...     smtp_host="smtp.example.com"
    ... )
    >>> target = MailboxAccount(
    ...     address="probe-in@example.com",
    ...     password="password2",
    ...     imap_host="imap.example.com"
    ... )
    >>>
    >>> sent = send_probe(SmtpSender(source), [target.address])
    >>> with ImapReceiver(target) as receiver:
    ...     record = Poller().poll(
    ...         receiver, sent.correlation_id, timeout=300, interval=5
    ...     )
    >>> print(record.summary())
"""

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from .account import MailboxAccount, ProbeSettings
from .capabilities import Candidate, Receiver, Sender
from .envelope import Envelope, decode, encode
from .errors import DecodeError, ProbeError, TransportError, ValidationError
from .events import PollEvent, PollEventKind, log_event
from .headers import HeaderParseResult, parse_hops, parse_trace_headers
from .latency import latency_ms
from .poller import Poller, PollResult, PollState, poll
from .probe import send_probe
from .record import HopRecord, MonitoringRecord, Protocol, TransactionStatus
from .transports import ImapReceiver, SmtpSender

__all__ = [
    "Candidate",
    "DecodeError",
    "Envelope",
    "HeaderParseResult",
    "HopRecord",
    "ImapReceiver",
    "MailboxAccount",
    "MonitoringRecord",
    "PollEvent",
    "PollEventKind",
    "PollResult",
    "PollState",
    "Poller",
    "ProbeError",
    "ProbeSettings",
    "Protocol",
    "Receiver",
    "Sender",
    "SmtpSender",
    "TransactionStatus",
    "TransportError",
    "ValidationError",
    "decode",
    "encode",
    "latency_ms",
    "log_event",
    "parse_hops",
    "parse_trace_headers",
    "poll",
    "send_probe",
]
