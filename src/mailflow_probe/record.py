"""Monitoring record data structures."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Union

from .latency import as_utc, latency_ms


class Protocol(Enum):
    """Mail protocol used for one leg of a probe."""

    NONE = "None"
    SMTP = "SMTP"
    POP = "POP"
    IMAP = "IMAP"
    EWS = "EWS"
    GRAPH = "GRAPH"


class TransactionStatus(Enum):
    """Outcome of a probe leg."""

    PENDING = "Pending"
    SUCCESS = "Success"
    FAILURE = "Failure"


def _format_time(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return as_utc(value).isoformat()


@dataclass
class HopRecord:
    """
    One relay recorded in a message's trace headers.

    Attributes:
        hop_index: 1-based position in the chain, oldest hop first
        submitting_host: Host that handed the message over (may be empty)
        receiving_host: Host that accepted the message (may be empty)
        transport_type: Normalized transport token, e.g. "SMTP" or "ESMTP"
        received_at: When the receiving host accepted the message, or None
                     when the header timestamp could not be parsed
        delay: Time since the previous hop; zero for the first hop and
               whenever either timestamp is unknown
    """

    hop_index: int
    submitting_host: str = ""
    receiving_host: str = ""
    transport_type: str = ""
    received_at: Optional[datetime] = None
    delay: timedelta = field(default_factory=timedelta)

    def to_dict(self) -> dict:
        return {
            "Hop": self.hop_index,
            "SubmittingHost": self.submitting_host,
            "ReceivingHost": self.receiving_host,
            "Type": self.transport_type,
            "ReceivedTime": _format_time(self.received_at),
            "DelayTime": self.delay.total_seconds(),
        }

    def summary(self) -> str:
        return (
            f"Hop <{self.hop_index}> from <{self.submitting_host}> "
            f"to <{self.receiving_host}> via <{self.transport_type}> "
            f"on <{_format_time(self.received_at)}> "
            f"took <{self.delay.total_seconds():g}> seconds."
        )


@dataclass
class MonitoringRecord:
    """
    State of one synthetic round trip.

    A record starts out PENDING, is enriched with sending information
    on the send side and with receiving information and hops on the
    receive side, and is finalized exactly once as SUCCESS or FAILURE.

    The correlation token cannot be changed once it has been assigned.

    Attributes:
        correlation_id: UUID that identifies the round trip
        sent_at: When the probe was handed to the Sender
        send_protocol: Protocol used to send the probe
        received_at: When the probe was observed in the mailbox
        receive_protocol: Protocol used to find the probe
        latency_ms: Transit time, only meaningful on SUCCESS
        duration_ms: Cost of the send call or of the matching fetch
        status: PENDING, SUCCESS or FAILURE
        hops: Transit hops, oldest first
    """

    correlation_id: Optional[uuid.UUID] = None
    sent_at: Optional[datetime] = None
    send_protocol: Protocol = Protocol.NONE
    received_at: Optional[datetime] = None
    receive_protocol: Protocol = Protocol.NONE
    latency_ms: Optional[int] = None
    duration_ms: Optional[int] = None
    status: TransactionStatus = TransactionStatus.PENDING
    hops: list[HopRecord] = field(default_factory=list)

    def __setattr__(self, name, value):
        if name == "correlation_id":
            current = getattr(self, "correlation_id", None)
            if current is not None and current != value:
                raise ValueError(
                    f"correlation_id is already set to {current}"
                )
        super().__setattr__(name, value)

    def set_sending_information(
        self,
        correlation_id: uuid.UUID,
        sent_at: datetime,
        protocol: Protocol
    ) -> None:
        self.correlation_id = correlation_id
        self.sent_at = as_utc(sent_at)
        self.send_protocol = protocol

    def set_receiving_information(
        self,
        correlation_id: uuid.UUID,
        received_at: Optional[datetime],
        protocol: Protocol
    ) -> None:
        self.correlation_id = correlation_id
        self.received_at = as_utc(received_at)
        self.receive_protocol = protocol

    def merge_envelope(self, envelope) -> None:
        """Copy the send-side fields of a decoded envelope."""
        self.set_sending_information(
            envelope.correlation_id,
            envelope.sent_at,
            envelope.send_protocol
        )

    def set_duration(self, duration_ms: int) -> None:
        if duration_ms < 0:
            raise ValueError("duration_ms cannot be negative")
        self.duration_ms = duration_ms

    def mark_success(self) -> None:
        self._transition(TransactionStatus.SUCCESS)

    def mark_failure(self) -> None:
        self._transition(TransactionStatus.FAILURE)

    def finalize(self, success: bool) -> None:
        if success:
            self.mark_success()
        else:
            self.mark_failure()

    def _transition(self, status: TransactionStatus) -> None:
        if self.status is not TransactionStatus.PENDING:
            raise ValueError(
                f"Record {self.correlation_id} is already finalized "
                f"as {self.status.value}"
            )
        self.status = status

    def is_final(self) -> bool:
        return self.status is not TransactionStatus.PENDING

    def compute_latency(self) -> Optional[int]:
        """
        Fill ``latency_ms`` from the send and receive timestamps.

        Returns:
            The computed latency, or None when either timestamp is missing
        """
        if self.sent_at is None or self.received_at is None:
            return None
        self.latency_ms = latency_ms(self.sent_at, self.received_at)
        return self.latency_ms

    def to_dict(self) -> dict:
        """
        Report the record with the field names used by the probe payload.

        Returns:
            JSON-serializable dictionary
        """
        return {
            "SubjectGuid": (
                str(self.correlation_id) if self.correlation_id else None
            ),
            "TimeSent": _format_time(self.sent_at),
            "SendingProtocol": self.send_protocol.value,
            "TimeReceived": _format_time(self.received_at),
            "ReceivingProtocol": self.receive_protocol.value,
            "Latency": self.latency_ms,
            "CmdletDuration": self.duration_ms,
            "Status": self.status.value,
            "MailflowHeaderDataTable": [hop.to_dict() for hop in self.hops],
        }

    def summary(self) -> str:
        latency_seconds = (
            round(self.latency_ms / 1000) if self.latency_ms is not None
            else None
        )
        lines = [
            f"Message <{self.correlation_id}> sent via "
            f"<{self.send_protocol.value}> at <{_format_time(self.sent_at)}> "
            f"and received via <{self.receive_protocol.value}> on "
            f"<{_format_time(self.received_at)}> took <{latency_seconds}> "
            f"seconds. Operation took <{self.duration_ms}> msec and status "
            f"was <{self.status.value}>."
        ]
        lines.extend(hop.summary() for hop in self.hops)
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"MonitoringRecord(correlation_id='{self.correlation_id}', "
            f"status={self.status.value}, latency_ms={self.latency_ms}, "
            f"hops={len(self.hops)})"
        )


def coerce_token(token: Union[str, uuid.UUID, None]) -> uuid.UUID:
    """
    Convert a correlation token to a UUID.

    Raises:
        ValueError: If the token is empty or not a valid UUID
    """
    if isinstance(token, uuid.UUID):
        if token.int == 0:
            raise ValueError("Correlation token cannot be the nil UUID")
        return token
    if not token or not str(token).strip():
        raise ValueError("Correlation token cannot be empty")
    try:
        parsed = uuid.UUID(str(token).strip())
    except ValueError:
        raise ValueError(f"Invalid correlation token: {token!r}") from None
    if parsed.int == 0:
        raise ValueError("Correlation token cannot be the nil UUID")
    return parsed
