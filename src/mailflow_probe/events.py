"""Poll state transition events."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class PollEventKind(Enum):
    ATTEMPT_STARTED = "attempt_started"
    CANDIDATE_MATCHED = "candidate_matched"
    CANDIDATE_REJECTED = "candidate_rejected"
    TIMEOUT_REACHED = "timeout_reached"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class PollEvent:
    """
    One observable step of a poll.

    Attributes:
        kind: What happened
        correlation_id: Token being polled for, as a string
        attempt: 1-based fetch attempt number (0 before the first fetch)
        elapsed: Seconds since the poll started
        detail: Optional free text, e.g. why a candidate was rejected
    """

    kind: PollEventKind
    correlation_id: str
    attempt: int
    elapsed: float
    detail: Optional[str] = None


EventSink = Callable[[PollEvent], None]


def log_event(event: PollEvent) -> None:
    """Default sink: write the event through the logging module."""
    level = logging.DEBUG
    if event.kind in (PollEventKind.CANDIDATE_MATCHED,
                      PollEventKind.TIMEOUT_REACHED,
                      PollEventKind.CANCELLED):
        level = logging.INFO
    elif event.kind is PollEventKind.CANDIDATE_REJECTED:
        level = logging.WARNING

    message = (
        f"[{event.correlation_id}] {event.kind.value} "
        f"(attempt {event.attempt}, {event.elapsed:.1f}s elapsed)"
    )
    if event.detail:
        message += f": {event.detail}"

    logger.log(
        level,
        message,
        extra={
            "probe_event": event.kind.value,
            "correlation_id": event.correlation_id,
            "attempt": event.attempt,
            "elapsed": event.elapsed,
        }
    )
