"""Mailbox polling module."""

import logging
import threading
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional, Union

from .account import ProbeSettings
from .capabilities import Candidate, Receiver
from .envelope import Envelope, decode
from .errors import DecodeError, ValidationError
from .events import EventSink, PollEvent, PollEventKind, log_event
from .headers import parse_trace_headers
from .latency import elapsed_ms, utc_now
from .record import MonitoringRecord, Protocol, coerce_token

logger = logging.getLogger(__name__)

Seconds = Union[int, float, timedelta]


class PollState(Enum):
    WAITING = "waiting"
    FOUND = "found"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass
class PollResult:
    """
    Terminal outcome of one poll.

    Attributes:
        record: Finalized MonitoringRecord
        state: FOUND, TIMED_OUT or CANCELLED
        attempts: Number of fetches made
    """

    record: MonitoringRecord
    state: PollState
    attempts: int


@dataclass
class _PollRun:
    """Mutable state of a single poll call."""

    token: uuid.UUID
    token_text: str
    protocol: Protocol
    start: float
    state: PollState = PollState.WAITING
    attempts: int = 0


class Poller:
    """
    Wait for a probe message to show up in a mailbox.

    The poller asks a Receiver for candidate messages, looks for the
    correlation token in their subjects and sleeps between attempts
    until the probe is found or the timeout elapses. The timeout is
    checked once per attempt, so the total wait may exceed it by up to
    one interval.

    Clock, sleep and wall-clock functions are injectable so the loop can
    be driven without real delays. A Poller holds no per-call state, so
    one instance can serve any number of concurrent polls.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], None]] = None,
        now: Callable[[], datetime] = utc_now,
        on_event: Optional[EventSink] = None,
        settings: Optional[ProbeSettings] = None
    ):
        """
        Initialize the poller.

        Args:
            clock: Monotonic clock in seconds used for timeout and timing
            sleep: Function that blocks for the given number of seconds.
                   When omitted, ``time.sleep`` is used, or the cancel
                   event's ``wait`` when a poll is cancellable
            now: Wall-clock time used when a message has no receive time
            on_event: Sink for PollEvent notifications; defaults to
                      writing them to the log
            settings: Default timeout and interval for poll() calls that
                      do not pass them (default: ProbeSettings())
        """
        self._clock = clock
        self._sleep = sleep
        self._now = now
        self._on_event = on_event or log_event
        self.settings = settings or ProbeSettings()

    def poll(
        self,
        receiver: Receiver,
        correlation_token: Union[str, uuid.UUID],
        timeout: Optional[Seconds] = None,
        interval: Optional[Seconds] = None,
        cancel: Optional[threading.Event] = None
    ) -> MonitoringRecord:
        """
        Poll ``receiver`` until the probe arrives or ``timeout`` elapses.

        The first candidate whose subject carries the token and whose body
        decodes to a matching envelope wins: it is consumed from the
        mailbox and the remaining candidates are not looked at.

        Args:
            receiver: Mailbox to search
            correlation_token: Token the probe was sent with
            timeout: Seconds (or timedelta) to keep polling; defaults to
                     ``settings.timeout``
            interval: Seconds (or timedelta) to sleep between attempts;
                      defaults to ``settings.interval``
            cancel: Optional event; once set, polling stops before the
                    next fetch

        Returns:
            MonitoringRecord with status SUCCESS and hops/latency filled in,
            or status FAILURE when the probe was not found

        Raises:
            ValidationError: If the token, timeout, interval or receiver
                             is invalid; raised before any I/O
            Exception: Anything the receiver raises is propagated as is
        """
        return self.run(
            receiver, correlation_token, timeout, interval, cancel
        ).record

    def run(
        self,
        receiver: Receiver,
        correlation_token: Union[str, uuid.UUID],
        timeout: Optional[Seconds] = None,
        interval: Optional[Seconds] = None,
        cancel: Optional[threading.Event] = None
    ) -> PollResult:
        """Same as poll(), but also report the terminal state and attempts."""
        token = _validate_token(correlation_token)
        timeout_s = _validate_seconds(
            "timeout", self.settings.timeout if timeout is None else timeout
        )
        interval_s = _validate_seconds(
            "interval",
            self.settings.interval if interval is None else interval
        )
        if receiver is None:
            raise ValidationError("A receiver is required")

        run = _PollRun(
            token=token,
            token_text=str(token),
            protocol=getattr(receiver, "protocol", Protocol.NONE),
            start=self._clock(),
        )
        sleep = self._sleep_function(cancel)
        record: Optional[MonitoringRecord] = None

        logger.info(
            f"[{run.token_text}] Polling {run.protocol.value} mailbox "
            f"(timeout={timeout_s}s, interval={interval_s}s)"
        )

        while run.state is PollState.WAITING:
            elapsed = self._clock() - run.start

            if cancel is not None and cancel.is_set():
                run.state = PollState.CANCELLED
                self._emit(run, PollEventKind.CANCELLED, elapsed)
                break

            if elapsed >= timeout_s:
                run.state = PollState.TIMED_OUT
                self._emit(run, PollEventKind.TIMEOUT_REACHED, elapsed)
                break

            run.attempts += 1
            self._emit(run, PollEventKind.ATTEMPT_STARTED, elapsed)

            record = self._attempt(receiver, run)
            if record is not None:
                run.state = PollState.FOUND
                break

            logger.debug(f"[{run.token_text}] Sleeping {interval_s}s")
            sleep(interval_s)

        if run.state is PollState.FOUND:
            logger.info(
                f"[{run.token_text}] Probe found after {run.attempts} "
                f"attempt(s): latency={record.latency_ms}ms, "
                f"hops={len(record.hops)}"
            )
            return PollResult(record, run.state, run.attempts)

        logger.warning(
            f"[{run.token_text}] Probe not found after {run.attempts} "
            f"attempt(s) ({run.state.value})"
        )
        record = MonitoringRecord(correlation_id=token)
        record.receive_protocol = run.protocol
        record.mark_failure()
        return PollResult(record, run.state, run.attempts)

    def _sleep_function(
        self,
        cancel: Optional[threading.Event]
    ) -> Callable[[float], None]:
        if self._sleep is not None:
            return self._sleep
        if cancel is not None:
            return cancel.wait
        return time.sleep

    def _attempt(
        self,
        receiver: Receiver,
        run: _PollRun
    ) -> Optional[MonitoringRecord]:
        """
        Run one fetch and look for the probe among the candidates.

        Returns:
            A finalized MonitoringRecord if the probe was found, else None
        """
        fetch_start = self._clock()
        candidates = receiver.list_candidates(run.token_text)
        fetch_ms = elapsed_ms(fetch_start, self._clock())

        logger.debug(
            f"[{run.token_text}] Attempt {run.attempts}: "
            f"{len(candidates)} candidate(s) in {fetch_ms}ms"
        )

        for candidate in candidates:
            if run.token_text not in (candidate.subject or "").lower():
                continue

            envelope = self._decode_candidate(candidate, run)
            if envelope is None:
                continue

            self._emit(
                run,
                PollEventKind.CANDIDATE_MATCHED,
                self._clock() - run.start,
                detail=candidate.subject
            )
            return self._complete(
                receiver, candidate, envelope, run.protocol, fetch_ms
            )

        return None

    def _decode_candidate(
        self,
        candidate: Candidate,
        run: _PollRun
    ) -> Optional[Envelope]:
        try:
            envelope = decode(candidate.body or "")
        except DecodeError as e:
            self._emit(
                run,
                PollEventKind.CANDIDATE_REJECTED,
                self._clock() - run.start,
                detail=str(e)
            )
            return None

        if envelope.correlation_id != run.token:
            self._emit(
                run,
                PollEventKind.CANDIDATE_REJECTED,
                self._clock() - run.start,
                detail=f"envelope carries token {envelope.correlation_id}"
            )
            return None

        return envelope

    def _complete(
        self,
        receiver: Receiver,
        candidate: Candidate,
        envelope: Envelope,
        protocol: Protocol,
        fetch_ms: int
    ) -> MonitoringRecord:
        record = MonitoringRecord()
        record.merge_envelope(envelope)
        record.set_receiving_information(
            envelope.correlation_id,
            candidate.received_at or self._now(),
            protocol
        )

        parsed = parse_trace_headers(candidate.trace_headers)
        record.hops = parsed.hops
        for note in parsed.diagnostics:
            logger.debug(f"[{envelope.correlation_id}] {note}")

        record.set_duration(fetch_ms)
        record.mark_success()
        receiver.consume(candidate)
        record.compute_latency()
        return record

    def _emit(
        self,
        run: _PollRun,
        kind: PollEventKind,
        elapsed: float,
        detail: Optional[str] = None
    ) -> None:
        event = PollEvent(
            kind=kind,
            correlation_id=run.token_text,
            attempt=run.attempts,
            elapsed=elapsed,
            detail=detail
        )
        try:
            self._on_event(event)
        except Exception as e:
            logger.error(
                f"[{run.token_text}] Event sink error: {e}",
                exc_info=True
            )


def poll(
    receiver: Receiver,
    correlation_token: Union[str, uuid.UUID],
    timeout: Optional[Seconds] = None,
    interval: Optional[Seconds] = None,
    settings: Optional[ProbeSettings] = None,
    **kwargs
) -> MonitoringRecord:
    """
    Poll with a default Poller.

    ``timeout`` and ``interval`` fall back to ``settings`` (or the
    ProbeSettings defaults of 300 s and 5 s). Extra keyword arguments go
    to ``Poller.poll`` (e.g. ``cancel``).
    """
    return Poller(settings=settings).poll(
        receiver, correlation_token, timeout, interval, **kwargs
    )


def _validate_token(token) -> uuid.UUID:
    try:
        return coerce_token(token)
    except ValueError as e:
        raise ValidationError(str(e)) from e


def _validate_seconds(name: str, value) -> float:
    if isinstance(value, timedelta):
        value = value.total_seconds()
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{name} must be a number of seconds")
    if value <= 0:
        raise ValidationError(f"{name} must be positive, got {value}")
    return float(value)
