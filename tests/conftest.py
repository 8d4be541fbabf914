"""Shared fakes for the probe tests."""

import uuid
from datetime import datetime, timezone

import pytest

from mailflow_probe import Candidate, MonitoringRecord, Protocol, encode

SENT_AT = datetime(2024, 1, 1, 10, 0, 0, tzinfo=timezone.utc)

TRACE_HEADERS = (
    "Received: from relay.example.net (relay.example.net [192.0.2.7]) "
    "by mx.example.org (Postfix) with ESMTPS id 4F1C2; "
    "Mon, 01 Jan 2024 10:00:07 +0000\r\n"
    "Received: from client.example.com (unknown [198.51.100.3]) "
    "by relay.example.net with SMTP id abc123; "
    "Mon, 01 Jan 2024 10:00:02 +0000"
)


class FakeClock:
    """Monotonic clock whose sleep() advances time instantly."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeReceiver:
    """
    Receiver returning scripted candidate lists.

    ``batches[i]`` is returned on attempt ``i``; the last batch repeats.
    """

    protocol = Protocol.IMAP

    def __init__(self, batches=None, error=None):
        self.batches = batches or [[]]
        self.error = error
        self.filters: list[str] = []
        self.consumed: list[Candidate] = []

    def list_candidates(self, subject_filter):
        self.filters.append(subject_filter)
        if self.error is not None:
            raise self.error
        index = min(len(self.filters) - 1, len(self.batches) - 1)
        return list(self.batches[index])

    def consume(self, candidate):
        self.consumed.append(candidate)


class FakeSender:
    protocol = Protocol.SMTP

    def __init__(self, accept=True, error=None):
        self.accept = accept
        self.error = error
        self.sent = []

    def send(self, recipients, subject, body):
        if self.error is not None:
            raise self.error
        self.sent.append((list(recipients), subject, body))
        return self.accept


def make_body(token, sent_at=SENT_AT, protocol=Protocol.SMTP) -> str:
    record = MonitoringRecord()
    record.set_sending_information(token, sent_at, protocol)
    return encode(record).decode("utf-8")


def make_candidate(token, received_at=None, trace_headers=TRACE_HEADERS,
                   body=None, subject=None, handle=1) -> Candidate:
    return Candidate(
        subject=subject if subject is not None else str(token),
        body=body if body is not None else make_body(token),
        trace_headers=trace_headers,
        received_at=received_at,
        handle=handle,
    )


@pytest.fixture
def token() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
