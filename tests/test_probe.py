"""Tests for the send leg."""

import json
import uuid

import pytest

from conftest import SENT_AT, FakeClock, FakeSender
from mailflow_probe import (
    Protocol,
    TransactionStatus,
    TransportError,
    ValidationError,
    decode,
    send_probe,
)


def test_send_probe_encodes_envelope_and_times_send():
    clock = FakeClock()

    class SlowSender(FakeSender):
        def send(self, recipients, subject, body):
            clock.now += 0.042
            return super().send(recipients, subject, body)

    sender = SlowSender()
    record = send_probe(
        sender, ["probe@example.com"], now=lambda: SENT_AT, clock=clock
    )

    assert record.status is TransactionStatus.SUCCESS
    assert record.send_protocol is Protocol.SMTP
    assert record.sent_at == SENT_AT
    assert record.duration_ms == 42
    assert record.received_at is None

    (recipients, subject, body), = sender.sent
    assert recipients == ["probe@example.com"]
    assert subject == str(record.correlation_id)
    envelope = decode(body)
    assert envelope.correlation_id == record.correlation_id
    assert envelope.sent_at == SENT_AT
    assert json.loads(body)["SendingProtocol"] == "SMTP"


def test_each_probe_gets_a_fresh_token():
    sender = FakeSender()
    first = send_probe(sender, ["a@example.com"])
    second = send_probe(sender, ["a@example.com"])
    assert first.correlation_id != second.correlation_id
    assert first.correlation_id.version == 4


def test_explicit_token_and_protocol():
    token = uuid.uuid4()
    record = send_probe(
        FakeSender(), "a@example.com", protocol=Protocol.GRAPH,
        correlation_id=str(token)
    )
    assert record.correlation_id == token
    assert record.send_protocol is Protocol.GRAPH


def test_refused_send_is_a_failure():
    record = send_probe(FakeSender(accept=False), ["a@example.com"])
    assert record.status is TransactionStatus.FAILURE
    assert record.duration_ms is not None


def test_sender_errors_propagate():
    with pytest.raises(TransportError):
        send_probe(FakeSender(error=TransportError("down")), ["a@example.com"])


@pytest.mark.parametrize("recipients", [[], None, ["", "  "], ""])
def test_recipients_are_required(recipients):
    sender = FakeSender()
    with pytest.raises(ValidationError):
        send_probe(sender, recipients)
    assert sender.sent == []


def test_invalid_token_is_rejected():
    with pytest.raises(ValidationError):
        send_probe(FakeSender(), ["a@example.com"], correlation_id="nope")
