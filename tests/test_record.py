"""Tests for MonitoringRecord and HopRecord."""

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from mailflow_probe import (
    HopRecord,
    MonitoringRecord,
    Protocol,
    TransactionStatus,
)
from mailflow_probe.envelope import Envelope

SENT_AT = datetime(2024, 1, 1, 10, 0, 0, tzinfo=timezone.utc)


def test_new_record_is_pending():
    record = MonitoringRecord()
    assert record.status is TransactionStatus.PENDING
    assert record.correlation_id is None
    assert record.hops == []
    assert record.latency_ms is None
    assert not record.is_final()


def test_correlation_id_is_immutable_once_set():
    token = uuid.uuid4()
    record = MonitoringRecord(correlation_id=token)
    record.correlation_id = token
    with pytest.raises(ValueError):
        record.correlation_id = uuid.uuid4()


def test_receiving_information_cannot_swap_token():
    record = MonitoringRecord()
    record.set_sending_information(uuid.uuid4(), SENT_AT, Protocol.SMTP)
    with pytest.raises(ValueError):
        record.set_receiving_information(uuid.uuid4(), SENT_AT, Protocol.IMAP)


def test_status_transitions_only_once():
    record = MonitoringRecord()
    record.mark_success()
    assert record.status is TransactionStatus.SUCCESS
    with pytest.raises(ValueError):
        record.mark_failure()
    with pytest.raises(ValueError):
        record.mark_success()


def test_finalize_maps_bool_to_status():
    ok = MonitoringRecord()
    ok.finalize(True)
    failed = MonitoringRecord()
    failed.finalize(False)
    assert ok.status is TransactionStatus.SUCCESS
    assert failed.status is TransactionStatus.FAILURE


def test_compute_latency():
    token = uuid.uuid4()
    record = MonitoringRecord()
    record.set_sending_information(token, SENT_AT, Protocol.SMTP)
    assert record.compute_latency() is None

    record.set_receiving_information(
        token, SENT_AT + timedelta(seconds=3, microseconds=10), Protocol.POP
    )
    assert record.compute_latency() == 3001
    assert record.latency_ms == 3001


def test_naive_times_are_stored_as_utc():
    record = MonitoringRecord()
    record.set_sending_information(
        uuid.uuid4(), datetime(2024, 1, 1, 10), Protocol.EWS
    )
    assert record.sent_at == SENT_AT


def test_merge_envelope():
    token = uuid.uuid4()
    record = MonitoringRecord()
    record.merge_envelope(Envelope(token, SENT_AT, Protocol.GRAPH))
    assert record.correlation_id == token
    assert record.sent_at == SENT_AT
    assert record.send_protocol is Protocol.GRAPH


def test_set_duration_rejects_negative():
    record = MonitoringRecord()
    record.set_duration(12)
    assert record.duration_ms == 12
    with pytest.raises(ValueError):
        record.set_duration(-1)


def test_to_dict_uses_report_field_names():
    token = uuid.uuid4()
    record = MonitoringRecord()
    record.set_sending_information(token, SENT_AT, Protocol.SMTP)
    record.hops = [
        HopRecord(
            hop_index=1,
            submitting_host="a.example",
            receiving_host="b.example",
            transport_type="SMTP",
            received_at=SENT_AT,
            delay=timedelta(seconds=2),
        )
    ]
    record.mark_failure()

    report = record.to_dict()
    assert report["SubjectGuid"] == str(token)
    assert report["TimeSent"] == "2024-01-01T10:00:00+00:00"
    assert report["SendingProtocol"] == "SMTP"
    assert report["TimeReceived"] is None
    assert report["ReceivingProtocol"] == "None"
    assert report["Status"] == "Failure"
    assert report["MailflowHeaderDataTable"][0]["DelayTime"] == 2.0
    assert report["MailflowHeaderDataTable"][0]["Hop"] == 1


def test_summary_mentions_every_hop():
    record = MonitoringRecord(correlation_id=uuid.uuid4())
    record.hops = [HopRecord(hop_index=1), HopRecord(hop_index=2)]
    lines = record.summary().splitlines()
    assert len(lines) == 3
    assert lines[1].startswith("Hop <1>")
    assert lines[2].startswith("Hop <2>")
