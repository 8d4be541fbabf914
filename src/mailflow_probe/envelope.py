"""Probe envelope codec.

The envelope is the JSON document carried in the body of every probe
message. It holds the send-side half of a monitoring record so that the
receiving side can rebuild it::

    {"SubjectGuid": "...", "TimeSent": "2024-01-01T10:00:00+00:00",
     "SendingProtocol": "SMTP"}

Unknown fields are ignored on decode.
"""

import json
import re
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Union

from .errors import DecodeError
from .latency import as_utc
from .record import MonitoringRecord, Protocol, coerce_token

_FIELD_TOKEN = "SubjectGuid"
_FIELD_SENT = "TimeSent"
_FIELD_PROTOCOL = "SendingProtocol"

# Fractional seconds beyond microseconds (e.g. .NET ticks)
_EXCESS_FRACTION = re.compile(r"(\.\d{6})\d+")

# Position of each protocol when serialized as a number
_PROTOCOL_ORDER = list(Protocol)


@dataclass(frozen=True)
class Envelope:
    """Send-side fields recovered from a probe body."""

    correlation_id: uuid.UUID
    sent_at: datetime
    send_protocol: Protocol


def encode(record: Union[MonitoringRecord, Envelope]) -> bytes:
    """
    Serialize the send-side fields of a record.

    Args:
        record: MonitoringRecord (or Envelope) with sending information

    Returns:
        UTF-8 JSON bytes; identical input always gives identical output

    Raises:
        ValueError: If the record has no correlation token or send time
    """
    if record.correlation_id is None:
        raise ValueError("Cannot encode a record without correlation_id")
    if record.sent_at is None:
        raise ValueError("Cannot encode a record without sent_at")

    payload = {
        _FIELD_TOKEN: str(record.correlation_id),
        _FIELD_SENT: as_utc(record.sent_at).isoformat(),
        _FIELD_PROTOCOL: record.send_protocol.value,
    }
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")


def decode(data: Union[bytes, str]) -> Envelope:
    """
    Parse a probe body back into an Envelope.

    Args:
        data: Message body as bytes or text

    Returns:
        Envelope with the send-side fields

    Raises:
        DecodeError: If the body is not a JSON object or a required
                     field is missing or has the wrong type
    """
    if isinstance(data, bytes):
        try:
            data = data.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise DecodeError(f"Envelope is not valid UTF-8: {e}") from e

    if not isinstance(data, str):
        raise DecodeError(
            f"Envelope must be bytes or str, got {type(data).__name__}"
        )

    try:
        payload = json.loads(data.strip())
    except json.JSONDecodeError as e:
        raise DecodeError(f"Envelope is not valid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise DecodeError("Envelope must be a JSON object")

    return Envelope(
        correlation_id=_decode_token(payload),
        sent_at=_decode_time(payload),
        send_protocol=_decode_protocol(payload),
    )


def _require(payload: dict, name: str):
    if name not in payload or payload[name] is None:
        raise DecodeError(f"Envelope is missing field {name}")
    return payload[name]


def _decode_token(payload: dict) -> uuid.UUID:
    value = _require(payload, _FIELD_TOKEN)
    if not isinstance(value, str):
        raise DecodeError(f"{_FIELD_TOKEN} must be a string")
    try:
        return coerce_token(value)
    except ValueError as e:
        raise DecodeError(str(e)) from e


def _decode_time(payload: dict) -> datetime:
    value = _require(payload, _FIELD_SENT)
    if not isinstance(value, str):
        raise DecodeError(f"{_FIELD_SENT} must be a string")
    text = value.strip()
    # fromisoformat() only accepts a trailing "Z" from Python 3.11 on
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _EXCESS_FRACTION.sub(r"\1", text)
    try:
        return as_utc(datetime.fromisoformat(text))
    except ValueError as e:
        raise DecodeError(
            f"{_FIELD_SENT} is not an ISO-8601 time: {value!r}"
        ) from e


def _decode_protocol(payload: dict) -> Protocol:
    value = _require(payload, _FIELD_PROTOCOL)
    # bool is an int subclass but never a valid protocol
    if isinstance(value, bool):
        raise DecodeError(f"{_FIELD_PROTOCOL} has invalid value {value!r}")
    if isinstance(value, int):
        if 0 <= value < len(_PROTOCOL_ORDER):
            return _PROTOCOL_ORDER[value]
        raise DecodeError(f"{_FIELD_PROTOCOL} out of range: {value}")
    if isinstance(value, str):
        for protocol in Protocol:
            if protocol.value.lower() == value.strip().lower():
                return protocol
        raise DecodeError(f"Unknown {_FIELD_PROTOCOL}: {value!r}")
    raise DecodeError(f"{_FIELD_PROTOCOL} must be a string or integer")
