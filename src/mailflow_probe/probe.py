"""Probe sending module."""

import logging
import time
import uuid
from datetime import datetime
from typing import Callable, Optional, Sequence, Union

from .capabilities import Sender
from .envelope import encode
from .errors import ValidationError
from .latency import elapsed_ms, utc_now
from .record import MonitoringRecord, Protocol, coerce_token

logger = logging.getLogger(__name__)


def send_probe(
    sender: Sender,
    recipients: Sequence[str],
    protocol: Optional[Protocol] = None,
    correlation_id: Union[str, uuid.UUID, None] = None,
    now: Callable[[], datetime] = utc_now,
    clock: Callable[[], float] = time.monotonic
) -> MonitoringRecord:
    """
    Send one probe message and describe the send leg.

    The probe's subject is the correlation token and its body is the
    encoded envelope, so the receiving side can find it and rebuild
    the send-side half of the record.

    Args:
        sender: Transport used to send the probe
        recipients: Mailboxes that will be polled for the probe
        protocol: Protocol recorded as the sending protocol; defaults to
                  ``sender.protocol``
        correlation_id: Token to use; a new uuid4 is generated if omitted
        now: Wall-clock time source
        clock: Monotonic clock used to time the send call

    Returns:
        MonitoringRecord with sending information and duration_ms set,
        finalized as SUCCESS if the sender accepted the message

    Raises:
        ValidationError: If there are no recipients or the token is invalid
        Exception: Anything the sender raises is propagated as is
    """
    if sender is None:
        raise ValidationError("A sender is required")

    if isinstance(recipients, str):
        recipients = [recipients]
    recipients = [r.strip() for r in recipients or [] if r and r.strip()]
    if not recipients:
        raise ValidationError("At least one recipient must be provided")

    if correlation_id is None:
        token = uuid.uuid4()
        logger.debug(f"Generated correlation token {token}")
    else:
        try:
            token = coerce_token(correlation_id)
        except ValueError as e:
            raise ValidationError(str(e)) from e

    if protocol is None:
        protocol = getattr(sender, "protocol", Protocol.NONE)

    record = MonitoringRecord()
    record.set_sending_information(token, now(), protocol)
    body = encode(record).decode("utf-8")

    logger.info(
        f"[{token}] Sending probe via {protocol.value} to "
        f"{len(recipients)} recipient(s)"
    )

    start = clock()
    try:
        accepted = sender.send(recipients, str(token), body)
    except Exception as e:
        logger.error(f"[{token}] Failed to send probe: {e}", exc_info=True)
        raise
    record.set_duration(elapsed_ms(start, clock()))
    record.finalize(bool(accepted))

    logger.info(
        f"[{token}] Probe send finished in {record.duration_ms}ms "
        f"with status {record.status.value}"
    )
    return record
