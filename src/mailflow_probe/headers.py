"""Trace header parsing module."""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from email.utils import parsedate_to_datetime
from typing import Optional

from .latency import as_utc
from .record import HopRecord

logger = logging.getLogger(__name__)

# Clause text may span lines but never runs into the next trace entry.
# The timestamp also ends at a line break that does not fold the header.
_CLAUSE = r"(?:(?!\bReceived\b)[\s\S])*?"

_TRACE_ENTRY = re.compile(
    r"\bReceived\b:?\s*"
    rf"(?:from\b(?P<submitter>{_CLAUSE}))?"
    rf"\bby\b(?P<receiver>{_CLAUSE})"
    rf"\bwith\b(?P<transport>{_CLAUSE})"
    r";(?P<stamp>(?:(?!\bReceived\b)(?:[^\r\n]|\r?\n(?=[ \t])))*)",
    re.IGNORECASE,
)

_PARENTHETICAL = re.compile(r"\([^()]*\)")
_NESTED_BY = re.compile(r"\bby\s", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")

# Checked in order, so the longer prefix must come first
_TRANSPORT_PREFIXES = ("ESMTP", "SMTP")


@dataclass
class HeaderParseResult:
    """
    Outcome of parsing a trace header blob.

    Attributes:
        hops: Transit hops in chronological order (oldest first)
        diagnostics: Human readable notes about anything that could not
                     be parsed cleanly; empty when the blob was clean
    """

    hops: list[HopRecord] = field(default_factory=list)
    diagnostics: list[str] = field(default_factory=list)


def parse_trace_headers(blob: Optional[str]) -> HeaderParseResult:
    """
    Extract the transit hops recorded in a message's trace headers.

    Mail servers prepend their ``Received`` header, so the blob lists the
    newest hop first. Entries are reversed to obtain chronological order
    and numbered from 1. Only when every parseable timestamp strictly
    increases in header order is the blob taken to be oldest-first and
    its order kept. A newest-first chain whose oldest relay has a fast
    clock is therefore still reversed; the skew shows up as a clamped
    delay instead.

    Parsing never raises: text that does not look like a trace entry is
    ignored and unparseable timestamps leave ``received_at`` as None.

    Args:
        blob: All trace header lines of one message, newest first

    Returns:
        HeaderParseResult with hops and diagnostics
    """
    result = HeaderParseResult()
    if not blob:
        return result

    entries = [_build_hop(match, result.diagnostics)
               for match in _TRACE_ENTRY.finditer(blob)]
    if not entries:
        logger.debug("No trace entries found in header blob")
        return result

    entries.reverse()
    if _is_descending(entries):
        result.diagnostics.append(
            "Trace entries are oldest-first; header order kept"
        )
        entries.reverse()

    for index, hop in enumerate(entries, start=1):
        hop.hop_index = index

    _compute_delays(entries, result.diagnostics)
    result.hops = entries

    for note in result.diagnostics:
        logger.debug(f"Trace header diagnostic: {note}")

    return result


def parse_hops(blob: Optional[str]) -> list[HopRecord]:
    """Shortcut for ``parse_trace_headers(blob).hops``."""
    return parse_trace_headers(blob).hops


def _build_hop(match: re.Match, diagnostics: list[str]) -> HopRecord:
    submitter = _clean_clause(match.group("submitter") or "")
    receiver_raw = _clean_clause(match.group("receiver"))

    nested = list(_NESTED_BY.finditer(receiver_raw))
    if not submitter and nested:
        submitter = receiver_raw[:nested[0].start()].strip()

    receiver = receiver_raw
    if nested:
        receiver = receiver_raw[nested[-1].end():].strip()

    if not submitter:
        diagnostics.append(
            f"No submitting host in entry: {_excerpt(match.group(0))}"
        )

    stamp = _clean_timestamp(match.group("stamp"))
    received_at = _parse_timestamp(stamp)
    if received_at is None:
        diagnostics.append(f"Unparseable timestamp: {stamp!r}")

    return HopRecord(
        hop_index=0,
        submitting_host=submitter,
        receiving_host=receiver,
        transport_type=_normalize_transport(match.group("transport")),
        received_at=received_at,
    )


def _clean_clause(text: str) -> str:
    previous = None
    while previous != text:
        previous = text
        text = _PARENTHETICAL.sub(" ", text)
    return _WHITESPACE.sub(" ", text).strip()


def _normalize_transport(text: str) -> str:
    cleaned = _clean_clause(text)
    upper = cleaned.upper()
    for prefix in _TRANSPORT_PREFIXES:
        if upper.startswith(prefix):
            return prefix
    return cleaned


def _clean_timestamp(text: str) -> str:
    text = text.replace("\r", "").replace("\n", "")
    text = text.replace(" + ", "+")
    return _clean_clause(text)


def _parse_timestamp(text: str) -> Optional[datetime]:
    if not text:
        return None
    try:
        return as_utc(parsedate_to_datetime(text))
    except (TypeError, ValueError, IndexError, OverflowError):
        return None


def _is_descending(hops: list[HopRecord]) -> bool:
    """
    True if the reversed entries' parseable timestamps strictly decrease.

    That only happens when every timestamp strictly increases in header
    order, i.e. the blob was written oldest-first. A newest-first header
    whose oldest relay has a fast clock is not strictly monotonic, so it
    stays reversed. Fewer than two parseable timestamps never count.
    """
    times = [hop.received_at for hop in hops if hop.received_at is not None]
    if len(times) < 2:
        return False
    return all(earlier > later for earlier, later in zip(times, times[1:]))


def _compute_delays(hops: list[HopRecord], diagnostics: list[str]) -> None:
    previous: Optional[datetime] = None
    for hop in hops:
        hop.delay = timedelta(0)
        if hop.received_at is not None and previous is not None:
            delay = hop.received_at - previous
            if delay < timedelta(0):
                diagnostics.append(
                    f"Hop {hop.hop_index} is timestamped before hop "
                    f"{hop.hop_index - 1}; delay clamped to zero"
                )
            else:
                hop.delay = delay
        previous = hop.received_at


def _excerpt(text: str, limit: int = 60) -> str:
    text = _WHITESPACE.sub(" ", text).strip()
    if len(text) <= limit:
        return repr(text)
    return repr(text[:limit] + "...")
