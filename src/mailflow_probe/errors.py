"""Exception types raised by mailflow-probe."""


class ProbeError(Exception):
    """Base class for every error raised by this library."""


class ValidationError(ProbeError, ValueError):
    """
    A precondition was violated before any I/O took place.

    Raised for a missing or malformed correlation token, non-positive
    timeout/interval values, an empty recipient list or an invalid
    configuration value.
    """


class DecodeError(ProbeError, ValueError):
    """A message body could not be decoded into a probe envelope."""


class TransportError(ProbeError):
    """
    A bundled Sender or Receiver failed to talk to its mail server.

    The original exception is always chained as ``__cause__``.
    """
