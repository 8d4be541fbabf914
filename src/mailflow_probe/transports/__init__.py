"""Bundled Sender and Receiver implementations."""

from .imap import ImapReceiver
from .smtp import SmtpSender

__all__ = ["ImapReceiver", "SmtpSender"]
