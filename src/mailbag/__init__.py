"""MailBag: single-user webmail gateway over IMAP and SMTP."""

from .config import ServerInfo, load_server_info
from .connection import ImapSession
from .errors import (
    ConfigError,
    ContactNotFoundError,
    DecodeError,
    MailBagError,
    MailConnectionError,
    PartialFailure,
    ProtocolError,
    SendError,
    StorageError,
)
from .imap import ImapWorker
from .smtp import MessageDraft, SmtpWorker
from .types import CallTarget, Contact, Mailbox, MessageSummary

__all__ = [
    "CallTarget",
    "ConfigError",
    "Contact",
    "ContactNotFoundError",
    "DecodeError",
    "ImapSession",
    "ImapWorker",
    "MailBagError",
    "MailConnectionError",
    "Mailbox",
    "MessageDraft",
    "MessageSummary",
    "PartialFailure",
    "ProtocolError",
    "SendError",
    "ServerInfo",
    "SmtpWorker",
    "StorageError",
    "load_server_info",
]

__version__ = "0.1.0"
