"""Error kinds raised by the MailBag gateway.

The HTTP boundary flattens every one of these into a plain 400 ``error``
response, so the distinction only matters inside the process: tests and
logs can tell "server unreachable" from "no text part" before the detail
is discarded.
"""


class MailBagError(Exception):
    """Base class for all MailBag errors."""


class ConfigError(MailBagError):
    """Configuration file is missing, unreadable or incomplete.

    Fatal at startup. Never raised by an individual gateway operation.
    """


class MailConnectionError(MailBagError):
    """Connecting to or authenticating with a mail server failed."""


class ProtocolError(MailBagError):
    """Mail store answered with something the gateway cannot use.

    Covers unknown mailboxes, unknown UIDs and responses missing fields
    such as the envelope.
    """


class DecodeError(MailBagError):
    """Message body could not be decoded into plain text."""


class PartialFailure(MailBagError):
    """Soft delete stopped between its copy and delete steps.

    Args:
        message: Human readable description
        copied: True if the copy into the trash mailbox succeeded before the
            failure (a duplicate now exists in the trash)
    """

    def __init__(self, message: str, copied: bool):
        super().__init__(message)
        self.copied = copied


class SendError(MailBagError):
    """SMTP relay rejected an outbound message."""


class ContactNotFoundError(MailBagError):
    """No contact exists with the given id."""

    def __init__(self, contact_id: str):
        super().__init__(f"Contact not found: {contact_id}")
        self.contact_id = contact_id


class StorageError(MailBagError):
    """Local contact database could not be read or written."""
