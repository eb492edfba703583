"""Domain objects passed between the gateway and the HTTP layer."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class Mailbox:
    """One mailbox in the store's hierarchy.

    Attributes:
        name: Leaf display label (e.g. ``Old``)
        path: Fully qualified name including delimiters (e.g. ``Trash/Old``)
    """

    name: str
    path: str


@dataclass(frozen=True)
class MessageSummary:
    """Envelope-level view of a message, as shown in message lists.

    ``id`` is a UID and only means something together with the mailbox
    path it was listed from.
    """

    id: int
    date: datetime | None
    from_: str
    subject: str

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the JSON shape the client expects (``from`` key, ISO date)."""
        return {
            "id": self.id,
            "date": self.date.isoformat() if self.date else None,
            "from": self.from_,
            "subject": self.subject,
        }


@dataclass(frozen=True)
class CallTarget:
    """Addresses the object of a gateway call.

    Attributes:
        mailbox: Mailbox path
        id: Message UID, required for message-scoped calls
    """

    mailbox: str
    id: int | None = None

    def require_id(self) -> int:
        if self.id is None:
            raise ValueError(f"Message id required for mailbox {self.mailbox!r}")
        return self.id


@dataclass
class MailboxNode:
    """Node of the mailbox tree built from a LIST response.

    The root node has empty ``name`` and ``path`` and is never emitted.
    """

    name: str = ""
    path: str = ""
    children: list["MailboxNode"] = field(default_factory=list)


@dataclass(frozen=True)
class Contact:
    """Address book entry."""

    id: str
    name: str
    email: str

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["_id"] = data.pop("id")
        return data
