"""Mailbox and message operations against the IMAP store.

Each operation is a plain coroutine taking an open :class:`ImapSession`, so it
can be exercised against a mocked session in isolation. :class:`ImapWorker`
is what the HTTP layer uses: it opens a fresh session for every call and
closes it on every exit path.

Operations:
- list_mailboxes: LIST → tree → pre-order [Mailbox]
- list_messages: SELECT + (if EXISTS > 0) UID FETCH 1:* UID ENVELOPE → [MessageSummary]
- get_message_body: SELECT + UID FETCH BODY.PEEK[] → text/plain body
- delete_message: SELECT + UID FETCH UID + UID COPY to trash + STORE \\Deleted + EXPUNGE
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from typing import Any

from .config import ImapServerInfo
from .connection import ImapSession
from .errors import MailConnectionError, PartialFailure, ProtocolError
from .mime import decode_mime_header, extract_text_body
from .types import CallTarget, Mailbox, MailboxNode, MessageSummary

logger = logging.getLogger(__name__)

DEFAULT_TRASH_MAILBOX = "Deleted"


def build_mailbox_tree(folders: Iterable[tuple[Any, Any, Any]]) -> MailboxNode:
    """Assemble a flat LIST response into a mailbox tree.

    Siblings keep the order the server listed them in. A mailbox whose parent
    was not listed hangs off its nearest listed ancestor, or the root.

    Args:
        folders: ``(flags, delimiter, name)`` tuples from LIST

    Returns:
        Nameless root node
    """
    root = MailboxNode()
    nodes: dict[str, MailboxNode] = {}
    entries: list[tuple[MailboxNode, str | None]] = []

    for _flags, delimiter, name in folders:
        if isinstance(delimiter, bytes):
            delimiter = delimiter.decode("ascii", errors="replace")
        if isinstance(name, bytes):
            name = name.decode("utf-8", errors="replace")
        if name in nodes:
            continue

        leaf = name.rsplit(delimiter, 1)[-1] if delimiter else name
        node = MailboxNode(name=leaf, path=name)
        nodes[name] = node
        entries.append((node, delimiter))

    # Second pass so that a child listed before its parent still finds it
    for node, delimiter in entries:
        parent = root
        prefix = node.path
        while delimiter and delimiter in prefix:
            prefix = prefix.rsplit(delimiter, 1)[0]
            if prefix in nodes:
                parent = nodes[prefix]
                break
        parent.children.append(node)

    return root


def flatten_mailboxes(root: MailboxNode) -> list[Mailbox]:
    """Flatten a mailbox tree in pre-order (parent before its descendants).

    Iterative, so depth is bounded only by memory. The root itself is not
    emitted. A node with a missing or empty children list is a leaf.
    """
    mailboxes: list[Mailbox] = []
    stack = list(reversed(root.children or []))
    while stack:
        node = stack.pop()
        mailboxes.append(Mailbox(name=node.name, path=node.path))
        stack.extend(reversed(node.children or []))
    return mailboxes


async def list_mailboxes(session: ImapSession) -> list[Mailbox]:
    """List every mailbox on the server, flattened pre-order.

    Returns:
        Mailboxes, parents first; empty if the server reports none
    """
    folders = await session.list_folders()
    return flatten_mailboxes(build_mailbox_tree(folders or []))


def format_address(addr: Any) -> str:
    """Render an ENVELOPE address as ``mailbox@host``.

    ENVELOPE address format: (name, route, mailbox, host)
    Example: (b'John Doe', None, b'john', b'example.com') → 'john@example.com'
    """
    mailbox = addr.mailbox.decode("utf-8", errors="replace") if addr.mailbox else ""
    host = addr.host.decode("utf-8", errors="replace") if addr.host else ""
    if not host:
        return mailbox
    return f"{mailbox}@{host}"


def _parse_summary(uid: int, raw: dict[bytes, Any]) -> MessageSummary:
    envelope = raw.get(b"ENVELOPE")
    if envelope is None:
        raise ProtocolError(f"FETCH response for uid {uid} has no ENVELOPE")

    # Only the first sender is kept
    from_addr = format_address(envelope.from_[0]) if envelope.from_ else ""

    return MessageSummary(
        id=int(raw.get(b"UID", uid)),
        date=envelope.date,
        from_=from_addr,
        subject=decode_mime_header(envelope.subject),
    )


async def list_messages(session: ImapSession, mailbox: str) -> list[MessageSummary]:
    """List message summaries in a mailbox.

    An empty mailbox returns straight after SELECT: no FETCH is sent, since a
    ``1:*`` range against zero messages is an error on some servers.

    Summaries come back in the order the server answered the FETCH (ascending
    UID on every server we know of). They are not re-sorted here.

    Args:
        session: Open IMAP session
        mailbox: Mailbox path

    Returns:
        Message summaries

    Raises:
        ProtocolError: Mailbox not found, or an entry lacks its envelope
    """
    select_info = await session.select_folder(mailbox, readonly=True)
    if not select_info.get(b"EXISTS", 0):
        return []

    raw_data = await session.fetch("1:*", ["UID", "ENVELOPE"])
    return [_parse_summary(uid, data) for uid, data in raw_data.items()]


async def get_message_body(session: ImapSession, mailbox: str, uid: int) -> str:
    """Fetch one message by UID and return its plain-text body.

    Uses BODY.PEEK[] so that reading a message does not set ``\\Seen``.

    Raises:
        ProtocolError: Mailbox or UID not found
        DecodeError: Message has no text/plain part
    """
    await session.select_folder(mailbox, readonly=True)

    raw_data = await session.fetch([uid], ["BODY.PEEK[]"])
    data = raw_data.get(uid)
    if data is None or b"BODY[]" not in data:
        raise ProtocolError(f"Message not found: mailbox={mailbox}, uid={uid}")

    return extract_text_body(data[b"BODY[]"])


async def delete_message(
    session: ImapSession, mailbox: str, uid: int, trash: str = DEFAULT_TRASH_MAILBOX
) -> None:
    """Soft-delete a message: copy it into the trash, then remove the original.

    Steps:
    1. SELECT mailbox read-write and resolve the UID
    2. UID COPY into ``trash`` (skipped when ``mailbox`` is the trash,
       making the delete permanent)
    3. STORE \\Deleted + EXPUNGE in ``mailbox``

    The two steps are not atomic. A failed copy aborts before anything is
    deleted. A failed delete after a successful copy leaves a duplicate in
    the trash and the original in place.

    Args:
        session: Open IMAP session
        mailbox: Mailbox path
        uid: Message UID
        trash: Trash mailbox path

    Raises:
        ProtocolError: Mailbox or UID not found, or delete refused (trash only)
        PartialFailure: Copy failed (``copied=False``), or delete failed after
            the copy (``copied=True``)
    """
    await session.select_folder(mailbox, readonly=False)

    raw_data = await session.fetch([uid], ["UID"])
    if uid not in raw_data:
        raise ProtocolError(f"Message not found: mailbox={mailbox}, uid={uid}")
    resolved_uid = int(raw_data[uid].get(b"UID", uid))

    copied = False
    if mailbox != trash:
        try:
            await session.copy([resolved_uid], trash)
        except (ProtocolError, MailConnectionError) as exc:
            logger.error("Copy of uid %d from %s to %s failed, nothing deleted: %s", resolved_uid, mailbox, trash, exc)
            raise PartialFailure(
                f"Could not copy uid {resolved_uid} from {mailbox} to {trash}; message left in place",
                copied=False,
            ) from exc
        copied = True
        logger.debug("Copied uid %d from %s to %s", resolved_uid, mailbox, trash)

    try:
        await session.add_flags([resolved_uid], ["\\Deleted"])
        await session.expunge([resolved_uid])
    except (ProtocolError, MailConnectionError) as exc:
        if not copied:
            raise
        logger.error("Delete of uid %d from %s failed after copy to %s: %s", resolved_uid, mailbox, trash, exc)
        raise PartialFailure(
            f"Copied uid {resolved_uid} to {trash} but could not delete it from {mailbox}",
            copied=True,
        ) from exc

    logger.info("Deleted uid %d from %s%s", resolved_uid, mailbox, "" if copied else " permanently")


class ImapWorker:
    """Runs each mailbox operation on its own short-lived IMAP session.

    A session is opened per call and closed on every exit path, success or
    failure. Nothing is shared between calls except the read-only server
    info. At most ``info.max_sessions`` sessions are open at once; further
    calls wait for a free slot.

    Args:
        info: IMAP endpoint, credentials and trash mailbox name
    """

    def __init__(self, info: ImapServerInfo):
        self._info = info
        self._slots = asyncio.Semaphore(info.max_sessions)

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[ImapSession]:
        async with self._slots:
            async with ImapSession(self._info) as session:
                yield session

    async def list_mailboxes(self) -> list[Mailbox]:
        async with self._session() as session:
            return await list_mailboxes(session)

    async def list_messages(self, target: CallTarget) -> list[MessageSummary]:
        async with self._session() as session:
            return await list_messages(session, target.mailbox)

    async def get_message_body(self, target: CallTarget) -> str:
        uid = target.require_id()
        async with self._session() as session:
            return await get_message_body(session, target.mailbox, uid)

    async def delete_message(self, target: CallTarget) -> None:
        uid = target.require_id()
        async with self._session() as session:
            await delete_message(session, target.mailbox, uid, trash=self._info.trash_mailbox)
