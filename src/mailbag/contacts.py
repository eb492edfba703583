"""Local address book backed by an embedded SQLite file."""

import asyncio
import logging
import sqlite3
import uuid
from collections.abc import Iterator
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from functools import partial
from pathlib import Path
from typing import Any

from .errors import ContactNotFoundError, StorageError
from .types import Contact

logger = logging.getLogger(__name__)

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS contacts (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        email TEXT NOT NULL,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )
"""


class ContactStore:
    """Synchronous contact table access. One connection per call."""

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path).expanduser()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self.transaction() as conn:
            conn.execute(_SCHEMA)

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Open a connection, commit on success, roll back on error."""
        try:
            conn = sqlite3.connect(self.db_path, timeout=30.0)
        except sqlite3.Error as exc:
            raise StorageError(f"Unable to open contacts database {self.db_path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise StorageError(f"Contacts database error: {exc}") from exc
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def list_contacts(self) -> list[Contact]:
        with self.transaction() as conn:
            rows = conn.execute("SELECT id, name, email FROM contacts ORDER BY created_at, rowid").fetchall()
        return [Contact(id=row["id"], name=row["name"], email=row["email"]) for row in rows]

    def add_contact(self, name: str, email: str) -> Contact:
        contact = Contact(id=uuid.uuid4().hex, name=name, email=email)
        with self.transaction() as conn:
            conn.execute(
                "INSERT INTO contacts (id, name, email) VALUES (?, ?, ?)",
                (contact.id, contact.name, contact.email),
            )
        return contact

    def update_contact(self, contact: Contact) -> Contact:
        with self.transaction() as conn:
            cursor = conn.execute(
                "UPDATE contacts SET name = ?, email = ? WHERE id = ?",
                (contact.name, contact.email, contact.id),
            )
            if cursor.rowcount == 0:
                raise ContactNotFoundError(contact.id)
        return contact

    def delete_contact(self, contact_id: str) -> None:
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM contacts WHERE id = ?", (contact_id,))
            if cursor.rowcount == 0:
                raise ContactNotFoundError(contact_id)


class ContactsWorker:
    """Async facade over :class:`ContactStore`.

    SQLite calls are blocking, so they run on a single worker thread, the same
    way IMAP calls do in :class:`~mailbag.connection.ImapSession`.

    Args:
        db_path: SQLite file, created on first use
    """

    def __init__(self, db_path: str | Path):
        self._store = ContactStore(db_path)
        self._executor = ThreadPoolExecutor(max_workers=1)

    async def _run_sync(self, func: Any, *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, partial(func, *args))

    async def list_contacts(self) -> list[Contact]:
        return await self._run_sync(self._store.list_contacts)

    async def add_contact(self, name: str, email: str) -> Contact:
        contact = await self._run_sync(self._store.add_contact, name, email)
        logger.info("Added contact %s", contact.id)
        return contact

    async def update_contact(self, contact: Contact) -> Contact:
        return await self._run_sync(self._store.update_contact, contact)

    async def delete_contact(self, contact_id: str) -> None:
        await self._run_sync(self._store.delete_contact, contact_id)
        logger.info("Deleted contact %s", contact_id)

    def close(self) -> None:
        self._executor.shutdown(wait=False)
