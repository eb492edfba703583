"""Short-lived IMAP sessions backed by IMAPClient.

Wraps the synchronous IMAPClient library with a ThreadPoolExecutor so that
every network call is a suspend point on the event loop rather than a blocking
call. One :class:`ImapSession` serves exactly one gateway operation: it is
opened, used for a single protocol task and closed again. Sessions are never
pooled or shared between requests.

Raw IMAPClient and socket exceptions are translated here into
:class:`~mailbag.errors.MailConnectionError` and
:class:`~mailbag.errors.ProtocolError`, so the rest of the gateway only
deals with MailBag error kinds.
"""

import asyncio
import logging
import ssl
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Any

from imapclient import IMAPClient  # type: ignore[import-untyped]
from imapclient.exceptions import (  # type: ignore[import-untyped]
    IMAPClientAbortError,
    IMAPClientError,
    LoginError,
)

from .config import ImapServerInfo
from .errors import MailConnectionError, ProtocolError

logger = logging.getLogger(__name__)


def build_ssl_context(insecure: bool) -> ssl.SSLContext:
    """Create the TLS context for a mail server connection.

    Verification is on unless ``insecure`` is set, in which case hostname
    checking and certificate validation are both disabled.
    """
    context = ssl.create_default_context()
    if insecure:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


class ImapSession:
    """One IMAP connection, used for one operation and then closed.

    ThreadPoolExecutor Pattern:
    - Single worker thread (IMAP is a single-threaded protocol)
    - Every IMAPClient call goes through ``_call()``
    - Uses ``loop.run_in_executor()`` so the event loop never blocks on I/O

    Lifecycle:
    - ``connect()`` opens the socket and logs in, raising
      MailConnectionError on the first failure (no retry)
    - ``close()`` logs out and releases the worker thread; safe to call
      any number of times and on any exit path
    - ``async with ImapSession(info) as session`` does both

    Args:
        info: IMAP endpoint and credentials (read only)

    Example:
        >>> async with ImapSession(server_info.imap) as session:
        ...     select_info = await session.select_folder("INBOX")
    """

    def __init__(self, info: ImapServerInfo):
        self._info = info
        self._executor: ThreadPoolExecutor | None = None
        self._client: IMAPClient | None = None

    @property
    def connected(self) -> bool:
        return self._client is not None

    async def __aenter__(self) -> "ImapSession":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def _run_sync(self, func: Any, *args: Any, **kwargs: Any) -> Any:
        """Run a blocking function on this session's worker thread.

        Args:
            func: Synchronous function to execute
            *args: Positional arguments
            **kwargs: Keyword arguments

        Returns:
            Function result
        """
        if self._executor is None:
            raise MailConnectionError("IMAP session is not connected")
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, partial(func, *args, **kwargs))

    def _open_client(self) -> IMAPClient:
        """Connect and authenticate (runs on the worker thread)."""
        info = self._info
        ssl_context = build_ssl_context(info.insecure) if info.ssl else None
        client = IMAPClient(
            host=info.host,
            port=info.port,
            ssl=info.ssl,
            ssl_context=ssl_context,
            timeout=info.timeout,
        )
        try:
            client.login(info.auth.user, info.auth.password)
        except Exception:
            # Not logged in, so LOGOUT is pointless; just drop the socket
            client.shutdown()
            raise
        return client

    async def connect(self) -> None:
        """Open the connection and log in.

        Raises:
            MailConnectionError: Server unreachable, TLS handshake failed, or
                credentials rejected
        """
        if self._client is not None:
            return

        info = self._info
        if info.ssl and info.insecure:
            logger.warning("Certificate verification disabled for IMAP server %s", info.host)

        self._executor = ThreadPoolExecutor(max_workers=1)
        logger.debug("Connecting to IMAP server %s:%d", info.host, info.port)
        try:
            self._client = await self._run_sync(self._open_client)
        except LoginError as exc:
            self._release_executor()
            raise MailConnectionError(f"IMAP login failed for {info.auth.user}: {exc}") from exc
        except (IMAPClientError, OSError) as exc:
            self._release_executor()
            raise MailConnectionError(f"Unable to connect to IMAP server {info.host}:{info.port}: {exc}") from exc
        logger.debug("IMAP session open: %s@%s", info.auth.user, info.host)

    async def close(self) -> None:
        """Log out and release the worker thread. Idempotent.

        A failing LOGOUT is logged and otherwise ignored so that it never
        replaces the outcome of the operation that is being cleaned up.
        """
        client, self._client = self._client, None
        try:
            if client is not None:
                try:
                    await self._run_sync(client.logout)
                except (IMAPClientError, OSError) as exc:
                    logger.warning("IMAP logout from %s failed: %s", self._info.host, exc)
                    try:
                        client.shutdown()
                    except OSError as shutdown_exc:
                        logger.warning("IMAP socket shutdown for %s failed: %s", self._info.host, shutdown_exc)
                else:
                    logger.debug("IMAP session closed: %s", self._info.host)
        finally:
            self._release_executor()

    def _release_executor(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None

    async def _call(self, method: str, *args: Any, **kwargs: Any) -> Any:
        """Invoke an IMAPClient method, translating library errors.

        Args:
            method: IMAPClient method name (e.g. ``fetch``)
            *args: Command arguments
            **kwargs: Command keyword arguments

        Returns:
            Command result

        Raises:
            MailConnectionError: Connection dropped mid-command
            ProtocolError: Server answered NO/BAD
        """
        if self._client is None:
            raise MailConnectionError("IMAP session is not connected")
        func = getattr(self._client, method)
        try:
            return await self._run_sync(func, *args, **kwargs)
        except IMAPClientAbortError as exc:
            raise MailConnectionError(f"IMAP connection lost during {method}: {exc}") from exc
        except IMAPClientError as exc:
            raise ProtocolError(f"IMAP {method} failed: {exc}") from exc
        except OSError as exc:
            raise MailConnectionError(f"IMAP connection lost during {method}: {exc}") from exc

    async def select_folder(self, folder: str, readonly: bool = True) -> dict[bytes, Any]:
        """SELECT (or EXAMINE) a mailbox.

        Args:
            folder: Mailbox path
            readonly: Open read-only (default: True)

        Returns:
            SELECT response info, e.g. ``{b"EXISTS": 3, b"UIDNEXT": 9}``

        Raises:
            ProtocolError: Mailbox does not exist
        """
        try:
            return await self._call("select_folder", folder, readonly=readonly)
        except ProtocolError as exc:
            error_msg = str(exc).lower()
            if (
                "nonexistent" in error_msg
                or "does not exist" in error_msg
                or "no such mailbox" in error_msg
                or "unknown mailbox" in error_msg
            ):
                raise ProtocolError(f"Mailbox not found: {folder}") from exc
            raise

    async def list_folders(self) -> list[tuple[tuple[bytes, ...], bytes | None, str]]:
        """LIST every mailbox as ``(flags, delimiter, name)`` tuples."""
        return await self._call("list_folders")

    async def fetch(self, messages: Any, data: list[str]) -> dict[int, dict[bytes, Any]]:
        """UID FETCH ``data`` items for ``messages`` (UID list or range string)."""
        return await self._call("fetch", messages, data)

    async def copy(self, uids: list[int], folder: str) -> Any:
        """UID COPY messages into ``folder``."""
        return await self._call("copy", uids, folder)

    async def add_flags(self, uids: list[int], flags: list[str]) -> Any:
        return await self._call("add_flags", uids, flags)

    async def expunge(self, uids: list[int]) -> Any:
        """Remove ``\\Deleted`` messages, restricted to ``uids`` where the server allows it.

        Uses UID EXPUNGE when the server advertises UIDPLUS. Otherwise falls
        back to a plain EXPUNGE of the selected mailbox.
        """
        if await self._call("has_capability", "UIDPLUS"):
            return await self._call("uid_expunge", uids)
        return await self._call("expunge")
