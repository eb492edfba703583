"""Shared fixtures: configuration and a mocked IMAPClient."""

from datetime import datetime
from unittest.mock import Mock, patch

import pytest
import pytest_asyncio
from imapclient.response_types import Address, Envelope

from mailbag.config import ServerInfo
from mailbag.connection import ImapSession


@pytest.fixture
def server_info(tmp_path):
    """Fully populated configuration with a contacts file under tmp_path."""
    return ServerInfo.model_validate(
        {
            "imap": {"host": "imap.test.com", "port": 993, "auth": {"user": "test@test.com", "pass": "password"}},
            "smtp": {"host": "smtp.test.com", "port": 465, "auth": {"user": "test@test.com", "pass": "password"}},
            "contacts_db": str(tmp_path / "contacts.db"),
        }
    )


@pytest.fixture
def imap_info(server_info):
    return server_info.imap


@pytest.fixture
def mock_imap_client():
    """Create mocked IMAPClient instance."""
    client = Mock()
    client.login.return_value = None
    client.logout.return_value = b"Logging out"
    client.select_folder.return_value = {
        b"EXISTS": 3,
        b"UIDNEXT": 10,
    }
    client.has_capability.return_value = True
    return client


@pytest_asyncio.fixture
async def session(imap_info, mock_imap_client):
    """Connected ImapSession talking to the mocked IMAPClient."""
    with patch("mailbag.connection.IMAPClient", return_value=mock_imap_client):
        session = ImapSession(imap_info)
        await session.connect()
        yield session
        await session.close()


@pytest.fixture
def make_envelope():
    """Factory building an ENVELOPE as IMAPClient returns it."""

    def _make(subject=b"Test Subject", from_=None, date=datetime(2025, 12, 15, 10, 0, 0)):
        if from_ is None:
            from_ = (Address(b"John Doe", None, b"john", b"example.com"),)
        return Envelope(
            date=date,
            subject=subject,
            from_=from_,
            sender=from_,
            reply_to=from_,
            to=(Address(b"Jane Doe", None, b"jane", b"example.com"),),
            cc=(),
            bcc=(),
            in_reply_to=b"",
            message_id=b"<msg-123@example.com>",
        )

    return _make
