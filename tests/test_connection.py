"""Unit tests for ImapSession.

Covers connect/close lifecycle, TLS verification defaults and translation of
IMAPClient errors into MailBag error kinds.
"""

import ssl
from unittest.mock import patch

import pytest
from imapclient.exceptions import IMAPClientAbortError, IMAPClientError, LoginError

from mailbag.connection import ImapSession, build_ssl_context
from mailbag.errors import MailConnectionError, ProtocolError


@pytest.mark.asyncio
async def test_connect_opens_client_and_logs_in(imap_info, mock_imap_client):
    """Test that connect creates one IMAPClient and logs in with the configured credentials."""
    with patch("mailbag.connection.IMAPClient", return_value=mock_imap_client) as client_cls:
        session = ImapSession(imap_info)
        await session.connect()

    client_cls.assert_called_once()
    kwargs = client_cls.call_args.kwargs
    assert kwargs["host"] == "imap.test.com"
    assert kwargs["port"] == 993
    assert kwargs["ssl"] is True
    assert kwargs["timeout"] == 30.0
    mock_imap_client.login.assert_called_once_with("test@test.com", "password")
    assert session.connected

    await session.close()


@pytest.mark.asyncio
async def test_certificate_validation_enabled_by_default(imap_info, mock_imap_client):
    """Test that TLS verification is on unless explicitly disabled."""
    with patch("mailbag.connection.IMAPClient", return_value=mock_imap_client) as client_cls:
        async with ImapSession(imap_info):
            pass

    context = client_cls.call_args.kwargs["ssl_context"]
    assert context.verify_mode == ssl.CERT_REQUIRED
    assert context.check_hostname is True


@pytest.mark.asyncio
async def test_insecure_mode_is_opt_in(imap_info, mock_imap_client):
    """Test that insecure=True disables certificate and hostname checks."""
    insecure_info = imap_info.model_copy(update={"insecure": True})

    with patch("mailbag.connection.IMAPClient", return_value=mock_imap_client) as client_cls:
        async with ImapSession(insecure_info):
            pass

    context = client_cls.call_args.kwargs["ssl_context"]
    assert context.verify_mode == ssl.CERT_NONE
    assert context.check_hostname is False


def test_build_ssl_context_secure():
    context = build_ssl_context(insecure=False)
    assert context.verify_mode == ssl.CERT_REQUIRED


@pytest.mark.asyncio
async def test_login_failure_raises_connection_error_without_retry(imap_info, mock_imap_client):
    """Test that a rejected login surfaces immediately and drops the socket."""
    mock_imap_client.login.side_effect = LoginError("[AUTHENTICATIONFAILED] Invalid credentials")

    with patch("mailbag.connection.IMAPClient", return_value=mock_imap_client) as client_cls:
        session = ImapSession(imap_info)
        with pytest.raises(MailConnectionError, match="login failed"):
            await session.connect()

    # Single attempt, no reconnection
    client_cls.assert_called_once()
    mock_imap_client.shutdown.assert_called_once()
    assert not session.connected


@pytest.mark.asyncio
async def test_unreachable_server_raises_connection_error(imap_info):
    """Test that socket errors on connect become MailConnectionError."""
    with patch("mailbag.connection.IMAPClient", side_effect=ConnectionRefusedError("refused")):
        session = ImapSession(imap_info)
        with pytest.raises(MailConnectionError, match="Unable to connect"):
            await session.connect()


@pytest.mark.asyncio
async def test_close_is_idempotent(session, mock_imap_client):
    """Test that close logs out once no matter how often it is called."""
    await session.close()
    await session.close()

    mock_imap_client.logout.assert_called_once()
    assert not session.connected


@pytest.mark.asyncio
async def test_close_tolerates_logout_failure(session, mock_imap_client):
    """Test that a failing LOGOUT is not raised and the socket is still dropped."""
    mock_imap_client.logout.side_effect = OSError("connection reset")

    await session.close()

    mock_imap_client.shutdown.assert_called_once()
    assert not session.connected


@pytest.mark.asyncio
async def test_context_manager_closes_on_error(imap_info, mock_imap_client):
    """Test that leaving the async with block through an exception still logs out."""
    with patch("mailbag.connection.IMAPClient", return_value=mock_imap_client):
        with pytest.raises(RuntimeError):
            async with ImapSession(imap_info):
                raise RuntimeError("boom")

    mock_imap_client.logout.assert_called_once()


@pytest.mark.asyncio
async def test_command_after_close_raises(session):
    await session.close()

    with pytest.raises(MailConnectionError):
        await session.fetch([1], ["UID"])


@pytest.mark.asyncio
async def test_server_no_response_becomes_protocol_error(session, mock_imap_client):
    """Test that NO/BAD responses are translated into ProtocolError."""
    mock_imap_client.fetch.side_effect = IMAPClientError("FETCH failed: BAD")

    with pytest.raises(ProtocolError, match="fetch"):
        await session.fetch([1], ["UID"])


@pytest.mark.asyncio
async def test_dropped_connection_becomes_connection_error(session, mock_imap_client):
    mock_imap_client.copy.side_effect = IMAPClientAbortError("socket error: EOF")

    with pytest.raises(MailConnectionError):
        await session.copy([1], "Deleted")


@pytest.mark.asyncio
async def test_select_missing_folder_raises_protocol_error(session, mock_imap_client):
    """Test that selecting an unknown mailbox reports it by name."""
    mock_imap_client.select_folder.side_effect = IMAPClientError("select failed: Mailbox does not exist")

    with pytest.raises(ProtocolError, match="Mailbox not found: Nope"):
        await session.select_folder("Nope")


@pytest.mark.asyncio
async def test_expunge_uses_uid_expunge_with_uidplus(session, mock_imap_client):
    mock_imap_client.has_capability.return_value = True

    await session.expunge([7])

    mock_imap_client.uid_expunge.assert_called_once_with([7])
    mock_imap_client.expunge.assert_not_called()


@pytest.mark.asyncio
async def test_expunge_falls_back_without_uidplus(session, mock_imap_client):
    mock_imap_client.has_capability.return_value = False

    await session.expunge([7])

    mock_imap_client.expunge.assert_called_once_with()
    mock_imap_client.uid_expunge.assert_not_called()


@pytest.mark.asyncio
async def test_failed_socket_shutdown_does_not_mask_operation_error(imap_info, mock_imap_client):
    """Test that close swallows a failing shutdown and still releases the worker thread."""
    mock_imap_client.logout.side_effect = OSError("connection reset")
    mock_imap_client.shutdown.side_effect = OSError("bad file descriptor")

    with patch("mailbag.connection.IMAPClient", return_value=mock_imap_client):
        session = ImapSession(imap_info)
        with pytest.raises(RuntimeError, match="boom"):
            async with session:
                raise RuntimeError("boom")

    mock_imap_client.shutdown.assert_called_once()
    assert session._executor is None
    assert not session.connected
