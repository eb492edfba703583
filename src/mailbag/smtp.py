"""Outbound mail through the configured SMTP relay."""

import logging
from email.message import EmailMessage

import aiosmtplib
from pydantic import BaseModel, ConfigDict, Field

from .config import SmtpServerInfo
from .connection import build_ssl_context
from .errors import MailConnectionError, SendError

logger = logging.getLogger(__name__)


class MessageDraft(BaseModel):
    """Message composed in the client, as posted to ``/messages``."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    to: str = Field(min_length=1)
    from_: str = Field(alias="from", min_length=1)
    subject: str = ""
    text: str = ""

    def to_email_message(self) -> EmailMessage:
        msg = EmailMessage()
        msg["To"] = self.to
        msg["From"] = self.from_
        msg["Subject"] = self.subject
        msg.set_content(self.text)
        return msg


class SmtpWorker:
    """Submits one message per call over a fresh SMTP session.

    No retry and no queue: a refused message is reported to the caller as is.

    Args:
        info: SMTP endpoint and credentials
    """

    def __init__(self, info: SmtpServerInfo):
        self._info = info

    async def send_message(self, draft: MessageDraft) -> None:
        """Send ``draft``.

        Raises:
            MailConnectionError: Relay unreachable or login rejected
            SendError: Relay refused the message or its recipients
        """
        info = self._info
        msg = draft.to_email_message()
        tls_context = build_ssl_context(info.insecure)

        try:
            async with aiosmtplib.SMTP(
                hostname=info.host,
                port=info.port,
                use_tls=info.use_tls,
                start_tls=info.start_tls,
                tls_context=tls_context,
                timeout=info.timeout,
            ) as smtp:
                await smtp.login(info.auth.user, info.auth.password)
                await smtp.send_message(msg)
        except aiosmtplib.SMTPAuthenticationError as exc:
            raise MailConnectionError(f"SMTP login failed for {info.auth.user}: {exc}") from exc
        except (aiosmtplib.SMTPConnectError, aiosmtplib.SMTPServerDisconnected, aiosmtplib.SMTPTimeoutError) as exc:
            raise MailConnectionError(f"Unable to reach SMTP server {info.host}:{info.port}: {exc}") from exc
        except aiosmtplib.SMTPException as exc:
            raise SendError(f"SMTP server refused message to {draft.to}: {exc}") from exc
        except OSError as exc:
            raise MailConnectionError(f"Unable to reach SMTP server {info.host}:{info.port}: {exc}") from exc

        logger.info("Sent message to %s via %s", draft.to, info.host)
