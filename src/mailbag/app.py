"""HTTP API consumed by the MailBag browser client.

One gateway call per request. Every failure, whatever its kind, is logged
and then answered with status 400 and the plain-text body ``error``: the
client has no use for more detail.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ConfigDict, Field

from .config import ServerInfo
from .contacts import ContactsWorker
from .errors import MailBagError
from .imap import ImapWorker
from .smtp import MessageDraft, SmtpWorker
from .types import CallTarget, Contact

logger = logging.getLogger(__name__)


class ContactIn(BaseModel):
    """New contact, as posted to ``/contacts``."""

    model_config = ConfigDict(extra="ignore")

    name: str = Field(min_length=1)
    email: str = Field(min_length=1)


class ContactUpdate(ContactIn):
    """Existing contact, as put to ``/contacts``."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = Field(alias="_id", min_length=1)


def _error_response(request: Request, exc: Exception) -> PlainTextResponse:
    logger.warning("%s %s failed: %s: %s", request.method, request.url.path, type(exc).__name__, exc)
    return PlainTextResponse("error", status_code=400)


def _parse_uid(raw: str) -> int:
    if not (raw.isascii() and raw.isdigit()):
        raise ValueError(f"Invalid message id: {raw!r}")
    uid = int(raw)
    if uid <= 0:
        raise ValueError(f"Invalid message id: {raw}")
    return uid


def create_app(
    server_info: ServerInfo,
    static_dir: str | Path | None = None,
    imap_worker: ImapWorker | None = None,
    smtp_worker: SmtpWorker | None = None,
    contacts_worker: ContactsWorker | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Workers default to ones built from ``server_info``; tests pass their own.

    Args:
        server_info: Loaded configuration
        static_dir: Built client to serve at ``/`` (optional)
        imap_worker: Mailbox operations
        smtp_worker: Outbound mail
        contacts_worker: Address book

    Returns:
        Configured application
    """
    imap = imap_worker or ImapWorker(server_info.imap)
    smtp = smtp_worker or SmtpWorker(server_info.smtp)
    contacts = contacts_worker or ContactsWorker(server_info.contacts_db)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        contacts.close()

    app = FastAPI(title="MailBag", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Origin", "X-Requested-With", "Content-Type", "Accept"],
    )

    app.add_exception_handler(MailBagError, _error_response)
    app.add_exception_handler(RequestValidationError, _error_response)
    app.add_exception_handler(ValueError, _error_response)

    @app.get("/mailboxes")
    async def list_mailboxes() -> JSONResponse:
        mailboxes = await imap.list_mailboxes()
        return JSONResponse([{"name": m.name, "path": m.path} for m in mailboxes])

    @app.get("/mailboxes/{mailbox:path}")
    async def list_messages(mailbox: str) -> JSONResponse:
        messages = await imap.list_messages(CallTarget(mailbox=mailbox))
        return JSONResponse([m.to_dict() for m in messages])

    @app.get("/messages/{mailbox:path}/{message_id}")
    async def get_message_body(mailbox: str, message_id: str) -> PlainTextResponse:
        body = await imap.get_message_body(CallTarget(mailbox=mailbox, id=_parse_uid(message_id)))
        return PlainTextResponse(body)

    @app.delete("/messages/{mailbox:path}/{message_id}")
    async def delete_message(mailbox: str, message_id: str) -> PlainTextResponse:
        await imap.delete_message(CallTarget(mailbox=mailbox, id=_parse_uid(message_id)))
        return PlainTextResponse("ok")

    @app.post("/messages")
    async def send_message(draft: MessageDraft) -> PlainTextResponse:
        await smtp.send_message(draft)
        return PlainTextResponse("ok", status_code=201)

    @app.get("/contacts")
    async def list_contacts() -> JSONResponse:
        return JSONResponse([c.to_dict() for c in await contacts.list_contacts()])

    @app.post("/contacts")
    async def add_contact(contact: ContactIn) -> JSONResponse:
        added = await contacts.add_contact(contact.name, contact.email)
        return JSONResponse(added.to_dict(), status_code=201)

    @app.put("/contacts")
    async def update_contact(contact: ContactUpdate) -> JSONResponse:
        updated = await contacts.update_contact(Contact(id=contact.id, name=contact.name, email=contact.email))
        return JSONResponse(updated.to_dict(), status_code=202)

    @app.delete("/contacts/{contact_id}")
    async def delete_contact(contact_id: str) -> PlainTextResponse:
        await contacts.delete_contact(contact_id)
        return PlainTextResponse("ok")

    if static_dir is not None:
        app.mount("/", StaticFiles(directory=str(static_dir), html=True), name="client")

    return app
