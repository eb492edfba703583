"""Server connection settings, read once at process start.

The file keeps the ``serverInfo.json`` layout used by the original MailBag
server::

    {
      "imap": {"host": "...", "port": 993, "auth": {"user": "...", "pass": "..."}},
      "smtp": {"host": "...", "port": 465, "auth": {"user": "...", "pass": "..."}}
    }

Models are frozen: one :class:`ServerInfo` is built at startup and handed to
every worker, which only ever reads it.
"""

import json
import logging
import os
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "MAILBAG_CONFIG"
DEFAULT_CONFIG_PATH = Path("serverInfo.json")


class AuthInfo(BaseModel):
    """Login credentials for one server."""

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    user: str = Field(min_length=1)
    password: str = Field(alias="pass", min_length=1, repr=False)


class ImapServerInfo(BaseModel):
    """IMAP store endpoint.

    ``insecure`` disables certificate and hostname verification. It exists for
    self-signed internal servers and must be switched on explicitly.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    host: str = Field(min_length=1)
    port: int = Field(default=993, gt=0, lt=65536)
    auth: AuthInfo
    ssl: bool = True
    insecure: bool = False
    timeout: float = Field(default=30.0, gt=0)
    trash_mailbox: str = Field(default="Deleted", min_length=1)
    max_sessions: int = Field(default=4, ge=1)


class SmtpServerInfo(BaseModel):
    """SMTP relay endpoint.

    ``use_tls`` is implicit TLS (port 465). ``start_tls`` left unset upgrades
    the connection whenever the server offers STARTTLS; ``false`` forbids the
    upgrade. The two cannot both be true.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    host: str = Field(min_length=1)
    port: int = Field(default=465, gt=0, lt=65536)
    auth: AuthInfo
    use_tls: bool = True
    start_tls: bool | None = None
    insecure: bool = False
    timeout: float = Field(default=30.0, gt=0)

    @model_validator(mode="after")
    def _validate_tls_mode(self) -> "SmtpServerInfo":
        if self.use_tls and self.start_tls:
            raise ValueError("smtp.use_tls and smtp.start_tls cannot both be true")
        return self


class ServerInfo(BaseModel):
    """Complete process configuration."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    imap: ImapServerInfo
    smtp: SmtpServerInfo
    contacts_db: Path = Path("contacts.db")


def resolve_config_path(path: str | os.PathLike[str] | None = None) -> Path:
    """Pick the config file: explicit argument, then $MAILBAG_CONFIG, then the default."""
    if path is not None:
        return Path(path)
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    return DEFAULT_CONFIG_PATH


def load_server_info(path: str | os.PathLike[str] | None = None) -> ServerInfo:
    """Load and validate the server configuration.

    Args:
        path: Config file path (see :func:`resolve_config_path`)

    Returns:
        Validated, immutable ServerInfo

    Raises:
        ConfigError: File missing or unreadable, invalid JSON, or any required
            field (host, user, pass, ...) absent or empty
    """
    config_path = resolve_config_path(path)
    try:
        raw = config_path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigError(f"Configuration file missing: {config_path}") from exc
    except OSError as exc:
        raise ConfigError(f"Unable to read configuration file {config_path}: {exc}") from exc

    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in {config_path}: {exc}") from exc

    if not isinstance(payload, dict):
        raise ConfigError(f"{config_path} must contain a JSON object at the top level")

    try:
        server_info = ServerInfo.model_validate(payload)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration in {config_path}: {exc}") from exc

    logger.info(
        "Loaded configuration from %s (imap=%s:%d, smtp=%s:%d)",
        config_path,
        server_info.imap.host,
        server_info.imap.port,
        server_info.smtp.host,
        server_info.smtp.port,
    )
    return server_info
