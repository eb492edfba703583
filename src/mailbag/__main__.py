"""Command line entry point: ``python -m mailbag``."""

import argparse
import logging
import sys

import uvicorn

from .app import create_app
from .config import load_server_info
from .errors import ConfigError

logger = logging.getLogger("mailbag")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mailbag", description="MailBag webmail server")
    parser.add_argument("--config", help="Path to serverInfo.json (default: $MAILBAG_CONFIG or ./serverInfo.json)")
    parser.add_argument("--host", default="0.0.0.0", help="Interface to bind (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=80, help="Port to listen on (default: 80)")
    parser.add_argument("--static", dest="static_dir", help="Directory holding the built client")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    try:
        server_info = load_server_info(args.config)
    except ConfigError as exc:
        logger.error("%s", exc)
        return 2

    app = create_app(server_info, static_dir=args.static_dir)
    logger.info("MailBag server open for requests on %s:%d", args.host, args.port)
    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level.lower())
    return 0


if __name__ == "__main__":
    sys.exit(main())
