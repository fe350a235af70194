"""Command line entry point.

Usage::

    mail2storage [FILE]            # one message from FILE or stdin ("-")
    mail2storage --imap            # every message matching SOURCE_SEARCH

Settings come from environment variables, optionally from a TOML file
(``--config``) and finally from flags, in increasing priority.  The exit
status is one of :class:`~mail2storage.models.ExitStatus`.
"""

from __future__ import annotations

import argparse
import asyncio
import imaplib
import signal
import sys
import tomllib
from typing import Any, BinaryIO

import structlog
from pydantic import ValidationError

from . import __version__
from .config import (
    ArchiveConfig,
    AzureConfig,
    EmptyPolicy,
    GcsConfig,
    HttpConfig,
    ImapConfig,
    Mail2StorageConfig,
    RetryConfig,
    S3Config,
    SourceConfig,
    StorageConfig,
)
from .errors import ConfigError
from .imap_client import ImapClient
from .logging import level_for_verbosity, setup_logging
from .models import ExitStatus
from .pipeline import build_pipeline
from .source import ImapSource, read_input

logger = structlog.get_logger()

_SECTIONS: dict[str, type] = {
    "storage": StorageConfig,
    "http": HttpConfig,
    "s3": S3Config,
    "azure": AzureConfig,
    "gcs": GcsConfig,
    "retry": RetryConfig,
    "imap": ImapConfig,
    "source": SourceConfig,
    "archive": ArchiveConfig,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mail2storage",
        description="Extract email attachments into a storage backend and archive the message.",
    )
    parser.add_argument("file", nargs="?", default="-", help="message file, - for stdin")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", help="TOML configuration file")
    parser.add_argument("--imap", action="store_true", help="read messages from the IMAP source")
    parser.add_argument("--mailbox", help="IMAP mailbox to read with --imap")
    parser.add_argument("--storage-url", help="storage target, e.g. s3://bucket/prefix")
    parser.add_argument("--output-template", help="template for attachment paths")
    parser.add_argument("--archive-template", help="template for the archive folder")
    parser.add_argument("--maildir", help="archive into this Maildir++ root")
    parser.add_argument("--user", help="skip user resolution and use this name")
    parser.add_argument("--unknown-user", help="name used when no user can be resolved")
    parser.add_argument(
        "--accepted-mimetypes",
        help="semicolon separated content types to extract",
    )
    parser.add_argument(
        "--empty-policy",
        choices=[p.value for p in EmptyPolicy],
        help="outcome when a message has no candidate attachment",
    )
    parser.add_argument(
        "--stdout",
        action="store_true",
        default=None,
        help="echo the processed message to stdout",
    )
    parser.add_argument(
        "--insecure",
        action="store_true",
        default=None,
        help="skip TLS certificate verification",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        default=None,
        help="emit JSON log lines",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0, help="increase verbosity")
    parser.add_argument("-q", "--quiet", action="store_true", help="silence all output")
    return parser


def load_config_file(path: str) -> dict[str, Any]:
    with open(path, "rb") as fh:
        return tomllib.load(fh)


def _drop_none(values: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}


def build_config(args: argparse.Namespace) -> Mail2StorageConfig:
    """Merge file sections, environment and flags into one config."""
    data = load_config_file(args.config) if args.config else {}

    section_overrides = {
        "storage": {"url": args.storage_url},
        "source": {"mailbox": args.mailbox},
        "archive": {
            "folder_template": args.archive_template,
            "maildir_path": args.maildir,
        },
    }
    root_overrides = {
        "user": args.user,
        "unknown_user": args.unknown_user,
        "accepted_mimetypes": args.accepted_mimetypes,
        "output_template": args.output_template,
        "empty_policy": args.empty_policy,
        "echo_stdout": args.stdout,
        "insecure": args.insecure,
        "log_json": args.log_json,
    }

    kwargs = {k: v for k, v in data.items() if k not in _SECTIONS}
    kwargs.update(_drop_none(root_overrides))
    for name, cls in _SECTIONS.items():
        section = dict(data.get(name, {}))
        section.update(_drop_none(section_overrides.get(name, {})))
        kwargs[name] = cls(**section)
    return Mail2StorageConfig(**kwargs)


async def run_message(
    config: Mail2StorageConfig,
    raw_bytes: bytes,
    *,
    stdout: BinaryIO | None = None,
) -> ExitStatus:
    """Process a single message and return its exit status."""
    pipeline = build_pipeline(config, stdout=stdout)
    await pipeline.start()
    try:
        outcome = await pipeline.process(raw_bytes)
    finally:
        await pipeline.stop()
    return outcome.status


async def run_mailbox(
    config: Mail2StorageConfig,
    *,
    stdout: BinaryIO | None = None,
    client: ImapClient | None = None,
) -> ExitStatus:
    """Process every message matching the IMAP source search.

    Each message is its own pipeline run; the worst status wins.  SIGTERM
    or SIGINT stop the loop after the message in progress.
    """
    shutdown = asyncio.Event()
    source = ImapSource(
        client or ImapClient(config.imap, insecure=config.insecure),
        config.source,
        shutdown_event=shutdown,
    )
    pipeline = build_pipeline(config, stdout=stdout)
    statuses: list[ExitStatus] = []

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown.set)

    try:
        await pipeline.start()
        await source.open()
        try:
            async for fetched in source.messages():
                outcome = await pipeline.process(fetched.raw_bytes)
                statuses.append(outcome.status)
                await source.mark_processed(fetched, outcome)
        finally:
            await source.close()
    except (imaplib.IMAP4.error, OSError) as exc:
        logger.error("imap_source_failed", error=str(exc))
        statuses.append(ExitStatus.INPUT_ERROR)
    finally:
        await pipeline.stop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)

    if shutdown.is_set():
        logger.info("imap_source_stopped_by_signal", processed=len(statuses))
    return ExitStatus.worst(statuses)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(
        json=bool(args.log_json),
        level=level_for_verbosity(args.verbose, quiet=args.quiet),
    )

    try:
        config = build_config(args)
    except (ConfigError, ValidationError, OSError, tomllib.TOMLDecodeError) as exc:
        logger.error("configuration_invalid", error=str(exc))
        return ExitStatus.CONFIG_ERROR

    setup_logging(
        json=config.log_json,
        level=level_for_verbosity(args.verbose, quiet=args.quiet, base=config.log_level),
    )

    try:
        if args.imap:
            return asyncio.run(run_mailbox(config))
        try:
            raw_bytes = read_input(args.file)
        except OSError as exc:
            logger.error("input_unreadable", path=args.file, error=str(exc))
            return ExitStatus.INPUT_ERROR
        return asyncio.run(run_message(config, raw_bytes))
    except ConfigError as exc:
        logger.error("configuration_invalid", error=str(exc))
        return ExitStatus.CONFIG_ERROR
    except Exception:
        logger.exception("unexpected_error")
        return ExitStatus.INTERNAL_ERROR


if __name__ == "__main__":
    sys.exit(main())
