# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
pg2s3 command line.

    pg2s3 [--conf PATH | --env] [backup|restore|prune|run|init|keygen]

backup   create a new backup
restore  restore the most recent backup
prune    delete the oldest backups above the retention count
run      run backup + prune on the configured schedule (default)
init     create the backup bucket if it does not exist
keygen   print a new age key pair for backup encryption
"""

import argparse
import asyncio
import sys
from typing import Callable, List, TextIO

import structlog

from pg2s3 import __version__
from pg2s3.catalog import PrunePolicy
from pg2s3.config import Pg2S3Config
from pg2s3.core import BackupOrchestrator, create_orchestrator
from pg2s3.encryption import generate_identity
from pg2s3.env import create_config_from_env
from pg2s3.exceptions import Pg2S3Error
from pg2s3.loader import DEFAULT_CONFIG_PATH, read_config_file
from pg2s3.log import configure_logging
from pg2s3.scheduler import BackupScheduler

logger = structlog.get_logger()

ACTIONS = ("backup", "restore", "prune", "run", "init", "keygen")

OrchestratorFactory = Callable[[Pg2S3Config], BackupOrchestrator]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pg2s3",
        description="PostgreSQL backups to S3-compatible storage",
    )
    parser.add_argument(
        "action",
        nargs="?",
        default="run",
        choices=ACTIONS,
        help="action to perform (default: run)",
    )
    parser.add_argument(
        "-c",
        "--conf",
        default=DEFAULT_CONFIG_PATH,
        help=f"pg2s3 config file (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "--env",
        action="store_true",
        help="read configuration from PG2S3_* environment variables",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="log debug events")
    parser.add_argument("--json-logs", action="store_true", help="log JSON lines")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def load_config(args: argparse.Namespace) -> Pg2S3Config:
    if args.env:
        return create_config_from_env()
    return read_config_file(args.conf)


async def run(
    args: argparse.Namespace,
    factory: OrchestratorFactory = create_orchestrator,
    output: TextIO | None = None,
) -> int:
    """
    Execute one CLI action.

    Returns:
        Process exit code
    """
    out = output or sys.stdout

    if args.action == "keygen":
        private_key, public_key = generate_identity()
        print(f"# public key: {public_key}", file=out)
        print(private_key, file=out)
        return 0

    config = load_config(args)
    orchestrator = factory(config)

    if args.action == "init":
        created = await orchestrator.store.ensure_bucket()
        logger.info("bucket_ready", bucket=config.s3.bucket_name, created=created)
        return 0

    await orchestrator.verify_connections()

    if args.action == "backup":
        result = await orchestrator.backup()
        print(f"created {result.name}", file=out)
        return 0

    if args.action == "restore":
        result = await orchestrator.restore()
        if result.restored:
            print(f"restored {result.name}", file=out)
        return 0

    if args.action == "prune":
        result = await orchestrator.prune(PrunePolicy.MANUAL)
        for name in result.deleted_keys:
            print(f"deleted {name}", file=out)
        return 0

    if not config.backup.schedule:
        logger.info("no_backup_schedule", message="no backup schedule specified, exiting")
        return 0

    await BackupScheduler(orchestrator, config.backup.schedule).run_until_stopped()
    return 0


def main(argv: List[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(verbose=args.verbose, json=args.json_logs)

    try:
        return asyncio.run(run(args))
    except Pg2S3Error as e:
        print(e, file=sys.stderr)
        return 1
    except OSError as e:
        # Local I/O failures such as a full disk under the temp artifact
        print(f"error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
