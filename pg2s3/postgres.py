# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
PostgreSQL dump and restore.

Dumps are produced by pg_dump in the custom format (compressed and
restorable selectively) and consumed by pg_restore. Both tools run as
asyncio subprocesses with their data streamed through pipes; stderr is
captured and attached to the error when a tool fails.
"""

import asyncio
from typing import Any, Awaitable, Callable, List, Protocol, Sequence, Tuple, TypeVar
from urllib.parse import urlparse

import structlog

from pg2s3.exceptions import ExternalCommandFailed
from pg2s3.streams import DEFAULT_CHUNK_SIZE, AsyncReader, AsyncWriter

logger = structlog.get_logger()

T = TypeVar("T")


class DumpDatabase(Protocol):
    """Producer and consumer of database dumps."""

    async def dump(self, sink: AsyncWriter) -> int:
        """Write a dump of the database to sink, return its size."""
        ...

    async def restore(self, source: AsyncReader) -> None:
        """Restore the database from the dump in source."""
        ...


def build_dump_command(pg_url: str) -> List[str]:
    return [
        "pg_dump",
        "-Fc",  # custom output format (compressed and flexible)
        pg_url,
    ]


def build_restore_command(pg_url: str, schemas: Sequence[str] = ()) -> List[str]:
    args = [
        "pg_restore",
        "-c",  # clean database objects before recreating them
        "-d",  # database to be restored
        pg_url,
    ]
    for schema in schemas:
        args.extend(["-n", schema])
    return args


def _mask_password(url: str) -> str:
    """Mask password in connection URL for logging."""
    parsed = urlparse(url)
    if parsed.password:
        return url.replace(f":{parsed.password}@", ":****@", 1)
    return url


def _masked_command(args: Sequence[str], pg_url: str) -> str:
    return " ".join(_mask_password(arg) if arg == pg_url else arg for arg in args)


class PostgresDatabase:
    """
    pg_dump / pg_restore wrapper for one database.

    Args:
        pg_url: PostgreSQL connection URL
        schemas: Schemas to restore (all when empty)
    """

    def __init__(self, pg_url: str, schemas: Sequence[str] = ()):
        self.pg_url = pg_url
        self.schemas = list(schemas)

    async def ping(self) -> None:
        """
        Verify that the database accepts connections.

        Raises:
            ExternalCommandFailed: If the connection fails
        """
        import asyncpg

        try:
            conn = await asyncpg.connect(self.pg_url)
            try:
                await conn.fetchval("SELECT 1")
            finally:
                await conn.close()
        except Exception as e:
            raise ExternalCommandFailed(
                f"Failed to connect to PostgreSQL: {e}",
                details={"pg_url": _mask_password(self.pg_url)},
            ) from e

    async def dump(self, sink: AsyncWriter) -> int:
        args = build_dump_command(self.pg_url)
        process = await self._spawn(args, stdin=None)

        async def pump_stdout() -> int:
            total = 0
            while True:
                chunk = await process.stdout.read(DEFAULT_CHUNK_SIZE)
                if not chunk:
                    return total
                await sink.write(chunk)
                total += len(chunk)

        size, stderr = await _communicate(process, pump_stdout)
        returncode = await process.wait()

        if returncode != 0:
            raise _command_failed(args, self.pg_url, returncode, stderr)

        logger.info("database_dumped", size=size)
        return size

    async def restore(self, source: AsyncReader) -> None:
        args = build_restore_command(self.pg_url, self.schemas)
        process = await self._spawn(args, stdin=asyncio.subprocess.PIPE)

        async def pump_stdin() -> None:
            # stdin is closed only once the whole dump is written, a failed
            # read must never look like end of input to pg_restore
            try:
                while True:
                    chunk = await source.read(DEFAULT_CHUNK_SIZE)
                    if not chunk:
                        break
                    process.stdin.write(chunk)
                    await process.stdin.drain()
            except (BrokenPipeError, ConnectionResetError):
                # pg_restore exited early, its exit status carries the reason
                logger.debug("restore_stdin_closed_early")
            process.stdin.close()

        _, stderr = await _communicate(process, pump_stdin)
        returncode = await process.wait()

        if returncode != 0:
            raise _command_failed(args, self.pg_url, returncode, stderr)

        logger.info("database_restored", schemas=self.schemas)

    async def _spawn(self, args: List[str], stdin: Any) -> asyncio.subprocess.Process:
        try:
            return await asyncio.create_subprocess_exec(
                *args,
                stdin=stdin,
                stdout=asyncio.subprocess.PIPE if stdin is None else asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ExternalCommandFailed(
                f"Failed to run {args[0]}: {e}",
                details={"command": _masked_command(args, self.pg_url)},
            ) from e


async def _communicate(
    process: asyncio.subprocess.Process,
    pump: Callable[[], Awaitable[T]],
) -> Tuple[T, bytes]:
    """
    Run pump while draining stderr, so a chatty stderr cannot block the child.

    If pump fails (or the caller is cancelled) the child is killed and
    reaped before the error propagates.
    """
    stderr_reader = asyncio.ensure_future(process.stderr.read())
    try:
        result = await pump()
        stderr = await stderr_reader
    except BaseException:
        stderr_reader.cancel()
        await _kill(process)
        await asyncio.gather(stderr_reader, return_exceptions=True)
        raise
    return result, stderr


async def _kill(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
    await process.wait()
    if process.stdin is not None:
        process.stdin.close()
    logger.warning("external_command_killed", pid=process.pid, returncode=process.returncode)


def _command_failed(
    args: Sequence[str],
    pg_url: str,
    returncode: int,
    stderr: bytes,
) -> ExternalCommandFailed:
    diagnostics = stderr.decode("utf-8", errors="replace").strip()
    logger.error(
        "external_command_failed",
        command=args[0],
        returncode=returncode,
        stderr=diagnostics,
    )
    return ExternalCommandFailed(
        diagnostics or f"{args[0]} exited with status {returncode}",
        details={
            "command": _masked_command(args, pg_url),
            "returncode": returncode,
        },
    )
