# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Async byte streams shared by the backup pipeline stages.

Every stage (pg_dump, age, S3) reads from an AsyncReader and writes to an
AsyncWriter, so any stage can be swapped for an in-memory buffer. Stages
are chained with an AsyncPipe, and blocking code running in a worker
thread (the age library) sees async streams as ordinary binary files.
"""

import asyncio
import collections
import io
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Deque, Protocol, Tuple, TypeVar

import aiofiles.tempfile
import structlog

logger = structlog.get_logger()

# Dumps are held in memory up to 32MB, larger dumps spill to a temp file
SPOOL_MAX_SIZE = 32 * 1024 * 1024

DEFAULT_CHUNK_SIZE = 1024 * 1024

# Bytes a pipe buffers before its writer has to wait for the reader
PIPE_BUFFER_SIZE = 4 * DEFAULT_CHUNK_SIZE

P = TypeVar("P")
C = TypeVar("C")


class AsyncReader(Protocol):
    async def read(self, size: int = -1) -> bytes:
        ...


class AsyncWriter(Protocol):
    async def write(self, data: bytes) -> int:
        ...


class AsyncBuffer(AsyncReader, AsyncWriter, Protocol):
    async def seek(self, offset: int, whence: int = 0) -> int:
        ...


class MemoryStream:
    """In-memory AsyncBuffer backed by io.BytesIO."""

    def __init__(self, initial: bytes = b""):
        self._buffer = io.BytesIO(initial)

    async def read(self, size: int = -1) -> bytes:
        return self._buffer.read(size)

    async def write(self, data: bytes) -> int:
        return self._buffer.write(data)

    async def seek(self, offset: int, whence: int = 0) -> int:
        return self._buffer.seek(offset, whence)

    def getvalue(self) -> bytes:
        return self._buffer.getvalue()


class AsyncPipe:
    """
    Bounded in-memory pipe between one producer and one consumer.

    write() waits while more than max_buffered bytes are unread. close()
    marks end of input; abort() fails every pending and later read and
    write, which is how one side learns that the other has given up.
    """

    def __init__(self, max_buffered: int = PIPE_BUFFER_SIZE):
        self.max_buffered = max_buffered
        self._chunks: Deque[bytes] = collections.deque()
        self._buffered = 0
        self._eof = False
        self._error: BaseException | None = None
        self._changed = asyncio.Condition()

    @property
    def aborted(self) -> bool:
        return self._error is not None

    async def write(self, data: bytes) -> int:
        async with self._changed:
            await self._changed.wait_for(
                lambda: self._buffered < self.max_buffered or self._error is not None
            )
            if self._error is not None:
                raise BrokenPipeError("pipe reader has stopped") from self._error
            if self._eof:
                raise ValueError("write to a closed pipe")
            if data:
                self._chunks.append(bytes(data))
                self._buffered += len(data)
                self._changed.notify_all()
        return len(data)

    async def read(self, size: int = -1) -> bytes:
        async with self._changed:
            if size < 0:
                await self._changed.wait_for(lambda: self._eof or self._error is not None)
            else:
                await self._changed.wait_for(
                    lambda: self._chunks or self._eof or self._error is not None
                )
            if self._error is not None:
                raise BrokenPipeError("pipe writer has stopped") from self._error

            data = self._take(size)
            self._changed.notify_all()
            return data

    def _take(self, size: int) -> bytes:
        if size < 0:
            data = b"".join(self._chunks)
            self._chunks.clear()
        else:
            parts = []
            wanted = size
            while self._chunks and wanted > 0:
                chunk = self._chunks.popleft()
                if len(chunk) > wanted:
                    self._chunks.appendleft(chunk[wanted:])
                    chunk = chunk[:wanted]
                parts.append(chunk)
                wanted -= len(chunk)
            data = b"".join(parts)
        self._buffered -= len(data)
        return data

    async def close(self) -> None:
        async with self._changed:
            self._eof = True
            self._changed.notify_all()

    async def abort(self, error: BaseException) -> None:
        async with self._changed:
            if self._error is None:
                self._error = error
            self._changed.notify_all()


async def pipe_through(
    produce: Callable[[AsyncWriter], Awaitable[P]],
    consume: Callable[[AsyncReader], Awaitable[C]],
    max_buffered: int = PIPE_BUFFER_SIZE,
) -> Tuple[P, C]:
    """
    Run produce(writer) and consume(reader) concurrently over an AsyncPipe.

    The first side to fail aborts the pipe, which unblocks the other one.
    The first failure is the one raised; the follow-up failure it causes
    on the other side is dropped.

    Returns:
        Tuple of (producer result, consumer result)
    """
    pipe = AsyncPipe(max_buffered)
    failures: list = []

    async def fail(error: BaseException) -> None:
        if not pipe.aborted:
            failures.append(error)
            await pipe.abort(error)

    async def producer() -> P:
        try:
            result = await produce(pipe)
        except BaseException as e:
            await fail(e)
            raise
        await pipe.close()
        return result

    async def consumer() -> C:
        try:
            return await consume(pipe)
        except BaseException as e:
            await fail(e)
            raise

    produced, consumed = await asyncio.gather(
        producer(), consumer(), return_exceptions=True
    )
    if failures:
        raise failures[0]
    return produced, consumed


class BlockingReader(io.RawIOBase):
    """
    Binary file view of an AsyncReader, for use from a worker thread.

    Every read is scheduled on the event loop and waited for, so the loop
    must stay free while the worker runs (run_in_executor).
    """

    def __init__(self, source: AsyncReader, loop: asyncio.AbstractEventLoop):
        super().__init__()
        self.source = source
        self.loop = loop

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        data = asyncio.run_coroutine_threadsafe(
            self.source.read(len(buffer)), self.loop
        ).result()
        buffer[: len(data)] = data
        return len(data)


class BlockingWriter(io.RawIOBase):
    """Binary file view of an AsyncWriter, for use from a worker thread."""

    def __init__(self, sink: AsyncWriter, loop: asyncio.AbstractEventLoop):
        super().__init__()
        self.sink = sink
        self.loop = loop
        self.written = 0

    def writable(self) -> bool:
        return True

    def write(self, data) -> int:
        chunk = bytes(data)
        asyncio.run_coroutine_threadsafe(self.sink.write(chunk), self.loop).result()
        self.written += len(chunk)
        return len(chunk)


@asynccontextmanager
async def spooled_artifact(max_size: int = SPOOL_MAX_SIZE) -> AsyncIterator[AsyncBuffer]:
    """
    Temporary local artifact for a dump or a downloaded backup.

    The artifact lives in memory until it grows past max_size, then on
    disk. It is removed when the context exits, whether the operation
    succeeded or not.
    """
    async with aiofiles.tempfile.SpooledTemporaryFile(
        max_size=max_size, mode="w+b"
    ) as artifact:
        logger.debug("temp_artifact_created", max_size=max_size)
        try:
            yield artifact
        finally:
            logger.debug("temp_artifact_removed")


async def copy_stream(
    source: AsyncReader,
    sink: AsyncWriter,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> int:
    """
    Copy source into sink chunk by chunk.

    Returns:
        Number of bytes copied
    """
    total = 0
    while True:
        chunk = await source.read(chunk_size)
        if not chunk:
            return total
        await sink.write(chunk)
        total += len(chunk)


async def read_exactly(source: AsyncReader, size: int) -> bytes:
    """Read size bytes, or fewer only at end of input."""
    parts = []
    remaining = size
    while remaining > 0:
        chunk = await source.read(remaining)
        if not chunk:
            break
        parts.append(chunk)
        remaining -= len(chunk)
    return b"".join(parts)


async def read_all(source: AsyncReader, chunk_size: int = DEFAULT_CHUNK_SIZE) -> bytes:
    buffer = MemoryStream()
    await copy_stream(source, buffer, chunk_size)
    return buffer.getvalue()
