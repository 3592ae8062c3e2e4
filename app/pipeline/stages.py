"""Pipeline stages connected by bounded asyncio queues.

A stage pulls from one end of a channel and pushes to the other. Channels are
bounded, so a slow consumer suspends the producer instead of letting chunks
pile up in memory.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, List

import aiofiles

from app.errors import ErrorKind, ServiceError

logger = logging.getLogger(__name__)

# End-of-stream marker placed on a channel after the last chunk
EOF = object()


def make_channel(max_chunks: int) -> asyncio.Queue:
    return asyncio.Queue(maxsize=max(1, max_chunks))


async def pump(source: AsyncIterator[bytes], channel: asyncio.Queue) -> int:
    """Move chunks from ``source`` into ``channel``. Returns bytes moved."""
    moved = 0
    try:
        async for chunk in source:
            if not chunk:
                continue
            # Blocks while the channel is full
            await channel.put(chunk)
            moved += len(chunk)
    finally:
        aclose = getattr(source, "aclose", None)
        if aclose is not None:
            await aclose()
    await channel.put(EOF)
    return moved


@asynccontextmanager
async def open_sink(path: str):
    """Open ``path`` for writing before any stage starts.

    Opening happens on a worker thread; doing it up front means a stage
    cancelled mid-open cannot leave a file behind after cleanup has run.
    """
    try:
        f = await aiofiles.open(path, "wb")
    except OSError as e:
        raise ServiceError(ErrorKind.PIPELINE_IO, f"Cannot open {path}: {e}") from e
    try:
        yield f
    finally:
        await f.close()


async def drain_to_file(channel: asyncio.Queue, sink) -> int:
    """Write chunks from ``channel`` to an open file until EOF. Returns bytes written."""
    written = 0
    try:
        while True:
            chunk = await channel.get()
            if chunk is EOF:
                break
            await sink.write(chunk)
            written += len(chunk)
    except OSError as e:
        raise ServiceError(ErrorKind.PIPELINE_IO, f"Write to {sink.name} failed: {e}") from e
    return written


async def drain_to_writer(channel: asyncio.Queue, writer: asyncio.StreamWriter) -> int:
    """Feed chunks from ``channel`` into a subprocess pipe, then close it."""
    written = 0
    try:
        while True:
            chunk = await channel.get()
            if chunk is EOF:
                break
            writer.write(chunk)
            await writer.drain()
            written += len(chunk)
    finally:
        if not writer.is_closing():
            writer.close()
    return written


async def run_stages(*stages: Awaitable[Any]) -> List[Any]:
    """Run stages concurrently; the first failure cancels the rest and is re-raised.

    Results are returned in stage order.
    """
    tasks = [asyncio.ensure_future(s) for s in stages]
    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    except asyncio.CancelledError:
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    for t in pending:
        t.cancel()
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)

    failed = [t for t in tasks if t in done and not t.cancelled() and t.exception() is not None]
    if failed:
        raise failed[0].exception()
    return [t.result() for t in tasks]
