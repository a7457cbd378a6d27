"""Helpers shared by the hcra tests (fake writer, raw loopback peers).

Async code is driven with asyncio.run() from plain test functions, so the
suite only needs pytest itself.
"""

import asyncio
from typing import Awaitable, Callable, List, Tuple

from hcra import framing

SECRET = b"pass123"
LOCALHOST = "127.0.0.1"


class RecordingWriter:
    """Stand-in for asyncio.StreamWriter that keeps everything written."""

    def __init__(self) -> None:
        self.chunks: List[bytes] = []
        self.close_calls = 0
        self._closing = False

    def write(self, data: bytes) -> None:
        self.chunks.append(bytes(data))

    async def drain(self) -> None:
        await asyncio.sleep(0)

    def is_closing(self) -> bool:
        return self._closing

    def close(self) -> None:
        self.close_calls += 1
        self._closing = True

    async def wait_closed(self) -> None:
        return None

    def get_extra_info(self, name, default=None):
        return ("fake", 0) if name == "peername" else default

    @property
    def data(self) -> bytes:
        return b"".join(self.chunks)


def frame(payload: bytes) -> bytes:
    """Wire bytes for one message."""
    return framing.LENGTH_STRUCT.pack(len(payload)) + payload


async def start_raw_server(
    handler: Callable[[asyncio.StreamReader, asyncio.StreamWriter], Awaitable[None]],
) -> Tuple[asyncio.AbstractServer, int]:
    """Loopback server on a free port running a hand-written peer."""
    server = await asyncio.start_server(handler, LOCALHOST, 0)
    return server, server.sockets[0].getsockname()[1]


