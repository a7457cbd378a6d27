import asyncio
import logging
import struct
from typing import Optional

from .errors import ErrorReason, ProtocolError, TransportError

"""
framing.py — turns the TCP byte stream into whole handshake messages.

Wire layout:
- Header: 4 bytes, unsigned, network byte order, holding the body length N.
- Body: N opaque bytes (greeting, nonce, tag or verdict). There is no JSON
  and no type tag, since each side already knows which message comes next.

Limits:
- A declared N above `max_size` (64 KiB unless configured) is refused before
  any body byte is read, so the header alone can't force a large buffer.
- Reads and drains take an optional timeout. A peer that goes quiet surfaces
  as TransportError(TIMEOUT) rather than a task parked forever.

readexactly() does the looping: a single recv may deliver part of a frame
or several frames back to back, and callers only ever see complete bodies.
"""

logger = logging.getLogger(__name__)

DEFAULT_MAX_MESSAGE_SIZE = 64 * 1024
LENGTH_STRUCT = struct.Struct("!I")  # network byte order, unsigned 32-bit
MAX_LENGTH_FIELD = 0xFFFFFFFF


async def _with_timeout(awaitable, timeout: Optional[float], what: str):
    """Await `awaitable`, turning a timeout into TransportError(TIMEOUT)."""
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError as exc:
        raise TransportError(f"Timed out during {what} after {timeout}s", ErrorReason.TIMEOUT) from exc


async def read_exactly(reader: asyncio.StreamReader, n: int, timeout: Optional[float] = None) -> bytes:
    """
    Read exactly `n` bytes, however the stream chooses to fragment them.

    Raises TransportError if the peer closes before `n` bytes show up.
    """
    try:
        return await _with_timeout(reader.readexactly(n), timeout, "read")
    except asyncio.IncompleteReadError as exc:
        raise TransportError(
            f"Connection closed after {len(exc.partial)} of {n} bytes",
            ErrorReason.CONNECTION_CLOSED,
        ) from exc
    except (ConnectionError, OSError) as exc:
        raise TransportError(f"Read failed: {exc}") from exc


async def read_frame(
    reader: asyncio.StreamReader,
    max_size: int = DEFAULT_MAX_MESSAGE_SIZE,
    timeout: Optional[float] = None,
) -> bytes:
    """
    Read one framed message and return its payload.

    Raises:
        TransportError: short read / closed connection / timeout.
        ProtocolError:  declared length is larger than `max_size`.
    """
    # 1) Read the 4-byte length prefix.
    len_bytes = await read_exactly(reader, LENGTH_STRUCT.size, timeout)
    (length,) = LENGTH_STRUCT.unpack(len_bytes)

    # Sanity check before reading the body.
    if length > max_size:
        raise ProtocolError(
            f"Frame too large: {length} > {max_size}", ErrorReason.MESSAGE_TOO_LARGE
        )

    # 2) Read the payload exactly as long as the prefix said.
    payload = await read_exactly(reader, length, timeout) if length else b""
    logger.debug("read frame of %d bytes", length)
    return payload


async def write_frame(
    writer: asyncio.StreamWriter,
    payload: bytes,
    max_size: int = DEFAULT_MAX_MESSAGE_SIZE,
    timeout: Optional[float] = None,
) -> None:
    """
    Write `payload` as one framed message and wait until it's flushed.

    Raises:
        ProtocolError:  payload is larger than `max_size`.
        TransportError: the connection is closing/closed, the write failed, or
                        draining the send buffer timed out.
    """
    payload = bytes(payload)
    if len(payload) > max_size:
        raise ProtocolError(
            f"Frame exceeds maximum size: {len(payload)} > {max_size}", ErrorReason.MESSAGE_TOO_LARGE
        )

    if writer.is_closing():
        raise TransportError("Cannot write: connection is closing", ErrorReason.CONNECTION_CLOSED)

    try:
        # Prefix + payload in one buffer, then let drain() push it all out.
        writer.write(LENGTH_STRUCT.pack(len(payload)) + payload)
        await _with_timeout(writer.drain(), timeout, "write")
    except (ConnectionResetError, BrokenPipeError) as exc:
        raise TransportError(f"Peer closed the connection: {exc}", ErrorReason.CONNECTION_CLOSED) from exc
    except (ConnectionError, OSError) as exc:
        raise TransportError(f"Write failed: {exc}") from exc
    logger.debug("wrote frame of %d bytes", len(payload))


# The names used in the protocol description.
send = write_frame
receive = read_frame
