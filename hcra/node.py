import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from . import messages as m
from .config import AuthConfig
from .errors import ErrorReason, TransportError
from .session import Prover, Verifier

"""
node.py — TCP glue for the two roles.

- VerifierServer listens, and every accepted connection gets its own task and
  its own Verifier session. Sessions share nothing but the (immutable) config,
  so one broken client can't upset another.
- ProverClient opens one connection and runs one Prover session on it.

All the interesting logic lives in session.py; this file only wires sockets.
"""

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 12345

OutcomeCallback = Callable[[m.SessionOutcome], Optional[Awaitable[None]]]


class VerifierServer:
    """
    Accepts Prover connections and authenticates each one independently.

    Outcomes are kept in `self.outcomes` (handy for tests/demos) and, if given,
    passed to `on_outcome`. With `max_sessions` set the server stops by itself
    after that many sessions (one-shot mode).
    """
    def __init__(
        self,
        config: AuthConfig,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        max_sessions: Optional[int] = None,
        on_outcome: Optional[OutcomeCallback] = None,
    ) -> None:
        self.config = config
        self.host = host
        self.port = port
        self.max_sessions = max_sessions
        self.on_outcome = on_outcome
        self.outcomes: List[m.SessionOutcome] = []
        self._server: Optional[asyncio.AbstractServer] = None
        self._done = asyncio.Event()
        self._started_sessions = 0

    async def start(self) -> None:
        """Bind and start accepting. Port 0 picks a free port (see `self.port`)."""
        self._server = await asyncio.start_server(self.handle_conn, self.host, self.port)
        sockets = self._server.sockets or []
        if sockets:
            self.port = sockets[0].getsockname()[1]
        addrs = ", ".join(str(sock.getsockname()) for sock in sockets)
        logger.info("Verifier listening on %s", addrs)

    async def serve(self) -> None:
        """start() if needed, then run until close() or max_sessions is reached."""
        if self._server is None:
            await self.start()
        try:
            await self._done.wait()
        finally:
            await self.close()

    async def close(self) -> None:
        self._done.set()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()

    async def handle_conn(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        """Per-connection task: one Verifier session, then done."""
        if self.max_sessions is not None and self._started_sessions >= self.max_sessions:
            writer.close()
            return
        self._started_sessions += 1

        session = Verifier(reader, writer, self.config)
        outcome = await session.run()
        self.outcomes.append(outcome)

        try:
            if self.on_outcome is not None:
                result = self.on_outcome(outcome)
                if asyncio.iscoroutine(result):
                    await result
        except Exception:
            logger.exception("on_outcome callback failed for %s", outcome)
        finally:
            if self.max_sessions is not None and len(self.outcomes) >= self.max_sessions:
                self._done.set()


class ProverClient:
    """Connects to a Verifier and proves it knows the shared secret."""
    def __init__(self, config: AuthConfig, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT) -> None:
        self.config = config
        self.host = host
        self.port = port

    async def connect(self) -> Prover:
        """Open the TCP connection (bounded by io_timeout) and wrap it in a Prover."""
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port), self.config.io_timeout
            )
        except asyncio.TimeoutError as exc:
            raise TransportError(f"Connecting to {self.host}:{self.port} timed out", ErrorReason.TIMEOUT) from exc
        except OSError as exc:
            raise TransportError(f"Could not connect to {self.host}:{self.port}: {exc}") from exc
        return Prover(reader, writer, self.config)

    async def authenticate(self) -> m.SessionOutcome:
        """
        One full attempt. Connection failures come back as an ERROR outcome,
        the same way in-session failures do.
        """
        try:
            prover = await self.connect()
        except TransportError as exc:
            logger.warning("prover: %s", exc)
            return m.SessionOutcome(m.Role.PROVER, m.Verdict.ERROR, m.SessionState.ERROR, exc.reason)
        return await prover.run()
