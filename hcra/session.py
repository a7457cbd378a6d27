import asyncio
import logging
from typing import Optional

from . import challenge, crypto, framing
from . import messages as m
from .config import AuthConfig
from .errors import ErrorReason, HcraError, MacLengthError, ProtocolError

"""
session.py — the Verifier and Prover state machines.

One Session = one connection. The session owns its reader/writer for its
whole life and closes them exactly once, whatever happens.

Message flow (every message is a length-prefixed frame, see framing.py):

    Verifier                          Prover
    --------                          ------
    GREETING           ------->
                       <-------       GREETING
    challenge (nonce)  ------->
                       <-------       HMAC(secret, challenge)
    verdict            ------->

States move strictly forward:
    CONNECTED -> GREETING_EXCHANGED -> CHALLENGE_ISSUED -> RESPONSE_RECEIVED
              -> AUTHENTICATED | REJECTED
and any transport/framing/entropy failure lands in ERROR.

Notes:
- A wrong tag is not an error. The Verifier still sends a REJECTED verdict so
  both ends see a definite result.
- Nothing retries. A caller who wants another go opens a new session and so
  gets a new challenge.
- The Verifier's opening GREETING is extra compared with the plain C++ demo,
  where only the client says hello and the server answers straight away with
  the challenge. Peers built on that two-message opening are not compatible.
"""

logger = logging.getLogger(__name__)


class Session:
    """Shared plumbing: framed send/receive, state checks, single close."""
    role: m.Role

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        config: AuthConfig,
    ) -> None:
        self.reader = reader
        self.writer = writer
        self.config = config
        self.state = m.SessionState.CONNECTED
        self.challenge: Optional[bytes] = None
        self.outcome: Optional[m.SessionOutcome] = None
        self.peer = writer.get_extra_info("peername")
        self._started = False
        self._closed = False

    # -----------------------------
    # Small helpers
    # -----------------------------

    def _advance(self, expected: m.SessionState, new: m.SessionState) -> None:
        if self.state is not expected:
            raise ProtocolError(
                f"{self.role.value}: cannot move to {new.value} from {self.state.value}",
                ErrorReason.OUT_OF_SEQUENCE,
            )
        logger.debug("[%s %s] %s -> %s", self.role.value, self.peer, self.state.value, new.value)
        self.state = new

    async def _send(self, payload: bytes) -> None:
        await framing.write_frame(
            self.writer, payload, self.config.max_message_size, self.config.io_timeout
        )

    async def _receive(self) -> bytes:
        return await framing.read_frame(
            self.reader, self.config.max_message_size, self.config.io_timeout
        )

    # -----------------------------
    # Lifecycle
    # -----------------------------

    async def _exchange(self) -> m.Verdict:
        raise NotImplementedError

    async def run(self) -> m.SessionOutcome:
        """
        Drive the whole handshake and return the outcome.

        Transport, protocol and entropy failures don't escape from here; they
        come back as an ERROR outcome carrying the reason code. Sessions are
        single use, so a second run() raises ProtocolError.
        """
        if self._started:
            raise ProtocolError("Session already ran; open a new connection to retry.")
        self._started = True
        logger.info("[%s %s] session started", self.role.value, self.peer)

        try:
            verdict = await self._exchange()
        except HcraError as exc:
            self.state = m.SessionState.ERROR
            logger.warning("[%s %s] session failed (%s): %s", self.role.value, self.peer, exc.reason, exc)
            outcome = m.SessionOutcome(self.role, m.Verdict.ERROR, self.state, exc.reason)
        else:
            outcome = m.SessionOutcome(self.role, verdict, self.state)
            logger.info("[%s %s] session finished: %s", self.role.value, self.peer, verdict.value)
        finally:
            # The challenge never outlives its session.
            self.challenge = None
            await self.close()

        self.outcome = outcome
        return outcome

    async def close(self) -> None:
        """Close the connection; safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self.writer.close()
        try:
            await asyncio.wait_for(self.writer.wait_closed(), self.config.io_timeout)
        except (ConnectionError, OSError, asyncio.TimeoutError) as exc:
            # Already gone from the other side; nothing left to release.
            logger.debug("[%s %s] close: %s", self.role.value, self.peer, exc)

    @property
    def closed(self) -> bool:
        return self._closed


class Verifier(Session):
    """Server side: issues the challenge and decides."""
    role = m.Role.VERIFIER

    async def _exchange(self) -> m.Verdict:
        S = m.SessionState

        # 1) Greetings. The peer's content isn't checked beyond framing.
        await self._send(m.GREETING)
        await self._receive()
        self._advance(S.CONNECTED, S.GREETING_EXCHANGED)

        # 2) Fresh challenge, remembered for exactly one verification.
        self.challenge = challenge.generate(self.config.challenge_len)
        await self._send(self.challenge)
        self._advance(S.GREETING_EXCHANGED, S.CHALLENGE_ISSUED)

        # 3) Candidate tag.
        candidate = await self._receive()
        self._advance(S.CHALLENGE_ISSUED, S.RESPONSE_RECEIVED)

        # 4) Decide, tell the peer, finish.
        verdict = m.Verdict.AUTHENTICATED if self.check_response(candidate) else m.Verdict.REJECTED
        await self._send(m.encode_verdict(verdict))
        self._advance(
            S.RESPONSE_RECEIVED,
            S.AUTHENTICATED if verdict is m.Verdict.AUTHENTICATED else S.REJECTED,
        )
        return verdict

    def check_response(self, candidate_tag: bytes) -> bool:
        """
        Verify `candidate_tag` against the stored challenge, consuming it.

        A tag of the wrong length counts as a mismatch. Calling this again
        (or before a challenge was issued) raises ProtocolError.
        """
        if self.challenge is None:
            raise ProtocolError("No outstanding challenge to verify against.", ErrorReason.OUT_OF_SEQUENCE)
        issued, self.challenge = self.challenge, None
        try:
            return crypto.verify_mac(self.config.secret, issued, candidate_tag, self.config.algorithm)
        except MacLengthError as exc:
            logger.info("[%s %s] malformed response: %s", self.role.value, self.peer, exc)
            return False


class Prover(Session):
    """Client side: answers the challenge and trusts the verdict it gets back."""
    role = m.Role.PROVER

    async def _exchange(self) -> m.Verdict:
        S = m.SessionState

        # 1) Greetings, then the challenge.
        await self._send(m.GREETING)
        await self._receive()
        self._advance(S.CONNECTED, S.GREETING_EXCHANGED)
        self.challenge = await self._receive()
        if not challenge.MIN_CHALLENGE_LEN <= len(self.challenge) <= challenge.MAX_CHALLENGE_LEN:
            raise ProtocolError(
                f"Challenge of {len(self.challenge)} bytes is out of bounds", ErrorReason.BAD_CHALLENGE
            )

        # 2) Answer it.
        tag = crypto.compute_mac(self.config.secret, self.challenge, self.config.algorithm)
        await self._send(tag)
        self._advance(S.GREETING_EXCHANGED, S.CHALLENGE_ISSUED)

        # 3) Whatever the Verifier says goes; we can't check it locally.
        verdict = m.decode_verdict(await self._receive())
        self._advance(
            S.CHALLENGE_ISSUED,
            S.AUTHENTICATED if verdict is m.Verdict.AUTHENTICATED else S.REJECTED,
        )
        return verdict
