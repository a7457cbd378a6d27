"""Tests for the Verifier/Prover state machines.

Each test pits one real session against a hand-written peer on a loopback
socket, so the wire traffic is exactly what the peer sees.
"""

import asyncio
import secrets

import pytest

from hcra import crypto, framing
from hcra import messages as m
from hcra.config import AuthConfig
from hcra.errors import ErrorReason, ProtocolError
from hcra.messages import SessionState, Verdict
from hcra.session import Prover, Verifier
from tests.helpers import LOCALHOST, SECRET, RecordingWriter, start_raw_server

S = SessionState


async def _verifier_against(peer, config):
    """Run a Verifier on an accepted connection while `peer` drives the client side."""
    sessions = []
    done = asyncio.Event()

    async def handler(reader, writer):
        session = Verifier(reader, writer, config)
        sessions.append(session)
        await session.run()
        done.set()

    server, port = await start_raw_server(handler)
    reader, writer = await asyncio.open_connection(LOCALHOST, port)
    try:
        peer_result = await peer(reader, writer)
        await asyncio.wait_for(done.wait(), 5)
    finally:
        writer.close()
        server.close()
        await server.wait_closed()
    return sessions[0], peer_result


async def _prover_against(peer, config):
    """Run a Prover against a hand-written Verifier `peer`."""
    async def handler(reader, writer):
        try:
            await peer(reader, writer)
        finally:
            writer.close()

    server, port = await start_raw_server(handler)
    reader, writer = await asyncio.open_connection(LOCALHOST, port)
    prover = Prover(reader, writer, config)
    try:
        outcome = await asyncio.wait_for(prover.run(), 5)
    finally:
        server.close()
        await server.wait_closed()
    return prover, outcome


# =============================================================================
# Verifier
# =============================================================================


class TestVerifier:
    def test_good_tag_is_authenticated(self, config):
        async def peer(reader, writer):
            assert await framing.read_frame(reader) == m.GREETING
            await framing.write_frame(writer, m.GREETING)
            nonce = await framing.read_frame(reader)
            await framing.write_frame(writer, crypto.compute_mac(SECRET, nonce))
            return nonce, await framing.read_frame(reader)

        session, (nonce, verdict) = asyncio.run(_verifier_against(peer, config))
        assert len(nonce) == 16
        assert verdict == m.VERDICT_AUTHENTICATED
        assert session.outcome.verdict is Verdict.AUTHENTICATED
        assert session.state is S.AUTHENTICATED
        assert session.challenge is None
        assert session.closed

    def test_bad_tag_gets_rejected_verdict(self, config):
        async def peer(reader, writer):
            await framing.read_frame(reader)
            await framing.write_frame(writer, b"hi")
            nonce = await framing.read_frame(reader)
            await framing.write_frame(writer, crypto.compute_mac(b"wrong", nonce))
            return await framing.read_frame(reader)

        session, verdict = asyncio.run(_verifier_against(peer, config))
        assert verdict == m.VERDICT_REJECTED
        assert session.outcome == m.SessionOutcome(m.Role.VERIFIER, Verdict.REJECTED, S.REJECTED)

    @pytest.mark.parametrize("tag", [b"", b"short", b"\x00" * 64])
    def test_malformed_tag_counts_as_rejection(self, config, tag):
        async def peer(reader, writer):
            await framing.read_frame(reader)
            await framing.write_frame(writer, m.GREETING)
            await framing.read_frame(reader)
            await framing.write_frame(writer, tag)
            return await framing.read_frame(reader)

        session, verdict = asyncio.run(_verifier_against(peer, config))
        assert verdict == m.VERDICT_REJECTED
        assert session.state is S.REJECTED

    def test_honours_challenge_length_and_algorithm(self):
        cfg = AuthConfig(secret=SECRET, challenge_len=48, algorithm="sha256", io_timeout=5)

        async def peer(reader, writer):
            await framing.read_frame(reader)
            await framing.write_frame(writer, m.GREETING)
            nonce = await framing.read_frame(reader)
            await framing.write_frame(writer, crypto.compute_mac(SECRET, nonce, "sha256"))
            return nonce, await framing.read_frame(reader)

        session, (nonce, verdict) = asyncio.run(_verifier_against(peer, cfg))
        assert len(nonce) == 48
        assert verdict == m.VERDICT_AUTHENTICATED

    def test_peer_closes_after_challenge(self, config):
        async def peer(reader, writer):
            await framing.read_frame(reader)
            await framing.write_frame(writer, m.GREETING)
            await framing.read_frame(reader)
            writer.close()
            return await reader.read()  # server side must hang up, not wait

        session, leftover = asyncio.run(_verifier_against(peer, config))
        assert leftover == b""
        assert session.outcome.verdict is Verdict.ERROR
        assert session.outcome.reason == ErrorReason.CONNECTION_CLOSED
        assert session.state is S.ERROR
        assert session.challenge is None
        assert session.closed

    def test_peer_closes_before_greeting(self, config):
        async def peer(reader, writer):
            writer.close()

        session, _ = asyncio.run(_verifier_against(peer, config))
        assert session.outcome.verdict is Verdict.ERROR
        assert session.closed

    def test_oversized_frame_is_error(self):
        cfg = AuthConfig(secret=SECRET, max_message_size=1024, io_timeout=5)

        async def peer(reader, writer):
            await framing.read_frame(reader)
            writer.write(framing.LENGTH_STRUCT.pack(10 * 1024 * 1024))
            await writer.drain()
            return await reader.read()

        session, leftover = asyncio.run(_verifier_against(peer, cfg))
        assert leftover == b""
        assert session.outcome.reason == ErrorReason.MESSAGE_TOO_LARGE
        assert session.state is S.ERROR

    def test_silent_peer_times_out(self):
        cfg = AuthConfig(secret=SECRET, io_timeout=0.1)

        async def peer(reader, writer):
            await framing.read_frame(reader)
            return await reader.read()

        session, _ = asyncio.run(_verifier_against(peer, cfg))
        assert session.outcome.reason == ErrorReason.TIMEOUT

    def test_entropy_failure_ends_session(self, config, monkeypatch):
        def broken(_n):
            raise OSError("getrandom failed")

        monkeypatch.setattr(secrets, "token_bytes", broken)

        async def peer(reader, writer):
            await framing.read_frame(reader)
            await framing.write_frame(writer, m.GREETING)
            return await reader.read()

        session, leftover = asyncio.run(_verifier_against(peer, config))
        assert leftover == b""
        assert session.outcome.reason == ErrorReason.ENTROPY_UNAVAILABLE


class TestVerifierBookkeeping:
    """Single-use rules checked without a network."""

    def _verifier(self, config):
        return Verifier(asyncio.StreamReader(), RecordingWriter(), config)

    def test_challenge_is_verified_only_once(self, config):
        async def go():
            v = self._verifier(config)
            v.challenge = b"c" * 16
            tag = crypto.compute_mac(SECRET, v.challenge)
            assert v.check_response(tag) is True
            with pytest.raises(ProtocolError) as info:
                v.check_response(tag)
            assert info.value.reason == ErrorReason.OUT_OF_SEQUENCE

        asyncio.run(go())

    def test_no_challenge_no_verification(self, config):
        async def go():
            with pytest.raises(ProtocolError):
                self._verifier(config).check_response(b"\x00" * 20)

        asyncio.run(go())

    def test_session_runs_once_and_closes_once(self, config):
        async def go():
            v = self._verifier(config)
            v.reader.feed_eof()
            outcome = await v.run()
            assert outcome.verdict is Verdict.ERROR
            assert v.writer.close_calls == 1
            await v.close()
            assert v.writer.close_calls == 1
            with pytest.raises(ProtocolError):
                await v.run()

        asyncio.run(go())

    def test_out_of_order_transition(self, config):
        async def go():
            v = self._verifier(config)
            with pytest.raises(ProtocolError):
                v._advance(S.CHALLENGE_ISSUED, S.RESPONSE_RECEIVED)
            assert v.state is S.CONNECTED

        asyncio.run(go())


# =============================================================================
# Prover
# =============================================================================


class TestProver:
    NONCE = bytes(range(16))

    def test_answers_with_hmac_of_challenge(self, config):
        seen = []

        async def peer(reader, writer):
            await framing.write_frame(writer, m.GREETING)
            await framing.read_frame(reader)
            await framing.write_frame(writer, self.NONCE)
            seen.append(await framing.read_frame(reader))
            await framing.write_frame(writer, m.VERDICT_AUTHENTICATED)

        prover, outcome = asyncio.run(_prover_against(peer, config))
        assert seen == [crypto.compute_mac(SECRET, self.NONCE)]
        assert outcome.authenticated
        assert prover.state is S.AUTHENTICATED
        assert prover.closed

    def test_surfaces_rejection(self, config):
        async def peer(reader, writer):
            await framing.write_frame(writer, m.GREETING)
            await framing.read_frame(reader)
            await framing.write_frame(writer, self.NONCE)
            await framing.read_frame(reader)
            await framing.write_frame(writer, m.VERDICT_REJECTED)

        prover, outcome = asyncio.run(_prover_against(peer, config))
        assert outcome.verdict is Verdict.REJECTED
        assert prover.state is S.REJECTED

    def test_unknown_verdict_is_error(self, config):
        async def peer(reader, writer):
            await framing.write_frame(writer, m.GREETING)
            await framing.read_frame(reader)
            await framing.write_frame(writer, self.NONCE)
            await framing.read_frame(reader)
            await framing.write_frame(writer, b"MAYBE")

        _, outcome = asyncio.run(_prover_against(peer, config))
        assert outcome.verdict is Verdict.ERROR
        assert outcome.reason == ErrorReason.BAD_VERDICT

    @pytest.mark.parametrize("nonce", [b"", b"tiny", b"x" * 65])
    def test_bad_challenge_is_error(self, config, nonce):
        async def peer(reader, writer):
            await framing.write_frame(writer, m.GREETING)
            await framing.read_frame(reader)
            await framing.write_frame(writer, nonce)
            await reader.read()

        _, outcome = asyncio.run(_prover_against(peer, config))
        assert outcome.reason == ErrorReason.BAD_CHALLENGE

    def test_verifier_vanishes_before_verdict(self, config):
        async def peer(reader, writer):
            await framing.write_frame(writer, m.GREETING)
            await framing.read_frame(reader)
            await framing.write_frame(writer, self.NONCE)
            await framing.read_frame(reader)

        prover, outcome = asyncio.run(_prover_against(peer, config))
        assert outcome.verdict is Verdict.ERROR
        assert outcome.reason == ErrorReason.CONNECTION_CLOSED
        assert prover.state is S.ERROR
        assert prover.closed
