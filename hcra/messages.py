from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .errors import ErrorReason, ProtocolError

"""
messages.py — the handful of payloads and states the handshake uses.

What this module does:
- Names the fixed payloads that go on the wire (greeting, verdicts).
- Defines the session states and terminal verdicts.
- Defines SessionOutcome, the record a finished session hands back.

Wire payloads are plain ASCII so a packet capture is easy to read.
"""

# -----------------------
# Wire payloads
# -----------------------
GREETING = b"hello"
VERDICT_AUTHENTICATED = b"AUTHENTICATED"
VERDICT_REJECTED = b"REJECTED"


class Role(str, Enum):
    VERIFIER = "verifier"
    PROVER = "prover"


class SessionState(str, Enum):
    CONNECTED = "connected"
    GREETING_EXCHANGED = "greeting_exchanged"
    CHALLENGE_ISSUED = "challenge_issued"
    RESPONSE_RECEIVED = "response_received"
    AUTHENTICATED = "authenticated"
    REJECTED = "rejected"
    ERROR = "error"

    @property
    def terminal(self) -> bool:
        return self in (SessionState.AUTHENTICATED, SessionState.REJECTED, SessionState.ERROR)


class Verdict(str, Enum):
    AUTHENTICATED = "authenticated"
    REJECTED = "rejected"
    ERROR = "error"


def encode_verdict(verdict: Verdict) -> bytes:
    """Only the two definite outcomes are ever sent; errors just close the socket."""
    if verdict is Verdict.AUTHENTICATED:
        return VERDICT_AUTHENTICATED
    if verdict is Verdict.REJECTED:
        return VERDICT_REJECTED
    raise ValueError(f"{verdict} is not sent on the wire")


def decode_verdict(payload: bytes) -> Verdict:
    """Map a verdict payload back to a Verdict; anything unknown is a ProtocolError."""
    if payload == VERDICT_AUTHENTICATED:
        return Verdict.AUTHENTICATED
    if payload == VERDICT_REJECTED:
        return Verdict.REJECTED
    raise ProtocolError(f"Unknown verdict payload ({len(payload)} bytes)", ErrorReason.BAD_VERDICT)


@dataclass(frozen=True)
class SessionOutcome:
    """
    What a session run returns.

    `reason` is an ErrorReason code for ERROR outcomes and None otherwise;
    `state` is the terminal state the session ended in.
    """
    role: Role
    verdict: Verdict
    state: SessionState
    reason: Optional[str] = None

    @property
    def authenticated(self) -> bool:
        return self.verdict is Verdict.AUTHENTICATED
