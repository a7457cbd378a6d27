"""
hcra — HMAC challenge-response authentication over a TCP byte stream.

The Verifier sends a fresh random challenge; the Prover answers with
HMAC(shared_secret, challenge); the Verifier checks it in constant time and
sends back a verdict. The secret itself never goes over the wire.

HARDENINGS vs the naive version:
- Length-prefixed framing, so split/merged TCP reads can't garble messages.
- Constant-time tag comparison.
- Challenge length bounded and validated; CSPRNG only, no silent fallback.
- Bounded per-operation I/O timeouts; every session closes its socket once.

Set HCRA_SECRET on both ends (or pass --secret) before running.
"""
from .config import AuthConfig
from .errors import EntropyError, ErrorReason, HcraError, ProtocolError, TransportError
from .messages import SessionOutcome, SessionState, Verdict
from .node import ProverClient, VerifierServer
from .session import Prover, Verifier

__all__ = [
    "AuthConfig",
    "EntropyError",
    "ErrorReason",
    "HcraError",
    "ProtocolError",
    "Prover",
    "ProverClient",
    "SessionOutcome",
    "SessionState",
    "TransportError",
    "Verdict",
    "Verifier",
    "VerifierServer",
    "challenge",
    "crypto",
    "framing",
    "messages",
    "node",
    "run_node",
    "session",
]
