"""
errors.py — exception taxonomy for the handshake.

Three families, all fatal to the session that hits them:
- TransportError: peer went away, read/write failed, or an I/O step timed out.
- ProtocolError:  the peer spoke, but not in a way we accept (oversized frame,
                  message out of order, unknown verdict).
- EntropyError:   the OS could not give us secure random bytes.

A MAC mismatch is NOT in here on purpose; that's a normal "rejected" result.
"""


class ErrorReason:
    """Short reason codes carried by every HcraError (handy for logs/outcomes)."""
    CONNECTION_CLOSED = "connection_closed"
    TIMEOUT = "timeout"
    IO_FAILURE = "io_failure"
    MESSAGE_TOO_LARGE = "message_too_large"
    OUT_OF_SEQUENCE = "out_of_sequence"
    BAD_CHALLENGE = "bad_challenge"
    BAD_VERDICT = "bad_verdict"
    ENTROPY_UNAVAILABLE = "entropy_unavailable"


class HcraError(Exception):
    """Base class; `reason` is one of the ErrorReason codes."""
    default_reason = ErrorReason.IO_FAILURE

    def __init__(self, message: str, reason: str = "") -> None:
        super().__init__(message)
        self.reason = reason or self.default_reason


class TransportError(HcraError):
    default_reason = ErrorReason.IO_FAILURE


class ProtocolError(HcraError):
    default_reason = ErrorReason.OUT_OF_SEQUENCE


class EntropyError(HcraError):
    default_reason = ErrorReason.ENTROPY_UNAVAILABLE


class MacLengthError(ValueError):
    """Candidate tag (or secret) has a length the MAC engine can't work with."""
