"""
challenge.py — fresh per-session nonces.

One call per Verifier session. Bytes come straight from the OS CSPRNG via
`secrets`; if that source is missing we fail loudly instead of dropping
down to `random`.
"""

import secrets

from .errors import EntropyError

DEFAULT_CHALLENGE_LEN = 16
MIN_CHALLENGE_LEN = 8   # below this, collisions stop being negligible
MAX_CHALLENGE_LEN = 64


def check_length(length: int) -> int:
    """Validate a challenge length and hand it back."""
    if isinstance(length, bool) or not isinstance(length, int):
        raise ValueError(f"Challenge length must be an int, got {type(length).__name__}")
    if not MIN_CHALLENGE_LEN <= length <= MAX_CHALLENGE_LEN:
        raise ValueError(
            f"Challenge length must be between {MIN_CHALLENGE_LEN} and {MAX_CHALLENGE_LEN} bytes, got {length}"
        )
    return length


def generate(length: int = DEFAULT_CHALLENGE_LEN) -> bytes:
    """
    Return `length` unpredictable bytes.

    Raises:
        ValueError:   length outside [MIN_CHALLENGE_LEN, MAX_CHALLENGE_LEN].
        EntropyError: the OS randomness source is unavailable.
    """
    check_length(length)
    try:
        return secrets.token_bytes(length)
    except (NotImplementedError, OSError) as exc:
        raise EntropyError(f"Secure randomness unavailable: {exc}") from exc
