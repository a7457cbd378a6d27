import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from . import challenge
from .crypto import DEFAULT_ALGORITHM, digest_size, resolve_hash
from .framing import DEFAULT_MAX_MESSAGE_SIZE, MAX_LENGTH_FIELD
from .messages import GREETING, VERDICT_AUTHENTICATED, VERDICT_REJECTED

"""
config.py — the one immutable settings object both roles share.

The shared secret lives here and gets passed explicitly into every
Verifier/Prover, so two sessions in the same process can use different
secrets without stepping on each other. Nothing in the package keeps a
module-level secret.

Environment variables (used by from_env):
    HCRA_SECRET, HCRA_HASH, HCRA_CHALLENGE_LEN, HCRA_TIMEOUT, HCRA_MAX_MESSAGE
"""

DEFAULT_IO_TIMEOUT = 10.0


@dataclass(frozen=True)
class AuthConfig:
    secret: bytes
    challenge_len: int = challenge.DEFAULT_CHALLENGE_LEN
    algorithm: str = DEFAULT_ALGORITHM
    io_timeout: Optional[float] = DEFAULT_IO_TIMEOUT
    max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE

    def __post_init__(self) -> None:
        secret = self.secret
        if isinstance(secret, str):
            secret = secret.encode("utf-8")
        if not isinstance(secret, (bytes, bytearray)) or not secret:
            raise ValueError("Shared secret must be a non-empty byte string.")
        # frozen dataclass: normalise through object.__setattr__
        object.__setattr__(self, "secret", bytes(secret))

        challenge.check_length(self.challenge_len)
        resolve_hash(self.algorithm)
        object.__setattr__(self, "algorithm", self.algorithm.lower())

        if self.io_timeout is not None and self.io_timeout <= 0:
            raise ValueError("io_timeout must be positive (or None to wait forever).")
        if not 0 < self.max_message_size <= MAX_LENGTH_FIELD:
            raise ValueError(f"max_message_size must be in 1..{MAX_LENGTH_FIELD}.")
        # every message of the handshake has to fit, or no session can finish
        smallest = max(
            self.challenge_len,
            digest_size(self.algorithm),
            len(GREETING),
            len(VERDICT_AUTHENTICATED),
            len(VERDICT_REJECTED),
        )
        if self.max_message_size < smallest:
            raise ValueError(
                f"max_message_size={self.max_message_size} is too small; the handshake needs {smallest} bytes."
            )

    def __repr__(self) -> str:
        # Never print the secret itself.
        return (
            f"AuthConfig(secret=<{len(self.secret)} bytes>, challenge_len={self.challenge_len}, "
            f"algorithm={self.algorithm!r}, io_timeout={self.io_timeout}, "
            f"max_message_size={self.max_message_size})"
        )

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        **overrides: Any,
    ) -> "AuthConfig":
        """
        Build a config from HCRA_* environment variables.

        Keyword overrides win over the environment; None overrides are ignored
        so CLI flags that weren't given fall through to the env/defaults.
        """
        env = os.environ if environ is None else environ
        values: dict = {}

        if env.get("HCRA_SECRET"):
            values["secret"] = env["HCRA_SECRET"]
        if env.get("HCRA_HASH"):
            values["algorithm"] = env["HCRA_HASH"]
        if env.get("HCRA_CHALLENGE_LEN"):
            values["challenge_len"] = _parse(env["HCRA_CHALLENGE_LEN"], int, "HCRA_CHALLENGE_LEN")
        if env.get("HCRA_TIMEOUT"):
            values["io_timeout"] = _parse(env["HCRA_TIMEOUT"], float, "HCRA_TIMEOUT")
        if env.get("HCRA_MAX_MESSAGE"):
            values["max_message_size"] = _parse(env["HCRA_MAX_MESSAGE"], int, "HCRA_MAX_MESSAGE")

        values.update({k: v for k, v in overrides.items() if v is not None})
        if "secret" not in values:
            raise ValueError("No shared secret given; pass one or set HCRA_SECRET.")
        return cls(**values)


def _parse(raw: str, kind: type, name: str):
    try:
        return kind(raw)
    except ValueError:
        raise ValueError(f"{name}={raw!r} is not a valid {kind.__name__}") from None
