"""
crypto.py — tiny HMAC helpers for the challenge-response step.

Why this exists:
- Keep all MAC bits in one place so the session code can call
  `compute_mac/verify_mac` without worrying about hash objects.
- Verification goes through `cryptography`'s HMAC.verify(), which compares
  tags in constant time. Never compare tags with `==`.

Notes:
- Default hash is SHA-1 (20-byte tags), matching the C++ demo client/server;
  SHA-2 variants are available by name.
- Functions accept and return raw bytes.
"""

from typing import Dict, Type

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac

from .errors import MacLengthError

DEFAULT_ALGORITHM = "sha1"

# -----------------------------
# Hash algorithm lookup
# -----------------------------

_HASHES: Dict[str, Type[hashes.HashAlgorithm]] = {
    "sha1": hashes.SHA1,
    "sha256": hashes.SHA256,
    "sha384": hashes.SHA384,
    "sha512": hashes.SHA512,
}

SUPPORTED_ALGORITHMS = tuple(_HASHES)


def resolve_hash(name: str) -> hashes.HashAlgorithm:
    """Turn an identifier like "sha256" into a fresh cryptography hash object."""
    try:
        return _HASHES[name.lower()]()
    except KeyError:
        raise ValueError(
            f"Unsupported MAC algorithm {name!r}; pick one of {', '.join(SUPPORTED_ALGORITHMS)}"
        ) from None


def digest_size(algorithm: str = DEFAULT_ALGORITHM) -> int:
    """Tag length in bytes for the given algorithm (20 for SHA-1)."""
    return resolve_hash(algorithm).digest_size


# -------------------------
# MAC computation & checking
# -------------------------

def _new_hmac(secret: bytes, algorithm: str) -> hmac.HMAC:
    if not secret:
        raise MacLengthError("Shared secret must not be empty.")
    return hmac.HMAC(secret, resolve_hash(algorithm))


def compute_mac(secret: bytes, message: bytes, algorithm: str = DEFAULT_ALGORITHM) -> bytes:
    """
    HMAC(secret, message). Pure function: same inputs, same tag.

    The Prover calls this on the challenge; the Verifier only ever needs
    verify_mac().
    """
    h = _new_hmac(secret, algorithm)
    h.update(message)
    return h.finalize()


def verify_mac(
    secret: bytes,
    message: bytes,
    candidate_tag: bytes,
    algorithm: str = DEFAULT_ALGORITHM,
) -> bool:
    """
    Recompute the expected tag and compare it with `candidate_tag` in constant time.

    Returns True on match, False on mismatch. Raises MacLengthError only for
    inputs we can't meaningfully compare (empty secret, wrong tag length).
    """
    h = _new_hmac(secret, algorithm)
    expected_len = h.algorithm.digest_size
    if len(candidate_tag) != expected_len:
        raise MacLengthError(
            f"Tag must be {expected_len} bytes for {algorithm}, got {len(candidate_tag)}."
        )
    h.update(message)
    try:
        h.verify(candidate_tag)
        return True
    except InvalidSignature:
        return False
