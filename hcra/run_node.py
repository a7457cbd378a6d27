import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from . import messages as m
from .challenge import DEFAULT_CHALLENGE_LEN
from .config import AuthConfig
from .crypto import SUPPORTED_ALGORITHMS
from .node import DEFAULT_HOST, DEFAULT_PORT, ProverClient, VerifierServer

"""
run_node.py — single entry point to run either side of the handshake.

What you can do here:
- Verifier:  listen and authenticate every Prover that connects
- Prover:    connect once, answer the challenge, print the verdict

Exit status for the prover: 0 authenticated, 1 rejected, 2 error.
"""

EXIT_OK = 0
EXIT_REJECTED = 1
EXIT_ERROR = 2

_MESSAGES = {
    m.Verdict.AUTHENTICATED: "Authentication successful. Welcome!",
    m.Verdict.REJECTED: "Authentication failed.",
}


# -------------------------
# Process runners (thin wrappers)
# -------------------------

async def run_verifier(config: AuthConfig, host: str, port: int, once: bool) -> None:
    """Serve until interrupted (or after one session with --once)."""
    def report(outcome: m.SessionOutcome) -> None:
        if outcome.verdict is m.Verdict.ERROR:
            print(f"Session error: {outcome.reason}")
        else:
            print(_MESSAGES[outcome.verdict])

    server = VerifierServer(config, host, port, max_sessions=1 if once else None, on_outcome=report)
    await server.serve()


async def run_prover(config: AuthConfig, host: str, port: int) -> int:
    """One authentication attempt; returns the process exit status."""
    outcome = await ProverClient(config, host, port).authenticate()
    if outcome.verdict is m.Verdict.ERROR:
        print(f"Client error: {outcome.reason}", file=sys.stderr)
        return EXIT_ERROR
    print(f"Server: {_MESSAGES[outcome.verdict]}")
    return EXIT_OK if outcome.authenticated else EXIT_REJECTED


# -------------------------
# Argument parsing
# -------------------------

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse modes and options.

    Quick examples:
      Verifier:  python -m hcra.run_node --mode verifier --secret pass123
      Prover:    python -m hcra.run_node --mode prover --secret pass123
      One-shot:  python -m hcra.run_node --mode verifier --once --port 12345
    The secret can also come from HCRA_SECRET (and friends, see config.py).
    """
    p = argparse.ArgumentParser(prog="hcra-node", description="HMAC challenge-response authentication")
    p.add_argument("--mode", choices=["verifier", "prover"], required=True)
    p.add_argument("--host", default=DEFAULT_HOST)
    p.add_argument("--port", type=int, default=DEFAULT_PORT)
    p.add_argument("--secret", help="shared secret (default: $HCRA_SECRET)")
    p.add_argument("--hash", dest="algorithm", choices=SUPPORTED_ALGORITHMS)
    p.add_argument("--challenge-len", type=int, help=f"challenge bytes (default {DEFAULT_CHALLENGE_LEN})")
    p.add_argument("--timeout", dest="io_timeout", type=float, help="per read/write timeout in seconds")
    p.add_argument("--max-message", dest="max_message_size", type=int, help="largest frame accepted")
    p.add_argument("--once", action="store_true", help="verifier: handle a single session then exit")
    p.add_argument("--log-level", default="WARNING", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return p.parse_args(argv)


# -------------------------
# Main entrypoint
# -------------------------

def main(argv: Optional[List[str]] = None) -> int:
    """Dispatch into the chosen mode; keep top-level code very small."""
    args = parse_args(argv)
    logging.basicConfig(level=args.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        config = AuthConfig.from_env(
            secret=args.secret,
            algorithm=args.algorithm,
            challenge_len=args.challenge_len,
            io_timeout=args.io_timeout,
            max_message_size=args.max_message_size,
        )
    except ValueError as exc:
        raise SystemExit(f"Configuration error: {exc}")

    if args.mode == "verifier":
        try:
            asyncio.run(run_verifier(config, args.host, args.port, args.once))
        except KeyboardInterrupt:
            pass
        return EXIT_OK

    return asyncio.run(run_prover(config, args.host, args.port))


if __name__ == "__main__":
    sys.exit(main())
