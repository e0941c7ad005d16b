#!/usr/bin/env python3
"""Produce an argon2id credential hash for seeding a durable store.

Usage:
    # Using an environment variable:
    CREDENTIAL='correct horse battery staple' python scripts/hash_credential.py

    # With a command line arg (visible in shell history):
    python scripts/hash_credential.py --password 'correct horse battery staple'

    # Interactive prompt:
    python scripts/hash_credential.py

    # Check a plaintext against an existing hash:
    python scripts/hash_credential.py --check '$argon2id$v=19$...'
"""
from __future__ import annotations

import argparse
import getpass
import os
import sys
from pathlib import Path

# Add project root to path for imports
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _read_plaintext(args: argparse.Namespace) -> str:
    if args.password:
        return args.password
    env_value = os.getenv("CREDENTIAL")
    if env_value:
        return env_value
    return getpass.getpass("Credential: ")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--password", help="Plaintext to hash (prefer CREDENTIAL env var)")
    parser.add_argument(
        "--check",
        metavar="HASH",
        help="Verify the plaintext against HASH instead of producing a new hash",
    )
    args = parser.parse_args(argv)

    from authstate.service.credentials import CredentialVerifier
    from authstate.service.errors import ServiceError

    verifier = CredentialVerifier()
    plaintext = _read_plaintext(args)
    try:
        if args.check:
            matched = verifier.verify(plaintext, args.check)
            print("match" if matched else "no match")
            return 0 if matched else 1
        print(verifier.hash(plaintext))
    except ServiceError as exc:
        print(f"error: {exc.message}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
