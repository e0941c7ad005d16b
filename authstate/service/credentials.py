from __future__ import annotations

import secrets
import threading
from typing import Optional

from argon2 import PasswordHasher, Type
from argon2.exceptions import Argon2Error

from authstate.logging import get_logger
from authstate.service.errors import CredentialHashError, ValidationError

logger = get_logger(__name__)

# Fixed argon2id cost parameters; never derived from input.
TIME_COST = 3
MEMORY_COST_KIB = 2**14
PARALLELISM = 1
HASH_LENGTH = 32


def _build_hasher() -> PasswordHasher:
    return PasswordHasher(
        time_cost=TIME_COST,
        memory_cost=MEMORY_COST_KIB,
        parallelism=PARALLELISM,
        hash_len=HASH_LENGTH,
        type=Type.ID,
    )


class _DecoyHash:
    """Process-wide decoy hash, computed once and then read-only."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value: Optional[str] = None

    def get(self, hasher: PasswordHasher) -> str:
        # Fast path: already initialised
        if self._value is not None:
            return self._value
        with self._lock:
            if self._value is None:
                self._value = hasher.hash(secrets.token_hex(32))
                logger.debug("decoy_hash_initialized")
            return self._value

    def reset(self) -> None:
        with self._lock:
            self._value = None


_decoy_hash = _DecoyHash()


class CredentialVerifier:
    """Argon2id credential hashing with a timing-uniform verification path.

    ``verify_with_decoy`` performs exactly one hash verification whether or not
    a real hash exists, so "no such account" and "wrong password" take the same
    order of time. It does not hide timing variance inside argon2 itself.
    """

    def __init__(self) -> None:
        self._hasher = _build_hasher()
        self.logger = logger

    def hash(self, plaintext: str) -> str:
        if not plaintext:
            raise ValidationError("plaintext must be a non-empty string")
        digest = self._hasher.hash(plaintext)
        if not self.verify(plaintext, digest):
            self.logger.error("credential_hash_self_check_failed")
            raise CredentialHashError("hashing failed")
        return digest

    def verify(self, plaintext: str, hash_string: str) -> bool:
        """Return True when ``plaintext`` matches ``hash_string``.

        Malformed hashes and primitive errors count as a mismatch. Not timing
        uniform on its own; see ``verify_with_decoy``.
        """
        if not plaintext or not hash_string:
            raise ValidationError("plaintext and hash must be non-empty strings")
        try:
            return self._hasher.verify(hash_string, plaintext)
        except (Argon2Error, ValueError):
            # InvalidHashError derives from ValueError
            return False

    def verify_with_decoy(
        self, plaintext: str, use_decoy: bool, real_hash: Optional[str] = None
    ) -> bool:
        if not use_decoy and not real_hash:
            raise ValidationError("missing hash for real verification")
        if use_decoy:
            # Result discarded: the decoy exists only to spend the same effort
            self.verify(plaintext, _decoy_hash.get(self._hasher))
            return False
        return self.verify(plaintext, real_hash)


def reset_decoy_hash_for_tests() -> None:
    _decoy_hash.reset()
