# credential hashing module

import os
from dataclasses import dataclass

from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from . import config as _cfg

SALT_BYTES = 16
KEY_BYTES = 32
_R = 8
_P = 1


@dataclass(frozen=True)
class HashedSecret:
    """Salted scrypt digest of a player secret; the plain secret is never stored."""

    salt: bytes
    digest: bytes
    n: int


def _kdf(salt: bytes, n: int) -> Scrypt:
    return Scrypt(salt=salt, length=KEY_BYTES, n=n, r=_R, p=_P)


def hash_secret(secret: str, *, n: int | None = None) -> HashedSecret:
    """Derive a fresh salted digest for *secret*."""
    n = _cfg.SCRYPT_N if n is None else n
    salt = os.urandom(SALT_BYTES)
    return HashedSecret(salt, _kdf(salt, n).derive(secret.encode()), n)


def verify_secret(secret: str, stored: HashedSecret) -> bool:
    """Constant-time check of *secret* against *stored*."""
    try:
        _kdf(stored.salt, stored.n).verify(secret.encode(), stored.digest)
    except InvalidKey:
        return False
    return True
