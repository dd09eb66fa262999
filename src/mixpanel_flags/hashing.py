"""
Deterministic hashing used for rollout and variant assignment.

Assignments must stay stable across releases and across the SDKs of every
language, so the digest, the normalization and the salt literals below can
never change.
"""

from typing import Any, Optional

FNV_OFFSET_BASIS_64 = 0xcbf29ce484222325
FNV_PRIME_64 = 0x100000001b3
_MASK_64 = 0xFFFFFFFFFFFFFFFF

ROLLOUT_SALT = "rollout"
VARIANT_SALT = "variant"


def fnv1a_64(data: bytes) -> int:
    """FNV-1a 64-bit digest of ``data``"""
    hash_value = FNV_OFFSET_BASIS_64
    for byte in data:
        hash_value ^= byte
        hash_value = (hash_value * FNV_PRIME_64) & _MASK_64
    return hash_value


def subject_key_of(value: Any) -> str:
    """String form of a context value as it is hashed; booleans use JSON spelling"""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def normalized_hash(key: str, salt: str) -> float:
    """Map ``key + salt`` onto one of 100 buckets in [0.0, 1.0)"""
    if key is None:
        raise ValueError("Key cannot be None")
    if salt is None:
        raise ValueError("Salt cannot be None")

    hash_value = fnv1a_64((key + salt).encode('utf-8'))
    return (hash_value % 100) / 100.0


def rollout_salt(hash_salt: Optional[str], rollout_index: int) -> str:
    """Salt for the rollout gate at ``rollout_index``.

    Flags without a hash salt keep hashing every rollout with the plain
    ``"rollout"`` literal so users assigned before salts existed stay put.
    """
    if hash_salt:
        return hash_salt + str(rollout_index)
    return ROLLOUT_SALT


def variant_salt(hash_salt: Optional[str]) -> str:
    """Salt for picking a variant out of the cumulative split"""
    if hash_salt:
        return hash_salt + VARIANT_SALT
    return VARIANT_SALT
