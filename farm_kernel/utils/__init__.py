"""Utility functions for the posting kernel."""

from farm_kernel.utils.hashing import canonicalize_json, hash_payload, to_json_safe
from farm_kernel.utils.idempotency import generate_idempotency_key

__all__ = [
    "canonicalize_json",
    "hash_payload",
    "to_json_safe",
    "generate_idempotency_key",
]
