"""
Idempotency key generation.

A key identifies one real-world action: (tenant, operation label, payload
fingerprint).  Callers compute it before creating an event; EventStore
guarantees at most one event per key and tenant, returning the existing
event when the same action is submitted again.

Typical fingerprints are the fields that make two submissions "the same
action": ``{"animalId": ..., "cost": ...}`` for a purchase, or
``{"siteId": ..., "feedItemId": ..., "qty": ..., "bucket": ...}`` for a
feeding.
"""

import hashlib
from typing import Any

from farm_kernel.utils.hashing import canonicalize_json

KEY_PREFIX = "idk1"


def generate_idempotency_key(
    tenant_id: str,
    operation_label: str,
    fingerprint: Any,
) -> str:
    """
    Deterministic idempotency key for an action.

    The three components are hashed as one canonical JSON array, so no choice
    of tenant, label or fingerprint can produce the same input as another
    (no delimiter ambiguity) and the key never depends on dict ordering.

    Returns:
        ``"idk1:"`` followed by 64 hex characters.

    Raises:
        ValueError: if tenant_id or operation_label is empty.

    Example:
        >>> generate_idempotency_key("t1", "purchase-animal", {"animalId": "a7", "cost": "950"})
        'idk1:...'
    """
    if not tenant_id or not str(tenant_id).strip():
        raise ValueError("tenant_id is required for an idempotency key")
    if not operation_label or not str(operation_label).strip():
        raise ValueError("operation_label is required for an idempotency key")

    material = canonicalize_json([str(tenant_id), str(operation_label), fingerprint])
    digest = hashlib.sha256(material.encode("utf-8")).hexdigest()
    return f"{KEY_PREFIX}:{digest}"
