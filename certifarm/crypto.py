"""
Hashing primitives for credential and inspection tamper evidence.

- SHA-256 hashing
- Placeholder proof values (hash based, not a signature)
- Inspection submission signature hashes

No key material is generated or held here: the proof value is a
deterministic placeholder and cannot be verified against an issuer key.
"""

from __future__ import annotations

import base64
import hashlib
import json
from datetime import datetime, timezone
from typing import Any


def sha256_hex(data: str | bytes) -> str:
    """Return the SHA-256 hex digest of *data*."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def canonical_json(obj: Any) -> bytes:
    """Sorted-key, whitespace-free JSON bytes of *obj*."""
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str
    ).encode("utf-8")


def isoformat_z(dt: datetime) -> str:
    """ISO-8601 UTC string with millisecond precision and a ``Z`` suffix."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso(value: str) -> datetime:
    """Parse an ISO-8601 timestamp (``Z`` accepted) into an aware datetime."""
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def placeholder_proof_value(credential_id: str, batch_id: str, issued_at: str) -> str:
    """
    Compute the placeholder proof value for a credential.

    base64( hex( SHA-256("{credential_id}:{batch_id}:{issued_at}") ) )
    """
    digest = sha256_hex(f"{credential_id}:{batch_id}:{issued_at}")
    return base64.b64encode(digest.encode("ascii")).decode("ascii")


def inspection_signature_hash(
    inspection_id: str, batch_id: str, result: str, timestamp: str
) -> str:
    """SHA-256 hex over the canonical submission record of an inspection."""
    record = {
        "inspectionId": inspection_id,
        "batchId": batch_id,
        "result": result,
        "timestamp": timestamp,
    }
    return sha256_hex(canonical_json(record))
