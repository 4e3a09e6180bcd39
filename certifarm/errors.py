"""
Error taxonomy for the certification engine.

Every failure reported to a caller is one of these; none are swallowed.
Only ``Unavailable`` is eligible for caller-level retry.
"""

from __future__ import annotations


class CertificationError(Exception):
    """Base class for all engine errors."""


class NotFound(CertificationError):
    """A referenced Batch, Inspection, Credential or Party does not exist."""

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found: {identifier}")


class PreconditionFailed(CertificationError):
    """A transition or issuance rule was violated."""

    def __init__(self, rule: str):
        self.rule = rule
        super().__init__(rule)


class Conflict(CertificationError):
    """A concurrent writer changed the document first."""


class DuplicateKey(Conflict):
    """An identifier already exists in the target collection."""


class Unauthorized(CertificationError):
    """The actor lacks the relationship the operation requires."""

    def __init__(self, actor_id: str, reason: str):
        self.actor_id = actor_id
        super().__init__(f"{actor_id}: {reason}")


class Unavailable(CertificationError):
    """The document store could not be reached."""
