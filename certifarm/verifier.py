"""
Credential verifier.

Checks, all evaluated and reported (no short-circuit):
  1. not expired: now <= expirationDate
  2. not revoked: status != revoked
  3. signature valid: proof block present with a value (structural only)
  4. issuer trusted: always true, there is no trust registry

``is_valid`` is the AND of checks 1 and 2. An unverifiable credential is a
``False`` result with reasons, never an exception; only an unknown
identifier raises ``NotFound``.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from .crypto import parse_iso
from .errors import CertificationError, NotFound
from .qr import normalize_credential_id
from .schema import (
    Credential,
    CredentialStatus,
    VerificationChecks,
    VerificationResult,
    utcnow,
)
from .store import CREDENTIALS, DocumentStore

logger = logging.getLogger(__name__)

EXPIRED_MESSAGE = "Credential has expired"
REVOKED_MESSAGE = "Credential has been revoked"
NO_PROOF_MESSAGE = "Credential carries no proof value"


def evaluate_credential(
    credential: Credential, now: Optional[datetime] = None
) -> VerificationResult:
    """Pure evaluation of a credential at time *now*. No side effects."""
    now = now or utcnow()
    vc = credential.verifiable_credential
    checks = VerificationChecks()
    errors: list[str] = []

    if now > parse_iso(vc.expiration_date):
        checks.not_expired = False
        errors.append(EXPIRED_MESSAGE)

    if credential.status == CredentialStatus.REVOKED:
        checks.not_revoked = False
        errors.append(REVOKED_MESSAGE)

    # Informational only: no cryptographic verification is performed
    if not vc.proof.proof_value:
        checks.signature_valid = False
        errors.append(NO_PROOF_MESSAGE)

    return VerificationResult(
        credential_id=credential.credential_id,
        is_valid=checks.not_expired and checks.not_revoked,
        checks=checks,
        errors=errors,
        status=credential.status,
        issuance_date=vc.issuance_date,
        expiration_date=vc.expiration_date,
        verification_count=credential.verification_count,
        last_verified_at=credential.last_verified_at,
        verified_at=now,
        issuer=vc.issuer,
        credential_subject=vc.credential_subject,
    )


class CredentialVerifier:
    """Public verification entry point backed by the credential store."""

    def __init__(self, store: DocumentStore, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock

    def lookup(self, credential_id: str) -> Credential:
        try:
            urn = normalize_credential_id(credential_id)
        except ValueError:
            raise NotFound("Credential", credential_id)
        doc = self.store.get(CREDENTIALS, urn)
        if doc is None:
            raise NotFound("Credential", urn)
        return Credential.model_validate(doc)

    def verify(self, credential_id: str) -> VerificationResult:
        """
        Verify a credential by URN or bare UUID.

        Every successful lookup bumps the verification counter exactly once,
        whatever the outcome. A failed counter update is logged and the
        result is still returned.
        """
        credential = self.lookup(credential_id)
        now = self.clock()
        result = evaluate_credential(credential, now)

        try:
            doc = self.store.update(
                CREDENTIALS,
                credential.credential_id,
                {"last_verified_at": now.isoformat()},
                increment={"verification_count": 1},
            )
            result.verification_count = doc["verification_count"]
            result.last_verified_at = now
        except CertificationError as e:
            logger.warning(
                f"Could not record verification of {credential.credential_id}: {e}"
            )

        logger.info(
            f"Verified {credential.credential_id}: valid={result.is_valid} "
            f"count={result.verification_count}"
        )
        return result
