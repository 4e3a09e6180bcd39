"""
Certification service — the engine's operations for its caller.

Orchestrates: create batch → start inspection → submit result →
              issue credential (+ QR) → verify → revoke.

Each operation reads the aggregates it needs, checks preconditions and
actor relationships, then writes through the store's conditional update so
a concurrent caller loses with ``Conflict`` instead of overwriting. When the
batch transition fails after a child document was written, that write is
undone so the operation can be retried.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Mapping, Optional, Union

from .config import EngineConfig
from .credential import PlaceholderProofSuite, ProofSuite, build_verifiable_credential
from .crypto import inspection_signature_hash, isoformat_z
from .errors import CertificationError, NotFound, PreconditionFailed, Unauthorized
from .lifecycle import (
    EDITABLE_STATUSES,
    AssignmentStrategy,
    BatchStateMachine,
    Trigger,
    next_status,
)
from .qr import build_qr_payload, decode_qr_payload, payload_text, render_qr_image
from .schema import (
    Batch,
    BatchDocument,
    BatchStatus,
    Compliance,
    Credential,
    CredentialStatus,
    DestinationInfo,
    DigitalSignature,
    Inspection,
    InspectionResult,
    InspectionType,
    IssuerIdentity,
    OriginInfo,
    Party,
    PartyRole,
    Priority,
    ProductInfo,
    QRArtifact,
    QRPayloads,
    QualityParameters,
    Revocation,
    VerificationResult,
    VisualInspection,
    utcnow,
)
from .store import BATCHES, CREDENTIALS, INSPECTIONS, PARTIES, DocumentStore, InMemoryStore
from .verifier import CredentialVerifier

logger = logging.getLogger(__name__)

ModelInput = Union[Mapping[str, Any], Any]

# Higher sorts first in an inspector's queue
PRIORITY_RANK = {Priority.EXPRESS: 2, Priority.URGENT: 1, Priority.NORMAL: 0}

BATCH_EDITABLE_FIELDS = ("product", "origin", "destination", "notes", "priority")


def _coerce(model: type, value: ModelInput):
    return value if isinstance(value, model) else model.model_validate(value)


class CertificationService:
    """
    The certification engine.

    Components:
      - State machine: batch creation and guarded status transitions
      - Credential builder: W3C-style passport with a placeholder proof
      - QR encoder: verbose / compact payloads and PNG artifact
      - Verifier: expiry / revocation checks with a verification counter
    """

    def __init__(
        self,
        store: DocumentStore | None = None,
        config: EngineConfig | None = None,
        assignment: AssignmentStrategy | None = None,
        proof_suite: ProofSuite | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store if store is not None else InMemoryStore()
        self.config = config or EngineConfig()
        self.proof_suite = proof_suite or PlaceholderProofSuite()
        self._clock = clock
        self.machine = BatchStateMachine(self.store, assignment, clock=self._now)
        self.verifier = CredentialVerifier(self.store, clock=self._now)

    @property
    def clock(self) -> Callable[[], datetime]:
        return self._clock

    @clock.setter
    def clock(self, fn: Callable[[], datetime]) -> None:
        self._clock = fn

    def _now(self) -> datetime:
        return self._clock()

    # ── Lookups ─────────────────────────────────────────────────────────────

    def get_batch(self, batch_id: str) -> Batch:
        doc = self.store.get(BATCHES, batch_id)
        if doc is None:
            raise NotFound("Batch", batch_id)
        return Batch.model_validate(doc)

    def get_inspection(self, inspection_id: str) -> Inspection:
        doc = self.store.get(INSPECTIONS, inspection_id)
        if doc is None:
            raise NotFound("Inspection", inspection_id)
        return Inspection.model_validate(doc)

    def get_credential(self, credential_id: str) -> Credential:
        return self.verifier.lookup(credential_id)

    def get_credential_for_batch(self, batch_id: str) -> Credential:
        batch = self.get_batch(batch_id)
        if batch.credential_id is None:
            raise NotFound("Credential for batch", batch_id)
        return self.get_credential(batch.credential_id)

    def get_party(self, party_id: str) -> Optional[Party]:
        doc = self.store.get(PARTIES, party_id)
        return Party.model_validate(doc) if doc is not None else None

    # ── Parties ─────────────────────────────────────────────────────────────

    def register_party(self, party: ModelInput) -> Party:
        party = _coerce(Party, party)
        self.store.insert(PARTIES, party.id, party.model_dump(mode="json"))
        logger.info(f"Registered {party.role.value} {party.id}")
        return party

    def _require_actor(self, actor_id: str, allowed: set[Optional[str]], reason: str) -> None:
        if actor_id in allowed or self.config.is_admin(actor_id):
            return
        raise Unauthorized(actor_id, reason)

    # ── Batches ─────────────────────────────────────────────────────────────

    def create_batch(
        self,
        product: ModelInput,
        origin: ModelInput | None,
        destination: ModelInput,
        priority: Priority | str = Priority.NORMAL,
        *,
        owner_id: str,
        notes: Optional[str] = None,
    ) -> Batch:
        """Create a batch in ``submitted`` with a fresh ``CF-YYMM-XXXXXX`` id."""
        if not owner_id:
            raise PreconditionFailed("batch must have an owner")
        return self.machine.create(
            product=_coerce(ProductInfo, product),
            origin=_coerce(OriginInfo, origin or {}),
            destination=_coerce(DestinationInfo, destination),
            priority=Priority(priority),
            owner_id=owner_id,
            notes=notes,
        )

    def update_batch(self, batch_id: str, actor_id: str, **changes: Any) -> Batch:
        """Owner edits of product / origin / destination / notes / priority.

        Allowed only while the batch is submitted or under inspection.
        History is not touched: this is not a status change.
        """
        unknown = set(changes) - set(BATCH_EDITABLE_FIELDS)
        if unknown:
            raise PreconditionFailed(f"fields not editable: {', '.join(sorted(unknown))}")

        batch = self.get_batch(batch_id)
        self._require_actor(actor_id, {batch.owner_id}, "only the batch owner may edit it")
        if batch.status not in EDITABLE_STATUSES:
            raise PreconditionFailed(
                f"cannot edit batch after inspection is complete (status {batch.status.value})"
            )

        changes = {k: v for k, v in changes.items() if v is not None}
        merged = batch.model_dump()
        merged.update(changes)
        edited = Batch.model_validate(merged)
        update = edited.model_dump(mode="json", include=set(changes))
        update["updated_at"] = self._now().isoformat()

        doc = self.store.update(
            BATCHES, batch_id, update, expected={"status": batch.status.value}
        )
        logger.info(f"Batch {batch_id} edited by {actor_id}: {sorted(changes)}")
        return Batch.model_validate(doc)

    def add_document(self, batch_id: str, actor_id: str, document: ModelInput) -> Batch:
        document = _coerce(BatchDocument, document)
        batch = self.get_batch(batch_id)
        self._require_actor(actor_id, {batch.owner_id}, "only the batch owner may attach documents")
        doc = self.store.update(
            BATCHES,
            batch_id,
            {"updated_at": self._now().isoformat()},
            append={"documents": [document.model_dump(mode="json")]},
        )
        return Batch.model_validate(doc)

    def pending_inspections(self, inspector_id: str) -> list[Batch]:
        """Batches routed to *inspector_id* awaiting inspection, most urgent first."""
        docs = self.store.find(
            BATCHES,
            {
                "assigned_inspector": inspector_id,
                "status": (BatchStatus.SUBMITTED.value, BatchStatus.UNDER_INSPECTION.value),
            },
        )
        batches = [Batch.model_validate(d) for d in docs]
        return sorted(batches, key=lambda b: (-PRIORITY_RANK[b.priority], b.created_at))

    # ── Inspection ──────────────────────────────────────────────────────────

    def start_inspection(
        self,
        batch_id: str,
        inspector_id: str,
        inspection_type: InspectionType | str = InspectionType.PHYSICAL,
    ) -> Inspection:
        """Open the batch's inspection: ``submitted → under_inspection``."""
        batch = self.get_batch(batch_id)
        if batch.assigned_inspector is not None:
            self._require_actor(
                inspector_id, {batch.assigned_inspector},
                "only the assigned inspector may start this inspection",
            )
        elif not self.config.is_admin(inspector_id):
            party = self.get_party(inspector_id)
            if party is None or party.role != PartyRole.QA_AGENCY or not party.is_active:
                raise Unauthorized(inspector_id, "only an active QA agency may start an inspection")
        if batch.inspection_id is not None:
            raise PreconditionFailed("inspection already exists for this batch")
        next_status(batch.status, Trigger.START_INSPECTION)

        now = self._now()
        inspection = Inspection(
            batch_id=batch.batch_id,
            inspector_id=inspector_id,
            inspection_type=InspectionType(inspection_type),
            inspection_date=now,
            created_at=now,
            updated_at=now,
        )
        self.store.insert(INSPECTIONS, inspection.inspection_id, inspection.model_dump(mode="json"))

        try:
            self.machine.apply(
                batch,
                Trigger.START_INSPECTION,
                inspector_id,
                "Inspection started by QA agency",
                changes={
                    "inspection_id": inspection.inspection_id,
                    "assigned_inspector": batch.assigned_inspector or inspector_id,
                },
                expected={"inspection_id": None},
            )
        except CertificationError:
            self.store.delete(INSPECTIONS, inspection.inspection_id)
            raise

        return inspection

    def submit_inspection_result(
        self,
        inspection_id: str,
        inspector_id: str,
        quality_parameters: ModelInput,
        compliance: ModelInput,
        overall_result: InspectionResult | str,
        remarks: Optional[str] = None,
        visual_inspection: ModelInput | None = None,
        recommendations: Optional[str] = None,
    ) -> Inspection:
        """Finalise an inspection once: ``under_inspection → inspection_complete``."""
        inspection = self.get_inspection(inspection_id)
        batch = self.get_batch(inspection.batch_id)
        self._require_actor(
            inspector_id, {inspection.inspector_id, batch.assigned_inspector},
            "only the assigned inspector may submit this inspection",
        )
        result = InspectionResult(overall_result)
        if inspection.is_final:
            raise PreconditionFailed("inspection result already submitted")
        if result == InspectionResult.PENDING:
            raise PreconditionFailed("overall result must not be pending")
        next_status(batch.status, Trigger.SUBMIT_INSPECTION)

        now = self._now()
        party = self.get_party(inspector_id)
        signature = DigitalSignature(
            signed_at=now,
            signed_by=(party.did if party else None) or self.config.did_for(inspector_id),
            signature_hash=inspection_signature_hash(
                inspection_id, batch.batch_id, result.value, isoformat_z(now)
            ),
        )
        finalised = inspection.model_copy(update={
            "quality_parameters": _coerce(QualityParameters, quality_parameters),
            "compliance": _coerce(Compliance, compliance),
            "visual_inspection": _coerce(VisualInspection, visual_inspection or {}),
            "overall_result": result,
            "remarks": remarks,
            "recommendations": recommendations,
            "digital_signature": signature,
            "updated_at": now,
        })
        # Re-validate so remark length etc. are enforced on the merged record
        finalised = Inspection.model_validate(finalised.model_dump())

        doc = self.store.update(
            INSPECTIONS,
            inspection_id,
            finalised.model_dump(mode="json"),
            expected={"overall_result": InspectionResult.PENDING.value},
        )
        try:
            self.machine.apply(
                batch,
                Trigger.SUBMIT_INSPECTION,
                inspector_id,
                f"Inspection completed with result: {result.value}",
                expected={"inspection_id": inspection_id},
            )
        except CertificationError:
            # Reopen the inspection so the submission can be retried
            self._restore(
                INSPECTIONS, inspection_id, inspection.model_dump(mode="json"),
                expected={"overall_result": result.value},
            )
            raise
        return Inspection.model_validate(doc)

    def reject_batch(self, batch_id: str, actor_id: str, remarks: Optional[str] = None) -> Batch:
        """Close a batch whose inspection did not pass: ``inspection_complete → rejected``."""
        batch = self.get_batch(batch_id)
        next_status(batch.status, Trigger.REJECT)
        inspection = self.get_inspection(batch.inspection_id)
        self._require_actor(
            actor_id, {inspection.inspector_id}, "only the inspector may reject this batch"
        )
        if inspection.overall_result == InspectionResult.PASS:
            raise PreconditionFailed("cannot reject a batch whose inspection passed")

        return self.machine.apply(
            batch,
            Trigger.REJECT,
            actor_id,
            remarks or f"Rejected after inspection result: {inspection.overall_result.value}",
            expected={"credential_id": None},
        )

    # ── Credentials ─────────────────────────────────────────────────────────

    def issue_credential(self, batch_id: str, issuer: ModelInput) -> Credential:
        """
        Issue the batch's Digital Product Passport.

        Steps:
          1. Check the batch is ``inspection_complete`` with no credential.
          2. Build the credential document from batch + inspection + issuer.
          3. Build the QR payload and, if enabled, render the QR image.
          4. Store the credential, then move the batch to ``certified``.
        """
        issuer = _coerce(IssuerIdentity, issuer)
        batch = self.get_batch(batch_id)
        if batch.credential_id is not None:
            raise PreconditionFailed("credential already issued for this batch")
        next_status(batch.status, Trigger.ISSUE_CREDENTIAL)

        inspection = self.get_inspection(batch.inspection_id)
        now = self._now()
        vc = build_verifiable_credential(
            batch,
            inspection,
            issuer,
            exporter=self.get_party(batch.owner_id),
            config=self.config,
            proof_suite=self.proof_suite,
            now=now,
        )
        credential = Credential(
            credential_id=vc.id,
            batch_id=batch.batch_id,
            inspection_id=inspection.inspection_id,
            verifiable_credential=vc,
            issued_by=issuer.party_id,
            created_at=now,
            updated_at=now,
        )
        credential.qr_code = self._qr_artifact(credential, batch)

        self.store.insert(
            CREDENTIALS, credential.credential_id,
            credential.model_dump(mode="json", by_alias=True),
        )
        try:
            self.machine.apply(
                batch,
                Trigger.ISSUE_CREDENTIAL,
                issuer.party_id,
                "Digital Product Passport issued",
                changes={"credential_id": credential.credential_id},
                expected={"credential_id": None},
            )
        except CertificationError:
            self.store.delete(CREDENTIALS, credential.credential_id)
            raise

        logger.info(f"Issued {credential.credential_id} for batch {batch.batch_id}")
        return credential

    def _restore(self, collection: str, doc_id: str, prior: dict, expected: dict) -> None:
        """Undo a child-document write after its batch transition failed.

        The caller re-raises the transition error; a failed undo is logged.
        """
        try:
            self.store.update(collection, doc_id, prior, expected=expected)
        except CertificationError as e:
            logger.error(f"Could not restore {collection}/{doc_id} after failed transition: {e}")
        else:
            logger.warning(f"Restored {collection}/{doc_id} after failed batch transition")

    def _qr_artifact(self, credential: Credential, batch: Batch) -> QRArtifact:
        text = payload_text(build_qr_payload(credential, batch, self.config).verbose)
        data = None
        if self.config.generate_qr_images:
            try:
                data = render_qr_image(text)
            except Exception as e:
                logger.warning(f"QR image rendering failed for {credential.credential_id}: {e}")
        return QRArtifact(data=data, payload=text)

    def revoke_credential(
        self, credential_id: str, actor_id: str, reason: Optional[str] = None
    ) -> Credential:
        """Revoke an active credential: ``certified → revoked``. Terminal."""
        credential = self.get_credential(credential_id)
        if credential.status == CredentialStatus.REVOKED:
            raise PreconditionFailed("credential is already revoked")

        batch = self.get_batch(credential.batch_id)
        self._require_actor(
            actor_id,
            {credential.issued_by, batch.assigned_inspector},
            "only the issuing QA agency may revoke this credential",
        )
        next_status(batch.status, Trigger.REVOKE)

        now = self._now()
        reason = reason or "Revoked by issuer"
        revocation = Revocation(revoked_at=now, revoked_by=actor_id, reason=reason)
        doc = self.store.update(
            CREDENTIALS,
            credential.credential_id,
            {
                "status": CredentialStatus.REVOKED.value,
                "revocation": revocation.model_dump(mode="json"),
                "updated_at": now.isoformat(),
            },
            expected={"status": credential.status.value},
        )
        try:
            self.machine.apply(
                batch,
                Trigger.REVOKE,
                actor_id,
                f"Credential revoked: {reason}",
                expected={"credential_id": credential.credential_id},
            )
        except CertificationError:
            self._restore(
                CREDENTIALS,
                credential.credential_id,
                {
                    "status": credential.status.value,
                    "revocation": None,
                    "updated_at": credential.updated_at.isoformat(),
                },
                expected={"status": CredentialStatus.REVOKED.value},
            )
            raise
        logger.info(f"Revoked {credential.credential_id} by {actor_id}: {reason}")
        return Credential.model_validate(doc)

    def verify_credential(self, credential_id: str) -> VerificationResult:
        """Public verification by URN or bare UUID."""
        return self.verifier.verify(credential_id)

    def build_qr_payload(self, credential: Credential, batch: Batch) -> QRPayloads:
        return build_qr_payload(credential, batch, self.config)

    def resolve_qr_payload(self, data: Any) -> Credential:
        """Decode a scanned payload and load the credential it names."""
        return self.get_credential(decode_qr_payload(data))
