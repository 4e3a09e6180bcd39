"""
Verifiable Credential builder — assembles a Digital Product Passport from a
batch, its passed inspection and the issuer identity.

The subject block is a point-in-time snapshot: values are copied out of the
batch and inspection at issuance, so later edits never reach an issued
credential. Persisting the credential and linking it to the batch is the
caller's job.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional, Protocol

from .config import EngineConfig
from .crypto import isoformat_z, placeholder_proof_value
from .errors import PreconditionFailed
from .schema import (
    Batch,
    CredentialIssuer,
    CredentialSubject,
    Inspection,
    InspectionResult,
    IssuerIdentity,
    MeasuredParameter,
    Party,
    PlaceholderProof,
    Proof,
    QualityCertification,
    SubjectCompliance,
    SubjectDestination,
    SubjectOrigin,
    SubjectProduct,
    SubjectQualityParameters,
    VerifiableCredential,
    new_credential_urn,
    utcnow,
)

# Fixed validity window
CREDENTIAL_VALIDITY = timedelta(days=365)

DEFAULT_CERTIFICATION_NUMBER = "QA-CERT-001"


class ProofSuite(Protocol):
    """Produces the proof block for a credential."""

    def create_proof(
        self,
        credential_id: str,
        batch_id: str,
        issued_at: str,
        verification_method: str,
    ) -> Proof:
        ...


class PlaceholderProofSuite:
    """Hash placeholder: SHA-256 over ``{id}:{batchId}:{issued}``, base64'd."""

    def create_proof(
        self,
        credential_id: str,
        batch_id: str,
        issued_at: str,
        verification_method: str,
    ) -> PlaceholderProof:
        return PlaceholderProof(
            created=issued_at,
            verification_method=verification_method,
            proof_value=placeholder_proof_value(credential_id, batch_id, issued_at),
        )


def _fmt(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def _measured(param: MeasuredParameter, suffix: str) -> str:
    # An unset or zero reading is reported as within limits
    if not param.value:
        return "Within limits"
    return f"{_fmt(param.value)}{suffix}"


def _iso_or_none(dt: Optional[datetime]) -> Optional[str]:
    return isoformat_z(dt) if dt is not None else None


def build_credential_subject(
    batch: Batch,
    inspection: Inspection,
    exporter_did: str,
) -> CredentialSubject:
    """Snapshot the batch and inspection into a credential subject."""
    product = batch.product
    origin = batch.origin
    dest = batch.destination
    qp = inspection.quality_parameters
    compliance = inspection.compliance

    return CredentialSubject(
        id=exporter_did,
        product=SubjectProduct(
            name=product.name,
            category=product.category.value,
            variety=product.variety or "Standard",
            quantity=product.quantity.display(),
            batch_id=batch.batch_id,
            harvest_date=_iso_or_none(product.harvest_date),
            packaging_date=_iso_or_none(product.packaging_date),
        ),
        origin=SubjectOrigin(
            country=origin.country or "India",
            state=origin.state,
            district=origin.district,
            farm_location=origin.farm_location,
            geo_coordinates=(
                origin.geo_coordinates.model_copy() if origin.geo_coordinates else None
            ),
        ),
        destination=SubjectDestination(
            country=dest.country,
            port=dest.port,
            importer_name=dest.importer_name,
        ),
        quality_certification=QualityCertification(
            inspection_id=inspection.inspection_id,
            inspection_date=isoformat_z(inspection.inspection_date),
            inspection_type=inspection.inspection_type.value,
            grade=qp.grade.value if qp.grade else "A",
            overall_result=inspection.overall_result.value,
            quality_parameters=SubjectQualityParameters(
                moisture_content=_measured(qp.moisture, "%"),
                foreign_matter=_measured(qp.foreign_matter, "%"),
                pesticide_status=(
                    "Detected - Within safe limits"
                    if qp.pesticide_residue.detected
                    else "Not Detected"
                ),
                aflatoxin_level=_measured(qp.aflatoxin, " ppb"),
                organic_certified=qp.organic_certified,
            ),
            compliance=SubjectCompliance(
                fssai_compliant=compliance.fssai_compliant,
                export_standards=compliance.export_standards,
                destination_country_standards=compliance.destination_country_standards,
                iso_compliant=compliance.iso_compliant,
                iso_codes=tuple(compliance.iso_codes),
            ),
        ),
    )


def build_verifiable_credential(
    batch: Batch,
    inspection: Inspection,
    issuer: IssuerIdentity,
    exporter: Optional[Party] = None,
    config: EngineConfig | None = None,
    proof_suite: ProofSuite | None = None,
    now: Optional[datetime] = None,
) -> VerifiableCredential:
    """
    Build the credential document for a batch whose inspection passed.

    Steps:
      1. Check issuance preconditions.
      2. Allocate a ``urn:uuid`` identifier; issued = now, expires = now + 365d.
      3. Snapshot the subject from batch + inspection.
      4. Attach the proof block from *proof_suite*.

    Raises ``PreconditionFailed`` if the inspection did not pass or the
    batch already carries a credential.
    """
    if inspection.overall_result != InspectionResult.PASS:
        raise PreconditionFailed("inspection must pass before credential issuance")
    if batch.credential_id is not None:
        raise PreconditionFailed("credential already issued for this batch")
    if inspection.batch_id != batch.batch_id:
        raise PreconditionFailed("inspection does not belong to this batch")

    config = config or EngineConfig()
    proof_suite = proof_suite or PlaceholderProofSuite()
    now = now or utcnow()

    credential_id = new_credential_urn()
    issued_at = isoformat_z(now)
    expires_at = isoformat_z(now + CREDENTIAL_VALIDITY)

    issuer_did = issuer.did or config.did_for(issuer.party_id)
    exporter_did = (exporter.did if exporter else None) or config.did_for(batch.owner_id)

    return VerifiableCredential(
        id=credential_id,
        issuer=CredentialIssuer(
            id=issuer_did,
            name=issuer.organization or issuer.name,
            certification_number=issuer.certification_number or DEFAULT_CERTIFICATION_NUMBER,
        ),
        issuance_date=issued_at,
        expiration_date=expires_at,
        credential_subject=build_credential_subject(batch, inspection, exporter_did),
        proof=proof_suite.create_proof(
            credential_id=credential_id,
            batch_id=batch.batch_id,
            issued_at=issued_at,
            verification_method=f"{issuer_did}#key-1",
        ),
    )


def recompute_placeholder_proof(document: dict) -> Optional[str]:
    """Recompute the placeholder proof value for a credential document.

    Returns None when the document does not carry a placeholder proof.
    """
    proof = document.get("proof") or {}
    if proof.get("type") != PlaceholderProof.model_fields["type"].default:
        return None
    subject = document.get("credentialSubject") or {}
    batch_id = (subject.get("product") or {}).get("batchId", "")
    return placeholder_proof_value(
        document.get("id", ""), batch_id, document.get("issuanceDate", "")
    )
