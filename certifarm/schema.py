"""
CertiFarm document schema — Pydantic v2 models.

Three persisted aggregates, referenced by identifier rather than embedded:
  Batch → Inspection → Credential (+ the Party directory)

The embedded verifiable-credential document uses W3C camelCase keys on the
wire (``by_alias=True``); every other model uses snake_case.
Timestamps inside the credential document are ISO-8601 strings.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


URN_PREFIX = "urn:uuid:"


def new_credential_urn() -> str:
    return f"{URN_PREFIX}{uuid.uuid4()}"


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class BatchStatus(str, Enum):
    SUBMITTED = "submitted"
    UNDER_INSPECTION = "under_inspection"
    INSPECTION_COMPLETE = "inspection_complete"
    CERTIFIED = "certified"
    REJECTED = "rejected"
    REVOKED = "revoked"


class ProductCategory(str, Enum):
    RICE = "rice"
    WHEAT = "wheat"
    SPICES = "spices"
    PULSES = "pulses"
    OILSEEDS = "oilseeds"
    FRUITS = "fruits"
    VEGETABLES = "vegetables"
    TEA = "tea"
    COFFEE = "coffee"
    OTHER = "other"


class QuantityUnit(str, Enum):
    KG = "kg"
    TONNES = "tonnes"
    QUINTALS = "quintals"


class Priority(str, Enum):
    NORMAL = "normal"
    URGENT = "urgent"
    EXPRESS = "express"


class DocumentType(str, Enum):
    LAB_REPORT = "lab_report"
    FARM_RECORD = "farm_record"
    PACKAGING_IMAGE = "packaging_image"
    INVOICE = "invoice"
    OTHER = "other"


class InspectionType(str, Enum):
    PHYSICAL = "physical"
    VIRTUAL = "virtual"
    LAB_BASED = "lab_based"


class InspectionResult(str, Enum):
    PENDING = "pending"
    PASS = "pass"
    FAIL = "fail"
    CONDITIONAL_PASS = "conditional_pass"


class Grade(str, Enum):
    A = "A"
    B = "B"
    C = "C"
    D = "D"
    REJECTED = "Rejected"


class CredentialStatus(str, Enum):
    ACTIVE = "active"
    REVOKED = "revoked"
    EXPIRED = "expired"
    SUSPENDED = "suspended"


class PartyRole(str, Enum):
    EXPORTER = "exporter"
    QA_AGENCY = "qa_agency"
    ADMIN = "admin"


# ---------------------------------------------------------------------------
# Parties
# ---------------------------------------------------------------------------

class Party(BaseModel):
    """Directory entry for an exporter, QA agency or administrator."""
    id: str = Field(min_length=1)
    role: PartyRole
    name: Optional[str] = None
    organization: Optional[str] = None
    did: Optional[str] = None
    certification_number: Optional[str] = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)


class IssuerIdentity(BaseModel):
    """The QA issuer on whose behalf a credential is issued."""
    party_id: str = Field(min_length=1)
    name: Optional[str] = None
    organization: Optional[str] = None
    did: Optional[str] = None
    certification_number: Optional[str] = None

    @classmethod
    def from_party(cls, party: Party) -> "IssuerIdentity":
        return cls(
            party_id=party.id,
            name=party.name,
            organization=party.organization,
            did=party.did,
            certification_number=party.certification_number,
        )


# ---------------------------------------------------------------------------
# Batch
# ---------------------------------------------------------------------------

class Quantity(BaseModel):
    value: float = Field(gt=0)
    unit: QuantityUnit = QuantityUnit.KG

    def display(self, sep: str = " ") -> str:
        """Render as e.g. ``1000 kg`` (integral values lose the ``.0``)."""
        v = int(self.value) if float(self.value).is_integer() else self.value
        return f"{v}{sep}{self.unit.value}"


class ProductInfo(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1)
    category: ProductCategory
    variety: Optional[str] = None
    quantity: Quantity
    harvest_date: Optional[datetime] = None
    packaging_date: Optional[datetime] = None


class GeoCoordinates(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class OriginInfo(BaseModel):
    farm_location: Optional[str] = None
    district: Optional[str] = None
    state: Optional[str] = None
    country: str = "India"
    geo_coordinates: Optional[GeoCoordinates] = None


class DestinationInfo(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    country: str = Field(min_length=1)
    port: Optional[str] = None
    importer_name: Optional[str] = None
    importer_contact: Optional[str] = None


class BatchDocument(BaseModel):
    name: str = Field(min_length=1)
    type: DocumentType = DocumentType.OTHER
    url: str = Field(min_length=1)
    uploaded_at: datetime = Field(default_factory=utcnow)


class StatusHistoryEntry(BaseModel):
    status: BatchStatus
    changed_by: Optional[str] = None
    changed_at: datetime = Field(default_factory=utcnow)
    remarks: Optional[str] = None


class Batch(BaseModel):
    batch_id: str
    owner_id: str
    product: ProductInfo
    origin: OriginInfo = Field(default_factory=OriginInfo)
    destination: DestinationInfo
    documents: list[BatchDocument] = Field(default_factory=list)
    status: BatchStatus = BatchStatus.SUBMITTED
    assigned_inspector: Optional[str] = None
    inspection_id: Optional[str] = None
    credential_id: Optional[str] = None
    status_history: list[StatusHistoryEntry] = Field(default_factory=list)
    notes: Optional[str] = None
    priority: Priority = Priority.NORMAL
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _check_references(self) -> "Batch":
        credentialed = self.status in (BatchStatus.CERTIFIED, BatchStatus.REVOKED)
        if credentialed != (self.credential_id is not None):
            raise ValueError(
                f"credential reference inconsistent with status {self.status.value}"
            )
        if self.status != BatchStatus.SUBMITTED and self.inspection_id is None:
            raise ValueError(
                f"status {self.status.value} requires an inspection reference"
            )
        return self


# ---------------------------------------------------------------------------
# Inspection
# ---------------------------------------------------------------------------

class MeasuredParameter(BaseModel):
    value: Optional[float] = None
    unit: str = "%"
    acceptable: bool = True
    max_allowed: Optional[float] = None


class PesticideResidue(MeasuredParameter):
    unit: str = "mg/kg"
    detected: bool = False
    pesticides_found: list[str] = Field(default_factory=list)


class MetalReading(BaseModel):
    value: Optional[float] = None
    acceptable: Optional[bool] = None


class HeavyMetals(BaseModel):
    lead: MetalReading = Field(default_factory=MetalReading)
    cadmium: MetalReading = Field(default_factory=MetalReading)
    arsenic: MetalReading = Field(default_factory=MetalReading)


class QualityParameters(BaseModel):
    moisture: MeasuredParameter = Field(default_factory=MeasuredParameter)
    foreign_matter: MeasuredParameter = Field(default_factory=MeasuredParameter)
    pesticide_residue: PesticideResidue = Field(default_factory=PesticideResidue)
    aflatoxin: MeasuredParameter = Field(
        default_factory=lambda: MeasuredParameter(unit="ppb")
    )
    heavy_metals: HeavyMetals = Field(default_factory=HeavyMetals)
    grade: Optional[Grade] = None
    organic_certified: bool = False


class VisualCheck(BaseModel):
    acceptable: Optional[bool] = None
    remarks: Optional[str] = None


class VisualInspection(BaseModel):
    color: VisualCheck = Field(default_factory=VisualCheck)
    texture: VisualCheck = Field(default_factory=VisualCheck)
    odor: VisualCheck = Field(default_factory=VisualCheck)
    packaging: VisualCheck = Field(default_factory=VisualCheck)


class Compliance(BaseModel):
    fssai_compliant: bool = False
    export_standards: bool = False
    destination_country_standards: bool = False
    iso_compliant: bool = False
    iso_codes: list[str] = Field(default_factory=list)  # e.g. ["ISO 22000"]


class DigitalSignature(BaseModel):
    signed_at: datetime
    signed_by: str  # inspector DID
    signature_hash: str  # SHA-256 hex of the submission record


class Inspection(BaseModel):
    inspection_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    batch_id: str
    inspector_id: str
    inspection_date: datetime = Field(default_factory=utcnow)
    inspection_type: InspectionType = InspectionType.PHYSICAL
    quality_parameters: QualityParameters = Field(default_factory=QualityParameters)
    visual_inspection: VisualInspection = Field(default_factory=VisualInspection)
    compliance: Compliance = Field(default_factory=Compliance)
    overall_result: InspectionResult = InspectionResult.PENDING
    remarks: Optional[str] = Field(default=None, max_length=2000)
    recommendations: Optional[str] = None
    digital_signature: Optional[DigitalSignature] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_final(self) -> bool:
        return self.overall_result != InspectionResult.PENDING

    def all_parameters_acceptable(self) -> bool:
        """True unless some parameter is explicitly marked unacceptable."""
        qp = self.quality_parameters
        metals = qp.heavy_metals
        return (
            qp.moisture.acceptable
            and qp.foreign_matter.acceptable
            and qp.pesticide_residue.acceptable
            and qp.aflatoxin.acceptable
            and metals.lead.acceptable is not False
            and metals.cadmium.acceptable is not False
            and metals.arsenic.acceptable is not False
        )


# ---------------------------------------------------------------------------
# Verifiable credential document (W3C wire names)
# ---------------------------------------------------------------------------

class _VCModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class CredentialIssuer(_VCModel):
    id: str  # issuer DID
    name: Optional[str] = None
    type: str = "QualityAssuranceAgency"
    certification_number: str = Field(alias="certificationNumber")


class SubjectProduct(_VCModel):
    name: str
    category: str
    variety: str = "Standard"
    quantity: str  # e.g. "1000 kg"
    batch_id: str = Field(alias="batchId")
    harvest_date: Optional[str] = Field(default=None, alias="harvestDate")
    packaging_date: Optional[str] = Field(default=None, alias="packagingDate")


class SubjectOrigin(_VCModel):
    country: str
    state: Optional[str] = None
    district: Optional[str] = None
    farm_location: Optional[str] = Field(default=None, alias="farmLocation")
    geo_coordinates: Optional[GeoCoordinates] = Field(
        default=None, alias="geoCoordinates"
    )


class SubjectDestination(_VCModel):
    country: str
    port: Optional[str] = None
    importer_name: Optional[str] = Field(default=None, alias="importerName")


class SubjectQualityParameters(_VCModel):
    moisture_content: str = Field(alias="moistureContent")
    foreign_matter: str = Field(alias="foreignMatter")
    pesticide_status: str = Field(alias="pesticideStatus")
    aflatoxin_level: str = Field(alias="aflatoxinLevel")
    organic_certified: bool = Field(default=False, alias="organicCertified")


class SubjectCompliance(_VCModel):
    fssai_compliant: bool = Field(default=False, alias="fssaiCompliant")
    export_standards: bool = Field(default=False, alias="exportStandards")
    destination_country_standards: bool = Field(
        default=False, alias="destinationCountryStandards"
    )
    iso_compliant: bool = Field(default=False, alias="isoCompliant")
    iso_codes: tuple[str, ...] = Field(default=(), alias="isoCodes")


class QualityCertification(_VCModel):
    inspection_id: str = Field(alias="inspectionId")
    inspection_date: str = Field(alias="inspectionDate")
    inspection_type: str = Field(alias="inspectionType")
    grade: str = "A"
    overall_result: str = Field(alias="overallResult")
    quality_parameters: SubjectQualityParameters = Field(alias="qualityParameters")
    compliance: SubjectCompliance


class CredentialSubject(_VCModel):
    id: str  # exporter DID
    type: str = "AgriculturalProduct"
    product: SubjectProduct
    origin: SubjectOrigin
    destination: SubjectDestination
    quality_certification: QualityCertification = Field(alias="qualityCertification")


class _ProofBase(_VCModel):
    created: str
    verification_method: str = Field(alias="verificationMethod")
    proof_purpose: str = Field(default="assertionMethod", alias="proofPurpose")
    proof_value: str = Field(alias="proofValue")


class PlaceholderProof(_ProofBase):
    """Hash-based tamper-evidence token. Not a signature."""
    type: Literal["Sha256PlaceholderProof"] = "Sha256PlaceholderProof"


class Ed25519Proof(_ProofBase):
    """Detached Ed25519 signature over the credential (no backend yet)."""
    type: Literal["Ed25519Signature2020"] = "Ed25519Signature2020"


Proof = Annotated[Union[PlaceholderProof, Ed25519Proof], Field(discriminator="type")]


DEFAULT_CONTEXT = (
    "https://www.w3.org/2018/credentials/v1",
    "https://w3id.org/security/suites/ed25519-2020/v1",
    "https://certifarm.example.com/contexts/dpp/v1",
)

DEFAULT_TYPES = (
    "VerifiableCredential",
    "DigitalProductPassport",
    "AgriculturalQualityCertificate",
)


class VerifiableCredential(_VCModel):
    context: tuple[str, ...] = Field(default=DEFAULT_CONTEXT, alias="@context")
    id: str  # urn:uuid:...
    type: tuple[str, ...] = DEFAULT_TYPES
    issuer: CredentialIssuer
    issuance_date: str = Field(alias="issuanceDate")
    expiration_date: str = Field(alias="expirationDate")
    credential_subject: CredentialSubject = Field(alias="credentialSubject")
    proof: Proof

    def to_document(self) -> dict:
        """JSON-ready dict with W3C key names."""
        return self.model_dump(mode="json", by_alias=True)


# ---------------------------------------------------------------------------
# Credential record
# ---------------------------------------------------------------------------

class QRArtifact(BaseModel):
    data: Optional[str] = None  # PNG data URL
    payload: str  # JSON text of the verbose QR payload


class Revocation(BaseModel):
    revoked_at: datetime
    revoked_by: str
    reason: str


class Credential(BaseModel):
    credential_id: str  # urn:uuid:...
    batch_id: str
    inspection_id: str
    verifiable_credential: VerifiableCredential
    qr_code: Optional[QRArtifact] = None
    status: CredentialStatus = CredentialStatus.ACTIVE
    revocation: Optional[Revocation] = None
    verification_count: int = Field(default=0, ge=0)
    last_verified_at: Optional[datetime] = None
    issued_by: str
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def short_id(self) -> str:
        return self.credential_id.removeprefix(URN_PREFIX)


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------

class VerificationChecks(BaseModel):
    not_expired: bool = True
    not_revoked: bool = True
    signature_valid: bool = True  # structural presence only
    issuer_trusted: bool = True  # no trust registry yet


class VerificationResult(BaseModel):
    credential_id: str
    is_valid: bool
    checks: VerificationChecks
    errors: list[str] = Field(default_factory=list)
    status: CredentialStatus
    issuance_date: str
    expiration_date: str
    verification_count: int = 0
    last_verified_at: Optional[datetime] = None
    verified_at: datetime = Field(default_factory=utcnow)
    issuer: Optional[CredentialIssuer] = None
    credential_subject: Optional[CredentialSubject] = None


# ---------------------------------------------------------------------------
# QR payloads
# ---------------------------------------------------------------------------

class VerboseQRPayload(BaseModel):
    v: str = "1.0"
    id: str
    bid: str
    prod: str
    cat: str
    qty: str
    origin: str
    dest: str
    grade: str
    result: str
    issuer: Optional[str] = None
    issued: str
    expires: str
    verify: str


class CompactQRPayload(BaseModel):
    i: str  # credential id without the urn prefix
    b: str
    p: str
    g: str
    r: str
    d: str  # issuance date, YYYY-MM-DD
    s: int  # 1 = active, 0 otherwise


class QRPayloads(BaseModel):
    verbose: VerboseQRPayload
    compact: CompactQRPayload
