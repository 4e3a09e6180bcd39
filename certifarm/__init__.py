"""CertiFarm — batch lifecycle, passport issuance and verification engine."""

from .schema import (
    Batch,
    BatchStatus,
    Credential,
    CredentialStatus,
    Ed25519Proof,
    Inspection,
    InspectionResult,
    IssuerIdentity,
    Party,
    PartyRole,
    PlaceholderProof,
    QRPayloads,
    VerifiableCredential,
    VerificationResult,
)
from .errors import (
    CertificationError,
    Conflict,
    DuplicateKey,
    NotFound,
    PreconditionFailed,
    Unauthorized,
    Unavailable,
)
from .config import EngineConfig
from .store import DocumentStore, InMemoryStore
from .lifecycle import (
    AssignmentStrategy,
    BatchStateMachine,
    FirstActiveInspector,
    LeastLoadedInspector,
    Trigger,
    generate_batch_id,
)
from .credential import PlaceholderProofSuite, build_verifiable_credential
from .qr import (
    build_qr_payload,
    decode_qr_payload,
    normalize_credential_id,
    render_qr_image,
    render_qr_svg,
)
from .verifier import CredentialVerifier, evaluate_credential
from .service import CertificationService

__all__ = [
    "Batch",
    "BatchStatus",
    "Credential",
    "CredentialStatus",
    "Ed25519Proof",
    "Inspection",
    "InspectionResult",
    "IssuerIdentity",
    "Party",
    "PartyRole",
    "PlaceholderProof",
    "QRPayloads",
    "VerifiableCredential",
    "VerificationResult",
    "CertificationError",
    "Conflict",
    "DuplicateKey",
    "NotFound",
    "PreconditionFailed",
    "Unauthorized",
    "Unavailable",
    "EngineConfig",
    "DocumentStore",
    "InMemoryStore",
    "AssignmentStrategy",
    "BatchStateMachine",
    "FirstActiveInspector",
    "LeastLoadedInspector",
    "Trigger",
    "generate_batch_id",
    "PlaceholderProofSuite",
    "build_verifiable_credential",
    "build_qr_payload",
    "decode_qr_payload",
    "normalize_credential_id",
    "render_qr_image",
    "render_qr_svg",
    "CredentialVerifier",
    "evaluate_credential",
    "CertificationService",
]
