"""Tests for CertiFarm document schema validation."""

import pytest
from pydantic import ValidationError

from certifarm.schema import (
    Batch,
    BatchStatus,
    Ed25519Proof,
    Inspection,
    InspectionResult,
    PlaceholderProof,
    ProductInfo,
    Quantity,
    VerifiableCredential,
)

from conftest import DESTINATION, PRODUCT


def _batch(**overrides):
    data = {
        "batch_id": "CF-2610-ABC123",
        "owner_id": "exp-1",
        "product": PRODUCT,
        "destination": DESTINATION,
    }
    data.update(overrides)
    return Batch.model_validate(data)


class TestEnums:
    def test_batch_status_values(self):
        assert {s.value for s in BatchStatus} == {
            "submitted", "under_inspection", "inspection_complete",
            "certified", "rejected", "revoked",
        }

    def test_inspection_result_values(self):
        assert InspectionResult.PENDING == "pending"
        assert InspectionResult.CONDITIONAL_PASS == "conditional_pass"


class TestProduct:
    def test_name_is_trimmed(self):
        p = ProductInfo.model_validate({**PRODUCT, "name": "  Basmati Rice  "})
        assert p.name == "Basmati Rice"

    def test_blank_name_rejected(self):
        with pytest.raises(ValidationError):
            ProductInfo.model_validate({**PRODUCT, "name": "   "})

    def test_unknown_category_rejected(self):
        with pytest.raises(ValidationError):
            ProductInfo.model_validate({**PRODUCT, "category": "timber"})

    def test_quantity_must_be_positive(self):
        with pytest.raises(ValidationError):
            Quantity(value=0)

    def test_quantity_display(self):
        assert Quantity(value=1000).display() == "1000 kg"
        assert Quantity(value=2.5, unit="tonnes").display(sep="") == "2.5tonnes"


class TestBatchInvariants:
    def test_defaults(self):
        b = _batch()
        assert b.status == BatchStatus.SUBMITTED
        assert b.origin.country == "India"
        assert b.priority.value == "normal"

    def test_destination_country_required(self):
        with pytest.raises(ValidationError):
            _batch(destination={"port": "Jebel Ali"})

    def test_certified_requires_credential(self):
        with pytest.raises(ValidationError):
            _batch(status="certified", inspection_id="i1")

    def test_credential_only_when_certified_or_revoked(self):
        with pytest.raises(ValidationError):
            _batch(status="inspection_complete", inspection_id="i1", credential_id="urn:uuid:x")
        assert _batch(status="revoked", inspection_id="i1", credential_id="urn:uuid:x")

    def test_inspection_required_after_submitted(self):
        with pytest.raises(ValidationError):
            _batch(status="under_inspection")


class TestInspection:
    def test_remarks_length_limit(self):
        with pytest.raises(ValidationError):
            Inspection(batch_id="b", inspector_id="q", remarks="x" * 2001)

    def test_all_parameters_acceptable(self):
        insp = Inspection(batch_id="b", inspector_id="q")
        assert insp.all_parameters_acceptable() is True

        insp = Inspection.model_validate({
            "batch_id": "b", "inspector_id": "q",
            "quality_parameters": {"heavy_metals": {"lead": {"value": 0.4, "acceptable": False}}},
        })
        assert insp.all_parameters_acceptable() is False

    def test_aflatoxin_unit_default(self):
        assert Inspection(batch_id="b", inspector_id="q").quality_parameters.aflatoxin.unit == "ppb"


class TestProofUnion:
    def _doc(self, credential, proof):
        doc = credential.verifiable_credential.to_document()
        doc["proof"] = proof
        return doc

    def test_placeholder_selected_by_type(self, credential):
        vc = VerifiableCredential.model_validate(credential.verifiable_credential.to_document())
        assert isinstance(vc.proof, PlaceholderProof)

    def test_ed25519_selected_by_type(self, credential):
        doc = self._doc(credential, {
            "type": "Ed25519Signature2020",
            "created": "2026-10-17T00:00:00.000Z",
            "verificationMethod": "did:certifarm:agriqa#key-1",
            "proofValue": "z3abc",
        })
        vc = VerifiableCredential.model_validate(doc)
        assert isinstance(vc.proof, Ed25519Proof)
        assert vc.proof.proof_purpose == "assertionMethod"

    def test_unknown_proof_type_rejected(self, credential):
        doc = self._doc(credential, {
            "type": "RsaSignature2018",
            "created": "2026-10-17T00:00:00.000Z",
            "verificationMethod": "x",
            "proofValue": "y",
        })
        with pytest.raises(ValidationError):
            VerifiableCredential.model_validate(doc)


class TestCredentialDocument:
    def test_wire_names(self, credential):
        doc = credential.verifiable_credential.to_document()
        assert set(doc) == {
            "@context", "id", "type", "issuer", "issuanceDate",
            "expirationDate", "credentialSubject", "proof",
        }
        assert doc["credentialSubject"]["product"]["batchId"].startswith("CF-")
        assert doc["proof"]["proofPurpose"] == "assertionMethod"

    def test_document_is_frozen(self, credential):
        with pytest.raises(ValidationError):
            credential.verifiable_credential.id = "urn:uuid:other"
