"""Shared fixtures: a service with one exporter and one QA agency registered."""

from __future__ import annotations

import pytest

from certifarm.config import EngineConfig
from certifarm.schema import IssuerIdentity
from certifarm.service import CertificationService

EXPORTER = "exp-asha"
INSPECTOR = "qa-agriqa"
OTHER_INSPECTOR = "qa-other"
ADMIN = "admin-1"

PRODUCT = {
    "name": "Basmati Rice",
    "category": "rice",
    "quantity": {"value": 1000, "unit": "kg"},
}
ORIGIN = {"state": "Punjab", "district": "Amritsar", "farm_location": "Ajnala"}
DESTINATION = {"country": "UAE", "port": "Jebel Ali"}

QUALITY = {
    "moisture": {"value": 12.5, "max_allowed": 14},
    "pesticide_residue": {"detected": False},
    "grade": "A",
    "organic_certified": True,
}
COMPLIANCE = {
    "fssai_compliant": True,
    "export_standards": True,
    "iso_compliant": True,
    "iso_codes": ["ISO 22000"],
}


@pytest.fixture
def service():
    svc = CertificationService(
        config=EngineConfig(generate_qr_images=False, admin_ids=frozenset({ADMIN})),
    )
    svc.register_party({
        "id": EXPORTER,
        "role": "exporter",
        "name": "Asha",
        "organization": "Asha Exports Pvt Ltd",
        "did": "did:certifarm:asha",
    })
    svc.register_party({
        "id": INSPECTOR,
        "role": "qa_agency",
        "name": "R. Mehta",
        "organization": "AgriQA Labs",
        "did": "did:certifarm:agriqa",
        "certification_number": "QA-CERT-042",
    })
    return svc


@pytest.fixture
def issuer(service):
    return IssuerIdentity.from_party(service.get_party(INSPECTOR))


@pytest.fixture
def batch(service):
    return service.create_batch(PRODUCT, ORIGIN, DESTINATION, owner_id=EXPORTER)


@pytest.fixture
def inspection(service, batch):
    return service.start_inspection(batch.batch_id, INSPECTOR)


@pytest.fixture
def passed_batch(service, batch, inspection):
    service.submit_inspection_result(
        inspection.inspection_id, INSPECTOR, QUALITY, COMPLIANCE, "pass",
        remarks="Meets export grade",
    )
    return service.get_batch(batch.batch_id)


@pytest.fixture
def credential(service, passed_batch, issuer):
    return service.issue_credential(passed_batch.batch_id, issuer)
