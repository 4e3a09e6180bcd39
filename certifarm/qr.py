"""
QR payload encoder.

Two shapes are built from a credential and its batch:
  - verbose: versioned, readable keys plus a verification URL
  - compact: single-letter keys for smaller QR images

Both are pure functions. ``decode_qr_payload`` recovers the credential URN
from either shape. ``render_qr_image`` turns a payload into a PNG data URL
and ``render_qr_svg`` into an SVG document.
"""

from __future__ import annotations

import base64
import io
import json
from typing import Any, Mapping, Union

import qrcode
from qrcode.constants import ERROR_CORRECT_M
from qrcode.image.pil import PilImage
from qrcode.image.svg import SvgPathImage

from .config import EngineConfig
from .schema import (
    URN_PREFIX,
    Batch,
    CompactQRPayload,
    Credential,
    CredentialStatus,
    QRPayloads,
    VerboseQRPayload,
)

PAYLOAD_VERSION = "1.0"


def normalize_credential_id(value: str) -> str:
    """Accept a bare UUID or a ``urn:uuid:`` identifier; return the URN."""
    value = value.strip()
    if not value:
        raise ValueError("empty credential identifier")
    return value if value.startswith(URN_PREFIX) else f"{URN_PREFIX}{value}"


def build_verbose_payload(
    credential: Credential,
    batch: Batch,
    config: EngineConfig | None = None,
) -> VerboseQRPayload:
    config = config or EngineConfig()
    vc = credential.verifiable_credential
    cert = vc.credential_subject.quality_certification
    return VerboseQRPayload(
        v=PAYLOAD_VERSION,
        id=credential.credential_id,
        bid=batch.batch_id,
        prod=batch.product.name,
        cat=batch.product.category.value,
        qty=batch.product.quantity.display(sep=""),
        origin=batch.origin.country or "India",
        dest=batch.destination.country,
        grade=cert.grade,
        result=cert.overall_result,
        issuer=vc.issuer.name,
        issued=vc.issuance_date,
        expires=vc.expiration_date,
        verify=config.verification_url(credential.credential_id),
    )


def build_compact_payload(credential: Credential, batch: Batch) -> CompactQRPayload:
    vc = credential.verifiable_credential
    cert = vc.credential_subject.quality_certification
    return CompactQRPayload(
        i=credential.short_id,
        b=batch.batch_id,
        p=vc.credential_subject.product.name,
        g=cert.grade,
        r=cert.overall_result,
        d=vc.issuance_date.split("T")[0],
        s=1 if credential.status == CredentialStatus.ACTIVE else 0,
    )


def build_qr_payload(
    credential: Credential,
    batch: Batch,
    config: EngineConfig | None = None,
) -> QRPayloads:
    """Both payload shapes for *credential*."""
    return QRPayloads(
        verbose=build_verbose_payload(credential, batch, config),
        compact=build_compact_payload(credential, batch),
    )


def payload_text(payload: VerboseQRPayload | CompactQRPayload) -> str:
    """Whitespace-free JSON text to embed in a QR symbol."""
    return json.dumps(payload.model_dump(mode="json"), separators=(",", ":"))


def decode_qr_payload(data: Union[str, bytes, Mapping[str, Any]]) -> str:
    """
    Extract the credential URN from a scanned payload.

    Accepts the JSON text or an already-parsed mapping of either shape,
    or a bare identifier.
    """
    if isinstance(data, bytes):
        data = data.decode("utf-8")
    if isinstance(data, str):
        text = data.strip()
        if not text.startswith("{"):
            return normalize_credential_id(text)
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValueError(f"QR payload is not valid JSON: {e}") from e

    if not isinstance(data, Mapping):
        raise ValueError("QR payload must be a JSON object")
    if "id" in data:
        return normalize_credential_id(str(VerboseQRPayload.model_validate(data).id))
    if "i" in data:
        return normalize_credential_id(CompactQRPayload.model_validate(data).i)
    raise ValueError("QR payload carries no credential identifier")


def _build_qr(text: str, box_size: int, border: int) -> qrcode.QRCode:
    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_M, box_size=box_size, border=border)
    qr.add_data(text)
    qr.make(fit=True)
    return qr


def render_qr_image(text: str, box_size: int = 10, border: int = 2) -> str:
    """Render *text* into a PNG QR code and return it as a data URL."""
    qr = _build_qr(text, box_size, border)
    img = qr.make_image(image_factory=PilImage, fill_color="black", back_color="white")

    buf = io.BytesIO()
    img.save(buf, format="PNG")
    encoded = base64.b64encode(buf.getvalue()).decode("ascii")
    return f"data:image/png;base64,{encoded}"


def render_qr_svg(text: str, box_size: int = 10, border: int = 2) -> str:
    """Render *text* into a standalone SVG document (single path element)."""
    img = _build_qr(text, box_size, border).make_image(image_factory=SvgPathImage)
    return img.to_string(encoding="unicode")
