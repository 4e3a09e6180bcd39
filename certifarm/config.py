"""Engine configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass, field


@dataclass
class EngineConfig:
    """
    Runtime settings for the certification engine.

    The credential validity window is fixed and is not part of this config.
    """
    # Public verification endpoint embedded in QR payloads
    verify_base_url: str = "https://certifarm.example.com"

    # Prefix for DIDs synthesised from party identifiers
    did_method: str = "did:certifarm"

    # Attach a PNG QR artifact to issued credentials
    generate_qr_images: bool = True

    # Party ids that satisfy every actor-relationship check
    admin_ids: frozenset[str] = field(default_factory=frozenset)

    def did_for(self, party_id: str) -> str:
        return f"{self.did_method}:{party_id}"

    def verification_url(self, credential_id: str) -> str:
        return f"{self.verify_base_url.rstrip('/')}/verify/{credential_id}"

    def is_admin(self, party_id: str) -> bool:
        return party_id in self.admin_ids

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build a config from ``CERTIFARM_*`` environment variables."""
        defaults = cls()
        admins = os.environ.get("CERTIFARM_ADMIN_IDS", "")
        qr = os.environ.get("CERTIFARM_QR_IMAGES")
        return cls(
            verify_base_url=os.environ.get(
                "CERTIFARM_VERIFY_BASE_URL", defaults.verify_base_url
            ),
            did_method=os.environ.get("CERTIFARM_DID_METHOD", defaults.did_method),
            generate_qr_images=(
                defaults.generate_qr_images
                if qr is None
                else qr.strip().lower() in ("1", "true", "yes", "on")
            ),
            admin_ids=frozenset(a.strip() for a in admins.split(",") if a.strip()),
        )
