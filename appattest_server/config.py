"""Pydantic based configuration for the App Attest server."""

from __future__ import annotations

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .certificates import TrustAnchor

# https://www.apple.com/certificateauthority/private/
APPLE_APP_ATTESTATION_ROOT_CA = """-----BEGIN CERTIFICATE-----
MIICITCCAaegAwIBAgIQC/O+DvHN0uD7jG5yH2IXmDAKBggqhkjOPQQDAzBSMSYw
JAYDVQQDDB1BcHBsZSBBcHAgQXR0ZXN0YXRpb24gUm9vdCBDQTETMBEGA1UECgwK
QXBwbGUgSW5jLjETMBEGA1UECAwKQ2FsaWZvcm5pYTAeFw0yMDAzMTgxODMyNTNa
Fw00NTAzMTUwMDAwMDBaMFIxJjAkBgNVBAMMHUFwcGxlIEFwcCBBdHRlc3RhdGlv
biBSb290IENBMRMwEQYDVQQKDApBcHBsZSBJbmMuMRMwEQYDVQQIDApDYWxpZm9y
bmlhMHYwEAYHKoZIzj0CAQYFK4EEACIDYgAERTHhmLW07ATaFQIEVwTtT4dyctdh
NbJhFs/Ii2FdCgAHGbpphY3+d8qjuDngIN3WVhQUBHAoMeQ/cLiP1sOUtgjqK9au
Yen1mMEvRq9Sk3Jm5X8U62H+xTD3FE9TgS41o0IwQDAPBgNVHRMBAf8EBTADAQH/
MB0GA1UdDgQWBBSskRBTM72+aEH/pwyp5frq5eWKoTAOBgNVHQ8BAf8EBAMCAQYw
CgYIKoZIzj0EAwMDaAAwZQIwQgFGnByvsiVbpTKwSga0kP0e8EeDS4+sQmTvb7vn
53O5+FRXgeLhpJ06ysC5PrOyAjEAp5U4xDgEgllF7En3VcE3iexZZtKeYnpqtijV
oyFraWVIyd/dganmrduC1bmTBGwD
-----END CERTIFICATE-----
"""
APPLE_APP_ATTESTATION_CA_SUBJECT = "Apple App Attestation CA 1"


class ServerSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="APPATTEST_")

    team_id: str = Field(default="", description="Apple developer team identifier")
    bundle_id: str = Field(default="", description="Bundle identifier of the attested app")
    allow_development_environment: bool = Field(
        default=True,
        description="Accept keys attested in the App Attest development environment",
    )
    trust_anchor_pem: str = Field(
        default=APPLE_APP_ATTESTATION_ROOT_CA,
        description="PEM certificate or public key the intermediate must be signed by",
    )
    ca_subject: str = Field(
        default=APPLE_APP_ATTESTATION_CA_SUBJECT,
        description="Subject substring identifying the intermediate certificate",
    )
    database_url: Optional[str] = Field(
        default=None,
        description="SQLAlchemy connection string; the registry stays in memory when unset",
    )
    challenge_ttl: Optional[float] = Field(
        default=None,
        description="Seconds before an unused challenge expires; never when unset",
    )
    protected_resource: dict = Field(
        default_factory=lambda: {"secureData": "Top secret information"},
        description="Body returned by the assertion protected route",
    )

    @property
    def app_id(self) -> str:
        return f"{self.team_id}.{self.bundle_id}"

    def trust_anchor(self) -> TrustAnchor:
        return TrustAnchor.from_pem(self.trust_anchor_pem, self.ca_subject)
