from __future__ import annotations

import base64
import hashlib
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple

import pytest
from cryptography.hazmat.primitives.asymmetric import ec

from appattest_server import ServerSettings
from attest_provider import AttestationProvider, ProviderSettings, SoftwareAuthority
from attest_provider.models import key_id_for
from attest_provider.records import (
    AAGUID_DEVELOPMENT,
    build_attestation_object,
    build_authenticator_data,
)

TEAM_ID = "TEAM123456"
BUNDLE_ID = "com.example.attest"
APP_ID = f"{TEAM_ID}.{BUNDLE_ID}"
CA_SUBJECT = "Software App Attestation CA 1"


@pytest.fixture(autouse=True)
def fake_keyring(monkeypatch):
    storage: Dict[Tuple[str, str], str] = {}

    def set_password(service: str, username: str, password: str) -> None:
        storage[(service, username)] = password

    def get_password(service: str, username: str) -> str | None:
        return storage.get((service, username))

    def delete_password(service: str, username: str) -> None:
        storage.pop((service, username), None)

    monkeypatch.setattr("attest_provider.storage.keyring.set_password", set_password)
    monkeypatch.setattr("attest_provider.storage.keyring.get_password", get_password)
    monkeypatch.setattr("attest_provider.storage.keyring.delete_password", delete_password)
    yield storage


@pytest.fixture(scope="session")
def authority() -> SoftwareAuthority:
    return SoftwareAuthority.generate(CA_SUBJECT)


@pytest.fixture
def trust_anchor(authority):
    return authority.trust_anchor()


@pytest.fixture
def provider_settings(tmp_path: Path) -> ProviderSettings:
    return ProviderSettings(
        keyring_service="test-service",
        key_index_path=str(tmp_path / "index.json"),
        team_id=TEAM_ID,
        bundle_id=BUNDLE_ID,
        environment="development",
        ca_subject=CA_SUBJECT,
    )


@pytest.fixture
def provider(provider_settings, authority) -> AttestationProvider:
    return AttestationProvider(settings=provider_settings, authority=authority)


@pytest.fixture
def server_settings(authority) -> ServerSettings:
    return ServerSettings(
        team_id=TEAM_ID,
        bundle_id=BUNDLE_ID,
        allow_development_environment=True,
        trust_anchor_pem=authority.root_certificate_pem,
        ca_subject=authority.ca_subject,
    )


@pytest.fixture
def make_attestation(authority) -> Callable[..., Tuple[str, bytes]]:
    """Build an attestation object by hand so individual fields can be bent."""

    def build(
        challenge: str,
        private_key: Optional[ec.EllipticCurvePrivateKey] = None,
        app_id: str = APP_ID,
        counter: int = 0,
        aaguid: bytes = AAGUID_DEVELOPMENT,
        credential_id: Optional[bytes] = None,
        nonce: Optional[bytes] = None,
    ) -> Tuple[str, bytes]:
        private_key = private_key or ec.generate_private_key(ec.SECP256R1())
        key_id = key_id_for(private_key.public_key())
        if credential_id is None:
            credential_id = base64.b64decode(key_id)
        auth_data = build_authenticator_data(app_id, counter, aaguid, credential_id)
        if nonce is None:
            client_data_hash = hashlib.sha256(challenge.encode("utf-8")).digest()
            nonce = hashlib.sha256(auth_data + client_data_hash).digest()
        leaf = authority.issue_leaf(private_key.public_key(), nonce, "App Attest Leaf")
        attestation = build_attestation_object(
            [leaf, authority.intermediate_certificate_der],
            receipt=b"receipt",
            auth_data=auth_data,
        )
        return key_id, attestation

    return build


@pytest.fixture
def app_id() -> str:
    return APP_ID
