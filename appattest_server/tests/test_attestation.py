from __future__ import annotations

import base64
import hashlib

import cbor2
import pytest
from cryptography.hazmat.primitives.asymmetric import ec

from appattest_server.attestation import Environment, verify_attestation
from appattest_server.challenges import ChallengeLedger
from appattest_server.errors import (
    AppIdMismatch,
    CredentialIdMismatch,
    InvalidChain,
    InvalidEnvironmentTag,
    InvalidInitialCounter,
    MalformedWireObject,
    NonceMismatch,
    PublicKeyMismatch,
)
from appattest_server.registry import InMemoryCredentialRegistry
from attest_provider import SoftwareAuthority
from attest_provider.models import raw_point
from attest_provider.records import AAGUID_PRODUCTION


def test_provider_attestation_registers_development_credential(provider, trust_anchor, app_id):
    ledger = ChallengeLedger()
    registry = InMemoryCredentialRegistry()
    challenge = ledger.issue()
    key_id = provider.generate_key()
    attestation = provider.attest_key(key_id, hashlib.sha256(challenge.encode()).digest())

    result = verify_attestation(attestation, challenge, key_id, app_id, trust_anchor, allow_development=True)
    registry.upsert(key_id, result.public_key, sign_count=0, environment=result.environment)
    ledger.consume(challenge)

    assert result.environment is Environment.DEVELOPMENT
    assert result.receipt
    assert base64.b64encode(hashlib.sha256(result.public_key).digest()).decode() == key_id
    credential = registry.lookup(key_id)
    assert credential.sign_count == 0
    assert credential.public_key == result.public_key


def test_production_aaguid_accepted_without_development(make_attestation, trust_anchor, app_id):
    private_key = ec.generate_private_key(ec.SECP256R1())
    key_id, attestation = make_attestation("chal", private_key=private_key, aaguid=AAGUID_PRODUCTION)

    result = verify_attestation(attestation, "chal", key_id, app_id, trust_anchor)

    assert result.environment is Environment.PRODUCTION
    assert result.public_key == raw_point(private_key.public_key())
    assert result.receipt == b"receipt"


def test_development_aaguid_rejected_unless_allowed(make_attestation, trust_anchor, app_id):
    key_id, attestation = make_attestation("chal")
    with pytest.raises(InvalidEnvironmentTag):
        verify_attestation(attestation, "chal", key_id, app_id, trust_anchor, allow_development=False)


def test_unknown_aaguid_rejected(make_attestation, trust_anchor, app_id):
    key_id, attestation = make_attestation("chal", aaguid=b"x" * 16)
    with pytest.raises(InvalidEnvironmentTag):
        verify_attestation(attestation, "chal", key_id, app_id, trust_anchor, allow_development=True)


def test_wrong_app_identifier_rejected(provider, trust_anchor):
    key_id = provider.generate_key()
    attestation = provider.attest_key(key_id, hashlib.sha256(b"chal").digest())
    with pytest.raises(AppIdMismatch):
        verify_attestation(
            attestation, "chal", key_id, "OTHERTEAM.com.example.other", trust_anchor, allow_development=True
        )


def test_initial_counter_must_be_zero(make_attestation, trust_anchor, app_id):
    key_id, attestation = make_attestation("chal", counter=1)
    with pytest.raises(InvalidInitialCounter):
        verify_attestation(attestation, "chal", key_id, app_id, trust_anchor, allow_development=True)


def test_nonce_bound_to_challenge(make_attestation, trust_anchor, app_id):
    key_id, attestation = make_attestation("chal")
    with pytest.raises(NonceMismatch):
        verify_attestation(attestation, "other", key_id, app_id, trust_anchor, allow_development=True)


def test_flipped_nonce_in_extension_rejected(make_attestation, trust_anchor, app_id):
    private_key = ec.generate_private_key(ec.SECP256R1())
    key_id, honest = make_attestation("chal", private_key=private_key)
    auth_data = cbor2.loads(honest)["authData"]
    nonce = bytearray(hashlib.sha256(auth_data + hashlib.sha256(b"chal").digest()).digest())
    nonce[0] ^= 0xFF
    key_id, attestation = make_attestation("chal", private_key=private_key, nonce=bytes(nonce))
    with pytest.raises(NonceMismatch):
        verify_attestation(attestation, "chal", key_id, app_id, trust_anchor, allow_development=True)


def test_key_identifier_must_match_public_key(make_attestation, trust_anchor, app_id):
    _, attestation = make_attestation("chal")
    other_key_id = base64.b64encode(b"\x01" * 32).decode()
    with pytest.raises(PublicKeyMismatch):
        verify_attestation(attestation, "chal", other_key_id, app_id, trust_anchor, allow_development=True)


def test_credential_id_must_match_key_identifier(make_attestation, trust_anchor, app_id):
    key_id, attestation = make_attestation("chal", credential_id=b"\x02" * 32)
    with pytest.raises(CredentialIdMismatch):
        verify_attestation(attestation, "chal", key_id, app_id, trust_anchor, allow_development=True)


def test_untrusted_authority_rejected(authority, make_attestation, app_id):
    key_id, attestation = make_attestation("chal")
    foreign = SoftwareAuthority.generate(authority.ca_subject).trust_anchor()
    with pytest.raises(InvalidChain):
        verify_attestation(attestation, "chal", key_id, app_id, foreign, allow_development=True)


def test_wrong_format_rejected(make_attestation, trust_anchor, app_id):
    key_id, attestation = make_attestation("chal")
    decoded = cbor2.loads(attestation)
    decoded["fmt"] = "packed"
    with pytest.raises(MalformedWireObject):
        verify_attestation(cbor2.dumps(decoded), "chal", key_id, app_id, trust_anchor, allow_development=True)


def test_missing_attested_credential_data_rejected(make_attestation, trust_anchor, app_id):
    key_id, attestation = make_attestation("chal")
    decoded = cbor2.loads(attestation)
    decoded["authData"] = decoded["authData"][:37]
    with pytest.raises(MalformedWireObject):
        verify_attestation(cbor2.dumps(decoded), "chal", key_id, app_id, trust_anchor, allow_development=True)


def test_chain_checked_before_authenticator_data_layout(authority, make_attestation, app_id):
    key_id, attestation = make_attestation("chal")
    decoded = cbor2.loads(attestation)
    decoded["authData"] = decoded["authData"][:37]
    foreign = SoftwareAuthority.generate(authority.ca_subject).trust_anchor()
    with pytest.raises(InvalidChain):
        verify_attestation(cbor2.dumps(decoded), "chal", key_id, app_id, foreign, allow_development=True)


def test_concatenated_objects_rejected(make_attestation, trust_anchor, app_id):
    key_id, attestation = make_attestation("chal")
    with pytest.raises(MalformedWireObject):
        verify_attestation(attestation + attestation, "chal", key_id, app_id, trust_anchor, allow_development=True)
