from __future__ import annotations

import hashlib

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from appattest_server.certificates import (
    TrustAnchor,
    extract_nonce,
    raw_public_key,
    validate_certificate_chain,
)
from appattest_server.config import APPLE_APP_ATTESTATION_CA_SUBJECT, ServerSettings
from appattest_server.errors import InvalidChain, MalformedCertificate, NonceMismatch
from attest_provider import SoftwareAuthority


@pytest.fixture
def leaf_key():
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture
def leaf(authority, leaf_key):
    return authority.issue_leaf(leaf_key.public_key(), hashlib.sha256(b"nonce").digest(), "Leaf")


def test_chain_validates_in_either_order(authority, trust_anchor, leaf, leaf_key):
    intermediate = authority.intermediate_certificate_der
    for first, second in ((leaf, intermediate), (intermediate, leaf)):
        certificate = validate_certificate_chain(first, second, trust_anchor)
        assert raw_public_key(certificate) == leaf_key.public_key().public_bytes(
            serialization.Encoding.X962, serialization.PublicFormat.UncompressedPoint
        )


def test_chain_rejects_foreign_anchor(authority, leaf):
    foreign = SoftwareAuthority.generate(authority.ca_subject).trust_anchor()
    with pytest.raises(InvalidChain):
        validate_certificate_chain(leaf, authority.intermediate_certificate_der, foreign)


def test_chain_rejects_leaf_from_other_intermediate(authority, trust_anchor, leaf_key):
    other = SoftwareAuthority.generate(authority.ca_subject)
    foreign_leaf = other.issue_leaf(leaf_key.public_key(), b"\x00" * 32, "Leaf")
    with pytest.raises(InvalidChain):
        validate_certificate_chain(foreign_leaf, authority.intermediate_certificate_der, trust_anchor)


def test_chain_rejects_flipped_leaf_signature(authority, trust_anchor, leaf):
    tampered = bytearray(leaf)
    tampered[-1] ^= 0x01
    with pytest.raises(InvalidChain):
        validate_certificate_chain(bytes(tampered), authority.intermediate_certificate_der, trust_anchor)


def test_chain_requires_one_intermediate(authority, trust_anchor, leaf):
    intermediate = authority.intermediate_certificate_der
    with pytest.raises(InvalidChain):
        validate_certificate_chain(intermediate, intermediate, trust_anchor)
    with pytest.raises(InvalidChain):
        validate_certificate_chain(leaf, leaf, trust_anchor)


def test_chain_rejects_garbage(authority, trust_anchor):
    with pytest.raises(MalformedCertificate):
        validate_certificate_chain(b"not a certificate", authority.intermediate_certificate_der, trust_anchor)


def test_nonce_extension_round_trip(leaf):
    certificate = x509.load_der_x509_certificate(leaf)
    assert extract_nonce(certificate) == hashlib.sha256(b"nonce").digest()


def test_missing_nonce_extension(authority):
    intermediate = x509.load_der_x509_certificate(authority.intermediate_certificate_der)
    with pytest.raises(NonceMismatch):
        extract_nonce(intermediate)


def test_trust_anchor_from_certificate_and_public_key_pem(authority):
    from_certificate = TrustAnchor.from_pem(authority.root_certificate_pem, authority.ca_subject)
    public_pem = from_certificate.public_key.public_bytes(
        serialization.Encoding.PEM, serialization.PublicFormat.SubjectPublicKeyInfo
    )
    from_public_key = TrustAnchor.from_pem(public_pem, authority.ca_subject)
    assert from_public_key.public_key.public_numbers() == from_certificate.public_key.public_numbers()


def test_default_settings_anchor_to_apple_root():
    anchor = ServerSettings().trust_anchor()
    assert anchor.ca_subject == APPLE_APP_ATTESTATION_CA_SUBJECT
    assert isinstance(anchor.public_key.curve, ec.SECP384R1)
