"""Synthetic two-level certificate authority standing in for the Apple CA."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID
from pyasn1.codec.der import encoder as der_encoder

from appattest_server.certificates import NONCE_EXTENSION_OID, NoncePayload, TrustAnchor

ROOT_COMMON_NAME = "Software App Attestation Root CA"


def _name(common_name: str) -> x509.Name:
    return x509.Name(
        [
            x509.NameAttribute(NameOID.COMMON_NAME, common_name),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, "App Attest Provider"),
        ]
    )


def _private_pem(key: ec.EllipticCurvePrivateKey) -> str:
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode("ascii")


def _certificate_pem(certificate: x509.Certificate) -> str:
    return certificate.public_bytes(serialization.Encoding.PEM).decode("ascii")


def encode_nonce_extension(nonce: bytes) -> bytes:
    payload = NoncePayload()
    payload["nonce"] = nonce
    return der_encoder.encode(payload)


class SoftwareAuthority:
    """Root and intermediate CA issuing App Attest style leaf certificates."""

    def __init__(
        self,
        *,
        root_key: ec.EllipticCurvePrivateKey,
        root_certificate: x509.Certificate,
        intermediate_key: ec.EllipticCurvePrivateKey,
        intermediate_certificate: x509.Certificate,
    ) -> None:
        self._root_key = root_key
        self._root_cert = root_certificate
        self._intermediate_key = intermediate_key
        self._intermediate_cert = intermediate_certificate

    @classmethod
    def generate(cls, ca_subject: str, lifetime: timedelta = timedelta(days=3650)) -> "SoftwareAuthority":
        now = datetime.now(tz=timezone.utc)
        root_key = ec.generate_private_key(ec.SECP384R1())
        root_name = _name(ROOT_COMMON_NAME)
        root_certificate = (
            x509.CertificateBuilder()
            .subject_name(root_name)
            .issuer_name(root_name)
            .public_key(root_key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - timedelta(minutes=1))
            .not_valid_after(now + lifetime)
            .add_extension(x509.BasicConstraints(ca=True, path_length=1), critical=True)
            .add_extension(x509.SubjectKeyIdentifier.from_public_key(root_key.public_key()), critical=False)
        ).sign(private_key=root_key, algorithm=hashes.SHA384())

        intermediate_key = ec.generate_private_key(ec.SECP384R1())
        intermediate_certificate = (
            x509.CertificateBuilder()
            .subject_name(_name(ca_subject))
            .issuer_name(root_name)
            .public_key(intermediate_key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - timedelta(minutes=1))
            .not_valid_after(now + lifetime)
            .add_extension(x509.BasicConstraints(ca=True, path_length=0), critical=True)
            .add_extension(
                x509.AuthorityKeyIdentifier.from_issuer_public_key(root_key.public_key()),
                critical=False,
            )
        ).sign(private_key=root_key, algorithm=hashes.SHA384())
        return cls(
            root_key=root_key,
            root_certificate=root_certificate,
            intermediate_key=intermediate_key,
            intermediate_certificate=intermediate_certificate,
        )

    @property
    def ca_subject(self) -> str:
        return self._intermediate_cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)[0].value

    @property
    def root_certificate_pem(self) -> str:
        return _certificate_pem(self._root_cert)

    @property
    def intermediate_certificate_der(self) -> bytes:
        return self._intermediate_cert.public_bytes(serialization.Encoding.DER)

    def trust_anchor(self) -> TrustAnchor:
        return TrustAnchor(public_key=self._root_key.public_key(), ca_subject=self.ca_subject)

    def issue_leaf(self, public_key: ec.EllipticCurvePublicKey, nonce: bytes, common_name: str) -> bytes:
        """Issue a DER leaf certificate binding ``public_key`` to ``nonce``."""
        now = datetime.now(tz=timezone.utc)
        certificate = (
            x509.CertificateBuilder()
            .subject_name(_name(common_name))
            .issuer_name(self._intermediate_cert.subject)
            .public_key(public_key)
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - timedelta(minutes=1))
            .not_valid_after(now + timedelta(days=90))
            .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
            .add_extension(
                x509.UnrecognizedExtension(NONCE_EXTENSION_OID, encode_nonce_extension(nonce)),
                critical=False,
            )
        ).sign(private_key=self._intermediate_key, algorithm=hashes.SHA256())
        return certificate.public_bytes(serialization.Encoding.DER)

    # Persistence -------------------------------------------------------
    def to_bundle(self) -> str:
        return json.dumps(
            {
                "root_key": _private_pem(self._root_key),
                "root_certificate": _certificate_pem(self._root_cert),
                "intermediate_key": _private_pem(self._intermediate_key),
                "intermediate_certificate": _certificate_pem(self._intermediate_cert),
            }
        )

    @classmethod
    def from_bundle(cls, bundle: str) -> "SoftwareAuthority":
        data = json.loads(bundle)
        return cls(
            root_key=serialization.load_pem_private_key(data["root_key"].encode("ascii"), password=None),
            root_certificate=x509.load_pem_x509_certificate(data["root_certificate"].encode("ascii")),
            intermediate_key=serialization.load_pem_private_key(
                data["intermediate_key"].encode("ascii"), password=None
            ),
            intermediate_certificate=x509.load_pem_x509_certificate(
                data["intermediate_certificate"].encode("ascii")
            ),
        )
