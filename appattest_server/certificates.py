"""X.509 helpers: trust anchor, chain validation and the nonce extension."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Tuple

from cryptography import x509
from cryptography.exceptions import InvalidSignature as _InvalidSignature
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from pyasn1.codec.der import decoder as der_decoder
from pyasn1.error import PyAsn1Error
from pyasn1.type import namedtype, tag, univ

from .errors import InvalidChain, MalformedCertificate, NonceMismatch

LOGGER = logging.getLogger(__name__)

NONCE_EXTENSION_OID = x509.ObjectIdentifier("1.2.840.113635.100.8.2")


class NoncePayload(univ.Sequence):
    """``SEQUENCE { nonce [1] EXPLICIT OCTET STRING }`` carried by the leaf."""

    componentType = namedtype.NamedTypes(
        namedtype.NamedType(
            "nonce",
            univ.OctetString().subtype(
                explicitTag=tag.Tag(tag.tagClassContext, tag.tagFormatSimple, 1)
            ),
        ),
    )


@dataclass(frozen=True)
class TrustAnchor:
    public_key: ec.EllipticCurvePublicKey
    ca_subject: str

    @classmethod
    def from_pem(cls, pem: str | bytes, ca_subject: str) -> "TrustAnchor":
        """Accept either a PEM certificate or a PEM SubjectPublicKeyInfo."""
        data = pem.encode("ascii") if isinstance(pem, str) else pem
        if b"BEGIN CERTIFICATE" in data:
            public_key = x509.load_pem_x509_certificate(data).public_key()
        else:
            public_key = serialization.load_pem_public_key(data)
        if not isinstance(public_key, ec.EllipticCurvePublicKey):
            raise ValueError("Trust anchor must carry an elliptic curve public key")
        return cls(public_key=public_key, ca_subject=ca_subject)


def _load_certificate(der: bytes) -> Tuple[x509.Certificate, str]:
    try:
        certificate = x509.load_der_x509_certificate(der)
        subject = certificate.subject.rfc4514_string()
    except (TypeError, ValueError) as exc:
        raise MalformedCertificate("Certificate is not valid DER X.509") from exc
    return certificate, subject


def _verify_signed_by(certificate: x509.Certificate, issuer_key: object, label: str) -> None:
    if not isinstance(issuer_key, ec.EllipticCurvePublicKey):
        raise InvalidChain(f"{label} issuer key is not an elliptic curve key")
    try:
        hash_algorithm = certificate.signature_hash_algorithm
        issuer_key.verify(
            certificate.signature,
            certificate.tbs_certificate_bytes,
            ec.ECDSA(hash_algorithm),
        )
    except (_InvalidSignature, UnsupportedAlgorithm, TypeError) as exc:
        raise InvalidChain(f"{label} certificate signature is invalid") from exc


def validate_certificate_chain(
    first: bytes,
    second: bytes,
    trust_anchor: TrustAnchor,
) -> x509.Certificate:
    """Validate leaf and intermediate against the anchor and return the leaf.

    The two certificates may arrive in either order; the intermediate is the
    one whose subject contains ``trust_anchor.ca_subject``.
    """
    loaded = [_load_certificate(first), _load_certificate(second)]
    intermediates = [cert for cert, subject in loaded if trust_anchor.ca_subject in subject]
    leaves = [cert for cert, subject in loaded if trust_anchor.ca_subject not in subject]
    if len(intermediates) != 1 or len(leaves) != 1:
        raise InvalidChain("Expected exactly one intermediate and one leaf certificate")
    intermediate, leaf = intermediates[0], leaves[0]

    _verify_signed_by(intermediate, trust_anchor.public_key, "Intermediate")
    try:
        intermediate_key = intermediate.public_key()
    except (UnsupportedAlgorithm, ValueError) as exc:
        raise MalformedCertificate("Intermediate public key cannot be loaded") from exc
    _verify_signed_by(leaf, intermediate_key, "Leaf")
    LOGGER.debug("Certificate chain anchored at %s", trust_anchor.ca_subject)
    return leaf


def raw_public_key(certificate: x509.Certificate) -> bytes:
    """X9.62 uncompressed point of the certificate's EC public key."""
    try:
        public_key = certificate.public_key()
    except (UnsupportedAlgorithm, ValueError) as exc:
        raise MalformedCertificate("Leaf public key cannot be loaded") from exc
    if not isinstance(public_key, ec.EllipticCurvePublicKey):
        raise MalformedCertificate("Leaf public key is not an elliptic curve key")
    return public_key.public_bytes(
        serialization.Encoding.X962,
        serialization.PublicFormat.UncompressedPoint,
    )


def extract_nonce(certificate: x509.Certificate) -> bytes:
    try:
        extension = certificate.extensions.get_extension_for_oid(NONCE_EXTENSION_OID)
    except (x509.ExtensionNotFound, ValueError) as exc:
        raise NonceMismatch("Leaf certificate has no nonce extension") from exc
    value = extension.value
    if not isinstance(value, x509.UnrecognizedExtension):
        raise NonceMismatch("Unexpected nonce extension type")
    try:
        payload, rest = der_decoder.decode(value.value, asn1Spec=NoncePayload())
    except PyAsn1Error as exc:
        raise NonceMismatch("Nonce extension is not decodable") from exc
    if rest:
        raise NonceMismatch("Trailing data after nonce extension")
    return payload["nonce"].asOctets()
