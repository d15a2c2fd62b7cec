"""Verification of per-request App Attest assertions."""

from __future__ import annotations

import hashlib
import logging
from typing import Dict

from cryptography.exceptions import InvalidSignature as _InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec

from .errors import AppIdMismatch, InvalidSignature, ReplayDetected
from .wire import AuthenticatorData, decode_assertion_object

LOGGER = logging.getLogger(__name__)

# uncompressed X9.62 point length -> curve
CURVES_BY_POINT_LENGTH: Dict[int, ec.EllipticCurve] = {
    65: ec.SECP256R1(),
    97: ec.SECP384R1(),
    133: ec.SECP521R1(),
}


def assertion_client_data(challenge: str, body: bytes) -> bytes:
    """Client data an assertion signs over: the fresh challenge then the request body."""
    return challenge.encode("utf-8") + body


def _load_public_key(public_key: bytes) -> ec.EllipticCurvePublicKey:
    curve = CURVES_BY_POINT_LENGTH.get(len(public_key))
    if curve is None:
        raise InvalidSignature("Stored public key has an unsupported length")
    try:
        return ec.EllipticCurvePublicKey.from_encoded_point(curve, public_key)
    except ValueError as exc:
        raise InvalidSignature("Stored public key is not a valid curve point") from exc


def verify_assertion(
    assertion_object: bytes,
    payload: bytes,
    public_key: bytes,
    app_id: str,
    sign_count: int,
) -> int:
    """Verify an assertion against a registered key and return its counter.

    The returned counter is strictly greater than ``sign_count``; the caller
    persists it with ``CredentialRegistry.update_sign_count``.
    """
    assertion = decode_assertion_object(assertion_object)
    parsed = AuthenticatorData.parse(assertion.authenticatorData)

    client_data_hash = hashlib.sha256(payload).digest()
    nonce = hashlib.sha256(assertion.authenticatorData + client_data_hash).digest()

    key = _load_public_key(public_key)
    try:
        key.verify(assertion.signature, nonce, ec.ECDSA(hashes.SHA256()))
    except _InvalidSignature as exc:
        raise InvalidSignature("Assertion signature is invalid") from exc

    if hashlib.sha256(app_id.encode("utf-8")).digest() != parsed.rp_id_hash:
        raise AppIdMismatch("RP ID hash does not match app identifier")

    if parsed.counter <= sign_count:
        raise ReplayDetected(f"Counter {parsed.counter} is not greater than {sign_count}")

    LOGGER.debug("Assertion verified, counter %d -> %d", sign_count, parsed.counter)
    return parsed.counter
