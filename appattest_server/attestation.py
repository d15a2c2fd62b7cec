"""Verification of one-time App Attest attestation objects."""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
from dataclasses import dataclass
from enum import Enum

from .certificates import TrustAnchor, extract_nonce, raw_public_key, validate_certificate_chain
from .errors import (
    AppIdMismatch,
    CredentialIdMismatch,
    InvalidEnvironmentTag,
    InvalidInitialCounter,
    MalformedWireObject,
    NonceMismatch,
    PublicKeyMismatch,
)
from .wire import AuthenticatorData, decode_attestation_object

LOGGER = logging.getLogger(__name__)

AAGUID_DEVELOPMENT = b"appattestdevelop"
AAGUID_PRODUCTION = b"appattest" + b"\x00" * 7


class Environment(str, Enum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"


@dataclass(frozen=True)
class AttestationResult:
    public_key: bytes
    receipt: bytes
    environment: Environment


def _sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def _resolve_environment(aaguid: bytes | None, allow_development: bool) -> Environment:
    if aaguid == AAGUID_PRODUCTION:
        return Environment.PRODUCTION
    if allow_development and aaguid == AAGUID_DEVELOPMENT:
        return Environment.DEVELOPMENT
    raise InvalidEnvironmentTag("Authenticator data carries an unexpected AAGUID")


def verify_attestation(
    attestation_object: bytes,
    challenge: str,
    key_id: str,
    app_id: str,
    trust_anchor: TrustAnchor,
    allow_development: bool = False,
) -> AttestationResult:
    """Run every attestation check in order and return the credential to register.

    ``challenge`` is the token issued by the server, hashed as UTF-8 to form
    the client data hash the device signed over. ``app_id`` is
    ``"<team id>.<bundle id>"``. The first failing check raises its specific
    :class:`~appattest_server.errors.AttestationError` subclass.
    """
    attestation = decode_attestation_object(attestation_object)
    auth_data = attestation.authData

    leaf = validate_certificate_chain(
        attestation.attStmt.x5c[0],
        attestation.attStmt.x5c[1],
        trust_anchor,
    )

    parsed = AuthenticatorData.parse(auth_data)
    if parsed.credential_id is None:
        raise MalformedWireObject("Authenticator data has no attested credential data")

    client_data_hash = _sha256(challenge.encode("utf-8"))
    nonce = _sha256(auth_data + client_data_hash)
    if not hmac.compare_digest(extract_nonce(leaf).hex(), nonce.hex()):
        raise NonceMismatch("Leaf certificate nonce does not match")

    public_key = raw_public_key(leaf)
    if base64.b64encode(_sha256(public_key)).decode("ascii") != key_id:
        raise PublicKeyMismatch("Public key does not match key identifier")

    if _sha256(app_id.encode("utf-8")) != parsed.rp_id_hash:
        raise AppIdMismatch("RP ID hash does not match app identifier")

    if parsed.counter != 0:
        raise InvalidInitialCounter(f"Counter is {parsed.counter}, expected 0")

    environment = _resolve_environment(parsed.aaguid, allow_development)

    if base64.b64encode(parsed.credential_id).decode("ascii") != key_id:
        raise CredentialIdMismatch("Credential id does not match key identifier")

    LOGGER.debug("Attestation verified for key %s (%s)", key_id, environment.value)
    return AttestationResult(
        public_key=public_key,
        receipt=attestation.attStmt.receipt,
        environment=environment,
    )
