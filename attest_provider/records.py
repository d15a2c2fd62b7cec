"""Utilities for constructing App Attest binary structures."""

from __future__ import annotations

import hashlib
from typing import Optional, Sequence

from fido2 import cbor

FLAG_UP = 0x01
FLAG_AT = 0x40
AAGUID_DEVELOPMENT = b"appattestdevelop"
AAGUID_PRODUCTION = b"appattest" + b"\x00" * 7
ATTESTATION_FORMAT = "apple-appattest"


def build_authenticator_data(
    app_id: str,
    counter: int,
    aaguid: Optional[bytes] = None,
    credential_id: Optional[bytes] = None,
) -> bytes:
    rp_hash = hashlib.sha256(app_id.encode("utf-8")).digest()
    include_attestation = aaguid is not None and credential_id is not None
    flags = FLAG_UP
    if include_attestation:
        flags |= FLAG_AT

    data = bytearray()
    data.extend(rp_hash)
    data.append(flags)
    data.extend(counter.to_bytes(4, "big"))

    if include_attestation:
        data.extend(aaguid)
        data.extend(len(credential_id).to_bytes(2, "big"))
        data.extend(credential_id)

    return bytes(data)


def build_attestation_object(
    certificates: Sequence[bytes],
    receipt: bytes,
    auth_data: bytes,
    fmt: str = ATTESTATION_FORMAT,
) -> bytes:
    return cbor.encode(
        {
            "fmt": fmt,
            "attStmt": {"x5c": list(certificates), "receipt": receipt},
            "authData": auth_data,
        }
    )


def build_assertion_object(signature: bytes, authenticator_data: bytes) -> bytes:
    return cbor.encode({"signature": signature, "authenticatorData": authenticator_data})
