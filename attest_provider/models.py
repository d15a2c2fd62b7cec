"""Key records kept by the provider."""

from __future__ import annotations

import base64
import hashlib
import json
from dataclasses import dataclass

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from pydantic import BaseModel


def b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def b64decode(data: str) -> bytes:
    return base64.b64decode(data)


def raw_point(public_key: ec.EllipticCurvePublicKey) -> bytes:
    return public_key.public_bytes(
        serialization.Encoding.X962,
        serialization.PublicFormat.UncompressedPoint,
    )


def key_id_for(public_key: ec.EllipticCurvePublicKey) -> str:
    """App Attest key identifier: base64 SHA-256 of the uncompressed point."""
    return b64encode(hashlib.sha256(raw_point(public_key)).digest())


class KeyRecordModel(BaseModel):
    key_id: str
    private_key: str
    sign_count: int = 0
    attested: bool = False

    def encode(self) -> str:
        return json.dumps(self.model_dump())

    @classmethod
    def decode(cls, data: str) -> "KeyRecordModel":
        return cls.model_validate_json(data)


@dataclass
class KeyRecord:
    key_id: str
    private_key: str
    sign_count: int = 0
    attested: bool = False

    def load_private_key(self) -> ec.EllipticCurvePrivateKey:
        key = serialization.load_pem_private_key(self.private_key.encode("ascii"), password=None)
        if not isinstance(key, ec.EllipticCurvePrivateKey):
            raise TypeError("Stored key is not an elliptic curve key")
        return key

    def to_model(self) -> KeyRecordModel:
        return KeyRecordModel(
            key_id=self.key_id,
            private_key=self.private_key,
            sign_count=self.sign_count,
            attested=self.attested,
        )

    @classmethod
    def from_model(cls, model: KeyRecordModel) -> "KeyRecord":
        return cls(
            key_id=model.key_id,
            private_key=model.private_key,
            sign_count=model.sign_count,
            attested=model.attested,
        )

    @classmethod
    def new(cls) -> "KeyRecord":
        private_key = ec.generate_private_key(ec.SECP256R1())
        pem = private_key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        ).decode("ascii")
        return cls(key_id=key_id_for(private_key.public_key()), private_key=pem)
