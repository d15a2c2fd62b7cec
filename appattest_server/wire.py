"""Decoding of the CBOR wire objects and the authenticator data record."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from io import BytesIO
from typing import Annotated, Any, List, Literal, Optional, Type, TypeVar

import cbor2
from pydantic import BaseModel, ConfigDict, Field, StrictBytes, ValidationError

from .errors import MalformedWireObject

NonEmptyBytes = Annotated[StrictBytes, Field(min_length=1)]

ModelT = TypeVar("ModelT", bound=BaseModel)


class AttestationStatement(BaseModel):
    model_config = ConfigDict(frozen=True)

    x5c: List[StrictBytes] = Field(min_length=2, max_length=2)
    receipt: NonEmptyBytes


class AttestationObject(BaseModel):
    model_config = ConfigDict(frozen=True)

    fmt: Literal["apple-appattest"]
    attStmt: AttestationStatement
    authData: NonEmptyBytes


class AssertionObject(BaseModel):
    model_config = ConfigDict(frozen=True)

    signature: NonEmptyBytes
    authenticatorData: NonEmptyBytes


def decode_single_item(data: bytes) -> Any:
    """Decode exactly one CBOR item, rejecting trailing bytes."""
    if not isinstance(data, (bytes, bytearray)) or not data:
        raise MalformedWireObject("Wire object is empty")
    stream = BytesIO(bytes(data))
    try:
        item = cbor2.CBORDecoder(stream).decode()
    except (cbor2.CBORDecodeError, ValueError, TypeError, EOFError) as exc:
        raise MalformedWireObject("Wire object is not valid CBOR") from exc
    if stream.tell() != len(data):
        raise MalformedWireObject("Wire object holds more than one top-level item")
    return item


def _decode_model(data: bytes, model: Type[ModelT]) -> ModelT:
    item = decode_single_item(data)
    if not isinstance(item, dict):
        raise MalformedWireObject(f"{model.__name__} must be a CBOR map")
    try:
        return model.model_validate(item)
    except ValidationError as exc:
        raise MalformedWireObject(f"Invalid {model.__name__}: {exc.error_count()} errors") from exc


def decode_attestation_object(data: bytes) -> AttestationObject:
    return _decode_model(data, AttestationObject)


def decode_assertion_object(data: bytes) -> AssertionObject:
    return _decode_model(data, AssertionObject)


@dataclass(frozen=True)
class AuthenticatorData:
    """Fixed-offset record shared by attestation and assertion objects."""

    HEADER_FORMAT = ">32sBI"
    ATTESTED_FORMAT = ">16sH"

    rp_id_hash: bytes
    flags: int
    counter: int
    aaguid: Optional[bytes] = None
    credential_id: Optional[bytes] = None

    @classmethod
    def parse(cls, data: bytes) -> "AuthenticatorData":
        offset = 0
        size = struct.calcsize(cls.HEADER_FORMAT)
        if len(data) < size:
            raise MalformedWireObject("Authenticator data too short")
        rp_id_hash, flags, counter = struct.unpack_from(cls.HEADER_FORMAT, data, offset)
        offset += size

        if len(data) == offset:
            return cls(rp_id_hash=rp_id_hash, flags=flags, counter=counter)

        size = struct.calcsize(cls.ATTESTED_FORMAT)
        if len(data) < offset + size:
            raise MalformedWireObject("Malformed attested credential data")
        aaguid, credential_id_length = struct.unpack_from(cls.ATTESTED_FORMAT, data, offset)
        offset += size
        if len(data) < offset + credential_id_length:
            raise MalformedWireObject("Credential id exceeds authenticator data")
        credential_id = bytes(data[offset : offset + credential_id_length])
        # the COSE credential public key that follows is not needed
        return cls(
            rp_id_hash=rp_id_hash,
            flags=flags,
            counter=counter,
            aaguid=aaguid,
            credential_id=credential_id,
        )
