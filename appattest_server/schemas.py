"""Pydantic schemas for request/response payloads."""

from __future__ import annotations

import base64
import binascii
from typing import Optional

from pydantic import BaseModel, Field, field_validator


def _b64decode(value: str) -> bytes:
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("value is not valid base64") from exc


class RegisterAttestationRequest(BaseModel):
    attestation: bytes
    challenge: str = Field(min_length=1)
    keyId: str = Field(min_length=1)

    @field_validator("attestation", mode="before")
    @classmethod
    def decode_attestation(cls, value: object) -> bytes:
        if not isinstance(value, str):
            raise ValueError("attestation must be a base64 string")
        return _b64decode(value)


class AssertionHeaders(BaseModel):
    keyid: str = Field(min_length=1)
    assertion: bytes
    challenge: str = Field(min_length=1)

    @field_validator("assertion", mode="before")
    @classmethod
    def decode_assertion(cls, value: object) -> bytes:
        if not isinstance(value, str):
            raise ValueError("assertion must be a base64 string")
        return _b64decode(value)


class RPResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    data: Optional[dict] = None
