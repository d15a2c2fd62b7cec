"""Software Attestation Provider: the device side of the App Attest flows."""

from __future__ import annotations

import hashlib
import json
import logging
import secrets
from typing import Dict, Optional, Tuple

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec

from .authority import SoftwareAuthority
from .config import ProviderSettings
from .models import KeyRecord, b64decode
from .records import (
    AAGUID_DEVELOPMENT,
    AAGUID_PRODUCTION,
    build_assertion_object,
    build_attestation_object,
    build_authenticator_data,
)
from .storage import KeyStore, KeyStoreError

LOGGER = logging.getLogger(__name__)

STAGE_LABELS = {"keygen": "Generate Key", "attest": "Attest", "assert": "Assert", "delete": "Delete Key"}
EVENT_LABELS = {
    ("keygen", "success"): "Key generated",
    ("attest", "start"): "Processing attestation",
    ("attest", "already_attested"): "Key already attested",
    ("attest", "success"): "Attestation completed",
    ("assert", "start"): "Processing assertion",
    ("assert", "not_attested"): "Key not attested",
    ("assert", "success"): "Assertion completed",
    ("delete", "success"): "Key deleted",
}


def _truncate(value: str, limit: int = 64) -> str:
    if len(value) <= limit:
        return value
    half = limit // 2
    return f"{value[:half]}…{value[-half:]}"


def _build_payload(req: str, **fields: object) -> dict[str, object]:
    payload: dict[str, object] = {"request_id": req}
    for key, value in fields.items():
        if value is None:
            continue
        if isinstance(value, str):
            payload[key] = _truncate(value)
        else:
            payload[key] = value
    return payload


def _log(stage: str, event: str, req: str, level: int = logging.INFO, **fields: object) -> None:
    stage_label = STAGE_LABELS.get(stage, stage.title())
    event_label = EVENT_LABELS.get((stage, event), event)
    payload = json.dumps(_build_payload(req, **fields), indent=2, sort_keys=True)
    message = f"[Attestation Provider: {stage_label}]: {event_label}\n{payload}"
    LOGGER.log(level, message)


class AttestationProvider:
    """Software stand-in for the device's App Attest service."""

    def __init__(
        self,
        settings: Optional[ProviderSettings] = None,
        key_store: Optional[KeyStore] = None,
        authority: Optional[SoftwareAuthority] = None,
    ) -> None:
        self.settings = settings or ProviderSettings()
        self.store = key_store or KeyStore(self.settings)
        self.authority = authority or self._load_or_create_authority()

    def _load_or_create_authority(self) -> SoftwareAuthority:
        bundle = self.store.load_authority()
        if bundle is not None:
            return SoftwareAuthority.from_bundle(bundle)
        authority = SoftwareAuthority.generate(self.settings.ca_subject)
        self.store.save_authority(authority.to_bundle())
        LOGGER.info("Created software authority %s", authority.ca_subject)
        return authority

    @property
    def aaguid(self) -> bytes:
        if self.settings.environment == "production":
            return AAGUID_PRODUCTION
        return AAGUID_DEVELOPMENT

    # ------------------------------------------------------------------
    def generate_key(self) -> str:
        record = self.store.save(KeyRecord.new())
        _log("keygen", "success", secrets.token_hex(4), key_id=record.key_id)
        return record.key_id

    # ------------------------------------------------------------------
    def attest_key(self, key_id: str, client_data_hash: bytes) -> bytes:
        req_id = secrets.token_hex(4)
        _log("attest", "start", req_id, key_id=key_id, app_id=self.settings.app_id)
        record = self.store.load(key_id)
        if record.attested:
            _log("attest", "already_attested", req_id, key_id=key_id, level=logging.WARNING)
            raise KeyStoreError(f"Key {key_id} has already been attested")

        auth_data = build_authenticator_data(
            app_id=self.settings.app_id,
            counter=0,
            aaguid=self.aaguid,
            credential_id=b64decode(key_id),
        )
        nonce = hashlib.sha256(auth_data + client_data_hash).digest()
        leaf = self.authority.issue_leaf(record.load_private_key().public_key(), nonce, key_id)
        attestation = build_attestation_object(
            [leaf, self.authority.intermediate_certificate_der],
            receipt=secrets.token_bytes(64),
            auth_data=auth_data,
        )

        record.attested = True
        self.store.save(record)
        _log("attest", "success", req_id, key_id=key_id, size=len(attestation))
        return attestation

    # ------------------------------------------------------------------
    def generate_assertion(self, key_id: str, client_data_hash: bytes) -> Tuple[bytes, str]:
        req_id = secrets.token_hex(4)
        _log("assert", "start", req_id, key_id=key_id)
        record = self.store.load(key_id)
        if not record.attested:
            _log("assert", "not_attested", req_id, key_id=key_id, level=logging.WARNING)
            raise KeyStoreError(f"Key {key_id} has not been attested")

        new_counter = record.sign_count + 1
        auth_data = build_authenticator_data(app_id=self.settings.app_id, counter=new_counter)
        nonce = hashlib.sha256(auth_data + client_data_hash).digest()
        signature = record.load_private_key().sign(nonce, ec.ECDSA(hashes.SHA256()))
        record.sign_count = new_counter
        self.store.save(record)

        _log("assert", "success", req_id, key_id=key_id, sign_count=new_counter)
        return build_assertion_object(signature, auth_data), key_id

    # ------------------------------------------------------------------
    def list_keys(self) -> Dict[str, Dict[str, object]]:
        return self.store.list_metadata()

    def delete_key(self, key_id: str) -> None:
        self.store.delete(key_id)
        _log("delete", "success", secrets.token_hex(4), key_id=key_id)
