"""Key storage backed by the system keychain via keyring."""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Dict, Optional

import keyring

from .config import ProviderSettings
from .models import KeyRecord, KeyRecordModel

AUTHORITY_ENTRY = "__authority__"


class KeyStoreError(RuntimeError):
    pass


class KeyStore:
    """Private keys live in the keychain; a JSON index lists them with their state.

    The keychain cannot be enumerated portably, so the index is the only way
    to find which key ids the provider holds.
    """

    def __init__(self, settings: ProviderSettings):
        self.service = settings.keyring_service
        self.index_path = Path(settings.key_index_path).expanduser()
        self._lock = threading.Lock()
        self.index_path.parent.mkdir(parents=True, exist_ok=True)

    def _read_index(self) -> Dict[str, Dict[str, object]]:
        if not self.index_path.exists():
            return {}
        return json.loads(self.index_path.read_text())

    def _rewrite_index(self, key_id: str, entry: Optional[Dict[str, object]]) -> None:
        with self._lock:
            index = self._read_index()
            if entry is None:
                index.pop(key_id, None)
            else:
                index[key_id] = entry
            self.index_path.write_text(json.dumps(index, indent=2, sort_keys=True))

    def save(self, record: KeyRecord) -> KeyRecord:
        keyring.set_password(self.service, record.key_id, record.to_model().encode())
        self._rewrite_index(record.key_id, {"attested": record.attested, "sign_count": record.sign_count})
        return record

    def load(self, key_id: str) -> KeyRecord:
        serialized = keyring.get_password(self.service, key_id)
        if serialized is None:
            raise KeyStoreError(f"Key {key_id} not found")
        return KeyRecord.from_model(KeyRecordModel.decode(serialized))

    def delete(self, key_id: str) -> None:
        if keyring.get_password(self.service, key_id) is None:
            raise KeyStoreError(f"Key {key_id} not found")
        keyring.delete_password(self.service, key_id)
        self._rewrite_index(key_id, None)

    def list_metadata(self) -> Dict[str, Dict[str, object]]:
        with self._lock:
            return self._read_index()

    # Authority ---------------------------------------------------------
    def save_authority(self, bundle: str) -> None:
        keyring.set_password(self.service, AUTHORITY_ENTRY, bundle)

    def load_authority(self) -> Optional[str]:
        return keyring.get_password(self.service, AUTHORITY_ENTRY)
