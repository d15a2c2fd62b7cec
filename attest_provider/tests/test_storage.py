from __future__ import annotations

import logging

import pytest

from attest_provider.__main__ import list_keys
from attest_provider.models import KeyRecord
from attest_provider.storage import KeyStore, KeyStoreError


def test_store_round_trip(provider_settings):
    store = KeyStore(provider_settings)
    record = KeyRecord.new()
    store.save(record)

    loaded = store.load(record.key_id)
    assert loaded.private_key == record.private_key
    assert loaded.sign_count == 0
    assert not loaded.attested
    assert store.list_metadata() == {record.key_id: {"attested": False, "sign_count": 0}}

    store.delete(record.key_id)
    with pytest.raises(KeyStoreError):
        store.load(record.key_id)
    assert store.list_metadata() == {}


def test_delete_unknown_key_fails(provider_settings):
    with pytest.raises(KeyStoreError):
        KeyStore(provider_settings).delete("missing")


def test_index_survives_reopening(provider_settings):
    store = KeyStore(provider_settings)
    record = KeyRecord.new()
    record.attested = True
    record.sign_count = 4
    store.save(record)

    reopened = KeyStore(provider_settings)
    assert reopened.list_metadata()[record.key_id] == {"attested": True, "sign_count": 4}


def test_authority_bundle_is_kept_outside_index(provider_settings):
    store = KeyStore(provider_settings)
    assert store.load_authority() is None
    store.save_authority('{"root_key": "..."}')
    assert store.load_authority() == '{"root_key": "..."}'
    assert store.list_metadata() == {}


def test_provider_lists_and_deletes_keys(provider):
    pending = provider.generate_key()
    attested = provider.generate_key()
    provider.attest_key(attested, b"\x00" * 32)
    provider.generate_assertion(attested, b"\x01" * 32)

    assert provider.list_keys() == {
        pending: {"attested": False, "sign_count": 0},
        attested: {"attested": True, "sign_count": 1},
    }

    provider.delete_key(pending)
    assert list(provider.list_keys()) == [attested]
    with pytest.raises(KeyStoreError):
        provider.generate_assertion(pending, b"\x01" * 32)


def test_list_keys_command_reports_state(provider, caplog):
    key_id = provider.generate_key()
    provider.attest_key(key_id, b"\x00" * 32)
    with caplog.at_level(logging.INFO, logger="attest_provider.__main__"):
        list_keys(provider)
    assert f"{key_id}  attested  sign_count=0" in caplog.text
