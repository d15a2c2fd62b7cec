"""Command-line entry point for the software attestation provider."""

from __future__ import annotations

import argparse
import base64
import hashlib
import json
import logging
from pathlib import Path

from appattest_server import ServerSettings, assertion_client_data, create_app

from . import AttestationProvider, ProviderSettings

LOGGER = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Software App Attest provider")
    subparsers = parser.add_subparsers(dest="command", required=True)

    export = subparsers.add_parser("export-anchor", help="Write the synthetic root certificate as PEM")
    export.add_argument("--out", required=True, help="Destination PEM file")

    subparsers.add_parser("list-keys", help="Show stored keys with their attestation state and counter")

    delete = subparsers.add_parser("delete-key", help="Remove a key from the keychain")
    delete.add_argument("key_id", help="Base64 key identifier")

    demo = subparsers.add_parser("demo", help="Register a key and call a protected route in-process")
    demo.add_argument("--payload", default='{"hello": "world"}', help="Body sent to the protected route")
    return parser.parse_args()


def export_anchor(provider: AttestationProvider, out: str) -> None:
    path = Path(out).expanduser()
    path.write_text(provider.authority.root_certificate_pem)
    LOGGER.info("Wrote trust anchor to %s (ca_subject=%r)", path, provider.authority.ca_subject)


def list_keys(provider: AttestationProvider) -> None:
    keys = provider.list_keys()
    if not keys:
        LOGGER.info("No keys stored")
        return
    for key_id, entry in sorted(keys.items()):
        state = "attested" if entry.get("attested") else "pending"
        LOGGER.info("%s  %s  sign_count=%s", key_id, state, entry.get("sign_count", 0))


def run_demo(provider: AttestationProvider, payload: str) -> int:
    settings = ServerSettings(
        team_id=provider.settings.team_id,
        bundle_id=provider.settings.bundle_id,
        trust_anchor_pem=provider.authority.root_certificate_pem,
        ca_subject=provider.authority.ca_subject,
    )
    client = create_app(settings).test_client()

    key_id = provider.generate_key()
    challenge = client.get("/challenge").get_data(as_text=True)
    attestation = provider.attest_key(key_id, hashlib.sha256(challenge.encode("utf-8")).digest())
    registered = client.post(
        "/verifyAttestation",
        json={
            "attestation": base64.b64encode(attestation).decode("ascii"),
            "challenge": challenge,
            "keyId": key_id,
        },
    )
    LOGGER.info("Registration answered %s", registered.status_code)
    if registered.status_code != 204:
        return 1

    challenge = client.get("/challenge").get_data(as_text=True)
    body = payload.encode("utf-8")
    client_data_hash = hashlib.sha256(assertion_client_data(challenge, body)).digest()
    assertion, key_id = provider.generate_assertion(key_id, client_data_hash)
    response = client.post(
        "/auth/restricted",
        data=body,
        headers={
            "keyid": key_id,
            "assertion": base64.b64encode(assertion).decode("ascii"),
            "challenge": challenge,
        },
    )
    LOGGER.info("Protected route answered %s: %s", response.status_code, json.dumps(response.get_json()))
    return 0 if response.status_code == 200 else 1


def main() -> None:
    args = parse_args()
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    provider = AttestationProvider(ProviderSettings())
    if args.command == "export-anchor":
        export_anchor(provider, args.out)
    elif args.command == "list-keys":
        list_keys(provider)
    elif args.command == "delete-key":
        provider.delete_key(args.key_id)
    else:
        raise SystemExit(run_demo(provider, args.payload))


if __name__ == "__main__":
    main()
