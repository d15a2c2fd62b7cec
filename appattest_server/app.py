"""Flask application exposing the App Attest endpoints."""

from __future__ import annotations

import json
import logging
import secrets
from typing import Optional

from flask import Flask, Response, g, jsonify, request
from pydantic import ValidationError

from .assertion import assertion_client_data, verify_assertion
from .attestation import verify_attestation
from .challenges import ChallengeLedger
from .config import ServerSettings
from .errors import AppAttestError
from .registry import CredentialRegistry, InMemoryCredentialRegistry, SqlCredentialRegistry
from .schemas import AssertionHeaders, RegisterAttestationRequest, RPResponse

LOGGER = logging.getLogger(__name__)

STAGE_LABELS = {
    "challenge": "Challenge",
    "register": "Register",
    "assert": "Assert",
}

EVENT_LABELS = {
    ("challenge", "issue.success"): "Issued Challenge",
    ("register", "verify.start"): "Verifying Attestation",
    ("register", "verify.success"): "Attestation Registered",
    ("register", "verify.rejected"): "Attestation Rejected",
    ("assert", "verify.start"): "Verifying Assertion",
    ("assert", "verify.success"): "Assertion Accepted",
    ("assert", "verify.rejected"): "Assertion Rejected",
}

ENDPOINT_STAGES = {
    "register_attestation": "register",
    "restricted": "assert",
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
    message = f"[App Attest Server: {stage_label}]: {event_label}\n{payload}"
    LOGGER.log(level, message)


def _unauthorized():
    return jsonify(RPResponse(success=False, message="Unauthorized").model_dump()), 401


def create_app(
    settings: Optional[ServerSettings] = None,
    ledger: Optional[ChallengeLedger] = None,
    registry: Optional[CredentialRegistry] = None,
) -> Flask:
    settings = settings or ServerSettings()
    trust_anchor = settings.trust_anchor()
    if ledger is None:
        ledger = ChallengeLedger(ttl=settings.challenge_ttl)
    if registry is None:
        if settings.database_url:
            registry = SqlCredentialRegistry.from_url(settings.database_url)
        else:
            registry = InMemoryCredentialRegistry()

    app = Flask(__name__)
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    logging.getLogger("werkzeug").setLevel(logging.WARNING)

    @app.before_request
    def assign_request_id():
        g.request_id = secrets.token_hex(4)

    @app.get("/challenge")
    def issue_challenge():
        challenge = ledger.issue()
        _log("challenge", "issue.success", g.request_id, challenge=challenge, pending=len(ledger))
        return Response(challenge, status=200, mimetype="text/plain")

    @app.post("/verifyAttestation")
    def register_attestation():
        payload = RegisterAttestationRequest.model_validate(request.get_json(silent=True) or {})
        _log("register", "verify.start", g.request_id, key_id=payload.keyId)
        # single use whatever the outcome of verification
        ledger.consume(payload.challenge)
        result = verify_attestation(
            payload.attestation,
            payload.challenge,
            payload.keyId,
            settings.app_id,
            trust_anchor,
            allow_development=settings.allow_development_environment,
        )
        registry.upsert(
            payload.keyId,
            result.public_key,
            sign_count=0,
            environment=result.environment,
        )
        _log(
            "register",
            "verify.success",
            g.request_id,
            key_id=payload.keyId,
            environment=result.environment.value,
            receipt_size=len(result.receipt),
        )
        return "", 204

    @app.route("/auth/restricted", methods=["GET", "POST"])
    def restricted():
        headers = AssertionHeaders.model_validate(
            {
                "keyid": request.headers.get("keyid"),
                "assertion": request.headers.get("assertion"),
                "challenge": request.headers.get("challenge"),
            }
        )
        _log("assert", "verify.start", g.request_id, key_id=headers.keyid)
        ledger.consume(headers.challenge)
        credential = registry.lookup(headers.keyid)
        new_count = verify_assertion(
            headers.assertion,
            assertion_client_data(headers.challenge, request.get_data()),
            credential.public_key,
            settings.app_id,
            credential.sign_count,
        )
        registry.update_sign_count(headers.keyid, new_count)
        _log("assert", "verify.success", g.request_id, key_id=headers.keyid, sign_count=new_count)
        return jsonify(settings.protected_resource)

    @app.errorhandler(AppAttestError)
    def handle_rejection(error: AppAttestError):
        stage = ENDPOINT_STAGES.get(request.endpoint or "", "request")
        _log(stage, "verify.rejected", g.request_id, level=logging.WARNING, kind=error.kind, reason=str(error))
        return _unauthorized()

    @app.errorhandler(ValidationError)
    def handle_invalid_request(error: ValidationError):
        stage = ENDPOINT_STAGES.get(request.endpoint or "", "request")
        _log(
            stage,
            "verify.rejected",
            g.request_id,
            level=logging.WARNING,
            kind="InvalidRequest",
            errors=error.error_count(),
        )
        return _unauthorized()

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


if __name__ == "__main__":
    create_app().run(debug=True)
