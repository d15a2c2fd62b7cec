"""App Attest verification server: verifiers, stores and the Flask app factory."""

from .app import create_app
from .assertion import assertion_client_data, verify_assertion
from .attestation import AttestationResult, Environment, verify_attestation
from .certificates import TrustAnchor, validate_certificate_chain
from .challenges import ChallengeLedger
from .config import ServerSettings
from .registry import (
    Credential,
    CredentialRegistry,
    InMemoryCredentialRegistry,
    SqlCredentialRegistry,
)

__all__ = [
    "create_app",
    "assertion_client_data",
    "verify_assertion",
    "verify_attestation",
    "AttestationResult",
    "Environment",
    "TrustAnchor",
    "validate_certificate_chain",
    "ChallengeLedger",
    "ServerSettings",
    "Credential",
    "CredentialRegistry",
    "InMemoryCredentialRegistry",
    "SqlCredentialRegistry",
]
