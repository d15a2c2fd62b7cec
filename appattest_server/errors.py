"""Exception hierarchy raised by the verifiers and stores."""

from __future__ import annotations


class AppAttestError(RuntimeError):
    """Base class for every failure the server reports as unauthorized."""

    @property
    def kind(self) -> str:
        return type(self).__name__


class VerificationError(AppAttestError):
    pass


class AttestationError(VerificationError):
    """Raised while verifying a one-time attestation object."""


class AssertionVerificationError(VerificationError):
    """Raised while verifying a per-request assertion."""


class MalformedWireObject(AttestationError, AssertionVerificationError):
    pass


class AppIdMismatch(AttestationError, AssertionVerificationError):
    pass


class InvalidChain(AttestationError):
    pass


class MalformedCertificate(AttestationError):
    pass


class NonceMismatch(AttestationError):
    pass


class PublicKeyMismatch(AttestationError):
    pass


class InvalidInitialCounter(AttestationError):
    pass


class InvalidEnvironmentTag(AttestationError):
    pass


class CredentialIdMismatch(AttestationError):
    pass


class InvalidSignature(AssertionVerificationError):
    pass


class ReplayDetected(AssertionVerificationError):
    pass


class StoreError(AppAttestError):
    pass


class ChallengeNotFound(StoreError):
    pass


class CredentialNotFound(StoreError):
    pass


class StaleCounter(StoreError):
    pass
