"""Software App Attest provider used for development and tests."""

from .authority import SoftwareAuthority
from .config import ProviderSettings
from .models import KeyRecord
from .service import AttestationProvider
from .storage import KeyStore, KeyStoreError

__all__ = [
    "AttestationProvider",
    "ProviderSettings",
    "SoftwareAuthority",
    "KeyStore",
    "KeyStoreError",
    "KeyRecord",
]
