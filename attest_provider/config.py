"""Configuration for the software attestation provider."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProviderSettings(BaseSettings):
    """Runtime settings for the provider."""

    model_config = SettingsConfigDict(env_prefix="ATTEST_PROVIDER_")

    keyring_service: str = Field(
        default="appattest-provider",
        description="Service name used for keyring entries",
    )
    key_index_path: str = Field(
        default=str((Path(__file__).resolve().parent / "data" / "key_index.json").resolve()),
        description="Path to the key index file used for lookups",
    )
    team_id: str = Field(default="TEAMID1234", description="Team identifier baked into the RP ID hash")
    bundle_id: str = Field(default="com.example.app", description="Bundle identifier of the app")
    environment: str = Field(
        default="development",
        pattern="^(development|production)$",
        description="App Attest environment whose AAGUID is written into attestations",
    )
    ca_subject: str = Field(
        default="Software App Attestation CA 1",
        description="Common name of the synthetic intermediate certificate",
    )

    @property
    def app_id(self) -> str:
        return f"{self.team_id}.{self.bundle_id}"
