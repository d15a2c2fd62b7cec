"""Credential registry: per key identifier public key, counter and environment."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from typing import Dict, Optional, Protocol

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from .attestation import Environment
from .database import Database
from .errors import CredentialNotFound, StaleCounter
from .models import CredentialRow

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credential:
    key_id: str
    public_key: bytes
    sign_count: int = 0
    environment: Environment = Environment.PRODUCTION


class CredentialRegistry(Protocol):
    def upsert(
        self,
        key_id: str,
        public_key: bytes,
        sign_count: Optional[int] = None,
        environment: Optional[Environment] = None,
    ) -> Credential:
        ...

    def lookup(self, key_id: str) -> Credential:
        ...

    def update_sign_count(self, key_id: str, new_count: int) -> None:
        ...


def _merge(
    existing: Credential,
    public_key: bytes,
    sign_count: Optional[int],
    environment: Optional[Environment],
) -> Credential:
    # a re-registration never rolls the counter back
    merged_count = existing.sign_count
    if sign_count is not None and sign_count > existing.sign_count:
        merged_count = sign_count
    return replace(
        existing,
        public_key=public_key,
        sign_count=merged_count,
        environment=environment or existing.environment,
    )


class InMemoryCredentialRegistry:
    def __init__(self) -> None:
        self._credentials: Dict[str, Credential] = {}
        self._lock = threading.Lock()

    def upsert(
        self,
        key_id: str,
        public_key: bytes,
        sign_count: Optional[int] = None,
        environment: Optional[Environment] = None,
    ) -> Credential:
        with self._lock:
            existing = self._credentials.get(key_id)
            if existing is None:
                credential = Credential(
                    key_id=key_id,
                    public_key=public_key,
                    sign_count=sign_count or 0,
                    environment=environment or Environment.PRODUCTION,
                )
            else:
                credential = _merge(existing, public_key, sign_count, environment)
            self._credentials[key_id] = credential
        return credential

    def lookup(self, key_id: str) -> Credential:
        with self._lock:
            credential = self._credentials.get(key_id)
        if credential is None:
            raise CredentialNotFound(f"Credential {key_id} not found")
        return credential

    def update_sign_count(self, key_id: str, new_count: int) -> None:
        with self._lock:
            credential = self._credentials.get(key_id)
            if credential is None:
                raise CredentialNotFound(f"Credential {key_id} not found")
            if new_count <= credential.sign_count:
                raise StaleCounter(
                    f"Counter {new_count} does not advance stored {credential.sign_count}"
                )
            self._credentials[key_id] = replace(credential, sign_count=new_count)


class SqlCredentialRegistry:
    """Registry backed by any SQLAlchemy database."""

    def __init__(self, database: Database) -> None:
        self.db = database
        self.db.create_all()

    @classmethod
    def from_url(cls, database_url: str) -> "SqlCredentialRegistry":
        return cls(Database(database_url))

    @staticmethod
    def _to_credential(row: CredentialRow) -> Credential:
        return Credential(
            key_id=row.key_id,
            public_key=bytes(row.public_key),
            sign_count=row.sign_count,
            environment=Environment(row.environment),
        )

    def upsert(
        self,
        key_id: str,
        public_key: bytes,
        sign_count: Optional[int] = None,
        environment: Optional[Environment] = None,
    ) -> Credential:
        try:
            return self._upsert(key_id, public_key, sign_count, environment)
        except IntegrityError:
            LOGGER.debug("Concurrent insert for %s, merging instead", key_id)
            return self._upsert(key_id, public_key, sign_count, environment)

    def _upsert(
        self,
        key_id: str,
        public_key: bytes,
        sign_count: Optional[int],
        environment: Optional[Environment],
    ) -> Credential:
        with self.db.session() as session:
            row = session.get(CredentialRow, key_id, with_for_update=True)
            if row is None:
                credential = Credential(
                    key_id=key_id,
                    public_key=public_key,
                    sign_count=sign_count or 0,
                    environment=environment or Environment.PRODUCTION,
                )
                row = CredentialRow(key_id=key_id)
                session.add(row)
            else:
                credential = _merge(self._to_credential(row), public_key, sign_count, environment)
            row.public_key = credential.public_key
            row.sign_count = credential.sign_count
            row.environment = credential.environment.value
            session.flush()
        return credential

    def lookup(self, key_id: str) -> Credential:
        with self.db.session() as session:
            row = session.get(CredentialRow, key_id)
            if row is None:
                raise CredentialNotFound(f"Credential {key_id} not found")
            return self._to_credential(row)

    def update_sign_count(self, key_id: str, new_count: int) -> None:
        with self.db.session() as session:
            result = session.execute(
                update(CredentialRow)
                .where(CredentialRow.key_id == key_id, CredentialRow.sign_count < new_count)
                .values(sign_count=new_count)
            )
            if result.rowcount == 1:
                return
            row = session.get(CredentialRow, key_id)
            if row is None:
                raise CredentialNotFound(f"Credential {key_id} not found")
            raise StaleCounter(f"Counter {new_count} does not advance stored {row.sign_count}")
