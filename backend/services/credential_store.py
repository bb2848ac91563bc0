"""Credential lookup for steps that talk to external systems."""

from abc import ABC, abstractmethod
from typing import Iterable, Optional

import structlog

from workflow.models import Credential

logger = structlog.get_logger(__name__)


class CredentialStore(ABC):
    """Read access to stored credentials."""

    @abstractmethod
    async def get_credential_by_id(self, credential_id: str) -> Optional[Credential]:
        """Return the credential, or None when the id is unknown."""


class InMemoryCredentialStore(CredentialStore):
    """Process-local credential store."""

    def __init__(self, credentials: Iterable[Credential] = ()):
        self._credentials: dict[str, Credential] = {c.id: c for c in credentials}

    async def get_credential_by_id(self, credential_id: str) -> Optional[Credential]:
        if not credential_id:
            return None
        return self._credentials.get(credential_id)

    def add(self, credential: Credential) -> Credential:
        self._credentials[credential.id] = credential
        logger.info("Credential stored", credential_id=credential.id, app_name=credential.app_name)
        return credential

    def remove(self, credential_id: str) -> bool:
        return self._credentials.pop(credential_id, None) is not None

    def list_all(self) -> list[Credential]:
        return list(self._credentials.values())
