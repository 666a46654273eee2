"""
Module: installation_id.py
Description: Persistent installation identifier.

Generates a UUID4 on first use and keeps returning it across calls and
process restarts. The id lives in a small file under the storage
directory, namespaced by service so independent configurations (and
tests) do not share an identity.
"""

import uuid
from pathlib import Path
from typing import Optional

from adcider_attribution.errors import PersistenceError
from adcider_attribution.storage.json_file import JsonFileStore
from adcider_attribution.utils.logger import get_logger

logger = get_logger(__name__)


class InstallationIdStore:
    """Identity provider backed by <storage_dir>/<service>.uid."""

    def __init__(self, storage_dir: Path, service: str = "com.adcider.attribution"):
        if not service or not isinstance(service, str):
            raise ValueError("service must be a non-empty string")

        self.storage_dir = Path(storage_dir)
        self.service = service
        self._cached: Optional[str] = None

    @property
    def path(self) -> Path:
        return self.storage_dir / f"{self.service}.uid"

    def configure(self, service: str) -> None:
        """Switch to another service namespace."""
        if not service or not isinstance(service, str):
            raise ValueError("service must be a non-empty string")

        self.service = service
        self._cached = None
        logger.debug("Installation id store configured", service=service)

    def get_uid(self) -> str:
        """
        Return the installation id, creating and persisting one if needed.

        If the new id cannot be persisted it is still returned and used
        for this process; the next process will generate another.
        """
        if self._cached:
            return self._cached

        store = JsonFileStore(self.path)
        existing = store.read()
        if isinstance(existing, str) and existing:
            logger.debug("Retrieved existing installation id")
            self._cached = existing
            return existing

        new_uid = str(uuid.uuid4()).upper()
        try:
            store.write(new_uid)
            logger.info("Generated and saved new installation id")
        except PersistenceError as e:
            logger.error(
                "Failed to save installation id, using temporary id",
                error=str(e)
            )

        self._cached = new_uid
        return new_uid

    def remove_uid(self) -> bool:
        """
        Delete the persisted id. Removing a missing id counts as success.

        Returns:
            True if no id remains persisted
        """
        self._cached = None
        try:
            JsonFileStore(self.path).delete()
        except PersistenceError as e:
            logger.error("Failed to remove installation id", error=str(e))
            return False

        logger.info("Removed installation id", service=self.service)
        return True
