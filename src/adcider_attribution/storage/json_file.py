"""
Module: json_file.py
Description: Whole-file JSON persistence.

Durable SDK state is a small JSON document mirrored to disk after every
mutation. Writes go to a sibling temp file that is then renamed over the
target, so a crash never leaves a half-written document behind.

Key Components:
- JsonFileStore.read(): parsed document, or None when missing/corrupt
- JsonFileStore.write(): atomic overwrite, retried with tenacity
- JsonFileStore.write_async(): the same from an event loop, I/O in a worker thread
- JsonFileStore.delete(): remove the document

Dependencies: tenacity, asyncio, json, os, pathlib
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

from tenacity import (
    AsyncRetrying,
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
)

from adcider_attribution.delivery.retry import ExponentialJitterBackoff
from adcider_attribution.errors import PersistenceError
from adcider_attribution.utils.logger import get_logger

logger = get_logger(__name__)

WRITE_ATTEMPTS = 3


class JsonFileStore:
    """
    Atomic JSON document on the local filesystem.

    Attributes:
        path: Location of the document
    """

    def __init__(self, path: Path, write_backoff: Optional[ExponentialJitterBackoff] = None):
        if not path:
            raise ValueError("path must be provided")

        self.path = Path(path)
        self._write_backoff = write_backoff or ExponentialJitterBackoff(base=0.02, maximum=0.2)

    def read(self) -> Optional[Any]:
        """
        Read and parse the document.

        Returns:
            The parsed JSON value, or None if the file is missing,
            unreadable or not valid JSON
        """
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(
                "Failed to read persisted state",
                path=str(self.path),
                error=str(e)
            )
            return None

        try:
            return json.loads(raw)
        except ValueError as e:
            logger.warning(
                "Persisted state is corrupt, treating as empty",
                path=str(self.path),
                error=str(e)
            )
            return None

    def write(self, data: Any) -> None:
        """
        Atomically replace the document with data.

        Blocks the calling thread, including between retries. Code running
        on an event loop uses write_async() instead.

        Args:
            data: JSON-serializable value

        Raises:
            PersistenceError: If the document could not be written after retries
        """
        payload = self._encode(data)
        try:
            Retrying(**self._retry_options())(self._replace, payload)
        except OSError as e:
            raise PersistenceError(f"Failed to write {self.path}: {e}", self.path) from e

    async def write_async(self, data: Any) -> None:
        """
        Atomically replace the document without blocking the event loop.

        The file I/O runs in a worker thread and retries back off with
        asyncio.sleep.

        Raises:
            PersistenceError: If the document could not be written after retries
        """
        payload = self._encode(data)
        try:
            await AsyncRetrying(**self._retry_options())(self._replace_in_thread, payload)
        except OSError as e:
            raise PersistenceError(f"Failed to write {self.path}: {e}", self.path) from e

    def delete(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise PersistenceError(f"Failed to delete {self.path}: {e}", self.path) from e

    def _replace(self, payload: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_name(f".{self.path.name}.tmp")
        temp_path.write_text(payload, encoding="utf-8")
        os.replace(temp_path, self.path)

    async def _replace_in_thread(self, payload: str) -> None:
        await asyncio.to_thread(self._replace, payload)

    def _encode(self, data: Any) -> str:
        try:
            return json.dumps(data, separators=(",", ":"))
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"State is not JSON-serializable: {e}", self.path) from e

    def _retry_options(self) -> dict:
        return {
            "stop": stop_after_attempt(WRITE_ATTEMPTS),
            "wait": self._write_backoff,
            "retry": retry_if_exception_type(OSError),
            "before_sleep": before_sleep_log(logger, logging.WARNING),
            "reraise": True,
        }
