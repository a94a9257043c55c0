"""
Comparables Store Interface and HTTP Client

A ComparablesStore reads and upserts PersistedComparablesRecord keyed
by (user_id, subject_property_id). Two implementations exist:

- ComparablesRepository (repository.py): in-process store
- HttpComparablesStore: client for the /api/db/comparables endpoints
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Final, Optional

import requests

from core.persistence.schema import (
    ComparablesPayload,
    PersistedComparablesRecord,
    PersistenceError,
)


logger = logging.getLogger(__name__)

COMPARABLES_PATH: Final[str] = "/api/db/comparables"
USER_HEADER: Final[str] = "X-User-Id"
DEFAULT_TIMEOUT_SECONDS: Final[int] = 30


class ComparablesStore(ABC):
    """Remote store for comparables selections."""

    @abstractmethod
    def load(
        self,
        user_id: str,
        subject_property_id: str,
    ) -> Optional[PersistedComparablesRecord]:
        """
        Read the stored record.

        Returns:
            The record, or None if nothing is stored

        Raises:
            PersistenceError: If the read fails
        """

    @abstractmethod
    def save(
        self,
        user_id: str,
        subject_property_id: str,
        payload: ComparablesPayload,
    ) -> PersistedComparablesRecord:
        """
        Upsert the record. Repeating a payload only refreshes updated_at.

        Raises:
            PersistenceError: If the write fails
        """


class HttpComparablesStore(ComparablesStore):
    """
    ComparablesStore backed by the comparables API.

    The session is any requests-compatible client; callers attach their
    own authentication. The user is identified by the X-User-Id header.
    """

    def __init__(
        self,
        base_url: str = "",
        session=None,
        timeout: int = DEFAULT_TIMEOUT_SECONDS,
    ):
        """
        Initialise client.

        Args:
            base_url: API root, e.g. http://127.0.0.1:8000
            session: requests.Session (or compatible); one is created if omitted
            timeout: Request timeout in seconds
        """
        self._base_url = base_url.rstrip("/")
        self._session = session if session is not None else requests.Session()
        self._timeout = timeout

    @property
    def url(self) -> str:
        return f"{self._base_url}{COMPARABLES_PATH}"

    def load(
        self,
        user_id: str,
        subject_property_id: str,
    ) -> Optional[PersistedComparablesRecord]:
        try:
            response = self._session.get(
                self.url,
                params={"uprn": subject_property_id},
                headers={USER_HEADER: user_id},
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise PersistenceError(f"Failed to fetch comparables data: {e}") from e

        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise PersistenceError(
                f"Failed to fetch comparables data: HTTP {response.status_code}"
            )

        data = self._json(response)
        # The API answers with a default structure when nothing is stored
        if "last_updated" not in data:
            return None
        try:
            return PersistedComparablesRecord.from_dict(data, user_id=user_id)
        except ValueError as e:
            raise PersistenceError(f"Malformed comparables data: {e}") from e

    def save(
        self,
        user_id: str,
        subject_property_id: str,
        payload: ComparablesPayload,
    ) -> PersistedComparablesRecord:
        try:
            response = self._session.post(
                self.url,
                json=payload.to_api_dict(subject_property_id),
                headers={USER_HEADER: user_id},
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise PersistenceError(f"Failed to save comparables data: {e}") from e

        if response.status_code != 200:
            raise PersistenceError(
                f"Failed to save comparables data: HTTP {response.status_code}"
            )

        try:
            return PersistedComparablesRecord.from_dict(self._json(response), user_id=user_id)
        except ValueError as e:
            raise PersistenceError(f"Malformed comparables data: {e}") from e

    @staticmethod
    def _json(response) -> dict:
        try:
            data = response.json()
        except ValueError as e:
            raise PersistenceError(f"Invalid JSON from comparables API: {e}") from e
        if not isinstance(data, dict):
            raise PersistenceError("Unexpected comparables API response")
        return data
