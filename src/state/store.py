# src/state/store.py — v1
"""Persisted rollout state (state.yaml in the artifact bucket)."""

from __future__ import annotations

import logging

import yaml
from pydantic import ValidationError

from infralib_agent.core.errors import StateStoreError
from infralib_agent.core.models import State
from infralib_agent.storage.base_bucket import BaseBucket

STATE_FILE = "state.yaml"


class StateStore:
    """Reads and writes the State document through a bucket."""

    def __init__(
        self,
        bucket: BaseBucket,
        path: str = STATE_FILE,
        logger: logging.Logger | None = None,
    ) -> None:
        self._bucket = bucket
        self._path = path
        self._logger = logger or logging.getLogger(__name__)

    async def load(self) -> State:
        """Load state; a missing or empty file yields an empty State.

        Raises:
            StateStoreError: If the document cannot be parsed.
        """
        content = await self._bucket.get_file(self._path)
        if not content:
            self._logger.info("State file %s not found, starting from empty state", self._path)
            return State()
        try:
            data = yaml.safe_load(content)
            return State.model_validate(data or {})
        except (yaml.YAMLError, ValidationError) as e:
            raise StateStoreError(f"failed to parse state file {self._path}: {e}") from e

    async def save(self, state: State) -> None:
        """Write state; on failure the document is logged for manual recovery.

        Raises:
            StateStoreError: If the bucket write fails.
        """
        document = dump_state(state)
        try:
            await self._bucket.put_file(self._path, document)
        except OSError as e:
            self._logger.error(
                "Failed to write state, update the state file manually to avoid "
                "reapplying steps:\n%s",
                document,
            )
            raise StateStoreError(f"failed to put state file: {e}") from e


def dump_state(state: State) -> str:
    return yaml.safe_dump(
        state.model_dump(mode="json", exclude_none=True),
        sort_keys=False,
        default_flow_style=False,
    )
