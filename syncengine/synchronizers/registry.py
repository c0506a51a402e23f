"""Synchronizer registry for managing available job types.

Maps job-type keys to synchronizer instances. The registry is owned by
the process bootstrap (`SyncEngine`) rather than held globally, so tests
and separate engines never share state.
"""

from __future__ import annotations

import logging
from typing import Iterator

from ..sync.errors import UnknownSyncTypeError
from .base import BaseSynchronizer

logger = logging.getLogger(__name__)


class SynchronizerRegistry:
    """Registry of synchronizer instances keyed by job-type key."""

    def __init__(self) -> None:
        self._synchronizers: dict[str, BaseSynchronizer] = {}

    def register(self, synchronizer: BaseSynchronizer) -> str:
        """Register a synchronizer.

        Args:
            synchronizer: The synchronizer instance

        Returns:
            The job-type key it was registered under
        """
        sync_type = synchronizer.get_sync_type_key()
        if sync_type in self._synchronizers:
            logger.warning(f"Overwriting existing synchronizer for {sync_type}")
        self._synchronizers[sync_type] = synchronizer
        logger.debug(f"Registered synchronizer: {sync_type}")
        return sync_type

    def unregister(self, sync_type: str) -> None:
        self._synchronizers.pop(sync_type, None)

    def get(self, sync_type: str) -> BaseSynchronizer:
        """Get the synchronizer for a job type.

        Raises:
            UnknownSyncTypeError: If the job type is not registered
        """
        synchronizer = self._synchronizers.get(sync_type)
        if synchronizer is None:
            raise UnknownSyncTypeError(sync_type)
        return synchronizer

    def is_registered(self, sync_type: str) -> bool:
        return sync_type in self._synchronizers

    def list_types(self) -> list[str]:
        """List registered job-type keys in registration order."""
        return list(self._synchronizers)

    def __iter__(self) -> Iterator[BaseSynchronizer]:
        return iter(list(self._synchronizers.values()))

    def __len__(self) -> int:
        return len(self._synchronizers)
