"""
Count-based retention for backup artifacts.

Keeps the newest N artifacts of each database and deletes the rest. Age is
taken from the artifact name: names under one database prefix are assumed to
sort lexicographically in chronological order.
"""

import logging
from typing import List, Sequence

from .naming import ARTIFACT_SUFFIX
from .storage import ObjectStore, StorageError


logger = logging.getLogger(__name__)


def select_for_deletion(existing_names: Sequence[str], retention_count: int) -> List[str]:
    """
    Pick the artifacts that exceed the retention count.

    Args:
        existing_names: Artifact names, oldest first
        retention_count: Number of newest artifacts to keep (0 keeps none)

    Returns:
        The oldest ``len(existing_names) - retention_count`` names, oldest first;
        empty when nothing exceeds the count. The input is not modified.

    Raises:
        ValueError: If retention_count is negative
    """
    if retention_count < 0:
        raise ValueError(f"Retention count must be >= 0, got {retention_count}")

    excess = len(existing_names) - retention_count
    if excess <= 0:
        return []
    return list(existing_names[:excess])


class RetentionManager:
    """
    Applies the retention count to one database prefix in an object store.
    """

    def __init__(self, storage: ObjectStore, log: logging.Logger = None):
        self.storage = storage
        self.logger = log or logger

    def list_artifacts(self, prefix: str) -> List[str]:
        """
        Artifact names directly under ``prefix``, oldest first.

        Nested keys and objects without the dump suffix are ignored.
        """
        names = []
        for key in self.storage.list_objects(prefix):
            name = key[len(prefix):]
            if '/' in name or not name.endswith(ARTIFACT_SUFFIX):
                continue
            names.append(name)
        return sorted(names)

    def enforce(self, prefix: str, retention_count: int) -> int:
        """
        Prune artifacts under ``prefix`` beyond ``retention_count``.

        The listing is read fresh on every call. Listing and deletion
        failures are logged; they never propagate.

        Returns:
            Number of artifacts deleted
        """
        try:
            existing = self.list_artifacts(prefix)
        except StorageError as e:
            self.logger.warning(f"Could not list existing backups under {prefix}: {e}")
            return 0

        to_delete = select_for_deletion(existing, retention_count)
        if not to_delete:
            return 0

        deleted_count = 0
        for name in to_delete:
            self.logger.info(f"Pruning old backup: {name}")
            if self._delete_artifact(prefix + name):
                deleted_count += 1

        self.logger.info(
            f"Pruned {deleted_count} old backup(s) under {prefix} (keeping {retention_count})"
        )
        return deleted_count

    def _delete_artifact(self, key: str) -> bool:
        """Best-effort delete: a failure is logged and reported as False."""
        try:
            self.storage.delete(key)
            return True
        except StorageError as e:
            self.logger.warning(f"Failed to delete {key}: {e}")
            return False
