"""
Snapshot persistence.

The engine's whole learned state (pattern records plus the preference model)
is stored as one versioned JSON document. Older schema versions are upgraded
through registered migrations on load; saves go to a temporary file that
replaces the target atomically.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Optional

from codewhisper.core.errors import StoreCorruptionError

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2

Snapshot = dict[str, Any]


def _migrate_v1(snapshot: Snapshot) -> Snapshot:
    """v1 had no first_seen timestamps and no preference model."""
    for record in snapshot.get("patterns", []):
        record.setdefault("first_seen", record.get("last_seen"))
        record.setdefault("last_touched", record.get("last_seen"))
        record.setdefault("style_counts", {})
        record.setdefault("retired", False)
    snapshot.setdefault("preferences", {})
    snapshot["schema_version"] = 2
    return snapshot


# Upgrades keyed by the version they start from.
MIGRATIONS: dict[int, Callable[[Snapshot], Snapshot]] = {
    1: _migrate_v1,
}


def check_layout(snapshot: Any) -> None:
    """
    Reject documents that are not a mapping with a list of record mappings.

    Raises:
        StoreCorruptionError: Layout does not match any schema version
    """
    if not isinstance(snapshot, dict):
        raise StoreCorruptionError("Snapshot must be a JSON object")
    records = snapshot.get("patterns", [])
    if not isinstance(records, list):
        raise StoreCorruptionError("Snapshot patterns must be a list")
    for position, record in enumerate(records):
        if not isinstance(record, dict):
            raise StoreCorruptionError(
                f"Pattern record {position} is not an object", {"record": position}
            )
    preferences = snapshot.get("preferences")
    if preferences is not None and not isinstance(preferences, dict):
        raise StoreCorruptionError("Snapshot preferences must be a mapping")


def migrate(snapshot: Snapshot) -> Snapshot:
    """
    Bring a snapshot up to SCHEMA_VERSION.

    Raises:
        StoreCorruptionError: Layout malformed, version missing or newer than
            supported, or no migration path exists
    """
    check_layout(snapshot)
    version = snapshot.get("schema_version")
    if not isinstance(version, int):
        raise StoreCorruptionError("Snapshot has no schema version")
    if version > SCHEMA_VERSION:
        raise StoreCorruptionError(
            f"Snapshot schema {version} is newer than supported {SCHEMA_VERSION}",
            {"schema_version": version},
        )
    while version < SCHEMA_VERSION:
        step = MIGRATIONS.get(version)
        if step is None:
            raise StoreCorruptionError(
                f"No migration from schema {version}", {"schema_version": version}
            )
        logger.info(f"Migrating pattern snapshot from schema {version}")
        try:
            snapshot = step(snapshot)
        except (AttributeError, KeyError, TypeError) as e:
            raise StoreCorruptionError(f"Cannot migrate schema {version}: {e}") from e
        version = snapshot["schema_version"]
    return snapshot


class SnapshotStorage:
    """Reads and writes the snapshot file."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> Optional[Snapshot]:
        """
        Load the snapshot.

        Returns:
            The snapshot at the current schema, or None on first run

        Raises:
            StoreCorruptionError: File unreadable or schema incompatible
        """
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise StoreCorruptionError(f"Cannot read snapshot {self.path}: {e}") from e
        snapshot = migrate(data)
        logger.info(f"Loaded {len(snapshot.get('patterns', []))} patterns from {self.path}")
        return snapshot

    def save(self, snapshot: Snapshot) -> None:
        """Write the snapshot atomically (temp file + os.replace)."""
        data = dict(snapshot)
        data["schema_version"] = SCHEMA_VERSION
        self.path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        logger.debug(f"Saved {len(data.get('patterns', []))} patterns to {self.path}")
