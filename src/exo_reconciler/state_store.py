"""Persistence of resource records.

Records are kept in a single YAML file keyed by plan-local name. Every save
writes a temporary file next to the target and atomically replaces it, so a
crash never leaves a half-written state file behind.

The store is used as the reconciler's apply hook: each successful lifecycle
operation persists the record immediately, which keeps a freshly assigned
identity even when a later step of the same run fails.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

import yaml

from .config import MAX_STATE_FILE_SIZE_BYTES
from .state import ResourceRecord

logger = logging.getLogger(__name__)

STATE_VERSION = 1


class StateStoreError(Exception):
    """Raised when the state file cannot be read or written."""

    pass


class StateStore:
    """YAML-backed record store.

    This class is NOT thread-safe; the plan runner serializes access.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._records: dict[str, ResourceRecord] = {}
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> None:
        if not self._path.exists():
            return

        try:
            if self._path.stat().st_size > MAX_STATE_FILE_SIZE_BYTES:
                raise StateStoreError(
                    f"State file exceeds maximum size of {MAX_STATE_FILE_SIZE_BYTES} bytes: "
                    f"{self._path}"
                )
            raw = yaml.safe_load(self._path.read_text(encoding="utf-8"))
        except OSError as e:
            raise StateStoreError(f"Failed to read state file {self._path}: {e}") from e
        except yaml.YAMLError as e:
            raise StateStoreError(f"Invalid YAML in state file {self._path}: {e}") from e

        if raw is None:
            return
        if not isinstance(raw, dict) or not isinstance(raw.get("resources", {}), dict):
            raise StateStoreError(f"State file must contain a 'resources' mapping: {self._path}")

        version = raw.get("version", STATE_VERSION)
        if version != STATE_VERSION:
            raise StateStoreError(f"Unsupported state version {version} in {self._path}")

        for name, data in (raw.get("resources") or {}).items():
            try:
                self._records[name] = ResourceRecord.from_dict(data)
            except (TypeError, ValueError) as e:
                raise StateStoreError(f"Invalid record '{name}' in {self._path}: {e}") from e

        logger.debug(
            "Loaded state",
            extra={"path": str(self._path), "records": len(self._records)},
        )

    def get(self, name: str) -> ResourceRecord | None:
        return self._records.get(name)

    def get_or_create(self, name: str, kind: str) -> ResourceRecord:
        """Return the stored record, or a fresh absent one.

        A stored record of another kind is only replaced when it holds no
        identity.

        Raises:
            StateStoreError: If the name still tracks a remote object of
                another kind.
        """
        record = self._records.get(name)
        if record is not None and record.kind != kind:
            if record.has_identity:
                raise StateStoreError(
                    f"'{name}' still tracks {record.kind} {record.id}; "
                    f"destroy it before declaring a {kind} under that name"
                )
            logger.warning(
                "Replacing record of another kind",
                extra={"record": name, "old_kind": record.kind, "kind": kind},
            )
            record = None
        if record is None:
            record = ResourceRecord(kind=kind, name=name)
            self._records[name] = record
        return record

    def records(self) -> dict[str, ResourceRecord]:
        return dict(self._records)

    def remove(self, name: str) -> None:
        self._records.pop(name, None)

    def put(self, record: ResourceRecord) -> None:
        """Store a record and persist the whole state. Usable as an apply hook."""
        self._records[record.name] = record
        self.save()

    def save(self) -> None:
        """Atomically write all records.

        Raises:
            StateStoreError: If the file cannot be written.
        """
        document = {
            "version": STATE_VERSION,
            "resources": {name: r.to_dict() for name, r in sorted(self._records.items())},
        }
        directory = self._path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{self._path.name}.", dir=directory)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    yaml.safe_dump(document, handle, sort_keys=False, default_flow_style=False)
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StateStoreError(f"Failed to write state file {self._path}: {e}") from e
