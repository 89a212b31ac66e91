"""
Local file state backend.

The snapshot lives in a JSON file next to the configuration. The lease is a
sibling ``.lock`` file created with O_CREAT | O_EXCL, so two runs on the same
machine (or on a shared filesystem with atomic exclusive create) cannot both
hold it. Every write goes through a temp file and ``os.replace`` and keeps the
previous snapshot as ``.backup``.

Dependencies: pydantic (via models)
System role: Default state storage for local runs
"""

import logging
import os
import shutil
from pathlib import Path

from pydantic import ValidationError

from infragraph.boundary.state.base import StateBackend, StateLease
from infragraph.core.exceptions import LockContentionError, StateBackendError
from infragraph.models.state import StateSnapshot

logger = logging.getLogger(__name__)


class LocalStateBackend(StateBackend):
    """State snapshot stored in a local JSON file."""

    def __init__(self, path: str | Path, lock_ttl_seconds: int = 900) -> None:
        """
        Initialize the backend.

        Args:
            path: State file path
            lock_ttl_seconds: Lease duration
        """
        super().__init__(lock_ttl_seconds)
        self._path = Path(path)
        self._lock_path = self._path.with_name(self._path.name + ".lock")
        self._backup_path = self._path.with_name(self._path.name + ".backup")

    @property
    def path(self) -> Path:
        return self._path

    @property
    def lock_path(self) -> Path:
        return self._lock_path

    def read(self) -> StateSnapshot:
        if not self._path.exists():
            logger.info(f"{__name__}:read - No state at {self._path}, starting empty")
            return StateSnapshot()
        try:
            return StateSnapshot.from_bytes(self._path.read_bytes())
        except (OSError, ValueError) as e:
            raise StateBackendError(f"Cannot read state file {self._path}: {e}") from e

    def write(self, snapshot: StateSnapshot, lease: StateLease) -> None:
        self._check_held(lease)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            if self._path.exists():
                shutil.copyfile(self._path, self._backup_path)
            self._atomic_write(self._path, snapshot.to_bytes())
        except OSError as e:
            raise StateBackendError(f"Cannot write state file {self._path}: {e}") from e
        logger.debug(f"{__name__}:write - serial {snapshot.serial} written to {self._path}")

    def acquire_lock(self, owner: str) -> StateLease:
        lease = StateLease.issue(owner, self._lock_ttl)
        self._lock_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(self._lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return self._take_over(lease)
        with os.fdopen(fd, "wb") as handle:
            handle.write(lease.to_bytes())
        logger.info(f"{__name__}:acquire_lock - Lease {lease.lock_id} acquired by {owner}")
        return lease

    def renew_lock(self, lease: StateLease) -> StateLease:
        self._check_held(lease)
        renewed = lease.renewed(self._lock_ttl)
        self._atomic_write(self._lock_path, renewed.to_bytes())
        return renewed

    def release_lock(self, lease: StateLease) -> None:
        try:
            current = self.current_lock()
        except LockContentionError:
            current = None
        if current is None or current.lock_id != lease.lock_id:
            logger.warning(f"{__name__}:release_lock - Lease {lease.lock_id} no longer held")
            return
        self._lock_path.unlink(missing_ok=True)
        logger.info(f"{__name__}:release_lock - Lease {lease.lock_id} released")

    def current_lock(self) -> StateLease | None:
        try:
            data = self._lock_path.read_bytes()
        except FileNotFoundError:
            return None
        try:
            return StateLease.from_bytes(data)
        except ValidationError as e:
            # Another process may be between create and write
            raise LockContentionError(f"unknown (unreadable lock file {self._lock_path})") from e

    def _take_over(self, lease: StateLease) -> StateLease:
        current = self.current_lock()
        if current is None:
            # Released between our create attempt and the read; try once more
            return self._create_after_release(lease)
        if not current.is_expired():
            raise LockContentionError(current.owner, current.expires_at.isoformat())

        logger.warning(
            f"{__name__}:acquire_lock - Taking over expired lease {current.lock_id} "
            f"held by {current.owner}"
        )
        self._atomic_write(self._lock_path, lease.to_bytes())
        confirmed = self.current_lock()
        if confirmed is None or confirmed.lock_id != lease.lock_id:
            holder = confirmed.owner if confirmed else "unknown"
            raise LockContentionError(holder)
        return lease

    def _create_after_release(self, lease: StateLease) -> StateLease:
        try:
            fd = os.open(self._lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError as e:
            current = self.current_lock()
            raise LockContentionError(current.owner if current else "unknown") from e
        with os.fdopen(fd, "wb") as handle:
            handle.write(lease.to_bytes())
        return lease

    def _check_held(self, lease: StateLease) -> None:
        current = self.current_lock()
        if current is None or current.lock_id != lease.lock_id:
            holder = current.owner if current else "nobody"
            raise LockContentionError(holder)

    @staticmethod
    def _atomic_write(path: Path, data: bytes) -> None:
        tmp_path = path.with_name(f".{path.name}.{os.getpid()}.tmp")
        tmp_path.write_bytes(data)
        os.replace(tmp_path, path)
