"""
State backend contract.

A backend stores the state snapshot as an opaque JSON blob and guards it with
a lease: one run at a time holds the lease, renews it on every write, and an
expired lease may be taken over by another run.

Dependencies: pydantic
System role: Durable storage seam of the run service
"""

import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Iterator

from pydantic import BaseModel, Field

from infragraph.models.state import StateSnapshot


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StateLease(BaseModel):
    """Lock record held by the run that owns the snapshot."""

    lock_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    owner: str = Field(description="user@host:pid of the holder")
    acquired_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime

    @classmethod
    def issue(cls, owner: str, ttl_seconds: int) -> "StateLease":
        now = utcnow()
        return cls(owner=owner, acquired_at=now, expires_at=now + timedelta(seconds=ttl_seconds))

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) >= self.expires_at

    def renewed(self, ttl_seconds: int) -> "StateLease":
        return self.model_copy(update={"expires_at": utcnow() + timedelta(seconds=ttl_seconds)})

    def to_bytes(self) -> bytes:
        return self.model_dump_json().encode("utf-8")

    @classmethod
    def from_bytes(cls, data: bytes | str) -> "StateLease":
        return cls.model_validate_json(data)


class StateBackend(ABC):
    """Snapshot storage with a lease lock."""

    def __init__(self, lock_ttl_seconds: int = 900) -> None:
        self._lock_ttl = lock_ttl_seconds

    @abstractmethod
    def read(self) -> StateSnapshot:
        """Return the stored snapshot, or an empty one if none exists."""
        raise NotImplementedError

    @abstractmethod
    def write(self, snapshot: StateSnapshot, lease: StateLease) -> None:
        """
        Replace the stored snapshot.

        Raises:
            LockContentionError: If ``lease`` is no longer the held lease
            StateBackendError: If the snapshot cannot be stored
        """
        raise NotImplementedError

    @abstractmethod
    def acquire_lock(self, owner: str) -> StateLease:
        """
        Take the lease, replacing an expired one.

        Raises:
            LockContentionError: If another owner holds an unexpired lease
        """
        raise NotImplementedError

    @abstractmethod
    def renew_lock(self, lease: StateLease) -> StateLease:
        """Extend the lease; raises LockContentionError if it was lost."""
        raise NotImplementedError

    @abstractmethod
    def release_lock(self, lease: StateLease) -> None:
        """Release the lease if it is still held by ``lease``."""
        raise NotImplementedError

    @abstractmethod
    def current_lock(self) -> StateLease | None:
        """Return the lease currently stored, if any."""
        raise NotImplementedError

    @contextmanager
    def locked(self, owner: str) -> Iterator[StateLease]:
        """
        Hold the lease for the duration of a block.

        Usage:
            with backend.locked(lock_owner()) as lease:
                backend.write(snapshot, lease)
        """
        lease = self.acquire_lock(owner)
        try:
            yield lease
        finally:
            self.release_lock(lease)
