"""
Test suite for LocalStateBackend.

Tests snapshot persistence, backups and lease handling on the local filesystem.

System role: Verification of local state storage
"""

from datetime import timedelta

import pytest

from infragraph.boundary.state.base import StateLease, utcnow
from infragraph.boundary.state.local import LocalStateBackend
from infragraph.core.exceptions import LockContentionError, StateBackendError
from infragraph.models.resource import NodeState
from infragraph.models.state import ResourceState, StateSnapshot


def _snapshot(serial: int = 1) -> StateSnapshot:
    snapshot = StateSnapshot(serial=serial)
    snapshot.put(ResourceState(
        id="vpc.main",
        type="vpc",
        status=NodeState.CREATED,
        provider_id="vpc-0abc",
        config={"cidr_block": "10.0.0.0/16"},
    ))
    return snapshot


class TestLocalStateRead:
    """Test suite for reading snapshots."""

    def test_missing_file_reads_empty(self, backend: LocalStateBackend) -> None:
        """Test a fresh workspace starts from an empty snapshot."""
        # Act
        snapshot = backend.read()

        # Assert
        assert snapshot.resources == {}
        assert snapshot.serial == 0

    def test_corrupt_file_raises(self, backend: LocalStateBackend) -> None:
        backend.path.write_text("{not json")

        with pytest.raises(StateBackendError):
            backend.read()


class TestLocalStateWrite:
    """Test suite for writing snapshots."""

    def test_write_then_read(self, backend: LocalStateBackend, lease: StateLease) -> None:
        """
        Test a written snapshot reads back unchanged.

        Arrange: Snapshot with one realized VPC
        Act: Write under the lease, read back
        Assert: Entry and serial preserved
        """
        # Arrange
        snapshot = _snapshot()

        # Act
        backend.write(snapshot, lease)
        restored = backend.read()

        # Assert
        assert restored.serial == 1
        assert restored.lineage == snapshot.lineage
        assert restored.resources["vpc.main"].provider_id == "vpc-0abc"

    def test_previous_snapshot_kept_as_backup(self, backend: LocalStateBackend, lease: StateLease) -> None:
        backend.write(_snapshot(1), lease)
        backend.write(_snapshot(2), lease)

        backup = StateSnapshot.from_bytes(
            backend.path.with_name(backend.path.name + ".backup").read_bytes()
        )

        assert backup.serial == 1
        assert backend.read().serial == 2

    def test_write_without_lease_rejected(self, backend: LocalStateBackend) -> None:
        stray = StateLease.issue("someone-else", 60)

        with pytest.raises(LockContentionError):
            backend.write(_snapshot(), stray)

        assert not backend.path.exists()

    def test_no_temp_files_left(self, backend: LocalStateBackend, lease: StateLease) -> None:
        backend.write(_snapshot(), lease)

        leftovers = [path.name for path in backend.path.parent.iterdir() if path.name.endswith(".tmp")]

        assert leftovers == []


class TestLocalStateLock:
    """Test suite for the lease lock."""

    def test_acquire_and_release(self, backend: LocalStateBackend) -> None:
        # Act
        lease = backend.acquire_lock("alice@host:1")

        # Assert
        assert backend.lock_path.exists()
        assert backend.current_lock().lock_id == lease.lock_id

        backend.release_lock(lease)
        assert not backend.lock_path.exists()
        assert backend.current_lock() is None

    def test_second_owner_rejected(self, backend: LocalStateBackend, lease: StateLease) -> None:
        """
        Test a held lease blocks another run.

        Arrange: Lease held by the fixture
        Act: Acquire as a different owner
        Assert: LockContentionError naming the holder
        """
        with pytest.raises(LockContentionError) as exc_info:
            backend.acquire_lock("bob@host:2")

        assert exc_info.value.holder == lease.owner
        assert exc_info.value.expires_at is not None

    def test_expired_lease_taken_over(self, backend: LocalStateBackend) -> None:
        """
        Test an expired lease can be replaced.

        Arrange: Lock file holding a lease that expired a minute ago
        Act: Acquire as a new owner
        Assert: New lease stored; old lease can no longer write
        """
        # Arrange
        stale = StateLease(
            owner="crashed@host:9",
            acquired_at=utcnow() - timedelta(hours=1),
            expires_at=utcnow() - timedelta(minutes=1),
        )
        backend.lock_path.write_bytes(stale.to_bytes())

        # Act
        lease = backend.acquire_lock("bob@host:2")

        # Assert
        assert backend.current_lock().lock_id == lease.lock_id
        with pytest.raises(LockContentionError):
            backend.write(_snapshot(), stale)

    def test_renew_extends_expiry(self, backend: LocalStateBackend, lease: StateLease) -> None:
        renewed = backend.renew_lock(lease)

        assert renewed.lock_id == lease.lock_id
        assert renewed.expires_at >= lease.expires_at
        assert backend.current_lock().expires_at == renewed.expires_at

    def test_renew_lost_lease_raises(self, backend: LocalStateBackend) -> None:
        with pytest.raises(LockContentionError):
            backend.renew_lock(StateLease.issue("ghost", 60))

    def test_release_foreign_lease_keeps_lock(self, backend: LocalStateBackend, lease: StateLease) -> None:
        backend.release_lock(StateLease.issue("ghost", 60))

        assert backend.current_lock().lock_id == lease.lock_id

    def test_unreadable_lock_file_blocks(self, backend: LocalStateBackend) -> None:
        backend.lock_path.write_text("")

        with pytest.raises(LockContentionError):
            backend.acquire_lock("bob@host:2")

    def test_locked_context_releases(self, backend: LocalStateBackend) -> None:
        with backend.locked("alice@host:1") as lease:
            backend.write(_snapshot(), lease)

        assert backend.current_lock() is None
        assert backend.read().serial == 1
