"""
Test suite for S3StateBackend.

Uses an in-memory stand-in for the S3 client that honors conditional writes
(IfNoneMatch / IfMatch) and raises botocore ClientError like the real API.

System role: Verification of shared state storage and lease races
"""

import hashlib
import io
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from infragraph.boundary.state.base import StateLease, utcnow
from infragraph.boundary.state.s3 import S3StateBackend
from infragraph.core.exceptions import LockContentionError, StateBackendError
from infragraph.models.state import StateSnapshot


def _client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class FakeS3:
    """Objects keyed by (bucket, key) with ETags and conditional puts."""

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str], bytes] = {}

    @staticmethod
    def _etag(body: bytes) -> str:
        return '"' + hashlib.md5(body).hexdigest() + '"'

    def get_object(self, Bucket: str, Key: str) -> dict:
        body = self.objects.get((Bucket, Key))
        if body is None:
            raise _client_error("NoSuchKey", "GetObject")
        return {"Body": io.BytesIO(body), "ETag": self._etag(body)}

    def put_object(self, Bucket: str, Key: str, Body: bytes, ContentType: str = "", **conditions: str) -> dict:
        existing = self.objects.get((Bucket, Key))
        if conditions.get("IfNoneMatch") == "*" and existing is not None:
            raise _client_error("PreconditionFailed", "PutObject")
        if "IfMatch" in conditions and (existing is None or self._etag(existing) != conditions["IfMatch"]):
            raise _client_error("PreconditionFailed", "PutObject")
        self.objects[(Bucket, Key)] = Body
        return {"ETag": self._etag(Body)}

    def delete_object(self, Bucket: str, Key: str) -> dict:
        self.objects.pop((Bucket, Key), None)
        return {}


@pytest.fixture
def fake_s3() -> FakeS3:
    """Provide in-memory S3 client."""
    return FakeS3()


@pytest.fixture
def s3_backend(fake_s3: FakeS3) -> S3StateBackend:
    """Provide S3StateBackend bound to the fake client."""
    return S3StateBackend(
        bucket="infra-state",
        key="network/infragraph.state.json",
        lock_ttl_seconds=60,
        client=fake_s3,
    )


class TestS3StateSnapshot:
    """Test suite for snapshot reads and writes."""

    def test_missing_object_reads_empty(self, s3_backend: S3StateBackend) -> None:
        """Test a new bucket key starts from an empty snapshot."""
        # Act
        snapshot = s3_backend.read()

        # Assert
        assert snapshot.resources == {}

    def test_write_then_read(self, s3_backend: S3StateBackend, fake_s3: FakeS3) -> None:
        """
        Test a snapshot written under the lease reads back.

        Arrange: Acquire lease
        Act: Write a snapshot with serial 3, read it
        Assert: Serial preserved, object stored under the state key
        """
        # Arrange
        lease = s3_backend.acquire_lock("alice@host:1")

        # Act
        s3_backend.write(StateSnapshot(serial=3), lease)
        restored = s3_backend.read()

        # Assert
        assert restored.serial == 3
        assert ("infra-state", "network/infragraph.state.json") in fake_s3.objects

    def test_write_without_lease_rejected(self, s3_backend: S3StateBackend) -> None:
        with pytest.raises(LockContentionError):
            s3_backend.write(StateSnapshot(), StateLease.issue("ghost", 60))

    def test_access_denied_raises_backend_error(self) -> None:
        client = MagicMock()
        client.get_object.side_effect = _client_error("AccessDenied", "GetObject")
        backend = S3StateBackend("infra-state", "state.json", client=client)

        with pytest.raises(StateBackendError):
            backend.read()

    def test_corrupt_object_raises(self, s3_backend: S3StateBackend, fake_s3: FakeS3) -> None:
        fake_s3.objects[("infra-state", "network/infragraph.state.json")] = b"not json"

        with pytest.raises(StateBackendError):
            s3_backend.read()


class TestS3StateLock:
    """Test suite for conditional-write leases."""

    def test_acquire_uses_if_none_match(self) -> None:
        """Test the first acquire is a create-only put of the lock object."""
        # Arrange
        client = MagicMock()
        backend = S3StateBackend("infra-state", "state.json", client=client)

        # Act
        backend.acquire_lock("alice@host:1")

        # Assert
        kwargs = client.put_object.call_args.kwargs
        assert kwargs["Key"] == "state.json.lock"
        assert kwargs["IfNoneMatch"] == "*"

    def test_second_owner_rejected(self, s3_backend: S3StateBackend) -> None:
        """
        Test only one run can hold the lease.

        Arrange: Alice holds the lease
        Act: Bob tries to acquire
        Assert: LockContentionError naming alice
        """
        s3_backend.acquire_lock("alice@host:1")

        with pytest.raises(LockContentionError) as exc_info:
            s3_backend.acquire_lock("bob@host:2")

        assert exc_info.value.holder == "alice@host:1"

    def test_expired_lease_taken_over(self, s3_backend: S3StateBackend, fake_s3: FakeS3) -> None:
        # Arrange
        stale = StateLease(
            owner="crashed@host:9",
            acquired_at=utcnow() - timedelta(hours=1),
            expires_at=utcnow() - timedelta(seconds=1),
        )
        fake_s3.objects[("infra-state", "network/infragraph.state.json.lock")] = stale.to_bytes()

        # Act
        lease = s3_backend.acquire_lock("bob@host:2")

        # Assert
        assert s3_backend.current_lock().lock_id == lease.lock_id

    def test_take_over_race_lost(self, s3_backend: S3StateBackend, fake_s3: FakeS3) -> None:
        """
        Test a takeover fails when the lock object changed underneath.

        Arrange: Expired lease whose ETag changes before the conditional put
        Act: Acquire
        Assert: LockContentionError
        """
        # Arrange
        stale = StateLease(
            owner="crashed@host:9",
            expires_at=utcnow() - timedelta(seconds=1),
        )
        key = ("infra-state", "network/infragraph.state.json.lock")
        fake_s3.objects[key] = stale.to_bytes()
        original_get = fake_s3.get_object

        def racing_get(Bucket: str, Key: str) -> dict:
            response = original_get(Bucket=Bucket, Key=Key)
            if Key.endswith(".lock"):
                rival = StateLease.issue("carol@host:3", 60)
                fake_s3.objects[key] = rival.to_bytes()
            return response

        fake_s3.get_object = racing_get

        # Act / Assert
        with pytest.raises(LockContentionError):
            s3_backend.acquire_lock("bob@host:2")

    def test_renew_and_release(self, s3_backend: S3StateBackend, fake_s3: FakeS3) -> None:
        lease = s3_backend.acquire_lock("alice@host:1")

        renewed = s3_backend.renew_lock(lease)
        s3_backend.release_lock(renewed)

        assert renewed.lock_id == lease.lock_id
        assert ("infra-state", "network/infragraph.state.json.lock") not in fake_s3.objects

    def test_release_foreign_lease_is_noop(self, s3_backend: S3StateBackend) -> None:
        held = s3_backend.acquire_lock("alice@host:1")

        s3_backend.release_lock(StateLease.issue("ghost", 60))

        assert s3_backend.current_lock().lock_id == held.lock_id
