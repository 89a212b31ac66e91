"""
S3 state backend.

The snapshot is a single JSON object. The lease is a sibling ``.lock`` object
written with a conditional PutObject: ``IfNoneMatch="*"`` to acquire, and
``IfMatch=<etag>`` to renew or take over an expired lease, so two runs
racing for the same bucket key cannot both win.

Dependencies: boto3, botocore
System role: Shared state storage for team and CI runs
"""

import logging
from typing import Any

import boto3
from botocore.exceptions import ClientError

from infragraph.boundary.state.base import StateBackend, StateLease
from infragraph.core.exceptions import LockContentionError, StateBackendError
from infragraph.models.state import StateSnapshot

logger = logging.getLogger(__name__)

_MISSING_CODES = frozenset({"NoSuchKey", "404", "NotFound"})
_CONFLICT_CODES = frozenset({"PreconditionFailed", "ConditionalRequestConflict", "412", "409"})


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


class S3StateBackend(StateBackend):
    """State snapshot stored in an S3 object."""

    def __init__(
        self,
        bucket: str,
        key: str,
        region: str = "ap-southeast-2",
        lock_ttl_seconds: int = 900,
        client: Any = None,
    ) -> None:
        """
        Initialize S3 client for the state bucket.

        Args:
            bucket: S3 bucket name
            key: Object key of the snapshot
            region: AWS region for the bucket
            lock_ttl_seconds: Lease duration
            client: Pre-built S3 client (tests inject a stub)
        """
        super().__init__(lock_ttl_seconds)
        self._bucket = bucket
        self._key = key
        self._lock_key = f"{key}.lock"
        self._s3_client = client or boto3.client("s3", region_name=region)

    def read(self) -> StateSnapshot:
        try:
            response = self._s3_client.get_object(Bucket=self._bucket, Key=self._key)
        except ClientError as e:
            if _error_code(e) in _MISSING_CODES:
                logger.info(f"{__name__}:read - No state at s3://{self._bucket}/{self._key}")
                return StateSnapshot()
            raise StateBackendError(f"Cannot read s3://{self._bucket}/{self._key}: {e}") from e
        try:
            return StateSnapshot.from_bytes(response["Body"].read())
        except ValueError as e:
            raise StateBackendError(f"Corrupt state in s3://{self._bucket}/{self._key}: {e}") from e

    def write(self, snapshot: StateSnapshot, lease: StateLease) -> None:
        self._check_held(lease)
        try:
            self._s3_client.put_object(
                Bucket=self._bucket,
                Key=self._key,
                Body=snapshot.to_bytes(),
                ContentType="application/json",
            )
        except ClientError as e:
            raise StateBackendError(f"Cannot write s3://{self._bucket}/{self._key}: {e}") from e
        logger.debug(f"{__name__}:write - serial {snapshot.serial} written")

    def acquire_lock(self, owner: str) -> StateLease:
        lease = StateLease.issue(owner, self._lock_ttl)
        try:
            self._put_lock(lease, IfNoneMatch="*")
        except ClientError as e:
            if _error_code(e) not in _CONFLICT_CODES:
                raise StateBackendError(f"Cannot acquire lock {self._lock_key}: {e}") from e
            return self._take_over(lease)
        logger.info(f"{__name__}:acquire_lock - Lease {lease.lock_id} acquired by {owner}")
        return lease

    def renew_lock(self, lease: StateLease) -> StateLease:
        current, etag = self._read_lock()
        if current is None or current.lock_id != lease.lock_id:
            raise LockContentionError(current.owner if current else "nobody")
        renewed = lease.renewed(self._lock_ttl)
        try:
            self._put_lock(renewed, IfMatch=etag)
        except ClientError as e:
            if _error_code(e) in _CONFLICT_CODES:
                raise LockContentionError("unknown") from e
            raise StateBackendError(f"Cannot renew lock {self._lock_key}: {e}") from e
        return renewed

    def release_lock(self, lease: StateLease) -> None:
        current, _ = self._read_lock()
        if current is None or current.lock_id != lease.lock_id:
            logger.warning(f"{__name__}:release_lock - Lease {lease.lock_id} no longer held")
            return
        try:
            self._s3_client.delete_object(Bucket=self._bucket, Key=self._lock_key)
        except ClientError as e:
            raise StateBackendError(f"Cannot release lock {self._lock_key}: {e}") from e
        logger.info(f"{__name__}:release_lock - Lease {lease.lock_id} released")

    def current_lock(self) -> StateLease | None:
        return self._read_lock()[0]

    def _take_over(self, lease: StateLease) -> StateLease:
        current, etag = self._read_lock()
        if current is None:
            try:
                self._put_lock(lease, IfNoneMatch="*")
            except ClientError as e:
                raise LockContentionError("unknown") from e
            return lease
        if not current.is_expired():
            raise LockContentionError(current.owner, current.expires_at.isoformat())

        logger.warning(
            f"{__name__}:acquire_lock - Taking over expired lease {current.lock_id} "
            f"held by {current.owner}"
        )
        try:
            self._put_lock(lease, IfMatch=etag)
        except ClientError as e:
            if _error_code(e) in _CONFLICT_CODES:
                raise LockContentionError("unknown") from e
            raise StateBackendError(f"Cannot take over lock {self._lock_key}: {e}") from e
        return lease

    def _put_lock(self, lease: StateLease, **conditions: str) -> None:
        self._s3_client.put_object(
            Bucket=self._bucket,
            Key=self._lock_key,
            Body=lease.to_bytes(),
            ContentType="application/json",
            **conditions,
        )

    def _read_lock(self) -> tuple[StateLease | None, str | None]:
        try:
            response = self._s3_client.get_object(Bucket=self._bucket, Key=self._lock_key)
        except ClientError as e:
            if _error_code(e) in _MISSING_CODES:
                return None, None
            raise StateBackendError(f"Cannot read lock {self._lock_key}: {e}") from e
        try:
            lease = StateLease.from_bytes(response["Body"].read())
        except ValueError as e:
            raise LockContentionError("unknown (unreadable lock object)") from e
        return lease, response.get("ETag")

    def _check_held(self, lease: StateLease) -> None:
        current, _ = self._read_lock()
        if current is None or current.lock_id != lease.lock_id:
            raise LockContentionError(current.owner if current else "nobody")
