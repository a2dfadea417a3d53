"""
Migration Lock Manager

File-based lock serializing updates of the same pool from processes that
share a lock directory. Lock files are keyed by a hash of the pool's
namespace/name and hold JSON metadata; locks whose owner process is gone,
or that are older than STALE_LOCK_THRESHOLD, are reclaimed. So are lock
files still without metadata after METADATA_GRACE_PERIOD.

This only guards cooperating poolshift processes on one host. It is
disabled by default (MigrationConfig.lock_enabled).
"""

import hashlib
import json
import os
import socket
import time
from pathlib import Path
from typing import Any, Callable, Optional

import structlog

from ..exceptions import MigrationLockError, MigrationLockTimeout

logger = structlog.get_logger(__name__)


class MigrationLockManager:
    """
    Per-pool lock backed by an exclusively created file.

    Lock files contain:
    {
        "pool": "namespace/name",
        "owner": "run identifier",
        "pid": 12345,
        "timestamp": 1234567890.0,
        "hostname": "machine-name"
    }
    """

    DEFAULT_LOCK_DIR = Path(".poolshift/locks")
    STALE_LOCK_THRESHOLD = 3600  # 1 hour in seconds
    RETRY_INTERVAL = 0.5
    METADATA_GRACE_PERIOD = 10

    def __init__(
        self,
        pool: str,
        owner: str,
        lock_dir: Optional[Path] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        Initialize the lock manager.

        Args:
            pool: Pool identity ("namespace/name") to lock
            owner: Identifier of the run holding the lock
            lock_dir: Directory for lock files
            sleep: Sleep function used between attempts
        """
        self.pool = pool
        self.owner = owner
        self.lock_dir = Path(lock_dir or self.DEFAULT_LOCK_DIR)
        self._sleep = sleep
        self._logger = logger.bind(component="MigrationLockManager", pool=pool)

        self.lock_file = self._get_lock_file_path()
        self._lock_fd: Optional[int] = None
        self._lock_acquired = False

        self.lock_dir.mkdir(parents=True, exist_ok=True)

    def _get_lock_file_path(self) -> Path:
        pool_hash = hashlib.sha256(self.pool.encode()).hexdigest()[:16]
        return self.lock_dir / f"{pool_hash}.lock"

    def _write_lock_metadata(self) -> None:
        metadata = {
            "pool": self.pool,
            "owner": self.owner,
            "pid": os.getpid(),
            "timestamp": time.time(),
            "hostname": socket.gethostname(),
        }
        if self._lock_fd is None:
            return
        os.write(self._lock_fd, json.dumps(metadata, indent=2).encode())
        self._logger.debug("Wrote lock metadata", metadata=metadata)

    def read_lock_metadata(self) -> Optional[dict[str, Any]]:
        """
        Read the current lock holder's metadata.

        Returns:
            The metadata, or None if there is no lock or it is unreadable
        """
        try:
            with open(self.lock_file) as f:
                return json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            self._logger.warning("Failed to read lock metadata", error=str(e))
            return None

    @staticmethod
    def _is_process_alive(pid: int) -> bool:
        try:
            # signal 0 only checks for existence
            os.kill(pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            return True
        return True

    def _is_stale_lock(self, metadata: dict[str, Any]) -> bool:
        """
        A lock is stale if its process is no longer running on this host,
        or if it is older than STALE_LOCK_THRESHOLD.
        """
        pid = metadata.get("pid")
        same_host = metadata.get("hostname") in (None, socket.gethostname())
        if pid is not None and same_host and not self._is_process_alive(pid):
            self._logger.info(
                "Lock is stale (process not running)",
                pid=pid,
                owner=metadata.get("owner"),
            )
            return True

        timestamp = metadata.get("timestamp")
        if timestamp is not None:
            age = time.time() - timestamp
            if age > self.STALE_LOCK_THRESHOLD:
                self._logger.info(
                    "Lock is stale (too old)",
                    age_seconds=age,
                    threshold=self.STALE_LOCK_THRESHOLD,
                    owner=metadata.get("owner"),
                )
                return True

        return False

    def _is_abandoned(self) -> bool:
        """
        A lock file without readable metadata is abandoned once it is older
        than METADATA_GRACE_PERIOD (its holder died before writing it).
        """
        try:
            age = time.time() - self.lock_file.stat().st_mtime
        except FileNotFoundError:
            return False
        if age > self.METADATA_GRACE_PERIOD:
            self._logger.info("Lock is stale (no metadata)", age_seconds=age)
            return True
        return False

    def _try_create(self) -> bool:
        try:
            self._lock_fd = os.open(
                self.lock_file, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644
            )
        except FileExistsError:
            return False
        except OSError as e:
            raise MigrationLockError(
                f"Failed to create lock file {self.lock_file}: {e}",
                pool=self.pool,
                cause=e,
            ) from e
        return True

    def acquire(self, timeout: Optional[float] = None) -> None:
        """
        Acquire the pool lock, reclaiming stale locks on the way.

        Args:
            timeout: Maximum seconds to wait (None waits forever)

        Raises:
            MigrationLockTimeout: If the lock is still held when timeout expires
            MigrationLockError: If the lock file cannot be created
        """
        if self._lock_acquired:
            self._logger.warning("Lock already acquired")
            return

        self._logger.info("Attempting to acquire lock", timeout=timeout)
        start = time.monotonic()

        while not self._try_create():
            metadata = self.read_lock_metadata()
            if metadata is None:
                stale = self._is_abandoned()
            else:
                stale = self._is_stale_lock(metadata)
            if stale:
                self._logger.info("Removing stale lock", metadata=metadata)
                self.lock_file.unlink(missing_ok=True)
                continue

            elapsed = time.monotonic() - start
            if timeout is not None and elapsed >= timeout:
                holder = (metadata or {}).get("owner")
                self._logger.warning(
                    "Lock acquisition timed out", timeout=timeout, holder=holder
                )
                raise MigrationLockTimeout(
                    f"Failed to acquire lock for {self.pool} within {timeout}s",
                    pool=self.pool,
                    context={"holder": holder},
                    recovery_suggestion="Wait for the other update to finish "
                    "or remove the lock file if its owner is gone",
                )
            self._sleep(self.RETRY_INTERVAL)

        self._write_lock_metadata()
        self._lock_acquired = True
        self._logger.info("Successfully acquired lock")

    def release(self) -> None:
        """Release the lock. Safe to call more than once."""
        if not self._lock_acquired:
            return

        if self._lock_fd is not None:
            os.close(self._lock_fd)
            self._lock_fd = None
        self.lock_file.unlink(missing_ok=True)
        self._lock_acquired = False
        self._logger.info("Released lock")

    def is_locked(self) -> bool:
        """Whether any live holder currently has the pool locked."""
        metadata = self.read_lock_metadata()
        if metadata is None:
            return self.lock_file.exists() and not self._is_abandoned()
        return not self._is_stale_lock(metadata)

    def __enter__(self) -> "MigrationLockManager":
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[Any],
    ) -> bool:
        self.release()
        return False


__all__ = ["MigrationLockManager"]
