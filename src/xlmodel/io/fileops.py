"""File operations: fingerprinting, backup, atomic write, locking."""

from __future__ import annotations

import hashlib
import logging
import os
import shutil
import tempfile
import time
from datetime import datetime, timezone
from io import TextIOWrapper
from pathlib import Path

import portalocker

from xlmodel.contracts.errors import WorkbookLocked

logger = logging.getLogger(__name__)

LOCK_SUFFIX = ".xlmodel.lock"


def fingerprint(path: str | Path) -> str:
    """Compute SHA-256 fingerprint of a file."""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            h.update(chunk)
    return f"sha256:{h.hexdigest()}"


def backup(path: str | Path) -> str:
    """Create a timestamped backup of a file. Returns backup path."""
    path = Path(path)
    ts = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    backup_path = path.parent / f"{path.stem}.{ts}.bak{path.suffix}"
    shutil.copy2(path, backup_path)
    logger.info("Backed up %s to %s", path, backup_path)
    return str(backup_path)


def atomic_write(target: str | Path, data: bytes) -> None:
    """Write data to target atomically via temp file + rename.

    Readers see either the old file or the complete new one.
    """
    target = Path(target)
    fd, tmp_path = tempfile.mkstemp(dir=target.parent, suffix=target.suffix, prefix=".xlmodel_tmp_")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, target)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise
    logger.debug("Wrote %d bytes to %s", len(data), target)


def lock_path_for(path: str | Path) -> Path:
    path = Path(path).resolve()
    return path.parent / (path.name + LOCK_SUFFIX)


class WorkbookLock:
    """Exclusive sidecar lock held across a read-modify-write cycle.

    The ``<file>.xlmodel.lock`` sidecar may outlive a crashed process; the
    OS drops the lock itself, so a stale sidecar is simply re-acquired.
    """

    def __init__(self, workbook_path: str | Path, *, timeout: float = 0) -> None:
        self.workbook_path = Path(workbook_path).resolve()
        self.timeout = timeout
        self._lock_path = lock_path_for(self.workbook_path)
        self._lock_file: TextIOWrapper | None = None

    @property
    def lock_path(self) -> Path:
        return self._lock_path

    def _try_lock(self) -> None:
        portalocker.lock(self._lock_file, portalocker.LOCK_EX | portalocker.LOCK_NB)

    def __enter__(self) -> "WorkbookLock":
        self._lock_file = open(self._lock_path, "a+")  # noqa: SIM115
        try:
            if self.timeout <= 0:
                self._try_lock()
            else:
                deadline = time.monotonic() + self.timeout
                interval = min(0.1, max(0.01, self.timeout / 20))
                while True:
                    try:
                        self._try_lock()
                        break
                    except portalocker.LockException:
                        if time.monotonic() >= deadline:
                            raise
                        time.sleep(interval)
        except portalocker.LockException as e:
            self._lock_file.close()
            self._lock_file = None
            raise WorkbookLocked(
                f"Workbook is locked by another process: {self.workbook_path}",
                details={"lock_file": str(self._lock_path), "timeout": self.timeout},
            ) from e

        self._lock_file.seek(0)
        self._lock_file.truncate()
        self._lock_file.write(f"pid={os.getpid()}\n")
        self._lock_file.write(f"time={datetime.now(timezone.utc).isoformat()}\n")
        self._lock_file.flush()
        logger.debug("Acquired %s", self._lock_path)
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        if self._lock_file is not None:
            try:
                portalocker.unlock(self._lock_file)
            finally:
                self._lock_file.close()
                self._lock_file = None


def _read_holder(lock_path: Path) -> dict[str, str]:
    holder: dict[str, str] = {}
    try:
        for line in lock_path.read_text().strip().splitlines():
            if "=" in line:
                k, v = line.split("=", 1)
                holder[k.strip()] = v.strip()
    except OSError:
        pass
    return holder


def check_lock(path: str | Path) -> dict:
    """Best-effort probe of the sidecar lock.

    Returns ``exists`` (the workbook file exists), ``locked``, ``lock_file``
    and, when locked, the ``holder`` recorded in the sidecar.
    """
    path = Path(path).resolve()
    lock_path = lock_path_for(path)
    status = {"exists": path.exists(), "locked": False, "lock_file": str(lock_path)}
    if not lock_path.exists():
        return status

    try:
        with open(lock_path, "a+") as fd:
            portalocker.lock(fd, portalocker.LOCK_EX | portalocker.LOCK_NB)
            portalocker.unlock(fd)
    except portalocker.LockException:
        return {**status, "locked": True, "holder": _read_holder(lock_path)}
    except OSError:
        return {**status, "check_error": True}
    return status
