"""Tests for WorkbookLock and concurrent file access safety."""

from __future__ import annotations

import json
import multiprocessing
import os
import time
from pathlib import Path

import pytest

from xlmodel.contracts.errors import WorkbookLocked
from xlmodel.io.fileops import WorkbookLock, check_lock


def _lock_file(path: Path) -> Path:
    return path.parent / (path.name + ".xlmodel.lock")


# ---------------------------------------------------------------------------
# WorkbookLock unit tests
# ---------------------------------------------------------------------------


class TestWorkbookLock:
    """Unit tests for the WorkbookLock context manager."""

    def test_basic_acquire_release(self, sample_path: Path):
        """Lock can be acquired and released."""
        with WorkbookLock(sample_path):
            assert _lock_file(sample_path).exists()
        # Lock released; re-acquire should succeed
        with WorkbookLock(sample_path):
            pass

    def test_lock_file_outlives_the_lock(self, sample_path: Path):
        lock_path = _lock_file(sample_path)
        assert not lock_path.exists()
        with WorkbookLock(sample_path):
            assert lock_path.exists()
        assert lock_path.exists()

    def test_lock_file_contains_pid(self, sample_path: Path):
        """Lock file contains diagnostic PID and timestamp."""
        with WorkbookLock(sample_path):
            pass
        content = _lock_file(sample_path).read_text()
        assert f"pid={os.getpid()}" in content
        assert "time=" in content

    def test_lock_path_property(self, sample_path: Path):
        lock = WorkbookLock(sample_path)
        assert lock.lock_path == _lock_file(sample_path).resolve()

    def test_second_handle_is_rejected(self, sample_path: Path):
        """With timeout=0, a second lock attempt fails immediately."""
        with WorkbookLock(sample_path):
            with pytest.raises(WorkbookLocked) as exc_info:
                with WorkbookLock(sample_path, timeout=0):
                    pass
        assert exc_info.value.code == "ERR_LOCK_HELD"
        assert exc_info.value.details["lock_file"].endswith(".xlmodel.lock")


# ---------------------------------------------------------------------------
# check_lock() tests
# ---------------------------------------------------------------------------


class TestCheckLock:
    def test_no_lock_file(self, sample_path: Path):
        """No sidecar file -> not locked."""
        result = check_lock(sample_path)
        assert result["locked"] is False
        assert result["exists"] is True

    def test_stale_lock_file(self, sample_path: Path):
        """Stale (unlocked) sidecar file -> not locked."""
        with WorkbookLock(sample_path):
            pass
        result = check_lock(sample_path)
        assert result["locked"] is False

    def test_missing_workbook(self, tmp_path: Path):
        result = check_lock(tmp_path / "nope.xlsx")
        assert result["exists"] is False
        assert result["lock_file"].endswith("nope.xlsx.xlmodel.lock")


# ---------------------------------------------------------------------------
# Multiprocessing concurrency tests
# ---------------------------------------------------------------------------


def _hold_lock(workbook_path: str, ready_flag_path: str, done_flag_path: str):
    """Helper: acquire lock, signal ready, wait for done signal, release."""
    ready = Path(ready_flag_path)
    done = Path(done_flag_path)
    with WorkbookLock(Path(workbook_path), timeout=0):
        ready.write_text("ready")
        for _ in range(100):
            if done.exists():
                break
            time.sleep(0.1)


def _short_hold(wb_path: str, ready_path: str, done_path: str):
    """Hold lock briefly, then release. Module-level for pickling."""
    with WorkbookLock(Path(wb_path), timeout=0):
        Path(ready_path).write_text("ready")
        time.sleep(0.5)


def _try_lock_in_subprocess(workbook_path: str, timeout: float, result_path: str):
    """Subprocess helper: try to acquire lock, write result to file."""
    out = Path(result_path)
    try:
        with WorkbookLock(Path(workbook_path), timeout=timeout):
            out.write_text("acquired")
    except WorkbookLocked:
        out.write_text("blocked")
    except Exception as e:
        out.write_text(f"error:{e}")


def _wait_for(flag: Path) -> None:
    for _ in range(50):
        if flag.exists():
            break
        time.sleep(0.1)
    assert flag.exists(), "Holder process did not signal ready"


class TestConcurrentAccess:
    """Cross-process concurrency tests using multiprocessing."""

    def test_concurrent_lock_rejection(self, sample_path: Path, tmp_path: Path):
        """A second process cannot acquire the lock while the first holds it."""
        ready_flag = tmp_path / "ready.flag"
        done_flag = tmp_path / "done.flag"
        result_file = tmp_path / "result.txt"

        holder = multiprocessing.Process(
            target=_hold_lock,
            args=(str(sample_path), str(ready_flag), str(done_flag)),
        )
        holder.start()
        try:
            _wait_for(ready_flag)
            status = check_lock(sample_path)
            assert status["locked"] is True
            assert status["holder"]["pid"] == str(holder.pid)

            contender = multiprocessing.Process(
                target=_try_lock_in_subprocess,
                args=(str(sample_path), 0, str(result_file)),
            )
            contender.start()
            contender.join(timeout=10)

            assert result_file.read_text() == "blocked"
        finally:
            done_flag.write_text("done")
            holder.join(timeout=10)

    def test_lock_wait_success(self, sample_path: Path, tmp_path: Path):
        """A waiter succeeds after the holder releases within timeout."""
        ready_flag = tmp_path / "ready.flag"
        done_flag = tmp_path / "done.flag"
        result_file = tmp_path / "result.txt"

        holder = multiprocessing.Process(
            target=_short_hold,
            args=(str(sample_path), str(ready_flag), str(done_flag)),
        )
        holder.start()
        try:
            _wait_for(ready_flag)
            contender = multiprocessing.Process(
                target=_try_lock_in_subprocess,
                args=(str(sample_path), 5, str(result_file)),
            )
            contender.start()
            contender.join(timeout=15)
            holder.join(timeout=10)

            assert result_file.read_text() == "acquired"
        finally:
            done_flag.write_text("done")
            if holder.is_alive():
                holder.join(timeout=5)

    def test_lock_wait_timeout_expires(self, sample_path: Path, tmp_path: Path):
        """A waiter gives up when the timeout expires."""
        ready_flag = tmp_path / "ready.flag"
        done_flag = tmp_path / "done.flag"
        result_file = tmp_path / "result.txt"

        holder = multiprocessing.Process(
            target=_hold_lock,
            args=(str(sample_path), str(ready_flag), str(done_flag)),
        )
        holder.start()
        try:
            _wait_for(ready_flag)
            contender = multiprocessing.Process(
                target=_try_lock_in_subprocess,
                args=(str(sample_path), 0.3, str(result_file)),
            )
            contender.start()
            contender.join(timeout=10)

            assert result_file.read_text() == "blocked"
        finally:
            done_flag.write_text("done")
            holder.join(timeout=10)


# ---------------------------------------------------------------------------
# CLI integration tests
# ---------------------------------------------------------------------------


def _cli_mutate_in_subprocess(workbook_path: str, result_path: str):
    """Run a mutating CLI command in a subprocess."""
    from typer.testing import CliRunner

    from xlmodel.cli import app

    result = CliRunner().invoke(app, [
        "cell", "set",
        "--file", workbook_path,
        "--ref", "Data!A2",
        "--value", "blocked?",
    ])
    Path(result_path).write_text(result.stdout)


class TestCLILocking:
    def test_mutating_command_leaves_stale_lock_file(self, sample_path: Path):
        from typer.testing import CliRunner

        from xlmodel.cli import app

        result = CliRunner().invoke(app, [
            "cell", "set", "--file", str(sample_path), "--ref", "Data!A2", "--value", "test",
        ])
        data = json.loads(result.stdout)
        assert data["ok"] is True
        assert _lock_file(sample_path).exists()
        assert check_lock(sample_path)["locked"] is False

    def test_read_commands_unaffected_by_lock(self, sample_path: Path, tmp_path: Path):
        """Read-only commands succeed even when the lock is held."""
        from typer.testing import CliRunner

        from xlmodel.cli import app

        ready_flag = tmp_path / "ready.flag"
        done_flag = tmp_path / "done.flag"
        holder = multiprocessing.Process(
            target=_hold_lock,
            args=(str(sample_path), str(ready_flag), str(done_flag)),
        )
        holder.start()
        try:
            _wait_for(ready_flag)
            runner = CliRunner()
            for cmd in [
                ["wb", "inspect", "--file", str(sample_path)],
                ["sheet", "ls", "--file", str(sample_path)],
                ["cell", "get", "--file", str(sample_path), "--ref", "Data!A1"],
            ]:
                result = runner.invoke(app, cmd)
                data = json.loads(result.stdout)
                assert data["ok"] is True, f"Command {cmd} failed: {result.stdout}"
        finally:
            done_flag.write_text("done")
            holder.join(timeout=10)

    def test_mutating_command_blocked_when_locked(self, sample_path: Path, tmp_path: Path):
        """A mutating CLI command emits ERR_LOCK_HELD when locked."""
        ready_flag = tmp_path / "ready.flag"
        done_flag = tmp_path / "done.flag"
        result_file = tmp_path / "cli_result.txt"

        holder = multiprocessing.Process(
            target=_hold_lock,
            args=(str(sample_path), str(ready_flag), str(done_flag)),
        )
        holder.start()
        try:
            _wait_for(ready_flag)
            cli_proc = multiprocessing.Process(
                target=_cli_mutate_in_subprocess,
                args=(str(sample_path), str(result_file)),
            )
            cli_proc.start()
            cli_proc.join(timeout=10)

            data = json.loads(result_file.read_text())
            assert data["ok"] is False
            assert data["errors"][0]["code"] == "ERR_LOCK_HELD"
        finally:
            done_flag.write_text("done")
            holder.join(timeout=10)
