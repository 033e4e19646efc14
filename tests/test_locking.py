"""
Tests for host-wide named locks.
"""

import subprocess
import sys
import textwrap
import threading
import time

import pytest

from deploycore.errors import LockTimeout
from deploycore.locking import SystemSemaphore


class TestSystemSemaphore:
    """Tests for acquire/release semantics."""

    def test_acquire_and_release(self, semaphore):
        handle = semaphore.acquire("resource", timeout=1)

        assert not handle.released
        assert handle.path.exists()
        assert "pid" in handle.path.read_text()

        semaphore.release(handle)
        assert handle.released

    def test_release_is_idempotent(self, semaphore):
        handle = semaphore.acquire("resource", timeout=1)
        semaphore.release(handle)
        semaphore.release(handle)

        assert handle.released

    def test_held_lock_times_out(self, semaphore):
        with semaphore.hold("resource", timeout=1):
            started = time.monotonic()
            with pytest.raises(LockTimeout) as exc_info:
                semaphore.acquire("resource", timeout=0.2)
            elapsed = time.monotonic() - started

        assert elapsed >= 0.2
        assert exc_info.value.name == "resource"
        assert exc_info.value.holder and exc_info.value.holder.startswith("pid ")

    def test_distinct_names_do_not_contend(self, semaphore):
        with semaphore.hold("first", timeout=1):
            with semaphore.hold("second", timeout=0.2) as handle:
                assert not handle.released

    def test_lock_file_names_are_safe_and_distinct(self, semaphore):
        a = semaphore.lock_path("/srv/apps/web")
        b = semaphore.lock_path("\\srv\\apps\\web")

        assert a != b
        assert a.parent == semaphore.lock_dir
        assert "/" not in a.name and "\\" not in b.name

    def test_hold_releases_on_error(self, semaphore):
        with pytest.raises(RuntimeError):
            with semaphore.hold("resource", timeout=1):
                raise RuntimeError("boom")

        with semaphore.hold("resource", timeout=0.2) as handle:
            assert not handle.released

    def test_waiter_acquires_after_release(self, semaphore):
        handle = semaphore.acquire("resource", timeout=1)
        acquired = threading.Event()

        def waiter():
            with semaphore.hold("resource", timeout=5):
                acquired.set()

        thread = threading.Thread(target=waiter)
        thread.start()
        time.sleep(0.1)
        assert not acquired.is_set()

        semaphore.release(handle)
        thread.join(timeout=5)
        assert acquired.is_set()

    def test_mutual_exclusion_between_threads(self, semaphore):
        inside = []
        overlaps = []

        def worker():
            for _ in range(5):
                with semaphore.hold("counter", timeout=5):
                    inside.append(1)
                    if len(inside) > 1:
                        overlaps.append(True)
                    time.sleep(0.005)
                    inside.pop()

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert overlaps == []


def _hold_in_child(lock_dir):
    """Start a process that holds the "shared" lock until its stdin closes."""
    child = textwrap.dedent(f"""
        import sys
        from deploycore.locking import SystemSemaphore
        handle = SystemSemaphore({str(lock_dir)!r}).acquire("shared", timeout=5)
        print("locked", flush=True)
        sys.stdin.readline()
    """)
    proc = subprocess.Popen(
        [sys.executable, "-c", child],
        stdin=subprocess.PIPE,
        stdout=subprocess.PIPE,
        text=True,
    )
    assert proc.stdout.readline().strip() == "locked"
    return proc


class TestCrossProcess:
    """Locks held by other processes."""

    def test_lock_held_by_live_process_blocks(self, tmp_path):
        lock_dir = tmp_path / "locks"
        semaphore = SystemSemaphore(lock_dir, poll_interval=0.01)
        proc = _hold_in_child(lock_dir)
        try:
            with pytest.raises(LockTimeout) as exc_info:
                semaphore.acquire("shared", timeout=0.3)
            assert exc_info.value.holder == f"pid {proc.pid}"
        finally:
            proc.stdin.close()
            proc.wait(timeout=30)

        with semaphore.hold("shared", timeout=5) as handle:
            assert not handle.released

    def test_lock_of_killed_process_is_released(self, tmp_path):
        lock_dir = tmp_path / "locks"
        semaphore = SystemSemaphore(lock_dir, poll_interval=0.01)
        proc = _hold_in_child(lock_dir)
        try:
            with pytest.raises(LockTimeout):
                semaphore.acquire("shared", timeout=0.2)
        finally:
            proc.kill()
            proc.wait(timeout=30)
            proc.stdin.close()
            proc.stdout.close()

        with semaphore.hold("shared", timeout=5) as handle:
            assert not handle.released
