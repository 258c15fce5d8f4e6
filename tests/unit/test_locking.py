"""Tests for per-key exclusive regions."""

import threading
import time

from paychannels.locking import KeyedLock


class TestKeyedLock:
    """Test KeyedLock functionality."""

    def setup_method(self):
        """Set up test fixtures."""
        self.locks = KeyedLock("test")

    def test_lock_dropped_when_idle(self):
        """Test entries are removed once nobody holds them."""
        with self.locks.hold(b"a"):
            assert self.locks.active_keys() == 1
        assert self.locks.active_keys() == 0

    def test_reentrant(self):
        """Test the same thread can re-enter a held key."""
        with self.locks.hold(b"a"):
            with self.locks.hold(b"a"):
                assert self.locks.active_keys() == 1
        assert self.locks.active_keys() == 0

    def test_released_on_exception(self):
        """Test the region is released when the body raises."""
        try:
            with self.locks.hold(b"a"):
                raise RuntimeError("boom")
        except RuntimeError:
            pass
        assert self.locks.active_keys() == 0

    def test_same_key_is_exclusive(self):
        """Test two threads never hold the same key at once."""
        inside = []
        overlaps = []

        def worker():
            for _ in range(50):
                with self.locks.hold(b"channel"):
                    inside.append(1)
                    if len(inside) > 1:
                        overlaps.append(1)
                    time.sleep(0.0001)
                    inside.pop()

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert overlaps == []
        assert self.locks.active_keys() == 0

    def test_different_keys_do_not_block(self):
        """Test a held key does not block another key."""
        acquired = threading.Event()

        def other():
            with self.locks.hold(b"b"):
                acquired.set()

        with self.locks.hold(b"a"):
            thread = threading.Thread(target=other)
            thread.start()
            assert acquired.wait(timeout=5)
            thread.join()
