"""Tests for the read/write lock and cancellation token."""
import threading
import time

from groundwave_zk.utils import CancelToken, ReadWriteLock


class TestReadWriteLock:
    """Tests for ReadWriteLock."""

    def test_readers_share_the_lock(self):
        lock = ReadWriteLock()
        lock.acquire_read()
        entered = threading.Event()

        def second_reader():
            with lock.read_locked():
                entered.set()

        t = threading.Thread(target=second_reader)
        t.start()
        assert entered.wait(timeout=2)
        t.join()
        lock.release_read()

    def test_writer_waits_for_readers(self):
        lock = ReadWriteLock()
        lock.acquire_read()
        written = threading.Event()

        def writer():
            with lock.write_locked():
                written.set()

        t = threading.Thread(target=writer)
        t.start()
        assert not written.wait(timeout=0.1)
        lock.release_read()
        assert written.wait(timeout=2)
        t.join()

    def test_reader_waits_for_writer(self):
        lock = ReadWriteLock()
        lock.acquire_write()
        read = threading.Event()

        def reader():
            with lock.read_locked():
                read.set()

        t = threading.Thread(target=reader)
        t.start()
        assert not read.wait(timeout=0.1)
        lock.release_write()
        assert read.wait(timeout=2)
        t.join()

    def test_released_on_exception(self):
        lock = ReadWriteLock()
        try:
            with lock.write_locked():
                raise RuntimeError("boom")
        except RuntimeError:
            pass
        with lock.read_locked():
            pass


class TestCancelToken:
    """Tests for CancelToken."""

    def test_fresh_token(self):
        token = CancelToken()
        assert not token.cancelled
        assert token.remaining() is None

    def test_cancel(self):
        token = CancelToken()
        token.cancel()
        assert token.cancelled
        assert not token.deadline_exceeded

    def test_shared_event(self):
        event = threading.Event()
        token = CancelToken.with_timeout(60, event=event)
        event.set()
        assert token.cancelled

    def test_deadline(self):
        token = CancelToken.with_timeout(0.01)
        time.sleep(0.02)
        assert token.cancelled
        assert token.deadline_exceeded
        assert token.remaining() == 0.0

    def test_remaining(self):
        token = CancelToken.with_timeout(60)
        assert 0 < token.remaining() <= 60
