"""Tests for the Debouncer."""

import threading
import time

from pulse_core.debounce import Debouncer


class Counter:
    def __init__(self):
        self.count = 0
        self.lock = threading.Lock()

    def __call__(self):
        with self.lock:
            self.count += 1


def test_burst_collapses_into_one_call():
    """N arms inside the quiet window fire exactly once."""
    counter = Counter()
    debouncer = Debouncer(100, counter)

    for _ in range(5):
        debouncer.arm()
        time.sleep(0.01)

    time.sleep(0.3)
    assert counter.count == 1


def test_separate_bursts_fire_separately():
    counter = Counter()
    debouncer = Debouncer(50, counter)

    debouncer.arm()
    time.sleep(0.2)
    debouncer.arm()
    time.sleep(0.2)

    assert counter.count == 2


def test_arm_restarts_timer():
    """Each arm pushes the deadline out by a full quiet period."""
    counter = Counter()
    debouncer = Debouncer(150, counter)

    debouncer.arm()
    time.sleep(0.1)
    debouncer.arm()
    time.sleep(0.1)
    # 200ms since the first arm, 100ms since the second
    assert counter.count == 0

    time.sleep(0.2)
    assert counter.count == 1


def test_cancel_prevents_pending_fire():
    counter = Counter()
    debouncer = Debouncer(50, counter)

    debouncer.arm()
    debouncer.cancel()
    time.sleep(0.15)

    assert counter.count == 0
    assert debouncer.cancelled


def test_arm_after_cancel_is_noop():
    counter = Counter()
    debouncer = Debouncer(20, counter)
    debouncer.cancel()

    debouncer.arm()
    time.sleep(0.1)

    assert counter.count == 0


def test_concurrent_arms_fire_once():
    counter = Counter()
    debouncer = Debouncer(100, counter)

    threads = [threading.Thread(target=debouncer.arm) for _ in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    time.sleep(0.3)
    assert counter.count == 1


def test_callback_error_is_logged(caplog):
    def boom():
        raise RuntimeError("boom")

    debouncer = Debouncer(10, boom)
    debouncer.arm()
    time.sleep(0.1)

    assert "Debounced callback failed: boom" in caplog.text
