"""
Tests for the timer scheduler
"""

import threading

from cerveau.scheduler import TimerScheduler


class TestTimerScheduler:

    def test_runs_callback(self):
        fired = threading.Event()

        timer = TimerScheduler().schedule(0, fired.set)

        assert fired.wait(2.0)
        assert timer.daemon is True

    def test_cancel_prevents_callback(self):
        fired = threading.Event()

        timer = TimerScheduler().schedule(5.0, fired.set)
        timer.cancel()
        timer.join(1.0)

        assert not fired.is_set()

    def test_negative_delay_runs_now(self):
        fired = threading.Event()

        TimerScheduler().schedule(-1, fired.set)

        assert fired.wait(2.0)
