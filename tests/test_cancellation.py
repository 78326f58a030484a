"""Tests for CancellationToken."""

import asyncio
import threading
import time

import pytest

from panewatch.core.cancellation import CancellationToken, CancelledByUser


class TestCancel:
    def test_initial_state(self):
        token = CancellationToken()
        assert token.is_cancelled is False
        assert token.reason is None
        assert token.cancelled_at is None

    def test_first_reason_is_kept(self):
        token = CancellationToken()
        token.cancel("ESC pressed")
        token.cancel("SIGTERM")

        assert token.is_cancelled
        assert token.reason == "ESC pressed"
        assert token.cancelled_at is not None

    def test_reset(self):
        token = CancellationToken()
        token.cancel("x")
        token.reset()
        assert token.is_cancelled is False
        assert token.reason is None

    def test_throw_if_cancelled(self):
        token = CancellationToken()
        token.throw_if_cancelled()

        token.cancel("stop")
        with pytest.raises(CancelledByUser, match="stop"):
            token.throw_if_cancelled()


class TestSleep:
    def test_full_sleep_returns_false(self):
        token = CancellationToken()
        assert asyncio.run(token.sleep(0.05)) is False

    def test_already_cancelled_returns_immediately(self):
        token = CancellationToken()
        token.cancel("x")

        started = time.monotonic()
        assert asyncio.run(token.sleep(10)) is True
        assert time.monotonic() - started < 1

    def test_cancel_from_another_thread_wakes_sleep(self):
        token = CancellationToken()
        timer = threading.Timer(0.1, token.cancel, args=("listener",))
        timer.start()

        started = time.monotonic()
        try:
            assert asyncio.run(token.sleep(10)) is True
        finally:
            timer.cancel()
        assert time.monotonic() - started < 2
        assert token.reason == "listener"
