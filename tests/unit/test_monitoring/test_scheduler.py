"""Tests for the background refresh loop."""

import threading
from unittest.mock import MagicMock

from src.monitoring.scheduler import RefreshScheduler


def counting_scraper(target: int):
    """Scraper mock that sets an event once run_cycle was called target times."""
    done = threading.Event()
    scraper = MagicMock()

    def run_cycle():
        if scraper.run_cycle.call_count >= target:
            done.set()

    scraper.run_cycle.side_effect = run_cycle
    return scraper, done


class TestRefreshScheduler:
    """Test cases for RefreshScheduler."""

    def test_runs_cycles_on_interval(self):
        scraper, done = counting_scraper(3)
        scheduler = RefreshScheduler(scraper, interval=0.01)

        scheduler.start()
        try:
            assert done.wait(5)
            assert scheduler.running
        finally:
            scheduler.stop(timeout=5)

        assert not scheduler.running

    def test_first_tick_waits_one_interval(self):
        scraper = MagicMock()
        scheduler = RefreshScheduler(scraper, interval=60)

        scheduler.start()
        scheduler.stop(timeout=5)

        scraper.run_cycle.assert_not_called()

    def test_unexpected_error_keeps_loop_alive(self):
        scraper, done = counting_scraper(2)
        calls = scraper.run_cycle.side_effect

        def failing_then_ok():
            calls()
            if scraper.run_cycle.call_count == 1:
                raise RuntimeError("boom")

        scraper.run_cycle.side_effect = failing_then_ok
        scheduler = RefreshScheduler(scraper, interval=0.01)

        scheduler.start()
        try:
            assert done.wait(5)
        finally:
            scheduler.stop(timeout=5)

    def test_start_is_idempotent(self):
        scheduler = RefreshScheduler(MagicMock(), interval=60)

        scheduler.start()
        thread = scheduler._thread
        scheduler.start()

        assert scheduler._thread is thread
        scheduler.stop(timeout=5)
