"""Background refresh loop that runs scrape cycles on a fixed interval."""

import logging
import threading

from .scraper import CloudCostScraper

logger = logging.getLogger(__name__)


class RefreshScheduler:
    """Runs CloudCostScraper.run_cycle every interval on a daemon thread."""

    def __init__(self, scraper: CloudCostScraper, interval: float):
        self.scraper = scraper
        self.interval = interval
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        """Start ticking; the first tick fires one interval from now."""
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(name="cloudcost_refresh", target=self._run, daemon=True)
        self._thread.start()
        logger.info(f"Refresh loop started (interval {self.interval:g}s)")

    def stop(self, timeout: float | None = None):
        """Stop ticking and wait for an in-progress cycle to finish."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Refresh loop stopped")

    def _run(self):
        while not self._stop.wait(self.interval):
            try:
                self.scraper.run_cycle()
            except Exception:
                # Keep the loop alive; the next tick retries
                logger.exception("Unexpected error during scrape cycle")
