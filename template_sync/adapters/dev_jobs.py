"""
Dev Background Runner Adapter.

In-process scheduler for the background processor, for development and
testing. Production deployments trigger process_many from an external
scheduler instead; both paths go through the same processor.

Key behaviors:
- Daemon thread polling at a fixed interval
- Each poll processes every template id the store knows about
- Errors in the poll loop are logged, never raised
- trigger_now runs a batch synchronously for predictable tests
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from template_sync.components.background import BackgroundProcessor, BatchResult

logger = logging.getLogger(__name__)


class DevBackgroundRunner:
    """Periodically runs the background processor over all templates."""

    def __init__(
        self,
        processor: BackgroundProcessor,
        list_ids: Callable[[], list[str]],
        poll_interval_seconds: float = 60.0,
    ) -> None:
        """
        Initialize runner.

        Args:
            processor: Background processor to drive
            list_ids: Returns the template ids to process on each poll
            poll_interval_seconds: Interval between polls
        """
        self._processor = processor
        self._list_ids = list_ids
        self._poll_interval = poll_interval_seconds
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._running = False

    def start(self) -> None:
        """Start the background runner."""
        if self._running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop, name="template-background-runner", daemon=True
        )
        self._thread.start()
        self._running = True
        logger.info("Background runner started (poll interval: %.1fs)", self._poll_interval)

    def stop(self) -> None:
        """Stop the runner gracefully."""
        if not self._running:
            return

        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=5.0)
        self._running = False
        logger.info("Background runner stopped")

    def trigger_now(self) -> BatchResult:
        """Process all templates immediately."""
        return self._processor.process_many(self._list_ids())

    @property
    def is_running(self) -> bool:
        """Check if runner is active."""
        return self._running

    def _poll_loop(self) -> None:
        """Background polling loop."""
        while not self._stop_event.wait(timeout=self._poll_interval):
            try:
                result = self.trigger_now()
                if result.total_processed > 0:
                    logger.info(
                        "Background run over %d templates: %d processed, %d skipped, %d failed",
                        result.total_processed,
                        result.processed,
                        result.skipped,
                        result.failed,
                    )
            except Exception:
                logger.exception("Error in background runner poll loop")
