"""Bounded pool of worker threads polling the ingestion queue."""

import threading
from typing import Optional

from docvault.core import get_logger
from docvault.ingestion.worker import IngestionWorker

logger = get_logger(__name__)


class WorkerPool:
    """Runs up to ``concurrency`` jobs at once.

    Each thread claims a job, runs it to completion and claims the next;
    idle threads sleep ``poll_interval`` seconds between empty polls.
    """

    def __init__(
        self,
        worker: IngestionWorker,
        concurrency: int = 3,
        poll_interval: float = 1.0,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.worker = worker
        self.concurrency = concurrency
        self.poll_interval = poll_interval
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []

    @property
    def running(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._threads = [
            threading.Thread(target=self._loop, name=f"ingestion-worker-{i}", daemon=True)
            for i in range(self.concurrency)
        ]
        for thread in self._threads:
            thread.start()
        logger.info("worker_pool_started", concurrency=self.concurrency)

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop claiming new jobs and wait for running ones to finish."""
        self._stop.set()
        for thread in self._threads:
            thread.join(timeout)
        self._threads = []
        logger.info("worker_pool_stopped")

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                worked = self.worker.run_once()
            except Exception as e:
                logger.error("worker_poll_failed", error=str(e), exc_info=True)
                worked = False
            if not worked:
                self._stop.wait(self.poll_interval)

    def drain(self, max_jobs: Optional[int] = None) -> int:
        """Process ready jobs on the calling thread until none are left.

        Returns:
            Number of jobs processed.
        """
        processed = 0
        while max_jobs is None or processed < max_jobs:
            if not self.worker.run_once():
                break
            processed += 1
        return processed

    def __enter__(self) -> "WorkerPool":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
