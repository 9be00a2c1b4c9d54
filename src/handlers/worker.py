"""Ingestion worker process entry point.

Runs a pool of worker threads until SIGINT or SIGTERM; running jobs are
allowed to finish before exit.
"""

import signal
import threading

from docvault.bootstrap import build_context
from docvault.core import Settings, configure_logging, get_logger

logger = get_logger(__name__)


def main() -> None:
    settings = Settings.from_env()
    configure_logging(level=settings.log_level, json_format=settings.log_json)
    context = build_context(settings)
    pool = context.worker_pool()
    shutdown = threading.Event()

    def _handle_signal(signum, frame):
        logger.info("worker_shutdown_requested", signal=signal.Signals(signum).name)
        shutdown.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    pool.start()
    try:
        shutdown.wait()
    finally:
        pool.stop()
        context.close()


if __name__ == "__main__":
    main()
