import asyncio
import signal
import sys
from typing import Awaitable, Callable

from utils import get_logger


logger = get_logger(__name__)


class ShutdownSignalHandler:
    """Routes SIGINT/SIGTERM (and SIGHUP where available) to an async shutdown callback"""

    def __init__(self, shutdown_callback: Callable[[], Awaitable[None]]):
        self.shutdown_callback = shutdown_callback
        self._shutdown_initiated = False

    def setup_signals(self):
        """Install handlers for the shutdown signals this platform supports"""
        signals = [signal.SIGINT, signal.SIGTERM]
        if hasattr(signal, "SIGHUP"):
            signals.append(signal.SIGHUP)

        try:
            for signum in signals:
                signal.signal(signum, self._signal_handler)
            logger.debug(
                "signal_handlers_configured",
                platform=sys.platform,
                signals=", ".join(signal.Signals(s).name for s in signals)
            )
        except (ValueError, OSError) as e:
            # signal.signal only works from the main thread
            logger.warning("signal_handler_setup_failed", error=str(e), error_type=type(e).__name__)

    def _signal_handler(self, signum: int, frame):
        if self._shutdown_initiated:
            logger.warning("forced_shutdown", signal=signal.Signals(signum).name)
            sys.exit(1)

        logger.info("shutdown_signal_received", signal=signal.Signals(signum).name)
        self._shutdown_initiated = True

        try:
            loop = asyncio.get_running_loop()
            loop.create_task(self.shutdown_callback())
        except RuntimeError:
            logger.info("no_event_loop_exiting")
            sys.exit(0)


def check_python_version(min_version: tuple = (3, 10)) -> bool:
    """Check if Python version meets minimum requirements"""
    current_version = sys.version_info[:2]

    if current_version < min_version:
        logger.error(
            "python_version_mismatch",
            required_version=".".join(map(str, min_version)),
            current_version=".".join(map(str, current_version))
        )
        return False

    return True
