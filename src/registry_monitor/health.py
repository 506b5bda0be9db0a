import logging
import threading

logger = logging.getLogger(__name__)


class HealthStatus:
    """
    Liveness (`healthy`) and latest-cycle (`status`) flags.

    Written only by the orchestrator thread, read by any number of HTTP
    handlers. `healthy` starts True and, once False, stays False for the
    lifetime of the process.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._healthy = True
        self._status = True

    def read_health(self) -> bool:
        with self._lock:
            return self._healthy

    def read_status(self) -> bool:
        with self._lock:
            return self._status

    def set_healthy(self, value: bool) -> None:
        with self._lock:
            if value and not self._healthy:
                logger.warning("Ignoring request to mark the monitor healthy again")
                return
            self._healthy = bool(value)

    def set_status(self, value: bool) -> None:
        with self._lock:
            self._status = bool(value)
