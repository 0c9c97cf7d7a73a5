import logging
import threading
from typing import Dict, List, Optional

from ..errors import NotRegisteredError, RegistrationError
from .base import JobHandler
from .timer import TimerJobHandler

logger = logging.getLogger(__name__)


class JobRegistry:
    """Maps a job kind to its handler.

    Handlers are registered at startup and looked up once per request. The
    lock only ever guards the dict, never any cluster I/O.

    A single ``threading.Lock`` is used rather than a reader/writer lock, which
    the standard library does not provide. Concurrent lookups do serialize, but
    each holds the lock for a single dict access.
    Writers only run at startup and in tests.
    """

    def __init__(self):
        self._handlers: Dict[str, JobHandler] = {}
        self._lock = threading.Lock()

    def register(self, kind: str, handler: Optional[JobHandler]) -> None:
        if handler is None:
            raise RegistrationError("handler cannot be None")
        if handler.kind != kind:
            raise RegistrationError(
                f"handler job type ({handler.kind}) does not match registration type ({kind})"
            )
        with self._lock:
            if kind in self._handlers:
                raise RegistrationError(f"handler for job type {kind} already registered")
            self._handlers[kind] = handler
        logger.info("Registered job handler", extra={"kind": kind})

    def lookup(self, kind: str) -> JobHandler:
        with self._lock:
            handler = self._handlers.get(kind)
        if handler is None:
            raise NotRegisteredError(f"no handler registered for job type: {kind}")
        return handler

    def unregister(self, kind: str) -> None:
        """Remove a handler. Only meant for tests."""
        with self._lock:
            if kind not in self._handlers:
                raise RegistrationError(f"no handler registered for job type: {kind}")
            del self._handlers[kind]
        logger.info("Unregistered job handler", extra={"kind": kind})

    def list(self) -> List[str]:
        with self._lock:
            return sorted(self._handlers)

    def count(self) -> int:
        with self._lock:
            return len(self._handlers)

    def is_registered(self, kind: str) -> bool:
        with self._lock:
            return kind in self._handlers


def default_registry(timer_image: Optional[str] = None, timer_log_level: str = "info") -> JobRegistry:
    """Registry with every built-in job kind."""
    registry = JobRegistry()
    registry.register(TimerJobHandler.kind, TimerJobHandler(image=timer_image, log_level=timer_log_level))
    logger.info("Initialized default job handlers", extra={"handler_count": registry.count()})
    return registry
