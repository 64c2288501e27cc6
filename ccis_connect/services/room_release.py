"""Cancellable delayed release of occupied rooms."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

ReleaseCallback = Callable[[str, int], None]
TimerFactory = Callable[[float, Callable[[], None]], threading.Timer]


def _default_timer(delay: float, callback: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    return timer


class RoomReleaseScheduler:
    """One pending release task per room, keyed by room id.

    Each scheduled task carries a generation number. ``cancel`` bumps the
    generation, so a timer that already started running when it was cancelled
    reports a stale generation and the callback can ignore it.
    """

    def __init__(
        self,
        delay_seconds: float,
        on_release: ReleaseCallback,
        timer_factory: Optional[TimerFactory] = None,
    ) -> None:
        self.delay_seconds = delay_seconds
        self._on_release = on_release
        self._timer_factory = timer_factory or _default_timer
        self._lock = threading.Lock()
        self._tasks: Dict[str, Tuple[int, threading.Timer]] = {}
        self._generations: Dict[str, int] = {}

    @property
    def enabled(self) -> bool:
        return self.delay_seconds > 0

    def schedule(self, room_id: str) -> int | None:
        """Schedule a release for a room, replacing any pending one."""

        if not self.enabled:
            return None
        with self._lock:
            self._cancel_locked(room_id)
            generation = self._generations.get(room_id, 0) + 1
            self._generations[room_id] = generation
            timer = self._timer_factory(self.delay_seconds, lambda: self._fire(room_id, generation))
            self._tasks[room_id] = (generation, timer)
        timer.start()
        logger.info("Scheduled auto release of %s in %ss", room_id, self.delay_seconds)
        return generation

    def cancel(self, room_id: str) -> bool:
        """Cancel the pending release for a room; True when one existed."""

        with self._lock:
            return self._cancel_locked(room_id)

    def cancel_all(self) -> None:
        with self._lock:
            for room_id in list(self._tasks):
                self._cancel_locked(room_id)

    def is_current(self, room_id: str, generation: int) -> bool:
        with self._lock:
            task = self._tasks.get(room_id)
            return task is not None and task[0] == generation

    def pending_rooms(self) -> list[str]:
        with self._lock:
            return sorted(self._tasks)

    def _cancel_locked(self, room_id: str) -> bool:
        task = self._tasks.pop(room_id, None)
        if task is None:
            return False
        task[1].cancel()
        self._generations[room_id] = self._generations.get(room_id, 0) + 1
        logger.debug("Cancelled auto release of %s", room_id)
        return True

    def _fire(self, room_id: str, generation: int) -> None:
        if not self.is_current(room_id, generation):
            logger.debug("Ignoring stale auto release of %s", room_id)
            return
        self._on_release(room_id, generation)

    def complete(self, room_id: str, generation: int) -> None:
        """Forget a task once its release has been applied."""

        with self._lock:
            task = self._tasks.get(room_id)
            if task is not None and task[0] == generation:
                del self._tasks[room_id]
