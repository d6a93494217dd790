"""Asynchronous click event recording.

Events are queued in memory and written by a single worker thread, so the
redirect path never waits on analytics storage. The queue is bounded: when
it is full the oldest event is dropped and counted. Click analytics are best
effort; click budgets are enforced by the store, not here.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional
from urllib.parse import urlparse

from ..core.store import LinkStore
from ..models import Click
from ..utils.geo import GeoData

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClickEvent:
    """One granted resolution, as seen by analytics"""
    link_id: int
    short_code: str
    domain: str
    timestamp: datetime
    client_ip: Optional[str] = None
    user_agent: Optional[str] = None
    referrer: Optional[str] = None
    is_qr_click: bool = False


def referrer_domain(referrer: Optional[str]) -> Optional[str]:
    if not referrer:
        return None
    return urlparse(referrer).hostname


class DatabaseClickSink:
    """Write click events to the clicks table through the link store"""

    def __init__(self, store: LinkStore,
                 geo_lookup: Optional[Callable[[Optional[str]], GeoData]] = None):
        self.store = store
        self.geo_lookup = geo_lookup

    def _to_click(self, event: ClickEvent) -> Click:
        geo = self.geo_lookup(event.client_ip) if self.geo_lookup else GeoData()

        return Click(
            link_id=event.link_id,
            short_code=event.short_code,
            domain=event.domain,
            clicked_at=event.timestamp,
            ip_address=event.client_ip,
            user_agent=(event.user_agent or '')[:512],
            referer=(event.referrer or '')[:512],
            referer_domain=referrer_domain(event.referrer),
            country_code=geo.country_code,
            country_name=geo.country_name,
            city=geo.city,
            is_qr_click=event.is_qr_click,
        )

    def write(self, events: List[ClickEvent]) -> None:
        self.store.add_clicks([self._to_click(event) for event in events])


class ClickRecorder:
    """Bounded, drop-oldest queue drained by a background worker thread"""

    def __init__(self, sink, max_queue_size: int = 10000, batch_size: int = 100):
        if max_queue_size < 1:
            raise ValueError("max_queue_size must be positive")

        self.sink = sink
        self.batch_size = max(1, batch_size)
        self._queue = deque(maxlen=max_queue_size)
        self._lock = threading.Lock()
        self._not_empty = threading.Condition(self._lock)
        self._idle = threading.Condition(self._lock)
        self._in_flight = 0
        self._stopping = False
        self._thread: Optional[threading.Thread] = None

        self.recorded = 0
        self.dropped = 0
        self.failed = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def record(self, event: ClickEvent) -> None:
        """Enqueue an event without blocking; drops the oldest event when full"""
        with self._lock:
            if len(self._queue) == self._queue.maxlen:
                self.dropped += 1
                logger.warning(
                    f"Click queue full ({self._queue.maxlen}), dropped oldest event; "
                    f"{self.dropped} dropped so far"
                )
            self._queue.append(event)
            self._not_empty.notify()

    def start(self) -> None:
        with self._lock:
            if self.running:
                return
            self._stopping = False
            self._thread = threading.Thread(target=self._run, name="click-recorder", daemon=True)
            self._thread.start()
        logger.info("Click recorder started")

    def stop(self, timeout: float = 5.0) -> None:
        """Write the remaining events and stop the worker"""
        with self._lock:
            self._stopping = True
            self._not_empty.notify_all()
            thread = self._thread

        if thread is not None:
            thread.join(timeout)
            if thread.is_alive():
                logger.warning(f"Click recorder did not stop within {timeout}s")

        logger.info(f"Click recorder stopped: {self.stats()}")

    def flush(self, timeout: float = 5.0) -> bool:
        """
        Wait until every queued event has been handed to the sink.

        Without a running worker the queue is drained in the calling thread.

        Returns:
            True if the queue drained within the timeout
        """
        if not self.running:
            while self._write_next_batch():
                pass
            return True

        with self._lock:
            return self._idle.wait_for(
                lambda: not self._queue and self._in_flight == 0,
                timeout=timeout
            )

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "queued": len(self._queue),
                "recorded": self.recorded,
                "dropped": self.dropped,
                "failed": self.failed,
            }

    def _take_batch(self) -> List[ClickEvent]:
        # Caller holds the lock
        count = min(self.batch_size, len(self._queue))
        batch = [self._queue.popleft() for _ in range(count)]
        self._in_flight = len(batch)
        return batch

    def _write_next_batch(self) -> bool:
        with self._lock:
            if not self._queue:
                return False
            batch = self._take_batch()
        self._write(batch)
        return True

    def _run(self) -> None:
        while True:
            with self._lock:
                while not self._queue and not self._stopping:
                    self._not_empty.wait()
                if not self._queue:
                    return
                batch = self._take_batch()

            self._write(batch)

    def _write(self, batch: List[ClickEvent]) -> None:
        try:
            self.sink.write(batch)
        except Exception:
            logger.exception(f"Failed to record {len(batch)} click events")
            with self._lock:
                self.failed += len(batch)
        else:
            with self._lock:
                self.recorded += len(batch)
        finally:
            with self._lock:
                self._in_flight = 0
                self._idle.notify_all()
