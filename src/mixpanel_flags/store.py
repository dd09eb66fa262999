"""
Holder of the current flag snapshot and its refresh lifecycle.
"""

import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional

from .fetcher import DefinitionFetcher
from .log import logger
from .models import FlagSnapshot

POLLER_THREAD_NAME = "mixpanel-flags-poller"

OnDefinitionsUpdated = Callable[[FlagSnapshot, FlagSnapshot], None]


class StoreState(Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    CLOSED = "closed"


class DefinitionStore:
    """Single-writer, many-reader cell for the flag snapshot.

    Snapshots are immutable, so readers only need the reference; the lock
    makes the swap explicit and is held for a pointer read or write only.
    ``refresh`` is the only writer.
    """

    def __init__(
            self,
            fetcher: DefinitionFetcher,
            enable_polling: bool = False,
            polling_interval_seconds: float = 60,
            shutdown_timeout_seconds: float = 5.0,
            on_definitions_updated: Optional[OnDefinitionsUpdated] = None
    ):
        self.fetcher = fetcher
        self.enable_polling = enable_polling
        self.polling_interval_seconds = polling_interval_seconds
        self.shutdown_timeout_seconds = shutdown_timeout_seconds
        self.on_definitions_updated = on_definitions_updated

        self._refresh_lock = threading.Lock()
        self._snapshot_lock = threading.Lock()
        self._snapshot = FlagSnapshot.empty()
        self._ready = threading.Event()
        self._closed = False
        self._lifecycle_lock = threading.Lock()

        self._stop_event = threading.Event()
        self._polling_thread: Optional[threading.Thread] = None

        self._stats_lock = threading.Lock()
        self.stats = {
            'successful_refreshes': 0,
            'failed_refreshes': 0,
            'last_sync': None,
            'last_error': None
        }

    @property
    def snapshot(self) -> FlagSnapshot:
        with self._snapshot_lock:
            return self._snapshot

    @property
    def state(self) -> StoreState:
        if self._closed:
            return StoreState.CLOSED
        if self._ready.is_set():
            return StoreState.READY
        return StoreState.UNINITIALIZED

    def is_ready(self) -> bool:
        return self._ready.is_set()

    def is_closed(self) -> bool:
        return self._closed

    def is_polling(self) -> bool:
        return self._polling_thread is not None and self._polling_thread.is_alive()

    def _swap(self, new_snapshot: FlagSnapshot) -> FlagSnapshot:
        with self._snapshot_lock:
            old_snapshot = self._snapshot
            self._snapshot = new_snapshot
        return old_snapshot

    def refresh(self) -> bool:
        """Fetch definitions once and swap them in.

        On any failure the previous snapshot stays authoritative and False
        is returned. Concurrent calls run one at a time, so a slow fetch can
        never overwrite the result of a later one.
        """
        with self._refresh_lock:
            try:
                new_snapshot = self.fetcher.fetch()
            except Exception as e:
                with self._stats_lock:
                    self.stats['failed_refreshes'] += 1
                    self.stats['last_error'] = str(e)
                logger.error(f"Mixpanel: Failed to fetch flag definitions: {e}")
                return False

            old_snapshot = self._swap(new_snapshot)
            self._ready.set()

        with self._stats_lock:
            self.stats['successful_refreshes'] += 1
            self.stats['last_sync'] = datetime.now(timezone.utc).isoformat()
            self.stats['last_error'] = None

        logger.debug(f"Mixpanel: Successfully fetched {len(new_snapshot)} flag definitions")

        if self.on_definitions_updated:
            try:
                self.on_definitions_updated(old_snapshot, new_snapshot)
            except Exception as e:
                logger.error(f"Mixpanel: Error in definitions update callback: {e}")

        return True

    def start_polling(self):
        """Fetch once synchronously, then keep refreshing in the background if enabled"""
        if self._closed:
            logger.warning("Mixpanel: Cannot start polling: store is closed")
            return

        self.refresh()

        if not self.enable_polling:
            return

        with self._lifecycle_lock:
            if self._closed:
                return
            if self.is_polling():
                logger.warning("Mixpanel: Polling for flag definitions is already running")
                return

            self._stop_event.clear()
            self._polling_thread = threading.Thread(
                target=self._polling_worker,
                daemon=True,
                name=POLLER_THREAD_NAME
            )
            self._polling_thread.start()

        logger.info(
            f"Mixpanel: Started polling for flag definitions every {self.polling_interval_seconds} seconds"
        )

    def _polling_worker(self):
        """Background worker refreshing definitions at a fixed interval"""
        while not self._stop_event.wait(self.polling_interval_seconds):
            try:
                self.refresh()
            except Exception as e:
                logger.error(f"Mixpanel: Error in polling worker: {e}")

    def stop_polling(self):
        with self._lifecycle_lock:
            thread = self._polling_thread
            self._stop_event.set()
            self._polling_thread = None

        if thread and thread.is_alive() and thread is not threading.current_thread():
            logger.debug("Mixpanel: Waiting for polling thread to finish...")
            thread.join(timeout=self.shutdown_timeout_seconds)
            if thread.is_alive():
                logger.warning("Mixpanel: Polling thread did not shut down gracefully")

    def close(self):
        """Stop background refresh; safe to call more than once"""
        with self._lifecycle_lock:
            if self._closed:
                return
            self._closed = True

        self.stop_polling()
        logger.debug("Mixpanel: Definition store closed")

    def get_stats(self) -> Dict[str, Any]:
        with self._stats_lock:
            stats = dict(self.stats)
        stats['state'] = self.state.value
        stats['cached_flags_count'] = len(self.snapshot)
        stats['polling'] = self.is_polling()
        return stats
