"""
Exposure tracking for evaluated flags.

An exposure is a ``$experiment_started`` event recording which variant a
subject was shown. Delivery is fire-and-forget: nothing raised by an event
sender ever reaches the code that evaluated the flag.
"""

import threading
import time
import uuid
from queue import Empty, Full, Queue
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol

from ._version import LIB_NAME, __version__
from .hashing import subject_key_of
from .log import logger, sanitize_log_data
from .transport import HttpTransport

EXPOSURE_EVENT_NAME = "$experiment_started"
TRACK_PATH = "/track"
MAX_BATCH_SIZE = 50

TimingProperties = Callable[[Dict[str, Any]], None]


class EventSender(Protocol):
    """Anything able to deliver an analytics event"""

    def send_event(self, distinct_id: str, event_name: str, properties: Dict[str, Any]) -> None:
        ...


class ExposureReporter:
    """Builds exposure events and hands them to an EventSender"""

    def __init__(self, event_sender: Optional[EventSender] = None):
        self.event_sender = event_sender

    def track_exposure(
            self,
            distinct_id: Any,
            flag_key: str,
            variant_key: str,
            evaluation_mode: str,
            timing_properties: Optional[TimingProperties] = None,
            experiment_id: Optional[uuid.UUID] = None,
            is_experiment_active: Optional[bool] = None,
            is_qa_tester: Optional[bool] = None
    ) -> bool:
        """Send one exposure event; returns False when nothing was sent"""
        if self.event_sender is None or distinct_id is None:
            return False

        try:
            properties: Dict[str, Any] = {
                'Experiment name': flag_key,
                'Variant name': variant_key,
                '$experiment_type': 'feature_flag',
                'Flag evaluation mode': evaluation_mode,
            }
            if experiment_id is not None:
                properties['$experiment_id'] = str(experiment_id)
            if is_experiment_active is not None:
                properties['$is_experiment_active'] = is_experiment_active
            if is_qa_tester is not None:
                properties['$is_qa_tester'] = is_qa_tester
            if timing_properties is not None:
                timing_properties(properties)

            self.event_sender.send_event(subject_key_of(distinct_id), EXPOSURE_EVENT_NAME, properties)
            logger.debug(
                f"Mixpanel: Tracked exposure event for flag: {sanitize_log_data(flag_key)}, "
                f"variant: {sanitize_log_data(variant_key)}"
            )
            return True
        except Exception as e:
            logger.warning(
                f"Mixpanel: Error tracking exposure event for flag: {sanitize_log_data(flag_key)}, "
                f"variant: {sanitize_log_data(variant_key)} - {e}"
            )
            return False

    def track_local_exposure(
            self,
            context: Mapping[str, Any],
            flag_key: str,
            variant_key: str,
            latency_ms: float,
            experiment_id: Optional[uuid.UUID] = None,
            is_experiment_active: Optional[bool] = None,
            is_qa_tester: Optional[bool] = None
    ) -> bool:
        def add_timing(properties):
            properties['Variant fetch latency (ms)'] = latency_ms

        return self.track_exposure(
            context.get('distinct_id'), flag_key, variant_key, 'local', add_timing,
            experiment_id, is_experiment_active, is_qa_tester
        )

    def track_remote_exposure(
            self,
            context: Mapping[str, Any],
            flag_key: str,
            variant_key: str,
            start_time: str,
            complete_time: str,
            experiment_id: Optional[uuid.UUID] = None,
            is_experiment_active: Optional[bool] = None,
            is_qa_tester: Optional[bool] = None
    ) -> bool:
        def add_timing(properties):
            properties['Variant fetch start time'] = start_time
            properties['Variant fetch complete time'] = complete_time

        return self.track_exposure(
            context.get('distinct_id'), flag_key, variant_key, 'remote', add_timing,
            experiment_id, is_experiment_active, is_qa_tester
        )


class BufferedEventSender:
    """EventSender that batches events and uploads them to the track endpoint.

    Events are queued by ``send_event`` and uploaded by a daemon thread every
    ``flush_interval_seconds``. A full queue drops the oldest event; a batch
    that fails to upload is logged and dropped.
    """

    def __init__(
            self,
            project_token: str,
            transport: HttpTransport,
            base_url: str = "https://api.mixpanel.com",
            flush_interval_seconds: float = 10,
            max_batch_size: int = MAX_BATCH_SIZE,
            max_queue_size: int = 10000,
            shutdown_timeout_seconds: float = 5.0,
            start_worker: bool = True
    ):
        self.project_token = project_token
        self.transport = transport
        self.track_url = f"{base_url.rstrip('/')}{TRACK_PATH}"
        self.flush_interval_seconds = flush_interval_seconds
        self.max_batch_size = min(max_batch_size, MAX_BATCH_SIZE)
        self.shutdown_timeout_seconds = shutdown_timeout_seconds

        self._queue: Queue = Queue(maxsize=max_queue_size)
        self._flush_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._upload_thread: Optional[threading.Thread] = None

        self._stats_lock = threading.Lock()
        self.stats = {
            'queued': 0,
            'dropped': 0,
            'uploaded': 0,
            'failed_batches': 0
        }

        if start_worker:
            self._upload_thread = threading.Thread(
                target=self._upload_worker,
                daemon=True,
                name="mixpanel-events-uploader"
            )
            self._upload_thread.start()

    def _build_event(self, distinct_id: str, event_name: str, properties: Dict[str, Any]) -> Dict[str, Any]:
        event_properties = {
            'token': self.project_token,
            'distinct_id': distinct_id,
            'time': int(time.time() * 1000),
            '$insert_id': uuid.uuid4().hex,
            'mp_lib': LIB_NAME,
            '$lib_version': __version__,
        }
        event_properties.update(properties)
        return {'event': event_name, 'properties': event_properties}

    def _count(self, name: str, amount: int = 1):
        with self._stats_lock:
            self.stats[name] += amount

    def get_stats(self) -> Dict[str, Any]:
        with self._stats_lock:
            stats = dict(self.stats)
        stats['pending'] = self.pending()
        return stats

    def send_event(self, distinct_id: str, event_name: str, properties: Dict[str, Any]) -> None:
        event = self._build_event(distinct_id, event_name, properties)
        try:
            self._queue.put(event, block=False)
        except Full:
            # Drop the oldest event to make room
            try:
                self._queue.get_nowait()
                self._count('dropped')
            except Empty:
                pass
            try:
                self._queue.put(event, block=False)
            except Full:
                self._count('dropped')
                return
        self._count('queued')

    def pending(self) -> int:
        return self._queue.qsize()

    def _next_batch(self) -> List[Dict[str, Any]]:
        batch = []
        while len(batch) < self.max_batch_size:
            try:
                batch.append(self._queue.get_nowait())
            except Empty:
                break
        return batch

    def flush(self) -> bool:
        """Upload everything queued so far; False if any batch failed"""
        success = True
        with self._flush_lock:
            while True:
                batch = self._next_batch()
                if not batch:
                    break
                try:
                    self.transport.post_json(self.track_url, batch, params={'verbose': '1'})
                    self._count('uploaded', len(batch))
                    logger.debug(f"Mixpanel: Uploaded {len(batch)} events")
                except Exception as e:
                    success = False
                    self._count('failed_batches')
                    logger.error(f"Mixpanel: Failed to upload {len(batch)} events: {e}")
        return success

    def _upload_worker(self):
        while not self._stop_event.wait(self.flush_interval_seconds):
            try:
                self.flush()
            except Exception as e:
                logger.error(f"Mixpanel: Error in event upload worker: {e}")

    def shutdown(self):
        """Stop the upload thread and flush what is left"""
        self._stop_event.set()

        thread = self._upload_thread
        if thread and thread.is_alive():
            thread.join(timeout=self.shutdown_timeout_seconds)
            if thread.is_alive():
                logger.warning("Mixpanel: Event upload thread did not shut down gracefully")

        try:
            self.flush()
        except Exception as e:
            logger.warning(f"Mixpanel: Error during final event upload: {e}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()
