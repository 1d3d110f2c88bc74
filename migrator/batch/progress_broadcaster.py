"""
Progress fan-out for batch jobs.

Delivery is best-effort and at-most-once: an event published while
nobody is subscribed is dropped, and nothing is replayed to late
subscribers. Two channels are fed by every publish:

- addressed: subscribers registered for one job id
- broadcast: subscribers registered for every job
"""

from typing import Callable, Dict, Any, List, Optional
import asyncio
import threading

from config.logging_config import get_logger

logger = get_logger(__name__)


# Type alias for subscribers: receives the event dict
Subscriber = Callable[[Dict[str, Any]], None]
Unsubscribe = Callable[[], None]


class ProgressBroadcaster:
    """
    Publish/subscribe hub that turns job mutations into events.

    Usage:
        broadcaster = ProgressBroadcaster()
        stop = broadcaster.subscribe("job-1", print)
        broadcaster.subscribe_all(create_logging_callback())

        broadcaster.publish("job-1", {"status": "running", ...})
        stop()
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._job_subscribers: Dict[str, List[Subscriber]] = {}
        self._global_subscribers: List[Subscriber] = []

    def subscribe(self, job_id: str, subscriber: Subscriber) -> Unsubscribe:
        """
        Receive events for one job only.

        Args:
            job_id: Job to follow
            subscriber: Callable receiving each event dict

        Returns:
            Callable that removes this subscription
        """
        with self._lock:
            self._job_subscribers.setdefault(job_id, []).append(subscriber)

        logger.debug(f"Subscriber added for job {job_id}")
        return lambda: self.unsubscribe(subscriber, job_id)

    def subscribe_all(self, subscriber: Subscriber) -> Unsubscribe:
        """Receive events for every job."""
        with self._lock:
            self._global_subscribers.append(subscriber)

        logger.debug("Broadcast subscriber added")
        return lambda: self.unsubscribe(subscriber)

    def unsubscribe(self, subscriber: Subscriber, job_id: Optional[str] = None):
        """Remove a subscriber. Unknown subscribers are ignored."""
        with self._lock:
            if job_id is None:
                if subscriber in self._global_subscribers:
                    self._global_subscribers.remove(subscriber)
                return

            subscribers = self._job_subscribers.get(job_id)
            if not subscribers:
                return
            if subscriber in subscribers:
                subscribers.remove(subscriber)
            if not subscribers:
                del self._job_subscribers[job_id]

    def subscriber_count(self, job_id: Optional[str] = None) -> int:
        """Count addressed subscribers of a job, or broadcast subscribers."""
        with self._lock:
            if job_id is None:
                return len(self._global_subscribers)
            return len(self._job_subscribers.get(job_id, []))

    def publish(self, job_id: str, event: Dict[str, Any]) -> int:
        """
        Deliver an event to addressed and broadcast subscribers.

        Args:
            job_id: Job the event belongs to
            event: Job snapshot dict

        Returns:
            Number of successful deliveries (0 means the event was dropped)
        """
        with self._lock:
            targets = list(self._job_subscribers.get(job_id, []))
            targets.extend(self._global_subscribers)

        if not targets:
            return 0

        message = {"job_id": job_id, **event}
        delivered = 0

        for subscriber in targets:
            try:
                subscriber(message)
                delivered += 1
            except Exception as e:
                logger.error(f"Progress subscriber error for job {job_id}: {e}")

        return delivered


def create_queue_callback(
    loop: asyncio.AbstractEventLoop,
    queue: asyncio.Queue,
) -> Subscriber:
    """
    Create a subscriber that hands events to an asyncio queue.

    Safe to call from any thread. Events are dropped when the queue is
    full, so a slow consumer never blocks a publisher.

    Args:
        loop: Loop that owns the queue
        queue: Destination queue

    Returns:
        Subscriber callable
    """
    def put(event: Dict[str, Any]):
        try:
            queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.debug(f"Subscriber queue full, dropping event for {event.get('job_id')}")

    def callback(event: Dict[str, Any]):
        if loop.is_closed():
            return
        loop.call_soon_threadsafe(put, event)

    return callback


def create_logging_callback(log_interval: int = 5) -> Subscriber:
    """
    Create a logging subscriber that logs every N events.

    Terminal events are always logged.

    Args:
        log_interval: Log every N events

    Returns:
        Subscriber callable
    """
    counter = {"count": 0}

    def callback(event: Dict[str, Any]):
        counter["count"] += 1
        status = event.get("status")
        terminal = status in ("completed", "failed")
        if counter["count"] % log_interval == 0 or terminal:
            logger.info(
                f"Job {event.get('job_id')}: {status} "
                f"{event.get('overall_progress', 0):.1f}% - {event.get('current_step', '')}"
            )

    return callback
