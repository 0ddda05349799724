"""In-memory, multi-subscriber event log for decisions.

Every decision has one append-only event sequence. Any number of readers
can subscribe at any time: a subscriber receives everything appended so
far, then everything appended afterwards, until the decision is marked
complete (stream ends) or failed (stream raises DecisionStreamError).

Per-decision locking:
- append() stores the event and broadcasts it to every registered
  subscriber channel while holding the decision's lock.
- subscribe() takes the snapshot, checks for a terminal state, and
  registers its channel while holding the same lock.
So an event is either in a new subscriber's snapshot or delivered to its
channel, never both and never neither.

Each subscriber owns an unbounded queue.Queue. A slow reader accumulates
backlog; it never blocks append() or other readers.
"""

import logging
import queue
import threading
import time
from collections import deque
from typing import Callable, Iterator, Optional

from decision_studio.decisions.schemas import DecisionEvent

logger = logging.getLogger(__name__)

# How often a blocked subscriber re-checks its cancellation_check
DEFAULT_POLL_INTERVAL = 0.25


class DecisionStreamError(RuntimeError):
    """Raised out of a subscription when its decision was marked failed."""

    def __init__(self, decision_id: str, message: str):
        super().__init__(message)
        self.decision_id = decision_id
        self.message = message


class _Terminal:
    """Channel marker: the decision finished (error is None on success)."""

    __slots__ = ("error",)

    def __init__(self, error: Optional[str] = None):
        self.error = error


# Channel marker: the subscription was closed by its owner
_CLOSED = object()


class _DecisionStream:
    """Events, subscriber channels, and terminal state for one decision."""

    def __init__(self, decision_id: str):
        self.decision_id = decision_id
        self.lock = threading.Lock()
        self.events: list[DecisionEvent] = []
        self.subscribers: list[queue.Queue] = []
        self.terminal = False
        self.error: Optional[str] = None
        self.finished_at: Optional[float] = None


class Subscription:
    """One reader's handle on a decision's event stream.

    Iterate it to receive events, or call read() with a timeout to pull
    them one at a time without blocking indefinitely. The channel is
    registered when the subscription is created (not on first read) and
    unregistered when the stream ends or close() is called. Use it as a
    context manager when reading may be abandoned early.
    """

    def __init__(
        self,
        store: "EventStore",
        stream: _DecisionStream,
        channel: queue.Queue,
        snapshot: list[DecisionEvent],
        registered: bool,
        terminal_error: Optional[str] = None,
        cancellation_check: Optional[Callable[[], bool]] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ):
        self.decision_id = stream.decision_id
        self._store = store
        self._stream = stream
        self._channel = channel
        self._snapshot = deque(snapshot)
        self._registered = registered
        # False when the decision was already terminal at subscribe time
        self._live = registered
        self._terminal_error = terminal_error
        self._cancellation_check = cancellation_check
        self._poll_interval = poll_interval
        self._closed = False
        self._finished = False
        # Sequence numbers already handed to this reader
        self.delivered: set[int] = set()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def finished(self) -> bool:
        """True once the stream ended (complete, failed, or closed)."""
        return self._finished

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __iter__(self) -> Iterator[DecisionEvent]:
        timeout = self._poll_interval if self._cancellation_check is not None else None
        try:
            while True:
                if self._cancellation_check is not None and self._cancellation_check():
                    logger.info(f"Subscriber cancelled for decision {self.decision_id}")
                    return
                event = self.read(timeout)
                if event is not None:
                    yield event
                elif self._finished:
                    return
        finally:
            self.close()

    def read(self, timeout: Optional[float] = None) -> Optional[DecisionEvent]:
        """Return the next event, or None.

        None means either nothing arrived within timeout or the stream
        has ended; check `finished` to tell them apart. A timeout of None
        blocks until an event or the end of the stream.

        Raises:
            DecisionStreamError: If the decision was marked failed
        """
        if self._finished:
            return None
        if self._closed:
            self._finished = True
            return None

        while self._snapshot:
            event = self._snapshot.popleft()
            if self._mark_delivered(event):
                return event

        if not self._live:
            self._finish()
            if self._terminal_error is not None:
                raise DecisionStreamError(self.decision_id, self._terminal_error)
            return None

        while True:
            try:
                item = self._channel.get(timeout=timeout)
            except queue.Empty:
                return None
            if item is _CLOSED:
                self._finish()
                return None
            if isinstance(item, _Terminal):
                self._finish()
                if item.error is not None:
                    raise DecisionStreamError(self.decision_id, item.error)
                return None
            if self._mark_delivered(item):
                return item

    def close(self) -> None:
        """Stop receiving events and unregister the channel."""
        if self._closed:
            return
        self._closed = True
        if self._registered:
            self._store._unsubscribe(self._stream, self._channel)
            self._registered = False
        # Wake a reader blocked on the channel in another thread
        self._channel.put(_CLOSED)

    def _finish(self) -> None:
        self._finished = True
        self.close()

    def _mark_delivered(self, event: DecisionEvent) -> bool:
        if event.sequence_number in self.delivered:
            logger.debug(
                f"Skipping duplicate event seq={event.sequence_number} "
                f"for decision {self.decision_id}"
            )
            return False
        self.delivered.add(event.sequence_number)
        return True


class EventStore:
    """Append-only, replayable, multi-subscriber event log keyed by decision."""

    def __init__(self):
        self._streams: dict[str, _DecisionStream] = {}
        # Guards only the decision_id -> stream mapping
        self._streams_lock = threading.Lock()

    def _get_stream(self, decision_id: str, create: bool = True) -> Optional[_DecisionStream]:
        with self._streams_lock:
            stream = self._streams.get(decision_id)
            if stream is None and create:
                stream = _DecisionStream(decision_id)
                self._streams[decision_id] = stream
            return stream

    def append(self, event: DecisionEvent) -> None:
        """Append an event and deliver it to every live subscriber."""
        stream = self._get_stream(event.decision_id)
        with stream.lock:
            if stream.terminal:
                logger.warning(
                    f"Append after terminal state for decision {event.decision_id} "
                    f"(seq={event.sequence_number}, role={event.role_name})"
                )
            stream.events.append(event)
            for channel in stream.subscribers:
                channel.put(event)

        logger.debug(
            f"Appended event seq={event.sequence_number} role={event.role_name} "
            f"phase={event.phase.value} for decision {event.decision_id}"
        )

    def get_snapshot(self, decision_id: str) -> list[DecisionEvent]:
        """All events appended so far, in append order ([] if unknown)."""
        stream = self._get_stream(decision_id, create=False)
        if stream is None:
            return []
        with stream.lock:
            return list(stream.events)

    def subscribe(
        self,
        decision_id: str,
        cancellation_check: Optional[Callable[[], bool]] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> Subscription:
        """Subscribe to a decision's past and future events.

        An unknown decision is created empty; the subscriber then waits
        for its first append (the decision may not have started yet).
        """
        stream = self._get_stream(decision_id)
        channel: queue.Queue = queue.Queue()

        with stream.lock:
            snapshot = list(stream.events)
            registered = not stream.terminal
            terminal_error = stream.error
            if registered:
                stream.subscribers.append(channel)
            subscriber_count = len(stream.subscribers)

        logger.info(
            f"Subscriber attached to decision {decision_id}: "
            f"{len(snapshot)} events replayed, "
            + (f"{subscriber_count} live subscribers" if registered else "already terminal")
        )

        return Subscription(
            store=self,
            stream=stream,
            channel=channel,
            snapshot=snapshot,
            registered=registered,
            terminal_error=terminal_error,
            cancellation_check=cancellation_check,
            poll_interval=poll_interval,
        )

    def _unsubscribe(self, stream: _DecisionStream, channel: queue.Queue) -> None:
        with stream.lock:
            try:
                stream.subscribers.remove(channel)
            except ValueError:
                # Already released by complete()/fail()
                pass
        logger.debug(f"Subscriber detached from decision {stream.decision_id}")

    def complete(self, decision_id: str) -> bool:
        """Mark a decision successfully finished; live streams end cleanly.

        Returns False if the decision was already terminal.
        """
        return self._finish(decision_id, error=None)

    def fail(self, decision_id: str, message: str) -> bool:
        """Mark a decision failed; live streams end with DecisionStreamError.

        Returns False if the decision was already terminal.
        """
        return self._finish(decision_id, error=message or "Decision failed")

    def _finish(self, decision_id: str, error: Optional[str]) -> bool:
        stream = self._get_stream(decision_id)
        with stream.lock:
            if stream.terminal:
                logger.warning(
                    f"Decision {decision_id} already terminal, ignoring "
                    + ("fail" if error else "complete")
                )
                return False
            stream.terminal = True
            stream.error = error
            stream.finished_at = time.monotonic()
            # Markers queue behind already-delivered events, so readers drain first
            for channel in stream.subscribers:
                channel.put(_Terminal(error))
            released = len(stream.subscribers)
            stream.subscribers.clear()

        if error is None:
            logger.info(f"Decision {decision_id} stream complete ({released} subscribers released)")
        else:
            logger.info(
                f"Decision {decision_id} stream failed: {error} "
                f"({released} subscribers released)"
            )
        return True

    def is_complete(self, decision_id: str) -> bool:
        """True once the decision was marked complete or failed."""
        stream = self._get_stream(decision_id, create=False)
        if stream is None:
            return False
        with stream.lock:
            return stream.terminal

    def error(self, decision_id: str) -> Optional[str]:
        """Failure message of a failed decision, else None."""
        stream = self._get_stream(decision_id, create=False)
        if stream is None:
            return None
        with stream.lock:
            return stream.error

    def subscriber_count(self, decision_id: str) -> int:
        stream = self._get_stream(decision_id, create=False)
        if stream is None:
            return 0
        with stream.lock:
            return len(stream.subscribers)

    def decision_ids(self) -> list[str]:
        with self._streams_lock:
            return list(self._streams.keys())

    def evict(self, decision_id: str) -> bool:
        """Drop a terminal decision's stream. Live decisions are kept."""
        with self._streams_lock:
            stream = self._streams.get(decision_id)
            if stream is None:
                return False
            with stream.lock:
                if not stream.terminal:
                    logger.warning(f"Refusing to evict live decision {decision_id}")
                    return False
            del self._streams[decision_id]
        logger.info(f"Evicted event stream for decision {decision_id}")
        return True

    def evict_expired(self, ttl_seconds: float) -> int:
        """Drop terminal streams that finished more than ttl_seconds ago."""
        cutoff = time.monotonic() - ttl_seconds
        evicted = 0
        with self._streams_lock:
            for decision_id, stream in list(self._streams.items()):
                with stream.lock:
                    expired = stream.terminal and stream.finished_at is not None and stream.finished_at <= cutoff
                if expired:
                    del self._streams[decision_id]
                    evicted += 1
        if evicted:
            logger.info(f"Evicted {evicted} expired event streams (ttl={ttl_seconds}s)")
        return evicted


# Global store instance
_store: Optional[EventStore] = None


def get_event_store() -> EventStore:
    """Get the global event store instance."""
    global _store
    if _store is None:
        _store = EventStore()
    return _store
