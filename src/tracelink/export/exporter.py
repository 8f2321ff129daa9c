"""Batched, asynchronous span export.

Finished spans are appended to a bounded in-memory queue by any number of
request threads/tasks and drained by a single background worker thread that
hands them to a SpanSink in batches.

Batch cycle:
    ACCUMULATING -> READY_TO_FLUSH -> SENDING -> SENT | FAILED

A batch is ready when `max_batch_size` spans are queued or when
`schedule_delay_seconds` have passed since its first span arrived, whichever
comes first. Only the worker pops spans from the queue, so every span is sent
at most once.

Degradation policy:
- Queue full: the newest span is dropped at the producer (enqueue never blocks).
- Sink failure: bounded retries with exponential backoff, then the batch is dropped.
- Repeated failures: a circuit breaker skips the sink for a cooldown period.
- Shutdown: a bounded final drain; whatever is left at the deadline is dropped.
"""

import threading
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from tracelink.export.sinks import SpanSink
from tracelink.telemetry import (
    EXPORT_ATTEMPT_FAILED,
    EXPORT_BATCH_DROPPED,
    EXPORT_BATCH_SENT,
    EXPORT_CIRCUIT_OPENED,
    EXPORT_QUEUE_FULL,
    EXPORT_SHUTDOWN_TIMEOUT,
    EXPORTER_STARTED,
    EXPORTER_STOPPED,
    SINK_SHUTDOWN_FAILED,
    get_logger,
)

if TYPE_CHECKING:
    from tracelink.tracing.span import Span

log = get_logger(__name__)

# Minimum seconds between two "queue full" warnings.
_QUEUE_FULL_LOG_INTERVAL_S = 10.0


class BatchState(str, Enum):
    """Lifecycle of one export batch."""

    ACCUMULATING = "accumulating"
    READY_TO_FLUSH = "ready_to_flush"
    SENDING = "sending"
    SENT = "sent"
    FAILED = "failed"


@dataclass(frozen=True)
class ExporterStats:
    """Snapshot of exporter counters.

    Attributes:
        enqueued: Spans accepted into the queue.
        exported: Spans delivered to the sink.
        dropped_queue_full: Spans rejected because the queue was at its ceiling.
        dropped_export_failed: Spans lost because their batch exhausted retries
            or was skipped by the open circuit breaker.
        dropped_shutdown: Spans still queued when the shutdown deadline passed,
            or offered after shutdown.
        batches_sent: Batches the sink accepted.
        batches_failed: Batches dropped after failing.
        export_attempts: Calls made to the sink.
        queue_size: Spans currently queued.
    """

    enqueued: int = 0
    exported: int = 0
    dropped_queue_full: int = 0
    dropped_export_failed: int = 0
    dropped_shutdown: int = 0
    batches_sent: int = 0
    batches_failed: int = 0
    export_attempts: int = 0
    queue_size: int = 0

    @property
    def dropped(self) -> int:
        """Total spans lost for any reason."""
        return self.dropped_queue_full + self.dropped_export_failed + self.dropped_shutdown


class BatchSpanExporter:
    """Buffers finished spans and flushes them to a sink from a worker thread.

    Args:
        sink: Destination for span batches.
        max_batch_size: Spans per batch; a full batch is flushed immediately.
        schedule_delay_seconds: Maximum age of a batch before it is flushed.
        max_queue_size: Hard ceiling on queued spans (default 10x batch size).
        max_retries: Retries after the first failed attempt of a batch.
        backoff_initial_seconds: Delay before the first retry; doubles each retry.
        backoff_max_seconds: Upper bound on a single retry delay.
        shutdown_timeout_seconds: Default grace period for the final drain.
        circuit_breaker_threshold: Consecutive failed batches that pause the sink.
        circuit_breaker_cooldown_seconds: How long the sink stays paused.
    """

    def __init__(
        self,
        sink: SpanSink,
        max_batch_size: int = 512,
        schedule_delay_seconds: float = 5.0,
        max_queue_size: int | None = None,
        max_retries: int = 3,
        backoff_initial_seconds: float = 0.5,
        backoff_max_seconds: float = 8.0,
        shutdown_timeout_seconds: float = 30.0,
        circuit_breaker_threshold: int = 3,
        circuit_breaker_cooldown_seconds: float = 30.0,
    ) -> None:  # noqa: D107
        if max_batch_size < 1:
            raise ValueError("max_batch_size must be >= 1")
        if max_queue_size is None:
            max_queue_size = max_batch_size * 10
        if max_queue_size < max_batch_size:
            raise ValueError("max_queue_size must be >= max_batch_size")

        self.sink = sink
        self.max_batch_size = max_batch_size
        self.schedule_delay_seconds = schedule_delay_seconds
        self.max_queue_size = max_queue_size
        self.max_retries = max_retries
        self.backoff_initial_seconds = backoff_initial_seconds
        self.backoff_max_seconds = backoff_max_seconds
        self.shutdown_timeout_seconds = shutdown_timeout_seconds

        # (monotonic enqueue time, span), oldest first
        self._queue: deque[tuple[float, "Span"]] = deque()
        self._condition = threading.Condition(threading.Lock())
        self._flush_waiters: list[threading.Event] = []
        self._in_flight = 0
        self._accepting = True
        self._stopping = False
        self._drain_deadline: float | None = None
        self._shutdown_result: bool | None = None
        self._wakeup = threading.Event()  # interrupts retry backoff at shutdown
        self._worker: threading.Thread | None = None
        self._last_queue_full_log = 0.0

        # Circuit breaker
        self._circuit_breaker_threshold = circuit_breaker_threshold
        self._circuit_breaker_cooldown_s = circuit_breaker_cooldown_seconds
        self._consecutive_failures = 0
        self._circuit_open_until = 0.0

        # Counters (guarded by _condition)
        self._enqueued = 0
        self._exported = 0
        self._dropped_queue_full = 0
        self._dropped_export_failed = 0
        self._dropped_shutdown = 0
        self._batches_sent = 0
        self._batches_failed = 0
        self._export_attempts = 0

    # Producer side

    def start(self) -> None:
        """Start the background worker thread.

        Raises:
            RuntimeError: If the exporter was already started or shut down.
        """
        if self._worker is not None:
            raise RuntimeError("BatchSpanExporter already started")
        if not self._accepting:
            raise RuntimeError("BatchSpanExporter has been shut down")
        self._worker = threading.Thread(
            target=self._run, name="tracelink-batch-exporter", daemon=True
        )
        self._worker.start()
        log.info(
            EXPORTER_STARTED,
            sink=type(self.sink).__name__,
            max_batch_size=self.max_batch_size,
            schedule_delay_seconds=self.schedule_delay_seconds,
            max_queue_size=self.max_queue_size,
        )

    def enqueue(self, span: "Span") -> bool:
        """Queue a finished span for export. Never blocks on I/O.

        Args:
            span: A span that has ended.

        Returns:
            True if the span was queued, False if it was dropped.
        """
        warn_queue_full = False
        with self._condition:
            if not self._accepting:
                self._dropped_shutdown += 1
                return False
            if len(self._queue) >= self.max_queue_size:
                self._dropped_queue_full += 1
                now = time.monotonic()
                if now - self._last_queue_full_log >= _QUEUE_FULL_LOG_INTERVAL_S:
                    self._last_queue_full_log = now
                    warn_queue_full = True
                dropped_total = self._dropped_queue_full
            else:
                first_of_batch = not self._queue
                self._queue.append((time.monotonic(), span))
                self._enqueued += 1
                # Wake the worker to arm the batch timer, or to flush a full batch.
                if first_of_batch or len(self._queue) >= self.max_batch_size:
                    self._condition.notify()
                return True

        if warn_queue_full:
            log.warning(
                EXPORT_QUEUE_FULL,
                max_queue_size=self.max_queue_size,
                dropped_queue_full=dropped_total,
            )
        return False

    # Alias so the exporter can be passed directly as a Tracer's on_end hook.
    __call__ = enqueue

    def force_flush(self, timeout: float | None = None) -> bool:
        """Export everything queued right now.

        Args:
            timeout: Seconds to wait (default: shutdown_timeout_seconds).

        Returns:
            True if the queue was drained within the timeout.
        """
        if self._worker is None or not self._worker.is_alive():
            return False
        done = threading.Event()
        with self._condition:
            if not self._queue and self._in_flight == 0:
                return True
            self._flush_waiters.append(done)
            self._condition.notify()
        return done.wait(self.shutdown_timeout_seconds if timeout is None else timeout)

    def shutdown(self, timeout: float | None = None) -> bool:
        """Stop accepting spans, drain the queue, and close the sink.

        Export failure never blocks termination: once the grace period ends
        the remaining spans are dropped and this method returns.

        Args:
            timeout: Grace period in seconds (default: shutdown_timeout_seconds).

        Returns:
            True if every queued span was handled before the deadline. Repeat
            calls return the first call's result.
        """
        grace = self.shutdown_timeout_seconds if timeout is None else timeout
        with self._condition:
            if self._stopping:
                return self._shutdown_result is True
            self._accepting = False
            self._stopping = True
            self._drain_deadline = time.monotonic() + grace
            self._condition.notify_all()
        self._wakeup.set()

        completed = True
        if self._worker is not None:
            self._worker.join(grace)
            if self._worker.is_alive():
                completed = False
                log.warning(EXPORT_SHUTDOWN_TIMEOUT, timeout_seconds=grace)
        else:
            # Never started: nothing can drain the queue.
            with self._condition:
                self._dropped_shutdown += len(self._queue)
                completed = not self._queue
                self._queue.clear()

        with self._condition:
            if self._queue:
                completed = False

        try:
            self.sink.shutdown()
        except Exception as e:
            log.warning(SINK_SHUTDOWN_FAILED, sink=type(self.sink).__name__, error=str(e))

        with self._condition:
            self._shutdown_result = completed

        stats = self.stats()
        log.info(
            EXPORTER_STOPPED,
            completed=completed,
            exported=stats.exported,
            dropped=stats.dropped,
        )
        return completed

    def stats(self) -> ExporterStats:
        """Return a consistent snapshot of the exporter counters."""
        with self._condition:
            return ExporterStats(
                enqueued=self._enqueued,
                exported=self._exported,
                dropped_queue_full=self._dropped_queue_full,
                dropped_export_failed=self._dropped_export_failed,
                dropped_shutdown=self._dropped_shutdown,
                batches_sent=self._batches_sent,
                batches_failed=self._batches_failed,
                export_attempts=self._export_attempts,
                queue_size=len(self._queue),
            )

    # Worker side

    def _is_circuit_open(self) -> bool:
        """Return True while sink calls are paused."""
        return time.monotonic() < self._circuit_open_until

    def _batch_age(self) -> float:
        """Seconds the oldest queued span has been waiting (lock held)."""
        if not self._queue:
            return 0.0
        return time.monotonic() - self._queue[0][0]

    def _batch_ready(self) -> bool:
        """Whether the accumulating batch must flush now (lock held)."""
        if not self._queue:
            return False
        if self._stopping or self._flush_waiters:
            return True
        if len(self._queue) >= self.max_batch_size:
            return True
        return self._batch_age() >= self.schedule_delay_seconds

    def _take_batch(self) -> list["Span"]:
        """Pop the next batch off the queue (lock held)."""
        size = min(self.max_batch_size, len(self._queue))
        batch = [self._queue.popleft()[1] for _ in range(size)]
        self._in_flight = len(batch)
        return batch

    def _run(self) -> None:
        """Worker loop: wait for a ready batch, send it, repeat until stopped."""
        while True:
            with self._condition:
                while not self._batch_ready():
                    if self._stopping and not self._queue:
                        self._release_flush_waiters()
                        return
                    if not self._queue and self._flush_waiters:
                        self._release_flush_waiters()
                        continue
                    if self._queue:
                        remaining = self.schedule_delay_seconds - self._batch_age()
                        self._condition.wait(max(remaining, 0.0))
                    else:
                        self._condition.wait()

                if self._stopping and self._deadline_passed():
                    self._dropped_shutdown += len(self._queue)
                    self._queue.clear()
                    self._release_flush_waiters()
                    return

                batch = self._take_batch()

            self._send(batch)

            with self._condition:
                self._in_flight = 0
                if not self._queue:
                    self._release_flush_waiters()

    def _deadline_passed(self) -> bool:
        return self._drain_deadline is not None and time.monotonic() >= self._drain_deadline

    def _release_flush_waiters(self) -> None:
        """Wake every force_flush caller (lock held)."""
        for waiter in self._flush_waiters:
            waiter.set()
        self._flush_waiters.clear()

    def _send(self, batch: list["Span"]) -> BatchState:
        """Send one batch with retries; returns SENT or FAILED."""
        if self._is_circuit_open():
            self._record_batch_failed(batch, reason="circuit_open")
            return BatchState.FAILED

        attempts = self.max_retries + 1
        for attempt in range(attempts):
            with self._condition:
                self._export_attempts += 1
            try:
                ok = self.sink.export(batch)
                error: str | None = None if ok else "sink_rejected"
            except Exception as e:
                ok = False
                error = str(e) or type(e).__name__

            if ok:
                self._record_batch_sent(batch)
                return BatchState.SENT

            log.warning(
                EXPORT_ATTEMPT_FAILED,
                attempt=attempt + 1,
                max_attempts=attempts,
                batch_size=len(batch),
                error=error,
            )
            if attempt + 1 >= attempts or not self._wait_backoff(attempt):
                break

        self._record_batch_failed(batch, reason="retries_exhausted")
        return BatchState.FAILED

    def _wait_backoff(self, attempt: int) -> bool:
        """Sleep before the next retry.

        Returns:
            False if the retry must be abandoned (shutdown deadline reached).
        """
        delay = min(self.backoff_initial_seconds * (2**attempt), self.backoff_max_seconds)
        if self._stopping:
            if self._drain_deadline is None:
                return False
            remaining = self._drain_deadline - time.monotonic()
            if remaining <= delay:
                return False
            time.sleep(delay)
            return True
        # Interrupted early when shutdown begins; the retry then runs under
        # the drain deadline.
        self._wakeup.wait(delay)
        return not self._deadline_passed()

    def _record_batch_sent(self, batch: list["Span"]) -> None:
        with self._condition:
            self._exported += len(batch)
            self._batches_sent += 1
        self._consecutive_failures = 0
        log.debug(EXPORT_BATCH_SENT, batch_size=len(batch))

    def _record_batch_failed(self, batch: list["Span"], reason: str) -> None:
        with self._condition:
            self._dropped_export_failed += len(batch)
            self._batches_failed += 1
            dropped_total = self._dropped_export_failed
        log.warning(
            EXPORT_BATCH_DROPPED,
            reason=reason,
            batch_size=len(batch),
            dropped_export_failed=dropped_total,
        )
        if reason == "circuit_open":
            return
        self._consecutive_failures += 1
        if self._consecutive_failures >= self._circuit_breaker_threshold:
            self._circuit_open_until = time.monotonic() + self._circuit_breaker_cooldown_s
            self._consecutive_failures = 0
            log.warning(
                EXPORT_CIRCUIT_OPENED,
                cooldown_seconds=self._circuit_breaker_cooldown_s,
            )
