"""
Bounded-concurrency SQS consumer.

A Consumer runs `concurrency` workers. Each worker loops:

    poll -> process every message -> delete the successes -> poll ...

Failed messages are never deleted; they reappear once their visibility timeout
expires. A cycle with at least one failure reports a single batch-level
failure (BatchProcessingError), even though deletes stay per message.

Cancellation is cooperative: the stop event is checked between cycles, so a
batch already received is always fully processed and acknowledged.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional

from .config import ConsumerConfig, resolve_config
from .contracts import ConsumeFn, LoggerProto, QueueClientProto
from .errors import BatchProcessingError, ProcessingError, TransportError
from .logging import get_logger


# ==========================================================
# Results
# ==========================================================

@dataclass
class BatchResult:
    """Outcome of one dispatch cycle."""
    received: int = 0
    deleted: List[str] = field(default_factory=list)
    failed: Dict[str, ProcessingError] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


@dataclass
class RunStats:
    """Counters of one worker, or of the whole pool once merged."""
    batches: int = 0
    empty_polls: int = 0
    received: int = 0
    deleted: int = 0
    failed: int = 0
    failed_batches: int = 0

    def record(self, result: BatchResult) -> None:
        if not result.received:
            self.empty_polls += 1
            return
        self.batches += 1
        self.received += result.received
        self.deleted += len(result.deleted)
        self.failed += len(result.failed)
        if not result.ok:
            self.failed_batches += 1

    def merge(self, other: "RunStats") -> "RunStats":
        return RunStats(
            batches=self.batches + other.batches,
            empty_polls=self.empty_polls + other.empty_polls,
            received=self.received + other.received,
            deleted=self.deleted + other.deleted,
            failed=self.failed + other.failed,
            failed_batches=self.failed_batches + other.failed_batches,
        )


# ==========================================================
# Consumer
# ==========================================================

class Consumer:
    """
    Binds a resolved ConsumerConfig to a queue client.

    Construction validates and defaults the config (ValidationError when the
    queue is empty) and makes no network call.
    """

    def __init__(self, config: ConsumerConfig, client: QueueClientProto, logger: Optional[LoggerProto] = None):
        self._config = resolve_config(config)
        self._client = client
        self.logger = logger or get_logger("consumer")

    @property
    def config(self) -> ConsumerConfig:
        return self._config

    @property
    def client(self) -> QueueClientProto:
        return self._client

    # ------------------------------------------------------------------------
    # LIFECYCLE
    # ------------------------------------------------------------------------

    def run(self, stop_event: threading.Event, consume_fn: ConsumeFn) -> RunStats:
        """
        Run the worker pool until `stop_event` is set or a worker hits an
        unrecoverable error.

        Blocks until every worker has exited. Re-raises the first
        TransportError (or unexpected error) that stopped a worker; returns the
        merged stats on clean cancellation. Failed batches do not stop the pool.
        """
        cfg = self._config
        # Set by a failing worker so the others stop; the caller's event is
        # left alone.
        halt = threading.Event()
        worker_stats = [RunStats() for _ in range(cfg.concurrency)]

        self.logger.info("Starting consumer", {
            "queue": cfg.queue,
            "concurrency": cfg.concurrency,
            "max_number_of_messages": cfg.max_number_of_messages,
            "visibility_timeout": cfg.visibility_timeout,
            "wait_time_seconds": cfg.wait_time_seconds,
        })

        with ThreadPoolExecutor(max_workers=cfg.concurrency, thread_name_prefix="sqs-worker") as pool:
            futures = [
                pool.submit(self._worker, n, stop_event, halt, consume_fn, worker_stats[n])
                for n in range(cfg.concurrency)
            ]
            # Worker order, not completion order: the first failure in
            # submission order wins.
            errors = [f.exception() for f in futures]

        stats = RunStats()
        for s in worker_stats:
            stats = stats.merge(s)

        first_error: Optional[BaseException] = next((e for e in errors if e is not None), None)
        if first_error is not None:
            self.logger.error("Consumer stopped on error", {
                "queue": cfg.queue, "error": str(first_error),
            })
            raise first_error

        self.logger.info("Consumer stopped", {"queue": cfg.queue, **asdict(stats)})
        return stats

    def _worker(
        self,
        worker: int,
        stop_event: threading.Event,
        halt: threading.Event,
        consume_fn: ConsumeFn,
        stats: RunStats,
    ) -> None:
        """One polling loop. Owns its stats; shares nothing mutable."""
        log = self.logger.bind(worker=worker, queue=self._config.queue)
        log.info("Worker started")
        try:
            while not (stop_event.is_set() or halt.is_set()):
                try:
                    result = self.handle_messages(consume_fn, worker=worker)
                except BatchProcessingError as e:
                    stats.record(e.result)
                    log.warning("Batch failed", {
                        "received": e.result.received,
                        "deleted": len(e.result.deleted),
                        "failed": sorted(e.result.failed),
                    })
                    continue
                stats.record(result)
        except BaseException as e:
            # SystemExit included
            halt.set()
            log.error(e, {"context": "worker"})
            raise
        finally:
            log.info("Worker stopped", {"batches": stats.batches, "deleted": stats.deleted})

    # ------------------------------------------------------------------------
    # DISPATCH CYCLE
    # ------------------------------------------------------------------------

    def handle_messages(self, consume_fn: ConsumeFn, worker: int = 0) -> BatchResult:
        """
        Run one poll/process/acknowledge cycle.

        Raises:
            TransportError: receive failed, or a delete failed (after every
                successful message has been attempted).
            BatchProcessingError: at least one message failed processing; its
                `result` lists what was deleted and what was left.
        """
        cfg = self._config
        log = self.logger.bind(worker=worker, queue=cfg.queue)

        messages = self._client.receive_messages(
            cfg.queue,
            cfg.max_number_of_messages,
            cfg.wait_time_seconds,
            cfg.visibility_timeout,
        )
        result = BatchResult(received=len(messages))
        if not messages:
            return result

        log.debug("Dispatching batch", {"received": len(messages)})

        succeeded = []
        for msg in messages:
            try:
                consume_fn(msg.body)
            except Exception as e:
                err = ProcessingError(msg.message_id, e)
                err.__cause__ = e
                result.failed[msg.message_id] = err
                log.warning("Message processing failed", {
                    "message_id": msg.message_id,
                    "receive_count": msg.receive_count,
                    "error": f"{type(e).__name__}: {e}",
                })
                continue
            succeeded.append(msg)

        delete_error: Optional[TransportError] = None
        for msg in succeeded:
            try:
                self._client.delete_message(cfg.queue, msg.receipt_handle)
            except TransportError as e:
                log.error(e, {"context": "delete", "message_id": msg.message_id})
                if delete_error is None:
                    delete_error = e
                continue
            result.deleted.append(msg.message_id)

        if delete_error is not None:
            raise delete_error
        if not result.ok:
            raise BatchProcessingError(result)
        return result


def new_consumer(
    config: ConsumerConfig, client: QueueClientProto, logger: Optional[LoggerProto] = None,
) -> Consumer:
    """Build a Consumer (ValidationError when config.queue is empty)."""
    return Consumer(config, client, logger=logger)


__all__ = ["Consumer", "BatchResult", "RunStats", "new_consumer"]
