"""
Error taxonomy for the consumer.

- ValidationError: bad configuration, raised at construction. Never retried.
- TransportError: a receive/delete call failed after the client's own retries.
  Propagates to whoever called the run loop.
- ProcessingError: the processing function failed for one message. Contained
  inside the dispatch cycle.
- BatchProcessingError: at least one message of a batch failed. This is the
  single pass/fail signal of a cycle, even though deletes are per message.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .consumer import BatchResult


class ConsumerError(Exception):
    """Base class for every error raised by sqs_consumer."""


class ValidationError(ConsumerError, ValueError):
    """Invalid consumer configuration."""


class TransportError(ConsumerError):
    """Queue service call failed (receive, delete, send...)."""

    def __init__(self, operation: str, message: str, code: Optional[str] = None):
        self.operation = operation
        self.code = code
        detail = f"{operation} failed: {message}"
        if code:
            detail += f" (code={code})"
        super().__init__(detail)


class ProcessingError(ConsumerError):
    """Processing function failed for a single message."""

    def __init__(self, message_id: str, error: BaseException):
        self.message_id = message_id
        self.error = error
        super().__init__(f"message {message_id}: {type(error).__name__}: {error}")


class BatchProcessingError(ConsumerError):
    """One or more messages of a batch failed processing."""

    def __init__(self, result: "BatchResult"):
        self.result = result
        failed = len(result.failed)
        super().__init__(
            f"{failed} of {result.received} message(s) failed processing "
            f"({len(result.deleted)} deleted)"
        )


__all__ = [
    "ConsumerError",
    "ValidationError",
    "TransportError",
    "ProcessingError",
    "BatchProcessingError",
]
