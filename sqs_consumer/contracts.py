# sqs_consumer/contracts.py
"""
Consumer contracts.
- No business logic here.
- Just the processing function type and the duck-typed adapters the consumer
  depends on.

Applications will:
  - write a function taking the raw message body (bytes)
  - return normally on success, raise on failure

The consumer will:
  - poll a QueueClientProto for batches
  - call the function once per message
  - delete the messages whose call returned normally
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Protocol, runtime_checkable

from .message import Message

# ---------------------------
# Public type aliases
# ---------------------------

ConsumeFn = Callable[[bytes], None]   # raise to signal failure


# ---------------------------
# Queue & Logger protocols (duck-typed)
# ---------------------------

@runtime_checkable
class QueueClientProto(Protocol):
    """Narrow queue contract used by the consumer (and only by the consumer)."""
    def receive_messages(
        self,
        queue_url: str,
        max_messages: int,
        wait_seconds: int,
        visibility_timeout: Optional[int],
    ) -> List[Message]: ...
    def delete_message(self, queue_url: str, receipt_handle: str) -> None: ...


@runtime_checkable
class LoggerProto(Protocol):
    """Structured logger used everywhere."""
    def info(self, msg: str, extra: Optional[Dict[str, Any]] = None) -> None: ...
    def warning(self, msg: str, extra: Optional[Dict[str, Any]] = None) -> None: ...
    def error(self, msg: Any, extra: Optional[Dict[str, Any]] = None) -> None: ...
    def debug(self, msg: str, extra: Optional[Dict[str, Any]] = None) -> None: ...
    def bind(self, **context: Any) -> "LoggerProto": ...


# ---------------------------
# Public API surface
# ---------------------------

__all__ = [
    "ConsumeFn",
    "QueueClientProto",
    "LoggerProto",
]
