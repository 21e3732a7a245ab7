"""
Message model handed from the queue client to the consumer.

A Message lives for one processing attempt only: it is either acknowledged
(deleted) or abandoned and left for the queue's visibility timeout.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict


RawMessage = Dict[str, Any]


@dataclass(frozen=True)
class Message:
    """One received SQS message."""
    body: bytes
    receipt_handle: str  # acknowledgment token, opaque
    message_id: str  # unique within a batch
    receive_count: int = 1
    attributes: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_raw(cls, raw_msg: RawMessage) -> "Message":
        """Build a Message from a ReceiveMessage entry."""
        if not isinstance(raw_msg, dict):
            raise ValueError("from_raw: expected dict")

        receipt_handle = raw_msg.get("ReceiptHandle")
        if not isinstance(receipt_handle, str) or not receipt_handle.strip():
            raise ValueError("from_raw: missing ReceiptHandle")

        message_id = raw_msg.get("MessageId")
        if not isinstance(message_id, str) or not message_id:
            raise ValueError("from_raw: missing MessageId")

        body = raw_msg.get("Body")
        if body is None:
            body = b""
        elif isinstance(body, str):
            body = body.encode("utf-8")

        attributes = dict(raw_msg.get("Attributes") or {})
        receive_count = int(attributes.get("ApproximateReceiveCount", 1))

        return cls(
            body=body,
            receipt_handle=receipt_handle,
            message_id=message_id,
            receive_count=receive_count,
            attributes=attributes,
        )

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


__all__ = ["Message", "RawMessage"]
