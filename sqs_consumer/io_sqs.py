"""
SQS queue operations.

Modular design:
- SQSClient class: receive/delete for the consumer, plus the bootstrap calls
  (create queue, batch send, stats) used by tests and scripts
- Retries transient failures with backoff, then raises TransportError
- Easy to test: inject any boto3-compatible client (or a Stubber-wrapped one)
"""

from __future__ import annotations

import os
import random
import time
import uuid
from typing import Any, Callable, Dict, List, Optional, Sequence

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .constants import (
    ENDPOINT_URL_ENV,
    RETRIABLE_ERROR_CODES,
    RETRY_ATTEMPTS,
    SQS_BATCH_SIZE,
    SQS_MAX_BODY_BYTES,
    SQS_MAX_MESSAGES,
    SQS_MAX_VISIBILITY,
    SQS_MAX_WAIT_SECONDS,
    SQS_MIN_MESSAGES,
)
from .contracts import LoggerProto
from .errors import TransportError
from .logging import get_logger
from .message import Message


# ============================================================================
# CLIENT FACTORY
# ============================================================================

def get_sqs_client(region: Optional[str] = None, endpoint_url: Optional[str] = None):
    """Create a boto3 SQS client (one per process). Tuned for long-polling."""
    return boto3.client(
        "sqs",
        region_name=region,
        endpoint_url=endpoint_url or os.environ.get(ENDPOINT_URL_ENV) or None,
        config=Config(
            retries={"max_attempts": 6, "mode": "standard"},
            read_timeout=70,     # > 20s long-poll
            connect_timeout=3,
            max_pool_connections=50,  # one per worker thread at least
        ),
    )


def _error_code(error: Exception) -> Optional[str]:
    if isinstance(error, ClientError):
        return error.response.get("Error", {}).get("Code") or None
    return None


# ============================================================================
# SQS CLIENT CLASS
# ============================================================================

class SQSClient:
    """
    Queue client adapter with retry logic.

    The boto3 client is thread-safe, so one SQSClient is shared by every
    worker of a Consumer.
    """

    def __init__(
        self,
        sqs_client=None,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        max_retries: int = RETRY_ATTEMPTS,
        logger: Optional[LoggerProto] = None,
    ):
        """
        Args:
            sqs_client: boto3 SQS client (if None, creates default)
            region: AWS region (used if creating default client)
            endpoint_url: alternate endpoint, e.g. LocalStack
            max_retries: Number of attempts for transient errors
            logger: StructuredLogger instance (if None, creates default)
        """
        self._sqs = sqs_client
        self._region = region
        self._endpoint_url = endpoint_url
        self.max_retries = max(1, int(max_retries))
        self.logger = logger or get_logger("io_sqs")

    @property
    def sqs(self):
        """Lazy-load the boto3 client."""
        if self._sqs is None:
            self._sqs = get_sqs_client(self._region, self._endpoint_url)
        return self._sqs

    # ------------------------------------------------------------------------
    # RECEIVING
    # ------------------------------------------------------------------------

    def receive_messages(
        self,
        queue_url: str,
        max_messages: int = SQS_MAX_MESSAGES,
        wait_seconds: int = SQS_MAX_WAIT_SECONDS,
        visibility_timeout: Optional[int] = None,
    ) -> List[Message]:
        """Long-poll the queue and return up to max_messages (1-10)."""
        max_n = max(SQS_MIN_MESSAGES, min(int(max_messages), SQS_MAX_MESSAGES))
        wait_s = max(0, min(int(wait_seconds), SQS_MAX_WAIT_SECONDS))

        params: Dict[str, Any] = {
            "QueueUrl": queue_url,
            "MaxNumberOfMessages": max_n,
            "WaitTimeSeconds": wait_s,
            "AttributeNames": ["ApproximateReceiveCount", "SentTimestamp"],
            # Lets SQS dedupe receive attempts on client retries (FIFO only)
            "ReceiveRequestAttemptId": uuid.uuid4().hex,
        }
        if visibility_timeout is not None:
            params["VisibilityTimeout"] = max(0, min(int(visibility_timeout), SQS_MAX_VISIBILITY))

        resp = self._retry("receive_message", self.sqs.receive_message, **params)

        messages: List[Message] = []
        for raw in resp.get("Messages", []) or []:
            try:
                messages.append(Message.from_raw(raw))
            except ValueError as e:
                # Unusable entry; it will reappear after its visibility timeout
                self.logger.warning("Skipping malformed message", {"error": str(e)})
        if messages:
            self.logger.debug(f"Received {len(messages)} message(s)", {"queue_url": queue_url})
        return messages

    # ------------------------------------------------------------------------
    # ACKNOWLEDGEMENT
    # ------------------------------------------------------------------------

    def delete_message(self, queue_url: str, receipt_handle: str) -> None:
        """ACK message: permanently remove from queue."""
        if not isinstance(receipt_handle, str) or not receipt_handle.strip():
            raise ValueError("delete_message: receipt_handle required")

        self._retry(
            "delete_message",
            self.sqs.delete_message,
            QueueUrl=queue_url,
            ReceiptHandle=receipt_handle,
        )

    # ------------------------------------------------------------------------
    # BOOTSTRAP (tests, scripts)
    # ------------------------------------------------------------------------

    def create_queue(self, name: str, attributes: Optional[Dict[str, str]] = None) -> str:
        """Create (or fetch, if it exists) a queue and return its URL."""
        params: Dict[str, Any] = {"QueueName": name}
        if attributes:
            params["Attributes"] = {k: str(v) for k, v in attributes.items()}
        resp = self._retry("create_queue", self.sqs.create_queue, **params)
        return resp["QueueUrl"]

    def get_queue_url(self, name: str) -> str:
        resp = self._retry("get_queue_url", self.sqs.get_queue_url, QueueName=name)
        return resp["QueueUrl"]

    def purge_queue(self, queue_url: str) -> None:
        self._retry("purge_queue", self.sqs.purge_queue, QueueUrl=queue_url)

    def send_messages_batch(
        self,
        queue_url: str,
        bodies: Sequence[str],
        ids: Optional[Sequence[str]] = None,
    ) -> List[str]:
        """
        Publish many messages (batches of 10) with retry on failures.
        `ids` become the batch Entry Ids of the first attempt; retries use
        fresh Ids. Returns the SQS MessageIds of accepted messages.
        """
        if not bodies:
            return []
        if ids is not None and len(ids) != len(bodies):
            raise ValueError("send_messages_batch: ids and bodies length differ")

        for body in bodies:
            self._ensure_size_ok(body)

        message_ids: List[str] = []
        for start in range(0, len(bodies), SQS_BATCH_SIZE):
            entries = []
            for idx, body in enumerate(bodies[start:start + SQS_BATCH_SIZE]):
                entry_id = ids[start + idx] if ids is not None else f"m{start + idx}"
                entries.append({"Id": entry_id, "MessageBody": body})
            message_ids.extend(self._send_batch_chunk(queue_url, entries))

        self.logger.info(f"Sent {len(message_ids)} message(s) in batch", {"queue_url": queue_url})
        return message_ids

    def get_queue_stats(self, queue_url: str) -> Dict[str, int]:
        """Get approximate queue counts."""
        attr_names = [
            "ApproximateNumberOfMessages",
            "ApproximateNumberOfMessagesNotVisible",
            "ApproximateNumberOfMessagesDelayed",
        ]
        resp = self._retry(
            "get_queue_attributes",
            self.sqs.get_queue_attributes,
            QueueUrl=queue_url,
            AttributeNames=attr_names,
        )
        attrs = resp.get("Attributes", {})
        return {
            "visible": int(attrs.get("ApproximateNumberOfMessages", 0)),
            "inflight": int(attrs.get("ApproximateNumberOfMessagesNotVisible", 0)),
            "delayed": int(attrs.get("ApproximateNumberOfMessagesDelayed", 0)),
        }

    # ------------------------------------------------------------------------
    # PRIVATE HELPERS
    # ------------------------------------------------------------------------

    def _send_batch_chunk(self, queue_url: str, entries: List[Dict[str, Any]]) -> List[str]:
        """Send a single batch chunk (up to 10 messages), retrying retriable entries."""
        pending = entries
        message_ids: List[str] = []
        delay = 0.25

        for attempt in range(1, self.max_retries + 1):
            resp = self._retry("send_message_batch", self.sqs.send_message_batch,
                               QueueUrl=queue_url, Entries=pending)

            for s in resp.get("Successful", []):
                mid = s.get("MessageId")
                if mid:
                    message_ids.append(mid)

            failures = resp.get("Failed", [])
            if not failures:
                break

            retriable: List[Dict[str, Any]] = []
            for f in failures:
                code = f.get("Code", "")
                orig = next((e for e in pending if e["Id"] == f.get("Id")), None)
                if code in RETRIABLE_ERROR_CODES and attempt < self.max_retries and orig:
                    retriable.append(dict(orig, Id=f"r{uuid.uuid4().hex[:8]}"))
                else:
                    self.logger.error("Permanent batch send failure", {
                        "entry_id": f.get("Id"),
                        "message": f.get("Message"),
                        "code": code,
                    })

            if not retriable:
                break

            pending = retriable
            time.sleep(delay + random.uniform(0, 0.25))
            delay = min(delay * 2, 5.0)

        return message_ids

    def _retry(self, operation: str, func: Callable, *args, **kwargs):
        """
        Call a boto3 method with exponential backoff on retriable errors.
        Non-retriable or exhausted failures are raised as TransportError.
        """
        delay = 0.25
        for attempt in range(1, self.max_retries + 1):
            try:
                return func(*args, **kwargs)
            except (ClientError, BotoCoreError) as e:
                code = _error_code(e)
                retriable = isinstance(e, BotoCoreError) or code in RETRIABLE_ERROR_CODES
                if retriable and attempt < self.max_retries:
                    self.logger.debug("Retrying SQS call", {
                        "operation": operation, "attempt": attempt, "code": code,
                    })
                    time.sleep(delay + random.uniform(0, 0.25))
                    delay = min(delay * 2, 5.0)
                    continue
                raise TransportError(operation, str(e), code=code) from e
        raise TransportError(operation, f"failed after {self.max_retries} attempts")

    @staticmethod
    def _ensure_size_ok(body: str) -> None:
        """Guard against SQS 256 KB hard limit."""
        if len(body.encode("utf-8")) > SQS_MAX_BODY_BYTES:
            raise ValueError("SQS message > 256KB; upload payload elsewhere and send a pointer.")


__all__ = ["SQSClient", "get_sqs_client"]
