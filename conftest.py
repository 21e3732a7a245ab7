"""Shared fixtures: an in-memory SQS double injected into SQSClient."""

import threading
import time
import uuid
from typing import Any, Dict, List, Optional

import pytest
from botocore.exceptions import ClientError

from sqs_consumer.io_sqs import SQSClient
from sqs_consumer.logging import StructuredLogger

# The retry fixture patches time.sleep globally; the double keeps the real one.
_real_sleep = time.sleep


def _client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": f"injected {code}"}}, operation)


class FakeSQS:
    """
    boto3-shaped SQS double.

    Honours visibility timeouts (a received message is hidden until its
    timeout lapses), receipt handles (a new one per receive) and records every
    call so tests can count receives and deletes.
    """

    def __init__(self, empty_poll_delay: float = 0.005):
        self._lock = threading.Lock()
        self._queues: Dict[str, List[Dict[str, Any]]] = {}
        self._attrs: Dict[str, Dict[str, str]] = {}
        self._faults: Dict[str, List[str]] = {}
        self.empty_poll_delay = empty_poll_delay
        self.calls: Dict[str, List[Dict[str, Any]]] = {}

    # -- test helpers -------------------------------------------------------

    def fail_next(self, operation: str, code: str, times: int = 1) -> None:
        self._faults.setdefault(operation, []).extend([code] * times)

    def count(self, operation: str) -> int:
        return len(self.calls.get(operation, []))

    def visible(self, queue_url: str) -> int:
        now = time.monotonic()
        with self._lock:
            return sum(1 for m in self._queues[queue_url] if m["visible_at"] <= now)

    def total(self, queue_url: str) -> int:
        with self._lock:
            return len(self._queues[queue_url])

    def _record(self, operation: str, params: Dict[str, Any]) -> None:
        with self._lock:
            self.calls.setdefault(operation, []).append(params)
            faults = self._faults.get(operation)
            code = faults.pop(0) if faults else None
        if code:
            raise _client_error(code, operation)

    def _queue(self, url: str) -> List[Dict[str, Any]]:
        if url not in self._queues:
            raise _client_error("AWS.SimpleQueueService.NonExistentQueue", "GetQueue")
        return self._queues[url]

    # -- boto3 surface ------------------------------------------------------

    def create_queue(self, QueueName: str, Attributes: Optional[Dict[str, str]] = None):
        self._record("create_queue", {"QueueName": QueueName})
        url = f"https://sqs.us-east-1.amazonaws.com/000000000000/{QueueName}"
        with self._lock:
            self._queues.setdefault(url, [])
            self._attrs[url] = dict(Attributes or {})
        return {"QueueUrl": url}

    def get_queue_url(self, QueueName: str):
        self._record("get_queue_url", {"QueueName": QueueName})
        for url in self._queues:
            if url.endswith("/" + QueueName):
                return {"QueueUrl": url}
        raise _client_error("AWS.SimpleQueueService.NonExistentQueue", "GetQueueUrl")

    def purge_queue(self, QueueUrl: str):
        self._record("purge_queue", {"QueueUrl": QueueUrl})
        with self._lock:
            self._queue(QueueUrl).clear()
        return {}

    def send_message_batch(self, QueueUrl: str, Entries: List[Dict[str, Any]]):
        self._record("send_message_batch", {"QueueUrl": QueueUrl, "Entries": Entries})
        successful = []
        with self._lock:
            queue = self._queue(QueueUrl)
            for entry in Entries:
                mid = str(uuid.uuid4())
                queue.append({
                    "MessageId": mid,
                    "Body": entry["MessageBody"],
                    "visible_at": 0.0,
                    "receipt": None,
                    "receive_count": 0,
                })
                successful.append({"Id": entry["Id"], "MessageId": mid})
        return {"Successful": successful, "Failed": []}

    def receive_message(self, QueueUrl: str, MaxNumberOfMessages: int = 1, WaitTimeSeconds: int = 0,
                        VisibilityTimeout: Optional[int] = None, **kwargs):
        self._record("receive_message", dict(
            kwargs, QueueUrl=QueueUrl, MaxNumberOfMessages=MaxNumberOfMessages,
            WaitTimeSeconds=WaitTimeSeconds, VisibilityTimeout=VisibilityTimeout,
        ))
        now = time.monotonic()
        out = []
        with self._lock:
            queue = self._queue(QueueUrl)
            if VisibilityTimeout is None:
                VisibilityTimeout = int(self._attrs.get(QueueUrl, {}).get("VisibilityTimeout", 30))
            for m in queue:
                if len(out) >= MaxNumberOfMessages:
                    break
                if m["visible_at"] > now:
                    continue
                m["receipt"] = uuid.uuid4().hex
                m["receive_count"] += 1
                m["visible_at"] = now + VisibilityTimeout
                out.append({
                    "MessageId": m["MessageId"],
                    "ReceiptHandle": m["receipt"],
                    "Body": m["Body"],
                    "Attributes": {"ApproximateReceiveCount": str(m["receive_count"])},
                })
        if not out and self.empty_poll_delay:
            # stands in for the long-poll wait
            _real_sleep(self.empty_poll_delay)
        return {"Messages": out} if out else {}

    def delete_message(self, QueueUrl: str, ReceiptHandle: str):
        self._record("delete_message", {"QueueUrl": QueueUrl, "ReceiptHandle": ReceiptHandle})
        with self._lock:
            queue = self._queue(QueueUrl)
            for i, m in enumerate(queue):
                if m["receipt"] == ReceiptHandle:
                    del queue[i]
                    return {}
        raise _client_error("ReceiptHandleIsInvalid", "DeleteMessage")

    def get_queue_attributes(self, QueueUrl: str, AttributeNames: List[str]):
        self._record("get_queue_attributes", {"QueueUrl": QueueUrl})
        now = time.monotonic()
        with self._lock:
            queue = self._queue(QueueUrl)
            visible = sum(1 for m in queue if m["visible_at"] <= now)
            return {"Attributes": {
                "ApproximateNumberOfMessages": str(visible),
                "ApproximateNumberOfMessagesNotVisible": str(len(queue) - visible),
                "ApproximateNumberOfMessagesDelayed": "0",
            }}


class _NullStream:
    def write(self, _s):
        return 0

    def flush(self):
        pass


@pytest.fixture(autouse=True)
def _no_sleep_on_retry(monkeypatch):
    """Backoff sleeps in the client adapter are skipped in tests."""
    monkeypatch.setattr("sqs_consumer.io_sqs.time.sleep", lambda _s: None)


@pytest.fixture
def quiet_logger():
    return StructuredLogger(name="test", level="ERROR", stream=_NullStream())


@pytest.fixture
def fake_sqs():
    """One emulator per test."""
    return FakeSQS()


@pytest.fixture
def sqs_client(fake_sqs, quiet_logger):
    return SQSClient(sqs_client=fake_sqs, logger=quiet_logger)


@pytest.fixture
def queue_url(sqs_client):
    return sqs_client.create_queue("queue")


@pytest.fixture
def filled_queue(sqs_client, queue_url):
    """Queue pre-loaded with msg1, msg2, msg3."""
    sqs_client.send_messages_batch(queue_url, ["msg1", "msg2", "msg3"], ids=["msg1", "msg2", "msg3"])
    return queue_url
