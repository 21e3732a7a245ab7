#!/usr/bin/env python3
"""
End-to-end tester for the consumer against a real SQS endpoint.

Covers:
  - Happy path: msg1..msg3 consumed, queue empty afterwards
  - Failing consumer with visibility 0: all three still visible, none deleted
  - Partial failure: only the failing message stays
  - Cancellation: stop during an in-flight batch, acks still complete

Run (LocalStack):
  python e2e_sqs.py --endpoint-url http://localhost:4566 --queue-name e2e-consumer
"""

import argparse
import sys
import threading
import time
import traceback

from sqs_consumer.config import ConsumerConfig
from sqs_consumer.consumer import Consumer
from sqs_consumer.errors import BatchProcessingError
from sqs_consumer.io_sqs import SQSClient, get_sqs_client

BODIES = ["msg1", "msg2", "msg3"]


# ---------- helpers ----------

def _print_ok(name: str): print(f"[PASS] {name}")
def _print_fail(name: str, e: Exception): print(f"[FAIL] {name}: {e}\n{traceback.format_exc()}")


def _assert(cond: bool, msg: str):
    if not cond:
        raise AssertionError(msg)


def fill_queue(client: SQSClient, url: str) -> None:
    client.purge_queue(url)
    time.sleep(1)  # purge is eventually consistent
    client.send_messages_batch(url, BODIES, ids=BODIES)


def visible_bodies(client: SQSClient, url: str):
    return sorted(m.text for m in client.receive_messages(url, 10, 1, 0))


# ---------- scenarios ----------

def tc_happy_path(client: SQSClient, url: str):
    fill_queue(client, url)
    seen = []
    consumer = Consumer(ConsumerConfig(queue=url, wait_time_seconds=1), client)
    result = consumer.handle_messages(lambda body: seen.append(body.decode()))

    _assert(result.ok, "cycle should succeed")
    _assert(sorted(seen) == BODIES, f"bodies seen: {seen}")
    _assert(visible_bodies(client, url) == [], "queue should be empty")


def tc_all_fail(client: SQSClient, url: str):
    fill_queue(client, url)

    def consume(body: bytes):
        raise RuntimeError(f"error consume for message {body.decode()}")

    consumer = Consumer(ConsumerConfig(queue=url, visibility_timeout=0, wait_time_seconds=1), client)
    try:
        consumer.handle_messages(consume)
        raise AssertionError("cycle should fail")
    except BatchProcessingError as e:
        _assert(e.result.deleted == [], "nothing should be deleted")

    _assert(visible_bodies(client, url) == BODIES, "all three should still be visible")


def tc_partial(client: SQSClient, url: str):
    fill_queue(client, url)

    def consume(body: bytes):
        if body == b"msg2":
            raise RuntimeError("boom")

    consumer = Consumer(ConsumerConfig(queue=url, visibility_timeout=0, wait_time_seconds=1), client)
    try:
        consumer.handle_messages(consume)
    except BatchProcessingError as e:
        _assert(len(e.result.failed) == 1, f"failed: {e.result.failed}")

    _assert(visible_bodies(client, url) == ["msg2"], "only msg2 should remain")


def tc_cancellation(client: SQSClient, url: str):
    fill_queue(client, url)
    stop = threading.Event()
    seen = []

    def consume(body: bytes):
        stop.set()
        seen.append(body)

    consumer = Consumer(ConsumerConfig(queue=url, concurrency=1, wait_time_seconds=1), client)
    stats = consumer.run(stop, consume)

    _assert(stats.deleted == len(seen), f"stats={stats} seen={len(seen)}")
    _assert(stats.batches == 1, "no poll after cancellation")


# ---------- main ----------

def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("--queue-name", default="e2e-consumer", help="Queue created for the run")
    ap.add_argument("--endpoint-url", default=None, help="e.g. http://localhost:4566 for LocalStack")
    ap.add_argument("--region", default="us-east-1")
    args = ap.parse_args()

    client = SQSClient(sqs_client=get_sqs_client(args.region, args.endpoint_url))
    url = client.create_queue(args.queue_name)
    print(f"Using queue {url}")

    failed = 0
    for name, tc in [
        ("happy path", tc_happy_path),
        ("all fail, visibility 0", tc_all_fail),
        ("partial failure", tc_partial),
        ("cancellation", tc_cancellation),
    ]:
        try:
            tc(client, url)
            _print_ok(name)
        except Exception as e:
            failed += 1
            _print_fail(name, e)

    print("Done.")
    sys.exit(1 if failed else 0)


if __name__ == "__main__":
    main()
