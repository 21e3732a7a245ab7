"""Tests for the worker entrypoint."""

import json
import signal
import threading

import pytest

from sqs_consumer import logging as consumer_logging
from sqs_consumer import runner
from sqs_consumer.logging import get_logger
from sqs_consumer.runner import EXIT_CONFIG, EXIT_OK, EXIT_TRANSPORT, load_consume_fn, main


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in ("SQS_CONSUMER_CONFIG", "SQS_QUEUE", "SQS_CONCURRENCY", "SQS_MAX_NUMBER_OF_MESSAGES",
                "SQS_VISIBILITY_TIMEOUT", "SQS_WAIT_TIME_SECONDS"):
        monkeypatch.delenv(var, raising=False)


class TestLoadConsumeFn:

    def test_colon_path(self):
        assert load_consume_fn("json:loads") is json.loads

    def test_dotted_path(self):
        assert load_consume_fn("json.loads") is json.loads

    def test_not_callable(self):
        with pytest.raises(ValueError, match="not a callable"):
            load_consume_fn("json.__name__")

    def test_missing_module(self):
        with pytest.raises(ImportError):
            load_consume_fn("no_such_module_xyz.handler")

    def test_bare_name(self):
        with pytest.raises(ValueError):
            load_consume_fn("handler")


class TestMain:

    def test_clean_shutdown(self, sqs_client, fake_sqs, queue_url):
        stop = threading.Event()
        stop.set()

        code = main(["builtins.len", "--queue", queue_url, "--concurrency", "2"],
                    client=sqs_client, stop_event=stop)

        assert code == EXIT_OK
        assert fake_sqs.count("receive_message") == 0

    def test_queue_from_config_file(self, tmp_path, sqs_client, filled_queue, fake_sqs):
        path = tmp_path / "consumer.yaml"
        path.write_text(f"queue: {filled_queue}\nwaitTimeSeconds: 0\n")
        stop = threading.Event()

        class StoppingClient:
            def receive_messages(self, *args):
                messages = sqs_client.receive_messages(*args)
                if not messages:
                    stop.set()
                return messages

            def delete_message(self, *args):
                sqs_client.delete_message(*args)

        code = main(["builtins.len", "--config", str(path)], client=StoppingClient(), stop_event=stop)

        assert code == EXIT_OK
        assert fake_sqs.total(filled_queue) == 0

    def test_missing_queue_is_config_error(self, sqs_client):
        assert main(["builtins.len"], client=sqs_client, stop_event=threading.Event()) == EXIT_CONFIG

    def test_bad_function_is_config_error(self, sqs_client, queue_url):
        code = main(["json.__name__", "--queue", queue_url], client=sqs_client, stop_event=threading.Event())
        assert code == EXIT_CONFIG

    def test_transport_error_exit_code(self, sqs_client, fake_sqs, queue_url):
        fake_sqs.fail_next("receive_message", "AccessDenied")

        code = main(["builtins.len", "--queue", queue_url], client=sqs_client, stop_event=threading.Event())

        assert code == EXIT_TRANSPORT


    def test_unexpected_run_error_exit_code(self, queue_url):
        class BrokenClient:
            def receive_messages(self, *args):
                raise RuntimeError("client bug")

            def delete_message(self, *args):
                pass

        code = main(["builtins.len", "--queue", queue_url], client=BrokenClient(), stop_event=threading.Event())

        assert code == EXIT_TRANSPORT

    def test_log_level_applies_to_every_logger(self, monkeypatch, sqs_client, queue_url):
        monkeypatch.setattr(consumer_logging, "_loggers", {})
        monkeypatch.setattr(consumer_logging, "_default_level", None)
        existing = get_logger("io_sqs")
        stop = threading.Event()
        stop.set()

        code = main(["builtins.len", "--queue", queue_url, "--log-level", "debug"],
                    client=sqs_client, stop_event=stop)

        assert code == EXIT_OK
        assert existing.level == "DEBUG"
        assert get_logger("runner").level == "DEBUG"
        assert get_logger("consumer").level == "DEBUG"
        assert get_logger("consumer").is_enabled_for("DEBUG")

def test_signal_handlers_set_stop_event(monkeypatch, quiet_logger):
    handlers = {}
    monkeypatch.setattr(runner.signal, "signal", lambda sig, h: handlers.__setitem__(sig, h))
    stop = threading.Event()

    runner._install_signal_handlers(stop, quiet_logger)
    handlers[signal.SIGTERM](signal.SIGTERM, None)

    assert set(handlers) == {signal.SIGINT, signal.SIGTERM}
    assert stop.is_set()
