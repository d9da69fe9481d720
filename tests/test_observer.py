"""Tests for denial observers."""

import logging
from unittest.mock import Mock

import pytest

from sliding_limiter.core.logging import hash_client_key
from sliding_limiter.services.observer import (
    CallbackObserver,
    LoggingObserver,
    format_denial,
    observer_from_name,
)


def test_format_denial() -> None:
    assert format_denial("10.0.0.1", 10) == "Client id 10.0.0.1 has passed the rate limit (10)"


def test_callback_observer_passes_message_to_sink() -> None:
    sink = Mock()

    CallbackObserver(sink).on_denied("client-a", 11, 10)

    sink.assert_called_once_with("Client id client-a has passed the rate limit (10)")


def test_logging_observer_logs_hashed_key(caplog) -> None:
    logger = logging.getLogger("test_denials")
    key_hash = hash_client_key("198.51.100.4")

    with caplog.at_level(logging.WARNING, logger="test_denials"):
        LoggingObserver(logger).on_denied("198.51.100.4", 11, 10)

    assert len(caplog.records) == 1
    record = caplog.records[0]
    assert record.levelno == logging.WARNING
    assert record.getMessage() == f"Client id {key_hash} has passed the rate limit (10)"
    assert record.event == "rate_limit.denied"
    assert record.key_hash == key_hash
    assert record.count == 11
    assert record.limit == 10
    assert "198.51.100.4" not in caplog.text


def test_logging_observer_defaults_to_denials_logger(caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="sliding_limiter.denials"):
        LoggingObserver().on_denied("client-a", 3, 2)

    assert [r.name for r in caplog.records] == ["sliding_limiter.denials"]


def test_observer_from_name_logger() -> None:
    assert isinstance(observer_from_name("logger"), LoggingObserver)


def test_observer_from_name_stdout_prints_plain_message(capsys) -> None:
    observer = observer_from_name("stdout")

    observer.on_denied("client-a", 3, 2)

    assert isinstance(observer, CallbackObserver)
    assert capsys.readouterr().out == "Client id client-a has passed the rate limit (2)\n"


def test_observer_from_name_rejects_unknown_sink() -> None:
    with pytest.raises(ValueError):
        observer_from_name("syslog")
