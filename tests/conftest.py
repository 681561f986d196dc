"""Shared fixtures for stream_sink tests."""

import time

import pytest

from stream_sink.connectors.memory import InMemoryConnector
from stream_sink.core.commands import WriteCommand
from stream_sink.core.config import ConnectionParams, FlushPolicy, SinkConfig


CONN_STR = "DRIVER=memory;SERVER=test;DATABASE=sink_tests"


def insert_transform(record: dict) -> WriteCommand:
    """Turn {"id": n} into an INSERT with the id as parameter."""
    return WriteCommand("INSERT INTO dbo.events (id) VALUES (?)", (record["id"],))


@pytest.fixture
def connector():
    """Fresh in-memory connector for each test."""
    return InMemoryConnector()


@pytest.fixture
def make_config():
    """Build a SinkConfig pointing at the in-memory store."""

    def _make(batch_size: int = 1, flush_interval_millis: int = 1000) -> SinkConfig:
        return SinkConfig(
            connection=ConnectionParams(connection_string=CONN_STR),
            flush=FlushPolicy(batch_size=batch_size, flush_interval_millis=flush_interval_millis),
        )

    return _make


@pytest.fixture
def wait_until():
    """Poll a condition until it holds or the timeout expires."""

    def _wait(condition, timeout: float = 3.0, interval: float = 0.005) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if condition():
                return True
            time.sleep(interval)
        return condition()

    return _wait


@pytest.fixture
def transform():
    """Record transform used by most sink tests."""
    return insert_transform
