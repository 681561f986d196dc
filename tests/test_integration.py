"""
Integration tests for building, attaching and running sinks end to end.

Tests complete sink usage including:
- Builder configuration from job parameters without engine side effects
- Attaching sinks to a stream with parallelism, name and uid
- Local runs in immediate and batched mode, with checkpoints
- Fail-fast runs that close the sink and propagate the error
- Batch jobs through the output-format adapter
"""

import pytest

from stream_sink.connectors.memory import InMemoryConnector
from stream_sink.core.builder import TransactionalSink
from stream_sink.core.config import CheckpointConfig, CheckpointingMode
from stream_sink.core.exceptions import CommitError, TransformError
from stream_sink.core.output_format import SinkOutputFormat
from stream_sink.core.sink import SinkState
from stream_sink.engine import LocalDataStream, LocalEnvironment
from stream_sink.runner import LocalRunner
from stream_sink.transforms import InsertTransform, MergeTransform

CONN_STR = "DRIVER=memory;SERVER=test;DATABASE=sink_tests"


@pytest.fixture
def params():
    """Flat job parameters for the default store instance."""
    return {
        "jdbc.connection.string": CONN_STR,
        "jdbc.batch.size": "1",
        "jdbc.flush.interval.ms": "1000",
    }


@pytest.fixture
def clicks():
    """A small stream of click events."""
    return [
        {"click_id": n, "session": f"s{n % 3}", "url": f"/page/{n}"}
        for n in range(1, 11)
    ]


@pytest.fixture
def click_insert():
    return InsertTransform(
        "dbo.clicks",
        {
            "click_id": lambda r: r["click_id"],
            "session_id": lambda r: r["session"],
            "url": lambda r: r["url"],
        },
    )


def test_builder_has_no_engine_side_effects(params, connector):
    """Test that building a sink configures nothing on the environment."""
    env = LocalEnvironment()

    builder = TransactionalSink(params, overwrite_params={"batch.size": "50"}, connector=connector)

    assert not env.checkpointing_enabled
    assert builder.config.flush.batch_size == 50
    assert builder.checkpoint_config == CheckpointConfig()
    assert connector.connections == []  # nothing opened until a task starts

    builder.checkpoint_config.apply_to(env)
    assert env.checkpoint_interval == 10_000
    assert env.checkpointing_mode is CheckpointingMode.EXACTLY_ONCE


def test_builder_rejects_negative_parallelism(params):
    """Test that parallelism below zero is refused."""
    with pytest.raises(ValueError):
        TransactionalSink(params, parallelism=-1)


def test_sink_attaches_operator_settings(params, connector, click_insert, clicks):
    """Test that sink() adds the function to the stream and applies operator settings."""
    stream = LocalDataStream(clicks)
    builder = TransactionalSink(
        params, parallelism=4, name="clicks-sink", uid="clicks-sink-v1", connector=connector
    )

    handle = builder.sink(stream, click_insert)

    assert stream.sinks == [handle]
    assert handle.parallelism == 4
    assert handle.sink_name == "clicks-sink"
    assert handle.sink_uid == "clicks-sink-v1"
    assert handle.function.name == "clicks-sink"
    assert handle.function.state is SinkState.UNINITIALIZED


def test_sink_leaves_engine_defaults_when_unset(params, connector, click_insert):
    """Test that zero parallelism and no name/uid leave the handle untouched."""
    stream = LocalDataStream([])

    handle = TransactionalSink(params, connector=connector).sink(stream, click_insert)

    assert handle.parallelism is None
    assert handle.sink_name is None
    assert handle.sink_uid is None


def test_named_instance_builds_separate_config(connector, click_insert):
    """Test that two instances in one parameter map resolve independently."""
    params = {
        "jdbc.connection.string": CONN_STR,
        "jdbc.archive.connection.string": "DRIVER=memory;SERVER=archive",
        "jdbc.archive.batch.size": "25",
    }

    primary = TransactionalSink(params, connector=connector).build(click_insert)
    archive = TransactionalSink(params, instance="archive", connector=connector).build(click_insert)

    primary.open()
    archive.open()
    primary.close()
    archive.close()

    assert connector.connection_strings == [CONN_STR, "DRIVER=memory;SERVER=archive"]
    assert archive.name == "archive"
    assert archive.config.flush.batch_size == 25


def test_local_run_immediate_mode(params, connector, click_insert, clicks):
    """Test that every record is committed in its own transaction."""
    sink_function = TransactionalSink(params, connector=connector).build(click_insert)

    result = LocalRunner("clicks", clicks, sink_function).run()

    assert result.invoked_count == 10
    assert result.committed_count == 10
    assert result.flush_count == 0
    assert connector.last.commit_count == 10
    assert connector.last.closed is True
    assert sink_function.state is SinkState.CLOSED


def test_local_run_batched_with_checkpoints(params, connector, click_insert, clicks):
    """Test batched writes where checkpoints and close commit partial batches."""
    sink_function = TransactionalSink(
        params,
        overwrite_params={"batch.size": "100", "flush.interval.ms": "60000"},
        connector=connector,
    ).build(click_insert)
    env = LocalEnvironment()

    result = LocalRunner(
        "clicks",
        clicks,
        sink_function,
        environment=env,
        checkpoint=CheckpointConfig(interval_millis=2_000),
        checkpoint_every=4,
    ).run()

    assert env.checkpoint_interval == 2_000
    assert result.checkpoint_count == 2
    assert result.committed_count == 10
    # Two checkpoint flushes (4 + 4) and the flush on close (2)
    assert [len(batch) for batch in connector.last.transactions] == [4, 4, 2]
    assert [p[0] for _, p in connector.last.committed] == list(range(1, 11))


def test_local_run_merge_transform(params, connector, clicks):
    """Test that upserts flow through the sink unchanged."""
    sink_function = TransactionalSink(
        params, overwrite_params={"batch.size": "5"}, connector=connector
    ).build(
        MergeTransform(
            target_table="dbo.last_click",
            merge_keys=["session_id"],
            column_map={"session_id": lambda r: r["session"], "url": lambda r: r["url"]},
        )
    )

    result = LocalRunner("sessions", clicks, sink_function).run()

    assert result.flush_count == 2
    assert all(sql.startswith("MERGE dbo.last_click") for sql, _ in connector.last.committed)


def test_local_run_fails_fast_and_closes_sink(params, connector, click_insert, clicks):
    """Test that the first bad record stops the run and the sink is still closed."""
    clicks[3] = {"click_id": 4}  # missing session and url

    sink_function = TransactionalSink(params, connector=connector).build(click_insert)

    with pytest.raises(TransformError):
        LocalRunner("clicks", clicks, sink_function).run()

    assert [p[0] for _, p in connector.last.committed] == [1, 2, 3]
    assert connector.last.closed is True
    assert sink_function.state is SinkState.CLOSED


def test_local_run_propagates_commit_failure(params, click_insert, clicks):
    """Test that a store failure propagates instead of being skipped."""
    connector = InMemoryConnector(fail_on=lambda sql, params: params[0] == 5)
    sink_function = TransactionalSink(params, connector=connector).build(click_insert)

    with pytest.raises(CommitError) as exc_info:
        LocalRunner("clicks", clicks, sink_function).run()

    assert exc_info.value.command.params[0] == 5
    assert len(connector.last.committed) == 4


def test_runner_rejects_negative_counts(params, connector, click_insert):
    """Test runner argument validation."""
    sink_function = TransactionalSink(params, connector=connector).build(click_insert)

    with pytest.raises(ValueError):
        LocalRunner("bad", [], sink_function, checkpoint_every=-1)


def test_output_format_lifecycle(params, connector, click_insert, clicks):
    """Test driving a sink from a batch job through the output format."""
    sink_function = TransactionalSink(
        params, overwrite_params={"batch.size": "3"}, connector=connector
    ).build(click_insert)
    output = SinkOutputFormat(sink_function)

    output.configure({"job": "nightly-backfill"})
    output.open(task_number=0, num_tasks=1)
    for record in clicks:
        output.write_record(record)
    output.close()

    assert [len(batch) for batch in connector.last.transactions] == [3, 3, 3, 1]
    assert sink_function.state is SinkState.CLOSED
