"""
Example job: Writing a clickstream to a transactional store.

Demonstrates the stream_sink framework with:
- TransactionalSink built from flat job parameters
- MergeTransform keeping the latest click per session
- Batched writes flushed on size, time, checkpoint and close
- InMemoryConnector for running without a database
"""

import logging
import random

from stream_sink.connectors.memory import InMemoryConnector
from stream_sink.core.builder import TransactionalSink
from stream_sink.engine import LocalEnvironment
from stream_sink.runner import LocalRunner
from stream_sink.transforms import MergeTransform

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)


def generate_clicks(count: int):
    """Yield synthetic click events for a handful of sessions."""
    pages = ["/", "/search", "/product/42", "/cart", "/checkout"]
    for n in range(1, count + 1):
        yield {
            "click_id": n,
            "session": f"session-{random.randint(1, 20)}",
            "url": random.choice(pages),
            "ts": 1_700_000_000_000 + n * 250,
        }


def create_sink(connector) -> TransactionalSink:
    """
    Create the sink builder for the last-click-per-session table.

    Returns:
        Configured TransactionalSink
    """

    # Job parameters as the engine would pass them
    # Option 1: Use the in-memory store (connection string is only logged)
    # Option 2: Drop the connector argument and point jdbc.* at SQL Server:
    #   "jdbc.driver": "{ODBC Driver 18 for SQL Server}",
    #   "jdbc.server": "localhost,1433", "jdbc.database": "analytics", ...
    param_map = {
        "jdbc.connection.string": "DRIVER=memory;SERVER=localhost;DATABASE=analytics",
        "jdbc.batch.size": "200",
        "jdbc.flush.interval.ms": "1000",
    }

    return TransactionalSink(
        param_map,
        overwrite_params={"batch.size": "250"},
        parallelism=1,
        name="last-click-sink",
        uid="last-click-sink-v1",
        connector=connector,
    )


def main():
    """Run the example job."""
    print("=" * 80)
    print("Clickstream Sink Example")
    print("=" * 80)
    print()

    connector = InMemoryConnector()
    builder = create_sink(connector)

    transform = MergeTransform(
        target_table="dbo.last_click",
        merge_keys=["session_id"],
        column_map={
            "session_id": lambda r: r["session"],
            "click_id": lambda r: r["click_id"],
            "url": lambda r: r["url"],
            "clicked_at": lambda r: r["ts"],
        },
    )

    runner = LocalRunner(
        name="clickstream",
        records=generate_clicks(2_000),
        sink_function=builder.build(transform),
        environment=LocalEnvironment(),
        checkpoint=builder.checkpoint_config,
        checkpoint_every=900,
        progress_every=500,
    )
    result = runner.run()
    print()

    # Print results summary
    print("=" * 80)
    print("Job Results")
    print("=" * 80)
    print(f"Records invoked: {result.invoked_count}")
    print(f"Commands committed: {result.committed_count}")
    print(f"Batches: {result.flush_count}")
    print(f"Checkpoints: {result.checkpoint_count}")
    print(f"Duration: {result.duration_seconds:.2f} seconds")
    print(f"Transactions seen by the store: {connector.last.commit_count}")
    print()
    print("Done!")
    print("=" * 80)

    return result


if __name__ == "__main__":
    main()
