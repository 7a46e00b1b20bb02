"""Console sink for debugging and development."""

from typing import Any

from payplan.sinks.serialization import to_json


class ConsoleSink:
    """Print audit events to stdout."""

    def __init__(self, pretty: bool = True) -> None:
        """Initialize console sink.

        Parameters
        ----------
        pretty : bool
            Pretty-print JSON output.
        """
        self.pretty = pretty
        self._counts: dict[str, int] = {}

    def write_batch(self, topic: str, records: list[Any]) -> None:
        """Write a batch of events to the console."""
        for record in records:
            print(f"[{topic}] {to_json(record, pretty=self.pretty)}")
        self._counts[topic] = self._counts.get(topic, 0) + len(records)

    def close(self) -> None:
        """Print summary."""
        for topic, count in self._counts.items():
            print(f"  {topic}: {count} events")
