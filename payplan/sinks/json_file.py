"""JSON Lines file sink for audit events."""

import logging
from pathlib import Path
from typing import Any

from payplan.exceptions import SinkError
from payplan.sinks.serialization import to_json

logger = logging.getLogger(__name__)


class JsonFileSink:
    """Append events to one JSON Lines file per topic."""

    def __init__(self, output_dir: str | Path) -> None:
        """Initialize JSON file sink.

        Parameters
        ----------
        output_dir : str | Path
            Directory to write ``<topic>.jsonl`` files into.
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self._counts: dict[str, int] = {}

    def path_for(self, topic: str) -> Path:
        # payplan.schedule-events -> payplan_schedule-events.jsonl
        return self.output_dir / (topic.replace(".", "_") + ".jsonl")

    def write_batch(self, topic: str, records: list[Any]) -> None:
        """Append a batch of events to the topic's file."""
        file_path = self.path_for(topic)
        try:
            with open(file_path, "a", encoding="utf-8") as f:
                for record in records:
                    f.write(to_json(record) + "\n")
        except OSError as e:
            raise SinkError(f"Could not write to {file_path}: {e}") from e

        self._counts[topic] = self._counts.get(topic, 0) + len(records)

    def close(self) -> None:
        for topic, count in self._counts.items():
            logger.info("Wrote %d events to %s", count, self.path_for(topic))
