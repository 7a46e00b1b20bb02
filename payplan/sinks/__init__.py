"""Audit event sinks."""

from typing import Any

from payplan.config import PayPlanConfig
from payplan.sinks.console import ConsoleSink
from payplan.sinks.json_file import JsonFileSink
from payplan.sinks.kafka import KafkaSink


def build_audit_sink(config: PayPlanConfig) -> Any | None:
    """Create the audit sink selected by ``config.audit.sink`` (``None`` for "none")."""
    sink = config.audit.sink
    if sink == "console":
        return ConsoleSink(pretty=False)
    if sink == "jsonl":
        return JsonFileSink(config.audit.output_path)
    if sink == "kafka":
        return KafkaSink(config.kafka)
    return None


__all__ = ["ConsoleSink", "JsonFileSink", "KafkaSink", "build_audit_sink"]
