"""Tests for audit sinks."""

import json
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from payplan.config import AuditConfig, KafkaConfig, PayPlanConfig
from payplan.exceptions import SinkError
from payplan.models.base import Event
from payplan.models.enums import InstallmentStatus
from payplan.sinks import build_audit_sink
from payplan.sinks.console import ConsoleSink
from payplan.sinks.json_file import JsonFileSink
from payplan.sinks.serialization import serialize_value, to_dict, to_json


@pytest.fixture
def event() -> Event:
    return Event(
        event_id="evt-001",
        event_type="installment.toggled",
        event_time=datetime(2025, 3, 10, 9, 30),
        source="payplan.reconciliation",
        subject="doc-001",
        data={
            "installment_number": 2,
            "status": InstallmentStatus.PAID,
            "amount": Decimal("162.59"),
        },
    )


class TestSerialization:
    """Tests for event serialization."""

    def test_event_to_dict(self, event: Event) -> None:
        result = to_dict(event)

        assert result["event_time"] == "2025-03-10T09:30:00"
        assert result["data"]["status"] == "PAID"
        assert result["data"]["amount"] == "162.59"
        assert result["metadata"] == {}

    def test_serialize_nested_values(self) -> None:
        assert serialize_value([Decimal("1.50"), (InstallmentStatus.OVERDUE,)]) == [
            "1.50",
            ["OVERDUE"],
        ]
        assert serialize_value(None) is None

    def test_to_json_keeps_accents(self) -> None:
        text = to_json({"forma": "Cartão de Crédito"})
        assert "Cartão" in text
        assert json.loads(text) == {"forma": "Cartão de Crédito"}

    def test_non_mapping_is_wrapped(self) -> None:
        assert to_dict("raw") == {"value": "raw"}


class TestConsoleSink:
    """Tests for ConsoleSink."""

    def test_write_batch(self, event: Event, capsys: pytest.CaptureFixture) -> None:
        sink = ConsoleSink(pretty=False)

        sink.write_batch("payplan.schedule-events", [event, event])
        captured = capsys.readouterr()

        lines = captured.out.strip().splitlines()
        assert len(lines) == 2
        assert lines[0].startswith("[payplan.schedule-events] ")
        assert '"event_type": "installment.toggled"' in lines[0]
        assert sink._counts["payplan.schedule-events"] == 2

    def test_close_prints_summary(self, event: Event, capsys: pytest.CaptureFixture) -> None:
        sink = ConsoleSink()
        sink.write_batch("audit", [event])
        capsys.readouterr()

        sink.close()

        assert "audit: 1 events" in capsys.readouterr().out


class TestJsonFileSink:
    """Tests for JsonFileSink."""

    def test_appends_json_lines(self, tmp_path: Path, event: Event) -> None:
        sink = JsonFileSink(tmp_path / "audit")

        sink.write_batch("payplan.schedule-events", [event])
        sink.write_batch("payplan.schedule-events", [event])
        sink.close()

        path = tmp_path / "audit" / "payplan_schedule-events.jsonl"
        lines = path.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 2
        assert json.loads(lines[0])["subject"] == "doc-001"

    def test_write_failure_raises_sink_error(self, tmp_path: Path, event: Event) -> None:
        sink = JsonFileSink(tmp_path)
        # A directory where the file should be makes open() fail
        sink.path_for("blocked").mkdir()

        with pytest.raises(SinkError):
            sink.write_batch("blocked", [event])


class TestKafkaSinkMocked:
    """Tests for KafkaSink using mocks (no actual Kafka connection)."""

    def test_producer_stats_success_rate(self) -> None:
        from payplan.sinks.kafka import ProducerStats

        stats = ProducerStats(sent=100, delivered=90, failed=10)
        assert stats.success_rate == 0.9
        assert ProducerStats().success_rate == 0.0

    @patch("payplan.sinks.kafka.Producer")
    def test_init_with_string(self, mock_producer_class: MagicMock) -> None:
        from payplan.sinks.kafka import KafkaSink

        sink = KafkaSink("kafka:9092")

        assert sink.config.bootstrap_servers == "kafka:9092"
        config = mock_producer_class.call_args[0][0]
        assert config["bootstrap.servers"] == "kafka:9092"
        assert config["acks"] == "all"

    @patch("payplan.sinks.kafka.Producer")
    def test_write_batch_keys_by_subject(self, mock_producer_class: MagicMock, event: Event) -> None:
        from payplan.sinks.kafka import KafkaSink

        mock_producer = MagicMock()
        mock_producer.flush.return_value = 0
        mock_producer_class.return_value = mock_producer

        sink = KafkaSink(KafkaConfig())
        sink.write_batch("payplan.schedule-events", [event])

        kwargs = mock_producer.produce.call_args.kwargs
        assert kwargs["topic"] == "payplan.schedule-events"
        assert kwargs["key"] == b"doc-001"
        assert json.loads(kwargs["value"].decode("utf-8"))["event_id"] == "evt-001"
        assert sink.stats.sent == 1
        mock_producer.flush.assert_called_once()

    @patch("payplan.sinks.kafka.Producer")
    def test_produce_failure_raises_sink_error(
        self, mock_producer_class: MagicMock, event: Event
    ) -> None:
        from payplan.sinks.kafka import KafkaSink

        mock_producer = MagicMock()
        mock_producer.produce.side_effect = BufferError("queue full")
        mock_producer_class.return_value = mock_producer

        sink = KafkaSink("localhost:9092")
        with pytest.raises(SinkError):
            sink.send("audit", event)
        assert sink.stats.failed == 1

    @patch("payplan.sinks.kafka.Producer")
    def test_delivery_callback(self, mock_producer_class: MagicMock) -> None:
        from payplan.sinks.kafka import KafkaSink

        sink = KafkaSink("localhost:9092")
        msg = MagicMock()
        msg.topic.return_value = "audit"
        msg.partition.return_value = 0
        msg.offset.return_value = 7

        sink._delivery_callback(None, msg)
        sink._delivery_callback("broker down", msg)

        assert sink.stats.delivered == 1
        assert sink.stats.failed == 1

    @patch("payplan.sinks.kafka.Producer")
    def test_close_flushes(self, mock_producer_class: MagicMock) -> None:
        from payplan.sinks.kafka import KafkaSink

        mock_producer = MagicMock()
        mock_producer.flush.return_value = 3
        mock_producer_class.return_value = mock_producer

        KafkaSink("localhost:9092").close()

        mock_producer.flush.assert_called_once_with(30.0)


class TestBuildAuditSink:
    """Tests for build_audit_sink."""

    def test_none(self) -> None:
        assert build_audit_sink(PayPlanConfig()) is None

    def test_console(self) -> None:
        config = PayPlanConfig(audit=AuditConfig(sink="console"))
        assert isinstance(build_audit_sink(config), ConsoleSink)

    def test_jsonl(self, tmp_path: Path) -> None:
        config = PayPlanConfig(audit=AuditConfig(sink="jsonl", output_path=tmp_path))
        sink = build_audit_sink(config)

        assert isinstance(sink, JsonFileSink)
        assert sink.output_dir == tmp_path

    @patch("payplan.sinks.kafka.Producer")
    def test_kafka(self, mock_producer_class: MagicMock) -> None:
        from payplan.sinks.kafka import KafkaSink

        config = PayPlanConfig(
            audit=AuditConfig(sink="kafka"),
            kafka=KafkaConfig(bootstrap_servers="kafka:9092"),
        )

        assert isinstance(build_audit_sink(config), KafkaSink)
