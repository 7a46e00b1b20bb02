"""Configuration management for payplan."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from payplan.exceptions import ConfigurationError

AUDIT_SINKS = ("none", "console", "jsonl", "kafka")


@dataclass
class KafkaConfig:
    """Kafka producer configuration for the audit sink."""

    bootstrap_servers: str = "localhost:9092"
    acks: str = "all"
    batch_size: int = 16384
    linger_ms: int = 5
    compression: str = "snappy"
    retries: int = 3

    def to_dict(self) -> dict[str, Any]:
        """Convert to confluent-kafka config dict."""
        return {
            "bootstrap.servers": self.bootstrap_servers,
            "acks": self.acks,
            "batch.size": self.batch_size,
            "linger.ms": self.linger_ms,
            "compression.type": self.compression,
            "retries": self.retries,
        }


@dataclass
class PostgresConfig:
    """PostgreSQL connection configuration."""

    host: str = "localhost"
    port: int = 5432
    database: str = "payplan"
    user: str = "postgres"
    password: str = "postgres"

    @property
    def connection_string(self) -> str:
        """Get connection string."""
        return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.database}"


@dataclass
class EngineConfig:
    """Reconciliation engine tuning."""

    cadence_days: int = 30
    placeholder_terms: bool = True
    max_workers: int = 4

    def __post_init__(self) -> None:
        if self.cadence_days < 1:
            raise ConfigurationError(f"cadence_days must be >= 1, got {self.cadence_days}")
        if self.max_workers < 1:
            raise ConfigurationError(f"max_workers must be >= 1, got {self.max_workers}")


@dataclass
class AuditConfig:
    """Where schedule change events are published."""

    sink: str = "none"
    topic: str = "payplan.schedule-events"
    output_path: Path = field(default_factory=lambda: Path("audit"))

    def __post_init__(self) -> None:
        if self.sink not in AUDIT_SINKS:
            raise ConfigurationError(
                f"Unknown audit sink {self.sink!r}; expected one of {', '.join(AUDIT_SINKS)}"
            )


@dataclass
class PayPlanConfig:
    """Main configuration for payplan."""

    postgres: PostgresConfig = field(default_factory=PostgresConfig)
    kafka: KafkaConfig = field(default_factory=KafkaConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)
    audit: AuditConfig = field(default_factory=AuditConfig)
    log_level: str = "INFO"
    log_format: str = "standard"

    @classmethod
    def from_env(cls) -> "PayPlanConfig":
        """Create config from environment variables."""
        import os

        postgres = PostgresConfig(
            host=os.getenv("POSTGRES_HOST", "localhost"),
            port=_int_env("POSTGRES_PORT", "5432"),
            database=os.getenv("POSTGRES_DB", "payplan"),
            user=os.getenv("POSTGRES_USER", "postgres"),
            password=os.getenv("POSTGRES_PASSWORD", "postgres"),
        )

        kafka = KafkaConfig(
            bootstrap_servers=os.getenv("KAFKA_BOOTSTRAP_SERVERS", "localhost:9092"),
            acks=os.getenv("KAFKA_ACKS", "all"),
        )

        engine = EngineConfig(
            cadence_days=_int_env("PAYPLAN_CADENCE_DAYS", "30"),
            placeholder_terms=os.getenv("PAYPLAN_PLACEHOLDER_TERMS", "true").lower() == "true",
            max_workers=_int_env("PAYPLAN_MAX_WORKERS", "4"),
        )

        audit = AuditConfig(
            sink=os.getenv("AUDIT_SINK", "none").lower(),
            topic=os.getenv("AUDIT_TOPIC", "payplan.schedule-events"),
            output_path=Path(os.getenv("AUDIT_OUTPUT", "audit")),
        )

        return cls(
            postgres=postgres,
            kafka=kafka,
            engine=engine,
            audit=audit,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "standard"),
        )


def _int_env(name: str, default: str) -> int:
    import os

    raw = os.getenv(name, default)
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e
