"""Base models shared across the engine."""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class Event:
    """Standard audit event envelope."""

    event_id: str
    event_type: str  # entity.action (e.g., installment.toggled)
    event_time: datetime
    source: str  # Service/system that generated
    subject: str  # Subject document ID affected
    data: dict
    metadata: dict = field(default_factory=dict)
