from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict


class MetricSample(BaseModel):
    """One data point of a metric as sent by Health Auto Export."""
    model_config = ConfigDict(extra="ignore", frozen=True)

    date: Optional[str] = None
    qty: Optional[float] = None
    source: Optional[str] = None
    min: Optional[float] = None
    max: Optional[float] = None
    avg: Optional[float] = None

    # Sleep stage totals (minutes)
    asleep: Optional[float] = None
    inbed: Optional[float] = None
    awake: Optional[float] = None
    core: Optional[float] = None
    deep: Optional[float] = None
    rem: Optional[float] = None

    # Sleep window boundaries, same format as ``date``
    sleep_start: Optional[str] = None
    sleep_end: Optional[str] = None
    inbed_start: Optional[str] = None
    inbed_end: Optional[str] = None


class MetricBatch(BaseModel):
    """All samples of one named metric from a single webhook delivery."""
    model_config = ConfigDict(extra="ignore", frozen=True)

    name: Optional[str] = None
    units: Optional[str] = None
    samples: Tuple[MetricSample, ...] = ()


@dataclass(frozen=True)
class OutgoingRow:
    """A row ready to be written to an Airtable table."""
    timestamp: str
    quantity: Optional[float]
    units: Optional[str]
    source: str
    extra: Tuple[Tuple[str, Any], ...] = ()

    def to_fields(self) -> Dict[str, Any]:
        fields: Dict[str, Any] = {"Date": self.timestamp}
        if self.quantity is not None:
            fields["Quantity"] = self.quantity
        if self.units is not None:
            fields["Units"] = self.units
        fields["Source"] = self.source
        fields.update(self.extra)
        return fields

    def to_record(self) -> Dict[str, Any]:
        return {"fields": self.to_fields()}


@dataclass
class IngestReport:
    """Outcome of ingesting one ``MetricBatch``; only used for logs and tests."""
    table: Optional[str]
    received: int = 0
    skipped: int = 0
    duplicates: int = 0
    written: int = 0
    failed_batches: List[int] = field(default_factory=list)
