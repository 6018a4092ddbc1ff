"""Record models for import batches."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum
from datetime import datetime


# A raw input unit: column or field name -> raw value.
SourceRow = Dict[str, Any]


class BatchStatus(str, Enum):
    """Outcome of a whole import batch."""
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"

    @classmethod
    def classify(cls, error_count: int, total_count: int) -> "BatchStatus":
        """Classify a batch from its error and total counts."""
        if error_count == 0:
            return cls.SUCCESS
        if error_count == total_count:
            return cls.FAILED
        return cls.PARTIAL


@dataclass
class SourceRecord:
    """A parsed input row, still keyed by source field names."""
    row_number: int
    data: SourceRow
    source_file: Optional[str] = None

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "row_number": self.row_number,
            "data": self.data,
            "source_file": self.source_file,
        }


@dataclass
class MappedRecord:
    """A whitelisted, type-coerced attribute set for one entity."""
    row_number: int
    attributes: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {"row_number": self.row_number, "attributes": self.attributes}


@dataclass
class SkippedRecord:
    """A record excluded before submission, with the reason."""
    identifier: str
    reason: str
    row_number: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "identifier": self.identifier,
            "reason": self.reason,
            "row_number": self.row_number,
        }


@dataclass
class RecordResult:
    """Outcome of submitting one record."""
    identifier: str
    success: bool
    entity: Optional[Dict[str, Any]] = None  # created entity reference
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "identifier": self.identifier,
            "success": self.success,
            "entity": self.entity,
            "error": self.error,
        }


@dataclass(frozen=True)
class ImportBatchResult:
    """Immutable summary of an import batch."""
    status: BatchStatus
    success_count: int
    error_count: int
    total_count: int
    results: tuple = ()
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    @property
    def failures(self) -> List[RecordResult]:
        """Failed results in submission order."""
        return [r for r in self.results if not r.success]

    def error_lines(self, limit: int) -> List[str]:
        """
        Render at most `limit` failures as "identifier: message" lines.

        A truncation notice is appended when more failures exist.
        """
        failures = self.failures
        lines = [f"{r.identifier}: {r.error}" for r in failures[:limit]]
        if len(failures) > limit:
            lines.append(f"... and {len(failures) - limit} more errors")
        return lines

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "status": self.status.value,
            "successCount": self.success_count,
            "errorCount": self.error_count,
            "totalCount": self.total_count,
            "results": [r.to_dict() for r in self.results],
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
        }


@dataclass
class TransformOutcome:
    """Records produced by a transformer plus the ones it skipped."""
    records: List[Any] = field(default_factory=list)
    skipped: List[SkippedRecord] = field(default_factory=list)

    def skip(self, identifier: str, reason: str, row_number: Optional[int] = None) -> None:
        self.skipped.append(SkippedRecord(identifier=identifier, reason=reason, row_number=row_number))
