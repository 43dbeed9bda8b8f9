"""
Enumerations for the production, packing and finished goods workflow.

All enums are str-valued so they compare equal to the strings stored in
the database columns.
"""

from enum import Enum
from typing import List, Optional


class BatchStatus(str, Enum):
    """
    Production batch status.

    Values:
        ACTIVE: Batch is moving through its stages
        COMPLETED: All stages recorded
        QC_PASSED / QC_FAILED: Final QC verdict on a completed batch
        ON_HOLD: Paused; may be resumed
        HANDED_OVER: Output transferred to Packing (terminal)
    """

    ACTIVE = "active"
    COMPLETED = "completed"
    QC_PASSED = "qc_passed"
    QC_FAILED = "qc_failed"
    ON_HOLD = "on_hold"
    HANDED_OVER = "handed_over"


class BatchStage(str, Enum):
    """
    Ordered manufacturing stages for a production batch.

    Declaration order is the stage order; next_stage() and index() are the
    only places that order is consulted.
    """

    PREPARATION = "preparation"
    MIXING = "mixing"
    HEATING = "heating"
    COOLING = "cooling"
    FINAL_QC = "final_qc"
    COMPLETED = "completed"

    @classmethod
    def ordered(cls) -> List["BatchStage"]:
        return list(cls)

    @classmethod
    def parse(cls, value) -> "BatchStage":
        """
        Convert a stage name to a BatchStage.

        Accepts the legacy names "created" (preparation) and "qc_final"
        (final_qc) that older screens stored.

        Raises:
            ValueError: If the value names no stage
        """
        if isinstance(value, cls):
            return value
        name = str(value).strip().lower()
        name = _STAGE_ALIASES.get(name, name)
        try:
            return cls(name)
        except ValueError:
            valid = ", ".join(stage.value for stage in cls)
            raise ValueError(f"Unknown batch stage '{value}'. Must be one of: {valid}")

    @classmethod
    def index(cls, stage) -> int:
        return cls.ordered().index(cls.parse(stage))

    @classmethod
    def next_stage(cls, stage) -> Optional["BatchStage"]:
        """Return the stage after `stage`, or None once completed."""
        stages = cls.ordered()
        position = cls.index(stage)
        if position + 1 < len(stages):
            return stages[position + 1]
        return None


_STAGE_ALIASES = {
    "created": BatchStage.PREPARATION.value,
    "qc_final": BatchStage.FINAL_QC.value,
}


class QualityGrade(str, Enum):
    A = "A"
    B = "B"
    C = "C"
    D = "D"


class HandoverStatus(str, Enum):
    HANDED_OVER = "handed_over"
    RECEIVED_BY_PACKING = "received_by_packing"


class StockStatus(str, Enum):
    """Status of a packing area stock entry."""

    AVAILABLE = "available"
    IN_USE = "in_use"
    DEPLETED = "depleted"
    ON_HOLD = "on_hold"
    EXPIRED = "expired"


class MovementType(str, Enum):
    IN = "in"
    OUT = "out"
    LOCATION_CHANGE = "location_change"
    STATUS_CHANGE = "status_change"


class LocationStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class VariantStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class PackagedStatus(str, Enum):
    PACKAGED = "packaged"
    PARTIALLY_EXPORTED = "partially_exported"
    FULLY_EXPORTED = "fully_exported"


class ActivityType(str, Enum):
    PACKAGING = "packaging"
    EXPORT = "export"


class DispatchType(str, Enum):
    """
    Kind of release sent from Packing to the FG Store.

    Values:
        BULK: Lines reference packing area stock entries (quantity in stock unit)
        PACKAGED_UNITS: Lines reference packaged products (quantity in units)
    """

    BULK = "bulk"
    PACKAGED_UNITS = "packaged_units"


class DispatchStatus(str, Enum):
    DISPATCHED = "dispatched"
    CLAIMED = "claimed"


class ExpiryAlertLevel(str, Enum):
    NONE = "none"
    EXPIRED = "expired"
    CRITICAL = "critical"
    WARNING = "warning"
    CAUTION = "caution"
    GOOD = "good"


class OutboxStatus(str, Enum):
    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"


class NotificationStatus(str, Enum):
    UNREAD = "unread"
    READ = "read"
