"""
BatchHandover model: the one-time transfer of a batch's output to Packing.
"""

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    Date,
    Boolean,
    ForeignKey,
    Numeric,
    CheckConstraint,
)

from .base import BaseModel
from .enums import HandoverStatus, QualityGrade
from batchflow.utils.datetime_utils import utc_now


class BatchHandover(BaseModel):
    """
    Delivery of a completed batch from Production to the Packing Area.

    Created once by Production; received_by_packing flips false -> true
    exactly once when Packing acknowledges receipt.

    Attributes:
        batch_id: Source ProductionBatch
        batch_number / product_id / product_name: Snapshot of the batch
        quantity / unit: Delivered output (may be below target due to shrinkage)
        quality_grade: A-D
        expiry_date: Optional best-before date of the material
        received_by_packing: Receipt acknowledgment flag
    """

    __tablename__ = "batch_handovers"

    batch_id = Column(
        Integer,
        ForeignKey("production_batches.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    batch_number = Column(String(50), nullable=False)
    product_id = Column(String(100), nullable=False, index=True)
    product_name = Column(String(200), nullable=False)

    quantity = Column(Numeric(12, 3), nullable=False)
    unit = Column(String(20), nullable=False)
    quality_grade = Column(String(1), nullable=False, default=QualityGrade.A.value)
    expiry_date = Column(Date, nullable=True)
    storage_instructions = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    handover_date = Column(DateTime, nullable=False, default=utc_now)
    handed_over_by = Column(String(128), nullable=True)
    handed_over_by_name = Column(String(200), nullable=True)

    status = Column(String(30), nullable=False, default=HandoverStatus.HANDED_OVER.value)
    received_by_packing = Column(Boolean, nullable=False, default=False)
    received_at = Column(DateTime, nullable=True)
    received_by = Column(String(128), nullable=True)
    received_by_name = Column(String(200), nullable=True)
    receipt_notes = Column(Text, nullable=True)
    stock_id = Column(Integer, nullable=True)

    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_batch_handover_quantity_positive"),
        CheckConstraint(
            "quality_grade IN ('A', 'B', 'C', 'D')",
            name="ck_batch_handover_grade_valid",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"BatchHandover(id={self.id}, batch_id={self.batch_id}, "
            f"received={self.received_by_packing})"
        )
