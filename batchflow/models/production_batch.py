"""
ProductionBatch and ProductionQCRecord models.

A ProductionBatch is one production run of a product, tracked through the
ordered stages in BatchStage. ProductionQCRecord rows are the append-only
audit trail of QC readings taken against a batch.
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
    Index,
    Numeric,
    CheckConstraint,
    JSON,
)
from sqlalchemy.orm import relationship

from .base import BaseModel
from .enums import BatchStage, BatchStatus


class ProductionBatch(BaseModel):
    """
    One production run of a product.

    Attributes:
        batch_number: Generated "BATCH-<code>-<year>-<seq>" number (unique)
        product_id / product_name: Product being made
        target_quantity: Planned output
        output_quantity: Actual output; None until recorded
        unit: Unit for both quantities
        status: BatchStatus value
        stage: Current BatchStage value
        progress: 0-100 percentage
        qc_stages: Map of stage name -> {"completed": bool, ...QC fields}
        handover_id: Set once the batch is handed over to Packing
        version: Optimistic concurrency counter
    """

    __tablename__ = "production_batches"

    batch_number = Column(String(50), nullable=False, unique=True, index=True)
    product_id = Column(String(100), nullable=False, index=True)
    product_name = Column(String(200), nullable=False)

    target_quantity = Column(Numeric(12, 3), nullable=False)
    output_quantity = Column(Numeric(12, 3), nullable=True)
    unit = Column(String(20), nullable=False)

    status = Column(String(20), nullable=False, default=BatchStatus.ACTIVE.value)
    stage = Column(String(20), nullable=False, default=BatchStage.PREPARATION.value)
    progress = Column(Integer, nullable=False, default=0)
    qc_stages = Column(JSON, nullable=False, default=dict)

    priority = Column(String(20), nullable=False, default="normal")
    notes = Column(Text, nullable=True)
    expected_completion_date = Column(Date, nullable=True)

    created_by = Column(String(128), nullable=True)
    created_by_name = Column(String(200), nullable=True)
    updated_by = Column(String(128), nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # Final QC verdict
    qc_completed = Column(Boolean, nullable=False, default=False)
    qc_grade = Column(String(1), nullable=True)
    qc_completed_at = Column(DateTime, nullable=True)

    handover_id = Column(Integer, nullable=True)
    handed_over_at = Column(DateTime, nullable=True)

    version = Column(Integer, nullable=False)

    qc_records = relationship(
        "ProductionQCRecord",
        back_populates="batch",
        order_by="ProductionQCRecord.id",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("idx_production_batch_status", "status"),
        CheckConstraint(
            "target_quantity > 0", name="ck_production_batch_target_positive"
        ),
        CheckConstraint(
            "output_quantity IS NULL OR output_quantity >= 0",
            name="ck_production_batch_output_non_negative",
        ),
        CheckConstraint(
            "progress >= 0 AND progress <= 100",
            name="ck_production_batch_progress_range",
        ),
        CheckConstraint(
            "status IN ('active', 'completed', 'qc_passed', 'qc_failed', "
            "'on_hold', 'handed_over')",
            name="ck_production_batch_status_valid",
        ),
        CheckConstraint(
            "stage IN ('preparation', 'mixing', 'heating', 'cooling', "
            "'final_qc', 'completed')",
            name="ck_production_batch_stage_valid",
        ),
    )

    @property
    def is_handed_over(self) -> bool:
        return self.status == BatchStatus.HANDED_OVER.value

    def __repr__(self) -> str:
        return (
            f"ProductionBatch(id={self.id}, batch_number='{self.batch_number}', "
            f"stage='{self.stage}', status='{self.status}')"
        )


class ProductionQCRecord(BaseModel):
    """
    Append-only QC reading for one stage of a batch.

    Attributes:
        batch_id: Batch the reading belongs to
        stage: Stage the reading was taken at
        qc_data: Validated QC fields (see qc_schema)
        recorded_by / recorded_by_name: Who took the reading
    """

    __tablename__ = "production_qc_records"

    batch_id = Column(
        Integer,
        ForeignKey("production_batches.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    stage = Column(String(20), nullable=False)
    qc_data = Column(JSON, nullable=False, default=dict)
    recorded_by = Column(String(128), nullable=True)
    recorded_by_name = Column(String(200), nullable=True)

    batch = relationship("ProductionBatch", back_populates="qc_records")

    def __repr__(self) -> str:
        return f"ProductionQCRecord(id={self.id}, batch_id={self.batch_id}, stage='{self.stage}')"
