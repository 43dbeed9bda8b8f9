"""
Finished Goods Store inventory models.

FinishedGoodsInventory is the per-product running balance at the FG Store,
keyed by product_id. Every increment appends an FGInventoryMovement for
traceability.
"""

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    Date,
    Index,
    Numeric,
    CheckConstraint,
)

from .base import BaseModel
from batchflow.utils.datetime_utils import utc_now


class FinishedGoodsInventory(BaseModel):
    """
    Running balance of one product at the FG Store.

    Attributes:
        product_id: Product key (unique)
        quantity: Accumulated quantity across claims
        unit: Unit of the balance (first claimed unit)
        location: Storage location
        version: Optimistic concurrency counter
    """

    __tablename__ = "finished_goods_inventory"

    product_id = Column(String(100), nullable=False, unique=True)
    product_name = Column(String(200), nullable=False)
    quantity = Column(Numeric(14, 3), nullable=False, default=0)
    unit = Column(String(20), nullable=True)
    location = Column(String(50), nullable=True)
    quality_grade = Column(String(1), nullable=True)
    expiry_date = Column(Date, nullable=True)
    last_batch_number = Column(String(50), nullable=True)
    last_received_at = Column(DateTime, nullable=False, default=utc_now)
    updated_by = Column(String(128), nullable=True)

    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_fg_inventory_quantity_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"FinishedGoodsInventory(product_id='{self.product_id}', "
            f"quantity={self.quantity} {self.unit})"
        )


class FGInventoryMovement(BaseModel):
    """Append-only audit row for an FG inventory change."""

    __tablename__ = "fg_inventory_movements"

    inventory_id = Column(Integer, nullable=True)
    product_id = Column(String(100), nullable=False, index=True)
    product_name = Column(String(200), nullable=True)
    movement_type = Column(String(20), nullable=False, default="in")
    quantity = Column(Numeric(14, 3), nullable=False)
    unit = Column(String(20), nullable=True)
    previous_quantity = Column(Numeric(14, 3), nullable=False, default=0)
    new_quantity = Column(Numeric(14, 3), nullable=False)

    dispatch_id = Column(Integer, nullable=True, index=True)
    release_code = Column(String(16), nullable=True)
    batch_number = Column(String(50), nullable=True)
    location = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)

    created_by = Column(String(128), nullable=True)
    created_by_name = Column(String(200), nullable=True)

    __table_args__ = (
        Index("idx_fg_movement_created_at", "created_at"),
        CheckConstraint("quantity >= 0", name="ck_fg_movement_quantity_non_negative"),
    )
