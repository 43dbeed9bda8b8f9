"""
Packing Area stock ledger models.

PackingAreaStock rows are discrete receipts of bulk material. Every change
to a row's quantity, status or location appends a StockMovement.
PackingAreaLocation is the master list of storage codes.
"""

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    Date,
    ForeignKey,
    Index,
    Numeric,
    CheckConstraint,
)
from sqlalchemy.orm import relationship

from .base import BaseModel
from .enums import LocationStatus, StockStatus
from batchflow.utils.datetime_utils import utc_now


class PackingAreaStock(BaseModel):
    """
    A quantity of bulk material held in the Packing Area.

    Attributes:
        batch_id / batch_number: Production batch the material came from
        handover_id: Handover that created the row (None for manual receipts)
        product_id / product_name: Material
        quantity: Remaining quantity (never negative)
        unit: Unit of quantity
        quality_grade: A-D
        expiry_date: Optional expiry date
        location: Free-text location code
        status: StockStatus value
        version: Optimistic concurrency counter
    """

    __tablename__ = "packing_area_stock"

    batch_id = Column(Integer, nullable=True, index=True)
    batch_number = Column(String(50), nullable=True)
    handover_id = Column(Integer, nullable=True)
    product_id = Column(String(100), nullable=False, index=True)
    product_name = Column(String(200), nullable=False)

    quantity = Column(Numeric(12, 3), nullable=False)
    unit = Column(String(20), nullable=False)
    quality_grade = Column(String(1), nullable=True)
    expiry_date = Column(Date, nullable=True)
    location = Column(String(50), nullable=True)
    status = Column(String(20), nullable=False, default=StockStatus.AVAILABLE.value)

    received_from = Column(String(50), nullable=True)
    received_at = Column(DateTime, nullable=False, default=utc_now)
    received_by = Column(String(128), nullable=True)
    received_by_name = Column(String(200), nullable=True)
    storage_instructions = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    last_issued_at = Column(DateTime, nullable=True)
    status_updated_at = Column(DateTime, nullable=True)
    location_updated_at = Column(DateTime, nullable=True)
    updated_by = Column(String(128), nullable=True)

    version = Column(Integer, nullable=False)

    movements = relationship(
        "StockMovement", back_populates="stock", order_by="StockMovement.id"
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("idx_packing_stock_status", "status"),
        Index("idx_packing_stock_location", "location"),
        CheckConstraint("quantity >= 0", name="ck_packing_stock_quantity_non_negative"),
        CheckConstraint(
            "status IN ('available', 'in_use', 'depleted', 'on_hold', 'expired')",
            name="ck_packing_stock_status_valid",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"PackingAreaStock(id={self.id}, product_id='{self.product_id}', "
            f"quantity={self.quantity}, status='{self.status}')"
        )


class StockMovement(BaseModel):
    """
    Append-only audit row for a packing stock change.

    Attributes:
        stock_id: Affected stock row
        movement_type: MovementType value
        quantity: Quantity moved (0 for status/location changes)
        from_location / to_location: Set for location changes
        reference: Free-text reference (dispatch release code, activity id)
    """

    __tablename__ = "packing_area_stock_movements"

    stock_id = Column(
        Integer,
        ForeignKey("packing_area_stock.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )
    batch_id = Column(Integer, nullable=True, index=True)
    product_id = Column(String(100), nullable=True, index=True)
    product_name = Column(String(200), nullable=True)

    movement_type = Column(String(20), nullable=False)
    quantity = Column(Numeric(12, 3), nullable=False, default=0)
    unit = Column(String(20), nullable=True)

    from_location = Column(String(50), nullable=True)
    to_location = Column(String(50), nullable=True)
    issued_to = Column(String(100), nullable=True)
    packing_line = Column(String(100), nullable=True)
    previous_status = Column(String(20), nullable=True)
    new_status = Column(String(20), nullable=True)
    reason = Column(Text, nullable=True)
    reference = Column(String(100), nullable=True)

    created_by = Column(String(128), nullable=True)
    created_by_name = Column(String(200), nullable=True)

    stock = relationship("PackingAreaStock", back_populates="movements")

    __table_args__ = (
        CheckConstraint(
            "movement_type IN ('in', 'out', 'location_change', 'status_change')",
            name="ck_stock_movement_type_valid",
        ),
        CheckConstraint("quantity >= 0", name="ck_stock_movement_quantity_non_negative"),
        Index("idx_stock_movement_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"StockMovement(id={self.id}, stock_id={self.stock_id}, "
            f"type='{self.movement_type}', quantity={self.quantity})"
        )


class PackingAreaLocation(BaseModel):
    """Storage location master data for the Packing Area."""

    __tablename__ = "packing_area_locations"

    code = Column(String(50), nullable=False, unique=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    capacity = Column(Numeric(12, 3), nullable=True)
    status = Column(String(20), nullable=False, default=LocationStatus.ACTIVE.value)
    created_by = Column(String(128), nullable=True)
    updated_by = Column(String(128), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "capacity IS NULL OR capacity >= 0",
            name="ck_packing_location_capacity_non_negative",
        ),
    )
