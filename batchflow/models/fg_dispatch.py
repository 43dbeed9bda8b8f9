"""
FGDispatch and FGDispatchItem models.

A dispatch (release) bundles packing stock or packaged products sent to
the Finished Goods Store. It is identified by a release code and is
claimed exactly once by the FG Store.
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
)
from sqlalchemy.orm import relationship

from .base import BaseModel
from .enums import DispatchStatus, DispatchType
from batchflow.utils.datetime_utils import utc_now


class FGDispatch(BaseModel):
    """
    A release from Packing to the FG Store.

    Attributes:
        release_code: YYMMDDHHMM + 6 base-36 characters (unique)
        dispatch_type: "bulk" (stock lines) or "packaged_units" (unit lines)
        total_quantity: Sum of bulk line quantities
        total_units / total_variants: Unit dispatch totals
        status: "dispatched" until claimed, then "claimed"
        claimed_by_fg: Flips false -> true exactly once
        version: Optimistic concurrency counter
    """

    __tablename__ = "fg_dispatches"

    release_code = Column(String(16), nullable=False, unique=True, index=True)
    dispatch_type = Column(String(20), nullable=False, default=DispatchType.BULK.value)
    destination = Column(String(100), nullable=True)

    total_quantity = Column(Numeric(12, 3), nullable=False, default=0)
    total_units = Column(Integer, nullable=False, default=0)
    total_items = Column(Integer, nullable=False, default=0)
    total_variants = Column(Integer, nullable=False, default=0)

    dispatch_date = Column(DateTime, nullable=False, default=utc_now)
    dispatched_by = Column(String(128), nullable=True)
    dispatched_by_name = Column(String(200), nullable=True)
    notes = Column(Text, nullable=True)

    status = Column(String(20), nullable=False, default=DispatchStatus.DISPATCHED.value)
    claimed_by_fg = Column(Boolean, nullable=False, default=False)
    claimed_at = Column(DateTime, nullable=True)
    claimed_by = Column(String(128), nullable=True)
    claimed_by_name = Column(String(200), nullable=True)
    claim_notes = Column(Text, nullable=True)
    storage_location = Column(String(50), nullable=True)

    version = Column(Integer, nullable=False)

    items = relationship(
        "FGDispatchItem",
        back_populates="dispatch",
        cascade="all, delete-orphan",
        order_by="FGDispatchItem.id",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("idx_fg_dispatch_status", "status"),
        CheckConstraint(
            "dispatch_type IN ('bulk', 'packaged_units')",
            name="ck_fg_dispatch_type_valid",
        ),
        CheckConstraint(
            "status IN ('dispatched', 'claimed')", name="ck_fg_dispatch_status_valid"
        ),
    )

    def to_dict(self, include_relationships: bool = False):
        result = super().to_dict(include_relationships)
        if not include_relationships:
            result["items"] = [item.to_dict() for item in self.items]
        return result

    def __repr__(self) -> str:
        return (
            f"FGDispatch(id={self.id}, release_code='{self.release_code}', "
            f"type='{self.dispatch_type}', claimed={self.claimed_by_fg})"
        )


class FGDispatchItem(BaseModel):
    """
    One line of a dispatch.

    Exactly one of stock_id (bulk line) or packaged_product_id (unit line)
    is set, enforced by CHECK constraint. Product, batch, grade and expiry
    are snapshotted at dispatch time.
    """

    __tablename__ = "fg_dispatch_items"

    dispatch_id = Column(
        Integer,
        ForeignKey("fg_dispatches.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    stock_id = Column(
        Integer,
        ForeignKey("packing_area_stock.id", ondelete="RESTRICT"),
        nullable=True,
    )
    packaged_product_id = Column(
        Integer,
        ForeignKey("packaged_products.id", ondelete="RESTRICT"),
        nullable=True,
    )

    batch_id = Column(Integer, nullable=True)
    batch_number = Column(String(50), nullable=True)
    product_id = Column(String(100), nullable=False)
    product_name = Column(String(200), nullable=False)
    variant_id = Column(Integer, nullable=True)
    variant_name = Column(String(200), nullable=True)

    quantity = Column(Numeric(12, 3), nullable=False)
    unit = Column(String(20), nullable=False)
    quality_grade = Column(String(1), nullable=True)
    expiry_date = Column(Date, nullable=True)
    location = Column(String(50), nullable=True)

    dispatch = relationship("FGDispatch", back_populates="items")

    __table_args__ = (
        CheckConstraint(
            "(stock_id IS NOT NULL AND packaged_product_id IS NULL) OR "
            "(stock_id IS NULL AND packaged_product_id IS NOT NULL)",
            name="ck_fg_dispatch_item_source_xor",
        ),
        CheckConstraint("quantity > 0", name="ck_fg_dispatch_item_quantity_positive"),
    )
