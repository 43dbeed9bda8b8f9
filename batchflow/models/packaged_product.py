"""
PackagedProduct and PackingActivity models.

A PackagedProduct is the unit-sized output of converting bulk packing stock
through a ProductVariant. PackingActivity rows are the append-only log of
packaging and export operations.
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

from .base import BaseModel
from .enums import PackagedStatus
from batchflow.utils.datetime_utils import utc_now


class PackagedProduct(BaseModel):
    """
    Units produced from a bulk stock entry.

    Attributes:
        stock_id: Source PackingAreaStock row
        variant_id / variant_name / variant_size / variant_unit: Variant snapshot
        bulk_quantity_used / bulk_unit: Bulk material consumed
        units_produced: Units still held (decremented on export)
        status: PackagedStatus value
        available_for_dispatch: False once fully exported
        version: Optimistic concurrency counter
    """

    __tablename__ = "packaged_products"

    stock_id = Column(
        Integer,
        ForeignKey("packing_area_stock.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    batch_id = Column(Integer, nullable=True)
    batch_number = Column(String(50), nullable=True)
    product_id = Column(String(100), nullable=False, index=True)
    product_name = Column(String(200), nullable=False)

    variant_id = Column(
        Integer,
        ForeignKey("product_variants.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    variant_name = Column(String(200), nullable=False)
    variant_size = Column(Numeric(12, 4), nullable=False)
    variant_unit = Column(String(20), nullable=False)

    bulk_quantity_used = Column(Numeric(12, 3), nullable=False)
    bulk_unit = Column(String(20), nullable=False)
    units_produced = Column(Integer, nullable=False)
    units_exported = Column(Integer, nullable=False, default=0)

    quality_grade = Column(String(1), nullable=True)
    expiry_date = Column(Date, nullable=True)
    location = Column(String(50), nullable=True)
    packaging_date = Column(DateTime, nullable=False, default=utc_now)
    notes = Column(Text, nullable=True)

    status = Column(String(30), nullable=False, default=PackagedStatus.PACKAGED.value)
    available_for_dispatch = Column(Boolean, nullable=False, default=True)
    last_exported_at = Column(DateTime, nullable=True)

    packaged_by = Column(String(128), nullable=True)
    packaged_by_name = Column(String(200), nullable=True)

    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("idx_packaged_product_status", "status"),
        CheckConstraint(
            "units_produced >= 0", name="ck_packaged_product_units_non_negative"
        ),
        CheckConstraint(
            "bulk_quantity_used > 0", name="ck_packaged_product_bulk_used_positive"
        ),
        CheckConstraint(
            "status IN ('packaged', 'partially_exported', 'fully_exported')",
            name="ck_packaged_product_status_valid",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"PackagedProduct(id={self.id}, variant='{self.variant_name}', "
            f"units={self.units_produced}, status='{self.status}')"
        )


class PackingActivity(BaseModel):
    """
    Append-only log of a packaging or export operation.

    Attributes:
        activity_type: ActivityType value
        packaged_product_id: Packaged product created or exported
        units: Units produced or exported
        efficiency: units produced as a percentage of the theoretical yield
        reference: Release code for exports
    """

    __tablename__ = "packing_activities"

    activity_type = Column(String(20), nullable=False)
    stock_id = Column(Integer, nullable=True)
    packaged_product_id = Column(Integer, nullable=True, index=True)
    dispatch_id = Column(Integer, nullable=True)
    product_id = Column(String(100), nullable=True, index=True)
    product_name = Column(String(200), nullable=True)
    variant_id = Column(Integer, nullable=True)
    variant_name = Column(String(200), nullable=True)

    bulk_quantity_used = Column(Numeric(12, 3), nullable=True)
    bulk_unit = Column(String(20), nullable=True)
    units = Column(Integer, nullable=False, default=0)
    expected_units = Column(Integer, nullable=True)
    efficiency = Column(Numeric(7, 2), nullable=True)
    reference = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)

    performed_by = Column(String(128), nullable=True)
    performed_by_name = Column(String(200), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "activity_type IN ('packaging', 'export')",
            name="ck_packing_activity_type_valid",
        ),
    )
