"""
ProductVariant model: a packaging SKU for a product.

The variant's size and unit are the conversion rate used when bulk stock
is packaged into units.
"""

from sqlalchemy import Column, String, Text, Numeric, CheckConstraint, Index

from .base import BaseModel
from .enums import VariantStatus


class ProductVariant(BaseModel):
    """
    Packaging variant of a product (e.g. "Shampoo 500 ml bottle").

    Attributes:
        product_id / product_name: Parent product
        name: Variant display name
        size: Amount of product per packaged unit (> 0)
        unit: Unit of size
        packaging_type: Bottle, pouch, jar, ...
        sku: Optional stock keeping unit code
        status: "active" or "inactive" (soft delete)
    """

    __tablename__ = "product_variants"

    product_id = Column(String(100), nullable=False, index=True)
    product_name = Column(String(200), nullable=True)
    name = Column(String(200), nullable=False)
    size = Column(Numeric(12, 4), nullable=False)
    unit = Column(String(20), nullable=False)
    packaging_type = Column(String(50), nullable=True)
    sku = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=VariantStatus.ACTIVE.value)
    created_by = Column(String(128), nullable=True)
    updated_by = Column(String(128), nullable=True)

    __table_args__ = (
        Index("idx_product_variant_status", "status"),
        CheckConstraint("size > 0", name="ck_product_variant_size_positive"),
    )

    @property
    def display_size(self) -> str:
        """Size with unit, trailing zeros stripped (e.g. "0.5 kg")."""
        size = self.size.normalize() if self.size is not None else self.size
        return f"{size} {self.unit}"
