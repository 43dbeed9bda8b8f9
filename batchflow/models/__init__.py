"""
Database models package.

This package contains all SQLAlchemy ORM models for the application.
"""

from .base import Base, BaseModel
from .user import User
from .production_batch import ProductionBatch, ProductionQCRecord
from .batch_handover import BatchHandover
from .packing_area_stock import PackingAreaStock, StockMovement, PackingAreaLocation
from .product_variant import ProductVariant
from .packaged_product import PackagedProduct, PackingActivity
from .fg_dispatch import FGDispatch, FGDispatchItem
from .finished_goods_inventory import FinishedGoodsInventory, FGInventoryMovement
from .notification import NotificationOutbox, Notification
from .enums import (
    ActivityType,
    BatchStage,
    BatchStatus,
    DispatchStatus,
    DispatchType,
    ExpiryAlertLevel,
    HandoverStatus,
    LocationStatus,
    MovementType,
    NotificationStatus,
    OutboxStatus,
    PackagedStatus,
    QualityGrade,
    StockStatus,
    VariantStatus,
)

__all__ = [
    "Base",
    "BaseModel",
    # Production
    "User",
    "ProductionBatch",
    "ProductionQCRecord",
    "BatchHandover",
    # Packing Area
    "PackingAreaStock",
    "StockMovement",
    "PackingAreaLocation",
    "ProductVariant",
    "PackagedProduct",
    "PackingActivity",
    # Finished Goods
    "FGDispatch",
    "FGDispatchItem",
    "FinishedGoodsInventory",
    "FGInventoryMovement",
    # Notifications
    "NotificationOutbox",
    "Notification",
    # Enums
    "ActivityType",
    "BatchStage",
    "BatchStatus",
    "DispatchStatus",
    "DispatchType",
    "ExpiryAlertLevel",
    "HandoverStatus",
    "LocationStatus",
    "MovementType",
    "NotificationStatus",
    "OutboxStatus",
    "PackagedStatus",
    "QualityGrade",
    "StockStatus",
    "VariantStatus",
]
