"""
Constants for the batchflow application.

This module defines system-wide constants including:
- Application metadata
- Role names used for notification fan-out
- Default storage locations per area
- Expiry alert thresholds
- Stage progress percentages
"""

from typing import Dict, List

# ============================================================================
# Application Metadata
# ============================================================================

APP_NAME = "batchflow"
APP_VERSION = "0.1.0"
DATABASE_FILENAME = "batchflow.db"
DATABASE_VERSION = "1.0"

# ============================================================================
# Roles
# ============================================================================

ROLE_PRODUCTION_MANAGER = "ProductionManager"
ROLE_PACKING_AREA_MANAGER = "PackingAreaManager"
ROLE_FG_STORE_MANAGER = "FinishedGoodsStoreManager"
ROLE_HEAD_OF_OPERATIONS = "HeadOfOperations"
ROLE_WAREHOUSE_STAFF = "WarehouseStaff"

ALL_ROLES: List[str] = [
    ROLE_PRODUCTION_MANAGER,
    ROLE_PACKING_AREA_MANAGER,
    ROLE_FG_STORE_MANAGER,
    ROLE_HEAD_OF_OPERATIONS,
    ROLE_WAREHOUSE_STAFF,
]

# Display names stamped when the acting principal has neither name nor email
DEFAULT_ACTOR_LABELS: Dict[str, str] = {
    "production": "Production Manager",
    "qc": "QC Officer",
    "packing": "Packing Area Manager",
    "fg_store": "FG Store Manager",
}

# ============================================================================
# Locations
# ============================================================================

DEFAULT_PACKING_LOCATION = "PACK-A1"
DEFAULT_PACKAGED_LOCATION = "PACK-FINISHED"
DEFAULT_FG_LOCATION = "FG-A1"

DEFAULT_DISPATCH_DESTINATION = "finished_goods_store"

# ============================================================================
# Quantities
# ============================================================================

# Scale of the Numeric quantity columns; finer inputs are rejected
QUANTITY_DECIMAL_PLACES = 3
VARIANT_SIZE_DECIMAL_PLACES = 4

# ============================================================================
# Production
# ============================================================================

BATCH_NUMBER_PREFIX = "BATCH"
DEFAULT_PRODUCT_CODE = "PROD"
DEFAULT_BATCH_PRIORITY = "normal"

# Progress percentage reached when a stage is recorded
STAGE_PROGRESS: Dict[str, int] = {
    "preparation": 10,
    "mixing": 30,
    "heating": 60,
    "cooling": 90,
    "final_qc": 100,
    "completed": 100,
}

# ============================================================================
# Expiry Alerts
# ============================================================================

EXPIRY_CRITICAL_DAYS = 7
EXPIRY_WARNING_DAYS = 14
EXPIRY_CAUTION_DAYS = 30
DEFAULT_EXPIRY_LOOKAHEAD_DAYS = 30

# ============================================================================
# Dispatch
# ============================================================================

RELEASE_CODE_RANDOM_LENGTH = 6
RELEASE_CODE_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
RELEASE_CODE_MAX_ATTEMPTS = 5

# ============================================================================
# Notifications
# ============================================================================

DEFAULT_NOTIFY_MAX_ATTEMPTS = 5
