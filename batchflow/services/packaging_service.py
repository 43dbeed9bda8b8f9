"""
Packaging Service: converting bulk packing stock into packaged units.

package_bulk_product() draws bulk material from a packing stock entry,
creates a PackagedProduct for the chosen variant, records the stock "out"
movement and logs a packaging PackingActivity with the line's efficiency,
all in one transaction.

All functions accept an optional `session` parameter. If provided, the function
uses the caller's session (for transaction atomicity). If None, the function
creates its own session via session_scope().
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..models import PackagedProduct, PackingActivity
from ..models.enums import ActivityType, PackagedStatus
from ..utils.constants import (
    DEFAULT_ACTOR_LABELS,
    DEFAULT_PACKAGED_LOCATION,
    QUANTITY_DECIMAL_PLACES,
)
from ..utils.datetime_utils import utc_now
from ..utils.validators import parse_decimal, sanitize_string, validate_positive_number
from . import document_store as store
from .database import session_scope
from .exceptions import DatabaseError, PackagedProductNotFound, ValidationError
from .identity import principal_id, principal_label
from .logging_utils import get_service_logger, log_operation
from .packing_stock_service import load_stock, withdraw_stock
from .product_variant_service import find_variant_for_product
from .unit_conversion import calculate_pack_ratio, calculate_units_from_bulk

logger = get_service_logger(__name__)


def calculate_efficiency(units_produced: int, pack_ratio) -> Optional[Decimal]:
    """
    Units produced as a percentage of bulk used / variant size (2 decimals).

    pack_ratio is the unfloored ratio from calculate_pack_ratio(), so 2 jars
    from 1.2 kg of 0.5 kg jars scores 83.33. Informational only; may exceed
    100. None when the ratio is zero.
    """
    if not pack_ratio:
        return None
    ratio = Decimal(units_produced) / Decimal(pack_ratio) * 100
    return ratio.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def package_bulk_product(packaging_data: Dict[str, Any], *, principal, session=None) -> Dict[str, Any]:
    """
    Package bulk stock into variant units.

    Args:
        packaging_data: Dict with
            stock_id: Source packing stock entry
            variant_id: ProductVariant to pack into
            bulk_quantity_used: Bulk amount consumed (> 0, in the stock's unit)
            units_produced: Optional; defaults to the whole units the bulk
                amount yields for the variant size
            location: Optional (default PACK-FINISHED)
            notes: Optional
        principal: Acting user
        session: Optional SQLAlchemy session

    Returns:
        Dict of the created packaged product

    Raises:
        StockNotFound / VariantNotFound: If a reference does not resolve
        InsufficientStock: If the stock holds less than bulk_quantity_used
        IncompatibleUnitsError: If the stock and variant units do not convert
        ValidationError: If a quantity is invalid
    """
    errors = []
    for field in ("stock_id", "variant_id"):
        if packaging_data.get(field) is None:
            errors.append(f"{field}: This field is required")
    ok, message = validate_positive_number(
        packaging_data.get("bulk_quantity_used"), "bulk_quantity_used", QUANTITY_DECIMAL_PLACES
    )
    if not ok:
        errors.append(message)
    units = packaging_data.get("units_produced")
    if units is not None and (isinstance(units, bool) or not isinstance(units, int) or units < 0):
        errors.append("units_produced: Must be a whole number >= 0")
    if errors:
        raise ValidationError(errors)

    try:
        if session is not None:
            return _package_impl(packaging_data, principal, session)
        with session_scope() as session:
            return _package_impl(packaging_data, principal, session)
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to package bulk product", e)


def _package_impl(packaging_data, principal, session) -> Dict[str, Any]:
    stock = load_stock(session, packaging_data["stock_id"], for_update=True)
    variant = find_variant_for_product(stock.product_id, packaging_data["variant_id"], session)
    bulk_used = parse_decimal(packaging_data["bulk_quantity_used"])

    expected_units = calculate_units_from_bulk(bulk_used, stock.unit, variant.size, variant.unit)
    units_produced = packaging_data.get("units_produced")
    if units_produced is None:
        units_produced = expected_units
    if units_produced <= 0:
        raise ValidationError(
            [
                f"bulk_quantity_used: {bulk_used} {stock.unit} yields no whole "
                f"{variant.display_size} units"
            ]
        )

    label = principal_label(principal, DEFAULT_ACTOR_LABELS["packing"])
    now = utc_now()

    packaged = PackagedProduct(
        stock_id=stock.id,
        batch_id=stock.batch_id,
        batch_number=stock.batch_number,
        product_id=stock.product_id,
        product_name=stock.product_name,
        variant_id=variant.id,
        variant_name=variant.name,
        variant_size=variant.size,
        variant_unit=variant.unit,
        bulk_quantity_used=bulk_used,
        bulk_unit=stock.unit,
        units_produced=units_produced,
        units_exported=0,
        quality_grade=stock.quality_grade,
        expiry_date=stock.expiry_date,
        location=packaging_data.get("location") or DEFAULT_PACKAGED_LOCATION,
        packaging_date=now,
        notes=sanitize_string(packaging_data.get("notes")),
        status=PackagedStatus.PACKAGED.value,
        available_for_dispatch=True,
        packaged_by=principal_id(principal),
        packaged_by_name=label,
    )

    # Draw the bulk first so a shortage leaves nothing behind
    withdraw_stock(
        session,
        stock,
        bulk_used,
        principal=principal,
        operation="package_bulk_product",
        from_location=stock.location,
        issued_to="Packaging",
        reason=f"Packaged into {units_produced} x {variant.name}",
    )
    store.add_record(session, packaged)

    pack_ratio = calculate_pack_ratio(bulk_used, stock.unit, variant.size, variant.unit)
    efficiency = calculate_efficiency(units_produced, pack_ratio)
    store.add_record(
        session,
        PackingActivity(
            activity_type=ActivityType.PACKAGING.value,
            stock_id=stock.id,
            packaged_product_id=packaged.id,
            product_id=stock.product_id,
            product_name=stock.product_name,
            variant_id=variant.id,
            variant_name=variant.name,
            bulk_quantity_used=bulk_used,
            bulk_unit=stock.unit,
            units=units_produced,
            expected_units=expected_units,
            efficiency=efficiency,
            notes=packaged.notes,
            performed_by=principal_id(principal),
            performed_by_name=label,
        ),
    )

    log_operation(
        logger,
        "package_bulk_product",
        "success",
        packaged_product_id=packaged.id,
        stock_id=stock.id,
        variant_id=variant.id,
        units_produced=units_produced,
        efficiency=str(efficiency),
    )
    return packaged.to_dict()


def load_packaged_product(session, packaged_product_id, for_update: bool = False) -> PackagedProduct:
    """Load a packaged product or raise PackagedProductNotFound."""
    packaged = store.get_document(
        session, "packagedProducts", packaged_product_id, for_update=for_update
    )
    if packaged is None:
        raise PackagedProductNotFound(packaged_product_id)
    return packaged


def get_packaged_products(
    status: Optional[str] = None,
    product_id: Optional[str] = None,
    variant_id: Optional[int] = None,
    available_only: bool = False,
    session=None,
) -> List[Dict[str, Any]]:
    """Packaged products matching the filters, newest first."""
    if session is not None:
        return _get_packaged_products_impl(status, product_id, variant_id, available_only, session)
    with session_scope() as session:
        return _get_packaged_products_impl(status, product_id, variant_id, available_only, session)


def _get_packaged_products_impl(status, product_id, variant_id, available_only, session):
    rows = store.list_documents(
        session,
        "packagedProducts",
        order_by=PackagedProduct.id.desc(),
        status=status,
        product_id=product_id,
        variant_id=variant_id,
        available_for_dispatch=True if available_only else None,
    )
    return [row.to_dict() for row in rows]


def get_packaging_activities(
    activity_type: Optional[str] = None, product_id: Optional[str] = None, session=None
) -> List[Dict[str, Any]]:
    """Packing activities (packaging and export), newest first."""
    if session is not None:
        return _get_activities_impl(activity_type, product_id, session)
    with session_scope() as session:
        return _get_activities_impl(activity_type, product_id, session)


def _get_activities_impl(activity_type, product_id, session) -> List[Dict[str, Any]]:
    rows = store.list_documents(
        session,
        "packingActivities",
        order_by=PackingActivity.id.desc(),
        activity_type=activity_type,
        product_id=product_id,
    )
    return [row.to_dict() for row in rows]
