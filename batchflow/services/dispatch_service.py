"""
Dispatch Service: releases from Packing to the Finished Goods Store.

This module provides functions for:
- Generating release codes
- Bulk dispatches of packing stock (create_fg_dispatch)
- Unit dispatches of packaged products (export_to_fg_store)
- Claiming a dispatch into the FG Store inventory, exactly once
- FG Store inventory reads and dashboard figures

Each operation runs in one transaction: source quantities, the dispatch
and its lines, audit rows and the notification outbox entry commit
together or not at all.

All functions accept an optional `session` parameter. If provided, the function
uses the caller's session (for transaction atomicity). If None, the function
creates its own session via session_scope().
"""

import logging
import secrets
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..models import (
    FGDispatch,
    FGDispatchItem,
    FGInventoryMovement,
    FinishedGoodsInventory,
    PackingActivity,
)
from ..models.enums import (
    ActivityType,
    DispatchStatus,
    DispatchType,
    PackagedStatus,
)
from ..utils.constants import (
    DEFAULT_ACTOR_LABELS,
    DEFAULT_DISPATCH_DESTINATION,
    DEFAULT_EXPIRY_LOOKAHEAD_DAYS,
    DEFAULT_FG_LOCATION,
    QUANTITY_DECIMAL_PLACES,
    RELEASE_CODE_ALPHABET,
    RELEASE_CODE_MAX_ATTEMPTS,
    RELEASE_CODE_RANDOM_LENGTH,
    ROLE_FG_STORE_MANAGER,
)
from ..utils.datetime_utils import as_date, days_until, local_now, utc_now
from ..utils.validators import (
    parse_decimal,
    sanitize_string,
    validate_positive_number,
    validate_required_string,
)
from . import document_store as store
from . import notification_service
from .database import session_scope
from .exceptions import (
    AlreadyClaimed,
    DatabaseError,
    DispatchNotFound,
    InsufficientStock,
    ServiceError,
    ValidationError,
)
from .identity import principal_id, principal_label
from .logging_utils import get_service_logger, log_operation
from .packaging_service import load_packaged_product
from .packing_stock_service import load_stock, withdraw_stock

logger = get_service_logger(__name__)

UNIT_DISPATCH_UNIT = "units"
FG_STORE_LABEL = "Finished Goods Store"


# =============================================================================
# Release codes
# =============================================================================


def generate_release_code(now: Optional[datetime] = None) -> str:
    """
    Generate a release code: YYMMDDHHMM (local clock) + 6 random base-36 chars.

    The suffix comes from `secrets`; uniqueness against stored dispatches is
    checked separately when a dispatch is created.

    Example:
        >>> generate_release_code(datetime(2025, 3, 1, 10, 30))
        '2503011030K7Q2ZD'
    """
    if now is None:
        now = local_now()
    suffix = "".join(
        secrets.choice(RELEASE_CODE_ALPHABET) for _ in range(RELEASE_CODE_RANDOM_LENGTH)
    )
    return f"{now:%y%m%d%H%M}{suffix}"


def _unique_release_code(session) -> str:
    for attempt in range(1, RELEASE_CODE_MAX_ATTEMPTS + 1):
        code = generate_release_code()
        if not store.list_documents(session, "fgDispatches", release_code=code):
            return code
        log_operation(
            logger,
            "generate_release_code",
            "collision",
            level=logging.WARNING,
            release_code=code,
            attempt=attempt,
        )
    raise ServiceError(
        f"Could not generate a unique release code after {RELEASE_CODE_MAX_ATTEMPTS} attempts"
    )


def _load_dispatch(session, dispatch_id, for_update: bool = False) -> FGDispatch:
    dispatch = store.get_document(session, "fgDispatches", dispatch_id, for_update=for_update)
    if dispatch is None:
        raise DispatchNotFound(dispatch_id)
    return dispatch


def _require_items(items) -> None:
    if not items:
        raise ValidationError(["items: At least one item is required"])


# =============================================================================
# Bulk dispatch
# =============================================================================


def create_fg_dispatch(dispatch_data: Dict[str, Any], *, principal, session=None) -> Dict[str, Any]:
    """
    Dispatch packing stock entries to the FG Store.

    Args:
        dispatch_data: Dict with
            items: List of {"stock_id", "quantity"} (quantity in the stock's unit)
            destination: Optional (default "finished_goods_store")
            notes: Optional
        principal: Acting user
        session: Optional SQLAlchemy session

    Returns:
        Dict of the created dispatch, including its items

    Raises:
        ValidationError: If there are no items or a quantity is not positive
        StockNotFound: If an item's stock entry does not exist
        InsufficientStock: If an item exceeds the stock's available quantity
        ConcurrentModificationError: If a stock entry changed concurrently
    """
    items = dispatch_data.get("items") or []
    _require_items(items)
    errors = []
    for index, item in enumerate(items):
        if item.get("stock_id") is None:
            errors.append(f"items[{index}].stock_id: This field is required")
        ok, message = validate_positive_number(
            item.get("quantity"), f"items[{index}].quantity", QUANTITY_DECIMAL_PLACES
        )
        if not ok:
            errors.append(message)
    if errors:
        raise ValidationError(errors)

    try:
        if session is not None:
            return _create_fg_dispatch_impl(dispatch_data, items, principal, session)
        with session_scope() as session:
            return _create_fg_dispatch_impl(dispatch_data, items, principal, session)
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to create FG dispatch", e)


def _create_fg_dispatch_impl(dispatch_data, items, principal, session) -> Dict[str, Any]:
    # Validate every line against current stock before touching anything
    lines = []
    requested_by_stock: Dict[int, Decimal] = {}
    for item in items:
        stock = load_stock(session, item["stock_id"], for_update=True)
        quantity = parse_decimal(item["quantity"])
        requested = requested_by_stock.get(stock.id, Decimal("0")) + quantity
        if requested > Decimal(stock.quantity):
            log_operation(
                logger,
                "create_fg_dispatch",
                "insufficient_stock",
                level=logging.WARNING,
                stock_id=stock.id,
                requested=str(requested),
                available=str(stock.quantity),
            )
            raise InsufficientStock(stock.product_name, requested, stock.quantity)
        requested_by_stock[stock.id] = requested
        lines.append((stock, quantity))

    release_code = _unique_release_code(session)
    label = principal_label(principal, DEFAULT_ACTOR_LABELS["packing"])
    total_quantity = sum((quantity for _, quantity in lines), Decimal("0"))

    dispatch = FGDispatch(
        release_code=release_code,
        dispatch_type=DispatchType.BULK.value,
        destination=dispatch_data.get("destination") or DEFAULT_DISPATCH_DESTINATION,
        total_quantity=total_quantity,
        total_units=0,
        total_items=len(lines),
        total_variants=0,
        dispatch_date=utc_now(),
        dispatched_by=principal_id(principal),
        dispatched_by_name=label,
        notes=sanitize_string(dispatch_data.get("notes")),
        status=DispatchStatus.DISPATCHED.value,
        claimed_by_fg=False,
        items=[
            FGDispatchItem(
                stock_id=stock.id,
                batch_id=stock.batch_id,
                batch_number=stock.batch_number,
                product_id=stock.product_id,
                product_name=stock.product_name,
                quantity=quantity,
                unit=stock.unit,
                quality_grade=stock.quality_grade,
                expiry_date=stock.expiry_date,
                location=stock.location,
            )
            for stock, quantity in lines
        ],
    )
    store.add_record(session, dispatch)

    for stock, quantity in lines:
        withdraw_stock(
            session,
            stock,
            quantity,
            principal=principal,
            operation="create_fg_dispatch",
            from_location=stock.location,
            issued_to=FG_STORE_LABEL,
            reason=f"Dispatched to FG Store ({release_code})",
            reference=release_code,
        )

    notification_service.enqueue_role_notification(
        ROLE_FG_STORE_MANAGER,
        notification_service.NOTIFY_FG_DISPATCH_READY,
        f"Release {release_code} is ready to claim: {len(lines)} item(s), "
        f"total quantity {total_quantity}",
        {"dispatch_id": dispatch.id, "release_code": release_code},
        session=session,
    )

    log_operation(
        logger,
        "create_fg_dispatch",
        "success",
        dispatch_id=dispatch.id,
        release_code=release_code,
        items=len(lines),
        total_quantity=str(total_quantity),
    )
    return dispatch.to_dict()


# =============================================================================
# Packaged unit dispatch
# =============================================================================


def export_to_fg_store(export_data: Dict[str, Any], *, principal, session=None) -> Dict[str, Any]:
    """
    Dispatch packaged units to the FG Store.

    Args:
        export_data: Dict with
            items: List of {"packaged_product_id", "units_to_export"}
            destination: Optional
            notes: Optional
        principal: Acting user
        session: Optional SQLAlchemy session

    Returns:
        Dict of the created packaged_units dispatch, including its items

    Raises:
        ValidationError: If there are no items or a unit count is invalid
        PackagedProductNotFound: If an item does not resolve
        InsufficientStock: If units_to_export exceeds the units held
        ConcurrentModificationError: If a packaged product changed concurrently
    """
    items = export_data.get("items") or []
    _require_items(items)
    errors = []
    for index, item in enumerate(items):
        if item.get("packaged_product_id") is None:
            errors.append(f"items[{index}].packaged_product_id: This field is required")
        units = item.get("units_to_export")
        if isinstance(units, bool) or not isinstance(units, int) or units <= 0:
            errors.append(f"items[{index}].units_to_export: Must be a whole number > 0")
    if errors:
        raise ValidationError(errors)

    try:
        if session is not None:
            return _export_impl(export_data, items, principal, session)
        with session_scope() as session:
            return _export_impl(export_data, items, principal, session)
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to export to FG store", e)


def _export_impl(export_data, items, principal, session) -> Dict[str, Any]:
    lines = []
    requested_by_product: Dict[int, int] = {}
    for item in items:
        packaged = load_packaged_product(session, item["packaged_product_id"], for_update=True)
        units = item["units_to_export"]
        requested = requested_by_product.get(packaged.id, 0) + units
        if requested > packaged.units_produced:
            log_operation(
                logger,
                "export_to_fg_store",
                "insufficient_units",
                level=logging.WARNING,
                packaged_product_id=packaged.id,
                requested=requested,
                available=packaged.units_produced,
            )
            raise InsufficientStock(
                f"{packaged.product_name} ({packaged.variant_name})",
                requested,
                packaged.units_produced,
            )
        requested_by_product[packaged.id] = requested
        lines.append((packaged, units))

    release_code = _unique_release_code(session)
    label = principal_label(principal, DEFAULT_ACTOR_LABELS["packing"])
    now = utc_now()
    total_units = sum(units for _, units in lines)

    dispatch = FGDispatch(
        release_code=release_code,
        dispatch_type=DispatchType.PACKAGED_UNITS.value,
        destination=export_data.get("destination") or DEFAULT_DISPATCH_DESTINATION,
        total_quantity=Decimal(total_units),
        total_units=total_units,
        total_items=len(lines),
        total_variants=len({packaged.variant_id for packaged, _ in lines}),
        dispatch_date=now,
        dispatched_by=principal_id(principal),
        dispatched_by_name=label,
        notes=sanitize_string(export_data.get("notes")),
        status=DispatchStatus.DISPATCHED.value,
        claimed_by_fg=False,
        items=[
            FGDispatchItem(
                packaged_product_id=packaged.id,
                batch_id=packaged.batch_id,
                batch_number=packaged.batch_number,
                product_id=packaged.product_id,
                product_name=packaged.product_name,
                variant_id=packaged.variant_id,
                variant_name=packaged.variant_name,
                quantity=Decimal(units),
                unit=UNIT_DISPATCH_UNIT,
                quality_grade=packaged.quality_grade,
                expiry_date=packaged.expiry_date,
                location=packaged.location,
            )
            for packaged, units in lines
        ],
    )
    store.add_record(session, dispatch)

    for packaged, units in lines:
        packaged.units_produced = packaged.units_produced - units
        packaged.units_exported = (packaged.units_exported or 0) + units
        if packaged.units_produced == 0:
            packaged.status = PackagedStatus.FULLY_EXPORTED.value
            packaged.available_for_dispatch = False
        else:
            packaged.status = PackagedStatus.PARTIALLY_EXPORTED.value
            packaged.available_for_dispatch = True
        packaged.last_exported_at = now
        store.flush_changes(session, "PackagedProduct")

        store.add_record(
            session,
            PackingActivity(
                activity_type=ActivityType.EXPORT.value,
                packaged_product_id=packaged.id,
                dispatch_id=dispatch.id,
                product_id=packaged.product_id,
                product_name=packaged.product_name,
                variant_id=packaged.variant_id,
                variant_name=packaged.variant_name,
                units=units,
                reference=release_code,
                notes=f"Exported to FG Store ({release_code})",
                performed_by=principal_id(principal),
                performed_by_name=label,
            ),
        )

    notification_service.enqueue_role_notification(
        ROLE_FG_STORE_MANAGER,
        notification_service.NOTIFY_FG_UNIT_DISPATCH,
        f"Release {release_code} is ready to claim: {total_units} unit(s) "
        f"across {dispatch.total_variants} variant(s)",
        {"dispatch_id": dispatch.id, "release_code": release_code},
        session=session,
    )

    log_operation(
        logger,
        "export_to_fg_store",
        "success",
        dispatch_id=dispatch.id,
        release_code=release_code,
        total_units=total_units,
    )
    return dispatch.to_dict()


# =============================================================================
# Reads
# =============================================================================


def get_fg_dispatches(
    dispatch_type: Optional[str] = None,
    status: Optional[str] = None,
    claimed_by_fg: Optional[bool] = None,
    session=None,
) -> List[Dict[str, Any]]:
    """Dispatches matching the filters, newest first."""
    if session is not None:
        return _get_fg_dispatches_impl(dispatch_type, status, claimed_by_fg, session)
    with session_scope() as session:
        return _get_fg_dispatches_impl(dispatch_type, status, claimed_by_fg, session)


def _get_fg_dispatches_impl(dispatch_type, status, claimed_by_fg, session) -> List[Dict[str, Any]]:
    dispatches = store.list_documents(
        session,
        "fgDispatches",
        order_by=FGDispatch.id.desc(),
        dispatch_type=dispatch_type,
        status=status,
        claimed_by_fg=claimed_by_fg,
    )
    return [dispatch.to_dict() for dispatch in dispatches]


def get_pending_fg_dispatches(session=None) -> List[Dict[str, Any]]:
    """Dispatches awaiting a claim by the FG Store."""
    return get_fg_dispatches(claimed_by_fg=False, session=session)


def get_claimed_fg_dispatches(session=None) -> List[Dict[str, Any]]:
    """Dispatches already claimed by the FG Store."""
    return get_fg_dispatches(claimed_by_fg=True, session=session)


def get_dispatch(dispatch_id: int, session=None) -> Dict[str, Any]:
    """
    Get a dispatch with its items.

    Raises:
        DispatchNotFound: If the dispatch does not exist
    """
    if session is not None:
        return _load_dispatch(session, dispatch_id).to_dict()
    with session_scope() as session:
        return _load_dispatch(session, dispatch_id).to_dict()


# =============================================================================
# Claim and FG inventory
# =============================================================================


def claim_fg_dispatch(
    dispatch_id: int, claim_data: Optional[Dict[str, Any]] = None, *, principal, session=None
) -> Dict[str, Any]:
    """
    Claim a dispatch into the FG Store inventory.

    Flips claimed_by_fg exactly once and adds every line to the per-product
    running balance. Bulk lines add their quantity; unit lines add units.

    Args:
        dispatch_id: Dispatch to claim
        claim_data: Optional dict with storage_location (default FG-A1) and notes
        principal: Acting user
        session: Optional SQLAlchemy session

    Returns:
        Dict of the claimed dispatch

    Raises:
        DispatchNotFound: If the dispatch does not exist
        AlreadyClaimed: If the dispatch was already claimed
        ConcurrentModificationError: If the dispatch was claimed concurrently
    """
    claim_data = claim_data or {}
    try:
        if session is not None:
            return _claim_impl(dispatch_id, claim_data, principal, session)
        with session_scope() as session:
            return _claim_impl(dispatch_id, claim_data, principal, session)
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to claim FG dispatch", e)


def _claim_impl(dispatch_id, claim_data, principal, session) -> Dict[str, Any]:
    dispatch = _load_dispatch(session, dispatch_id, for_update=True)
    if dispatch.claimed_by_fg:
        log_operation(
            logger,
            "claim_fg_dispatch",
            "already_claimed",
            level=logging.WARNING,
            dispatch_id=dispatch.id,
            release_code=dispatch.release_code,
        )
        raise AlreadyClaimed(dispatch.id, dispatch.release_code)

    location = claim_data.get("storage_location") or DEFAULT_FG_LOCATION
    notes = sanitize_string(claim_data.get("notes"))

    # Flip the flag first: the version check makes a concurrent claim fail here
    dispatch.claimed_by_fg = True
    dispatch.status = DispatchStatus.CLAIMED.value
    dispatch.claimed_at = utc_now()
    dispatch.claimed_by = principal_id(principal)
    dispatch.claimed_by_name = principal_label(principal, DEFAULT_ACTOR_LABELS["fg_store"])
    dispatch.claim_notes = notes
    dispatch.storage_location = location
    store.flush_changes(session, "FGDispatch")

    for item in dispatch.items:
        _add_to_fg_inventory_impl(
            {
                "product_id": item.product_id,
                "product_name": item.product_name,
                "quantity": item.quantity,
                "unit": item.unit,
                "location": location,
                "quality_grade": item.quality_grade,
                "expiry_date": item.expiry_date,
                "batch_number": item.batch_number,
                "dispatch_id": dispatch.id,
                "release_code": dispatch.release_code,
                "notes": notes,
            },
            principal,
            session,
        )

    log_operation(
        logger,
        "claim_fg_dispatch",
        "success",
        dispatch_id=dispatch.id,
        release_code=dispatch.release_code,
        items=len(dispatch.items),
    )
    return dispatch.to_dict()


def add_to_fg_inventory(inventory_data: Dict[str, Any], *, principal, session=None) -> Dict[str, Any]:
    """
    Add a quantity to a product's FG Store running balance.

    Increments the existing balance for product_id or creates it, and
    appends an "in" FGInventoryMovement.

    Args:
        inventory_data: Dict with product_id, product_name, quantity (> 0),
            unit and optional location, quality_grade, expiry_date,
            batch_number, dispatch_id, release_code, notes

    Returns:
        Dict of the updated balance

    Raises:
        ValidationError: If a required field is missing or invalid
    """
    try:
        if session is not None:
            return _add_to_fg_inventory_impl(inventory_data, principal, session)
        with session_scope() as session:
            return _add_to_fg_inventory_impl(inventory_data, principal, session)
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to add to FG inventory", e)


def _add_to_fg_inventory_impl(inventory_data, principal, session) -> Dict[str, Any]:
    errors = []
    for field in ("product_id", "product_name"):
        ok, message = validate_required_string(inventory_data.get(field), field)
        if not ok:
            errors.append(message)
    ok, message = validate_positive_number(
        inventory_data.get("quantity"), "quantity", QUANTITY_DECIMAL_PLACES
    )
    if not ok:
        errors.append(message)
    try:
        expiry_date = as_date(inventory_data.get("expiry_date"))
    except ValueError:
        errors.append("expiry_date: Must be an ISO date")
        expiry_date = None
    if errors:
        raise ValidationError(errors)

    product_id = str(inventory_data["product_id"])
    quantity = parse_decimal(inventory_data["quantity"])
    now = utc_now()

    balance = store.get_document(session, "finishedGoodsInventory", product_id, for_update=True)
    if balance is not None:
        previous = Decimal(balance.quantity)
        fields = {
            "quantity": previous + quantity,
            "last_received_at": now,
            "updated_by": principal_id(principal),
        }
        for key in ("location", "quality_grade", "batch_number"):
            value = inventory_data.get(key)
            if value:
                fields["last_batch_number" if key == "batch_number" else key] = value
        if expiry_date is not None:
            fields["expiry_date"] = expiry_date
        balance = store.update_document(session, "finishedGoodsInventory", product_id, fields)
    else:
        previous = Decimal("0")
        balance = store.set_document(
            session,
            "finishedGoodsInventory",
            product_id,
            {
                "product_name": inventory_data["product_name"],
                "quantity": quantity,
                "unit": inventory_data.get("unit"),
                "location": inventory_data.get("location") or DEFAULT_FG_LOCATION,
                "quality_grade": inventory_data.get("quality_grade"),
                "expiry_date": expiry_date,
                "last_batch_number": inventory_data.get("batch_number"),
                "last_received_at": now,
                "updated_by": principal_id(principal),
            },
        )

    store.add_record(
        session,
        FGInventoryMovement(
            inventory_id=balance.id,
            product_id=product_id,
            product_name=balance.product_name,
            movement_type="in",
            quantity=quantity,
            unit=inventory_data.get("unit") or balance.unit,
            previous_quantity=previous,
            new_quantity=balance.quantity,
            dispatch_id=inventory_data.get("dispatch_id"),
            release_code=inventory_data.get("release_code"),
            batch_number=inventory_data.get("batch_number"),
            location=balance.location,
            notes=inventory_data.get("notes"),
            created_by=principal_id(principal),
            created_by_name=principal_label(principal, DEFAULT_ACTOR_LABELS["fg_store"]),
        ),
    )

    log_operation(
        logger,
        "add_to_fg_inventory",
        "success",
        product_id=product_id,
        added=str(quantity),
        new_quantity=str(balance.quantity),
    )
    return balance.to_dict()


def get_fg_inventory(
    product_id: Optional[str] = None, location: Optional[str] = None, session=None
) -> List[Dict[str, Any]]:
    """FG Store balances, optionally filtered by product or location."""
    if session is not None:
        return _get_fg_inventory_impl(product_id, location, session)
    with session_scope() as session:
        return _get_fg_inventory_impl(product_id, location, session)


def _get_fg_inventory_impl(product_id, location, session) -> List[Dict[str, Any]]:
    rows = store.list_documents(
        session,
        "finishedGoodsInventory",
        order_by=FinishedGoodsInventory.product_name,
        product_id=product_id,
        location=location,
    )
    return [row.to_dict() for row in rows]


def get_fg_inventory_movements(
    product_id: Optional[str] = None, dispatch_id: Optional[int] = None, session=None
) -> List[Dict[str, Any]]:
    """FG inventory movements, newest first."""
    if session is not None:
        return _get_fg_movements_impl(product_id, dispatch_id, session)
    with session_scope() as session:
        return _get_fg_movements_impl(product_id, dispatch_id, session)


def _get_fg_movements_impl(product_id, dispatch_id, session) -> List[Dict[str, Any]]:
    rows = store.list_documents(
        session,
        "fgInventoryMovements",
        order_by=FGInventoryMovement.id.desc(),
        product_id=product_id,
        dispatch_id=dispatch_id,
    )
    return [row.to_dict() for row in rows]


def get_fg_dashboard_stats(today: Optional[date] = None, session=None) -> Dict[str, Any]:
    """
    Headline figures for the FG Store.

    Returns:
        Dict with total_items, total_quantity, expiring_soon (balances
        expiring within 30 days), pending_claims and claimed_dispatches
    """
    if session is not None:
        return _get_fg_dashboard_stats_impl(today, session)
    with session_scope() as session:
        return _get_fg_dashboard_stats_impl(today, session)


def _get_fg_dashboard_stats_impl(today, session) -> Dict[str, Any]:
    balances = store.list_documents(session, "finishedGoodsInventory")
    dispatches = store.list_documents(session, "fgDispatches")

    expiring_soon = 0
    for balance in balances:
        days = days_until(balance.expiry_date, today)
        if days is not None and days <= DEFAULT_EXPIRY_LOOKAHEAD_DAYS:
            expiring_soon += 1

    return {
        "total_items": len(balances),
        "total_quantity": sum((Decimal(b.quantity) for b in balances), Decimal("0")),
        "expiring_soon": expiring_soon,
        "pending_claims": sum(1 for d in dispatches if not d.claimed_by_fg),
        "claimed_dispatches": sum(1 for d in dispatches if d.claimed_by_fg),
    }
