"""
Packing Area Stock Service.

This module provides functions for:
- Receiving handed-over batches into packing stock (the only way
  production output enters the Packing Area)
- The stock ledger: adding, issuing, status and location changes, each
  recorded as an append-only StockMovement
- Stock summaries and expiry alerts
- Packing area location master data

Quantity changes run inside a single transaction; PackingAreaStock carries
a version counter, so a concurrent change to the same row fails with
ConcurrentModificationError instead of silently over-issuing.

All functions accept an optional `session` parameter. If provided, the function
uses the caller's session (for transaction atomicity). If None, the function
creates its own session via session_scope().
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..models import BatchHandover, PackingAreaLocation, PackingAreaStock, StockMovement
from ..models.enums import (
    ExpiryAlertLevel,
    HandoverStatus,
    LocationStatus,
    MovementType,
    QualityGrade,
    StockStatus,
)
from ..utils.constants import (
    DEFAULT_ACTOR_LABELS,
    DEFAULT_EXPIRY_LOOKAHEAD_DAYS,
    DEFAULT_PACKING_LOCATION,
    EXPIRY_CAUTION_DAYS,
    EXPIRY_CRITICAL_DAYS,
    EXPIRY_WARNING_DAYS,
    QUANTITY_DECIMAL_PLACES,
)
from ..utils.datetime_utils import as_date, days_until, utc_now
from ..utils.validators import (
    parse_decimal,
    sanitize_string,
    validate_choice,
    validate_non_negative_number,
    validate_positive_number,
    validate_required_string,
)
from . import document_store as store
from .database import session_scope
from .exceptions import (
    AlreadyReceived,
    DatabaseError,
    HandoverNotFound,
    InsufficientStock,
    LocationNotFound,
    StockNotFound,
    ValidationError,
)
from .identity import principal_id, principal_label
from .logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)

RECEIVED_FROM_PRODUCTION = "production"
DEFAULT_ISSUED_TO = "Packing Line"


# =============================================================================
# Helpers shared with packaging and dispatch
# =============================================================================


def load_stock(session, stock_id, for_update: bool = False) -> PackingAreaStock:
    """Load a stock row or raise StockNotFound."""
    stock = store.get_document(session, "packingAreaStock", stock_id, for_update=for_update)
    if stock is None:
        raise StockNotFound(stock_id)
    return stock


def add_movement(
    session,
    stock: Optional[PackingAreaStock],
    movement_type: MovementType,
    quantity,
    principal,
    **fields,
) -> StockMovement:
    """Append a StockMovement for `stock` (audit rows are never updated)."""
    values = {
        "stock_id": stock.id if stock is not None else None,
        "batch_id": stock.batch_id if stock is not None else None,
        "product_id": stock.product_id if stock is not None else None,
        "product_name": stock.product_name if stock is not None else None,
        "unit": stock.unit if stock is not None else None,
        "movement_type": movement_type.value,
        "quantity": quantity,
        "created_by": principal_id(principal),
        "created_by_name": principal_label(principal, DEFAULT_ACTOR_LABELS["packing"]),
    }
    values.update(fields)
    return store.add_record(session, StockMovement(**values))


def withdraw_stock(
    session,
    stock: PackingAreaStock,
    quantity: Decimal,
    *,
    principal,
    operation: str,
    **movement_fields,
) -> Decimal:
    """
    Decrement a stock row and record an "out" movement.

    The row is marked depleted when it reaches zero.

    Returns:
        The new quantity

    Raises:
        InsufficientStock: If quantity exceeds the recorded quantity
        ConcurrentModificationError: If the row changed since it was read
    """
    available = Decimal(stock.quantity)
    if quantity > available:
        log_operation(
            logger,
            operation,
            "insufficient_stock",
            level=logging.WARNING,
            stock_id=stock.id,
            requested=str(quantity),
            available=str(available),
        )
        raise InsufficientStock(stock.product_name or stock.id, quantity, available)

    new_quantity = available - quantity
    stock.quantity = new_quantity
    if new_quantity == 0:
        stock.status = StockStatus.DEPLETED.value
    stock.updated_by = principal_id(principal)
    stock.updated_at = utc_now()
    store.flush_changes(session, "PackingAreaStock")

    add_movement(session, stock, MovementType.OUT, quantity, principal, **movement_fields)
    return new_quantity


def get_expiry_alert_level(expiry_date, today: Optional[date] = None) -> ExpiryAlertLevel:
    """
    Classify an expiry date.

    expired (<= 0 days left), critical (<= 7), warning (<= 14),
    caution (<= 30), good otherwise; none without an expiry date.
    """
    days = days_until(expiry_date, today)
    if days is None:
        return ExpiryAlertLevel.NONE
    if days <= 0:
        return ExpiryAlertLevel.EXPIRED
    if days <= EXPIRY_CRITICAL_DAYS:
        return ExpiryAlertLevel.CRITICAL
    if days <= EXPIRY_WARNING_DAYS:
        return ExpiryAlertLevel.WARNING
    if days <= EXPIRY_CAUTION_DAYS:
        return ExpiryAlertLevel.CAUTION
    return ExpiryAlertLevel.GOOD


def _parse_status(status: str) -> str:
    try:
        return StockStatus(status).value
    except ValueError:
        valid = ", ".join(s.value for s in StockStatus)
        raise ValidationError([f"status: Must be one of {valid}"])


# =============================================================================
# Handover receipt
# =============================================================================


def receive_product_batch(
    handover_id: int, receipt_data: Optional[Dict[str, Any]] = None, *, principal, session=None
) -> Dict[str, Any]:
    """
    Acknowledge a batch handover and add its output to packing stock.

    Flips received_by_packing exactly once and creates an available stock
    entry carrying the handover's quantity, grade and expiry.

    Args:
        handover_id: Handover to receive
        receipt_data: Optional dict with location (default PACK-A1) and notes
        principal: Acting user
        session: Optional SQLAlchemy session

    Returns:
        Dict of the created stock entry

    Raises:
        HandoverNotFound: If the handover does not exist
        AlreadyReceived: If the handover was already received
    """
    receipt_data = receipt_data or {}
    try:
        if session is not None:
            return _receive_impl(handover_id, receipt_data, principal, session)
        with session_scope() as session:
            return _receive_impl(handover_id, receipt_data, principal, session)
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to receive product batch", e)


def _receive_impl(handover_id, receipt_data, principal, session) -> Dict[str, Any]:
    handover = store.get_document(session, "batchHandovers", handover_id, for_update=True)
    if handover is None:
        raise HandoverNotFound(handover_id)
    if handover.received_by_packing:
        log_operation(
            logger,
            "receive_product_batch",
            "already_received",
            level=logging.WARNING,
            handover_id=handover.id,
        )
        raise AlreadyReceived(handover.id)

    now = utc_now()
    label = principal_label(principal, DEFAULT_ACTOR_LABELS["packing"])
    notes = sanitize_string(receipt_data.get("notes"))

    handover.received_by_packing = True
    handover.status = HandoverStatus.RECEIVED_BY_PACKING.value
    handover.received_at = now
    handover.received_by = principal_id(principal)
    handover.received_by_name = label
    handover.receipt_notes = notes
    store.flush_changes(session, "BatchHandover")

    stock = _add_to_packing_stock_impl(
        {
            "batch_id": handover.batch_id,
            "batch_number": handover.batch_number,
            "handover_id": handover.id,
            "product_id": handover.product_id,
            "product_name": handover.product_name,
            "quantity": handover.quantity,
            "unit": handover.unit,
            "quality_grade": handover.quality_grade,
            "expiry_date": handover.expiry_date,
            "location": receipt_data.get("location") or DEFAULT_PACKING_LOCATION,
            "status": StockStatus.AVAILABLE.value,
            "received_from": RECEIVED_FROM_PRODUCTION,
            "storage_instructions": handover.storage_instructions,
            "notes": notes,
        },
        principal,
        session,
    )

    handover.stock_id = stock["id"]
    store.flush_changes(session, "BatchHandover")

    log_operation(
        logger,
        "receive_product_batch",
        "success",
        handover_id=handover.id,
        stock_id=stock["id"],
        quantity=str(handover.quantity),
    )
    return stock


def get_pending_handovers(session=None) -> List[Dict[str, Any]]:
    """Handovers not yet received by Packing, oldest first."""
    if session is not None:
        return _get_pending_handovers_impl(session)
    with session_scope() as session:
        return _get_pending_handovers_impl(session)


def _get_pending_handovers_impl(session) -> List[Dict[str, Any]]:
    handovers = store.list_documents(
        session, "batchHandovers", order_by=BatchHandover.handover_date, received_by_packing=False
    )
    return [handover.to_dict() for handover in handovers]


# =============================================================================
# Stock ledger
# =============================================================================


def _validate_stock_data(stock_data: Dict[str, Any]) -> List[str]:
    errors = []
    for field in ("product_id", "product_name", "unit"):
        ok, message = validate_required_string(stock_data.get(field), field)
        if not ok:
            errors.append(message)
    ok, message = validate_positive_number(
        stock_data.get("quantity"), "quantity", QUANTITY_DECIMAL_PLACES
    )
    if not ok:
        errors.append(message)
    for field, enum in (("quality_grade", QualityGrade), ("status", StockStatus)):
        if stock_data.get(field) is not None:
            ok, message = validate_choice(stock_data[field], [e.value for e in enum], field)
            if not ok:
                errors.append(message)
    try:
        as_date(stock_data.get("expiry_date"))
    except ValueError:
        errors.append("expiry_date: Must be an ISO date")
    return errors


def add_to_packing_stock(stock_data: Dict[str, Any], *, principal, session=None) -> Dict[str, Any]:
    """
    Create a packing stock entry and record an "in" movement.

    Args:
        stock_data: Dict with product_id, product_name, quantity, unit and
            optional batch_id, batch_number, handover_id, quality_grade,
            expiry_date, location, status (default available),
            received_from, storage_instructions, notes

    Returns:
        Dict of the created stock entry

    Raises:
        ValidationError: If a required field is missing or invalid
    """
    try:
        if session is not None:
            return _add_to_packing_stock_impl(stock_data, principal, session)
        with session_scope() as session:
            return _add_to_packing_stock_impl(stock_data, principal, session)
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to add packing stock", e)


def _add_to_packing_stock_impl(stock_data, principal, session) -> Dict[str, Any]:
    errors = _validate_stock_data(stock_data)
    if errors:
        log_operation(
            logger,
            "add_to_packing_stock",
            "validation_failed",
            level=logging.WARNING,
            errors=errors,
        )
        raise ValidationError(errors)

    stock = store.add_record(
        session,
        PackingAreaStock(
            batch_id=stock_data.get("batch_id"),
            batch_number=stock_data.get("batch_number"),
            handover_id=stock_data.get("handover_id"),
            product_id=str(stock_data["product_id"]),
            product_name=stock_data["product_name"],
            quantity=parse_decimal(stock_data["quantity"]),
            unit=stock_data["unit"],
            quality_grade=stock_data.get("quality_grade"),
            expiry_date=as_date(stock_data.get("expiry_date")),
            location=stock_data.get("location") or DEFAULT_PACKING_LOCATION,
            status=stock_data.get("status") or StockStatus.AVAILABLE.value,
            received_from=stock_data.get("received_from"),
            received_at=utc_now(),
            received_by=principal_id(principal),
            received_by_name=principal_label(principal, DEFAULT_ACTOR_LABELS["packing"]),
            storage_instructions=stock_data.get("storage_instructions"),
            notes=stock_data.get("notes"),
        ),
    )

    add_movement(
        session,
        stock,
        MovementType.IN,
        stock.quantity,
        principal,
        to_location=stock.location,
        reason=f"Received from {stock.received_from}" if stock.received_from else "Stock added",
        reference=stock.batch_number,
    )

    log_operation(
        logger,
        "add_to_packing_stock",
        "success",
        stock_id=stock.id,
        product_id=stock.product_id,
        quantity=str(stock.quantity),
    )
    return stock.to_dict()


def get_stock(stock_id: int, session=None) -> Dict[str, Any]:
    """
    Get a packing stock entry by ID.

    Raises:
        StockNotFound: If the entry does not exist
    """
    if session is not None:
        return load_stock(session, stock_id).to_dict()
    with session_scope() as session:
        return load_stock(session, stock_id).to_dict()


def get_packing_stock(
    status: Optional[str] = None,
    product_id: Optional[str] = None,
    location: Optional[str] = None,
    session=None,
) -> List[Dict[str, Any]]:
    """Packing stock entries matching the filters, newest first."""
    if session is not None:
        return _get_packing_stock_impl(status, product_id, location, session)
    with session_scope() as session:
        return _get_packing_stock_impl(status, product_id, location, session)


def _get_packing_stock_impl(status, product_id, location, session) -> List[Dict[str, Any]]:
    rows = store.list_documents(
        session,
        "packingAreaStock",
        order_by=PackingAreaStock.id.desc(),
        status=status,
        product_id=product_id,
        location=location,
    )
    return [row.to_dict() for row in rows]


def issue_stock_for_packing(
    stock_id: int, issue_data: Dict[str, Any], *, principal, session=None
) -> Dict[str, Any]:
    """
    Issue bulk stock to a packing line.

    Args:
        stock_id: Stock entry to draw from
        issue_data: Dict with quantity (> 0) and optional issued_to
            (default "Packing Line"), packing_line, reason, notes
        principal: Acting user
        session: Optional SQLAlchemy session

    Returns:
        Dict with new_quantity and issued

    Raises:
        StockNotFound: If the entry does not exist
        InsufficientStock: If quantity exceeds the available quantity
        ValidationError: If quantity is not a positive number
        ConcurrentModificationError: If the entry changed concurrently
    """
    ok, message = validate_positive_number(
        issue_data.get("quantity"), "quantity", QUANTITY_DECIMAL_PLACES
    )
    if not ok:
        raise ValidationError([message])

    try:
        if session is not None:
            return _issue_impl(stock_id, issue_data, principal, session)
        with session_scope() as session:
            return _issue_impl(stock_id, issue_data, principal, session)
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to issue stock for packing", e)


def _issue_impl(stock_id, issue_data, principal, session) -> Dict[str, Any]:
    stock = load_stock(session, stock_id, for_update=True)
    quantity = parse_decimal(issue_data["quantity"])

    new_quantity = withdraw_stock(
        session,
        stock,
        quantity,
        principal=principal,
        operation="issue_stock_for_packing",
        issued_to=issue_data.get("issued_to") or DEFAULT_ISSUED_TO,
        packing_line=issue_data.get("packing_line"),
        from_location=stock.location,
        reason=issue_data.get("reason") or issue_data.get("notes") or "Issued for packing",
    )
    stock.last_issued_at = utc_now()
    store.flush_changes(session, "PackingAreaStock")

    log_operation(
        logger,
        "issue_stock_for_packing",
        "success",
        stock_id=stock.id,
        issued=str(quantity),
        new_quantity=str(new_quantity),
    )
    return {"new_quantity": new_quantity, "issued": quantity}


def update_stock_status(
    stock_id: int, status: str, *, principal, notes: str = "", session=None
) -> Dict[str, Any]:
    """
    Overwrite a stock entry's status and record a status_change movement.

    Raises:
        StockNotFound: If the entry does not exist
        ValidationError: If `status` is not a stock status
    """
    status = _parse_status(status)
    try:
        if session is not None:
            return _update_stock_status_impl(stock_id, status, principal, notes, session)
        with session_scope() as session:
            return _update_stock_status_impl(stock_id, status, principal, notes, session)
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to update stock status", e)


def _update_stock_status_impl(stock_id, status, principal, notes, session) -> Dict[str, Any]:
    stock = load_stock(session, stock_id, for_update=True)
    previous = stock.status

    stock.status = status
    stock.status_updated_at = utc_now()
    stock.updated_by = principal_id(principal)
    if notes:
        stock.notes = notes
    store.flush_changes(session, "PackingAreaStock")

    add_movement(
        session,
        stock,
        MovementType.STATUS_CHANGE,
        Decimal("0"),
        principal,
        previous_status=previous,
        new_status=status,
        reason=notes or f"Status changed from {previous} to {status}",
    )

    log_operation(
        logger,
        "update_stock_status",
        "success",
        stock_id=stock.id,
        previous_status=previous,
        new_status=status,
    )
    return stock.to_dict()


def update_stock_location(
    stock_id: int, new_location: str, *, principal, session=None
) -> Dict[str, Any]:
    """
    Move a stock entry to another location code.

    Codes that are not active PackingAreaLocations are still applied, with
    a warning logged. Records a location_change movement.

    Raises:
        StockNotFound: If the entry does not exist
        ValidationError: If new_location is empty
    """
    new_location = sanitize_string(new_location)
    if new_location is None:
        raise ValidationError(["location: This field is required"])
    try:
        if session is not None:
            return _update_stock_location_impl(stock_id, new_location, principal, session)
        with session_scope() as session:
            return _update_stock_location_impl(stock_id, new_location, principal, session)
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to update stock location", e)


def _update_stock_location_impl(stock_id, new_location, principal, session) -> Dict[str, Any]:
    stock = load_stock(session, stock_id, for_update=True)

    known = (
        session.query(PackingAreaLocation)
        .filter(
            PackingAreaLocation.code == new_location,
            PackingAreaLocation.status == LocationStatus.ACTIVE.value,
        )
        .first()
    )
    if known is None:
        log_operation(
            logger,
            "update_stock_location",
            "unknown_location",
            level=logging.WARNING,
            stock_id=stock.id,
            location=new_location,
        )

    previous = stock.location
    stock.location = new_location
    stock.location_updated_at = utc_now()
    stock.updated_by = principal_id(principal)
    store.flush_changes(session, "PackingAreaStock")

    add_movement(
        session,
        stock,
        MovementType.LOCATION_CHANGE,
        Decimal("0"),
        principal,
        from_location=previous,
        to_location=new_location,
        reason=f"Moved from {previous} to {new_location}",
    )

    log_operation(
        logger,
        "update_stock_location",
        "success",
        stock_id=stock.id,
        from_location=previous,
        to_location=new_location,
    )
    return stock.to_dict()


def record_stock_movement(movement_data: Dict[str, Any], *, principal, session=None) -> Dict[str, Any]:
    """
    Append a free-standing stock movement.

    Args:
        movement_data: Dict with movement_type and quantity (>= 0) plus any
            StockMovement field (stock_id, from_location, reason, ...)

    Raises:
        ValidationError: If the type, quantity or a field name is invalid
        StockNotFound: If stock_id is given and does not exist
    """
    errors = []
    try:
        movement_type = MovementType(movement_data.get("movement_type"))
    except ValueError:
        errors.append(
            f"movement_type: Must be one of {', '.join(m.value for m in MovementType)}"
        )
        movement_type = None
    ok, message = validate_non_negative_number(
        movement_data.get("quantity", 0), "quantity", QUANTITY_DECIMAL_PLACES
    )
    if not ok:
        errors.append(message)
    unknown = sorted(set(movement_data) - StockMovement.column_names())
    for key in unknown:
        errors.append(f"{key}: Unknown field")
    if errors:
        raise ValidationError(errors)

    try:
        if session is not None:
            return _record_movement_impl(movement_type, movement_data, principal, session)
        with session_scope() as session:
            return _record_movement_impl(movement_type, movement_data, principal, session)
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to record stock movement", e)


def _record_movement_impl(movement_type, movement_data, principal, session) -> Dict[str, Any]:
    stock = None
    if movement_data.get("stock_id") is not None:
        stock = load_stock(session, movement_data["stock_id"])
    fields = {
        k: v
        for k, v in movement_data.items()
        if k not in ("movement_type", "quantity", "id", "uuid", "created_at", "updated_at")
    }
    movement = add_movement(
        session,
        stock,
        movement_type,
        parse_decimal(movement_data.get("quantity", 0)),
        principal,
        **fields,
    )
    return movement.to_dict()


def get_stock_movements(
    stock_id: Optional[int] = None,
    batch_id: Optional[int] = None,
    product_id: Optional[str] = None,
    session=None,
) -> List[Dict[str, Any]]:
    """Stock movements matching the filters, newest first."""
    if session is not None:
        return _get_stock_movements_impl(stock_id, batch_id, product_id, session)
    with session_scope() as session:
        return _get_stock_movements_impl(stock_id, batch_id, product_id, session)


def _get_stock_movements_impl(stock_id, batch_id, product_id, session) -> List[Dict[str, Any]]:
    movements = store.list_documents(
        session,
        "packingAreaStockMovements",
        order_by=StockMovement.id.desc(),
        stock_id=stock_id,
        batch_id=batch_id,
        product_id=product_id,
    )
    return [movement.to_dict() for movement in movements]


# =============================================================================
# Summaries and expiry
# =============================================================================


def get_stock_summary(today: Optional[date] = None, session=None) -> Dict[str, Any]:
    """
    Aggregate the packing stock.

    Returns:
        Dict with total_items, total_quantity, by_status (count per
        StockStatus), expiring_soon (non-depleted entries expiring within
        30 days, including expired ones) and expired
    """
    if session is not None:
        return _get_stock_summary_impl(today, session)
    with session_scope() as session:
        return _get_stock_summary_impl(today, session)


def _get_stock_summary_impl(today, session) -> Dict[str, Any]:
    rows = store.list_documents(session, "packingAreaStock")

    by_status = {status.value: 0 for status in StockStatus}
    total_quantity = Decimal("0")
    expiring_soon = 0
    expired = 0

    for row in rows:
        by_status[row.status] = by_status.get(row.status, 0) + 1
        total_quantity += Decimal(row.quantity)
        if row.status == StockStatus.DEPLETED.value:
            continue
        days = days_until(row.expiry_date, today)
        if days is None:
            continue
        if days <= 0:
            expired += 1
        if days <= DEFAULT_EXPIRY_LOOKAHEAD_DAYS:
            expiring_soon += 1

    return {
        "total_items": len(rows),
        "total_quantity": total_quantity,
        "by_status": by_status,
        "expiring_soon": expiring_soon,
        "expired": expired,
    }


def get_expiry_alerts(
    days_ahead: int = DEFAULT_EXPIRY_LOOKAHEAD_DAYS, today: Optional[date] = None, session=None
) -> List[Dict[str, Any]]:
    """
    Stock entries expiring within `days_ahead` days, soonest first.

    Already-expired entries are included. Depleted entries and entries
    without an expiry date are skipped. Each dict gains days_to_expiry and
    alert_level.
    """
    if session is not None:
        return _get_expiry_alerts_impl(days_ahead, today, session)
    with session_scope() as session:
        return _get_expiry_alerts_impl(days_ahead, today, session)


def _get_expiry_alerts_impl(days_ahead, today, session) -> List[Dict[str, Any]]:
    rows = (
        session.query(PackingAreaStock)
        .filter(
            PackingAreaStock.expiry_date.isnot(None),
            PackingAreaStock.status != StockStatus.DEPLETED.value,
        )
        .all()
    )

    alerts = []
    for row in rows:
        days = days_until(row.expiry_date, today)
        if days > days_ahead:
            continue
        data = row.to_dict()
        data["days_to_expiry"] = days
        data["alert_level"] = get_expiry_alert_level(row.expiry_date, today).value
        alerts.append(data)

    alerts.sort(key=lambda item: (item["days_to_expiry"], item["id"]))
    return alerts


# =============================================================================
# Locations
# =============================================================================


def create_location(location_data: Dict[str, Any], *, principal=None, session=None) -> Dict[str, Any]:
    """
    Create a packing area location.

    Args:
        location_data: Dict with code (unique) and optional name (default
            the code), description, capacity (>= 0)

    Raises:
        ValidationError: If code is missing or taken, or capacity is invalid
    """
    code = sanitize_string(location_data.get("code"))
    errors = []
    if code is None:
        errors.append("code: This field is required")
    if location_data.get("capacity") is not None:
        ok, message = validate_non_negative_number(
            location_data["capacity"], "capacity", QUANTITY_DECIMAL_PLACES
        )
        if not ok:
            errors.append(message)
    if errors:
        raise ValidationError(errors)

    try:
        if session is not None:
            return _create_location_impl(code, location_data, principal, session)
        with session_scope() as session:
            return _create_location_impl(code, location_data, principal, session)
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to create location", e)


def _create_location_impl(code, location_data, principal, session) -> Dict[str, Any]:
    if store.list_documents(session, "packingAreaLocations", code=code):
        raise ValidationError([f"code: Location '{code}' already exists"])

    location = store.add_record(
        session,
        PackingAreaLocation(
            code=code,
            name=sanitize_string(location_data.get("name")) or code,
            description=sanitize_string(location_data.get("description")),
            capacity=parse_decimal(location_data.get("capacity")),
            status=LocationStatus.ACTIVE.value,
            created_by=principal_id(principal),
        ),
    )
    log_operation(logger, "create_location", "success", location_id=location.id, code=code)
    return location.to_dict()


def update_location(
    location_id: int, updates: Dict[str, Any], *, principal=None, session=None
) -> Dict[str, Any]:
    """
    Update a location's code, name, description, capacity or status.

    Raises:
        LocationNotFound: If the location does not exist
        ValidationError: If a field is invalid or the new code is taken
    """
    allowed = {"code", "name", "description", "capacity", "status"}
    errors = [f"{key}: Cannot be updated here" for key in sorted(set(updates) - allowed)]
    if "status" in updates:
        ok, message = validate_choice(
            updates["status"], [s.value for s in LocationStatus], "status"
        )
        if not ok:
            errors.append(message)
    if updates.get("capacity") is not None:
        ok, message = validate_non_negative_number(
            updates["capacity"], "capacity", QUANTITY_DECIMAL_PLACES
        )
        if not ok:
            errors.append(message)
    if "code" in updates and sanitize_string(updates["code"]) is None:
        errors.append("code: This field is required")
    if errors:
        raise ValidationError(errors)

    try:
        if session is not None:
            return _update_location_impl(location_id, updates, principal, session)
        with session_scope() as session:
            return _update_location_impl(location_id, updates, principal, session)
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to update location", e)


def _update_location_impl(location_id, updates, principal, session) -> Dict[str, Any]:
    location = store.get_document(session, "packingAreaLocations", location_id)
    if location is None:
        raise LocationNotFound(location_id)

    fields = dict(updates)
    if "code" in fields:
        fields["code"] = sanitize_string(fields["code"])
        clash = store.list_documents(session, "packingAreaLocations", code=fields["code"])
        if any(other.id != location.id for other in clash):
            raise ValidationError([f"code: Location '{fields['code']}' already exists"])
    if "capacity" in fields:
        fields["capacity"] = parse_decimal(fields["capacity"])
    fields["updated_by"] = principal_id(principal)

    location.update_from_dict(fields)
    store.flush_changes(session, "PackingAreaLocation")
    log_operation(logger, "update_location", "success", location_id=location.id)
    return location.to_dict()


def deactivate_location(location_id: int, *, principal=None, session=None) -> Dict[str, Any]:
    """Mark a location inactive (locations are never deleted)."""
    return update_location(
        location_id,
        {"status": LocationStatus.INACTIVE.value},
        principal=principal,
        session=session,
    )


def get_locations(status: Optional[str] = None, session=None) -> List[Dict[str, Any]]:
    """Locations ordered by code, optionally filtered by status."""
    if session is not None:
        return _get_locations_impl(status, session)
    with session_scope() as session:
        return _get_locations_impl(status, session)


def _get_locations_impl(status, session) -> List[Dict[str, Any]]:
    locations = store.list_documents(
        session, "packingAreaLocations", order_by=PackingAreaLocation.code, status=status
    )
    return [location.to_dict() for location in locations]
