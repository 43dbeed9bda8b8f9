"""
Production Service for the batch lifecycle.

This module provides functions for:
- Creating production batches with generated batch numbers
- Recording stage progression and per-stage QC data
- Manual progress and status updates (hold/resume, QC verdict)
- Handing a completed batch over to the Packing Area
- Read-side views for the batch monitor

Stage order lives in BatchStage; a batch never moves back to an earlier
stage, and a handed-over batch can no longer change.

All functions accept an optional `session` parameter. If provided, the function
uses the caller's session (for transaction atomicity). If None, the function
creates its own session via session_scope().
"""

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..models import BatchHandover, ProductionBatch, ProductionQCRecord
from ..models.enums import BatchStage, BatchStatus, HandoverStatus, QualityGrade
from ..models.qc_schema import FinalQC, QCSchemaError, parse_stage_data
from ..utils.constants import (
    BATCH_NUMBER_PREFIX,
    DEFAULT_ACTOR_LABELS,
    DEFAULT_BATCH_PRIORITY,
    DEFAULT_PRODUCT_CODE,
    QUANTITY_DECIMAL_PLACES,
    ROLE_PACKING_AREA_MANAGER,
    STAGE_PROGRESS,
)
from ..utils.datetime_utils import as_date, to_naive_utc, utc_now
from ..utils.validators import (
    parse_decimal,
    sanitize_string,
    validate_choice,
    validate_non_negative_number,
    validate_positive_number,
    validate_required_string,
)
from . import document_store as store
from . import notification_service
from .database import session_scope
from .exceptions import (
    BatchFrozen,
    BatchNotFound,
    BatchNotReadyForHandover,
    DatabaseError,
    InvalidStageTransition,
    InvalidStatusTransition,
    ValidationError,
)
from .identity import principal_id, principal_label
from .logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)

# Manual status changes; handover and stage completion set status themselves
STATUS_TRANSITIONS = {
    BatchStatus.ACTIVE.value: {BatchStatus.ON_HOLD.value},
    BatchStatus.ON_HOLD.value: {BatchStatus.ACTIVE.value},
    BatchStatus.COMPLETED.value: {BatchStatus.QC_PASSED.value, BatchStatus.QC_FAILED.value},
    BatchStatus.QC_FAILED.value: {BatchStatus.ON_HOLD.value},
}

HANDOVER_READY_STATUSES = (BatchStatus.COMPLETED.value, BatchStatus.QC_PASSED.value)

FINISHED_STATUSES = (
    BatchStatus.COMPLETED.value,
    BatchStatus.QC_PASSED.value,
    BatchStatus.QC_FAILED.value,
    BatchStatus.HANDED_OVER.value,
)

_PROGRESS_UPDATE_FIELDS = ("progress", "output_quantity", "notes", "priority", "status")

# Statuses from which a manual "completed" is accepted
_COMPLETABLE_STATUSES = (
    BatchStatus.ACTIVE.value,
    BatchStatus.ON_HOLD.value,
    BatchStatus.COMPLETED.value,
)


# =============================================================================
# Helpers
# =============================================================================


def _load_batch(session, batch_id, for_update: bool = False) -> ProductionBatch:
    batch = store.get_document(session, "productionBatches", batch_id, for_update=for_update)
    if batch is None:
        raise BatchNotFound(batch_id)
    return batch


def _ensure_not_frozen(batch: ProductionBatch, operation: str) -> None:
    if batch.is_handed_over:
        log_operation(
            logger, operation, "batch_frozen", level=logging.WARNING, batch_id=batch.id
        )
        raise BatchFrozen(batch.id)


def _parse_stage(stage) -> BatchStage:
    try:
        return BatchStage.parse(stage)
    except ValueError as e:
        raise ValidationError([str(e)])


def _validate_stage_payload(stage: BatchStage, data):
    try:
        return parse_stage_data(stage, data)
    except QCSchemaError as e:
        raise ValidationError(e.errors)


def _initial_qc_stages() -> Dict[str, Dict[str, Any]]:
    return {stage.value: {"completed": False} for stage in BatchStage.ordered()}


def _stamp_stage(batch: ProductionBatch, stage: BatchStage, entry_fields: Dict[str, Any]) -> None:
    # JSON columns only notice reassignment, so rebuild the map
    qc_stages = {key: dict(value) for key, value in (batch.qc_stages or {}).items()}
    entry = qc_stages.get(stage.value, {"completed": False})
    entry.update(entry_fields)
    qc_stages[stage.value] = entry
    batch.qc_stages = qc_stages


def _next_batch_number(session, year: int) -> str:
    prefix = f"{BATCH_NUMBER_PREFIX}-{DEFAULT_PRODUCT_CODE}-{year}-"
    count = (
        session.query(ProductionBatch)
        .filter(ProductionBatch.batch_number.like(f"{prefix}%"))
        .count()
    )
    sequence = count + 1
    while store.list_documents(
        session, "productionBatches", batch_number=f"{prefix}{sequence:04d}"
    ):
        sequence += 1
    return f"{prefix}{sequence:04d}"


def _round1(value: Decimal) -> float:
    return float(value.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


# =============================================================================
# Batch creation and reads
# =============================================================================


def create_batch(batch_data: Dict[str, Any], *, principal, session=None) -> Dict[str, Any]:
    """
    Create a production batch.

    Args:
        batch_data: Dict with product_id, product_name, target_quantity, unit
            and optional priority, notes, expected_completion_date
        principal: Acting user (None for system actions)
        session: Optional SQLAlchemy session

    Returns:
        Dict of the created batch (status active, stage preparation, progress 0)

    Raises:
        ValidationError: If a required field is missing or invalid
    """
    errors = []
    for field in ("product_id", "product_name", "unit"):
        ok, message = validate_required_string(batch_data.get(field), field)
        if not ok:
            errors.append(message)
    ok, message = validate_positive_number(
        batch_data.get("target_quantity"), "target_quantity", QUANTITY_DECIMAL_PLACES
    )
    if not ok:
        errors.append(message)
    try:
        expected = as_date(batch_data.get("expected_completion_date"))
    except ValueError:
        errors.append("expected_completion_date: Must be an ISO date")
        expected = None
    if errors:
        log_operation(
            logger, "create_batch", "validation_failed", level=logging.WARNING, errors=errors
        )
        raise ValidationError(errors)

    try:
        if session is not None:
            return _create_batch_impl(batch_data, expected, principal, session)
        with session_scope() as session:
            return _create_batch_impl(batch_data, expected, principal, session)
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to create production batch", e)


def _create_batch_impl(batch_data, expected, principal, session) -> Dict[str, Any]:
    now = utc_now()
    batch = ProductionBatch(
        batch_number=_next_batch_number(session, now.year),
        product_id=str(batch_data["product_id"]).strip(),
        product_name=str(batch_data["product_name"]).strip(),
        target_quantity=parse_decimal(batch_data["target_quantity"]),
        output_quantity=None,
        unit=str(batch_data["unit"]).strip(),
        status=BatchStatus.ACTIVE.value,
        stage=BatchStage.PREPARATION.value,
        progress=0,
        qc_stages=_initial_qc_stages(),
        priority=batch_data.get("priority") or DEFAULT_BATCH_PRIORITY,
        notes=sanitize_string(batch_data.get("notes")),
        expected_completion_date=expected,
        created_by=principal_id(principal),
        created_by_name=principal_label(principal, DEFAULT_ACTOR_LABELS["production"]),
    )
    store.add_record(session, batch)

    log_operation(
        logger,
        "create_batch",
        "success",
        batch_id=batch.id,
        batch_number=batch.batch_number,
        product_id=batch.product_id,
    )
    return batch.to_dict()


def get_batch(batch_id: int, session=None) -> Dict[str, Any]:
    """
    Get a production batch by ID.

    Raises:
        BatchNotFound: If the batch does not exist
    """
    if session is not None:
        return _load_batch(session, batch_id).to_dict()
    with session_scope() as session:
        return _load_batch(session, batch_id).to_dict()


def get_batches(
    status: Optional[str] = None, product_id: Optional[str] = None, session=None
) -> List[Dict[str, Any]]:
    """Batches filtered by status and/or product, newest first."""
    if session is not None:
        return _get_batches_impl(status, product_id, session)
    with session_scope() as session:
        return _get_batches_impl(status, product_id, session)


def _get_batches_impl(status, product_id, session) -> List[Dict[str, Any]]:
    batches = store.list_documents(
        session,
        "productionBatches",
        order_by=ProductionBatch.id.desc(),
        status=status,
        product_id=product_id,
    )
    return [batch.to_dict() for batch in batches]


def get_active_batches(session=None) -> List[Dict[str, Any]]:
    """Batches still on the floor (active or on hold), newest first."""
    if session is not None:
        return _get_active_batches_impl(session)
    with session_scope() as session:
        return _get_active_batches_impl(session)


def _get_active_batches_impl(session) -> List[Dict[str, Any]]:
    batches = (
        session.query(ProductionBatch)
        .filter(
            ProductionBatch.status.in_([BatchStatus.ACTIVE.value, BatchStatus.ON_HOLD.value])
        )
        .order_by(ProductionBatch.id.desc())
        .all()
    )
    return [batch.to_dict() for batch in batches]


# =============================================================================
# Stage progression
# =============================================================================


def update_batch_stage(
    batch_id: int,
    stage,
    stage_data: Optional[Dict[str, Any]] = None,
    *,
    principal,
    session=None,
) -> Dict[str, Any]:
    """
    Record that a batch reached `stage`.

    Merges the validated stage data into qc_stages[stage], marks the stage
    completed and sets progress from STAGE_PROGRESS. Recording "completed"
    also completes the batch, defaulting output_quantity to target_quantity.
    Re-recording the current stage is allowed; moving to an earlier stage
    is not.

    Args:
        batch_id: Batch to update
        stage: BatchStage or stage name (legacy aliases accepted)
        stage_data: QC fields for the stage's record type
        principal: Acting user
        session: Optional SQLAlchemy session

    Returns:
        Dict of the updated batch

    Raises:
        BatchNotFound: If the batch does not exist
        BatchFrozen: If the batch was handed over
        InvalidStageTransition: If `stage` comes before the current stage
        ValidationError: If the stage or stage data is invalid
    """
    target = _parse_stage(stage)
    record = _validate_stage_payload(target, stage_data)

    try:
        if session is not None:
            return _update_batch_stage_impl(batch_id, target, record, principal, session)
        with session_scope() as session:
            return _update_batch_stage_impl(batch_id, target, record, principal, session)
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to update batch stage", e)


def _update_batch_stage_impl(batch_id, target, record, principal, session) -> Dict[str, Any]:
    batch = _load_batch(session, batch_id, for_update=True)
    _ensure_not_frozen(batch, "update_batch_stage")

    current = BatchStage.parse(batch.stage)
    if BatchStage.index(target) < BatchStage.index(current):
        log_operation(
            logger,
            "update_batch_stage",
            "invalid_transition",
            level=logging.WARNING,
            batch_id=batch.id,
            current_stage=current.value,
            requested_stage=target.value,
        )
        raise InvalidStageTransition(batch.id, current.value, target.value)

    now = utc_now()
    entry = record.to_dict()
    entry.update(
        {
            "completed": True,
            "completed_at": now.isoformat(),
            "completed_by": principal_label(principal, DEFAULT_ACTOR_LABELS["production"]),
        }
    )
    _stamp_stage(batch, target, entry)

    batch.stage = target.value
    batch.progress = STAGE_PROGRESS[target.value]
    batch.updated_by = principal_id(principal)
    batch.updated_at = now

    if target == BatchStage.COMPLETED:
        if batch.status in (BatchStatus.ACTIVE.value, BatchStatus.ON_HOLD.value):
            batch.status = BatchStatus.COMPLETED.value
        batch.completed_at = now
        if getattr(record, "output_quantity", None) is not None:
            batch.output_quantity = record.output_quantity
        elif batch.output_quantity is None:
            batch.output_quantity = batch.target_quantity

    store.flush_changes(session, "ProductionBatch")

    log_operation(
        logger,
        "update_batch_stage",
        "success",
        batch_id=batch.id,
        stage=target.value,
        progress=batch.progress,
    )
    return batch.to_dict()


def update_batch_progress(
    batch_id: int, updates: Dict[str, Any], *, principal, session=None
) -> Dict[str, Any]:
    """
    Manually update progress, output_quantity, notes, priority or status.

    The only status accepted is "completed", which stamps completed_at and
    is allowed from active or on_hold. Use set_batch_status() for hold/resume
    and QC verdicts; handover only happens through handover_batch_to_packing().

    Raises:
        BatchNotFound: If the batch does not exist
        BatchFrozen: If the batch was handed over
        InvalidStatusTransition: If the batch cannot be marked completed
        ValidationError: If a field is unknown or invalid
    """
    errors = []
    unknown = sorted(set(updates) - set(_PROGRESS_UPDATE_FIELDS))
    for key in unknown:
        errors.append(f"{key}: Cannot be updated here")
    if "progress" in updates:
        progress = updates["progress"]
        if isinstance(progress, bool) or not isinstance(progress, int) or not 0 <= progress <= 100:
            errors.append("progress: Must be a whole number between 0 and 100")
    if updates.get("output_quantity") is not None:
        ok, message = validate_non_negative_number(
            updates["output_quantity"], "output_quantity", QUANTITY_DECIMAL_PLACES
        )
        if not ok:
            errors.append(message)
    if "status" in updates and updates["status"] != BatchStatus.COMPLETED.value:
        errors.append("status: Only completed can be set here; use set_batch_status")
    if errors:
        raise ValidationError(errors)

    try:
        if session is not None:
            return _update_batch_progress_impl(batch_id, updates, principal, session)
        with session_scope() as session:
            return _update_batch_progress_impl(batch_id, updates, principal, session)
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to update batch progress", e)


def _update_batch_progress_impl(batch_id, updates, principal, session) -> Dict[str, Any]:
    batch = _load_batch(session, batch_id, for_update=True)
    _ensure_not_frozen(batch, "update_batch_progress")

    requested = updates.get("status")
    if requested is not None and batch.status not in _COMPLETABLE_STATUSES:
        log_operation(
            logger,
            "update_batch_progress",
            "invalid_transition",
            level=logging.WARNING,
            batch_id=batch.id,
            current_status=batch.status,
            requested_status=requested,
        )
        raise InvalidStatusTransition(batch.id, batch.status, requested)

    fields = dict(updates)
    if fields.get("output_quantity") is not None:
        fields["output_quantity"] = parse_decimal(fields["output_quantity"])
    if fields.get("status") == BatchStatus.COMPLETED.value:
        fields["completed_at"] = utc_now()
    fields["updated_by"] = principal_id(principal)

    batch.update_from_dict(fields)
    store.flush_changes(session, "ProductionBatch")

    log_operation(
        logger,
        "update_batch_progress",
        "success",
        batch_id=batch.id,
        fields=sorted(updates),
    )
    return batch.to_dict()


def set_batch_status(
    batch_id: int, status: str, *, principal, notes: Optional[str] = None, session=None
) -> Dict[str, Any]:
    """
    Change a batch's status along a permitted transition.

    Permitted: active <-> on_hold, completed -> qc_passed | qc_failed,
    qc_failed -> on_hold.

    Raises:
        BatchNotFound: If the batch does not exist
        BatchFrozen: If the batch was handed over
        InvalidStatusTransition: If the transition is not permitted
        ValidationError: If `status` is not a batch status
    """
    try:
        status = BatchStatus(status).value
    except ValueError:
        valid = ", ".join(s.value for s in BatchStatus)
        raise ValidationError([f"status: Must be one of {valid}"])

    try:
        if session is not None:
            return _set_batch_status_impl(batch_id, status, principal, notes, session)
        with session_scope() as session:
            return _set_batch_status_impl(batch_id, status, principal, notes, session)
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to set batch status", e)


def _set_batch_status_impl(batch_id, status, principal, notes, session) -> Dict[str, Any]:
    batch = _load_batch(session, batch_id, for_update=True)
    _ensure_not_frozen(batch, "set_batch_status")

    if status not in STATUS_TRANSITIONS.get(batch.status, set()):
        log_operation(
            logger,
            "set_batch_status",
            "invalid_transition",
            level=logging.WARNING,
            batch_id=batch.id,
            current_status=batch.status,
            requested_status=status,
        )
        raise InvalidStatusTransition(batch.id, batch.status, status)

    previous = batch.status
    batch.status = status
    if notes:
        batch.notes = notes
    batch.updated_by = principal_id(principal)
    batch.updated_at = utc_now()
    store.flush_changes(session, "ProductionBatch")

    log_operation(
        logger,
        "set_batch_status",
        "success",
        batch_id=batch.id,
        previous_status=previous,
        new_status=status,
    )
    return batch.to_dict()


# =============================================================================
# QC
# =============================================================================


def record_qc_data(
    batch_id: int, stage, qc_data: Dict[str, Any], *, principal, session=None
) -> Dict[str, Any]:
    """
    Record QC readings for a stage.

    Appends a ProductionQCRecord and stamps qc_stages[stage] with the
    readings, completed=True, completed_at and the record's qc_id.

    Returns:
        Dict of the created QC record

    Raises:
        BatchNotFound: If the batch does not exist
        BatchFrozen: If the batch was handed over
        ValidationError: If the stage or readings are invalid
    """
    target = _parse_stage(stage)
    record = _validate_stage_payload(target, qc_data)

    try:
        if session is not None:
            return _record_qc_data_impl(batch_id, target, record, principal, session)
        with session_scope() as session:
            return _record_qc_data_impl(batch_id, target, record, principal, session)
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to record QC data", e)


def _record_qc_data_impl(batch_id, target, record, principal, session) -> Dict[str, Any]:
    batch = _load_batch(session, batch_id, for_update=True)
    _ensure_not_frozen(batch, "record_qc_data")
    qc_record = _append_qc_record(batch, target, record, principal, session)
    return qc_record.to_dict()


def _append_qc_record(batch, target, record, principal, session) -> ProductionQCRecord:
    payload = record.to_dict()
    label = principal_label(principal, DEFAULT_ACTOR_LABELS["qc"])
    qc_record = store.add_record(
        session,
        ProductionQCRecord(
            batch_id=batch.id,
            stage=target.value,
            qc_data=payload,
            recorded_by=principal_id(principal),
            recorded_by_name=label,
        ),
    )

    entry = dict(payload)
    entry.update(
        {
            "completed": True,
            "completed_at": utc_now().isoformat(),
            "completed_by": label,
            "qc_id": qc_record.id,
        }
    )
    _stamp_stage(batch, target, entry)
    batch.updated_at = utc_now()
    store.flush_changes(session, "ProductionBatch")

    log_operation(
        logger,
        "record_qc_data",
        "success",
        batch_id=batch.id,
        stage=target.value,
        qc_id=qc_record.id,
    )
    return qc_record


def record_qc_verdict(
    batch_id: int,
    *,
    passed: bool,
    overall_grade: str,
    principal,
    remarks: Optional[str] = None,
    qc_data: Optional[Dict[str, Any]] = None,
    session=None,
) -> Dict[str, Any]:
    """
    Record the final QC verdict on a completed batch.

    Stores the final QC readings, then moves the batch to qc_passed or
    qc_failed and stamps qc_completed and qc_grade.

    Raises:
        BatchNotFound: If the batch does not exist
        BatchFrozen: If the batch was handed over
        InvalidStatusTransition: If the batch is not completed
        ValidationError: If the grade or readings are invalid
    """
    payload = dict(qc_data or {})
    payload.update({"overall_grade": overall_grade, "passed": passed})
    if remarks is not None:
        payload["remarks"] = remarks
    try:
        record = FinalQC.from_dict(payload)
    except QCSchemaError as e:
        raise ValidationError(e.errors)

    try:
        if session is not None:
            return _record_qc_verdict_impl(batch_id, record, principal, session)
        with session_scope() as session:
            return _record_qc_verdict_impl(batch_id, record, principal, session)
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to record QC verdict", e)


def _record_qc_verdict_impl(batch_id, record: FinalQC, principal, session) -> Dict[str, Any]:
    batch = _load_batch(session, batch_id, for_update=True)
    _ensure_not_frozen(batch, "record_qc_verdict")

    new_status = BatchStatus.QC_PASSED.value if record.passed else BatchStatus.QC_FAILED.value
    if batch.status != BatchStatus.COMPLETED.value:
        log_operation(
            logger,
            "record_qc_verdict",
            "invalid_transition",
            level=logging.WARNING,
            batch_id=batch.id,
            current_status=batch.status,
        )
        raise InvalidStatusTransition(batch.id, batch.status, new_status)

    _append_qc_record(batch, BatchStage.FINAL_QC, record, principal, session)

    now = utc_now()
    batch.status = new_status
    batch.qc_completed = True
    batch.qc_grade = record.overall_grade
    batch.qc_completed_at = now
    batch.updated_by = principal_id(principal)
    batch.updated_at = now
    store.flush_changes(session, "ProductionBatch")

    log_operation(
        logger,
        "record_qc_verdict",
        "success",
        batch_id=batch.id,
        status=new_status,
        grade=record.overall_grade,
    )
    return batch.to_dict()


def get_qc_records(batch_id: int, session=None) -> List[Dict[str, Any]]:
    """QC records of a batch, newest first."""
    if session is not None:
        return _get_qc_records_impl(batch_id, session)
    with session_scope() as session:
        return _get_qc_records_impl(batch_id, session)


def _get_qc_records_impl(batch_id, session) -> List[Dict[str, Any]]:
    records = store.list_documents(
        session,
        "productionQCRecords",
        order_by=ProductionQCRecord.id.desc(),
        batch_id=batch_id,
    )
    return [record.to_dict() for record in records]


# =============================================================================
# Handover
# =============================================================================


def handover_batch_to_packing(
    batch_id: int, handover_data: Dict[str, Any], *, principal, session=None
) -> Dict[str, Any]:
    """
    Hand a completed batch over to the Packing Area.

    The batch must be completed or QC passed (or at 100% progress). Creates
    a BatchHandover awaiting receipt, freezes the batch as handed_over and
    queues a batch_handover notification for Packing Area managers, all in
    one transaction.

    Args:
        batch_id: Batch to hand over
        handover_data: Dict with quantity and unit (default: the batch's
            output quantity and unit), quality_grade (default "A"),
            expiry_date, storage_instructions, notes
        principal: Acting user
        session: Optional SQLAlchemy session

    Returns:
        Dict of the created handover

    Raises:
        BatchNotFound: If the batch does not exist
        BatchFrozen: If the batch was already handed over
        BatchNotReadyForHandover: If the batch is not finished
        ValidationError: If quantity, unit, grade or expiry date is invalid
    """
    try:
        if session is not None:
            return _handover_impl(batch_id, handover_data, principal, session)
        with session_scope() as session:
            return _handover_impl(batch_id, handover_data, principal, session)
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to hand over batch", e)


def _handover_impl(batch_id, handover_data, principal, session) -> Dict[str, Any]:
    batch = _load_batch(session, batch_id, for_update=True)
    _ensure_not_frozen(batch, "handover_batch_to_packing")

    if batch.status not in HANDOVER_READY_STATUSES and (batch.progress or 0) < 100:
        log_operation(
            logger,
            "handover_batch_to_packing",
            "not_ready",
            level=logging.WARNING,
            batch_id=batch.id,
            status=batch.status,
            progress=batch.progress,
        )
        raise BatchNotReadyForHandover(batch.id, batch.status, batch.progress)

    quantity = handover_data.get("quantity", batch.output_quantity or batch.target_quantity)
    unit = handover_data.get("unit", batch.unit)
    grade = handover_data.get("quality_grade") or QualityGrade.A.value

    errors = []
    ok, message = validate_positive_number(quantity, "quantity", QUANTITY_DECIMAL_PLACES)
    if not ok:
        errors.append(message)
    ok, message = validate_required_string(unit, "unit")
    if not ok:
        errors.append(message)
    ok, message = validate_choice(grade, [g.value for g in QualityGrade], "quality_grade")
    if not ok:
        errors.append(message)
    try:
        expiry_date = as_date(handover_data.get("expiry_date"))
    except ValueError:
        errors.append("expiry_date: Must be an ISO date")
        expiry_date = None
    if errors:
        raise ValidationError(errors)

    now = utc_now()
    handover = store.add_record(
        session,
        BatchHandover(
            batch_id=batch.id,
            batch_number=batch.batch_number,
            product_id=batch.product_id,
            product_name=batch.product_name,
            quantity=parse_decimal(quantity),
            unit=unit,
            quality_grade=grade,
            expiry_date=expiry_date,
            storage_instructions=sanitize_string(handover_data.get("storage_instructions")),
            notes=sanitize_string(handover_data.get("notes")),
            handover_date=now,
            handed_over_by=principal_id(principal),
            handed_over_by_name=principal_label(principal, DEFAULT_ACTOR_LABELS["production"]),
            status=HandoverStatus.HANDED_OVER.value,
            received_by_packing=False,
        ),
    )

    batch.status = BatchStatus.HANDED_OVER.value
    batch.handover_id = handover.id
    batch.handed_over_at = now
    batch.updated_by = principal_id(principal)
    batch.updated_at = now
    store.flush_changes(session, "ProductionBatch")

    notification_service.enqueue_role_notification(
        ROLE_PACKING_AREA_MANAGER,
        notification_service.NOTIFY_BATCH_HANDOVER,
        f"Batch {batch.batch_number} ({batch.product_name}) handed over to Packing: "
        f"{handover.quantity} {handover.unit}",
        {
            "handover_id": handover.id,
            "batch_id": batch.id,
            "batch_number": batch.batch_number,
        },
        session=session,
    )

    log_operation(
        logger,
        "handover_batch_to_packing",
        "success",
        batch_id=batch.id,
        handover_id=handover.id,
        quantity=str(handover.quantity),
        unit=handover.unit,
    )
    return handover.to_dict()


def get_batch_handovers(
    status: Optional[str] = None,
    received_by_packing: Optional[bool] = None,
    session=None,
) -> List[Dict[str, Any]]:
    """Handovers filtered by status and/or receipt flag, newest first."""
    if session is not None:
        return _get_batch_handovers_impl(status, received_by_packing, session)
    with session_scope() as session:
        return _get_batch_handovers_impl(status, received_by_packing, session)


def _get_batch_handovers_impl(status, received_by_packing, session) -> List[Dict[str, Any]]:
    handovers = store.list_documents(
        session,
        "batchHandovers",
        order_by=BatchHandover.id.desc(),
        status=status,
        received_by_packing=received_by_packing,
    )
    return [handover.to_dict() for handover in handovers]


# =============================================================================
# Monitoring
# =============================================================================


def get_batches_for_monitoring(
    status: Optional[str] = None, product_id: Optional[str] = None, session=None
) -> List[Dict[str, Any]]:
    """
    Batches with derived monitoring metrics, newest first.

    Adds to each batch dict:
        efficiency: output / target * 100 (1 decimal), None without output
        cycle_time_days: Days from creation to completion (or now)
        is_delayed: Past expected_completion_date and not yet finished
    """
    if session is not None:
        return _get_batches_for_monitoring_impl(status, product_id, session)
    with session_scope() as session:
        return _get_batches_for_monitoring_impl(status, product_id, session)


def _get_batches_for_monitoring_impl(status, product_id, session) -> List[Dict[str, Any]]:
    now = to_naive_utc(utc_now())
    today = now.date()
    batches = store.list_documents(
        session,
        "productionBatches",
        order_by=ProductionBatch.id.desc(),
        status=status,
        product_id=product_id,
    )

    results = []
    for batch in batches:
        data = batch.to_dict()

        if batch.output_quantity is not None and batch.target_quantity:
            ratio = Decimal(batch.output_quantity) / Decimal(batch.target_quantity) * 100
            data["efficiency"] = _round1(ratio)
        else:
            data["efficiency"] = None

        end = to_naive_utc(batch.completed_at) or now
        start = to_naive_utc(batch.created_at)
        seconds = Decimal(str((end - start).total_seconds()))
        data["cycle_time_days"] = _round1(seconds / Decimal(86400))

        data["is_delayed"] = bool(
            batch.expected_completion_date is not None
            and today > batch.expected_completion_date
            and batch.status not in FINISHED_STATUSES
        )
        results.append(data)

    return results
