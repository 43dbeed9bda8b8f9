"""Service layer exception classes for batchflow.

This module defines all custom exceptions used by the service layer to provide
consistent error handling across the application. Every exception carries a
human-readable `message` and an `http_status_code` so an outer layer can map
it to a response without inspecting the type.

Exception Hierarchy:
    ServiceError (500)
    ├── NotFoundError (404)
    │   ├── BatchNotFound
    │   ├── HandoverNotFound
    │   ├── StockNotFound
    │   ├── LocationNotFound
    │   ├── VariantNotFound
    │   ├── PackagedProductNotFound
    │   ├── DispatchNotFound
    │   ├── UserNotFound
    │   └── NotificationNotFound
    ├── ValidationError (400)
    ├── IncompatibleUnitsError (400)
    ├── InsufficientStock (422)
    ├── AlreadyClaimed (409)
    ├── AlreadyReceived (409)
    ├── PreconditionFailed (409)
    │   ├── BatchNotReadyForHandover
    │   └── BatchFrozen
    ├── InvalidStageTransition (409)
    ├── InvalidStatusTransition (409)
    ├── ConcurrentModificationError (409)
    └── DatabaseError (500)
"""

from typing import Any, List, Optional


class ServiceError(Exception):
    """Base exception for all service layer errors.

    All service-specific exceptions should inherit from this class.

    Attributes:
        message: Human-readable description
        http_status_code: Status an API layer would answer with
    """

    http_status_code = 500

    def __init__(self, message: str = "An unexpected service error occurred"):
        self.message = message
        super().__init__(message)


# ============================================================================
# Not found
# ============================================================================


class NotFoundError(ServiceError):
    """Raised when a referenced entity does not exist.

    Args:
        entity: Entity name used in the message (e.g. "Batch")
        identifier: The id or key that was looked up
    """

    http_status_code = 404
    entity = "Record"

    def __init__(self, identifier: Any, entity: Optional[str] = None):
        self.identifier = identifier
        if entity is not None:
            self.entity = entity
        super().__init__(f"{self.entity} with ID {identifier} not found")


class BatchNotFound(NotFoundError):
    """Raised when a production batch cannot be found by ID.

    Example:
        >>> raise BatchNotFound(12)
        BatchNotFound: Production batch with ID 12 not found
    """

    entity = "Production batch"

    def __init__(self, batch_id: Any):
        self.batch_id = batch_id
        super().__init__(batch_id)


class HandoverNotFound(NotFoundError):
    entity = "Batch handover"

    def __init__(self, handover_id: Any):
        self.handover_id = handover_id
        super().__init__(handover_id)


class StockNotFound(NotFoundError):
    entity = "Packing area stock"

    def __init__(self, stock_id: Any):
        self.stock_id = stock_id
        super().__init__(stock_id)


class LocationNotFound(NotFoundError):
    entity = "Packing area location"

    def __init__(self, location_id: Any):
        self.location_id = location_id
        super().__init__(location_id)


class VariantNotFound(NotFoundError):
    entity = "Product variant"

    def __init__(self, variant_id: Any):
        self.variant_id = variant_id
        super().__init__(variant_id)


class PackagedProductNotFound(NotFoundError):
    entity = "Packaged product"

    def __init__(self, packaged_product_id: Any):
        self.packaged_product_id = packaged_product_id
        super().__init__(packaged_product_id)


class DispatchNotFound(NotFoundError):
    entity = "FG dispatch"

    def __init__(self, dispatch_id: Any):
        self.dispatch_id = dispatch_id
        super().__init__(dispatch_id)


class UserNotFound(NotFoundError):
    entity = "User"

    def __init__(self, uid: Any):
        self.uid = uid
        super().__init__(uid)


class NotificationNotFound(NotFoundError):
    entity = "Notification"

    def __init__(self, notification_id: Any):
        self.notification_id = notification_id
        super().__init__(notification_id)


# ============================================================================
# Validation
# ============================================================================


class ValidationError(ServiceError):
    """Raised when data validation fails.

    Args:
        errors: List of validation messages (a single string is accepted)
    """

    http_status_code = 400

    def __init__(self, errors):
        if isinstance(errors, str):
            errors = [errors]
        self.errors: List[str] = list(errors)
        super().__init__(f"Validation failed: {'; '.join(self.errors)}")


class IncompatibleUnitsError(ServiceError):
    """Raised when a conversion mixes unit families (e.g. kg against ml)."""

    http_status_code = 400

    def __init__(self, from_unit: str, to_unit: str):
        self.from_unit = from_unit
        self.to_unit = to_unit
        super().__init__(
            f"Cannot convert between incompatible units '{from_unit}' and '{to_unit}'"
        )


# ============================================================================
# Business rules
# ============================================================================


class InsufficientStock(ServiceError):
    """Raised when a requested quantity exceeds what is currently recorded.

    Args:
        item: Description of the stock row (product name or id)
        required: Quantity requested
        available: Quantity on record
    """

    http_status_code = 422

    def __init__(self, item: str, required, available):
        self.item = item
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient stock for {item}: requested {required}, available {available}"
        )


class AlreadyClaimed(ServiceError):
    """Raised when a dispatch is claimed a second time."""

    http_status_code = 409

    def __init__(self, dispatch_id: Any, release_code: Optional[str] = None):
        self.dispatch_id = dispatch_id
        self.release_code = release_code
        label = release_code or dispatch_id
        super().__init__(f"Dispatch {label} has already been claimed")


class AlreadyReceived(ServiceError):
    """Raised when a handover is received by Packing a second time."""

    http_status_code = 409

    def __init__(self, handover_id: Any):
        self.handover_id = handover_id
        super().__init__(f"Batch handover {handover_id} has already been received")


class PreconditionFailed(ServiceError):
    """Raised when an operation is attempted on an entity in the wrong state."""

    http_status_code = 409


class BatchNotReadyForHandover(PreconditionFailed):
    """Raised when a batch is handed over before it is completed."""

    def __init__(self, batch_id: Any, status: str, progress: int):
        self.batch_id = batch_id
        self.status = status
        self.progress = progress
        super().__init__(
            f"Batch {batch_id} must be completed or QC passed before handover "
            f"(status '{status}', progress {progress}%)"
        )


class BatchFrozen(PreconditionFailed):
    """Raised when a handed-over batch is modified."""

    def __init__(self, batch_id: Any):
        self.batch_id = batch_id
        super().__init__(f"Batch {batch_id} has been handed over and can no longer change")


class InvalidStageTransition(ServiceError):
    """Raised when a batch would move back to an earlier stage."""

    http_status_code = 409

    def __init__(self, batch_id: Any, current_stage: str, requested_stage: str):
        self.batch_id = batch_id
        self.current_stage = current_stage
        self.requested_stage = requested_stage
        super().__init__(
            f"Batch {batch_id} cannot move from stage '{current_stage}' "
            f"back to '{requested_stage}'"
        )


class InvalidStatusTransition(ServiceError):
    """Raised when a status change is not permitted from the current status."""

    http_status_code = 409

    def __init__(self, entity_id: Any, current_status: str, requested_status: str):
        self.entity_id = entity_id
        self.current_status = current_status
        self.requested_status = requested_status
        super().__init__(
            f"Cannot change status of {entity_id} from '{current_status}' "
            f"to '{requested_status}'"
        )


# ============================================================================
# Store failures
# ============================================================================


class ConcurrentModificationError(ServiceError):
    """Raised when a row changed underneath the current transaction.

    The operation was rolled back; the caller may re-read and retry.
    """

    http_status_code = 409

    def __init__(self, entity: str, original_error: Optional[Exception] = None):
        self.entity = entity
        self.original_error = original_error
        super().__init__(f"{entity} was modified concurrently; reload and retry")


class DatabaseError(ServiceError):
    """Raised when a database operation fails."""

    http_status_code = 500

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        self.original_error = original_error
        super().__init__(f"Database error: {message}")
