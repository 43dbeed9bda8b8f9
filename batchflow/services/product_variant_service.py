"""
Product variant master data.

Variants define the packaging SKUs a product is packed into; their size
and unit are the conversion rate used by the packaging service. Variants
are never hard-deleted: delete_variant() marks them inactive.

All functions accept an optional `session` parameter. If provided, the function
uses the caller's session (for transaction atomicity). If None, the function
creates its own session via session_scope().
"""

from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..models import ProductVariant
from ..models.enums import VariantStatus
from ..utils.constants import VARIANT_SIZE_DECIMAL_PLACES
from ..utils.validators import (
    parse_decimal,
    sanitize_string,
    validate_choice,
    validate_positive_number,
    validate_required_string,
)
from . import document_store as store
from .database import session_scope
from .exceptions import DatabaseError, ValidationError, VariantNotFound
from .identity import principal_id
from .logging_utils import get_service_logger, log_operation
from .unit_conversion import get_unit_family

logger = get_service_logger(__name__)

_UPDATABLE_FIELDS = (
    "product_name",
    "name",
    "size",
    "unit",
    "packaging_type",
    "sku",
    "description",
    "status",
)


def load_variant(session, variant_id) -> ProductVariant:
    """Load a variant or raise VariantNotFound."""
    variant = store.get_document(session, "productVariants", variant_id)
    if variant is None:
        raise VariantNotFound(variant_id)
    return variant


def _validate_variant_data(data: Dict[str, Any], partial: bool = False) -> List[str]:
    errors = []
    required = ("name", "unit") if partial else ("product_id", "name", "unit")
    for field in required:
        if partial and field not in data:
            continue
        ok, message = validate_required_string(data.get(field), field)
        if not ok:
            errors.append(message)
    if not partial or "size" in data:
        ok, message = validate_positive_number(data.get("size"), "size", VARIANT_SIZE_DECIMAL_PLACES)
        if not ok:
            errors.append(message)
    if "status" in data:
        ok, message = validate_choice(data["status"], [s.value for s in VariantStatus], "status")
        if not ok:
            errors.append(message)
    return errors


def create_product_variant(
    variant_data: Dict[str, Any], *, principal=None, session=None
) -> Dict[str, Any]:
    """
    Create a product variant.

    Args:
        variant_data: Dict with product_id, name, size (> 0), unit and
            optional product_name, packaging_type, sku, description

    Returns:
        Dict of the created variant

    Raises:
        ValidationError: If a required field is missing or invalid
    """
    errors = _validate_variant_data(variant_data)
    if errors:
        raise ValidationError(errors)

    try:
        if session is not None:
            return _create_variant_impl(variant_data, principal, session)
        with session_scope() as session:
            return _create_variant_impl(variant_data, principal, session)
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to create product variant", e)


def _create_variant_impl(variant_data, principal, session) -> Dict[str, Any]:
    variant = store.add_record(
        session,
        ProductVariant(
            product_id=str(variant_data["product_id"]),
            product_name=sanitize_string(variant_data.get("product_name")),
            name=sanitize_string(variant_data["name"]),
            size=parse_decimal(variant_data["size"]),
            unit=sanitize_string(variant_data["unit"]),
            packaging_type=sanitize_string(variant_data.get("packaging_type")),
            sku=sanitize_string(variant_data.get("sku")),
            description=sanitize_string(variant_data.get("description")),
            status=VariantStatus.ACTIVE.value,
            created_by=principal_id(principal),
        ),
    )
    log_operation(
        logger,
        "create_product_variant",
        "success",
        variant_id=variant.id,
        product_id=variant.product_id,
        unit_family=get_unit_family(variant.unit),
    )
    return variant.to_dict()


def get_product_variant(variant_id: int, session=None) -> Dict[str, Any]:
    """
    Get a variant by ID.

    Raises:
        VariantNotFound: If the variant does not exist
    """
    if session is not None:
        return load_variant(session, variant_id).to_dict()
    with session_scope() as session:
        return load_variant(session, variant_id).to_dict()


def get_product_variants(
    product_id: str, include_inactive: bool = False, session=None
) -> List[Dict[str, Any]]:
    """Variants of one product (active only unless include_inactive)."""
    status = None if include_inactive else VariantStatus.ACTIVE.value
    if session is not None:
        return _list_variants(session, product_id=product_id, status=status)
    with session_scope() as session:
        return _list_variants(session, product_id=product_id, status=status)


def get_all_variants(include_inactive: bool = False, session=None) -> List[Dict[str, Any]]:
    """All variants (active only unless include_inactive)."""
    status = None if include_inactive else VariantStatus.ACTIVE.value
    if session is not None:
        return _list_variants(session, status=status)
    with session_scope() as session:
        return _list_variants(session, status=status)


def _list_variants(session, **filters) -> List[Dict[str, Any]]:
    variants = store.list_documents(session, "productVariants", **filters)
    return [variant.to_dict() for variant in variants]


def update_variant(
    variant_id: int, updates: Dict[str, Any], *, principal=None, session=None
) -> Dict[str, Any]:
    """
    Update a variant's descriptive fields, size, unit or status.

    Raises:
        VariantNotFound: If the variant does not exist
        ValidationError: If a field is unknown or invalid
    """
    errors = [
        f"{key}: Cannot be updated here" for key in sorted(set(updates) - set(_UPDATABLE_FIELDS))
    ]
    errors.extend(_validate_variant_data(updates, partial=True))
    if errors:
        raise ValidationError(errors)

    try:
        if session is not None:
            return _update_variant_impl(variant_id, updates, principal, session)
        with session_scope() as session:
            return _update_variant_impl(variant_id, updates, principal, session)
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to update product variant", e)


def _update_variant_impl(variant_id, updates, principal, session) -> Dict[str, Any]:
    variant = load_variant(session, variant_id)
    fields = dict(updates)
    if "size" in fields:
        fields["size"] = parse_decimal(fields["size"])
    for field in ("product_name", "name", "unit", "packaging_type", "sku", "description"):
        if field in fields:
            fields[field] = sanitize_string(fields[field])
    fields["updated_by"] = principal_id(principal)
    variant.update_from_dict(fields)
    store.flush_changes(session, "ProductVariant")

    log_operation(
        logger, "update_variant", "success", variant_id=variant.id, fields=sorted(updates)
    )
    return variant.to_dict()


def delete_variant(variant_id: int, *, principal=None, session=None) -> Dict[str, Any]:
    """Soft-delete a variant by marking it inactive."""
    return update_variant(
        variant_id,
        {"status": VariantStatus.INACTIVE.value},
        principal=principal,
        session=session,
    )


def find_variant_for_product(product_id: str, variant_id: Optional[int], session) -> ProductVariant:
    """
    Load a variant and check that it is active.

    Transaction boundary: Inherits session from caller.

    Raises:
        VariantNotFound: If the variant does not exist
        ValidationError: If the variant is inactive or belongs to another product
    """
    variant = load_variant(session, variant_id)
    errors = []
    if variant.status != VariantStatus.ACTIVE.value:
        errors.append(f"Variant {variant.id} is inactive")
    if product_id is not None and variant.product_id != product_id:
        errors.append(f"Variant {variant.id} does not belong to product {product_id}")
    if errors:
        raise ValidationError(errors)
    return variant
