"""
Keyed document access over the ORM.

The workflow services address their records the way the stores they were
designed against do: by collection name and key, through four primitives.

    get     -> get_document(session, collection, key)
    set     -> set_document(session, collection, key, value)   (full overwrite)
    update  -> update_document(session, collection, key, fields) (shallow merge)
    push    -> push_document(session, collection, value)       (returns new key)

Every primitive takes the caller's session; none of them commit. Writes are
flushed immediately so a stale version counter surfaces here as
ConcurrentModificationError rather than at commit time.
"""

from typing import Any, Dict, List, Type

from sqlalchemy.orm.exc import StaleDataError

from ..models import (
    BaseModel,
    BatchHandover,
    FGDispatch,
    FGDispatchItem,
    FGInventoryMovement,
    FinishedGoodsInventory,
    Notification,
    NotificationOutbox,
    PackagedProduct,
    PackingActivity,
    PackingAreaLocation,
    PackingAreaStock,
    ProductionBatch,
    ProductionQCRecord,
    ProductVariant,
    StockMovement,
    User,
)
from .exceptions import ConcurrentModificationError

# collection name -> (model, key column)
COLLECTIONS: Dict[str, tuple] = {
    "users": (User, "uid"),
    "productionBatches": (ProductionBatch, "id"),
    "productionQCRecords": (ProductionQCRecord, "id"),
    "batchHandovers": (BatchHandover, "id"),
    "packingAreaStock": (PackingAreaStock, "id"),
    "packingAreaStockMovements": (StockMovement, "id"),
    "packingAreaLocations": (PackingAreaLocation, "id"),
    "productVariants": (ProductVariant, "id"),
    "packagedProducts": (PackagedProduct, "id"),
    "packingActivities": (PackingActivity, "id"),
    "fgDispatches": (FGDispatch, "id"),
    "fgDispatchItems": (FGDispatchItem, "id"),
    "finishedGoodsInventory": (FinishedGoodsInventory, "product_id"),
    "fgInventoryMovements": (FGInventoryMovement, "id"),
    "notificationOutbox": (NotificationOutbox, "id"),
    "notifications": (Notification, "id"),
}


def resolve_collection(collection: str):
    """
    Return (model class, key column name) for a collection.

    Raises:
        ValueError: If the collection is unknown
    """
    try:
        return COLLECTIONS[collection]
    except KeyError:
        raise ValueError(
            f"Unknown collection '{collection}'. "
            f"Known collections: {', '.join(sorted(COLLECTIONS))}"
        )


def flush_changes(session, entity: str) -> None:
    """
    Flush pending writes, translating a lost update into a service error.

    Raises:
        ConcurrentModificationError: If a versioned row changed since it was read
    """
    try:
        session.flush()
    except StaleDataError as e:
        raise ConcurrentModificationError(entity, e)


def get_document(session, collection: str, key: Any, for_update: bool = False):
    """
    Load one record by key, or None.

    Args:
        for_update: Request a row lock (SELECT ... FOR UPDATE) where the
            database supports it. The version counter still guards SQLite.
    """
    model, key_column = resolve_collection(collection)
    if key is None:
        return None
    query = session.query(model).filter(getattr(model, key_column) == key)
    if for_update:
        query = query.with_for_update()
    return query.first()


def list_documents(session, collection: str, order_by=None, **filters) -> List[BaseModel]:
    """
    Load all records of a collection matching equality filters.

    Filters whose value is None are ignored, so optional service arguments
    can be passed straight through.
    """
    model, _ = resolve_collection(collection)
    query = session.query(model)
    columns = model.column_names()
    for field, value in filters.items():
        if value is None:
            continue
        if field not in columns:
            raise ValueError(f"{model.__name__} has no field '{field}'")
        query = query.filter(getattr(model, field) == value)
    if order_by is not None:
        query = query.order_by(order_by)
    else:
        query = query.order_by(model.id)
    return query.all()


def set_document(session, collection: str, key: Any, value: Dict[str, Any]):
    """
    Overwrite the record at `key` with `value`, creating it if absent.

    On overwrite, nullable columns missing from `value` are cleared;
    required columns missing from `value` keep their current value.
    """
    model, key_column = resolve_collection(collection)
    record = get_document(session, collection, key)
    data = dict(value)
    if key_column != "id":
        data[key_column] = key

    if record is None:
        record = _build(model, data)
        if key_column == "id" and key is not None:
            record.id = key
        session.add(record)
    else:
        for column in model.__table__.columns:
            name = column.key
            if name in model.PROTECTED_FIELDS or name == key_column:
                continue
            if name in data:
                setattr(record, name, data[name])
            elif column.nullable:
                setattr(record, name, None)

    flush_changes(session, model.__name__)
    return record


def update_document(session, collection: str, key: Any, fields: Dict[str, Any]):
    """
    Shallow-merge `fields` into the record at `key`.

    Returns the record, or None when no record has that key.
    """
    model, _ = resolve_collection(collection)
    record = get_document(session, collection, key)
    if record is None:
        return None
    record.update_from_dict(fields)
    flush_changes(session, model.__name__)
    return record


def push_document(session, collection: str, value: Dict[str, Any]) -> Any:
    """Append a new record and return its generated key."""
    model, key_column = resolve_collection(collection)
    record = _build(model, value)
    session.add(record)
    flush_changes(session, model.__name__)
    return getattr(record, key_column)


def add_record(session, record: BaseModel) -> BaseModel:
    """push for callers that already hold a model instance."""
    session.add(record)
    flush_changes(session, type(record).__name__)
    return record


def _build(model: Type[BaseModel], data: Dict[str, Any]) -> BaseModel:
    columns = model.column_names()
    unknown = sorted(set(data) - columns)
    if unknown:
        raise ValueError(f"{model.__name__} has no field(s): {', '.join(unknown)}")
    return model(**{k: v for k, v in data.items() if k not in ("id", "version")})
