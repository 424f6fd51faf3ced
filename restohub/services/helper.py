"""Generic pass-through persistence used by the branch, table and menu endpoints."""
import logging

from sqlalchemy.exc import IntegrityError

from restohub import db
from restohub.errors import ConflictError, NotFoundError

logger = logging.getLogger(__name__)


def _integrity_conflict(e, entity):
    db.session.rollback()
    logger.warning("Integrity error", extra={
        'event': 'integrity_error', 'entity': entity, 'exception': str(e.orig)})
    if "name" in str(e.orig) or "number" in str(e.orig):
        return ConflictError(f"{entity.capitalize()} with this name already exists.",
                             code=f"{entity}_exists")
    return ConflictError(f"Could not save {entity}: conflicting data.", code="integrity_error")


# Create a new entry
def create_logic(data, Model, entity):
    """Business logic to create a new entry"""
    item = Model(**data)
    try:
        db.session.add(item)
        db.session.commit()
    except IntegrityError as e:
        raise _integrity_conflict(e, entity)

    return {
        f"{entity}": item.to_dict(),
        "message": f"{entity.capitalize()} created successfully",
        "status": 201
    }, 201


# Fetch all items from the database
def get_all_item_logic(Model, entity, plural=None, **filters):
    """Fetch all items that are not soft deleted."""
    items = Model.query.filter_by(is_deleted=False, **filters).order_by(Model.id).all()
    plural = plural or f"{entity}s"
    return {plural: [item.to_dict() for item in items],
            "message": f"all {plural} fetched successfully", "status": 200}, 200


def get_live_item(id, Model, entity):
    item = db.session.get(Model, id)
    if item is None or item.is_deleted:
        raise NotFoundError(f"{entity.capitalize()} not found.", code=f"{entity}_not_found")
    return item


# Fetch an item by ID
def get_item_by_id_logic(id, Model, entity):
    """Fetch an item by ID."""
    item = get_live_item(id, Model, entity)
    return {f"{entity}": item.to_dict(), "message": f"{entity} fetched successfully",
            "status": 200}, 200


def update_logic(item, data, entity):
    for key, value in data.items():
        if hasattr(item, key):
            setattr(item, key, value)
    try:
        db.session.commit()
    except IntegrityError as e:
        raise _integrity_conflict(e, entity)

    return {
        f"{entity}": item.to_dict(),
        "message": f"{entity.capitalize()} updated successfully",
        "status": 200
    }, 200


# Soft delete an item
def delete_logic(id, Model, entity):
    """Mark an item deleted."""
    item = get_live_item(id, Model, entity)
    item.is_deleted = True
    db.session.commit()
    return {"message": f"{entity} deleted successfully", "status": 200}, 200
