import logging

from restohub import db
from restohub.errors import ConflictError
from restohub.models import MenuItem, OrderItem
from restohub.services.helper import get_live_item

logger = logging.getLogger(__name__)


def delete_menu_item(item_id):
    """Soft delete a menu item unless an order still references it."""
    item = get_live_item(item_id, MenuItem, "item")
    if OrderItem.query.filter_by(item_id=item.id).first() is not None:
        raise ConflictError("Menu item is referenced by existing orders and cannot be deleted",
                            code="menu_item_in_use")
    item.is_deleted = True
    db.session.commit()
    logger.info("Menu item deleted", extra={'event': 'menu_item_deleted'})
    return {"message": "item deleted successfully", "status": 200}, 200
