"""Order lifecycle: creation, line items, totals and status changes.

Every mutation of an order's line items runs in one transaction that first
locks the order row, mutates the items, then recomputes ``total_amount`` as a
fresh sum over the current item set.
"""
from datetime import date, datetime, time, timedelta
from decimal import Decimal
import logging

from sqlalchemy import func

from restohub import db
from restohub.errors import NotFoundError, ValidationError
from restohub.middleware.utils import log_function_call
from restohub.models import (
    Branch, DiningTable, MenuItem, Order, OrderItem, OrderStatus, ORDER_STATUSES
)
from restohub.services import audit

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
DEFAULT_PER_PAGE = 20
MAX_PER_PAGE = 100


def _to_money(value):
    return Decimal(str(value or 0)).quantize(CENT)


def _validate_quantity(quantity):
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ValidationError("Quantity must be at least 1", code="invalid_quantity")


def _parse_status(status):
    try:
        return OrderStatus(status)
    except ValueError:
        raise ValidationError(
            f"Invalid status '{status}'. Allowed values: {', '.join(ORDER_STATUSES)}",
            code="invalid_status")


def _lock_order(order_id):
    """Load the order with a row lock held until the transaction ends."""
    order = Order.query.filter_by(id=order_id).with_for_update().first()
    if order is None:
        raise NotFoundError("Order not found", code="order_not_found")
    return order


def _lock_open_order(order_id):
    """Lock the order and refuse changes once it is completed or cancelled."""
    order = _lock_order(order_id)
    current = OrderStatus(order.status)
    if current.is_terminal:
        db.session.rollback()
        raise ValidationError(
            f"Cannot modify items of order with status '{current.value}'",
            code="order_closed")
    return order


def _get_line(order_item_id):
    line = db.session.get(OrderItem, order_item_id)
    if line is None:
        raise NotFoundError("Order item not found", code="order_item_not_found")
    return line


def _apply_total(order):
    total = db.session.query(
        func.coalesce(func.sum(OrderItem.quantity * OrderItem.unit_price), 0)
    ).filter(OrderItem.order_id == order.id).scalar()
    order.total_amount = _to_money(total)
    return order.total_amount


def _add_line(order, item_id, quantity, note=None):
    _validate_quantity(quantity)
    menu_item = db.session.get(MenuItem, item_id)
    if menu_item is None or menu_item.is_deleted:
        raise NotFoundError("Menu item not found", code="menu_item_not_found")

    line = OrderItem.query.filter_by(order_id=order.id, item_id=menu_item.id).first()
    if line is not None:
        line.quantity = line.quantity + quantity
    else:
        line = OrderItem(order_id=order.id, item_id=menu_item.id, quantity=quantity,
                         unit_price=menu_item.price, note=note)
        db.session.add(line)
    return line


def _date_bounds(query, date_from=None, date_to=None):
    if date_from:
        start = date_from if isinstance(date_from, datetime) else \
            datetime.combine(date_from, time.min)
        query = query.filter(Order.created_at >= start)
    if date_to:
        if isinstance(date_to, datetime):
            query = query.filter(Order.created_at <= date_to)
        elif isinstance(date_to, date):
            query = query.filter(
                Order.created_at < datetime.combine(date_to + timedelta(days=1), time.min))
    return query


def _page(query, page, per_page):
    page = max(int(page or 1), 1)
    per_page = min(max(int(per_page or DEFAULT_PER_PAGE), 1), MAX_PER_PAGE)
    result = query.order_by(Order.created_at.desc(), Order.id.desc()).paginate(
        page=page, per_page=per_page, error_out=False)
    return {
        "orders": [order.to_dict(include_items=False) for order in result.items],
        "total": result.total,
        "pages": result.pages,
        "current_page": result.page,
        "per_page": per_page,
    }


def create_order(owner_id, data):
    """Create a pending order; optional ``items`` are added in the same transaction."""
    branch_id = data.get("branch_id")
    table_id = data.get("table_id")
    if not branch_id or not table_id:
        raise ValidationError("branch_id and table_id are required", code="missing_fields")

    branch = db.session.get(Branch, branch_id)
    if branch is None or branch.is_deleted:
        raise NotFoundError("Branch not found", code="branch_not_found")
    table = db.session.get(DiningTable, table_id)
    if table is None or table.is_deleted:
        raise NotFoundError("Table not found", code="table_not_found")
    if table.branch_id != branch.id:
        raise ValidationError("Table does not belong to this branch", code="table_branch_mismatch")

    order = Order(
        user_id=owner_id,
        branch_id=branch.id,
        table_id=table.id,
        status=OrderStatus.PENDING.value,
        notes=data.get("notes") or "",
        total_amount=Decimal("0.00"),
    )
    db.session.add(order)
    try:
        db.session.flush()
        for entry in data.get("items") or []:
            _add_line(order, entry.get("item_id"), entry.get("quantity"), entry.get("note"))
        _apply_total(order)
    except (NotFoundError, ValidationError):
        db.session.rollback()
        raise
    db.session.commit()

    logger.info("Order created", extra={
        'event': 'order_created', 'order_id': order.id, 'user_id': owner_id})
    return order


def get_order(order_id):
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found", code="order_not_found")
    return order


def list_orders(filters=None):
    filters = filters or {}
    query = Order.query
    if filters.get("status"):
        query = query.filter(Order.status == _parse_status(filters["status"]).value)
    if filters.get("branch_id"):
        query = query.filter(Order.branch_id == filters["branch_id"])
    if filters.get("user_id"):
        query = query.filter(Order.user_id == filters["user_id"])
    query = _date_bounds(query, filters.get("date_from"), filters.get("date_to"))
    return _page(query, filters.get("page"), filters.get("per_page"))


def list_user_orders(user_id, page=1, per_page=DEFAULT_PER_PAGE):
    return _page(Order.query.filter(Order.user_id == user_id), page, per_page)


@log_function_call
def add_order_item(order_id, item_id, quantity, note=None):
    """Add ``quantity`` of a menu item; repeated adds accumulate on one line."""
    _validate_quantity(quantity)
    order = _lock_open_order(order_id)
    try:
        _add_line(order, item_id, quantity, note)
        _apply_total(order)
    except NotFoundError:
        db.session.rollback()
        raise
    db.session.commit()
    return order


@log_function_call
def update_order_item_quantity(order_item_id, quantity):
    _validate_quantity(quantity)
    line = _get_line(order_item_id)
    order = _lock_open_order(line.order_id)
    line.quantity = quantity
    _apply_total(order)
    db.session.commit()
    return order


@log_function_call
def remove_order_item(order_item_id):
    line = _get_line(order_item_id)
    order = _lock_open_order(line.order_id)
    db.session.delete(line)
    _apply_total(order)
    db.session.commit()
    return order


def recalculate_order_total(order_id):
    """Recompute ``total_amount`` from scratch and persist it."""
    order = _lock_order(order_id)
    total = _apply_total(order)
    db.session.commit()
    return total


def update_order_status(order_id, status, actor_id=None):
    target = _parse_status(status)
    order = _lock_order(order_id)
    old_status = order.status
    current = OrderStatus(old_status)
    if current.is_terminal and target is not current:
        db.session.rollback()
        raise ValidationError(
            f"Cannot change status of order with status '{current.value}'",
            code="invalid_status_transition")
    order.status = target.value
    db.session.commit()

    audit.log_action("order_status_changed", user_id=actor_id, details={
        "order_id": order.id,
        "old_status": old_status,
        "new_status": target.value,
    })
    logger.info("Order status changed", extra={
        'event': 'order_status_changed',
        'order_id': order.id,
        'old_status': old_status,
        'new_status': target.value
    })
    return order


def cancel_order(order_id, actor_id=None, reason=None):
    order = _lock_order(order_id)
    current = OrderStatus(order.status)
    if current.is_terminal:
        db.session.rollback()
        raise ValidationError(
            f"Cannot cancel order with status '{current.value}'",
            code="invalid_status_transition")

    order.status = OrderStatus.CANCELLED.value
    db.session.commit()

    audit.log_action("order_status_changed", user_id=actor_id, details={
        "order_id": order.id,
        "old_status": current.value,
        "new_status": OrderStatus.CANCELLED.value,
        "reason": reason,
    })
    return order


def get_order_statistics(branch_id=None, date_from=None, date_to=None):
    """Order count per status and revenue over a branch/date window."""
    query = db.session.query(
        Order.status,
        func.count(Order.id),
        func.coalesce(func.sum(Order.total_amount), 0),
    )
    if branch_id:
        query = query.filter(Order.branch_id == branch_id)
    query = _date_bounds(query, date_from, date_to).group_by(Order.status)

    by_status = {status: 0 for status in ORDER_STATUSES}
    total = 0
    revenue = Decimal("0.00")
    for status, count, amount in query.all():
        by_status[status] = count
        total += count
        revenue += _to_money(amount)

    return {"total": total, "by_status": by_status, "total_revenue": float(revenue)}
