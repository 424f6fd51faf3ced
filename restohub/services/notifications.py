"""Per-user and per-branch notifications with read tracking."""
import logging

from sqlalchemy import update

from restohub import db
from restohub.errors import NotFoundError, ValidationError
from restohub.models import Branch, Notification, NOTIFICATION_TYPES, Order, User, utcnow

logger = logging.getLogger(__name__)

DEFAULT_PER_PAGE = 10
MAX_PER_PAGE = 100
BRANCH_FEED_LIMIT = 50


def _page(query, page, per_page):
    page = max(int(page or 1), 1)
    per_page = min(max(int(per_page or DEFAULT_PER_PAGE), 1), MAX_PER_PAGE)
    result = query.order_by(Notification.created_at.desc(), Notification.id.desc()).paginate(
        page=page, per_page=per_page, error_out=False)
    return {
        "notifications": [n.to_dict() for n in result.items],
        "total": result.total,
        "pages": result.pages,
        "current_page": result.page,
        "per_page": per_page,
    }


def list_user_notifications(user_id, page=1, per_page=DEFAULT_PER_PAGE, is_read=None,
                            notification_type=None):
    query = Notification.query.filter(Notification.user_id == user_id)
    if is_read is not None:
        query = query.filter(Notification.is_read.is_(bool(is_read)))
    if notification_type:
        query = query.filter(Notification.notification_type == notification_type)
    return _page(query, page, per_page)


def list_branch_notifications(branch_id, is_read=None):
    """Newest notifications addressed to a branch."""
    query = Notification.query.filter(Notification.branch_id == branch_id)
    if is_read is not None:
        query = query.filter(Notification.is_read.is_(bool(is_read)))
    items = query.order_by(Notification.created_at.desc(), Notification.id.desc()) \
        .limit(BRANCH_FEED_LIMIT).all()
    return {"notifications": [n.to_dict() for n in items], "total": len(items)}


def get_notification(notification_id):
    notification = db.session.get(Notification, notification_id)
    if notification is None:
        raise NotFoundError("Notification not found", code="notification_not_found")
    return notification


def create_notification(data):
    """Create an unread notification for a user, a branch, or both."""
    user_id = data.get("user_id")
    branch_id = data.get("branch_id")
    order_id = data.get("order_id")
    if not data.get("title") or not data.get("message"):
        raise ValidationError("title and message are required", code="missing_fields")
    if not user_id and not branch_id:
        raise ValidationError("user_id or branch_id is required", code="missing_recipient")

    notification_type = data.get("notification_type") or "info"
    if notification_type not in NOTIFICATION_TYPES:
        raise ValidationError(
            f"Invalid notification type '{notification_type}'. "
            f"Allowed values: {', '.join(NOTIFICATION_TYPES)}",
            code="invalid_notification_type")

    if user_id and db.session.get(User, user_id) is None:
        raise NotFoundError("User not found", code="user_not_found")
    if branch_id:
        branch = db.session.get(Branch, branch_id)
        if branch is None or branch.is_deleted:
            raise NotFoundError("Branch not found", code="branch_not_found")
    if order_id and db.session.get(Order, order_id) is None:
        raise NotFoundError("Order not found", code="order_not_found")

    notification = Notification(
        user_id=user_id,
        branch_id=branch_id,
        order_id=order_id,
        title=data["title"],
        message=data["message"],
        notification_type=notification_type,
        is_read=False,
    )
    db.session.add(notification)
    db.session.commit()

    logger.info("Notification created", extra={
        'event': 'notification_created', 'user_id': user_id, 'order_id': order_id})
    return notification


def mark_as_read(notification_id):
    notification = get_notification(notification_id)
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = utcnow()
        db.session.commit()
    return notification


def mark_all_as_read(user_id):
    """Mark every unread notification of the user as read; returns how many changed."""
    result = db.session.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        .values(is_read=True, read_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    return result.rowcount


def delete_notification(notification_id):
    notification = get_notification(notification_id)
    db.session.delete(notification)
    db.session.commit()


def get_unread_count(user_id):
    return Notification.query.filter(
        Notification.user_id == user_id, Notification.is_read.is_(False)).count()
