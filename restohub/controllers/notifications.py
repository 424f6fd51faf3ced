from flask_smorest import Blueprint
from flask.views import MethodView
from flask_jwt_extended import get_jwt, jwt_required

from restohub.errors import ForbiddenError
from restohub.models import Branch
from restohub.permissions import Capability, has_capability, permission_required
from restohub.schemas import (
    BranchNotificationQuerySchema, NotificationQuerySchema, NotificationSchema
)
from restohub.services import notifications
from restohub.services.helper import get_live_item


blp = Blueprint("Notifications", __name__, url_prefix="/api/notifications",
                description="User and branch notifications")


def _load_for_caller(notification_id):
    """Recipients see their own notifications; order managers see all of them."""
    notification = notifications.get_notification(notification_id)
    claims = get_jwt()
    if has_capability(claims, Capability.MANAGE_ORDERS):
        return notification
    if notification.user_id is None or notification.user_id != claims.get("user_id"):
        raise ForbiddenError("Access forbidden: not your notification",
                             code="notification_access_denied")
    return notification


@blp.route("")
class NotificationList(MethodView):
    @jwt_required()
    @blp.arguments(NotificationQuerySchema, location="query")
    def get(self, args):
        return notifications.list_user_notifications(get_jwt().get("user_id"), **args)

    @permission_required(Capability.MANAGE_ORDERS, Capability.MANAGE_STAFF)
    @blp.arguments(NotificationSchema)
    def post(self, data):
        notification = notifications.create_notification(data)
        return {"notification": notification.to_dict(),
                "message": "Notification created successfully", "status": 201}, 201


@blp.route("/unread-count")
class UnreadCount(MethodView):
    @jwt_required()
    def get(self):
        return {"unread_count": notifications.get_unread_count(get_jwt().get("user_id"))}


@blp.route("/read-all")
class ReadAll(MethodView):
    @jwt_required()
    def patch(self):
        updated = notifications.mark_all_as_read(get_jwt().get("user_id"))
        return {"updated": updated, "message": "All notifications marked as read", "status": 200}


@blp.route("/branch/<int:branch_id>")
class BranchNotifications(MethodView):
    @permission_required(Capability.MANAGE_ORDERS)
    @blp.arguments(BranchNotificationQuerySchema, location="query")
    def get(self, args, branch_id):
        get_live_item(branch_id, Branch, "branch")
        return notifications.list_branch_notifications(branch_id, args.get("is_read"))


@blp.route("/<int:notification_id>")
class NotificationDetail(MethodView):
    @jwt_required()
    def get(self, notification_id):
        return {"notification": _load_for_caller(notification_id).to_dict()}

    @jwt_required()
    def delete(self, notification_id):
        _load_for_caller(notification_id)
        notifications.delete_notification(notification_id)
        return {"message": "Notification deleted successfully", "status": 200}


@blp.route("/<int:notification_id>/read")
class NotificationRead(MethodView):
    @jwt_required()
    def patch(self, notification_id):
        _load_for_caller(notification_id)
        notification = notifications.mark_as_read(notification_id)
        return {"notification": notification.to_dict(),
                "message": "Notification marked as read", "status": 200}
