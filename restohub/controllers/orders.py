from flask_smorest import Blueprint
from flask.views import MethodView
from flask_jwt_extended import get_jwt, jwt_required

from restohub.errors import ForbiddenError
from restohub.models import OrderItem
from restohub.permissions import Capability, has_capability, permission_required
from restohub.schemas import (
    OrderCreateSchema, OrderItemInputSchema, OrderItemQuantitySchema, OrderStatusSchema,
    OrderCancelSchema, OrderQuerySchema, PaginationSchema, StatisticsQuerySchema
)
from restohub.services import orders
from restohub import db


blp = Blueprint("Orders", __name__, url_prefix="/api/orders",
                description="Orders and their line items")


def check_order_access(order):
    """Order managers see every order; other callers only their own."""
    claims = get_jwt()
    if has_capability(claims, Capability.MANAGE_ORDERS):
        return
    if order.user_id is None or order.user_id != claims.get("user_id"):
        raise ForbiddenError("Access forbidden: not your order", code="order_access_denied")


def _order_response(order, message, status=200):
    return {"order": order.to_dict(), "message": message, "status": status}, status


@blp.route("")
class OrderList(MethodView):
    @permission_required(Capability.MANAGE_ORDERS, Capability.CREATE_ORDER)
    @blp.arguments(OrderCreateSchema)
    def post(self, data):
        order = orders.create_order(get_jwt().get("user_id"), data)
        return _order_response(order, "Order created successfully", 201)

    @permission_required(Capability.MANAGE_ORDERS)
    @blp.arguments(OrderQuerySchema, location="query")
    def get(self, filters):
        return orders.list_orders(filters)


@blp.route("/mine")
class MyOrders(MethodView):
    @jwt_required()
    @blp.arguments(PaginationSchema, location="query")
    def get(self, args):
        return orders.list_user_orders(get_jwt().get("user_id"), args["page"], args["per_page"])


@blp.route("/statistics")
class OrderStatistics(MethodView):
    @permission_required(Capability.VIEW_ANALYTICS)
    @blp.arguments(StatisticsQuerySchema, location="query")
    def get(self, args):
        return {"statistics": orders.get_order_statistics(**args)}


@blp.route("/<int:order_id>")
class OrderDetail(MethodView):
    @jwt_required()
    def get(self, order_id):
        order = orders.get_order(order_id)
        check_order_access(order)
        return _order_response(order, "Order fetched successfully")


@blp.route("/<int:order_id>/status")
class OrderStatusUpdate(MethodView):
    @permission_required(Capability.MANAGE_ORDERS)
    @blp.arguments(OrderStatusSchema)
    def patch(self, data, order_id):
        order = orders.update_order_status(order_id, data["status"], actor_id=get_jwt().get("user_id"))
        return _order_response(order, "Order status updated successfully")


@blp.route("/<int:order_id>/cancel")
class OrderCancel(MethodView):
    @permission_required(Capability.MANAGE_ORDERS)
    @blp.arguments(OrderCancelSchema)
    def post(self, data, order_id):
        order = orders.cancel_order(order_id, actor_id=get_jwt().get("user_id"),
                                    reason=data.get("reason"))
        return _order_response(order, "Order cancelled successfully")


@blp.route("/<int:order_id>/items")
class OrderItems(MethodView):
    @permission_required(Capability.MANAGE_ORDERS, Capability.CREATE_ORDER)
    @blp.arguments(OrderItemInputSchema)
    def post(self, data, order_id):
        check_order_access(orders.get_order(order_id))
        order = orders.add_order_item(order_id, data["item_id"], data["quantity"], data.get("note"))
        return _order_response(order, "Item added to order", 201)


@blp.route("/items/<int:order_item_id>")
class OrderItemDetail(MethodView):

    def _check_line_access(self, order_item_id):
        line = db.session.get(OrderItem, order_item_id)
        if line is not None:
            check_order_access(line.order)

    @permission_required(Capability.MANAGE_ORDERS, Capability.CREATE_ORDER)
    @blp.arguments(OrderItemQuantitySchema)
    def patch(self, data, order_item_id):
        self._check_line_access(order_item_id)
        order = orders.update_order_item_quantity(order_item_id, data["quantity"])
        return _order_response(order, "Order item updated")

    @permission_required(Capability.MANAGE_ORDERS, Capability.CREATE_ORDER)
    def delete(self, order_item_id):
        self._check_line_access(order_item_id)
        order = orders.remove_order_item(order_item_id)
        return _order_response(order, "Order item removed")
