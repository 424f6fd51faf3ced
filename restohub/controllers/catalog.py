from flask_smorest import Blueprint
from flask.views import MethodView
from flask_jwt_extended import jwt_required

from restohub.models import Branch, DiningTable, MenuCategory, MenuItem
from restohub.permissions import Capability, permission_required
from restohub.schemas import BranchSchema, TableSchema, MenuCategorySchema, MenuItemSchema
from restohub.services.helper import (
    create_logic, get_all_item_logic, get_item_by_id_logic, get_live_item,
    update_logic, delete_logic
)
from restohub.services.menu import delete_menu_item


blp = Blueprint("Catalog", __name__, description="Branches, tables and menu")


def _require_branch(branch_id):
    if branch_id is not None:
        get_live_item(branch_id, Branch, "branch")


def _require_category(category_id):
    if category_id is not None:
        get_live_item(category_id, MenuCategory, "category")


# Branches

@blp.route("/api/branches")
class BranchList(MethodView):
    @jwt_required()
    def get(self):
        return get_all_item_logic(Branch, "branch", plural="branches")

    @permission_required(Capability.MANAGE_BRANCHES)
    @blp.arguments(BranchSchema)
    def post(self, data):
        return create_logic(data, Branch, "branch")


@blp.route("/api/branches/<int:branch_id>")
class BranchDetail(MethodView):
    @jwt_required()
    def get(self, branch_id):
        return get_item_by_id_logic(branch_id, Branch, "branch")

    @permission_required(Capability.MANAGE_BRANCHES)
    @blp.arguments(BranchSchema(partial=True))
    def put(self, data, branch_id):
        return update_logic(get_live_item(branch_id, Branch, "branch"), data, "branch")

    @permission_required(Capability.MANAGE_BRANCHES)
    def delete(self, branch_id):
        return delete_logic(branch_id, Branch, "branch")


# Tables

@blp.route("/api/tables")
class TableList(MethodView):
    @jwt_required()
    def get(self):
        return get_all_item_logic(DiningTable, "table")

    @permission_required(Capability.MANAGE_BRANCHES)
    @blp.arguments(TableSchema)
    def post(self, data):
        _require_branch(data["branch_id"])
        return create_logic(data, DiningTable, "table")


@blp.route("/api/tables/<int:table_id>")
class TableDetail(MethodView):
    @jwt_required()
    def get(self, table_id):
        return get_item_by_id_logic(table_id, DiningTable, "table")

    @permission_required(Capability.MANAGE_BRANCHES)
    @blp.arguments(TableSchema(partial=True))
    def put(self, data, table_id):
        _require_branch(data.get("branch_id"))
        return update_logic(get_live_item(table_id, DiningTable, "table"), data, "table")

    @permission_required(Capability.MANAGE_BRANCHES)
    def delete(self, table_id):
        return delete_logic(table_id, DiningTable, "table")


# Menu

@blp.route("/api/menu/categories")
class CategoryList(MethodView):
    def get(self):
        return get_all_item_logic(MenuCategory, "category", plural="categories")

    @permission_required(Capability.MANAGE_MENU)
    @blp.arguments(MenuCategorySchema)
    def post(self, data):
        _require_branch(data.get("branch_id"))
        return create_logic(data, MenuCategory, "category")


@blp.route("/api/menu/categories/<int:category_id>")
class CategoryDetail(MethodView):
    def get(self, category_id):
        return get_item_by_id_logic(category_id, MenuCategory, "category")

    @permission_required(Capability.MANAGE_MENU)
    @blp.arguments(MenuCategorySchema(partial=True))
    def put(self, data, category_id):
        return update_logic(get_live_item(category_id, MenuCategory, "category"), data, "category")

    @permission_required(Capability.MANAGE_MENU)
    def delete(self, category_id):
        return delete_logic(category_id, MenuCategory, "category")


@blp.route("/api/menu/items")
class MenuItemList(MethodView):
    def get(self):
        return get_all_item_logic(MenuItem, "item")

    @permission_required(Capability.MANAGE_MENU)
    @blp.arguments(MenuItemSchema)
    def post(self, data):
        _require_category(data.get("category_id"))
        return create_logic(data, MenuItem, "item")


@blp.route("/api/menu/items/<int:item_id>")
class MenuItemDetail(MethodView):
    def get(self, item_id):
        return get_item_by_id_logic(item_id, MenuItem, "item")

    @permission_required(Capability.MANAGE_MENU)
    @blp.arguments(MenuItemSchema(partial=True))
    def put(self, data, item_id):
        _require_category(data.get("category_id"))
        return update_logic(get_live_item(item_id, MenuItem, "item"), data, "item")

    @permission_required(Capability.MANAGE_MENU)
    def delete(self, item_id):
        """Delete a menu item that no order references."""
        return delete_menu_item(item_id)
