from marshmallow import (
    Schema,
    fields,
    validate,
    validates,
    ValidationError,
    validates_schema
)

from restohub.models import NOTIFICATION_TYPES, ORDER_STATUSES
from restohub.permissions import Capability

CAPABILITY_NAMES = [cap.value for cap in Capability]


# Auth

class RegisterSchema(Schema):
    user_name = fields.Str(required=True, validate=validate.Length(min=1, max=100))
    password = fields.Str(required=True, load_only=True)
    email = fields.Str(allow_none=True, validate=validate.Length(max=120))
    phone = fields.Str(allow_none=True, validate=validate.Length(max=20))
    role_id = fields.Int(allow_none=True)


class LoginSchema(Schema):
    email = fields.Str(required=True)
    password = fields.Str(required=True, load_only=True)


class TokenSchema(Schema):
    """Body carrying a JWT for refresh or introspection."""
    token = fields.Str(load_default=None)
    refresh_token = fields.Str(load_default=None)

    @validates_schema
    def validate_token_present(self, data, **kwargs):
        if not data.get("token") and not data.get("refresh_token"):
            raise ValidationError("A token is required.", field_name="token")


class ChangePasswordSchema(Schema):
    old_password = fields.Str(required=True, load_only=True)
    new_password = fields.Str(required=True, load_only=True)


class EmailSchema(Schema):
    email = fields.Str(required=True, validate=validate.Length(min=1, max=120))


class ResetPasswordSchema(Schema):
    token = fields.Str(required=True)
    new_password = fields.Str(required=True, load_only=True)
    confirm_password = fields.Str(required=True, load_only=True)


class VerifyEmailSchema(Schema):
    token = fields.Str(required=True)


class PasswordConfirmationSchema(Schema):
    password = fields.Str(required=True, load_only=True)


class CheckPermissionSchema(Schema):
    permission = fields.Str(required=True, validate=validate.OneOf(CAPABILITY_NAMES))


# Roles and users

class RoleSchema(Schema):
    name = fields.Str(required=True, validate=validate.Length(min=1, max=50))
    description = fields.Str(allow_none=True, validate=validate.Length(max=255))
    permissions = fields.Dict(keys=fields.Str(), values=fields.Bool(), load_default=dict)
    is_active = fields.Bool(load_default=True)

    @validates("permissions")
    def validate_permissions(self, value, **kwargs):
        unknown = sorted(set(value or {}) - set(CAPABILITY_NAMES))
        if unknown:
            raise ValidationError(f"Unknown permissions: {', '.join(unknown)}")


class RoleUpdateSchema(RoleSchema):
    name = fields.Str(validate=validate.Length(min=1, max=50))
    permissions = fields.Dict(keys=fields.Str(), values=fields.Bool())
    is_active = fields.Bool()


class AssignRoleSchema(Schema):
    role_id = fields.Int(required=True)


class UserUpdateSchema(Schema):
    user_name = fields.Str(validate=validate.Length(min=1, max=100))
    phone = fields.Str(allow_none=True, validate=validate.Length(max=20))
    role_id = fields.Int()
    locked = fields.Bool()


class UserBranchesSchema(Schema):
    branch_ids = fields.List(fields.Int(), required=True)


# Orders

class OrderItemInputSchema(Schema):
    item_id = fields.Int(required=True)
    quantity = fields.Int(required=True, validate=validate.Range(min=1))
    note = fields.Str(allow_none=True, validate=validate.Length(max=255))


class OrderCreateSchema(Schema):
    branch_id = fields.Int(required=True)
    table_id = fields.Int(required=True)
    notes = fields.Str(allow_none=True)
    items = fields.List(fields.Nested(OrderItemInputSchema), load_default=list)


class OrderItemQuantitySchema(Schema):
    quantity = fields.Int(required=True, validate=validate.Range(min=1))


class OrderStatusSchema(Schema):
    status = fields.Str(required=True, validate=validate.OneOf(ORDER_STATUSES))


class OrderCancelSchema(Schema):
    reason = fields.Str(allow_none=True, validate=validate.Length(max=255))


class PaginationSchema(Schema):
    page = fields.Int(load_default=1, validate=validate.Range(min=1))
    per_page = fields.Int(load_default=20, validate=validate.Range(min=1, max=100))


class OrderQuerySchema(PaginationSchema):
    status = fields.Str(validate=validate.OneOf(ORDER_STATUSES))
    branch_id = fields.Int()
    user_id = fields.Int()
    date_from = fields.Date()
    date_to = fields.Date()

    @validates_schema
    def validate_dates(self, data, **kwargs):
        if data.get("date_from") and data.get("date_to") and data["date_from"] > data["date_to"]:
            raise ValidationError("date_from must be before date_to.", field_name="date_from")


class StatisticsQuerySchema(Schema):
    branch_id = fields.Int()
    date_from = fields.Date()
    date_to = fields.Date()


# Branches, tables and menu

class BranchSchema(Schema):
    name = fields.Str(required=True, validate=validate.Length(min=1, max=100))
    address = fields.Str(allow_none=True, validate=validate.Length(max=255))
    phone = fields.Str(allow_none=True, validate=validate.Length(max=20))


class TableSchema(Schema):
    branch_id = fields.Int(required=True)
    table_number = fields.Str(required=True, validate=validate.Length(min=1, max=20))
    capacity = fields.Int(load_default=4, validate=validate.Range(min=1))
    is_available = fields.Bool(load_default=True)


class MenuCategorySchema(Schema):
    name = fields.Str(required=True, validate=validate.Length(min=1, max=100))
    description = fields.Str(allow_none=True)
    branch_id = fields.Int(allow_none=True)


class MenuItemSchema(Schema):
    name = fields.Str(required=True, validate=validate.Length(min=1, max=150))
    description = fields.Str(allow_none=True)
    price = fields.Decimal(required=True, places=2, validate=validate.Range(min=0))
    category_id = fields.Int(allow_none=True)
    is_available = fields.Bool(load_default=True)


# Notifications and user listing

class UserQuerySchema(PaginationSchema):
    role_id = fields.Int()
    locked = fields.Bool()
    search = fields.Str(validate=validate.Length(min=1, max=100))


class NotificationSchema(Schema):
    user_id = fields.Int(allow_none=True)
    branch_id = fields.Int(allow_none=True)
    order_id = fields.Int(allow_none=True)
    title = fields.Str(required=True, validate=validate.Length(min=1, max=150))
    message = fields.Str(required=True, validate=validate.Length(min=1))
    notification_type = fields.Str(load_default="info", validate=validate.OneOf(NOTIFICATION_TYPES))

    @validates_schema
    def validate_recipient(self, data, **kwargs):
        if not data.get("user_id") and not data.get("branch_id"):
            raise ValidationError("user_id or branch_id is required.", field_name="user_id")


class NotificationQuerySchema(Schema):
    page = fields.Int(load_default=1, validate=validate.Range(min=1))
    per_page = fields.Int(load_default=10, validate=validate.Range(min=1, max=100))
    is_read = fields.Bool()
    notification_type = fields.Str(validate=validate.OneOf(NOTIFICATION_TYPES))


class BranchNotificationQuerySchema(Schema):
    is_read = fields.Bool()
