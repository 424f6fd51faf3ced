from restohub import db
from restohub.permissions import Capability
from datetime import datetime, timezone
from enum import Enum
import uuid


def utcnow():
    """Naive UTC timestamp, the format every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def generate_rid(prefix):
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def _iso(value):
    return value.isoformat() if value else None


def _money(value):
    return float(value) if value is not None else 0.0


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self):
        return self in (OrderStatus.COMPLETED, OrderStatus.CANCELLED)


ORDER_STATUSES = [status.value for status in OrderStatus]


class Role(db.Model):
    __tablename__ = 'role'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), unique=True, nullable=False)
    description = db.Column(db.String(255), nullable=True)
    # capability name -> bool
    permissions = db.Column(db.JSON, nullable=False, default=dict)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    users = db.relationship('User', back_populates='role', lazy='dynamic')

    def has_permission(self, capability):
        capability = Capability(capability)
        return bool((self.permissions or {}).get(capability.value, False))

    def permission_map(self):
        """Full capability map with every known flag present."""
        return {cap.value: self.has_permission(cap) for cap in Capability}

    def to_dict(self):
        return {
            "role_id": self.id,
            "name": self.name,
            "description": self.description,
            "permissions": self.permission_map(),
            "is_active": self.is_active,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class User(db.Model):
    __tablename__ = 'user'

    id = db.Column(db.Integer, primary_key=True)
    rid = db.Column(db.String(32), unique=True, nullable=False,
                    default=lambda: generate_rid("usr"))
    user_name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=True)
    password = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(20), nullable=True)
    role_id = db.Column(db.Integer, db.ForeignKey('role.id'), nullable=False)

    locked = db.Column(db.Boolean, default=False, nullable=False)
    login_attempt = db.Column(db.Integer, default=0, nullable=False)
    lock_up_at = db.Column(db.DateTime, nullable=True)
    last_login = db.Column(db.DateTime, nullable=True)
    email_verified = db.Column(db.Boolean, default=False, nullable=False)
    email_verified_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    role = db.relationship('Role', back_populates='users', lazy='joined')
    reset_tokens = db.relationship(
        'PasswordResetToken', backref='user', cascade='all, delete-orphan')
    verification_tokens = db.relationship(
        'EmailVerificationToken', backref='user', cascade='all, delete-orphan')
    orders = db.relationship('Order', backref='customer', lazy='dynamic')
    branches = db.relationship('Branch', secondary='user_branch', order_by='Branch.id')
    notifications = db.relationship(
        'Notification', backref='user', cascade='all, delete-orphan')

    def to_dict(self):
        return {
            "user_id": self.id,
            "rid": self.rid,
            "user_name": self.user_name,
            "email": self.email,
            "phone": self.phone,
            "role_id": self.role_id,
            "role_name": self.role.name if self.role else None,
            "locked": self.locked,
            "email_verified": self.email_verified,
            "email_verified_at": _iso(self.email_verified_at),
            "last_login": _iso(self.last_login),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class PasswordResetToken(db.Model):
    __tablename__ = 'password_reset_token'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey(
        'user.id', ondelete='CASCADE'), nullable=False, index=True)
    token = db.Column(db.String(128), unique=True, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    is_used = db.Column(db.Boolean, default=False, nullable=False)
    used_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)


class EmailVerificationToken(db.Model):
    __tablename__ = 'email_verification_token'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey(
        'user.id', ondelete='CASCADE'), nullable=False, index=True)
    token = db.Column(db.String(128), unique=True, nullable=False)
    email = db.Column(db.String(120), nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    is_verified = db.Column(db.Boolean, default=False, nullable=False)
    verified_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)


class AuditLog(db.Model):
    __tablename__ = 'audit_log'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey(
        'user.id', ondelete='SET NULL'), nullable=True, index=True)
    action = db.Column(db.String(50), nullable=False, index=True)
    details = db.Column(db.JSON, nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "action": self.action,
            "details": self.details,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "created_at": _iso(self.created_at),
        }


class TokenBlocklist(db.Model):
    __tablename__ = 'token_blocklist'

    id = db.Column(db.Integer, primary_key=True)
    jti = db.Column(db.String(36), nullable=False, unique=True, index=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    expires_at = db.Column(db.DateTime, nullable=True)


class Branch(db.Model):
    __tablename__ = 'branch'

    id = db.Column(db.Integer, primary_key=True)
    rid = db.Column(db.String(32), unique=True, nullable=False,
                    default=lambda: generate_rid("br"))
    name = db.Column(db.String(100), unique=True, nullable=False)
    address = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(20), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)
    is_deleted = db.Column(db.Boolean, default=False)

    tables = db.relationship('DiningTable', backref='branch', lazy='dynamic')

    def to_dict(self):
        return {
            "branch_id": self.id,
            "rid": self.rid,
            "name": self.name,
            "address": self.address,
            "phone": self.phone,
            "created_at": _iso(self.created_at),
        }


class UserBranch(db.Model):
    """Branches a staff account works at."""
    __tablename__ = 'user_branch'

    user_id = db.Column(db.Integer, db.ForeignKey(
        'user.id', ondelete='CASCADE'), primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey(
        'branch.id', ondelete='CASCADE'), primary_key=True)
    created_at = db.Column(db.DateTime, default=utcnow)


class DiningTable(db.Model):
    __tablename__ = 'dining_table'

    id = db.Column(db.Integer, primary_key=True)
    rid = db.Column(db.String(32), unique=True, nullable=False,
                    default=lambda: generate_rid("tbl"))
    branch_id = db.Column(db.Integer, db.ForeignKey(
        'branch.id'), nullable=False)
    table_number = db.Column(db.String(20), nullable=False)
    capacity = db.Column(db.Integer, nullable=False, default=4)
    is_available = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    is_deleted = db.Column(db.Boolean, default=False)

    __table_args__ = (
        db.UniqueConstraint('branch_id', 'table_number',
                            name='uq_branch_table_number'),
    )

    def to_dict(self):
        return {
            "table_id": self.id,
            "rid": self.rid,
            "branch_id": self.branch_id,
            "table_number": self.table_number,
            "capacity": self.capacity,
            "is_available": self.is_available,
        }


class MenuCategory(db.Model):
    __tablename__ = 'menu_category'

    id = db.Column(db.Integer, primary_key=True)
    rid = db.Column(db.String(32), unique=True, nullable=False,
                    default=lambda: generate_rid("cat"))
    branch_id = db.Column(db.Integer, db.ForeignKey(
        'branch.id'), nullable=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    is_deleted = db.Column(db.Boolean, default=False)

    items = db.relationship('MenuItem', backref='category', lazy='dynamic')

    def to_dict(self):
        return {
            "category_id": self.id,
            "rid": self.rid,
            "branch_id": self.branch_id,
            "name": self.name,
            "description": self.description,
        }


class MenuItem(db.Model):
    __tablename__ = 'menu_item'

    id = db.Column(db.Integer, primary_key=True)
    rid = db.Column(db.String(32), unique=True, nullable=False,
                    default=lambda: generate_rid("itm"))
    category_id = db.Column(db.Integer, db.ForeignKey(
        'menu_category.id'), nullable=True)
    name = db.Column(db.String(150), nullable=False)
    description = db.Column(db.Text, nullable=True)
    price = db.Column(db.Numeric(12, 2), nullable=False)
    is_available = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)
    is_deleted = db.Column(db.Boolean, default=False)

    def to_dict(self):
        return {
            "item_id": self.id,
            "rid": self.rid,
            "category_id": self.category_id,
            "name": self.name,
            "description": self.description,
            "price": _money(self.price),
            "is_available": self.is_available,
        }


class Order(db.Model):
    __tablename__ = 'orders'

    id = db.Column(db.Integer, primary_key=True)
    rid = db.Column(db.String(32), unique=True, nullable=False,
                    default=lambda: generate_rid("ord"))
    user_id = db.Column(db.Integer, db.ForeignKey(
        'user.id', ondelete='SET NULL'), nullable=True, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey(
        'branch.id'), nullable=False, index=True)
    table_id = db.Column(db.Integer, db.ForeignKey(
        'dining_table.id'), nullable=False)
    status = db.Column(db.Enum(*ORDER_STATUSES, name='order_status_enum'),
                       nullable=False, default=OrderStatus.PENDING.value)
    notes = db.Column(db.Text, nullable=True)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    items = db.relationship('OrderItem', backref='order', cascade='all, delete-orphan',
                            order_by='OrderItem.id', passive_deletes=True)

    def to_dict(self, include_items=True):
        data = {
            "order_id": self.id,
            "rid": self.rid,
            "user_id": self.user_id,
            "branch_id": self.branch_id,
            "table_id": self.table_id,
            "status": self.status,
            "notes": self.notes,
            "total_amount": _money(self.total_amount),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    __tablename__ = 'order_item'

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey(
        'orders.id', ondelete='CASCADE'), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey(
        'menu_item.id', ondelete='RESTRICT'), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    # price of the menu item when it was added, never re-read
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    note = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    menu_item = db.relationship('MenuItem')

    __table_args__ = (
        db.CheckConstraint('quantity >= 1', name='ck_order_item_quantity'),
        db.UniqueConstraint('order_id', 'item_id', name='uq_order_item'),
    )

    def to_dict(self):
        return {
            "order_item_id": self.id,
            "order_id": self.order_id,
            "item_id": self.item_id,
            "item_name": self.menu_item.name if self.menu_item else None,
            "quantity": self.quantity,
            "unit_price": _money(self.unit_price),
            "subtotal": _money(self.unit_price * self.quantity),
            "note": self.note,
        }


NOTIFICATION_TYPES = ["info", "order", "table", "system"]


class Notification(db.Model):
    __tablename__ = 'notification'

    id = db.Column(db.Integer, primary_key=True)
    rid = db.Column(db.String(32), unique=True, nullable=False,
                    default=lambda: generate_rid("ntf"))
    user_id = db.Column(db.Integer, db.ForeignKey(
        'user.id', ondelete='CASCADE'), nullable=True, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey(
        'branch.id', ondelete='CASCADE'), nullable=True, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey(
        'orders.id', ondelete='SET NULL'), nullable=True)
    title = db.Column(db.String(150), nullable=False)
    message = db.Column(db.Text, nullable=False)
    notification_type = db.Column(db.String(20), nullable=False, default="info")
    is_read = db.Column(db.Boolean, default=False, nullable=False)
    read_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    def to_dict(self):
        return {
            "notification_id": self.id,
            "rid": self.rid,
            "user_id": self.user_id,
            "branch_id": self.branch_id,
            "order_id": self.order_id,
            "title": self.title,
            "message": self.message,
            "notification_type": self.notification_type,
            "is_read": self.is_read,
            "read_at": _iso(self.read_at),
            "created_at": _iso(self.created_at),
        }
