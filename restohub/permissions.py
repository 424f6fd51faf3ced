from enum import Enum, IntEnum
from functools import wraps
import logging

from flask import g
from flask_jwt_extended import get_jwt, jwt_required, verify_jwt_in_request
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError

from restohub.errors import ForbiddenError, ValidationError

logger = logging.getLogger(__name__)


class Capability(str, Enum):
    """Closed set of permission flags a role can grant."""
    MANAGE_USERS = "manage_users"
    MANAGE_STAFF = "manage_staff"
    MANAGE_BRANCHES = "manage_branches"
    MANAGE_MENU = "manage_menu"
    MANAGE_ORDERS = "manage_orders"
    MANAGE_ROLES = "manage_roles"
    VIEW_ANALYTICS = "view_analytics"
    CREATE_ORDER = "create_order"
    VIEW_MENU = "view_menu"


class BuiltInRole(IntEnum):
    ADMIN = 1
    MANAGER = 2
    STAFF = 3
    CUSTOMER = 4

    @property
    def role_name(self):
        return self.name.lower()


DEFAULT_ROLES = {
    BuiltInRole.ADMIN: (
        "Full system access",
        [Capability.MANAGE_USERS, Capability.MANAGE_STAFF, Capability.MANAGE_BRANCHES,
         Capability.MANAGE_MENU, Capability.MANAGE_ORDERS, Capability.MANAGE_ROLES,
         Capability.VIEW_ANALYTICS],
    ),
    BuiltInRole.MANAGER: (
        "Branch manager",
        [Capability.MANAGE_STAFF, Capability.MANAGE_BRANCHES, Capability.MANAGE_MENU,
         Capability.MANAGE_ORDERS, Capability.VIEW_ANALYTICS],
    ),
    BuiltInRole.STAFF: (
        "Restaurant staff",
        [Capability.MANAGE_ORDERS, Capability.MANAGE_MENU],
    ),
    BuiltInRole.CUSTOMER: (
        "Customer",
        [Capability.CREATE_ORDER, Capability.VIEW_MENU],
    ),
}

# Roles an admin or manager may hand out when creating staff accounts
STAFF_ROLE_IDS = (BuiltInRole.ADMIN, BuiltInRole.MANAGER, BuiltInRole.STAFF)


def to_capability(value):
    """Parse a capability name, rejecting anything outside the enum."""
    try:
        return Capability(value)
    except ValueError:
        raise ValidationError(
            f"Unknown permission '{value}'", code="unknown_permission")


def build_permission_map(capabilities):
    return {cap.value: cap in capabilities for cap in Capability}


def has_capability(claims, capability):
    """Typed lookup of a capability in JWT claims; missing keys are denied."""
    capability = to_capability(capability)
    permissions = (claims or {}).get("permissions") or {}
    return bool(permissions.get(capability.value, False))


def permission_required(*capabilities):
    """Require a valid access token whose role grants any of ``capabilities``."""
    def decorator(fn):
        @wraps(fn)
        @jwt_required()
        def wrapper(*args, **kwargs):
            claims = get_jwt()
            if not any(has_capability(claims, cap) for cap in capabilities):
                logger.warning("Permission denied", extra={
                    'event': 'permission_denied',
                    'user_id': claims.get("user_id"),
                    'required': [Capability(cap).value for cap in capabilities]
                })
                raise ForbiddenError(
                    "Access forbidden: insufficient permissions",
                    code="insufficient_permissions")
            return fn(*args, **kwargs)
        return wrapper
    return decorator


def verify_token_optional(fn):
    """Attach the caller's claims when a valid bearer token is sent.

    Any verification failure is ignored and the request carries on anonymously.
    """
    @wraps(fn)
    def wrapper(*args, **kwargs):
        g.optional_jwt_claims = {}
        try:
            verify_jwt_in_request(optional=True)
            g.optional_jwt_claims = get_jwt() or {}
        except (JWTExtendedException, PyJWTError) as e:
            logger.info("Ignoring invalid optional token", extra={
                'event': 'optional_token_ignored',
                'reason': type(e).__name__
            })
        return fn(*args, **kwargs)
    return wrapper


def optional_claims():
    return g.get("optional_jwt_claims") or {}
