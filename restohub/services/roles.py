import logging

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from restohub import db
from restohub.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from restohub.models import Role, User
from restohub.permissions import DEFAULT_ROLES, BuiltInRole, build_permission_map, to_capability
from restohub.services import audit

logger = logging.getLogger(__name__)


def seed_roles():
    """Insert the built-in roles that are missing. Safe to call repeatedly."""
    created = 0
    for role_id, (description, capabilities) in DEFAULT_ROLES.items():
        if db.session.get(Role, int(role_id)) is None:
            db.session.add(Role(
                id=int(role_id),
                name=role_id.role_name,
                description=description,
                permissions=build_permission_map(capabilities),
                is_active=True,
            ))
            created += 1
    db.session.flush()
    if created and db.engine.dialect.name == "postgresql":
        # explicit ids do not advance the serial sequence
        db.session.execute(text(
            "SELECT setval(pg_get_serial_sequence('role', 'id'), (SELECT MAX(id) FROM role))"))
    db.session.commit()
    if created:
        logger.info("Built-in roles seeded", extra={
            'event': 'roles_seeded', 'roles_created': created})
    return created


def _clean_permissions(permissions):
    return {to_capability(key).value: bool(value) for key, value in (permissions or {}).items()}


def _ensure_mutable(role):
    if role.id in set(int(r) for r in BuiltInRole):
        raise ForbiddenError("Built-in roles cannot be modified or deleted",
                             code="built_in_role")


def list_roles():
    return Role.query.order_by(Role.id).all()


def get_role(role_id):
    role = db.session.get(Role, role_id)
    if role is None:
        raise NotFoundError("Role not found", code="role_not_found")
    return role


def create_role(data):
    if not data.get("name"):
        raise ValidationError("Role name is required", code="missing_fields")
    role = Role(
        name=data["name"].strip().lower(),
        description=data.get("description"),
        permissions=_clean_permissions(data.get("permissions")),
        is_active=data.get("is_active", True),
    )
    try:
        db.session.add(role)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("A role with this name already exists", code="role_exists")
    return role


def update_role(role_id, data):
    role = get_role(role_id)
    _ensure_mutable(role)
    if "name" in data:
        role.name = data["name"].strip().lower()
    if "description" in data:
        role.description = data["description"]
    if "permissions" in data:
        role.permissions = _clean_permissions(data["permissions"])
    if "is_active" in data:
        role.is_active = data["is_active"]
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("A role with this name already exists", code="role_exists")
    return role


def delete_role(role_id):
    role = get_role(role_id)
    _ensure_mutable(role)
    if User.query.filter_by(role_id=role.id).first() is not None:
        raise ConflictError("Role is still assigned to users", code="role_in_use")
    db.session.delete(role)
    db.session.commit()


def assign_role(user_id, role_id, actor_id=None):
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found", code="user_not_found")
    role = get_role(role_id)
    if not role.is_active:
        raise ValidationError("Cannot assign an inactive role", code="role_inactive")

    old_role_id = user.role_id
    user.role_id = role.id
    db.session.commit()

    audit.log_action("role_changed", user_id=actor_id, details={
        "target_user_id": user.id,
        "old_role_id": old_role_id,
        "new_role_id": role.id,
    })
    return user
