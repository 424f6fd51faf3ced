"""User administration: profile edits, removal, branch assignment and counts."""
import logging

from sqlalchemy import func, or_

from restohub import db
from restohub.errors import ForbiddenError, NotFoundError, ValidationError
from restohub.models import Branch, Role, User
from restohub.services import audit
from restohub.services.roles import get_role

logger = logging.getLogger(__name__)

DEFAULT_PER_PAGE = 20
MAX_PER_PAGE = 100

# Fields an administrator may change through update_user
EDITABLE_FIELDS = ("user_name", "phone", "role_id", "locked")


def get_user(user_id):
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found", code="user_not_found")
    return user


def _live_branches(user):
    return [branch for branch in user.branches if not branch.is_deleted]


def user_details(user):
    data = user.to_dict()
    data["branches"] = [branch.to_dict() for branch in _live_branches(user)]
    return data


def list_users(filters=None):
    filters = filters or {}
    query = User.query
    if filters.get("role_id"):
        query = query.filter(User.role_id == filters["role_id"])
    if filters.get("locked") is not None:
        query = query.filter(User.locked.is_(bool(filters["locked"])))
    if filters.get("search"):
        pattern = f"%{filters['search'].strip()}%"
        query = query.filter(or_(User.user_name.ilike(pattern), User.email.ilike(pattern)))

    page = max(int(filters.get("page") or 1), 1)
    per_page = min(max(int(filters.get("per_page") or DEFAULT_PER_PAGE), 1), MAX_PER_PAGE)
    result = query.order_by(User.created_at.desc(), User.id.desc()).paginate(
        page=page, per_page=per_page, error_out=False)
    return {
        "users": [user.to_dict() for user in result.items],
        "total": result.total,
        "pages": result.pages,
        "current_page": result.page,
        "per_page": per_page,
    }


def update_user(user_id, data, actor_id=None):
    """Apply the editable fields present in ``data``; unknown keys are ignored."""
    user = get_user(user_id)
    changes = {field: data[field] for field in EDITABLE_FIELDS if field in data}

    if "role_id" in changes:
        role = get_role(changes["role_id"])
        if not role.is_active:
            raise ValidationError("Cannot assign an inactive role", code="role_inactive")
    if "user_name" in changes and not (changes["user_name"] or "").strip():
        raise ValidationError("user_name cannot be empty", code="missing_fields")

    old_role_id = user.role_id
    for field, value in changes.items():
        setattr(user, field, value)
    if changes.get("locked") is False:
        user.login_attempt = 0
        user.lock_up_at = None
    db.session.commit()

    audit.log_action("user_updated", user_id=actor_id, details={
        "target_user_id": user.id, "fields": sorted(changes)})
    if user.role_id != old_role_id:
        audit.log_action("role_changed", user_id=actor_id, details={
            "target_user_id": user.id,
            "old_role_id": old_role_id,
            "new_role_id": user.role_id,
        })
    return user


def delete_user(user_id, actor_id=None):
    """Hard delete another account. Orders stay with ``user_id`` set to NULL."""
    user = get_user(user_id)
    if actor_id is not None and user.id == actor_id:
        raise ForbiddenError("Use account deletion to remove your own account",
                             code="cannot_delete_self")

    email = user.email
    db.session.delete(user)
    db.session.commit()

    audit.log_action("account_deleted", user_id=actor_id, details={
        "deleted_user_id": int(user_id), "email": email})
    logger.info("User deleted by administrator", extra={
        'event': 'user_deleted', 'user_id': int(user_id)})


def assign_branches(user_id, branch_ids, actor_id=None):
    """Replace the user's branch assignments with ``branch_ids``."""
    user = get_user(user_id)
    wanted = list(dict.fromkeys(branch_ids or []))
    branches = Branch.query.filter(Branch.id.in_(wanted), Branch.is_deleted.is_(False)).all() \
        if wanted else []
    if len(branches) != len(wanted):
        missing = sorted(set(wanted) - {branch.id for branch in branches})
        raise NotFoundError(f"Branches not found: {', '.join(map(str, missing))}",
                            code="branch_not_found")

    user.branches = sorted(branches, key=lambda branch: branch.id)
    db.session.commit()

    audit.log_action("branches_assigned", user_id=actor_id, details={
        "target_user_id": user.id, "branch_ids": [branch.id for branch in user.branches]})
    return user.branches


def get_user_branches(user_id):
    return _live_branches(get_user(user_id))


def count_users_by_role():
    rows = db.session.query(Role.id, Role.name, func.count(User.id)) \
        .outerjoin(User, User.role_id == Role.id) \
        .group_by(Role.id, Role.name) \
        .order_by(Role.id).all()
    return [{"role_id": role_id, "role_name": name, "count": count}
            for role_id, name, count in rows]


def get_user_statistics():
    total = User.query.count()
    locked = User.query.filter(User.locked.is_(True)).count()
    verified = User.query.filter(User.email_verified.is_(True)).count()
    return {
        "total": total,
        "active": total - locked,
        "locked": locked,
        "email_verified": verified,
        "not_verified": total - verified,
        "by_role": count_users_by_role(),
    }
