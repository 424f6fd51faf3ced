import json
import logging

import pytest

from config import TestingConfig
from restohub import create_app, db
from restohub.errors import ConflictError, ForbiddenError, ValidationError
from restohub.middleware.logging_config import JSONFormatter
from restohub.models import AuditLog, Role, User
from restohub.permissions import BuiltInRole, Capability, has_capability, to_capability
from restohub.services import roles


def test_seed_roles_is_idempotent(app):
    assert roles.seed_roles() == 0
    assert Role.query.count() == 4
    admin = db.session.get(Role, BuiltInRole.ADMIN)
    assert admin.name == "admin"
    assert admin.has_permission(Capability.MANAGE_ROLES)
    assert not db.session.get(Role, BuiltInRole.CUSTOMER).has_permission("manage_orders")


def test_seed_restores_missing_roles(app):
    Role.query.delete()
    db.session.commit()

    assert roles.seed_roles() == 4
    assert roles.seed_roles() == 0


def test_app_seeds_roles_on_start():
    class AutoInitConfig(TestingConfig):
        AUTO_INIT_DB = True

    app = create_app(AutoInitConfig)
    with app.app_context():
        assert Role.query.count() == 4
        db.session.remove()
        db.drop_all()


def test_seed_count_reaches_json_log_line():
    record = logging.getLogger("restohub.services.roles").makeRecord(
        "restohub.services.roles", logging.INFO, __file__, 1, "Built-in roles seeded",
        None, None, extra={'event': 'roles_seeded', 'roles_created': 4})

    line = json.loads(JSONFormatter().format(record))

    assert line["event"] == "roles_seeded"
    assert line["roles_created"] == 4


def test_permission_map_lists_every_capability(app):
    permission_map = db.session.get(Role, BuiltInRole.STAFF).permission_map()
    assert set(permission_map) == {cap.value for cap in Capability}


def test_unknown_capability_is_rejected():
    with pytest.raises(ValidationError) as exc:
        to_capability("launch_rockets")
    assert exc.value.code == "unknown_permission"


def test_missing_claims_deny():
    assert has_capability({}, Capability.MANAGE_USERS) is False
    assert has_capability({"permissions": {"manage_users": True}}, "manage_users") is True


class TestRoleService:

    def test_create_role_normalizes_name(self, app):
        role = roles.create_role({"name": "  Cashier ", "permissions": {"manage_orders": True}})

        assert role.name == "cashier"
        assert role.has_permission(Capability.MANAGE_ORDERS)

    @pytest.mark.parametrize("role_id", list(BuiltInRole))
    def test_built_in_roles_are_immutable(self, app, role_id):
        with pytest.raises(ForbiddenError):
            roles.update_role(int(role_id), {"name": "renamed"})
        with pytest.raises(ForbiddenError):
            roles.delete_role(int(role_id))

    def test_role_in_use_cannot_be_deleted(self, make_user):
        role = roles.create_role({"name": "host"})
        make_user(email="host@example.com", role_id=role.id)

        with pytest.raises(ConflictError) as exc:
            roles.delete_role(role.id)
        assert exc.value.code == "role_in_use"

    def test_assign_role_is_audited(self, admin, staff):
        user = roles.assign_role(staff.id, BuiltInRole.MANAGER, actor_id=admin.id)

        assert user.role_id == BuiltInRole.MANAGER
        entry = AuditLog.query.filter_by(action="role_changed").one()
        assert entry.user_id == admin.id
        assert entry.details == {"target_user_id": staff.id,
                                 "old_role_id": int(BuiltInRole.STAFF),
                                 "new_role_id": int(BuiltInRole.MANAGER)}

    def test_inactive_role_cannot_be_assigned(self, staff):
        role = roles.create_role({"name": "retired", "is_active": False})

        with pytest.raises(ValidationError):
            roles.assign_role(staff.id, role.id)
        assert db.session.get(User, staff.id).role_id == BuiltInRole.STAFF


class TestRoleEndpoints:

    def test_admin_manages_custom_roles(self, client, admin, auth_headers):
        headers = auth_headers(admin.email)

        created = client.post("/api/roles", headers=headers, json={
            "name": "barista", "permissions": {"manage_orders": True}})
        assert created.status_code == 201
        role_id = created.get_json()["role"]["role_id"]

        updated = client.patch(f"/api/roles/{role_id}", headers=headers,
                               json={"description": "Coffee bar"})
        assert updated.get_json()["role"]["description"] == "Coffee bar"

        assert client.delete(f"/api/roles/{role_id}", headers=headers).status_code == 200
        assert db.session.get(Role, role_id) is None

    def test_unknown_permission_key_is_unprocessable(self, client, admin, auth_headers):
        response = client.post("/api/roles", headers=auth_headers(admin.email), json={
            "name": "odd", "permissions": {"fly": True}})

        assert response.status_code == 422

    def test_built_in_role_update_forbidden(self, client, admin, auth_headers):
        response = client.patch(f"/api/roles/{int(BuiltInRole.STAFF)}",
                                headers=auth_headers(admin.email), json={"name": "crew"})

        assert response.status_code == 403
        assert response.get_json()["error"]["code"] == "built_in_role"

    def test_manager_cannot_manage_roles(self, client, make_user, auth_headers):
        manager = make_user(email="manager@example.com", role_id=BuiltInRole.MANAGER)

        response = client.get("/api/roles", headers=auth_headers(manager.email))

        assert response.status_code == 403

    def test_admin_assigns_role(self, client, admin, customer, auth_headers):
        response = client.patch(f"/api/users/{customer.id}/role",
                                headers=auth_headers(admin.email),
                                json={"role_id": int(BuiltInRole.STAFF)})

        assert response.status_code == 200
        assert response.get_json()["user"]["role_id"] == BuiltInRole.STAFF

    def test_unknown_user_is_not_found(self, client, admin, auth_headers):
        response = client.get("/api/users/9999", headers=auth_headers(admin.email))

        assert response.status_code == 404
