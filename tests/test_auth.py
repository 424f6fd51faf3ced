from datetime import timedelta

import pytest

from flask_jwt_extended import decode_token

from restohub import db
from restohub.models import AuditLog, EmailVerificationToken, PasswordResetToken, Role, User, utcnow
from restohub.permissions import BuiltInRole
from restohub.services import roles
from restohub.services.auth import (
    RESET_REQUESTED_MESSAGE, VERIFICATION_REQUESTED_MESSAGE, _record_failed_attempt
)
from restohub.services.tokens import password_reset_tokens

from conftest import PASSWORD

NEW_PASSWORD = "N3w!Secret"


def error_of(response):
    return response.get_json()["error"]


class TestRegistration:
    """Self-signup and staff creation."""

    def test_self_signup_creates_customer_and_returns_token(self, client):
        response = client.post("/api/auth/register", json={
            "user_name": "Alice", "email": "alice@example.com", "password": PASSWORD})

        body = response.get_json()
        assert response.status_code == 201
        assert body["user"]["role_name"] == "customer"
        assert body["token"]
        claims = decode_token(body["token"])
        assert claims["role_id"] == BuiltInRole.CUSTOMER
        assert claims["email"] == "alice@example.com"
        user = User.query.filter_by(email="alice@example.com").one()
        assert EmailVerificationToken.query.filter_by(user_id=user.id).count() == 1

    def test_self_signup_requires_email(self, client):
        response = client.post("/api/auth/register", json={"user_name": "Bob", "password": PASSWORD})

        assert response.status_code == 400
        assert error_of(response)["code"] == "missing_fields"

    def test_self_signup_rejects_bad_email_format(self, client):
        response = client.post("/api/auth/register", json={
            "user_name": "Bob", "email": "not-an-email", "password": PASSWORD})

        assert response.status_code == 400
        assert error_of(response)["code"] == "invalid_email"

    def test_weak_password_reports_first_failure(self, client):
        response = client.post("/api/auth/register", json={
            "user_name": "Bob", "email": "bob@example.com", "password": "weakpass"})

        assert response.status_code == 400
        assert error_of(response)["message"] == "Password must contain at least one uppercase letter"

    def test_duplicate_email_conflicts(self, client, customer):
        response = client.post("/api/auth/register", json={
            "user_name": "Again", "email": customer.email, "password": PASSWORD})

        assert response.status_code == 409

    def test_admin_creates_staff_without_session_token(self, client, admin, auth_headers):
        response = client.post("/api/auth/register", headers=auth_headers(admin.email), json={
            "user_name": "Chef", "email": "chef@example.com", "password": PASSWORD})

        body = response.get_json()
        assert response.status_code == 201
        assert "token" not in body
        assert body["user"]["role_id"] == BuiltInRole.STAFF

    def test_manager_can_create_staff_without_email(self, client, make_user, auth_headers):
        manager = make_user(email="manager@example.com", role_id=BuiltInRole.MANAGER)

        response = client.post("/api/auth/register", headers=auth_headers(manager.email), json={
            "user_name": "Waiter", "password": PASSWORD, "role_id": BuiltInRole.MANAGER})

        assert response.status_code == 201
        assert response.get_json()["user"]["email"] is None
        assert response.get_json()["user"]["role_id"] == BuiltInRole.MANAGER

    @pytest.mark.parametrize("role_id", [int(BuiltInRole.CUSTOMER), 0])
    def test_staff_creation_rejects_non_staff_role(self, client, admin, auth_headers, role_id):
        response = client.post("/api/auth/register", headers=auth_headers(admin.email), json={
            "user_name": "Nope", "password": PASSWORD, "role_id": role_id})

        assert response.status_code == 400
        assert error_of(response)["code"] == "invalid_role"
        assert User.query.filter_by(user_name="Nope").count() == 0

    def test_staff_role_defaults_when_omitted(self, client, admin, auth_headers):
        response = client.post("/api/auth/register", headers=auth_headers(admin.email), json={
            "user_name": "Default", "password": PASSWORD, "role_id": None})

        assert response.status_code == 201
        assert response.get_json()["user"]["role_id"] == BuiltInRole.STAFF

    def test_customer_cannot_create_accounts(self, client, customer, auth_headers):
        response = client.post("/api/auth/register", headers=auth_headers(customer.email), json={
            "user_name": "Friend", "email": "friend@example.com", "password": PASSWORD})

        assert response.status_code == 403

    def test_invalid_bearer_token_falls_back_to_self_signup(self, client):
        response = client.post("/api/auth/register",
                               headers={"Authorization": "Bearer not.a.jwt"},
                               json={"user_name": "Eve", "email": "eve@example.com",
                                     "password": PASSWORD})

        assert response.status_code == 201
        assert response.get_json()["user"]["role_name"] == "customer"


class TestLogin:
    """Credential checks and lockout."""

    def test_login_embeds_role_and_permissions(self, client, staff):
        response = client.post("/api/auth/login", json={"email": staff.email, "password": PASSWORD})

        assert response.status_code == 200
        claims = decode_token(response.get_json()["token"])
        assert claims["sub"] == str(staff.id)
        assert claims["user_id"] == staff.id
        assert claims["role_name"] == "staff"
        assert claims["permissions"]["manage_orders"] is True
        assert claims["permissions"]["manage_users"] is False
        assert db.session.get(User, staff.id).last_login is not None

    def test_unknown_email_and_wrong_password_are_indistinguishable(self, client, customer):
        unknown = client.post("/api/auth/login", json={"email": "x@y.com", "password": "whatever"})
        wrong = client.post("/api/auth/login", json={"email": customer.email, "password": "Wr0ng!pass"})

        assert unknown.status_code == wrong.status_code == 401
        assert error_of(unknown)["message"] == error_of(wrong)["message"] == "Email or password is incorrect"
        assert error_of(unknown)["code"] == error_of(wrong)["code"]

    def test_five_failures_lock_the_account(self, client, customer):
        for _ in range(5):
            response = client.post("/api/auth/login",
                                   json={"email": customer.email, "password": "Wr0ng!pass"})
            assert response.status_code == 401

        user = db.session.get(User, customer.id)
        assert user.locked is True
        assert user.login_attempt == 5
        assert user.lock_up_at is not None

        response = client.post("/api/auth/login", json={"email": customer.email, "password": PASSWORD})
        assert response.status_code == 401
        assert error_of(response)["code"] == "account_locked"
        assert error_of(response)["message"] == "Account is locked. Please contact administrator"
        assert AuditLog.query.filter_by(action="account_locked", user_id=customer.id).count() == 1

    def test_lock_is_applied_by_the_database_not_the_loaded_row(self, client, make_user):
        user = make_user(email="nearly@example.com", login_attempt=4)
        assert user.login_attempt == 4

        first = client.post("/api/auth/login", json={"email": user.email, "password": "Wr0ng!pass"})
        second = client.post("/api/auth/login", json={"email": user.email, "password": "Wr0ng!pass"})

        assert error_of(first)["code"] == "invalid_credentials"
        assert error_of(second)["code"] == "account_locked"
        stored = db.session.get(User, user.id)
        assert stored.locked is True
        assert stored.login_attempt == 5
        assert AuditLog.query.filter_by(action="account_locked", user_id=user.id).count() == 1

    def test_failed_attempt_reports_the_lock_only_once(self, make_user):
        user = make_user(email="nearly@example.com", login_attempt=4)
        user_id = user.id

        assert _record_failed_attempt(user_id) is True
        assert _record_failed_attempt(user_id) is False

        stored = db.session.get(User, user_id)
        assert stored.login_attempt == 6
        assert stored.locked is True

    def test_success_resets_attempt_counter(self, client, customer):
        for _ in range(3):
            client.post("/api/auth/login", json={"email": customer.email, "password": "Wr0ng!pass"})

        response = client.post("/api/auth/login", json={"email": customer.email, "password": PASSWORD})

        assert response.status_code == 200
        assert db.session.get(User, customer.id).login_attempt == 0


class TestRefreshToken:
    """Refresh re-reads the user and role from the database."""

    def test_refresh_reflects_role_change(self, client, staff, admin, login):
        tokens = login(staff.email)
        roles.assign_role(staff.id, BuiltInRole.MANAGER, actor_id=admin.id)

        response = client.post("/api/auth/refresh-token", json={"refresh_token": tokens["refresh_token"]})

        assert response.status_code == 200
        claims = decode_token(response.get_json()["token"])
        assert claims["role_name"] == "manager"
        assert claims["permissions"]["view_analytics"] is True

    def test_refresh_rejects_locked_user(self, client, customer, login):
        tokens = login(customer.email)
        user = db.session.get(User, customer.id)
        user.locked = True
        db.session.commit()

        response = client.post("/api/auth/refresh-token", json={"refresh_token": tokens["refresh_token"]})

        assert response.status_code == 401
        assert error_of(response)["code"] == "account_locked"

    def test_refresh_rejects_inactive_role(self, client, make_user, login):
        role = Role(name="temp", permissions={"view_menu": True}, is_active=True)
        db.session.add(role)
        db.session.commit()
        user = make_user(email="temp@example.com", role_id=role.id)
        tokens = login(user.email)
        role.is_active = False
        db.session.commit()

        response = client.post("/api/auth/refresh-token", json={"refresh_token": tokens["refresh_token"]})

        assert response.status_code == 401
        assert error_of(response)["code"] == "role_inactive"

    def test_refresh_rejects_garbage(self, client):
        response = client.post("/api/auth/refresh-token", json={"refresh_token": "garbage"})

        assert response.status_code == 401
        assert error_of(response)["code"] == "invalid_token"

    def test_verify_returns_claims(self, client, customer, login):
        token = login(customer.email)["token"]

        response = client.post("/api/auth/verify", json={"token": token})

        assert response.status_code == 200
        assert response.get_json()["claims"]["email"] == customer.email


class TestPasswordChange:

    def test_change_password(self, client, customer, auth_headers):
        headers = auth_headers(customer.email)

        response = client.post("/api/auth/change-password", headers=headers,
                               json={"old_password": PASSWORD, "new_password": NEW_PASSWORD})

        assert response.status_code == 200
        assert client.post("/api/auth/login", json={
            "email": customer.email, "password": NEW_PASSWORD}).status_code == 200
        assert AuditLog.query.filter_by(action="password_changed").count() == 1

    def test_wrong_old_password(self, client, customer, auth_headers):
        response = client.post("/api/auth/change-password", headers=auth_headers(customer.email),
                               json={"old_password": "Wr0ng!pass", "new_password": NEW_PASSWORD})

        assert response.status_code == 401

    def test_new_password_must_differ(self, client, customer, auth_headers):
        response = client.post("/api/auth/change-password", headers=auth_headers(customer.email),
                               json={"old_password": PASSWORD, "new_password": PASSWORD})

        assert response.status_code == 400
        assert error_of(response)["code"] == "password_unchanged"

    def test_new_password_must_be_strong(self, client, customer, auth_headers):
        response = client.post("/api/auth/change-password", headers=auth_headers(customer.email),
                               json={"old_password": PASSWORD, "new_password": "short"})

        assert response.status_code == 400
        assert error_of(response)["code"] == "weak_password"


class TestPasswordReset:
    """Forgot-password and reset-password flows."""

    def test_forgot_password_response_identical_for_unknown_email(self, client, customer):
        real = client.post("/api/auth/forgot-password", json={"email": customer.email})
        fake = client.post("/api/auth/forgot-password", json={"email": "nonexistent@x.com"})

        assert real.status_code == fake.status_code == 200
        assert real.get_json() == fake.get_json() == {"message": RESET_REQUESTED_MESSAGE}
        assert PasswordResetToken.query.count() == 1

    def test_reset_password_unlocks_account(self, client, make_user):
        user = make_user(email="locked@example.com", locked=True, login_attempt=5,
                         lock_up_at=utcnow())
        client.post("/api/auth/forgot-password", json={"email": user.email})
        token = PasswordResetToken.query.filter_by(user_id=user.id).one().token

        response = client.post("/api/auth/reset-password", json={
            "token": token, "new_password": NEW_PASSWORD, "confirm_password": NEW_PASSWORD})

        assert response.status_code == 200
        user = db.session.get(User, user.id)
        assert user.locked is False
        assert user.login_attempt == 0
        assert user.lock_up_at is None
        assert client.post("/api/auth/login", json={
            "email": user.email, "password": NEW_PASSWORD}).status_code == 200

    def test_reset_token_cannot_be_reused(self, client, customer):
        token = password_reset_tokens.issue(customer.id).token
        payload = {"token": token, "new_password": NEW_PASSWORD, "confirm_password": NEW_PASSWORD}

        assert client.post("/api/auth/reset-password", json=payload).status_code == 200
        second = client.post("/api/auth/reset-password", json=payload)

        assert second.status_code == 401
        assert error_of(second)["code"] == "already_used"

    def test_expired_reset_token_rejected(self, client, customer):
        record = password_reset_tokens.issue(customer.id)
        record.expires_at = utcnow() - timedelta(minutes=1)
        db.session.commit()

        response = client.post("/api/auth/reset-password", json={
            "token": record.token, "new_password": NEW_PASSWORD, "confirm_password": NEW_PASSWORD})

        assert response.status_code == 401
        assert error_of(response)["code"] == "expired"

    def test_confirmation_must_match(self, client, customer):
        token = password_reset_tokens.issue(customer.id).token

        response = client.post("/api/auth/reset-password", json={
            "token": token, "new_password": NEW_PASSWORD, "confirm_password": "Other!Pass1"})

        assert response.status_code == 400
        assert error_of(response)["code"] == "password_mismatch"
        assert PasswordResetToken.query.filter_by(token=token).one().is_used is False


class TestEmailVerification:

    def test_verify_email_once(self, client):
        client.post("/api/auth/register", json={
            "user_name": "Vera", "email": "vera@example.com", "password": PASSWORD})
        token = EmailVerificationToken.query.one().token

        first = client.post("/api/auth/verify-email", json={"token": token})
        second = client.post("/api/auth/verify-email", json={"token": token})

        assert first.status_code == 200
        user = User.query.filter_by(email="vera@example.com").one()
        assert user.email_verified is True
        assert user.email_verified_at is not None
        assert second.status_code == 401
        assert error_of(second)["message"] == "Email already verified"

    def test_resend_is_generic_and_silent_for_verified_address(self, client, make_user):
        verified = make_user(email="done@example.com", email_verified=True)
        pending = make_user(email="pending@example.com")

        responses = [client.post("/api/auth/resend-verification", json={"email": email})
                     for email in (verified.email, pending.email, "ghost@example.com")]

        assert all(r.status_code == 200 for r in responses)
        assert all(r.get_json() == {"message": VERIFICATION_REQUESTED_MESSAGE} for r in responses)
        assert EmailVerificationToken.query.filter_by(user_id=verified.id).count() == 0
        assert EmailVerificationToken.query.filter_by(user_id=pending.id).count() == 1


class TestSession:
    """Profile, permission check, logout, unlock and account deletion."""

    def test_me_returns_profile(self, client, staff, auth_headers):
        response = client.get("/api/auth/me", headers=auth_headers(staff.email))

        assert response.status_code == 200
        assert response.get_json()["user"]["email"] == staff.email
        assert response.get_json()["permissions"]["manage_menu"] is True

    def test_check_permission(self, client, customer, auth_headers):
        headers = auth_headers(customer.email)

        allowed = client.post("/api/auth/check-permission", headers=headers,
                              json={"permission": "create_order"})
        denied = client.post("/api/auth/check-permission", headers=headers,
                             json={"permission": "manage_orders"})

        assert allowed.get_json()["has_permission"] is True
        assert denied.get_json()["has_permission"] is False

    def test_logout_revokes_token(self, client, customer, auth_headers):
        headers = auth_headers(customer.email)

        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        response = client.get("/api/auth/me", headers=headers)

        assert response.status_code == 401
        assert response.get_json()["error"] == "token_revoked"

    def test_admin_unlocks_account(self, client, admin, make_user, auth_headers):
        locked = make_user(email="locked@example.com", locked=True, login_attempt=5)

        response = client.post("/api/auth/unlock-account", headers=auth_headers(admin.email),
                               json={"email": locked.email})

        assert response.status_code == 200
        user = db.session.get(User, locked.id)
        assert user.locked is False
        assert user.login_attempt == 0

    def test_unlock_requires_manage_users(self, client, staff, customer, auth_headers):
        response = client.post("/api/auth/unlock-account", headers=auth_headers(staff.email),
                               json={"email": customer.email})

        assert response.status_code == 403

    def test_unlock_unknown_email(self, client, admin, auth_headers):
        response = client.post("/api/auth/unlock-account", headers=auth_headers(admin.email),
                               json={"email": "nobody@example.com"})

        assert response.status_code == 404

    def test_delete_account(self, client, customer, auth_headers):
        headers = auth_headers(customer.email)
        password_reset_tokens.issue(customer.id)

        wrong = client.delete("/api/auth/account", headers=headers, json={"password": "Wr0ng!pass"})
        response = client.delete("/api/auth/account", headers=headers, json={"password": PASSWORD})

        assert wrong.status_code == 401
        assert response.status_code == 200
        assert User.query.filter_by(email="customer@example.com").first() is None
        assert PasswordResetToken.query.count() == 0
        assert AuditLog.query.filter_by(action="account_deleted").count() == 1
