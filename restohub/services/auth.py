"""Credential checks, session tokens and account recovery flows."""
import logging

from flask import current_app
from flask_jwt_extended import create_access_token, create_refresh_token, decode_token
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from restohub import db
from restohub.errors import (
    ConflictError, ForbiddenError, NotFoundError, UnauthorizedError, ValidationError
)
from restohub.models import Role, User, utcnow
from restohub.permissions import (
    BuiltInRole, STAFF_ROLE_IDS, has_capability, to_capability
)
from restohub.services import audit
from restohub.services.email import send_password_reset_email, send_verification_email
from restohub.services.logout import is_token_revoked, logout_logic
from restohub.services.passwords import (
    hash_password, is_valid_email, password_errors, verify_password
)
from restohub.services.tokens import email_verification_tokens, password_reset_tokens

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Email or password is incorrect"
ACCOUNT_LOCKED = "Account is locked. Please contact administrator"
RESET_REQUESTED_MESSAGE = ("If an account exists with this email, "
                           "a password reset link will be sent shortly.")
VERIFICATION_REQUESTED_MESSAGE = ("If an account exists with this email and is not yet verified, "
                                  "a verification link will be sent shortly.")

CLAIM_KEYS = ("user_id", "email", "user_name", "role_id", "role_name", "permissions")


# Helpers

def _normalize_email(email):
    return email.strip().lower() if email else email


def _require_fields(data, names):
    missing = [name for name in names if data.get(name) in (None, "")]
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            code="missing_fields",
            details={name: "Required" for name in missing})


def _check_password_policy(password):
    errors = password_errors(password)
    if errors:
        raise ValidationError(errors[0], code="weak_password",
                              details={"password": errors})


def _check_email_format(email):
    if not is_valid_email(email):
        raise ValidationError("Invalid email format", code="invalid_email")


def _ensure_email_available(email):
    if User.query.filter_by(email=email).first() is not None:
        raise ConflictError("Email already exists", code="email_exists")


def _get_user(user_id):
    user = db.session.get(User, int(user_id))
    if user is None:
        raise NotFoundError("User not found", code="user_not_found")
    return user


def _find_by_email(email):
    email = _normalize_email(email)
    if not email:
        return None
    return User.query.filter_by(email=email).first()


def _save_new_user(user):
    try:
        db.session.add(user)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Email already exists", code="email_exists")
    return user


def _decode(token):
    try:
        payload = decode_token(token)
    except (JWTExtendedException, PyJWTError) as e:
        logger.info("Token verification failed", extra={
            'event': 'token_verification_failed',
            'reason': type(e).__name__
        })
        raise UnauthorizedError("Invalid or expired token", code="invalid_token")
    if is_token_revoked(payload):
        raise UnauthorizedError("Token has been revoked", code="token_revoked")
    return payload


def build_claims(user):
    role = user.role
    return {
        "user_id": user.id,
        "email": user.email,
        "user_name": user.user_name,
        "role_id": role.id,
        "role_name": role.name,
        "permissions": role.permission_map(),
    }


def issue_session_tokens(user):
    claims = build_claims(user)
    identity = str(user.id)
    expires = current_app.config['JWT_ACCESS_TOKEN_EXPIRES']
    return {
        "token": create_access_token(identity=identity, additional_claims=claims),
        "refresh_token": create_refresh_token(identity=identity, additional_claims=claims),
        "token_type": "Bearer",
        "expires_in": int(expires.total_seconds()),
    }


# Registration

def register(data, acting_claims=None):
    """Self-signup when anonymous, staff creation when called by admin or manager."""
    data = dict(data or {})
    if acting_claims:
        if acting_claims.get("role_id") not in (BuiltInRole.ADMIN, BuiltInRole.MANAGER):
            raise ForbiddenError(
                "Only admin or manager can create staff accounts",
                code="staff_creation_forbidden")
        return _register_staff(data, acting_claims)
    return _register_customer(data)


def _register_customer(data):
    _require_fields(data, ["user_name", "password", "email"])
    email = _normalize_email(data["email"])
    _check_email_format(email)
    _check_password_policy(data["password"])
    _ensure_email_available(email)

    user = _save_new_user(User(
        user_name=data["user_name"].strip(),
        email=email,
        password=hash_password(data["password"]),
        phone=data.get("phone"),
        role_id=int(BuiltInRole.CUSTOMER),
    ))

    verification = email_verification_tokens.issue(user.id, email=email)
    send_verification_email(email, verification.token)

    audit.log_action("registration_attempted", user_id=user.id, details={
        "mode": "self_signup", "role_id": user.role_id})
    logger.info("Customer registered", extra={
        'event': 'user_registered', 'user_id': user.id})

    return {
        "message": "User registered successfully",
        "user": user.to_dict(),
        **issue_session_tokens(user),
    }


def _register_staff(data, acting_claims):
    _require_fields(data, ["user_name", "password"])
    email = _normalize_email(data.get("email"))
    if email:
        _check_email_format(email)

    role_id = data.get("role_id")
    role_id = int(BuiltInRole.STAFF if role_id is None else role_id)
    if role_id not in STAFF_ROLE_IDS:
        raise ValidationError(
            "Invalid role for staff account. Allowed roles: admin, manager, staff",
            code="invalid_role")
    if db.session.get(Role, role_id) is None:
        raise NotFoundError("Role not found", code="role_not_found")

    _check_password_policy(data["password"])
    if email:
        _ensure_email_available(email)

    user = _save_new_user(User(
        user_name=data["user_name"].strip(),
        email=email or None,
        password=hash_password(data["password"]),
        phone=data.get("phone"),
        role_id=role_id,
    ))

    audit.log_action("registration_attempted", user_id=acting_claims.get("user_id"), details={
        "mode": "staff_creation", "created_user_id": user.id, "role_id": role_id})
    logger.info("Staff account created", extra={
        'event': 'staff_created',
        'user_id': user.id,
        'created_by': acting_claims.get("user_id")
    })

    return {"message": "Staff account created successfully", "user": user.to_dict()}


# Login and session tokens

def login(email, password):
    if not email or not password:
        raise ValidationError("Email and password are required", code="missing_fields")

    user = _find_by_email(email)
    if user is None:
        logger.warning("Login failed", extra={
            'event': 'login_failed', 'reason': 'unknown_email'})
        audit.log_action("login_failed", details={"email": _normalize_email(email),
                                                  "reason": "unknown_email"})
        raise UnauthorizedError(INVALID_CREDENTIALS, code="invalid_credentials")

    if user.locked:
        audit.log_action("login_failed", user_id=user.id, details={"reason": "account_locked"})
        raise UnauthorizedError(ACCOUNT_LOCKED, code="account_locked")

    if not verify_password(password, user.password):
        user_id = user.id
        locked_now = _record_failed_attempt(user_id)
        audit.log_action("login_failed", user_id=user_id, details={"reason": "wrong_password"})
        if locked_now:
            logger.warning("Account locked after repeated failures", extra={
                'event': 'account_locked', 'user_id': user_id})
            audit.log_action("account_locked", user_id=user_id)
        raise UnauthorizedError(INVALID_CREDENTIALS, code="invalid_credentials")

    user.login_attempt = 0
    user.last_login = utcnow()
    db.session.commit()

    audit.log_action("login", user_id=user.id)
    logger.info("Login successful", extra={'event': 'login', 'user_id': user.id})

    return {
        "message": "Login successful",
        "user": user.to_dict(),
        **issue_session_tokens(user),
    }


def _record_failed_attempt(user_id):
    """Increment the counter and apply the lock in one transaction.

    Both steps are conditional UPDATEs evaluated by the database, so parallel
    failures cannot read the same stale counter.
    """
    max_attempts = current_app.config['MAX_LOGIN_ATTEMPTS']
    db.session.execute(
        update(User)
        .where(User.id == user_id)
        .values(login_attempt=User.login_attempt + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(
        update(User)
        .where(User.id == user_id,
               User.locked.is_(False),
               User.login_attempt >= max_attempts)
        .values(locked=True, lock_up_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    return result.rowcount == 1


def refresh_token(token):
    """Issue new tokens with claims re-read from the store."""
    if not token:
        raise ValidationError("Refresh token is required", code="missing_fields")

    payload = _decode(token)
    user = db.session.get(User, int(payload["sub"]))
    if user is None:
        raise UnauthorizedError("User not found", code="user_not_found")
    if user.locked:
        raise UnauthorizedError(ACCOUNT_LOCKED, code="account_locked")
    if user.role is None or not user.role.is_active:
        raise UnauthorizedError("Your role is no longer active", code="role_inactive")

    return {"message": "Token refreshed successfully", **issue_session_tokens(user)}


def verify_token(token):
    if not token:
        raise ValidationError("Token is required", code="missing_fields")
    payload = _decode(token)
    return {
        "valid": True,
        "claims": {key: payload.get(key) for key in CLAIM_KEYS},
        "expires_at": payload.get("exp"),
    }


def logout(jwt_payload):
    result = logout_logic(jwt_payload)
    audit.log_action("logout", user_id=jwt_payload.get("user_id"))
    return result


def get_profile(user_id):
    user = _get_user(user_id)
    return {"user": user.to_dict(), "permissions": user.role.permission_map()}


def check_permission(claims, permission):
    capability = to_capability(permission)
    return {
        "permission": capability.value,
        "role_name": claims.get("role_name"),
        "has_permission": has_capability(claims, capability),
    }


# Passwords

def change_password(user_id, old_password, new_password):
    _require_fields({"old_password": old_password, "new_password": new_password},
                    ["old_password", "new_password"])
    user = _get_user(user_id)

    if not verify_password(old_password, user.password):
        audit.log_action("password_change_failed", user_id=user.id,
                         details={"reason": "wrong_password"})
        raise UnauthorizedError("Current password is incorrect", code="invalid_password")
    if new_password == old_password:
        raise ValidationError("New password must be different from the current password",
                              code="password_unchanged")
    _check_password_policy(new_password)

    user.password = hash_password(new_password)
    db.session.commit()

    audit.log_action("password_changed", user_id=user.id)
    return {"message": "Password changed successfully"}


def forgot_password(email):
    """Same answer whether or not the account exists."""
    if not email:
        raise ValidationError("Email is required", code="missing_fields")

    user = _find_by_email(email)
    if user is not None:
        record = password_reset_tokens.issue(user.id)
        send_password_reset_email(user.email, record.token)
        audit.log_action("password_reset_requested", user_id=user.id)
    else:
        logger.info("Password reset requested for unknown email", extra={
            'event': 'password_reset_unknown_email'})

    return {"message": RESET_REQUESTED_MESSAGE}


def reset_password(token, new_password, confirm_password):
    _require_fields({"token": token, "new_password": new_password,
                     "confirm_password": confirm_password},
                    ["token", "new_password", "confirm_password"])
    if new_password != confirm_password:
        raise ValidationError("Passwords do not match", code="password_mismatch")
    _check_password_policy(new_password)

    record = password_reset_tokens.consume(token)
    user = db.session.get(User, record.user_id)
    if user is None:
        db.session.rollback()
        raise NotFoundError("User not found", code="user_not_found")

    user.password = hash_password(new_password)
    user.locked = False
    user.login_attempt = 0
    user.lock_up_at = None
    db.session.commit()

    audit.log_action("password_reset", user_id=user.id)
    return {"message": "Password has been reset successfully"}


# Email verification

def verify_email(token):
    if not token:
        raise ValidationError("Verification token is required", code="missing_fields")

    record = email_verification_tokens.consume(token)
    user = db.session.get(User, record.user_id)
    if user is None:
        db.session.rollback()
        raise NotFoundError("User not found", code="user_not_found")

    user.email_verified = True
    user.email_verified_at = utcnow()
    db.session.commit()

    audit.log_action("email_verified", user_id=user.id, details={"email": record.email})
    return {"message": "Email verified successfully", "email": record.email, "user_id": user.id}


def resend_verification_email(email):
    if not email:
        raise ValidationError("Email is required", code="missing_fields")

    user = _find_by_email(email)
    if user is not None and not user.email_verified:
        record = email_verification_tokens.issue(user.id, email=user.email)
        send_verification_email(user.email, record.token)
        audit.log_action("verification_email_resent", user_id=user.id)

    return {"message": VERIFICATION_REQUESTED_MESSAGE}


# Account administration

def unlock_account(email, actor_id=None):
    if not email:
        raise ValidationError("Email is required", code="missing_fields")
    user = _find_by_email(email)
    if user is None:
        raise NotFoundError("User with this email not found", code="user_not_found")

    user.locked = False
    user.login_attempt = 0
    user.lock_up_at = None
    db.session.commit()

    audit.log_action("account_unlocked", user_id=user.id, details={"unlocked_by": actor_id})
    logger.info("Account unlocked", extra={
        'event': 'account_unlocked', 'user_id': user.id, 'unlocked_by': actor_id})
    return {"message": "Account unlocked successfully", "user": user.to_dict()}


def delete_account(user_id, password):
    if not password:
        raise ValidationError("Password confirmation is required", code="missing_fields")
    user = _get_user(user_id)
    if not verify_password(password, user.password):
        raise UnauthorizedError("Password is incorrect", code="invalid_password")

    email = user.email
    db.session.delete(user)
    db.session.commit()

    audit.log_action("account_deleted", details={"user_id": int(user_id), "email": email})
    return {"message": "Your account has been permanently deleted"}
