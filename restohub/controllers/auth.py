from flask_smorest import Blueprint
from flask.views import MethodView
from flask_jwt_extended import get_jwt, get_jwt_identity, jwt_required

from restohub.permissions import Capability, optional_claims, permission_required, verify_token_optional
from restohub.schemas import (
    RegisterSchema, LoginSchema, TokenSchema, ChangePasswordSchema, EmailSchema,
    ResetPasswordSchema, VerifyEmailSchema, PasswordConfirmationSchema, CheckPermissionSchema
)
from restohub.services import auth
from restohub.services.logout import logout_logic


blp = Blueprint("Auth", __name__, url_prefix="/api/auth",
                description="Authentication, sessions and account recovery")


@blp.route("/register")
class Register(MethodView):
    @verify_token_optional
    @blp.arguments(RegisterSchema)
    def post(self, data):
        """Customer self-signup, or staff creation when called by an admin or manager."""
        return auth.register(data, acting_claims=optional_claims() or None), 201


@blp.route("/login")
class Login(MethodView):
    @blp.arguments(LoginSchema)
    def post(self, data):
        return auth.login(data["email"], data["password"])


@blp.route("/refresh-token")
class RefreshToken(MethodView):
    @blp.arguments(TokenSchema)
    def post(self, data):
        """Issue fresh tokens with claims re-read from the database."""
        return auth.refresh_token(data.get("refresh_token") or data.get("token"))


@blp.route("/verify")
class VerifyToken(MethodView):
    @blp.arguments(TokenSchema)
    def post(self, data):
        return auth.verify_token(data.get("token") or data.get("refresh_token"))


@blp.route("/me")
class Me(MethodView):
    @jwt_required()
    def get(self):
        return auth.get_profile(get_jwt_identity())


@blp.route("/check-permission")
class CheckPermission(MethodView):
    @jwt_required()
    @blp.arguments(CheckPermissionSchema)
    def post(self, data):
        return auth.check_permission(get_jwt(), data["permission"])


@blp.route("/logout")
class Logout(MethodView):
    @jwt_required(verify_type=False)
    def post(self):
        """Revoke the presented token."""
        return auth.logout(get_jwt())


@blp.route("/change-password")
class ChangePassword(MethodView):
    @jwt_required()
    @blp.arguments(ChangePasswordSchema)
    def post(self, data):
        return auth.change_password(get_jwt_identity(), data["old_password"], data["new_password"])


@blp.route("/forgot-password")
class ForgotPassword(MethodView):
    @blp.arguments(EmailSchema)
    def post(self, data):
        return auth.forgot_password(data["email"])


@blp.route("/reset-password")
class ResetPassword(MethodView):
    @blp.arguments(ResetPasswordSchema)
    def post(self, data):
        return auth.reset_password(data["token"], data["new_password"], data["confirm_password"])


@blp.route("/verify-email")
class VerifyEmail(MethodView):
    @blp.arguments(VerifyEmailSchema)
    def post(self, data):
        return auth.verify_email(data["token"])


@blp.route("/resend-verification")
class ResendVerification(MethodView):
    @blp.arguments(EmailSchema)
    def post(self, data):
        return auth.resend_verification_email(data["email"])


@blp.route("/unlock-account")
class UnlockAccount(MethodView):
    @permission_required(Capability.MANAGE_USERS)
    @blp.arguments(EmailSchema)
    def post(self, data):
        """Clear the lock of an account (admin only)."""
        return auth.unlock_account(data["email"], actor_id=get_jwt().get("user_id"))


@blp.route("/account")
class Account(MethodView):
    @jwt_required()
    @blp.arguments(PasswordConfirmationSchema)
    def delete(self, data):
        """Permanently delete the caller's own account."""
        result = auth.delete_account(get_jwt_identity(), data["password"])
        logout_logic(get_jwt())
        return result
