from flask_smorest import Blueprint
from flask.views import MethodView
from flask_jwt_extended import get_jwt

from restohub.permissions import Capability, permission_required
from restohub.schemas import (
    AssignRoleSchema, RoleSchema, RoleUpdateSchema, UserBranchesSchema, UserQuerySchema,
    UserUpdateSchema
)
from restohub.services import roles, users


blp = Blueprint("Roles", __name__, description="Roles, permissions and user administration")


@blp.route("/api/roles")
class RoleList(MethodView):
    @permission_required(Capability.MANAGE_ROLES)
    def get(self):
        return {"roles": [role.to_dict() for role in roles.list_roles()]}

    @permission_required(Capability.MANAGE_ROLES)
    @blp.arguments(RoleSchema)
    def post(self, data):
        role = roles.create_role(data)
        return {"role": role.to_dict(), "message": "Role created successfully", "status": 201}, 201


@blp.route("/api/roles/<int:role_id>")
class RoleDetail(MethodView):
    @permission_required(Capability.MANAGE_ROLES)
    def get(self, role_id):
        return {"role": roles.get_role(role_id).to_dict()}

    @permission_required(Capability.MANAGE_ROLES)
    @blp.arguments(RoleUpdateSchema(partial=True))
    def patch(self, data, role_id):
        role = roles.update_role(role_id, data)
        return {"role": role.to_dict(), "message": "Role updated successfully", "status": 200}

    @permission_required(Capability.MANAGE_ROLES)
    def delete(self, role_id):
        roles.delete_role(role_id)
        return {"message": "Role deleted successfully", "status": 200}


@blp.route("/api/users")
class UserList(MethodView):
    @permission_required(Capability.MANAGE_USERS)
    @blp.arguments(UserQuerySchema, location="query")
    def get(self, filters):
        return users.list_users(filters)


@blp.route("/api/users/statistics")
class UserStatistics(MethodView):
    @permission_required(Capability.MANAGE_USERS, Capability.VIEW_ANALYTICS)
    def get(self):
        return {"statistics": users.get_user_statistics()}


@blp.route("/api/users/<int:user_id>")
class UserDetail(MethodView):
    @permission_required(Capability.MANAGE_USERS)
    def get(self, user_id):
        return {"user": users.user_details(users.get_user(user_id))}

    @permission_required(Capability.MANAGE_USERS)
    @blp.arguments(UserUpdateSchema)
    def put(self, data, user_id):
        user = users.update_user(user_id, data, actor_id=get_jwt().get("user_id"))
        return {"user": users.user_details(user), "message": "User updated successfully",
                "status": 200}

    @permission_required(Capability.MANAGE_USERS)
    def delete(self, user_id):
        users.delete_user(user_id, actor_id=get_jwt().get("user_id"))
        return {"message": "User deleted successfully", "status": 200}


@blp.route("/api/users/<int:user_id>/role")
class UserRole(MethodView):
    @permission_required(Capability.MANAGE_USERS)
    @blp.arguments(AssignRoleSchema)
    def patch(self, data, user_id):
        user = roles.assign_role(user_id, data["role_id"], actor_id=get_jwt().get("user_id"))
        return {"user": user.to_dict(), "message": "Role assigned successfully", "status": 200}


@blp.route("/api/users/<int:user_id>/branches")
class UserBranchList(MethodView):
    @permission_required(Capability.MANAGE_USERS, Capability.MANAGE_STAFF)
    def get(self, user_id):
        return {"branches": [branch.to_dict() for branch in users.get_user_branches(user_id)]}

    @permission_required(Capability.MANAGE_USERS, Capability.MANAGE_STAFF)
    @blp.arguments(UserBranchesSchema)
    def put(self, data, user_id):
        branches = users.assign_branches(user_id, data["branch_ids"],
                                         actor_id=get_jwt().get("user_id"))
        return {"branches": [branch.to_dict() for branch in branches],
                "message": "User assigned to branches successfully", "status": 200}
