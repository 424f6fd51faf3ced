"""Typed failures raised by the service layer.

Services raise these at the point of detection; the error handler middleware
turns them into JSON responses once, at the request boundary.
"""


class ServiceError(Exception):
    status_code = 500
    error_type = "Service Error"
    default_code = "service_error"

    def __init__(self, message, code=None, details=None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details

    def to_dict(self):
        payload = {"message": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(ServiceError):
    status_code = 400
    error_type = "Validation Error"
    default_code = "validation_error"


class UnauthorizedError(ServiceError):
    status_code = 401
    error_type = "Unauthorized"
    default_code = "unauthorized"


class ForbiddenError(ServiceError):
    status_code = 403
    error_type = "Forbidden"
    default_code = "forbidden"


class NotFoundError(ServiceError):
    status_code = 404
    error_type = "Not Found"
    default_code = "not_found"


class ConflictError(ServiceError):
    status_code = 409
    error_type = "Conflict"
    default_code = "conflict"


class TokenError(UnauthorizedError):
    """A single-use token could not be consumed.

    ``reason`` is one of ``not_found``, ``already_used`` or ``expired``.
    """
    default_code = "invalid_token"

    def __init__(self, message, reason):
        super().__init__(message, code=reason)
        self.reason = reason
