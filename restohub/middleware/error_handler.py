import traceback
import logging
from flask import jsonify, request, current_app
from sqlalchemy.exc import SQLAlchemyError
from marshmallow import ValidationError as SchemaValidationError
from flask_jwt_extended.exceptions import JWTExtendedException
from datetime import datetime, timezone

from restohub import db
from restohub.errors import ServiceError
from .utils import sanitize_data

logger = logging.getLogger(__name__)


class ErrorHandlerMiddleware:
    """Global error handler middleware for consistent error responses.

    HTTPException is left to flask-smorest, which renders abort() calls and
    request-body validation failures.
    """

    def __init__(self, app):
        self.app = app
        self.register_error_handlers()

    def register_error_handlers(self):
        """Register all error handlers"""

        @self.app.errorhandler(ServiceError)
        def handle_service_error(e):
            """Handle typed failures raised by the service layer"""
            return self._handle_exception(e, e.status_code, e.error_type)

        @self.app.errorhandler(Exception)
        def handle_generic_exception(e):
            """Handle all unhandled exceptions"""
            return self._handle_exception(e, 500, "Internal Server Error")

        @self.app.errorhandler(SQLAlchemyError)
        def handle_sqlalchemy_error(e):
            """Handle database-related errors"""
            db.session.rollback()
            return self._handle_exception(e, 500, "Database Error")

        @self.app.errorhandler(SchemaValidationError)
        def handle_validation_error(e):
            """Handle validation errors from marshmallow"""
            return self._handle_exception(e, 400, "Validation Error")

        @self.app.errorhandler(JWTExtendedException)
        def handle_jwt_error(e):
            """Handle JWT-related errors"""
            return self._handle_exception(e, 401, "Authentication Error")

        @self.app.errorhandler(ValueError)
        def handle_value_error(e):
            """Handle value errors"""
            return self._handle_exception(e, 400, "Bad Request")

        @self.app.errorhandler(KeyError)
        def handle_key_error(e):
            """Handle key errors"""
            return self._handle_exception(e, 400, "Missing Required Field")

    def _handle_exception(self, exception, status_code, error_type):
        """Common exception handler"""
        debug = current_app.config.get('DEBUG', False)
        timestamp = datetime.now(timezone.utc).isoformat()

        request_info = {
            'method': request.method,
            'url': request.url,
            'args': dict(request.args),
            'json': sanitize_data(request.get_json(silent=True)),
            'timestamp': timestamp
        }

        # Server errors never echo internals outside debug mode
        message = str(exception)
        if status_code >= 500 and not debug:
            message = "An unexpected error occurred."

        error_response = {
            'error': {
                'type': error_type,
                'message': message,
                'status_code': status_code,
                'timestamp': timestamp,
                'path': request.path,
                'method': request.method
            }
        }

        if isinstance(exception, ServiceError):
            error_response['error']['code'] = exception.code
            if exception.details:
                error_response['error']['details'] = exception.details

        if isinstance(exception, SchemaValidationError):
            error_response['error']['validation_errors'] = exception.messages

        if status_code >= 500:
            logger.error(
                f"Server Error: {error_type} - {str(exception)}",
                extra={
                    'event': 'server_error',
                    'request_info': request_info,
                    'exception': str(exception),
                    'traceback': traceback.format_exc()
                }
            )
        else:
            logger.warning(
                f"Client Error: {error_type} - {message}",
                extra={
                    'event': 'client_error',
                    'request_info': request_info,
                    'exception': str(exception)
                }
            )

        if debug:
            error_response['error']['traceback'] = traceback.format_exc()

        return jsonify(error_response), status_code


def init_error_handler(app):
    """Initialize error handler middleware"""
    return ErrorHandlerMiddleware(app)
