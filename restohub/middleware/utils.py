import time
import functools
from flask import g, has_app_context
from .logging_config import get_logger

logger = get_logger(__name__)

SENSITIVE_KEYS = {
    'password', 'token', 'secret', 'key', 'authorization',
    'auth', 'credential', 'api_key', 'access_token',
    'refresh_token', 'jwt', 'session', 'cookie'
}


def _request_id():
    return g.get('request_id') if has_app_context() else None


def log_function_call(func):
    """Decorator to log function calls with timing"""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.time()
        name = f"{func.__module__}.{func.__name__}"

        logger.debug(f"Function called: {name}", extra={
            'event': 'function_entry',
            'request_id': _request_id()
        })

        try:
            result = func(*args, **kwargs)
        except Exception as e:
            logger.warning(
                f"Function failed: {name} after {time.time() - start_time:.3f}s",
                extra={
                    'event': 'function_error',
                    'exception': f"{type(e).__name__}: {e}",
                    'request_id': _request_id()
                }
            )
            raise

        logger.debug(
            f"Function completed: {name} in {time.time() - start_time:.3f}s",
            extra={
                'event': 'function_exit',
                'request_id': _request_id()
            }
        )
        return result

    return wrapper


def sanitize_data(data, sensitive_keys=None):
    """Sanitize data by removing sensitive information"""
    if sensitive_keys is None:
        sensitive_keys = SENSITIVE_KEYS

    if isinstance(data, list):
        return [sanitize_data(item, sensitive_keys) for item in data]
    if not isinstance(data, dict):
        return data

    sanitized = {}
    for key, value in data.items():
        key_lower = str(key).lower()
        if any(sensitive in key_lower for sensitive in sensitive_keys):
            sanitized[key] = '***REDACTED***'
        else:
            sanitized[key] = sanitize_data(value, sensitive_keys)

    return sanitized
