import logging
import logging.handlers
import os
from datetime import datetime, timezone
import json

# Attributes passed through ``extra=`` that end up in the JSON log line
EXTRA_FIELDS = (
    'request_id', 'event', 'request_data', 'response_data', 'processing_time',
    'exception', 'traceback', 'user_id', 'order_id', 'reason', 'token_type',
    'roles_created', 'removed',
)


class JSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging"""

    def format(self, record):
        log_entry = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        for field in EXTRA_FIELDS:
            if hasattr(record, field):
                log_entry[field] = getattr(record, field)

        return json.dumps(log_entry, default=str)


def _rotating_handler(logs_dir, filename, level, formatter):
    handler = logging.handlers.RotatingFileHandler(
        os.path.join(logs_dir, filename),
        maxBytes=10*1024*1024,  # 10MB
        backupCount=5
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(app):
    """Setup structured logging for the application"""
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if app.debug else logging.INFO)

    # Clear existing handlers
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    ))
    root_logger.addHandler(console_handler)

    request_logger = logging.getLogger('restohub.middleware.request_logger')
    request_logger.setLevel(logging.INFO)

    logs_dir = None
    if app.config.get('LOG_TO_FILE', True):
        logs_dir = app.config.get('LOG_DIR') or os.path.join(app.root_path, '..', 'logs')
        os.makedirs(logs_dir, exist_ok=True)
        json_formatter = JSONFormatter()

        root_logger.addHandler(_rotating_handler(
            logs_dir, 'app.log', logging.INFO, json_formatter))
        root_logger.addHandler(_rotating_handler(
            logs_dir, 'error.log', logging.ERROR, json_formatter))

        # Request/response lines go to their own file only
        request_logger.addHandler(_rotating_handler(
            logs_dir, 'requests.log', logging.INFO, json_formatter))
        request_logger.propagate = False

    logging.getLogger('werkzeug').setLevel(logging.WARNING)
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info("Logging system initialized", extra={
        'event': 'logging_initialized',
        'logs_directory': logs_dir
    })


def get_logger(name):
    """Get a logger instance with the given name"""
    return logging.getLogger(name)
