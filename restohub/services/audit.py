import logging

from flask import has_request_context, request
from sqlalchemy.exc import SQLAlchemyError

from restohub import db
from restohub.models import AuditLog

logger = logging.getLogger(__name__)


def log_action(action, user_id=None, details=None):
    """Append an audit entry and commit it.

    Call this after the primary change is committed. A failed write is logged
    and rolled back, never raised to the caller.
    """
    ip_address = user_agent = None
    if has_request_context():
        ip_address = request.headers.get('X-Forwarded-For', request.remote_addr)
        user_agent = (request.headers.get('User-Agent') or '')[:255] or None

    try:
        entry = AuditLog(
            user_id=user_id,
            action=action,
            details=details or {},
            ip_address=ip_address,
            user_agent=user_agent,
        )
        db.session.add(entry)
        db.session.commit()
        return entry
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error("Failed to write audit log", extra={
            'event': 'audit_log_failed',
            'action': action,
            'user_id': user_id,
            'exception': str(e)
        })
        return None
