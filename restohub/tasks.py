import logging

from celery import shared_task
from sqlalchemy.exc import SQLAlchemyError

from restohub import db
from restohub.services.logout import purge_expired_blocklist
from restohub.services.tokens import purge_expired_tokens as purge_single_use_tokens

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3, default_retry_delay=300)
def purge_expired_tokens(self):
    """Periodic sweep of expired single-use tokens and blocklist entries."""
    try:
        removed = purge_single_use_tokens()
        removed["blocklist"] = purge_expired_blocklist()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error("Token purge failed", extra={
            'event': 'token_purge_failed', 'exception': str(e)})
        raise self.retry(exc=e)
    return removed
