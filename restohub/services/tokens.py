"""Single-use, time-limited tokens for password reset and email verification.

A token is ``issued`` when created and ends either ``consumed`` (one
successful redemption) or ``expired``. Redemption is a conditional UPDATE on
the unconsumed row, so two concurrent attempts can never both succeed.
"""
from collections import namedtuple
import logging
import secrets

from flask import current_app
from sqlalchemy import update

from restohub import db
from restohub.errors import TokenError
from restohub.models import EmailVerificationToken, PasswordResetToken, utcnow

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32

NOT_FOUND = "not_found"
ALREADY_USED = "already_used"
EXPIRED = "expired"

TokenCheck = namedtuple("TokenCheck", ["is_valid", "reason", "record"])


def generate_token_value():
    return secrets.token_hex(TOKEN_BYTES)


class SingleUseTokenManager:

    def __init__(self, model, used_flag, used_at, lifetime_setting, messages):
        self.model = model
        self.used_flag = used_flag
        self.used_at = used_at
        self.lifetime_setting = lifetime_setting
        self.messages = messages

    @property
    def lifetime(self):
        return current_app.config[self.lifetime_setting]

    def _is_consumed(self, record):
        return bool(getattr(record, self.used_flag))

    def issue(self, user_id, **extra):
        """Create and commit a new token for ``user_id``."""
        column = getattr(self.model, self.used_flag)
        if current_app.config.get('INVALIDATE_PREVIOUS_TOKENS'):
            self.model.query.filter(
                self.model.user_id == user_id, column.is_(False)
            ).delete(synchronize_session=False)

        record = self.model(
            user_id=user_id,
            token=generate_token_value(),
            expires_at=utcnow() + self.lifetime,
            **extra
        )
        db.session.add(record)
        db.session.commit()

        logger.info("Single-use token issued", extra={
            'event': 'token_issued',
            'token_type': self.model.__tablename__,
            'user_id': user_id
        })
        return record

    def check(self, value, now=None):
        """Read-only validity check."""
        now = now or utcnow()
        record = self.model.query.filter_by(token=value).first() if value else None
        if record is None:
            return TokenCheck(False, NOT_FOUND, None)
        if self._is_consumed(record):
            return TokenCheck(False, ALREADY_USED, record)
        if now > record.expires_at:
            return TokenCheck(False, EXPIRED, record)
        return TokenCheck(True, None, record)

    def consume(self, value):
        """Mark the token consumed and return its row.

        Nothing is committed here; the caller commits together with the
        change the token authorises. Raises ``TokenError`` on failure.
        """
        now = utcnow()
        result = self.check(value, now)
        if not result.is_valid:
            self._fail(result.reason)

        column = getattr(self.model, self.used_flag)
        outcome = db.session.execute(
            update(self.model)
            .where(self.model.id == result.record.id, column.is_(False))
            .values({self.used_flag: True, self.used_at: now})
            .execution_options(synchronize_session=False)
        )
        if outcome.rowcount != 1:
            # lost the race against a concurrent redemption
            db.session.rollback()
            self._fail(ALREADY_USED)

        db.session.refresh(result.record)
        return result.record

    def purge_expired(self):
        """Delete expired tokens that were never consumed."""
        column = getattr(self.model, self.used_flag)
        count = self.model.query.filter(
            self.model.expires_at < utcnow(), column.is_(False)
        ).delete(synchronize_session=False)
        db.session.commit()
        return count

    def _fail(self, reason):
        logger.warning("Single-use token rejected", extra={
            'event': 'token_rejected',
            'token_type': self.model.__tablename__,
            'reason': reason
        })
        raise TokenError(self.messages[reason], reason)


password_reset_tokens = SingleUseTokenManager(
    PasswordResetToken, 'is_used', 'used_at', 'PASSWORD_RESET_TOKEN_EXPIRES',
    messages={
        NOT_FOUND: "Token not found",
        ALREADY_USED: "Token already used",
        EXPIRED: "Token expired",
    })

email_verification_tokens = SingleUseTokenManager(
    EmailVerificationToken, 'is_verified', 'verified_at', 'EMAIL_VERIFICATION_TOKEN_EXPIRES',
    messages={
        NOT_FOUND: "Token not found",
        ALREADY_USED: "Email already verified",
        EXPIRED: "Token expired",
    })


def purge_expired_tokens():
    """Sweep both token tables; returns deleted row counts."""
    removed = {
        "password_reset": password_reset_tokens.purge_expired(),
        "email_verification": email_verification_tokens.purge_expired(),
    }
    logger.info("Expired tokens purged", extra={
        'event': 'tokens_purged',
        'removed': removed
    })
    return removed
