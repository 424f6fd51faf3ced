from datetime import datetime, timezone

from restohub import db
from restohub.models import TokenBlocklist, utcnow


def logout_logic(jwt_payload):
    """Add the token's jti to the blocklist until it would have expired."""
    jti = jwt_payload["jti"]
    if TokenBlocklist.query.filter_by(jti=jti).first() is None:
        exp = jwt_payload.get("exp")
        expires_at = (datetime.fromtimestamp(exp, timezone.utc).replace(tzinfo=None)
                      if exp else None)
        db.session.add(TokenBlocklist(jti=jti, expires_at=expires_at))
        db.session.commit()
    return {"message": "Logged out successfully", "status": 200}


def is_token_revoked(jwt_payload):
    """Check if the token is in the blocklist."""
    jti = jwt_payload.get("jti")
    return TokenBlocklist.query.filter_by(jti=jti).first() is not None


def purge_expired_blocklist():
    count = TokenBlocklist.query.filter(
        TokenBlocklist.expires_at < utcnow()).delete(synchronize_session=False)
    db.session.commit()
    return count
