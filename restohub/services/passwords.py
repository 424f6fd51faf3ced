import re

from passlib.hash import pbkdf2_sha256

SPECIAL_CHARACTERS = "!@#$%^&*"
MIN_PASSWORD_LENGTH = 8

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# Checked in this order; callers show the first failure only
PASSWORD_RULES = [
    (lambda p: len(p) >= MIN_PASSWORD_LENGTH,
     f"Password must be at least {MIN_PASSWORD_LENGTH} characters"),
    (lambda p: re.search(r"[A-Z]", p),
     "Password must contain at least one uppercase letter"),
    (lambda p: re.search(r"[a-z]", p),
     "Password must contain at least one lowercase letter"),
    (lambda p: re.search(r"[0-9]", p),
     "Password must contain at least one number"),
    (lambda p: any(c in SPECIAL_CHARACTERS for c in p),
     f"Password must contain at least one special character ({SPECIAL_CHARACTERS})"),
]


def password_errors(password):
    """Return the messages of every strength rule ``password`` breaks."""
    password = password or ""
    return [message for check, message in PASSWORD_RULES if not check(password)]


def is_strong_password(password):
    return not password_errors(password)


def is_valid_email(email):
    return bool(email) and EMAIL_PATTERN.match(email) is not None


def hash_password(password):
    return pbkdf2_sha256.hash(password)


def verify_password(password, password_hash):
    if not password or not password_hash:
        return False
    return pbkdf2_sha256.verify(password, password_hash)
