import pytest

from restohub.services.passwords import (
    hash_password, is_strong_password, is_valid_email, password_errors, verify_password
)


@pytest.mark.parametrize("password", ["Str0ng!Pass", "Aa1!aaaa", "XYZabc123$%^"])
def test_strong_passwords_pass(password):
    assert is_strong_password(password)
    assert password_errors(password) == []


@pytest.mark.parametrize("password, first_error", [
    ("Ab1!", "Password must be at least 8 characters"),
    ("lowercase1!", "Password must contain at least one uppercase letter"),
    ("UPPERCASE1!", "Password must contain at least one lowercase letter"),
    ("NoDigits!!", "Password must contain at least one number"),
    ("NoSpecial123", "Password must contain at least one special character (!@#$%^&*)"),
])
def test_first_unmet_rule_is_reported_first(password, first_error):
    errors = password_errors(password)
    assert not is_strong_password(password)
    assert errors[0] == first_error


def test_all_rules_listed_in_order_for_empty_password():
    assert password_errors("") == [
        "Password must be at least 8 characters",
        "Password must contain at least one uppercase letter",
        "Password must contain at least one lowercase letter",
        "Password must contain at least one number",
        "Password must contain at least one special character (!@#$%^&*)",
    ]


def test_special_character_must_come_from_fixed_set():
    # '?' is not one of !@#$%^&*
    assert not is_strong_password("Abcdefg1?")
    assert is_strong_password("Abcdefg1&")


@pytest.mark.parametrize("email, valid", [
    ("user@example.com", True),
    ("first.last@sub.domain.org", True),
    ("no-at-sign.com", False),
    ("user@nodot", False),
    ("user name@example.com", False),
    ("", False),
])
def test_email_format(email, valid):
    assert is_valid_email(email) is valid


def test_hash_is_salted_and_verifiable():
    first, second = hash_password("Str0ng!Pass"), hash_password("Str0ng!Pass")
    assert first != second
    assert verify_password("Str0ng!Pass", first)
    assert not verify_password("wrong", first)
