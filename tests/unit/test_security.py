"""
Unit tests for jobboard/core/security.py
"""

from datetime import timedelta

from jose import jwt

from jobboard.core.security import (
    ALGORITHM,
    SECRET_KEY,
    create_access_token,
    get_password_hash,
    verify_password,
)


class TestPasswordHashing:

    def test_hash_is_not_plain_text(self):
        hashed = get_password_hash("Password123!")
        assert hashed != "Password123!"
        assert hashed.startswith("$2")

    def test_verify_correct_password(self):
        hashed = get_password_hash("Password123!")
        assert verify_password("Password123!", hashed) is True

    def test_verify_wrong_password(self):
        hashed = get_password_hash("Password123!")
        assert verify_password("WrongPassword!", hashed) is False

    def test_verify_empty_password(self):
        assert verify_password("", get_password_hash("Password123!")) is False

    def test_verify_against_garbage_hash(self):
        assert verify_password("Password123!", "not-a-bcrypt-hash") is False


class TestAccessToken:

    def test_token_carries_subject_and_version(self):
        token = create_access_token({"sub": "42"}, token_version=3)
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        assert payload["sub"] == "42"
        assert payload["tv"] == 3
        assert "exp" in payload

    def test_custom_expiry(self):
        short = create_access_token({"sub": "1"}, expires_delta=timedelta(minutes=1))
        long = create_access_token({"sub": "1"}, expires_delta=timedelta(days=1))
        short_exp = jwt.decode(short, SECRET_KEY, algorithms=[ALGORITHM])["exp"]
        long_exp = jwt.decode(long, SECRET_KEY, algorithms=[ALGORITHM])["exp"]
        assert long_exp > short_exp

    def test_input_claims_are_not_mutated(self):
        claims = {"sub": "1"}
        create_access_token(claims)
        assert claims == {"sub": "1"}
