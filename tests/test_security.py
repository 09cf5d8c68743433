import jwt
import pytest

from tutor_center.config import settings
from tutor_center.security import (
    AuthError,
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)


def test_token_round_trip_carries_user_and_role():
    claims = decode_access_token(create_access_token(17, "teacher"))

    assert claims.user_id == 17
    assert claims.role == "teacher"


def test_expired_token_is_rejected():
    token = create_access_token(17, "teacher", expires_minutes=-5)

    with pytest.raises(AuthError, match="expired"):
        decode_access_token(token)


def test_token_without_role_is_rejected():
    token = jwt.encode({"sub": "17", "exp": 4102444800}, settings.jwt_secret, algorithm=settings.jwt_algorithm)

    with pytest.raises(AuthError):
        decode_access_token(token)


def test_non_numeric_subject_is_rejected():
    token = jwt.encode(
        {"sub": "abc", "role": "parent", "exp": 4102444800}, settings.jwt_secret, algorithm=settings.jwt_algorithm
    )

    with pytest.raises(AuthError, match="payload"):
        decode_access_token(token)


def test_password_hash_checks():
    hashed = hash_password("secret123")

    assert verify_password("secret123", hashed)
    assert not verify_password("secret124", hashed)
    assert not verify_password("secret123", "not-a-bcrypt-hash")
