import time

import pytest
from jose import jwt

from app.auth.jwt_handler import OperatorTokenError, authenticate_token, operator_from_claims
from app.config import settings

SECRET = "super-secret-jwt-token-with-at-least-32-characters"


@pytest.fixture(autouse=True)
def jwt_secret(monkeypatch):
    monkeypatch.setattr(settings, "SUPABASE_JWT_SECRET", SECRET)


def make_token(secret=SECRET, **overrides):
    claims = {
        "sub": "a1b2c3d4-e5f6-7890-abcd-ef1234567890",
        "aud": "authenticated",
        "role": "authenticated",
        "email": "recepcao@clinica.com.br",
        "exp": int(time.time()) + 3600,
        "user_metadata": {"full_name": "Recepção"}
    }
    claims.update(overrides)
    return jwt.encode(claims, secret, algorithm="HS256")


def test_valid_token_yields_operator():
    operator = authenticate_token(make_token())

    assert operator.operator_id == "a1b2c3d4-e5f6-7890-abcd-ef1234567890"
    assert operator.label == "Recepção"
    assert operator.role == "authenticated"


def test_expired_token_is_rejected():
    with pytest.raises(OperatorTokenError, match="expired"):
        authenticate_token(make_token(exp=int(time.time()) - 10))


def test_wrong_secret_and_audience_are_rejected():
    with pytest.raises(OperatorTokenError):
        authenticate_token(make_token(secret="another-secret-another-secret-another"))
    with pytest.raises(OperatorTokenError):
        authenticate_token(make_token(aud="anon"))


def test_unconfigured_secret_rejects_everything(monkeypatch):
    token = make_token()
    monkeypatch.setattr(settings, "SUPABASE_JWT_SECRET", "")

    with pytest.raises(OperatorTokenError, match="not configured"):
        authenticate_token(token)


def test_claims_without_subject():
    with pytest.raises(OperatorTokenError):
        operator_from_claims({"email": "x@clinica.com.br"})


def test_label_falls_back_to_email():
    operator = operator_from_claims({"sub": "op-1", "email": "x@clinica.com.br"})
    assert operator.label == "x@clinica.com.br"
