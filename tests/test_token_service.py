import jwt
import pytest

from application.dto import PrincipalDTO
from application.services.token_service import TokenService
from core.exceptions import TokenExpiredException, UnauthorizedException

SECRET = "unit-test-secret"


def test_round_trip_principal():
    service = TokenService(secret_key=SECRET, algorithm="HS256", expire_minutes=5)
    token = service.create_access_token(PrincipalDTO(user_id="u1", licensee_id="lic-9", role="agent"))

    principal = service.decode_principal(token)
    assert principal == PrincipalDTO(user_id="u1", licensee_id="lic-9", role="agent")


def test_licensee_defaults_to_subject():
    token = jwt.encode({"sub": "u2", "type": "access"}, SECRET, algorithm="HS256")
    principal = TokenService(secret_key=SECRET, algorithm="HS256").decode_principal(token)
    assert principal.licensee_id == "u2"


def test_camel_case_licensee_claim():
    token = jwt.encode({"sub": "u3", "licenseeId": "lic-3"}, SECRET, algorithm="HS256")
    assert TokenService(secret_key=SECRET, algorithm="HS256").decode_principal(token).licensee_id == "lic-3"


def test_expired_token():
    token = jwt.encode({"sub": "u1", "exp": 1}, SECRET, algorithm="HS256")
    with pytest.raises(TokenExpiredException):
        TokenService(secret_key=SECRET, algorithm="HS256").decode_principal(token)


@pytest.mark.parametrize(
    "token",
    [
        "not-a-jwt",
        jwt.encode({"sub": "u1"}, "another-secret", algorithm="HS256"),
        jwt.encode({"sub": "u1", "type": "refresh"}, SECRET, algorithm="HS256"),
        jwt.encode({"type": "access"}, SECRET, algorithm="HS256"),
    ],
)
def test_rejected_tokens(token):
    with pytest.raises(UnauthorizedException):
        TokenService(secret_key=SECRET, algorithm="HS256").decode_principal(token)
