import base64
import json
from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from yamo.auth.jwt import create_access_token, decode_access_token
from yamo.config import settings
from yamo.domain.claims import NO_TEAM, Principal, TeamContext, build_payload, parse_payload
from yamo.domain.errors import DecodeFailure, ErrorKind, TokenDecodeError
from yamo.domain.permissions import TeamRole

PRINCIPAL = Principal(user_id=1, username="admin")


def _b64(data: dict) -> str:
    return base64.urlsafe_b64encode(json.dumps(data).encode()).rstrip(b"=").decode()


def test_round_trip_without_team() -> None:
    decoded = decode_access_token(create_access_token(PRINCIPAL))

    assert decoded.principal == PRINCIPAL
    assert decoded.claim == NO_TEAM
    assert decoded.expires_at - decoded.issued_at == timedelta(minutes=settings.jwt_expiration_minutes)


def test_round_trip_with_team_claim() -> None:
    principal = Principal(user_id=4, username="root", is_superadmin=True)
    claim = TeamContext(team_id=7, team_name="Household", role="collaborator")

    decoded = decode_access_token(create_access_token(principal, claim))

    assert decoded.principal == principal
    assert decoded.claim == claim
    assert decoded.claim.role is TeamRole.COLLABORATOR


def test_tampered_token_is_malformed() -> None:
    header, _payload, signature = create_access_token(PRINCIPAL).split(".")
    forged = build_payload(Principal(user_id=1, username="admin", is_superadmin=True), NO_TEAM)
    forged.update({"iat": 0, "exp": 4102444800})

    with pytest.raises(TokenDecodeError) as exc_info:
        decode_access_token(f"{header}.{_b64(forged)}.{signature}")

    assert exc_info.value.reason is DecodeFailure.MALFORMED
    assert exc_info.value.kind is ErrorKind.INVALID_CREDENTIAL


def test_foreign_secret_is_malformed() -> None:
    payload = build_payload(PRINCIPAL, NO_TEAM)
    payload["exp"] = datetime.now(timezone.utc) + timedelta(hours=1)
    payload["iat"] = datetime.now(timezone.utc)
    token = jwt.encode(payload, "someone-else", algorithm="HS256")

    with pytest.raises(TokenDecodeError) as exc_info:
        decode_access_token(token)
    assert exc_info.value.reason is DecodeFailure.MALFORMED


def test_expired_token() -> None:
    issued = datetime.now(timezone.utc) - timedelta(minutes=settings.jwt_expiration_minutes + 5)

    with pytest.raises(TokenDecodeError) as exc_info:
        decode_access_token(create_access_token(PRINCIPAL, now=issued))
    assert exc_info.value.reason is DecodeFailure.EXPIRED


def test_garbage_token() -> None:
    with pytest.raises(TokenDecodeError) as exc_info:
        decode_access_token("not-a-token")
    assert exc_info.value.reason is DecodeFailure.MALFORMED


@pytest.mark.parametrize(
    "overrides",
    [
        {"team_role": "admin"},
        {"team_id": 7, "team_name": "Household"},
        {"team_id": 7, "team_role": "owner"},
        {"type": "refresh"},
        {"sub": None},
    ],
)
def test_team_claim_invariants(overrides: dict) -> None:
    payload = {**build_payload(PRINCIPAL, NO_TEAM), "iat": 1700000000, "exp": 1700086400, **overrides}

    with pytest.raises(TokenDecodeError) as exc_info:
        parse_payload(payload)
    assert exc_info.value.reason is DecodeFailure.MALFORMED
