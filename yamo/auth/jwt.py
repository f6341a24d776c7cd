from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError, jwt

from yamo.config import settings
from yamo.domain.claims import NO_TEAM, DecodedToken, Principal, TeamClaim, build_payload, parse_payload
from yamo.domain.errors import DecodeFailure, TokenDecodeError


def create_access_token(
    principal: Principal,
    claim: TeamClaim = NO_TEAM,
    *,
    now: datetime | None = None,
) -> str:
    """Create a signed JWT session token, optionally carrying a team claim."""
    issued_at = now or datetime.now(timezone.utc)
    expire = issued_at + timedelta(minutes=settings.jwt_expiration_minutes)
    payload = build_payload(principal, claim)
    payload["exp"] = expire
    payload["iat"] = issued_at
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> DecodedToken:
    """Decode and validate a JWT. Raises TokenDecodeError if expired or malformed."""
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError as exc:
        raise TokenDecodeError(DecodeFailure.EXPIRED) from exc
    except JWTError as exc:
        raise TokenDecodeError(DecodeFailure.MALFORMED, str(exc)) from exc
    return parse_payload(payload)
