from datetime import datetime, timedelta, timezone
from uuid import uuid4

from jose import JWTError, jwt

from gscms.core.config import settings

ALGORITHM = "HS256"


class TokenValidationError(ValueError):
    pass


def create_access_token(user_id: str, *, expires_delta: timedelta | None = None) -> str:
    """Issue a token shaped like the identity provider's access tokens (dev and tests)."""
    now = datetime.now(timezone.utc)
    delta = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    payload = {
        "sub": user_id,
        "jti": str(uuid4()),
        "iat": int(now.timestamp()),
        "exp": int((now + delta).timestamp()),
    }
    if settings.jwt_audience:
        payload["aud"] = settings.jwt_audience
    return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    options = {"verify_aud": bool(settings.jwt_audience)}
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[ALGORITHM],
            audience=settings.jwt_audience,
            options=options,
        )
    except JWTError as exc:
        raise TokenValidationError("Invalid token") from exc

    subject = payload.get("sub")
    if not subject:
        raise TokenValidationError("Invalid token subject")

    return payload
