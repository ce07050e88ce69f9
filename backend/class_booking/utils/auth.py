from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

import jwt
from jwt import InvalidTokenError

from ..domain.services import Identity


def create_access_token(
    *,
    user_id: str,
    secret: str,
    display_name: Optional[str] = None,
    email: Optional[str] = None,
    algorithm: str = "HS256",
    expires_delta: timedelta | None = None,
) -> str:
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(minutes=30))
    payload = {"sub": user_id, "iat": now, "exp": exp}
    if display_name is not None:
        payload["name"] = display_name
    if email is not None:
        payload["email"] = email
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_access_token(
    token: str,
    *,
    secret: str,
    algorithms: Sequence[str],
) -> Identity:
    try:
        payload = jwt.decode(token, secret, algorithms=list(algorithms))
    except InvalidTokenError as exc:  # includes ExpiredSignatureError
        raise ValueError("invalid token") from exc

    sub = payload.get("sub")
    if not isinstance(sub, str) or not sub:
        raise ValueError("token missing sub")
    name = payload.get("name")
    email = payload.get("email")
    return Identity(
        user_id=sub,
        display_name=name if isinstance(name, str) else None,
        email=email if isinstance(email, str) else None,
    )
