"""Access-token decoding for WebSocket clients."""

from typing import Optional

from jose import JWTError, jwt

from gym_management.config import Settings, settings as default_settings


def decode_access_token(token: str, settings: Optional[Settings] = None) -> str:
    """
    Return the user id (`sub` claim) of a valid access token.

    Raises:
        ValueError: If the token is malformed, expired, badly signed or has no subject.
    """
    cfg = settings or default_settings
    try:
        payload = jwt.decode(token, cfg.SECRET_KEY.get_secret_value(), algorithms=[cfg.ALGORITHM])
    except JWTError as e:
        raise ValueError(f"Invalid access token: {e}") from e
    user_id = payload.get("sub")
    if not user_id:
        raise ValueError("Access token has no subject")
    return str(user_id)
