import time
from typing import Optional

from itsdangerous import BadData, URLSafeTimedSerializer

from config import get_settings


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.token_secret, salt="access-token")


def issue_access_token(user_id: int, username: str) -> str:
    serializer = _serializer()
    timestamp = int(time.time())

    token_data = {"u": user_id, "n": username, "ts": timestamp}

    return serializer.dumps(token_data)


def read_access_token(token: str, max_age_hours: Optional[int] = None) -> Optional[dict]:
    """Return the token payload, or None when the signature is bad or expired."""
    if max_age_hours is None:
        max_age_hours = get_settings().token_ttl_hours
    serializer = _serializer()
    try:
        data = serializer.loads(token, max_age=max_age_hours * 3600)
    except BadData:
        return None

    if not isinstance(data, dict) or not isinstance(data.get("u"), int):
        return None

    return data
