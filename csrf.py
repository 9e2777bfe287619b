import time

from itsdangerous import BadSignature, URLSafeTimedSerializer

from config import get_settings


MAX_AGE_HOURS = 2


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.csrf_secret, salt="finance-form")


def generate_csrf_token() -> str:
    return _serializer().dumps({"ts": int(time.time())})


def validate_csrf_token(token: str, max_age_hours: int = MAX_AGE_HOURS) -> bool:
    if not token:
        return False
    try:
        _serializer().loads(token, max_age=max_age_hours * 3600)
    except BadSignature:
        return False
    return True
