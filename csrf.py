import secrets
from typing import Optional

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from config import get_settings


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.csrf_secret, salt="ledger-form")


def generate_csrf_token() -> str:
    return _serializer().dumps({"n": secrets.token_hex(8)})


def validate_csrf_token(token: Optional[str], max_age_hours: Optional[int] = None) -> bool:
    if not token:
        return False
    if max_age_hours is None:
        max_age_hours = get_settings().csrf_max_age_hours
    try:
        data = _serializer().loads(token, max_age=max_age_hours * 3600)
    except SignatureExpired:
        return False
    except BadSignature:
        return False
    return isinstance(data, dict) and "n" in data
