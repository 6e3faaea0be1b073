import jwt
from datetime import datetime, timedelta
from .config import settings


# =========================
# JWT Token Handling
# =========================
# Tokens are issued by the identity service. create_jwt_token exists for local
# runs and tests; production code paths only decode.
def create_jwt_token(data: dict, expires_in: timedelta = timedelta(hours=24)):
    """Create JWT access token carrying sub, role and profile_id claims"""
    to_encode = data.copy()
    expire = datetime.utcnow() + expires_in
    to_encode.update({"exp": expire, "type": "access"})

    # Ensure SECRET_KEY is properly set
    if not settings.SECRET_KEY or settings.SECRET_KEY == "change-me-in-prod":
        raise ValueError("SECRET_KEY not properly configured")

    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_jwt_token(token: str):
    """Decode and verify JWT token, None when it is invalid or expired"""
    if not settings.SECRET_KEY or settings.SECRET_KEY == "change-me-in-prod":
        return None
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None
    if payload.get("type", "access") != "access":
        return None
    return payload
