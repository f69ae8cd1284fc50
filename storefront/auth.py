from dataclasses import dataclass

from fastapi import Header, HTTPException
from jose import JWTError, jwt

from storefront import config


@dataclass
class CurrentUser:
    id: str
    email: str = None


def verify_token(authorization: str = Header(...)) -> CurrentUser:
    try:
        scheme, token = authorization.split()
        if scheme.lower() != "bearer":
            raise ValueError("unsupported scheme")
        secret = config.jwt_secret()
        if not secret:
            raise ValueError("JWT_SECRET is not set")
        claims = jwt.decode(token, secret, algorithms=["HS256"])
        user_id = claims.get("sub") or claims.get("userId")
        if not user_id:
            raise ValueError("token has no subject")
    except (ValueError, JWTError):
        raise HTTPException(status_code=401, detail="Invalid or missing token")
    return CurrentUser(id=str(user_id), email=claims.get("email"))
