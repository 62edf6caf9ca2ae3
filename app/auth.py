from fastapi import Depends, Header, HTTPException
from jose import JWTError, jwt

from app.config import Settings


def verify_token(authorization: str = Header(...)):
    try:
        scheme, token = authorization.split()
        if scheme.lower() != "bearer":
            raise ValueError("unsupported scheme")
        return jwt.decode(token, Settings.from_env().jwt_secret, algorithms=["HS256"])
    except (ValueError, JWTError):
        raise HTTPException(status_code=401, detail="Invalid or missing token")


def require_admin(claims: dict = Depends(verify_token)):
    if str(claims.get("role", "")).upper() != "ADMIN":
        raise HTTPException(status_code=403, detail="Admin role required")
    return claims
