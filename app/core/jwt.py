from typing import Optional
from jose import JWTError, jwt
from fastapi import Header
from app.core.config import settings
from app.core.errors import ApiError, ApiErrorCode


class BackupTokenVerifier:
    """
    Verifies the HS256 access tokens issued by the hosted auth provider.

    The backup bridge only needs the user id (``sub``); no user table is kept.
    """

    def __init__(self, secret_key: Optional[str] = None, algorithm: Optional[str] = None):
        self.secret_key = secret_key if secret_key is not None else settings.supabase_jwt_secret
        self.algorithm = algorithm or settings.jwt_algorithm

    def verify_token(self, token: str) -> str:
        if not self.secret_key:
            raise ApiError("Invalid or expired token", ApiErrorCode.UNAUTHORIZED)
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                options={"verify_aud": False},
            )
        except JWTError:
            raise ApiError("Invalid or expired token", ApiErrorCode.UNAUTHORIZED)

        user_id = payload.get("sub")
        if not user_id:
            raise ApiError("Invalid or expired token", ApiErrorCode.UNAUTHORIZED)
        return str(user_id)


def get_token_verifier() -> BackupTokenVerifier:
    return BackupTokenVerifier()


def bearer_token(authorization: Optional[str]) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise ApiError("Missing or invalid Authorization", ApiErrorCode.UNAUTHORIZED)
    token = authorization[len("Bearer "):].strip()
    if not token:
        raise ApiError("Missing or invalid Authorization", ApiErrorCode.UNAUTHORIZED)
    return token


def get_backup_user_id(authorization: Optional[str] = Header(None)) -> str:
    """FastAPI dependency resolving the bearer token to a user id."""
    token = bearer_token(authorization)
    return get_token_verifier().verify_token(token)
