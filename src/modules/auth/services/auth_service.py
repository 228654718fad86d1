from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from jose import JWTError, jwt

from config import get_settings


@dataclass(frozen=True)
class AuthenticatedUser:
    """Identidad opaca del usuario autenticado; la gestión de usuarios es externa."""
    id: str
    email: Optional[str] = None


class AuthService:

    @staticmethod
    def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
        """Crea token JWT"""
        settings = get_settings()
        to_encode = data.copy()
        if expires_delta:
            expire = datetime.utcnow() + expires_delta
        else:
            expire = datetime.utcnow() + timedelta(minutes=settings.access_token_expire_minutes)
        to_encode.update({"exp": expire})
        return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)

    @staticmethod
    def verify_token(token: str) -> Optional[AuthenticatedUser]:
        """Verifica token JWT y retorna la identidad del usuario"""
        settings = get_settings()
        try:
            payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        except JWTError:
            return None
        subject = payload.get("sub")
        if subject is None:
            return None
        return AuthenticatedUser(id=str(subject), email=payload.get("email"))
