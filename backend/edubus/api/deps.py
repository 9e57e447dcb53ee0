from collections.abc import Callable, Generator, Iterable
from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.orm import Session

from edubus.core.security import Role, decode_token
from edubus.db.session import SessionLocal

security = HTTPBearer()


@dataclass(frozen=True)
class Principal:
    """Caller identity carried by the bearer token; accounts live outside this service."""

    id: str
    role: Role


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def principal_from_token(token: str) -> Principal | None:
    try:
        payload = decode_token(token)
    except JWTError:
        return None
    subject = payload.get("sub")
    role = payload.get("role")
    if not subject or role not in {item.value for item in Role}:
        return None
    return Principal(id=subject, role=Role(role))


def get_current_principal(credentials: HTTPAuthorizationCredentials = Depends(security)) -> Principal:
    principal = principal_from_token(credentials.credentials)
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal


def require_roles(*roles: Role) -> Callable[[Principal], Principal]:
    allowed_roles: Iterable[Role] = set(roles)

    def role_checker(current_principal: Principal = Depends(get_current_principal)) -> Principal:
        if current_principal.role not in allowed_roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return current_principal

    return role_checker
