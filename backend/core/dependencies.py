from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from slowapi import Limiter
from slowapi.util import get_remote_address

from core.security import verify_access_token
from core.exceptions import credentials_exception, forbidden_exception
from database import DocumentStore, get_store
from models.common import UserRole

bearer_scheme = HTTPBearer(auto_error=False)

# Rate limiter (partagé entre main.py et les routers)
limiter = Limiter(key_func=get_remote_address)


async def load_user_from_token(store: DocumentStore, token: Optional[str]) -> Optional[dict]:
    """Utilisateur actif correspondant au token, ou None."""
    if not token:
        return None
    payload = verify_access_token(token)
    if not payload or not payload.get("sub"):
        return None
    user = await store.find_one("users", {"user_id": payload["sub"]})
    if not user or not user.get("is_active", True):
        return None
    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    store: DocumentStore = Depends(get_store),
) -> dict:
    if not credentials:
        raise credentials_exception()
    payload = verify_access_token(credentials.credentials)
    if not payload:
        raise credentials_exception()

    user_id = payload.get("sub")
    if not user_id:
        raise credentials_exception()

    user = await store.find_one("users", {"user_id": user_id})
    if not user:
        raise credentials_exception()
    if not user.get("is_active", True):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Compte désactivé",
        )
    return user


def require_role(*roles: UserRole):
    """
    Dépendance qui vérifie que l'utilisateur connecté possède l'un des rôles donnés.
    Usage : Depends(require_role(UserRole.DRIVER, UserRole.ADMIN))
    """
    async def _check(current_user: dict = Depends(get_current_user)) -> dict:
        if current_user.get("role") not in [r.value for r in roles]:
            raise forbidden_exception()
        return current_user
    return _check


# Raccourcis pratiques
require_admin = require_role(UserRole.ADMIN)
require_driver = require_role(UserRole.DRIVER, UserRole.ADMIN)
require_client = require_role(UserRole.CLIENT, UserRole.ADMIN)
