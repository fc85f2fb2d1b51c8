from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import jwt, JWTError

from flowgroups.core.config import settings

security = HTTPBearer(auto_error=False)


def _user_id_from_token(token: str) -> Optional[str]:
    # el proveedor de identidad firma el token; confiamos en "sub" tal cual
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None
    sub = payload.get("sub")
    if not sub:
        return None
    return str(sub)


def get_current_user_id(
    creds: HTTPAuthorizationCredentials = Depends(security),
) -> str:
    if creds is None:
        raise HTTPException(status_code=401, detail="Falta token Bearer")

    user_id = _user_id_from_token(creds.credentials)
    if user_id is None:
        raise HTTPException(status_code=401, detail="Token inválido o expirado")
    return user_id

