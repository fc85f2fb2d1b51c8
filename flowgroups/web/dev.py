from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import HTMLResponse

from flowgroups.core.config import settings
from flowgroups.core.security import create_access_token

router = APIRouter(prefix="/dev", tags=["dev"])


def _only_dev():
    # Activa DEV=true en .env
    if getattr(settings, "DEV", False) is not True:
        raise HTTPException(status_code=404, detail="Not found")


@router.get("", response_class=HTMLResponse)
def dev_home(_=Depends(_only_dev)):
    return """
    <h2>DEV panel</h2>
    <ul>
      <li><a href="/dev/token?user_id=dev-user">Token para dev-user</a></li>
      <li><a href="/docs">Ir a /docs (API)</a></li>
    </ul>
    """


@router.get("/token")
def dev_token(user_id: str, _=Depends(_only_dev)):
    # el proveedor de identidad real es externo; esto solo firma un "sub"
    user_id = user_id.strip()
    if not user_id:
        raise HTTPException(status_code=400, detail="user_id vacío")
    return {"access_token": create_access_token(user_id), "token_type": "bearer"}
