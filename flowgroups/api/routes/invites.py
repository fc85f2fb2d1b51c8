from fastapi import APIRouter, Depends

from flowgroups.api.deps import get_lifecycle, reject
from flowgroups.core.auth import get_current_user_id
from flowgroups.schemas.invite import InviteValidation
from flowgroups.services.container import Lifecycle

router = APIRouter(prefix="/invites", tags=["invites"])


@router.get("/{code}", response_model=InviteValidation)
def validate_invite(code: str, lc: Lifecycle = Depends(get_lifecycle)):
    group_id = lc.invites.validate(code)
    return InviteValidation(valid=group_id is not None, group_id=group_id)


@router.post("/{code}/join")
def join_by_invite(
    code: str,
    lc: Lifecycle = Depends(get_lifecycle),
    user_id: str = Depends(get_current_user_id),
):
    result = lc.membership.join(code, user_id)
    if not result.ok:
        raise reject(result)
    return {"ok": True, "group_id": result.group_id, "message": "Te has unido al grupo (por invitación)"}
