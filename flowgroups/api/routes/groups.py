from fastapi import APIRouter, Depends, HTTPException

from flowgroups.api.deps import get_lifecycle, reject
from flowgroups.core.auth import get_current_user_id
from flowgroups.models.enums import MemberRole
from flowgroups.models.group import Group
from flowgroups.schemas.group import GroupCreate, GroupLists, GroupPublic, MemberPublic
from flowgroups.schemas.invite import InvitePublic
from flowgroups.schemas.lifecycle import DisbandPublic
from flowgroups.schemas.message import MessageCreate, MessagePosted
from flowgroups.services.container import Lifecycle
from flowgroups.services.errors import (
    ConcurrentUpdateError,
    GroupNotActiveError,
    GroupNotFoundError,
    InviteCapacityError,
    PolicyError,
)
from flowgroups.services.groups import build_policy
from flowgroups.services.messages import AttachmentIn

router = APIRouter(prefix="/groups", tags=["groups"])


def _get_group_or_404(lc: Lifecycle, group_id: str) -> Group:
    group = lc.groups.get_group(group_id)
    if not group:
        raise HTTPException(status_code=404, detail="Grupo no encontrado")
    return group


def _require_member(lc: Lifecycle, group_id: str, user_id: str) -> MemberRole:
    role = lc.membership.role_of(group_id, user_id)
    if role is None:
        raise HTTPException(status_code=403, detail="Debes ser miembro del grupo")
    return role


def _require_admin(lc: Lifecycle, group_id: str, user_id: str) -> None:
    if _require_member(lc, group_id, user_id) != MemberRole.ADMIN:
        raise HTTPException(status_code=403, detail="Solo un admin puede hacer esto")


def _capacity_error(exc: InviteCapacityError) -> HTTPException:
    return HTTPException(status_code=503, detail=str(exc), headers={"Retry-After": "1"})


@router.post("", response_model=GroupPublic)
def create_group(
    payload: GroupCreate,
    lc: Lifecycle = Depends(get_lifecycle),
    user_id: str = Depends(get_current_user_id),
):
    now = lc.clock.now()
    try:
        policy = build_policy(
            now,
            lifespan=payload.lifespan,
            absolute_expiry=payload.expires_at,
            inactivity_threshold_days=payload.inactivity_threshold_days,
            message_limit=payload.message_limit,
        )
        group = lc.groups.create_group(
            user_id,
            payload.name,
            description=payload.description,
            policy=policy,
            now=now,
        )
    except PolicyError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except InviteCapacityError as exc:
        raise _capacity_error(exc)

    return GroupPublic.model_validate(group)


@router.get("", response_model=GroupLists)
def my_groups(
    lc: Lifecycle = Depends(get_lifecycle),
    user_id: str = Depends(get_current_user_id),
):
    lists = lc.groups.list_groups_for_user(user_id)
    return GroupLists(
        active=[GroupPublic.model_validate(g) for g in lists["active"]],
        archived=[GroupPublic.model_validate(g) for g in lists["archived"]],
    )


@router.get("/{group_id}", response_model=GroupPublic)
def get_group(
    group_id: str,
    lc: Lifecycle = Depends(get_lifecycle),
    user_id: str = Depends(get_current_user_id),
):
    group = _get_group_or_404(lc, group_id)
    _require_member(lc, group_id, user_id)
    return GroupPublic.model_validate(group)


@router.get("/{group_id}/members", response_model=list[MemberPublic])
def list_members(
    group_id: str,
    lc: Lifecycle = Depends(get_lifecycle),
    user_id: str = Depends(get_current_user_id),
):
    _get_group_or_404(lc, group_id)
    _require_member(lc, group_id, user_id)
    return [MemberPublic.model_validate(m) for m in lc.groups.list_members(group_id)]


@router.post("/{group_id}/invite", response_model=InvitePublic)
def issue_invite(
    group_id: str,
    lc: Lifecycle = Depends(get_lifecycle),
    user_id: str = Depends(get_current_user_id),
):
    _get_group_or_404(lc, group_id)
    _require_member(lc, group_id, user_id)
    try:
        code = lc.invites.issue(group_id)
    except GroupNotFoundError:
        raise HTTPException(status_code=404, detail="Grupo no encontrado")
    except GroupNotActiveError:
        raise HTTPException(status_code=410, detail="El grupo ya no está activo")
    except ConcurrentUpdateError:
        raise HTTPException(status_code=409, detail="El grupo cambió a la vez; inténtalo de nuevo")
    except InviteCapacityError as exc:
        raise _capacity_error(exc)
    return InvitePublic(code=code.value, group_id=code.group_id, expires_at=code.expires_at)


@router.post("/{group_id}/invite/regenerate", response_model=InvitePublic)
def regenerate_invite(
    group_id: str,
    lc: Lifecycle = Depends(get_lifecycle),
    user_id: str = Depends(get_current_user_id),
):
    _get_group_or_404(lc, group_id)
    _require_admin(lc, group_id, user_id)
    try:
        code = lc.invites.regenerate(group_id)
    except GroupNotFoundError:
        raise HTTPException(status_code=404, detail="Grupo no encontrado")
    except GroupNotActiveError:
        raise HTTPException(status_code=410, detail="El grupo ya no está activo")
    except ConcurrentUpdateError:
        raise HTTPException(status_code=409, detail="El grupo cambió a la vez; inténtalo de nuevo")
    except InviteCapacityError as exc:
        raise _capacity_error(exc)
    return InvitePublic(code=code.value, group_id=code.group_id, expires_at=code.expires_at)


@router.post("/{group_id}/leave")
def leave_group(
    group_id: str,
    lc: Lifecycle = Depends(get_lifecycle),
    user_id: str = Depends(get_current_user_id),
):
    result = lc.membership.leave(group_id, user_id)
    if not result.ok:
        raise reject(result)
    return {"ok": True, "group_id": group_id}


@router.delete("/{group_id}/members/{target_user_id}")
def remove_member(
    group_id: str,
    target_user_id: str,
    lc: Lifecycle = Depends(get_lifecycle),
    user_id: str = Depends(get_current_user_id),
):
    result = lc.membership.remove(group_id, target_user_id, user_id)
    if not result.ok:
        raise reject(result)
    return {"ok": True, "removed_user_id": target_user_id}


@router.post("/{group_id}/disband", response_model=DisbandPublic)
def disband_group(
    group_id: str,
    lc: Lifecycle = Depends(get_lifecycle),
    user_id: str = Depends(get_current_user_id),
):
    result = lc.sweeper.disband_manually(group_id, user_id)
    if not result.ok:
        raise reject(result)
    return DisbandPublic(
        group_id=result.group_id,
        archived_at=result.archived_at,
        archive_retention_until=result.archive_retention_until,
    )


@router.post("/{group_id}/messages", response_model=MessagePosted)
def post_message(
    group_id: str,
    payload: MessageCreate,
    lc: Lifecycle = Depends(get_lifecycle),
    user_id: str = Depends(get_current_user_id),
):
    result = lc.messages.post_message(
        group_id,
        user_id,
        payload.content,
        message_type=payload.message_type,
        attachments=[AttachmentIn(a.file_path, a.file_type, a.file_size) for a in payload.attachments],
    )
    if not result.ok:
        raise reject(result)
    return MessagePosted(
        message_id=result.message_id,
        group_id=result.group_id,
        message_count=result.message_count,
    )


@router.post("/{group_id}/read")
def mark_read(
    group_id: str,
    lc: Lifecycle = Depends(get_lifecycle),
    user_id: str = Depends(get_current_user_id),
):
    if not lc.messages.mark_read(group_id, user_id):
        raise HTTPException(status_code=403, detail="Debes ser miembro del grupo")
    return {"ok": True}
