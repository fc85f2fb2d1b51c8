import anyio
from fastapi import APIRouter, Depends

from flowgroups.api.deps import get_lifecycle
from flowgroups.core.config import settings
from flowgroups.schemas.lifecycle import ReapReportPublic, SweepReportPublic
from flowgroups.services.container import Lifecycle

router = APIRouter(prefix="/lifecycle", tags=["lifecycle"])


# disparables a demanda (cron, otro servicio); idempotentes
@router.post("/sweep", response_model=SweepReportPublic)
async def run_sweep(lc: Lifecycle = Depends(get_lifecycle)):
    report = await lc.sweeper.sweep(deadline=settings.SWEEP_DEADLINE_SECONDS)
    return SweepReportPublic.model_validate(report)


@router.post("/reap", response_model=ReapReportPublic)
async def run_reap(lc: Lifecycle = Depends(get_lifecycle)):
    report = await anyio.to_thread.run_sync(lc.reaper.reap)
    return ReapReportPublic.model_validate(report)
