import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import sessionmaker

from flowgroups.core.clock import Clock
from flowgroups.core.config import settings
from flowgroups.core.database import Base, SessionLocal
from flowgroups.core.logging import configure_logging
from flowgroups.models.group import Group  # noqa: F401
from flowgroups.models.membership import GroupMember  # noqa: F401
from flowgroups.models.message import Attachment, Message  # noqa: F401

from flowgroups.api.routes.groups import router as groups_router
from flowgroups.api.routes.invites import router as invites_router
from flowgroups.api.routes.lifecycle import router as lifecycle_router
from flowgroups.web.dev import router as dev_router

# ✅ SSE
from flowgroups.realtime import sse
from flowgroups.services.container import build_lifecycle
from flowgroups.services.reaper import BlobStore
from flowgroups.services.scheduler import LifecycleScheduler

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


def create_app(
    session_factory: Optional[sessionmaker] = None,
    *,
    clock: Optional[Clock] = None,
    blob_store: Optional[BlobStore] = None,
    scheduler_enabled: Optional[bool] = None,
) -> FastAPI:
    session_factory = session_factory or SessionLocal
    Base.metadata.create_all(bind=session_factory.kw["bind"])

    lifecycle = build_lifecycle(
        session_factory,
        clock=clock,
        emit=sse.publish,
        blob_store=blob_store,
    )
    run_scheduler = settings.SCHEDULER_ENABLED if scheduler_enabled is None else scheduler_enabled

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        task = None
        if run_scheduler:
            task = asyncio.create_task(LifecycleScheduler(lifecycle).run_forever())
        try:
            yield
        finally:
            if task is not None:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

    app = FastAPI(title="FlowGroups Lifecycle API", version="0.1.0", lifespan=lifespan)
    app.state.lifecycle = lifecycle

    # ✅ CORS primero
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:8081",
            "http://127.0.0.1:8081",
        ],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        allow_credentials=False,
    )

    # ✅ Routers después
    app.include_router(groups_router)
    app.include_router(invites_router)
    app.include_router(lifecycle_router)
    app.include_router(sse.router)
    app.include_router(dev_router)

    @app.get("/health")
    def health():
        return {"ok": True}

    return app


app = create_app()
