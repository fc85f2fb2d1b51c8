"""
Disparo periódico de sweep y reap dentro del lifespan de la app.

El motor no guarda estado global: esto es solo un host más (igual que un
cron llamando a POST /lifecycle/sweep). Varias instancias a la vez son
seguras gracias a las escrituras condicionales.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

import anyio

from flowgroups.core.config import settings
from flowgroups.services.container import Lifecycle

logger = logging.getLogger(__name__)


class LifecycleScheduler:
    def __init__(
        self,
        lifecycle: Lifecycle,
        *,
        sweep_interval_seconds: Optional[int] = None,
        reap_interval_seconds: Optional[int] = None,
        sweep_deadline_seconds: Optional[float] = None,
    ):
        self.lifecycle = lifecycle
        self.sweep_interval = timedelta(
            seconds=sweep_interval_seconds or settings.SWEEP_INTERVAL_SECONDS
        )
        self.reap_interval = timedelta(
            seconds=reap_interval_seconds or settings.REAP_INTERVAL_SECONDS
        )
        self.sweep_deadline = (
            sweep_deadline_seconds if sweep_deadline_seconds is not None else settings.SWEEP_DEADLINE_SECONDS
        )
        self.last_sweep: Optional[datetime] = None
        self.last_reap: Optional[datetime] = None

    @property
    def tick_seconds(self) -> float:
        return min(self.sweep_interval, self.reap_interval).total_seconds()

    @staticmethod
    def should_run(last_run: Optional[datetime], interval: timedelta, now: datetime) -> bool:
        if last_run is None:
            return True
        return now - last_run >= interval

    async def tick(self) -> list[str]:
        """Ejecuta lo que toque ahora; devuelve qué se ejecutó."""
        now = self.lifecycle.clock.now()
        ran = []

        if self.should_run(self.last_sweep, self.sweep_interval, now):
            await self.lifecycle.sweeper.sweep(now, deadline=self.sweep_deadline)
            self.last_sweep = now
            ran.append("sweep")

        if self.should_run(self.last_reap, self.reap_interval, now):
            await anyio.to_thread.run_sync(self.lifecycle.reaper.reap, now)
            self.last_reap = now
            ran.append("reap")

        return ran

    async def run_forever(self) -> None:
        logger.info(
            "Scheduler iniciado (sweep=%ss, reap=%ss)",
            int(self.sweep_interval.total_seconds()),
            int(self.reap_interval.total_seconds()),
        )
        try:
            while True:
                try:
                    await self.tick()
                except Exception:
                    # no tumbamos el bucle; se reintenta en el siguiente tick
                    logger.exception("Error en el scheduler de ciclo de vida")
                await anyio.sleep(self.tick_seconds)
        finally:
            logger.info("Scheduler detenido")
