"""
Fuente de tiempo del motor de ciclo de vida.

Regla (igual que en la DB): todo se guarda como UTC naive.
- Si dt es naive: asumimos que YA está en UTC.
- Si dt tiene tz: convertimos a UTC y quitamos tzinfo.
"""
from datetime import datetime, timedelta, timezone
from typing import Protocol


def utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def iso_z(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return dt.replace(tzinfo=timezone.utc).isoformat().replace("+00:00", "Z")


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    def now(self) -> datetime:
        return utc_now_naive()


class FixedClock:
    """Reloj que solo avanza a mano (tests, reproducciones)."""

    def __init__(self, start: datetime):
        self._now = to_utc_naive(start)

    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime) -> None:
        self._now = to_utc_naive(value)

    def advance(self, **kwargs) -> datetime:
        self._now = self._now + timedelta(**kwargs)
        return self._now
