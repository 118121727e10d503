"""SLA breach sweep and its background scheduler."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ...config import settings
from ...errors import TransactionError
from ...models.domain import AuditEvent, SweepResult, utcnow
from ...models.lifecycle import TERMINAL_STATUSES
from ...persistence.tables import RequestRow
from ..audit import AuditSink, emit_safely

logger = logging.getLogger(__name__)


class SlaMonitor:
    """Flags open requests older than the SLA window and unflags finished ones.

    The sweep is idempotent: both updates are conditioned on the current flag
    value, so an immediate second run touches no rows.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        window_hours: float | None = None,
        audit_sink: AuditSink | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.window_hours = window_hours if window_hours is not None else settings.sla_window_hours
        self.audit_sink = audit_sink

    def cutoff(self, now: datetime | None = None) -> datetime:
        return (now or utcnow()) - timedelta(hours=self.window_hours)

    def run_sweep(self, now: datetime | None = None) -> SweepResult:
        cutoff = self.cutoff(now)
        try:
            with self.session_factory.begin() as session:
                flagged = session.execute(
                    update(RequestRow)
                    .where(
                        RequestRow.status.not_in(list(TERMINAL_STATUSES)),
                        RequestRow.created_at < cutoff,
                        RequestRow.sla_breached.is_(False),
                    )
                    .values(sla_breached=True)
                    .execution_options(synchronize_session=False)
                ).rowcount
                cleared = session.execute(
                    update(RequestRow)
                    .where(
                        RequestRow.status.in_(list(TERMINAL_STATUSES)),
                        RequestRow.sla_breached.is_(True),
                    )
                    .values(sla_breached=False)
                    .execution_options(synchronize_session=False)
                ).rowcount
        except SQLAlchemyError as exc:
            logger.exception("SLA sweep failed and was rolled back")
            raise TransactionError(f"SLA sweep failed: {exc}") from exc

        result = SweepResult(flagged=flagged, cleared=cleared, cutoff=cutoff, threshold_hours=self.window_hours)
        if flagged or cleared:
            logger.info(f"[SLA] Updated breaches: +{flagged}, reset:{cleared}")
            emit_safely(
                self.audit_sink,
                AuditEvent(
                    entity_type="Request",
                    entity_id="*",
                    action="SLA_SWEEP",
                    metadata={"flagged": flagged, "cleared": cleared, "cutoff": cutoff.isoformat()},
                ),
            )
        return result


class SlaScheduler:
    """Runs ``SlaMonitor.run_sweep`` on a daemon thread at a fixed interval."""

    def __init__(self, monitor: SlaMonitor, interval_seconds: float | None = None) -> None:
        self.monitor = monitor
        self.interval_seconds = interval_seconds or settings.sla_check_interval_seconds
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> SweepResult | None:
        try:
            return self.monitor.run_sweep()
        except Exception as exc:
            logger.error(f"[SLA] Scheduler run failed: {exc}")
            return None

    def _loop(self) -> None:
        self.run_once()
        while not self._stop.wait(self.interval_seconds):
            self.run_once()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="sla-scheduler", daemon=True)
        self._thread.start()
        logger.info(f"[SLA] Scheduler started ({self.interval_seconds:g}s interval)")

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
