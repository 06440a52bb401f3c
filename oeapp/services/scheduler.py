"""Background escalation scheduler.

Runs the escalation sweep and deadline reminders every
``ESCALATION_INTERVAL_SECONDS`` as an asyncio task owned by the application
lifespan. The database work is synchronous and runs in the default executor
with its own session per pass.
"""
import asyncio
from typing import Callable, Dict, Optional

from sqlalchemy.orm import Session

from oeapp.config import settings
from oeapp.database import SessionLocal
from oeapp.services.escalation import EscalationService
from oeapp.utils.logger import logger


class EscalationScheduler:
    """Periodic escalation sweep"""

    def __init__(
        self,
        dispatcher=None,
        interval_seconds: Optional[int] = None,
        session_factory: Callable[[], Session] = SessionLocal,
    ):
        self.dispatcher = dispatcher
        self.interval = interval_seconds or settings.ESCALATION_INTERVAL_SECONDS
        self.session_factory = session_factory
        self.running = False
        self._task: Optional[asyncio.Task] = None

    def run_once(self) -> Dict[str, int]:
        """One sweep + reminder pass with a dedicated session."""
        db = self.session_factory()
        try:
            service = EscalationService(db, self.dispatcher)
            result = service.run_sweep()
            result.update(service.send_deadline_reminders())
            return result
        finally:
            db.close()

    async def start(self) -> None:
        if self.running:
            return
        self.running = True
        self._task = asyncio.create_task(self._loop())
        logger.info(f"Escalation scheduler started (every {self.interval}s)")

    async def stop(self) -> None:
        self.running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Escalation scheduler stopped")

    async def _loop(self) -> None:
        loop = asyncio.get_running_loop()
        while self.running:
            try:
                await loop.run_in_executor(None, self.run_once)
            except Exception as exc:
                logger.error("Escalation sweep failed", extra={"error": str(exc)}, exc_info=True)
            await asyncio.sleep(self.interval)
