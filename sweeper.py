import asyncio
from typing import List, Optional

from constants import EMPTY_ROOM_GRACE_SECONDS, SWEEP_INTERVAL_SECONDS, WAITING_ROOM_TTL_SECONDS
from logging_config import get_logger
from registry import Room, RoomRegistry, RoomStatus

logger = get_logger(__name__)


class RoomSweeper:
    """Background task that reclaims stale rooms. Deletions are silent to clients."""

    def __init__(
        self,
        registry: RoomRegistry,
        interval: float = SWEEP_INTERVAL_SECONDS,
        waiting_ttl: float = WAITING_ROOM_TTL_SECONDS,
        empty_grace: float = EMPTY_ROOM_GRACE_SECONDS,
    ):
        self.registry = registry
        self.interval = interval
        self.waiting_ttl = waiting_ttl
        self.empty_grace = empty_grace
        self.swept_total = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.info(f"Room sweeper started (interval {self.interval}s)")

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Room sweeper stopped")

    async def _run(self):
        try:
            while True:
                await asyncio.sleep(self.interval)
                try:
                    await self.sweep_once()
                except Exception as e:
                    logger.error(f"Error while sweeping rooms: {e}", exc_info=True)
        except asyncio.CancelledError:
            logger.debug("Room sweeper task cancelled")
            raise

    def _expiry_reason(self, room: Room, now: float) -> Optional[str]:
        if room.is_empty and now - room.last_activity_at > self.empty_grace:
            return f"empty for {now - room.last_activity_at:.0f}s"
        if room.status == RoomStatus.WAITING and now - room.created_at > self.waiting_ttl:
            return f"waiting for {now - room.created_at:.0f}s"
        return None

    async def sweep_once(self) -> List[str]:
        now = self.registry.now()
        deleted = []
        for code in self.registry.codes():
            # Same lock as join/leave, so a join cannot land on a room being reclaimed
            async with self.registry.lock(code):
                room = self.registry.get(code)
                if room is None:
                    continue
                reason = self._expiry_reason(room, now)
                if reason is None:
                    continue
                self.registry.delete(code)
                deleted.append(code)
                logger.info(f"Swept room {code}: {reason}")
        self.swept_total += len(deleted)
        if deleted:
            logger.info(f"Sweep removed {len(deleted)} rooms ({len(self.registry)} remaining)")
        return deleted
