"""
Expiry scheduler for temporary mutes.

One asyncio task per active mute sleeps until the mute's deadline and then
resolves it: the record is removed with the store's atomic
``find_and_delete`` and, only if this caller received the record, the
member's previous roles are restored and the mute role removed.

The scheduler owns an explicit ``pending`` table mapping
``(guild_id, user_id)`` to the live :class:`ExpiryHandle`, so a manual unmute
can cancel the timer and a restart can re-arm every stored deadline with
:meth:`ExpiryScheduler.rearm`.

Cancellation only takes effect while a handle is still sleeping. Once the
delay has elapsed the handle is *firing* and runs to completion, so a record
that was deleted is always followed by its restoration attempt.
"""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, Dict, Optional

from mutekeeper.datatypes.discord_datatypes import GuildID, RoleID, UserID
from mutekeeper.datatypes.sanction_datatypes import (
    AlreadyResolved,
    ExpiryOutcome,
    FailureStage,
    ResolutionFailed,
    Restored,
    SanctionKey,
)
from mutekeeper.moderation.directory import DirectoryAdapter
from mutekeeper.moderation.errors import DirectoryError, StoreError
from mutekeeper.repositories.sanction_repo import SanctionStore
from mutekeeper.util.logger import get_logger

logger = get_logger("expiry_scheduler")

OutcomeCallback = Callable[[ExpiryOutcome], Awaitable[None]]


class ExpiryHandle:
    """
    Handle to one pending expiry.

    Attributes:
        key: ``(guild_id, user_id)`` of the muted member.
        restricted_role_id: Role removed when the mute resolves.
        delay: Seconds the handle waits before firing.
        task: Background task running the timer.
    """

    def __init__(self, key: SanctionKey, restricted_role_id: RoleID, delay: float) -> None:
        self.key = key
        self.restricted_role_id = restricted_role_id
        self.delay = delay
        self.task: asyncio.Task[ExpiryOutcome] | None = None
        self._firing = False
        self._cancelled = False

    @property
    def firing(self) -> bool:
        return self._firing

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def done(self) -> bool:
        return self.task is not None and self.task.done()

    def cancel(self) -> bool:
        """
        Cancel the timer if it has not fired yet.

        Returns:
            True if the timer was stopped; False if it is already firing or finished.
        """
        if self._firing or self.task is None or self.task.done():
            return False
        self._cancelled = True
        self.task.cancel()
        return True

    async def wait(self) -> Optional[ExpiryOutcome]:
        """Wait for the timer and return its outcome, or None if it was cancelled."""
        if self.task is None:
            return None
        try:
            return await asyncio.shield(self.task)
        except asyncio.CancelledError:
            if self.task.cancelled():
                return None
            raise

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "firing" if self._firing else "done" if self.done else "pending"
        return f"ExpiryHandle(guild={self.key[0]}, user={self.key[1]}, delay={self.delay:.1f}s, {state})"


class ExpiryScheduler:
    """
    Arms, cancels and resolves mute expiries.

    Args:
        store: Sanction store holding the active records.
        directory: Adapter used to restore roles.
        restore_reason: Audit log reason attached to the role changes.
        on_outcome: Optional coroutine called with every timer-driven outcome,
            for audit reporting.
    """

    def __init__(
        self,
        store: SanctionStore,
        directory: DirectoryAdapter,
        *,
        restore_reason: str = "Mute expired.",
        on_outcome: OutcomeCallback | None = None,
    ) -> None:
        self.store = store
        self.directory = directory
        self.restore_reason = restore_reason
        self.on_outcome = on_outcome
        self.pending: Dict[SanctionKey, ExpiryHandle] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def schedule_expiry(
        self,
        guild_id: GuildID,
        user_id: UserID,
        restricted_role_id: RoleID,
        delay: float,
    ) -> ExpiryHandle:
        """
        Arm a timer that resolves the member's mute after ``delay`` seconds.

        An earlier pending timer for the same member is cancelled first.
        Non-positive delays resolve on the next loop iteration.

        Must be called from a running event loop.
        """
        key: SanctionKey = (guild_id, user_id)
        existing = self.pending.get(key)
        if existing is not None and existing.cancel():
            logger.debug("[EXPIRY] Replaced pending expiry for %s in guild %s", user_id, guild_id)

        handle = ExpiryHandle(key, restricted_role_id, max(0.0, float(delay)))
        loop = asyncio.get_running_loop()
        handle.task = loop.create_task(self._run(handle), name=f"mutekeeper-expiry-{guild_id}-{user_id}")
        self.pending[key] = handle

        logger.debug("[EXPIRY] Armed expiry for %s in guild %s in %.1fs", user_id, guild_id, handle.delay)
        return handle

    def cancel(self, guild_id: GuildID, user_id: UserID) -> bool:
        """Cancel the member's pending timer. Returns True if one was stopped."""
        key: SanctionKey = (guild_id, user_id)
        handle = self.pending.get(key)
        if handle is None or not handle.cancel():
            return False
        self.pending.pop(key, None)
        logger.debug("[EXPIRY] Cancelled expiry for %s in guild %s", user_id, guild_id)
        return True

    def get_handle(self, guild_id: GuildID, user_id: UserID) -> ExpiryHandle | None:
        return self.pending.get((guild_id, user_id))

    async def resolve(
        self,
        guild_id: GuildID,
        user_id: UserID,
        restricted_role_id: RoleID | None = None,
    ) -> ExpiryOutcome:
        """
        Delete the member's record and restore their roles.

        Only the caller that receives the record from ``find_and_delete``
        touches the member's roles. ``restricted_role_id`` defaults to the
        role stored on the record.

        Returns:
            Restored, AlreadyResolved, or ResolutionFailed naming the stage
            that failed. Nothing is retried.
        """
        try:
            record = await self.store.find_and_delete(guild_id, user_id)
        except StoreError as exc:
            logger.error("[EXPIRY] Could not remove mute record for %s in guild %s: %s", user_id, guild_id, exc)
            return ResolutionFailed(FailureStage.STORE, exc)

        if record is None:
            logger.debug("[EXPIRY] Mute for %s in guild %s was already resolved", user_id, guild_id)
            return AlreadyResolved(guild_id, user_id)

        role_to_remove = restricted_role_id if restricted_role_id is not None else record.restricted_role_id

        if record.taken_roles:
            try:
                await self.directory.add_roles(guild_id, user_id, record.taken_roles, reason=self.restore_reason)
            except DirectoryError as exc:
                logger.error(
                    "[EXPIRY] Record removed but roles not restored for %s in guild %s: %s",
                    user_id, guild_id, exc,
                )
                return ResolutionFailed(FailureStage.ROLE_RESTORE, exc, record)

        try:
            await self.directory.remove_role(guild_id, user_id, role_to_remove, reason=self.restore_reason)
        except DirectoryError as exc:
            logger.error(
                "[EXPIRY] Roles restored but mute role %s still applied to %s in guild %s: %s",
                role_to_remove, user_id, guild_id, exc,
            )
            return ResolutionFailed(FailureStage.ROLE_REMOVE, exc, record)

        logger.info("[EXPIRY] Unmuted %s in guild %s", user_id, guild_id)
        return Restored(record)

    async def rearm(self, now: float | None = None) -> int:
        """
        Arm a timer for every stored mute that is not already pending.

        Mutes whose deadline has passed resolve immediately; mutes without a
        deadline are left alone.

        Returns:
            Number of timers armed.

        Raises:
            StoreError: The active records could not be listed.
        """
        now = time.time() if now is None else now
        armed = 0
        for record in await self.store.list_active():
            remaining = record.remaining_seconds(now)
            if remaining is None or record.key in self.pending:
                continue
            self.schedule_expiry(record.guild_id, record.user_id, record.restricted_role_id, remaining)
            armed += 1

        logger.info("[EXPIRY] Re-armed %d stored mute(s)", armed)
        return armed

    async def shutdown(self) -> None:
        """Cancel every sleeping timer and wait for firing ones to finish."""
        handles = list(self.pending.values())
        for handle in handles:
            handle.cancel()

        tasks = [handle.task for handle in handles if handle.task is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        self.pending.clear()
        logger.info("[EXPIRY] Scheduler shut down (%d timer(s) stopped)", len(handles))

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _run(self, handle: ExpiryHandle) -> ExpiryOutcome:
        try:
            if handle.delay > 0:
                await asyncio.sleep(handle.delay)
            handle._firing = True
            outcome = await self.resolve(handle.key[0], handle.key[1], handle.restricted_role_id)
        finally:
            if self.pending.get(handle.key) is handle:
                del self.pending[handle.key]

        if self.on_outcome is not None:
            try:
                await self.on_outcome(outcome)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("[EXPIRY] Outcome callback failed for %s", handle)
        return outcome
