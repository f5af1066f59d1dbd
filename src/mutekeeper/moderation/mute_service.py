"""
Apply-mute and manual-unmute entry points.

Applying a mute snapshots the member's roles, swaps them for the mute role,
stores the record with an absolute deadline and arms the expiry timer. If the
record cannot be stored the role changes are rolled back, so a member is
never left muted without a record that will eventually unmute them.

A manual unmute cancels the pending timer and runs the same resolution as
the timer; the store's atomic delete means only one of them ever restores
roles, even if the timer fires at the same moment.
"""

from __future__ import annotations

import time
from typing import Iterable, Sequence

import discord

from mutekeeper.datatypes.discord_datatypes import GuildID, RoleID, UserID
from mutekeeper.datatypes.sanction_datatypes import (
    DEFAULT_REASON,
    ExpiryOutcome,
    MuteApplied,
    MuteFailed,
    MuteOutcome,
    MuteStage,
    SanctionRecord,
)
from mutekeeper.moderation.directory import DirectoryAdapter
from mutekeeper.moderation.errors import DirectoryError, DuplicateSanctionError, StoreError
from mutekeeper.moderation.expiry_scheduler import ExpiryScheduler
from mutekeeper.repositories.sanction_repo import SanctionStore
from mutekeeper.util.logger import get_logger

logger = get_logger("mute_service")


def snapshot_roles(
    current_roles: Iterable[RoleID],
    restricted_role_id: RoleID,
    default_role_id: RoleID | None = None,
) -> tuple[RoleID, ...]:
    """Roles to take away: everything except the mute role and @everyone, deduplicated in order."""
    taken: list[RoleID] = []
    for role_id in current_roles:
        if role_id == restricted_role_id or role_id == default_role_id or role_id in taken:
            continue
        taken.append(role_id)
    return tuple(taken)


class MuteService:
    """
    Applies mutes and lifts them on request.

    Args:
        store: Sanction store holding the active mute records.
        directory: Adapter used to change the member's roles.
        scheduler: Expiry scheduler that arms and resolves timers.
        default_duration_seconds: Mute length used by ``apply_mute_to_member``
            when no duration is given; None means the mute never expires.
    """

    def __init__(
        self,
        store: SanctionStore,
        directory: DirectoryAdapter,
        scheduler: ExpiryScheduler,
        *,
        default_duration_seconds: float | None = None,
    ) -> None:
        self.store = store
        self.directory = directory
        self.scheduler = scheduler
        self.default_duration_seconds = default_duration_seconds

    async def apply_mute(
        self,
        guild_id: GuildID,
        user_id: UserID,
        current_roles: Sequence[RoleID],
        restricted_role_id: RoleID,
        duration_seconds: float | None,
        reason: str = DEFAULT_REASON,
        *,
        default_role_id: RoleID | None = None,
    ) -> MuteOutcome:
        """
        Mute a member and arm the expiry timer.

        Args:
            guild_id: Guild the member belongs to.
            user_id: Member to mute.
            current_roles: The member's roles right now.
            restricted_role_id: Mute role to apply.
            duration_seconds: Seconds until the mute expires; None never expires.
            reason: Reason stored with the record and sent to the audit log.
            default_role_id: The guild's @everyone role, which is never taken.

        Returns:
            MuteApplied with the stored record and timer handle, or MuteFailed
            naming the step that failed.
        """
        # A timer still restoring an earlier mute would strip the new mute role
        firing = self.scheduler.get_handle(guild_id, user_id)
        if firing is not None and firing.firing:
            logger.debug("[MUTE] Waiting for expiring mute of %s in guild %s to finish", user_id, guild_id)
            await firing.wait()

        try:
            if await self.store.find_by_subject(guild_id, user_id) is not None:
                raise DuplicateSanctionError("apply_mute", f"user {user_id} is already muted in guild {guild_id}")
        except StoreError as exc:
            logger.error("[MUTE] Refusing to mute %s in guild %s: %s", user_id, guild_id, exc)
            return MuteFailed(MuteStage.STORE, exc)

        taken = snapshot_roles(current_roles, restricted_role_id, default_role_id)
        now = int(time.time())
        record = SanctionRecord(
            guild_id=guild_id,
            user_id=user_id,
            restricted_role_id=restricted_role_id,
            taken_roles=taken,
            expires_at=None if duration_seconds is None else now + int(duration_seconds),
            reason=reason,
            created_at=now,
        )

        try:
            await self.directory.add_roles(guild_id, user_id, [restricted_role_id], reason=reason)
        except DirectoryError as exc:
            logger.error("[MUTE] Failed to apply mute role to %s in guild %s: %s", user_id, guild_id, exc)
            return MuteFailed(MuteStage.APPLY_ROLE, exc)

        if taken:
            try:
                await self.directory.remove_roles(guild_id, user_id, taken, reason=reason)
            except DirectoryError as exc:
                logger.error("[MUTE] Failed to remove roles from %s in guild %s: %s", user_id, guild_id, exc)
                await self._rollback(record, restore_taken=False)
                return MuteFailed(MuteStage.STRIP_ROLES, exc)

        try:
            await self.store.insert(record)
        except StoreError as exc:
            logger.error("[MUTE] Failed to store mute for %s in guild %s: %s", user_id, guild_id, exc)
            await self._rollback(record, restore_taken=True)
            return MuteFailed(MuteStage.STORE, exc)

        handle = None
        if duration_seconds is not None:
            handle = self.scheduler.schedule_expiry(guild_id, user_id, restricted_role_id, duration_seconds)

        logger.info(
            "[MUTE] Muted %s in guild %s (%s, took %d role(s))",
            user_id, guild_id,
            "no expiry" if duration_seconds is None else f"{int(duration_seconds)}s",
            len(taken),
        )
        return MuteApplied(record, handle)

    async def apply_mute_to_member(
        self,
        member: discord.Member,
        restricted_role_id: RoleID,
        duration_seconds: float | None = None,
        reason: str = DEFAULT_REASON,
    ) -> MuteOutcome:
        """Mute a live ``discord.Member``, falling back to the default duration."""
        if duration_seconds is None:
            duration_seconds = self.default_duration_seconds
        return await self.apply_mute(
            GuildID.from_object(member.guild),
            UserID.from_object(member),
            [RoleID.from_object(role) for role in member.roles],
            restricted_role_id,
            duration_seconds,
            reason,
            default_role_id=RoleID.from_object(member.guild.default_role),
        )

    async def manual_unmute(self, guild_id: GuildID, user_id: UserID) -> ExpiryOutcome:
        """Cancel the member's timer and resolve the mute now."""
        self.scheduler.cancel(guild_id, user_id)
        return await self.scheduler.resolve(guild_id, user_id)

    async def _rollback(self, record: SanctionRecord, *, restore_taken: bool) -> None:
        try:
            if restore_taken and record.taken_roles:
                await self.directory.add_roles(
                    record.guild_id, record.user_id, record.taken_roles, reason="Mute rolled back."
                )
            await self.directory.remove_role(
                record.guild_id, record.user_id, record.restricted_role_id, reason="Mute rolled back."
            )
        except DirectoryError as exc:
            logger.error(
                "[MUTE] Rollback failed for %s in guild %s, manual cleanup needed: %s",
                record.user_id, record.guild_id, exc,
            )
