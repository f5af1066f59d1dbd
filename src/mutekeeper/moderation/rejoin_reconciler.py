"""
Rejoin reconciliation.

Expiry timers live in process memory and a muted member can leave and come
back before their timer fires. When a member joins, the store is checked and,
if a mute record still exists, the mute role is put back.

The reconciler only reads the store: it never deletes records and never arms
or cancels timers, so replaying the same join event is harmless. A failed
role add leaves the record in place so the pending expiry still restores the
member later.
"""

from __future__ import annotations

from mutekeeper.datatypes.discord_datatypes import GuildID, UserID
from mutekeeper.datatypes.sanction_datatypes import NotSanctioned, Reapplied, RejoinFailed, RejoinOutcome
from mutekeeper.moderation.directory import DirectoryAdapter
from mutekeeper.moderation.errors import DirectoryError, StoreError
from mutekeeper.repositories.sanction_repo import SanctionStore
from mutekeeper.util.logger import get_logger

logger = get_logger("rejoin_reconciler")


class RejoinReconciler:
    """
    Re-applies the mute role to members who rejoin while muted.

    Args:
        store: Sanction store queried for the member's active record.
        directory: Adapter used to add the mute role back.
        rejoin_reason: Audit log reason attached to the role add.
    """

    def __init__(
        self,
        store: SanctionStore,
        directory: DirectoryAdapter,
        *,
        rejoin_reason: str = "Muted member rejoined.",
    ) -> None:
        self.store = store
        self.directory = directory
        self.rejoin_reason = rejoin_reason

    async def on_rejoin(self, guild_id: GuildID, user_id: UserID) -> RejoinOutcome:
        """Re-apply the mute role if the member still has an active record."""
        try:
            record = await self.store.find_by_subject(guild_id, user_id)
        except StoreError as exc:
            logger.error("[REJOIN] Failed to query mute record for %s in guild %s: %s", user_id, guild_id, exc)
            return RejoinFailed(exc)

        if record is None:
            return NotSanctioned(guild_id, user_id)

        logger.debug("[REJOIN] Muted member %s rejoined guild %s", user_id, guild_id)
        try:
            await self.directory.add_roles(
                guild_id, user_id, [record.restricted_role_id], reason=self.rejoin_reason
            )
        except DirectoryError as exc:
            logger.error("[REJOIN] Failed to mute %s after rejoining guild %s: %s", user_id, guild_id, exc)
            return RejoinFailed(exc, record)

        logger.info("[REJOIN] Re-applied mute to %s in guild %s", user_id, guild_id)
        return Reapplied(record)
