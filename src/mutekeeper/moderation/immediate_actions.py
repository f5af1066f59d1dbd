"""
Immediate, non-expiring sanctions: ban and unban.

Each call goes straight to the directory adapter once. There is no stored
state, no retry and nothing to roll back; failures come back as
``SanctionFailed``.
"""

from __future__ import annotations

from mutekeeper.datatypes.discord_datatypes import GuildID, UserID
from mutekeeper.datatypes.sanction_datatypes import (
    ImmediateAction,
    ImmediateOutcome,
    SanctionApplied,
    SanctionFailed,
)
from mutekeeper.moderation.directory import DirectoryAdapter
from mutekeeper.moderation.errors import DirectoryError
from mutekeeper.util.logger import get_logger

logger = get_logger("immediate_actions")

# Discord only purges up to a week of message history on ban
MAX_PURGE_DAYS = 7
DEFAULT_BAN_REASON = "None specified"


def clamp_purge_days(requested: int | None) -> int:
    """Clamp a requested purge window to ``[0, MAX_PURGE_DAYS]``; None means 0."""
    if requested is None:
        return 0
    return max(0, min(int(requested), MAX_PURGE_DAYS))


async def apply_ban(
    directory: DirectoryAdapter,
    guild_id: GuildID,
    user_id: UserID,
    purge_days: int | None = None,
    reason: str | None = None,
) -> ImmediateOutcome:
    """Ban ``user_id`` from the guild, purging up to a week of their messages."""
    days = clamp_purge_days(purge_days)
    reason = reason or DEFAULT_BAN_REASON

    try:
        await directory.ban(guild_id, user_id, days, reason)
    except DirectoryError as exc:
        logger.error("Failed to ban user %s: %s", user_id, exc)
        return SanctionFailed(ImmediateAction.BAN, guild_id, user_id, exc)

    logger.info("Banned user %s in guild %s (purge_days=%d)", user_id, guild_id, days)
    return SanctionApplied(ImmediateAction.BAN, guild_id, user_id, reason=reason, purge_days=days)


async def apply_unban(
    directory: DirectoryAdapter,
    guild_id: GuildID,
    user_id: UserID,
    reason: str | None = None,
) -> ImmediateOutcome:
    """Lift a ban on ``user_id``."""
    try:
        await directory.unban(guild_id, user_id, reason)
    except DirectoryError as exc:
        logger.error("Failed to unban user %s: %s", user_id, exc)
        return SanctionFailed(ImmediateAction.UNBAN, guild_id, user_id, exc)

    logger.info("Unbanned user %s in guild %s", user_id, guild_id)
    return SanctionApplied(ImmediateAction.UNBAN, guild_id, user_id, reason=reason)
