"""Event listener Cog wiring the sanction engine to gateway events.

- on_ready        – re-arm expiry timers for every stored mute
- on_member_join  – re-apply the mute role to members who rejoin while muted
"""

from __future__ import annotations

import discord
from discord.ext import commands

from mutekeeper.datatypes.discord_datatypes import GuildID, UserID
from mutekeeper.moderation.errors import StoreError
from mutekeeper.moderation.expiry_scheduler import ExpiryScheduler
from mutekeeper.moderation.rejoin_reconciler import RejoinReconciler
from mutekeeper.util.logger import get_logger

logger = get_logger("sanction_listener")


class SanctionListenerCog(commands.Cog):
    """Routes lifecycle and member events into the scheduler and reconciler."""

    def __init__(self, bot: discord.Bot, scheduler: ExpiryScheduler, reconciler: RejoinReconciler) -> None:
        self.bot = bot
        self.scheduler = scheduler
        self.reconciler = reconciler
        logger.info("[SANCTION LISTENER] Sanction listener cog loaded")

    @commands.Cog.listener(name="on_ready")
    async def on_ready(self) -> None:
        """Re-arm stored mutes; already pending timers are left alone on reconnect."""
        try:
            await self.scheduler.rearm()
        except StoreError as exc:
            logger.error("[SANCTION LISTENER] Could not re-arm stored mutes: %s", exc)

    @commands.Cog.listener(name="on_member_join")
    async def on_member_join(self, member: discord.Member) -> None:
        if member.bot:
            return
        await self.reconciler.on_rejoin(GuildID.from_object(member.guild), UserID.from_object(member))

    def cog_unload(self) -> None:
        for handle in list(self.scheduler.pending.values()):
            handle.cancel()
        logger.info("[SANCTION LISTENER] Stopped")


def setup(bot: discord.Bot, scheduler: ExpiryScheduler, reconciler: RejoinReconciler) -> None:
    bot.add_cog(SanctionListenerCog(bot, scheduler, reconciler))
