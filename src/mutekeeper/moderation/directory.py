"""
Directory adapter: the role and ban operations the sanction engine needs.

The engine only talks to :class:`DirectoryAdapter`; :class:`DiscordDirectory`
implements it on a py-cord bot. Every Discord failure is reported as
:class:`DirectoryError` so callers never need to know about
``discord.HTTPException`` subclasses.
"""

from __future__ import annotations

from typing import Protocol, Sequence

import discord

from mutekeeper.datatypes.discord_datatypes import GuildID, RoleID, UserID
from mutekeeper.moderation.errors import DirectoryError
from mutekeeper.util.logger import get_logger

logger = get_logger("directory")

SECONDS_PER_DAY = 86_400


class DirectoryAdapter(Protocol):
    async def add_roles(
        self, guild_id: GuildID, user_id: UserID, role_ids: Sequence[RoleID], *, reason: str | None = None
    ) -> None: ...

    async def remove_role(
        self, guild_id: GuildID, user_id: UserID, role_id: RoleID, *, reason: str | None = None
    ) -> None: ...

    async def remove_roles(
        self, guild_id: GuildID, user_id: UserID, role_ids: Sequence[RoleID], *, reason: str | None = None
    ) -> None: ...

    async def ban(self, guild_id: GuildID, user_id: UserID, purge_days: int, reason: str) -> None: ...

    async def unban(self, guild_id: GuildID, user_id: UserID, reason: str | None = None) -> None: ...


class DiscordDirectory:
    """:class:`DirectoryAdapter` backed by a connected ``discord.Bot``."""

    def __init__(self, bot: discord.Bot) -> None:
        self.bot = bot

    def _guild(self, guild_id: GuildID, operation: str) -> discord.Guild:
        guild = self.bot.get_guild(guild_id.to_int())
        if guild is None:
            raise DirectoryError(operation, f"guild {guild_id} is not available")
        return guild

    async def _member(self, guild: discord.Guild, user_id: UserID, operation: str) -> discord.Member:
        member = guild.get_member(user_id.to_int())
        if member is not None:
            return member
        try:
            return await guild.fetch_member(user_id.to_int())
        except discord.HTTPException as exc:
            raise DirectoryError(operation, f"member {user_id} not found in guild {guild.id}: {exc}") from exc

    async def add_roles(
        self, guild_id: GuildID, user_id: UserID, role_ids: Sequence[RoleID], *, reason: str | None = None
    ) -> None:
        if not role_ids:
            return
        guild = self._guild(guild_id, "add_roles")
        member = await self._member(guild, user_id, "add_roles")
        try:
            await member.add_roles(*(discord.Object(id=r.to_int()) for r in role_ids), reason=reason)
        except discord.HTTPException as exc:
            raise DirectoryError("add_roles", str(exc)) from exc
        logger.debug("[DIRECTORY] Added %d role(s) to %s in guild %s", len(role_ids), user_id, guild_id)

    async def remove_role(
        self, guild_id: GuildID, user_id: UserID, role_id: RoleID, *, reason: str | None = None
    ) -> None:
        await self._remove(guild_id, user_id, [role_id], reason, "remove_role")

    async def remove_roles(
        self, guild_id: GuildID, user_id: UserID, role_ids: Sequence[RoleID], *, reason: str | None = None
    ) -> None:
        if role_ids:
            await self._remove(guild_id, user_id, role_ids, reason, "remove_roles")

    async def _remove(
        self, guild_id: GuildID, user_id: UserID, role_ids: Sequence[RoleID], reason: str | None, operation: str
    ) -> None:
        guild = self._guild(guild_id, operation)
        member = await self._member(guild, user_id, operation)
        try:
            await member.remove_roles(*(discord.Object(id=r.to_int()) for r in role_ids), reason=reason)
        except discord.HTTPException as exc:
            raise DirectoryError(operation, str(exc)) from exc
        logger.debug("[DIRECTORY] Removed %d role(s) from %s in guild %s", len(role_ids), user_id, guild_id)

    async def ban(self, guild_id: GuildID, user_id: UserID, purge_days: int, reason: str) -> None:
        guild = self._guild(guild_id, "ban")
        try:
            await guild.ban(
                discord.Object(id=user_id.to_int()),
                delete_message_seconds=purge_days * SECONDS_PER_DAY,
                reason=reason,
            )
        except discord.HTTPException as exc:
            raise DirectoryError("ban", str(exc)) from exc

    async def unban(self, guild_id: GuildID, user_id: UserID, reason: str | None = None) -> None:
        guild = self._guild(guild_id, "unban")
        try:
            await guild.unban(discord.Object(id=user_id.to_int()), reason=reason)
        except discord.HTTPException as exc:
            raise DirectoryError("unban", str(exc)) from exc
