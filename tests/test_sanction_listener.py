"""Tests for the gateway event listener cog."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import GUILD, USER
from mutekeeper.cog.sanction_listener import SanctionListenerCog
from mutekeeper.moderation.errors import StoreError


@pytest.fixture
def cog():
    scheduler = SimpleNamespace(rearm=AsyncMock(return_value=0), pending={})
    reconciler = SimpleNamespace(on_rejoin=AsyncMock())
    return SanctionListenerCog(MagicMock(), scheduler, reconciler)  # type: ignore[arg-type]


def make_member(bot=False):
    return SimpleNamespace(id=USER.to_int(), bot=bot, guild=SimpleNamespace(id=GUILD.to_int()))


@pytest.mark.asyncio
async def test_member_join_runs_reconciler(cog):
    await cog.on_member_join(make_member())

    cog.reconciler.on_rejoin.assert_awaited_once_with(GUILD, USER)


@pytest.mark.asyncio
async def test_bot_accounts_are_ignored(cog):
    await cog.on_member_join(make_member(bot=True))

    cog.reconciler.on_rejoin.assert_not_awaited()


@pytest.mark.asyncio
async def test_ready_rearms_stored_mutes(cog):
    await cog.on_ready()

    cog.scheduler.rearm.assert_awaited_once()


@pytest.mark.asyncio
async def test_ready_survives_store_errors(cog):
    cog.scheduler.rearm.side_effect = StoreError("list_active", "locked")

    await cog.on_ready()
