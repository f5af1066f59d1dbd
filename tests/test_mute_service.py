"""Tests for the apply-mute and manual-unmute paths."""

import asyncio
import time
from types import SimpleNamespace

import pytest

from conftest import EDITOR, GUILD, MUTED, READER, USER, RecordingDirectory, make_record
from mutekeeper.datatypes.discord_datatypes import RoleID
from mutekeeper.datatypes.sanction_datatypes import (
    AlreadyResolved,
    MuteApplied,
    MuteFailed,
    MuteStage,
    Restored,
)
from mutekeeper.moderation.errors import DirectoryError, DuplicateSanctionError, StoreError
from mutekeeper.moderation.expiry_scheduler import ExpiryScheduler
from mutekeeper.moderation.mute_service import MuteService, snapshot_roles

EVERYONE = RoleID(GUILD.to_int())


@pytest.fixture
def mutes(store, directory, scheduler):
    return MuteService(store, directory, scheduler)  # type: ignore[arg-type]


def test_snapshot_skips_mute_role_everyone_and_duplicates():
    roles = [EVERYONE, EDITOR, MUTED, READER, EDITOR]

    assert snapshot_roles(roles, MUTED, EVERYONE) == (EDITOR, READER)


@pytest.mark.asyncio
async def test_apply_mute_swaps_roles_and_arms_timer(store, directory, scheduler, mutes):
    before = int(time.time())

    outcome = await mutes.apply_mute(
        GUILD, USER, [EVERYONE, EDITOR, READER], MUTED, 600, "spam", default_role_id=EVERYONE
    )

    assert isinstance(outcome, MuteApplied)
    record = store.records[(GUILD, USER)]
    assert record == outcome.record
    assert record.taken_roles == (EDITOR, READER)
    assert before + 600 <= record.expires_at <= int(time.time()) + 600
    assert directory.calls == [
        ("add_roles", GUILD, USER, (MUTED,)),
        ("remove_roles", GUILD, USER, (EDITOR, READER)),
    ]
    assert scheduler.pending[(GUILD, USER)] is outcome.handle
    await scheduler.shutdown()


@pytest.mark.asyncio
async def test_mute_without_duration_is_not_scheduled(store, scheduler, mutes):
    outcome = await mutes.apply_mute(GUILD, USER, [EDITOR], MUTED, None)

    assert isinstance(outcome, MuteApplied)
    assert outcome.handle is None
    assert outcome.record.expires_at is None
    assert scheduler.pending == {}


@pytest.mark.asyncio
async def test_already_muted_member_is_refused_untouched(store, directory, mutes):
    store.add(make_record())

    outcome = await mutes.apply_mute(GUILD, USER, [EDITOR], MUTED, 60)

    assert isinstance(outcome, MuteFailed)
    assert outcome.stage is MuteStage.STORE
    assert isinstance(outcome.error, DuplicateSanctionError)
    assert directory.calls == []


@pytest.mark.asyncio
async def test_insert_failure_rolls_back_roles(store, directory, scheduler, mutes):
    store.fail_on["insert"] = StoreError("insert", "disk full")

    outcome = await mutes.apply_mute(GUILD, USER, [EDITOR], MUTED, 60)

    assert isinstance(outcome, MuteFailed)
    assert outcome.stage is MuteStage.STORE
    assert directory.calls[-2:] == [
        ("add_roles", GUILD, USER, (EDITOR,)),
        ("remove_role", GUILD, USER, MUTED),
    ]
    assert scheduler.pending == {}


@pytest.mark.asyncio
async def test_mute_role_failure_stops_early(store, directory, mutes):
    directory.fail_on["add_roles"] = DirectoryError("add_roles", "Missing Permissions")

    outcome = await mutes.apply_mute(GUILD, USER, [EDITOR], MUTED, 60)

    assert isinstance(outcome, MuteFailed)
    assert outcome.stage is MuteStage.APPLY_ROLE
    assert store.records == {}
    assert len(directory.calls) == 1


@pytest.mark.asyncio
async def test_strip_failure_removes_mute_role_again(store, directory, mutes):
    directory.fail_on["remove_roles"] = DirectoryError("remove_roles", "Missing Permissions")

    outcome = await mutes.apply_mute(GUILD, USER, [EDITOR], MUTED, 60)

    assert isinstance(outcome, MuteFailed)
    assert outcome.stage is MuteStage.STRIP_ROLES
    assert directory.calls[-1] == ("remove_role", GUILD, USER, MUTED)
    assert store.records == {}


@pytest.mark.asyncio
async def test_apply_mute_to_member_reads_live_roles(store, scheduler, mutes):
    guild = SimpleNamespace(id=GUILD.to_int(), default_role=SimpleNamespace(id=EVERYONE.to_int()))
    member = SimpleNamespace(
        id=USER.to_int(),
        guild=guild,
        roles=[SimpleNamespace(id=EVERYONE.to_int()), SimpleNamespace(id=EDITOR.to_int())],
    )

    outcome = await mutes.apply_mute_to_member(member, MUTED, None)  # type: ignore[arg-type]

    assert isinstance(outcome, MuteApplied)
    assert outcome.record.taken_roles == (EDITOR,)


@pytest.mark.asyncio
async def test_manual_unmute_cancels_timer_and_restores(store, directory, scheduler, mutes):
    applied = await mutes.apply_mute(GUILD, USER, [EDITOR], MUTED, 600)
    directory.calls.clear()

    outcome = await mutes.manual_unmute(GUILD, USER)

    assert isinstance(outcome, Restored)
    assert applied.handle.cancelled
    assert scheduler.pending == {}
    assert directory.calls == [
        ("add_roles", GUILD, USER, (EDITOR,)),
        ("remove_role", GUILD, USER, MUTED),
    ]


@pytest.mark.asyncio
async def test_manual_unmute_after_expiry_is_a_noop(store, directory, scheduler, mutes):
    applied = await mutes.apply_mute(GUILD, USER, [EDITOR], MUTED, 0)
    await applied.handle.wait()
    directory.calls.clear()

    outcome = await mutes.manual_unmute(GUILD, USER)

    assert isinstance(outcome, AlreadyResolved)
    assert directory.calls == []


@pytest.mark.asyncio
async def test_apply_mute_to_member_uses_default_duration(store, directory, scheduler):
    mutes = MuteService(store, directory, scheduler, default_duration_seconds=120)  # type: ignore[arg-type]
    guild = SimpleNamespace(id=GUILD.to_int(), default_role=SimpleNamespace(id=EVERYONE.to_int()))
    member = SimpleNamespace(id=USER.to_int(), guild=guild, roles=[SimpleNamespace(id=EDITOR.to_int())])
    before = int(time.time())

    outcome = await mutes.apply_mute_to_member(member, MUTED)  # type: ignore[arg-type]

    assert isinstance(outcome, MuteApplied)
    assert outcome.handle is not None
    assert before + 120 <= outcome.record.expires_at <= int(time.time()) + 120
    await scheduler.shutdown()


class SlowRestoreDirectory(RecordingDirectory):
    """Holds role restoration open so a new mute can land mid-expiry."""

    async def add_roles(self, guild_id, user_id, role_ids, *, reason=None):
        role_ids = tuple(role_ids)
        await super().add_roles(guild_id, user_id, role_ids, reason=reason)
        if MUTED not in role_ids:
            await asyncio.sleep(0.05)


@pytest.mark.asyncio
async def test_remute_waits_for_expiring_timer(store):
    directory = SlowRestoreDirectory()
    scheduler = ExpiryScheduler(store, directory)  # type: ignore[arg-type]
    mutes = MuteService(store, directory, scheduler)  # type: ignore[arg-type]
    store.add(make_record(taken_roles=(EDITOR,)))
    old = scheduler.schedule_expiry(GUILD, USER, MUTED, 0)
    while not old.firing:
        await asyncio.sleep(0)

    outcome = await mutes.apply_mute(GUILD, USER, [EDITOR], MUTED, 3600)

    assert isinstance(outcome, MuteApplied)
    assert isinstance(await old.wait(), Restored)
    assert (GUILD, USER) in store.records
    mute_role_added = directory.calls.index(("add_roles", GUILD, USER, (MUTED,)))
    mute_role_removed = directory.calls.index(("remove_role", GUILD, USER, MUTED))
    assert mute_role_removed < mute_role_added
    assert directory.calls[-1] == ("remove_roles", GUILD, USER, (EDITOR,))
    await scheduler.shutdown()
