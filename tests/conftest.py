"""
Pytest configuration and shared doubles for Mutekeeper tests.
"""

import asyncio
import sys
from pathlib import Path

import pytest

# Add src directory to path so imports work without an install
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from mutekeeper.datatypes.discord_datatypes import GuildID, RoleID, UserID  # noqa: E402
from mutekeeper.datatypes.sanction_datatypes import SanctionRecord  # noqa: E402
from mutekeeper.moderation.errors import DuplicateSanctionError  # noqa: E402
from mutekeeper.moderation.expiry_scheduler import ExpiryScheduler  # noqa: E402

GUILD = GuildID(1000)
USER = UserID(42)
MUTED = RoleID(900)
EDITOR = RoleID(501)
READER = RoleID(502)


class InMemorySanctionStore:
    """Store double with the same contract as SanctionStore.

    ``find_and_delete`` yields to the loop before its single-step pop so
    concurrent callers genuinely interleave.
    """

    def __init__(self) -> None:
        self.records: dict = {}
        self.calls: list = []
        self.fail_on: dict = {}

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.fail_on:
            raise self.fail_on[operation]

    def add(self, record: SanctionRecord) -> SanctionRecord:
        self.records[record.key] = record
        return record

    async def insert(self, record: SanctionRecord) -> None:
        self.calls.append(("insert", record.guild_id, record.user_id))
        await asyncio.sleep(0)
        self._maybe_fail("insert")
        if record.key in self.records:
            raise DuplicateSanctionError("insert", "duplicate")
        self.records[record.key] = record

    async def find_by_subject(self, guild_id, user_id):
        self.calls.append(("find_by_subject", guild_id, user_id))
        await asyncio.sleep(0)
        self._maybe_fail("find_by_subject")
        return self.records.get((guild_id, user_id))

    async def find_and_delete(self, guild_id, user_id):
        self.calls.append(("find_and_delete", guild_id, user_id))
        await asyncio.sleep(0)
        self._maybe_fail("find_and_delete")
        return self.records.pop((guild_id, user_id), None)

    async def list_active(self):
        self.calls.append(("list_active",))
        self._maybe_fail("list_active")
        return list(self.records.values())


class RecordingDirectory:
    """Directory double that records every call in order.

    A call is recorded before an injected failure is raised, so tests can
    tell attempted calls from skipped ones.
    """

    def __init__(self) -> None:
        self.calls: list = []
        self.fail_on: dict = {}

    async def _record(self, entry: tuple) -> None:
        self.calls.append(entry)
        await asyncio.sleep(0)
        if entry[0] in self.fail_on:
            raise self.fail_on[entry[0]]

    async def add_roles(self, guild_id, user_id, role_ids, *, reason=None):
        await self._record(("add_roles", guild_id, user_id, tuple(role_ids)))

    async def remove_role(self, guild_id, user_id, role_id, *, reason=None):
        await self._record(("remove_role", guild_id, user_id, role_id))

    async def remove_roles(self, guild_id, user_id, role_ids, *, reason=None):
        await self._record(("remove_roles", guild_id, user_id, tuple(role_ids)))

    async def ban(self, guild_id, user_id, purge_days, reason):
        await self._record(("ban", guild_id, user_id, purge_days, reason))

    async def unban(self, guild_id, user_id, reason=None):
        await self._record(("unban", guild_id, user_id, reason))

    def named(self, name: str) -> list:
        return [call for call in self.calls if call[0] == name]


def make_record(**overrides) -> SanctionRecord:
    values = dict(
        guild_id=GUILD,
        user_id=USER,
        restricted_role_id=MUTED,
        taken_roles=(EDITOR,),
        expires_at=None,
        reason="spam",
        created_at=0,
    )
    values.update(overrides)
    return SanctionRecord(**values)


@pytest.fixture
def store() -> InMemorySanctionStore:
    return InMemorySanctionStore()


@pytest.fixture
def directory() -> RecordingDirectory:
    return RecordingDirectory()


@pytest.fixture
def scheduler(store, directory) -> ExpiryScheduler:
    return ExpiryScheduler(store, directory)  # type: ignore[arg-type]
