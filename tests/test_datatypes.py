"""Tests for identifier wrappers and sanction records."""

import pytest

from conftest import EDITOR, READER, make_record
from mutekeeper.datatypes.discord_datatypes import GuildID, RoleID, UserID
from mutekeeper.datatypes.sanction_datatypes import (
    AlreadyResolved,
    FailureStage,
    ResolutionFailed,
    Restored,
    parse_roles,
    serialize_roles,
)


class TestSnowflakes:
    def test_accepts_int_and_str(self):
        assert UserID(" 123 ") == UserID(123)
        assert UserID(123).to_int() == 123
        assert str(RoleID(5)) == "5"

    def test_compares_with_raw_values(self):
        assert GuildID(10) == 10
        assert GuildID(10) == "10"

    def test_types_do_not_mix(self):
        assert UserID(1) != RoleID(1)

    def test_rejects_garbage(self):
        with pytest.raises(ValueError):
            UserID("abc")
        with pytest.raises(ValueError):
            UserID(1.5)  # type: ignore[arg-type]
        with pytest.raises(ValueError):
            UserID(True)

    def test_hashable_as_keys(self):
        keys = {(GuildID(1), UserID(2)): "x"}
        assert keys[(GuildID("1"), UserID("2"))] == "x"

    def test_repr(self):
        assert repr(RoleID(7)) == "RoleID('7')"


class TestSanctionRecord:
    def test_remaining_seconds(self):
        record = make_record(expires_at=1100)

        assert record.remaining_seconds(1000) == 100
        assert record.remaining_seconds(2000) == 0
        assert make_record(expires_at=None).remaining_seconds(1000) is None

    def test_role_serialization_preserves_order(self):
        assert serialize_roles([READER, EDITOR]) == "502,501"
        assert parse_roles("502,501") == (READER, EDITOR)
        assert parse_roles("") == ()
        assert parse_roles(None) == ()


def test_outcome_ok_flags():
    record = make_record()

    assert Restored(record).ok
    assert AlreadyResolved(record.guild_id, record.user_id).ok
    assert not ResolutionFailed(FailureStage.STORE, RuntimeError("x")).ok
    assert str(FailureStage.ROLE_REMOVE) == "role_remove"
