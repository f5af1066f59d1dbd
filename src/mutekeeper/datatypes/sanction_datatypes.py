"""
Records and result types for the sanction engine.

``SanctionRecord`` is the unit of durable state: one row per muted member.
Every engine operation reports through a small closed set of result
dataclasses instead of raising, so callers (audit, reporting, commands) can
pattern-match on the exact outcome.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Iterable, Tuple, Union

from mutekeeper.datatypes.discord_datatypes import GuildID, RoleID, UserID

if TYPE_CHECKING:
    from mutekeeper.moderation.expiry_scheduler import ExpiryHandle

DEFAULT_REASON = "No reason provided."

SanctionKey = Tuple[GuildID, UserID]


def serialize_roles(role_ids: Iterable[RoleID]) -> str:
    """Join role ids into the comma-separated form stored in the database."""
    return ",".join(str(role_id) for role_id in role_ids)


def parse_roles(raw: str | None) -> Tuple[RoleID, ...]:
    """Parse the stored comma-separated role list, preserving order."""
    if not raw:
        return ()
    return tuple(RoleID(part) for part in raw.split(",") if part.strip())


@dataclass(frozen=True, slots=True)
class SanctionRecord:
    """An active mute.

    Attributes:
        guild_id: Guild the mute applies to.
        user_id: The muted member.
        restricted_role_id: Role that enforces the mute.
        taken_roles: Roles removed at mute time, restored on expiry, in order.
        expires_at: Absolute deadline in unix seconds (UTC); None never expires.
        reason: Moderator supplied reason.
        created_at: Unix seconds at which the mute was applied.
    """
    guild_id: GuildID
    user_id: UserID
    restricted_role_id: RoleID
    taken_roles: Tuple[RoleID, ...] = ()
    expires_at: int | None = None
    reason: str = DEFAULT_REASON
    created_at: int = field(default_factory=lambda: int(time.time()))

    @property
    def key(self) -> SanctionKey:
        return (self.guild_id, self.user_id)

    def remaining_seconds(self, now: float | None = None) -> float | None:
        """Seconds left until expiry, floored at zero; None when there is no deadline."""
        if self.expires_at is None:
            return None
        now = time.time() if now is None else now
        return max(0.0, self.expires_at - now)


# ---------------------------------------------------------------------------
# Expiry resolution
# ---------------------------------------------------------------------------

class FailureStage(Enum):
    """Where a resolution attempt stopped."""

    STORE = "store"                # find-and-delete failed, restriction fully intact
    ROLE_RESTORE = "role_restore"  # record deleted, taken roles not restored
    ROLE_REMOVE = "role_remove"    # record deleted, roles restored, mute role still applied

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class Restored:
    """The record was deleted and the member's roles restored."""
    record: SanctionRecord
    ok = True


@dataclass(frozen=True, slots=True)
class AlreadyResolved:
    """No record was found; another path resolved the mute first."""
    guild_id: GuildID
    user_id: UserID
    ok = True


@dataclass(frozen=True, slots=True)
class ResolutionFailed:
    """Resolution stopped at ``stage``.

    ``record`` is the deleted record for the role stages and None for a store
    failure, so operators can reconcile manually.
    """
    stage: FailureStage
    error: Exception
    record: SanctionRecord | None = None
    ok = False


ExpiryOutcome = Union[Restored, AlreadyResolved, ResolutionFailed]


# ---------------------------------------------------------------------------
# Rejoin reconciliation
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class Reapplied:
    """The member still had an active record and the mute role was re-added."""
    record: SanctionRecord
    ok = True


@dataclass(frozen=True, slots=True)
class NotSanctioned:
    """The member has no active record."""
    guild_id: GuildID
    user_id: UserID
    ok = True


@dataclass(frozen=True, slots=True)
class RejoinFailed:
    """Lookup (``StoreError``) or role add (``DirectoryError``) failed; the record is untouched."""
    error: Exception
    record: SanctionRecord | None = None
    ok = False


RejoinOutcome = Union[Reapplied, NotSanctioned, RejoinFailed]


# ---------------------------------------------------------------------------
# Apply mute
# ---------------------------------------------------------------------------

class MuteStage(Enum):
    """Where an apply-mute attempt stopped."""

    APPLY_ROLE = "apply_role"
    STRIP_ROLES = "strip_roles"
    STORE = "store"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class MuteApplied:
    record: SanctionRecord
    handle: "ExpiryHandle | None" = None
    ok = True


@dataclass(frozen=True, slots=True)
class MuteFailed:
    stage: MuteStage
    error: Exception
    ok = False


MuteOutcome = Union[MuteApplied, MuteFailed]


# ---------------------------------------------------------------------------
# Immediate actions
# ---------------------------------------------------------------------------

class ImmediateAction(Enum):
    BAN = "ban"
    UNBAN = "unban"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class SanctionApplied:
    action: ImmediateAction
    guild_id: GuildID
    user_id: UserID
    reason: str | None = None
    purge_days: int = 0
    ok = True


@dataclass(frozen=True, slots=True)
class SanctionFailed:
    action: ImmediateAction
    guild_id: GuildID
    user_id: UserID
    error: Exception
    ok = False


ImmediateOutcome = Union[SanctionApplied, SanctionFailed]
