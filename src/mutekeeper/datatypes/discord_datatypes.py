"""
Type-safe wrapper classes for Discord identifiers.

Discord snowflakes are 64-bit integers but are frequently stored and
transmitted as strings. The wrappers in this module keep a canonical string
form, convert to ``int`` only at the API boundary, and compare equal to their
raw ``int``/``str`` forms so they can be used as dictionary keys alongside
plain values.
"""

from __future__ import annotations

from typing import Union

import discord


class Snowflake:
    """
    Base class for snowflake wrappers.

    Subclasses only differ by type, so a ``UserID`` never compares equal to a
    ``RoleID`` holding the same number.

    Example:
        >>> uid = UserID(123456789012345678)
        >>> uid.to_int()
        123456789012345678
        >>> str(uid)
        '123456789012345678'
    """

    __slots__ = ("_value",)

    def __init__(self, value: Union[str, int, "Snowflake"]) -> None:
        """
        Args:
            value: The snowflake as a string, int, or another wrapper.

        Raises:
            ValueError: If the value cannot be converted to a valid snowflake.
        """
        if isinstance(value, Snowflake):
            self._value = value._value
        elif isinstance(value, bool):
            raise ValueError(f"Cannot create {type(self).__name__} from bool: {value}")
        elif isinstance(value, int):
            self._value = str(value)
        elif isinstance(value, str):
            self._value = str(int(value.strip()))
        else:
            raise ValueError(f"Cannot create {type(self).__name__} from {type(value).__name__}: {value}")

    @classmethod
    def from_object(cls, obj: discord.abc.Snowflake):
        """Create a wrapper from any Discord object exposing ``id``."""
        return cls(obj.id)

    def to_int(self) -> int:
        """Return the snowflake as an integer for Discord API calls."""
        return int(self._value)

    def __str__(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._value!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Snowflake):
            return type(self) is type(other) and self._value == other._value
        if isinstance(other, str):
            return self._value == other
        if isinstance(other, int) and not isinstance(other, bool):
            return self._value == str(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)


class UserID(Snowflake):
    """Snowflake of a Discord user or guild member."""

    __slots__ = ()


class GuildID(Snowflake):
    """Snowflake of a Discord guild."""

    __slots__ = ()


class RoleID(Snowflake):
    """Snowflake of a guild role."""

    __slots__ = ()
