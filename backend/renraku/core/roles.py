"""
Role hierarchy.

    admin (3) > teacher (2) > parent (1)

Roles compare by rank, so ``role >= Role.TEACHER`` reads as "at least a
teacher". Stored as the plain string value in the ``users.role`` column.
"""

from enum import Enum


class Role(str, Enum):
    PARENT = "parent"
    TEACHER = "teacher"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    def at_least(self, minimum: "Role") -> bool:
        return self.rank >= minimum.rank

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Role):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Role):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Role):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Role):
            return NotImplemented
        return self.rank >= other.rank


_RANKS = {Role.PARENT: 1, Role.TEACHER: 2, Role.ADMIN: 3}

STAFF_ROLES = (Role.TEACHER, Role.ADMIN)
