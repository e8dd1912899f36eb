from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from constants import GROUP_ID_PREFIX, MAX_AGE, MIN_AGE
from core import errors
from core.connections import Identity, valid_age
from logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class Group:
    group_id: str
    name: str
    creator: Identity
    minimum_age: Optional[int] = None
    # connection id -> None, kept in join order
    members: Dict[str, None] = field(default_factory=dict)

    def has_member(self, connection_id: str) -> bool:
        return connection_id in self.members

    def member_ids(self) -> List[str]:
        return list(self.members)


class GroupRegistry:
    def __init__(self):
        self._groups: Dict[str, Group] = {}
        self._counter = 1

    def __len__(self) -> int:
        return len(self._groups)

    def get(self, group_id: str) -> Optional[Group]:
        return self._groups.get(group_id)

    def list(self) -> List[Group]:
        return list(self._groups.values())

    def create(self, creator: Identity, name: Optional[str], minimum_age=None) -> Group:
        if not name or not name.strip():
            raise errors.ValidationError("Group name cannot be empty.")
        if minimum_age is not None:
            if not valid_age(minimum_age):
                raise errors.ValidationError(f"Minimum age must be between {MIN_AGE} and {MAX_AGE}.")
            if minimum_age > creator.age:
                raise errors.ValidationError(
                    f"You cannot set minimum age ({minimum_age}) higher than your own age ({creator.age})."
                )

        group_id = f"{GROUP_ID_PREFIX}{self._counter}"
        self._counter += 1
        group = Group(group_id=group_id, name=name.strip(), creator=creator, minimum_age=minimum_age)
        group.members[creator.connection_id] = None
        self._groups[group_id] = group

        suffix = f" (min age: {minimum_age})" if minimum_age else ""
        logger.info(f"Group created: {group.name} ({group_id}) by {creator.name}{suffix}")
        return group

    def join(self, group_id: str, identity: Identity) -> Group:
        group = self._groups.get(group_id)
        if group is None:
            raise errors.NotFoundError("Group not found.")
        if group.has_member(identity.connection_id):
            raise errors.ConflictError("You are already a member of this group.")
        if group.minimum_age is not None and identity.age < group.minimum_age:
            raise errors.AgeGateError(
                f"You must be at least {group.minimum_age} years old to join this group. "
                f"Your age is {identity.age}."
            )

        group.members[identity.connection_id] = None
        logger.info(f"{identity.name} joined group: {group.name} ({group_id})")
        return group

    def leave(self, group_id: str, connection_id: str) -> Tuple[Optional[Group], bool]:
        """Remove a member. Returns the group and whether it was deleted."""
        group = self._groups.get(group_id)
        if group is None or not group.has_member(connection_id):
            return group, False

        del group.members[connection_id]
        if group.members:
            logger.debug(f"Connection {connection_id} left group {group_id} ({len(group.members)} remaining)")
            return group, False

        del self._groups[group_id]
        logger.info(f"Group deleted: {group.name} ({group_id}), no members left")
        return group, True

    def groups_of(self, connection_id: str) -> List[Group]:
        return [group for group in self._groups.values() if group.has_member(connection_id)]

    def require_member(self, group_id: str, connection_id: str) -> Group:
        group = self._groups.get(group_id)
        if group is None:
            raise errors.NotFoundError("Group not found.")
        if not group.has_member(connection_id):
            raise errors.AuthorizationError("You are not a member of this group.")
        return group
