from dataclasses import dataclass
from typing import Dict, List, Optional

from constants import MAX_AGE, MIN_AGE
from core import errors
from logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Identity:
    connection_id: str
    name: str
    age: int


def valid_age(age) -> bool:
    return isinstance(age, int) and not isinstance(age, bool) and MIN_AGE <= age <= MAX_AGE


class ConnectionRegistry:
    """Live identities keyed by connection id.

    Name uniqueness is checked with a linear scan over live connections. That
    is fine at chat-room scale; an index by folded name would be needed for
    much larger populations.
    """

    def __init__(self):
        self._clients: Dict[str, Identity] = {}

    def __len__(self) -> int:
        return len(self._clients)

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self._clients

    def name_taken(self, name: str) -> bool:
        folded = name.strip().lower()
        return any(client.name.lower() == folded for client in self._clients.values())

    def register(self, connection_id: str, name: Optional[str], age) -> Identity:
        if not name or not name.strip():
            raise errors.ValidationError("Name cannot be empty.")
        if not valid_age(age):
            raise errors.ValidationError(f"Age must be between {MIN_AGE} and {MAX_AGE}.")
        if connection_id in self._clients:
            raise errors.ConflictError("You are already registered.")
        if self.name_taken(name):
            raise errors.ConflictError("Name already taken. Please choose another name.")

        identity = Identity(connection_id=connection_id, name=name.strip(), age=age)
        self._clients[connection_id] = identity
        logger.info(f"Client registered: {identity.name} (age: {age}, {connection_id})")
        return identity

    def remove(self, connection_id: str) -> Optional[Identity]:
        identity = self._clients.pop(connection_id, None)
        if identity:
            logger.debug(f"Removed identity {identity.name} ({connection_id})")
        return identity

    def get(self, connection_id: str) -> Optional[Identity]:
        return self._clients.get(connection_id)

    def require(self, connection_id: str) -> Identity:
        identity = self._clients.get(connection_id)
        if identity is None:
            raise errors.AuthorizationError("You must register first.")
        return identity

    def list(self) -> List[Identity]:
        return list(self._clients.values())
