"""
Collaborator ports: entity store and user directory.

The engine only talks to these abstract interfaces. The in-memory adapters
back the HTTP transports in development and the test-suite.
"""

import copy
import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable

from .errors import ConcurrencyConflictError
from .models import User, UserRole

logger = logging.getLogger(__name__)


class EntityStore(ABC):
    """Key-value store with conditional writes on a `version` field."""

    @abstractmethod
    def get(self, table: str, key: str) -> dict | None:
        ...

    @abstractmethod
    def put(self, table: str, key: str, item: dict, expected_version: int | None = None) -> None:
        """
        Write an item.

        expected_version=None means insert: the key must be absent.
        Otherwise the stored item's version must equal expected_version.
        Raises ConcurrencyConflictError on mismatch.
        """
        ...

    @abstractmethod
    def delete(self, table: str, key: str) -> None:
        ...

    @abstractmethod
    def query(self, table: str, predicate: Callable[[dict], bool]) -> list[dict]:
        ...


class InMemoryEntityStore(EntityStore):
    """Thread-safe dictionary-backed store. Each put is an atomic check-and-set."""

    def __init__(self) -> None:
        self._tables: dict[str, dict[str, dict]] = {}
        self._lock = threading.Lock()

    def get(self, table: str, key: str) -> dict | None:
        with self._lock:
            item = self._tables.get(table, {}).get(key)
            return copy.deepcopy(item) if item is not None else None

    def put(self, table: str, key: str, item: dict, expected_version: int | None = None) -> None:
        with self._lock:
            rows = self._tables.setdefault(table, {})
            current = rows.get(key)
            actual_version = current.get('version') if current is not None else None
            if expected_version is None:
                if current is not None:
                    raise ConcurrencyConflictError(table, key, None, actual_version)
            elif actual_version != expected_version:
                raise ConcurrencyConflictError(table, key, expected_version, actual_version)
            rows[key] = copy.deepcopy(item)

    def delete(self, table: str, key: str) -> None:
        with self._lock:
            self._tables.get(table, {}).pop(key, None)

    def query(self, table: str, predicate: Callable[[dict], bool]) -> list[dict]:
        with self._lock:
            rows = list(self._tables.get(table, {}).values())
        return [copy.deepcopy(row) for row in rows if predicate(row)]


class UserDirectory(ABC):
    @abstractmethod
    def find_by_email(self, email: str) -> User | None:
        ...

    @abstractmethod
    def update_role(self, email: str, role: UserRole) -> None:
        ...


class InMemoryUserDirectory(UserDirectory):
    def __init__(self, users: list[User] | None = None) -> None:
        self._users: dict[str, User] = {}
        for user in users or []:
            self.add(user)

    def add(self, user: User) -> None:
        self._users[user.email.lower()] = User(email=user.email, role=user.role)

    def find_by_email(self, email: str) -> User | None:
        user = self._users.get(email.lower())
        return User(email=user.email, role=user.role) if user else None

    def update_role(self, email: str, role: UserRole) -> None:
        user = self._users.get(email.lower())
        if user is None:
            raise LookupError(f"User '{email}' not found in directory")
        logger.info(f"Updating role for {email}: {user.role.value} -> {role.value}")
        user.role = role
