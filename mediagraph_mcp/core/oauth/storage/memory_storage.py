"""
In-memory authentication storage for testing and ephemeral use.

Data is lost when the process exits.
"""

import time

from . import AuthStorage, Clock, StoredIdentity


class InMemoryAuthStorage(AuthStorage):
    """In-memory session storage.

    Useful for:
    - Testing (no file I/O, easy cleanup)
    - Ephemeral sessions
    """

    def __init__(self, record: StoredIdentity | None = None, clock: Clock = time.time) -> None:
        super().__init__(clock)
        self._record = record
        self.save_count = 0

    def load(self) -> StoredIdentity | None:
        return self._record

    def save(self, record: StoredIdentity) -> None:
        self._record = record
        self.save_count += 1

    def clear(self) -> None:
        self._record = None

    def __repr__(self) -> str:
        if self._record:
            return f"InMemoryAuthStorage(authenticated=True, user={self._record.user_email})"
        return "InMemoryAuthStorage(authenticated=False)"
