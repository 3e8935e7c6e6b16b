"""In-memory pending state: what a user's next message means.

Entries live only in process memory and expire after ``ttl`` seconds. A single
logical session per user is assumed; two in-flight requests from the same user
can overwrite each other's entry.
"""

import enum
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional


class Expectation(enum.Enum):
    EXPECT_LINK = "expect_link"
    EXPECT_FORMAT = "expect_format"


@dataclass
class PendingState:
    kind: Expectation
    url: Optional[str] = None
    options: Dict[str, str] = field(default_factory=dict)
    created_at: float = 0.0


class SessionStore:
    def __init__(self, ttl: float = 600, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._states: Dict[int, PendingState] = {}

    def __len__(self) -> int:
        return len(self._states)

    def _expired(self, state: PendingState) -> bool:
        return self.ttl > 0 and self._clock() - state.created_at > self.ttl

    def put(self, user_id: int, state: PendingState) -> PendingState:
        state.created_at = self._clock()
        self._states[user_id] = state
        return state

    def get(self, user_id: int) -> Optional[PendingState]:
        state = self._states.get(user_id)
        if state is not None and self._expired(state):
            del self._states[user_id]
            return None
        return state

    def pop(self, user_id: int) -> Optional[PendingState]:
        state = self._states.pop(user_id, None)
        if state is not None and self._expired(state):
            return None
        return state

    def clear(self, user_id: int) -> None:
        self._states.pop(user_id, None)

    def purge_expired(self) -> int:
        stale = [uid for uid, s in self._states.items() if self._expired(s)]
        for uid in stale:
            del self._states[uid]
        return len(stale)
