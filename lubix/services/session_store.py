"""In-memory owner of every mutable per-session, per-chat and process-wide collection.

Callers never get a reference into these collections. Portfolio and
watchlist changes go through ``with_portfolio`` / ``with_watchlist``, which
serialize per chat on an ``asyncio.Lock`` and run a synchronous closure; the
closure must not await or do I/O. Everything else is a plain synchronous
method and therefore atomic on the event loop.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, TypeVar

from lubix.core.models import ConversationState, Portfolio, SessionKey

logger = logging.getLogger(__name__)

T = TypeVar("T")

_LOCKS_MAX = 2000


class _KeyedLocks:
    def __init__(self, max_size: int = _LOCKS_MAX) -> None:
        self._locks: dict[int, asyncio.Lock] = {}
        self._max_size = max_size

    def get(self, key: int) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            # drop idle locks so the table cannot grow without bound
            if len(self._locks) >= self._max_size:
                idle = [k for k, v in list(self._locks.items()) if not v.locked()]
                for k in idle[: len(idle) // 2 + 1]:
                    self._locks.pop(k, None)
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock


class SessionStore:
    def __init__(self, starting_balance: float = 10_000.0) -> None:
        self.starting_balance = starting_balance
        self._states: dict[SessionKey, ConversationState] = {}
        self._portfolios: dict[int, Portfolio] = {}
        self._watchlists: dict[int, list[str]] = {}
        self._users: set[int] = set()
        self._banned: set[int] = set()
        self._premium_users: set[int] = set()
        self._premium_groups: set[int] = set()
        self._portfolio_locks = _KeyedLocks()
        self._watchlist_locks = _KeyedLocks()

    # --- conversation state ---

    def get_state(self, key: SessionKey) -> ConversationState:
        return self._states.get(key, ConversationState.IDLE)

    def set_state(self, key: SessionKey, state: ConversationState) -> None:
        previous = self._states.get(key, ConversationState.IDLE)
        self._states[key] = state
        if previous is not state:
            logger.debug(
                "state_transition",
                extra={"event": "state_transition", "chat_id": key.chat_id, "user_id": key.user_id, "state": state.value},
            )

    def consume_state(self, key: SessionKey) -> ConversationState:
        """Return the pending state and reset the session to IDLE in one step."""
        state = self._states.get(key, ConversationState.IDLE)
        self._states[key] = ConversationState.IDLE
        return state

    # --- per-chat records ---

    async def with_portfolio(self, chat_id: int, fn: Callable[[Portfolio], T]) -> T:
        async with self._portfolio_locks.get(chat_id):
            portfolio = self._portfolios.get(chat_id)
            if portfolio is None:
                portfolio = Portfolio(cash_balance=self.starting_balance)
                self._portfolios[chat_id] = portfolio
            return fn(portfolio)

    async def with_watchlist(self, chat_id: int, fn: Callable[[list[str]], T]) -> T:
        async with self._watchlist_locks.get(chat_id):
            watchlist = self._watchlists.setdefault(chat_id, [])
            return fn(watchlist)

    # --- registry and access lists ---

    def register_user(self, chat_id: int) -> bool:
        """Returns True the first time a chat is seen."""
        if chat_id in self._users:
            return False
        self._users.add(chat_id)
        return True

    def all_user_ids(self) -> frozenset[int]:
        return frozenset(self._users)

    def is_banned(self, chat_id: int) -> bool:
        return chat_id in self._banned

    def ban(self, chat_id: int) -> bool:
        if chat_id in self._banned:
            return False
        self._banned.add(chat_id)
        return True

    def unban(self, chat_id: int) -> bool:
        if chat_id not in self._banned:
            return False
        self._banned.discard(chat_id)
        return True

    def grant_premium(self, chat_id: int) -> None:
        self._premium_users.add(chat_id)

    def revoke_premium(self, chat_id: int) -> bool:
        if chat_id not in self._premium_users:
            return False
        self._premium_users.discard(chat_id)
        return True

    def add_premium_group(self, chat_id: int) -> bool:
        if chat_id in self._premium_groups:
            return False
        self._premium_groups.add(chat_id)
        return True

    def remove_premium_group(self, chat_id: int) -> bool:
        if chat_id not in self._premium_groups:
            return False
        self._premium_groups.discard(chat_id)
        return True

    def is_premium(self, chat_id: int, user_id: int | None = None) -> bool:
        if chat_id in self._premium_users or chat_id in self._premium_groups:
            return True
        return user_id is not None and user_id in self._premium_users

    def stats(self) -> dict[str, int]:
        return {
            "users": len(self._users),
            "banned": len(self._banned),
            "premium_users": len(self._premium_users),
            "premium_groups": len(self._premium_groups),
            "portfolios": len(self._portfolios),
        }
