"""Bounded session history with a standby slot, persisted through QSettings."""

from __future__ import annotations

import json
from collections import deque
from typing import Iterator

from celive_core import LOG, EmptyHistory
from celive_models import Session
from celive_prefs import AppSettings


class SessionHistory:
    """Fixed-capacity ring of sessions, oldest first; overflow drops the oldest."""

    def __init__(self, capacity: int = 5):

        if capacity < 1:
            raise ValueError("history capacity must be at least 1")
        self._ring: deque[Session] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:

        return self._ring.maxlen or 0

    def __len__(self) -> int:

        return len(self._ring)

    def __iter__(self) -> Iterator[Session]:

        return iter(self._ring)

    def push(self, session: Session) -> None:

        if len(self._ring) == self._ring.maxlen:
            LOG.debug("History full (%d); evicting oldest session", self.capacity)
        self._ring.append(session)

    def pop_newest(self) -> Session:

        if not self._ring:
            raise EmptyHistory("No previous session")
        return self._ring.pop()

    def sessions(self) -> list[Session]:

        return list(self._ring)

    def clear(self) -> None:

        self._ring.clear()


class SessionStore:
    """History ring plus the single standby slot for the last torn-down session.

    The standby slot lets "restore previous" right after closing a session
    bring back exactly that session without disturbing the ring.
    """

    def __init__(self, settings: AppSettings, capacity: int = 5):

        self._settings = settings
        self.history = SessionHistory(capacity)
        self._standby: Session | None = None

    @property
    def standby(self) -> Session | None:

        return self._standby

    def capture(self, current: Session) -> None:

        if not current.is_resolved():
            LOG.debug("Not capturing unresolved session")
            return
        if self._standby is not None:
            # Only one session can wait in standby; the older one joins the ring.
            self.history.push(self._standby)
        self._standby = current
        LOG.debug("Captured session compiler=%s into standby", current.compiler_id)

    def flush_standby(self) -> None:

        if self._standby is not None:
            self.history.push(self._standby)
            self._standby = None

    def push_to_history(self, session: Session) -> None:

        if session.is_resolved():
            self.history.push(session)

    def pop_most_recent(self) -> Session:

        if self._standby is not None:
            s, self._standby = self._standby, None
            return s
        return self.history.pop_newest()

    def is_empty(self) -> bool:

        return self._standby is None and len(self.history) == 0

    def persist(self) -> None:

        sessions = self.history.sessions()
        if self._standby is not None:
            sessions.append(self._standby)
        # Folding the standby in may overflow; keep the newest entries.
        sessions = sessions[-self.history.capacity :]
        data = [s.to_dict() for s in sessions]
        self._settings.set_value(AppSettings.K_HISTORY_JSON, json.dumps(data, ensure_ascii=False))
        self._settings.sync()
        LOG.debug("Persisted %d session(s)", len(data))

    def restore(self) -> None:

        self.history.clear()
        self._standby = None
        raw = self._settings.get_value(AppSettings.K_HISTORY_JSON, "[]")
        try:
            data = raw if isinstance(raw, list) else json.loads(str(raw or "[]"))
        except ValueError:
            LOG.warning("Stored session history is malformed; starting empty")
            data = []
        if not isinstance(data, list):
            data = []

        for it in data:
            s = Session.from_dict(it)
            if s is not None:
                self.history.push(s)
        LOG.debug("Restored %d session(s)", len(self.history))
