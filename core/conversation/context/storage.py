"""
Session storage for the conversation flow engine.

This module keeps one mutable session per user together with a bounded log
of recent messages used for debounce and repeat detection. State lives in
memory only. Every operation on a user is serialized through a per-user
lock, so turns for different users never wait on each other.
"""

import asyncio
import logging
import threading
import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Deque, Dict, Iterator, List, Optional

from models.schemas import MessageDirection, MessageLogEntry, Session

logger = logging.getLogger(__name__)


@dataclass
class StoreConfig:
    """Configuration for session storage"""
    initial_step_id: str = "welcome"
    session_timeout: timedelta = timedelta(minutes=30)
    reaper_interval: timedelta = timedelta(minutes=5)
    message_log_cap: int = 50
    context_data_max_keys: int = 32

    @classmethod
    def from_settings(cls, settings, initial_step_id: str = "welcome") -> "StoreConfig":
        return cls(
            initial_step_id=initial_step_id,
            session_timeout=timedelta(milliseconds=settings.SESSION_TIMEOUT_MS),
            reaper_interval=timedelta(milliseconds=settings.REAPER_INTERVAL_MS),
            message_log_cap=settings.MESSAGE_LOG_CAP,
            context_data_max_keys=settings.CONTEXT_DATA_MAX_KEYS,
        )


class ConversationStore:
    """
    In-memory store of conversation sessions and message logs.

    Sessions are created lazily on first access and evicted by a periodic
    reaper once inactive for longer than the configured timeout. The clock
    is injectable so expiry and debounce can be driven deterministically.
    """

    def __init__(self, config: Optional[StoreConfig] = None,
                 clock: Callable[[], float] = time.time):
        self.config = config or StoreConfig()
        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        self._logs: Dict[str, Deque[MessageLogEntry]] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()
        self._reaper_task: Optional[asyncio.Task] = None

    def now(self) -> float:
        return self._clock()

    @contextmanager
    def user_lock(self, user_id: str) -> Iterator[None]:
        """
        Hold the lock of one user.

        Reentrant, so store operations can be nested inside a turn that
        already holds it. A lock dropped by the reaper while we waited on it
        is detected and replaced.
        """
        while True:
            with self._locks_guard:
                lock = self._locks.setdefault(user_id, threading.RLock())
            lock.acquire()
            with self._locks_guard:
                current = self._locks.get(user_id)
            if current is lock:
                break
            lock.release()

        try:
            yield
        finally:
            lock.release()

    # Sessions

    def get(self, user_id: str) -> Session:
        """Get the user's session, creating it at the initial step if needed"""
        with self.user_lock(user_id):
            session = self._sessions.get(user_id)
            if session is None:
                session = self._new_session(user_id)
                self._sessions[user_id] = session
                logger.debug(f"Created session for user {user_id}")
            session.last_activity = self.now()
            return session

    def peek(self, user_id: str) -> Optional[Session]:
        """Return the session without creating it or refreshing activity"""
        if not self.is_tracked(user_id):
            return None
        with self.user_lock(user_id):
            return self._sessions.get(user_id)

    def is_tracked(self, user_id: str) -> bool:
        """True when the user has a session or a message log"""
        with self._locks_guard:
            return user_id in self._sessions or user_id in self._logs

    def move_to(self, user_id: str, step_id: str) -> Session:
        """
        Move the user to a step.

        The current step is pushed onto the history and attempts reset. Moving
        to the step the user is already on only refreshes activity.
        """
        with self.user_lock(user_id):
            session = self.get(user_id)
            if session.current_step_id != step_id:
                previous = session.current_step_id
                session.history.append(previous)
                session.current_step_id = step_id
                session.attempts = 0
                logger.info(
                    f"Step transition: {previous} -> {step_id}",
                    extra={"user_id": user_id, "history_depth": len(session.history)},
                )
            return session

    def go_back(self, user_id: str) -> bool:
        """Pop the previous step from history; False when there is none"""
        with self.user_lock(user_id):
            session = self.get(user_id)
            if not session.history:
                return False

            session.current_step_id = session.history.pop()
            session.attempts = 0
            logger.debug(f"User {user_id} went back to step {session.current_step_id}")
            return True

    def restart(self, user_id: str) -> Session:
        """Replace the session with a fresh one and clear the message log"""
        with self.user_lock(user_id):
            session = self._new_session(user_id)
            self._sessions[user_id] = session
            self._logs[user_id] = deque(maxlen=self.config.message_log_cap)
            logger.info(f"Conversation restarted for user {user_id}")
            return session

    def increment_attempts(self, user_id: str) -> int:
        with self.user_lock(user_id):
            session = self.get(user_id)
            session.attempts += 1
            return session.attempts

    def set_data(self, user_id: str, key: str, value: Any) -> None:
        with self.user_lock(user_id):
            self.get(user_id).set_data(key, value)

    def get_data(self, user_id: str, key: Optional[str] = None) -> Any:
        with self.user_lock(user_id):
            session = self.get(user_id)
            if key is None:
                return dict(session.context_data)
            return session.get_data(key)

    def _new_session(self, user_id: str) -> Session:
        now = self.now()
        return Session(
            user_id=user_id,
            current_step_id=self.config.initial_step_id,
            created_at=now,
            last_activity=now,
            max_context_keys=self.config.context_data_max_keys,
        )

    # Message log

    def log_incoming(self, user_id: str, text: str) -> None:
        self._append(user_id, MessageDirection.INCOMING, text)

    def log_outgoing(self, user_id: str, text: str) -> None:
        self._append(user_id, MessageDirection.OUTGOING, text)

    def _append(self, user_id: str, direction: MessageDirection, text: str) -> None:
        with self.user_lock(user_id):
            log = self._logs.get(user_id)
            if log is None:
                log = deque(maxlen=self.config.message_log_cap)
                self._logs[user_id] = log
            log.append(MessageLogEntry(direction=direction, text=text, timestamp=self.now()))

    def message_log(self, user_id: str) -> List[MessageLogEntry]:
        if not self.is_tracked(user_id):
            return []
        with self.user_lock(user_id):
            return list(self._logs.get(user_id, ()))

    def _recent(self, user_id: str, direction: MessageDirection, count: int) -> List[MessageLogEntry]:
        """Latest entries of one direction, newest first"""
        found = []
        for entry in reversed(self._logs.get(user_id, ())):
            if entry.direction == direction:
                found.append(entry)
                if len(found) == count:
                    break
        return found

    def is_debounced(self, user_id: str, window_ms: float) -> bool:
        """True when the last two incoming messages arrived less than window_ms apart"""
        with self.user_lock(user_id):
            incoming = self._recent(user_id, MessageDirection.INCOMING, 2)
            if len(incoming) < 2:
                return False
            latest, previous = incoming
            return (latest.timestamp - previous.timestamp) * 1000 < window_ms

    def is_repeated_outgoing(self, user_id: str, text: str) -> bool:
        """True when text matches one of the last two outgoing messages"""
        normalized = self._normalize(text)
        with self.user_lock(user_id):
            outgoing = self._recent(user_id, MessageDirection.OUTGOING, 2)
            return any(self._normalize(entry.text) == normalized for entry in outgoing)

    @staticmethod
    def _normalize(text: str) -> str:
        return " ".join(text.lower().split())

    # Expiry

    def reap_expired(self) -> int:
        """
        Evict users whose last activity is older than the session timeout.

        Users with a turn in flight are skipped and picked up by a later run.
        Locks left behind by users with no session or log are dropped too.

        Returns:
            Number of users evicted
        """
        timeout = self.config.session_timeout.total_seconds()
        now = self.now()

        with self._locks_guard:
            candidates = set(self._sessions) | set(self._logs) | set(self._locks)

        evicted = 0
        for user_id in candidates:
            with self._locks_guard:
                lock = self._locks.setdefault(user_id, threading.RLock())
            if not lock.acquire(blocking=False):
                continue
            try:
                last_seen = self._last_seen(user_id)
                if last_seen is not None and now - last_seen <= timeout:
                    continue
                tracked = self.is_tracked(user_id)
                self._sessions.pop(user_id, None)
                self._logs.pop(user_id, None)
                with self._locks_guard:
                    if self._locks.get(user_id) is lock:
                        del self._locks[user_id]
                if tracked:
                    evicted += 1
            finally:
                lock.release()

        if evicted:
            logger.info(f"Reaper evicted {evicted} inactive conversations")
        return evicted

    def _last_seen(self, user_id: str) -> Optional[float]:
        session = self._sessions.get(user_id)
        if session is not None:
            return session.last_activity
        log = self._logs.get(user_id)
        if log:
            return log[-1].timestamp
        return None

    def start_reaper(self):
        """Start the periodic reaper on the running event loop"""
        if not self._reaper_task:
            self._reaper_task = asyncio.create_task(self._periodic_reap())
            logger.info(
                f"Session reaper started (every {self.config.reaper_interval.total_seconds():.0f}s)"
            )

    async def stop_reaper(self):
        """Stop the periodic reaper and wait for it to finish"""
        if self._reaper_task:
            task = self._reaper_task
            self._reaper_task = None
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            logger.info("Session reaper stopped")

    @property
    def reaper_running(self) -> bool:
        return self._reaper_task is not None and not self._reaper_task.done()

    async def _periodic_reap(self):
        """Periodically evict inactive conversations"""
        while True:
            try:
                await asyncio.sleep(self.config.reaper_interval.total_seconds())
                self.reap_expired()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in session reaper: {str(e)}", exc_info=True)

    def stats(self) -> Dict[str, int]:
        with self._locks_guard:
            return {
                "activeSessions": len(self._sessions),
                "totalTrackedUsers": len(set(self._sessions) | set(self._logs)),
            }
