"""In-memory registry of edit sessions.

Each session owns a mutable Timeline. Mutations on one session are serialized
by that session's lock; distinct sessions never share a lock. Idle sessions
are reclaimed by ``sweep_expired`` (run periodically by the reaper thread)
unless an operation currently holds them.
"""

import logging
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from uuid import uuid4

from vedit.config import get_settings
from vedit.exceptions import ProjectNotFoundError, SessionNotFoundError
from vedit.schemas.timeline import Timeline
from vedit.services.storage_service import TimelineStore

logger = logging.getLogger(__name__)


@dataclass
class EditSession:
    session_id: str
    project_id: str | None
    timeline: Timeline
    last_access_time: float
    created_at: float
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)
    holds: int = 0  # Operations in flight; a held session is never reclaimed


class SessionManager:
    """Thread-safe session registry with TTL-based reclamation."""

    def __init__(
        self,
        store: TimelineStore | None = None,
        *,
        idle_timeout_s: float | None = None,
        sweep_interval_s: float | None = None,
        canvas_width: int | None = None,
        canvas_height: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        settings = get_settings()
        self._store = store
        self._idle_timeout_s = idle_timeout_s if idle_timeout_s is not None else settings.session_idle_timeout_s
        self._sweep_interval_s = (
            sweep_interval_s if sweep_interval_s is not None else settings.session_sweep_interval_s
        )
        self._canvas_width = canvas_width or settings.render_output_width
        self._canvas_height = canvas_height or settings.render_output_height
        self._clock = clock

        self._sessions: dict[str, EditSession] = {}
        self._lock = threading.Lock()
        self._reaper: threading.Thread | None = None
        self._stop_event = threading.Event()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self, project_id: str | None = None) -> str:
        """Open a session on a project's timeline (or a blank one) and return its id."""
        timeline = None
        if project_id is not None and self._store is not None:
            timeline = self._store.load(project_id)
        if timeline is None:
            timeline = Timeline()
        self._fill_canvas(timeline)

        now = self._clock()
        session = EditSession(
            session_id=str(uuid4()),
            project_id=project_id,
            timeline=timeline,
            last_access_time=now,
            created_at=now,
        )
        with self._lock:
            self._sessions[session.session_id] = session

        logger.info(
            f"[SESSION] Started {session.session_id} (project={project_id}, "
            f"segments={len(timeline.all_segments())})"
        )
        return session.session_id

    def close(self, session_id: str) -> bool:
        """Destroy a session. Returns False if it did not exist."""
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        logger.info(f"[SESSION] Closed {session_id}")
        return True

    def sweep_expired(self) -> list[str]:
        """Remove sessions idle longer than the timeout that nothing holds."""
        now = self._clock()
        with self._lock:
            expired = [
                sid
                for sid, s in self._sessions.items()
                if s.holds == 0 and now - s.last_access_time > self._idle_timeout_s
            ]
            for sid in expired:
                del self._sessions[sid]

        if expired:
            logger.info(f"[SESSION] Reclaimed {len(expired)} idle session(s)")
        return expired

    def start_reaper(self) -> None:
        """Run ``sweep_expired`` every sweep interval on a daemon thread."""
        if self._reaper is not None and self._reaper.is_alive():
            return
        self._stop_event.clear()
        self._reaper = threading.Thread(target=self._reap_loop, name="vedit-session-reaper", daemon=True)
        self._reaper.start()
        logger.info(f"[SESSION] Reaper started (interval={self._sweep_interval_s}s)")

    def stop_reaper(self, timeout: float | None = 5.0) -> None:
        self._stop_event.set()
        if self._reaper is not None:
            self._reaper.join(timeout)
            self._reaper = None

    def _reap_loop(self) -> None:
        while not self._stop_event.wait(self._sweep_interval_s):
            self.sweep_expired()

    # -------------------------------------------------------------------------
    # Access
    # -------------------------------------------------------------------------

    def _acquire(self, session_id: str) -> EditSession:
        """Look up, touch and hold a session (under the registry lock)."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            session.last_access_time = self._clock()
            session.holds += 1
            return session

    def _release(self, session: EditSession) -> None:
        with self._lock:
            session.holds -= 1
            session.last_access_time = self._clock()

    def get(self, session_id: str) -> Timeline:
        """Deep copy of a session's timeline (refreshes its access time)."""
        return self.snapshot(session_id)

    def exists(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    def active_session_ids(self) -> list[str]:
        with self._lock:
            return list(self._sessions)

    @contextmanager
    def pin(self, session_id: str) -> Iterator[EditSession]:
        """Hold a session (no reclamation) without taking its mutation lock."""
        session = self._acquire(session_id)
        try:
            yield session
        finally:
            self._release(session)

    @contextmanager
    def edit(self, session_id: str) -> Iterator[Timeline]:
        """Exclusive mutation section on one session's timeline."""
        with self.pin(session_id) as session:
            with session.lock:
                yield session.timeline

    def snapshot(self, session_id: str) -> Timeline:
        """Deep copy of the timeline, isolated from later mutations."""
        with self.edit(session_id) as timeline:
            return timeline.model_copy(deep=True)

    def replace_timeline(self, session_id: str, timeline: Timeline | dict) -> Timeline:
        """Replace the whole timeline with validated collaborator-supplied state."""
        if isinstance(timeline, Timeline):
            replacement = Timeline.model_validate(timeline.model_dump())
        else:
            replacement = Timeline.model_validate(timeline)
        self._fill_canvas(replacement)

        with self.pin(session_id) as session:
            with session.lock:
                session.timeline = replacement
        logger.info(f"[SESSION] Replaced timeline of {session_id}")
        return replacement

    def save(self, session_id: str) -> None:
        """Persist the session's timeline; the session stays open."""
        with self.pin(session_id) as session:
            if session.project_id is None or self._store is None:
                raise ProjectNotFoundError(session.project_id)
            with session.lock:
                snapshot = session.timeline.model_copy(deep=True)
            self._store.save(session.project_id, snapshot)

    def _fill_canvas(self, timeline: Timeline) -> None:
        if timeline.canvas_width is None:
            timeline.canvas_width = self._canvas_width
        if timeline.canvas_height is None:
            timeline.canvas_height = self._canvas_height
