"""Export: snapshot a session's timeline, render it, record the result."""

import logging
from dataclasses import dataclass

from vedit.render.pipeline import RenderPipeline
from vedit.services.session_manager import SessionManager
from vedit.services.storage_service import TimelineStore

logger = logging.getLogger(__name__)


@dataclass
class ExportResult:
    session_id: str
    project_id: str | None
    output_path: str
    duration: float


class ExportService:
    """Glue between the session registry, the render pipeline and the store."""

    def __init__(
        self,
        sessions: SessionManager,
        pipeline: RenderPipeline,
        store: TimelineStore | None = None,
    ) -> None:
        self.sessions = sessions
        self.pipeline = pipeline
        self.store = store

    async def export(
        self,
        session_id: str,
        output_path: str,
        *,
        save_timeline: bool = False,
        close_session: bool = False,
    ) -> ExportResult:
        """
        Render the session's timeline to ``output_path``.

        The timeline is copied under the session lock; edits made while the
        render runs apply to the live timeline only. The session is held for
        the duration so the idle sweep cannot reclaim it.

        Args:
            session_id: Edit session to export
            output_path: Final media file
            save_timeline: Also persist the exported snapshot to the store
            close_session: Destroy the session after a successful export

        Raises:
            SessionNotFoundError: If the session does not exist
            EmptyTimelineExportError: If there is nothing visual to render (store untouched)
            RenderTimeoutError, RenderEngineFailureError: If FFmpeg fails
        """
        with self.sessions.pin(session_id) as session:
            snapshot = self.sessions.snapshot(session_id)
            project_id = session.project_id
            logger.info(f"[EXPORT] Session {session_id} (project={project_id}) -> {output_path}")

            await self.pipeline.render(snapshot, output_path)

        if self.store is not None and project_id is not None:
            if save_timeline:
                self.store.save(project_id, snapshot)
            self.store.record_export(project_id, output_path)

        if close_session:
            self.sessions.close(session_id)

        return ExportResult(
            session_id=session_id,
            project_id=project_id,
            output_path=output_path,
            duration=snapshot.duration(),
        )
