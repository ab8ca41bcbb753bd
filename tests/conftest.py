"""
Pytest fixtures for vedit tests.

Nothing here needs a real FFmpeg: media probing, asset resolution, the
timeline store and the engine runner are all replaced by in-memory stubs.
"""

import asyncio
from pathlib import Path

import pytest

from vedit.render.compositor import OutputProfile
from vedit.services.session_manager import SessionManager
from vedit.services.timeline_editor import TimelineEditor
from vedit.utils.media_info import MediaInfo


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubAssetResolver:
    """Resolves every logical path under ``root`` except the ones marked missing."""

    def __init__(self, root: Path, missing: set[str] | None = None) -> None:
        self.root = root
        self.missing = missing or set()

    def resolve(self, logical_path: str) -> Path | None:
        if logical_path in self.missing:
            return None
        return self.root / logical_path


class StubProbe:
    """Media probe returning fixed durations / sizes."""

    def __init__(
        self,
        duration: float = 10.0,
        has_audio: bool = True,
        image_size: tuple[int, int] = (640, 360),
    ) -> None:
        self.duration = duration
        self.has_audio = has_audio
        self.size = image_size
        self.durations: dict[str, float] = {}

    def probe(self, file_path: str) -> MediaInfo:
        name = Path(file_path).name
        return MediaInfo(
            duration=self.durations.get(name, self.duration),
            has_video=True,
            has_audio=self.has_audio,
        )

    def image_size(self, file_path: str) -> tuple[int, int]:
        return self.size


class InMemoryStore:
    """TimelineStore keeping documents in dictionaries."""

    def __init__(self) -> None:
        self.timelines = {}
        self.saved: list[str] = []
        self.exports: list[tuple[str, str]] = []

    def load(self, project_id: str):
        timeline = self.timelines.get(project_id)
        return timeline.model_copy(deep=True) if timeline is not None else None

    def save(self, project_id: str, timeline) -> None:
        self.timelines[project_id] = timeline.model_copy(deep=True)
        self.saved.append(project_id)

    def record_export(self, project_id: str, output_path: str) -> None:
        self.exports.append((project_id, output_path))


class FakeRunner:
    """Engine runner that records argv and writes the output file instead of running FFmpeg."""

    def __init__(self, delay: float = 0.0, fail_on_call: int | None = None, error: Exception | None = None):
        self.calls: list[list[str]] = []
        self.delay = delay
        self.fail_on_call = fail_on_call
        self.error = error
        self.active = 0
        self.max_active = 0
        self.on_call = None  # Optional hook: on_call(args)

    async def run(self, args: list[str]):
        self.calls.append(list(args))
        call_number = len(self.calls)
        if self.on_call is not None:
            self.on_call(args)

        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.fail_on_call is not None and call_number == self.fail_on_call:
                raise self.error
            Path(args[-1]).write_bytes(b"fake-media")
        finally:
            self.active -= 1

    @property
    def concat_calls(self) -> list[list[str]]:
        return [c for c in self.calls if "concat" in c]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def assets_root(tmp_path: Path) -> Path:
    root = tmp_path / "assets"
    root.mkdir()
    return root


@pytest.fixture
def assets(assets_root: Path) -> StubAssetResolver:
    return StubAssetResolver(assets_root)


@pytest.fixture
def probe() -> StubProbe:
    return StubProbe()


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def sessions(store: InMemoryStore, clock: FakeClock) -> SessionManager:
    return SessionManager(
        store,
        idle_timeout_s=3600,
        sweep_interval_s=3600,
        canvas_width=1920,
        canvas_height=1080,
        clock=clock,
    )


@pytest.fixture
def editor(sessions: SessionManager, assets: StubAssetResolver, probe: StubProbe) -> TimelineEditor:
    return TimelineEditor(
        sessions,
        assets,
        probe,
        split_margin_s=0.1,
        default_still_duration_s=5.0,
    )


@pytest.fixture
def session_id(sessions: SessionManager) -> str:
    return sessions.start("project-1")


@pytest.fixture
def profile() -> OutputProfile:
    return OutputProfile()


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()
