"""Render planner: timeline -> ordered, disjoint render intervals.

Every segment start/end (plus 0) is a boundary point. Between two consecutive
boundaries the set of visible segments is constant, so each span is rendered
independently and the results are concatenated in time order.
"""

import logging
from dataclasses import dataclass

from vedit.schemas.timeline import (
    AudioSegment,
    ImageSegment,
    Segment,
    TextSegment,
    Timeline,
    VideoSegment,
)

logger = logging.getLogger(__name__)

# Spans this short (seconds) are rounding noise between nearly equal boundaries
DEGENERATE_INTERVAL_S = 0.001


@dataclass(frozen=True)
class RenderInterval:
    """A span of the timeline with a constant set of visible segments."""

    index: int
    start: float
    end: float
    elements: tuple[Segment, ...] = ()  # Layer-ascending

    @property
    def duration(self) -> float:
        return self.end - self.start

    @property
    def is_background(self) -> bool:
        return not self.elements

    @property
    def videos(self) -> list[VideoSegment]:
        return [e for e in self.elements if isinstance(e, VideoSegment)]

    @property
    def images(self) -> list[ImageSegment]:
        return [e for e in self.elements if isinstance(e, ImageSegment)]

    @property
    def texts(self) -> list[TextSegment]:
        return [e for e in self.elements if isinstance(e, TextSegment)]

    @property
    def audios(self) -> list[AudioSegment]:
        return [e for e in self.elements if isinstance(e, AudioSegment)]

    def visible_range(self, segment: Segment) -> tuple[float, float]:
        """Interval-relative [start, end) during which ``segment`` is active."""
        start = max(segment.timeline_start_time, self.start) - self.start
        end = min(segment.timeline_end_time, self.end) - self.start
        return start, end


def collect_boundaries(timeline: Timeline) -> list[float]:
    """Sorted, de-duplicated boundary points across all segment kinds, always including 0."""
    points = {0.0}
    for segment in timeline.all_segments():
        points.add(segment.timeline_start_time)
        points.add(segment.timeline_end_time)
    return sorted(points)


def plan_render(timeline: Timeline) -> list[RenderInterval]:
    """Split a timeline into render intervals in strict time order."""
    boundaries = collect_boundaries(timeline)
    segments = timeline.all_segments()
    intervals: list[RenderInterval] = []

    for start, end in zip(boundaries, boundaries[1:]):
        if end - start <= DEGENERATE_INTERVAL_S:
            continue
        visible = [s for s in segments if s.timeline_start_time < end and s.timeline_end_time > start]
        visible.sort(key=lambda s: s.layer)
        intervals.append(
            RenderInterval(
                index=len(intervals),
                start=start,
                end=end,
                elements=tuple(visible),
            )
        )

    logger.info(
        f"[PLAN] {len(boundaries)} boundaries -> {len(intervals)} intervals "
        f"({sum(1 for i in intervals if i.is_background)} background)"
    )
    return intervals
