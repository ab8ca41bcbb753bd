from datetime import datetime, timezone
from typing import Any, ClassVar, Literal, Union
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

from vedit.utils.color import normalize_color

# Keyframes closer than this (seconds) are the same keyframe
KEYFRAME_TIME_TOLERANCE = 1e-4

# Source windows may exceed the probed duration by this much (container rounding)
SOURCE_DURATION_TOLERANCE = 1e-3

ANIMATABLE_PROPERTIES = ("position_x", "position_y", "opacity", "scale")

TextAlignment = Literal["left", "center", "right"]


def _new_id() -> str:
    return str(uuid4())


# =============================================================================
# Filters & Keyframes
# =============================================================================


class FilterInstance(BaseModel):
    """One recorded application of a catalog filter to a segment."""

    type: str
    params: dict[str, Any] = Field(default_factory=dict)
    expression: str
    applied_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Keyframe(BaseModel):
    time: float = Field(ge=0)  # Seconds, relative to the segment start
    value: float


# =============================================================================
# Segments
# =============================================================================


class SegmentBase(BaseModel):
    """Shape shared by every timeline element."""

    kind: ClassVar[str] = "segment"
    trimmed: ClassVar[bool] = False

    id: str = Field(default_factory=_new_id)
    layer: int = 0
    timeline_start_time: float = Field(ge=0)
    timeline_end_time: float
    filters: dict[str, FilterInstance] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_timeline_range(self):
        if self.timeline_end_time <= self.timeline_start_time:
            raise ValueError(
                f"timeline_end_time ({self.timeline_end_time}) must be greater than "
                f"timeline_start_time ({self.timeline_start_time})"
            )
        return self

    @property
    def duration(self) -> float:
        return self.timeline_end_time - self.timeline_start_time

    def overlaps(self, start: float, end: float) -> bool:
        """Half-open interval intersection with [start, end)."""
        return start < self.timeline_end_time and end > self.timeline_start_time

    def source_key(self) -> str | None:
        """Identity of the underlying source, used to recognise split pieces."""
        return None

    def filter_chain(self) -> list[str]:
        """Filter expressions in application order."""
        return [f.expression for f in self.filters.values()]


class MediaSegment(SegmentBase):
    """A segment cut from a time-based source file (video or audio)."""

    trimmed: ClassVar[bool] = True

    source_path: str
    source_start_time: float = Field(0.0, ge=0)
    source_end_time: float
    source_duration: float | None = Field(None, gt=0)

    @model_validator(mode="after")
    def _check_source_window(self):
        if self.source_end_time <= self.source_start_time:
            raise ValueError(
                f"source_end_time ({self.source_end_time}) must be greater than "
                f"source_start_time ({self.source_start_time})"
            )
        if (
            self.source_duration is not None
            and self.source_end_time > self.source_duration + SOURCE_DURATION_TOLERANCE
        ):
            raise ValueError(
                f"source_end_time ({self.source_end_time}) exceeds source duration ({self.source_duration})"
            )
        return self

    def source_key(self) -> str | None:
        return self.source_path


class VideoSegment(MediaSegment):
    kind: ClassVar[str] = "video"

    has_audio: bool = True
    # None means "unset": rendered as 0 / 1.0, and a merge falls back to the other piece
    position_x: int | None = None
    position_y: int | None = None
    scale: float | None = Field(None, gt=0)
    opacity: float | None = Field(None, ge=0.0, le=1.0)


class AudioSegment(MediaSegment):
    kind: ClassVar[str] = "audio"

    layer: int = -1
    volume: float = Field(1.0, ge=0.0, le=1.0)

    @field_validator("layer")
    @classmethod
    def _negative_layer(cls, value: int) -> int:
        if value >= 0:
            raise ValueError("Audio layers must be negative")
        return value


class ImageSegment(SegmentBase):
    kind: ClassVar[str] = "image"

    source_path: str
    width: int = Field(gt=0)  # Intrinsic size
    height: int = Field(gt=0)
    custom_width: int | None = Field(None, gt=0)
    custom_height: int | None = Field(None, gt=0)
    maintain_aspect_ratio: bool = True
    position_x: int | None = None
    position_y: int | None = None
    scale: float | None = Field(None, gt=0)
    opacity: float | None = Field(None, ge=0.0, le=1.0)

    def source_key(self) -> str | None:
        return self.source_path


class TextSegment(SegmentBase):
    kind: ClassVar[str] = "text"

    text: str = Field(min_length=1)
    font_family: str = "Arial"
    font_size: int = Field(24, ge=1, le=500)
    scale: float = Field(1.0, gt=0)
    font_color: str = "white"
    opacity: float = Field(1.0, ge=0.0, le=1.0)
    alignment: TextAlignment = "left"
    position_x: int | None = None
    position_y: int | None = None

    # Background box
    background_color: str = "transparent"
    background_opacity: float = Field(1.0, ge=0.0, le=1.0)
    background_border_width: int = Field(0, ge=0)
    background_border_color: str = "transparent"
    background_h: int = Field(0, ge=0)
    background_w: int = Field(0, ge=0)
    background_border_radius: int = Field(0, ge=0)

    # Text stroke
    text_border_color: str = "transparent"
    text_border_width: int = Field(0, ge=0)
    text_border_opacity: float = Field(1.0, ge=0.0, le=1.0)

    # Drop shadow
    shadow_color: str = "transparent"
    shadow_offset_x: int = 0
    shadow_offset_y: int = 0
    shadow_blur_radius: float = Field(0.0, ge=0.0)
    shadow_spread: float = Field(0.0, ge=0.0)
    shadow_opacity: float = Field(1.0, ge=0.0, le=1.0)

    keyframes: dict[str, list[Keyframe]] = Field(default_factory=dict)

    @field_validator(
        "font_color",
        "background_color",
        "background_border_color",
        "text_border_color",
        "shadow_color",
    )
    @classmethod
    def _color(cls, value: str) -> str:
        return normalize_color(value)

    @field_validator("keyframes")
    @classmethod
    def _keyframe_properties(cls, value: dict[str, list[Keyframe]]) -> dict[str, list[Keyframe]]:
        for prop in value:
            if prop not in ANIMATABLE_PROPERTIES:
                raise ValueError(f"Property '{prop}' cannot be animated")
        return {prop: sorted(frames, key=lambda kf: kf.time) for prop, frames in value.items()}

    def source_key(self) -> str | None:
        return self.text

    def add_keyframe(self, prop: str, time: float, value: float) -> Keyframe:
        """Insert a keyframe, replacing one at (nearly) the same time."""
        if prop not in ANIMATABLE_PROPERTIES:
            raise ValueError(f"Property '{prop}' cannot be animated")
        keyframe = Keyframe(time=time, value=value)
        frames = [
            kf
            for kf in self.keyframes.get(prop, [])
            if abs(kf.time - time) >= KEYFRAME_TIME_TOLERANCE
        ]
        frames.append(keyframe)
        frames.sort(key=lambda kf: kf.time)
        self.keyframes[prop] = frames
        return keyframe

    def update_keyframe(self, prop: str, time: float, value: float) -> bool:
        """Change the value of the keyframe at ``time``. Returns False if none exists."""
        for i, kf in enumerate(self.keyframes.get(prop, [])):
            if abs(kf.time - time) < KEYFRAME_TIME_TOLERANCE:
                self.keyframes[prop][i] = Keyframe(time=kf.time, value=value)
                return True
        return False

    def remove_keyframe(self, prop: str, time: float) -> bool:
        frames = self.keyframes.get(prop)
        if not frames:
            return False
        kept = [kf for kf in frames if abs(kf.time - time) >= KEYFRAME_TIME_TOLERANCE]
        if len(kept) == len(frames):
            return False
        if kept:
            self.keyframes[prop] = kept
        else:
            del self.keyframes[prop]
        return True


Segment = Union[VideoSegment, ImageSegment, TextSegment, AudioSegment]

VISUAL_KINDS = ("video", "image", "text")


# =============================================================================
# Timeline
# =============================================================================


class Timeline(BaseModel):
    version: str = "1.0"
    canvas_width: int | None = Field(None, gt=0)
    canvas_height: int | None = Field(None, gt=0)
    video_segments: list[VideoSegment] = Field(default_factory=list)
    image_segments: list[ImageSegment] = Field(default_factory=list)
    text_segments: list[TextSegment] = Field(default_factory=list)
    audio_segments: list[AudioSegment] = Field(default_factory=list)

    def _collection(self, segment: SegmentBase) -> list:
        if isinstance(segment, VideoSegment):
            return self.video_segments
        if isinstance(segment, ImageSegment):
            return self.image_segments
        if isinstance(segment, TextSegment):
            return self.text_segments
        if isinstance(segment, AudioSegment):
            return self.audio_segments
        raise TypeError(f"Unsupported segment type: {type(segment).__name__}")

    def all_segments(self) -> list[Segment]:
        return [
            *self.video_segments,
            *self.image_segments,
            *self.text_segments,
            *self.audio_segments,
        ]

    def find_segment(self, segment_id: str) -> Segment | None:
        for segment in self.all_segments():
            if segment.id == segment_id:
                return segment
        return None

    def segments_on_layer(self, layer: int) -> list[Segment]:
        """Segments on ``layer`` ordered by timeline start."""
        on_layer = [s for s in self.all_segments() if s.layer == layer]
        return sorted(on_layer, key=lambda s: s.timeline_start_time)

    def max_layer(self) -> int:
        return max((s.layer for s in self.all_segments()), default=0)

    def last_end_on_layer(self, layer: int) -> float:
        return max((s.timeline_end_time for s in self.all_segments() if s.layer == layer), default=0.0)

    def is_interval_free(
        self,
        start: float,
        end: float,
        layer: int,
        exclude_id: str | None = None,
    ) -> bool:
        """True when no segment on ``layer`` (other than ``exclude_id``) intersects [start, end)."""
        for segment in self.all_segments():
            if segment.layer != layer or segment.id == exclude_id:
                continue
            if segment.overlaps(start, end):
                return False
        return True

    def has_visual_content(self) -> bool:
        return bool(self.video_segments or self.image_segments or self.text_segments)

    def duration(self) -> float:
        return max((s.timeline_end_time for s in self.all_segments()), default=0.0)

    def add(self, segment: Segment) -> None:
        self._collection(segment).append(segment)

    def remove(self, segment_id: str) -> Segment | None:
        segment = self.find_segment(segment_id)
        if segment is None:
            return None
        collection = self._collection(segment)
        collection[:] = [s for s in collection if s.id != segment_id]
        return segment

    def replace(self, segment_id: str, *replacements: Segment) -> None:
        """Swap a segment for zero or more segments of the same kind, in place."""
        segment = self.find_segment(segment_id)
        if segment is None:
            raise KeyError(segment_id)
        collection = self._collection(segment)
        index = next(i for i, s in enumerate(collection) if s.id == segment_id)
        collection[index : index + 1] = list(replacements)

    def clear(self) -> int:
        count = len(self.all_segments())
        self.video_segments.clear()
        self.image_segments.clear()
        self.text_segments.clear()
        self.audio_segments.clear()
        return count
