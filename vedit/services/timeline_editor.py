"""Segment mutation API.

Every mutation runs inside the session's exclusive edit section and follows
the same pattern: validate a candidate (a new pydantic model built from the
current state plus the requested changes), check the layer is free, then swap
the candidate in. A failed validation leaves the timeline untouched.
"""

import logging
from typing import Any
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError

from vedit.config import get_settings
from vedit.exceptions import (
    FilterNotFoundError,
    InvalidFieldValueError,
    InvalidSplitPointError,
    InvalidTimeRangeError,
    MissingSourceAssetError,
    SegmentNotFoundError,
    SegmentsNotAdjacentOrSameSourceError,
    SegmentsNotMergeableError,
    TimelineOverlapError,
)
from vedit.render import filter_catalog
from vedit.schemas.timeline import (
    ANIMATABLE_PROPERTIES,
    KEYFRAME_TIME_TOLERANCE,
    AudioSegment,
    FilterInstance,
    ImageSegment,
    Keyframe,
    Segment,
    SegmentBase,
    TextSegment,
    Timeline,
    VideoSegment,
)
from vedit.services.session_manager import SessionManager
from vedit.services.storage_service import AssetResolver
from vedit.utils.media_info import MediaProbe

logger = logging.getLogger(__name__)

# Tolerance for "touching" boundaries when checking adjacency of split pieces
ADJACENCY_TOLERANCE = 1e-6

# Floating point slack for the inclusive split margin
SPLIT_EPSILON = 1e-9

# Fields callers may not set through the generic update methods
_MANAGED_FIELDS = {"id", "filters", "keyframes"}

# Visual attributes a merge takes from the later piece when the earlier leaves them unset
_MERGE_FALLBACK_FIELDS = ("position_x", "position_y", "scale", "opacity")


def _build(model: type[SegmentBase], data: dict[str, Any]) -> Segment:
    """Validate a segment candidate, translating pydantic errors to domain errors."""
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        error = e.errors()[0]
        loc = error.get("loc") or ()
        reason = str(error.get("msg", "")).removeprefix("Value error, ")
        if not loc:
            # Model-level checks are all range checks (timeline or source window)
            raise InvalidTimeRangeError(
                reason,
                start=data.get("timeline_start_time"),
                end=data.get("timeline_end_time"),
            ) from None
        field = str(loc[0])
        raise InvalidFieldValueError(field, error.get("input"), reason) from None


def _require(timeline: Timeline, segment_id: str) -> Segment:
    segment = timeline.find_segment(segment_id)
    if segment is None:
        raise SegmentNotFoundError(segment_id)
    return segment


def _require_kind(timeline: Timeline, segment_id: str, *kinds: type[SegmentBase]) -> Segment:
    """Find a segment of one of ``kinds``; other kinds are reported as not found."""
    segment = _require(timeline, segment_id)
    if not isinstance(segment, kinds):
        raise SegmentNotFoundError(segment_id)
    return segment


def _ensure_free(timeline: Timeline, segment: Segment, exclude_id: str | None = None) -> None:
    if not timeline.is_interval_free(
        segment.timeline_start_time,
        segment.timeline_end_time,
        segment.layer,
        exclude_id=exclude_id,
    ):
        raise TimelineOverlapError(
            segment.layer,
            segment.timeline_start_time,
            segment.timeline_end_time,
            segment_id=exclude_id,
        )


def _pair_problem(first: Segment, second: Segment) -> str | None:
    """Why ``first`` and ``second`` are not a contiguous same-source pair (None if they are).

    ``first`` must be the earlier piece.
    """
    if first.id == second.id:
        return "a segment cannot be paired with itself"
    if type(first) is not type(second):
        return "segments are of different kinds"
    if first.layer != second.layer:
        return "segments are on different layers"
    if first.source_key() != second.source_key():
        return "segments do not share a source"
    if abs(first.timeline_end_time - second.timeline_start_time) > ADJACENCY_TOLERANCE:
        return "segments are not contiguous on the timeline"
    if first.trimmed and abs(first.source_end_time - second.source_start_time) > ADJACENCY_TOLERANCE:
        return "source windows are not contiguous"
    return None


def _ordered(a: Segment, b: Segment) -> tuple[Segment, Segment]:
    if b.timeline_start_time < a.timeline_start_time:
        return b, a
    return a, b


def _source_point(segment: Segment, timeline_time: float, start: float, end: float) -> float:
    """Source time matching ``timeline_time`` when [start, end) maps linearly onto the window."""
    ratio = (timeline_time - start) / (end - start)
    return segment.source_start_time + ratio * (segment.source_end_time - segment.source_start_time)


def _fresh_filters(filters: dict[str, FilterInstance]) -> dict[str, dict]:
    """Copy a filter chain under new instance ids, keeping order."""
    return {str(uuid4()): f.model_dump() for f in filters.values()}


def _rebase_keyframes(
    keyframes: dict[str, list[Keyframe]],
    shift: float,
    length: float = float("inf"),
) -> dict[str, list[dict]]:
    """Keyframes re-based ``shift`` seconds later, keeping those that land in [0, length]."""
    rebased = {}
    for prop, frames in keyframes.items():
        kept = [
            {"time": max(0.0, kf.time - shift), "value": kf.value}
            for kf in frames
            if -KEYFRAME_TIME_TOLERANCE <= kf.time - shift <= length + KEYFRAME_TIME_TOLERANCE
        ]
        if kept:
            rebased[prop] = kept
    return rebased


class TimelineEditor:
    """Add / remove / split / merge / update / filter / keyframe operations."""

    def __init__(
        self,
        sessions: SessionManager,
        assets: AssetResolver,
        probe: MediaProbe | None = None,
        *,
        split_margin_s: float | None = None,
        default_still_duration_s: float | None = None,
    ) -> None:
        settings = get_settings()
        self.sessions = sessions
        self.assets = assets
        self.probe = probe or MediaProbe()
        self.split_margin_s = split_margin_s if split_margin_s is not None else settings.split_margin_s
        self.default_still_duration_s = (
            default_still_duration_s
            if default_still_duration_s is not None
            else settings.default_still_duration_s
        )

    # =========================================================================
    # Add
    # =========================================================================

    def _resolve(self, source_path: str) -> str:
        resolved = self.assets.resolve(source_path)
        if resolved is None:
            raise MissingSourceAssetError(source_path)
        return str(resolved)

    def _insert(self, session_id: str, model: type[SegmentBase], data: dict[str, Any], duration: float) -> str:
        with self.sessions.edit(session_id) as timeline:
            if data.get("timeline_start_time") is None:
                data["timeline_start_time"] = timeline.last_end_on_layer(data["layer"])
            if data.get("timeline_end_time") is None:
                data["timeline_end_time"] = data["timeline_start_time"] + duration

            segment = _build(model, data)
            _ensure_free(timeline, segment)
            timeline.add(segment)

        logger.info(
            f"[EDIT] Added {segment.kind} {segment.id} on layer {segment.layer} "
            f"[{segment.timeline_start_time:.3f}, {segment.timeline_end_time:.3f})"
        )
        return segment.id

    def _source_window(
        self, source_path: str, source_start: float, source_end: float | None
    ) -> tuple[dict[str, Any], float | None]:
        """Probe a time-based source and default its window to the full file."""
        info = self.probe.probe(self._resolve(source_path))
        if source_end is None:
            if info.duration is None:
                raise InvalidFieldValueError("source_end_time", None, "source duration is unknown")
            source_end = info.duration
        window = {
            "source_path": source_path,
            "source_start_time": source_start,
            "source_end_time": source_end,
            "source_duration": info.duration,
        }
        return window, info.has_audio

    def add_video(
        self,
        session_id: str,
        source_path: str,
        *,
        layer: int = 0,
        timeline_start: float | None = None,
        timeline_end: float | None = None,
        source_start: float = 0.0,
        source_end: float | None = None,
        position_x: int | None = 0,
        position_y: int | None = 0,
        scale: float | None = 1.0,
        opacity: float | None = None,
    ) -> str:
        """Add a video segment; appends after the layer's last segment when no start is given."""
        window, has_audio = self._source_window(source_path, source_start, source_end)
        data = {
            **window,
            "layer": layer,
            "timeline_start_time": timeline_start,
            "timeline_end_time": timeline_end,
            "has_audio": has_audio,
            "position_x": position_x,
            "position_y": position_y,
            "scale": scale,
            "opacity": opacity,
        }
        length = window["source_end_time"] - window["source_start_time"]
        return self._insert(session_id, VideoSegment, data, length)

    def add_audio(
        self,
        session_id: str,
        source_path: str,
        *,
        layer: int = -1,
        timeline_start: float | None = None,
        timeline_end: float | None = None,
        source_start: float = 0.0,
        source_end: float | None = None,
        volume: float = 1.0,
    ) -> str:
        """Add an audio segment on a negative layer."""
        if layer >= 0:
            raise InvalidFieldValueError("layer", layer, "audio layers must be negative")
        window, _ = self._source_window(source_path, source_start, source_end)
        data = {
            **window,
            "layer": layer,
            "timeline_start_time": timeline_start,
            "timeline_end_time": timeline_end,
            "volume": volume,
        }
        length = window["source_end_time"] - window["source_start_time"]
        return self._insert(session_id, AudioSegment, data, length)

    def add_image(
        self,
        session_id: str,
        source_path: str,
        *,
        layer: int = 0,
        timeline_start: float | None = None,
        timeline_end: float | None = None,
        position_x: int | None = 0,
        position_y: int | None = 0,
        scale: float | None = 1.0,
        opacity: float | None = None,
        custom_width: int | None = None,
        custom_height: int | None = None,
        maintain_aspect_ratio: bool = True,
        filters: dict[str, Any] | None = None,
    ) -> str:
        """Add a still image (default 5s) with an optional initial filter bag."""
        width, height = self.probe.image_size(self._resolve(source_path))

        # Compile filters before touching the timeline so a bad bag adds nothing
        chain = {}
        for name, params in (filters or {}).items():
            applied = filter_catalog.apply_filter(name, params)
            chain[applied.filter_id] = FilterInstance(
                type=applied.kind.value,
                params=applied.params,
                expression=applied.expression,
            )

        data = {
            "source_path": source_path,
            "layer": layer,
            "timeline_start_time": timeline_start,
            "timeline_end_time": timeline_end,
            "width": width,
            "height": height,
            "custom_width": custom_width,
            "custom_height": custom_height,
            "maintain_aspect_ratio": maintain_aspect_ratio,
            "position_x": position_x,
            "position_y": position_y,
            "scale": scale,
            "opacity": opacity,
            "filters": chain,
        }
        return self._insert(session_id, ImageSegment, data, self.default_still_duration_s)

    def add_text(
        self,
        session_id: str,
        text: str,
        *,
        layer: int = 0,
        timeline_start: float | None = None,
        timeline_end: float | None = None,
        **style: Any,
    ) -> str:
        """Add a text overlay (default 5s). ``style`` takes any TextSegment styling field."""
        for key in style:
            if key in _MANAGED_FIELDS or key not in TextSegment.model_fields:
                raise InvalidFieldValueError(key, style[key], "unknown text field")
        data = {
            **style,
            "text": text,
            "layer": layer,
            "timeline_start_time": timeline_start,
            "timeline_end_time": timeline_end,
        }
        return self._insert(session_id, TextSegment, data, self.default_still_duration_s)

    # =========================================================================
    # Split / merge
    # =========================================================================

    def _check_margin(self, split_time: float, start: float, end: float, segment_id: str) -> None:
        margin = self.split_margin_s
        if split_time < start + margin - SPLIT_EPSILON or split_time > end - margin + SPLIT_EPSILON:
            raise InvalidSplitPointError(
                split_time,
                start=start,
                end=end,
                margin=margin,
                segment_id=segment_id,
            )

    def split_segment(self, session_id: str, segment_id: str, split_time: float) -> tuple[str, str]:
        """Split a segment at an absolute timeline time. Returns (first_id, second_id)."""
        with self.sessions.edit(session_id) as timeline:
            segment = _require(timeline, segment_id)
            start, end = segment.timeline_start_time, segment.timeline_end_time
            self._check_margin(split_time, start, end, segment_id)

            base = segment.model_dump()
            first = {**base, "id": str(uuid4()), "timeline_end_time": split_time}
            second = {
                **base,
                "id": str(uuid4()),
                "timeline_start_time": split_time,
                "filters": _fresh_filters(segment.filters),
            }

            if segment.trimmed:
                source_split = _source_point(segment, split_time, start, end)
                first["source_end_time"] = source_split
                second["source_start_time"] = source_split

            if isinstance(segment, TextSegment):
                offset = split_time - start
                first["keyframes"] = _rebase_keyframes(segment.keyframes, 0.0, offset)
                second["keyframes"] = _rebase_keyframes(segment.keyframes, offset)

            model = type(segment)
            first_segment = _build(model, first)
            second_segment = _build(model, second)
            timeline.replace(segment_id, first_segment, second_segment)

        logger.info(f"[EDIT] Split {segment_id} at {split_time:.3f}s -> {first_segment.id}, {second_segment.id}")
        return first_segment.id, second_segment.id

    def update_split_point(
        self,
        session_id: str,
        first_id: str,
        second_id: str,
        split_time: float,
    ) -> None:
        """Move the boundary between two adjacent pieces of the same source."""
        with self.sessions.edit(session_id) as timeline:
            first, second = _ordered(_require(timeline, first_id), _require(timeline, second_id))
            problem = _pair_problem(first, second)
            if problem:
                raise SegmentsNotAdjacentOrSameSourceError(first.id, second.id, problem)

            start, end = first.timeline_start_time, second.timeline_end_time
            self._check_margin(split_time, start, end, first.id)

            first_data = {**first.model_dump(), "timeline_end_time": split_time}
            second_data = {**second.model_dump(), "timeline_start_time": split_time}
            if first.trimmed:
                # Map over the combined window
                ratio = (split_time - start) / (end - start)
                source_split = first.source_start_time + ratio * (
                    second.source_end_time - first.source_start_time
                )
                first_data["source_end_time"] = source_split
                second_data["source_start_time"] = source_split
            if isinstance(first, TextSegment):
                first_data["keyframes"] = _rebase_keyframes(first.keyframes, 0.0, split_time - start)
                second_data["keyframes"] = _rebase_keyframes(
                    second.keyframes,
                    split_time - second.timeline_start_time,
                    end - split_time,
                )

            model = type(first)
            new_first = _build(model, first_data)
            new_second = _build(model, second_data)
            timeline.replace(first.id, new_first)
            timeline.replace(second.id, new_second)

        logger.info(f"[EDIT] Moved split point of {first.id}/{second.id} to {split_time:.3f}s")

    def merge_segments(self, session_id: str, first_id: str, second_id: str) -> str:
        """Merge two adjacent pieces of the same source back into one. Returns the new id."""
        with self.sessions.edit(session_id) as timeline:
            first, second = _ordered(_require(timeline, first_id), _require(timeline, second_id))
            problem = _pair_problem(first, second)
            if problem:
                raise SegmentsNotMergeableError(first.id, second.id, problem)

            data = {
                **first.model_dump(),
                "id": str(uuid4()),
                "timeline_end_time": second.timeline_end_time,
            }
            if first.trimmed:
                data["source_end_time"] = second.source_end_time
            for attr in _MERGE_FALLBACK_FIELDS:
                if attr in data and data[attr] is None:
                    data[attr] = getattr(second, attr)

            if isinstance(first, TextSegment):
                shift = first.duration
                keyframes = {p: [kf.model_dump() for kf in f] for p, f in first.keyframes.items()}
                for prop, frames in second.keyframes.items():
                    existing = keyframes.setdefault(prop, [])
                    for kf in frames:
                        t = kf.time + shift
                        if all(abs(e["time"] - t) >= KEYFRAME_TIME_TOLERANCE for e in existing):
                            existing.append({"time": t, "value": kf.value})
                data["keyframes"] = keyframes

            merged = _build(type(first), data)
            timeline.remove(second.id)
            timeline.replace(first.id, merged)

        logger.info(f"[EDIT] Merged {first.id} + {second.id} -> {merged.id}")
        return merged.id

    # =========================================================================
    # Update
    # =========================================================================

    def _update(
        self,
        session_id: str,
        segment_id: str,
        model: type[SegmentBase],
        changes: dict[str, Any],
    ) -> Segment:
        for key, value in changes.items():
            if key in _MANAGED_FIELDS or key not in model.model_fields:
                raise InvalidFieldValueError(key, value, f"not an updatable {model.kind} field")

        with self.sessions.edit(session_id) as timeline:
            segment = _require_kind(timeline, segment_id, model)
            changes = dict(changes)

            # Moving the start alone keeps the duration
            if "timeline_start_time" in changes and "timeline_end_time" not in changes:
                changes["timeline_end_time"] = changes["timeline_start_time"] + segment.duration

            if segment.trimmed and "source_end_time" not in changes:
                start = changes.get("timeline_start_time", segment.timeline_start_time)
                end = changes.get("timeline_end_time", segment.timeline_end_time)
                retimed = abs((end - start) - segment.duration) > ADJACENCY_TOLERANCE
                if retimed or "source_start_time" in changes:
                    source_start = changes.get("source_start_time", segment.source_start_time)
                    changes["source_end_time"] = source_start + (end - start)

            updated = _build(model, {**segment.model_dump(), **changes})

            moved = (
                updated.layer != segment.layer
                or updated.timeline_start_time != segment.timeline_start_time
                or updated.timeline_end_time != segment.timeline_end_time
            )
            if moved:
                _ensure_free(timeline, updated, exclude_id=segment_id)
            timeline.replace(segment_id, updated)

        logger.info(f"[EDIT] Updated {model.kind} {segment_id}: {sorted(changes)}")
        return updated.model_copy(deep=True)

    def update_video_segment(self, session_id: str, segment_id: str, **changes: Any) -> VideoSegment:
        return self._update(session_id, segment_id, VideoSegment, changes)

    def update_audio_segment(self, session_id: str, segment_id: str, **changes: Any) -> AudioSegment:
        return self._update(session_id, segment_id, AudioSegment, changes)

    def update_image_segment(self, session_id: str, segment_id: str, **changes: Any) -> ImageSegment:
        return self._update(session_id, segment_id, ImageSegment, changes)

    def update_text_segment(self, session_id: str, segment_id: str, **changes: Any) -> TextSegment:
        return self._update(session_id, segment_id, TextSegment, changes)

    # =========================================================================
    # Remove / clear
    # =========================================================================

    def remove_segment(self, session_id: str, segment_id: str) -> None:
        with self.sessions.edit(session_id) as timeline:
            if timeline.remove(segment_id) is None:
                raise SegmentNotFoundError(segment_id)
        logger.info(f"[EDIT] Removed segment {segment_id}")

    def clear_timeline(self, session_id: str) -> int:
        """Remove every segment. Returns how many were removed."""
        with self.sessions.edit(session_id) as timeline:
            removed = timeline.clear()
        logger.info(f"[EDIT] Cleared timeline of session {session_id} ({removed} segments)")
        return removed

    # =========================================================================
    # Filters (video and image segments)
    # =========================================================================

    def apply_filter(self, session_id: str, segment_id: str, name: str, params: Any = None) -> str:
        """Append a filter instance to a segment's chain. Returns the instance id."""
        applied = filter_catalog.apply_filter(name, params)
        with self.sessions.edit(session_id) as timeline:
            segment = _require_kind(timeline, segment_id, VideoSegment, ImageSegment)
            segment.filters[applied.filter_id] = FilterInstance(
                type=applied.kind.value,
                params=applied.params,
                expression=applied.expression,
            )
        logger.info(f"[EDIT] Applied {applied.kind.value} ({applied.filter_id}) to {segment_id}")
        return applied.filter_id

    def update_filter(self, session_id: str, segment_id: str, filter_id: str, params: Any = None) -> str:
        """Re-apply a filter's kind with new parameters under a new instance id."""
        with self.sessions.edit(session_id) as timeline:
            segment = _require_kind(timeline, segment_id, VideoSegment, ImageSegment)
            existing = segment.filters.get(filter_id)
            if existing is None:
                raise FilterNotFoundError(filter_id, segment_id)

            applied = filter_catalog.apply_filter(existing.type, params)
            del segment.filters[filter_id]
            segment.filters[applied.filter_id] = FilterInstance(
                type=applied.kind.value,
                params=applied.params,
                expression=applied.expression,
            )
        logger.info(f"[EDIT] Updated filter {filter_id} -> {applied.filter_id} on {segment_id}")
        return applied.filter_id

    def remove_filter(self, session_id: str, segment_id: str, filter_id: str) -> None:
        with self.sessions.edit(session_id) as timeline:
            segment = _require_kind(timeline, segment_id, VideoSegment, ImageSegment)
            if segment.filters.pop(filter_id, None) is None:
                raise FilterNotFoundError(filter_id, segment_id)
        logger.info(f"[EDIT] Removed filter {filter_id} from {segment_id}")

    def remove_all_filters(self, session_id: str, segment_id: str) -> list[str]:
        """Drop a segment's whole filter chain. Returns the removed instance ids."""
        with self.sessions.edit(session_id) as timeline:
            segment = _require_kind(timeline, segment_id, VideoSegment, ImageSegment)
            removed = list(segment.filters)
            segment.filters.clear()
        return removed

    # =========================================================================
    # Keyframes (text segments)
    # =========================================================================

    def _keyframe_target(self, timeline: Timeline, segment_id: str, prop: str) -> TextSegment:
        segment = _require_kind(timeline, segment_id, TextSegment)
        if prop not in ANIMATABLE_PROPERTIES:
            raise InvalidFieldValueError("property", prop, f"animatable properties: {', '.join(ANIMATABLE_PROPERTIES)}")
        return segment

    def add_keyframe(self, session_id: str, segment_id: str, prop: str, time: float, value: float) -> Keyframe:
        """Add (or replace) a keyframe; ``time`` is relative to the segment start."""
        with self.sessions.edit(session_id) as timeline:
            segment = self._keyframe_target(timeline, segment_id, prop)
            if time < 0 or time > segment.duration + KEYFRAME_TIME_TOLERANCE:
                raise InvalidFieldValueError("time", time, f"must lie within [0, {segment.duration:g}]")
            return segment.add_keyframe(prop, time, value)

    def update_keyframe(self, session_id: str, segment_id: str, prop: str, time: float, value: float) -> None:
        with self.sessions.edit(session_id) as timeline:
            segment = self._keyframe_target(timeline, segment_id, prop)
            if not segment.update_keyframe(prop, time, value):
                raise InvalidFieldValueError("time", time, f"no {prop} keyframe at this time")

    def remove_keyframe(self, session_id: str, segment_id: str, prop: str, time: float) -> None:
        with self.sessions.edit(session_id) as timeline:
            segment = self._keyframe_target(timeline, segment_id, prop)
            if not segment.remove_keyframe(prop, time):
                raise InvalidFieldValueError("time", time, f"no {prop} keyframe at this time")

    # =========================================================================
    # Queries
    # =========================================================================

    def get_timeline(self, session_id: str) -> Timeline:
        return self.sessions.snapshot(session_id)

    def get_segment(self, session_id: str, segment_id: str) -> Segment:
        with self.sessions.edit(session_id) as timeline:
            return _require(timeline, segment_id).model_copy(deep=True)
