"""Tests for the timeline data model and its layer/interval queries."""

import pytest
from pydantic import ValidationError

from vedit.schemas.timeline import (
    AudioSegment,
    ImageSegment,
    TextSegment,
    Timeline,
    VideoSegment,
)


def video(start: float, end: float, layer: int = 0, **kwargs) -> VideoSegment:
    return VideoSegment(
        source_path="clip.mp4",
        layer=layer,
        timeline_start_time=start,
        timeline_end_time=end,
        source_start_time=0.0,
        source_end_time=end - start,
        **kwargs,
    )


def text(start: float, end: float, layer: int = 1, **kwargs) -> TextSegment:
    return TextSegment(text="Hello", layer=layer, timeline_start_time=start, timeline_end_time=end, **kwargs)


class TestSegmentValidation:
    """Field and range invariants."""

    def test_end_must_follow_start(self):
        with pytest.raises(ValidationError):
            video(5, 5)

    def test_start_must_not_be_negative(self):
        with pytest.raises(ValidationError):
            text(-1, 2)

    def test_source_window_must_fit_source(self):
        with pytest.raises(ValidationError):
            VideoSegment(
                source_path="clip.mp4",
                timeline_start_time=0,
                timeline_end_time=12,
                source_start_time=0,
                source_end_time=12,
                source_duration=10,
            )

    def test_audio_lives_on_negative_layers(self):
        with pytest.raises(ValidationError):
            AudioSegment(
                source_path="music.mp3",
                layer=0,
                timeline_start_time=0,
                timeline_end_time=5,
                source_end_time=5,
            )

    def test_audio_default_layer_is_negative(self):
        segment = AudioSegment(source_path="music.mp3", timeline_start_time=0, timeline_end_time=5, source_end_time=5)
        assert segment.layer == -1

    def test_text_colors_are_validated_and_normalized(self):
        segment = text(0, 5, font_color="#ff8800", background_color="0x000000")

        assert segment.font_color == "#FF8800"
        assert segment.background_color == "#000000"
        with pytest.raises(ValidationError):
            text(0, 5, font_color="not-a-color")

    def test_text_ranges(self):
        with pytest.raises(ValidationError):
            text(0, 5, font_size=0)
        with pytest.raises(ValidationError):
            text(0, 5, opacity=1.5)
        with pytest.raises(ValidationError):
            text(0, 5, alignment="justify")

    def test_ids_are_unique(self):
        assert video(0, 1).id != video(0, 1).id


class TestKeyframes:
    """Text keyframe ordering and replacement."""

    def test_insertion_sorts_by_time(self):
        segment = text(0, 10)
        segment.add_keyframe("opacity", 2.0, 1.0)
        segment.add_keyframe("opacity", 0.5, 0.0)

        assert [kf.time for kf in segment.keyframes["opacity"]] == [0.5, 2.0]

    def test_near_equal_time_replaces(self):
        segment = text(0, 10)
        segment.add_keyframe("scale", 1.0, 1.0)
        segment.add_keyframe("scale", 1.00005, 2.0)

        frames = segment.keyframes["scale"]
        assert len(frames) == 1
        assert frames[0].value == 2.0

    def test_update_and_remove(self):
        segment = text(0, 10)
        segment.add_keyframe("position_x", 1.0, 10)

        assert segment.update_keyframe("position_x", 1.0, 20)
        assert segment.keyframes["position_x"][0].value == 20
        assert not segment.update_keyframe("position_x", 3.0, 20)
        assert segment.remove_keyframe("position_x", 1.0)
        assert "position_x" not in segment.keyframes
        assert not segment.remove_keyframe("position_x", 1.0)

    def test_unknown_property(self):
        with pytest.raises(ValueError):
            text(0, 10).add_keyframe("rotation", 1.0, 45)


class TestTimelineQueries:
    """Layer and interval queries used by the editor and planner."""

    def test_interval_free_is_half_open(self):
        timeline = Timeline()
        segment = video(0, 5)
        timeline.add(segment)

        assert timeline.is_interval_free(5, 8, 0)
        assert not timeline.is_interval_free(4, 6, 0)
        assert timeline.is_interval_free(4, 6, 1)
        assert timeline.is_interval_free(4, 6, 0, exclude_id=segment.id)

    def test_overlap_is_checked_across_kinds(self):
        timeline = Timeline()
        timeline.add(video(0, 5, layer=2))

        assert not timeline.is_interval_free(1, 2, 2)
        timeline.add(text(5, 6, layer=2))
        assert not timeline.is_interval_free(5.5, 7, 2)

    def test_segments_on_layer_are_time_ordered(self):
        timeline = Timeline()
        later = video(10, 20)
        earlier = text(0, 5, layer=0)
        timeline.add(later)
        timeline.add(earlier)
        timeline.add(video(0, 5, layer=3))

        assert [s.id for s in timeline.segments_on_layer(0)] == [earlier.id, later.id]
        assert timeline.max_layer() == 3
        assert timeline.last_end_on_layer(0) == 20
        assert timeline.last_end_on_layer(7) == 0

    def test_duration_and_visual_content(self):
        timeline = Timeline()
        assert timeline.duration() == 0
        assert not timeline.has_visual_content()

        timeline.add(AudioSegment(source_path="a.mp3", timeline_start_time=0, timeline_end_time=30, source_end_time=30))
        assert timeline.duration() == 30
        assert not timeline.has_visual_content()

        timeline.add(ImageSegment(source_path="a.png", width=10, height=10, timeline_start_time=0, timeline_end_time=5))
        assert timeline.has_visual_content()

    def test_replace_keeps_position_in_collection(self):
        timeline = Timeline()
        first, middle, last = video(0, 1), video(1, 2), video(2, 3)
        for segment in (first, middle, last):
            timeline.add(segment)
        a, b = video(1, 1.5), video(1.5, 2)

        timeline.replace(middle.id, a, b)

        assert [s.id for s in timeline.video_segments] == [first.id, a.id, b.id, last.id]

    def test_remove_and_clear(self):
        timeline = Timeline()
        segment = video(0, 1)
        timeline.add(segment)
        timeline.add(text(0, 1))

        assert timeline.remove(segment.id) is segment
        assert timeline.remove(segment.id) is None
        assert timeline.clear() == 1
        assert timeline.all_segments() == []

    def test_json_document_keeps_filters_and_keyframes(self):
        timeline = Timeline(canvas_width=1280, canvas_height=720)
        segment = text(0, 5)
        segment.add_keyframe("opacity", 1.0, 0.5)
        timeline.add(segment)

        restored = Timeline.model_validate_json(timeline.model_dump_json())

        assert restored.canvas_width == 1280
        assert restored.text_segments[0].keyframes["opacity"][0].value == 0.5
        assert restored.text_segments[0].id == segment.id
