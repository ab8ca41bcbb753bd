"""Tests for segment mutations through the TimelineEditor."""

import random

import pytest

from vedit.exceptions import (
    FilterNotFoundError,
    InvalidFieldValueError,
    InvalidFilterParameterError,
    InvalidSplitPointError,
    InvalidTimeRangeError,
    MissingSourceAssetError,
    SegmentNotFoundError,
    SegmentsNotAdjacentOrSameSourceError,
    SegmentsNotMergeableError,
    TimelineOverlapError,
    UnknownFilterKindError,
)


def timeline_of(editor, session_id):
    return editor.get_timeline(session_id)


class TestAdd:
    """Adding segments of each kind."""

    def test_video_defaults_to_full_source(self, editor, session_id):
        segment_id = editor.add_video(session_id, "clip.mp4")
        segment = editor.get_segment(session_id, segment_id)

        assert (segment.timeline_start_time, segment.timeline_end_time) == (0, 10)
        assert (segment.source_start_time, segment.source_end_time) == (0, 10)
        assert segment.source_duration == 10
        assert segment.has_audio
        assert (segment.position_x, segment.position_y, segment.scale) == (0, 0, 1.0)
        assert segment.opacity is None

    def test_appends_after_last_segment_on_layer(self, editor, session_id):
        editor.add_video(session_id, "clip.mp4")
        second = editor.add_video(session_id, "clip.mp4", source_start=2, source_end=8)
        other_layer = editor.add_video(session_id, "clip.mp4", layer=1)

        segment = editor.get_segment(session_id, second)
        assert (segment.timeline_start_time, segment.timeline_end_time) == (10, 16)
        assert editor.get_segment(session_id, other_layer).timeline_start_time == 0

    def test_overlap_is_rejected(self, editor, session_id):
        editor.add_video(session_id, "clip.mp4")

        with pytest.raises(TimelineOverlapError) as exc_info:
            editor.add_video(session_id, "clip.mp4", timeline_start=5)

        assert exc_info.value.layer == 0
        assert len(timeline_of(editor, session_id).video_segments) == 1

    def test_missing_asset(self, editor, session_id, assets):
        assets.missing.add("gone.mp4")

        with pytest.raises(MissingSourceAssetError):
            editor.add_video(session_id, "gone.mp4")
        assert timeline_of(editor, session_id).all_segments() == []

    def test_source_window_beyond_source(self, editor, session_id):
        with pytest.raises(InvalidTimeRangeError):
            editor.add_video(session_id, "clip.mp4", source_start=5, source_end=12)

    def test_audio(self, editor, session_id):
        segment = editor.get_segment(session_id, editor.add_audio(session_id, "music.mp3", volume=0.5))

        assert segment.layer == -1
        assert segment.volume == 0.5

        with pytest.raises(InvalidFieldValueError):
            editor.add_audio(session_id, "music.mp3", layer=0)
        with pytest.raises(InvalidFieldValueError):
            editor.add_audio(session_id, "music.mp3", layer=-2, volume=1.5)

    def test_image_with_filters(self, editor, session_id):
        segment_id = editor.add_image(session_id, "logo.png", filters={"brightness": 0.2, "blur": 3})
        segment = editor.get_segment(session_id, segment_id)

        assert (segment.width, segment.height) == (640, 360)
        assert (segment.timeline_start_time, segment.timeline_end_time) == (0, 5)
        assert segment.filter_chain() == ["eq=brightness=0.2", "gblur=sigma=3"]

    def test_image_with_bad_filter_adds_nothing(self, editor, session_id):
        with pytest.raises(InvalidFilterParameterError):
            editor.add_image(session_id, "logo.png", filters={"brightness": 5})
        with pytest.raises(UnknownFilterKindError):
            editor.add_image(session_id, "logo.png", filters={"sparkle": 1})

        assert timeline_of(editor, session_id).image_segments == []

    def test_text_style(self, editor, session_id):
        segment_id = editor.add_text(session_id, "Hello", layer=3, font_color="#ff0000", font_size=48)
        segment = editor.get_segment(session_id, segment_id)

        assert segment.font_color == "#FF0000"
        assert segment.font_size == 48
        assert segment.duration == 5

    def test_text_rejects_unknown_style(self, editor, session_id):
        with pytest.raises(InvalidFieldValueError) as exc_info:
            editor.add_text(session_id, "Hello", sparkle=True)
        assert exc_info.value.field == "sparkle"

    def test_random_inserts_never_overlap(self, editor, session_id):
        rng = random.Random(42)
        for _ in range(200):
            start = round(rng.uniform(0, 60), 2)
            end = start + round(rng.uniform(0.5, 8), 2)
            try:
                editor.add_text(session_id, "x", layer=rng.randint(0, 2), timeline_start=start, timeline_end=end)
            except TimelineOverlapError:
                pass

        timeline = timeline_of(editor, session_id)
        for layer in range(3):
            segments = timeline.segments_on_layer(layer)
            for earlier, later in zip(segments, segments[1:]):
                assert earlier.timeline_end_time <= later.timeline_start_time


class TestSplit:
    """Splitting and moving the split point."""

    def test_split_maps_source_proportionally(self, editor, session_id):
        segment_id = editor.add_video(session_id, "clip.mp4")
        editor.apply_filter(session_id, segment_id, "brightness", 0.1)

        first_id, second_id = editor.split_segment(session_id, segment_id, 4)
        first = editor.get_segment(session_id, first_id)
        second = editor.get_segment(session_id, second_id)

        assert (first.timeline_start_time, first.timeline_end_time) == (0, 4)
        assert (first.source_start_time, first.source_end_time) == (0, 4)
        assert (second.timeline_start_time, second.timeline_end_time) == (4, 10)
        assert (second.source_start_time, second.source_end_time) == (4, 10)
        assert first.filter_chain() == second.filter_chain() == ["eq=brightness=0.1"]
        assert set(first.filters).isdisjoint(second.filters)
        with pytest.raises(SegmentNotFoundError):
            editor.get_segment(session_id, segment_id)

    def test_split_with_source_offset(self, editor, session_id, probe):
        probe.durations["long.mp4"] = 30.0
        segment_id = editor.add_video(session_id, "long.mp4", source_start=2, source_end=12)

        first_id, second_id = editor.split_segment(session_id, segment_id, 5)

        assert editor.get_segment(session_id, first_id).source_end_time == pytest.approx(7)
        assert editor.get_segment(session_id, second_id).source_start_time == pytest.approx(7)

    def test_split_retimed_segment(self, editor, session_id):
        segment_id = editor.add_video(session_id, "clip.mp4", timeline_start=0, timeline_end=20)

        first_id, _ = editor.split_segment(session_id, segment_id, 10)

        assert editor.get_segment(session_id, first_id).source_end_time == pytest.approx(5)

    @pytest.mark.parametrize("split_time", [0.05, 9.95, 0, 10, 12])
    def test_split_too_close_to_edge(self, editor, session_id, split_time):
        segment_id = editor.add_video(session_id, "clip.mp4")

        with pytest.raises(InvalidSplitPointError):
            editor.split_segment(session_id, segment_id, split_time)
        assert editor.get_segment(session_id, segment_id).duration == 10

    @pytest.mark.parametrize("split_time", [0.1, 9.9])
    def test_split_at_margin_is_allowed(self, editor, session_id, split_time):
        segment_id = editor.add_video(session_id, "clip.mp4")
        first_id, second_id = editor.split_segment(session_id, segment_id, split_time)

        assert editor.get_segment(session_id, first_id).timeline_end_time == split_time
        assert editor.get_segment(session_id, second_id).timeline_start_time == split_time

    def test_split_text_divides_keyframes(self, editor, session_id):
        segment_id = editor.add_text(session_id, "Hello", timeline_start=0, timeline_end=10)
        editor.add_keyframe(session_id, segment_id, "opacity", 1.0, 0.2)
        editor.add_keyframe(session_id, segment_id, "opacity", 6.0, 0.8)

        first_id, second_id = editor.split_segment(session_id, segment_id, 4)
        first = editor.get_segment(session_id, first_id)
        second = editor.get_segment(session_id, second_id)

        assert [(kf.time, kf.value) for kf in first.keyframes["opacity"]] == [(1.0, 0.2)]
        assert [(kf.time, kf.value) for kf in second.keyframes["opacity"]] == [(2.0, 0.8)]
        assert first.text == second.text == "Hello"

    def test_update_split_point(self, editor, session_id):
        segment_id = editor.add_video(session_id, "clip.mp4")
        first_id, second_id = editor.split_segment(session_id, segment_id, 4)

        editor.update_split_point(session_id, second_id, first_id, 6)

        first = editor.get_segment(session_id, first_id)
        second = editor.get_segment(session_id, second_id)
        assert first.timeline_end_time == 6
        assert first.source_end_time == pytest.approx(6)
        assert second.timeline_start_time == 6
        assert second.source_start_time == pytest.approx(6)
        assert second.timeline_end_time == 10

    def test_update_split_point_keeps_text_animation_in_place(self, editor, session_id):
        segment_id = editor.add_text(session_id, "Hello", timeline_start=0, timeline_end=10)
        editor.add_keyframe(session_id, segment_id, "opacity", 1.0, 0.2)
        editor.add_keyframe(session_id, segment_id, "opacity", 6.0, 0.8)
        editor.add_keyframe(session_id, segment_id, "opacity", 9.0, 1.0)
        first_id, second_id = editor.split_segment(session_id, segment_id, 4)

        editor.update_split_point(session_id, first_id, second_id, 3)
        second = editor.get_segment(session_id, second_id)
        assert [(kf.time, kf.value) for kf in second.keyframes["opacity"]] == [(3.0, 0.8), (6.0, 1.0)]

        editor.update_split_point(session_id, first_id, second_id, 7)
        first = editor.get_segment(session_id, first_id)
        second = editor.get_segment(session_id, second_id)
        assert [(kf.time, kf.value) for kf in first.keyframes["opacity"]] == [(1.0, 0.2)]
        assert [(kf.time, kf.value) for kf in second.keyframes["opacity"]] == [(2.0, 1.0)]

    def test_update_split_point_rejects_unrelated_pair(self, editor, session_id):
        a = editor.add_video(session_id, "clip.mp4")
        b = editor.add_video(session_id, "other.mp4")

        with pytest.raises(SegmentsNotAdjacentOrSameSourceError):
            editor.update_split_point(session_id, a, b, 10)

    def test_update_split_point_respects_margin(self, editor, session_id):
        first_id, second_id = editor.split_segment(session_id, editor.add_video(session_id, "clip.mp4"), 4)

        with pytest.raises(InvalidSplitPointError):
            editor.update_split_point(session_id, first_id, second_id, 9.95)


class TestMerge:
    """Merging split pieces back together."""

    def test_split_then_merge_restores_segment(self, editor, session_id):
        original_id = editor.add_video(session_id, "clip.mp4")
        first_id, second_id = editor.split_segment(session_id, original_id, 4)

        merged_id = editor.merge_segments(session_id, second_id, first_id)

        timeline = timeline_of(editor, session_id)
        assert [s.id for s in timeline.video_segments] == [merged_id]
        merged = timeline.video_segments[0]
        assert merged_id not in (original_id, first_id, second_id)
        assert (merged.timeline_start_time, merged.timeline_end_time) == (0, 10)
        assert (merged.source_start_time, merged.source_end_time) == (0, 10)

    def test_merge_requires_contiguous_source(self, editor, session_id):
        first = editor.add_video(session_id, "clip.mp4", source_end=5)
        second = editor.add_video(session_id, "clip.mp4", source_start=6)

        with pytest.raises(SegmentsNotMergeableError):
            editor.merge_segments(session_id, first, second)
        assert len(timeline_of(editor, session_id).video_segments) == 2

    def test_merge_requires_same_layer(self, editor, session_id):
        first_id, second_id = editor.split_segment(session_id, editor.add_video(session_id, "clip.mp4"), 5)
        editor.update_video_segment(session_id, second_id, layer=1)

        with pytest.raises(SegmentsNotMergeableError):
            editor.merge_segments(session_id, first_id, second_id)

    def test_merge_falls_back_to_later_piece(self, editor, session_id):
        first_id, second_id = editor.split_segment(session_id, editor.add_video(session_id, "clip.mp4"), 5)
        editor.update_video_segment(session_id, second_id, opacity=0.5)

        merged = editor.get_segment(session_id, editor.merge_segments(session_id, first_id, second_id))

        assert merged.opacity == 0.5

    def test_merge_text_rebases_keyframes(self, editor, session_id):
        segment_id = editor.add_text(session_id, "Hello", timeline_start=0, timeline_end=10)
        editor.add_keyframe(session_id, segment_id, "scale", 1.0, 1.0)
        editor.add_keyframe(session_id, segment_id, "scale", 6.0, 2.0)
        first_id, second_id = editor.split_segment(session_id, segment_id, 4)

        merged = editor.get_segment(session_id, editor.merge_segments(session_id, first_id, second_id))

        assert [(kf.time, kf.value) for kf in merged.keyframes["scale"]] == [(1.0, 1.0), (6.0, 2.0)]


class TestUpdate:
    """Field updates with re-validation."""

    def test_moving_start_keeps_duration(self, editor, session_id):
        segment_id = editor.add_video(session_id, "clip.mp4")

        updated = editor.update_video_segment(session_id, segment_id, timeline_start_time=20)

        assert (updated.timeline_start_time, updated.timeline_end_time) == (20, 30)
        assert (updated.source_start_time, updated.source_end_time) == (0, 10)

    def test_shortening_trims_source(self, editor, session_id):
        segment_id = editor.add_video(session_id, "clip.mp4")

        updated = editor.update_video_segment(session_id, segment_id, timeline_end_time=6)

        assert updated.source_end_time == pytest.approx(6)

    def test_retime_beyond_source(self, editor, session_id):
        segment_id = editor.add_video(session_id, "clip.mp4")

        with pytest.raises(InvalidTimeRangeError):
            editor.update_video_segment(session_id, segment_id, timeline_end_time=15)
        assert editor.get_segment(session_id, segment_id).timeline_end_time == 10

    def test_move_into_occupied_range(self, editor, session_id):
        first = editor.add_video(session_id, "clip.mp4")
        editor.add_video(session_id, "clip.mp4")

        with pytest.raises(TimelineOverlapError):
            editor.update_video_segment(session_id, first, timeline_start_time=15)
        assert editor.get_segment(session_id, first).timeline_start_time == 0

    def test_invalid_value(self, editor, session_id):
        segment_id = editor.add_video(session_id, "clip.mp4")

        with pytest.raises(InvalidFieldValueError) as exc_info:
            editor.update_video_segment(session_id, segment_id, opacity=2)
        assert exc_info.value.field == "opacity"
        assert editor.get_segment(session_id, segment_id).opacity is None

    def test_end_before_start(self, editor, session_id):
        segment_id = editor.add_text(session_id, "Hello", timeline_start=2, timeline_end=5)

        with pytest.raises(InvalidTimeRangeError):
            editor.update_text_segment(session_id, segment_id, timeline_end_time=1)

    @pytest.mark.parametrize("field", ["id", "filters", "sparkle"])
    def test_unknown_or_managed_field(self, editor, session_id, field):
        segment_id = editor.add_text(session_id, "Hello")

        with pytest.raises(InvalidFieldValueError):
            editor.update_text_segment(session_id, segment_id, **{field: "x"})

    def test_wrong_kind(self, editor, session_id):
        segment_id = editor.add_text(session_id, "Hello")

        with pytest.raises(SegmentNotFoundError):
            editor.update_video_segment(session_id, segment_id, opacity=0.5)

    def test_text_and_audio_updates(self, editor, session_id):
        text_id = editor.add_text(session_id, "Hello")
        audio_id = editor.add_audio(session_id, "music.mp3")
        image_id = editor.add_image(session_id, "logo.png")

        assert editor.update_text_segment(session_id, text_id, text="Bye", alignment="center").text == "Bye"
        assert editor.update_audio_segment(session_id, audio_id, volume=0.25).volume == 0.25
        assert editor.update_image_segment(session_id, image_id, custom_width=320).custom_width == 320


class TestRemove:
    """Removal and clearing."""

    def test_remove(self, editor, session_id):
        segment_id = editor.add_text(session_id, "Hello")
        editor.remove_segment(session_id, segment_id)

        with pytest.raises(SegmentNotFoundError):
            editor.remove_segment(session_id, segment_id)

    def test_clear(self, editor, session_id):
        editor.add_text(session_id, "Hello")
        editor.add_video(session_id, "clip.mp4")
        editor.add_audio(session_id, "music.mp3")

        assert editor.clear_timeline(session_id) == 3
        assert timeline_of(editor, session_id).all_segments() == []


class TestFilters:
    """Filter chains on video and image segments."""

    def test_same_filter_twice(self, editor, session_id):
        segment_id = editor.add_video(session_id, "clip.mp4")
        a = editor.apply_filter(session_id, segment_id, "brightness", 0.1)
        b = editor.apply_filter(session_id, segment_id, "brightness", 0.3)

        segment = editor.get_segment(session_id, segment_id)
        assert a != b
        assert segment.filter_chain() == ["eq=brightness=0.1", "eq=brightness=0.3"]

    def test_text_segments_take_no_filters(self, editor, session_id):
        segment_id = editor.add_text(session_id, "Hello")

        with pytest.raises(SegmentNotFoundError):
            editor.apply_filter(session_id, segment_id, "blur", 2)

    def test_update_filter_mints_new_id(self, editor, session_id):
        segment_id = editor.add_image(session_id, "logo.png")
        filter_id = editor.apply_filter(session_id, segment_id, "blur", 2)

        new_id = editor.update_filter(session_id, segment_id, filter_id, 5)

        segment = editor.get_segment(session_id, segment_id)
        assert new_id != filter_id
        assert list(segment.filters) == [new_id]
        assert segment.filters[new_id].expression == "gblur=sigma=5"

    def test_update_unknown_filter(self, editor, session_id):
        segment_id = editor.add_image(session_id, "logo.png")

        with pytest.raises(FilterNotFoundError):
            editor.update_filter(session_id, segment_id, "missing", 5)

    def test_invalid_update_keeps_old_filter(self, editor, session_id):
        segment_id = editor.add_image(session_id, "logo.png")
        filter_id = editor.apply_filter(session_id, segment_id, "blur", 2)

        with pytest.raises(InvalidFilterParameterError):
            editor.update_filter(session_id, segment_id, filter_id, -1)
        assert list(editor.get_segment(session_id, segment_id).filters) == [filter_id]

    def test_remove_filters(self, editor, session_id):
        segment_id = editor.add_video(session_id, "clip.mp4")
        a = editor.apply_filter(session_id, segment_id, "grayscale")
        b = editor.apply_filter(session_id, segment_id, "invert")
        c = editor.apply_filter(session_id, segment_id, "sepia")

        editor.remove_filter(session_id, segment_id, a)
        with pytest.raises(FilterNotFoundError):
            editor.remove_filter(session_id, segment_id, a)

        assert editor.remove_all_filters(session_id, segment_id) == [b, c]
        assert editor.get_segment(session_id, segment_id).filters == {}


class TestKeyframes:
    """Text keyframes through the editor."""

    def test_add_within_segment(self, editor, session_id):
        segment_id = editor.add_text(session_id, "Hello")

        keyframe = editor.add_keyframe(session_id, segment_id, "opacity", 2.5, 0.5)

        assert (keyframe.time, keyframe.value) == (2.5, 0.5)
        with pytest.raises(InvalidFieldValueError):
            editor.add_keyframe(session_id, segment_id, "opacity", 6.0, 0.5)
        with pytest.raises(InvalidFieldValueError):
            editor.add_keyframe(session_id, segment_id, "rotation", 1.0, 0.5)

    def test_only_text_segments(self, editor, session_id):
        segment_id = editor.add_video(session_id, "clip.mp4")

        with pytest.raises(SegmentNotFoundError):
            editor.add_keyframe(session_id, segment_id, "opacity", 1.0, 0.5)

    def test_update_and_remove(self, editor, session_id):
        segment_id = editor.add_text(session_id, "Hello")
        editor.add_keyframe(session_id, segment_id, "position_x", 1.0, 100)

        editor.update_keyframe(session_id, segment_id, "position_x", 1.0, 200)
        assert editor.get_segment(session_id, segment_id).keyframes["position_x"][0].value == 200

        editor.remove_keyframe(session_id, segment_id, "position_x", 1.0)
        with pytest.raises(InvalidFieldValueError):
            editor.update_keyframe(session_id, segment_id, "position_x", 1.0, 300)
        with pytest.raises(InvalidFieldValueError):
            editor.remove_keyframe(session_id, segment_id, "position_x", 1.0)


class TestQueries:
    def test_get_segment_returns_a_copy(self, editor, session_id):
        segment_id = editor.add_text(session_id, "Hello")

        copy = editor.get_segment(session_id, segment_id)
        copy.text = "changed"

        assert editor.get_segment(session_id, segment_id).text == "Hello"
