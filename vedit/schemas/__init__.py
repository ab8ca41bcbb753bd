from vedit.schemas.envelope import ErrorInfo, ErrorLocation, SuggestedAction
from vedit.schemas.timeline import (
    AudioSegment,
    FilterInstance,
    ImageSegment,
    Keyframe,
    Segment,
    TextSegment,
    Timeline,
    VideoSegment,
)

__all__ = [
    "Timeline",
    "Segment",
    "VideoSegment",
    "AudioSegment",
    "ImageSegment",
    "TextSegment",
    "FilterInstance",
    "Keyframe",
    "ErrorInfo",
    "ErrorLocation",
    "SuggestedAction",
]
