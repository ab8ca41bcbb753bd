"""Custom exceptions for the vedit core.

Every error carries a machine-readable code and an optional location so a
front end (HTTP, CLI, worker) can turn it into a structured response without
knowing the concrete exception type.
"""

from typing import Any

from vedit.constants.error_codes import get_error_spec
from vedit.schemas.envelope import ErrorInfo, ErrorLocation, SuggestedAction


class VeditError(Exception):
    """Base exception for all vedit errors."""

    code: str = "INTERNAL_ERROR"
    status_code: int = 500
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        status_code: int | None = None,
        location: ErrorLocation | None = None,
        suggested_fix: str | None = None,
        details: str | None = None,
    ):
        self.message = message or self.__class__.message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.location = location
        self.suggested_fix = suggested_fix
        self.details = details
        super().__init__(self.message)

    def to_error_info(self) -> ErrorInfo:
        """Convert exception to ErrorInfo."""
        spec = get_error_spec(self.code)

        suggested_actions: list[SuggestedAction] = []
        if "suggested_action" in spec:
            suggested_actions.append(
                SuggestedAction(
                    action=spec["suggested_action"],
                    parameters=spec.get("parameters", {}),
                )
            )

        return ErrorInfo(
            code=self.code,
            message=self.message,
            location=self.location,
            retryable=spec.get("retryable", False),
            suggested_fix=self.suggested_fix or spec.get("suggested_fix"),
            suggested_actions=suggested_actions,
            details=self.details,
        )


# =============================================================================
# Resource Not Found Errors (404)
# =============================================================================


class ResourceNotFoundError(VeditError):
    """Base class for resource not found errors."""

    code = "NOT_FOUND"
    status_code = 404


class SessionNotFoundError(ResourceNotFoundError):
    """Edit session not found (never created, closed, or reclaimed)."""

    code = "SESSION_NOT_FOUND"
    message = "No active edit session found"

    def __init__(self, session_id: str | None = None):
        message = f"No active edit session found: {session_id}" if session_id else self.message
        location = ErrorLocation(session_id=session_id) if session_id else None
        super().__init__(message, location=location)


class ProjectNotFoundError(ResourceNotFoundError):
    """Project not found."""

    code = "PROJECT_NOT_FOUND"
    message = "Project not found"

    def __init__(self, project_id: str | None = None):
        message = f"Project not found: {project_id}" if project_id else self.message
        super().__init__(message)


class SegmentNotFoundError(ResourceNotFoundError):
    """Segment not found."""

    code = "SEGMENT_NOT_FOUND"
    message = "Segment not found"

    def __init__(self, segment_id: str | None = None):
        message = f"No segment found with ID: {segment_id}" if segment_id else self.message
        location = ErrorLocation(segment_id=segment_id) if segment_id else None
        super().__init__(message, location=location)


class FilterNotFoundError(ResourceNotFoundError):
    """Filter instance not found on a segment."""

    code = "FILTER_NOT_FOUND"
    message = "Filter not found"

    def __init__(self, filter_id: str | None = None, segment_id: str | None = None):
        message = (
            f"Filter not found with ID: {filter_id} for segment: {segment_id}"
            if filter_id
            else self.message
        )
        location = ErrorLocation(segment_id=segment_id, field="filters") if segment_id else None
        super().__init__(message, location=location)


class MissingSourceAssetError(ResourceNotFoundError):
    """A segment's source file cannot be resolved to a readable file."""

    code = "MISSING_SOURCE_ASSET"
    message = "Source asset not found"

    def __init__(
        self,
        source_path: str | None = None,
        *,
        segment_id: str | None = None,
        interval_index: int | None = None,
    ):
        message = f"Source asset not found: {source_path}" if source_path else self.message
        location = None
        if segment_id or interval_index is not None:
            location = ErrorLocation(segment_id=segment_id, interval_index=interval_index)
        super().__init__(message, location=location)
        self.source_path = source_path


# =============================================================================
# Validation Errors (400)
# =============================================================================


class ValidationError(VeditError):
    """Base class for validation errors."""

    code = "VALIDATION_ERROR"
    status_code = 400


class InvalidTimeRangeError(ValidationError):
    """Invalid time range specified."""

    code = "INVALID_TIME_RANGE"
    message = "Invalid time range"

    def __init__(
        self,
        message: str | None = None,
        *,
        start: float | None = None,
        end: float | None = None,
        field: str | None = None,
    ):
        msg = message or self.message
        if message is None and start is not None and end is not None:
            msg = f"Invalid time range: {start}s to {end}s"
        location = ErrorLocation(field=field) if field else None
        super().__init__(msg, location=location)


class InvalidFieldValueError(ValidationError):
    """Field value is out of range or malformed."""

    code = "INVALID_FIELD_VALUE"
    message = "Invalid field value"

    def __init__(self, field: str, value: Any = None, reason: str | None = None):
        msg = f"Invalid value for {field}: {value!r}"
        if reason:
            msg = f"{msg} ({reason})"
        super().__init__(msg, location=ErrorLocation(field=field))
        self.field = field
        self.value = value


class InvalidSplitPointError(ValidationError):
    """Split time too close to a segment edge (or outside it)."""

    code = "INVALID_SPLIT_POINT"
    message = "Invalid split point"

    def __init__(
        self,
        split_time: float,
        *,
        start: float,
        end: float,
        margin: float,
        segment_id: str | None = None,
    ):
        msg = (
            f"Split time {split_time}s must lie within [{start + margin:.3f}s, {end - margin:.3f}s]"
        )
        location = ErrorLocation(segment_id=segment_id, field="split_time")
        super().__init__(msg, location=location)
        self.split_time = split_time


class SegmentsNotAdjacentOrSameSourceError(ValidationError):
    """Two segments are not a contiguous pair cut from the same source."""

    code = "SEGMENTS_NOT_ADJACENT_OR_SAME_SOURCE"
    message = "Segments are not adjacent or do not share a source"

    def __init__(self, first_id: str, second_id: str, reason: str | None = None):
        msg = f"Segments {first_id} and {second_id} are not an adjacent same-source pair"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg, location=ErrorLocation(segment_id=first_id))


class SegmentsNotMergeableError(ValidationError):
    """Two segments cannot be merged back into one."""

    code = "SEGMENTS_NOT_MERGEABLE"
    message = "Segments cannot be merged"

    def __init__(self, first_id: str, second_id: str, reason: str | None = None):
        msg = f"Segments {first_id} and {second_id} cannot be merged"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg, location=ErrorLocation(segment_id=first_id))


class UnknownFilterKindError(ValidationError):
    """Filter name is not registered in the catalog."""

    code = "UNKNOWN_FILTER_KIND"
    message = "Unknown filter"

    def __init__(self, name: str):
        super().__init__(f"Unknown filter: {name}", location=ErrorLocation(field="filter"))
        self.name = name


class InvalidFilterParameterError(ValidationError):
    """Filter parameter failed to parse or validate."""

    code = "INVALID_FILTER_PARAMETER"
    message = "Invalid filter parameter"

    def __init__(self, filter_name: str, parameter: str, value: Any, reason: str | None = None):
        msg = f"Invalid parameter '{parameter}' for filter {filter_name}: {value!r}"
        if reason:
            msg = f"{msg} ({reason})"
        super().__init__(msg, location=ErrorLocation(field=parameter))
        self.filter_name = filter_name
        self.parameter = parameter
        self.value = value


class EmptyTimelineExportError(ValidationError):
    """Export requested for a timeline with nothing to draw."""

    code = "EMPTY_TIMELINE_EXPORT"
    message = "Timeline has no video, image or text segments to export"


# =============================================================================
# Conflict Errors (409)
# =============================================================================


class ConflictError(VeditError):
    """Base class for conflict errors."""

    code = "CONFLICT"
    status_code = 409


class TimelineOverlapError(ConflictError):
    """Segment would overlap another segment on the same layer."""

    code = "TIMELINE_OVERLAP"
    message = "Timeline position overlaps with an existing segment"

    def __init__(
        self,
        layer: int,
        start: float,
        end: float,
        *,
        segment_id: str | None = None,
    ):
        msg = (
            f"Timeline position [{start}s, {end}s) overlaps with an existing segment in layer {layer}"
        )
        super().__init__(msg, location=ErrorLocation(segment_id=segment_id, layer=layer))
        self.layer = layer


# =============================================================================
# Render Errors (500)
# =============================================================================


class RenderError(VeditError):
    """Base class for render failures."""

    code = "INTERNAL_ERROR"
    status_code = 500


class RenderTimeoutError(RenderError):
    """FFmpeg exceeded its wall-clock budget and was killed."""

    code = "RENDER_TIMEOUT"
    message = "FFmpeg process timed out"

    def __init__(self, timeout_s: float, output: str = ""):
        super().__init__(
            f"FFmpeg process timed out after {timeout_s:g} seconds",
            details=output or None,
        )
        self.timeout_s = timeout_s
        self.output = output


class RenderEngineFailureError(RenderError):
    """FFmpeg exited with a non-zero status."""

    code = "RENDER_ENGINE_FAILURE"
    message = "FFmpeg process failed"

    def __init__(self, returncode: int, output: str = ""):
        super().__init__(
            f"FFmpeg process failed with exit code: {returncode}",
            details=output or None,
        )
        self.returncode = returncode
        self.output = output
