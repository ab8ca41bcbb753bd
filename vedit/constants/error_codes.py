"""Error codes dictionary.

Single source of truth for every error code, its retryability and the
suggested recovery action. Used by ``VeditError.to_error_info`` to build
machine-readable error payloads for whatever surface sits in front of the core.
"""

from typing import Any, TypedDict


class ErrorCodeSpec(TypedDict, total=False):
    """Specification for an error code."""

    retryable: bool
    suggested_action: str
    suggested_fix: str
    parameters: dict[str, Any]


ERROR_CODES: dict[str, ErrorCodeSpec] = {
    # ==========================================================================
    # Resource errors
    # ==========================================================================
    "SESSION_NOT_FOUND": {
        "retryable": False,
        "suggested_action": "start_session",
        "suggested_fix": "The edit session expired or was closed; start a new session",
    },
    "PROJECT_NOT_FOUND": {
        "retryable": False,
    },
    "SEGMENT_NOT_FOUND": {
        "retryable": True,
        "suggested_action": "refresh_timeline",
    },
    "FILTER_NOT_FOUND": {
        "retryable": True,
        "suggested_action": "refresh_timeline",
    },
    "MISSING_SOURCE_ASSET": {
        "retryable": False,
        "suggested_fix": "Upload the source file again or remove the segment",
    },
    # ==========================================================================
    # Validation errors (not retryable, fix input)
    # ==========================================================================
    "INVALID_SPLIT_POINT": {
        "retryable": False,
        "suggested_fix": "Pick a split time at least 0.1s away from both segment edges",
    },
    "SEGMENTS_NOT_ADJACENT_OR_SAME_SOURCE": {
        "retryable": False,
    },
    "SEGMENTS_NOT_MERGEABLE": {
        "retryable": False,
    },
    "UNKNOWN_FILTER_KIND": {
        "retryable": False,
        "suggested_action": "list_filters",
    },
    "INVALID_FILTER_PARAMETER": {
        "retryable": False,
    },
    "INVALID_FIELD_VALUE": {
        "retryable": False,
    },
    "INVALID_TIME_RANGE": {
        "retryable": False,
    },
    "EMPTY_TIMELINE_EXPORT": {
        "retryable": False,
        "suggested_fix": "Add at least one video, image or text segment before exporting",
    },
    # ==========================================================================
    # Conflict errors
    # ==========================================================================
    "TIMELINE_OVERLAP": {
        "retryable": False,
        "suggested_action": "choose_free_range",
        "suggested_fix": "Move the segment to a free time range or another layer",
    },
    # ==========================================================================
    # Render errors (surfaced, never retried implicitly)
    # ==========================================================================
    "RENDER_TIMEOUT": {
        "retryable": True,
        "suggested_action": "export_again",
    },
    "RENDER_ENGINE_FAILURE": {
        "retryable": True,
        "suggested_action": "export_again",
    },
    "INTERNAL_ERROR": {
        "retryable": True,
    },
    "VALIDATION_ERROR": {
        "retryable": False,
    },
    "NOT_FOUND": {
        "retryable": False,
    },
    "CONFLICT": {
        "retryable": False,
    },
}


def get_error_spec(code: str) -> ErrorCodeSpec:
    """Get error specification by code.

    Unknown codes fall back to a non-retryable spec.
    """
    return ERROR_CODES.get(code, {"retryable": False})
