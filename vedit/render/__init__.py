from vedit.render.compositor import CompositionCompiler, EngineCommand, OutputProfile
from vedit.render.engine import FFmpegRunner
from vedit.render.filter_catalog import FilterKind, apply_filter, compile_filter, list_filters
from vedit.render.pipeline import RenderPipeline
from vedit.render.planner import RenderInterval, collect_boundaries, plan_render

__all__ = [
    "RenderPipeline",
    "CompositionCompiler",
    "EngineCommand",
    "OutputProfile",
    "FFmpegRunner",
    "FilterKind",
    "apply_filter",
    "compile_filter",
    "list_filters",
    "RenderInterval",
    "collect_boundaries",
    "plan_render",
]
