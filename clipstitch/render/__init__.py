from clipstitch.render.assembler import AssemblyPipeline, AssemblyResult, ClipSource, OutputConfig, TransitionConfig
from clipstitch.render.filter_graph import FilterGraph, emit_assembly_graph
from clipstitch.render.timeline import Timeline, TimelineEntry, compose_timeline

__all__ = [
    "AssemblyPipeline",
    "AssemblyResult",
    "ClipSource",
    "OutputConfig",
    "TransitionConfig",
    "FilterGraph",
    "emit_assembly_graph",
    "Timeline",
    "TimelineEntry",
    "compose_timeline",
]
