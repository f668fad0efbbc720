"""
FFmpeg filter graph builder for crossfade assembly.

This module handles:
- A typed description of a filter graph (filters, chains, stream labels)
- Serialization to ``-filter_complex`` syntax, with escaping, in one place
- Emitting the assembly graph: per-clip normalization, a video crossfade
  chain and, when every clip has audio, a delayed/faded/padded audio mix
"""

import re
from dataclasses import dataclass, field
from typing import Any

from clipstitch.render.timeline import Timeline

# Overlaps shorter than this are treated as hard cuts.
MIN_CROSSFADE_S = 0.001

_LABEL_RE = re.compile(r"^[A-Za-z0-9_:.]+$")
_OPTION_SPECIALS = ("\\", "'", ":")
_GRAPH_SPECIALS = ("\\", "'", "[", "]", ",", ";")


def _escape(value: str, specials: tuple[str, ...]) -> str:
    # Backslash must be handled first so inserted escapes are not doubled.
    for ch in specials:
        value = value.replace(ch, "\\" + ch)
    return value


def escape_filter_value(value: Any) -> str:
    """Escape an option value for embedding in a filter graph.

    FFmpeg parses option values twice: once when splitting the graph into
    filters (``[],;``) and once when splitting a filter's options (``:``).
    Both levels are applied here.
    """
    text = format_number(value) if isinstance(value, (int, float)) and not isinstance(value, bool) else str(value)
    return _escape(_escape(text, _OPTION_SPECIALS), _GRAPH_SPECIALS)


def format_number(value: float | int) -> str:
    """Format a number without float noise (``7.0`` -> ``7``, ``0.1+0.2`` -> ``0.3``)."""
    if isinstance(value, int):
        return str(value)
    text = f"{value:.6f}".rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


def _check_label(label: str) -> str:
    if not _LABEL_RE.match(label):
        raise ValueError(f"Invalid stream label: {label!r}")
    return label


@dataclass
class Filter:
    """A single filter node: ``name=pos1:pos2:key=value``."""

    name: str
    args: list[Any] = field(default_factory=list)
    kwargs: dict[str, Any] = field(default_factory=dict)

    def serialize(self) -> str:
        parts = [escape_filter_value(a) for a in self.args]
        parts.extend(f"{k}={escape_filter_value(v)}" for k, v in self.kwargs.items())
        if not parts:
            return self.name
        return f"{self.name}=" + ":".join(parts)


@dataclass
class FilterChain:
    """A linear chain of filters between labeled input and output pads."""

    inputs: list[str]
    filters: list[Filter]
    outputs: list[str]

    def serialize(self) -> str:
        if not self.filters:
            raise ValueError("Filter chain must contain at least one filter")
        ins = "".join(f"[{_check_label(i)}]" for i in self.inputs)
        outs = "".join(f"[{_check_label(o)}]" for o in self.outputs)
        return ins + ",".join(f.serialize() for f in self.filters) + outs


@dataclass
class FilterGraph:
    """Ordered collection of filter chains plus the labels to map as outputs."""

    chains: list[FilterChain] = field(default_factory=list)
    video_output: str | None = None
    audio_output: str | None = None

    def add(self, inputs: list[str], filters: list[Filter], outputs: list[str]) -> FilterChain:
        chain = FilterChain(inputs=inputs, filters=filters, outputs=outputs)
        self.chains.append(chain)
        return chain

    def serialize(self) -> str:
        return ";".join(chain.serialize() for chain in self.chains)

    def __str__(self) -> str:
        return self.serialize()


@dataclass(frozen=True)
class GraphClip:
    """What the emitter needs to know about a clip."""

    duration: float
    has_audio: bool


def _video_normalize_filters(duration: float, width: int, height: int, fps: int) -> list[Filter]:
    return [
        Filter("trim", kwargs={"duration": duration}),
        Filter("setpts", ["PTS-STARTPTS"]),
        Filter("scale", [width, height], {"force_original_aspect_ratio": "decrease"}),
        Filter("pad", [width, height, "(ow-iw)/2", "(oh-ih)/2"]),
        Filter("setsar", [1]),
        Filter("fps", [fps]),
        Filter("settb", ["AVTB"]),
        Filter("format", ["yuv420p"]),
    ]


def _audio_clip_filters(
    index: int,
    clips: list[GraphClip],
    timeline: Timeline,
    sample_rate: int,
) -> list[Filter]:
    clip = clips[index]
    entry = timeline.entries[index]
    filters = [
        Filter(
            "aformat",
            kwargs={"sample_fmts": "fltp", "sample_rates": sample_rate, "channel_layouts": "stereo"},
        ),
        Filter("atrim", kwargs={"duration": clip.duration}),
        Filter("asetpts", ["PTS-STARTPTS"]),
    ]

    # Fades use local timestamps, before the clip is shifted onto the timeline.
    if entry.overlap >= MIN_CROSSFADE_S:
        filters.append(Filter("afade", kwargs={"t": "in", "st": 0, "d": entry.overlap}))
    if index + 1 < len(clips):
        trailing = timeline.entries[index + 1].overlap
        if trailing >= MIN_CROSSFADE_S:
            fade_start = max(0.0, clip.duration - trailing)
            filters.append(Filter("afade", kwargs={"t": "out", "st": fade_start, "d": trailing}))

    if entry.start_offset > 0:
        delay_samples = int(round(entry.start_offset * sample_rate))
        filters.append(Filter("adelay", kwargs={"delays": f"{delay_samples}S", "all": 1}))

    # amix stops at the shortest input unless every stream spans the output.
    filters.append(Filter("apad", kwargs={"whole_dur": timeline.total_duration}))
    return filters


def emit_assembly_graph(
    clips: list[GraphClip],
    timeline: Timeline,
    width: int,
    height: int,
    audio_enabled: bool,
    fps: int = 30,
    sample_rate: int = 48000,
    transition: str = "fade",
) -> FilterGraph:
    """
    Build the crossfade assembly graph.

    Args:
        clips: Clips in input order (input index == list index)
        timeline: Offsets computed by ``compose_timeline``
        width: Output canvas width
        height: Output canvas height
        audio_enabled: Emit the audio chain (requires every clip to have audio)
        fps: Common output frame rate
        sample_rate: Common audio sample rate
        transition: xfade transition name

    Returns:
        FilterGraph with ``video_output`` and, if audio is enabled, ``audio_output``
    """
    if len(clips) != len(timeline.entries):
        raise ValueError("Timeline does not match clip list")
    if audio_enabled and not all(c.has_audio for c in clips):
        raise ValueError("Audio chain requires every clip to have an audio stream")

    graph = FilterGraph()
    n = len(clips)

    for i, clip in enumerate(clips):
        graph.add([f"{i}:v"], _video_normalize_filters(clip.duration, width, height, fps), [f"v{i}"])

    current = "v0"
    for i in range(1, n):
        entry = timeline.entries[i]
        out = "vout" if i == n - 1 else f"xf{i}"
        if entry.overlap >= MIN_CROSSFADE_S:
            node = Filter(
                "xfade",
                kwargs={"transition": transition, "duration": entry.overlap, "offset": entry.start_offset},
            )
        else:
            node = Filter("concat", kwargs={"n": 2, "v": 1, "a": 0})
        graph.add([current, f"v{i}"], [node], [out])
        current = out
    graph.video_output = "vout"

    if audio_enabled:
        for i in range(n):
            graph.add([f"{i}:a"], _audio_clip_filters(i, clips, timeline, sample_rate), [f"a{i}"])
        graph.add(
            [f"a{i}" for i in range(n)],
            [
                Filter("amix", kwargs={"inputs": n, "duration": "longest", "normalize": 0}),
                Filter("atrim", kwargs={"duration": timeline.total_duration}),
            ],
            ["aout"],
        )
        graph.audio_output = "aout"

    return graph
