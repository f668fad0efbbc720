"""Tests for the filter graph builder and the assembly graph emitter."""

import pytest

from clipstitch.render.filter_graph import (
    Filter,
    FilterGraph,
    GraphClip,
    emit_assembly_graph,
    escape_filter_value,
    format_number,
)
from clipstitch.render.timeline import compose_timeline


def _chains(graph: FilterGraph) -> list[str]:
    return graph.serialize().split(";")


class TestEscaping:
    """Two-level escaping of option values."""

    def test_plain_value_unchanged(self):
        assert escape_filter_value("fade") == "fade"

    def test_option_separator_escaped_for_both_levels(self):
        # ':' -> '\:' (option level), then the graph level escapes the backslash
        assert escape_filter_value("a:b") == "a\\\\:b"

    def test_graph_specials_escaped(self):
        assert escape_filter_value("x[0],y;z") == "x\\[0\\]\\,y\\;z"

    def test_quote_escaped(self):
        escaped = escape_filter_value("it's")
        assert "'" in escaped
        assert not escaped.startswith("'")
        assert escaped.count("\\") >= 2

    def test_untrusted_value_cannot_add_filters(self):
        """A hostile string stays inside its option value."""
        graph = FilterGraph()
        graph.add(["0:v"], [Filter("drawtext", kwargs={"text": "x];[0:v]nullsink;[y"})], ["out"])

        serialized = graph.serialize()
        unescaped_separators = [
            i for i, ch in enumerate(serialized) if ch == ";" and serialized[i - 1] != "\\"
        ]
        assert unescaped_separators == []

    def test_numbers(self):
        assert format_number(7.0) == "7"
        assert format_number(0.1 + 0.2) == "0.3"
        assert format_number(-0.0) == "0"
        assert format_number(48000) == "48000"
        assert escape_filter_value(2.5) == "2.5"


class TestFilterGraphBuilder:
    """Serialization of filters, chains and labels."""

    def test_filter_serialization(self):
        assert Filter("null").serialize() == "null"
        assert Filter("setsar", [1]).serialize() == "setsar=1"
        assert (
            Filter("scale", [640, 360], {"force_original_aspect_ratio": "decrease"}).serialize()
            == "scale=640:360:force_original_aspect_ratio=decrease"
        )

    def test_chain_serialization(self):
        graph = FilterGraph()
        graph.add(["0:v", "1:v"], [Filter("concat", kwargs={"n": 2, "v": 1, "a": 0})], ["out"])

        assert str(graph) == "[0:v][1:v]concat=n=2:v=1:a=0[out]"

    def test_invalid_label_rejected(self):
        graph = FilterGraph()
        graph.add(["0:v]; [evil"], [Filter("null")], ["out"])

        with pytest.raises(ValueError):
            graph.serialize()

    def test_empty_chain_rejected(self):
        graph = FilterGraph()
        graph.add(["0:v"], [], ["out"])

        with pytest.raises(ValueError):
            graph.serialize()


class TestAssemblyGraph:
    """The emitted crossfade graph."""

    def _emit(self, durations, t, audio=(True, True, True), audio_enabled=None):
        clips = [GraphClip(duration=d, has_audio=a) for d, a in zip(durations, audio)]
        timeline = compose_timeline(durations, t)
        if audio_enabled is None:
            audio_enabled = all(c.has_audio for c in clips)
        return emit_assembly_graph(clips, timeline, 1280, 720, audio_enabled), timeline

    def test_video_normalization_per_clip(self):
        graph, _ = self._emit([8.0, 8.0, 8.0], 1.0)
        chains = _chains(graph)

        assert chains[0] == (
            "[0:v]trim=duration=8,setpts=PTS-STARTPTS,"
            "scale=1280:720:force_original_aspect_ratio=decrease,"
            "pad=1280:720:(ow-iw)/2:(oh-ih)/2,setsar=1,fps=30,settb=AVTB,format=yuv420p[v0]"
        )
        assert chains[1].startswith("[1:v]trim=duration=8,")
        assert chains[2].endswith("[v2]")

    def test_xfade_chain_offsets(self):
        graph, _ = self._emit([8.0, 8.0, 8.0], 1.0)
        chains = _chains(graph)

        assert "[v0][v1]xfade=transition=fade:duration=1:offset=7[xf1]" in chains
        assert "[xf1][v2]xfade=transition=fade:duration=1:offset=14[vout]" in chains
        assert graph.video_output == "vout"

    def test_two_clips_map_straight_to_output(self):
        graph, _ = self._emit([5.0, 5.0], 1.0, audio=(True, True))

        assert "[v0][v1]xfade=transition=fade:duration=1:offset=4[vout]" in _chains(graph)

    def test_zero_transition_uses_concat(self):
        graph, _ = self._emit([3.0, 4.0], 0.0, audio=(True, True))
        serialized = graph.serialize()

        assert "xfade" not in serialized
        assert "[v0][v1]concat=n=2:v=1:a=0[vout]" in serialized
        assert "afade" not in serialized

    def test_audio_chain(self):
        graph, timeline = self._emit([8.0, 8.0, 8.0], 1.0)
        chains = _chains(graph)
        audio = {c[: c.index("]") + 1]: c for c in chains if c.startswith(("[0:a]", "[1:a]", "[2:a]"))}

        first = audio["[0:a]"]
        assert first.startswith("[0:a]aformat=sample_fmts=fltp:sample_rates=48000:channel_layouts=stereo,")
        assert "afade=t=in" not in first
        assert "afade=t=out:st=7:d=1" in first
        assert "adelay" not in first
        assert first.endswith("apad=whole_dur=22[a0]")

        middle = audio["[1:a]"]
        assert "afade=t=in:st=0:d=1" in middle
        assert "afade=t=out:st=7:d=1" in middle
        assert "adelay=delays=336000S:all=1" in middle
        # Fades are applied before the delay, in clip-local time
        assert middle.index("afade=t=out") < middle.index("adelay")

        last = audio["[2:a]"]
        assert "afade=t=out" not in last
        assert "adelay=delays=672000S:all=1" in last

        assert chains[-1] == (
            "[a0][a1][a2]amix=inputs=3:duration=longest:normalize=0,atrim=duration=22[aout]"
        )
        assert graph.audio_output == "aout"
        assert timeline.total_duration == 22.0

    def test_one_silent_clip_disables_audio_but_not_video(self):
        with_audio, _ = self._emit([8.0, 8.0, 8.0], 1.0)
        without_audio, _ = self._emit([8.0, 8.0, 8.0], 1.0, audio=(True, False, True))

        assert without_audio.audio_output is None
        assert ":a]" not in without_audio.serialize()
        video_chains = [c for c in _chains(with_audio) if "[aout]" not in c and ":a]" not in c]
        assert _chains(without_audio) == video_chains

    def test_audio_enabled_requires_every_clip_to_have_audio(self):
        with pytest.raises(ValueError):
            self._emit([8.0, 8.0], 1.0, audio=(True, False), audio_enabled=True)

    def test_timeline_must_match_clips(self):
        timeline = compose_timeline([8.0, 8.0, 8.0], 1.0)
        clips = [GraphClip(8.0, True), GraphClip(8.0, True)]

        with pytest.raises(ValueError):
            emit_assembly_graph(clips, timeline, 1280, 720, True)

    def test_custom_fps_and_sample_rate(self):
        clips = [GraphClip(4.0, True), GraphClip(4.0, True)]
        timeline = compose_timeline([4.0, 4.0], 0.5)
        serialized = emit_assembly_graph(clips, timeline, 640, 360, True, fps=25, sample_rate=44100).serialize()

        assert "fps=25" in serialized
        assert "sample_rates=44100" in serialized
        assert "adelay=delays=154350S:all=1" in serialized
