"""Crossfade timeline composition.

Given per-clip durations and a transition length, computes where each clip
starts in the assembled output and how long the output is. Each transition
window lies inside the content composed so far, so the output duration grows
monotonically:

    D = duration[0]
    offset[i] = max(offset[i - 1], D - min(t, duration[i]))
    D = offset[i] + duration[i]

With every clip at least ``t`` long this gives
``total = sum(duration) - (n - 1) * t``. A clip shorter than ``t`` shortens
the overlap on that side instead: offsets never move before the previous
clip's offset, and the incoming clip always outlasts the composed content.
"""

from dataclasses import dataclass

from clipstitch.exceptions import ValidationError


@dataclass(frozen=True)
class TimelineEntry:
    """Placement of one clip in the composed output."""

    clip_index: int
    start_offset: float  # seconds into the output where the clip begins
    overlap: float  # length of the transition window into this clip (0 for the first)


@dataclass(frozen=True)
class Timeline:
    entries: tuple[TimelineEntry, ...]
    total_duration: float

    @property
    def offsets(self) -> list[float]:
        return [e.start_offset for e in self.entries]

    def to_dict(self) -> dict:
        return {
            "offsets": [round(o, 3) for o in self.offsets],
            "total_duration": round(self.total_duration, 3),
        }


def compose_timeline(durations: list[float], transition_duration: float) -> Timeline:
    """Compute clip offsets and total duration for a crossfade chain.

    Args:
        durations: Clip durations in seconds, in output order
        transition_duration: Crossfade length in seconds (0 = plain concatenation)

    Returns:
        Timeline

    Raises:
        ValidationError: Fewer than two clips, a negative transition or
            clip duration, or a non-positive total duration
    """
    if len(durations) < 2:
        raise ValidationError("At least 2 videos are required for assembly")
    if transition_duration < 0:
        raise ValidationError("Transition duration must not be negative")
    if any(d <= 0 for d in durations):
        raise ValidationError("Clip durations must be positive")

    entries = [TimelineEntry(clip_index=0, start_offset=0.0, overlap=0.0)]
    composed = durations[0]

    for i, duration in enumerate(durations[1:], start=1):
        previous_offset = entries[-1].start_offset
        offset = max(previous_offset, composed - min(transition_duration, duration))
        entries.append(TimelineEntry(clip_index=i, start_offset=offset, overlap=composed - offset))
        composed = offset + duration

    if composed <= 0:
        raise ValidationError("Transitions leave no output duration")

    return Timeline(entries=tuple(entries), total_duration=composed)
