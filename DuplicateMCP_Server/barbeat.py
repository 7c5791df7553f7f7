"""
bar|beat position and bar:beat duration conversion.

Ableton measures time in quarter-note beats. A bar of ``num/den`` holds
``num * 4 / den`` Ableton beats, so the same musical duration maps to
different beat counts depending on which meter it is read against:

- positions (``"5|1"``, 1-based) use the song meter
- durations (``"1:2"``, 0-based, or beat-only ``"6"``) use the clip's meter
"""

from __future__ import annotations

import re
from typing import Optional

from DuplicateMCP_Server.errors import DuplicateValidationError


_BEAT_VALUE = r"-?\d+(?:\+\d+/\d+|\.\d+|/\d+)?"
_POSITION_RE = re.compile(rf"^(-?\d+)\|({_BEAT_VALUE})$")
_DURATION_RE = re.compile(rf"^(-?\d+):({_BEAT_VALUE})$")


def ableton_beats_per_bar(numerator: int, denominator: int) -> float:
    return numerator * 4 / denominator


def _format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.3f}".rstrip("0").rstrip(".")


def _parse_fraction(text: str, context: str, format_type: str) -> float:
    numerator, _, denominator = text.partition("/")
    try:
        num = int(numerator)
        den = int(denominator)
    except ValueError:
        raise ValueError(f'Invalid {format_type} format: "{context}"') from None
    if den == 0:
        raise ValueError(f'Invalid {format_type} format: division by zero in "{context}"')
    return num / den


def parse_beat_value(text: str, context: Optional[str] = None, format_type: str = "duration") -> float:
    """Parse ``2.5``, ``4/3`` or ``2+1/3``."""
    context = text if context is None else context
    text = text.strip()
    if "+" in text:
        whole, _, fraction = text.partition("+")
        try:
            whole_value = int(whole)
        except ValueError:
            raise ValueError(f'Invalid {format_type} format: "{context}"') from None
        return whole_value + _parse_fraction(fraction, context, format_type)
    if "/" in text:
        return _parse_fraction(text, context, format_type)
    try:
        return float(text)
    except ValueError:
        raise ValueError(f'Invalid {format_type} format: "{context}"') from None


def bar_beat_to_beats(bar_beat: str, beats_per_bar: float) -> float:
    match = _POSITION_RE.match(bar_beat.strip())
    if match is None:
        raise ValueError(
            f'Invalid bar|beat format: "{bar_beat}". Expected "{{int}}|{{float}}" like "1|2" or "2|3.5" '
            f'or "{{int}}|{{int}}/{{int}}" like "1|4/3" or "{{int}}|{{int}}+{{int}}/{{int}}" like "1|2+1/3"'
        )
    bar = int(match.group(1))
    beat = parse_beat_value(match.group(2), bar_beat, "bar|beat")
    if bar < 1:
        raise ValueError(f"Bar number must be 1 or greater, got: {bar}")
    if beat < 1:
        raise ValueError(f"Beat must be 1 or greater, got: {_format_number(beat)}")
    return (bar - 1) * beats_per_bar + (beat - 1)


def beats_to_bar_beat(beats: float, beats_per_bar: float) -> str:
    bar = int(beats // beats_per_bar) + 1
    beat = (beats % beats_per_bar) + 1
    return f"{bar}|{_format_number(beat)}"


def bar_beat_to_ableton_beats(bar_beat: str, numerator: int, denominator: int) -> float:
    """Position in the song meter: ``"5|1"`` in 4/4 is 16.0."""
    musical_beats = bar_beat_to_beats(bar_beat, numerator)
    return musical_beats * (4 / denominator)


def ableton_beats_to_bar_beat(ableton_beats: float, numerator: int, denominator: int) -> str:
    musical_beats = ableton_beats * (denominator / 4)
    return beats_to_bar_beat(musical_beats, numerator)


def bar_beat_duration_to_musical_beats(duration: str, numerator: Optional[int]) -> float:
    duration = duration.strip()
    if ":" in duration:
        if numerator is None:
            raise ValueError(f'Time signature numerator required for bar:beat duration format: "{duration}"')
        match = _DURATION_RE.match(duration)
        if match is None:
            raise ValueError(
                f'Invalid bar:beat duration format: "{duration}". Expected "{{int}}:{{float}}" like "1:2" or "2:1.5" '
                f'or "{{int}}:{{int}}/{{int}}" like "0:4/3" or "{{int}}:{{int}}+{{int}}/{{int}}" like "1:2+1/3"'
            )
        bars = int(match.group(1))
        beats = parse_beat_value(match.group(2), duration)
        if bars < 0:
            raise ValueError(f"Bars in duration must be 0 or greater, got: {bars}")
        if beats < 0:
            raise ValueError(f"Beats in duration must be 0 or greater, got: {_format_number(beats)}")
        return bars * numerator + beats

    if "|" in duration:
        raise ValueError(f'Invalid duration format: "{duration}". Use ":" for bar:beat format, not "|"')

    beats = parse_beat_value(duration, duration)
    if beats < 0:
        raise ValueError(f"Beats in duration must be 0 or greater, got: {_format_number(beats)}")
    return beats


def bar_beat_duration_to_ableton_beats(duration: str, numerator: int, denominator: int) -> float:
    """Duration in the clip meter: ``"1:0"`` is 3.0 on a 6/8 clip and 4.0 on a 2/2 clip."""
    musical_beats = bar_beat_duration_to_musical_beats(duration, numerator)
    return musical_beats * (4 / denominator)


def parse_arrangement_length(arrangement_length: str, numerator: int, denominator: int) -> float:
    """Parse a requested arrangement length against the clip meter; it must be positive."""
    try:
        length = bar_beat_duration_to_ableton_beats(arrangement_length, numerator, denominator)
    except ValueError as exc:
        message = str(exc)
        if "must be 0 or greater" in message:
            raise DuplicateValidationError("arrangementLength " + message.replace("in duration ", "")) from exc
        raise DuplicateValidationError(message) from exc

    if length <= 0:
        raise DuplicateValidationError(f'arrangementLength must be positive, got "{arrangement_length}"')
    return length


def validate_bar_beat_position(bar_beat: str) -> None:
    """Reject a malformed position before the song meter has been read."""
    try:
        bar_beat_to_beats(str(bar_beat), 1.0)
    except ValueError as exc:
        raise DuplicateValidationError(str(exc)) from exc


def validate_arrangement_length(arrangement_length: str) -> None:
    """Reject a malformed or empty length before the clip meter has been read."""
    # the sign of a duration does not depend on the meter
    parse_arrangement_length(str(arrangement_length), 4, 4)
