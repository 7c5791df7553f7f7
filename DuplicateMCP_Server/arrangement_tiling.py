"""
Arrangement clip placement helpers built on the holding-area technique.

An arrangement clip's start and end are read-only in Live. The only ways to
change its extent are to duplicate it somewhere else or to create another clip
over part of it, which truncates whatever it overlaps. Shortened copies are
therefore staged past all existing content (the holding area), truncated there
with a throwaway clip, and duplicated to their final position.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional, Tuple

from DuplicateMCP_Server.live_object import LiveObject
from DuplicateMCP_Server.live_paths import LIVE_SET
from DuplicateMCP_Server.settings import Settings
from DuplicateMCP_Server.silence import ensure_silence_wav

logger = logging.getLogger("AbletonMCPServer.arrangement")

EPSILON = 0.001
HOLDING_AREA_MARGIN_BEATS = 100.0


def arrangement_clips(track: LiveObject) -> List[LiveObject]:
    return track.children("arrangement_clips")


def clip_extent(clip: LiveObject) -> Tuple[float, float]:
    return float(clip.get("start_time")), float(clip.get("end_time"))


def last_arrangement_end(track: LiveObject) -> float:
    ends = [clip_extent(clip)[1] for clip in arrangement_clips(track)]
    return max(ends) if ends else 0.0


def holding_area_start(track: LiveObject, settings: Settings) -> float:
    """First position on the track guaranteed to be clear of existing clips."""
    return max(float(settings.holding_area_start_beats), last_arrangement_end(track) + HOLDING_AREA_MARGIN_BEATS)


def duplicate_to_arrangement(track: LiveObject, clip: LiveObject, position: float) -> LiveObject:
    new_clip = track.call("duplicate_clip_to_arrangement", clip, float(position))
    if not isinstance(new_clip, LiveObject):
        raise RuntimeError(f"duplicate_clip_to_arrangement returned no clip at position {position}")
    return new_clip


def _free_clip_slot(track: LiveObject) -> Tuple[LiveObject, Optional[int]]:
    """Return an empty session slot on the track, adding a scene when every slot is taken."""
    for slot in track.children("clip_slots"):
        if not slot.get("has_clip"):
            return slot, None

    live_set = LiveObject.from_path(track.connection, LIVE_SET)
    live_set.call("create_scene", -1)
    slots = track.children("clip_slots")
    return slots[-1], len(slots) - 1


@contextmanager
def temporary_session_audio_clip(track: LiveObject, length: float, settings: Settings) -> Iterator[LiveObject]:
    """A silent, looped session audio clip of the given length, removed on exit."""
    slot, created_scene_index = _free_clip_slot(track)
    try:
        slot.call("create_audio_clip", ensure_silence_wav(settings))
        clip = slot.get("clip")
        clip.set("warping", 1)
        clip.set("looping", 1)
        clip.set("loop_end", float(length))
        yield clip
    finally:
        if slot.get("has_clip"):
            slot.call("delete_clip")
        if created_scene_index is not None:
            LiveObject.from_path(track.connection, LIVE_SET).call("delete_scene", created_scene_index)


def create_and_delete_temp_clip(
    track: LiveObject,
    position: float,
    length: float,
    is_midi: bool,
    settings: Settings,
) -> None:
    """Truncate everything under [position, position + length) by creating and deleting a clip there."""
    if length <= EPSILON:
        return

    if is_midi:
        temp_clip = track.call("create_midi_clip", float(position), float(length))
        track.call("delete_clip", temp_clip)
        return

    with temporary_session_audio_clip(track, length, settings) as session_clip:
        temp_clip = duplicate_to_arrangement(track, session_clip, position)
        track.call("delete_clip", temp_clip)


def clear_arrangement_target(
    track: LiveObject,
    source: LiveObject,
    position: float,
    is_midi: bool,
    settings: Settings,
) -> None:
    """
    Clear the region an arrangement clip is about to be duplicated into.

    Live crashes when an arrangement clip is duplicated on top of existing
    arrangement clips, so overlapping clips are trimmed away first. Portions
    outside the target region are kept.
    """
    if not source.get("is_arrangement_clip"):
        return

    source_start, source_end = clip_extent(source)
    target_end = position + (source_end - source_start)

    source_id = source.id
    for clip in arrangement_clips(track):
        if clip.id == source_id:
            continue
        clip_start, clip_end = clip_extent(clip)
        if clip_start < target_end - EPSILON and clip_end > position + EPSILON:
            _clear_overlapping_clip(track, clip, position, target_end, is_midi, settings)


def _clear_overlapping_clip(
    track: LiveObject,
    clip: LiveObject,
    position: float,
    target_end: float,
    is_midi: bool,
    settings: Settings,
) -> None:
    clip_start, clip_end = clip_extent(clip)
    has_before = clip_start < position
    has_after = clip_end > target_end

    if not has_after:
        if has_before:
            create_and_delete_temp_clip(track, position, clip_end - position, is_midi, settings)
        else:
            track.call("delete_clip", clip)
        return

    holding_start = holding_area_start(track, settings)
    holding_clip = duplicate_to_arrangement(track, clip, holding_start)

    if has_before:
        create_and_delete_temp_clip(track, position, clip_end - position, is_midi, settings)
    else:
        track.call("delete_clip", clip)

    # keep only the part after the target region
    create_and_delete_temp_clip(track, holding_start, target_end - clip_start, is_midi, settings)
    try:
        duplicate_to_arrangement(track, holding_clip, target_end)
    finally:
        track.call("delete_clip", holding_clip)


def _shorten_markers(clip: LiveObject, spec, target_length: float) -> None:
    if spec.looping:
        new_loop_end = spec.loop_start + target_length
        if new_loop_end < spec.loop_end and new_loop_end > spec.start_marker:
            clip.set("loop_end", new_loop_end)
    else:
        new_end_marker = spec.start_marker + target_length
        if new_end_marker < spec.end_marker:
            clip.set("end_marker", new_end_marker)


@contextmanager
def holding_area_clip(
    track: LiveObject,
    source: LiveObject,
    spec,
    target_length: float,
    settings: Settings,
    adjust_markers: bool = True,
) -> Iterator[LiveObject]:
    """
    A copy of ``source`` truncated to ``target_length`` in the holding area.

    The copy is deleted on exit whether or not the caller succeeded.
    """
    start = holding_area_start(track, settings)
    holding_clip = duplicate_to_arrangement(track, source, start)
    logger.info(f"Staged holding copy of clip {source.id} at beat {start}")
    try:
        if adjust_markers:
            _shorten_markers(holding_clip, spec, target_length)
        _, holding_end = clip_extent(holding_clip)
        new_end = start + target_length
        if holding_end - new_end > EPSILON:
            create_and_delete_temp_clip(track, new_end, holding_end - new_end, spec.is_midi, settings)
        yield holding_clip
    finally:
        if holding_clip.exists():
            track.call("delete_clip", holding_clip)


def duplicate_shortened_clip(
    track: LiveObject,
    source: LiveObject,
    spec,
    position: float,
    target_length: float,
    settings: Settings,
    adjust_markers: bool = True,
) -> LiveObject:
    """Place a copy of ``source`` at ``position`` that is ``target_length`` beats long."""
    with holding_area_clip(track, source, spec, target_length, settings, adjust_markers=adjust_markers) as holding:
        clear_arrangement_target(track, holding, position, spec.is_midi, settings)
        return duplicate_to_arrangement(track, holding, position)


def duplicate_clip_at(
    track: LiveObject,
    source: LiveObject,
    spec,
    position: float,
    settings: Settings,
) -> LiveObject:
    """Full-length copy of ``source`` at ``position``."""
    clear_arrangement_target(track, source, position, spec.is_midi, settings)
    return duplicate_to_arrangement(track, source, position)
