"""Extend an arrangement clip past its natural length by tiling copies after it."""

from __future__ import annotations

import logging
import math
from typing import List

from DuplicateMCP_Server.arrangement_tiling import (
    EPSILON,
    clip_extent,
    duplicate_clip_at,
    duplicate_shortened_clip,
)
from DuplicateMCP_Server.live_object import LiveObject
from DuplicateMCP_Server.settings import Settings

logger = logging.getLogger("AbletonMCPServer.arrangement")


def _set_window_markers(clip: LiveObject, start: float, end: float) -> None:
    """Point an unlooped clip at [start, end) of its content."""
    # markers can only be moved freely while looping is on
    clip.set("looping", 1)
    clip.set("loop_end", end)
    clip.set("loop_start", start)
    clip.set("end_marker", end)
    clip.set("start_marker", start)
    clip.set("looping", 0)


def _looped_start_marker(spec, content_offset: float) -> float:
    loop_length = spec.loop_end - spec.loop_start
    if loop_length <= EPSILON:
        return spec.loop_start
    marker = spec.loop_start + (content_offset % loop_length)
    if marker >= spec.loop_end - EPSILON:
        marker = spec.loop_start
    return marker


def _tile_looped(
    track: LiveObject,
    clip: LiveObject,
    spec,
    position: float,
    tile_length: float,
    remaining: float,
    settings: Settings,
) -> List[LiveObject]:
    tiles: List[LiveObject] = []
    content_offset = (spec.start_marker - spec.loop_start) + tile_length
    full_tiles = int(math.floor((remaining + EPSILON) / tile_length))
    remainder = remaining - full_tiles * tile_length

    for _ in range(full_tiles):
        tile = duplicate_clip_at(track, clip, spec, position, settings)
        tile.set("start_marker", _looped_start_marker(spec, content_offset))
        tiles.append(tile)
        position += tile_length
        content_offset += tile_length

    if remainder > EPSILON:
        tile = duplicate_shortened_clip(track, clip, spec, position, remainder, settings, adjust_markers=False)
        tile.set("start_marker", _looped_start_marker(spec, content_offset))
        tiles.append(tile)

    return tiles


def _tile_unlooped(
    track: LiveObject,
    clip: LiveObject,
    spec,
    position: float,
    tile_length: float,
    remaining: float,
    settings: Settings,
) -> List[LiveObject]:
    tiles: List[LiveObject] = []
    target_end = position + remaining
    content_offset = spec.start_marker + tile_length
    reveal_content = spec.is_midi

    if not reveal_content:
        logger.info(f"Unlooped audio clip {clip.id} is repeated to fill the requested length")

    while position < target_end - EPSILON:
        length = min(tile_length, target_end - position)
        if tile_length - length > EPSILON:
            tile = duplicate_shortened_clip(
                track, clip, spec, position, length, settings, adjust_markers=not reveal_content
            )
        else:
            tile = duplicate_clip_at(track, clip, spec, position, settings)

        if reveal_content:
            _set_window_markers(tile, content_offset, content_offset + length)
            content_offset += length

        tiles.append(tile)
        position += length

    return tiles


def lengthen_arrangement_clip(
    track: LiveObject,
    clip: LiveObject,
    spec,
    target_length: float,
    settings: Settings,
) -> List[LiveObject]:
    """
    Fill ``target_length`` beats starting at ``clip`` with consecutive copies.

    Looped clips continue through their loop, unlooped MIDI clips reveal the
    content that follows their end marker, and unlooped audio clips repeat.
    Returns ``clip`` followed by every tile created after it.
    """
    start, end = clip_extent(clip)
    current_length = end - start
    if current_length <= EPSILON:
        raise ValueError(f"cannot lengthen clip {clip.id}: it has no arrangement length")
    if target_length <= current_length + EPSILON:
        return [clip]

    remaining = target_length - current_length
    if spec.looping:
        tiles = _tile_looped(track, clip, spec, end, current_length, remaining, settings)
    else:
        tiles = _tile_unlooped(track, clip, spec, end, current_length, remaining, settings)

    logger.info(f"Lengthened clip {clip.id} from {current_length} to {target_length} beats with {len(tiles)} extra tile(s)")
    return [clip] + tiles
