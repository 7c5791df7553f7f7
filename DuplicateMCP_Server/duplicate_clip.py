"""Clip duplication into session slots and onto the arrangement timeline."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from DuplicateMCP_Server.arrangement_lengthening import lengthen_arrangement_clip
from DuplicateMCP_Server.arrangement_tiling import (
    EPSILON,
    duplicate_clip_at,
    duplicate_shortened_clip,
)
from DuplicateMCP_Server.barbeat import ableton_beats_to_bar_beat, parse_arrangement_length
from DuplicateMCP_Server.errors import DuplicateOperationError, DuplicateResolutionError, DuplicateValidationError
from DuplicateMCP_Server.live_object import LiveObject
from DuplicateMCP_Server.live_paths import LivePath, scene_index_from_path, track_index_from_path
from DuplicateMCP_Server.locators import resolve_arrangement_position
from DuplicateMCP_Server.settings import Settings

logger = logging.getLogger("AbletonMCPServer.duplicate")

Meter = Tuple[int, int]


@dataclass(frozen=True)
class ClipSpec:
    """Snapshot of the source clip taken before any copy is made."""

    length: float
    looping: bool
    loop_start: float
    loop_end: float
    start_marker: float
    end_marker: float
    numerator: int
    denominator: int
    name: str
    color: Optional[int]
    is_midi: bool
    is_arrangement_clip: bool
    start_time: Optional[float] = None
    end_time: Optional[float] = None

    @property
    def time_signature(self) -> Meter:
        return self.numerator, self.denominator

    @property
    def arrangement_length(self) -> float:
        """Beats a full copy occupies on the arrangement timeline."""
        if self.is_arrangement_clip and self.start_time is not None and self.end_time is not None:
            return self.end_time - self.start_time
        return self.length

    @classmethod
    def from_clip(cls, clip: LiveObject) -> "ClipSpec":
        is_arrangement_clip = bool(clip.get("is_arrangement_clip"))
        return cls(
            length=float(clip.get("length")),
            looping=bool(clip.get("looping")),
            loop_start=float(clip.get("loop_start")),
            loop_end=float(clip.get("loop_end")),
            start_marker=float(clip.get("start_marker")),
            end_marker=float(clip.get("end_marker")),
            numerator=int(clip.get("signature_numerator")),
            denominator=int(clip.get("signature_denominator")),
            name=str(clip.get("name") or ""),
            color=clip.get("color"),
            is_midi=bool(clip.get("is_midi_clip")),
            is_arrangement_clip=is_arrangement_clip,
            start_time=float(clip.get("start_time")) if is_arrangement_clip else None,
            end_time=float(clip.get("end_time")) if is_arrangement_clip else None,
        )


def song_meter(live_set: LiveObject) -> Meter:
    return int(live_set.get("signature_numerator")), int(live_set.get("signature_denominator"))


def generate_object_name(base_name: Optional[str], count: int, index: int) -> Optional[str]:
    """``Name``, ``Name 2``, ``Name 3`` ... or None when no base name was given."""
    if base_name is None:
        return None
    if count == 1 or index == 0:
        return base_name
    return f"{base_name} {index + 1}"


def get_minimal_clip_info(clip: LiveObject, meter: Meter, omit: Sequence[str] = ()) -> Dict[str, Any]:
    info = clip.describe()
    path = info.get("path")
    track_index = track_index_from_path(path)
    result: Dict[str, Any] = {"id": clip.id}

    if " arrangement_clips " in (path or ""):
        if track_index is None:
            raise DuplicateOperationError(f'could not determine trackIndex for clip (path="{path}")')
        if "trackIndex" not in omit:
            result["trackIndex"] = track_index
        if "arrangementStart" not in omit:
            result["arrangementStart"] = ableton_beats_to_bar_beat(float(clip.get("start_time")), *meter)
        return result

    scene_index = scene_index_from_path(path)
    if track_index is None or scene_index is None:
        raise DuplicateOperationError(f'could not determine trackIndex/sceneIndex for clip (path="{path}")')
    if "trackIndex" not in omit:
        result["trackIndex"] = track_index
    if "sceneIndex" not in omit:
        result["sceneIndex"] = scene_index
    return result


def parse_index_list(value: Any, field_name: str) -> List[int]:
    """``"1, 3,4"`` -> [1, 3, 4]; a bare int is a one-element list."""
    if isinstance(value, bool):
        raise DuplicateValidationError(f"{field_name} must be an index or a comma-separated list of indexes")
    if isinstance(value, int):
        indexes = [value]
    else:
        parts = [part.strip() for part in str(value).split(",") if part.strip()]
        try:
            indexes = [int(part) for part in parts]
        except ValueError:
            raise DuplicateValidationError(
                f'{field_name} must be an index or a comma-separated list of indexes, got "{value}"'
            ) from None
    if not indexes:
        raise DuplicateValidationError(f"{field_name} is empty")
    if any(index < 0 for index in indexes):
        raise DuplicateValidationError(f'{field_name} must not contain negative indexes, got "{value}"')
    return indexes


def parse_slot(value: Any) -> Tuple[int, int]:
    """``"2/3"`` or ``{"trackIndex": 2, "sceneIndex": 3}`` -> (2, 3)."""
    if isinstance(value, dict):
        parts = [value.get("trackIndex"), value.get("sceneIndex")]
    else:
        parts = [part.strip() for part in str(value).split("/")]
    try:
        if len(parts) != 2:
            raise ValueError(value)
        track_index, scene_index = (int(part) for part in parts)
    except (TypeError, ValueError):
        raise DuplicateValidationError(f'toSlot must be "trackIndex/sceneIndex", got "{value}"') from None
    if track_index < 0 or scene_index < 0:
        raise DuplicateValidationError(f'toSlot must not contain negative indexes, got "{value}"')
    return track_index, scene_index


def parse_position_list(value: str) -> List[str]:
    return [part.strip() for part in str(value).split(",") if part.strip()]


def ensure_target_clear_of_source(spec: ClipSpec, position: float, target_length: float) -> None:
    """Clips on one track never overlap, so a copy cannot land on top of its own source."""
    if not spec.is_arrangement_clip:
        return
    if position < spec.end_time - EPSILON and position + target_length > spec.start_time + EPSILON:
        raise DuplicateResolutionError(
            f"target overlaps the source clip (source spans beats {spec.start_time}-{spec.end_time}, "
            f"copy would span {position}-{position + target_length})"
        )


def duplicate_clip_slot(
    connection,
    source_track_index: int,
    source_scene_index: int,
    to_track_index: int,
    to_scene_index: int,
    meter: Meter,
    name: Optional[str] = None,
) -> Dict[str, Any]:
    source_slot = LiveObject.from_path(connection, LivePath.clip_slot(source_track_index, source_scene_index))
    if not source_slot.exists():
        raise DuplicateResolutionError(
            f"source clip slot at track {source_track_index}, scene {source_scene_index} does not exist"
        )
    if not source_slot.get("has_clip"):
        raise DuplicateResolutionError(
            f"no clip in source clip slot at track {source_track_index}, scene {source_scene_index}"
        )

    destination_slot = LiveObject.from_path(connection, LivePath.clip_slot(to_track_index, to_scene_index))
    if not destination_slot.exists():
        raise DuplicateResolutionError(
            f"destination clip slot at track {to_track_index}, scene {to_scene_index} does not exist"
        )

    source_slot.call("duplicate_clip_to", destination_slot.resolved())

    new_clip = LiveObject.from_path(connection, LivePath.session_clip(to_track_index, to_scene_index)).resolved()
    if name is not None:
        new_clip.set("name", name)
    return get_minimal_clip_info(new_clip, meter)


def create_clips_for_length(
    source: LiveObject,
    spec: ClipSpec,
    track: LiveObject,
    position: float,
    target_length: float,
    meter: Meter,
    settings: Settings,
    name: Optional[str] = None,
    omit: Sequence[str] = (),
) -> List[Dict[str, Any]]:
    """Place ``source`` at ``position`` so that it spans ``target_length`` beats."""
    source_length = spec.arrangement_length

    if target_length < source_length - EPSILON:
        new_clip = duplicate_shortened_clip(track, source, spec, position, target_length, settings)
        created = [new_clip]
    else:
        new_clip = duplicate_clip_at(track, source, spec, position, settings)
        if target_length > source_length + EPSILON:
            created = lengthen_arrangement_clip(track, new_clip, spec, target_length, settings)
        else:
            created = [new_clip]

    results = []
    for clip in created:
        if name is not None:
            clip.set("name", name)
        results.append(get_minimal_clip_info(clip, meter, omit))
    return results


def duplicate_clip_to_arrangement(
    connection,
    clip: LiveObject,
    position: float,
    meter: Meter,
    settings: Settings,
    name: Optional[str] = None,
    arrangement_length: Optional[str] = None,
) -> Dict[str, Any]:
    spec = ClipSpec.from_clip(clip)
    track_index = clip.track_index
    if track_index is None:
        raise DuplicateResolutionError(f'no track index for clip id "{clip.id}"')
    track = LiveObject.from_path(connection, LivePath.track(track_index)).resolved()
    logger.info(f"Duplicating clip {clip.id} to arrangement track {track_index} at beat {position}")

    if arrangement_length is not None:
        # durations are read against the clip's own meter, not the song's
        target_length = parse_arrangement_length(arrangement_length, *spec.time_signature)
        clips = create_clips_for_length(clip, spec, track, position, target_length, meter, settings, name=name)
    else:
        new_clip = duplicate_clip_at(track, clip, spec, position, settings)
        if name is not None:
            new_clip.set("name", name)
        clips = [get_minimal_clip_info(new_clip, meter)]

    if len(clips) == 1:
        return clips[0]
    for info in clips:
        info.pop("trackIndex", None)
    return {"trackIndex": track_index, "clips": clips}


def duplicate_clip_with_positions(
    connection,
    live_set: LiveObject,
    clip: LiveObject,
    destination: str,
    settings: Settings,
    name: Optional[str] = None,
    to_track_index: Optional[int] = None,
    to_scene_index: Any = None,
    arrangement_start: Optional[str] = None,
    arrangement_locator_id: Optional[str] = None,
    arrangement_locator_name: Optional[str] = None,
    arrangement_length: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """One copy per destination (scene index or arrangement position)."""
    meter = song_meter(live_set)
    created: List[Dict[str, Any]] = []

    if destination == "session":
        path = clip.path
        track_index = track_index_from_path(path)
        scene_index = scene_index_from_path(path)
        if track_index is None or scene_index is None:
            raise DuplicateValidationError(
                f'unsupported duplicate operation: cannot duplicate arrangement clips to the session '
                f'(source clip id="{clip.id}" path="{path}")'
            )
        scene_indexes = parse_index_list(to_scene_index, "toSceneIndex")
        for index, target_scene in enumerate(scene_indexes):
            created.append(
                duplicate_clip_slot(
                    connection,
                    track_index,
                    scene_index,
                    int(to_track_index),
                    target_scene,
                    meter,
                    name=generate_object_name(name, len(scene_indexes), index),
                )
            )
        return created

    if arrangement_start is not None:
        positions = [
            resolve_arrangement_position(live_set, start, None, None, *meter)
            for start in parse_position_list(arrangement_start)
        ]
        if not positions:
            raise DuplicateValidationError("arrangementStart is empty")
    else:
        positions = [
            resolve_arrangement_position(
                live_set, None, arrangement_locator_id, arrangement_locator_name, *meter
            )
        ]

    spec = ClipSpec.from_clip(clip)
    target_length = spec.arrangement_length
    if arrangement_length is not None:
        target_length = parse_arrangement_length(arrangement_length, *spec.time_signature)
    for position in positions:
        ensure_target_clear_of_source(spec, position, target_length)

    for index, position in enumerate(positions):
        created.append(
            duplicate_clip_to_arrangement(
                connection,
                clip,
                position,
                meter,
                settings,
                name=generate_object_name(name, len(positions), index),
                arrangement_length=arrangement_length,
            )
        )
    return created
