"""Track and scene duplication, including scene-to-arrangement placement."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from DuplicateMCP_Server.barbeat import ableton_beats_to_bar_beat, parse_arrangement_length
from DuplicateMCP_Server.duplicate_clip import ClipSpec, Meter, create_clips_for_length, get_minimal_clip_info
from DuplicateMCP_Server.live_object import LiveObject
from DuplicateMCP_Server.live_paths import LivePath
from DuplicateMCP_Server.settings import Settings

logger = logging.getLogger("AbletonMCPServer.duplicate")

DEFAULT_SCENE_LENGTH_BEATS = 4.0
MONITORING_IN = 0


def _for_each_clip_in_scene(
    connection,
    live_set: LiveObject,
    scene_index: int,
    callback: Callable[[LiveObject, LiveObject, int], None],
) -> None:
    track_count = len(live_set.children("tracks"))
    for track_index in range(track_count):
        slot = LiveObject.from_path(connection, LivePath.clip_slot(track_index, scene_index))
        if not slot.exists() or not slot.get("has_clip"):
            continue
        clip = slot.get("clip")
        if isinstance(clip, LiveObject):
            callback(clip, slot, track_index)


def _delete_session_clips(track: LiveObject) -> None:
    for slot in track.children("clip_slots"):
        if slot.get("has_clip"):
            slot.call("delete_clip")


def _delete_arrangement_clips(track: LiveObject) -> None:
    for clip in track.children("arrangement_clips"):
        track.call("delete_clip", clip)


def _collect_clips(track: LiveObject, meter: Meter) -> List[Dict[str, Any]]:
    clips = []
    for slot in track.children("clip_slots"):
        if slot.get("has_clip"):
            clips.append(get_minimal_clip_info(slot.get("clip"), meter, omit=("trackIndex",)))
    for clip in track.children("arrangement_clips"):
        clips.append(get_minimal_clip_info(clip, meter, omit=("trackIndex",)))
    return clips


def _delete_all_devices(track: LiveObject) -> None:
    device_count = len(track.children("devices"))
    # back to front so remaining indexes stay valid
    for device_index in range(device_count - 1, -1, -1):
        track.call("delete_device", device_index)


def _remove_bridge_device(track: LiveObject, settings: Settings) -> None:
    devices = track.children("devices")
    for device_index in range(len(devices) - 1, -1, -1):
        if devices[device_index].get("name") == settings.bridge_device_name:
            track.call("delete_device", device_index)
            logger.warning(
                f'Removed "{settings.bridge_device_name}" device from duplicated track - the device cannot be duplicated'
            )


def find_routing_option_for_duplicate_names(
    live_set: LiveObject,
    source_track: LiveObject,
    source_name: str,
    available_types: List[Dict[str, Any]],
    exclude_track_id: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    """
    Pick the routing option that belongs to ``source_track`` when several tracks share its name.

    Routing options carry only display names, so the source is matched by its
    ordinal among same-named tracks ordered by id (creation order).
    """
    matching_options = [option for option in available_types if option.get("display_name") == source_name]
    if len(matching_options) <= 1:
        return matching_options[0] if matching_options else None

    same_named_ids = []
    for track in live_set.children("tracks"):
        if track.id == exclude_track_id:
            continue
        if track.get("name") == source_name:
            same_named_ids.append(track.id)
    same_named_ids.sort(key=lambda track_id: int(track_id) if str(track_id).isdigit() else str(track_id))

    source_id = source_track.id
    if source_id not in same_named_ids:
        logger.warning(f'Could not find source track in duplicate name list for "{source_name}"')
        return None
    position = same_named_ids.index(source_id)
    if position >= len(matching_options):
        return None
    return matching_options[position]


def _find_source_routing(
    live_set: LiveObject,
    source_track: LiveObject,
    source_name: str,
    available_types: List[Dict[str, Any]],
    exclude_track_id: Optional[str],
) -> Optional[Dict[str, Any]]:
    matching = [option for option in available_types if option.get("display_name") == source_name]
    if not matching:
        logger.warning(f'Could not find track "{source_name}" in routing options')
        return None
    if len(matching) == 1:
        return matching[0]

    routing = find_routing_option_for_duplicate_names(
        live_set, source_track, source_name, available_types, exclude_track_id=exclude_track_id
    )
    if routing is None:
        logger.warning(
            f'Could not route to "{source_name}" due to duplicate track names. '
            "Consider renaming tracks to have unique names."
        )
    return routing


def configure_routing(connection, live_set: LiveObject, new_track: LiveObject, source_track_index: int) -> None:
    """Route ``new_track`` into the source track and prepare the source to hear it."""
    source_track = LiveObject.from_path(connection, LivePath.track(source_track_index)).resolved()
    source_name = source_track.get("name")

    if source_track.get("current_monitoring_state") != MONITORING_IN:
        source_track.set("current_monitoring_state", MONITORING_IN)
        logger.info(f'routeToSource: Set input monitoring of track "{source_name}" to In')

    if source_track.get("can_be_armed") and not source_track.get("arm"):
        source_track.set("arm", 1)
        logger.warning("routeToSource: Armed the source track")

    available_types = new_track.get("available_output_routing_types") or []
    routing = _find_source_routing(live_set, source_track, source_name, available_types, new_track.id)
    if routing is not None:
        # Live picks the default channel for the new routing type
        new_track.set("output_routing_type", {"identifier": routing.get("identifier")})


def duplicate_track(
    connection,
    live_set: LiveObject,
    track_index: int,
    meter: Meter,
    settings: Settings,
    name: Optional[str] = None,
    without_clips: bool = False,
    without_devices: bool = False,
    route_to_source: bool = False,
    source_track_index: Optional[int] = None,
) -> Dict[str, Any]:
    live_set.call("duplicate_track", track_index)

    new_track_index = track_index + 1
    new_track = LiveObject.from_path(connection, LivePath.track(new_track_index)).resolved()

    if without_clips:
        _delete_session_clips(new_track)
        _delete_arrangement_clips(new_track)
        clips: List[Dict[str, Any]] = []
    else:
        clips = _collect_clips(new_track, meter)

    if without_devices:
        _delete_all_devices(new_track)

    _remove_bridge_device(new_track, settings)

    if route_to_source:
        configure_routing(
            connection,
            live_set,
            new_track,
            track_index if source_track_index is None else source_track_index,
        )

    if name is not None:
        new_track.set("name", name)

    return {"id": new_track.id, "trackIndex": new_track_index, "clips": clips}


def duplicate_scene(
    connection,
    live_set: LiveObject,
    scene_index: int,
    meter: Meter,
    name: Optional[str] = None,
    without_clips: bool = False,
) -> Dict[str, Any]:
    live_set.call("duplicate_scene", scene_index)

    new_scene_index = scene_index + 1
    new_scene = LiveObject.from_path(connection, LivePath.scene(new_scene_index)).resolved()
    if name is not None:
        new_scene.set("name", name)

    clips: List[Dict[str, Any]] = []
    if without_clips:
        _for_each_clip_in_scene(connection, live_set, new_scene_index, lambda _clip, slot, _index: slot.call("delete_clip"))
    else:
        _for_each_clip_in_scene(
            connection,
            live_set,
            new_scene_index,
            lambda clip, _slot, _index: clips.append(get_minimal_clip_info(clip, meter, omit=("sceneIndex",))),
        )

    return {"id": new_scene.id, "sceneIndex": new_scene_index, "clips": clips}


def calculate_scene_length(clips: List[LiveObject]) -> float:
    """Length of the longest clip in the scene row, at least one 4/4 bar."""
    return max([DEFAULT_SCENE_LENGTH_BEATS] + [float(clip.get("length")) for clip in clips])


def duplicate_scene_to_arrangement(
    connection,
    live_set: LiveObject,
    scene_index: int,
    position: float,
    meter: Meter,
    settings: Settings,
    name: Optional[str] = None,
    without_clips: bool = False,
    arrangement_length: Optional[str] = None,
) -> Tuple[Dict[str, Any], float]:
    """
    Copy every clip in the scene row onto the arrangement at ``position``.

    Returns the result and the span the copy occupies, which is where the next
    copy of the scene starts.
    """
    placed_lengths: List[float] = []
    clips: List[Dict[str, Any]] = []

    if not without_clips:
        sources: List[Tuple[LiveObject, int]] = []
        _for_each_clip_in_scene(
            connection, live_set, scene_index, lambda clip, _slot, track_index: sources.append((clip, track_index))
        )
        scene_length = calculate_scene_length([clip for clip, _ in sources])

        # every requested length is parsed before the first copy is made
        plan = []
        for clip, track_index in sources:
            spec = ClipSpec.from_clip(clip)
            if arrangement_length is not None:
                target_length = parse_arrangement_length(arrangement_length, *spec.time_signature)
            else:
                target_length = scene_length
            plan.append((clip, spec, track_index, target_length))

        for clip, spec, track_index, target_length in plan:
            track = LiveObject.from_path(connection, LivePath.track(track_index)).resolved()
            placed = create_clips_for_length(
                clip, spec, track, position, target_length, meter, settings, name=name, omit=("arrangementStart",)
            )
            if name is not None:
                for info in placed:
                    info["name"] = name
            clips.extend(placed)
            placed_lengths.append(target_length)

    span = max(placed_lengths) if placed_lengths else DEFAULT_SCENE_LENGTH_BEATS
    result = {
        "arrangementStart": ableton_beats_to_bar_beat(position, *meter),
        "clips": clips,
    }
    return result, span
