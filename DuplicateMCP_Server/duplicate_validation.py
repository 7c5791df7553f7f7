"""Request checks that run before any command reaches Live."""

from __future__ import annotations

import logging
from typing import Optional, Tuple

from DuplicateMCP_Server.barbeat import validate_arrangement_length, validate_bar_beat_position
from DuplicateMCP_Server.duplicate_clip import parse_index_list, parse_position_list, parse_slot
from DuplicateMCP_Server.errors import DuplicateResolutionError, DuplicateValidationError
from DuplicateMCP_Server.live_object import LiveObject
from DuplicateMCP_Server.locators import validate_arrangement_target

logger = logging.getLogger("AbletonMCPServer.duplicate")

VALID_TYPES = ("track", "scene", "clip", "device")
VALID_DESTINATIONS = ("session", "arrangement")


def validate_basic_inputs(object_type: Optional[str], object_id, count) -> None:
    if not object_type:
        raise DuplicateValidationError("type is required")
    if object_type not in VALID_TYPES:
        raise DuplicateValidationError(f"type must be one of {', '.join(VALID_TYPES)}")
    if object_id is None or str(object_id).strip() == "":
        raise DuplicateValidationError("id is required")
    if isinstance(count, bool) or not isinstance(count, int):
        raise DuplicateValidationError(f"count must be an integer, got {count!r}")
    if count < 1:
        raise DuplicateValidationError("count must be at least 1")


def validate_and_configure_route_to_source(
    object_type: str,
    route_to_source: Optional[bool],
    without_clips: Optional[bool],
    without_devices: Optional[bool],
) -> Tuple[bool, bool]:
    """Return the effective (without_clips, without_devices) pair."""
    if not route_to_source:
        return bool(without_clips), bool(without_devices)

    if object_type != "track":
        raise DuplicateValidationError("routeToSource is only supported for type 'track'")

    if without_clips is False:
        logger.warning("routeToSource requires withoutClips=true, ignoring user-provided withoutClips=false")
    if without_devices is False:
        logger.warning("routeToSource requires withoutDevices=true, ignoring user-provided withoutDevices=false")
    return True, True


def validate_clip_parameters(
    object_type: str,
    destination: Optional[str],
    to_track_index,
    to_scene_index,
) -> None:
    if object_type != "clip":
        return
    if not destination:
        raise DuplicateValidationError("destination is required for type 'clip'")
    if destination not in VALID_DESTINATIONS:
        raise DuplicateValidationError("destination must be 'session' or 'arrangement'")
    if destination == "session":
        if to_track_index is None:
            raise DuplicateValidationError("toTrackIndex is required for session clips")
        if to_scene_index is None or str(to_scene_index).strip() == "":
            raise DuplicateValidationError("toSceneIndex is required for session clips")
        parse_index_list(to_scene_index, "toSceneIndex")


def validate_to_slot(
    object_type: str,
    destination: Optional[str],
    to_slot,
    to_track_index,
    to_scene_index,
):
    """Fold ``toSlot`` into the (toTrackIndex, toSceneIndex) pair."""
    if to_slot is None:
        return to_track_index, to_scene_index
    if object_type != "clip" or destination == "arrangement":
        raise DuplicateValidationError("toSlot is only supported for clips with destination 'session'")
    if to_track_index is not None or to_scene_index is not None:
        raise DuplicateValidationError("toSlot and toTrackIndex/toSceneIndex are mutually exclusive")
    return parse_slot(to_slot)


def validate_destination_parameter(object_type: str, destination: Optional[str]) -> None:
    if destination is None:
        return
    if object_type == "device":
        raise DuplicateValidationError("destination is not supported for type 'device'; use toPath instead")
    if destination not in VALID_DESTINATIONS:
        raise DuplicateValidationError("destination must be 'session' or 'arrangement'")
    if object_type == "track" and destination == "arrangement":
        raise DuplicateValidationError(
            "destination 'arrangement' is not supported for type 'track'; tracks are duplicated in the session"
        )


def validate_arrangement_parameters(
    object_type: str,
    destination: Optional[str],
    arrangement_start: Optional[str],
    arrangement_locator_id: Optional[str],
    arrangement_locator_name: Optional[str],
    arrangement_length: Optional[str],
) -> None:
    if destination == "arrangement":
        validate_arrangement_target(arrangement_start, arrangement_locator_id, arrangement_locator_name)
        if arrangement_start is not None:
            # clips accept a comma-separated list of starts, scenes a single one
            starts = parse_position_list(arrangement_start) if object_type == "clip" else [arrangement_start]
            if not starts:
                raise DuplicateValidationError("arrangementStart is empty")
            for start in starts:
                validate_bar_beat_position(start)
        if arrangement_length is not None:
            validate_arrangement_length(arrangement_length)
        return

    provided = [
        label
        for label, value in (
            ("arrangementStart", arrangement_start),
            ("arrangementLocatorId", arrangement_locator_id),
            ("arrangementLocatorName", arrangement_locator_name),
            ("arrangementLength", arrangement_length),
        )
        if value is not None
    ]
    if provided and object_type in ("track", "device"):
        raise DuplicateValidationError(f"{', '.join(provided)} not supported for type '{object_type}'")
    if provided:
        logger.warning(f"{', '.join(provided)} ignored because destination is not 'arrangement'")


def _matches_type(live_type: Optional[str], expected: str) -> bool:
    if not live_type:
        return False
    if expected == "device":
        return live_type.lower().endswith("device")
    return live_type.lower() == expected


def validate_id_type(connection, object_id, expected_type: str) -> LiveObject:
    """Resolve ``object_id`` to a live object of ``expected_type``."""
    live_object = LiveObject.from_id(connection, object_id)
    info = live_object.describe()
    if not info.get("exists"):
        raise DuplicateResolutionError(f'id "{object_id}" does not exist')
    live_type = info.get("type")
    if not _matches_type(live_type, expected_type):
        raise DuplicateResolutionError(f'id "{object_id}" is not a {expected_type} (found {live_type})')
    return live_object
