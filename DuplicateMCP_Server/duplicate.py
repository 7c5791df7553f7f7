"""Entry point for duplicating tracks, scenes, clips and devices in a Live set."""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from typing import Any, Dict, List, Mapping, Optional, Union

from DuplicateMCP_Server.duplicate_clip import duplicate_clip_with_positions, generate_object_name, song_meter
from DuplicateMCP_Server.duplicate_device import duplicate_device
from DuplicateMCP_Server.duplicate_track_scene import (
    duplicate_scene,
    duplicate_scene_to_arrangement,
    duplicate_track,
)
from DuplicateMCP_Server.duplicate_validation import (
    validate_and_configure_route_to_source,
    validate_arrangement_parameters,
    validate_basic_inputs,
    validate_clip_parameters,
    validate_destination_parameter,
    validate_id_type,
    validate_to_slot,
)
from DuplicateMCP_Server.errors import DuplicateResolutionError, DuplicateValidationError
from DuplicateMCP_Server.live_object import LiveObject
from DuplicateMCP_Server.live_paths import LIVE_APP_VIEW, LIVE_SET
from DuplicateMCP_Server.locators import resolve_arrangement_position
from DuplicateMCP_Server.settings import Settings, load_settings

logger = logging.getLogger("AbletonMCPServer.duplicate")

DuplicateResult = Union[Dict[str, Any], List[Dict[str, Any]]]

_ALIASES = {
    "withoutClips": "without_clips",
    "withoutDevices": "without_devices",
    "routeToSource": "route_to_source",
    "switchView": "switch_view",
    "toSlot": "to_slot",
    "toTrackIndex": "to_track_index",
    "toSceneIndex": "to_scene_index",
    "toPath": "to_path",
    "arrangementStart": "arrangement_start",
    "arrangementLocatorId": "arrangement_locator_id",
    "arrangementLocatorName": "arrangement_locator_name",
    "arrangementLength": "arrangement_length",
}


@dataclass
class DuplicationRequest:
    type: Optional[str] = None
    id: Optional[str] = None
    count: int = 1
    name: Optional[str] = None
    destination: Optional[str] = None
    without_clips: Optional[bool] = None
    without_devices: Optional[bool] = None
    route_to_source: Optional[bool] = None
    switch_view: Optional[bool] = None
    to_slot: Optional[Union[str, Dict[str, int]]] = None
    to_track_index: Optional[int] = None
    to_scene_index: Optional[Union[int, str]] = None
    to_path: Optional[str] = None
    arrangement_start: Optional[str] = None
    arrangement_locator_id: Optional[str] = None
    arrangement_locator_name: Optional[str] = None
    arrangement_length: Optional[str] = None

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "DuplicationRequest":
        """Build a request from snake_case or camelCase keys."""
        known = {field.name for field in fields(cls)}
        values: Dict[str, Any] = {}
        for key, value in payload.items():
            field_name = _ALIASES.get(key, key)
            if field_name not in known:
                raise DuplicateValidationError(f"unknown parameter: {key}")
            if value is not None:
                values[field_name] = value
        return cls(**values)


def _target_view(destination: Optional[str], object_type: str) -> Optional[str]:
    if destination == "arrangement":
        return "Arranger"
    if destination == "session" or object_type in ("track", "scene"):
        return "Session"
    return None


def _switch_view_if_requested(connection, request: DuplicationRequest) -> None:
    if not request.switch_view:
        return
    view = _target_view(request.destination, request.type)
    if view is not None:
        LiveObject.from_path(connection, LIVE_APP_VIEW).call("show_view", view)


def _validate(request: DuplicationRequest) -> DuplicationRequest:
    validate_basic_inputs(request.type, request.id, request.count)
    without_clips, without_devices = validate_and_configure_route_to_source(
        request.type, request.route_to_source, request.without_clips, request.without_devices
    )
    request.to_track_index, request.to_scene_index = validate_to_slot(
        request.type, request.destination, request.to_slot, request.to_track_index, request.to_scene_index
    )
    validate_clip_parameters(request.type, request.destination, request.to_track_index, request.to_scene_index)
    validate_destination_parameter(request.type, request.destination)
    validate_arrangement_parameters(
        request.type,
        request.destination,
        request.arrangement_start,
        request.arrangement_locator_id,
        request.arrangement_locator_name,
        request.arrangement_length,
    )
    request.without_clips = without_clips
    request.without_devices = without_devices
    return request


def _duplicate_tracks(connection, live_set: LiveObject, source: LiveObject, request, settings) -> List[Dict[str, Any]]:
    track_index = source.track_index
    if track_index is None:
        raise DuplicateResolutionError(f'no track index for id "{request.id}" (path="{source.path}")')
    meter = song_meter(live_set)
    created = []
    for index in range(request.count):
        # earlier copies sit right after the source, so each pass duplicates the newest one
        created.append(
            duplicate_track(
                connection,
                live_set,
                track_index + index,
                meter,
                settings,
                name=generate_object_name(request.name, request.count, index),
                without_clips=request.without_clips,
                without_devices=request.without_devices,
                route_to_source=bool(request.route_to_source),
                source_track_index=track_index,
            )
        )
    return created


def _duplicate_scenes(connection, live_set: LiveObject, source: LiveObject, request, settings) -> List[Dict[str, Any]]:
    scene_index = source.scene_index
    if scene_index is None:
        raise DuplicateResolutionError(f'no scene index for id "{request.id}" (path="{source.path}")')
    meter = song_meter(live_set)
    created = []

    if request.destination == "arrangement":
        position = resolve_arrangement_position(
            live_set,
            request.arrangement_start,
            request.arrangement_locator_id,
            request.arrangement_locator_name,
            *meter,
        )
        for index in range(request.count):
            result, span = duplicate_scene_to_arrangement(
                connection,
                live_set,
                scene_index,
                position,
                meter,
                settings,
                name=generate_object_name(request.name, request.count, index),
                without_clips=bool(request.without_clips),
                arrangement_length=request.arrangement_length,
            )
            created.append(result)
            position += span
        return created

    for index in range(request.count):
        created.append(
            duplicate_scene(
                connection,
                live_set,
                scene_index + index,
                meter,
                name=generate_object_name(request.name, request.count, index),
                without_clips=bool(request.without_clips),
            )
        )
    return created


def duplicate(
    request: Union[DuplicationRequest, Mapping[str, Any]],
    connection,
    settings: Optional[Settings] = None,
) -> DuplicateResult:
    """
    Duplicate the object named by ``request``.

    Returns a single result when exactly one object was created and a list
    otherwise. Raises ``DuplicateError`` subclasses; validation failures are
    raised before any command is sent to Live.
    """
    if not isinstance(request, DuplicationRequest):
        request = DuplicationRequest.from_mapping(request)
    request = _validate(request)
    settings = settings or load_settings()

    source = validate_id_type(connection, request.id, request.type)
    live_set = LiveObject.from_path(connection, LIVE_SET)
    logger.info(f"Duplicating {request.type} {request.id} (count={request.count})")

    if request.type == "device":
        result = duplicate_device(
            connection,
            live_set,
            source,
            to_path=request.to_path,
            name=request.name,
            count=request.count,
        )
        _switch_view_if_requested(connection, request)
        return result

    if request.type == "clip":
        created = duplicate_clip_with_positions(
            connection,
            live_set,
            source,
            request.destination,
            settings,
            name=request.name,
            to_track_index=request.to_track_index,
            to_scene_index=request.to_scene_index,
            arrangement_start=request.arrangement_start,
            arrangement_locator_id=request.arrangement_locator_id,
            arrangement_locator_name=request.arrangement_locator_name,
            arrangement_length=request.arrangement_length,
        )
    elif request.type == "track":
        created = _duplicate_tracks(connection, live_set, source, request, settings)
    else:
        created = _duplicate_scenes(connection, live_set, source, request, settings)

    _switch_view_if_requested(connection, request)

    if len(created) == 1:
        return created[0]
    return created
